"""Reselling invoices and bill-allocation consistency rules.

A vendor bill may be split across reselling invoices by percentage. The sum
of percentages for one bill never exceeds 100, and an invoice's cost and
profit fields are always recomputed from its allocations inside the same
transaction that changed them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext
from margindesk.core.periods import format_month, parse_month
from margindesk.models.entities import Bill, ResellingBillAllocation, ResellingInvoice
from margindesk.repositories.directory_repository import DirectoryRepository
from margindesk.repositories.finance_repository import FinanceRepository
from margindesk.repositories.time_repository import TimeRepository
from margindesk.services.audit_service import AuditService
from margindesk.services.money import HUNDRED, ZERO, money_str, percent_of, q2

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResellingInvoiceCreateData:
    product_id: UUID
    period_month: date
    invoice_date: date
    invoice_amount: Decimal
    external_invoice_id: str | None = None
    resource_cost: Decimal = ZERO
    other_expenses: Decimal = ZERO
    notes: str | None = None


@dataclass(slots=True)
class ResellingInvoiceUpdateData:
    product_id: UUID | None = None
    period_month: date | None = None
    invoice_date: date | None = None
    invoice_amount: Decimal | None = None
    external_invoice_id: str | None = None
    resource_cost: Decimal | None = None
    other_expenses: Decimal | None = None
    notes: str | None = None


@dataclass(slots=True)
class BillAllocationCreateData:
    bill_id: UUID
    product_id: UUID
    allocation_percentage: Decimal
    notes: str | None = None


@dataclass(slots=True)
class BatchInvoiceRow:
    project_id: UUID
    product_id: UUID
    period_month: str
    invoice_amount: Decimal
    other_expenses: Decimal = ZERO
    invoice_date: date | None = None


def bill_base_amount(bill: Bill) -> Decimal:
    """Amount a bill contributes: sub-total when present, otherwise total."""

    return bill.sub_total if bill.sub_total else bill.total


def _pct(value: Decimal) -> str:
    return f"{value:.2f}"


def _validate_percentage(value: Decimal) -> None:
    if value < ZERO or value > HUNDRED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="allocation_percentage must be between 0 and 100",
        )


class ResellingService:
    """Reselling invoice lifecycle with derived totals."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = FinanceRepository(db)
        self.directory = DirectoryRepository(db)
        self.time_repo = TimeRepository(db)
        self.audit = AuditService(db)

    @staticmethod
    def serialize_invoice(invoice: ResellingInvoice) -> dict[str, object]:
        return {
            "id": str(invoice.id),
            "project_id": str(invoice.project_id),
            "product_id": str(invoice.product_id),
            "period_month": format_month(invoice.period_month),
            "invoice_id": invoice.external_invoice_id,
            "invoice_date": invoice.invoice_date.isoformat(),
            "invoice_amount": money_str(invoice.invoice_amount),
            "total_oem_cost": money_str(invoice.total_oem_cost),
            "resource_cost": money_str(invoice.resource_cost),
            "other_expenses": money_str(invoice.other_expenses),
            "total_cost": money_str(invoice.total_cost),
            "gross_profit": money_str(invoice.gross_profit),
            "profit_margin_pct": money_str(invoice.profit_margin_pct),
            "notes": invoice.notes,
        }

    def serialize_allocation(self, allocation: ResellingBillAllocation, bill: Bill | None = None) -> dict[str, object]:
        bill = bill or self.repo.get_bill(allocation.bill_id)
        return {
            "id": str(allocation.id),
            "reselling_invoice_id": str(allocation.reselling_invoice_id),
            "bill_id": str(allocation.bill_id),
            "product_id": str(allocation.product_id),
            "allocation_percentage": money_str(allocation.allocation_percentage),
            "allocated_amount": money_str(allocation.allocated_amount),
            "notes": allocation.notes,
            "bill": {
                "vendor_name": bill.vendor_name,
                "bill_number": bill.bill_number,
                "bill_date": bill.bill_date.isoformat(),
                "sub_total": money_str(bill.sub_total),
                "total": money_str(bill.total),
            }
            if bill is not None
            else None,
        }

    # ---------- Derived totals ----------
    def recalculate_invoice_totals(self, invoice: ResellingInvoice) -> ResellingInvoice:
        """The only writer of the derived cost and profit fields."""

        self.db.flush()
        invoice.total_oem_cost = q2(self.repo.sum_invoice_allocated_amount(invoice.id))
        invoice.total_cost = q2(invoice.total_oem_cost + (invoice.resource_cost or ZERO) + (invoice.other_expenses or ZERO))
        invoice.gross_profit = q2(invoice.invoice_amount - invoice.total_cost)
        invoice.profit_margin_pct = percent_of(invoice.gross_profit, invoice.invoice_amount)
        invoice.updated_at = datetime.utcnow()
        self.db.flush()
        return invoice

    # ---------- Invoices ----------
    def _get_invoice(self, invoice_id: UUID) -> ResellingInvoice:
        invoice = self.repo.get_reselling_invoice(invoice_id)
        if invoice is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reselling invoice not found")
        return invoice

    def get_invoice(self, invoice_id: UUID) -> ResellingInvoice:
        return self._get_invoice(invoice_id)

    def list_invoices(
        self,
        *,
        project_id: UUID | None = None,
        period_month: date | None = None,
        product_id: UUID | None = None,
    ) -> list[ResellingInvoice]:
        if project_id is not None and self.directory.get_project(project_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        return self.repo.list_reselling_invoices(project_id=project_id, period_month=period_month, product_id=product_id)

    def create_invoice(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: ResellingInvoiceCreateData,
    ) -> ResellingInvoice:
        if self.directory.get_project(project_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        if self.directory.get_product(data.product_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
        if data.invoice_amount <= ZERO:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invoice_amount must be greater than 0")

        now = datetime.utcnow()
        invoice = ResellingInvoice(
            project_id=project_id,
            product_id=data.product_id,
            period_month=data.period_month,
            external_invoice_id=data.external_invoice_id,
            invoice_date=data.invoice_date,
            invoice_amount=q2(data.invoice_amount),
            resource_cost=q2(data.resource_cost),
            other_expenses=q2(data.other_expenses),
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_reselling_invoice(invoice)
        self.recalculate_invoice_totals(invoice)
        self.audit.record(
            actor_id=context.user_id,
            entity="reselling_invoice",
            entity_id=invoice.id,
            action="create",
            after=self.serialize_invoice(invoice),
        )
        self.db.commit()
        self.db.refresh(invoice)
        return invoice

    def update_invoice(
        self,
        *,
        context: RequestUserContext,
        invoice_id: UUID,
        data: ResellingInvoiceUpdateData,
    ) -> ResellingInvoice:
        invoice = self._get_invoice(invoice_id)
        before = self.serialize_invoice(invoice)

        if data.product_id is not None:
            if self.directory.get_product(data.product_id) is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
            invoice.product_id = data.product_id
        if data.invoice_amount is not None:
            if data.invoice_amount <= ZERO:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="invoice_amount must be greater than 0",
                )
            invoice.invoice_amount = q2(data.invoice_amount)
        if data.period_month is not None:
            invoice.period_month = data.period_month
        if data.invoice_date is not None:
            invoice.invoice_date = data.invoice_date
        if data.external_invoice_id is not None:
            invoice.external_invoice_id = data.external_invoice_id or None
        if data.resource_cost is not None:
            invoice.resource_cost = q2(data.resource_cost)
        if data.other_expenses is not None:
            invoice.other_expenses = q2(data.other_expenses)
        if data.notes is not None:
            invoice.notes = data.notes or None

        self.recalculate_invoice_totals(invoice)
        self.audit.record(
            actor_id=context.user_id,
            entity="reselling_invoice",
            entity_id=invoice.id,
            action="update",
            before=before,
            after=self.serialize_invoice(invoice),
        )
        self.db.commit()
        self.db.refresh(invoice)
        return invoice

    def delete_invoice(self, *, context: RequestUserContext, invoice_id: UUID) -> int:
        """Delete an invoice with its allocations; returns removed allocation count."""

        invoice = self._get_invoice(invoice_id)
        before = self.serialize_invoice(invoice)
        allocations = self.repo.list_invoice_allocations(invoice.id)
        for allocation in allocations:
            self.repo.delete_bill_allocation(allocation)
        self.repo.delete_reselling_invoice(invoice)
        self.audit.record(
            actor_id=context.user_id,
            entity="reselling_invoice",
            entity_id=invoice_id,
            action="delete",
            before=before,
        )
        self.db.commit()
        return len(allocations)

    def _resource_cost_for(self, project_id: UUID, period_month: date) -> Decimal:
        total = ZERO
        for allocation in self.time_repo.list_allocations(project_id=project_id, period_month=period_month):
            if not allocation.pct_effort:
                continue
            salary = self.repo.get_salary_for(allocation.person_id, period_month)
            if salary is None:
                continue
            total += salary.total * allocation.pct_effort / HUNDRED
        return q2(total)

    def batch_upsert(self, *, context: RequestUserContext, rows: list[BatchInvoiceRow]) -> dict[str, object]:
        created = 0
        updated = 0
        errors: list[dict[str, object]] = []

        for index, row in enumerate(rows):
            try:
                with self.db.begin_nested():
                    period_month = parse_month(row.period_month, field="period_month")
                    if row.invoice_amount <= ZERO:
                        raise HTTPException(
                            status_code=status.HTTP_400_BAD_REQUEST,
                            detail="invoice_amount must be greater than 0",
                        )
                    if self.directory.get_project(row.project_id) is None:
                        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
                    if self.directory.get_product(row.product_id) is None:
                        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

                    resource_cost = self._resource_cost_for(row.project_id, period_month)
                    invoice = self.repo.find_reselling_invoice(row.project_id, row.product_id, period_month)
                    now = datetime.utcnow()
                    if invoice is None:
                        invoice = ResellingInvoice(
                            project_id=row.project_id,
                            product_id=row.product_id,
                            period_month=period_month,
                            invoice_date=row.invoice_date or period_month,
                            invoice_amount=q2(row.invoice_amount),
                            resource_cost=resource_cost,
                            other_expenses=q2(row.other_expenses),
                            created_at=now,
                            updated_at=now,
                        )
                        self.repo.add_reselling_invoice(invoice)
                        created += 1
                    else:
                        invoice.invoice_amount = q2(row.invoice_amount)
                        invoice.resource_cost = resource_cost
                        invoice.other_expenses = q2(row.other_expenses)
                        if row.invoice_date is not None:
                            invoice.invoice_date = row.invoice_date
                        updated += 1
                    self.recalculate_invoice_totals(invoice)
            except HTTPException as exc:
                errors.append({"index": index, "project_id": str(row.project_id), "error": exc.detail})
            except IntegrityError as exc:
                errors.append({"index": index, "project_id": str(row.project_id), "error": str(exc.orig)})

        self.audit.record(
            actor_id=context.user_id,
            entity="reselling_invoice",
            entity_id=None,
            action="batch_upsert",
            after={"created": created, "updated": updated, "errors": len(errors)},
        )
        self.db.commit()
        logger.info("Reselling batch: %s created, %s updated, %s errors", created, updated, len(errors))
        return {"created": created, "updated": updated, "errors": errors}

    # ---------- Bill allocations ----------
    def list_invoice_allocations(self, invoice_id: UUID) -> dict[str, object]:
        invoice = self._get_invoice(invoice_id)
        allocations = self.repo.list_invoice_allocations(invoice.id)
        bills = {bill.id: bill for bill in self.repo.list_bills_by_ids({row.bill_id for row in allocations})}
        total = sum((row.allocated_amount for row in allocations), ZERO)
        return {
            "invoice_id": str(invoice.id),
            "allocations": [self.serialize_allocation(row, bills.get(row.bill_id)) for row in allocations],
            "count": len(allocations),
            "total_allocated_amount": str(q2(total)),
        }

    def bill_allocation_summary(self, bill_id: UUID) -> dict[str, object]:
        bill = self.repo.get_bill(bill_id)
        if bill is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bill not found")
        allocations = self.repo.list_bill_allocations(bill.id)
        total_pct = sum((row.allocation_percentage for row in allocations), ZERO)
        return {
            "bill_id": str(bill.id),
            "allocations": [self.serialize_allocation(row, bill) for row in allocations],
            "total_allocated_percentage": str(q2(total_pct)),
            "remaining_percentage": str(q2(HUNDRED - total_pct)),
        }

    def _check_capacity(self, bill_id: UUID, percentage: Decimal, *, exclude_id: UUID | None = None) -> None:
        current_total = self.repo.sum_bill_allocation_pct(bill_id, exclude_id=exclude_id)
        new_total = current_total + percentage
        if new_total > HUNDRED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "error": "Over-allocation",
                    "message": (
                        f"Over-allocation: Total {_pct(new_total)}% exceeds 100%. "
                        f"Currently allocated: {_pct(current_total)}%, attempting to add: {_pct(percentage)}%"
                    ),
                    "current_total": str(q2(current_total)),
                    "attempted_percentage": str(q2(percentage)),
                },
            )

    def add_allocation(
        self,
        *,
        context: RequestUserContext,
        invoice_id: UUID,
        data: BillAllocationCreateData,
    ) -> ResellingBillAllocation:
        _validate_percentage(data.allocation_percentage)
        invoice = self._get_invoice(invoice_id)

        try:
            with self.db.begin_nested():
                # Concurrent writers on the same bill serialize on this lock.
                bill = self.repo.lock_bill(data.bill_id)
                if bill is None:
                    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bill not found")
                if self.directory.get_product(data.product_id) is None:
                    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
                if self.repo.find_bill_allocation(invoice.id, bill.id) is not None:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="Bill already allocated to this invoice. Use PUT to update.",
                    )
                self._check_capacity(bill.id, data.allocation_percentage)

                now = datetime.utcnow()
                allocation = ResellingBillAllocation(
                    reselling_invoice_id=invoice.id,
                    bill_id=bill.id,
                    product_id=data.product_id,
                    allocation_percentage=q2(data.allocation_percentage),
                    allocated_amount=q2(bill_base_amount(bill) * data.allocation_percentage / HUNDRED),
                    notes=data.notes,
                    created_at=now,
                    updated_at=now,
                )
                self.repo.add_bill_allocation(allocation)
                self.recalculate_invoice_totals(invoice)
                self.audit.record(
                    actor_id=context.user_id,
                    entity="bill_allocation",
                    entity_id=allocation.id,
                    action="create",
                    after=self.serialize_allocation(allocation, bill),
                )
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Bill already allocated to this invoice. Use PUT to update.",
            ) from exc

        self.db.refresh(allocation)
        return allocation

    def _get_allocation(self, allocation_id: UUID) -> ResellingBillAllocation:
        allocation = self.repo.get_bill_allocation(allocation_id)
        if allocation is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bill allocation not found")
        return allocation

    def update_allocation(
        self,
        *,
        context: RequestUserContext,
        allocation_id: UUID,
        allocation_percentage: Decimal | None,
        notes: str | None,
    ) -> ResellingBillAllocation:
        if allocation_percentage is not None:
            _validate_percentage(allocation_percentage)
        allocation = self._get_allocation(allocation_id)

        try:
            with self.db.begin_nested():
                bill = self.repo.lock_bill(allocation.bill_id)
                if bill is None:
                    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bill not found")
                before = self.serialize_allocation(allocation, bill)
                if allocation_percentage is not None:
                    self._check_capacity(bill.id, allocation_percentage, exclude_id=allocation.id)
                    allocation.allocation_percentage = q2(allocation_percentage)
                    allocation.allocated_amount = q2(bill_base_amount(bill) * allocation_percentage / HUNDRED)
                if notes is not None:
                    allocation.notes = notes or None
                allocation.updated_at = datetime.utcnow()

                invoice = self._get_invoice(allocation.reselling_invoice_id)
                self.recalculate_invoice_totals(invoice)
                self.audit.record(
                    actor_id=context.user_id,
                    entity="bill_allocation",
                    entity_id=allocation.id,
                    action="update",
                    before=before,
                    after=self.serialize_allocation(allocation, bill),
                )
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise

        self.db.refresh(allocation)
        return allocation

    def delete_allocation(self, *, context: RequestUserContext, allocation_id: UUID) -> None:
        allocation = self._get_allocation(allocation_id)
        invoice = self._get_invoice(allocation.reselling_invoice_id)
        before = self.serialize_allocation(allocation)

        self.repo.delete_bill_allocation(allocation)
        self.recalculate_invoice_totals(invoice)
        self.audit.record(
            actor_id=context.user_id,
            entity="bill_allocation",
            entity_id=allocation_id,
            action="delete",
            before=before,
        )
        self.db.commit()
