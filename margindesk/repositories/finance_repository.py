"""Repository helpers for salaries, vendor bills, expenses and reselling."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from margindesk.models.entities import (
    Bill,
    BillLineItem,
    Expense,
    PersonSalary,
    ProjectCost,
    ProjectCostType,
    ResellingBillAllocation,
    ResellingInvoice,
)


class FinanceRepository:
    """Persistence operations for finance registers."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Salaries ----------
    def list_salaries(
        self,
        *,
        month: date | None = None,
        person_id: UUID | None = None,
    ) -> list[PersonSalary]:
        query = select(PersonSalary)
        if month is not None:
            query = query.where(PersonSalary.month == month)
        if person_id is not None:
            query = query.where(PersonSalary.person_id == person_id)
        return self.db.scalars(query.order_by(PersonSalary.month.desc())).all()

    def list_salaries_in_range(self, person_ids: set[UUID], start: date, end: date) -> list[PersonSalary]:
        if not person_ids:
            return []
        return self.db.scalars(
            select(PersonSalary).where(
                and_(
                    PersonSalary.person_id.in_(person_ids),
                    PersonSalary.month >= start,
                    PersonSalary.month <= end,
                )
            )
        ).all()

    def get_salary(self, salary_id: UUID) -> PersonSalary | None:
        return self.db.scalar(select(PersonSalary).where(PersonSalary.id == salary_id))

    def get_salary_for(self, person_id: UUID, month: date) -> PersonSalary | None:
        return self.db.scalar(
            select(PersonSalary).where(and_(PersonSalary.person_id == person_id, PersonSalary.month == month))
        )

    def add_salary(self, salary: PersonSalary) -> PersonSalary:
        self.db.add(salary)
        self.db.flush()
        return salary

    def delete_salary(self, salary: PersonSalary) -> None:
        self.db.delete(salary)
        self.db.flush()

    # ---------- Bills ----------
    def list_bills(
        self,
        *,
        billed_for_month: date | None = None,
        vendor_name: str | None = None,
        include_in_calculation: bool | None = None,
    ) -> list[Bill]:
        query = select(Bill)
        if billed_for_month is not None:
            query = query.where(Bill.billed_for_month == billed_for_month)
        if vendor_name is not None:
            query = query.where(func.lower(Bill.vendor_name).contains(vendor_name.lower()))
        if include_in_calculation is not None:
            query = query.where(Bill.include_in_calculation.is_(include_in_calculation))
        return self.db.scalars(query.order_by(Bill.bill_date.desc())).all()

    def get_bill(self, bill_id: UUID) -> Bill | None:
        return self.db.scalar(select(Bill).where(Bill.id == bill_id))

    def lock_bill(self, bill_id: UUID) -> Bill | None:
        """Load a bill holding a row lock until the transaction ends."""

        return self.db.scalar(select(Bill).where(Bill.id == bill_id).with_for_update())

    def get_bill_by_zoho_id(self, zoho_bill_id: str) -> Bill | None:
        return self.db.scalar(select(Bill).where(Bill.zoho_bill_id == zoho_bill_id))

    def list_bills_by_ids(self, bill_ids: set[UUID]) -> list[Bill]:
        if not bill_ids:
            return []
        return self.db.scalars(select(Bill).where(Bill.id.in_(bill_ids))).all()

    def list_bill_line_items(self, bill_id: UUID) -> list[BillLineItem]:
        return self.db.scalars(select(BillLineItem).where(BillLineItem.bill_id == bill_id)).all()

    def add_bill(self, bill: Bill) -> Bill:
        self.db.add(bill)
        self.db.flush()
        return bill

    # ---------- Expenses ----------
    def list_expenses(
        self,
        *,
        start: date | None = None,
        end: date | None = None,
        include_in_calculation: bool | None = None,
    ) -> list[Expense]:
        query = select(Expense)
        if start is not None:
            query = query.where(Expense.expense_date >= start)
        if end is not None:
            query = query.where(Expense.expense_date <= end)
        if include_in_calculation is not None:
            query = query.where(Expense.include_in_calculation.is_(include_in_calculation))
        return self.db.scalars(query.order_by(Expense.expense_date.desc())).all()

    def get_expense(self, expense_id: UUID) -> Expense | None:
        return self.db.scalar(select(Expense).where(Expense.id == expense_id))

    def get_expense_by_zoho_id(self, zoho_expense_id: str) -> Expense | None:
        return self.db.scalar(select(Expense).where(Expense.zoho_expense_id == zoho_expense_id))

    def add_expense(self, expense: Expense) -> Expense:
        self.db.add(expense)
        self.db.flush()
        return expense

    # ---------- Reselling invoices ----------
    def list_reselling_invoices(
        self,
        *,
        project_id: UUID | None = None,
        period_month: date | None = None,
        product_id: UUID | None = None,
    ) -> list[ResellingInvoice]:
        query = select(ResellingInvoice)
        if project_id is not None:
            query = query.where(ResellingInvoice.project_id == project_id)
        if period_month is not None:
            query = query.where(ResellingInvoice.period_month == period_month)
        if product_id is not None:
            query = query.where(ResellingInvoice.product_id == product_id)
        return self.db.scalars(
            query.order_by(ResellingInvoice.period_month.desc(), ResellingInvoice.invoice_date.desc())
        ).all()

    def get_reselling_invoice(self, invoice_id: UUID) -> ResellingInvoice | None:
        return self.db.scalar(select(ResellingInvoice).where(ResellingInvoice.id == invoice_id))

    def find_reselling_invoice(self, project_id: UUID, product_id: UUID, period_month: date) -> ResellingInvoice | None:
        return self.db.scalar(
            select(ResellingInvoice)
            .where(
                and_(
                    ResellingInvoice.project_id == project_id,
                    ResellingInvoice.product_id == product_id,
                    ResellingInvoice.period_month == period_month,
                )
            )
            .order_by(ResellingInvoice.created_at.asc())
            .limit(1)
        )

    def add_reselling_invoice(self, invoice: ResellingInvoice) -> ResellingInvoice:
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def delete_reselling_invoice(self, invoice: ResellingInvoice) -> None:
        self.db.delete(invoice)
        self.db.flush()

    # ---------- Bill allocations ----------
    def list_invoice_allocations(self, invoice_id: UUID) -> list[ResellingBillAllocation]:
        return self.db.scalars(
            select(ResellingBillAllocation)
            .where(ResellingBillAllocation.reselling_invoice_id == invoice_id)
            .order_by(ResellingBillAllocation.created_at.asc())
        ).all()

    def list_bill_allocations(self, bill_id: UUID) -> list[ResellingBillAllocation]:
        return self.db.scalars(
            select(ResellingBillAllocation)
            .where(ResellingBillAllocation.bill_id == bill_id)
            .order_by(ResellingBillAllocation.created_at.asc())
        ).all()

    def get_bill_allocation(self, allocation_id: UUID) -> ResellingBillAllocation | None:
        return self.db.scalar(select(ResellingBillAllocation).where(ResellingBillAllocation.id == allocation_id))

    def find_bill_allocation(self, invoice_id: UUID, bill_id: UUID) -> ResellingBillAllocation | None:
        return self.db.scalar(
            select(ResellingBillAllocation).where(
                and_(
                    ResellingBillAllocation.reselling_invoice_id == invoice_id,
                    ResellingBillAllocation.bill_id == bill_id,
                )
            )
        )

    def sum_bill_allocation_pct(self, bill_id: UUID, *, exclude_id: UUID | None = None) -> Decimal:
        query = select(func.coalesce(func.sum(ResellingBillAllocation.allocation_percentage), 0)).where(
            ResellingBillAllocation.bill_id == bill_id
        )
        if exclude_id is not None:
            query = query.where(ResellingBillAllocation.id != exclude_id)
        return Decimal(str(self.db.scalar(query) or 0))

    def sum_invoice_allocated_amount(self, invoice_id: UUID) -> Decimal:
        total = self.db.scalar(
            select(func.coalesce(func.sum(ResellingBillAllocation.allocated_amount), 0)).where(
                ResellingBillAllocation.reselling_invoice_id == invoice_id
            )
        )
        return Decimal(str(total or 0))

    def add_bill_allocation(self, allocation: ResellingBillAllocation) -> ResellingBillAllocation:
        self.db.add(allocation)
        self.db.flush()
        return allocation

    def delete_bill_allocation(self, allocation: ResellingBillAllocation) -> None:
        self.db.delete(allocation)
        self.db.flush()

    # ---------- Project costs ----------
    def list_project_costs(
        self,
        *,
        start: date,
        end: date,
        project_ids: set[UUID] | None = None,
    ) -> list[ProjectCost]:
        query = select(ProjectCost).where(and_(ProjectCost.period_month >= start, ProjectCost.period_month <= end))
        if project_ids is not None:
            if not project_ids:
                return []
            query = query.where(ProjectCost.project_id.in_(project_ids))
        return self.db.scalars(query.order_by(ProjectCost.period_month.asc())).all()

    def get_project_cost(
        self,
        project_id: UUID,
        period_month: date,
        cost_type: ProjectCostType,
    ) -> ProjectCost | None:
        return self.db.scalar(
            select(ProjectCost).where(
                and_(
                    ProjectCost.project_id == project_id,
                    ProjectCost.period_month == period_month,
                    ProjectCost.type == cost_type,
                )
            )
        )

    def add_project_cost(self, cost: ProjectCost) -> ProjectCost:
        self.db.add(cost)
        self.db.flush()
        return cost
