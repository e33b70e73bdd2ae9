"""Reselling invoices and their vendor-bill allocations."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext, get_current_user_context, require_admin
from margindesk.core.periods import parse_month
from margindesk.db.dependencies import get_db_session
from margindesk.services.reselling_service import (
    BatchInvoiceRow,
    BillAllocationCreateData,
    ResellingInvoiceCreateData,
    ResellingInvoiceUpdateData,
    ResellingService,
)

router = APIRouter(tags=["reselling"])


class InvoiceCreatePayload(BaseModel):
    product_id: UUID
    period_month: str
    invoice_date: date
    invoice_amount: Decimal = Field(gt=0)
    invoice_id: str | None = Field(default=None, max_length=128)
    resource_cost: Decimal = Field(default=Decimal("0"), ge=0)
    other_expenses: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = Field(default=None, max_length=2000)


class InvoiceUpdatePayload(BaseModel):
    product_id: UUID | None = None
    period_month: str | None = None
    invoice_date: date | None = None
    invoice_amount: Decimal | None = Field(default=None, gt=0)
    invoice_id: str | None = Field(default=None, max_length=128)
    resource_cost: Decimal | None = Field(default=None, ge=0)
    other_expenses: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=2000)


class BatchRowPayload(BaseModel):
    project_id: UUID
    product_id: UUID
    period_month: str
    invoice_amount: Decimal
    other_expenses: Decimal = Decimal("0")
    invoice_date: date | None = None


class BatchPayload(BaseModel):
    updates: list[BatchRowPayload]


class AllocationCreatePayload(BaseModel):
    bill_id: UUID
    product_id: UUID
    allocation_percentage: Decimal
    notes: str | None = Field(default=None, max_length=2000)


class AllocationUpdatePayload(BaseModel):
    allocation_percentage: Decimal | None = None
    notes: str | None = Field(default=None, max_length=2000)


def _service(db: Session) -> ResellingService:
    return ResellingService(db)


# ---------- Invoices ----------
@router.get("/reselling-invoices")
def list_reselling_invoices(
    period_month: str | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_invoices(period_month=parse_month(period_month, field="period_month") if period_month else None)
    return {"items": [service.serialize_invoice(row) for row in rows]}


@router.get("/projects/{project_id}/reselling-invoices")
def list_project_reselling_invoices(
    project_id: UUID,
    month: str | None = None,
    product_id: UUID | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_invoices(
        project_id=project_id,
        period_month=parse_month(month) if month else None,
        product_id=product_id,
    )
    return {"items": [service.serialize_invoice(row) for row in rows]}


@router.post("/projects/{project_id}/reselling-invoices", status_code=201)
def create_reselling_invoice(
    project_id: UUID,
    payload: InvoiceCreatePayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    invoice = service.create_invoice(
        context=context,
        project_id=project_id,
        data=ResellingInvoiceCreateData(
            product_id=payload.product_id,
            period_month=parse_month(payload.period_month, field="period_month"),
            invoice_date=payload.invoice_date,
            invoice_amount=payload.invoice_amount,
            external_invoice_id=payload.invoice_id,
            resource_cost=payload.resource_cost,
            other_expenses=payload.other_expenses,
            notes=payload.notes,
        ),
    )
    return service.serialize_invoice(invoice)


@router.post("/reselling-invoices/batch")
def batch_upsert_reselling_invoices(
    payload: BatchPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    rows = [BatchInvoiceRow(**item.model_dump()) for item in payload.updates]
    return _service(db).batch_upsert(context=context, rows=rows)


@router.get("/reselling-invoices/{invoice_id}")
def get_reselling_invoice(
    invoice_id: UUID,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_invoice(service.get_invoice(invoice_id))


@router.put("/reselling-invoices/{invoice_id}")
def update_reselling_invoice(
    invoice_id: UUID,
    payload: InvoiceUpdatePayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    invoice = service.update_invoice(
        context=context,
        invoice_id=invoice_id,
        data=ResellingInvoiceUpdateData(
            product_id=payload.product_id,
            period_month=parse_month(payload.period_month, field="period_month") if payload.period_month else None,
            invoice_date=payload.invoice_date,
            invoice_amount=payload.invoice_amount,
            external_invoice_id=payload.invoice_id,
            resource_cost=payload.resource_cost,
            other_expenses=payload.other_expenses,
            notes=payload.notes,
        ),
    )
    return service.serialize_invoice(invoice)


@router.delete("/reselling-invoices/{invoice_id}")
def delete_reselling_invoice(
    invoice_id: UUID,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    deleted = _service(db).delete_invoice(context=context, invoice_id=invoice_id)
    return {"success": True, "bill_allocations_deleted": deleted}


# ---------- Bill allocations ----------
@router.get("/reselling-invoices/{invoice_id}/allocations")
def list_invoice_allocations(
    invoice_id: UUID,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).list_invoice_allocations(invoice_id)


@router.post("/reselling-invoices/{invoice_id}/allocations", status_code=201)
def add_invoice_allocation(
    invoice_id: UUID,
    payload: AllocationCreatePayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    allocation = service.add_allocation(
        context=context,
        invoice_id=invoice_id,
        data=BillAllocationCreateData(**payload.model_dump()),
    )
    return service.serialize_allocation(allocation)


@router.put("/bill-allocations/{allocation_id}")
def update_bill_allocation(
    allocation_id: UUID,
    payload: AllocationUpdatePayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    allocation = service.update_allocation(
        context=context,
        allocation_id=allocation_id,
        allocation_percentage=payload.allocation_percentage,
        notes=payload.notes,
    )
    return service.serialize_allocation(allocation)


@router.delete("/bill-allocations/{allocation_id}", status_code=204)
def delete_bill_allocation(
    allocation_id: UUID,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_allocation(context=context, allocation_id=allocation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/bills/{bill_id}/allocations")
def list_bill_allocations(
    bill_id: UUID,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).bill_allocation_summary(bill_id)
