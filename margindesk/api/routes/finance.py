"""Finance registers: salaries, bills, expenses and project costs."""

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
from margindesk.models.entities import ProjectCostType
from margindesk.services.finance_service import FinanceService, ProjectCostRow, SalaryUpsertData

router = APIRouter(tags=["finance"])


class SalaryUpsertPayload(BaseModel):
    person_id: UUID
    month: str
    base_salary: Decimal = Field(ge=0)
    bonus: Decimal = Field(default=Decimal("0"), ge=0)
    deductions: Decimal = Field(default=Decimal("0"), ge=0)
    overtime: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = Field(default=None, max_length=2000)


class InclusionPayload(BaseModel):
    include_in_calculation: bool
    exclusion_reason: str | None = Field(default=None, max_length=512)


class BilledMonthPayload(BaseModel):
    billed_for_month: str | None = None


class ExclusionRulePayload(BaseModel):
    id: str | None = None
    name: str = Field(min_length=1, max_length=255)
    enabled: bool = True
    field: str
    operator: str
    value: str | Decimal | list[str]
    reason: str | None = Field(default=None, max_length=255)


class ExclusionRulesPayload(BaseModel):
    rules: list[ExclusionRulePayload]


class ProjectCostRowPayload(BaseModel):
    project_id: UUID
    period_month: str
    type: ProjectCostType = ProjectCostType.OTHER
    amount: Decimal
    notes: str | None = Field(default=None, max_length=2000)


class ProjectCostBulkPayload(BaseModel):
    updates: list[ProjectCostRowPayload]


def _service(db: Session) -> FinanceService:
    return FinanceService(db)


# ---------- Salaries ----------
@router.get("/salaries")
def list_salaries(
    month: str | None = None,
    person_id: UUID | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_salaries(month=parse_month(month) if month else None, person_id=person_id)
    return {"items": [service.serialize_salary(row) for row in rows]}


@router.put("/salaries")
def upsert_salary(
    payload: SalaryUpsertPayload,
    response: Response,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    values = payload.model_dump()
    values["month"] = parse_month(payload.month)
    salary, created = service.upsert_salary(SalaryUpsertData(**values))
    if created:
        response.status_code = status.HTTP_201_CREATED
    return service.serialize_salary(salary)


@router.delete("/salaries/{salary_id}", status_code=204)
def delete_salary(
    salary_id: UUID,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_salary(salary_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Bills ----------
@router.get("/bills")
def list_bills(
    month: str | None = None,
    vendor: str | None = None,
    include: bool | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_bills(month=parse_month(month) if month else None, vendor=vendor, include=include)
    return {"items": [service.serialize_bill(row) for row in rows], "count": len(rows)}


@router.get("/bills/{bill_id}")
def get_bill(
    bill_id: UUID,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).get_bill_detail(bill_id)


@router.patch("/bills/{bill_id}")
def set_bill_inclusion(
    bill_id: UUID,
    payload: InclusionPayload,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    bill = service.set_bill_inclusion(bill_id, payload.include_in_calculation, payload.exclusion_reason)
    return service.serialize_bill(bill)


@router.patch("/bills/{bill_id}/billed-month")
def set_bill_billed_month(
    bill_id: UUID,
    payload: BilledMonthPayload,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    month = parse_month(payload.billed_for_month, field="billed_for_month") if payload.billed_for_month else None
    return service.serialize_bill(service.set_billed_month(bill_id, month))


# ---------- Expenses ----------
@router.get("/expenses")
def list_expenses(
    start_date: date | None = None,
    end_date: date | None = None,
    include: bool | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_expenses(start=start_date, end=end_date, include=include)
    return {"items": [service.serialize_expense(row) for row in rows], "count": len(rows)}


@router.patch("/expenses/{expense_id}")
def set_expense_inclusion(
    expense_id: UUID,
    payload: InclusionPayload,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    expense = service.set_expense_inclusion(expense_id, payload.include_in_calculation, payload.exclusion_reason)
    return service.serialize_expense(expense)


# ---------- Bill exclusion rules ----------
@router.get("/bill-exclusion-rules")
def get_bill_exclusion_rules(
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return {"rules": _service(db).get_exclusion_rules()}


@router.put("/bill-exclusion-rules")
def put_bill_exclusion_rules(
    payload: ExclusionRulesPayload,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    rules = [rule.model_dump(mode="json") for rule in payload.rules]
    return {"rules": _service(db).save_exclusion_rules(rules)}


# ---------- Project costs ----------
@router.get("/project-costs")
def list_project_costs(
    start_month: str,
    end_month: str,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_project_costs(
        start_month=parse_month(start_month, field="start_month"),
        end_month=parse_month(end_month, field="end_month"),
    )
    return {"items": [service.serialize_project_cost(row) for row in rows]}


@router.post("/project-costs/bulk")
def bulk_upsert_project_costs(
    payload: ProjectCostBulkPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    rows = [ProjectCostRow(**item.model_dump()) for item in payload.updates]
    return _service(db).bulk_upsert_project_costs(context=context, rows=rows)
