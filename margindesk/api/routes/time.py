"""Allocations, timesheet entries, leaves and holidays."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext, get_current_user_context, require_editor
from margindesk.core.periods import parse_month
from margindesk.db.dependencies import get_db_session
from margindesk.models.entities import HolidayType, LeaveStatus
from margindesk.services.time_service import (
    AllocationCreateData,
    AllocationUpdateData,
    HolidayCreateData,
    LeaveCreateData,
    TimeService,
)

router = APIRouter(tags=["time"])


class AllocationCreatePayload(BaseModel):
    person_id: UUID
    project_id: UUID
    period_month: str
    hours_billable: Decimal = Field(default=Decimal("0"), ge=0)
    hours_nonbillable: Decimal = Field(default=Decimal("0"), ge=0)
    pct_effort: Decimal | None = Field(default=None, ge=0, le=100)
    start_date: date | None = None
    end_date: date | None = None
    notes: str | None = Field(default=None, max_length=2000)


class AllocationUpdatePayload(BaseModel):
    hours_billable: Decimal | None = Field(default=None, ge=0)
    hours_nonbillable: Decimal | None = Field(default=None, ge=0)
    pct_effort: Decimal | None = Field(default=None, ge=0, le=100)
    start_date: date | None = None
    end_date: date | None = None
    notes: str | None = Field(default=None, max_length=2000)


class LeaveCreatePayload(BaseModel):
    person_id: UUID
    leave_type: str = Field(min_length=1, max_length=128)
    start_date: date
    end_date: date
    days: Decimal = Field(gt=0)
    status: LeaveStatus = LeaveStatus.PENDING
    reason: str | None = Field(default=None, max_length=2000)


class LeaveStatusPayload(BaseModel):
    status: LeaveStatus


class HolidayCreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    holiday_date: date = Field(alias="date")
    name: str = Field(min_length=1, max_length=255)
    type: HolidayType = HolidayType.PUBLIC
    description: str | None = Field(default=None, max_length=2000)


def _service(db: Session) -> TimeService:
    return TimeService(db)


# ---------- Allocations ----------
@router.get("/allocations")
def list_allocations(
    person_id: UUID | None = None,
    project_id: UUID | None = None,
    month: str | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_allocations(
        person_id=person_id,
        project_id=project_id,
        period_month=parse_month(month) if month else None,
    )
    return {"items": [service.serialize_allocation(row) for row in rows]}


@router.post("/allocations", status_code=201)
def create_allocation(
    payload: AllocationCreatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    values = payload.model_dump()
    values["period_month"] = parse_month(payload.period_month, field="period_month")
    return service.serialize_allocation(service.create_allocation(AllocationCreateData(**values)))


@router.put("/allocations/{allocation_id}")
def update_allocation(
    allocation_id: UUID,
    payload: AllocationUpdatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    row = service.update_allocation(allocation_id, AllocationUpdateData(**payload.model_dump()))
    return service.serialize_allocation(row)


@router.delete("/allocations/{allocation_id}", status_code=204)
def delete_allocation(
    allocation_id: UUID,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_allocation(allocation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Timesheets ----------
@router.get("/timesheets")
def list_timesheet_entries(
    person_id: UUID | None = None,
    project_id: UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = Query(default=500, ge=1, le=1000),
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_timesheet_entries(
        person_id=person_id,
        project_id=project_id,
        start=start_date,
        end=end_date,
        limit=limit,
    )
    return {"items": [service.serialize_timesheet_entry(row) for row in rows], "count": len(rows)}


# ---------- Leaves ----------
@router.get("/leaves")
def list_leaves(
    person_id: UUID | None = None,
    status_filter: LeaveStatus | None = Query(default=None, alias="status"),
    start_date: date | None = None,
    end_date: date | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_leaves(person_id=person_id, status_filter=status_filter, start=start_date, end=end_date)
    return {"items": [service.serialize_leave(row) for row in rows]}


@router.post("/leaves", status_code=201)
def create_leave(
    payload: LeaveCreatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_leave(service.create_leave(LeaveCreateData(**payload.model_dump())))


@router.patch("/leaves/{leave_id}")
def update_leave_status(
    leave_id: UUID,
    payload: LeaveStatusPayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_leave(service.update_leave_status(leave_id, payload.status))


@router.delete("/leaves/{leave_id}", status_code=204)
def delete_leave(
    leave_id: UUID,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_leave(leave_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Holidays ----------
@router.get("/holidays")
def list_holidays(
    year: int | None = Query(default=None, ge=1900, le=2100),
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return {"items": [service.serialize_holiday(row) for row in service.list_holidays(year)]}


@router.post("/holidays", status_code=201)
def create_holiday(
    payload: HolidayCreatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    holiday = service.create_holiday(
        HolidayCreateData(
            holiday_date=payload.holiday_date,
            name=payload.name,
            type=payload.type,
            description=payload.description,
        )
    )
    return service.serialize_holiday(holiday)


@router.delete("/holidays/{holiday_id}", status_code=204)
def delete_holiday(
    holiday_id: UUID,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_holiday(holiday_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
