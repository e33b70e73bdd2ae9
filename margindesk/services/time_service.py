"""Allocations, timesheet queries, leave and holiday calendar."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from margindesk.core.periods import format_month, month_start
from margindesk.models.entities import (
    Allocation,
    Holiday,
    HolidayType,
    Leave,
    LeaveStatus,
    TimesheetEntry,
)
from margindesk.repositories.directory_repository import DirectoryRepository
from margindesk.repositories.time_repository import TimeRepository
from margindesk.services.money import HUNDRED, ZERO, money_str


@dataclass(slots=True)
class AllocationCreateData:
    person_id: UUID
    project_id: UUID
    period_month: date
    hours_billable: Decimal = ZERO
    hours_nonbillable: Decimal = ZERO
    pct_effort: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    notes: str | None = None


@dataclass(slots=True)
class AllocationUpdateData:
    hours_billable: Decimal | None = None
    hours_nonbillable: Decimal | None = None
    pct_effort: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    notes: str | None = None


@dataclass(slots=True)
class LeaveCreateData:
    person_id: UUID
    leave_type: str
    start_date: date
    end_date: date
    days: Decimal
    status: LeaveStatus = LeaveStatus.PENDING
    reason: str | None = None


@dataclass(slots=True)
class HolidayCreateData:
    holiday_date: date
    name: str
    type: HolidayType = HolidayType.PUBLIC
    description: str | None = None


class TimeService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TimeRepository(db)
        self.directory = DirectoryRepository(db)

    @staticmethod
    def serialize_allocation(row: Allocation) -> dict[str, object]:
        return {
            "id": str(row.id),
            "person_id": str(row.person_id),
            "project_id": str(row.project_id),
            "period_month": format_month(row.period_month),
            "hours_billable": money_str(row.hours_billable),
            "hours_nonbillable": money_str(row.hours_nonbillable),
            "pct_effort": money_str(row.pct_effort),
            "start_date": row.start_date.isoformat() if row.start_date else None,
            "end_date": row.end_date.isoformat() if row.end_date else None,
            "notes": row.notes,
        }

    @staticmethod
    def serialize_timesheet_entry(row: TimesheetEntry) -> dict[str, object]:
        return {
            "id": str(row.id),
            "person_id": str(row.person_id),
            "project_id": str(row.project_id),
            "batch_id": str(row.batch_id) if row.batch_id else None,
            "work_date": row.work_date.isoformat(),
            "hours_logged": money_str(row.hours_logged),
            "is_billable": row.is_billable,
            "task_name": row.task_name,
            "notes": row.notes,
        }

    @staticmethod
    def serialize_leave(row: Leave) -> dict[str, object]:
        return {
            "id": str(row.id),
            "person_id": str(row.person_id),
            "leave_type": row.leave_type,
            "start_date": row.start_date.isoformat(),
            "end_date": row.end_date.isoformat(),
            "days": str(row.days),
            "status": row.status.value,
            "reason": row.reason,
            "zoho_leave_id": row.zoho_leave_id,
        }

    @staticmethod
    def serialize_holiday(row: Holiday) -> dict[str, object]:
        return {
            "id": str(row.id),
            "date": row.holiday_date.isoformat(),
            "name": row.name,
            "type": row.type.value,
            "description": row.description,
        }

    # ---------- Allocations ----------
    @staticmethod
    def _validate_allocation_values(
        hours_billable: Decimal | None,
        hours_nonbillable: Decimal | None,
        pct_effort: Decimal | None,
    ) -> None:
        for label, value in (("hours_billable", hours_billable), ("hours_nonbillable", hours_nonbillable)):
            if value is not None and value < ZERO:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{label} must be >= 0")
        if pct_effort is not None and (pct_effort < ZERO or pct_effort > HUNDRED):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="pct_effort must be between 0 and 100")

    def list_allocations(
        self,
        *,
        person_id: UUID | None,
        project_id: UUID | None,
        period_month: date | None,
    ) -> list[Allocation]:
        return self.repo.list_allocations(person_id=person_id, project_id=project_id, period_month=period_month)

    def create_allocation(self, data: AllocationCreateData) -> Allocation:
        if self.directory.get_person(data.person_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found")
        if self.directory.get_project(data.project_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        self._validate_allocation_values(data.hours_billable, data.hours_nonbillable, data.pct_effort)

        now = datetime.utcnow()
        allocation = Allocation(
            person_id=data.person_id,
            project_id=data.project_id,
            period_month=month_start(data.period_month),
            hours_billable=data.hours_billable,
            hours_nonbillable=data.hours_nonbillable,
            pct_effort=data.pct_effort,
            start_date=data.start_date,
            end_date=data.end_date,
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_allocation(allocation)
        self.db.commit()
        self.db.refresh(allocation)
        return allocation

    def _get_allocation(self, allocation_id: UUID) -> Allocation:
        allocation = self.repo.get_allocation(allocation_id)
        if allocation is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Allocation not found")
        return allocation

    def update_allocation(self, allocation_id: UUID, data: AllocationUpdateData) -> Allocation:
        allocation = self._get_allocation(allocation_id)
        self._validate_allocation_values(data.hours_billable, data.hours_nonbillable, data.pct_effort)
        if data.hours_billable is not None:
            allocation.hours_billable = data.hours_billable
        if data.hours_nonbillable is not None:
            allocation.hours_nonbillable = data.hours_nonbillable
        if data.pct_effort is not None:
            allocation.pct_effort = data.pct_effort
        if data.start_date is not None:
            allocation.start_date = data.start_date
        if data.end_date is not None:
            allocation.end_date = data.end_date
        if data.notes is not None:
            allocation.notes = data.notes or None
        allocation.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(allocation)
        return allocation

    def delete_allocation(self, allocation_id: UUID) -> None:
        allocation = self._get_allocation(allocation_id)
        self.repo.delete_allocation(allocation)
        self.db.commit()

    # ---------- Timesheets ----------
    def list_timesheet_entries(
        self,
        *,
        person_id: UUID | None,
        project_id: UUID | None,
        start: date | None,
        end: date | None,
        limit: int,
    ) -> list[TimesheetEntry]:
        return self.repo.list_timesheet_entries(
            person_ids={person_id} if person_id is not None else None,
            project_id=project_id,
            start=start,
            end=end,
            limit=limit,
        )

    # ---------- Leaves ----------
    def list_leaves(
        self,
        *,
        person_id: UUID | None,
        status_filter: LeaveStatus | None,
        start: date | None,
        end: date | None,
    ) -> list[Leave]:
        return self.repo.list_leaves(person_id=person_id, status=status_filter, start=start, end=end)

    def create_leave(self, data: LeaveCreateData) -> Leave:
        if self.directory.get_person(data.person_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found")
        if data.end_date < data.start_date:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="end_date must be greater than or equal to start_date.",
            )
        if data.days <= ZERO:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="days must be greater than 0")

        leave = Leave(
            person_id=data.person_id,
            leave_type=data.leave_type.strip(),
            start_date=data.start_date,
            end_date=data.end_date,
            days=data.days,
            status=data.status,
            reason=data.reason,
            created_at=datetime.utcnow(),
        )
        self.repo.add_leave(leave)
        self.db.commit()
        self.db.refresh(leave)
        return leave

    def _get_leave(self, leave_id: UUID) -> Leave:
        leave = self.repo.get_leave(leave_id)
        if leave is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Leave not found")
        return leave

    def update_leave_status(self, leave_id: UUID, new_status: LeaveStatus) -> Leave:
        leave = self._get_leave(leave_id)
        leave.status = new_status
        self.db.commit()
        self.db.refresh(leave)
        return leave

    def delete_leave(self, leave_id: UUID) -> None:
        leave = self._get_leave(leave_id)
        self.repo.delete_leave(leave)
        self.db.commit()

    # ---------- Holidays ----------
    def list_holidays(self, year: int | None) -> list[Holiday]:
        if year is None:
            return self.repo.list_holidays()
        return self.repo.list_holidays(start=date(year, 1, 1), end=date(year, 12, 31))

    def create_holiday(self, data: HolidayCreateData) -> Holiday:
        holiday = Holiday(
            holiday_date=data.holiday_date,
            name=data.name.strip(),
            type=data.type,
            description=data.description,
        )
        try:
            self.repo.add_holiday(holiday)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A holiday already exists on this date.",
            ) from exc
        self.db.refresh(holiday)
        return holiday

    def delete_holiday(self, holiday_id: UUID) -> None:
        holiday = self.repo.get_holiday(holiday_id)
        if holiday is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Holiday not found")
        self.repo.delete_holiday(holiday)
        self.db.commit()
