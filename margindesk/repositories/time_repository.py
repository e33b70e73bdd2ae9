"""Repository helpers for allocations, timesheets, leave and utilization."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.orm import Session

from margindesk.models.entities import (
    Allocation,
    Holiday,
    HolidayType,
    Leave,
    LeaveStatus,
    MonthlyUtilization,
    TimesheetEntry,
    TimesheetImportBatch,
)


class TimeRepository:
    """Persistence operations for time-based records."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Allocations ----------
    def list_allocations(
        self,
        *,
        person_id: UUID | None = None,
        project_id: UUID | None = None,
        period_month: date | None = None,
    ) -> list[Allocation]:
        query = select(Allocation)
        if person_id is not None:
            query = query.where(Allocation.person_id == person_id)
        if project_id is not None:
            query = query.where(Allocation.project_id == project_id)
        if period_month is not None:
            query = query.where(Allocation.period_month == period_month)
        return self.db.scalars(query.order_by(Allocation.period_month.desc(), Allocation.created_at.asc())).all()

    def list_allocations_in_range(self, person_ids: set[UUID], start: date, end: date) -> list[Allocation]:
        if not person_ids:
            return []
        return self.db.scalars(
            select(Allocation).where(
                and_(
                    Allocation.person_id.in_(person_ids),
                    Allocation.period_month >= start,
                    Allocation.period_month <= end,
                )
            )
        ).all()

    def get_allocation(self, allocation_id: UUID) -> Allocation | None:
        return self.db.scalar(select(Allocation).where(Allocation.id == allocation_id))

    def add_allocation(self, allocation: Allocation) -> Allocation:
        self.db.add(allocation)
        self.db.flush()
        return allocation

    def delete_allocation(self, allocation: Allocation) -> None:
        self.db.delete(allocation)
        self.db.flush()

    # ---------- Timesheets ----------
    def list_timesheet_entries(
        self,
        *,
        person_ids: set[UUID] | None = None,
        project_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
        limit: int | None = None,
    ) -> list[TimesheetEntry]:
        query = select(TimesheetEntry)
        if person_ids is not None:
            if not person_ids:
                return []
            query = query.where(TimesheetEntry.person_id.in_(person_ids))
        if project_id is not None:
            query = query.where(TimesheetEntry.project_id == project_id)
        if start is not None:
            query = query.where(TimesheetEntry.work_date >= start)
        if end is not None:
            query = query.where(TimesheetEntry.work_date <= end)
        query = query.order_by(TimesheetEntry.work_date.desc(), TimesheetEntry.created_at.asc())
        if limit is not None:
            query = query.limit(limit)
        return self.db.scalars(query).all()

    def delete_timesheet_entries_between(self, start: date, end: date) -> int:
        result = self.db.execute(
            delete(TimesheetEntry).where(and_(TimesheetEntry.work_date >= start, TimesheetEntry.work_date <= end))
        )
        self.db.flush()
        return result.rowcount or 0

    def add_timesheet_entries(self, entries: list[TimesheetEntry]) -> None:
        self.db.add_all(entries)
        self.db.flush()

    def list_import_batches(self, limit: int) -> list[TimesheetImportBatch]:
        return self.db.scalars(
            select(TimesheetImportBatch).order_by(TimesheetImportBatch.created_at.desc()).limit(limit)
        ).all()

    def get_import_batch(self, batch_id: UUID) -> TimesheetImportBatch | None:
        return self.db.scalar(select(TimesheetImportBatch).where(TimesheetImportBatch.id == batch_id))

    def count_batch_entries(self, batch_id: UUID) -> int:
        return len(self.db.scalars(select(TimesheetEntry.id).where(TimesheetEntry.batch_id == batch_id)).all())

    def add_import_batch(self, batch: TimesheetImportBatch) -> TimesheetImportBatch:
        self.db.add(batch)
        self.db.flush()
        return batch

    # ---------- Leaves and holidays ----------
    def list_leaves(
        self,
        *,
        person_id: UUID | None = None,
        status: LeaveStatus | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Leave]:
        query = select(Leave)
        if person_id is not None:
            query = query.where(Leave.person_id == person_id)
        if status is not None:
            query = query.where(Leave.status == status)
        if start is not None:
            query = query.where(Leave.end_date >= start)
        if end is not None:
            query = query.where(Leave.start_date <= end)
        return self.db.scalars(query.order_by(Leave.start_date.desc())).all()

    def list_approved_leaves_overlapping(self, person_id: UUID, first_day: date, last_day: date) -> list[Leave]:
        """Approved leaves starting in, ending in, or spanning the range."""

        return self.db.scalars(
            select(Leave).where(
                and_(
                    Leave.person_id == person_id,
                    Leave.status == LeaveStatus.APPROVED,
                    or_(
                        and_(Leave.start_date >= first_day, Leave.start_date <= last_day),
                        and_(Leave.end_date >= first_day, Leave.end_date <= last_day),
                        and_(Leave.start_date <= first_day, Leave.end_date >= last_day),
                    ),
                )
            )
        ).all()

    def get_leave(self, leave_id: UUID) -> Leave | None:
        return self.db.scalar(select(Leave).where(Leave.id == leave_id))

    def get_leave_by_zoho_id(self, zoho_leave_id: str) -> Leave | None:
        return self.db.scalar(select(Leave).where(Leave.zoho_leave_id == zoho_leave_id))

    def add_leave(self, leave: Leave) -> Leave:
        self.db.add(leave)
        self.db.flush()
        return leave

    def delete_leave(self, leave: Leave) -> None:
        self.db.delete(leave)
        self.db.flush()

    def list_holidays(self, *, start: date | None = None, end: date | None = None) -> list[Holiday]:
        query = select(Holiday)
        if start is not None:
            query = query.where(Holiday.holiday_date >= start)
        if end is not None:
            query = query.where(Holiday.holiday_date <= end)
        return self.db.scalars(query.order_by(Holiday.holiday_date.asc())).all()

    def count_public_holidays(self, first_day: date, last_day: date) -> int:
        return len(
            self.db.scalars(
                select(Holiday.id).where(
                    and_(
                        Holiday.type == HolidayType.PUBLIC,
                        Holiday.holiday_date >= first_day,
                        Holiday.holiday_date <= last_day,
                    )
                )
            ).all()
        )

    def get_holiday(self, holiday_id: UUID) -> Holiday | None:
        return self.db.scalar(select(Holiday).where(Holiday.id == holiday_id))

    def get_holiday_by_date(self, holiday_date: date) -> Holiday | None:
        return self.db.scalar(select(Holiday).where(Holiday.holiday_date == holiday_date))

    def add_holiday(self, holiday: Holiday) -> Holiday:
        self.db.add(holiday)
        self.db.flush()
        return holiday

    def delete_holiday(self, holiday: Holiday) -> None:
        self.db.delete(holiday)
        self.db.flush()

    # ---------- Utilization ----------
    def get_utilization(self, person_id: UUID, month: date) -> MonthlyUtilization | None:
        return self.db.scalar(
            select(MonthlyUtilization).where(
                and_(MonthlyUtilization.person_id == person_id, MonthlyUtilization.month == month)
            )
        )

    def list_utilization_for_month(self, month: date) -> list[MonthlyUtilization]:
        return self.db.scalars(
            select(MonthlyUtilization)
            .where(MonthlyUtilization.month == month)
            .order_by(MonthlyUtilization.utilization_pct.desc())
        ).all()

    def add_utilization(self, row: MonthlyUtilization) -> MonthlyUtilization:
        self.db.add(row)
        self.db.flush()
        return row
