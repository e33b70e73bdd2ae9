"""Monthly utilization engine.

Utilization rows are a derived cache keyed by (person, month). They are
recomputed from allocations, public holidays and approved leave and may be
deleted and regenerated at any time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from margindesk.core.config import get_settings
from margindesk.core.periods import add_months, format_month, month_bounds, month_start
from margindesk.models.entities import MonthlyUtilization, Person
from margindesk.repositories.directory_repository import DirectoryRepository
from margindesk.repositories.time_repository import TimeRepository
from margindesk.services.money import ZERO, percent_of, q2

logger = logging.getLogger(__name__)

UNDERUTILIZED_BELOW = Decimal("70")
OVERUTILIZED_ABOVE = Decimal("100")


@dataclass(slots=True)
class UtilizationResult:
    person_id: UUID
    month: date
    working_hours: Decimal
    worked_hours: Decimal
    billable_hours: Decimal
    utilization_pct: Decimal
    billable_utilization: Decimal
    leave_days: Decimal
    holiday_days: int


@dataclass(slots=True)
class BatchResult:
    month: date
    success: int = 0
    errors: int = 0
    failed_person_ids: list[UUID] = field(default_factory=list)


class UtilizationService:
    """Compute, persist and summarize monthly utilization."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TimeRepository(db)
        self.directory = DirectoryRepository(db)
        self.settings = get_settings()

    @staticmethod
    def serialize_result(result: UtilizationResult) -> dict[str, object]:
        return {
            "person_id": str(result.person_id),
            "month": format_month(result.month),
            "working_hours": str(q2(result.working_hours)),
            "worked_hours": str(q2(result.worked_hours)),
            "billable_hours": str(q2(result.billable_hours)),
            "utilization_pct": str(q2(result.utilization_pct)),
            "billable_utilization": str(q2(result.billable_utilization)),
            "leave_days": str(q2(result.leave_days)),
            "holiday_days": result.holiday_days,
        }

    @staticmethod
    def _row_to_result(row: MonthlyUtilization) -> UtilizationResult:
        return UtilizationResult(
            person_id=row.person_id,
            month=row.month,
            working_hours=row.working_hours,
            worked_hours=row.worked_hours,
            billable_hours=row.billable_hours,
            utilization_pct=row.utilization_pct,
            billable_utilization=row.billable_utilization,
            leave_days=row.leave_days,
            holiday_days=row.holiday_days,
        )

    def _leave_days(self, person_id: UUID, first_day: date, last_day: date) -> Decimal:
        total = ZERO
        for leave in self.repo.list_approved_leaves_overlapping(person_id, first_day, last_day):
            overlap_start = max(leave.start_date, first_day)
            overlap_end = min(leave.end_date, last_day)
            overlap = Decimal((overlap_end - overlap_start).days + 1)
            # Half-day and partial records carry fewer days than the calendar span.
            total += min(overlap, Decimal(leave.days))
        return total

    def calculate(self, person_id: UUID, month: date) -> UtilizationResult:
        person = self.directory.get_person(person_id)
        if person is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Person {person_id} not found")

        first_day, last_day = month_bounds(month)
        holiday_days = self.repo.count_public_holidays(first_day, last_day)
        leave_days = self._leave_days(person.id, first_day, last_day)

        day_hours = Decimal(self.settings.standard_day_hours)
        working_hours = Decimal(self.settings.standard_month_hours) - Decimal(holiday_days) * day_hours
        working_hours -= leave_days * day_hours
        working_hours = max(ZERO, working_hours)

        billable = ZERO
        nonbillable = ZERO
        for allocation in self.repo.list_allocations(person_id=person.id, period_month=first_day):
            billable += allocation.hours_billable or ZERO
            nonbillable += allocation.hours_nonbillable or ZERO
        worked = billable + nonbillable

        return UtilizationResult(
            person_id=person.id,
            month=first_day,
            working_hours=q2(working_hours),
            worked_hours=q2(worked),
            billable_hours=q2(billable),
            utilization_pct=percent_of(worked, working_hours),
            billable_utilization=percent_of(billable, working_hours),
            leave_days=q2(leave_days),
            holiday_days=holiday_days,
        )

    def calculate_and_store(self, person_id: UUID, month: date) -> MonthlyUtilization:
        result = self.calculate(person_id, month)
        row = self.repo.get_utilization(result.person_id, result.month)
        if row is None:
            row = MonthlyUtilization(person_id=result.person_id, month=result.month)
            self.db.add(row)

        row.working_hours = result.working_hours
        row.worked_hours = result.worked_hours
        row.billable_hours = result.billable_hours
        row.utilization_pct = result.utilization_pct
        row.billable_utilization = result.billable_utilization
        row.leave_days = result.leave_days
        row.holiday_days = result.holiday_days
        row.calculated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(row)
        return row

    def calculate_for_all(self, month: date) -> BatchResult:
        first_day = month_start(month)
        batch = BatchResult(month=first_day)
        for person in self.directory.list_people_employed_in(first_day):
            person_id = person.id
            try:
                self.calculate_and_store(person_id, first_day)
                batch.success += 1
            except (HTTPException, SQLAlchemyError, ArithmeticError, ValueError, TypeError) as exc:
                self.db.rollback()
                batch.errors += 1
                batch.failed_person_ids.append(person_id)
                logger.warning(
                    "Utilization calculation failed for person %s in %s: %s",
                    person_id,
                    format_month(first_day),
                    exc,
                )

        logger.info(
            "Utilization for %s: %s succeeded, %s failed",
            format_month(first_day),
            batch.success,
            batch.errors,
        )
        return batch

    def calculate_last_n_months(self, months_count: int = 6, *, reference_date: date | None = None) -> list[BatchResult]:
        current = month_start(reference_date or date.today())
        return [self.calculate_for_all(add_months(current, -offset)) for offset in range(months_count)]

    def history(
        self,
        person_id: UUID,
        months_count: int = 6,
        *,
        reference_date: date | None = None,
    ) -> list[UtilizationResult]:
        """Oldest-first history; months without a stored row are computed, not stored."""

        current = month_start(reference_date or date.today())
        results: list[UtilizationResult] = []
        for offset in range(months_count - 1, -1, -1):
            month = add_months(current, -offset)
            stored = self.repo.get_utilization(person_id, month)
            results.append(self._row_to_result(stored) if stored is not None else self.calculate(person_id, month))
        return results

    @staticmethod
    def averages(history: list[UtilizationResult]) -> dict[str, object]:
        if not history:
            return {"utilization_pct": str(ZERO), "billable_utilization": str(ZERO), "months": 0}
        count = Decimal(len(history))
        return {
            "utilization_pct": str(q2(sum((row.utilization_pct for row in history), ZERO) / count)),
            "billable_utilization": str(q2(sum((row.billable_utilization for row in history), ZERO) / count)),
            "months": len(history),
        }

    def person_history(self, person_id: UUID, months_count: int) -> dict[str, object]:
        person = self.directory.get_person(person_id)
        if person is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Person {person_id} not found")
        history = self.history(person.id, months_count)
        return {
            "person": {
                "id": str(person.id),
                "name": person.name,
                "email": person.email,
                "utilization_target": str(person.utilization_target),
            },
            "history": [self.serialize_result(row) for row in history],
            "averages": self.averages(history),
        }

    def summary(self, month: date) -> dict[str, object]:
        first_day = month_start(month)
        rows = self.repo.list_utilization_for_month(first_day)
        people: dict[UUID, Person] = {
            person.id: person for person in self.directory.list_people_by_ids({row.person_id for row in rows})
        }

        count = len(rows)
        avg_utilization = ZERO
        avg_billable = ZERO
        if count:
            avg_utilization = q2(sum((row.utilization_pct for row in rows), ZERO) / Decimal(count))
            avg_billable = q2(sum((row.billable_utilization for row in rows), ZERO) / Decimal(count))

        employees: list[dict[str, object]] = []
        for row in rows:
            person = people.get(row.person_id)
            item = self.serialize_result(self._row_to_result(row))
            item["name"] = person.name if person else None
            item["department"] = person.department if person else None
            employees.append(item)

        return {
            "month": format_month(first_day),
            "total_employees": count,
            "avg_utilization": str(avg_utilization),
            "avg_billable_utilization": str(avg_billable),
            "underutilized": sum(1 for row in rows if row.utilization_pct < UNDERUTILIZED_BELOW),
            "optimal": sum(
                1 for row in rows if UNDERUTILIZED_BELOW <= row.utilization_pct <= OVERUTILIZED_ABOVE
            ),
            "overutilized": sum(1 for row in rows if row.utilization_pct > OVERUTILIZED_ABOVE),
            "employees": employees,
        }
