from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from margindesk.models.entities import Allocation, Holiday, HolidayType, Leave, LeaveStatus, MonthlyUtilization
from margindesk.repositories.time_repository import TimeRepository
from margindesk.services.utilization_service import UtilizationService


def _allocation(db: Session, person_id, project_id, month: date, billable: str, nonbillable: str) -> None:
    now = datetime.utcnow()
    db.add(
        Allocation(
            person_id=person_id,
            project_id=project_id,
            period_month=month,
            hours_billable=Decimal(billable),
            hours_nonbillable=Decimal(nonbillable),
            created_at=now,
            updated_at=now,
        )
    )
    db.commit()


def _leave(db: Session, person_id, start: date, end: date, days: str, status: LeaveStatus) -> None:
    db.add(
        Leave(
            person_id=person_id,
            leave_type="Casual",
            start_date=start,
            end_date=end,
            days=Decimal(days),
            status=status,
            created_at=datetime.utcnow(),
        )
    )
    db.commit()


def test_calculate_subtracts_holidays_and_approved_leave(db_session: Session, seed) -> None:
    person = seed.person()
    project = seed.project()
    march = date(2026, 3, 1)
    _allocation(db_session, person.id, project.id, march, "100", "20")
    db_session.add(Holiday(holiday_date=date(2026, 3, 4), name="Holi", type=HolidayType.PUBLIC))
    db_session.add(Holiday(holiday_date=date(2026, 3, 20), name="Optional", type=HolidayType.OPTIONAL))
    db_session.commit()
    _leave(db_session, person.id, date(2026, 3, 9), date(2026, 3, 10), "2", LeaveStatus.APPROVED)
    _leave(db_session, person.id, date(2026, 3, 16), date(2026, 3, 16), "1", LeaveStatus.PENDING)

    result = UtilizationService(db_session).calculate(person.id, date(2026, 3, 17))

    assert result.month == march
    assert result.holiday_days == 1
    assert result.leave_days == Decimal("2.00")
    assert result.working_hours == Decimal("136.00")
    assert result.worked_hours == Decimal("120.00")
    assert result.billable_hours == Decimal("100.00")
    assert result.utilization_pct == Decimal("88.24")
    assert result.billable_utilization == Decimal("73.53")


def test_leave_spanning_month_boundary_counts_only_overlap(db_session: Session, seed) -> None:
    person = seed.person()
    _leave(db_session, person.id, date(2026, 2, 26), date(2026, 3, 3), "6", LeaveStatus.APPROVED)

    result = UtilizationService(db_session).calculate(person.id, date(2026, 3, 1))

    assert result.leave_days == Decimal("3.00")
    assert result.working_hours == Decimal("136.00")


def test_zero_working_hours_yields_zero_percentages(db_session: Session, seed) -> None:
    person = seed.person()
    project = seed.project()
    _allocation(db_session, person.id, project.id, date(2026, 4, 1), "10", "0")
    _leave(db_session, person.id, date(2026, 4, 1), date(2026, 4, 30), "25", LeaveStatus.APPROVED)

    result = UtilizationService(db_session).calculate(person.id, date(2026, 4, 1))

    assert result.working_hours == Decimal("0.00")
    assert result.utilization_pct == Decimal("0.00")
    assert result.billable_utilization == Decimal("0.00")


def test_calculate_and_store_is_idempotent(db_session: Session, seed) -> None:
    person = seed.person()
    project = seed.project()
    _allocation(db_session, person.id, project.id, date(2026, 3, 1), "80", "0")
    service = UtilizationService(db_session)

    first = service.calculate_and_store(person.id, date(2026, 3, 1))
    second = service.calculate_and_store(person.id, date(2026, 3, 1))

    assert first.id == second.id
    assert db_session.query(MonthlyUtilization).count() == 1
    assert second.utilization_pct == Decimal("50.00")


def test_batch_skips_people_who_left_before_month(db_session: Session, seed) -> None:
    seed.person("stays@test.local", name="Stays")
    seed.person("left@test.local", name="Left", end_date=date(2026, 1, 31))

    batch = UtilizationService(db_session).calculate_for_all(date(2026, 3, 1))

    assert batch.success == 1
    assert batch.errors == 0


def test_batch_records_failed_person_and_continues(
    db_session: Session,
    seed,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    healthy = seed.person("healthy@test.local", name="Healthy")
    broken = seed.person("broken@test.local", name="Broken")
    original = TimeRepository.list_approved_leaves_overlapping

    def failing_for_broken(self, person_id, first_day, last_day):
        if person_id == broken.id:
            raise SQLAlchemyError("leave lookup failed")
        return original(self, person_id, first_day, last_day)

    monkeypatch.setattr(TimeRepository, "list_approved_leaves_overlapping", failing_for_broken)

    batch = UtilizationService(db_session).calculate_for_all(date(2026, 3, 1))

    assert batch.success == 1
    assert batch.errors == 1
    assert batch.failed_person_ids == [broken.id]
    stored = db_session.query(MonthlyUtilization).all()
    assert [row.person_id for row in stored] == [healthy.id]


def test_calculate_endpoint_and_summary(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    busy = seed.person("busy@test.local", name="Busy")
    idle = seed.person("idle@test.local", name="Idle")
    project = seed.project()
    current = date.today().replace(day=1)
    _allocation(db_session, busy.id, project.id, current, "160", "8")
    _allocation(db_session, idle.id, project.id, current, "40", "0")

    calculated = client.post("/api/v1/utilization/calculate", headers=headers, json={"mode": "current"})
    assert calculated.status_code == 200
    body = calculated.json()
    assert body["success"] is True

    summary = client.get(
        "/api/v1/utilization/summary",
        headers=headers,
        params={"month": current.strftime("%Y-%m")},
    ).json()
    assert summary["total_employees"] == 2
    assert summary["overutilized"] == 1
    assert summary["underutilized"] == 1
    assert {row["name"] for row in summary["employees"]} == {"Busy", "Idle"}


def test_calculate_endpoint_rejects_unknown_mode(
    client: TestClient,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    response = client.post("/api/v1/utilization/calculate", headers=auth_headers(), json={"mode": "everything"})

    assert response.status_code == 400


def test_person_history_is_oldest_first(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    person = seed.person()

    response = client.get(f"/api/v1/utilization/{person.id}", headers=auth_headers(), params={"months": 3})

    assert response.status_code == 200
    months = [row["month"] for row in response.json()["history"]]
    assert months == sorted(months)
    assert len(months) == 3
    assert response.json()["averages"]["months"] == 3
