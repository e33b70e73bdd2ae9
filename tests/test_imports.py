from __future__ import annotations

from collections.abc import Callable
from datetime import date
from decimal import Decimal, InvalidOperation

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from margindesk.models.entities import Client, Person, PersonSalary, Project, TimesheetEntry
from margindesk.services.import_service import parse_salary_amount, parse_work_date

TIMESHEET_HEADER = (
    "Date,Email Id,User Name,Project name,Task/General/subtask name,Task type,Hours,Hours(For Calculation),Notes\n"
)


def _upload(name: str, body: str) -> dict:
    return {"file": (name, body.encode("utf-8"), "text/csv")}


def test_parse_work_date_handles_two_and_four_digit_years() -> None:
    assert parse_work_date("05/03/26") == date(2026, 3, 5)
    assert parse_work_date("31/12/99") == date(1999, 12, 31)
    assert parse_work_date("01/02/2026") == date(2026, 2, 1)
    with pytest.raises(ValueError):
        parse_work_date("2026-03-05")


def test_parse_salary_amount_strips_currency_formatting() -> None:
    assert parse_salary_amount("₹1,00,000") == Decimal("100000")
    assert parse_salary_amount(" 85000.50 ") == Decimal("85000.50")
    assert parse_salary_amount("-") is None
    assert parse_salary_amount("") is None
    with pytest.raises(InvalidOperation):
        parse_salary_amount("n/a")


def test_timesheet_import_creates_missing_people_and_projects(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    seed.person("known@test.local", name="Known")
    body = TIMESHEET_HEADER + (
        "02/03/26,Known@Test.Local,Known,Platform Build,API work,Billable,8:00,8,\n"
        "03/03/26,contractor@test.local,Casey,Platform Build,Reviews,Non-Billable,4:00,4,pairing\n"
        "04/03/26,contractor@test.local,Casey,New Venture,Discovery,billable,6:30,6.5,\n"
        "bad-date,known@test.local,Known,Platform Build,API work,Billable,1:00,1,\n"
        ",known@test.local,Known,Platform Build,API work,Billable,1:00,1,\n"
        "05/03/26,,Known,Platform Build,API work,Billable,1:00,1,\n"
    )

    response = client.post("/api/v1/import/timesheet", headers=auth_headers(), files=_upload("march.csv", body))

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    stats = payload["stats"]
    assert stats["total_rows"] == 6
    assert stats["processed_rows"] == 3
    assert stats["skipped_rows"] == 3
    assert stats["new_contractors"] == 1
    assert stats["new_projects"] == 2
    assert stats["new_entries"] == 3
    assert stats["deleted_entries"] == 0
    assert any("Invalid date" in message for message in stats["errors"])
    assert "Row 7: Missing required fields (Date, Email Id, or Project name)" in stats["errors"]

    contractor = db_session.query(Person).filter(Person.email == "contractor@test.local").one()
    assert contractor.role == "Contractor"
    unknown = db_session.query(Client).filter(Client.name == "Unknown Client").one()
    assert {project.name for project in db_session.query(Project).filter(Project.client_id == unknown.id)} == {
        "Platform Build",
        "New Venture",
    }
    billable = {entry.task_name: entry.is_billable for entry in db_session.query(TimesheetEntry)}
    assert billable == {"API work": True, "Reviews": False, "Discovery": True}


def test_timesheet_reimport_replaces_entries_in_range(
    client: TestClient,
    db_session: Session,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    first = TIMESHEET_HEADER + (
        "02/03/26,dev@test.local,Dev,Platform Build,Build,Billable,8:00,8,\n"
        "03/03/26,dev@test.local,Dev,Platform Build,Build,Billable,8:00,8,\n"
        "04/03/26,dev@test.local,Dev,Platform Build,Build,Billable,8:00,8,\n"
    )
    second = TIMESHEET_HEADER + "03/03/26,dev@test.local,Dev,Platform Build,Build,Billable,5:00,5,\n"

    client.post("/api/v1/import/timesheet", headers=headers, files=_upload("w1.csv", first))
    response = client.post("/api/v1/import/timesheet", headers=headers, files=_upload("w1-fix.csv", second))

    assert response.json()["stats"]["deleted_entries"] == 1
    hours = {entry.work_date: entry.hours_logged for entry in db_session.query(TimesheetEntry)}
    assert hours == {
        date(2026, 3, 2): Decimal("8.00"),
        date(2026, 3, 3): Decimal("5.00"),
        date(2026, 3, 4): Decimal("8.00"),
    }

    batches = client.get("/api/v1/import/timesheet/batches", headers=headers).json()["items"]
    assert {batch["file_name"] for batch in batches} == {"w1.csv", "w1-fix.csv"}
    fix = next(batch for batch in batches if batch["file_name"] == "w1-fix.csv")
    detail = client.get(f"/api/v1/import/timesheet/batches/{fix['id']}", headers=headers).json()
    assert detail["entry_count"] == 1
    assert detail["period_start"] == "2026-03-03"


def test_timesheet_without_valid_rows_is_rejected(
    client: TestClient,
    db_session: Session,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    body = TIMESHEET_HEADER + "32/13/26,dev@test.local,Dev,Platform Build,Build,Billable,8:00,8,\n"

    response = client.post("/api/v1/import/timesheet", headers=auth_headers(), files=_upload("bad.csv", body))

    assert response.status_code == 400
    payload = response.json()
    assert payload["success"] is False
    assert payload["stats"]["skipped_rows"] == 1
    assert db_session.query(Project).count() == 0


def test_import_rejects_non_csv_upload(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    response = client.post(
        "/api/v1/import/timesheet",
        headers=auth_headers(),
        files={"file": ("march.xlsx", b"not a csv", "application/octet-stream")},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Only CSV files are supported"


def test_salary_import_upserts_by_employee_code(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    existing = seed.person("eng@test.local", name="Engineer", employee_code="E001")
    seed.salary(existing, date(2026, 3, 1), Decimal("90000.00"))
    body = (
        "Emp Code,Name,Net Salary\n"
        'E001,Engineer,"₹1,20,000"\n'
        'E002,New Hire,"75,000"\n'
        "E003,Blank Pay,\n"
        ",Nameless,5000\n"
    )

    response = client.post(
        "/api/v1/import/salary",
        headers=headers,
        data={"month": "2026-03"},
        files=_upload("salaries.csv", body),
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["month"] == "2026-03"
    assert payload["stats"]["updated_records"] == 1
    assert payload["stats"]["new_records"] == 1
    assert payload["stats"]["new_employees"] == 1
    assert payload["stats"]["skipped_rows"] == 2

    updated = db_session.query(PersonSalary).filter(PersonSalary.person_id == existing.id).one()
    assert updated.total == Decimal("120000.00")
    hire = db_session.query(Person).filter(Person.employee_code == "E002").one()
    assert hire.email == "e002@temp.local"


def test_salary_import_requires_valid_month(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    response = client.post(
        "/api/v1/import/salary",
        headers=auth_headers(),
        data={"month": "03-2026"},
        files=_upload("salaries.csv", "Emp Code,Name,Salary\nE1,A,100\n"),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid month format. Use YYYY-MM"


def test_salary_import_skips_conflicting_employee_and_keeps_other_rows(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    seed.person("e1@temp.local", name="Existing", employee_code="E1")
    body = "Emp Code,Name,Net Salary\nE9,Good,1000\ne1,Clash,2000\n"

    response = client.post(
        "/api/v1/import/salary",
        headers=auth_headers(),
        data={"month": "2026-03"},
        files=_upload("salaries.csv", body),
    )

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["processed_rows"] == 1
    assert stats["skipped_rows"] == 1
    assert stats["new_employees"] == 1
    assert stats["errors"][0].startswith("Row 3: Could not save employee e1")
    good = db_session.query(Person).filter(Person.employee_code == "E9").one()
    salary = db_session.query(PersonSalary).filter(PersonSalary.person_id == good.id).one()
    assert salary.total == Decimal("1000.00")
    assert db_session.query(Person).filter(Person.email == "e1@temp.local").count() == 1
