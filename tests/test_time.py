from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

from fastapi.testclient import TestClient

from margindesk.core.auth import AppRole


def test_allocation_lifecycle(client: TestClient, seed, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers(AppRole.PM)
    person = seed.person()
    project = seed.project()

    created = client.post(
        "/api/v1/allocations",
        headers=headers,
        json={
            "person_id": str(person.id),
            "project_id": str(project.id),
            "period_month": "2026-03",
            "hours_billable": "120",
            "hours_nonbillable": "16",
            "pct_effort": "75",
        },
    )
    assert created.status_code == 201
    allocation = created.json()
    assert allocation["period_month"] == "2026-03"
    assert allocation["pct_effort"] == "75.00"

    updated = client.put(
        f"/api/v1/allocations/{allocation['id']}",
        headers=headers,
        json={"hours_billable": "100"},
    )
    assert updated.json()["hours_billable"] == "100.00"
    assert updated.json()["hours_nonbillable"] == "16.00"

    listed = client.get("/api/v1/allocations", headers=headers, params={"month": "2026-03"}).json()["items"]
    assert [row["id"] for row in listed] == [allocation["id"]]

    deleted = client.delete(f"/api/v1/allocations/{allocation['id']}", headers=headers)
    assert deleted.status_code == 204
    assert client.get("/api/v1/allocations", headers=headers).json()["items"] == []


def test_allocation_validation(client: TestClient, seed, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()
    person = seed.person()
    project = seed.project()
    base = {"person_id": str(person.id), "project_id": str(project.id)}

    bad_month = client.post("/api/v1/allocations", headers=headers, json={**base, "period_month": "2026-3"})
    bad_effort = client.post(
        "/api/v1/allocations",
        headers=headers,
        json={**base, "period_month": "2026-03", "pct_effort": "150"},
    )
    readonly = client.post(
        "/api/v1/allocations",
        headers=auth_headers(AppRole.READONLY),
        json={**base, "period_month": "2026-03"},
    )

    assert bad_month.status_code == 400
    assert bad_month.json()["error"] == "Invalid month format. Use YYYY-MM"
    assert bad_effort.status_code == 400
    assert readonly.status_code == 403


def test_leave_create_and_approve(client: TestClient, seed, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()
    person = seed.person()

    created = client.post(
        "/api/v1/leaves",
        headers=headers,
        json={
            "person_id": str(person.id),
            "leave_type": "Casual Leave",
            "start_date": "2026-03-09",
            "end_date": "2026-03-10",
            "days": "1.5",
        },
    )
    assert created.status_code == 201
    leave = created.json()
    assert leave["status"] == "pending"
    assert Decimal(leave["days"]) == Decimal("1.5")

    approved = client.patch(f"/api/v1/leaves/{leave['id']}", headers=headers, json={"status": "approved"})
    assert approved.json()["status"] == "approved"

    pending = client.get("/api/v1/leaves", headers=headers, params={"status": "pending"}).json()["items"]
    in_march = client.get(
        "/api/v1/leaves",
        headers=headers,
        params={"start_date": "2026-03-10", "end_date": "2026-03-31"},
    ).json()["items"]
    assert pending == []
    assert [row["id"] for row in in_march] == [leave["id"]]


def test_leave_requires_positive_days_and_ordered_dates(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    base = {"person_id": str(seed.person().id), "leave_type": "Sick Leave"}

    zero_days = client.post(
        "/api/v1/leaves",
        headers=headers,
        json={**base, "start_date": "2026-03-09", "end_date": "2026-03-09", "days": "0"},
    )
    inverted = client.post(
        "/api/v1/leaves",
        headers=headers,
        json={**base, "start_date": "2026-03-10", "end_date": "2026-03-09", "days": "1"},
    )

    assert zero_days.status_code == 400
    assert zero_days.json()["error"] == "Validation failed"
    assert inverted.status_code == 400
    assert inverted.json()["error"] == "end_date must be greater than or equal to start_date."


def test_holiday_dates_are_unique(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()

    created = client.post(
        "/api/v1/holidays",
        headers=headers,
        json={"date": "2026-01-26", "name": "Republic Day"},
    )
    duplicate = client.post(
        "/api/v1/holidays",
        headers=headers,
        json={"date": "2026-01-26", "name": "Another", "type": "optional"},
    )
    client.post("/api/v1/holidays", headers=headers, json={"date": "2025-12-25", "name": "Christmas"})

    assert created.status_code == 201
    assert created.json()["type"] == "public"
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "A holiday already exists on this date."
    holidays = client.get("/api/v1/holidays", headers=headers, params={"year": 2026}).json()["items"]
    assert [row["name"] for row in holidays] == ["Republic Day"]

    removed = client.delete(f"/api/v1/holidays/{created.json()['id']}", headers=headers)
    assert removed.status_code == 204
