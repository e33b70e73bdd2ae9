from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from margindesk.core.auth import AppRole
from margindesk.models.entities import AuditLog, ProjectCost, StaffCategory
from margindesk.services.finance_service import rule_matches, should_exclude_bill


def test_salary_upsert_creates_then_updates(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    person = seed.person("hr@test.local", name="HR Lead", department="HR", staff_category=StaffCategory.SUPPORT)
    payload = {
        "person_id": str(person.id),
        "month": "2026-03",
        "base_salary": "80000",
        "bonus": "5000",
        "deductions": "2000",
        "overtime": "1000",
    }

    created = client.put("/api/v1/salaries", headers=headers, json=payload)
    updated = client.put("/api/v1/salaries", headers=headers, json={**payload, "bonus": "0"})

    assert created.status_code == 201
    assert created.json()["total"] == "84000.00"
    assert created.json()["is_support_staff"] is True
    assert updated.status_code == 200
    assert updated.json()["id"] == created.json()["id"]
    assert updated.json()["total"] == "79000.00"

    listed = client.get("/api/v1/salaries", headers=headers, params={"month": "2026-03"}).json()["items"]
    assert [row["month"] for row in listed] == ["2026-03"]


def test_salary_upsert_rejects_negative_amounts_and_pm(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    person = seed.person()
    payload = {"person_id": str(person.id), "month": "2026-03", "base_salary": "-1"}

    negative = client.put("/api/v1/salaries", headers=auth_headers(), json=payload)
    forbidden = client.put(
        "/api/v1/salaries",
        headers=auth_headers(AppRole.PM),
        json={**payload, "base_salary": "100"},
    )

    assert negative.status_code == 400
    assert forbidden.status_code == 403


def test_rule_operators(seed) -> None:
    bill = seed.bill(vendor_name="AWS India Pvt Ltd", total=Decimal("59000.00"))

    assert rule_matches({"field": "vendor_name", "operator": "starts_with", "value": "aws"}, bill)
    assert rule_matches({"field": "vendor_name", "operator": "contains_any_of", "value": "gcp, india"}, bill)
    assert rule_matches({"field": "vendor_name", "operator": "contains_any_of", "value": ["azure", "ltd"]}, bill)
    assert rule_matches({"field": "total", "operator": "greater_than", "value": "50000"}, bill)
    assert not rule_matches({"field": "total", "operator": "less_than", "value": "50000"}, bill)
    assert not rule_matches({"field": "bill_number", "operator": "equals", "value": "X"}, bill)

    rules = [
        {"name": "Disabled", "enabled": False, "field": "vendor_name", "operator": "contains", "value": "aws"},
        {"name": "Cloud", "field": "vendor_name", "operator": "ends_with", "value": "ltd"},
    ]
    assert should_exclude_bill(rules, bill) == "Auto-excluded: Cloud"


def test_exclusion_rules_are_validated_and_persisted(
    client: TestClient,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()

    saved = client.put(
        "/api/v1/bill-exclusion-rules",
        headers=headers,
        json={"rules": [{"name": "Rent", "field": "account_name", "operator": "equals", "value": "Rent"}]},
    )
    bad_field = client.put(
        "/api/v1/bill-exclusion-rules",
        headers=headers,
        json={"rules": [{"name": "Bad", "field": "vendor_id", "operator": "equals", "value": "x"}]},
    )
    bad_operator = client.put(
        "/api/v1/bill-exclusion-rules",
        headers=headers,
        json={"rules": [{"name": "Bad", "field": "vendor_name", "operator": "matches", "value": "x"}]},
    )

    assert saved.status_code == 200
    assert saved.json()["rules"][0]["id"]
    assert bad_field.status_code == 400
    assert bad_field.json()["error"].startswith("Invalid rule field 'vendor_id'")
    assert bad_operator.status_code == 400
    rules = client.get("/api/v1/bill-exclusion-rules", headers=headers).json()["rules"]
    assert [rule["name"] for rule in rules] == ["Rent"]


def test_bill_inclusion_and_billed_month_overrides(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    bill = seed.bill()

    excluded = client.patch(f"/api/v1/bills/{bill.id}", headers=headers, json={"include_in_calculation": False})
    assert excluded.json()["include_in_calculation"] is False
    assert excluded.json()["exclusion_reason"] == "Manually excluded"

    included = client.patch(f"/api/v1/bills/{bill.id}", headers=headers, json={"include_in_calculation": True})
    assert included.json()["exclusion_reason"] is None

    moved = client.patch(
        f"/api/v1/bills/{bill.id}/billed-month",
        headers=headers,
        json={"billed_for_month": "2026-05"},
    )
    assert moved.json()["billed_for_month"] == "2026-05"
    may = client.get("/api/v1/bills", headers=headers, params={"month": "2026-05"}).json()
    assert may["count"] == 1

    invalid = client.patch(
        f"/api/v1/bills/{bill.id}/billed-month",
        headers=headers,
        json={"billed_for_month": "May 2026"},
    )
    assert invalid.status_code == 400


def test_bulk_project_costs_upsert_and_audit(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    project = seed.project()
    march = {"project_id": str(project.id), "period_month": "2026-03", "amount": "120000"}
    april = {"project_id": str(project.id), "period_month": "2026-04", "amount": "80000"}

    first = client.post("/api/v1/project-costs/bulk", headers=headers, json={"updates": [march, april]})
    second = client.post(
        "/api/v1/project-costs/bulk",
        headers=headers,
        json={"updates": [{**march, "amount": "125000", "notes": "revised"}]},
    )

    assert first.json() == {"success": True, "created": 2, "updated": 0}
    assert second.json() == {"success": True, "created": 0, "updated": 1}
    rows = client.get(
        "/api/v1/project-costs",
        headers=headers,
        params={"start_month": "2026-03", "end_month": "2026-04"},
    ).json()["items"]
    assert [(row["period_month"], row["amount"]) for row in rows] == [("2026-03", "125000.00"), ("2026-04", "80000.00")]
    assert db_session.query(AuditLog).filter(AuditLog.action == "bulk_upsert").count() == 2


def test_bulk_project_costs_are_atomic(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    project = seed.project()

    response = client.post(
        "/api/v1/project-costs/bulk",
        headers=auth_headers(),
        json={
            "updates": [
                {"project_id": str(project.id), "period_month": "2026-03", "amount": "1000"},
                {"project_id": str(project.id), "period_month": "2026-13", "amount": "1000"},
            ]
        },
    )

    assert response.status_code == 400
    assert db_session.query(ProjectCost).count() == 0


def test_bulk_project_costs_require_rows(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    response = client.post("/api/v1/project-costs/bulk", headers=auth_headers(), json={"updates": []})

    assert response.status_code == 400
    assert response.json()["error"] == "updates must not be empty"


def test_project_cost_range_must_be_ordered(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    response = client.get(
        "/api/v1/project-costs",
        headers=auth_headers(),
        params={"start_month": "2026-04", "end_month": "2026-03"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "end_month must be greater than or equal to start_month."
