from __future__ import annotations

from collections.abc import Callable

from fastapi.testclient import TestClient

from margindesk.models.entities import StaffCategory
from margindesk.services.directory_service import classify_department


def test_classify_department_defaults() -> None:
    support = ["IT", "HR", "Accounts"]

    assert classify_department(None, support) == StaffCategory.SUPPORT
    assert classify_department("  ", support) == StaffCategory.SUPPORT
    assert classify_department("hr", support) == StaffCategory.SUPPORT
    assert classify_department("Engineering", support) == StaffCategory.OPERATIONAL


def test_client_and_project_lifecycle(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()

    created = client.post(
        "/api/v1/clients",
        headers=headers,
        json={"name": " Globex ", "billing_currency": "usd", "tags": ["enterprise", " "]},
    )
    assert created.status_code == 201
    client_body = created.json()
    assert client_body["name"] == "Globex"
    assert client_body["billing_currency"] == "USD"
    assert client_body["tags"] == ["enterprise"]

    project = client.post(
        "/api/v1/projects",
        headers=headers,
        json={
            "client_id": client_body["id"],
            "name": "Migration",
            "pricing_model": "Retainer",
            "status": "active",
            "start_date": "2026-01-01",
            "end_date": "2026-06-30",
            "budget": "250000",
        },
    )
    assert project.status_code == 201
    assert project.json()["pricing_model"] == "Retainer"
    assert project.json()["budget"] == "250000.00"

    listed = client.get("/api/v1/projects", headers=headers, params={"status": "active"})
    assert [row["name"] for row in listed.json()["items"]] == ["Migration"]

    clients = client.get("/api/v1/clients", headers=headers).json()["items"]
    assert clients[0]["project_count"] == 1

    blocked = client.delete(f"/api/v1/clients/{client_body['id']}", headers=headers)
    assert blocked.status_code == 409


def test_project_rejects_inverted_dates(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()
    client_id = client.post("/api/v1/clients", headers=headers, json={"name": "Initech"}).json()["id"]

    response = client.post(
        "/api/v1/projects",
        headers=headers,
        json={"client_id": client_id, "name": "Backwards", "start_date": "2026-05-01", "end_date": "2026-04-01"},
    )

    assert response.status_code == 400
    assert "end_date" in response.json()["error"]


def test_person_staff_category_follows_department(
    client: TestClient,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()

    support = client.post(
        "/api/v1/people",
        headers=headers,
        json={"email": "Ops@Test.Local", "name": "Ops", "start_date": "2025-01-01", "department": "HR"},
    )
    operational = client.post(
        "/api/v1/people",
        headers=headers,
        json={"email": "eng@test.local", "name": "Eng", "start_date": "2025-01-01", "department": "Delivery"},
    )

    assert support.status_code == 201
    assert support.json()["email"] == "ops@test.local"
    assert support.json()["staff_category"] == "support"
    assert operational.json()["staff_category"] == "operational"

    filtered = client.get("/api/v1/people", headers=headers, params={"staff_category": "support"})
    assert [row["name"] for row in filtered.json()["items"]] == ["Ops"]


def test_duplicate_person_email_conflicts(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()
    payload = {"email": "dup@test.local", "name": "Dup", "start_date": "2025-01-01"}

    assert client.post("/api/v1/people", headers=headers, json=payload).status_code == 201
    response = client.post("/api/v1/people", headers=headers, json=payload)

    assert response.status_code == 409


def test_manager_change_records_history(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()

    def person(email: str) -> str:
        return client.post(
            "/api/v1/people",
            headers=headers,
            json={"email": email, "name": email.split("@")[0], "start_date": "2025-01-01"},
        ).json()["id"]

    report_id = person("report@test.local")
    first_manager = person("lead1@test.local")
    second_manager = person("lead2@test.local")

    client.put(f"/api/v1/people/{report_id}", headers=headers, json={"manager_id": first_manager})
    updated = client.put(f"/api/v1/people/{report_id}", headers=headers, json={"manager_id": second_manager})
    assert updated.json()["manager_id"] == second_manager

    history = client.get(f"/api/v1/people/{report_id}/manager-history", headers=headers).json()["items"]
    assert len(history) == 2
    open_rows = [row for row in history if row["end_date"] is None]
    assert [row["manager_id"] for row in open_rows] == [second_manager]

    self_managed = client.put(f"/api/v1/people/{report_id}", headers=headers, json={"manager_id": report_id})
    assert self_managed.status_code == 400


def test_product_names_are_unique(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()
    payload = {"name": "Firewall Appliance", "type": "reselling"}

    created = client.post("/api/v1/products", headers=headers, json=payload)
    duplicate = client.post("/api/v1/products", headers=headers, json=payload)

    assert created.status_code == 201
    assert created.json()["type"] == "reselling"
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Product name already exists."
