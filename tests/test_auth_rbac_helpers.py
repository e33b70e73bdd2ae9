from __future__ import annotations

import uuid
from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from margindesk.core.auth import AppRole, RequestUserContext, has_role
from margindesk.core.config import get_settings


def _context(role: AppRole) -> RequestUserContext:
    return RequestUserContext(
        user_id=uuid.uuid4(),
        subject=f"sub-{role.value}",
        email=f"{role.value}@test.local",
        display_name=role.value,
        status="active",
        role=role,
    )


def test_has_role_matches_expected_roles() -> None:
    context = _context(AppRole.PM)

    assert has_role(context, {AppRole.PM}) is True
    assert has_role(context, {AppRole.OWNER, AppRole.FINANCE}) is False


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        (AppRole.OWNER, True),
        (AppRole.FINANCE, True),
        (AppRole.PM, False),
        (AppRole.READONLY, False),
    ],
)
def test_is_admin_covers_owner_and_finance(role: AppRole, expected: bool) -> None:
    assert _context(role).is_admin is expected


def test_me_returns_identity_from_headers(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers(AppRole.FINANCE, subject="fin-1")

    response = client.get("/api/v1/me", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["subject"] == "fin-1"
    assert body["email"] == "fin-1@test.local"
    assert body["role"] == "finance"
    assert body["is_admin"] is True


def test_new_user_from_headers_gets_default_role(client: TestClient) -> None:
    response = client.get(
        "/api/v1/me",
        headers={"X-User-Sub": "fresh", "X-User-Email": "Fresh@Test.Local"},
    )

    assert response.status_code == 200
    assert response.json()["role"] == "readonly"
    assert response.json()["email"] == "fresh@test.local"


def test_missing_headers_fall_back_to_dev_principal(client: TestClient) -> None:
    response = client.get("/api/v1/me")

    assert response.status_code == 200
    assert response.json()["subject"] == get_settings().auth_dev_subject


def test_missing_headers_rejected_without_dev_principal(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(get_settings(), "auth_allow_dev_principal", False)

    response = client.get("/api/v1/me")

    assert response.status_code == 401
    assert "X-User-Sub" in response.json()["error"]


def test_readonly_user_cannot_write(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers(AppRole.READONLY)

    response = client.post("/api/v1/clients", headers=headers, json={"name": "Blocked"})

    assert response.status_code == 403
    assert response.json()["error"].startswith("Forbidden")


def test_pm_can_edit_directory_but_not_finance(
    client: TestClient,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers(AppRole.PM)

    created = client.post("/api/v1/clients", headers=headers, json={"name": "Allowed"})
    assert created.status_code == 201

    rules = client.put("/api/v1/bill-exclusion-rules", headers=headers, json={"rules": []})
    assert rules.status_code == 403
