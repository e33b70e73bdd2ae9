from __future__ import annotations

import threading
import time
from datetime import datetime

import httpx
import pytest
from sqlalchemy.orm import Session

from margindesk.core.config import Settings
from margindesk.integrations.token_manager import ZOHO_BOOKS_KEY, ZohoTokenManager, ZohoTokens
from margindesk.integrations.zoho_config import people_domain, region_config, resolve_region
from margindesk.models.entities import IntegrationSettings

NOW = 1_770_000_000.0
NOW_MS = int(NOW * 1000)


def _settings() -> Settings:
    return Settings(zoho_client_id="client-id", zoho_client_secret="client-secret", zoho_region="IN")


def _store(db: Session, **config) -> IntegrationSettings:
    now = datetime.utcnow()
    row = IntegrationSettings(key=ZOHO_BOOKS_KEY, config=config, created_at=now, updated_at=now)
    db.add(row)
    db.commit()
    return row


def test_region_lookup_falls_back_to_india() -> None:
    assert resolve_region("eu") == "EU"
    assert resolve_region("mars") == "IN"
    assert region_config(None).accounts_url == "https://accounts.zoho.in"
    assert people_domain("IN") == "https://people.zoho.in"
    assert people_domain("US") == "https://people.zoho.com"


@pytest.mark.parametrize(
    ("config", "expected"),
    [
        ({"access_token": "a", "expires_at": NOW_MS + 3_600_000}, True),
        ({"access_token": "a", "expires_at": NOW_MS + 200_000}, False),
        ({"access_token": "a", "expires_at": "soon"}, False),
        ({"expires_at": NOW_MS + 3_600_000}, False),
    ],
)
def test_is_valid_applies_refresh_margin(config: dict, expected: bool) -> None:
    manager = ZohoTokenManager(_settings(), clock=lambda: NOW)

    assert manager.is_valid(config) is expected


def test_valid_token_is_returned_without_refresh(db_session: Session) -> None:
    def fail(request: httpx.Request) -> httpx.Response:
        raise AssertionError("refresh should not be called")

    _store(
        db_session,
        access_token="live",
        refresh_token="r",
        api_domain="https://www.zohoapis.in",
        expires_at=NOW_MS + 3_600_000,
        organization_id="org-1",
    )
    manager = ZohoTokenManager(_settings(), transport=httpx.MockTransport(fail), clock=lambda: NOW)

    tokens = manager.get_access_token(db_session, ZOHO_BOOKS_KEY)

    assert tokens == ZohoTokens("live", "https://www.zohoapis.in", "org-1")


def test_expired_token_is_refreshed_and_persisted(db_session: Session) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})

    row = _store(
        db_session,
        access_token="stale",
        refresh_token="refresh-1",
        api_domain="https://www.zohoapis.in",
        expires_at=NOW_MS - 1,
    )
    manager = ZohoTokenManager(_settings(), transport=httpx.MockTransport(handler), clock=lambda: NOW)

    tokens = manager.get_access_token(db_session, ZOHO_BOOKS_KEY)

    assert tokens is not None
    assert tokens.access_token == "fresh"
    assert len(requests) == 1
    assert str(requests[0].url) == "https://accounts.zoho.in/oauth/v2/token"
    form = dict(httpx.QueryParams(requests[0].content.decode()))
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "refresh-1"
    assert form["client_id"] == "client-id"

    db_session.refresh(row)
    assert row.config["access_token"] == "fresh"
    assert row.config["expires_at"] == NOW_MS + 3_600_000
    assert row.config["refresh_token"] == "refresh-1"


def test_failed_refresh_returns_none(db_session: Session) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_code"})

    row = _store(db_session, access_token="stale", refresh_token="revoked", expires_at=NOW_MS - 1)
    manager = ZohoTokenManager(_settings(), transport=httpx.MockTransport(handler), clock=lambda: NOW)

    assert manager.get_access_token(db_session, ZOHO_BOOKS_KEY) is None
    db_session.refresh(row)
    assert row.config["access_token"] == "stale"


def test_missing_settings_or_refresh_token_returns_none(db_session: Session) -> None:
    manager = ZohoTokenManager(_settings(), clock=lambda: NOW)

    assert manager.get_access_token(db_session, ZOHO_BOOKS_KEY) is None

    _store(db_session, access_token="stale", expires_at=NOW_MS - 1)
    assert manager.get_access_token(db_session, ZOHO_BOOKS_KEY) is None


def test_concurrent_refreshes_share_one_call() -> None:
    manager = ZohoTokenManager(_settings(), clock=lambda: NOW)
    calls: list[int] = []
    started = threading.Event()
    release = threading.Event()
    results: list[ZohoTokens | None] = []

    def refresh() -> ZohoTokens:
        calls.append(1)
        started.set()
        release.wait(timeout=5)
        return ZohoTokens("shared", None)

    def worker() -> None:
        results.append(manager._single_flight(ZOHO_BOOKS_KEY, refresh))

    first = threading.Thread(target=worker)
    second = threading.Thread(target=worker)
    first.start()
    assert started.wait(timeout=5)
    second.start()
    time.sleep(0.2)
    release.set()
    first.join(timeout=5)
    second.join(timeout=5)

    assert len(calls) == 1
    assert results == [ZohoTokens("shared", None), ZohoTokens("shared", None)]


def test_failed_refresh_raises_and_releases_key() -> None:
    manager = ZohoTokenManager(_settings(), clock=lambda: NOW)

    def refresh() -> ZohoTokens:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        manager._single_flight(ZOHO_BOOKS_KEY, refresh)

    assert manager._single_flight(ZOHO_BOOKS_KEY, lambda: ZohoTokens("next", None)) == ZohoTokens("next", None)
