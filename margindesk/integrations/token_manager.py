"""Stored Zoho OAuth tokens with refresh on expiry.

Tokens live in ``integration_settings`` rows keyed by integration. Concurrent
callers that find the same token expired share one refresh call: the first
caller performs it and the others wait on its result.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from margindesk.core.config import Settings, get_settings
from margindesk.integrations.zoho_config import region_config
from margindesk.repositories.integration_repository import IntegrationRepository

logger = logging.getLogger(__name__)

ZOHO_BOOKS_KEY = "zoho_books"
ZOHO_PEOPLE_KEY = "zoho_people"
DEFAULT_EXPIRES_IN_SECONDS = 3600


@dataclass(frozen=True, slots=True)
class ZohoTokens:
    access_token: str
    api_domain: str | None
    organization_id: str | None = None


def _tokens_from(config: dict) -> ZohoTokens:
    return ZohoTokens(
        access_token=config["access_token"],
        api_domain=config.get("api_domain"),
        organization_id=config.get("organization_id"),
    )


class ZohoTokenManager:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport
        self._clock = clock
        self._lock = threading.Lock()
        self._in_flight: dict[str, Future] = {}

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def is_valid(self, config: dict) -> bool:
        expires_at = config.get("expires_at")
        if not config.get("access_token") or not isinstance(expires_at, (int, float)):
            return False
        return expires_at > self.now_ms() + self.settings.token_refresh_margin_seconds * 1000

    def http_client(self) -> httpx.Client:
        return httpx.Client(transport=self._transport, timeout=self.settings.zoho_http_timeout_seconds)

    def get_access_token(self, db: Session, key: str) -> ZohoTokens | None:
        """Return a usable token for ``key`` or ``None`` when not connected."""

        row = IntegrationRepository(db).get_settings(key)
        if row is None:
            logger.error("Zoho settings %s not found", key)
            return None
        config = dict(row.config or {})
        if self.is_valid(config):
            return _tokens_from(config)
        if not config.get("refresh_token"):
            logger.error("No refresh token available for %s", key)
            return None
        return self._single_flight(key, lambda: self._refresh(db, key, config))

    def _single_flight(self, key: str, refresh: Callable[[], ZohoTokens | None]) -> ZohoTokens | None:
        with self._lock:
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            logger.info("Refresh of %s already in progress, waiting", key)
            return future.result()

        try:
            result = refresh()
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def _refresh(self, db: Session, key: str, config: dict) -> ZohoTokens | None:
        accounts_url = region_config(self.settings.zoho_region).accounts_url
        started = self.now_ms()
        logger.info("Refreshing Zoho token for %s", key)
        try:
            with self.http_client() as client:
                response = client.post(
                    f"{accounts_url}/oauth/v2/token",
                    data={
                        "refresh_token": config["refresh_token"],
                        "client_id": self.settings.zoho_client_id or "",
                        "client_secret": self.settings.zoho_client_secret or "",
                        "grant_type": "refresh_token",
                    },
                )
            if response.status_code >= 400:
                logger.error("Failed to refresh Zoho token for %s: %s", key, response.text)
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Zoho token refresh for %s failed: %s", key, exc)
            return None

        if not data.get("access_token"):
            logger.error("Zoho token refresh for %s returned no access token: %s", key, data)
            return None

        expires_in = data.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS
        updated = {
            **config,
            "access_token": data["access_token"],
            "expires_at": started + int(expires_in) * 1000,
            "api_domain": data.get("api_domain") or config.get("api_domain"),
        }
        try:
            row = IntegrationRepository(db).get_settings(key)
            if row is None:
                logger.error("Zoho settings %s disappeared during refresh", key)
                return None
            row.config = updated
            row.updated_at = datetime.utcnow()
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Could not persist refreshed Zoho token for %s: %s", key, exc)
            return None

        logger.info("Zoho token for %s refreshed", key)
        return _tokens_from(updated)


@lru_cache
def get_token_manager() -> ZohoTokenManager:
    return ZohoTokenManager()
