"""Region-specific Zoho endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_REGION = "IN"


@dataclass(frozen=True, slots=True)
class ZohoRegionConfig:
    accounts_url: str
    api_domain: str
    books_api_url: str


REGION_CONFIGS: dict[str, ZohoRegionConfig] = {
    "US": ZohoRegionConfig(
        accounts_url="https://accounts.zoho.com",
        api_domain="https://www.zohoapis.com",
        books_api_url="https://books.zoho.com/api/v3",
    ),
    "EU": ZohoRegionConfig(
        accounts_url="https://accounts.zoho.eu",
        api_domain="https://www.zohoapis.eu",
        books_api_url="https://books.zoho.eu/api/v3",
    ),
    "IN": ZohoRegionConfig(
        accounts_url="https://accounts.zoho.in",
        api_domain="https://www.zohoapis.in",
        books_api_url="https://books.zoho.in/api/v3",
    ),
    "AU": ZohoRegionConfig(
        accounts_url="https://accounts.zoho.com.au",
        api_domain="https://www.zohoapis.com.au",
        books_api_url="https://books.zoho.com.au/api/v3",
    ),
    "JP": ZohoRegionConfig(
        accounts_url="https://accounts.zoho.jp",
        api_domain="https://www.zohoapis.jp",
        books_api_url="https://books.zoho.jp/api/v3",
    ),
    "CA": ZohoRegionConfig(
        accounts_url="https://accounts.zoho.ca",
        api_domain="https://www.zohoapis.ca",
        books_api_url="https://books.zoho.ca/api/v3",
    ),
    "CN": ZohoRegionConfig(
        accounts_url="https://accounts.zoho.com.cn",
        api_domain="https://www.zohoapis.com.cn",
        books_api_url="https://books.zoho.com.cn/api/v3",
    ),
}


def resolve_region(region: str | None) -> str:
    normalized = (region or DEFAULT_REGION).strip().upper()
    if normalized not in REGION_CONFIGS:
        logger.warning("Invalid Zoho region %r, falling back to %s", region, DEFAULT_REGION)
        return DEFAULT_REGION
    return normalized


def region_config(region: str | None) -> ZohoRegionConfig:
    return REGION_CONFIGS[resolve_region(region)]


def people_domain(region: str | None) -> str:
    if resolve_region(region) == "IN":
        return "https://people.zoho.in"
    return "https://people.zoho.com"
