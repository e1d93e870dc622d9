"""Luma public API client for the member directory sync.

Handles:
- Cursor pagination over calendar/list-events and calendar/list-people
- Retries with backoff on transport errors and 429/5xx
- Normalizing entries into Event/Person column values
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

import httpx

from app.core.config import settings
from app.services.http_service import error_detail, request_with_retries
from app.utils.datetime_parsing import isoformat_utc, parse_iso_datetime
from app.utils.normalization import clean_text, normalize_email

logger = logging.getLogger(__name__)

EVENTS_ENDPOINT = "calendar/list-events"
PEOPLE_ENDPOINT = "calendar/list-people"

# Hard stop against a cursor that never terminates
MAX_PAGES = 1000

PageCallback = Callable[[int], Awaitable[None] | None]


class LumaAPIError(Exception):
    """Luma request failed (configuration, transport, or non-2xx response)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LumaClient:
    """
    Async client for the Luma public API.

    Use as an async context manager; `transport` lets tests plug in
    httpx.MockTransport.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = settings.LUMA_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.LUMA_API_BASE).rstrip("/")
        self.timeout = httpx.Timeout(timeout or settings.LUMA_TIMEOUT_SECONDS, connect=5.0)
        self.page_size = page_size or settings.LUMA_PAGE_SIZE
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "LumaClient":
        if not self.api_key:
            raise LumaAPIError("LUMA_API_KEY is not set")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"accept": "application/json", "x-luma-api-key": self.api_key},
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, endpoint: str, params: dict[str, str]) -> dict:
        if self._client is None:
            raise RuntimeError("LumaClient must be used as an async context manager")
        client = self._client

        async def request_fn() -> httpx.Response:
            return await client.get(f"/{endpoint}", params=params)

        try:
            response = await request_with_retries(request_fn, service="luma")
        except httpx.RequestError as exc:
            raise LumaAPIError(f"Luma API request failed: {exc.__class__.__name__}") from exc

        if response.status_code != 200:
            detail = error_detail(response) or response.reason_phrase
            raise LumaAPIError(
                f"Luma API error: {response.status_code} ({detail})",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise LumaAPIError("Luma API returned invalid JSON") from exc
        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            raise LumaAPIError("Luma API returned an unexpected payload")
        return data

    async def _paginate(
        self,
        endpoint: str,
        created_after: datetime | None,
        on_page: PageCallback | None,
    ) -> list[dict]:
        params = {"pagination_limit": str(self.page_size)}
        if created_after is not None:
            params["created_after"] = isoformat_utc(created_after)

        entries: list[dict] = []
        cursor: str | None = None
        for _ in range(MAX_PAGES):
            page_params = dict(params)
            if cursor:
                page_params["pagination_cursor"] = cursor
            data = await self._get(endpoint, page_params)
            entries.extend(e for e in data["entries"] if isinstance(e, dict))
            logger.info("Fetched %s page: total=%s", endpoint, len(entries))
            if on_page is not None:
                maybe = on_page(len(entries))
                if maybe is not None:
                    await maybe

            cursor = data.get("next_cursor")
            if data.get("has_more") is not True or not cursor:
                break
        else:
            raise LumaAPIError(f"Luma pagination did not terminate for {endpoint}")
        return entries

    async def list_events(
        self,
        created_after: datetime | None = None,
        on_page: PageCallback | None = None,
    ) -> list[dict]:
        return await self._paginate(EVENTS_ENDPOINT, created_after, on_page)

    async def list_people(
        self,
        created_after: datetime | None = None,
        on_page: PageCallback | None = None,
    ) -> list[dict]:
        return await self._paginate(PEOPLE_ENDPOINT, created_after, on_page)


# =============================================================================
# Normalization
# =============================================================================

def _location(event: dict[str, Any]) -> dict | None:
    geo = event.get("geo_address_json")
    if not isinstance(geo, dict):
        return None
    return {
        "city": geo.get("city"),
        "region": geo.get("region"),
        "country": geo.get("country"),
        "latitude": event.get("geo_latitude"),
        "longitude": event.get("geo_longitude"),
        "full_address": geo.get("full_address"),
    }


def parse_event(entry: dict[str, Any]) -> dict | None:
    """
    Map a list-events entry to Event column values.

    Returns None when api_id, name, start or end is missing.
    """
    event = entry.get("event") if isinstance(entry.get("event"), dict) else entry
    api_id = clean_text(event.get("api_id"))
    title = clean_text(event.get("name"))
    start_time = parse_iso_datetime(event.get("start_at"))
    end_time = parse_iso_datetime(event.get("end_at"))
    if not api_id or not title or not start_time or not end_time:
        return None
    return {
        "api_id": api_id,
        "title": title,
        "description": clean_text(event.get("description")),
        "start_time": start_time,
        "end_time": end_time,
        "cover_url": clean_text(event.get("cover_url"), 500),
        "url": clean_text(event.get("url"), 500),
        "timezone": clean_text(event.get("timezone"), 50),
        "location": _location(event),
        "visibility": clean_text(event.get("visibility"), 50),
        "meeting_url": clean_text(event.get("meeting_url") or event.get("zoom_meeting_url"), 500),
        "calendar_api_id": clean_text(event.get("calendar_api_id")),
        "created_at": parse_iso_datetime(event.get("created_at")),
    }


def parse_person(entry: dict[str, Any]) -> dict | None:
    """
    Map a list-people entry to Person column values.

    Returns None when api_id or email is missing. Emails are stored lower-case.
    """
    api_id = clean_text(entry.get("api_id"))
    email = normalize_email(entry.get("email") if isinstance(entry.get("email"), str) else None)
    if not api_id or not email:
        return None
    user = entry.get("user") if isinstance(entry.get("user"), dict) else {}

    def pick(key: str, user_key: str, max_length: int | None = 255) -> str | None:
        return clean_text(entry.get(key) or user.get(user_key), max_length)

    return {
        "api_id": api_id,
        "email": email,
        "user_name": pick("userName", "name"),
        "full_name": pick("fullName", "full_name"),
        "avatar_url": pick("avatarUrl", "avatar_url", 500),
        "role": clean_text(entry.get("role"), 50),
        "phone_number": pick("phoneNumber", "phone_number", 50),
        "bio": pick("bio", "bio", None),
        "organization_name": pick("organizationName", "organization_name"),
        "job_title": pick("jobTitle", "job_title"),
        "created_at": parse_iso_datetime(entry.get("created_at")),
    }


def dedupe_by_api_id(rows: list[dict]) -> list[dict]:
    """Keep the first row per api_id (Luma can repeat entries across pages)."""
    seen: set[str] = set()
    unique = []
    for row in rows:
        if row["api_id"] in seen:
            continue
        seen.add(row["api_id"])
        unique.append(row)
    return unique
