"""
Async HTTP client for the portal API.

Every request carries the X-Requested-With header the server requires on
state-changing calls, and the session cookie when one is given.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator
from uuid import UUID

import httpx

from app.core.deps import COOKIE_NAME
from app.utils.sse import iter_sse_events

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
CSRF_HEADERS = {"X-Requested-With": "XMLHttpRequest"}


class PortalAPIError(Exception):
    """Non-success response (or transport failure) from the portal API."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


def _error_message(response: httpx.Response, body: Any) -> str:
    if isinstance(body, dict):
        for key in ("error", "message"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
        detail = body.get("detail")
        if isinstance(detail, str) and detail:
            return detail
        if isinstance(detail, list) and detail:
            first = detail[0]
            if isinstance(first, dict) and first.get("msg"):
                return str(first["msg"])
    return f"Request failed ({response.status_code})"


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class PortalClient:
    """
    Thin async wrapper over the portal endpoints.

    Pass `transport` to route requests to an in-process app in tests
    (httpx.ASGITransport) or to a mock.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        session_cookie: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                base_url=base_url,
                timeout=timeout,
                transport=transport,
            )
        client.headers.update(CSRF_HEADERS)
        if session_cookie:
            client.cookies.set(COOKIE_NAME, session_cookie)
        self._client = client

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Portal request %s %s failed: %s", method, path, exc)
            raise PortalAPIError("Network error. Please try again.") from exc

    async def _json(self, method: str, path: str, **kwargs) -> Any:
        response = await self._request(method, path, **kwargs)
        body = _json_body(response)
        if response.status_code >= 400:
            raise PortalAPIError(_error_message(response, body), response.status_code, body)
        return body

    # ------------------------------------------------------------------
    # People
    # ------------------------------------------------------------------

    async def search_emails(self, query: str, *, seq: int | None = None, limit: int | None = None) -> dict:
        params: dict[str, Any] = {"query": query}
        if seq is not None:
            params["seq"] = seq
        if limit is not None:
            params["limit"] = limit
        return await self._json("GET", "/api/people/search-emails", params=params)

    async def check_email(self, email: str) -> dict:
        return await self._json("GET", "/api/people/check-email", params={"email": email})

    # ------------------------------------------------------------------
    # Claims and invites
    # ------------------------------------------------------------------

    async def claim_profile(self, email: str, person_id: UUID | str | None = None) -> dict:
        """
        Request a claim for an email (optionally pinned to a person).

        Returns the tagged outcome. A 409 already_claimed answer is returned
        rather than raised, since it is an expected result.
        """
        payload: dict[str, Any] = {"email": email}
        if person_id is not None:
            payload["personId"] = str(person_id)
        response = await self._request("POST", "/api/auth/claim-profile", json=payload)
        body = _json_body(response)
        if (
            response.status_code == 409
            and isinstance(body, dict)
            and body.get("kind") == "already_claimed"
        ):
            return body
        if response.status_code >= 400:
            raise PortalAPIError(_error_message(response, body), response.status_code, body)
        return body

    async def send_invite(self, email: str, event_api_id: str | None = None) -> dict:
        payload: dict[str, Any] = {"email": email}
        if event_api_id:
            payload["event_api_id"] = event_api_id
        return await self._json("POST", "/api/events/send-invite", json=payload)

    async def verify(self, token: str) -> dict:
        return await self._json("POST", "/api/auth/verify", json={"token": token})

    async def request_sign_in(self, email: str) -> dict:
        return await self._json("POST", "/api/auth/sign-in-link", json={"email": email})

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def featured_event(self) -> dict | None:
        body = await self._json("GET", "/api/events/featured")
        return body.get("event") if isinstance(body, dict) else None

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def stats(self) -> dict:
        return await self._json("GET", "/api/admin/stats")

    async def start_sync(self) -> dict:
        return await self._json("POST", "/api/admin/sync")

    async def get_sync_job(self, job_id: str) -> dict:
        return await self._json("GET", f"/api/admin/sync/{job_id}")

    async def stream_sync(
        self,
        job_id: str,
        last_event_id: int | None = None,
    ) -> AsyncIterator[tuple[int | None, dict]]:
        """
        Yield (sequence id, payload) for each progress message of a sync job.

        Ends when the server closes the stream. Transport failures surface
        as httpx.HTTPError.
        """
        headers = {"Accept": "text/event-stream"}
        if last_event_id is not None:
            headers["Last-Event-ID"] = str(last_event_id)
        timeout = httpx.Timeout(DEFAULT_TIMEOUT, read=None)
        async with self._client.stream(
            "GET", f"/api/admin/sync/{job_id}/stream", headers=headers, timeout=timeout
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                body = _json_body(response)
                raise PortalAPIError(_error_message(response, body), response.status_code, body)
            async for event_id, _event_type, data in iter_sse_events(response.aiter_lines()):
                try:
                    payload = json.loads(data)
                except ValueError:
                    logger.warning("Ignoring malformed sync stream payload")
                    continue
                seq = int(event_id) if event_id and event_id.isdigit() else None
                yield seq, payload
