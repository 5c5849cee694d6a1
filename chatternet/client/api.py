"""Async HTTP client for the messaging API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from chatternet.core.config import Settings
from chatternet.core.exceptions import (
    ERRORS_BY_CODE,
    MessagingError,
    TransientStoreError,
    UnauthenticatedError,
)


logger = logging.getLogger(__name__)


class ApiConnectionError(TransientStoreError):
    """Messaging API unreachable or timed out."""


class ApiRequestError(MessagingError):
    """Messaging API rejected the request for an unexpected reason."""


class MessagingApiClient:
    """Thin client over the boundary operations; every call has a timeout."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._token = token
        self.http = http or httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(timeout))

    @classmethod
    def from_settings(cls, settings: Settings, token: str, http: httpx.AsyncClient | None = None) -> "MessagingApiClient":
        return cls(settings.api_base_url, token, timeout=settings.client_timeout_seconds, http=http)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self.http.request(
                method,
                path,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.TimeoutException as exc:
            raise ApiConnectionError(f"api_timeout: request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise ApiConnectionError(f"api_connection_failed: {exc}") from exc

        if response.status_code >= 400:
            raise self._error_from(response)
        try:
            return response.json()
        except ValueError as exc:
            raise ApiRequestError(f"api_bad_response: {path} returned non-JSON body") from exc

    @staticmethod
    def _error_from(response: httpx.Response) -> MessagingError:
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = None
        if isinstance(detail, dict):
            error_cls = ERRORS_BY_CODE.get(str(detail.get("code")))
            if error_cls is not None:
                return error_cls(detail.get("message"), details=detail.get("details"))
        if response.status_code == 401:
            return UnauthenticatedError()
        if response.status_code == 503:
            return TransientStoreError()
        return ApiRequestError(f"api_error_{response.status_code}")

    async def resolve_thread(self, peer_id: str) -> str:
        data = await self.call("POST", "/threads/resolve", json={"peer_id": peer_id})
        return data["thread_id"]

    async def list_threads(self) -> list[dict]:
        data = await self.call("GET", "/threads")
        return data["items"]

    async def send_message(
        self,
        text: str,
        *,
        thread_id: str | None = None,
        peer_id: str | None = None,
        client_message_id: str | None = None,
    ) -> dict:
        body: dict[str, Any] = {"text": text, "client_message_id": client_message_id}
        if thread_id:
            body["thread_id"] = thread_id
        else:
            body["peer_id"] = peer_id
        return await self.call("POST", "/messages", json=body)

    async def thread_history(self, thread_id: str, cursor: str | None = None, limit: int | None = None) -> dict:
        params: dict[str, Any] = {}
        if cursor:
            params["cursor"] = cursor
        if limit:
            params["limit"] = limit
        return await self.call("GET", f"/threads/{thread_id}/messages", params=params or None)

    async def heartbeat(self) -> None:
        await self.call("POST", "/presence/heartbeat")

    async def presence(self) -> list[dict]:
        return await self.call("GET", "/presence")

    async def get_preferences(self) -> dict:
        return await self.call("GET", "/notifications/preferences")

    async def put_preferences(self, preferences: dict) -> dict:
        return await self.call("PUT", "/notifications/preferences", json=preferences)

    async def list_notifications(self, unread_only: bool = False) -> list[dict]:
        return await self.call("GET", "/notifications", params={"unread_only": unread_only})
