from __future__ import annotations

import logging

import httpx

from linkvault.backend.realtime import RealtimeService
from linkvault.backend.records import (
    BookmarkRecord,
    ChangeFeedEvent,
    Identity,
    event_from_dict,
)
from linkvault.errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "LinkVaultClient/1.0",
    "Accept": "application/json",
}


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"{response.status_code} {response.reason_phrase}".strip()


class _Api:
    """Thin JSON wrapper that turns transport and HTTP failures into StorageError."""

    def __init__(self, client: httpx.Client):
        self.client = client

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            message = str(exc).strip() or exc.__class__.__name__
            raise StorageError(message) from exc
        return response

    def json(self, method: str, path: str, **kwargs):
        response = self.request(method, path, **kwargs)
        if response.status_code >= 400:
            raise StorageError(_error_message(response))
        return response.json()


class HttpAuth:
    def __init__(self, api: _Api):
        self._api = api

    def get_current_user(self) -> Identity | None:
        try:
            response = self._api.request("GET", "/api/v1/me")
        except StorageError as exc:
            logger.warning("Identity lookup failed: %s", exc)
            return None
        if response.status_code != 200:
            return None
        payload = response.json()
        return Identity(id=int(payload["id"]), email=payload.get("email") or "")

    def sign_out(self) -> None:
        self._api.json("POST", "/api/v1/auth/revoke")


class HttpStorage:
    def __init__(self, api: _Api):
        self._api = api

    def insert(self, row: dict) -> BookmarkRecord:
        payload = self._api.json("POST", "/api/v1/bookmarks", json=row)
        return BookmarkRecord.from_dict(payload)

    def select(self, user_id: int) -> list[BookmarkRecord]:
        payload = self._api.json("GET", "/api/v1/bookmarks", params={"user_id": user_id})
        return [BookmarkRecord.from_dict(item) for item in payload.get("items") or []]

    def update(self, bookmark_id: int, user_id: int, **changes) -> BookmarkRecord | None:
        response = self._api.request(
            "PATCH",
            f"/api/v1/bookmarks/{bookmark_id}",
            json={"user_id": user_id, **changes},
        )
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise StorageError(_error_message(response))
        return BookmarkRecord.from_dict(response.json())

    def delete(self, bookmark_id: int, user_id: int) -> int:
        payload = self._api.json(
            "DELETE",
            f"/api/v1/bookmarks/{bookmark_id}",
            params={"user_id": user_id},
        )
        return int(payload.get("deleted", 0))


class HttpRealtime(RealtimeService):
    def __init__(self, api: _Api, scheduler=None, pump_seconds: float = 1.0):
        super().__init__(scheduler=scheduler, pump_seconds=pump_seconds)
        self._api = api

    def _head(self, user_id: int) -> int:
        payload = self._api.json("GET", "/api/v1/changes/head")
        return int(payload.get("cursor") or 0)

    def _fetch_since(self, user_id: int, cursor: int) -> tuple[list[ChangeFeedEvent], int]:
        payload = self._api.json("GET", "/api/v1/changes", params={"since": cursor})
        events = []
        for item in payload.get("events") or []:
            event = event_from_dict(item)
            if event is not None:
                events.append(event)
        return events, int(payload.get("cursor") or cursor)


class HttpBackend:
    """Backend contract consumed from a running LinkVault server's JSON API."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        scheduler=None,
        pump_seconds: float = 1.0,
    ):
        headers = dict(DEFAULT_HEADERS)
        headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        api = _Api(self.client)
        self.auth = HttpAuth(api)
        self.storage = HttpStorage(api)
        self.realtime = HttpRealtime(api, scheduler=scheduler, pump_seconds=pump_seconds)

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
