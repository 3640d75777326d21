"""httpx client for the hosted fabrication REST API."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable
from urllib.parse import urlparse

import httpx

from slabtrack.core.dates import format_timestamp
from slabtrack.domain import WorkKind, WorkSession

from .gateway import LOOKUP_RESOURCES, GatewayError, SessionCommand, UploadedFile

logger = logging.getLogger(__name__)


class HttpFabGateway:
    """Forward gateway calls to the upstream ``/api/v1`` endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        token_provider: Callable[[], str | None] | None = None,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("base_url must include scheme and host")

        self._base_url = base_url.rstrip("/")
        self._token = token
        self._token_provider = token_provider
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider() if self._token_provider else None
        token = token or self._token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _session_root(kind: WorkKind) -> str:
        return "slabsmith" if kind is WorkKind.SLAB_SMITH else "drafting"

    @staticmethod
    def _unwrap(body: Any) -> Any:
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    @staticmethod
    def _error_message(response: httpx.Response) -> tuple[str, Any]:
        try:
            body = response.json()
        except ValueError:
            text = response.text.strip()
            return (text or f"upstream returned {response.status_code}"), None
        message: Any = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("detail") or body.get("error")
        if isinstance(message, list):
            message = "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in message)
        return (str(message) if message else f"upstream returned {response.status_code}"), body

    def _request(
        self,
        method: str,
        path: str,
        *,
        allow_missing: bool = False,
        **kwargs: Any,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("upstream request failed", extra={"method": method, "path": path})
            raise GatewayError(f"upstream request failed: {exc}") from exc

        if allow_missing and response.status_code == 404:
            return None
        if response.is_error:
            message, payload = self._error_message(response)
            raise GatewayError(message, status_code=response.status_code, payload=payload)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError("upstream returned invalid JSON", status_code=response.status_code) from exc

    @classmethod
    def _normalise_fab_list(cls, body: Any) -> tuple[list[dict[str, Any]], int]:
        data = cls._unwrap(body)
        if isinstance(data, dict):
            items = data.get("data") if isinstance(data.get("data"), list) else data.get("items")
            if isinstance(items, list):
                return items, int(data.get("total") or len(items))
            return [], 0
        if isinstance(data, list):
            total = body.get("total") if isinstance(body, dict) else None
            return data, int(total or len(data))
        return [], 0

    # ------------------------------------------------------------------
    # fabs
    # ------------------------------------------------------------------
    def list_fabs(self, **params: Any) -> tuple[list[dict[str, Any]], int]:
        query = {key: value for key, value in params.items() if value not in (None, "", "all")}
        query.setdefault("skip", 0)
        query.setdefault("limit", 100)
        body = self._request("GET", "/fabs", params=query)
        return self._normalise_fab_list(body)

    def get_fab(self, fab_id: int) -> dict[str, Any] | None:
        body = self._request("GET", f"/fabs/{fab_id}", allow_missing=True)
        data = self._unwrap(body)
        return data if isinstance(data, dict) else None

    def update_stage(self, fab_id: int, stage: str) -> dict[str, Any]:
        body = self._request("PATCH", f"/fabs/{fab_id}", json={"current_stage": stage})
        return self._unwrap(body) or {}

    def set_hold(self, fab_id: int, on_hold: bool) -> dict[str, Any]:
        body = self._request("PATCH", f"/fabs/{fab_id}/hold", params={"on_hold": str(on_hold).lower()})
        return self._unwrap(body) or {}

    def create_note(self, fab_id: int, note: str, stage: str | None) -> dict[str, Any]:
        body = self._request("POST", "/fab_notes", json={"fab_id": fab_id, "note": note, "stage": stage})
        return self._unwrap(body) or {}

    # ------------------------------------------------------------------
    # sessions
    # ------------------------------------------------------------------
    @staticmethod
    def _session_params(kind: WorkKind) -> dict[str, str] | None:
        return {"is_revision": "true"} if kind is WorkKind.REVISION else None

    def get_session(self, fab_id: int, kind: WorkKind) -> WorkSession | None:
        body = self._request(
            "GET",
            f"/{self._session_root(kind)}/{fab_id}/session",
            params=self._session_params(kind),
            allow_missing=True,
        )
        data = self._unwrap(body)
        if isinstance(data, dict) and isinstance(data.get("session"), dict):
            data = data["session"]
        if not isinstance(data, dict) or not data:
            return None
        return WorkSession.from_payload(data, fab_id=fab_id, kind=kind)

    def session_history(self, fab_id: int, kind: WorkKind) -> list[WorkSession]:
        body = self._request(
            "GET",
            f"/{self._session_root(kind)}/{fab_id}/session/history",
            params=self._session_params(kind),
            allow_missing=True,
        )
        data = self._unwrap(body)
        sessions = data.get("sessions") if isinstance(data, dict) else data
        if not isinstance(sessions, list):
            return []
        return [
            WorkSession.from_payload(item, fab_id=fab_id, kind=kind) for item in sessions if isinstance(item, dict)
        ]

    def manage_session(self, fab_id: int, kind: WorkKind, command: SessionCommand) -> dict[str, Any]:
        body = self._request(
            "POST",
            f"/{self._session_root(kind)}/{fab_id}/session",
            json=command.to_wire(kind),
        )
        data = self._unwrap(body)
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    # assignments & files
    # ------------------------------------------------------------------
    def get_assignment(self, fab_id: int, kind: WorkKind) -> dict[str, Any] | None:
        root = self._session_root(kind.assignment_kind)
        body = self._request("GET", f"/{root}/fab/{fab_id}", allow_missing=True)
        data = self._unwrap(body)
        return data if isinstance(data, dict) and data else None

    def create_slabsmith_assignment(
        self, fab_id: int, drafter_id: int | None, start_date: datetime
    ) -> dict[str, Any]:
        payload = {
            "fab_id": fab_id,
            "slab_smith_type": "standard",
            "drafter_id": drafter_id,
            "start_date": format_timestamp(start_date),
        }
        body = self._request("POST", "/slabsmith", json=payload)
        return self._unwrap(body) or {}

    def upload_files(self, fab_id: int, kind: WorkKind, files: list[UploadedFile]) -> list[dict[str, Any]]:
        root = self._session_root(kind.assignment_kind)
        multipart = [
            ("files", (item.filename, item.content, item.content_type or "application/octet-stream"))
            for item in files
        ]
        body = self._request("POST", f"/{root}/{fab_id}/files", files=multipart)
        data = self._unwrap(body)
        if isinstance(data, dict):
            data = data.get("files") or data.get("items") or [data]
        return [item for item in data or [] if isinstance(item, dict)]

    def list_lookup(self, resource: str) -> list[dict[str, Any]]:
        if resource not in LOOKUP_RESOURCES:
            raise GatewayError(f"unknown lookup resource: {resource}", status_code=404)
        body = self._request("GET", f"/{resource}")
        data = self._unwrap(body)
        if isinstance(data, dict):
            data = data.get("data") or data.get("items") or []
        return [item for item in data or [] if isinstance(item, dict)]

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


__all__ = ["HttpFabGateway"]
