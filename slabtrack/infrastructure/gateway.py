"""Contract for talking to the upstream fabrication API.

The service never owns fab data.  Every read and mutation is forwarded to a
``FabGateway``: in production the httpx backed :class:`HttpFabGateway`, in
development and tests the deterministic :class:`InMemoryFabGateway`.  The
active gateway is installed with ``configure_fab_gateway`` during start-up.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from slabtrack.core.dates import format_timestamp
from slabtrack.domain import WorkKind, WorkSession

LOOKUP_RESOURCES = (
    "accounts",
    "stone-types",
    "stone-colors",
    "stone-thickness",
    "edges",
    "fab-types",
    "sales-persons",
)


class GatewayError(RuntimeError):
    """Raised when the upstream service rejects a call or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass(slots=True)
class UploadedFile:
    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(slots=True)
class SessionCommand:
    """A session action as recorded by the upstream ``manage session`` call."""

    action: str
    timestamp: datetime
    worker_id: int | None = None
    note: str | None = None
    sqft: float | None = None
    work_percentage: int | None = None

    def to_wire(self, kind: WorkKind) -> dict[str, Any]:
        if kind is WorkKind.SLAB_SMITH:
            return {
                "action": self.action,
                "started_by": self.worker_id,
                "note": self.note,
                "sqft_completed": self.sqft,
                "timestamp": format_timestamp(self.timestamp),
            }
        payload: dict[str, Any] = {
            "action": self.action,
            "drafter_id": self.worker_id,
            "timestamp": format_timestamp(self.timestamp),
            "note": self.note,
            "sqft_drafted": self.sqft,
            "work_percentage": self.work_percentage,
        }
        if kind is WorkKind.REVISION:
            payload["is_revision"] = True
        return payload


class FabGateway(Protocol):
    """Operations the service needs from the upstream fabrication API."""

    def list_fabs(self, **params: Any) -> tuple[list[dict[str, Any]], int]: ...

    def get_fab(self, fab_id: int) -> dict[str, Any] | None: ...

    def update_stage(self, fab_id: int, stage: str) -> dict[str, Any]: ...

    def set_hold(self, fab_id: int, on_hold: bool) -> dict[str, Any]: ...

    def create_note(self, fab_id: int, note: str, stage: str | None) -> dict[str, Any]: ...

    def get_session(self, fab_id: int, kind: WorkKind) -> WorkSession | None: ...

    def session_history(self, fab_id: int, kind: WorkKind) -> list[WorkSession]: ...

    def manage_session(self, fab_id: int, kind: WorkKind, command: SessionCommand) -> dict[str, Any]: ...

    def get_assignment(self, fab_id: int, kind: WorkKind) -> dict[str, Any] | None: ...

    def create_slabsmith_assignment(
        self, fab_id: int, drafter_id: int | None, start_date: datetime
    ) -> dict[str, Any]: ...

    def upload_files(self, fab_id: int, kind: WorkKind, files: list[UploadedFile]) -> list[dict[str, Any]]: ...

    def list_lookup(self, resource: str) -> list[dict[str, Any]]: ...


_gateway: FabGateway | None = None


def configure_fab_gateway(gateway: FabGateway) -> None:
    """Install the gateway used by the application services."""

    global _gateway
    _gateway = gateway


def get_fab_gateway() -> FabGateway:
    """Return the configured gateway, defaulting to the in-memory one."""

    global _gateway
    if _gateway is None:
        from .memory_gateway import InMemoryFabGateway

        _gateway = InMemoryFabGateway()
    return _gateway
