"""Work-session state machine shared by drafting, revision and slab smith."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from slabtrack.core.dates import format_timestamp, parse_timestamp
from slabtrack.core.validation import SessionTransitionError


class WorkKind(str, Enum):
    DRAFTING = "drafting"
    REVISION = "revision"
    SLAB_SMITH = "slab_smith"

    @property
    def assignment_kind(self) -> "WorkKind":
        """Revisions are worked under the drafting assignment."""

        return WorkKind.SLAB_SMITH if self is WorkKind.SLAB_SMITH else WorkKind.DRAFTING

    @property
    def requires_work_percentage(self) -> bool:
        return self is not WorkKind.SLAB_SMITH


class SessionStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    ON_HOLD = "on_hold"
    ENDED = "ended"

    @classmethod
    def parse(cls, raw: Any) -> "SessionStatus":
        if isinstance(raw, SessionStatus):
            return raw
        value = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
        if not value:
            return cls.IDLE
        return _STATUS_ALIASES.get(value, cls.IDLE)


_STATUS_ALIASES: dict[str, SessionStatus] = {
    "idle": SessionStatus.IDLE,
    "not_started": SessionStatus.IDLE,
    "active": SessionStatus.ACTIVE,
    "drafting": SessionStatus.ACTIVE,
    "in_progress": SessionStatus.ACTIVE,
    "started": SessionStatus.ACTIVE,
    "resumed": SessionStatus.ACTIVE,
    "paused": SessionStatus.PAUSED,
    "on_hold": SessionStatus.ON_HOLD,
    "onhold": SessionStatus.ON_HOLD,
    "ended": SessionStatus.ENDED,
    "completed": SessionStatus.ENDED,
}


class SessionAction(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    END = "end"
    ON_HOLD = "on_hold"


TRANSITIONS: dict[SessionAction, tuple[frozenset[SessionStatus], SessionStatus]] = {
    SessionAction.START: (frozenset({SessionStatus.IDLE}), SessionStatus.ACTIVE),
    SessionAction.PAUSE: (frozenset({SessionStatus.ACTIVE}), SessionStatus.PAUSED),
    SessionAction.RESUME: (frozenset({SessionStatus.PAUSED, SessionStatus.ON_HOLD}), SessionStatus.ACTIVE),
    SessionAction.END: (frozenset({SessionStatus.ACTIVE, SessionStatus.PAUSED}), SessionStatus.ENDED),
    SessionAction.ON_HOLD: (frozenset({SessionStatus.ACTIVE}), SessionStatus.ON_HOLD),
}


def next_status(status: SessionStatus, action: SessionAction) -> SessionStatus:
    """Return the status reached by ``action`` or raise if it is not allowed."""

    allowed, target = TRANSITIONS[action]
    if status not in allowed:
        raise SessionTransitionError(status.value, action.value)
    return target


def can_apply(status: SessionStatus, action: SessionAction) -> bool:
    return status in TRANSITIONS[action][0]


def available_actions(status: SessionStatus) -> list[str]:
    return [action.value for action in SessionAction if can_apply(status, action)]


@dataclass(slots=True)
class WorkSession:
    """Server side record of one work session on a fab."""

    fab_id: int
    kind: WorkKind
    status: SessionStatus = SessionStatus.IDLE
    session_id: str | None = None
    worker_id: int | None = None
    current_session_start_time: datetime | None = None
    last_action_time: datetime | None = None
    total_time_spent: int = 0
    notes: list[dict[str, Any]] = field(default_factory=list)

    def elapsed(self, now: datetime) -> int:
        """Seconds worked, counting the running stretch only while active."""

        total = self.total_time_spent
        if self.status is SessionStatus.ACTIVE and self.current_session_start_time is not None:
            total += int((now - self.current_session_start_time).total_seconds())
        return max(0, total)

    def apply(
        self,
        action: SessionAction,
        at: datetime,
        *,
        note: str | None = None,
        sqft: float | None = None,
        work_percentage: int | None = None,
    ) -> None:
        """Record ``action`` the way the upstream service books it."""

        target = next_status(self.status, action)
        if self.status is SessionStatus.ACTIVE and self.current_session_start_time is not None:
            self.total_time_spent += max(0, int((at - self.current_session_start_time).total_seconds()))
        if target is SessionStatus.ACTIVE:
            self.current_session_start_time = at
        self.status = target
        self.last_action_time = at
        self.notes.append(
            {
                "timestamp": format_timestamp(at),
                "action": action.value,
                "note": note,
                "sqft_drafted": sqft,
                "work_percentage_done": work_percentage,
            }
        )

    # ------------------------------------------------------------------
    # wire format
    # ------------------------------------------------------------------
    @classmethod
    def from_payload(cls, data: dict[str, Any], *, fab_id: int, kind: WorkKind) -> "WorkSession":
        worker = data.get("drafter_id", data.get("started_by", data.get("worker_id")))
        total = data.get("total_time_spent", data.get("duration_seconds")) or 0
        notes = data.get("notes") or []
        return cls(
            fab_id=int(data.get("fab_id") or fab_id),
            kind=kind,
            status=SessionStatus.parse(data.get("status")),
            session_id=str(data["session_id"]) if data.get("session_id") is not None else None,
            worker_id=int(worker) if worker not in (None, "") else None,
            current_session_start_time=parse_timestamp(data.get("current_session_start_time")),
            last_action_time=parse_timestamp(data.get("last_action_time")),
            total_time_spent=max(0, int(float(total))),
            notes=[dict(item) for item in notes if isinstance(item, dict)],
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "fab_id": self.fab_id,
            "drafter_id": self.worker_id,
            "status": self.status.value,
            "current_session_start_time": (
                format_timestamp(self.current_session_start_time) if self.current_session_start_time else None
            ),
            "last_action_time": format_timestamp(self.last_action_time) if self.last_action_time else None,
            "total_time_spent": self.total_time_spent,
            "notes": [dict(item) for item in self.notes],
        }
