"""Work-session use cases for the drafting, revision and slab smith pages."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Callable

from slabtrack.core.dates import format_duration, format_timestamp, utcnow
from slabtrack.core.validation import (
    NotFoundError,
    ValidationError,
    optional_float,
    validate_work_percentage,
)
from slabtrack.domain import (
    SessionAction,
    SessionClock,
    SessionStatus,
    WorkKind,
    WorkSession,
    available_actions,
    next_status,
    tick_stream,
)
from slabtrack.infrastructure import FabGateway, GatewayError, SessionCommand, get_fab_gateway

logger = logging.getLogger(__name__)

HOLD_TAG = "[On Hold]"


def hold_note(note: str | None) -> str:
    text = (note or "").strip()
    return f"{HOLD_TAG} {text}" if text else HOLD_TAG


class WorkSessionService:
    """Coordinates session transitions against the upstream API.

    Every mutation validates the transition against the freshly fetched
    server record, sends it, and reports the refetched record.  Nothing is
    applied locally before the upstream accepts it.
    """

    def __init__(
        self,
        gateway_provider: Callable[[], FabGateway] = get_fab_gateway,
        *,
        clock: Callable[[], datetime] = utcnow,
        tick_seconds: float = 1.0,
    ) -> None:
        self._gateway_provider = gateway_provider
        self._clock = clock
        self._tick_seconds = tick_seconds
        self._locks: dict[tuple[int, WorkKind], asyncio.Lock] = {}

    def configure(self, *, tick_seconds: float | None = None, clock: Callable[[], datetime] | None = None) -> None:
        if tick_seconds is not None:
            self._tick_seconds = tick_seconds
        if clock is not None:
            self._clock = clock

    def reset(self) -> None:
        self._locks.clear()

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    @property
    def _gateway(self) -> FabGateway:
        return self._gateway_provider()

    def _lock_for(self, fab_id: int, kind: WorkKind) -> asyncio.Lock:
        return self._locks.setdefault((fab_id, kind), asyncio.Lock())

    async def _load(self, fab_id: int, kind: WorkKind) -> tuple[dict[str, Any], WorkSession | None]:
        gateway = self._gateway
        fab = await asyncio.to_thread(gateway.get_fab, fab_id)
        if fab is None:
            raise NotFoundError("FAB not found")
        session = await asyncio.to_thread(gateway.get_session, fab_id, kind)
        return fab, session

    @staticmethod
    def derive_status(session: WorkSession | None, fab: dict[str, Any]) -> SessionStatus:
        """Upstream books a hold as a pause; the fab's hold flag tells them apart."""

        if session is None:
            return SessionStatus.IDLE
        if session.status is SessionStatus.PAUSED and fab.get("on_hold"):
            return SessionStatus.ON_HOLD
        return session.status

    def _check(self, session: WorkSession | None, fab: dict[str, Any], action: SessionAction) -> SessionStatus:
        return next_status(self.derive_status(session, fab), action)

    def _build_view(
        self,
        fab_id: int,
        kind: WorkKind,
        fab: dict[str, Any],
        session: WorkSession | None,
        now: datetime,
    ) -> dict[str, Any]:
        status = self.derive_status(session, fab)
        elapsed = SessionClock.from_session(session).elapsed(now) if session else 0
        return {
            "fab_id": fab_id,
            "kind": kind.value,
            "status": status.value,
            "session_id": session.session_id if session else None,
            "worker_id": session.worker_id if session else None,
            "total_time_spent": session.total_time_spent if session else 0,
            "elapsed_seconds": elapsed,
            "elapsed_display": format_duration(elapsed),
            "current_session_start_time": (
                format_timestamp(session.current_session_start_time)
                if session and session.current_session_start_time
                else None
            ),
            "last_action_time": (
                format_timestamp(session.last_action_time) if session and session.last_action_time else None
            ),
            "on_hold": bool(fab.get("on_hold")),
            "available_actions": available_actions(status),
            "notes": list(session.notes) if session else [],
        }

    async def _send(self, fab_id: int, kind: WorkKind, command: SessionCommand) -> None:
        extra = {"fab_id": fab_id, "kind": kind.value, "action": command.action}
        try:
            await asyncio.to_thread(self._gateway.manage_session, fab_id, kind, command)
        except GatewayError:
            logger.warning("session mutation failed", extra=extra, exc_info=True)
            raise
        logger.info("session %s recorded", command.action, extra=extra)

    async def _set_hold(self, fab_id: int, on_hold: bool) -> None:
        await asyncio.to_thread(self._gateway.set_hold, fab_id, on_hold)

    async def _restore_hold(self, fab_id: int, kind: WorkKind, on_hold: bool) -> None:
        try:
            await self._set_hold(fab_id, on_hold)
        except GatewayError:
            logger.error(
                "failed to restore hold flag",
                extra={"fab_id": fab_id, "kind": kind.value, "action": "on_hold"},
                exc_info=True,
            )

    async def _refresh(self, fab_id: int, kind: WorkKind) -> dict[str, Any]:
        fab, session = await self._load(fab_id, kind)
        return self._build_view(fab_id, kind, fab, session, self._clock())

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    async def get_view(self, fab_id: int, kind: WorkKind, *, now: datetime | None = None) -> dict[str, Any]:
        fab, session = await self._load(fab_id, kind)
        return self._build_view(fab_id, kind, fab, session, now or self._clock())

    async def history(self, fab_id: int, kind: WorkKind) -> list[dict[str, Any]]:
        if await asyncio.to_thread(self._gateway.get_fab, fab_id) is None:
            raise NotFoundError("FAB not found")
        sessions = await asyncio.to_thread(self._gateway.session_history, fab_id, kind)
        items: list[dict[str, Any]] = []
        for session in reversed(sessions):
            payload = session.to_payload()
            payload["kind"] = kind.value
            payload["total_time_display"] = format_duration(session.total_time_spent)
            items.append(payload)
        return items

    async def ticks(self, fab_id: int, kind: WorkKind, *, limit: int | None = None) -> AsyncIterator[dict[str, Any]]:
        """Stream live snapshots derived from one fetch of the server record."""

        fab, session = await self._load(fab_id, kind)

        async def snapshot() -> dict[str, Any]:
            return self._build_view(fab_id, kind, fab, session, self._clock())

        async for view in tick_stream(snapshot, interval=self._tick_seconds, limit=limit):
            yield view

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    async def start(
        self,
        fab_id: int,
        kind: WorkKind,
        *,
        worker_id: int | None = None,
        note: str | None = None,
        at: datetime | None = None,
    ) -> dict[str, Any]:
        async with self._lock_for(fab_id, kind):
            fab, session = await self._load(fab_id, kind)
            self._check(session, fab, SessionAction.START)
            assignment = await asyncio.to_thread(self._gateway.get_assignment, fab_id, kind)
            if not assignment:
                label = "slab smith" if kind is WorkKind.SLAB_SMITH else "drafting"
                raise ValidationError(f"No {label} assignment found for this FAB")
            worker = worker_id or assignment.get("drafter_id") or assignment.get("started_by")
            command = SessionCommand(
                action=SessionAction.START.value,
                timestamp=at or self._clock(),
                worker_id=int(worker) if worker is not None else None,
                note=(note or "").strip() or None,
            )
            await self._send(fab_id, kind, command)
            return await self._refresh(fab_id, kind)

    async def pause(
        self,
        fab_id: int,
        kind: WorkKind,
        *,
        note: str | None = None,
        sqft: Any = None,
        work_percentage: Any = None,
        at: datetime | None = None,
    ) -> dict[str, Any]:
        percentage = validate_work_percentage(work_percentage) if kind.requires_work_percentage else None
        area = optional_float(sqft, "sqft")
        async with self._lock_for(fab_id, kind):
            fab, session = await self._load(fab_id, kind)
            self._check(session, fab, SessionAction.PAUSE)
            command = SessionCommand(
                action=SessionAction.PAUSE.value,
                timestamp=at or self._clock(),
                worker_id=session.worker_id if session else None,
                note=(note or "").strip() or None,
                sqft=area,
                work_percentage=percentage,
            )
            await self._send(fab_id, kind, command)
            return await self._refresh(fab_id, kind)

    async def resume(
        self,
        fab_id: int,
        kind: WorkKind,
        *,
        note: str | None = None,
        sqft: Any = None,
        at: datetime | None = None,
    ) -> dict[str, Any]:
        area = optional_float(sqft, "sqft")
        async with self._lock_for(fab_id, kind):
            fab, session = await self._load(fab_id, kind)
            previous = self.derive_status(session, fab)
            self._check(session, fab, SessionAction.RESUME)
            released = previous is SessionStatus.ON_HOLD
            if released:
                await self._set_hold(fab_id, False)
            command = SessionCommand(
                action=SessionAction.RESUME.value,
                timestamp=at or self._clock(),
                worker_id=session.worker_id if session else None,
                note=(note or "").strip() or None,
                sqft=area,
            )
            try:
                await self._send(fab_id, kind, command)
            except GatewayError:
                if released:
                    await self._restore_hold(fab_id, kind, True)
                raise
            return await self._refresh(fab_id, kind)

    async def end(
        self,
        fab_id: int,
        kind: WorkKind,
        *,
        note: str | None = None,
        sqft: Any = None,
        work_percentage: Any = None,
        at: datetime | None = None,
    ) -> dict[str, Any]:
        percentage = None
        if work_percentage not in (None, "") and kind.requires_work_percentage:
            percentage = validate_work_percentage(work_percentage)
        area = optional_float(sqft, "sqft")
        async with self._lock_for(fab_id, kind):
            fab, session = await self._load(fab_id, kind)
            self._check(session, fab, SessionAction.END)
            command = SessionCommand(
                action=SessionAction.END.value,
                timestamp=at or self._clock(),
                worker_id=session.worker_id if session else None,
                note=(note or "").strip() or None,
                sqft=area,
                work_percentage=percentage,
            )
            await self._send(fab_id, kind, command)
            return await self._refresh(fab_id, kind)

    async def hold(
        self,
        fab_id: int,
        kind: WorkKind,
        *,
        note: str | None = None,
        at: datetime | None = None,
    ) -> dict[str, Any]:
        """Put the fab on hold and pause the running session with a tagged note."""

        text = (note or "").strip() or None
        async with self._lock_for(fab_id, kind):
            fab, session = await self._load(fab_id, kind)
            self._check(session, fab, SessionAction.ON_HOLD)
            previous_hold = bool(fab.get("on_hold"))
            await self._set_hold(fab_id, True)
            try:
                if text:
                    await asyncio.to_thread(self._gateway.create_note, fab_id, text, fab.get("current_stage"))
                command = SessionCommand(
                    action=SessionAction.PAUSE.value,
                    timestamp=at or self._clock(),
                    worker_id=session.worker_id if session else None,
                    note=hold_note(text),
                )
                await self._send(fab_id, kind, command)
            except GatewayError:
                await self._restore_hold(fab_id, kind, previous_hold)
                raise
            return await self._refresh(fab_id, kind)


_service = WorkSessionService()


def get_session_service() -> WorkSessionService:
    return _service


def reset_session_state() -> None:
    _service.reset()
