"""Live elapsed-time tracking for work sessions."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from .sessions import SessionStatus, WorkSession

T = TypeVar("T")


@dataclass(slots=True)
class SessionClock:
    """Wall-clock timer that excludes paused stretches.

    ``elapsed = now - started_at - total_paused``.  While paused or ended the
    reference point is frozen at the pause/end instant.
    """

    started_at: datetime | None = None
    paused_at: datetime | None = None
    ended_at: datetime | None = None
    total_paused: float = 0.0

    def start(self, at: datetime) -> None:
        self.started_at = at
        self.paused_at = None
        self.ended_at = None
        self.total_paused = 0.0

    def pause(self, at: datetime) -> None:
        if self.started_at is None or self.paused_at is not None or self.ended_at is not None:
            return
        self.paused_at = at

    def resume(self, at: datetime) -> None:
        if self.paused_at is None:
            return
        self.total_paused += max(0.0, (at - self.paused_at).total_seconds())
        self.paused_at = None

    def end(self, at: datetime) -> None:
        if self.started_at is None or self.ended_at is not None:
            return
        if self.paused_at is not None:
            self.resume(at)
        self.ended_at = at

    @property
    def running(self) -> bool:
        return self.started_at is not None and self.paused_at is None and self.ended_at is None

    def elapsed(self, now: datetime) -> int:
        if self.started_at is None:
            return 0
        reference = self.ended_at or self.paused_at or now
        seconds = (reference - self.started_at).total_seconds() - self.total_paused
        return max(0, int(seconds))

    @classmethod
    def from_session(cls, session: WorkSession) -> "SessionClock":
        """Anchor a clock on the server record instead of local accumulators."""

        clock = cls()
        if session.status is SessionStatus.IDLE:
            return clock
        anchor = session.current_session_start_time or session.last_action_time
        if anchor is None:
            return clock
        if session.status is SessionStatus.ACTIVE:
            clock.started_at = anchor - timedelta(seconds=session.total_time_spent)
            return clock
        # Not accruing: freeze the reference so elapsed equals the booked total.
        frozen_at = session.last_action_time or anchor
        clock.started_at = frozen_at - timedelta(seconds=session.total_time_spent)
        if session.status is SessionStatus.ENDED:
            clock.ended_at = frozen_at
        else:
            clock.paused_at = frozen_at
        return clock


async def tick_stream(
    produce: Callable[[], Awaitable[T]],
    *,
    interval: float = 1.0,
    limit: int | None = None,
) -> AsyncIterator[T]:
    """Yield ``produce()`` immediately and then once every ``interval`` seconds.

    The stream ends after ``limit`` values; closing the generator cancels the
    pending sleep.
    """

    emitted = 0
    while limit is None or emitted < limit:
        yield await produce()
        emitted += 1
        if limit is not None and emitted >= limit:
            break
        await asyncio.sleep(interval)
