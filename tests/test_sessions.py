from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from slabtrack.application.sessions import HOLD_TAG, WorkSessionService, hold_note
from slabtrack.core.dates import format_duration
from slabtrack.core.validation import NotFoundError, SessionTransitionError, ValidationError
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
from slabtrack.infrastructure import GatewayError, InMemoryFabGateway, SessionCommand

T0 = datetime(2025, 3, 3, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class FailingPauseGateway(InMemoryFabGateway):
    def manage_session(self, fab_id, kind, command: SessionCommand):
        if command.action == "pause":
            raise GatewayError("upstream unavailable", status_code=503)
        return super().manage_session(fab_id, kind, command)


class FailingResumeGateway(InMemoryFabGateway):
    def manage_session(self, fab_id, kind, command: SessionCommand):
        if command.action == "resume":
            raise GatewayError("upstream unavailable", status_code=503)
        return super().manage_session(fab_id, kind, command)


def _fab(fab_id: int, **extra) -> dict:
    record = {
        "id": fab_id,
        "job_id": 100 + fab_id,
        "fab_type": "Standard",
        "current_stage": "drafting",
        "created_at": "2025-03-01T10:00:00",
        "job_details": {"name": f"Kitchen {fab_id}", "job_number": f"J-{fab_id}"},
    }
    record.update(extra)
    return record


@pytest.fixture()
def clock():
    return FakeClock(T0)


@pytest.fixture()
def gateway(clock):
    memory = InMemoryFabGateway(clock=clock)
    memory.seed([_fab(1), _fab(2)])
    memory.assign(1, WorkKind.DRAFTING, 7)
    return memory


@pytest.fixture()
def service(gateway, clock):
    return WorkSessionService(lambda: gateway, clock=clock, tick_seconds=0)


def _session_calls(gateway: InMemoryFabGateway) -> list:
    return [call for call in gateway.calls if call[0] == "manage_session"]


# ----------------------------------------------------------------------
# state machine
# ----------------------------------------------------------------------
def test_transition_table():
    assert next_status(SessionStatus.IDLE, SessionAction.START) is SessionStatus.ACTIVE
    assert next_status(SessionStatus.ACTIVE, SessionAction.ON_HOLD) is SessionStatus.ON_HOLD
    assert next_status(SessionStatus.ON_HOLD, SessionAction.RESUME) is SessionStatus.ACTIVE
    assert next_status(SessionStatus.PAUSED, SessionAction.END) is SessionStatus.ENDED

    with pytest.raises(SessionTransitionError) as excinfo:
        next_status(SessionStatus.ENDED, SessionAction.START)
    assert excinfo.value.status == "ended"
    assert excinfo.value.action == "start"


def test_available_actions_per_status():
    assert available_actions(SessionStatus.IDLE) == ["start"]
    assert available_actions(SessionStatus.ACTIVE) == ["pause", "end", "on_hold"]
    assert available_actions(SessionStatus.PAUSED) == ["resume", "end"]
    assert available_actions(SessionStatus.ON_HOLD) == ["resume"]
    assert available_actions(SessionStatus.ENDED) == []


def test_status_parse_accepts_upstream_spellings():
    assert SessionStatus.parse("In Progress") is SessionStatus.ACTIVE
    assert SessionStatus.parse("on-hold") is SessionStatus.ON_HOLD
    assert SessionStatus.parse("completed") is SessionStatus.ENDED
    assert SessionStatus.parse("mystery") is SessionStatus.IDLE
    assert SessionStatus.parse(None) is SessionStatus.IDLE


def test_work_session_from_payload_counts_running_stretch():
    session = WorkSession.from_payload(
        {
            "status": "active",
            "drafter_id": "7",
            "total_time_spent": "120.0",
            "current_session_start_time": "2025-03-03T09:00:00.123456",
        },
        fab_id=1,
        kind=WorkKind.DRAFTING,
    )
    assert session.worker_id == 7
    assert session.elapsed(T0 + timedelta(seconds=30)) == 150


def test_work_session_apply_accumulates_only_while_active():
    session = WorkSession(fab_id=1, kind=WorkKind.SLAB_SMITH)
    session.apply(SessionAction.START, T0)
    session.apply(SessionAction.PAUSE, T0 + timedelta(seconds=90))
    session.apply(SessionAction.RESUME, T0 + timedelta(seconds=500))
    session.apply(SessionAction.END, T0 + timedelta(seconds=530))

    assert session.status is SessionStatus.ENDED
    assert session.total_time_spent == 120
    assert [note["action"] for note in session.notes] == ["start", "pause", "resume", "end"]


# ----------------------------------------------------------------------
# clock
# ----------------------------------------------------------------------
def test_clock_excludes_paused_intervals():
    timer = SessionClock()
    timer.start(T0)
    timer.pause(T0 + timedelta(seconds=100))
    timer.resume(T0 + timedelta(seconds=160))
    timer.pause(T0 + timedelta(seconds=200))
    timer.resume(T0 + timedelta(seconds=230))

    assert timer.total_paused == 90
    assert timer.elapsed(T0 + timedelta(seconds=300)) == 210


def test_clock_freezes_while_paused_and_after_end():
    timer = SessionClock()
    timer.start(T0)
    timer.pause(T0 + timedelta(seconds=40))
    assert timer.elapsed(T0 + timedelta(seconds=400)) == 40
    assert not timer.running

    timer.end(T0 + timedelta(seconds=500))
    assert timer.elapsed(T0 + timedelta(hours=5)) == 40


def test_clock_never_negative():
    timer = SessionClock()
    timer.start(T0)
    assert timer.elapsed(T0 - timedelta(seconds=30)) == 0
    assert SessionClock().elapsed(T0) == 0


def test_tick_stream_respects_limit():
    produced: list[int] = []

    async def produce() -> int:
        produced.append(len(produced) + 1)
        return produced[-1]

    async def collect() -> list[int]:
        return [value async for value in tick_stream(produce, interval=0, limit=3)]

    assert asyncio.run(collect()) == [1, 2, 3]


def test_format_duration():
    assert format_duration(0) == "00:00:00"
    assert format_duration(3725) == "01:02:05"
    assert format_duration(90000) == "25:00:00"
    assert format_duration(-5) == "00:00:00"


# ----------------------------------------------------------------------
# service
# ----------------------------------------------------------------------
def test_full_session_lifecycle(service, gateway, clock):
    async def scenario() -> list[dict]:
        views = [await service.start(1, WorkKind.DRAFTING)]
        clock.advance(600)
        views.append(await service.pause(1, WorkKind.DRAFTING, work_percentage=50, sqft="12.5"))
        clock.advance(300)
        views.append(await service.get_view(1, WorkKind.DRAFTING))
        clock.advance(300)
        views.append(await service.resume(1, WorkKind.DRAFTING))
        clock.advance(120)
        views.append(await service.get_view(1, WorkKind.DRAFTING))
        views.append(await service.end(1, WorkKind.DRAFTING, note="done"))
        return views

    started, paused, while_paused, resumed, running, ended = asyncio.run(scenario())

    assert started["status"] == "active"
    assert started["worker_id"] == 7
    assert started["elapsed_seconds"] == 0

    assert paused["status"] == "paused"
    assert paused["total_time_spent"] == 600
    assert while_paused["elapsed_seconds"] == 600
    assert while_paused["elapsed_display"] == "00:10:00"

    assert resumed["status"] == "active"
    assert running["elapsed_seconds"] == 720

    assert ended["status"] == "ended"
    assert ended["total_time_spent"] == 720
    assert ended["available_actions"] == []

    wire = _session_calls(gateway)[1][2]
    assert wire["work_percentage"] == 50
    assert wire["sqft_drafted"] == 12.5
    assert wire["drafter_id"] == 7


def test_illegal_transition_never_reaches_gateway(service, gateway):
    with pytest.raises(SessionTransitionError):
        asyncio.run(service.pause(1, WorkKind.DRAFTING, work_percentage=10))
    assert _session_calls(gateway) == []


def test_pause_requires_work_percentage_for_drafting(service, gateway):
    async def scenario() -> None:
        await service.start(1, WorkKind.DRAFTING)
        await service.pause(1, WorkKind.DRAFTING)

    with pytest.raises(ValidationError, match="work percentage"):
        asyncio.run(scenario())
    assert [call[2]["action"] for call in _session_calls(gateway)] == ["start"]


def test_slab_smith_pause_needs_no_percentage(service, gateway, clock):
    gateway.create_slabsmith_assignment(1, 7, T0)

    async def scenario() -> dict:
        await service.start(1, WorkKind.SLAB_SMITH)
        clock.advance(45)
        return await service.pause(1, WorkKind.SLAB_SMITH, sqft=3)

    view = asyncio.run(scenario())
    assert view["status"] == "paused"
    assert view["total_time_spent"] == 45
    wire = _session_calls(gateway)[-1][2]
    assert wire["sqft_completed"] == 3
    assert "work_percentage" not in wire


def test_start_requires_assignment(service):
    with pytest.raises(ValidationError, match="No drafting assignment found for this FAB"):
        asyncio.run(service.start(2, WorkKind.DRAFTING))


def test_unknown_fab_is_not_found(service):
    with pytest.raises(NotFoundError):
        asyncio.run(service.get_view(404, WorkKind.DRAFTING))


def test_hold_pauses_with_tagged_note_and_resume_releases(service, gateway, clock):
    async def scenario() -> tuple[dict, dict]:
        await service.start(1, WorkKind.DRAFTING)
        clock.advance(60)
        held = await service.hold(1, WorkKind.DRAFTING, note="waiting on slab")
        clock.advance(600)
        resumed = await service.resume(1, WorkKind.DRAFTING)
        return held, resumed

    held, resumed = asyncio.run(scenario())

    assert held["status"] == "on_hold"
    assert held["on_hold"] is True
    assert held["available_actions"] == ["resume"]
    assert held["elapsed_seconds"] == 60
    assert held["notes"][-1]["note"] == f"{HOLD_TAG} waiting on slab"
    assert gateway.get_fab(1)["fab_notes"][-1]["note"] == "waiting on slab"

    assert resumed["status"] == "active"
    assert resumed["on_hold"] is False
    assert resumed["elapsed_seconds"] == 60


def test_failed_hold_restores_previous_flag(clock):
    gateway = FailingPauseGateway(clock=clock)
    gateway.seed([_fab(1)])
    gateway.assign(1, WorkKind.DRAFTING, 7)
    service = WorkSessionService(lambda: gateway, clock=clock)

    async def scenario() -> None:
        await service.start(1, WorkKind.DRAFTING)
        await service.hold(1, WorkKind.DRAFTING)

    with pytest.raises(GatewayError):
        asyncio.run(scenario())

    assert gateway.get_fab(1)["on_hold"] is False
    view = asyncio.run(service.get_view(1, WorkKind.DRAFTING))
    assert view["status"] == "active"


def test_failed_resume_from_hold_restores_flag(clock):
    gateway = FailingResumeGateway(clock=clock)
    gateway.seed([_fab(1)])
    gateway.assign(1, WorkKind.DRAFTING, 7)
    service = WorkSessionService(lambda: gateway, clock=clock)

    async def scenario() -> None:
        await service.start(1, WorkKind.DRAFTING)
        clock.advance(30)
        await service.hold(1, WorkKind.DRAFTING)
        await service.resume(1, WorkKind.DRAFTING)

    with pytest.raises(GatewayError):
        asyncio.run(scenario())

    assert gateway.get_fab(1)["on_hold"] is True
    view = asyncio.run(service.get_view(1, WorkKind.DRAFTING))
    assert view["status"] == "on_hold"
    assert view["available_actions"] == ["resume"]
    assert view["elapsed_seconds"] == 30


def test_repeated_pause_resume_excludes_every_pause(service, clock):
    async def scenario() -> tuple[list[dict], dict]:
        paused: list[dict] = []
        await service.start(1, WorkKind.DRAFTING)
        for _ in range(3):
            clock.advance(100)
            paused.append(await service.pause(1, WorkKind.DRAFTING, work_percentage=25))
            clock.advance(1000)
            await service.resume(1, WorkKind.DRAFTING)
        clock.advance(40)
        return paused, await service.get_view(1, WorkKind.DRAFTING)

    paused, running = asyncio.run(scenario())
    assert [view["total_time_spent"] for view in paused] == [100, 200, 300]
    assert running["status"] == "active"
    assert running["elapsed_seconds"] == 340
    assert running["elapsed_display"] == "00:05:40"


def test_ended_session_cannot_restart(service):
    async def scenario() -> None:
        await service.start(1, WorkKind.DRAFTING)
        await service.end(1, WorkKind.DRAFTING)
        await service.start(1, WorkKind.DRAFTING)

    with pytest.raises(SessionTransitionError):
        asyncio.run(scenario())


def test_history_lists_newest_first(service, gateway, clock):
    gateway.assign(1, WorkKind.REVISION, 7)

    async def scenario() -> list[dict]:
        await service.start(1, WorkKind.REVISION)
        clock.advance(75)
        await service.end(1, WorkKind.REVISION, work_percentage=100)
        return await service.history(1, WorkKind.REVISION)

    items = asyncio.run(scenario())
    assert len(items) == 1
    assert items[0]["kind"] == "revision"
    assert items[0]["total_time_display"] == "00:01:15"
    assert _session_calls(gateway)[0][2]["is_revision"] is True


def test_ticks_stream_snapshots(service, clock):
    async def scenario() -> list[dict]:
        await service.start(1, WorkKind.DRAFTING)
        clock.advance(5)
        return [view async for view in service.ticks(1, WorkKind.DRAFTING, limit=2)]

    views = asyncio.run(scenario())
    assert len(views) == 2
    assert all(view["status"] == "active" for view in views)
    assert views[0]["elapsed_seconds"] == 5


def test_hold_note_without_text():
    assert hold_note(None) == HOLD_TAG
    assert hold_note("  rain  ") == f"{HOLD_TAG} rain"
