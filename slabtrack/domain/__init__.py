"""Domain layer definitions."""

from .clock import SessionClock, tick_stream
from .jobs import STAGE_DECORATORS, FabJob, StageDecorator, adapt_for_board, fab_to_job
from .sessions import (
    SessionAction,
    SessionStatus,
    WorkKind,
    WorkSession,
    available_actions,
    can_apply,
    next_status,
)

__all__ = [
    "FabJob",
    "STAGE_DECORATORS",
    "SessionAction",
    "SessionClock",
    "SessionStatus",
    "StageDecorator",
    "WorkKind",
    "WorkSession",
    "adapt_for_board",
    "available_actions",
    "can_apply",
    "fab_to_job",
    "next_status",
    "tick_stream",
]
