"""Application services."""

from .boards import BoardService, get_board_service
from .fabs import FabActionService, get_fab_service
from .preferences import (
    ClientStateService,
    configure_client_state_repository,
    get_client_state_service,
    reset_client_state,
)
from .sessions import WorkSessionService, get_session_service, reset_session_state

__all__ = [
    "BoardService",
    "ClientStateService",
    "FabActionService",
    "WorkSessionService",
    "configure_client_state_repository",
    "get_board_service",
    "get_client_state_service",
    "get_fab_service",
    "get_session_service",
    "reset_client_state",
    "reset_session_state",
]
