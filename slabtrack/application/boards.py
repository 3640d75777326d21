"""Role boards: fetch a stage's fabs, adapt them and serve them through the grid."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from slabtrack.core.dates import local_today
from slabtrack.core.schema import GridPage, TableState
from slabtrack.core.stages import BoardDefinition, StageAccess, get_board
from slabtrack.core.validation import AccessDeniedError, NotFoundError, ValidationError
from slabtrack.domain import adapt_for_board
from slabtrack.exporters.board_csv import render_board_csv
from slabtrack.exporters.board_xlsx import render_board_xlsx
from slabtrack.grid.columns import ColumnDef, board_columns
from slabtrack.grid.table import group_rows, run_query, select_rows
from slabtrack.infrastructure import FabGateway, get_fab_gateway

logger = logging.getLogger(__name__)

PAGE_LIMIT = 100

EXPORT_FORMATS = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class BoardService:
    def __init__(
        self,
        gateway_provider: Callable[[], FabGateway] = get_fab_gateway,
        *,
        timezone: str = "UTC",
    ) -> None:
        self._gateway_provider = gateway_provider
        self._timezone = timezone

    def configure(self, *, timezone: str | None = None) -> None:
        if timezone:
            self._timezone = timezone

    @property
    def timezone(self) -> str:
        return self._timezone

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _board(self, board_key: str, access: StageAccess) -> BoardDefinition:
        board = get_board(board_key)
        if board is None:
            raise NotFoundError(f"unknown board: {board_key}")
        if not access.can_access(board_key):
            raise AccessDeniedError(f"board {board_key} is not available for this role")
        return board

    def fetch_fabs(self, stage: str) -> list[dict[str, Any]]:
        """Page through the upstream list until its reported total is reached."""

        gateway = self._gateway_provider()
        collected: list[dict[str, Any]] = []
        skip = 0
        while True:
            items, total = gateway.list_fabs(current_stage=stage, skip=skip, limit=PAGE_LIMIT)
            collected.extend(items)
            skip += len(items)
            if not items or skip >= total:
                break
        return collected

    def board_rows(self, board: BoardDefinition) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for fab in self.fetch_fabs(board.stage):
            try:
                rows.append(adapt_for_board(board.key, fab, tz=self._timezone).to_row())
            except PydanticValidationError as exc:
                logger.warning(
                    "skipping malformed fab record (%s errors)",
                    exc.error_count(),
                    extra={"board": board.key, "fab_id": fab.get("id")},
                )
        logger.info("board loaded", extra={"board": board.key})
        return rows

    def columns(self, board_key: str) -> list[ColumnDef]:
        board = get_board(board_key)
        if board is None:
            raise NotFoundError(f"unknown board: {board_key}")
        return board_columns(board)

    # ------------------------------------------------------------------
    # use cases
    # ------------------------------------------------------------------
    def list_boards(self, access: StageAccess) -> dict[str, Any]:
        return {
            "access": access.to_dict(),
            "items": [board.to_dict() for board in access.allowed_boards],
        }

    def stage_counts(self, access: StageAccess) -> list[dict[str, Any]]:
        gateway = self._gateway_provider()
        counts: list[dict[str, Any]] = []
        for board in access.allowed_boards:
            _, total = gateway.list_fabs(current_stage=board.stage, skip=0, limit=1)
            counts.append({"board": board.key, "stage_name": board.stage, "title": board.title, "fab_count": total})
        return counts

    def query(
        self,
        board_key: str,
        access: StageAccess,
        state: TableState,
        *,
        today: date | None = None,
    ) -> GridPage:
        board = self._board(board_key, access)
        rows = self.board_rows(board)
        return run_query(rows, board_columns(board), state, today=today or local_today(self._timezone))

    def grouped(
        self,
        board_key: str,
        access: StageAccess,
        state: TableState,
        group_by: str | None,
        *,
        today: date | None = None,
    ) -> dict[str, list[dict[str, Any]]]:
        board = self._board(board_key, access)
        selection = select_rows(
            self.board_rows(board),
            board_columns(board),
            state,
            today=today or local_today(self._timezone),
        )
        return group_rows(selection.rows, group_by)

    def export(
        self,
        board_key: str,
        access: StageAccess,
        state: TableState,
        fmt: str,
        *,
        today: date | None = None,
    ) -> tuple[str, str, bytes]:
        """Render every filtered row, ignoring pagination.

        Returns ``(filename, media_type, content)``.
        """

        if fmt not in EXPORT_FORMATS:
            raise ValidationError(f"unsupported export format: {fmt}")
        board = self._board(board_key, access)
        current = today or local_today(self._timezone)
        selection = select_rows(self.board_rows(board), board_columns(board), state, today=current)
        if fmt == "csv":
            content = render_board_csv(selection.rows, selection.columns).encode("utf-8")
        else:
            content = render_board_xlsx(selection.rows, selection.columns, sheet_name=board.title)
        logger.info("board exported", extra={"board": board.key, "action": fmt})
        return f"{board.key}-{current.isoformat()}.{fmt}", EXPORT_FORMATS[fmt], content


_service = BoardService()


def get_board_service() -> BoardService:
    return _service
