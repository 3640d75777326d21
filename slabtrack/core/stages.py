"""Job stage catalogue and role based board access."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

_FALLBACK_CATALOGUE: dict[str, Any] = {
    "columns": {
        "fab_id": "FAB ID",
        "fab_type": "FAB Type",
        "job_no": "Job No",
        "job_name": "Job Name",
        "date": "Date",
        "actions": "Actions",
    },
    "boards": {
        "sales": {
            "stage": "fab_created",
            "route": "/job/sales",
            "title": "Sales - New FAB IDs",
            "columns": ["fab_id", "fab_type", "job_no", "job_name", "date", "actions"],
        }
    },
    "roles": {"sales": ["sales"]},
    "default_role_board": "sales",
    "move_targets": {},
}


@dataclass(slots=True)
class BoardDefinition:
    """A role page listing the fabs that sit in one stage."""

    key: str
    stage: str
    route: str
    title: str
    columns: list[str]
    date_header: str = "Date"
    work_kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "stage": self.stage,
            "route": self.route,
            "title": self.title,
            "date_header": self.date_header,
            "work_kind": self.work_kind,
            "columns": list(self.columns),
        }


@dataclass(slots=True)
class StageAccess:
    is_super_admin: bool
    default_board: BoardDefinition
    allowed_boards: list[BoardDefinition] = field(default_factory=list)

    def can_access(self, board_key: str) -> bool:
        if self.is_super_admin:
            return True
        return any(board.key == board_key for board in self.allowed_boards)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_super_admin": self.is_super_admin,
            "default_board": self.default_board.key,
            "allowed_boards": [board.key for board in self.allowed_boards],
        }


def _load_catalogue() -> dict[str, Any]:
    path = CONFIG_DIR / "stages.yaml"
    if not path.exists():
        return dict(_FALLBACK_CATALOGUE)
    with path.open("r", encoding="utf-8") as fp:
        return yaml.safe_load(fp) or dict(_FALLBACK_CATALOGUE)


CATALOGUE = _load_catalogue()

COLUMN_HEADERS: dict[str, str] = dict(CATALOGUE.get("columns") or {})

JOB_STAGES: dict[str, BoardDefinition] = {
    key: BoardDefinition(
        key=key,
        stage=str(entry["stage"]),
        route=str(entry.get("route") or f"/job/{key}"),
        title=str(entry.get("title") or key),
        columns=list(entry.get("columns") or []),
        date_header=str(entry.get("date_header") or "Date"),
        work_kind=entry.get("work_kind"),
    )
    for key, entry in (CATALOGUE.get("boards") or {}).items()
}

ROLE_STAGE_MAP: dict[str, list[str]] = {
    str(role).lower(): [board for board in boards if board in JOB_STAGES]
    for role, boards in (CATALOGUE.get("roles") or {}).items()
}

MOVE_TARGETS: dict[str, str] = dict(CATALOGUE.get("move_targets") or {})

DEFAULT_BOARD = str(CATALOGUE.get("default_role_board") or next(iter(JOB_STAGES)))


def get_board(board_key: str) -> BoardDefinition | None:
    return JOB_STAGES.get(board_key)


def access_for(role: str | None, *, is_super_admin: bool = False) -> StageAccess:
    """Resolve which boards a role may open.

    Super admins see every board.  Anyone else sees the boards mapped to
    their role, and an unknown role lands on the default board only.
    """

    if is_super_admin:
        return StageAccess(
            is_super_admin=True,
            default_board=JOB_STAGES[DEFAULT_BOARD],
            allowed_boards=list(JOB_STAGES.values()),
        )

    keys = ROLE_STAGE_MAP.get((role or "").strip().lower()) or [DEFAULT_BOARD]
    boards = [JOB_STAGES[key] for key in keys]
    return StageAccess(is_super_admin=False, default_board=boards[0], allowed_boards=boards)


def stage_from_route(pathname: str) -> str | None:
    matches = [board for board in JOB_STAGES.values() if pathname.startswith(board.route)]
    if not matches:
        return None
    return max(matches, key=lambda board: len(board.route)).stage


def stage_catalogue() -> dict[str, Any]:
    return {
        "boards": [board.to_dict() for board in JOB_STAGES.values()],
        "move_targets": [{"value": value, "label": label} for value, label in MOVE_TARGETS.items()],
        "roles": {role: list(boards) for role, boards in ROLE_STAGE_MAP.items()},
    }
