"""Column definitions and the header dropdown actions of the data grid."""
from __future__ import annotations

from dataclasses import dataclass

from slabtrack.core.schema import SortSpec, TableState
from slabtrack.core.stages import COLUMN_HEADERS, BoardDefinition
from slabtrack.core.validation import NotFoundError, ValidationError

ACTIONS_COLUMN = "actions"


@dataclass(slots=True, frozen=True)
class ColumnDef:
    id: str
    header: str
    sortable: bool = True
    hideable: bool = True
    pinnable: bool = True
    movable: bool = True


def _header_for(column_id: str) -> str:
    return COLUMN_HEADERS.get(column_id) or column_id.replace("_", " ").title()


def actions_column() -> ColumnDef:
    return ColumnDef(
        id=ACTIONS_COLUMN,
        header=_header_for(ACTIONS_COLUMN),
        sortable=False,
        hideable=False,
        pinnable=True,
        movable=False,
    )


def board_columns(board: BoardDefinition) -> list[ColumnDef]:
    columns: list[ColumnDef] = []
    for column_id in board.columns:
        if column_id == ACTIONS_COLUMN:
            continue
        header = board.date_header if column_id == "date" else _header_for(column_id)
        columns.append(ColumnDef(id=column_id, header=header))
    columns.append(actions_column())
    return columns


def effective_order(column_ids: list[str], preferred: list[str]) -> list[str]:
    """Apply a stored order, keeping unknown ids out and new columns at the end."""

    known = set(column_ids)
    ordered = [column_id for column_id in preferred if column_id in known]
    seen = set(ordered)
    ordered.extend(column_id for column_id in column_ids if column_id not in seen)
    return ordered


def current_sort(state: TableState, column_id: str) -> str | None:
    for spec in state.sorting:
        if spec.id == column_id:
            return "desc" if spec.desc else "asc"
    return None


def _set_sort(state: TableState, column_id: str, direction: str | None) -> None:
    if direction is None:
        state.sorting = [spec for spec in state.sorting if spec.id != column_id]
    else:
        state.sorting = [SortSpec(id=column_id, desc=direction == "desc")]


def _pin(state: TableState, column_id: str, side: str | None) -> None:
    pinning = state.column_pinning
    already = column_id in (pinning.left if side == "left" else pinning.right) if side else False
    pinning.left = [item for item in pinning.left if item != column_id]
    pinning.right = [item for item in pinning.right if item != column_id]
    if side == "left" and not already:
        pinning.left.append(column_id)
    elif side == "right" and not already:
        pinning.right.append(column_id)


def _move(state: TableState, columns: list[ColumnDef], column_id: str, offset: int) -> None:
    movable = {column.id for column in columns if column.movable}
    order = effective_order([column.id for column in columns], state.column_order)
    index = order.index(column_id)
    target = index + offset
    if target < 0 or target >= len(order) or order[target] not in movable:
        state.column_order = order
        return
    order[index], order[target] = order[target], order[index]
    state.column_order = order


COLUMN_ACTIONS = (
    "sort_asc",
    "sort_desc",
    "clear_sort",
    "cycle_sort",
    "pin_left",
    "pin_right",
    "unpin",
    "move_left",
    "move_right",
    "hide",
    "show",
    "toggle_visibility",
)


def apply_column_action(
    state: TableState,
    columns: list[ColumnDef],
    column_id: str,
    action: str,
) -> TableState:
    """Return a copy of ``state`` with a header dropdown ``action`` applied."""

    column = next((item for item in columns if item.id == column_id), None)
    if column is None:
        raise NotFoundError(f"unknown column: {column_id}")
    if action not in COLUMN_ACTIONS:
        raise ValidationError(f"unknown column action: {action}")

    updated = state.model_copy(deep=True)
    if action in {"sort_asc", "sort_desc", "clear_sort", "cycle_sort"}:
        if not column.sortable:
            raise ValidationError(f"column {column_id} is not sortable")
        current = current_sort(updated, column_id)
        if action == "cycle_sort":
            next_direction = {None: "asc", "asc": "desc", "desc": None}[current]
        elif action == "clear_sort":
            next_direction = None
        else:
            wanted = "asc" if action == "sort_asc" else "desc"
            next_direction = None if current == wanted else wanted
        _set_sort(updated, column_id, next_direction)
    elif action in {"pin_left", "pin_right", "unpin"}:
        if not column.pinnable:
            raise ValidationError(f"column {column_id} cannot be pinned")
        _pin(updated, column_id, {"pin_left": "left", "pin_right": "right", "unpin": None}[action])
    elif action in {"move_left", "move_right"}:
        if not column.movable:
            raise ValidationError(f"column {column_id} cannot be moved")
        _move(updated, columns, column_id, -1 if action == "move_left" else 1)
    else:
        if not column.hideable:
            raise ValidationError(f"column {column_id} cannot be hidden")
        visible = updated.column_visibility.get(column_id, True)
        if action == "hide":
            visible = False
        elif action == "show":
            visible = True
        else:
            visible = not visible
        updated.column_visibility = {**updated.column_visibility, column_id: visible}
    return updated
