"""Row model of the data grid: filter, choose columns, sort and paginate."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable

import pandas as pd

from slabtrack.core.schema import GridColumn, GridPage, TableState
from slabtrack.grid.columns import ACTIONS_COLUMN, ColumnDef, current_sort, effective_order
from slabtrack.grid.filters import FILTER_COLUMNS, apply_filters, facet_values


@dataclass(slots=True)
class GridSelection:
    """Filtered and sorted rows plus the columns to render, before paging."""

    rows: list[dict[str, Any]]
    columns: list[GridColumn]
    facets: dict[str, list[str]]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def columns_with_data(rows: list[dict[str, Any]], columns: list[ColumnDef]) -> list[ColumnDef]:
    """Keep columns that hold at least one value; ``actions`` always stays."""

    return [
        column
        for column in columns
        if column.id == ACTIONS_COLUMN or any(not _is_empty(row.get(column.id)) for row in rows)
    ]


def _frame(rows: list[dict[str, Any]], columns: list[ColumnDef]) -> pd.DataFrame:
    frame = pd.DataFrame.from_records(rows) if rows else pd.DataFrame()
    wanted = [column.id for column in columns if column.id != ACTIONS_COLUMN]
    for column_id in (*FILTER_COLUMNS, *wanted):
        if column_id not in frame.columns:
            frame[column_id] = None
    return frame


def _sort_key(series: pd.Series) -> pd.Series:
    cleaned = series.map(lambda value: None if _is_empty(value) else value)
    numeric = pd.to_numeric(cleaned, errors="coerce")
    if cleaned.notna().sum() and numeric.notna().sum() == cleaned.notna().sum():
        return numeric
    return cleaned.map(lambda value: None if value is None else str(value).lower())


def sort_frame(frame: pd.DataFrame, state: TableState, sortable: set[str]) -> pd.DataFrame:
    specs = [spec for spec in state.sorting if spec.id in sortable and spec.id in frame.columns]
    if not specs or frame.empty:
        return frame
    keys = pd.DataFrame({f"__key{index}": _sort_key(frame[spec.id]) for index, spec in enumerate(specs)})
    ordered = keys.sort_values(
        by=list(keys.columns),
        ascending=[not spec.desc for spec in specs],
        kind="mergesort",
        na_position="last",
    )
    return frame.loc[ordered.index]


def layout_columns(columns: list[ColumnDef], state: TableState) -> list[GridColumn]:
    """Resolve visibility, ordering and pinning into the rendered column list."""

    if state.visible_columns is not None:
        explicit = set(state.visible_columns)
        columns = [column for column in columns if column.id in explicit or column.id == ACTIONS_COLUMN]

    shown = [
        column
        for column in columns
        if not column.hideable or state.column_visibility.get(column.id, True)
    ]
    by_id = {column.id: column for column in shown}
    order = effective_order(list(by_id), state.column_order)

    left = [column_id for column_id in state.column_pinning.left if column_id in by_id]
    right = [column_id for column_id in state.column_pinning.right if column_id in by_id and column_id not in left]
    center = [column_id for column_id in order if column_id not in left and column_id not in right]

    result: list[GridColumn] = []
    for side, ids in (("left", left), (None, center), ("right", right)):
        for column_id in ids:
            column = by_id[column_id]
            result.append(
                GridColumn(
                    id=column.id,
                    header=column.header,
                    sortable=column.sortable,
                    hideable=column.hideable,
                    pinned=side,
                    sort=current_sort(state, column.id),
                )
            )
    return result


def select_rows(
    rows: list[dict[str, Any]],
    columns: list[ColumnDef],
    state: TableState,
    *,
    today: date,
) -> GridSelection:
    if state.visible_columns is None:
        columns = columns_with_data(rows, columns)

    frame = _frame(rows, columns)
    facets = {
        "fab_types": facet_values(frame, "fab_type"),
        "sales_persons": facet_values(frame, "sales_person_name"),
    }
    filtered = apply_filters(frame, state, today=today)
    ordered = sort_frame(filtered, state, {column.id for column in columns if column.sortable})
    return GridSelection(
        rows=[rows[index] for index in ordered.index],
        columns=layout_columns(columns, state),
        facets=facets,
    )


def _project(row: dict[str, Any], column_ids: list[str]) -> dict[str, Any]:
    projected = {"id": row.get("id")}
    for column_id in column_ids:
        if column_id != ACTIONS_COLUMN:
            projected[column_id] = row.get(column_id)
    return projected


def run_query(
    rows: list[dict[str, Any]],
    columns: list[ColumnDef],
    state: TableState,
    *,
    today: date,
) -> GridPage:
    """Filter, lay out, sort and paginate ``rows`` for one table view."""

    selection = select_rows(rows, columns, state, today=today)
    total = len(selection.rows)
    page_count = max(1, math.ceil(total / state.page_size)) if total else 0
    page_index = min(state.page_index, page_count - 1) if page_count else 0
    start = page_index * state.page_size
    column_ids = [column.id for column in selection.columns]
    page_rows = [_project(row, column_ids) for row in selection.rows[start : start + state.page_size]]
    return GridPage(
        rows=page_rows,
        columns=selection.columns,
        total=total,
        page_index=page_index,
        page_size=state.page_size,
        page_count=page_count,
        facets=selection.facets,
    )


def group_rows(
    rows: Iterable[dict[str, Any]],
    key: str | Callable[[dict[str, Any]], str] | None = None,
) -> dict[str, list[dict[str, Any]]]:
    items = list(rows)
    if not key:
        return {"All": items}
    resolve = key if callable(key) else (lambda row: str(row.get(key) or ""))
    groups: dict[str, list[dict[str, Any]]] = {}
    for row in items:
        groups.setdefault(resolve(row), []).append(row)
    return groups
