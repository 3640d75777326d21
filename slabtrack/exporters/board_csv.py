from __future__ import annotations

import csv
import io
from typing import Any, Iterable

import pandas as pd

from slabtrack.core.schema import GridColumn
from slabtrack.core.validation import ValidationError
from slabtrack.grid.columns import ACTIONS_COLUMN


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value != value:
        return ""
    return str(value)


def export_frame(rows: Iterable[dict[str, Any]], columns: Iterable[GridColumn]) -> pd.DataFrame:
    """Tabulate the exported cells under their header titles, skipping ``actions``."""

    exported = [column for column in columns if column.id != ACTIONS_COLUMN]
    records = [[_cell(row.get(column.id)) for column in exported] for row in rows]
    if not records:
        raise ValidationError("No data available to export")
    return pd.DataFrame(records, columns=[column.header for column in exported])


def render_board_csv(rows: Iterable[dict[str, Any]], columns: Iterable[GridColumn]) -> str:
    df = export_frame(rows, columns)
    buffer = io.StringIO()
    df.to_csv(buffer, index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    text = buffer.getvalue()
    return text[:-1] if text.endswith("\n") else text
