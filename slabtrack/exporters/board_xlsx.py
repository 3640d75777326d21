from __future__ import annotations

import io
from typing import Any, Iterable

import pandas as pd

from slabtrack.core.schema import GridColumn
from slabtrack.exporters.board_csv import export_frame


def render_board_xlsx(
    rows: Iterable[dict[str, Any]],
    columns: Iterable[GridColumn],
    *,
    sheet_name: str = "Board",
) -> bytes:
    df = export_frame(rows, columns)
    buffer = io.BytesIO()
    # Excel caps sheet titles at 31 characters and rejects a few symbols.
    title = "".join(ch for ch in sheet_name if ch not in "[]:*?/\\")[:31] or "Board"
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=title, index=False)
    return buffer.getvalue()
