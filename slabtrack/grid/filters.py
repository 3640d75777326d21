from __future__ import annotations

from datetime import date

import pandas as pd

from slabtrack.core.dates import PRESENCE_PRESETS, WINDOW_PRESETS, date_window
from slabtrack.core.schema import TableState

SEARCH_FIELDS = ("job_name", "fab_id", "job_no", "fab_type", "template_schedule", "templater")
FILTER_COLUMNS = (*SEARCH_FIELDS, "date", "sales_person_name", "on_hold")


def _text(frame: pd.DataFrame, column: str) -> pd.Series:
    if column not in frame.columns:
        return pd.Series([""] * len(frame), index=frame.index, dtype=object)
    return frame[column].map(lambda value: "" if value is None or value != value else str(value))


def _has_value(series: pd.Series) -> pd.Series:
    return series.str.strip() != ""


def search_mask(frame: pd.DataFrame, term: str) -> pd.Series:
    needle = term.strip().lower()
    mask = pd.Series(False, index=frame.index)
    if not needle:
        return ~mask
    for column in SEARCH_FIELDS:
        mask |= _text(frame, column).str.lower().str.contains(needle, regex=False)
    return mask


def date_mask(frame: pd.DataFrame, state: TableState, today: date) -> pd.Series:
    preset = (state.date_filter or "all").strip()
    raw = _text(frame, "date")
    if preset == "all":
        return pd.Series(True, index=frame.index)
    if preset in PRESENCE_PRESETS:
        present = _has_value(raw)
        return present if preset == "scheduled" else ~present

    present = _has_value(raw)
    if preset not in WINDOW_PRESETS:
        return present & raw.str.contains(preset, regex=False)

    window = date_window(preset, today, state.date_from, state.date_to)
    if window is None:
        return present
    start, end = window
    parsed = pd.to_datetime(raw.where(present), errors="coerce")
    return parsed.notna() & (parsed >= pd.Timestamp(start)) & (parsed <= pd.Timestamp(end))


def apply_filters(frame: pd.DataFrame, state: TableState, *, today: date) -> pd.DataFrame:
    """Narrow ``frame`` by search text, date preset and the facet filters."""

    if frame.empty:
        return frame

    mask = search_mask(frame, state.search) & date_mask(frame, state, today)

    if state.fab_type_filter != "all":
        mask &= _text(frame, "fab_type").str.lower() == state.fab_type_filter.strip().lower()

    if state.schedule_filter != "all":
        scheduled = _has_value(_text(frame, "date"))
        mask &= scheduled if state.schedule_filter == "scheduled" else ~scheduled

    if state.sales_person_filter != "all":
        sales = _text(frame, "sales_person_name")
        if state.sales_person_filter == "no_sales_person":
            mask &= ~_has_value(sales)
        else:
            mask &= sales == state.sales_person_filter

    if state.status_filter != "all" and "on_hold" in frame.columns:
        held = frame["on_hold"].map(lambda value: bool(value) if value is not None and value == value else False)
        mask &= held if state.status_filter == "on_hold" else ~held

    return frame[mask]


def facet_values(frame: pd.DataFrame, column: str) -> list[str]:
    values = _text(frame, column)
    return sorted({value for value in values if value.strip()})
