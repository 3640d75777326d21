from __future__ import annotations

import io
import sys
from datetime import date
from pathlib import Path

import pytest
from openpyxl import load_workbook

sys.path.append(str(Path(__file__).resolve().parents[1]))

from slabtrack.application.boards import BoardService
from slabtrack.core.dates import date_window
from slabtrack.core.schema import SortSpec, TableState
from slabtrack.core.stages import access_for, get_board, stage_from_route
from slabtrack.core.validation import NotFoundError, ValidationError
from slabtrack.domain import adapt_for_board, fab_to_job
from slabtrack.exporters.board_csv import render_board_csv
from slabtrack.exporters.board_xlsx import render_board_xlsx
from slabtrack.grid.columns import ColumnDef, actions_column, apply_column_action, board_columns
from slabtrack.grid.table import group_rows, layout_columns, run_query, select_rows
from slabtrack.infrastructure import InMemoryFabGateway

TODAY = date(2025, 3, 10)

COLUMNS = [
    ColumnDef("fab_id", "FAB ID"),
    ColumnDef("job_name", "Job Name"),
    ColumnDef("fab_type", "FAB Type"),
    ColumnDef("date", "Date"),
    ColumnDef("total_sq_ft", "Total Sq Ft"),
    ColumnDef("drafter", "Drafter"),
    actions_column(),
]


def _row(fab_id: int, job_name: str, row_date: str | None, **extra) -> dict:
    row = {
        "id": fab_id,
        "fab_id": str(fab_id),
        "job_name": job_name,
        "job_no": f"J-{fab_id}",
        "fab_type": "Standard",
        "date": row_date,
        "total_sq_ft": None,
        "drafter": None,
        "sales_person_name": None,
        "on_hold": False,
    }
    row.update(extra)
    return row


@pytest.fixture()
def rows() -> list[dict]:
    return [
        _row(1, "Harbor Kitchen", "2025-03-10", total_sq_ft=40.0, sales_person_name="Dana Ortiz"),
        _row(2, "Summit Vanity", "2025-03-05", total_sq_ft=95.5, fab_type="Resurfacing"),
        _row(3, "Cedar Bath", "2025-01-29", total_sq_ft=12.0, on_hold=True, sales_person_name="Lee Park"),
        _row(4, "Loft Island", None, fab_type="FAB Only"),
    ]


def _ids(page) -> list[int]:
    return [row["id"] for row in page.rows]


# ----------------------------------------------------------------------
# date windows
# ----------------------------------------------------------------------
def test_date_window_presets():
    assert date_window("today", TODAY) == (TODAY, TODAY)
    assert date_window("7days", TODAY) == (date(2025, 3, 3), TODAY)
    # 2025-03-10 is a Monday; weeks start on Sunday.
    assert date_window("this_week", TODAY) == (date(2025, 3, 9), date(2025, 3, 15))
    assert date_window("last_month", TODAY) == (date(2025, 2, 1), date(2025, 2, 28))
    assert date_window("next_month", date(2025, 12, 5)) == (date(2026, 1, 1), date(2026, 1, 31))
    assert date_window("custom", TODAY, date(2025, 3, 1)) == (date(2025, 3, 1), date(2025, 3, 1))
    assert date_window("custom", TODAY) is None


@pytest.mark.parametrize(
    "preset, expected",
    [
        ("today", [1]),
        ("7days", [1, 2]),
        ("30days", [1, 2]),
        ("all", [1, 2, 3, 4]),
        ("unscheduled", [4]),
        ("2025-01", [3]),
    ],
)
def test_date_presets_select_expected_rows(rows, preset, expected):
    state = TableState(date_filter=preset)
    assert _ids(run_query(rows, COLUMNS, state, today=TODAY)) == expected


def test_custom_range_filter(rows):
    state = TableState(date_filter="custom", date_from=date(2025, 1, 1), date_to=date(2025, 3, 6))
    assert _ids(run_query(rows, COLUMNS, state, today=TODAY)) == [2, 3]


# ----------------------------------------------------------------------
# search and facet filters
# ----------------------------------------------------------------------
def test_search_is_case_insensitive(rows):
    state = TableState(date_filter="all", search="KITCHEN")
    assert _ids(run_query(rows, COLUMNS, state, today=TODAY)) == [1]

    state = TableState(date_filter="all", search="j-3")
    assert _ids(run_query(rows, COLUMNS, state, today=TODAY)) == [3]


def test_facet_filters(rows):
    by_type = TableState(date_filter="all", fab_type_filter="resurfacing")
    assert _ids(run_query(rows, COLUMNS, by_type, today=TODAY)) == [2]

    unassigned = TableState(date_filter="all", sales_person_filter="no_sales_person")
    assert _ids(run_query(rows, COLUMNS, unassigned, today=TODAY)) == [2, 4]

    held = TableState(date_filter="all", status_filter="on_hold")
    assert _ids(run_query(rows, COLUMNS, held, today=TODAY)) == [3]

    active = TableState(date_filter="all", status_filter="active")
    assert _ids(run_query(rows, COLUMNS, active, today=TODAY)) == [1, 2, 4]


def test_facets_come_from_unfiltered_rows(rows):
    page = run_query(rows, COLUMNS, TableState(search="harbor"), today=TODAY)
    assert page.facets["fab_types"] == ["FAB Only", "Resurfacing", "Standard"]
    assert page.facets["sales_persons"] == ["Dana Ortiz", "Lee Park"]


# ----------------------------------------------------------------------
# columns, sorting and paging
# ----------------------------------------------------------------------
def test_empty_columns_are_dropped_unless_listed(rows):
    page = run_query(rows, COLUMNS, TableState(date_filter="all"), today=TODAY)
    assert [column.id for column in page.columns] == ["fab_id", "job_name", "fab_type", "date", "total_sq_ft", "actions"]

    state = TableState(date_filter="all", visible_columns=["job_name", "drafter"])
    page = run_query(rows, COLUMNS, state, today=TODAY)
    assert [column.id for column in page.columns] == ["job_name", "drafter", "actions"]


def test_hidden_column_leaves_page_and_cells(rows):
    state = TableState(date_filter="all", column_visibility={"fab_type": False})
    page = run_query(rows, COLUMNS, state, today=TODAY)
    assert "fab_type" not in [column.id for column in page.columns]
    assert all("fab_type" not in row for row in page.rows)
    assert all("actions" not in row for row in page.rows)


def test_numeric_sort_puts_missing_last(rows):
    state = TableState(date_filter="all", sorting=[SortSpec(id="total_sq_ft", desc=True)])
    page = run_query(rows, COLUMNS, state, today=TODAY)
    assert _ids(page) == [2, 1, 3, 4]
    assert next(column for column in page.columns if column.id == "total_sq_ft").sort == "desc"


def test_text_sort_ignores_case():
    data = [_row(1, "beta", "2025-03-10"), _row(2, "Alpha", "2025-03-10"), _row(3, "gamma", "2025-03-10")]
    state = TableState(sorting=[SortSpec(id="job_name")])
    assert _ids(run_query(data, COLUMNS, state, today=TODAY)) == [2, 1, 3]


def test_page_index_is_clamped(rows):
    state = TableState(date_filter="all", page_size=3, page_index=9)
    page = run_query(rows, COLUMNS, state, today=TODAY)
    assert page.page_count == 2
    assert page.page_index == 1
    assert _ids(page) == [4]
    assert page.total == 4


def test_empty_selection_has_no_pages():
    page = run_query([], COLUMNS, TableState(), today=TODAY)
    assert page.total == 0
    assert page.page_count == 0
    assert page.rows == []


def test_pinned_columns_are_laid_out_at_the_edges():
    state = TableState(column_order=["date", "fab_id"])
    state.column_pinning.left = ["job_name"]
    state.column_pinning.right = ["actions"]
    ids = [column.id for column in layout_columns(COLUMNS, state)]
    assert ids[0] == "job_name"
    assert ids[-1] == "actions"
    assert ids[1:3] == ["date", "fab_id"]


# ----------------------------------------------------------------------
# header dropdown actions
# ----------------------------------------------------------------------
def test_cycle_sort_goes_asc_desc_none():
    state = TableState()
    state = apply_column_action(state, COLUMNS, "job_name", "cycle_sort")
    assert state.sorting == [SortSpec(id="job_name", desc=False)]
    state = apply_column_action(state, COLUMNS, "job_name", "cycle_sort")
    assert state.sorting == [SortSpec(id="job_name", desc=True)]
    state = apply_column_action(state, COLUMNS, "job_name", "cycle_sort")
    assert state.sorting == []


def test_sort_asc_twice_clears():
    state = apply_column_action(TableState(), COLUMNS, "date", "sort_asc")
    assert apply_column_action(state, COLUMNS, "date", "sort_asc").sorting == []


def test_column_actions_do_not_mutate_input():
    original = TableState()
    apply_column_action(original, COLUMNS, "fab_type", "hide")
    apply_column_action(original, COLUMNS, "fab_type", "pin_left")
    assert original.column_visibility == {}
    assert original.column_pinning.left == []


def test_pin_toggles_and_move_swaps():
    state = apply_column_action(TableState(), COLUMNS, "date", "pin_left")
    assert state.column_pinning.left == ["date"]
    state = apply_column_action(state, COLUMNS, "date", "pin_left")
    assert state.column_pinning.left == []

    state = apply_column_action(TableState(), COLUMNS, "job_name", "move_left")
    assert state.column_order[:2] == ["job_name", "fab_id"]
    unchanged = apply_column_action(state, COLUMNS, "job_name", "move_left")
    assert unchanged.column_order[:2] == ["job_name", "fab_id"]


def test_column_action_errors():
    with pytest.raises(NotFoundError):
        apply_column_action(TableState(), COLUMNS, "nope", "hide")
    with pytest.raises(ValidationError):
        apply_column_action(TableState(), COLUMNS, "fab_id", "explode")
    with pytest.raises(ValidationError):
        apply_column_action(TableState(), COLUMNS, "actions", "hide")
    with pytest.raises(ValidationError):
        apply_column_action(TableState(), COLUMNS, "actions", "sort_asc")


# ----------------------------------------------------------------------
# boards, adapters and grouping
# ----------------------------------------------------------------------
def test_board_columns_use_date_header_and_end_with_actions():
    columns = board_columns(get_board("draft"))
    assert columns[-1].id == "actions"
    assert next(column for column in columns if column.id == "date").header == "Template Completed"


def test_role_access_and_route_lookup():
    drafter = access_for("Drafter")
    assert [board.key for board in drafter.allowed_boards] == ["predraft", "draft", "revision"]
    assert not drafter.can_access("sales")
    assert access_for("unknown").default_board.key == "sales"
    assert access_for(None, is_super_admin=True).can_access("shop")
    assert stage_from_route("/job/draft-review/12") == "sales_ct"
    assert stage_from_route("/job/draft/12") == "drafting"
    assert stage_from_route("/elsewhere") is None


def test_fab_to_job_flattens_record():
    fab = {
        "id": 9,
        "job_id": 77,
        "fab_type": "Standard",
        "created_at": "2025-03-10T02:30:00Z",
        "template_needed": True,
        "job_details": {"name": "Harbor Kitchen", "job_number": "J-77", "project_value": 1200},
        "sales_ct_data": {"is_completed": True},
    }
    job = fab_to_job(fab, tz="America/Chicago")
    assert job.fab_id == "9"
    assert job.job_no == "J-77"
    assert job.revenue == 1200
    assert job.date == "2025-03-09"
    assert job.template_needed == "Yes"
    assert job.sct_completed == "Yes"

    reviewed = adapt_for_board("draft_review", fab)
    assert reviewed.review_completed == "Yes"
    assert adapt_for_board("revision", fab).revised == "Yes"


def test_fab_to_job_tolerates_null_flags_and_numeric_job_number():
    fab = {
        "id": 9,
        "job_id": 77,
        "on_hold": None,
        "job_details": {"job_number": 5012},
        "sales_ct_data": {"is_completed": None, "is_revision_needed": None},
        "draft_data": {"is_completed": None},
    }
    job = adapt_for_board("draft", fab)
    assert job.on_hold is False
    assert job.job_no == "5012"
    assert job.sct_completed == "No"
    assert job.draft_completed == "No"
    assert adapt_for_board("draft_review", fab).review_completed == "No"


def test_board_skips_malformed_records(caplog):
    gateway = InMemoryFabGateway()
    gateway.seed(
        [
            {"id": 1, "current_stage": "drafting", "on_hold": None, "job_details": {"job_number": 88}},
            {"id": 2, "current_stage": "drafting", "total_sqft": "plenty"},
        ]
    )
    service = BoardService(lambda: gateway)

    with caplog.at_level("WARNING"):
        page = service.query("draft", access_for(None, is_super_admin=True), TableState(date_filter="all"), today=TODAY)

    assert page.total == 1
    assert page.rows[0]["job_no"] == "88"
    assert "skipping malformed fab record" in caplog.text


def test_group_rows(rows):
    assert list(group_rows(rows)) == ["All"]
    groups = group_rows(rows, "fab_type")
    assert sorted(groups) == ["FAB Only", "Resurfacing", "Standard"]
    assert [row["id"] for row in groups["Standard"]] == [1, 3]


# ----------------------------------------------------------------------
# exports
# ----------------------------------------------------------------------
def test_csv_export_quotes_every_cell(rows):
    state = TableState(date_filter="7days", visible_columns=["fab_id", "job_name", "total_sq_ft"])
    selection = select_rows(rows, COLUMNS, state, today=TODAY)
    text = render_board_csv(selection.rows, selection.columns)
    assert text.splitlines() == [
        '"FAB ID","Job Name","Total Sq Ft"',
        '"1","Harbor Kitchen","40.0"',
        '"2","Summit Vanity","95.5"',
    ]


def test_export_of_nothing_is_rejected():
    with pytest.raises(ValidationError, match="No data available to export"):
        render_board_csv([], layout_columns(COLUMNS, TableState()))


def test_xlsx_export_writes_headers(rows):
    selection = select_rows(rows, COLUMNS, TableState(date_filter="all"), today=TODAY)
    content = render_board_xlsx(selection.rows, selection.columns, sheet_name="Sales - New FAB IDs: March")
    sheet = load_workbook(io.BytesIO(content)).active
    assert sheet.title == "Sales - New FAB IDs March"
    headers = [cell.value for cell in sheet[1]]
    assert headers == ["FAB ID", "Job Name", "FAB Type", "Date", "Total Sq Ft"]
    assert sheet.max_row == 5
