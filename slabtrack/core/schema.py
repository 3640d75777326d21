from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    job_number: str | int | None = None
    project_value: float | None = None
    account_name: str | None = None


class FabNote(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int | str | None = None
    note: str
    created_by_name: str | None = None
    created_at: str | None = None
    stage: str | None = None


class SalesCtData(BaseModel):
    model_config = ConfigDict(extra="allow")

    is_completed: bool | None = None
    is_revision_needed: bool | None = None


class DraftData(BaseModel):
    model_config = ConfigDict(extra="allow")

    drafter_name: str | None = None
    is_completed: bool | None = None


class Fab(BaseModel):
    """Fabrication record as served by the upstream API."""

    model_config = ConfigDict(extra="allow")

    id: int
    job_id: int | None = None
    fab_type: str | None = None
    account_name: str | None = None
    sales_person_name: str | None = None
    stone_type_name: str | None = None
    stone_color_name: str | None = None
    stone_thickness_value: str | float | None = None
    edge_name: str | None = None
    total_sqft: float | None = None
    no_of_pieces: int | None = None
    current_stage: str | None = None
    on_hold: bool | None = None
    status_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    templating_schedule_start_date: str | None = None
    template_completed_date: str | None = None
    technician_name: str | None = None
    drafter_name: str | None = None
    template_needed: bool | None = None
    template_received: bool | None = None
    slab_smith_used: bool | None = None
    review_completed: bool | None = None
    revenue: float | None = None
    gp: float | None = None
    job_details: JobDetails | None = None
    draft_data: DraftData | None = None
    sales_ct_data: SalesCtData | None = None
    fab_notes: list[FabNote] = Field(default_factory=list)


class SortSpec(BaseModel):
    id: str
    desc: bool = False


class ColumnPinning(BaseModel):
    left: list[str] = Field(default_factory=list)
    right: list[str] = Field(default_factory=list)


FILTER_FIELDS = frozenset(
    {
        "search",
        "date_filter",
        "date_from",
        "date_to",
        "fab_type_filter",
        "schedule_filter",
        "sales_person_filter",
        "status_filter",
    }
)


class TableState(BaseModel):
    """Persisted per-table grid preferences."""

    page_index: int = Field(default=0, ge=0)
    page_size: int = Field(default=10, ge=1, le=500)
    sorting: list[SortSpec] = Field(default_factory=list)
    search: str = ""
    date_filter: str = "today"
    date_from: date | None = None
    date_to: date | None = None
    fab_type_filter: str = "all"
    schedule_filter: Literal["all", "scheduled", "unscheduled"] = "all"
    sales_person_filter: str = "all"
    status_filter: Literal["all", "active", "on_hold"] = "all"
    column_visibility: dict[str, bool] = Field(default_factory=dict)
    column_order: list[str] = Field(default_factory=list)
    column_pinning: ColumnPinning = Field(default_factory=ColumnPinning)
    visible_columns: list[str] | None = None

    @field_validator("date_filter", "fab_type_filter", "sales_person_filter", mode="before")
    @classmethod
    def _blank_means_default(cls, value: Any, info) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "today" if info.field_name == "date_filter" else "all"
        return value


class GridColumn(BaseModel):
    id: str
    header: str
    sortable: bool = True
    hideable: bool = True
    pinned: Literal["left", "right"] | None = None
    sort: Literal["asc", "desc"] | None = None


class GridPage(BaseModel):
    rows: list[dict[str, Any]]
    columns: list[GridColumn]
    total: int
    page_index: int
    page_size: int
    page_count: int
    facets: dict[str, list[str]] = Field(default_factory=dict)


class UserProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int | str
    name: str | None = None
    email: str | None = None
    role: str | None = None
    is_super_admin: bool = False
