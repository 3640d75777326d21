"""Canonical fab to grid-row adapter and per-board refinements."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from slabtrack.core.dates import to_local_date
from slabtrack.core.schema import Fab


def _yes_no(value: bool | None) -> str:
    return "Yes" if value else "No"


def _as_date(value: Any, tz: str | None) -> str | None:
    parsed = to_local_date(value, tz)
    return parsed.isoformat() if parsed else None


@dataclass(slots=True)
class FabJob:
    """Flattened read model rendered by every board."""

    id: int
    fab_id: str
    job_id: int | None
    job_name: str
    job_no: str
    fab_type: str | None
    acct_name: str | None
    date: str | None
    current_stage: str | None
    on_hold: bool = False
    status_id: int | None = None
    sales_person_name: str | None = None
    templater: str | None = None
    drafter: str | None = None
    no_of_pieces: int | None = None
    total_sq_ft: float | None = None
    revenue: float | None = None
    gp: float | None = None
    template_schedule: str | None = None
    template_needed: str = "No"
    template_received: str = "No"
    draft_completed: str = "No"
    revised: str = "No"
    sct_completed: str = "No"
    slabsmith_used: str = "No"
    review_completed: str = "No"
    stone_type_name: str | None = None
    stone_color_name: str | None = None
    stone_thickness_value: str | None = None
    edge_name: str | None = None
    fab_notes: list[dict[str, Any]] = field(default_factory=list)

    def to_row(self) -> dict[str, Any]:
        return asdict(self)


def fab_to_job(fab: Fab | dict[str, Any], *, date_field: str = "created_at", tz: str | None = None) -> FabJob:
    record = fab if isinstance(fab, Fab) else Fab.model_validate(fab)
    details = record.job_details
    sales_ct = record.sales_ct_data
    draft = record.draft_data

    job_no = (str(details.job_number) if details and details.job_number not in (None, "") else None) or (
        str(record.job_id) if record.job_id is not None else ""
    )
    job_name = (details.name if details and details.name else None) or (
        f"Job {record.job_id}" if record.job_id is not None else ""
    )
    revenue = details.project_value if details and details.project_value is not None else record.revenue
    thickness = record.stone_thickness_value

    return FabJob(
        id=record.id,
        fab_id=str(record.id),
        job_id=record.job_id,
        job_name=job_name,
        job_no=job_no,
        fab_type=record.fab_type,
        acct_name=record.account_name or (details.account_name if details else None),
        date=_as_date(getattr(record, date_field, None), tz),
        current_stage=record.current_stage,
        on_hold=bool(record.on_hold),
        status_id=record.status_id,
        sales_person_name=record.sales_person_name,
        templater=record.technician_name,
        drafter=record.drafter_name or (draft.drafter_name if draft else None),
        no_of_pieces=record.no_of_pieces,
        total_sq_ft=record.total_sqft,
        revenue=revenue,
        gp=record.gp,
        template_schedule=_as_date(record.templating_schedule_start_date, tz),
        template_needed=_yes_no(record.template_needed),
        template_received=_yes_no(record.template_received),
        draft_completed=_yes_no(draft.is_completed if draft else False),
        revised=_yes_no(sales_ct.is_revision_needed if sales_ct else False),
        sct_completed=_yes_no(sales_ct.is_completed if sales_ct else False),
        slabsmith_used=_yes_no(record.slab_smith_used),
        review_completed=_yes_no(record.review_completed),
        stone_type_name=record.stone_type_name,
        stone_color_name=record.stone_color_name,
        stone_thickness_value=str(thickness) if thickness not in (None, "") else None,
        edge_name=record.edge_name,
        fab_notes=[note.model_dump() for note in record.fab_notes],
    )


@dataclass(slots=True, frozen=True)
class StageDecorator:
    """Board specific date source plus an optional in-place refinement."""

    board: str
    date_field: str = "created_at"
    refine: Callable[[FabJob, Fab], None] | None = None


def _mark_revised(job: FabJob, fab: Fab) -> None:
    job.revised = "Yes"


def _review_follows_sct(job: FabJob, fab: Fab) -> None:
    job.review_completed = job.sct_completed


def _slab_smith_in_use(job: FabJob, fab: Fab) -> None:
    if fab.slab_smith_used is None:
        job.slabsmith_used = "Yes"


STAGE_DECORATORS: dict[str, StageDecorator] = {
    decorator.board: decorator
    for decorator in (
        StageDecorator("sales"),
        StageDecorator("templating", "templating_schedule_start_date"),
        StageDecorator("predraft"),
        StageDecorator("draft", "template_completed_date"),
        StageDecorator("draft_review", "updated_at", _review_follows_sct),
        StageDecorator("revision", "updated_at", _mark_revised),
        StageDecorator("slab_smith", "templating_schedule_start_date", _slab_smith_in_use),
        StageDecorator("final_programming"),
        StageDecorator("cut_list"),
        StageDecorator("install_scheduling", "template_completed_date"),
        StageDecorator("shop"),
    )
}


def adapt_for_board(board: str, fab: Fab | dict[str, Any], *, tz: str | None = None) -> FabJob:
    record = fab if isinstance(fab, Fab) else Fab.model_validate(fab)
    decorator = STAGE_DECORATORS.get(board)
    if decorator is None:
        return fab_to_job(record, tz=tz)
    job = fab_to_job(record, date_field=decorator.date_field, tz=tz)
    if decorator.refine is not None:
        decorator.refine(job, record)
    return job
