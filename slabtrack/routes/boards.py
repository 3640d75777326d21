from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Query, Request
from fastapi.responses import Response

from slabtrack.application import get_board_service, get_client_state_service
from slabtrack.core.schema import SortSpec, TableState
from slabtrack.core.stages import StageAccess, access_for, stage_catalogue
from slabtrack.core.validation import ValidationError

router = APIRouter(tags=["boards"])

_STATE_QUERY_FIELDS = (
    "page_index",
    "page_size",
    "search",
    "date_filter",
    "date_from",
    "date_to",
    "fab_type_filter",
    "schedule_filter",
    "sales_person_filter",
    "status_filter",
)


def resolve_access(role: str | None, super_admin: str | None) -> StageAccess:
    """Prefer explicit role headers, then the signed-in user."""

    if role or super_admin:
        return access_for(role, is_super_admin=str(super_admin or "").lower() in {"1", "true", "yes"})
    user = get_client_state_service().current_user()
    if user is None:
        return access_for(None)
    return access_for(user.role, is_super_admin=user.is_super_admin)


def _parse_sort(raw: str) -> list[SortSpec]:
    specs: list[SortSpec] = []
    for part in raw.split(","):
        column_id, _, direction = part.strip().partition(":")
        if column_id:
            specs.append(SortSpec(id=column_id, desc=direction.lower() == "desc"))
    return specs


def table_state_from_request(request: Request) -> TableState:
    params = request.query_params
    table_id = params.get("table_id")
    base = get_client_state_service().get_table_state(table_id) if table_id else TableState()
    overrides: dict[str, Any] = {key: params[key] for key in _STATE_QUERY_FIELDS if key in params}
    if "sort" in params:
        overrides["sorting"] = [spec.model_dump() for spec in _parse_sort(params["sort"])]
    if "columns" in params:
        overrides["visible_columns"] = [item for item in params["columns"].split(",") if item]
    if not overrides:
        return base
    try:
        return TableState.model_validate({**base.model_dump(mode="json"), **overrides})
    except ValueError as exc:
        raise ValidationError(f"invalid table query: {exc}") from exc


@router.get("/stages")
async def list_stages() -> dict:
    return stage_catalogue()


@router.get("/boards")
async def list_boards(
    x_user_role: str | None = Header(default=None),
    x_super_admin: str | None = Header(default=None),
) -> dict:
    service = get_board_service()
    return service.list_boards(resolve_access(x_user_role, x_super_admin))


@router.get("/dashboard")
async def dashboard(
    x_user_role: str | None = Header(default=None),
    x_super_admin: str | None = Header(default=None),
) -> dict:
    service = get_board_service()
    access = resolve_access(x_user_role, x_super_admin)
    return {"items": await asyncio.to_thread(service.stage_counts, access)}


@router.get("/boards/{board}")
async def query_board(
    board: str,
    request: Request,
    x_user_role: str | None = Header(default=None),
    x_super_admin: str | None = Header(default=None),
) -> dict:
    state = table_state_from_request(request)
    service = get_board_service()
    page = await asyncio.to_thread(service.query, board, resolve_access(x_user_role, x_super_admin), state)
    return {"board": board, "state": state.model_dump(mode="json"), **page.model_dump(mode="json")}


@router.get("/boards/{board}/groups")
async def group_board(
    board: str,
    request: Request,
    group_by: str | None = Query(default=None),
    x_user_role: str | None = Header(default=None),
    x_super_admin: str | None = Header(default=None),
) -> dict:
    state = table_state_from_request(request)
    service = get_board_service()
    access = resolve_access(x_user_role, x_super_admin)
    groups = await asyncio.to_thread(service.grouped, board, access, state, group_by)
    return {
        "board": board,
        "group_by": group_by,
        "groups": [{"key": key, "count": len(rows), "rows": rows} for key, rows in groups.items()],
    }


@router.get("/boards/{board}/export.{fmt}")
async def export_board(
    board: str,
    fmt: str,
    request: Request,
    x_user_role: str | None = Header(default=None),
    x_super_admin: str | None = Header(default=None),
) -> Response:
    if fmt not in {"csv", "xlsx"}:
        raise HTTPException(status_code=404, detail="unsupported export format")
    state = table_state_from_request(request)
    service = get_board_service()
    filename, media_type, content = await asyncio.to_thread(
        service.export,
        board,
        resolve_access(x_user_role, x_super_admin),
        state,
        fmt,
    )
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
