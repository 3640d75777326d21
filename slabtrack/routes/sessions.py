from __future__ import annotations

from typing import AsyncIterator

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from slabtrack.application import get_session_service
from slabtrack.core.sse import STREAM_HEADERS, format_sse
from slabtrack.domain import WorkKind

router = APIRouter(prefix="/fabs", tags=["sessions"])


def parse_kind(raw: str) -> WorkKind:
    try:
        return WorkKind(raw.strip().lower().replace("-", "_"))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=f"unknown work kind: {raw}") from exc


@router.get("/{fab_id}/sessions/{kind}")
async def get_session(fab_id: int, kind: str) -> dict:
    service = get_session_service()
    return await service.get_view(fab_id, parse_kind(kind))


@router.get("/{fab_id}/sessions/{kind}/history")
async def get_session_history(fab_id: int, kind: str) -> dict:
    work_kind = parse_kind(kind)
    service = get_session_service()
    items = await service.history(fab_id, work_kind)
    return {"fab_id": fab_id, "kind": work_kind.value, "items": items}


@router.get("/{fab_id}/sessions/{kind}/ticks")
async def stream_ticks(
    fab_id: int,
    kind: str,
    limit: int | None = Query(default=None, ge=1),
) -> StreamingResponse:
    """Stream elapsed-time snapshots once per tick as server-sent events."""
    work_kind = parse_kind(kind)
    service = get_session_service()
    # surface a missing fab as 404 before the stream opens
    await service.get_view(fab_id, work_kind)

    async def _events() -> AsyncIterator[str]:
        async for view in service.ticks(fab_id, work_kind, limit=limit):
            yield format_sse("tick", view)

    return StreamingResponse(_events(), media_type="text/event-stream", headers=STREAM_HEADERS)


@router.post("/{fab_id}/sessions/{kind}/start")
async def start_session(fab_id: int, kind: str, payload: dict | None = None) -> dict:
    payload = payload or {}
    worker_id = payload.get("worker_id")
    if worker_id is not None and not isinstance(worker_id, int):
        raise HTTPException(status_code=400, detail="worker_id must be an integer")
    service = get_session_service()
    return await service.start(fab_id, parse_kind(kind), worker_id=worker_id, note=payload.get("note"))


@router.post("/{fab_id}/sessions/{kind}/pause")
async def pause_session(fab_id: int, kind: str, payload: dict | None = None) -> dict:
    payload = payload or {}
    service = get_session_service()
    return await service.pause(
        fab_id,
        parse_kind(kind),
        note=payload.get("note"),
        sqft=payload.get("sqft"),
        work_percentage=payload.get("work_percentage"),
    )


@router.post("/{fab_id}/sessions/{kind}/resume")
async def resume_session(fab_id: int, kind: str, payload: dict | None = None) -> dict:
    payload = payload or {}
    service = get_session_service()
    return await service.resume(fab_id, parse_kind(kind), note=payload.get("note"), sqft=payload.get("sqft"))


@router.post("/{fab_id}/sessions/{kind}/end")
async def end_session(fab_id: int, kind: str, payload: dict | None = None) -> dict:
    payload = payload or {}
    service = get_session_service()
    return await service.end(
        fab_id,
        parse_kind(kind),
        note=payload.get("note"),
        sqft=payload.get("sqft"),
        work_percentage=payload.get("work_percentage"),
    )


@router.post("/{fab_id}/sessions/{kind}/on-hold")
async def hold_session(fab_id: int, kind: str, payload: dict | None = None) -> dict:
    payload = payload or {}
    service = get_session_service()
    return await service.hold(fab_id, parse_kind(kind), note=payload.get("note"))
