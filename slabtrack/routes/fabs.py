from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException

from slabtrack.application import get_board_service, get_fab_service

router = APIRouter(tags=["fabs"])


@router.get("/fabs/{fab_id}")
async def get_fab(fab_id: int) -> dict:
    service = get_fab_service()
    return await asyncio.to_thread(service.get_fab, fab_id, tz=get_board_service().timezone)


@router.post("/fabs/{fab_id}/notes")
async def create_note(fab_id: int, payload: dict) -> dict:
    service = get_fab_service()
    record = await asyncio.to_thread(service.add_note, fab_id, payload.get("note"), payload.get("stage"))
    return {"fab_id": fab_id, "note": record}


@router.patch("/fabs/{fab_id}/stage")
async def move_stage(fab_id: int, payload: dict) -> dict:
    service = get_fab_service()
    fab = await asyncio.to_thread(service.move_stage, fab_id, payload.get("current_stage"), payload.get("note"))
    return {"fab_id": fab_id, "current_stage": fab.get("current_stage"), "fab": fab}


@router.patch("/fabs/{fab_id}/hold")
async def toggle_hold(fab_id: int, payload: dict) -> dict:
    if "on_hold" not in payload or not isinstance(payload["on_hold"], bool):
        raise HTTPException(status_code=400, detail="on_hold must be true or false")
    service = get_fab_service()
    fab = await asyncio.to_thread(service.set_hold, fab_id, payload["on_hold"])
    return {"fab_id": fab_id, "on_hold": bool(fab.get("on_hold")), "fab": fab}


@router.get("/lookups/{resource}")
async def list_lookup(resource: str) -> dict:
    service = get_fab_service()
    return {"resource": resource, "items": await asyncio.to_thread(service.list_lookup, resource)}
