from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from slabtrack.application import get_board_service, get_client_state_service

router = APIRouter(tags=["preferences"])


@router.get("/tables")
async def list_tables() -> dict:
    service = get_client_state_service()
    return {"items": service.list_tables()}


@router.get("/tables/{table_id}")
async def get_table_state(table_id: str) -> dict:
    service = get_client_state_service()
    state = service.get_table_state(table_id)
    return {"table_id": table_id, "state": state.model_dump(mode="json")}


@router.put("/tables/{table_id}")
async def update_table_state(table_id: str, payload: dict) -> dict:
    if not payload:
        raise HTTPException(status_code=400, detail="no valid updates provided")
    service = get_client_state_service()
    state = service.update_table_state(table_id, payload)
    return {"table_id": table_id, "state": state.model_dump(mode="json")}


@router.delete("/tables/{table_id}")
async def reset_table_state(table_id: str) -> dict:
    service = get_client_state_service()
    state = service.reset_table_state(table_id)
    return {"table_id": table_id, "state": state.model_dump(mode="json")}


@router.post("/tables/{table_id}/columns/{column_id}")
async def apply_column_action(
    table_id: str,
    column_id: str,
    payload: dict,
    board: str | None = Query(default=None),
) -> dict:
    action = payload.get("action")
    if not action:
        raise HTTPException(status_code=400, detail="action is required")
    board_key = board or payload.get("board") or table_id
    columns = get_board_service().columns(board_key)
    service = get_client_state_service()
    state = service.apply_column_action(table_id, columns, column_id, str(action))
    return {"table_id": table_id, "column_id": column_id, "state": state.model_dump(mode="json")}


@router.post("/auth/credentials")
async def login(payload: dict) -> dict:
    user = payload.get("user")
    if not isinstance(user, dict):
        raise HTTPException(status_code=400, detail="user is required")
    service = get_client_state_service()
    profile = service.login(user, payload.get("token"))
    return {"user": profile.model_dump(mode="json"), "authenticated": True}


@router.delete("/auth/credentials")
async def logout() -> dict:
    service = get_client_state_service()
    service.logout()
    return {"authenticated": False}


@router.get("/auth/me")
async def current_user() -> dict:
    service = get_client_state_service()
    user = service.current_user()
    if user is None:
        raise HTTPException(status_code=401, detail="not signed in")
    return {"user": user.model_dump(mode="json"), "authenticated": True}
