from __future__ import annotations

import asyncio
from pathlib import Path

from fastapi import APIRouter, File, HTTPException, UploadFile

from slabtrack.application import get_fab_service
from slabtrack.infrastructure import UploadedFile
from slabtrack.routes.sessions import parse_kind

router = APIRouter(prefix="/fabs", tags=["upload"])


@router.post("/{fab_id}/{kind}/files")
async def upload_files(fab_id: int, kind: str, files: list[UploadFile] = File(...)) -> dict:
    """Upload drawings for a drafting, revision or slab smith assignment."""
    if not files:
        raise HTTPException(status_code=400, detail="At least one file must be provided")

    work_kind = parse_kind(kind)
    uploads: list[UploadedFile] = []
    for upload in files:
        try:
            if not upload.filename:
                raise HTTPException(status_code=400, detail="Uploaded file must have a filename")
            content = await upload.read()
            uploads.append(
                UploadedFile(
                    filename=Path(upload.filename).name,
                    content=content,
                    content_type=upload.content_type,
                )
            )
        finally:
            await upload.close()

    service = get_fab_service()
    items = await asyncio.to_thread(service.upload_files, fab_id, work_kind, uploads)
    return {"fab_id": fab_id, "kind": work_kind.value, "items": items}
