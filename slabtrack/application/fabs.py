"""Stage moves, notes, hold toggling and uploads for a single fab."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from slabtrack.core.dates import utcnow
from slabtrack.core.stages import MOVE_TARGETS
from slabtrack.core.validation import NotFoundError, ValidationError, require_text
from slabtrack.domain import WorkKind, fab_to_job
from slabtrack.infrastructure import LOOKUP_RESOURCES, FabGateway, GatewayError, UploadedFile, get_fab_gateway

logger = logging.getLogger(__name__)


class FabActionService:
    """Coordinates the per-fab dialogs: notes, move stage, hold and files."""

    def __init__(
        self,
        gateway_provider: Callable[[], FabGateway] = get_fab_gateway,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._gateway_provider = gateway_provider
        self._clock = clock

    @property
    def _gateway(self) -> FabGateway:
        return self._gateway_provider()

    def _require_fab(self, fab_id: int) -> dict[str, Any]:
        fab = self._gateway.get_fab(fab_id)
        if fab is None:
            raise NotFoundError("FAB not found")
        return fab

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_fab(self, fab_id: int, *, tz: str | None = None) -> dict[str, Any]:
        fab = self._require_fab(fab_id)
        try:
            job = fab_to_job(fab, tz=tz)
        except PydanticValidationError as exc:
            raise GatewayError(f"malformed FAB record {fab_id}", payload=exc.errors()) from exc
        return {"fab": fab, "job": job.to_row()}

    def list_lookup(self, resource: str) -> list[dict[str, Any]]:
        if resource not in LOOKUP_RESOURCES:
            raise NotFoundError(f"unknown lookup: {resource}")
        return self._gateway.list_lookup(resource)

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------
    def add_note(self, fab_id: int, note: str | None, stage: str | None = None) -> dict[str, Any]:
        text = require_text(note, "Note cannot be empty")
        fab = self._require_fab(fab_id)
        record = self._gateway.create_note(fab_id, text, stage or fab.get("current_stage"))
        logger.info("note added", extra={"fab_id": fab_id})
        return record

    def move_stage(self, fab_id: int, target: str | None, note: str | None = None) -> dict[str, Any]:
        stage = require_text(target, "current_stage is required")
        if stage not in MOVE_TARGETS:
            raise ValidationError(f"Unsupported stage: {stage}")
        fab = self._require_fab(fab_id)
        if fab.get("on_hold"):
            raise ValidationError("FAB is on hold")
        text = (note or "").strip()
        if text:
            self._gateway.create_note(fab_id, text, fab.get("current_stage"))
        updated = self._gateway.update_stage(fab_id, stage)
        logger.info(
            "stage moved",
            extra={"fab_id": fab_id, "action": f"{fab.get('current_stage')}->{stage}"},
        )
        return updated

    def set_hold(self, fab_id: int, on_hold: bool) -> dict[str, Any]:
        self._require_fab(fab_id)
        updated = self._gateway.set_hold(fab_id, on_hold)
        logger.info("hold flag set", extra={"fab_id": fab_id, "action": "hold" if on_hold else "release"})
        return updated

    def upload_files(self, fab_id: int, kind: WorkKind, files: list[UploadedFile]) -> list[dict[str, Any]]:
        if not files:
            raise ValidationError("At least one file must be provided")
        self._require_fab(fab_id)
        gateway = self._gateway

        if kind is WorkKind.SLAB_SMITH and gateway.get_assignment(fab_id, kind) is None:
            drafting = gateway.get_assignment(fab_id, WorkKind.DRAFTING)
            drafter_id = drafting.get("drafter_id") if drafting else None
            gateway.create_slabsmith_assignment(fab_id, drafter_id, self._clock())
            logger.info("slab smith assignment created", extra={"fab_id": fab_id, "kind": kind.value})

        stored = gateway.upload_files(fab_id, kind, files)
        results: list[dict[str, Any]] = []
        for index, upload in enumerate(files):
            record = dict(stored[index]) if index < len(stored) else {}
            record.setdefault("file_name", upload.filename)
            record.setdefault("file_size", upload.size)
            record.setdefault("content_type", upload.content_type)
            results.append(record)
        return results


_service = FabActionService()


def get_fab_service() -> FabActionService:
    return _service
