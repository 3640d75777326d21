"""In-memory stand-in for the upstream fabrication API."""
from __future__ import annotations

import threading
from copy import deepcopy
from datetime import datetime
from typing import Any, Callable, Iterable

from slabtrack.core.dates import format_timestamp, utcnow
from slabtrack.core.validation import SessionTransitionError
from slabtrack.domain import SessionAction, SessionStatus, WorkKind, WorkSession

from .gateway import LOOKUP_RESOURCES, GatewayError, SessionCommand, UploadedFile

DEFAULT_LOOKUPS: dict[str, list[dict[str, Any]]] = {
    "accounts": [{"id": 1, "name": "Harbor Homes"}, {"id": 2, "name": "Summit Builders"}],
    "stone-types": [{"id": 1, "name": "Quartz"}, {"id": 2, "name": "Granite"}, {"id": 3, "name": "Marble"}],
    "stone-colors": [{"id": 1, "name": "Calacatta"}, {"id": 2, "name": "Absolute Black"}],
    "stone-thickness": [{"id": 1, "value": "2cm"}, {"id": 2, "value": "3cm"}],
    "edges": [{"id": 1, "name": "Eased"}, {"id": 2, "name": "Bullnose"}, {"id": 3, "name": "Ogee"}],
    "fab-types": [{"id": 1, "name": "Standard"}, {"id": 2, "name": "Resurfacing"}, {"id": 3, "name": "FAB Only"}],
    "sales-persons": [{"id": 1, "name": "Dana Ortiz"}, {"id": 2, "name": "Lee Park"}],
}


class InMemoryFabGateway:
    """Deterministic gateway for development and tests.

    Session bookkeeping follows the upstream rules: the gateway owns
    ``total_time_spent`` and refuses transitions the state machine forbids.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._fabs: dict[int, dict[str, Any]] = {}
            self._sessions: dict[tuple[int, WorkKind], list[WorkSession]] = {}
            self._assignments: dict[tuple[int, WorkKind], dict[str, Any]] = {}
            self._files: dict[tuple[int, WorkKind], list[dict[str, Any]]] = {}
            self._lookups = deepcopy(DEFAULT_LOOKUPS)
            self._note_counter = 0
            self._file_counter = 0
            self._session_counter = 0
            self._assignment_counter = 0
            self.calls: list[tuple[str, int | None, Any]] = []

    # ------------------------------------------------------------------
    # seeding
    # ------------------------------------------------------------------
    def seed(self, fabs: Iterable[dict[str, Any]]) -> None:
        with self._lock:
            for fab in fabs:
                record = deepcopy(fab)
                record.setdefault("on_hold", False)
                record.setdefault("fab_notes", [])
                self._fabs[int(record["id"])] = record

    def assign(self, fab_id: int, kind: WorkKind, drafter_id: int, *, start_date: datetime | None = None) -> dict[str, Any]:
        with self._lock:
            self._assignment_counter += 1
            assignment = {
                "id": self._assignment_counter,
                "fab_id": fab_id,
                "drafter_id": drafter_id,
                "start_date": format_timestamp(start_date or self._clock()),
            }
            self._assignments[(fab_id, kind.assignment_kind)] = assignment
            return dict(assignment)

    def _require_fab(self, fab_id: int) -> dict[str, Any]:
        fab = self._fabs.get(fab_id)
        if fab is None:
            raise GatewayError("FAB not found", status_code=404)
        return fab

    def _touch(self, fab: dict[str, Any]) -> None:
        fab["updated_at"] = format_timestamp(self._clock())

    # ------------------------------------------------------------------
    # fabs
    # ------------------------------------------------------------------
    def list_fabs(self, **params: Any) -> tuple[list[dict[str, Any]], int]:
        skip = int(params.get("skip") or 0)
        limit = int(params.get("limit") or 100)
        stage = params.get("current_stage")
        fab_type = params.get("fab_type")
        sales_person_id = params.get("sales_person_id")
        search = str(params.get("search") or "").strip().lower()

        with self._lock:
            rows = [deepcopy(fab) for _, fab in sorted(self._fabs.items())]

        if stage:
            rows = [row for row in rows if row.get("current_stage") == stage]
        if fab_type and fab_type != "all":
            rows = [row for row in rows if str(row.get("fab_type") or "").lower() == str(fab_type).lower()]
        if sales_person_id not in (None, "", "all"):
            rows = [row for row in rows if str(row.get("sales_person_id")) == str(sales_person_id)]
        if search:

            def matches(row: dict[str, Any]) -> bool:
                details = row.get("job_details") or {}
                haystack = [str(row.get("id")), str(details.get("name") or ""), str(details.get("job_number") or "")]
                return any(search in value.lower() for value in haystack)

            rows = [row for row in rows if matches(row)]
        return rows[skip : skip + limit], len(rows)

    def get_fab(self, fab_id: int) -> dict[str, Any] | None:
        with self._lock:
            fab = self._fabs.get(fab_id)
            return deepcopy(fab) if fab is not None else None

    def update_stage(self, fab_id: int, stage: str) -> dict[str, Any]:
        with self._lock:
            fab = self._require_fab(fab_id)
            fab["current_stage"] = stage
            self._touch(fab)
            self.calls.append(("update_stage", fab_id, stage))
            return deepcopy(fab)

    def set_hold(self, fab_id: int, on_hold: bool) -> dict[str, Any]:
        with self._lock:
            fab = self._require_fab(fab_id)
            fab["on_hold"] = bool(on_hold)
            self._touch(fab)
            self.calls.append(("set_hold", fab_id, bool(on_hold)))
            return deepcopy(fab)

    def create_note(self, fab_id: int, note: str, stage: str | None) -> dict[str, Any]:
        with self._lock:
            fab = self._require_fab(fab_id)
            self._note_counter += 1
            record = {
                "id": self._note_counter,
                "note": note,
                "stage": stage,
                "created_by_name": None,
                "created_at": format_timestamp(self._clock()),
            }
            fab.setdefault("fab_notes", []).append(record)
            self.calls.append(("create_note", fab_id, note))
            return dict(record)

    # ------------------------------------------------------------------
    # sessions
    # ------------------------------------------------------------------
    def get_session(self, fab_id: int, kind: WorkKind) -> WorkSession | None:
        with self._lock:
            sessions = self._sessions.get((fab_id, kind))
            if not sessions:
                return None
            return WorkSession.from_payload(sessions[-1].to_payload(), fab_id=fab_id, kind=kind)

    def session_history(self, fab_id: int, kind: WorkKind) -> list[WorkSession]:
        with self._lock:
            return [
                WorkSession.from_payload(item.to_payload(), fab_id=fab_id, kind=kind)
                for item in self._sessions.get((fab_id, kind), [])
            ]

    def manage_session(self, fab_id: int, kind: WorkKind, command: SessionCommand) -> dict[str, Any]:
        try:
            action = SessionAction(command.action)
        except ValueError as exc:
            raise GatewayError(f"unknown session action: {command.action}", status_code=422) from exc

        with self._lock:
            self._require_fab(fab_id)
            self.calls.append(("manage_session", fab_id, command.to_wire(kind)))
            sessions = self._sessions.setdefault((fab_id, kind), [])
            if action is SessionAction.START:
                if sessions:
                    ended = sessions[-1].status is SessionStatus.ENDED
                    message = "Session already ended" if ended else "A session is already in progress"
                    raise GatewayError(message, status_code=409)
                self._session_counter += 1
                sessions.append(
                    WorkSession(
                        fab_id=fab_id,
                        kind=kind,
                        session_id=str(self._session_counter),
                        worker_id=command.worker_id,
                    )
                )
            elif not sessions:
                raise GatewayError("No active session for this FAB", status_code=409)

            session = sessions[-1]
            try:
                session.apply(
                    action,
                    command.timestamp,
                    note=command.note,
                    sqft=command.sqft,
                    work_percentage=command.work_percentage,
                )
            except SessionTransitionError as exc:
                raise GatewayError(str(exc), status_code=409) from exc
            return session.to_payload()

    # ------------------------------------------------------------------
    # assignments, files & lookups
    # ------------------------------------------------------------------
    def get_assignment(self, fab_id: int, kind: WorkKind) -> dict[str, Any] | None:
        with self._lock:
            assignment = self._assignments.get((fab_id, kind.assignment_kind))
            return dict(assignment) if assignment else None

    def create_slabsmith_assignment(
        self, fab_id: int, drafter_id: int | None, start_date: datetime
    ) -> dict[str, Any]:
        with self._lock:
            self._require_fab(fab_id)
            self.assign(fab_id, WorkKind.SLAB_SMITH, drafter_id or 0, start_date=start_date)
            stored = self._assignments[(fab_id, WorkKind.SLAB_SMITH)]
            stored["slab_smith_type"] = "standard"
            self.calls.append(("create_slabsmith_assignment", fab_id, drafter_id))
            return dict(stored)

    def upload_files(self, fab_id: int, kind: WorkKind, files: list[UploadedFile]) -> list[dict[str, Any]]:
        with self._lock:
            self._require_fab(fab_id)
            if self._assignments.get((fab_id, kind.assignment_kind)) is None:
                raise GatewayError("No assignment found for this FAB", status_code=404)
            stored: list[dict[str, Any]] = []
            for item in files:
                self._file_counter += 1
                record = {"id": self._file_counter, "file_name": item.filename}
                self._files.setdefault((fab_id, kind.assignment_kind), []).append(record)
                stored.append(dict(record))
            return stored

    def list_lookup(self, resource: str) -> list[dict[str, Any]]:
        if resource not in LOOKUP_RESOURCES:
            raise GatewayError(f"unknown lookup resource: {resource}", status_code=404)
        return deepcopy(self._lookups.get(resource, []))
