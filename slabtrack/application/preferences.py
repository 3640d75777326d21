"""Persisted client state: the signed-in user, the API token and table preferences."""
from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from slabtrack.core.schema import FILTER_FIELDS, TableState, UserProfile
from slabtrack.core.validation import ValidationError
from slabtrack.grid.columns import ColumnDef, apply_column_action
from slabtrack.infrastructure import ClientStateRepository, InMemoryClientStateRepository
from slabtrack.infrastructure.client_state import is_valid_key

logger = logging.getLogger(__name__)

USER_KEY = "persist:user"
TOKEN_KEY = "token"
TABLE_PREFIX = "table-state-"


class ClientStateService:
    def __init__(self, repository: ClientStateRepository) -> None:
        self._repository = repository

    @property
    def repository(self) -> ClientStateRepository:
        return self._repository

    def use_repository(self, repository: ClientStateRepository) -> None:
        self._repository = repository

    # ------------------------------------------------------------------
    # authentication slice
    # ------------------------------------------------------------------
    def login(self, user: dict[str, Any], token: str | None) -> UserProfile:
        try:
            profile = UserProfile.model_validate(user)
        except PydanticValidationError as exc:
            raise ValidationError(f"invalid user: {exc.errors()[0]['msg']}") from exc
        self._repository.write(USER_KEY, profile.model_dump_json())
        if token:
            self._repository.write(TOKEN_KEY, token)
        else:
            self._repository.delete(TOKEN_KEY)
        return profile

    def logout(self) -> None:
        self._repository.delete(USER_KEY)
        self._repository.delete(TOKEN_KEY)

    def current_user(self) -> UserProfile | None:
        raw = self._repository.read(USER_KEY)
        if not raw:
            return None
        try:
            return UserProfile.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("stored user is unreadable, ignoring it")
            return None

    def token(self) -> str | None:
        return self._repository.read(TOKEN_KEY) or None

    # ------------------------------------------------------------------
    # table preferences
    # ------------------------------------------------------------------
    @staticmethod
    def _table_key(table_id: str) -> str:
        key = f"{TABLE_PREFIX}{table_id}"
        if not table_id or not is_valid_key(key):
            raise ValidationError("table id may only contain letters, digits, '-', '_', '.' and ':'")
        return key

    def list_tables(self) -> list[str]:
        return [key[len(TABLE_PREFIX) :] for key in self._repository.keys(TABLE_PREFIX)]

    def get_table_state(self, table_id: str) -> TableState:
        raw = self._repository.read(self._table_key(table_id))
        if not raw:
            return TableState()
        try:
            return TableState.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("failed to load table state for %s, using defaults", table_id)
            return TableState()

    def save_table_state(self, table_id: str, state: TableState) -> TableState:
        self._repository.write(self._table_key(table_id), state.model_dump_json())
        return state

    def update_table_state(self, table_id: str, patch: dict[str, Any]) -> TableState:
        """Merge ``patch`` into the stored state; filter changes go back to page one."""

        current = self.get_table_state(table_id)
        merged = current.model_dump(mode="json")
        for key, value in patch.items():
            if key == "column_pinning" and isinstance(value, dict):
                merged["column_pinning"] = {**merged["column_pinning"], **value}
            else:
                merged[key] = value
        try:
            updated = TableState.model_validate(merged)
        except PydanticValidationError as exc:
            error = exc.errors()[0]
            field = ".".join(str(part) for part in error.get("loc", ()))
            raise ValidationError(f"{field}: {error['msg']}") from exc

        if any(getattr(updated, name) != getattr(current, name) for name in FILTER_FIELDS):
            updated.page_index = 0
        return self.save_table_state(table_id, updated)

    def reset_table_state(self, table_id: str) -> TableState:
        self._repository.delete(self._table_key(table_id))
        return TableState()

    def apply_column_action(
        self,
        table_id: str,
        columns: list[ColumnDef],
        column_id: str,
        action: str,
    ) -> TableState:
        updated = apply_column_action(self.get_table_state(table_id), columns, column_id, action)
        return self.save_table_state(table_id, updated)


_repository = InMemoryClientStateRepository()
_service = ClientStateService(_repository)


def get_client_state_service() -> ClientStateService:
    return _service


def configure_client_state_repository(repository: ClientStateRepository) -> None:
    _service.use_repository(repository)


def reset_client_state() -> None:
    _service.repository.reset()
