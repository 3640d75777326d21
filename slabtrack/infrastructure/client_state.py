"""Key/value persistence for client state: the user slice, the token and table preferences.

Values are stored as serialised strings so that a damaged entry surfaces at
read time in the service layer, which falls back to defaults.
"""
from __future__ import annotations

import os
import re
import threading
from pathlib import Path
from typing import Protocol

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.:-]{1,128}$")


def is_valid_key(key: str) -> bool:
    return bool(_KEY_PATTERN.match(key)) and key not in {".", ".."}


class ClientStateRepository(Protocol):
    """Persistence contract for client state."""

    def read(self, key: str) -> str | None: ...

    def write(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self, prefix: str = "") -> list[str]: ...

    def reset(self) -> None: ...


class InMemoryClientStateRepository:
    """Simple in-memory repository for fast iteration and tests."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self._values.get(key)

    def write(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._values if key.startswith(prefix))

    def reset(self) -> None:
        self._values.clear()


class FileClientStateRepository:
    """Stores one JSON document per key below ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._lock = threading.Lock()
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not is_valid_key(key):
            raise ValueError(f"invalid state key: {key!r}")
        return self._root / f"{key.replace(':', '__')}.json"

    def read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        with self._lock:
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            path.unlink(missing_ok=True)

    def keys(self, prefix: str = "") -> list[str]:
        names = [path.stem.replace("__", ":") for path in self._root.glob("*.json")]
        return sorted(name for name in names if name.startswith(prefix))

    def reset(self) -> None:
        with self._lock:
            for path in self._root.glob("*.json"):
                path.unlink(missing_ok=True)
