"""Environment driven runtime settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


@dataclass(slots=True)
class Settings:
    api_base_url: str | None = None
    api_token: str | None = None
    api_timeout: float = 30.0
    state_root: Path | None = None
    seed_file: Path | None = None
    timezone: str = "UTC"
    tick_seconds: float = 1.0
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _path_env(name: str) -> Path | None:
    raw = os.getenv(name)
    if raw:
        return Path(raw).expanduser().resolve()
    return None


def load_settings() -> Settings:
    """Read the current environment into a :class:`Settings` instance."""

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = list(DEFAULT_CORS_ORIGINS)

    base_url = (os.getenv("FAB_API_BASE_URL") or "").strip() or None
    token = (os.getenv("FAB_API_TOKEN") or "").strip() or None

    return Settings(
        api_base_url=base_url.rstrip("/") if base_url else None,
        api_token=token,
        api_timeout=_float_env("FAB_API_TIMEOUT", 30.0),
        state_root=_path_env("SLABTRACK_STATE_ROOT"),
        seed_file=_path_env("SLABTRACK_SEED_FILE"),
        timezone=os.getenv("SLABTRACK_TIMEZONE") or "UTC",
        tick_seconds=_float_env("SLABTRACK_TICK_SECONDS", 1.0),
        log_level=(os.getenv("SLABTRACK_LOG_LEVEL") or "INFO").upper(),
        cors_origins=origins,
    )
