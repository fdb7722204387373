from __future__ import annotations

import os
from dataclasses import dataclass

from .provisioning.rate_limiter import RatePolicy


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    token: str
    sync_guild_id: int
    log_level: str
    # Empty means the templates bundled with the package
    templates_dir: str
    api_base_url: str

    # Outbound request pacing
    request_spacing_ms: int
    request_batch_size: int
    request_batch_pause_ms: int
    request_max_attempts: int
    backoff_base_ms: int
    backoff_max_ms: int

    progress_interval_seconds: float
    confirm_timeout_seconds: int
    include_staff_default: bool = True

    def rate_policy(self) -> RatePolicy:
        return RatePolicy(
            min_interval=self.request_spacing_ms / 1000,
            batch_size=self.request_batch_size,
            batch_pause=self.request_batch_pause_ms / 1000,
            max_attempts=self.request_max_attempts,
            backoff_base=self.backoff_base_ms / 1000,
            backoff_max=self.backoff_max_ms / 1000,
        )


def load_settings() -> Settings:
    token = os.getenv("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("DISCORD_TOKEN is required")
    return Settings(
        token=token,
        sync_guild_id=_get_int("SYNC_GUILD_ID", 0),
        log_level=(os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"),
        templates_dir=os.getenv("TEMPLATES_DIR", "").strip(),
        api_base_url=(os.getenv("API_BASE_URL", "https://discord.com/api/v10").strip() or "https://discord.com/api/v10"),
        request_spacing_ms=_get_int("REQUEST_SPACING_MS", 50),
        request_batch_size=_get_int("REQUEST_BATCH_SIZE", 10),
        request_batch_pause_ms=_get_int("REQUEST_BATCH_PAUSE_MS", 1000),
        request_max_attempts=_get_int("REQUEST_MAX_ATTEMPTS", 4),
        backoff_base_ms=_get_int("BACKOFF_BASE_MS", 1000),
        backoff_max_ms=_get_int("BACKOFF_MAX_MS", 10_000),
        progress_interval_seconds=_get_float("PROGRESS_INTERVAL_SECONDS", 2.0),
        confirm_timeout_seconds=_get_int("CONFIRM_TIMEOUT_SECONDS", 60),
        include_staff_default=_get_bool("INCLUDE_STAFF_DEFAULT", True),
    )
