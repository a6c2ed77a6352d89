from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_BACKEND_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
_DOTENV_LOADED = False


def ensure_backend_env_loaded() -> None:
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)
    _DOTENV_LOADED = True


def _to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    text = value.strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        return default


def _to_float(value: str | None) -> float | None:
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _to_path(value: str | None) -> Path | None:
    text = (value or "").strip()
    return Path(text) if text else None


@dataclass(frozen=True)
class Settings:
    report_timezone: str = "UTC"
    log_level: str = "INFO"
    report_output_dir: Path | None = None
    data_file: Path | None = None
    cache_ttl_seconds: int = 30
    overtime_threshold_hours: float | None = None


def get_settings() -> Settings:
    ensure_backend_env_loaded()
    return Settings(
        report_timezone=(os.getenv("REPORT_TIMEZONE") or "UTC").strip() or "UTC",
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        report_output_dir=_to_path(os.getenv("REPORT_OUTPUT_DIR")),
        data_file=_to_path(os.getenv("ATTENDANCE_DATA_FILE")),
        cache_ttl_seconds=max(0, _to_int(os.getenv("SOURCE_CACHE_TTL_SECONDS"), 30)),
        overtime_threshold_hours=_to_float(os.getenv("OVERTIME_THRESHOLD_HOURS")),
    )


settings = get_settings()
