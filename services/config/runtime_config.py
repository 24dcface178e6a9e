from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_PATH = PROJECT_ROOT / ".env"

DEFAULT_IMAGE_URL_ENV = "LIVECANVAS_DEFAULT_IMAGE_URL"
MAX_MESSAGE_CHARS_ENV = "LIVECANVAS_MAX_MESSAGE_CHARS"
MAX_SESSIONS_ENV = "LIVECANVAS_MAX_SESSIONS"
VALIDATE_BLOCK_SHAPE_ENV = "LIVECANVAS_VALIDATE_BLOCK_SHAPE"
LOG_LEVEL_ENV = "LIVECANVAS_LOG_LEVEL"

SECRET_KEYS = {
    "LIVECANVAS_API_KEYS",
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
VALID_AUTH_MODES = {"api-key", "network-trust"}


@dataclass(frozen=True)
class CanvasSettings:
    # Empty means the image variant default.
    default_image_url: str
    max_message_chars: int
    max_sessions: int
    validate_block_shape: bool
    log_level: str


def _env_int(name: str, fallback: int, min_value: int = 1, max_value: int = 1_000_000) -> int:
    raw = str(os.getenv(name, "")).strip()
    if not raw:
        return fallback
    try:
        value = int(raw)
    except ValueError:
        return fallback
    return max(min_value, min(max_value, value))


def _env_bool(name: str, fallback: bool) -> bool:
    raw = str(os.getenv(name, "")).strip().lower()
    if raw in TRUE_VALUES:
        return True
    if raw in FALSE_VALUES:
        return False
    return fallback


def _env_log_level(name: str, fallback: str = "INFO") -> str:
    raw = str(os.getenv(name, "")).strip().upper()
    if raw in VALID_LOG_LEVELS:
        return raw
    return fallback


def load_settings() -> CanvasSettings:
    return CanvasSettings(
        default_image_url=str(os.getenv(DEFAULT_IMAGE_URL_ENV, "")).strip(),
        max_message_chars=_env_int(MAX_MESSAGE_CHARS_ENV, 20_000, min_value=100),
        max_sessions=_env_int(MAX_SESSIONS_ENV, 256, max_value=100_000),
        validate_block_shape=_env_bool(VALIDATE_BLOCK_SHAPE_ENV, True),
        log_level=_env_log_level(LOG_LEVEL_ENV),
    )


def configure_logging(settings: CanvasSettings | None = None) -> None:
    level = (settings or load_settings()).log_level
    logging.getLogger("livecanvas").setLevel(getattr(logging, level, logging.INFO))


def parse_env(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    values: dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values


def masked_state(values: dict[str, str]) -> dict[str, str]:
    masked: dict[str, str] = {}
    for key, value in values.items():
        if key in SECRET_KEYS and value:
            masked[key] = "********"
        else:
            masked[key] = value
    return masked


def validate_setup(values: dict[str, str]) -> dict[str, Any]:
    errors: list[str] = []
    warnings: list[str] = []

    for key in (MAX_MESSAGE_CHARS_ENV, MAX_SESSIONS_ENV):
        raw = values.get(key, "").strip()
        if not raw:
            continue
        try:
            if int(raw) < 1:
                errors.append(f"{key} must be a positive integer")
        except ValueError:
            errors.append(f"{key} must be an integer")

    raw_bool = values.get(VALIDATE_BLOCK_SHAPE_ENV, "").strip().lower()
    if raw_bool and raw_bool not in TRUE_VALUES | FALSE_VALUES:
        errors.append(f"{VALIDATE_BLOCK_SHAPE_ENV} must be a boolean flag")

    level = values.get(LOG_LEVEL_ENV, "").strip().upper()
    if level and level not in VALID_LOG_LEVELS:
        errors.append(f"Unsupported log level: {level}")

    auth_mode = values.get("LIVECANVAS_AUTH_MODE", "").strip().lower() or "api-key"
    if auth_mode not in VALID_AUTH_MODES:
        errors.append(f"Unsupported auth mode: {auth_mode}")
    if auth_mode == "api-key" and not values.get("LIVECANVAS_API_KEYS", "").strip():
        warnings.append("LIVECANVAS_API_KEYS is empty; requests will be unauthenticated")
    if auth_mode == "network-trust" and not values.get("LIVECANVAS_ALLOWED_IPS", "").strip():
        warnings.append(
            "LIVECANVAS_ALLOWED_IPS is empty; network-trust will allow all IPs. "
            "Use 127.0.0.1/32,::1/128 for local-machine-only access."
        )

    return {"ok": len(errors) == 0, "errors": errors, "warnings": warnings}


__all__ = [
    "ENV_PATH",
    "CanvasSettings",
    "configure_logging",
    "load_settings",
    "masked_state",
    "parse_env",
    "validate_setup",
]
