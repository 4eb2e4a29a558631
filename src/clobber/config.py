from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .constants import (
    DEFAULT_COMMAND_PREFIX,
    INVITE_INITIAL_DELAY_SECONDS,
    INVITE_MAX_DELAY_SECONDS,
    MUTED_POWER_LEVEL,
)

log = logging.getLogger("clobber.config")


def _get_str(name: str, default: str = "") -> str:
    return os.getenv(name, "").strip() or default


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _get_mapping(name: str) -> dict[str, str]:
    """Parse ``key=value,key=value``; entries without '=' are skipped."""
    mapping: dict[str, str] = {}
    for item in _get_list(name):
        key, sep, value = item.partition("=")
        if not sep or not key.strip() or not value.strip():
            log.warning("Ignoring malformed %s entry: %r", name, item)
            continue
        mapping[key.strip()] = value.strip()
    return mapping


@dataclass(frozen=True)
class Settings:
    homeserver_url: str
    user_id: str
    access_token: str
    device_id: str
    session_path: str
    command_prefix: str
    # Users the bot accepts invites and commands from.
    allowed_users: tuple[str, ...]
    protected_rooms: tuple[str, ...]
    # shortcode -> rule room ID
    rule_lists: dict[str, str] = field(default_factory=dict)
    mute_power_level: int = MUTED_POWER_LEVEL
    invite_initial_delay_seconds: int = INVITE_INITIAL_DELAY_SECONDS
    invite_max_delay_seconds: int = INVITE_MAX_DELAY_SECONDS
    sqlite_path: str = "clobber.sqlite3"
    log_level: str = "INFO"
    # 0 disables the health endpoint
    health_port: int = 0


def load_settings() -> Settings:
    return Settings(
        homeserver_url=_get_str("MATRIX_HOMESERVER_URL").rstrip("/"),
        user_id=_get_str("MATRIX_USER_ID"),
        access_token=_get_str("MATRIX_ACCESS_TOKEN"),
        device_id=_get_str("MATRIX_DEVICE_ID"),
        session_path=_get_str("SESSION_PATH", "clobber-session.json"),
        command_prefix=_get_str("COMMAND_PREFIX", DEFAULT_COMMAND_PREFIX),
        allowed_users=_get_list("ALLOWED_USERS"),
        protected_rooms=_get_list("PROTECTED_ROOMS"),
        rule_lists=_get_mapping("RULE_LISTS"),
        mute_power_level=_get_int("MUTE_POWER_LEVEL", MUTED_POWER_LEVEL),
        invite_initial_delay_seconds=_get_int("INVITE_INITIAL_DELAY_SECONDS", INVITE_INITIAL_DELAY_SECONDS),
        invite_max_delay_seconds=_get_int("INVITE_MAX_DELAY_SECONDS", INVITE_MAX_DELAY_SECONDS),
        sqlite_path=_get_str("SQLITE_PATH", "clobber.sqlite3"),
        log_level=_get_str("LOG_LEVEL", "INFO"),
        health_port=_get_int("HEALTH_PORT", 0),
    )


def require_runtime_settings(settings: Settings) -> None:
    """Raise RuntimeError when the bot would have nothing to enforce."""
    if not settings.protected_rooms:
        raise RuntimeError("PROTECTED_ROOMS is required")
    if not settings.rule_lists:
        raise RuntimeError("RULE_LISTS is required")
    if not settings.allowed_users:
        log.warning("ALLOWED_USERS is empty; commands and invites will be refused")
