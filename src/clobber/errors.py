from __future__ import annotations

from typing import Optional


class ClobberError(Exception):
    """Base class for every error raised by the moderation engine."""


class PatternError(ClobberError):
    """An entity pattern is malformed or ambiguous."""

    def __init__(self, entity: str, detail: str) -> None:
        super().__init__(f"{entity!r}: {detail}")
        self.entity = entity
        self.detail = detail


class DeserializeError(ClobberError):
    """A stored rule could not be turned into a Rule."""


class ProtocolError(ClobberError):
    """The homeserver (or the connection to it) rejected a request."""

    def __init__(self, message: str, *, errcode: Optional[str] = None) -> None:
        super().__init__(message)
        self.errcode = errcode


class FetchError(ClobberError):
    """A rule room could not be read."""

    def __init__(self, room_id: str, cause: Exception) -> None:
        super().__init__(f"could not read rules from {room_id}: {cause}")
        self.room_id = room_id
        self.cause = cause


class EnforcementError(ClobberError):
    """A ban, kick or power-level write was not carried out."""

    def __init__(self, room_id: str, user_id: str, action: str, cause: object) -> None:
        super().__init__(f"{action} of {user_id} in {room_id} failed: {cause}")
        self.room_id = room_id
        self.user_id = user_id
        self.action = action
        self.cause = cause


class MissingPowerLevelsError(EnforcementError):
    """A protected room has no m.room.power_levels state event."""

    def __init__(self, room_id: str, user_id: str) -> None:
        super().__init__(room_id, user_id, "mute", "room has no power levels state")


class UnknownRuleListError(ClobberError):
    def __init__(self, shortcode: str) -> None:
        super().__init__(shortcode)
        self.shortcode = shortcode


class SessionError(ClobberError):
    """No usable login session could be restored."""
