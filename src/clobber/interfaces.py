"""
Interface contract between the moderation engine and the Matrix homeserver.

The engine only ever talks to the homeserver through this protocol, so the
real mautrix-backed gateway and the in-memory test gateway are interchangeable.
Every method raises ProtocolError when the homeserver or the connection fails.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class MatrixGateway(Protocol):
    """Stable homeserver access interface."""

    @property
    def user_id(self) -> str:
        """The bot's own Matrix user ID."""
        ...

    async def read_room_state(self, room_id: str, event_type: str) -> list[dict[str, Any]]:
        """Return every state event of ``event_type`` in the room, as raw JSON."""
        ...

    async def put_room_state(self, room_id: str, event_type: str, state_key: str, content: dict[str, Any]) -> None:
        """Write (or overwrite) one state event."""
        ...

    async def send_message(
        self, room_id: str, text: str, html: Optional[str] = None, reply_to: Optional[str] = None
    ) -> None:
        """Send a text message, optionally as a reply to ``reply_to``."""
        ...

    async def ban(self, room_id: str, user_id: str, reason: Optional[str]) -> None:
        ...

    async def kick(self, room_id: str, user_id: str, reason: Optional[str]) -> None:
        ...

    async def get_membership(self, room_id: str, user_id: str) -> Optional[str]:
        """Current membership of ``user_id`` or None if they never had one."""
        ...

    async def get_power_levels(self, room_id: str) -> Optional[dict[str, Any]]:
        """Content of m.room.power_levels, or None when the room has none."""
        ...

    async def set_power_levels(self, room_id: str, content: dict[str, Any]) -> None:
        ...

    async def joined_members(self, room_id: str) -> list[str]:
        ...

    async def join(self, room_id: str) -> None:
        ...

    async def accept_invite(self, room_id: str) -> None:
        ...


def validate_gateway(gateway: object) -> MatrixGateway:
    """Validate and return the MatrixGateway interface."""
    if not isinstance(gateway, MatrixGateway):
        raise AttributeError(f"Object {gateway} does not implement the MatrixGateway interface")
    return gateway
