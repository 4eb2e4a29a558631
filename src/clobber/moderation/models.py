from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class Action(str, Enum):
    """Moderation actions, declared in resolution order.

    When several rules match, the one whose action comes first here wins.
    """

    BAN = "ban"
    KICK = "kick"
    MUTE = "mute"

    @property
    def severity_rank(self) -> int:
        return _ACTION_ORDER.index(self)


_ACTION_ORDER: list[Action] = list(Action)


@dataclass(frozen=True)
class Rule:
    entity: str
    action: Action
    reason: Optional[str] = None

    def to_content(self) -> dict[str, Any]:
        return {"entity": self.entity, "action": self.action.value, "reason": self.reason}


@dataclass(frozen=True)
class Identity:
    """A full Matrix user ID and the server name embedded in it."""

    user_id: str
    server_name: str

    @classmethod
    def parse(cls, user_id: str) -> "Identity":
        if not user_id.startswith("@") or ":" not in user_id:
            raise ValueError(f"not a Matrix user ID: {user_id!r}")
        localpart, server_name = user_id[1:].split(":", 1)
        if not localpart or not server_name:
            raise ValueError(f"not a Matrix user ID: {user_id!r}")
        return cls(user_id=user_id, server_name=server_name)

    @property
    def host(self) -> str:
        """Server name without any :port suffix."""
        name = self.server_name
        if name.startswith("["):
            end = name.find("]")
            return name[: end + 1] if end != -1 else name
        host, sep, port = name.rpartition(":")
        if sep and port.isdigit():
            return host
        return name


@dataclass(frozen=True)
class RuleList:
    shortcode: str
    room_id: str


# Inbound events: the closed set of things the bot reacts to.


@dataclass(frozen=True)
class MembershipEvent:
    room_id: str
    event_id: str
    sender: str
    user_id: str
    membership: str


@dataclass(frozen=True)
class MessageEvent:
    room_id: str
    event_id: str
    sender: str
    body: str


@dataclass(frozen=True)
class InviteEvent:
    room_id: str
    event_id: str
    sender: str
    invitee: str


InboundEvent = Union[MembershipEvent, MessageEvent, InviteEvent]


class EnforcementOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"


class InviteState(str, Enum):
    RECEIVED = "received"
    REJECTED = "rejected"
    JOINING = "joining"
    JOINED = "joined"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class EnforcementReport:
    correlation_id: str
    room_id: str
    user_id: str
    rule: Rule
    outcome: EnforcementOutcome


@dataclass
class SweepReport:
    rooms_checked: int = 0
    members_checked: int = 0
    applied: int = 0
    already_applied: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
