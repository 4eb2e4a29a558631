from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from ..constants import MESSAGE_EVENT_TYPE, MUTED_POWER_LEVEL
from ..errors import EnforcementError, MissingPowerLevelsError, ProtocolError
from ..interfaces import MatrixGateway
from ..services.audit_store import EnforcementAuditStore
from ..services.stats import RuntimeStats
from .models import Action, EnforcementOutcome, Identity

log = logging.getLogger("clobber.action_engine")

# Memberships from which a kick has nothing left to remove.
_NOT_IN_ROOM = (None, "leave", "ban")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def speaking_threshold(power_levels: dict[str, Any]) -> int:
    events = power_levels.get("events") or {}
    if MESSAGE_EVENT_TYPE in events:
        return _as_int(events[MESSAGE_EVENT_TYPE], 0)
    return _as_int(power_levels.get("events_default"), 0)


def user_level(power_levels: dict[str, Any], user_id: str) -> int:
    users = power_levels.get("users") or {}
    if user_id in users:
        return _as_int(users[user_id], 0)
    return _as_int(power_levels.get("users_default"), 0)


class ActionEngine:
    """Applies one moderation action to one user in one room.

    Ban and kick check the current membership first so repeating them is a
    no-op. Mute is a read-modify-write of m.room.power_levels without any
    compare-and-swap: a concurrent power-level change can be overwritten.
    """

    def __init__(
        self,
        *,
        gateway: MatrixGateway,
        stats: Optional[RuntimeStats] = None,
        audit_store: Optional[EnforcementAuditStore] = None,
        muted_power_level: int = MUTED_POWER_LEVEL,
    ) -> None:
        self.gateway = gateway
        self.stats = stats or RuntimeStats()
        self.audit = audit_store
        self.muted_power_level = muted_power_level

    async def apply(
        self,
        room_id: str,
        identity: Identity,
        action: Action,
        reason: Optional[str],
        *,
        correlation_id: str = "",
        trigger: str = "membership",
        entity: Optional[str] = None,
    ) -> EnforcementOutcome:
        try:
            if action is Action.BAN:
                outcome = await self._ban(room_id, identity.user_id, reason)
            elif action is Action.KICK:
                outcome = await self._kick(room_id, identity.user_id, reason)
            elif action is Action.MUTE:
                outcome = await self._mute(room_id, identity.user_id)
            else:
                raise EnforcementError(room_id, identity.user_id, str(action), "unsupported action")
        except EnforcementError as e:
            self.stats.actions_failed += 1
            await self._audit(correlation_id, trigger, room_id, identity.user_id, action, entity, reason, "failed", {"error": str(e.cause)})
            raise
        except ProtocolError as e:
            self.stats.actions_failed += 1
            await self._audit(
                correlation_id, trigger, room_id, identity.user_id, action, entity, reason, "failed",
                {"error": str(e), "errcode": e.errcode},
            )
            raise EnforcementError(room_id, identity.user_id, action.value, e) from e

        if outcome is EnforcementOutcome.APPLIED:
            self.stats.actions_applied += 1
            log.info("Applied %s to %s in %s (reason=%s)", action.value, identity.user_id, room_id, reason)
        else:
            self.stats.actions_already_applied += 1
            log.debug("%s already in effect for %s in %s", action.value, identity.user_id, room_id)
        await self._audit(correlation_id, trigger, room_id, identity.user_id, action, entity, reason, outcome.value, {})
        return outcome

    async def _ban(self, room_id: str, user_id: str, reason: Optional[str]) -> EnforcementOutcome:
        if await self.gateway.get_membership(room_id, user_id) == "ban":
            return EnforcementOutcome.ALREADY_APPLIED
        await self.gateway.ban(room_id, user_id, reason)
        return EnforcementOutcome.APPLIED

    async def _kick(self, room_id: str, user_id: str, reason: Optional[str]) -> EnforcementOutcome:
        if await self.gateway.get_membership(room_id, user_id) in _NOT_IN_ROOM:
            return EnforcementOutcome.ALREADY_APPLIED
        await self.gateway.kick(room_id, user_id, reason)
        return EnforcementOutcome.APPLIED

    async def _mute(self, room_id: str, user_id: str) -> EnforcementOutcome:
        power_levels = await self.gateway.get_power_levels(room_id)
        if power_levels is None:
            log.error("Room %s has no power levels state; cannot mute %s", room_id, user_id)
            raise MissingPowerLevelsError(room_id, user_id)

        threshold = speaking_threshold(power_levels)
        if user_level(power_levels, user_id) < threshold:
            return EnforcementOutcome.ALREADY_APPLIED

        updated = dict(power_levels)
        users = dict(updated.get("users") or {})
        users[user_id] = min(self.muted_power_level, threshold - 1)
        updated["users"] = users
        await self.gateway.set_power_levels(room_id, updated)
        return EnforcementOutcome.APPLIED

    async def _audit(
        self,
        correlation_id: str,
        trigger: str,
        room_id: str,
        user_id: str,
        action: Action,
        entity: Optional[str],
        reason: Optional[str],
        status: str,
        details: dict[str, Any],
    ) -> None:
        if self.audit is None:
            return
        try:
            await self.audit.add(
                correlation_id=correlation_id,
                trigger=trigger,
                room_id=room_id,
                user_id=user_id,
                action=action.value,
                entity=entity,
                reason=reason,
                status=status,
                created_at_iso=_now_iso(),
                details=details,
            )
        except Exception as e:
            log.warning("Failed to write enforcement audit record: %s", e)
