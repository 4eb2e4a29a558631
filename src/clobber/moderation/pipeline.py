from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from ..errors import EnforcementError, ProtocolError
from .action_engine import ActionEngine
from .models import EnforcementOutcome, EnforcementReport, Identity, Rule, SweepReport
from .rule_engine import resolve
from .rule_store import RuleStore

log = logging.getLogger("clobber.pipeline")


class ModerationPipeline:
    def __init__(
        self,
        *,
        rule_store: RuleStore,
        action_engine: ActionEngine,
        protected_rooms: Iterable[str],
        own_user_id: str,
    ) -> None:
        self.rule_store = rule_store
        self.action_engine = action_engine
        self.protected_rooms = list(protected_rooms)
        self.own_user_id = own_user_id

    def is_protected(self, room_id: str) -> bool:
        return room_id in self.protected_rooms

    async def decide(self, identity: Identity) -> Optional[Rule]:
        rules = await self.rule_store.rules_for(identity, self.rule_store.rule_rooms())
        return resolve(rules)

    async def enforce_member(self, room_id: str, user_id: str, *, trigger: str = "membership") -> Optional[EnforcementReport]:
        """Apply the winning rule for ``user_id`` in ``room_id``, if any.

        Raises EnforcementError when the homeserver refuses the action.
        """
        if user_id == self.own_user_id:
            return None
        try:
            identity = Identity.parse(user_id)
        except ValueError as e:
            log.warning("Ignoring member with invalid user ID in %s: %s", room_id, e)
            return None

        rule = await self.decide(identity)
        if rule is None:
            return None

        correlation_id = str(uuid.uuid4())
        outcome = await self.action_engine.apply(
            room_id,
            identity,
            rule.action,
            rule.reason,
            correlation_id=correlation_id,
            trigger=trigger,
            entity=rule.entity,
        )
        return EnforcementReport(
            correlation_id=correlation_id,
            room_id=room_id,
            user_id=user_id,
            rule=rule,
            outcome=outcome,
        )

    async def sweep(self, *, trigger: str = "command") -> SweepReport:
        """Re-evaluate every joined member of every protected room."""
        report = SweepReport()
        for room_id in self.protected_rooms:
            try:
                members = await self.action_engine.gateway.joined_members(room_id)
            except ProtocolError as e:
                log.warning("Could not list members of %s: %s", room_id, e)
                report.failed += 1
                report.errors.append(f"{room_id}: could not list members ({e})")
                continue
            report.rooms_checked += 1

            for user_id in members:
                report.members_checked += 1
                try:
                    result = await self.enforce_member(room_id, user_id, trigger=trigger)
                except EnforcementError as e:
                    log.warning("Retroactive enforcement failed: %s", e)
                    report.failed += 1
                    report.errors.append(str(e))
                    continue
                if result is None:
                    continue
                if result.outcome is EnforcementOutcome.APPLIED:
                    report.applied += 1
                else:
                    report.already_applied += 1

        log.info(
            "Sweep done: rooms=%d members=%d applied=%d already=%d failed=%d",
            report.rooms_checked,
            report.members_checked,
            report.applied,
            report.already_applied,
            report.failed,
        )
        return report
