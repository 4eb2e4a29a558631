from __future__ import annotations

import pytest

from clobber.errors import EnforcementError, MissingPowerLevelsError
from clobber.moderation.action_engine import ActionEngine, speaking_threshold, user_level
from clobber.moderation.models import Action, EnforcementOutcome, Identity

from .conftest import PROTECTED

SPAMMER = Identity.parse("@spam:evil.tld")


class TestBanKick:
    @pytest.mark.asyncio
    async def test_ban_then_repeat(self, gateway, action_engine, stats):
        gateway.add_member(PROTECTED, SPAMMER.user_id)

        first = await action_engine.apply(PROTECTED, SPAMMER, Action.BAN, "spam")
        second = await action_engine.apply(PROTECTED, SPAMMER, Action.BAN, "spam")

        assert first is EnforcementOutcome.APPLIED
        assert second is EnforcementOutcome.ALREADY_APPLIED
        assert len(gateway.actions("ban")) == 1
        assert gateway.actions("ban")[0]["args"]["reason"] == "spam"
        assert stats.actions_applied == 1
        assert stats.actions_already_applied == 1

    @pytest.mark.asyncio
    async def test_kick_absent_user_is_noop(self, gateway, action_engine):
        outcome = await action_engine.apply(PROTECTED, SPAMMER, Action.KICK, None)
        assert outcome is EnforcementOutcome.ALREADY_APPLIED
        assert gateway.actions("kick") == []

    @pytest.mark.asyncio
    async def test_kick_member(self, gateway, action_engine):
        gateway.add_member(PROTECTED, SPAMMER.user_id)
        outcome = await action_engine.apply(PROTECTED, SPAMMER, Action.KICK, "bye")
        assert outcome is EnforcementOutcome.APPLIED
        assert gateway.members[PROTECTED][SPAMMER.user_id] == "leave"

    @pytest.mark.asyncio
    async def test_refused_ban_raises(self, gateway, action_engine, stats):
        gateway.add_member(PROTECTED, SPAMMER.user_id)
        gateway.failing_actions.add("ban")

        with pytest.raises(EnforcementError) as info:
            await action_engine.apply(PROTECTED, SPAMMER, Action.BAN, "spam")

        assert info.value.user_id == SPAMMER.user_id
        assert stats.actions_failed == 1


class TestMute:
    @pytest.mark.asyncio
    async def test_mute_drops_below_speaking_threshold(self, gateway, action_engine):
        gateway.power_levels[PROTECTED] = {"users": {"@admin:example.org": 100}, "events_default": 0}

        outcome = await action_engine.apply(PROTECTED, SPAMMER, Action.MUTE, None)

        assert outcome is EnforcementOutcome.APPLIED
        pl = gateway.power_levels[PROTECTED]
        assert pl["users"][SPAMMER.user_id] == -1
        assert pl["users"]["@admin:example.org"] == 100
        assert pl["events_default"] == 0

    @pytest.mark.asyncio
    async def test_mute_uses_message_event_level(self, gateway, action_engine):
        gateway.power_levels[PROTECTED] = {"events": {"m.room.message": -5}, "events_default": 0}

        await action_engine.apply(PROTECTED, SPAMMER, Action.MUTE, None)

        assert gateway.power_levels[PROTECTED]["users"][SPAMMER.user_id] == -6

    @pytest.mark.asyncio
    async def test_mute_is_idempotent(self, gateway, action_engine):
        gateway.power_levels[PROTECTED] = {"users": {}, "events_default": 0}

        await action_engine.apply(PROTECTED, SPAMMER, Action.MUTE, None)
        again = await action_engine.apply(PROTECTED, SPAMMER, Action.MUTE, None)

        assert again is EnforcementOutcome.ALREADY_APPLIED
        assert len(gateway.actions("set_power_levels")) == 1

    @pytest.mark.asyncio
    async def test_missing_power_levels(self, gateway, action_engine):
        with pytest.raises(MissingPowerLevelsError):
            await action_engine.apply(PROTECTED, SPAMMER, Action.MUTE, None)
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_custom_muted_level_is_clamped(self, gateway, stats):
        engine = ActionEngine(gateway=gateway, stats=stats, muted_power_level=10)
        gateway.power_levels[PROTECTED] = {"events_default": 0}

        await engine.apply(PROTECTED, SPAMMER, Action.MUTE, None)

        assert gateway.power_levels[PROTECTED]["users"][SPAMMER.user_id] == -1


def test_power_level_helpers():
    pl = {"users": {"@a:x": 50}, "users_default": 10, "events": {}, "events_default": 20}
    assert speaking_threshold(pl) == 20
    assert user_level(pl, "@a:x") == 50
    assert user_level(pl, "@b:x") == 10
    assert speaking_threshold({}) == 0
    assert user_level({}, "@a:x") == 0
