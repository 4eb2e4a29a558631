from __future__ import annotations

import pytest

from clobber.constants import RULE_EVENT_TYPE
from clobber.errors import FetchError, PatternError, UnknownRuleListError
from clobber.moderation.models import Action, Identity, Rule
from clobber.moderation.rule_store import RuleStore

from .conftest import RULES_ROOM


def test_rule_rooms_deduplicated(gateway):
    store = RuleStore(gateway, {"a": "!one:x", "b": "!two:x", "c": "!one:x"})
    assert store.rule_rooms() == ["!one:x", "!two:x"]


def test_get_list_room(rule_store):
    assert rule_store.get_list_room("main") == RULES_ROOM
    with pytest.raises(UnknownRuleListError) as info:
        rule_store.get_list_room("nope")
    assert info.value.shortcode == "nope"


@pytest.mark.asyncio
async def test_fetch_rules(gateway, rule_store):
    gateway.add_rule(RULES_ROOM, "*.evil.tld", "ban", "spam")
    gateway.set_raw_state(RULES_ROOM, RULE_EVENT_TYPE, "removed.tld", {})
    gateway.set_raw_state(RULES_ROOM, "m.room.topic", "", {"topic": "rules"})

    rules = await rule_store.fetch_rules(RULES_ROOM)

    assert rules == [Rule(entity="*.evil.tld", action=Action.BAN, reason="spam")]


@pytest.mark.asyncio
async def test_fetch_rules_unreachable(gateway, rule_store):
    gateway.unreachable_rooms.add(RULES_ROOM)
    with pytest.raises(FetchError):
        await rule_store.fetch_rules(RULES_ROOM)


@pytest.mark.asyncio
async def test_rules_for_skips_unreachable_rooms(gateway):
    store = RuleStore(gateway, {"a": "!down:x", "b": "!up:x"})
    gateway.unreachable_rooms.add("!down:x")
    gateway.add_rule("!up:x", "evil.tld", "kick")

    rules = await store.rules_for(Identity.parse("@spam:evil.tld"))

    assert [r.action for r in rules] == [Action.KICK]


@pytest.mark.asyncio
async def test_set_rule_writes_state_keyed_by_entity(gateway, rule_store):
    await rule_store.set_rule(RULES_ROOM, Rule(entity="@spam:evil.tld", action=Action.MUTE, reason=None))

    [call] = gateway.actions("put_room_state")
    assert call["args"]["event_type"] == RULE_EVENT_TYPE
    assert call["args"]["state_key"] == "@spam:evil.tld"
    assert call["args"]["content"] == {"entity": "@spam:evil.tld", "action": "mute", "reason": None}


@pytest.mark.asyncio
async def test_set_rule_overwrites_same_entity(gateway, rule_store):
    await rule_store.set_rule(RULES_ROOM, Rule(entity="evil.tld", action=Action.MUTE))
    await rule_store.set_rule(RULES_ROOM, Rule(entity="evil.tld", action=Action.BAN, reason="worse"))

    rules = await rule_store.fetch_rules(RULES_ROOM)
    assert rules == [Rule(entity="evil.tld", action=Action.BAN, reason="worse")]


@pytest.mark.asyncio
async def test_set_rule_rejects_invalid_entity(gateway, rule_store):
    with pytest.raises(PatternError):
        await rule_store.set_rule(RULES_ROOM, Rule(entity="evil.tld:8448", action=Action.BAN))
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_rule_under_foreign_state_key_is_skipped(gateway, rule_store):
    gateway.set_raw_state(RULES_ROOM, RULE_EVENT_TYPE, "good.tld", {"entity": "evil.tld", "action": "ban"})
    gateway.add_rule(RULES_ROOM, "spam.tld", "kick")

    rules = await rule_store.fetch_rules(RULES_ROOM)

    assert rules == [Rule(entity="spam.tld", action=Action.KICK)]
