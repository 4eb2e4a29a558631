from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from ..constants import RULE_EVENT_TYPE
from ..errors import FetchError, ProtocolError, UnknownRuleListError
from ..interfaces import MatrixGateway
from .matching import parse_entity
from .models import Identity, Rule, RuleList
from .rule_engine import evaluate_rules, parse_rules

log = logging.getLogger("clobber.rule_store")


class RuleStore:
    """Reads and writes rules kept as state in rule-list rooms.

    Nothing is cached: each call fetches the current room state.
    """

    def __init__(self, gateway: MatrixGateway, rule_lists: Mapping[str, str]) -> None:
        self.gateway = gateway
        self._lists = [RuleList(shortcode=k, room_id=v) for k, v in rule_lists.items()]

    @property
    def rule_lists(self) -> list[RuleList]:
        return list(self._lists)

    def rule_rooms(self) -> list[str]:
        seen: list[str] = []
        for rl in self._lists:
            if rl.room_id not in seen:
                seen.append(rl.room_id)
        return seen

    def get_list_room(self, shortcode: str) -> str:
        for rl in self._lists:
            if rl.shortcode == shortcode:
                return rl.room_id
        raise UnknownRuleListError(shortcode)

    async def fetch_rules(self, room_id: str) -> list[Rule]:
        try:
            raw = await self.gateway.read_room_state(room_id, RULE_EVENT_TYPE)
        except ProtocolError as e:
            raise FetchError(room_id, e) from e
        return parse_rules(raw, source=room_id)

    async def rules_for(self, identity: Identity, rule_rooms: Optional[Iterable[str]] = None) -> list[Rule]:
        rooms = self.rule_rooms() if rule_rooms is None else list(rule_rooms)
        matched: list[Rule] = []
        for room_id in rooms:
            try:
                rules = await self.fetch_rules(room_id)
            except FetchError as e:
                # One unreachable list must not block enforcement from the others.
                log.warning("Skipping rule room: %s", e)
                continue
            matched.extend(evaluate_rules(rules, identity, source=room_id))
        return matched

    async def set_rule(self, room_id: str, rule: Rule) -> None:
        parse_entity(rule.entity)
        await self.gateway.put_room_state(room_id, RULE_EVENT_TYPE, rule.entity, rule.to_content())
        log.info("Rule written to %s: %s %s", room_id, rule.action.value, rule.entity)
