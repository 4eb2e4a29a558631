from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from ..errors import DeserializeError, PatternError
from .matching import parse_entity
from .models import Action, Identity, Rule

log = logging.getLogger("clobber.rule_engine")


def deserialize_rule(raw: dict[str, Any]) -> Optional[Rule]:
    """Turn a raw rule state event into a Rule.

    Returns None for an emptied (removed) rule and raises DeserializeError for
    anything malformed.
    """
    if not isinstance(raw, dict):
        raise DeserializeError(f"state event is not an object: {raw!r}")
    content = raw.get("content")
    if not isinstance(content, dict):
        raise DeserializeError(f"rule content is not an object: {content!r}")
    if not content:
        return None

    entity = content.get("entity")
    if not isinstance(entity, str) or not entity:
        raise DeserializeError(f"rule has no entity: {content!r}")
    state_key = raw.get("state_key")
    if state_key is not None and state_key != entity:
        raise DeserializeError(f"rule for {entity!r} is stored under state key {state_key!r}")

    raw_action = content.get("action")
    try:
        action = Action(raw_action)
    except ValueError:
        raise DeserializeError(f"rule for {entity!r} has unknown action {raw_action!r}") from None

    reason = content.get("reason")
    if reason is not None and not isinstance(reason, str):
        raise DeserializeError(f"rule for {entity!r} has a non-string reason")

    return Rule(entity=entity, action=action, reason=reason or None)


def parse_rules(raw_events: Iterable[dict[str, Any]], *, source: str = "?") -> list[Rule]:
    rules: list[Rule] = []
    for raw in raw_events:
        try:
            rule = deserialize_rule(raw)
        except DeserializeError as e:
            log.warning("Skipping malformed rule in %s: %s", source, e)
            continue
        if rule is not None:
            rules.append(rule)
    return rules


def evaluate_rules(rules: Iterable[Rule], identity: Identity, *, source: str = "?") -> list[Rule]:
    """Return the rules whose entity matches ``identity``, in input order."""
    hits: list[Rule] = []
    for rule in rules:
        try:
            pattern = parse_entity(rule.entity)
        except PatternError as e:
            log.warning("Skipping rule with invalid entity in %s: %s", source, e)
            continue
        if pattern.matches(identity):
            hits.append(rule)
    return hits


def resolve(rules: Iterable[Rule]) -> Optional[Rule]:
    """Pick the single rule to apply: the first one in Ban < Kick < Mute order."""
    ordered = sorted(rules, key=lambda r: r.action.severity_rank)
    return ordered[0] if ordered else None
