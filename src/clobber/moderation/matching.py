"""Entity patterns: which users or servers a rule targets.

Two shapes are accepted:

- user patterns, ``@<glob>:<glob>``, matched against the full user ID
- server patterns, ``<glob>`` without ``@`` or ``:``, matched against the
  host part of the user's server name

Globs understand ``*`` (any run of characters) and ``?`` (one character) and
are case-sensitive.
A server pattern starting with ``*.`` also matches the bare domain after it.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from ..errors import PatternError
from .models import Identity


class EntityKind(str, Enum):
    USER = "user"
    SERVER = "server"


@dataclass(frozen=True)
class Pattern:
    entity: str
    kind: EntityKind
    regex: re.Pattern[str]

    def matches(self, identity: Identity) -> bool:
        if self.kind is EntityKind.USER:
            return self.regex.fullmatch(identity.user_id) is not None
        return self.regex.fullmatch(identity.host) is not None


def glob_to_regex(glob: str) -> re.Pattern[str]:
    parts: list[str] = []
    for ch in glob:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


def parse_entity(entity: str) -> Pattern:
    if not entity:
        raise PatternError(entity, "entity is empty")
    if any(ch.isspace() for ch in entity):
        raise PatternError(entity, "entity contains whitespace")

    if entity.startswith("@"):
        localpart, sep, server = entity[1:].partition(":")
        if not sep:
            raise PatternError(entity, "user pattern needs a ':' between user and server")
        if not localpart:
            raise PatternError(entity, "user pattern has an empty user part")
        if not server:
            raise PatternError(entity, "user pattern has an empty server part")
        return Pattern(entity=entity, kind=EntityKind.USER, regex=glob_to_regex(entity))

    if ":" in entity:
        # Either a user ID missing its '@' or a server with a port; refuse to guess.
        raise PatternError(entity, "ambiguous entity, user patterns must start with '@' and server patterns cannot contain ':'")
    if entity.startswith("*."):
        # "*.example.org" also covers example.org itself.
        regex = re.compile(r"(?:.*\.)?" + glob_to_regex(entity[2:]).pattern, re.DOTALL)
    else:
        regex = glob_to_regex(entity)
    return Pattern(entity=entity, kind=EntityKind.SERVER, regex=regex)


def matches(identity: Identity, pattern: Pattern) -> bool:
    return pattern.matches(identity)


def matches_entity(identity: Identity, entity: str) -> bool:
    """Parse ``entity`` and match it; raises PatternError for invalid entities."""
    return parse_entity(entity).matches(identity)
