from __future__ import annotations

from typing import Final

# Room state type holding one moderation rule per state key (the entity string).
RULE_EVENT_TYPE: Final[str] = "sh.nao.clobber.rule"

MESSAGE_EVENT_TYPE: Final[str] = "m.room.message"

# Power level handed to muted users; clamped below the room's speaking threshold.
MUTED_POWER_LEVEL: Final[int] = -1

INVITE_INITIAL_DELAY_SECONDS: Final[int] = 2
INVITE_MAX_DELAY_SECONDS: Final[int] = 3600

DEFAULT_COMMAND_PREFIX: Final[str] = "!clobber"
DEVICE_NAME_PREFIX: Final[str] = "Clobber_"

# Memberships that put a user in front of the rule engine.
ENFORCED_MEMBERSHIPS: Final[frozenset[str]] = frozenset({"join", "invite"})

HELP_TEXT: Final[str] = (
    "Commands:\n"
    "  {prefix} help - show this message\n"
    "  {prefix} ban <list> <entity> [reason] - ban users or servers matching <entity>\n"
    "  {prefix} mute <list> <entity> [reason] - mute users or servers matching <entity>\n"
    "<entity> is a user glob such as @spam*:example.org or a server glob such as *.example.org"
)

ERROR_MESSAGES = {
    "invalid_arguments": "Invalid number of arguments!",
    "unknown_command": "Unrecognized command, please try again or see {command} for available commands.",
    "unknown_list": "Unknown rule list: {shortcode}",
    "invalid_entity": "Invalid entity: {detail}",
    "write_failed": "Could not write rule: {error}",
    "unexpected": "Something went wrong running that command.",
}
