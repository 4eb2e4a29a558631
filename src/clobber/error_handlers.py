from __future__ import annotations

import logging

from .constants import ERROR_MESSAGES
from .errors import EnforcementError, PatternError, ProtocolError, UnknownRuleListError

log = logging.getLogger("clobber.error_handlers")


def describe_command_error(error: Exception, *, prefix: str) -> str:
    """Map an exception raised while running a command to the reply text."""
    if isinstance(error, PatternError):
        return ERROR_MESSAGES["invalid_entity"].format(detail=error)

    if isinstance(error, UnknownRuleListError):
        return ERROR_MESSAGES["unknown_list"].format(shortcode=error.shortcode)

    if isinstance(error, EnforcementError):
        return str(error)

    if isinstance(error, ProtocolError):
        return ERROR_MESSAGES["write_failed"].format(error=error)

    # Log unexpected errors
    log.exception("Unexpected error while running command (%s): %s", prefix, error, exc_info=error)
    return ERROR_MESSAGES["unexpected"]
