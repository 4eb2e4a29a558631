"""Command functions and dispatch."""
from __future__ import annotations

import html
import logging
from typing import Awaitable, Callable, Optional, Sequence

from .constants import ERROR_MESSAGES, HELP_TEXT
from .error_handlers import describe_command_error
from .interfaces import MatrixGateway
from .moderation.models import Action, MessageEvent, Rule, SweepReport
from .moderation.pipeline import ModerationPipeline

log = logging.getLogger("clobber.commands")

CommandFn = Callable[[MessageEvent, Sequence[str]], Awaitable[None]]


def tokenize(body: str) -> list[str]:
    return body.split()


def parse_rule_args(args: Sequence[str]) -> Optional[tuple[str, str, Optional[str]]]:
    """Split ``<list> <entity> [reason]``; None unless there are two or three tokens."""
    if len(args) not in (2, 3):
        return None
    reason = args[2] if len(args) == 3 else None
    return args[0], args[1], reason


def format_sweep(rule: Rule, shortcode: str, report: SweepReport) -> str:
    lines = [
        f"Rule set in {shortcode}: {rule.action.value} {rule.entity}"
        + (f" ({rule.reason})" if rule.reason else ""),
        f"Checked {report.members_checked} member(s) in {report.rooms_checked} room(s): "
        f"{report.applied} actioned, {report.already_applied} already actioned, {report.failed} failed.",
    ]
    lines.extend(report.errors)
    return "\n".join(lines)


class CommandDispatcher:
    """Parses prefixed messages and runs the matching command.

    Only senders in ``allowed_users`` are listened to.
    """

    def __init__(
        self,
        *,
        gateway: MatrixGateway,
        pipeline: ModerationPipeline,
        prefix: str,
        allowed_users: Sequence[str],
    ) -> None:
        self.gateway = gateway
        self.pipeline = pipeline
        self.prefix = prefix
        self.allowed_users = frozenset(allowed_users)
        self._commands: dict[str, CommandFn] = {
            "help": self.help,
            "ban": self.ban,
            "mute": self.mute,
        }

    def is_command(self, body: str) -> bool:
        tokens = tokenize(body)
        return bool(tokens) and tokens[0] == self.prefix

    async def handle(self, event: MessageEvent) -> None:
        if not self.is_command(event.body):
            return
        if event.sender not in self.allowed_users:
            log.info("Ignoring command from unauthorized user %s in %s", event.sender, event.room_id)
            return

        tokens = tokenize(event.body)
        if len(tokens) < 2:
            await self.help(event, [])
            return

        base_command, arguments = tokens[1], tokens[2:]
        command = self._commands.get(base_command, self.unknown)
        log.info("Command %r from %s in %s", base_command, event.sender, event.room_id)
        try:
            await command(event, arguments)
        except Exception as e:
            await self.reply(event, describe_command_error(e, prefix=self.prefix))

    async def reply(self, event: MessageEvent, text: str, formatted: Optional[str] = None) -> None:
        if formatted is None:
            formatted = html.escape(text).replace("\n", "<br>")
        await self.gateway.send_message(event.room_id, text, html=formatted, reply_to=event.event_id)

    async def unknown(self, event: MessageEvent, args: Sequence[str]) -> None:
        text = ERROR_MESSAGES["unknown_command"].format(command=f"{self.prefix} help")
        formatted = ERROR_MESSAGES["unknown_command"].format(command=f"<code>{html.escape(self.prefix)} help</code>")
        await self.reply(event, text, formatted)

    async def help(self, event: MessageEvent, args: Sequence[str]) -> None:
        text = HELP_TEXT.format(prefix=self.prefix)
        await self.reply(event, text, f"<pre>{html.escape(text)}</pre>")

    async def ban(self, event: MessageEvent, args: Sequence[str]) -> None:
        await self._set_rule(event, args, Action.BAN)

    async def mute(self, event: MessageEvent, args: Sequence[str]) -> None:
        await self._set_rule(event, args, Action.MUTE)

    async def _set_rule(self, event: MessageEvent, args: Sequence[str], action: Action) -> None:
        parsed = parse_rule_args(args)
        if parsed is None:
            await self.reply(event, ERROR_MESSAGES["invalid_arguments"])
            return
        shortcode, entity, reason = parsed

        rule_store = self.pipeline.rule_store
        room_id = rule_store.get_list_room(shortcode)
        rule = Rule(entity=entity, action=action, reason=reason)
        await rule_store.set_rule(room_id, rule)

        report = await self.pipeline.sweep(trigger="command")
        await self.reply(event, format_sweep(rule, shortcode, report))
