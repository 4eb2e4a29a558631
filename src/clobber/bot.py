from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from mautrix.client import Client
from mautrix.types import EventType

from .commands import CommandDispatcher
from .config import Settings
from .constants import ENFORCED_MEMBERSHIPS
from .database import initialize_database
from .errors import EnforcementError, MissingPowerLevelsError
from .interfaces import MatrixGateway, validate_gateway
from .invites import BackoffPolicy, InviteAcceptor
from .matrix import MautrixGateway, to_inbound
from .moderation.action_engine import ActionEngine
from .moderation.models import InboundEvent, InviteEvent, MembershipEvent, MessageEvent
from .moderation.pipeline import ModerationPipeline
from .moderation.rule_store import RuleStore
from .services.audit_store import EnforcementAuditStore
from .services.stats import RuntimeStats

log = logging.getLogger("clobber.bot")


class ClobberBot:
    """Wires the moderation engine to a homeserver and routes inbound events.

    Every collaborator is built from ``settings`` and ``gateway`` here and
    handed down explicitly.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: MatrixGateway,
        *,
        audit_store: Optional[EnforcementAuditStore] = None,
        stats: Optional[RuntimeStats] = None,
        invite_acceptor: Optional[InviteAcceptor] = None,
    ) -> None:
        self.settings = settings
        self.gateway = validate_gateway(gateway)
        self.stats = stats or RuntimeStats()
        self.audit_store = audit_store

        self.rule_store = RuleStore(gateway, settings.rule_lists)
        self.action_engine = ActionEngine(
            gateway=gateway,
            stats=self.stats,
            audit_store=audit_store,
            muted_power_level=settings.mute_power_level,
        )
        self.pipeline = ModerationPipeline(
            rule_store=self.rule_store,
            action_engine=self.action_engine,
            protected_rooms=settings.protected_rooms,
            own_user_id=gateway.user_id,
        )
        self.commands = CommandDispatcher(
            gateway=gateway,
            pipeline=self.pipeline,
            prefix=settings.command_prefix,
            allowed_users=settings.allowed_users,
        )
        self.invites = invite_acceptor or InviteAcceptor(
            gateway=gateway,
            allowed_users=settings.allowed_users,
            policy=BackoffPolicy(
                initial_delay=settings.invite_initial_delay_seconds,
                max_delay=settings.invite_max_delay_seconds,
            ),
            stats=self.stats,
        )

        self._handlers: dict[type, Callable[[Any], Awaitable[None]]] = {
            MembershipEvent: self.on_membership,
            MessageEvent: self.on_message,
            InviteEvent: self.on_invite,
        }

    async def setup(self) -> None:
        if self.audit_store is not None:
            await initialize_database(self.settings.sqlite_path, [self.audit_store])
        log.info(
            "Protecting %d room(s) with %d rule list(s) as %s",
            len(self.settings.protected_rooms),
            len(self.settings.rule_lists),
            self.gateway.user_id,
        )

    async def dispatch(self, event: InboundEvent) -> None:
        """Run the handler for one event; never raises."""
        handler = self._handlers.get(type(event))
        if handler is None:
            log.debug("No handler for %s", type(event).__name__)
            return
        self.stats.events_handled += 1
        try:
            await handler(event)
        except Exception:
            self.stats.events_failed += 1
            log.exception("Handler for %s in %s failed", type(event).__name__, event.room_id)

    async def on_membership(self, event: MembershipEvent) -> None:
        if event.membership not in ENFORCED_MEMBERSHIPS:
            return
        if not self.pipeline.is_protected(event.room_id):
            return
        try:
            await self.pipeline.enforce_member(event.room_id, event.user_id, trigger="membership")
        except MissingPowerLevelsError as e:
            log.error("Configuration fault: %s", e)
        except EnforcementError as e:
            log.warning("Enforcement failed: %s", e)

    async def on_message(self, event: MessageEvent) -> None:
        if event.sender == self.gateway.user_id:
            return
        await self.commands.handle(event)

    async def on_invite(self, event: InviteEvent) -> None:
        if not self.invites.is_for_me(event):
            return
        await self.invites.handle(event)


class MatrixRunner:
    """Feeds mautrix sync events into a ClobberBot until stopped."""

    def __init__(self, client: Client, bot: ClobberBot) -> None:
        self.client = client
        self.bot = bot

    @classmethod
    def create(cls, client: Client, settings: Settings, *, stats: Optional[RuntimeStats] = None) -> "MatrixRunner":
        gateway = MautrixGateway(client)
        bot = ClobberBot(
            settings,
            gateway,
            audit_store=EnforcementAuditStore(settings.sqlite_path),
            stats=stats,
        )
        return cls(client, bot)

    async def _on_event(self, evt: Any) -> None:
        inbound = to_inbound(evt, self.bot.gateway.user_id)
        if inbound is None:
            return
        await self.bot.dispatch(inbound)

    async def run(self) -> None:
        await self.bot.setup()
        self.client.add_event_handler(EventType.ROOM_MEMBER, self._on_event)
        self.client.add_event_handler(EventType.ROOM_MESSAGE, self._on_event)
        # Only react to what happens from now on.
        self.client.ignore_initial_sync = True
        log.info("Starting sync as %s", self.client.mxid)
        await self.client.start(filter_data=None)

    def stop(self) -> None:
        self.client.stop()

    async def close(self) -> None:
        self.stop()
        try:
            await self.client.api.session.close()
        except Exception as e:
            log.warning("Failed to close HTTP session: %s", e)
