from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Iterator, Optional

from .constants import INVITE_INITIAL_DELAY_SECONDS, INVITE_MAX_DELAY_SECONDS
from .errors import ProtocolError
from .interfaces import MatrixGateway
from .moderation.models import InviteEvent, InviteState
from .services.stats import RuntimeStats

log = logging.getLogger("clobber.invites")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    initial_delay: int = INVITE_INITIAL_DELAY_SECONDS
    max_delay: int = INVITE_MAX_DELAY_SECONDS
    factor: int = 2

    def delays(self) -> Iterator[int]:
        """Waits between join attempts: initial, initial*factor, ... while <= max_delay."""
        delay = max(1, self.initial_delay)
        while delay <= self.max_delay:
            yield delay
            delay *= max(2, self.factor)


class InviteAcceptor:
    """Accepts invites from trusted users, retrying the join with backoff.

    A run ends in JOINED, REJECTED or ABANDONED; a later invite starts over.
    """

    def __init__(
        self,
        *,
        gateway: MatrixGateway,
        allowed_users: Iterable[str],
        policy: Optional[BackoffPolicy] = None,
        stats: Optional[RuntimeStats] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.allowed_users = frozenset(allowed_users)
        self.policy = policy or BackoffPolicy()
        self.stats = stats or RuntimeStats()
        self._sleep = sleep

    def is_for_me(self, event: InviteEvent) -> bool:
        return event.invitee == self.gateway.user_id

    async def handle(self, event: InviteEvent) -> InviteState:
        if event.sender not in self.allowed_users:
            log.info("Unauthorized user %s tried to invite bot to %s", event.sender, event.room_id)
            self.stats.invites_rejected += 1
            return InviteState.REJECTED

        log.debug("Joining room: %s", event.room_id)
        state = await self._join_with_backoff(event.room_id)
        if state is InviteState.JOINED:
            self.stats.invites_joined += 1
        else:
            self.stats.invites_abandoned += 1
        return state

    async def _join_with_backoff(self, room_id: str) -> InviteState:
        delays = self.policy.delays()
        attempts = 0
        while True:
            attempts += 1
            try:
                await self.gateway.accept_invite(room_id)
            except ProtocolError as e:
                delay = next(delays, None)
                if delay is None:
                    log.error("Couldn't join room %s after %d attempts (%s)", room_id, attempts, e)
                    return InviteState.ABANDONED
                log.warning("Failed to join room: %s (%s), retrying in %ss", room_id, e, delay)
                await self._sleep(delay)
                continue
            log.info("Joined room: %s", room_id)
            return InviteState.JOINED
