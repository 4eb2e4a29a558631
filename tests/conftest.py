"""Shared fixtures: an in-memory homeserver and a bot wired to it."""
from __future__ import annotations

import pytest

from clobber.config import Settings
from clobber.invites import BackoffPolicy, InviteAcceptor
from clobber.moderation.action_engine import ActionEngine
from clobber.moderation.pipeline import ModerationPipeline
from clobber.moderation.rule_store import RuleStore
from clobber.services.stats import RuntimeStats
from clobber.testing.fakes import FakeGateway, RecordingSleep

PROTECTED = "!protected:example.org"
RULES_ROOM = "!rules:example.org"
ADMIN = "@admin:example.org"


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(user_id="@clobber:example.org")


@pytest.fixture
def stats() -> RuntimeStats:
    return RuntimeStats()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        homeserver_url="https://example.org",
        user_id="@clobber:example.org",
        access_token="token",
        device_id="DEVICE",
        session_path=str(tmp_path / "session.json"),
        command_prefix="!clobber",
        allowed_users=(ADMIN,),
        protected_rooms=(PROTECTED,),
        rule_lists={"main": RULES_ROOM},
        sqlite_path=str(tmp_path / "clobber.sqlite3"),
    )


@pytest.fixture
def rule_store(gateway) -> RuleStore:
    return RuleStore(gateway, {"main": RULES_ROOM})


@pytest.fixture
def action_engine(gateway, stats) -> ActionEngine:
    return ActionEngine(gateway=gateway, stats=stats)


@pytest.fixture
def pipeline(gateway, rule_store, action_engine) -> ModerationPipeline:
    return ModerationPipeline(
        rule_store=rule_store,
        action_engine=action_engine,
        protected_rooms=[PROTECTED],
        own_user_id=gateway.user_id,
    )


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def invite_acceptor(gateway, stats, sleep) -> InviteAcceptor:
    return InviteAcceptor(
        gateway=gateway,
        allowed_users=[ADMIN],
        policy=BackoffPolicy(),
        stats=stats,
        sleep=sleep,
    )
