"""Matrix-related functionality: login, session persistence and the gateway.

Everything that touches mautrix lives here. The rest of the bot only sees the
MatrixGateway interface and the InboundEvent types.
"""
from __future__ import annotations

import asyncio
import getpass
import json
import logging
import os
import secrets
import string
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path as FsPath
from typing import Any, Iterator, Optional

import aiohttp
from mautrix.api import Method, Path
from mautrix.client import Client
from mautrix.client.state_store.memory import MemoryStateStore
from mautrix.errors import MatrixError, MatrixRequestError, MNotFound
from mautrix.types import (
    DeviceID,
    EventID,
    EventType,
    Format,
    InReplyTo,
    MessageType,
    RelatesTo,
    RoomID,
    TextMessageEventContent,
    UserID,
)

from . import __version__
from .config import Settings
from .constants import DEVICE_NAME_PREFIX
from .errors import ProtocolError, SessionError
from .moderation.models import InboundEvent, InviteEvent, MembershipEvent, MessageEvent

log = logging.getLogger("clobber.matrix")

USER_AGENT = f"clobber/{__version__}"


@contextmanager
def translate_errors(what: str) -> Iterator[None]:
    """Re-raise library and network failures as ProtocolError."""
    try:
        yield
    except MatrixRequestError as e:
        raise ProtocolError(f"{what}: {e.message or e}", errcode=e.errcode) from e
    except MatrixError as e:
        raise ProtocolError(f"{what}: {e}") from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise ProtocolError(f"{what}: {type(e).__name__}: {e}") from e


class MautrixGateway:
    """MatrixGateway backed by a logged-in mautrix Client."""

    def __init__(self, client: Client) -> None:
        self.client = client

    @property
    def user_id(self) -> str:
        return str(self.client.mxid)

    async def read_room_state(self, room_id: str, event_type: str) -> list[dict[str, Any]]:
        with translate_errors(f"reading state of {room_id}"):
            raw = await self.client.api.request(Method.GET, Path.v3.rooms[RoomID(room_id)].state)
        return [ev for ev in raw or [] if isinstance(ev, dict) and ev.get("type") == event_type]

    async def put_room_state(self, room_id: str, event_type: str, state_key: str, content: dict[str, Any]) -> None:
        etype = EventType.find(event_type, EventType.Class.STATE)
        with translate_errors(f"writing {event_type} to {room_id}"):
            await self.client.send_state_event(RoomID(room_id), etype, content, state_key=state_key)

    async def send_message(
        self, room_id: str, text: str, html: Optional[str] = None, reply_to: Optional[str] = None
    ) -> None:
        content = TextMessageEventContent(msgtype=MessageType.TEXT, body=text)
        if html:
            content.format = Format.HTML
            content.formatted_body = html
        if reply_to:
            content.relates_to = RelatesTo(in_reply_to=InReplyTo(event_id=EventID(reply_to)))
        with translate_errors(f"sending message to {room_id}"):
            await self.client.send_message(RoomID(room_id), content)

    async def ban(self, room_id: str, user_id: str, reason: Optional[str]) -> None:
        with translate_errors(f"banning {user_id} from {room_id}"):
            await self.client.ban_user(RoomID(room_id), UserID(user_id), reason=reason or "")

    async def kick(self, room_id: str, user_id: str, reason: Optional[str]) -> None:
        with translate_errors(f"kicking {user_id} from {room_id}"):
            await self.client.kick_user(RoomID(room_id), UserID(user_id), reason=reason or "")

    async def get_membership(self, room_id: str, user_id: str) -> Optional[str]:
        with translate_errors(f"reading membership of {user_id} in {room_id}"):
            try:
                content = await self.client.get_state_event(RoomID(room_id), EventType.ROOM_MEMBER, state_key=user_id)
            except MNotFound:
                return None
        membership = getattr(content, "membership", None)
        return str(getattr(membership, "value", membership)) if membership is not None else None

    async def get_power_levels(self, room_id: str) -> Optional[dict[str, Any]]:
        with translate_errors(f"reading power levels of {room_id}"):
            try:
                content = await self.client.get_state_event(RoomID(room_id), EventType.ROOM_POWER_LEVELS)
            except MNotFound:
                return None
        return content.serialize()

    async def set_power_levels(self, room_id: str, content: dict[str, Any]) -> None:
        with translate_errors(f"writing power levels of {room_id}"):
            await self.client.send_state_event(RoomID(room_id), EventType.ROOM_POWER_LEVELS, content)

    async def joined_members(self, room_id: str) -> list[str]:
        with translate_errors(f"listing members of {room_id}"):
            members = await self.client.get_joined_members(RoomID(room_id))
        return [str(user_id) for user_id in members]

    async def join(self, room_id: str) -> None:
        with translate_errors(f"joining {room_id}"):
            await self.client.join_room(room_id)

    async def accept_invite(self, room_id: str) -> None:
        with translate_errors(f"accepting invite to {room_id}"):
            await self.client.join_room_by_id(RoomID(room_id))


def to_inbound(evt: Any, own_user_id: str) -> Optional[InboundEvent]:
    """Normalize a mautrix event into one of the bot's inbound event kinds."""
    room_id = str(evt.room_id)
    event_id = str(getattr(evt, "event_id", "") or "")
    sender = str(evt.sender)

    if evt.type == EventType.ROOM_MEMBER:
        membership = getattr(evt.content.membership, "value", evt.content.membership)
        target = str(evt.state_key)
        if membership == "invite" and target == own_user_id:
            return InviteEvent(room_id=room_id, event_id=event_id, sender=sender, invitee=target)
        return MembershipEvent(
            room_id=room_id, event_id=event_id, sender=sender, user_id=target, membership=str(membership)
        )

    if evt.type == EventType.ROOM_MESSAGE:
        if getattr(evt.content, "msgtype", None) != MessageType.TEXT:
            return None
        body = getattr(evt.content, "body", None) or ""
        return MessageEvent(room_id=room_id, event_id=event_id, sender=sender, body=body)

    return None


# Login and session persistence


@dataclass(frozen=True)
class Session:
    homeserver: str
    user_id: str
    device_id: str
    access_token: str


def save_session(session: Session, path: str) -> None:
    target = FsPath(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(asdict(session), indent=2))
    # Holds an access token.
    os.chmod(target, 0o600)
    log.debug("Session saved to %s", target)


def load_session(path: str) -> Session:
    try:
        data = json.loads(FsPath(path).read_text())
        return Session(
            homeserver=str(data["homeserver"]),
            user_id=str(data["user_id"]),
            device_id=str(data.get("device_id") or ""),
            access_token=str(data["access_token"]),
        )
    except FileNotFoundError as e:
        raise SessionError(f"no session file at {path}") from e
    except (ValueError, KeyError, TypeError) as e:
        raise SessionError(f"session file {path} is invalid: {e}") from e


def set_user_agent(client: Client) -> None:
    client.api.default_ua = USER_AGENT
    client.api.session.headers["User-Agent"] = USER_AGENT


def build_client(session: Session) -> Client:
    client = Client(
        mxid=UserID(session.user_id),
        device_id=DeviceID(session.device_id),
        base_url=session.homeserver,
        token=session.access_token,
        state_store=MemoryStateStore(),
    )
    set_user_agent(client)
    return client


@dataclass(frozen=True)
class InteractiveLogin:
    url: str
    username: str
    password: str

    @classmethod
    def from_stdin(cls) -> "InteractiveLogin":
        url = input("Enter homeserver URL: ").strip().rstrip("/")
        username = input("Enter username: ").strip()
        password = getpass.getpass("Enter password: ").strip()
        if not url or not username or not password:
            raise SessionError("homeserver URL, username and password are all required")
        return cls(url=url, username=username, password=password)


def random_device_name() -> str:
    alphabet = string.ascii_letters + string.digits
    return DEVICE_NAME_PREFIX + "".join(secrets.choice(alphabet) for _ in range(6))


async def interactive_login(settings: Settings, login: Optional[InteractiveLogin] = None) -> Client:
    """Log in with a password and save the resulting session."""
    login = login or InteractiveLogin.from_stdin()
    log.debug("Starting interactive login flow")
    client = Client(base_url=login.url, state_store=MemoryStateStore())
    set_user_agent(client)
    try:
        with translate_errors("logging in"):
            response = await client.login(
                identifier=login.username,
                password=login.password,
                device_name=random_device_name(),
            )
    except ProtocolError as e:
        log.error("Login failed: %s", e)
        await client.api.session.close()
        raise SessionError(str(e)) from e
    log.info("Logged in successfully as %s", response.user_id)

    session = Session(
        homeserver=login.url,
        user_id=str(response.user_id),
        device_id=str(response.device_id),
        access_token=response.access_token,
    )
    try:
        save_session(session, settings.session_path)
    except OSError as e:
        log.error("Could not save session: %s", e)
    return client


def session_from_settings(settings: Settings) -> Session:
    if FsPath(settings.session_path).is_file():
        return load_session(settings.session_path)
    if settings.homeserver_url and settings.access_token:
        return Session(
            homeserver=settings.homeserver_url,
            user_id=settings.user_id,
            device_id=settings.device_id,
            access_token=settings.access_token,
        )
    raise SessionError(
        f"no session at {settings.session_path} and no MATRIX_HOMESERVER_URL/MATRIX_ACCESS_TOKEN set; "
        "run with --login first"
    )


async def restore_login(settings: Settings) -> Client:
    """Restore login from the saved session (or token settings) and verify it."""
    session = session_from_settings(settings)
    client = build_client(session)
    log.debug("Restoring login from session.")
    try:
        with translate_errors("verifying session"):
            whoami = await client.whoami()
    except ProtocolError as e:
        await client.api.session.close()
        raise SessionError(f"could not restore login: {e}") from e
    if session.user_id and str(whoami.user_id) != session.user_id:
        log.warning("Session user %s does not match token owner %s", session.user_id, whoami.user_id)
    client.mxid = whoami.user_id
    return client
