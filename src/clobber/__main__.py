from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Optional, Sequence

from dotenv import load_dotenv

from . import __version__
from .bot import MatrixRunner
from .config import load_settings, require_runtime_settings
from .errors import SessionError
from .health import start_health_server
from .logging_setup import setup_logging
from .matrix import interactive_login, restore_login

log = logging.getLogger("clobber.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="clobber", description="A moderation bot for Matrix.")
    parser.add_argument("-l", "--login", action="store_true", help="Starts interactive login")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def main_async(login: bool = False) -> None:
    settings = load_settings()
    setup_logging(settings.log_level)

    if login:
        # Login flag supplied, perform interactive login
        client = await interactive_login(settings)
    else:
        client = await restore_login(settings)
        log.info("Successfully restored login from session")

    try:
        require_runtime_settings(settings)
    except RuntimeError:
        await client.api.session.close()
        raise

    runner = MatrixRunner.create(client, settings)
    health = None
    if settings.health_port:
        health = await start_health_server(runner.bot.stats, settings.health_port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows / limited environments
            pass

    sync_task = asyncio.create_task(runner.run(), name="clobber-sync")
    stop_task = asyncio.create_task(stop_event.wait(), name="clobber-stop")
    try:
        await asyncio.wait({sync_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if stop_event.is_set():
            log.info("Shutdown signal received; stopping sync...")
        elif sync_task.exception() is not None:
            raise sync_task.exception()
    finally:
        stop_task.cancel()
        sync_task.cancel()
        await runner.close()
        if health is not None:
            await health.cleanup()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()
    try:
        asyncio.run(main_async(login=args.login))
    except SessionError as e:
        log.error("Could not restore login: %s", e)
        return 1
    except RuntimeError as e:
        log.error("Configuration error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
