#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import signal
from contextlib import suppress
from pathlib import Path
from typing import Optional, TextIO

import typer
from rich.console import Console
from rich.markup import escape

from client.auth import Auth
from client.config import ClientSettings, load_settings
from client.connection import CloseReason, Connection
from client.dispatcher import TextureDispatcher
from client.state import SessionIdentity
from client.transport import connect
from shared.errors import ConnectionTerminated, Kicked
from shared.log import configure_root_logging, get_logger

app = typer.Typer(help="Log in to a game server and print the textures it uses")
console = Console(stderr=True)
logger = get_logger(__name__)


async def run_bot(
    address: str,
    identity: SessionIdentity,
    settings: ClientSettings,
    *,
    quit_after: Optional[float] = None,
    quit_after_defs: bool = False,
    out: Optional[TextIO] = None,
) -> CloseReason:
    """Connect, log in and collect textures until the connection ends."""
    sender, receiver, worker = await connect(address)
    auth = Auth(identity, settings)
    dispatcher = TextureDispatcher(sender, settings, quit_after_defs=quit_after_defs, out=out)

    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    try:
        connection = Connection(
            sender, receiver, worker, auth, dispatcher,
            quit_after=quit_after,
            cancel=cancel,
        )
        return await connection.run()
    finally:
        with suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


@app.command()
def main(
    address: str = typer.Argument(..., help="Server address. Format: address:port"),
    quit_after_seconds: Optional[float] = typer.Option(
        None, "--quit-after-seconds", "-q", help="Quit after this many seconds; negative disables"
    ),
    quit_after_defs: bool = typer.Option(
        False, "--quit-after-defs", "-Q", help="Quit after having received item and node definitions"
    ),
    username: str = typer.Option("texmodbot", "--username", "-u", help="Player name"),
    password: str = typer.Option("owo", "--password", "-p", help="Password"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML file overriding client protocol settings", dir_okay=False
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
):
    """Connect to ADDRESS, authenticate and print every texture name, one per line."""
    configure_root_logging(log_level, log_file)

    try:
        settings = load_settings(config)
    except (OSError, ValueError) as e:
        console.print(f"[red]config error[/]: {escape(str(e))}")
        raise typer.Exit(code=2)

    identity = SessionIdentity(username=username, password=password.encode("utf-8"), lang=settings.lang)

    try:
        reason = asyncio.run(run_bot(
            address,
            identity,
            settings,
            quit_after=quit_after_seconds,
            quit_after_defs=quit_after_defs,
        ))
    except Kicked as e:
        console.print(f"kicked: {escape(e.reason)}")
        raise typer.Exit(code=1)
    except ValueError as e:
        console.print(f"[red]error[/]: {escape(str(e))}")
        raise typer.Exit(code=2)
    except ConnectionTerminated as e:
        console.print(f"[red]{type(e).__name__}[/]: {escape(str(e))}")
        raise typer.Exit(code=1)

    logger.info("Finished: %s", reason.value)


if __name__ == "__main__":
    app()
