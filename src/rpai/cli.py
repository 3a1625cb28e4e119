"""
Command-line interface for rpai.

Usage:
    rpai                 # Browse sessions in the TUI
    rpai scan [--json]   # Print the current sessions
    rpai jump ID|NAME    # Switch tmux to a session's pane
    rpai kill ID         # Terminate a session
"""

import json
import logging
import sys
import time

import click

from rpai.commands import CommandExecutor
from rpai.config import EngineConfig, load_config
from rpai.display import render_sessions, session_to_dict
from rpai.engine import Engine
from rpai.errors import (
    ConfigError,
    MultiplexerError,
    NotFoundError,
    ScanError,
    SignalPermissionError,
    UnresolvedPaneError,
)

logger = logging.getLogger(__name__)

EXIT_NOT_FOUND = 1
EXIT_PERMISSION = 2


def build_engine(config: EngineConfig) -> Engine:
    return Engine(config)


def build_executor(engine: Engine) -> CommandExecutor:
    return CommandExecutor(engine)


def _one_shot(engine: Engine, sample: bool = False) -> None:
    """Run a single pass, optionally after a baseline sample for CPU figures."""
    if sample:
        engine.prime()
        time.sleep(engine.config.scan_sample_seconds)
    try:
        engine.run_cycle()
    except ScanError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="Config file to read.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_file: str | None, verbose: bool):
    """rpai - find, jump to and stop AI agent sessions in tmux."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        ctx.obj = load_config(config_file)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    if ctx.invoked_subcommand is None:
        ctx.invoke(tui)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of text.")
@click.pass_obj
def scan(config: EngineConfig, as_json: bool):
    """Print the current agent sessions."""
    engine = build_engine(config)
    _one_shot(engine, sample=True)
    sessions = list(engine.snapshot)
    if as_json:
        click.echo(json.dumps([session_to_dict(s) for s in sessions], indent=2))
    else:
        click.echo(render_sessions(sessions, config.symbol_style))


@main.command()
@click.argument("target")
@click.pass_obj
def jump(config: EngineConfig, target: str):
    """Switch tmux to the pane of session TARGET (an ID or a name)."""
    engine = build_engine(config)
    _one_shot(engine)
    try:
        session = build_executor(engine).jump(target)
    except (NotFoundError, UnresolvedPaneError, MultiplexerError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_NOT_FOUND)
    click.echo(f"Jumped to session {session.id} ({session.pane.target})")


@main.command()
@click.argument("session_id")
@click.pass_obj
def kill(config: EngineConfig, session_id: str):
    """Terminate the agent of session SESSION_ID."""
    engine = build_engine(config)
    _one_shot(engine)
    try:
        session = build_executor(engine).kill(session_id)
    except NotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_NOT_FOUND)
    except SignalPermissionError as e:
        click.echo(f"Error: {e}. Try running rpai as the process owner.", err=True)
        sys.exit(EXIT_PERMISSION)
    click.echo(f"Terminated session {session.id} (pid {session.pid})")


@main.command()
@click.pass_obj
def tui(config: EngineConfig):
    """Browse sessions interactively."""
    from textual.logging import TextualHandler

    from rpai.app import RpaiApp

    # Terminal output would tear the screen, route records to the Textual console instead
    root = logging.getLogger()
    streams = [h for h in root.handlers if type(h) is logging.StreamHandler]
    for handler in streams:
        root.removeHandler(handler)
    textual_handler = TextualHandler()
    root.addHandler(textual_handler)
    try:
        RpaiApp(config).run()
    finally:
        root.removeHandler(textual_handler)
        for handler in streams:
            root.addHandler(handler)


if __name__ == "__main__":
    main()
