"""Command line interface: ``vesta chat``, ``ask``, ``segment`` and ``doctor``."""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from .config import DEFAULT_INSTRUCTIONS, ChatConfig
from .exceptions import ProviderSetupError
from .messages import Message, derive_title, export_jsonl, export_markdown
from .protocols import backend_capabilities, get_backend, prepare_model
from .render import render_html, render_plain
from .segmenter import has_math, segment
from .session import ChatController, ChatEvent, ChatEventKind
from .streaming import should_commit_frame

HELP_TEXT = """Slash Commands
/help                          Show command help
/new                           Start a fresh conversation
/clear                         Alias for /new
/export [jsonl|md] [path]      Export the current conversation
/quit                          Leave the chat
"""


def _provider_options(func: Any) -> Any:
    """Options shared by every command that talks to the model."""
    options = [
        click.option(
            "--instructions",
            envvar="VESTA_INSTRUCTIONS",
            default=DEFAULT_INSTRUCTIONS,
            show_default=False,
            help="System instructions for the session.",
        ),
        click.option(
            "--adapter",
            envvar="VESTA_ADAPTER",
            default=None,
            help="Adapter weights (file path or name) to load into the model.",
        ),
        click.option(
            "--stream-delay",
            type=click.FloatRange(min=0.0),
            default=0.0,
            show_default=True,
            help="Seconds to pause after each streamed update.",
        ),
        click.option(
            "--worker-thread/--no-worker-thread",
            default=False,
            help="Run the model stream on a worker thread.",
        ),
        click.option("--debug-timing", is_flag=True, help="Log per-turn timing."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_config(**kwargs: Any) -> ChatConfig:
    return ChatConfig.from_dict(kwargs)


def _math_style(value: str) -> str:
    return click.style(value, fg="cyan")


class _StreamPrinter:
    """Prints cumulative snapshots as they grow.

    Snapshots arriving faster than ``should_commit_frame`` allows are held
    back; the pending text is written before the next message starts and at
    the end of the turn.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self.printed = ""
        self.last_commit = 0.0
        self.current: Message | None = None

    def _emit(self, text: str) -> None:
        if text.startswith(self.printed):
            click.echo(text[len(self.printed) :], nl=False)
        else:
            click.echo("\n" + text, nl=False)
        self.printed = text
        self.last_commit = self.clock()

    def _flush(self) -> None:
        if self.current is not None and self.current.content != self.printed:
            self._emit(self.current.content)

    def __call__(self, event: ChatEvent) -> None:
        message = event.message
        if event.kind in (ChatEventKind.MESSAGE_APPENDED, ChatEventKind.MESSAGE_UPDATED):
            if message is None or message.is_user:
                return
            if message is not self.current:
                self._flush()
                self.current = message
            if should_commit_frame(message.content, self.printed, self.last_commit, self.clock()):
                self._emit(message.content)
        elif event.kind in (ChatEventKind.TURN_COMPLETED, ChatEventKind.TURN_FAILED):
            self._flush()
            click.echo()
            if message is not None and has_math(message.content):
                click.echo(click.style("rendered:", dim=True))
                click.echo(render_plain(message.content, math_style=_math_style))
            self.printed = ""
            self.current = None
        elif event.kind is ChatEventKind.RESET:
            self.printed = ""
            self.current = None


def _export(controller: ChatController, args: list[str]) -> Path:
    fmt = args[0].lower() if args else "md"
    if fmt not in {"jsonl", "md"}:
        raise click.UsageError("export format must be 'jsonl' or 'md'")
    if len(args) > 1:
        target = Path(args[1]).expanduser()
    else:
        stem = derive_title(controller.messages).lower().replace(" ", "-")
        target = Path.cwd() / f"{stem}.{fmt}"
    if fmt == "jsonl":
        export_jsonl(controller.messages, target)
    else:
        export_markdown(controller.messages, target)
    return target


def _run_slash_command(controller: ChatController, raw_text: str) -> bool | None:
    """Handle a slash command. Returns None to quit, True when handled."""
    try:
        parts = shlex.split(raw_text)
    except ValueError as exc:
        click.echo(f"Could not parse command: {exc}", err=True)
        return True
    command, args = parts[0].lower(), parts[1:]

    if command in {"/quit", "/exit"}:
        return None
    if command == "/help":
        click.echo(HELP_TEXT)
    elif command in {"/new", "/clear"}:
        controller.reset()
        click.echo("Started a new conversation.")
    elif command == "/export":
        if not controller.messages:
            click.echo("Nothing to export yet.")
            return True
        try:
            target = _export(controller, args)
        except (click.UsageError, OSError) as exc:
            click.echo(f"Export failed: {exc}", err=True)
            return True
        click.echo(f"Exported to {target}")
    else:
        click.echo(f"Unknown command {command}. Type /help for commands.", err=True)
    return True


async def _chat_loop(config: ChatConfig) -> None:
    controller = ChatController(config)
    if controller.setup_error is not None:
        click.echo(click.style("Model unavailable; replies will be fallback messages.", fg="yellow"))
    controller.subscribe(_StreamPrinter())
    click.echo("Vesta chat. Type /help for commands.")

    while True:
        try:
            raw = await asyncio.to_thread(
                click.prompt, "you", default="", show_default=False, prompt_suffix="> "
            )
        except (EOFError, click.Abort):
            click.echo()
            return
        text = raw.strip()
        if not text:
            continue
        if text.startswith("/"):
            if _run_slash_command(controller, text) is None:
                return
            continue
        click.echo(click.style("vesta> ", fg="magenta"), nl=False)
        controller.submit(text)
        await controller.wait_idle()


async def _ask_once(config: ChatConfig, text: str) -> str:
    controller = ChatController(config)
    if controller.setup_error is not None:
        raise controller.setup_error
    message = await controller.ask(text)
    return message.content


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable INFO logging.")
def cli(verbose: bool) -> None:
    """Vesta: chat with the on-device Apple Foundation Model."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@_provider_options
def chat(**kwargs: Any) -> None:
    """Interactive chat with streamed replies."""
    asyncio.run(_chat_loop(_build_config(**kwargs)))


@cli.command()
@click.argument("text")
@_provider_options
def ask(text: str, **kwargs: Any) -> None:
    """Send TEXT as a single turn and print the reply."""
    if not text.strip():
        raise click.BadParameter("must not be empty", param_hint="TEXT")
    reply = asyncio.run(_ask_once(_build_config(**kwargs), text))
    click.echo(render_plain(reply, math_style=_math_style))


@cli.command("segment")
@click.argument("text")
@click.option("--json", "as_json", is_flag=True, help="Print spans as JSON.")
@click.option("--html", "as_html", is_flag=True, help="Print MathJax-ready HTML.")
def segment_command(text: str, as_json: bool, as_html: bool) -> None:
    """Show how TEXT splits into prose and math spans."""
    if as_html:
        click.echo(render_html(text))
        return
    spans = segment(text)
    if as_json:
        click.echo(json.dumps([{"kind": s.kind, "text": s.text} for s in spans], ensure_ascii=False))
        return
    for span in spans:
        click.echo(f"{span.kind:<12} {span.text!r}")


@cli.command()
@click.option(
    "--adapter",
    envvar="VESTA_ADAPTER",
    default=None,
    help="Also check that these adapter weights load.",
)
def doctor(adapter: str | None) -> None:
    """Check that the active backend can build an available model."""
    adapter = adapter.strip() if adapter and adapter.strip() else None
    backend = get_backend()
    prepare_model(adapter, context="vesta doctor")
    capabilities = backend_capabilities(backend)
    click.echo(f"Backend: {type(backend).__name__}")
    click.echo("Model: available")
    if adapter is not None:
        click.echo(f"Adapter: loaded {adapter}")
    click.echo(f"Adapter support: {'yes' if capabilities.adapters else 'no'}")


def cli_entry() -> None:
    """Console script entrypoint; setup errors exit with status 2."""
    try:
        cli()
    except ProviderSetupError as exc:
        click.echo(str(exc), err=True)
        sys.exit(2)
