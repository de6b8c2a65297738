"""Command line entry points for chatstream."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from loguru import logger
from rich.console import Console

from chatstream.bus import Consumer
from chatstream.config import Settings, load_settings
from chatstream.errors import ChatStreamError, TurnError
from chatstream.logging_utils import configure_logging
from chatstream.models import Notification
from chatstream.session import ChatSession

app = typer.Typer(
    name="chatstream",
    help="Talk to a streaming chat endpoint.",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

QUIT_COMMANDS = {"quit", "exit", "q"}


class ReplyPrinter:
    """Print the growing reply text as notifications arrive."""

    def __init__(self, output: Console) -> None:
        self._output = output
        self._printed: dict[str, str] = {}
        self.turn_done = asyncio.Event()

    async def __call__(self, notification: Notification) -> None:
        reply = notification.reply
        previous = self._printed.get(notification.turn_id, "")
        text = reply.text
        if text.startswith(previous):
            self._output.print(text[len(previous) :], end="", markup=False, highlight=False)
        else:
            self._output.print("\n" + text, end="", markup=False, highlight=False)
        self._printed[notification.turn_id] = text
        if notification.terminal:
            self._printed.pop(notification.turn_id, None)
            if reply.failed:
                self._output.print(f"\n[red]error:[/red] {reply.error}")
            else:
                self._output.print()
            self.turn_done.set()


def _settings(endpoint: Optional[str], token: Optional[str], model: Optional[str]) -> Settings:
    return load_settings(endpoint_url=endpoint, access_token=token, model=model)


def _session(settings: Settings) -> tuple[ChatSession, ReplyPrinter]:
    printer = ReplyPrinter(console)
    session = ChatSession(settings, consumers=[Consumer("console", printer)])
    return session, printer


async def _ask(settings: Settings, question: str) -> None:
    session, _ = _session(settings)
    async with session:
        await session.talk(question)


async def _chat(settings: Settings, show_ids: bool) -> None:
    session, printer = _session(settings)
    async with session:
        while True:
            question = await asyncio.to_thread(typer.prompt, "you", prompt_suffix="> ")
            command = question.strip().lower()
            if command in QUIT_COMMANDS:
                break
            if command == "reset":
                session.reset()
                console.print("[dim]conversation reset[/dim]")
                continue
            if not command:
                continue
            printer.turn_done.clear()
            try:
                await session.talk(question)
            except TurnError as exc:
                # The console consumer already printed the terminal error.
                logger.debug("chat.turn.error error={}", exc)
            await printer.turn_done.wait()
            if show_ids:
                message_id, conversation_id, parent_message_id = session.identifiers()
                console.print(
                    f"[dim]message={message_id} conversation={conversation_id} parent={parent_message_id}[/dim]"
                )


@app.command("ask")
def ask(
    question: str = typer.Argument(..., help="Question to send"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Conversation endpoint URL"),
    token: Optional[str] = typer.Option(None, "--token", envvar="CHATSTREAM_ACCESS_TOKEN", help="Bearer token"),
    model: Optional[str] = typer.Option(None, "--model", help="Model identifier"),
) -> None:
    """Send one question and stream the reply."""
    settings = _settings(endpoint, token, model)
    configure_logging(profile="chat", level=settings.log_level)
    try:
        asyncio.run(_ask(settings, question))
    except TurnError as exc:
        raise typer.Exit(1) from exc
    except ChatStreamError as exc:
        console.print(f"[red]error:[/red] {exc}")
        raise typer.Exit(1) from exc


@app.command("chat")
def chat(
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Conversation endpoint URL"),
    token: Optional[str] = typer.Option(None, "--token", envvar="CHATSTREAM_ACCESS_TOKEN", help="Bearer token"),
    model: Optional[str] = typer.Option(None, "--model", help="Model identifier"),
    show_ids: bool = typer.Option(False, "--show-ids", help="Print continuation ids after each turn"),
) -> None:
    """Interactive conversation. Type 'reset' to start over, 'quit' to leave."""
    settings = _settings(endpoint, token, model)
    configure_logging(profile="chat", level=settings.log_level)
    try:
        asyncio.run(_chat(settings, show_ids))
    except ChatStreamError as exc:
        console.print(f"[red]error:[/red] {exc}")
        raise typer.Exit(1) from exc
    except (KeyboardInterrupt, typer.Abort):
        console.print()
