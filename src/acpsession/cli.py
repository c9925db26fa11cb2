"""Command-line interface for acp-session."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import uuid
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from acpsession.errors import SessionEngineError
from acpsession.logging import setup_logging
from acpsession.session.entries import (
    Entry,
    MessageEntry,
    MetaEntry,
    ModeChangeEntry,
    PermissionRequestEntry,
    PlanEntry,
    ThoughtEntry,
    ToolCallEntry,
    entry_from_record,
)

if TYPE_CHECKING:
    from acpsession.client import AgentClient
    from acpsession.config import Config
    from acpsession.session.registry import RegistryChange, SessionRegistry

console = Console(stderr=True)
out = Console()

_STATUS_STYLES = {
    "pending": "yellow",
    "in_progress": "cyan",
    "completed": "green",
    "failed": "red",
}


def render_entry(entry: Entry, target: Console | None = None) -> None:
    """Print one entry."""
    target = target or out
    match entry:
        case MessageEntry(role=role, text=text):
            style = "bold blue" if role.value == "user" else "bold green"
            target.print(f"[{style}]{role.value}[/{style}] {escape(text)}", highlight=False)
        case ThoughtEntry(text=text):
            target.print(f"[dim italic]thinking: {escape(text)}[/dim italic]", highlight=False)
        case ToolCallEntry():
            style = _STATUS_STYLES.get(entry.status.value, "white")
            target.print(
                f"[magenta]tool[/magenta] {escape(entry.tool_name)} [{style}]{entry.status.value}[/{style}]"
                f" {escape(entry.title)}",
                highlight=False,
            )
            if isinstance(entry.output, str) and entry.output:
                target.print(f"[dim]{escape(entry.output)}[/dim]", highlight=False)
        case PermissionRequestEntry():
            answer = entry.response_option or "unanswered"
            target.print(
                f"[yellow]permission[/yellow] {escape(entry.tool_name)}: {escape(entry.description)} -> {answer}",
                highlight=False,
            )
        case PlanEntry(items=items):
            target.print("[bold]plan[/bold]")
            for item in items:
                mark = "x" if item.status.value == "completed" else " "
                target.print(escape(f"  [{mark}] {item.content} ({item.priority.value})"), highlight=False)
        case ModeChangeEntry(previous_mode_id=previous, new_mode_id=new):
            target.print(f"[cyan]mode[/cyan] {previous} -> {new}")
        case MetaEntry():
            modes = ",".join(m.id for m in entry.available_modes) or "-"
            target.print(
                f"[dim]session: mode={entry.current_mode_id} model={entry.current_model_id}"
                f" modes={escape(modes)}[/dim]",
                highlight=False,
            )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="acpsession",
        description="Drive ACP coding agents and inspect their session logs",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=None,
        help="Increase log verbosity (can be repeated, up to -vvvv)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Config file path (default: user and project config.yaml)",
    )

    subparsers = parser.add_subparsers(dest="mode", help="Command")

    chat_parser = subparsers.add_parser("chat", help="Chat with an agent")
    chat_parser.add_argument("--agent", help="Agent command to spawn (default: from config)")
    chat_parser.add_argument("--cwd", default=os.getcwd(), help="Project directory")
    chat_parser.add_argument("--mode", dest="mode_id", help="Switch to this mode after connecting")
    chat_parser.add_argument("--resume", metavar="SESSION_ID", help="Resume a saved session")

    replay_parser = subparsers.add_parser(
        "replay",
        help="Feed a JSONL recording of session updates through the engine",
    )
    replay_parser.add_argument("file", type=Path, help="Recording (JSONL)")
    replay_parser.add_argument("--save", type=Path, help="Project directory to save sessions under")

    show_parser = subparsers.add_parser("show", help="Print a saved session")
    show_parser.add_argument("session_id")
    show_parser.add_argument("--cwd", default=os.getcwd(), help="Project directory")

    list_parser = subparsers.add_parser("list", help="List saved sessions")
    list_parser.add_argument("--cwd", default=os.getcwd(), help="Project directory")

    return parser


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.mode is None:
        parser.print_help()
        return 1

    from acpsession.config import load_config

    project = getattr(parsed, "cwd", None)
    config = load_config(project_path=project, config_path=parsed.config)
    if parsed.verbose is not None:
        config.logging.verbose = parsed.verbose
    setup_logging(config.logging)

    if parsed.mode == "chat":
        return asyncio.run(run_chat(config, parsed.agent, parsed.cwd, parsed.mode_id, parsed.resume))
    elif parsed.mode == "replay":
        return run_replay(config, parsed.file, parsed.save)
    elif parsed.mode == "show":
        return run_show(parsed.cwd, parsed.session_id)
    elif parsed.mode == "list":
        return run_list(parsed.cwd)
    else:
        parser.print_help()
        return 1


# -----------------------------------------------------------------------------
# chat
# -----------------------------------------------------------------------------


def history_path() -> Path:
    """Chat input history, kept next to the user config."""
    from acpsession.config.loader import get_user_config_path

    return get_user_config_path().parent / "history"


def create_prompt_session(history_file: Path | None = None) -> PromptSession[str]:
    history = None
    if history_file is not None:
        try:
            history_file.parent.mkdir(parents=True, exist_ok=True)
            history = FileHistory(str(history_file))
        except OSError as e:
            console.print(f"[yellow]History disabled: {e}[/yellow]")
    return PromptSession(history=history, auto_suggest=AutoSuggestFromHistory())


async def _read_line(session: PromptSession[str], prompt: str) -> str | None:
    """Read one line, or None at end of input."""
    try:
        return await session.prompt_async(prompt)
    except EOFError:
        return None


async def _ask_permission(client: AgentClient, session_id: str, session: PromptSession[str]) -> None:
    pending = client.get_pending_permission(session_id)
    if pending is None:
        return
    console.print(f"[yellow]Permission requested:[/yellow] {escape(pending.tool_name)}")
    console.print(pending.description, markup=False, highlight=False)
    for i, option in enumerate(pending.options, 1):
        console.print(f"  {i}. {escape(option.label)} [dim]({option.kind})[/dim]")
    try:
        answer = await _read_line(session, "choice> ")
    except KeyboardInterrupt:
        answer = None
    try:
        index = int(answer or "")
    except ValueError:
        index = 0
    if not 1 <= index <= len(pending.options):
        client.dismiss_permission(session_id)
        console.print("[dim]Dismissed[/dim]")
        return
    option = pending.options[index - 1]
    try:
        await client.respond_to_permission(session_id, pending.request_id, option.option_id)
    except SessionEngineError as e:
        console.print(f"[red]{e}[/red]")


async def run_chat(
    config: Config,
    agent_command: str | None,
    cwd: str,
    mode_id: str | None,
    resume: str | None,
) -> int:
    """Interactive chat: prompts read from the terminal, entries printed after each turn."""
    from acpsession.client import AgentClient
    from acpsession.session.registry import ChangeKind

    client = AgentClient(config)
    prompts = create_prompt_session(history_path())
    choices = create_prompt_session()
    printed: set[int] = set()
    tasks: set[asyncio.Task[None]] = set()

    def on_change(change: RegistryChange) -> None:
        if change.kind is ChangeKind.PERMISSION_CHANGED and change.pending_request_id:
            task = asyncio.ensure_future(_ask_permission(client, change.session_id, choices))
            tasks.add(task)
            task.add_done_callback(tasks.discard)

    def print_new(session_id: str) -> None:
        for entry in client.get_entries(session_id):
            if entry.seq not in printed:
                printed.add(entry.seq)
                render_entry(entry)

    try:
        agent = await client.start(agent_command, cwd=cwd)
    except SessionEngineError as e:
        console.print(f"[red]Error starting agent: {e}[/red]")
        return 1
    name = agent.agent_info.name if agent.agent_info else "agent"
    console.print(f"[green]Connected to {name}[/green]")
    client.subscribe(on_change)

    try:
        if resume:
            await client.resume_session(resume, cwd)
            session_id = resume
        else:
            session_id = await client.new_session(cwd)
        console.print(f"[dim]Session {session_id}[/dim]")
        if mode_id:
            await client.set_mode(session_id, mode_id)
        print_new(session_id)

        while True:
            text = await _read_line(prompts, "> ")
            if text is None or text.strip() in ("/quit", "/exit"):
                break
            if not text.strip():
                continue
            try:
                stop_reason = await client.send_prompt(session_id, text)
            except SessionEngineError as e:
                console.print(f"[red]{e}[/red]")
                continue
            print_new(session_id)
            console.print(f"[dim]({stop_reason})[/dim]")
    except SessionEngineError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except KeyboardInterrupt:
        pass
    finally:
        for task in tasks:
            task.cancel()
        await client.close()
    return 0


# -----------------------------------------------------------------------------
# replay / show / list
# -----------------------------------------------------------------------------


def replay_messages(
    registry: SessionRegistry,
    config: Config,
    lines: Sequence[str],
    project: str,
) -> list[str]:
    """Apply a recording to ``registry``, creating sessions as they appear.

    Each line is a full JSON-RPC message (``session/update`` and
    ``session/request_permission`` are applied, anything else skipped), a
    recorder line (``{"ts", "dir", "msg"}``, agent-to-client only) or the
    bare params of a ``session/update``.

    Returns:
        Session ids in order of first appearance.
    """
    from acpsession.engine.processor import EventProcessor

    processor = EventProcessor(registry, config)
    seen: list[str] = []

    def ensure(params: Any) -> None:
        if not isinstance(params, dict):
            return
        session_id = params.get("sessionId")
        if isinstance(session_id, str) and session_id and not registry.has_session(session_id):
            registry.create_session(session_id, project)
            seen.append(session_id)

    for number, line in enumerate(lines, 1):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            console.print(f"[yellow]line {number}: invalid JSON ({e})[/yellow]")
            continue
        if not isinstance(data, dict):
            continue
        if isinstance(data.get("msg"), dict):
            if data.get("dir", "a2c") != "a2c":
                continue
            data = data["msg"]

        method = data.get("method")
        if method is None and "jsonrpc" not in data:
            ensure(data)
            processor.ingest_notification(data)
        elif method == "session/update":
            ensure(data.get("params"))
            processor.ingest_notification(data.get("params"))
        elif method == "session/request_permission":
            ensure(data.get("params"))
            processor.ingest_permission_request(data.get("params"), uuid.uuid4().hex)
    return seen


def run_replay(config: Config, path: Path, save_dir: Path | None) -> int:
    from acpsession.session.registry import SessionRegistry
    from acpsession.session.storage import save_session

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        console.print(f"[red]Cannot read {path}: {e}[/red]")
        return 1

    registry = SessionRegistry()
    project = str(save_dir or Path.cwd())
    session_ids = replay_messages(registry, config, lines, project)
    if not session_ids:
        console.print("[yellow]No sessions found in recording[/yellow]")
        return 1

    for session_id in session_ids:
        console.rule(session_id)
        for entry in registry.get_entries(session_id):
            render_entry(entry)
        if save_dir is not None:
            saved = save_session(registry, session_id)
            console.print(f"[dim]Saved {saved}[/dim]")
    return 0


def run_show(cwd: str, session_id: str) -> int:
    from acpsession.session.storage import get_session_path, load_session_data

    data = load_session_data(get_session_path(cwd, session_id))
    if data is None:
        console.print(f"[red]No saved session {session_id} in {cwd}[/red]")
        return 1
    console.rule(f"{data.name} ({data.session_id})")
    for record in data.entries:
        try:
            render_entry(entry_from_record(record))
        except (ValueError, KeyError, TypeError) as e:
            console.print(f"[yellow]Skipping malformed entry: {e}[/yellow]")
    return 0


def run_list(cwd: str) -> int:
    from acpsession.session.storage import list_sessions

    sessions = list_sessions(cwd)
    if not sessions:
        console.print(f"[dim]No saved sessions in {cwd}[/dim]")
        return 0

    table = Table(title="Sessions")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Entries", justify="right")
    table.add_column("Updated")
    for s in sessions:
        table.add_row(s.session_id, s.name, str(s.entry_count), s.updated_at.strftime("%Y-%m-%d %H:%M"))
    out.print(table)
    return 0
