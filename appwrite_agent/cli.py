"""Command-line interface for the Appwrite agent."""

import asyncio
import json
import os
import shlex
import sys
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from appwrite_agent.attachments import FileAttachment
from appwrite_agent.audit import AuditLog
from appwrite_agent.config import Config, set_config
from appwrite_agent.context import describe
from appwrite_agent.controller import AgentController
from appwrite_agent.exceptions import AgentError
from appwrite_agent.logging import configure_logging, log, set_system_log_sink
from appwrite_agent.messages import ActionMessage, Message, ModelMessage, UserMessage

app = typer.Typer(help="Appwrite Agent - chat with your Appwrite backend")
console = Console()

# structlog output captured during the REPL so it does not interleave with the prompt
system_log: deque[str] = deque(maxlen=200)

HELP_TEXT = """\
/project <id>                 switch project
/db [id|name]                 list or select a database
/collection [id|name]         list or select a collection
/bucket [id|name]             list or select a bucket
/function [id|name]           list or select a function
/tools [<category> on|off]    show or toggle tool categories
/model [id]                   show or change the model
/thinking on|off              toggle thinking
/attach <path>                attach a file to the next message
/logs                         show the execution log
/syslog                       show recent system log lines
/clear                        clear the chat
/quit                         exit"""

_RESOURCE_COMMANDS = {
    "/db": ("databases", "select_database"),
    "/collection": ("collections", "select_collection"),
    "/bucket": ("buckets", "select_bucket"),
    "/function": ("functions", "select_function"),
}


def _render_message(message: Message) -> None:
    if isinstance(message, UserMessage):
        files = f" [dim](files: {', '.join(f.name for f in message.files)})[/dim]" if message.files else ""
        console.print(f"[bold cyan]you[/bold cyan]: {message.content}{files}")
    elif isinstance(message, ModelMessage):
        style = "red" if message.content.startswith("Error: ") else "green"
        console.print(Panel(Markdown(message.content), title="agent", border_style=style))
        for chunk in message.grounding_chunks or []:
            web = chunk.get("web") or {}
            if web.get("uri"):
                console.print(f"  [dim]source: {web.get('title') or web['uri']} {web['uri']}[/dim]")
    elif isinstance(message, ActionMessage):
        names = ", ".join(call.name for call in message.tool_calls)
        if message.is_loading:
            console.print(f"[yellow]running tools:[/yellow] {names}")
            return
        for result in message.tool_results or []:
            mark = "[red]x[/red]" if result.is_error else "[green]ok[/green]"
            detail = json.dumps(result.response, default=str)
            if len(detail) > 200:
                detail = detail[:200] + "..."
            console.print(f"  {mark} {result.name}: [dim]{detail}[/dim]")


def _render_error(message: str | None) -> None:
    if message:
        console.print(f"[bold red]error:[/bold red] {message}")


def _status_line(controller: AgentController) -> str:
    context = controller.context
    if context is None:
        return "[dim]no project selected[/dim]"
    details = describe(context) or "no specific context"
    tools = ", ".join(sorted(c.value for c in controller.enabled_categories)) or "none"
    return (
        f"[dim]{context.project.name} | {details} | model {controller.model}"
        f" | tools: {tools} | session {controller.session_state.value}[/dim]"
    )


def _find_resource(items: list[dict[str, Any]], key: str) -> dict[str, Any] | None:
    for item in items:
        if item.get("$id") == key:
            return item
    lowered = key.lower()
    for item in items:
        if str(item.get("name", "")).lower() == lowered:
            return item
    return None


async def _handle_resource_command(controller: AgentController, command: str, argument: str) -> None:
    key, method = _RESOURCE_COMMANDS[command]
    if argument == "none":
        getattr(controller, method)(None)
        return
    listings = await controller.refresh_context()
    items = listings.get(key)
    if items is None:
        console.print(f"[yellow]No {key} available in the current context.[/yellow]")
        return
    if not argument:
        table = Table(title=key.capitalize())
        table.add_column("ID")
        table.add_column("Name")
        for item in items:
            table.add_row(str(item.get("$id", "")), str(item.get("name", "")))
        console.print(table)
        return
    item = _find_resource(items, argument)
    if item is None:
        console.print(f"[yellow]No {key[:-1]} matches '{argument}'.[/yellow]")
        return
    getattr(controller, method)(item)


async def _handle_command(
    controller: AgentController,
    line: str,
    attachments: list[FileAttachment],
) -> bool:
    """Run a slash command. Returns False when the REPL should exit."""
    parts = shlex.split(line)
    command, args = parts[0].lower(), parts[1:]
    argument = " ".join(args)

    if command in ("/quit", "/exit"):
        return False
    if command == "/help":
        console.print(HELP_TEXT)
    elif command == "/clear":
        controller.clear_chat()
        attachments.clear()
        console.print("[dim]Chat cleared.[/dim]")
    elif command == "/project":
        if not argument:
            for project in controller.projects:
                console.print(f"  {project.id}: {project.name} ({project.endpoint})")
        else:
            controller.select_project(argument)
    elif command in _RESOURCE_COMMANDS:
        await _handle_resource_command(controller, command, argument)
    elif command == "/tools":
        if len(args) == 2 and args[1].lower() in ("on", "off"):
            controller.set_tool_enabled(args[0], args[1].lower() == "on")
        else:
            enabled = {c.value for c in controller.enabled_categories}
            for category in controller.registry.categories():
                state = "on" if category.value in enabled else "off"
                console.print(f"  {category.value}: {state}")
    elif command == "/model":
        if argument:
            controller.set_model(argument)
        else:
            console.print(f"  {controller.model} (allowed: {', '.join(controller.config.model.allowed)})")
    elif command == "/thinking":
        controller.set_thinking(argument.lower() in ("on", "true", "1", "yes"))
    elif command == "/attach":
        if not argument:
            console.print("[yellow]Usage: /attach <path>[/yellow]")
            return True
        attachments.append(FileAttachment.from_path(argument))
        controller.validate_files(attachments)
        console.print(f"[dim]Attached {len(attachments)} file(s).[/dim]")
    elif command == "/logs":
        for entry in controller.logs:
            console.print(entry, markup=False, highlight=False)
    elif command == "/syslog":
        for entry in system_log:
            console.print(Text.from_ansi(entry))
    else:
        console.print(f"[yellow]Unknown command: {command}. Type /help.[/yellow]")
    return True


async def run_chat(controller: AgentController) -> None:
    """Interactive chat loop."""
    console.print(Panel("Appwrite Agent. Type /help for commands.", border_style="cyan"))
    attachments: list[FileAttachment] = []
    try:
        while True:
            console.print(_status_line(controller))
            try:
                line = await asyncio.to_thread(console.input, "[bold]> [/bold]")
            except EOFError:
                break
            line = line.strip()
            if not line and not attachments:
                continue
            try:
                if line.startswith("/"):
                    if not await _handle_command(controller, line, attachments):
                        break
                    continue
                if not await controller.send(line, attachments):
                    _render_error(controller.error or "Message not sent, a turn is still running.")
                    continue
                attachments = []
            except AgentError as e:
                # on_error already printed controller-level errors
                if controller.error != str(e):
                    _render_error(str(e))
            except (OSError, ValueError) as e:
                _render_error(str(e))
    finally:
        await controller.close()


def _load_config(config_path: str, model: str, verbose: bool) -> Config:
    if verbose:
        os.environ["APPWRITE_AGENT_LOGGING__LEVEL"] = "DEBUG"
    cfg = Config.from_yaml(Path(config_path)) if config_path else Config.load()
    if model:
        cfg.model.model = model
    set_config(cfg)
    configure_logging()
    return cfg


@app.command()
def chat(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    project: str = typer.Option("", "-p", "--project", help="Project id to activate"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start an interactive chat session."""
    set_system_log_sink(system_log.append)
    cfg = _load_config(config, model, verbose)
    if project:
        cfg.active_project = project

    controller = AgentController(
        config=cfg,
        on_message=_render_message,
        on_error=_render_error,
    )
    try:
        asyncio.run(run_chat(controller))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        sys.exit(0)


@app.command()
def audit(
    export: str = typer.Option("", "--export", help="Write the audit log to this CSV file"),
    project: str = typer.Option("", "-p", "--project", help="Only entries for this project id"),
    clear: bool = typer.Option(False, "--clear", help="Delete all audit entries"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
) -> None:
    """Inspect, export or clear the tool-call audit log."""
    cfg = _load_config(config, "", False)

    async def _run() -> None:
        audit_log = AuditLog(cfg.audit.path)
        try:
            if export:
                count = await audit_log.export_csv(export, project_id=project or None)
                console.print(f"Exported {count} entries to {export}")
            if clear:
                await audit_log.clear()
                console.print("Audit log cleared.")
            if not export and not clear:
                table = Table(title="Audit log")
                for column in ("Time", "Project", "Tool", "Status", "ms"):
                    table.add_column(column)
                for entry in await audit_log.list_entries(project or None):
                    stamp = datetime.fromisoformat(entry.timestamp).strftime("%Y-%m-%d %H:%M:%S")
                    table.add_row(
                        stamp,
                        entry.project_id,
                        entry.tool_name,
                        entry.status,
                        "" if entry.duration_ms is None else str(entry.duration_ms),
                    )
                console.print(table)
        finally:
            await audit_log.close()

    asyncio.run(_run())


@app.command()
def version() -> None:
    """Show version information."""
    from appwrite_agent import __version__

    print(f"Appwrite Agent v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
