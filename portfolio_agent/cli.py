"""
Portfolio Agent CLI — The Interface

Conversation:
  - portfolio-agent chat "<message>" [--private]   (one turn)
  - portfolio-agent interactive [--private]        (REPL)

Commands and audit:
  - portfolio-agent exec '<json>'                  (run a raw command)
  - portfolio-agent history                        (recent audit entries)
  - portfolio-agent stats                          (audit statistics)
  - portfolio-agent undo <audit-id>
  - portfolio-agent clear-logs --confirm <code>

Plus utilities:
  - portfolio-agent status        (check config + API keys)
  - portfolio-agent init          (bootstrap .portfolio_agent and the data dir)
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from portfolio_agent.assistant import PortfolioAssistant, create_assistant
from portfolio_agent.commands import AuditFilter, ClearAuditLogs, UndoCommand, validate
from portfolio_agent.config_loader import PortfolioAgentConfig, load_config, validate_api_keys
from portfolio_agent.executor import ExecutionResult
from portfolio_agent.identity import BANNER, __codename__, __tagline__, __version__
from portfolio_agent.store import DocumentKey, LocalJsonStore, empty_document
from portfolio_agent.summary import summarize_raw

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".portfolio_agent" / ".env")

app = typer.Typer(
    name="portfolio-agent",
    help=f"{__codename__} — {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Path to a config override YAML")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


def _load(config_path: Optional[Path]) -> PortfolioAgentConfig:
    try:
        return load_config(config_path)
    except Exception as e:
        console.print(f"[red]Could not load config: {e}[/]")
        raise typer.Exit(1)


async def _with_assistant(config: PortfolioAgentConfig, work):
    assistant = create_assistant(config)
    try:
        return await work(assistant)
    finally:
        await assistant.aclose()


def _print_result(result: ExecutionResult) -> None:
    color = "green" if result.success else "red"
    icon = "✅" if result.success else "❌"
    console.print(f"[{color}]{icon} {escape(result.message)}[/]")
    if result.audit_log_id:
        console.print(f"[dim]audit id: {result.audit_log_id}[/]")


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

@app.command()
def chat(
    message: str = typer.Argument(..., help="What to ask or tell the assistant"),
    private: bool = typer.Option(False, "--private", "-p", help="Owner mode: turn the message into a change"),
    config_path: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Send one message to the assistant."""
    _configure_logging(verbose)
    config = _load(config_path)

    async def work(assistant: PortfolioAssistant):
        return await assistant.chat(
            [{"role": "user", "content": message}],
            mode="private" if private else "public",
            authorized=private,
        )

    reply = asyncio.run(_with_assistant(config, work))
    console.print(escape(reply.reply))
    if reply.summary:
        console.print(f"[dim]{escape(reply.summary)}[/]")
    if reply.success is False:
        raise typer.Exit(1)


@app.command()
def interactive(
    private: bool = typer.Option(False, "--private", "-p", help="Owner mode: messages become changes"),
    config_path: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Interactive mode — a conversation with the assistant. Empty line or 'exit' quits."""
    _print_banner()
    _configure_logging(verbose)
    config = _load(config_path)
    mode = "private" if private else "public"

    async def work(assistant: PortfolioAssistant):
        conversation: list[dict[str, str]] = []
        while True:
            text = typer.prompt(f"{mode} >>", default="", show_default=False).strip()
            if not text or text.lower() in ("exit", "quit"):
                break
            conversation.append({"role": "user", "content": text})
            reply = await assistant.chat(conversation, mode=mode, authorized=private)
            conversation.append({"role": "assistant", "content": reply.reply})
            console.print(f"[cyan]{escape(reply.reply)}[/]")
        return assistant.router.budget.summary()

    budget = asyncio.run(_with_assistant(config, work))
    console.print(f"[dim]Session: {budget['call_count']} calls, {budget['total_tokens']:,} tokens, ${budget['estimated_cost']:.4f}[/]")


# ---------------------------------------------------------------------------
# Commands + audit
# ---------------------------------------------------------------------------

@app.command("exec")
def exec_command(
    command: str = typer.Argument(..., help='Command JSON, e.g. \'{"type": "noop", "payload": {}}\''),
    config_path: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Validate and execute one raw command."""
    _configure_logging(verbose)
    config = _load(config_path)

    result = validate(command)
    if not result.ok:
        console.print("[red]Invalid command:[/]")
        for problem in result.errors:
            console.print(f"  • {escape(problem)}")
        raise typer.Exit(1)

    outcome = asyncio.run(_with_assistant(config, lambda a: a.executor.execute(result.command)))
    _print_result(outcome)
    if not outcome.success:
        raise typer.Exit(1)


@app.command()
def history(
    count: int = typer.Option(20, "--count", "-n", min=1, max=100, help="Number of entries to show"),
    offset: int = typer.Option(0, "--offset", min=0),
    command_type: Optional[str] = typer.Option(None, "--type", "-t", help="Only this command type"),
    category: Optional[str] = typer.Option(None, "--category", help="Only this category"),
    destructive: bool = typer.Option(False, "--destructive", "-d", help="Only destructive commands"),
    config_path: Optional[Path] = ConfigOption,
):
    """View recent audit log entries."""
    config = _load(config_path)
    try:
        filters = AuditFilter(command_type=command_type, category=category, destructive_only=destructive or None)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)

    page = asyncio.run(_with_assistant(config, lambda a: a.audit_log.query(count, offset, filters)))
    if not page.entries:
        console.print("[dim]No audit entries yet.[/]")
        return

    table = Table(title=f"Audit Log ({len(page.entries)} of {page.total})", border_style="cyan")
    table.add_column("Time", style="dim")
    table.add_column("Id", style="dim")
    table.add_column("Category")
    table.add_column("Command")
    table.add_column("Result")

    for entry in page.entries:
        ok = entry.execution_result.success
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.id[:8],
            entry.metadata.category,
            escape(summarize_raw(entry.command)),
            "[green]✓[/]" if ok else f"[red]✗ {escape(entry.execution_result.message[:40])}[/]",
        )
    console.print(table)


@app.command()
def stats(
    days: Optional[int] = typer.Option(None, "--days", min=1, help="Histogram window (default from config)"),
    config_path: Optional[Path] = ConfigOption,
):
    """Show audit log statistics."""
    config = _load(config_path)
    window = days or config.audit.stats_window_days
    s = asyncio.run(_with_assistant(config, lambda a: a.audit_log.stats(days=window)))

    if s.total == 0:
        console.print("[dim]No history yet.[/]")
        return

    stats_table = Table(title=f"{__codename__} Statistics", border_style="cyan")
    stats_table.add_column("Metric")
    stats_table.add_column("Value")
    stats_table.add_row("Total commands", str(s.total))
    stats_table.add_row("Successful", str(s.successful))
    stats_table.add_row("Failed", str(s.failed))
    stats_table.add_row("Success rate", f"{round(100 * s.successful / s.total, 1)}%")
    console.print(stats_table)

    category_table = Table(title="By Category", border_style="dim")
    category_table.add_column("Category")
    category_table.add_column("Count")
    for name, cnt in sorted(s.by_category.items(), key=lambda x: -x[1]):
        category_table.add_row(name, str(cnt))
    console.print(category_table)

    daily_table = Table(title=f"Last {window} days", border_style="dim")
    daily_table.add_column("Day")
    daily_table.add_column("Commands")
    for day in s.daily_activity:
        daily_table.add_row(day.date, f"{day.count} {'▇' * min(day.count, 40)}")
    console.print(daily_table)


@app.command()
def undo(
    audit_log_id: str = typer.Argument(..., help="Audit entry id to reverse"),
    reason: Optional[str] = typer.Option(None, "--reason", "-r"),
    config_path: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Undo a logged command by running its inverse."""
    _configure_logging(verbose)
    config = _load(config_path)
    cmd = UndoCommand(type="undo_command", payload={"audit_log_id": audit_log_id, "reason": reason})

    outcome = asyncio.run(_with_assistant(config, lambda a: a.executor.execute(cmd)))
    _print_result(outcome)
    if not outcome.success:
        raise typer.Exit(1)


@app.command("clear-logs")
def clear_logs(
    confirm: str = typer.Option(..., "--confirm", help="The confirmation code from config (audit.confirmation_code)"),
    older_than: Optional[datetime] = typer.Option(None, "--older-than", help="Only delete entries before this time"),
    config_path: Optional[Path] = ConfigOption,
):
    """Clear audit log entries. Requires the confirmation code."""
    config = _load(config_path)
    cmd = ClearAuditLogs(
        type="clear_audit_logs",
        payload={"confirmation_code": confirm, "older_than": older_than},
    )
    outcome = asyncio.run(_with_assistant(config, lambda a: a.executor.execute(cmd)))
    _print_result(outcome)
    if not outcome.success:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------

@app.command()
def status(
    config_path: Optional[Path] = ConfigOption,
):
    """Check Portfolio Agent configuration and readiness."""
    _print_banner()

    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")
    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)
    console.print(key_table)

    config = _load(config_path)
    console.print("\n[bold]Routing:[/]")
    console.print(f"  Guide:  {config.routing.guide}")
    console.print(f"  Editor: {config.routing.editor}")

    console.print("\n[bold]Limits:[/]")
    console.print(f"  Max retries:          {config.limits.max_retries}")
    console.print(f"  Correction attempts:  {config.limits.max_correction_attempts}")
    console.print(f"  Max tokens/session:   {config.limits.max_tokens_per_session:,}")
    console.print(f"  Max $/session:        ${config.limits.max_dollars_per_session}")

    console.print("\n[bold]Storage:[/]")
    console.print(f"  Backend: {config.storage.backend}")
    if config.storage.backend == "local":
        data_dir = Path(config.storage.data_dir).expanduser()
        console.print(f"  Data dir: {data_dir} {'[green]✓[/]' if data_dir.exists() else '[red]✗ missing (run init)[/]'}")
    elif config.storage.backend == "github":
        gh = config.storage.github
        console.print(f"  Repo: {gh.owner}/{gh.repo}@{gh.branch} ({gh.path_prefix})")


@app.command()
def init(
    data_dir: Optional[Path] = typer.Argument(None, help="Where to create the JSON documents"),
):
    """Initialize .portfolio_agent and an empty local data directory."""
    _print_banner()

    agent_dir = Path.cwd() / ".portfolio_agent"
    agent_dir.mkdir(exist_ok=True)

    target = (data_dir or Path("data")).resolve()
    config_path = agent_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(f"""# Portfolio Agent deployment overrides
# These merge with the built-in defaults.

storage:
  backend: local
  data_dir: "{target}"

# Route either agent to another model:
# routing:
#   editor: "openai/gpt-4o-mini"

# Adjust limits:
# limits:
#   max_correction_attempts: 3
#   max_dollars_per_session: 1.0
""")

    store = LocalJsonStore(target)
    created = []

    async def seed():
        for key in DocumentKey:
            if not store.path_for(key).exists():
                await store.replace(key, empty_document(key))
                created.append(key.value)

    asyncio.run(seed())

    console.print(Panel(
        f"  Config:    {config_path}\n"
        f"  Data dir:  {target}\n"
        f"  Created:   {', '.join(created) or 'nothing (already present)'}",
        title="✅ Initialized",
        border_style="green",
    ))
    console.print(f"\nTry: [bold]portfolio-agent exec '{json.dumps({'type': 'noop', 'payload': {}})}'[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(msg, style="dim", highlight=False, markup=False, end=""),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(msg, style="dim", highlight=False, markup=False, end=""),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
