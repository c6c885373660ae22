"""Command-line interface for mail-automata."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mail_automata.config import Settings
from mail_automata.errors import MailAutomataError

app = typer.Typer(
    name="mail-automata",
    help="Rule-driven mail thread labeling, sorting and archiving",
    no_args_is_help=True,
)
console = Console()

# Sub-command groups
rules_app = typer.Typer(help="Inspect processing rules")
stats_app = typer.Typer(help="Processing statistics")

app.add_typer(rules_app, name="rules")
app.add_typer(stats_app, name="stats")

EXAMPLE_RULES = """\
conditions,add_labels,move_to,mark_important,mark_read,stage,auto_label,disabled,action_after_match
(sender xyz@gmail.com),xyz,archive,,,10,,,
"(or (subject /newsletter/i) (list news@example.com))","news,reading/later",archive,,yes,20,,,
(header X-Priority 1),urgent,inbox,yes,,20,,,next_stage
(thread is_starred),,nothing,,,30,,,done
(body unsubscribe),promotions,archive,,,100,,yes,
"""


def get_settings() -> Settings:
    """Load application settings."""
    return Settings()


@app.command()
def version() -> None:
    """Show version information."""
    from mail_automata import __version__

    console.print(f"mail-automata v{__version__}")


@app.command()
def init(
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", "-c", help="Configuration directory"),
    ] = None,
) -> None:
    """Initialize configuration directory with example files."""
    from mail_automata.config import ProcessingConfig, save_processing_config

    settings = get_settings()
    if config_dir:
        settings.config_dir = config_dir

    settings.ensure_config_dir()

    if not settings.rules_path.exists():
        settings.rules_path.write_text(EXAMPLE_RULES)
        console.print(f"[green]Created[/green] {settings.rules_path}")

    if not settings.config_path.exists():
        save_processing_config(settings.config_path, ProcessingConfig())
        console.print(f"[green]Created[/green] {settings.config_path}")

    console.print(f"\n[bold]Configuration initialized at:[/bold] {settings.config_dir}")


# === Rules Commands ===


@rules_app.command("list")
def rules_list() -> None:
    """List all enabled rules in evaluation order."""
    from mail_automata.config import load_processing_config, load_rule_rows
    from mail_automata.rules.engine import RUN_LAST_STAGE, parse_rules

    settings = get_settings()

    try:
        config = load_processing_config(settings.config_path)
        rules = parse_rules(load_rule_rows(settings.rules_path), config)
    except MailAutomataError as e:
        console.print(f"[red]Invalid rules:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if not rules:
        console.print("[yellow]No rules configured[/yellow]")
        console.print("Run [bold]mail-automata init[/bold] to create example rules")
        return

    table = Table(title="Processing Rules")
    table.add_column("Stage", style="dim", width=8)
    table.add_column("Condition", style="cyan")
    table.add_column("Action", style="green")
    table.add_column("After match", width=12)

    for rule in rules:
        table.add_row(
            "last" if rule.stage == RUN_LAST_STAGE else str(rule.stage),
            escape(str(rule.condition)),
            escape(str(rule.thread_action)),
            rule.thread_action.action_after_match.value,
        )

    console.print(table)


@rules_app.command("check")
def rules_check(
    condition: Annotated[str, typer.Argument(help="Condition expression to parse")],
) -> None:
    """Parse a condition and show how it was understood."""
    from mail_automata.rules.conditions import Condition

    try:
        parsed = Condition.parse(condition)
    except MailAutomataError as e:
        console.print(f"[red]Invalid condition:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    console.print(f"[green]OK[/green] {escape(str(parsed))}")
    headers = parsed.headers()
    if headers:
        console.print(f"  Headers: {', '.join(headers)}")


# === Processing Commands ===


@app.command()
def process(
    threads_file: Annotated[
        Path,
        typer.Argument(help="YAML file with the threads to process", exists=True, dir_okay=False),
    ],
    dry_run: Annotated[
        bool | None,
        typer.Option("--dry-run/--apply", "-n", help="Only show actions (default from settings)"),
    ] = None,
) -> None:
    """Process unprocessed threads from a thread file."""
    from mail_automata.logging import setup_logging
    from mail_automata.mail.store import MemoryMailStore
    from mail_automata.mail.threads import load_threads
    from mail_automata.processor import process_all_unprocessed_threads
    from mail_automata.session import SessionData
    from mail_automata.storage.stats import StatsDatabase

    settings = get_settings()
    if dry_run is None:
        dry_run = settings.dry_run

    setup_logging(
        log_dir=settings.log_dir,
        log_level=settings.log_level,
        max_bytes=settings.log_rotation_size_mb * 1024 * 1024,
        backup_count=settings.log_backup_count,
    )

    try:
        store = MemoryMailStore(load_threads(threads_file))
        session_data = SessionData.load(settings, store)
        stats = None if dry_run else StatsDatabase(settings.stats_path)
        result = process_all_unprocessed_threads(
            session_data, store, stats=stats, dry_run=dry_run, raise_on_failure=False
        )
    except MailAutomataError as e:
        console.print(f"[red]Processing failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    console.print(f"  Dry run: {'Yes' if dry_run else 'No'}")
    if not result.threads:
        console.print("[yellow]No unprocessed threads[/yellow]")
        return

    table = Table(title="Thread Actions")
    table.add_column("ID", style="dim")
    table.add_column("Subject", style="cyan")
    table.add_column("Messages", width=8)
    table.add_column("Action", style="green")

    for thread in result.threads:
        action = escape(thread.action)
        if not thread.success:
            action = f"[red]{action}[/red]"
        table.add_row(
            escape(thread.thread_id), escape(thread.subject), str(thread.message_count), action
        )

    console.print(table)
    console.print(
        f"Processed {result.threads_processed} of {result.threads_fetched} threads "
        f"in {result.duration_seconds:.2f}s"
    )

    if not result.all_pass:
        for failure in result.failures:
            console.print(f"[red]Failed:[/red] {escape(failure.error or '')}")
        raise typer.Exit(1)


# === Stats Commands ===


@stats_app.command("collapse")
def stats_collapse() -> None:
    """Summarize recorded runs into a daily row."""
    from mail_automata.storage.stats import StatsDatabase

    settings = get_settings()
    db = StatsDatabase(settings.stats_path)

    summary = db.collapse_stat_records()
    if summary is None:
        console.print("[yellow]No runs recorded since the last collapse[/yellow]")
        return

    table = Table(title=f"Statistics for {summary['day']}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for key, value in summary.items():
        if key == "day":
            continue
        table.add_row(key, "-" if value is None else f"{value:g}")

    console.print(table)


if __name__ == "__main__":
    app()
