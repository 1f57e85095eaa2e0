"""
grantsync CLI - Command Line Interface

Entry point for grant synchronization, search, matching and quality scoring.
"""

import functools
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from tabulate import tabulate

from grantsync import __version__
from grantsync.config import config
from grantsync.errors import GrantSyncError


console = Console()


def handle_errors(func):
    """Print grantsync errors in red and exit non-zero."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except GrantSyncError as e:
            click.echo(click.style(f"Error: {e}", fg="red"), err=True)
            raise SystemExit(1)
    return wrapper


def _money(value) -> str:
    return f"${value:,.0f}" if value is not None else "-"


def _when(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


@click.group()
@click.version_option(version=__version__, prog_name="grantsync")
@click.option("--log-level", help="Override logging.level from config")
@click.pass_context
def cli(ctx, log_level):
    """grantsync - Grant Data Synchronization & Matching Engine.

    Keeps a local catalog of grant opportunities up to date from public
    sources, and scores proposals against it.
    """
    from grantsync.log import setup_logging

    ctx.ensure_object(dict)
    setup_logging((log_level or config.log_level).upper())


# =============================================================================
# Init & Config Commands
# =============================================================================

@cli.command()
@click.option("--drop", is_flag=True, help="Drop existing tables before creating")
def init(drop):
    """Initialize the database and create all tables."""
    from sqlalchemy import text
    from grantsync.database import init_db, drop_db, get_engine

    click.echo("Initializing grantsync database...")

    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        url = config.database_url
        click.echo(f"  Connected to: {url.split('@')[1] if '@' in url else url}")
    except Exception as e:
        click.echo(click.style(f"  Database connection failed: {e}", fg="red"))
        click.echo("\nCheck your config.yaml database settings or environment variables.")
        raise SystemExit(1)

    if drop:
        if click.confirm("This will DELETE all existing data. Continue?"):
            click.echo("  Dropping existing tables...")
            drop_db()
        else:
            click.echo("Aborted.")
            return

    click.echo("  Creating tables...")
    init_db()
    click.echo(click.style("Database initialized successfully!", fg="green"))


@cli.command("config")
@click.option("--show", is_flag=True, help="Show current configuration")
def show_config(show):
    """View configuration."""
    if not show:
        click.echo("Edit config.yaml directly or set environment variables.")
        click.echo("Use 'grantsync config --show' to view current settings.")
        return

    from grantsync.ingestion import build_adapters

    url = config.database_url
    click.echo("\n=== Current Configuration ===\n")
    click.echo(f"Database URL: {url.split('@')[1] if '@' in url else url}")
    click.echo(f"Grants.gov API Key: {'[SET]' if config.grants_gov_api_key else '[NOT SET]'}")
    click.echo(f"Full update: every {config.full_update_hours} hours")
    click.echo(f"Quick update: every {config.quick_update_hours} hours")
    click.echo(f"Cleanup: every {config.cleanup_minutes} minutes")
    click.echo(f"Request delay: {config.request_delay_seconds}s")
    click.echo(f"Retries: {config.max_retries} (base delay {config.retry_delay_seconds}s)")
    click.echo(f"History retention: {config.history_retention_days} days")
    click.echo(f"Log level: {config.log_level}")

    click.echo("\nSources:")
    rows = [
        [
            a.config.name,
            a.config.kind,
            "yes" if a.config.enabled else "no",
            "yes" if a.config.quick else "no",
            a.config.rate_limit or "-",
            a.config.base_url or "-",
        ]
        for a in build_adapters(config.source_overrides)
    ]
    click.echo(tabulate(
        rows,
        headers=["Source", "Kind", "Enabled", "Quick", "Req/hour", "URL"],
        tablefmt="simple",
    ))

    for title, values in (
        ("Match Thresholds", config.match_thresholds),
        ("Quality Thresholds", config.quality_thresholds),
    ):
        if values:
            click.echo(f"\n{title}:")
            for key, value in values.items():
                click.echo(f"  {key}: {value}")


# =============================================================================
# Sync Commands
# =============================================================================

@cli.group()
def sync():
    """Grant synchronization commands."""
    pass


@sync.command("run")
@click.option(
    "--type", "update_type",
    type=click.Choice(["full", "quick"]),
    default="full",
    help="Full updates every enabled source; quick only priority sources",
)
@handle_errors
def sync_run(update_type):
    """Run a grant update now."""
    from grantsync.ingestion.scheduler import build_scheduler

    update_scheduler = build_scheduler()
    record = update_scheduler.trigger_manual_update(update_type)

    rows = []
    for outcome in record.results:
        status = click.style("error", fg="red") if outcome.failed else click.style("ok", fg="green")
        rows.append([
            outcome.source,
            status,
            outcome.fetched,
            outcome.saved,
            (outcome.error or "-")[:60],
        ])

    click.echo(tabulate(
        rows,
        headers=["Source", "Status", "Fetched", "Saved", "Error"],
        tablefmt="simple",
    ))
    click.echo(f"\nUpdate {record.id}: {record.total_saved} grants saved")
    if not record.success:
        click.echo(click.style("Some sources failed; see errors above.", fg="yellow"))
        raise SystemExit(1)


@sync.command("status")
@handle_errors
def sync_status():
    """Show source health, recent updates and schedule."""
    from grantsync.ingestion.scheduler import build_scheduler

    status = build_scheduler().get_status()

    sources = Table(title="Sources")
    for column in ("Source", "Status", "Grants", "Last Updated", "Error"):
        sources.add_column(column)
    colors = {"active": "green", "updating": "yellow", "error": "red"}
    for s in status["sources"]:
        color = colors.get(s["status"], "white") if s["enabled"] else "dim"
        sources.add_row(
            s["name"],
            f"[{color}]{s['status'] if s['enabled'] else 'disabled'}[/{color}]",
            str(s["total_grants"]),
            _when(s["last_updated"]),
            (s["error"] or "-")[:60],
        )
    console.print(sources)

    if status["recent_updates"]:
        updates = Table(title="Recent Updates")
        for column in ("ID", "Type", "Started", "Saved", "Result"):
            updates.add_column(column)
        for record in status["recent_updates"]:
            result = "[green]success[/green]" if record.success else "[red]failed[/red]"
            updates.add_row(
                record.id,
                record.update_type.value,
                _when(record.started_at),
                str(record.total_saved),
                result,
            )
        console.print(updates)
    else:
        click.echo("No update history found. Run 'grantsync sync run' to start.")

    if status["agency_counts"]:
        click.echo("\nActive grants by agency:")
        click.echo(tabulate(
            list(status["agency_counts"].items())[:10],
            headers=["Agency", "Grants"],
            tablefmt="simple",
        ))


@sync.command("cleanup")
@handle_errors
def sync_cleanup():
    """Expire past-deadline grants and prune old update history."""
    from grantsync.ingestion.scheduler import build_scheduler

    result = build_scheduler().cleanup()
    click.echo(f"Expired {result['expired']} grants")
    click.echo(f"Pruned {result['pruned']} update records")
    click.echo(f"{len(result['agency_counts'])} agencies with active grants")


# =============================================================================
# Grant Commands
# =============================================================================

@cli.group()
def grants():
    """Grant catalog commands."""
    pass


@grants.command("search")
@click.option("--query", "-q", help="Text to find in title, description or agency")
@click.option("--category", help="Exact category")
@click.option("--agency", help="Exact agency name")
@click.option("--min-amount", type=int, help="Minimum award floor")
@click.option("--max-amount", type=int, help="Maximum award ceiling")
@click.option("--tag", "tags", multiple=True, help="Match any of these tags (repeatable)")
@click.option("--deadline-after", type=click.DateTime(), help="Deadline on or after")
@click.option(
    "--status",
    type=click.Choice(["active", "expired", "pending_review", "all"]),
    default="active",
)
@click.option("--sort", "sort_by", default="created_at", help="Sort field")
@click.option("--order", "sort_order", type=click.Choice(["asc", "desc"]), default="desc")
@click.option("--page", default=1, help="Page number")
@click.option("--page-size", "-n", default=20, help="Results per page")
@handle_errors
def grants_search(query, category, agency, min_amount, max_amount, tags,
                  deadline_after, status, sort_by, sort_order, page, page_size):
    """Search the grant catalog."""
    from grantsync.database import GrantRepository, GrantFilters

    result = GrantRepository().search(GrantFilters(
        query=query,
        category=category,
        agency=agency,
        min_amount=min_amount,
        max_amount=max_amount,
        tags=list(tags),
        deadline_after=deadline_after,
        status=None if status == "all" else status,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    ))

    if not result.grants:
        click.echo("No grants found.")
        return

    rows = [
        [
            g.id,
            g.source,
            g.title[:50],
            (g.agency or "-")[:30],
            _money(g.award_max),
            g.application_deadline.strftime("%Y-%m-%d") if g.application_deadline else "-",
        ]
        for g in result.grants
    ]
    click.echo(tabulate(
        rows,
        headers=["ID", "Source", "Title", "Agency", "Max Award", "Deadline"],
        tablefmt="simple",
    ))
    click.echo(f"\nPage {result.page} of {result.total_pages} ({result.total} grants)")


@grants.command("show")
@click.argument("grant_id", type=int)
def grants_show(grant_id):
    """Show grant details."""
    from grantsync.database import GrantRepository

    grant = GrantRepository().get_by_id(grant_id)
    if not grant:
        click.echo(f"Grant {grant_id} not found.")
        return

    click.echo(f"\n=== Grant #{grant.id} ===\n")
    click.echo(f"Title:     {grant.title}")
    click.echo(f"Source:    {grant.source} ({grant.external_id})")
    click.echo(f"Agency:    {grant.agency or '-'}")
    click.echo(f"Type:      {grant.grant_type or '-'}")
    click.echo(f"Status:    {grant.status.value}")
    click.echo(f"Award:     {_money(grant.award_min)} - {_money(grant.award_max)}")
    click.echo(f"Deadline:  {_when(grant.application_deadline)}")
    click.echo(f"Tags:      {', '.join(grant.tags or []) or '-'}")
    if grant.eligible_applicants:
        click.echo(f"Eligible:  {', '.join(grant.eligible_applicants)}")
    if grant.application_url:
        click.echo(f"Apply at:  {grant.application_url}")
    if grant.description:
        click.echo(f"\nDescription:\n{grant.description}")
    if grant.requirements:
        click.echo("\nRequirements:")
        for requirement in grant.requirements:
            click.echo(f"  - {requirement}")


# =============================================================================
# Matching Commands
# =============================================================================

@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tag", "tags", multiple=True, help="Proposal tag (repeatable)")
@click.option("--limit", "-n", default=10, help="Number of matches to show")
@click.option("--min-score", type=int, help="Hide grants scoring below this")
@handle_errors
def match(file, tags, limit, min_score):
    """Rank active grants against a proposal FILE."""
    from grantsync.database import GrantRepository
    from grantsync.matching import MatchEngine, MatchThresholds, ProposalDocument

    document = ProposalDocument(
        title=file.stem.replace("_", " ").replace("-", " "),
        content=file.read_text(encoding="utf-8"),
        tags=list(tags),
    )
    engine = MatchEngine(MatchThresholds.from_config(config.match_thresholds))
    results = engine.rank(document, GrantRepository().active(), min_score=min_score)

    if not results:
        click.echo("No matching grants found.")
        return

    rows = [
        [
            r.grant.id,
            r.score,
            r.confidence,
            r.grant.title[:45],
            _money(r.grant.award_max),
            "; ".join(r.reasons),
        ]
        for r in results[:limit]
    ]
    click.echo(tabulate(
        rows,
        headers=["ID", "Score", "Confidence", "Title", "Max Award", "Reasons"],
        tablefmt="simple",
    ))

    summary = engine.summarize(results)
    click.echo(
        f"\n{summary['total']} grants scored, {summary['high_confidence']} high-confidence, "
        f"average score {summary['average_score']}, "
        f"top five worth up to {_money(summary['potential_funding'])}"
    )


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--grant", "grant_id", type=int, required=True, help="Grant ID to assess against")
@handle_errors
def quality(file, grant_id):
    """Assess proposal FILE against a grant."""
    from grantsync.database import GrantRepository
    from grantsync.matching import QualityScorer, QualityThresholds

    grant = GrantRepository().get_by_id(grant_id)
    if not grant:
        click.echo(f"Grant {grant_id} not found.")
        raise SystemExit(1)

    scorer = QualityScorer(QualityThresholds.from_config(config.quality_thresholds))
    assessment = scorer.assess(file.read_text(encoding="utf-8"), grant)

    table = Table(title=f"Quality: {file.name} vs {grant.title[:40]}")
    table.add_column("Dimension")
    table.add_column("Score", justify="right")
    for name, score in assessment.scores.items():
        table.add_row(name.replace("_", " ").title(), f"{score:.0f}")
    table.add_row("[bold]Overall[/bold]", f"[bold]{assessment.overall}[/bold]")
    console.print(table)

    for heading, items, color in (
        ("Strengths", assessment.strengths, "green"),
        ("Recommendations", assessment.recommendations, "yellow"),
        ("Improvements", assessment.improvements, "cyan"),
    ):
        if items:
            click.echo(click.style(f"\n{heading}:", fg=color))
            for item in items:
                click.echo(f"  - {item}")


# =============================================================================
# Scheduler Command
# =============================================================================

@cli.command()
@click.option("--foreground", "-f", is_flag=True, help="Keep running the timers until interrupted")
@handle_errors
def scheduler(foreground):
    """Start automatic grant updates.

    Without --foreground, runs the initial update and a cleanup pass once
    and exits (suitable for cron).
    """
    import signal
    import time

    from grantsync.ingestion.scheduler import build_scheduler

    click.echo("Starting scheduler...")
    click.echo(f"Full update every {config.full_update_hours} hours, "
               f"quick every {config.quick_update_hours} hours")

    if not foreground:
        update_scheduler = build_scheduler()
        update_scheduler.run_initial_update()
        update_scheduler.cleanup()
        click.echo(click.style("Update and cleanup complete.", fg="green"))
        return

    update_scheduler = build_scheduler()

    # Handle shutdown gracefully
    def shutdown(signum, frame):
        click.echo("\nShutting down scheduler...")
        update_scheduler.stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    update_scheduler.start()
    click.echo("Jobs:")
    for job_id, next_run in update_scheduler.get_status()["next_scheduled"].items():
        click.echo(f"  - {job_id}: next run {_when(next_run)}")

    click.echo("\nScheduler running. Press Ctrl+C to stop.")
    while update_scheduler.running:
        time.sleep(1)


if __name__ == "__main__":
    cli()
