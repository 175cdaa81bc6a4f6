"""
Matcher Service - Main entry point.

Usage:
    # Start a matching run for a profile (returns immediately)
    matcher start --profile-id <id>

    # Process queued batches once / continuously
    matcher worker
    matcher worker --daemon
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from shared.config import Settings, get_settings
from shared.database import Database
from shared.models import MatchStatus, RunState

from .batch import PROCESS_BATCH_TASK, BatchProcessor
from .fixtures import FixtureLoader
from .initiator import ProfileNotFoundError, RunInitiator
from .oracle import ScoringOracle
from .scheduler import TaskQueue, Worker


def setup_logging():
    """Configure loguru logging."""
    settings = get_settings()
    logger.remove()

    if settings.log_format == "json":
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
                "<level>{message}</level>"
            ),
            level=settings.log_level,
        )


def build_worker(db: Database, settings: Optional[Settings] = None) -> Worker:
    """Wire the batch processor into a queue worker."""
    settings = settings or get_settings()
    processor = BatchProcessor(
        store=db,
        oracle=ScoringOracle(settings=settings),
        scheduler=TaskQueue(db),
        settings=settings,
    )

    async def process_batch(args: dict) -> str:
        outcome = await processor.process_batch(RunState.model_validate(args))
        return outcome.value

    return Worker(db, {PROCESS_BATCH_TASK: process_batch}, settings=settings)


async def start_matching(profile_id: Optional[str], user_id: Optional[str]):
    """Plan a run and queue its first batch."""
    db = Database()
    await db.connect()
    try:
        initiator = RunInitiator(store=db, scheduler=TaskQueue(db))
        if user_id:
            return await initiator.start_run_for_user(user_id)
        return await initiator.start_run(profile_id)
    finally:
        await db.disconnect()


async def run_worker(daemon: bool, interval: Optional[float]) -> int:
    """Drain due tasks once, or poll forever in daemon mode."""
    db = Database()
    await db.connect()
    try:
        worker = build_worker(db)
        if daemon:
            await worker.run_daemon(interval)
            return 0
        return await worker.run_pending()
    finally:
        await db.disconnect()


@click.group()
def cli():
    """Talent Matcher - chained batch matching of profiles to opportunities."""
    setup_logging()


@cli.command()
@click.option("--profile-id", "-p", type=str, default=None, help="Profile to match")
@click.option("--user-id", "-u", type=str, default=None, help="Match the profile owned by this user")
def start(profile_id: Optional[str], user_id: Optional[str]):
    """Start a matching run (fire-and-forget)."""
    if not profile_id and not user_id:
        raise click.UsageError("Provide --profile-id or --user-id")

    try:
        summary = asyncio.run(start_matching(profile_id, user_id))
    except ProfileNotFoundError as e:
        raise click.ClickException(str(e))

    click.echo(
        f"Run {summary.run_id}: {summary.message} "
        f"(opportunities: {summary.pool_size}, batches: {summary.total_batches})"
    )


@cli.command()
@click.option("--daemon", "-d", is_flag=True, help="Run continuously, polling for due batches")
@click.option(
    "--interval",
    "-i",
    type=float,
    default=None,
    help="Polling interval in seconds (daemon mode)",
)
def worker(daemon: bool, interval: Optional[float]):
    """Process scheduled matching batches."""
    if daemon:
        logger.info("Starting worker in daemon mode")
    processed = asyncio.run(run_worker(daemon, interval))
    if not daemon:
        click.echo(f"Processed {processed} tasks")


@cli.command()
@click.option("--profile-id", "-p", type=str, required=True)
def matches(profile_id: str):
    """Show a profile's matches grouped by tier."""

    async def show():
        db = Database()
        await db.connect()
        try:
            grouped = await db.get_grouped_matches(profile_id)
            growth_areas = await db.get_growth_areas(profile_id)
        finally:
            await db.disconnect()

        if grouped["needs_computation"]:
            click.echo("No matches yet - run `matcher start` first")
            return

        click.echo(f"New matches: {grouped['new_match_count']}")
        for tier, items in grouped["matches"].items():
            click.echo(f"\n{tier.upper()} ({len(items)})")
            for item in items:
                match, opp = item["match"], item["opportunity"]
                marker = "*" if match.is_new else " "
                click.echo(f" {marker} {match.score:5.1f}  {opp.title} at {opp.organization} [{match.status}]")

        if growth_areas:
            click.echo("\nGrowth areas")
            for area in growth_areas:
                click.echo(f"  {area.theme}: {', '.join(area.items)}")

    asyncio.run(show())


@cli.command("mark-viewed")
@click.option("--profile-id", "-p", type=str, required=True)
def mark_viewed(profile_id: str):
    """Clear the new flag on a profile's matches."""

    async def run():
        db = Database()
        await db.connect()
        try:
            return await db.mark_matches_viewed(profile_id)
        finally:
            await db.disconnect()

    click.echo(f"Marked {asyncio.run(run())} matches as viewed")


@cli.command("set-status")
@click.option("--profile-id", "-p", type=str, required=True)
@click.option("--opportunity-id", "-o", type=str, required=True)
@click.argument("status", type=click.Choice([s.value for s in MatchStatus]))
def set_status(profile_id: str, opportunity_id: str, status: str):
    """Save or dismiss a match."""

    async def run():
        db = Database()
        await db.connect()
        try:
            return await db.update_match_status(profile_id, opportunity_id, MatchStatus(status))
        finally:
            await db.disconnect()

    if not asyncio.run(run()):
        raise click.ClickException("Match not found")
    click.echo(f"Match status set to {status}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def seed(path: Path):
    """Load profiles and opportunities from a YAML fixture file."""

    async def run():
        db = Database()
        await db.connect()
        try:
            return await FixtureLoader(path).seed(db)
        finally:
            await db.disconnect()

    fixtures = asyncio.run(run())
    click.echo(
        f"Seeded {len(fixtures.profiles)} profiles, {len(fixtures.opportunities)} opportunities"
    )


@cli.command("init-db")
def init_db():
    """Create database indexes."""

    async def run():
        db = Database()
        await db.connect()
        try:
            await db.ensure_indexes()
        finally:
            await db.disconnect()

    asyncio.run(run())
    click.echo("Indexes created")


if __name__ == "__main__":
    cli()
