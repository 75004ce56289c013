"""
Admin CLI for inspecting and queueing Perfly performance tests.

Works directly against the job database; queued tests are picked up by
whichever processor polls that database.
"""

import asyncio
import json
import sys
import uuid

import click

from perfly_common.config import get_database_path
from perfly_common.models import STATUSES, Job
from perfly_persistence.sqlite_repository import SQLiteJobRepository
from perfly_server.urls import URLValidationError, normalize_url


def get_db_path() -> str:
    """Get the database path from environment variable or default."""
    return get_database_path()


def get_repository() -> SQLiteJobRepository:
    """Get the repository instance."""
    return SQLiteJobRepository(get_db_path())


def run_async(coro):
    """Helper to run async functions in CLI commands."""
    return asyncio.run(coro)


def _format_time(value) -> str:
    return value.isoformat() if value else "-"


@click.group()
def cli():
    """Perfly Admin - Queue and inspect website performance tests."""
    pass


@cli.group()
def test():
    """Manage performance tests."""
    pass


@test.command("submit")
@click.argument("url")
@click.option("--user-id", default=None, help="Owner recorded on the test")
def test_submit(url: str, user_id: str | None):
    """Queue a performance test for URL."""
    try:
        normalized = normalize_url(url)
    except URLValidationError as e:
        click.echo(f"Error: {e}: {url}", err=True)
        sys.exit(1)

    async def submit():
        repo = get_repository()
        await repo.initialize()

        try:
            job = Job(id=str(uuid.uuid4()), url=normalized, user_id=user_id)
            await repo.create_job(job)

            click.echo("✓ Test queued successfully")
            click.echo(f"  ID:  {job.id}")
            click.echo(f"  URL: {job.url}")

        finally:
            await repo.close()

    run_async(submit())


@test.command("list")
@click.option(
    "--status",
    type=click.Choice(list(STATUSES)),
    default=None,
    help="Only show tests in this status",
)
@click.option("--limit", default=20, show_default=True, help="Maximum tests to show")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def test_list(status: str | None, limit: int, json_output: bool):
    """List recent tests, newest first."""

    async def list_tests():
        repo = get_repository()
        await repo.initialize()

        try:
            jobs = await repo.list_jobs(status=status, limit=limit)

            if json_output:
                click.echo(json.dumps([j.to_summary_dict() for j in jobs], indent=2))
                return

            if not jobs:
                click.echo("No tests found.")
                return

            click.echo(f"\n{'ID':<38} {'Status':<10} {'Score':<6} {'URL'}")
            click.echo("-" * 100)
            for j in jobs:
                row = j.to_summary_dict()
                score = "-" if row["score"] is None else str(row["score"])
                click.echo(f"{j.id:<38} {j.status:<10} {score:<6} {j.url}")
            click.echo()

        finally:
            await repo.close()

    run_async(list_tests())


@test.command("show")
@click.argument("test_id")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def test_show(test_id: str, json_output: bool):
    """Show a test's status and results."""

    async def show():
        repo = get_repository()
        await repo.initialize()

        try:
            job = await repo.get_job(test_id)
            if not job:
                click.echo(f"Error: Test not found: {test_id}", err=True)
                sys.exit(1)

            if json_output:
                click.echo(json.dumps(job.to_dict(), indent=2))
                return

            click.echo("\nTest Details:")
            click.echo(f"  ID:         {job.id}")
            click.echo(f"  URL:        {job.url}")
            click.echo(f"  Status:     {job.status}")
            click.echo(f"  Created:    {_format_time(job.created_at)}")
            click.echo(f"  Completed:  {_format_time(job.completed_at)}")
            if job.error:
                click.echo(f"  Error:      {job.error}")

            result = job.parsed_results()
            if result is not None:
                summary = result.get("summary", {})
                vitals = result.get("webVitals", {})
                click.echo(f"  Score:      {summary.get('score')} ({summary.get('grade')})")
                click.echo(f"  LCP:        {vitals.get('LCP')} ms")
                click.echo(f"  CLS:        {vitals.get('CLS')}")
                click.echo(f"  TTFB:       {vitals.get('TTFB')} ms")
            click.echo()

        finally:
            await repo.close()

    run_async(show())


if __name__ == "__main__":
    cli()
