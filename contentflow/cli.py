"""CLI entrypoint (Typer).

Operational commands for the job runner:
- `contentflow dispatch --max-jobs 5`  drain due pending jobs
- `contentflow run-job <id>`           run one job regardless of status
- `contentflow schedule [--check]`     create (or just report) today's pacing jobs
- `contentflow stats`                  job counts per status
- `contentflow serve`                  start the HTTP API
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

import typer

from contentflow.config import get_settings
from contentflow.database.session import database_lifecycle
from contentflow.dispatcher import Dispatcher
from contentflow.errors import JobNotFoundError
from contentflow.executor import JobExecutor
from contentflow.jobs.store import JobStore
from contentflow import scheduler


app = typer.Typer(help="ContentFlow job runner CLI.")

logger = logging.getLogger(__name__)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


async def _with_db(coro_factory):
    async with database_lifecycle():
        return await coro_factory()


@app.command()
def dispatch(
    max_jobs: Optional[int] = typer.Option(None, "--max-jobs", min=1, help="Claim up to this many jobs"),
):
    """Claim and run due pending jobs."""
    async def _run():
        async with JobExecutor() as executor:
            return await Dispatcher(executor).run_batch(max_jobs)

    batch = asyncio.run(_with_db(_run))
    _echo_json(batch.model_dump(mode="json", exclude_none=True))


@app.command("run-job")
def run_job(job_id: str):
    """Run one job by id, whatever its current status."""
    async def _run():
        async with JobExecutor() as executor:
            return await Dispatcher(executor).run_job(job_id)

    try:
        result = asyncio.run(_with_db(_run))
    except JobNotFoundError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)

    _echo_json(result.model_dump(mode="json", exclude_none=True))
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def schedule(
    check: bool = typer.Option(False, "--check", help="Only report which schedules are due"),
):
    """Create today's pacing content generation jobs."""
    if check:
        report = asyncio.run(_with_db(scheduler.check_schedules))
    else:
        report = asyncio.run(_with_db(scheduler.create_scheduled_jobs))
    _echo_json(report)


@app.command()
def stats():
    """Show job counts per status."""
    counts = asyncio.run(_with_db(JobStore().counts))
    for status, count in counts.items():
        typer.echo(f"{status:<12}{count}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
):
    """Start the HTTP API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "contentflow.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    app()
