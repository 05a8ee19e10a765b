"""
queuectl command line interface.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from queuectl import __version__
from queuectl.config import get_settings
from queuectl.constants import JobState
from queuectl.db import ConfigRepository, Database, JobRepository
from queuectl.exceptions import (
    ConfigKeyNotFoundError,
    DuplicateJobError,
    InvalidConfigValueError,
    JobNotFoundError,
    NotFoundError,
    StoreUnavailableError,
    WorkerPoolRunningError,
)
from queuectl.observability.logging import setup_logging
from queuectl.utils import parse_delay

T = TypeVar("T")

STATE_COLORS = {
    JobState.PENDING: "yellow",
    JobState.PROCESSING: "blue",
    JobState.COMPLETED: "green",
    JobState.FAILED: "magenta",
    JobState.DEAD: "red",
}


def _with_store(ctx: click.Context, action: Callable[[Database], Awaitable[T]]) -> T:
    """
    Open the job store, run one async action against it, close it.

    User errors are printed and end the command normally.
    """
    database_url = ctx.obj["database_url"]

    async def runner() -> T:
        db = Database(database_url)
        await db.init()
        try:
            return await action(db)
        finally:
            await db.close()

    try:
        return asyncio.run(runner())
    except StoreUnavailableError as e:
        raise click.ClickException(f"Job store unavailable: {e}")
    except (DuplicateJobError, InvalidConfigValueError) as e:
        click.secho(f"[Error] {e}", fg="red")
    except NotFoundError as e:
        click.secho(f"[Warning] {e}", fg="yellow")
    ctx.exit(0)


def _state(value: Any) -> str:
    state = JobState(value)
    return click.style(state.value, fg=STATE_COLORS[state])


def _ts(value: Any) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _last_line(text: str | None) -> str:
    lines = (text or "").strip().splitlines()
    return lines[-1] if lines else "-"


def _table(headers: list[str], rows: list[list[str]], widths: list[int]) -> None:
    """Print fixed-width columns; cells may carry colour codes."""
    def fmt(cells: list[str]) -> str:
        parts = []
        for cell, width in zip(cells, widths):
            plain = click.unstyle(cell)
            if len(plain) > width:
                cell = plain[: width - 1] + "…"
                plain = cell
            parts.append(cell + " " * (width - len(plain)))
        return "  ".join(parts).rstrip()

    click.echo(fmt([click.style(h, fg="cyan", bold=True) for h in headers]))
    click.echo(fmt(["-" * w for w in widths]))
    for row in rows:
        click.echo(fmt(row))


@click.group(help="queuectl - background job queue CLI")
@click.version_option(__version__, prog_name="queuectl")
@click.option(
    "--database-url",
    envvar="QUEUECTL_DATABASE_URL",
    default=None,
    help="SQLAlchemy URL of the job store.",
)
@click.pass_context
def cli(ctx: click.Context, database_url: str | None) -> None:
    # Workers log at the configured level; one-shot commands only warn
    if ctx.invoked_subcommand == "worker":
        setup_logging()
    else:
        setup_logging(log_level="WARNING")
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url or get_settings().database_url


# ---------- Enqueue ----------
@cli.command("enqueue", help="Add a new job to the queue")
@click.option("--id", "job_id", required=True, help="Unique job ID")
@click.option("--command", "--cmd", "command", required=True, help="The shell command to run")
@click.option("--priority", type=int, default=0, show_default=True,
              help="Higher number = higher priority")
@click.option("--delay", "delay", default="0", show_default=True,
              help="Delay before the job may run: seconds, or e.g. 30s, 5m, 1h30m")
@click.option("--max-retries", "--max_retries", "max_retries", type=int, default=None,
              help="Max attempts for this job (defaults to config max_retries)")
@click.pass_context
def enqueue_cmd(ctx, job_id, command, priority, delay, max_retries):
    try:
        delay_seconds = parse_delay(delay)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--delay")

    async def action(db: Database):
        async with db.session() as session:
            return await JobRepository(session).enqueue(
                job_id=job_id,
                command=command,
                priority=priority,
                delay_seconds=delay_seconds,
                max_retries=max_retries,
            )

    try:
        job = _with_store(ctx, action)
    except ValueError as e:
        raise click.BadParameter(str(e))

    message = f"[OK] Job enqueued: {job.id} (priority: {job.priority}, max_retries: {job.max_retries})"
    if delay_seconds > 0:
        message += f". Will run after {delay_seconds} seconds."
    click.secho(message, fg="green")


# ---------- Workers ----------
@cli.group("worker", help="Manage worker processes")
def worker_group():
    pass


@worker_group.command("start", help="Start worker processes (runs in the foreground)")
@click.option("--count", "-c", type=click.IntRange(min=1), default=1, show_default=True,
              help="Number of workers to start")
@click.pass_context
def worker_start(ctx, count):
    from queuectl.worker.supervisor import start_workers

    click.secho(f"Starting {count} worker(s). Press Ctrl+C or run `queuectl worker stop` to stop.",
                fg="cyan")
    try:
        start_workers(count, database_url=ctx.obj["database_url"])
    except WorkerPoolRunningError as e:
        click.secho(f"[Error] {e}", fg="red")
        return
    click.secho("Workers stopped.", fg="yellow")


@worker_group.command("stop", help="Stop running workers after their current job")
def worker_stop():
    from queuectl.worker.supervisor import stop_workers

    signalled = stop_workers()
    if signalled == 0:
        click.secho("[Warning] No running workers found.", fg="yellow")
        return
    click.secho(
        f"Stop signal sent to {signalled} process(es). Workers will exit after their current job.",
        fg="green",
    )


# ---------- Jobs ----------
@cli.command("status", help="Show summary of all job states")
@click.pass_context
def status_cmd(ctx):
    async def action(db: Database):
        async with db.session() as session:
            return await JobRepository(session).get_job_stats()

    stats = _with_store(ctx, action)
    click.secho("Job Status Summary:", bold=True)
    _table(
        ["State", "Count"],
        [[_state(state), str(count)] for state, count in stats.items()],
        [12, 8],
    )


@cli.command("list", help="List jobs, most recently updated first")
@click.option("--state", "-s", type=click.Choice([s.value for s in JobState]), default=None,
              help="Filter jobs by state")
@click.pass_context
def list_cmd(ctx, state):
    async def action(db: Database):
        async with db.session() as session:
            return await JobRepository(session).list_jobs(
                state=JobState(state) if state else None
            )

    jobs = _with_store(ctx, action)
    if not jobs:
        if state:
            click.secho(f"No jobs found with state: {state}", fg="yellow")
        else:
            click.secho("No jobs found in the queue.", fg="yellow")
        return

    _table(
        ["ID", "State", "Attempts", "Priority", "Command", "Updated At"],
        [
            [
                job.id,
                _state(job.state),
                f"{job.attempts}/{job.max_retries}",
                str(job.priority),
                job.command,
                _ts(job.updated_at),
            ]
            for job in jobs
        ],
        [20, 12, 9, 9, 40, 19],
    )


@cli.command("log", help="View the saved stdout/stderr for a job")
@click.argument("job_id")
@click.pass_context
def log_cmd(ctx, job_id):
    async def action(db: Database):
        async with db.session() as session:
            job = await JobRepository(session).get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    job = _with_store(ctx, action)

    rule = click.style("-" * 33, fg="cyan")
    click.echo(rule)
    click.secho(f"Logs for Job: {job.id}", fg="cyan", bold=True)
    click.echo(click.style("State: ", fg="cyan", bold=True) + _state(job.state))
    click.echo(rule)
    click.secho("\n--- STDOUT ---", fg="green", bold=True)
    click.echo(job.stdout or "(empty)")
    click.secho("\n--- STDERR ---", fg="red", bold=True)
    click.echo(job.stderr or "(empty)")
    click.echo(rule)


@cli.command("stats", help="Show execution stats")
@click.pass_context
def stats_cmd(ctx):
    async def action(db: Database):
        async with db.session() as session:
            repo = JobRepository(session)
            return await repo.get_job_stats(), await repo.get_average_duration()

    stats, average = _with_store(ctx, action)

    click.secho("\n--- queuectl Metrics ---", fg="cyan", bold=True)
    click.secho("\nJob Counts:", fg="cyan")
    if not any(stats.values()):
        click.echo("  No jobs in queue.")
    else:
        for state, count in stats.items():
            if count:
                click.echo(f"  - {_state(state)}: {count}")

    click.secho("\nExecution Stats:", fg="cyan")
    if average is not None:
        click.echo(f"  - Avg. Job Duration (Completed): {average:.2f} seconds")
    else:
        click.echo("  - Avg. Job Duration: N/A (No completed jobs with full stats).")


# ---------- DLQ ----------
@cli.group("dlq", help="Manage the Dead Letter Queue")
def dlq_group():
    pass


@dlq_group.command("list", help="List all jobs in the DLQ")
@click.pass_context
def dlq_list_cmd(ctx):
    async def action(db: Database):
        async with db.session() as session:
            return await JobRepository(session).list_jobs(state=JobState.DEAD)

    jobs = _with_store(ctx, action)
    if not jobs:
        click.echo("DLQ is empty.")
        return

    click.secho("Dead Letter Queue:", bold=True)
    _table(
        ["ID", "Attempts", "Command", "Last Error", "Updated At"],
        [
            [job.id, str(job.attempts), job.command, _last_line(job.stderr), _ts(job.updated_at)]
            for job in jobs
        ],
        [20, 9, 30, 30, 19],
    )


@dlq_group.command("retry", help="Move a DLQ job back to the queue")
@click.argument("job_id")
@click.pass_context
def dlq_retry_cmd(ctx, job_id):
    async def action(db: Database):
        async with db.session() as session:
            job = await JobRepository(session).retry_from_dlq(job_id)
        if job is None:
            raise JobNotFoundError(job_id, state=JobState.DEAD.value)
        return job

    _with_store(ctx, action)
    click.secho(f"[OK] Job {job_id} moved back to queue for retry.", fg="green")


# ---------- Config ----------
@cli.group("config", help="Manage configuration")
def config_group():
    pass


@config_group.command("list", help="List all config values")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@click.pass_context
def config_list_cmd(ctx, as_json):
    async def action(db: Database):
        async with db.session() as session:
            return await ConfigRepository(session).list_all()

    config = _with_store(ctx, action)
    if as_json:
        click.echo(json.dumps(config, indent=2))
        return
    _table(["Key", "Value"], [[key, value] for key, value in config.items()], [16, 16])


@config_group.command("set", help="Set a config value")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set_cmd(ctx, key, value):
    async def action(db: Database):
        async with db.session() as session:
            if not await ConfigRepository(session).set(key, value):
                raise ConfigKeyNotFoundError(key)

    _with_store(ctx, action)
    click.secho(f"[OK] Config updated: {key} = {value}", fg="green")


# ---------- Dashboard ----------
@cli.command("serve", help="Serve the read-only JSON dashboard")
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Port")
@click.pass_context
def serve_cmd(ctx, host, port):
    from queuectl.api.main import run

    run(Database(ctx.obj["database_url"]), host=host, port=port)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
