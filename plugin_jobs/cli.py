# plugin_jobs/cli.py
"""
CLI interface for plugin-jobs.

Thin presentation layer over the tools/ service layer.
All commands delegate to the same functions that MCP wraps.
"""

import asyncio
import json
import time

import typer

app = typer.Typer(
    name="plugin-jobs",
    help="Durable job queue for game server plugin operations.",
    no_args_is_help=True,
)


def _fmt_duration(seconds: float) -> str:
    """Format seconds as human-readable duration (e.g. '5m17s', '42s')."""
    s = int(seconds)
    if s < 60:
        return f"{s}s"
    m, s = divmod(s, 60)
    return f"{m}m{s:02d}s"


def _run(coro):
    """Run async function from sync CLI context."""
    return asyncio.run(coro)


async def _get_queue():
    """Open the configured store and wrap it in a JobQueue (no worker needed)."""
    from plugin_jobs.background.lifecycle import create_store
    from plugin_jobs.config.loader import load_config
    from plugin_jobs.models.queue import JobQueue

    config = load_config()
    store = create_store(config)
    await store.initialize()
    queue = JobQueue(store, retention_limit=config.storage.retention_limit)
    await queue.initialize()
    return queue


def _status_color(status: str) -> str:
    """Return ANSI color for job status."""
    colors = {
        "completed": typer.colors.GREEN,
        "running": typer.colors.YELLOW,
        "queued": typer.colors.CYAN,
        "cancelled": typer.colors.MAGENTA,
        "failed": typer.colors.RED,
    }
    return colors.get(status, typer.colors.WHITE)


_STATUS_STYLES = {
    "completed": "green",
    "running": "yellow",
    "queued": "cyan",
    "cancelled": "magenta",
    "failed": "red",
}


def _make_job_panel(job: dict, elapsed: float):
    """Build a rich renderable showing a job's status and recent log lines."""
    from rich.console import Group
    from rich.panel import Panel
    from rich.table import Table
    from rich.text import Text

    status = job["status"]
    header = Table.grid(padding=(0, 2))
    header.add_column(style="dim")
    header.add_column()
    header.add_row("Status", Text(status, style=f"bold {_STATUS_STYLES.get(status, 'white')}"))
    header.add_row("Target", job.get("plugin_name") or job.get("url") or "-")
    header.add_row("Elapsed", _fmt_duration(elapsed))

    percents = [line["percent"] for line in job["logs"] if line.get("percent") is not None]
    parts: list = [header]
    if percents and status == "running":
        bar_width = 36
        filled = int(percents[-1] / 100 * bar_width)
        bar = "█" * filled + "░" * (bar_width - filled)
        parts.append(Text(f"\n  {bar}  {percents[-1]:.0f}%", style="cyan"))

    parts.append(Text(""))
    for line in job["logs"][-8:]:
        stamp = line["timestamp"][11:19]
        parts.append(Text(f"  {stamp} {line['message']}", style="dim"))

    if job.get("error"):
        parts.append(Text(f"\n  {job['error'].get('message')}", style="red"))

    return Panel(
        Group(*parts),
        title=Text(f" {job['action']} {job['job_id']} ", style="bold"),
        border_style="bright_black",
    )


@app.command()
def submit(
    action: str = typer.Argument(..., help="install, uninstall, update, enable or disable"),
    name: str = typer.Option(None, "--name", "-n", help="Plugin name"),
    url: str = typer.Option(None, "--url", "-u", help="Download URL (install/update)"),
    custom_name: str = typer.Option(None, "--custom-name", help="Install under this name"),
    auto_update: bool = typer.Option(False, "--auto-update", help="Install over an existing plugin"),
    delete_configs: bool = typer.Option(False, "--delete-configs", help="Uninstall also removes configs"),
):
    """Queue a plugin job and print its ID."""
    from plugin_jobs.tools.submit_job import submit_job

    options = {}
    if custom_name:
        options["customName"] = custom_name
    if auto_update:
        options["autoUpdate"] = True
    if delete_configs:
        options["deleteConfigs"] = True

    async def _submit():
        queue = await _get_queue()
        try:
            return await submit_job(action, name, url, options, queue=queue)
        finally:
            await queue.store.close()

    try:
        result = _run(_submit())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Queued {result['action']} job: {result['job_id']}")
    typer.echo(f"Run 'plugin-jobs run' to process, 'plugin-jobs status {result['job_id']}' to check.")


@app.command("list")
def list_command(
    status: str = typer.Option(None, "--status", "-s", help="Filter by status"),
    limit: int = typer.Option(None, "--limit", "-l", help="Show at most N jobs"),
):
    """List plugin jobs, newest first."""
    from plugin_jobs.tools.list_jobs import list_jobs

    async def _list():
        queue = await _get_queue()
        try:
            return await list_jobs(queue, status=status, limit=limit)
        finally:
            await queue.store.close()

    try:
        result = _run(_list())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    jobs = result["jobs"]
    if not jobs:
        typer.echo("No jobs found.")
        return

    typer.echo(f"{'JOB ID':<28} {'STATUS':<10} {'ACTION':<10} {'CREATED':<20} TARGET")
    typer.echo("-" * 90)
    for job in jobs:
        status_value = job["status"]
        created = job["created_at"][:19].replace("T", " ")
        typer.echo(
            f"{job['job_id']:<28} "
            + typer.style(f"{status_value:<10} ", fg=_status_color(status_value))
            + f"{job['action']:<10} {created:<20} {job['plugin_name'] or ''}"
        )


@app.command()
def status(
    job_id: str = typer.Argument(..., help="Job ID to check"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Poll until the job finishes"),
    as_json: bool = typer.Option(False, "--json", help="Print the full job as JSON"),
):
    """Show a job's status, result or error, and its log."""
    from plugin_jobs.tools.get_job import get_job

    async def _status():
        queue = await _get_queue()
        try:
            return await get_job(job_id, queue=queue)
        finally:
            await queue.store.close()

    async def _follow():
        from rich.console import Console
        from rich.live import Live

        console = Console(stderr=True)
        queue = await _get_queue()
        start = time.monotonic()
        try:
            job = await get_job(job_id, queue=queue)
            with Live(_make_job_panel(job, 0.0), console=console, refresh_per_second=4) as live:
                while job["status"] in ("queued", "running"):
                    await asyncio.sleep(1.0)
                    job = await get_job(job_id, queue=queue)
                    live.update(_make_job_panel(job, time.monotonic() - start))
            return job
        finally:
            await queue.store.close()

    try:
        result = _run(_follow() if follow else _status())
    except KeyboardInterrupt:
        raise typer.Exit(130)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(result, indent=2))
        return

    status_value = result["status"]
    typer.echo(f"Job:       {result['job_id']}")
    typer.echo(f"Action:    {result['action']} {result['plugin_name'] or result['url'] or ''}")
    typer.echo(typer.style(f"Status:    {status_value}", fg=_status_color(status_value)))
    if result.get("cancel_requested") and status_value in ("queued", "running"):
        typer.echo("Cancel:    requested")
    if result.get("result"):
        typer.echo(f"Result:    {json.dumps(result['result'])}")
    if result.get("error"):
        typer.echo(typer.style(f"Error:     {result['error'].get('message')}", fg=typer.colors.RED))
    if result["logs"] and not follow:
        typer.echo("")
        for line in result["logs"]:
            typer.echo(f"  {line['timestamp'][11:19]} {line['message']}")

    if status_value == "failed":
        raise typer.Exit(1)


@app.command()
def cancel(job_id: str = typer.Argument(..., help="Job ID to cancel")):
    """Request cancellation of a queued or running job."""
    from plugin_jobs.tools.cancel_job import cancel_job

    async def _cancel():
        queue = await _get_queue()
        try:
            return await cancel_job(job_id, queue=queue)
        finally:
            await queue.store.close()

    try:
        result = _run(_cancel())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Cancellation requested for {result['job_id']} (status: {result['status']}).")


@app.command("run")
def run_worker():
    """Start the worker to process queued jobs. Ctrl+C to stop."""
    from plugin_jobs.background.lifecycle import ServerLifecycle
    from plugin_jobs.config.loader import load_config
    from plugin_jobs.logging_config import configure_logging

    config = load_config()
    # Simple human-readable logging to stderr for CLI mode
    configure_logging(config.logging.level, json_format=False)

    async def _run_worker():
        lifecycle = ServerLifecycle(config)
        await lifecycle.startup()
        typer.echo("Worker started. Processing queued jobs... (Ctrl+C to stop)\n")
        try:
            await lifecycle.wait_closed()
        finally:
            await lifecycle.shutdown()
            typer.echo("Worker stopped.")

    try:
        _run(_run_worker())
    except KeyboardInterrupt:
        pass


@app.command()
def serve():
    """Start the MCP server (queue tools over stdio, worker in-process)."""
    from plugin_jobs.__main__ import main

    asyncio.run(main())


if __name__ == "__main__":
    app()
