"""CLI entry-point: estimates, job inspection, brand video settings, server."""

import asyncio
import json

import httpx
import typer
from rich.console import Console

from cadence.brands.models import Brand
from cadence.brands.store import BrandNotFoundError, update_video_config
from cadence.client import JobPoller, JobsApi, JobsApiError
from cadence.config import get_settings
from cadence.jobs.models import FailedJob, GenerationJob, job_record
from cadence.services import build_services
from cadence.video.budget import estimate_video_cost, format_cost
from cadence.video.models import DEFAULT_VIDEO_MODEL, VIDEO_MODELS

app = typer.Typer(help="Cadence generation jobs and video budgets")


def _job_line(job: GenerationJob) -> str:
    color = {"pending": "white", "generating": "cyan", "completed": "green", "failed": "red"}[job.status]
    line = f"[{color}]{job.status:<10}[/{color}] {job.id}  {job.type.value:<9} {job.progress:>3}%  content={job.content_id}"
    if job.current_step:
        line += f"  ({job.current_step})"
    if isinstance(job, FailedJob):
        line += f"  [red]{job.error_code or 'ERROR'}: {job.error_message}[/red]"
    return line


@app.command()
def estimate(
    model: str = typer.Option(DEFAULT_VIDEO_MODEL, help=f"Video model: {', '.join(VIDEO_MODELS)}"),
    duration: int = typer.Option(5, help="Duration in seconds (3-8)"),
    audio: bool = typer.Option(False, "--audio", help="Include generated audio"),
    brand_id: str = typer.Option(None, help="Check the estimate against this brand's budget"),
):
    """Estimate the cost of a video, optionally against a brand's budget."""
    console = Console()
    if model not in VIDEO_MODELS:
        console.print(f"[red]Error: unknown model {model}[/red]")
        raise typer.Exit(1)

    if not brand_id:
        result = estimate_video_cost(model, duration, audio)
        console.print(
            f"{result.model_name}: {duration}s, audio={'yes' if audio else 'no'} -> {result.formatted}"
        )
        return

    services = build_services()
    try:
        result = services.video.estimate(brand_id, model=model, duration=duration, include_audio=audio)
    except BrandNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if result.estimate is not None:
        console.print(f"{result.estimate.model_name}: {duration}s -> {result.estimate.formatted}")
    if result.check is not None:
        check = result.check
        budget = format_cost(check.monthly_budget) if check.monthly_budget is not None else "unlimited"
        console.print(f"Monthly: {format_cost(check.monthly_used)} used of {budget}")
        console.print(f"Today: {check.daily_used} of {check.daily_limit if check.daily_limit is not None else 'unlimited'}")
    if result.warning:
        console.print(f"[yellow]Warning: {result.warning}[/yellow]")
    console.print("[green]Can generate.[/green]" if result.can_generate else "[red]Cannot generate.[/red]")


@app.command()
def jobs(
    content_id: str = typer.Option(None, help="Only jobs for this content item"),
    active_only: bool = typer.Option(False, "--active-only", help="Only pending/generating jobs"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON records"),
):
    """List generation jobs (all active jobs when no content id is given)."""
    console = Console()
    tracker = build_services().tracker
    if content_id:
        found = tracker.list_for_content(content_id, active_only=active_only)
    else:
        found = tracker.list_active()

    if as_json:
        console.print_json(json.dumps([job_record(j) for j in found]))
        return
    if not found:
        console.print("No jobs.")
        return
    for job in found:
        console.print(_job_line(job))


@app.command()
def reap():
    """Mark active jobs whose lease has expired as failed."""
    console = Console()
    reaped = build_services().tracker.reap_expired()
    for job in reaped:
        console.print(_job_line(job))
    console.print(f"[green]Reaped {len(reaped)} job(s).[/green]")


@app.command()
def watch(
    content_id: list[str] = typer.Option(default=[], help="Content id(s) to watch (default: all active jobs)"),
    base_url: str = typer.Option(None, help="API base URL (default http://localhost:<PORT>)"),
    interval: float = typer.Option(2.0, help="Poll interval in seconds"),
    timeout: float = typer.Option(600.0, help="Give up after this many seconds"),
):
    """Poll the API until every watched job has finished."""
    console = Console()
    url = base_url or f"http://localhost:{get_settings().port}"

    def show(jobs_by_content: dict) -> None:
        for items in jobs_by_content.values():
            for job in items[:1]:
                console.print(_job_line(job))

    async def _watch() -> None:
        async with httpx.AsyncClient(base_url=url, timeout=30.0) as http:
            poller = JobPoller(JobsApi(http), content_ids=content_id, poll_interval=interval, on_change=show)
            await poller.start()
            try:
                await poller.wait_until_settled(timeout)
            finally:
                await poller.stop()

    try:
        asyncio.run(_watch())
    except TimeoutError:
        console.print(f"[yellow]Jobs still active after {timeout:.0f}s.[/yellow]")
        raise typer.Exit(1)
    except (httpx.HTTPError, JobsApiError) as e:
        console.print(f"[red]Error: cannot reach {url}: {e}[/red]")
        raise typer.Exit(1)
    console.print("[green]Done.[/green]")


@app.command("brand-config")
def brand_config(
    brand_id: str = typer.Argument(..., help="Brand id"),
    name: str = typer.Option(None, help="Create the brand with this name if it does not exist"),
    enable: bool = typer.Option(None, "--enable/--disable", help="Turn video generation on or off"),
    budget: float = typer.Option(None, help="Monthly video budget in USD"),
    daily_limit: int = typer.Option(None, help="Maximum videos per day"),
    default_model: str = typer.Option(None, help=f"Default model: {', '.join(VIDEO_MODELS)}"),
    default_duration: int = typer.Option(None, help="Default duration in seconds"),
    max_duration: int = typer.Option(None, help="Maximum duration in seconds"),
):
    """Show or change a brand's video settings."""
    console = Console()
    brands = build_services().brands
    if brands.get(brand_id) is None:
        if not name:
            console.print(f"[red]Error: brand not found: {brand_id} (pass --name to create it)[/red]")
            raise typer.Exit(1)
        brands.save(Brand(id=brand_id, name=name))
        console.print(f"Created brand {brand_id}")

    changes = {
        "enabled": enable,
        "monthly_budget_usd": budget,
        "daily_limit": daily_limit,
        "default_model": default_model,
        "default_duration": default_duration,
        "max_duration": max_duration,
    }
    try:
        config = update_video_config(brands, brand_id, {k: v for k, v in changes.items() if v is not None})
    except ValueError as e:
        console.print(f"[red]Error: invalid video config: {e}[/red]")
        raise typer.Exit(1)
    console.print_json(config.model_dump_json())


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(None, help="Port (default from PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("backend.main:app", host=host, port=port or get_settings().port, reload=reload)


if __name__ == "__main__":
    app()
