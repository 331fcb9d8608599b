"""CLI entry-point: worker, scheduler and job submission."""

import logging
import time

import typer
from rich.console import Console
from rich.table import Table

from vidforge.config import get_settings
from vidforge.jobs.models import JobType, Platform
from vidforge.pipeline import create_episode_processing_pipeline
from vidforge.runtime import Runtime

app = typer.Typer(help="VidForge job pipeline: workers, scheduler and job submission")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _runtime() -> Runtime:
    return Runtime.from_settings(get_settings())


def _parse_types(types: str | None) -> list[JobType] | None:
    if not types:
        return None
    try:
        return [JobType(t.strip()) for t in types.split(",") if t.strip()]
    except ValueError as e:
        console.print(f"[red]Error: {e}. Valid types: {', '.join(t.value for t in JobType)}[/red]")
        raise typer.Exit(1)


@app.command()
def worker(
    types: str = typer.Option(None, help="Comma-separated job types (default: all)"),
):
    """Run a worker process until interrupted."""
    rt = _runtime()
    w = rt.worker(_parse_types(types))
    w.start()
    console.print("[green]Worker running.[/green] Ctrl-C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping; waiting for in-flight jobs...")
    finally:
        w.stop()
        rt.close()


@app.command()
def schedule(
    loop: bool = typer.Option(False, "--loop", help="Keep evaluating on an interval"),
    interval: float = typer.Option(None, help="Seconds between runs (default from VIDFORGE settings)"),
):
    """Evaluate publish schedules and enqueue due publish jobs."""
    rt = _runtime()
    evaluator = rt.scheduler()
    interval = interval or rt.settings.scheduler_interval
    try:
        while True:
            summary = evaluator.run()
            console.print(
                f"Checked {summary.checked_schedules} schedules, {summary.due_schedules} due, "
                f"{len(summary.due_episodes)} episodes, {summary.jobs_created} jobs created"
            )
            for schedule_id, error in summary.errors.items():
                console.print(f"[yellow]Schedule {schedule_id}: {error}[/yellow]")
            if not loop:
                break
            time.sleep(interval)
    except KeyboardInterrupt:
        pass
    finally:
        rt.close()


@app.command()
def generate(episode_id: str = typer.Argument(..., help="Episode ID")):
    """Enqueue a generate-episode job."""
    rt = _runtime()
    try:
        console.print(rt.producer.create_generate_episode_job(episode_id))
    finally:
        rt.close()


@app.command()
def render(render_id: str = typer.Argument(..., help="Render ID")):
    """Enqueue a render-episode job."""
    rt = _runtime()
    try:
        console.print(rt.producer.create_render_episode_job(render_id))
    finally:
        rt.close()


@app.command()
def publish(
    episode_id: str = typer.Argument(..., help="Episode ID"),
    platform: Platform = typer.Option(Platform.YOUTUBE, help="Target platform"),
):
    """Enqueue a publish-video job."""
    rt = _runtime()
    try:
        console.print(rt.producer.create_publish_video_job(episode_id, platform))
    finally:
        rt.close()


@app.command()
def pipeline(
    episode_id: str = typer.Argument(..., help="Episode ID"),
    render_id: str = typer.Argument(..., help="Render ID"),
    platform: list[Platform] = typer.Option([Platform.YOUTUBE], help="Target platform(s)"),
):
    """Enqueue generate, render and publish jobs for one episode."""
    rt = _runtime()
    try:
        jobs = create_episode_processing_pipeline(rt.producer, episode_id, render_id, platform)
    finally:
        rt.close()
    console.print(f"generate: {jobs.generate_job_id}")
    console.print(f"render:   {jobs.render_job_id}")
    for name, job_id in jobs.publish_job_ids.items():
        console.print(f"publish ({name}): {job_id}")


@app.command()
def status(job_id: str = typer.Argument(..., help="Job ID")):
    """Show one job's state and retry history."""
    rt = _runtime()
    try:
        job = rt.queue.store.get(job_id)
    finally:
        rt.close()
    if job is None:
        console.print(f"[red]Job not found: {job_id}[/red]")
        raise typer.Exit(1)
    table = Table(show_header=False)
    table.add_row("id", job.id)
    table.add_row("type", job.name.value)
    table.add_row("state", job.state.value)
    table.add_row("retries", f"{job.retry_count}/{job.retry_limit}")
    table.add_row("payload", job.payload.model_dump_json())
    table.add_row("created", job.created_at.isoformat())
    if job.start_after:
        table.add_row("start after", job.start_after.isoformat())
    if job.completed_at:
        table.add_row("completed", job.completed_at.isoformat())
    if job.last_error:
        table.add_row("last error", f"[red]{job.last_error}[/red]")
    console.print(table)


@app.command()
def stats(
    types: str = typer.Option(None, help="Comma-separated job types (default: all)"),
):
    """Count jobs per state for each job type."""
    rt = _runtime()
    try:
        table = Table("type", "state", "count")
        for job_type in _parse_types(types) or list(JobType):
            for state, count in sorted(rt.queue.store.count_by_state(job_type).items()):
                table.add_row(job_type.value, state, str(count))
    finally:
        rt.close()
    console.print(table)


@app.command()
def cancel(job_id: str = typer.Argument(..., help="Job ID")):
    """Cancel a job that is still waiting to run."""
    rt = _runtime()
    try:
        cancelled = rt.queue.store.cancel(job_id)
    finally:
        rt.close()
    if not cancelled:
        console.print(f"[yellow]Job {job_id} not found, running, or already finished[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Cancelled {job_id}[/green]")


if __name__ == "__main__":
    app()
