"""Command-line interface for Sunlapse."""

from datetime import date, datetime
from pathlib import Path
from typing import Optional

import click
import yaml

from sunlapse import __version__
from sunlapse.config import Config, ConfigError, load_config
from sunlapse.daystate import DayTracker
from sunlapse.logger import setup_logger
from sunlapse.main import SunlapseSystem
from sunlapse.solar import SolarCalcError, is_in_window
from sunlapse.storage import StorageError
from sunlapse.summary import PipelineOutcome


def _load(ctx: click.Context, require_endpoint: bool = False) -> Config:
    """Load and validate configuration, exiting with status 2 when invalid."""
    try:
        config = load_config(ctx.obj.get("config_path"))
        config.check_required(require_endpoint=require_endpoint)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        ctx.exit(2)
    return config


def _parse_date(ctx, param, value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD")


@click.group()
@click.version_option(version=__version__, prog_name="sunlapse")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]) -> None:
    """Sunlapse Daylight Timelapse System.

    Captures webcam images from sunrise to sunset and builds a timelapse
    video of each day.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.pass_context
def daemon(ctx: click.Context) -> None:
    """Run the capture daemon until stopped."""
    config = _load(ctx, require_endpoint=True)
    setup_logger(config.logging)

    click.echo("Starting Sunlapse daemon...")
    click.echo(f"  Endpoint: {config.capture.endpoint}")
    click.echo(
        f"  Location: {config.location.latitude}, {config.location.longitude} "
        f"(UTC{config.location.utc_offset:+g})"
    )
    click.echo(f"  Period: {config.capture.period_s}s")
    click.echo(f"  Storage path: {config.storage.base_path}")
    click.echo("\nPress Ctrl+C to stop.\n")

    try:
        system = SunlapseSystem(config)
        exit_code = system.run_daemon()
    except StorageError as e:
        click.echo(f"Storage error: {e}", err=True)
        ctx.exit(1)
    except SolarCalcError as e:
        click.echo(f"Error calculating sunrise/sunset: {e}", err=True)
        ctx.exit(1)

    ctx.exit(exit_code)


@cli.command()
@click.option(
    "--date",
    "for_date",
    callback=_parse_date,
    help="Date to compute (YYYY-MM-DD). Defaults to today.",
)
@click.pass_context
def window(ctx: click.Context, for_date: Optional[date]) -> None:
    """Show sunrise and sunset for a date."""
    config = _load(ctx)
    tracker = DayTracker(
        config.location.latitude,
        config.location.longitude,
        config.location.utc_offset,
    )
    now = datetime.now(tracker.timezone)

    try:
        solar = tracker.window_for(for_date or now.date())
    except SolarCalcError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    click.echo(f"Date:    {solar.for_date.isoformat()}")
    click.echo(f"Sunrise: {solar.sunrise.isoformat()}")
    click.echo(f"Sunset:  {solar.sunset.isoformat()}")
    if solar.for_date == now.date():
        click.echo(f"Daytime: {'Yes' if is_in_window(solar, now) else 'No'}")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Display system status."""
    config = _load(ctx)

    try:
        system = SunlapseSystem(config, connect_remote=False)
        status_info = system.get_status()
    except (StorageError, SolarCalcError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    click.echo("=== Sunlapse System Status ===\n")

    sun_info = status_info["sun"]
    click.echo("Sun:")
    click.echo(f"  Window date: {sun_info['date']}")
    click.echo(f"  Sunrise: {sun_info['sunrise']}")
    click.echo(f"  Sunset: {sun_info['sunset']}")
    click.echo(f"  Daytime now: {'Yes' if sun_info['is_daytime'] else 'No'}")

    schedule_info = status_info["scheduler"]
    click.echo("\nSchedule:")
    click.echo(f"  Period: {schedule_info['period_s']}s")
    click.echo(f"  Next tick: {schedule_info['next_tick'] or 'N/A (daemon not running)'}")

    storage_info = status_info["storage"]
    click.echo("\nStorage:")
    click.echo(f"  Path: {storage_info['base_path']}")
    click.echo(
        f"  Free space: {storage_info['free_gb']:.2f} GB / "
        f"{storage_info['total_gb']:.2f} GB"
    )
    click.echo(f"  Image count: {storage_info['image_count']}")
    if storage_info["pending_days"]:
        click.echo(f"  Days with images: {', '.join(storage_info['pending_days'])}")

    if storage_info["free_gb"] < config.storage.min_free_space_mb / 1024:
        click.echo(
            f"\n  WARNING: Low disk space! "
            f"(threshold: {config.storage.min_free_space_mb}MB)",
            err=True,
        )


@cli.command()
@click.argument("day", callback=_parse_date)
@click.option("--no-upload", is_flag=True, help="Skip remote upload even if sync is enabled")
@click.pass_context
def summarize(ctx: click.Context, day: date, no_upload: bool) -> None:
    """Build the video and archive for DAY (YYYY-MM-DD) and delete its images.

    Use this to finish a day whose summary was lost when the daemon stopped.
    """
    config = _load(ctx)
    setup_logger(config.logging)

    try:
        system = SunlapseSystem(config, connect_remote=not no_upload)
    except StorageError as e:
        click.echo(f"Storage error: {e}", err=True)
        ctx.exit(1)

    click.echo(f"Summarizing {day.isoformat()}...")
    outcome = system.summarize(day)

    if outcome is PipelineOutcome.SUCCEEDED:
        click.echo("Summary complete!")
        click.echo(f"  Video: {system.storage.video_path(day)}")
        click.echo(f"  Archive: {system.storage.archive_path(day)}")
    else:
        click.echo(f"Summary failed: {outcome.value}. Check logs for details.", err=True)
        ctx.exit(1)


@cli.command("config")
@click.option("--show", is_flag=True, help="Show current configuration")
@click.option("--create", is_flag=True, help="Create default configuration file")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=Path("config/config.yaml"),
    help="Output path for configuration file",
)
@click.pass_context
def config_cmd(
    ctx: click.Context, show: bool, create: bool, output: Path
) -> None:
    """Manage configuration."""
    if create:
        if output.exists():
            if not click.confirm(f"{output} already exists. Overwrite?"):
                return

        config = Config()
        output.parent.mkdir(parents=True, exist_ok=True)

        with open(output, "w", encoding="utf-8") as f:
            yaml.dump(
                config.to_dict(), f, default_flow_style=False, allow_unicode=True
            )

        click.echo(f"Configuration file created: {output}")
        return

    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        ctx.exit(2)
    click.echo(yaml.dump(config.to_dict(), default_flow_style=False, allow_unicode=True))


if __name__ == "__main__":
    cli()
