"""CLI commands for the export pipeline client.

Usage:
    epc validate [--format gif|mp4|webm|mov] [--fps N] [--json]
    epc export --session ID --file NAME [--file NAME ...] [--two-phase]
    epc status <status_url> [--json]
    epc config [--json]
    epc config set <key> <value>
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from epc.config.manager import ConfigManager
from epc.models.export_job import Completed, ExportPhase, ExportState, StatusReport
from epc.models.settings import (
    PALETTE_PRESETS,
    RESOLUTION_PRESETS,
    DitherMode,
    ExportFormat,
    ExportSettings,
    QualityTier,
    Resolution,
)
from epc.models.validation import Severity, ValidationResult
from epc.services.api import ExportApiClient
from epc.services.download import DownloadTrigger
from epc.services.error_handling import ExportError, StatusCheckError
from epc.services.state_machine import ExportStateMachine
from epc.services.submit import (
    JobSubmitter,
    build_from_master_request,
    build_master_request,
    build_unified_export_request,
)
from epc.services.tracker import ProgressTracker
from epc.validation.engine import validate as validate_settings

console = Console()

FORMAT_CHOICES = [f.value for f in ExportFormat]
DITHER_CHOICES = [d.value for d in DitherMode]


def settings_options(func):
    """Attach the export settings options to a command."""
    options = [
        click.option("--format", "fmt", type=click.Choice(FORMAT_CHOICES), help="Output format"),
        click.option("--fps", type=int, help="Frame rate"),
        click.option("--quality", help=f"Quality tier ({', '.join(QualityTier.values())})"),
        click.option(
            "--resolution",
            "preset",
            type=click.Choice(list(RESOLUTION_PRESETS)),
            help="Resolution preset",
        ),
        click.option("--width", type=int, help="Custom width in pixels"),
        click.option("--height", type=int, help="Custom height in pixels"),
        click.option(
            "--colors",
            type=int,
            help=f"GIF palette size (presets: {', '.join(map(str, PALETTE_PRESETS))})",
        ),
        click.option("--dither", type=click.Choice(DITHER_CHOICES), help="GIF dithering"),
        click.option("--bitrate", type=int, help="Video bitrate in kbps"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_settings(
    config: ConfigManager,
    fmt: str | None,
    fps: int | None,
    quality: str | None,
    preset: str | None,
    width: int | None,
    height: int | None,
    colors: int | None,
    dither: str | None,
    bitrate: int | None,
) -> ExportSettings:
    """Build ExportSettings from CLI options, falling back to configured defaults."""
    export_format = ExportFormat(fmt or config.get("export.default_format"))
    quality = quality or config.get("export.default_quality")

    if (width is None) != (height is None):
        raise click.BadParameter("--width and --height must be given together")
    if width is not None:
        resolution = Resolution(width=width, height=height)
    elif preset:
        resolution = Resolution.from_preset(preset)
    else:
        resolution = None

    if export_format is ExportFormat.GIF:
        kwargs = {"quality": quality, "resolution": resolution}
        if fps is not None:
            kwargs["fps"] = fps
        if colors is not None:
            kwargs["colors"] = colors
        if dither:
            kwargs["dither"] = DitherMode(dither)
        return ExportSettings.gif(**kwargs)

    kwargs = {"quality": quality, "resolution": resolution, "bitrate": bitrate}
    if fps is not None:
        kwargs["fps"] = fps
    return ExportSettings.video(export_format, **kwargs)


_SEVERITY_STYLES = {
    Severity.ERROR: "[red]error[/red]",
    Severity.WARNING: "[yellow]warning[/yellow]",
    Severity.INFO: "[blue]info[/blue]",
}


def print_validation(result: ValidationResult) -> None:
    """Render validation messages as a table."""
    if not result.messages:
        console.print("[green]✓ Settings are valid[/green]")
        return

    table = Table(title="Validation")
    table.add_column("Severity")
    table.add_column("Field", style="cyan")
    table.add_column("Code", style="magenta")
    table.add_column("Message")

    for message in result.messages:
        severity = _SEVERITY_STYLES[message.severity]
        table.add_row(severity, message.field, message.code, message.message)

    console.print(table)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs")
@click.pass_context
def cli(ctx, verbose: bool):
    """Export Pipeline Client - validate, submit and track export jobs"""
    ctx.ensure_object(dict)
    ctx.obj["config"] = ConfigManager()
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )


@cli.command()
@settings_options
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def validate(
    ctx,
    fmt: str | None,
    fps: int | None,
    quality: str | None,
    preset: str | None,
    width: int | None,
    height: int | None,
    colors: int | None,
    dither: str | None,
    bitrate: int | None,
    output_json: bool,
):
    """Check export settings without exporting."""
    config = ctx.obj["config"]

    try:
        settings = build_settings(
            config, fmt, fps, quality, preset, width, height, colors, dither, bitrate
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    result = validate_settings(settings)

    if output_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        print_validation(result)

    if not result.can_export:
        sys.exit(1)


@cli.command()
@click.option("--session", "session_id", required=True, help="Upload session id")
@click.option("--file", "files", multiple=True, required=True, help="Uploaded file, in order")
@click.option("--duration", "durations", type=int, multiple=True, help="Frame duration in ms")
@click.option("--two-phase", is_flag=True, help="Generate a master first, then convert it")
@click.option("--output", "-o", "output_dir", type=click.Path(), help="Download folder")
@settings_options
@click.pass_context
def export(
    ctx,
    session_id: str,
    files: tuple[str, ...],
    durations: tuple[int, ...],
    two_phase: bool,
    output_dir: str | None,
    fmt: str | None,
    fps: int | None,
    quality: str | None,
    preset: str | None,
    width: int | None,
    height: int | None,
    colors: int | None,
    dither: str | None,
    bitrate: int | None,
):
    """Submit an export, follow it to completion and download the result."""
    config = ctx.obj["config"]

    try:
        settings = build_settings(
            config, fmt, fps, quality, preset, width, height, colors, dither, bitrate
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    preflight = validate_settings(settings)
    if preflight.messages:
        print_validation(preflight)

    output_path = Path(output_dir).expanduser() if output_dir else config.ensure_output_dir()

    client = ExportApiClient(
        base_url=config.get("api.base_url"), timeout=config.get("api.timeout_seconds")
    )
    submitter = JobSubmitter(client)
    # No push transport is wired into the CLI; the tracker polls.
    tracker = ProgressTracker(client, push_channel=None, config=config.config.tracking)

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        console=console,
    )
    export_task = progress.add_task("Preparing export...", total=100)
    download_task = None

    def on_download(filename: str, written: int, total: int):
        nonlocal download_task
        if download_task is None:
            download_task = progress.add_task(f"Downloading {filename}", total=total or None)
        progress.update(download_task, completed=written)

    def on_state(phase: ExportPhase, state: ExportState):
        progress.update(
            export_task,
            completed=state.progress,
            description=state.current_step or phase.value,
        )

    machine = ExportStateMachine(
        submitter,
        tracker,
        download_trigger=DownloadTrigger(client, output_path, progress_callback=on_download),
    )
    machine.add_listener(on_state)

    try:
        if two_phase:
            build_request = build_master_request(session_id, files, durations or None)

            def convert_request_factory(master: Completed):
                return build_from_master_request(
                    master.filename or master.download_location, settings, session_id
                )

            coroutine = machine.export_two_phase(settings, build_request, convert_request_factory)
        else:
            request = build_unified_export_request(session_id, files, settings, durations or None)
            coroutine = machine.export(settings, request)

        with progress:
            outcome = asyncio.run(coroutine)
    except (ExportError, ValueError) as e:
        console.print(f"[red]✗ Export failed: {e}[/red]")
        sys.exit(1)

    state = machine.state
    if outcome is None or not outcome.succeeded:
        console.print(f"[red]✗ Export failed: {state.error or 'cancelled'}[/red]")
        sys.exit(1)

    console.print()
    console.print("[green]✓ Export completed[/green]")
    console.print(f"  Download: {client.resolve_url(state.download_location)}")
    if state.saved_path:
        console.print(f"  Saved to: [cyan]{state.saved_path}[/cyan]")
    else:
        console.print("[yellow]  File could not be downloaded; use the URL above[/yellow]")


@cli.command()
@click.argument("status_url")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx, status_url: str, output_json: bool):
    """Fetch the status of a queued export job once."""
    config = ctx.obj["config"]
    client = ExportApiClient(
        base_url=config.get("api.base_url"), timeout=config.get("api.timeout_seconds")
    )

    try:
        report = client.get_status(status_url)
    except StatusCheckError as e:
        if output_json:
            click.echo(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if output_json:
        click.echo(json.dumps(_status_to_dict(report), indent=2))
        return

    console.print(f"[bold]Job status:[/bold] {_format_status(report.status.value)}")
    console.print(f"  Progress: {report.progress}%")
    if report.message:
        console.print(f"  Step: {report.message}")
    if report.download_location:
        console.print(f"  Download: {client.resolve_url(report.download_location)}")
    if report.error:
        console.print(f"  [red]Error: {report.error}[/red]")


@cli.group(invoke_without_command=True)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def config(ctx, output_json: bool):
    """Display or modify configuration."""
    if ctx.invoked_subcommand is not None:
        return

    config_manager = ctx.obj["config"]
    all_config = config_manager.get_all()

    if output_json:
        click.echo(json.dumps(all_config, indent=2))
        return

    console.print("[bold]Current Configuration[/bold]")
    console.print()

    console.print("[cyan]API Settings:[/cyan]")
    console.print(f"  api.base_url: {all_config['api']['base_url']}")
    console.print(f"  api.timeout_seconds: {all_config['api']['timeout_seconds']}")
    console.print()

    console.print("[cyan]Tracking Settings:[/cyan]")
    for key, value in all_config["tracking"].items():
        console.print(f"  tracking.{key}: {value}")
    console.print()

    console.print("[cyan]Export Settings:[/cyan]")
    for key, value in all_config["export"].items():
        console.print(f"  export.{key}: {value}")
    console.print()

    console.print("[dim]Use 'epc config set <key> <value>' to change settings[/dim]")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key: str, value: str):
    """Modify configuration value."""
    config_manager = ctx.obj["config"]

    try:
        config_manager.set(key, value)
        config_manager.save()
        console.print(f"[green]✓ Set {key} = {value}[/green]")
    except (KeyError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _status_to_dict(report: StatusReport) -> dict:
    return {
        "status": report.status.value,
        "progress": report.progress,
        "message": report.message,
        "downloadUrl": report.download_location,
        "filename": report.filename,
        "error": report.error,
    }


def _format_status(status: str) -> str:
    """Format status with color."""
    status_colors = {
        "queued": "[yellow]queued[/yellow]",
        "processing": "[blue]processing[/blue]",
        "completed": "[green]completed[/green]",
        "failed": "[red]failed[/red]",
    }
    return status_colors.get(status, status)


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
