"""
WinImager CLI Main Entry Point.

Command-line interface for system drive backup and restore.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

import click
import humanize
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from winimager import __version__
from winimager.core.config import WinImagerConfig, load_config
from winimager.core.errors import PreconditionFailure
from winimager.core.models import CompressionMode, JobResult, default_skip_log_path
from winimager.core.safety import probe_volume_dirty
from winimager.core.session import Session
from winimager.platform import get_system_drive, is_admin, is_windows

console = Console()


def get_session(ctx: click.Context) -> Session:
    """Get or create session from context."""
    if "session" not in ctx.obj:
        config = ctx.obj.get("config") or load_config()
        ctx.obj["session"] = Session(config=config)
        ctx.call_on_close(ctx.obj["session"].close)
    return ctx.obj["session"]


def require_admin() -> None:
    """Imaging a live volume needs an elevated process on Windows."""
    if is_windows() and not is_admin():
        console.print("[red]This operation requires administrator privileges.[/red]")
        console.print("Re-run from an elevated command prompt.")
        sys.exit(1)


def print_result(result: JobResult, title: str) -> None:
    """Render a job result as a table."""
    table = Table(title=title, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    status = "[green]SUCCESS[/green]" if result.success else "[red]FAILED[/red]"
    if result.degraded:
        status = "[yellow]RESTORED, NOT GUARANTEED BOOTABLE[/yellow]"
    table.add_row("Status", status)
    table.add_row("Final state", result.final_state)
    if result.exit_code is not None:
        table.add_row("Engine exit code", str(result.exit_code))
    if result.duration_seconds is not None:
        table.add_row("Duration", humanize.precisedelta(result.duration_seconds))
    if result.files_skipped_permanently:
        table.add_row("Files skipped", str(len(result.files_skipped_permanently)))
    if result.warnings:
        table.add_row("Warnings", str(len(result.warnings)))
    if result.error:
        table.add_row("Error", f"[red]{result.error}[/red]")
    console.print(table)

    if result.remediation_command:
        console.print(
            Panel(
                f"{result.secondary_phase_error}\n\nRun manually:\n  {result.remediation_command}",
                title="Boot configuration failed",
                border_style="yellow",
            )
        )


@click.group()
@click.version_option(version=__version__, prog_name="WinImager")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output results in JSON format")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, json_output: bool) -> None:
    """
    WinImager - Live Windows system drive backup and restore.

    Captures the running system volume through a VSS snapshot into a WIM
    image and restores it onto another drive.
    """
    ctx.ensure_object(dict)

    if config:
        ctx.obj["config"] = WinImagerConfig.load(config)
    else:
        ctx.obj["config"] = load_config()

    ctx.obj["json_output"] = json_output


@cli.command("backup")
@click.argument("destination", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--compression",
    type=click.Choice([m.value for m in CompressionMode], case_sensitive=False),
    help="Compression level (overrides configuration)",
)
@click.option("--threads", type=click.IntRange(min=1), help="Engine thread count")
@click.option(
    "--ignore-read-errors/--strict",
    default=None,
    help="Skip files that cannot be read instead of failing the backup",
)
@click.option("--exclude", "-x", multiple=True, help="Additional path glob to exclude")
@click.option("--sample-disk-rates", is_flag=True, help="Show disk read/write rates")
@click.option("--skip-preflight", is_flag=True, help="Do not run preflight checks")
@click.pass_context
def backup(
    ctx: click.Context,
    destination: Path,
    compression: str | None,
    threads: int | None,
    ignore_read_errors: bool | None,
    exclude: tuple[str, ...],
    sample_disk_rates: bool,
    skip_preflight: bool,
) -> None:
    """Capture the system drive into DESTINATION (.wim)."""
    require_admin()
    config: WinImagerConfig = ctx.obj["config"]
    engine = config.engine
    if compression:
        engine.compression = compression.lower()
    if threads:
        engine.threads = threads
    if ignore_read_errors is not None:
        engine.ignore_file_read_errors = ignore_read_errors
    if exclude:
        engine.extra_exclusions = [*engine.extra_exclusions, *exclude]
    if sample_disk_rates:
        config.progress.sample_disk_rates = True

    session = get_session(ctx)
    destination = destination.expanduser().resolve()
    # The preflight report already probes the volume state.
    orchestrator = session.create_backup(str(destination), probe_volume=skip_preflight)

    console.print(Panel(orchestrator.get_plan(), title="System Backup"))
    console.print(f"Skipped files will be logged to: {default_skip_log_path(destination)}")
    if engine.ignore_file_read_errors:
        console.print(
            "[magenta]WARNING: IgnoreFileReadErrors is enabled. Attempting to skip files "
            "with read errors.\n         Backup may be INCOMPLETE and UNSTABLE.[/magenta]"
        )

    async def _run() -> JobResult:
        if not skip_preflight:
            report = await session.backup_preflight(str(destination))
            console.print(report.get_summary())
        return await session.run(orchestrator)

    result = _run_job(_run)
    _finish(ctx, result, "Backup Result")


@cli.command("restore")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("target")
@click.option(
    "--firmware",
    type=click.Choice(["UEFI", "BIOS", "ALL"], case_sensitive=False),
    help="Boot firmware to configure (overrides configuration)",
)
@click.option("--index", "image_index", type=click.IntRange(min=1), help="Image index to apply")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def restore(
    ctx: click.Context,
    image: Path,
    target: str,
    firmware: str | None,
    image_index: int | None,
    yes: bool,
) -> None:
    """Apply IMAGE onto drive TARGET (for example D:) and make it bootable."""
    require_admin()
    config: WinImagerConfig = ctx.obj["config"]
    if firmware:
        config.restore.firmware = firmware.upper()
    if image_index:
        config.restore.image_index = image_index

    session = get_session(ctx)
    orchestrator = session.create_restore(str(image), target)

    errors = orchestrator.validate()
    if errors:
        for error in errors:
            console.print(f"[red]{error}[/red]")
        sys.exit(1)

    console.print(Panel(orchestrator.get_plan(), title="System Restore", border_style="red"))
    if not yes and not click.confirm(
        f"All data on {orchestrator.target_drive} will be overwritten. Continue?",
        default=False,
    ):
        console.print("[yellow]Operation cancelled[/yellow]")
        return

    result = _run_job(lambda: session.run(orchestrator))
    _finish(ctx, result, "Restore Result")


@cli.command("check-dirty")
@click.argument("drive", required=False)
@click.pass_context
def check_dirty(ctx: click.Context, drive: str | None) -> None:
    """Report whether DRIVE (default: system drive) has its dirty bit set."""
    session = get_session(ctx)
    drive = drive or get_system_drive()
    dirty = asyncio.run(probe_volume_dirty(session.runner, session.config.probe, drive))

    if ctx.obj.get("json_output"):
        click.echo(json.dumps({"drive": drive, "dirty": dirty}))
    elif dirty is None:
        console.print(f"[yellow]Could not determine the state of {drive}[/yellow]")
    elif dirty:
        console.print(f"[yellow]Volume {drive} is Dirty. Consider running chkdsk.[/yellow]")
    else:
        console.print(f"[green]Volume {drive} is NOT Dirty.[/green]")


@cli.group("config")
def config_group() -> None:
    """Show or write configuration."""


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective configuration."""
    config: WinImagerConfig = ctx.obj["config"]
    click.echo(json.dumps(config.model_dump(mode="json"), indent=2))


@config_group.command("init")
@click.argument("path", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def config_init(ctx: click.Context, path: Path | None) -> None:
    """Write the effective configuration to PATH (default: ~/.winimager/config.json)."""
    config: WinImagerConfig = ctx.obj["config"]
    config.save(path)
    console.print(f"[green]Configuration written to {path or '~/.winimager/config.json'}[/green]")


def _run_job(factory: Callable[[], Coroutine[Any, Any, JobResult]]) -> JobResult:
    try:
        return asyncio.run(factory())
    except PreconditionFailure as e:
        for error in e.errors:
            console.print(f"[red]{error}[/red]")
        sys.exit(1)


def _finish(ctx: click.Context, result: JobResult, title: str) -> None:
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_result(result, title)
        if result.success and not result.degraded:
            console.print("\n[green]Operation completed successfully![/green]")
    if not result.success:
        sys.exit(1)


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
