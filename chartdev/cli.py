"""Thin CLI wrapper for chartdev.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from chartdev import __version__
from chartdev.config import Settings, get_settings, print_settings_json

app = typer.Typer(
    name="chartdev",
    help="chartdev - build chart images and keep a release up to date while you code",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"chartdev version {__version__}")
        raise typer.Exit()


def configure_logging(settings: Settings) -> None:
    """Send log records to a rich handler at the configured level."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def load_settings(**overrides: object) -> Settings:
    """Load settings with command-line overrides applied and validated.

    Overrides whose value is None are left at the configured value.

    Raises:
        typer.Exit: If an override is out of range.
    """
    from pydantic import ValidationError

    settings = get_settings()
    changes = {k: v for k, v in overrides.items() if v is not None}
    if not changes:
        return settings
    try:
        return Settings.model_validate({**settings.model_dump(), **changes})
    except ValidationError as e:
        err_console.print("[red]Invalid option:[/red]")
        err_console.print(str(e))
        raise typer.Exit(code=1) from None


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """chartdev - build chart images and keep a release up to date while you code."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
        return

    def _timeout(value: int | None) -> str:
        return str(value) if value is not None else "(none)"

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Layout:[/bold]")
    console.print(f"  Chart directory:     {settings.chart_dir}")
    console.print(f"  Chart file:          {settings.chart_file}")
    console.print(f"  Manifest file:       {settings.manifest_file}")
    console.print()
    console.print("[bold]Tools:[/bold]")
    console.print(f"  Container tool:      {settings.container_tool}")
    console.print(f"  Helm binary:         {settings.helm_binary}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  Dry run:             {settings.dry_run}")
    console.print(f"  Skip invalid:        {settings.skip_invalid_entries}")
    console.print(f"  Max builds:          {settings.max_concurrent_builds}")
    console.print(f"  Debounce (seconds):  {settings.debounce_seconds}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Build timeout:       {_timeout(settings.build_timeout)}")
    console.print(f"  Release timeout:     {_timeout(settings.release_timeout)}")


@app.command()
def build(
    name: Annotated[
        str | None,
        typer.Argument(help="Path to the chart directory to build"),
    ] = None,
    skip_invalid: Annotated[
        bool,
        typer.Option("--skip-invalid", help="Skip invalid manifest entries"),
    ] = False,
    jobs: Annotated[
        int | None,
        typer.Option("--jobs", "-j", min=1, help="Targets to build concurrently"),
    ] = None,
) -> None:
    """Build and push the images referenced from a chart directory.

    The chart directory must contain a Chart.yaml and an images.yaml listing
    the images to build.
    """
    from chartdev.builds.service import BuildOrchestrator
    from chartdev.devloop import LoopError, build_chart
    from chartdev.images.io import ManifestError

    if not name:
        err_console.print(
            "[red]Error: the name of the chart to build is required[/red]"
        )
        raise typer.Exit(code=1)

    settings = load_settings(
        skip_invalid_entries=skip_invalid or None, max_concurrent_builds=jobs
    )
    configure_logging(settings)

    orchestrator = BuildOrchestrator.from_settings(settings)
    try:
        report = build_chart(Path(name), orchestrator, settings)
    except LoopError:
        err_console.print(
            "[red]Error: no chart found for building "
            f"(missing {settings.chart_file})[/red]"
        )
        raise typer.Exit(code=1) from None
    except ManifestError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    for error in report.errors:
        err_console.print(f"[red]Error: {error}[/red]")
    if not report.success:
        raise typer.Exit(code=1)
    console.print(f"[green]Built {len(report.succeeded)} image(s)[/green]")


@app.command()
def up(
    debounce: Annotated[
        float | None,
        typer.Option("--debounce", min=0.0, help="Seconds to coalesce change events"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Pass --dry-run to install and uninstall"),
    ] = False,
    skip_invalid: Annotated[
        bool,
        typer.Option("--skip-invalid", help="Skip invalid manifest entries"),
    ] = False,
    jobs: Annotated[
        int | None,
        typer.Option("--jobs", "-j", min=1, help="Targets to build concurrently"),
    ] = None,
) -> None:
    """Bring up the chart in local development mode.

    Builds the images, installs a release named after the current directory
    from the chart in ./helm, then rebuilds and redeploys on every change to
    the image sources until interrupted.
    """
    from chartdev.builds.service import BuildBatchError
    from chartdev.devloop import LoopCoordinator, LoopError
    from chartdev.images.io import ManifestError
    from chartdev.release.controller import ReleaseError
    from chartdev.types import LoopState
    from chartdev.watch.watcher import WatchError

    settings = load_settings(
        debounce_seconds=debounce,
        dry_run=dry_run or None,
        skip_invalid_entries=skip_invalid or None,
        max_concurrent_builds=jobs,
    )
    configure_logging(settings)

    coordinator = LoopCoordinator(Path.cwd(), settings)
    try:
        coordinator.run()
    except KeyboardInterrupt:
        if coordinator.state is not LoopState.WATCHING:
            err_console.print(
                f"[yellow]Interrupted during {coordinator.state.value}[/yellow]"
            )
            raise typer.Exit(code=130) from None
        console.print("[yellow]Interrupted, stopped watching[/yellow]")
    except BuildBatchError as e:
        for error in e.errors:
            err_console.print(f"[red]Error: {error}[/red]")
        raise typer.Exit(code=1) from None
    except (LoopError, ManifestError, ReleaseError, WatchError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None


if __name__ == "__main__":
    app()
