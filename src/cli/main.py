"""CLI commands for building and serving IIIF sites."""

import json
import logging
import sys
import threading
from pathlib import Path

import click
import structlog
import uvicorn

from src.adapters.runtime import HostRuntime
from src.build.models import BuildOptions
from src.config.constants import COMPONENT_CLI
from src.config.error_hints import format_validation_error
from src.config.loader import ConfigLoader
from src.core.errors import ConfigurationError
from src.observability.logging import configure_logging
from src.settings.app import AppSettings, get_settings


logger = structlog.get_logger()


def _setup_logging(json_logs: bool, verbose: bool, settings: AppSettings) -> None:
    level: int | str = logging.DEBUG if verbose else settings.log_level
    configure_logging(level=level, json_format=json_logs)


def _report_config_error(error: ConfigurationError) -> None:
    click.echo("Configuration validation failed:", err=True)
    if not error.errors:
        click.echo(f"  - {error}", err=True)
    for item in error.errors:
        formatted = format_validation_error(
            location=item["loc"],
            message=item["msg"],
            error_type=item.get("type", "unknown"),
            include_hint=True,
        )
        click.echo(f"  - {formatted}", err=True)


def _runtime(
    root: Path, config_path: Path | None, settings: AppSettings
) -> HostRuntime:
    loader = ConfigLoader(root, server_url=settings.server_url)
    try:
        config = loader.load(config_path)
    except ConfigurationError as e:
        _report_config_error(e)
        sys.exit(1)
    return HostRuntime(root, config_path=config_path, settings=settings, config=config)


def _wait_for_interrupt() -> None:
    threading.Event().wait()


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """IIIF headless static site builder CLI."""


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Project root (default: current directory).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: .iiifrc.yml or iiif-config/config.yml).",
)
@click.option(
    "--cache/--no-cache",
    default=True,
    help="Reuse cached step results (default: true).",
)
@click.option(
    "--emit/--no-emit",
    default=True,
    help="Write artifacts to the build directory (default: true).",
)
@click.option("--dev", is_flag=True, help="Build into the dev directories.")
@click.option(
    "--watch/--no-watch",
    "watch_mode",
    default=None,
    help="Keep watching store folders and rebuild on change (default: --dev).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=False,
    help="Use JSON format for logs (default: false).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
def build(  # noqa: PLR0913
    root: Path,
    config_path: Path | None,
    cache: bool,
    emit: bool,
    dev: bool,
    watch_mode: bool | None,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Crawl stores, run the pipelines and emit the site."""
    settings = get_settings()
    _setup_logging(json_logs, verbose, settings)
    runtime = _runtime(root.resolve(), config_path, settings)
    log = logger.bind(component=COMPONENT_CLI, command="build")

    options = BuildOptions(
        cache=cache, emit=emit, dev=dev or bool(watch_mode), watch=watch_mode
    )
    # Creating the watch service lets dev builds arm it
    watcher = runtime.watch
    try:
        result = runtime.orchestrator.cached_build(options)
    except ConfigurationError as e:
        _report_config_error(e)
        sys.exit(1)

    click.echo(json.dumps(result.model_dump(mode="json")["stats"], indent=2))
    click.echo(f"Build directory: {result.build_config['buildDir']}")
    if result.diagnostics:
        click.echo(f"{len(result.diagnostics)} diagnostic(s) recorded", err=True)

    if watcher.is_watching:
        log.info("watching", pending=watcher.pending_files)
        click.echo("Watching for changes (Ctrl+C to stop)...")
        try:
            _wait_for_interrupt()
        except KeyboardInterrupt:
            pass
        finally:
            runtime.close()
    else:
        runtime.close()


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Project root (default: current directory).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file.",
)
@click.option("--host", default=None, help="Bind address (default: HSS_DEBUG_HOST).")
@click.option(
    "--port", type=int, default=None, help="Port (default: HSS_DEBUG_PORT or 7111)."
)
@click.option(
    "--watch/--no-watch",
    "watch_mode",
    default=True,
    help="Arm the watcher after the initial build (default: true).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=False,
    help="Use JSON format for logs (default: false).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
def serve(  # noqa: PLR0913
    root: Path,
    config_path: Path | None,
    host: str | None,
    port: int | None,
    watch_mode: bool,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Run a dev build and serve the debug API."""
    settings = get_settings()
    _setup_logging(json_logs, verbose, settings)
    runtime = _runtime(root.resolve(), config_path, settings)
    runtime.start_dev(watch=watch_mode)
    try:
        uvicorn.run(
            runtime.app,
            host=host or settings.debug_host,
            port=port or settings.debug_port,
            log_level="info",
        )
    finally:
        runtime.close()


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Project root (default: current directory).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file.",
)
def validate(root: Path, config_path: Path | None) -> None:
    """Validate configuration without building."""
    configure_logging(json_format=False, level=logging.WARNING)
    settings = get_settings()
    loader = ConfigLoader(root.resolve(), server_url=settings.server_url)
    try:
        effective = loader.load(config_path)
    except ConfigurationError as e:
        _report_config_error(e)
        sys.exit(1)

    click.echo("Configuration is valid!")
    click.echo(f"  Source: {effective.source_path or '(defaults)'}")
    click.echo(f"  Stores: {', '.join(effective.stores)}")
    click.echo(f"  Steps: {len(effective.run)}")
    click.echo(f"  Configuration hash: {effective.configuration_hash()}")
