"""Command-line interface for datascan."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from datascan import __version__
from datascan.catalog import load_data_classes
from datascan.config import ScanConfig, load_config
from datascan.db import create_db_engine, init_db
from datascan.errors import DetectionError
from datascan.pipeline import build_driver
from datascan.reporter import create_reporter, render_catalog

console = Console()


def _load(config_path: str | None) -> ScanConfig:
    try:
        return load_config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        sys.exit(2)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.version_option(version=__version__, prog_name="datascan")
def main() -> None:
    """datascan - Sensitive data detection for observed API traffic."""
    pass


@main.command("init-db")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="YAML config file")
def init_db_command(config_path: str | None) -> None:
    """Create the database tables."""
    config = _load(config_path)
    try:
        init_db(create_db_engine(config.database_url))
    except SQLAlchemyError as e:
        console.print(f"[red]Could not create tables in {config.database_url}: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]Tables created in {config.database_url}[/green]")


@main.command()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option(
    "--format",
    "-f",
    type=click.Choice(["json", "table"]),
    default="table",
    help="Output format",
)
@click.option("--output", "-o", type=click.Path(), help="Write output to file")
def run(config_path: str | None, format: str, output: str | None) -> None:
    """Run one sensitive data detection pass over all endpoints."""
    config = _load(config_path)
    _configure_logging(config.log_level)

    try:
        summary = build_driver(config).run()
    except (DetectionError, SQLAlchemyError) as e:
        console.print(f"[red]Detection run aborted: {e}[/red]")
        sys.exit(1)

    report = create_reporter(format).generate(summary)
    if output:
        Path(output).write_text(report, encoding="utf-8")
        console.print(f"[green]Report written to {output}[/green]")
    elif format == "json":
        click.echo(report)
    else:
        console.print(report)


@main.command()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="YAML config file")
def catalog(config_path: str | None) -> None:
    """List the effective data class catalog."""
    config = _load(config_path)
    try:
        classes = load_data_classes(config.data_classes_file, config.disabled_data_classes)
    except DetectionError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(render_catalog(classes))


if __name__ == "__main__":
    main()
