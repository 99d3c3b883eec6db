"""CLI commands for shopfetch."""

import logging
import sys
from collections.abc import Callable

import click
import structlog
from pydantic import BaseModel, ValidationError

from shopfetch import __version__
from shopfetch.aggregator.factory import build_aggregator
from shopfetch.errors import ShopFetchError
from shopfetch.observability import configure_logging
from shopfetch.settings import AppSettings


logger = structlog.get_logger()


def _load_settings(ctx: click.Context) -> AppSettings:
    """Load settings, exiting with a readable message on validation errors."""
    try:
        return AppSettings()
    except ValidationError as e:
        click.echo(f"Error: invalid settings:\n{e}", err=True)
        raise click.exceptions.Exit(2) from e


def _run_and_print(
    fetch: Callable[[str], BaseModel],
    url: str,
) -> None:
    """Run a scrape and print JSON, exiting 1 with the error kind on failure."""
    try:
        result = fetch(url)
    except ShopFetchError as e:
        click.echo(f"Error [{e.kind.value}]: {e.message}", err=True)
        sys.exit(1)
    click.echo(result.model_dump_json(indent=2))


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option(
    "--json-logs/--console-logs",
    default=None,
    help="Log format (defaults to SHOPFETCH_JSON_LOGS).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, json_logs: bool | None) -> None:
    """Fetch and aggregate shop listings and product pages."""
    settings = _load_settings(ctx)
    level = logging.DEBUG if verbose else settings.log_level_value
    configure_logging(
        level=level,
        json_format=settings.json_logs if json_logs is None else json_logs,
    )
    ctx.obj = settings


@cli.command()
@click.argument("url")
@click.pass_obj
def shop(settings: AppSettings, url: str) -> None:
    """Aggregate a shop listing URL and its product pages."""
    aggregator = build_aggregator(settings)
    _run_and_print(aggregator.aggregate, url)


@cli.command()
@click.argument("url")
@click.pass_obj
def product(settings: AppSettings, url: str) -> None:
    """Scrape a single product URL."""
    aggregator = build_aggregator(settings)
    _run_and_print(aggregator.product, url)


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to SHOPFETCH_HOST).")
@click.option("--port", default=None, type=int, help="Port (defaults to SHOPFETCH_PORT).")
@click.pass_obj
def serve(settings: AppSettings, host: str | None, port: int | None) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from shopfetch.api import create_app

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("server_starting", component="cli", host=bind_host, port=bind_port)
    uvicorn.run(
        create_app(settings),
        host=bind_host,
        port=bind_port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
