from __future__ import annotations

import logging

import click
import requests

from . import tasks
from .amadeus_client import AmadeusClient, AmadeusError
from .config import get_settings
from .mailer import format_duration, stops_label
from .tracker import run_once

logger = logging.getLogger(__name__)


@click.group()
def cli() -> None:
    """Command line interface."""
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@cli.command()
def run() -> None:
    """Search now, then keep searching on the configured schedule."""
    try:
        tasks.start(get_settings())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Fare tracker stopped")


@cli.command()
def once() -> None:
    """Run a single search and print the ranked offers."""
    settings = get_settings()
    try:
        offers = run_once(settings, AmadeusClient.from_settings(settings))
    except AmadeusError as exc:
        raise click.ClickException(f"Amadeus error: {exc} {exc.payload or ''}") from exc
    except requests.RequestException as exc:
        raise click.ClickException(f"Network error talking to Amadeus: {exc}") from exc
    if not offers:
        click.echo("No good offers today.")
    for i, off in enumerate(offers, start=1):
        click.echo(
            f"{i}. {off.price} {settings.currency}  {off.departure_date}  "
            f"{format_duration(off.duration)}  {stops_label(off.stops)}  "
            f"{off.carrier}  {' | '.join(off.details)}"
        )


if __name__ == "__main__":
    cli()
