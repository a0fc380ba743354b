"""Pulse command line entry point.

Commands:
  pulse start    start the Pulse web server
  pulse health   query a running server's health endpoint
  pulse version  print the version
"""

import logging
import sys

import click
import requests

from pulse import __version__, create_app

logger = logging.getLogger(__name__)

DEFAULT_ADDR = "localhost:3002"


def split_addr(addr):
    """Split "host:port" into (host, port); a bare ":port" binds localhost."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise click.BadParameter(f"expected host:port, got {addr!r}", param_hint="--addr")
    return host or "localhost", int(port)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="Pulse %(version)s")
@click.option("--log-level", default="INFO", help="Log level for server output.")
def cli(log_level):
    """Pulse - Linear-inspired project management."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


@cli.command()
@click.option("--addr", default=DEFAULT_ADDR, show_default=True, help="Address to listen on.")
@click.option("--data-dir", default="./.pulse-data", show_default=True, help="Data directory.")
@click.option("--store", "store_backend", type=click.Choice(["memory", "sqlite"]),
              default=None, help="Entity store backend (overrides config).")
@click.option("--debug", is_flag=True, default=False, help="Run Flask in debug mode.")
def start(addr, data_dir, store_backend, debug):
    """Start the Pulse web server."""
    host, port = split_addr(addr)

    overrides = {"dataDir": data_dir}
    if store_backend:
        overrides["storeBackend"] = store_backend

    app = create_app(overrides)
    logger.info("Starting Pulse %s on %s:%d", __version__, host, port)
    app.run(host=host, port=port, debug=debug)


@cli.command()
@click.option("--addr", default=DEFAULT_ADDR, show_default=True, help="Server address.")
def health(addr):
    """Check that a Pulse server is up."""
    host, port = split_addr(addr)

    try:
        response = requests.get(
            f"http://{host}:{port}/api/health",
            headers={"Accept": "application/json"},
            timeout=10
        )
        response.raise_for_status()
    except requests.exceptions.Timeout:
        click.echo(f"Connection to {addr} timed out", err=True)
        sys.exit(1)
    except requests.exceptions.RequestException as e:
        click.echo(f"Pulse server at {addr} is not healthy: {e}", err=True)
        sys.exit(1)

    data = response.json()
    click.echo(
        f"{data.get('status', 'unknown')} - Pulse {data.get('version', '?')} "
        f"({data.get('store', '?')} store)"
    )


@cli.command()
def version():
    """Print the version number of Pulse."""
    click.echo(f"Pulse {__version__}")


def main():
    cli()


if __name__ == "__main__":
    main()
