"""
Command line entry point: run a registry and inspect it.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
import uvicorn
from rich.console import Console
from rich.table import Table

from .config import Environment, load_config
from .errors import ConfigurationError, RegistryUnavailableError
from .logging import configure_logging
from .registry.api import create_registry_app
from .registry.client import RegistryClient

console = Console()


@click.group()
def cli():
    """resilient-mesh: service registry, discovery and circuit breakers."""
    pass


@cli.group()
def registry():
    """Run and inspect the service registry."""
    pass


@registry.command()
@click.option("--host", default=None, help="Bind address (defaults to config)")
@click.option("--port", default=None, type=int, help="Bind port (defaults to config)")
@click.option(
    "--config-dir",
    default="config",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    help="Directory holding base.yaml and per-environment overrides",
)
@click.option(
    "--environment",
    default=None,
    type=click.Choice([env.value for env in Environment]),
    help="Configuration environment (defaults to MESH_ENV)",
)
def serve(host: str | None, port: int | None, config_dir: Path, environment: str | None):
    """Run the registry HTTP server."""
    overrides: dict = {"registry": {}}
    if host:
        overrides["registry"]["host"] = host
    if port:
        overrides["registry"]["port"] = port

    try:
        config = load_config(environment, config_dir, overrides)
        registry_config = config.registry
        logging_config = config.logging
    except ConfigurationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    configure_logging(
        logging_config.service_name, logging_config.level, logging_config.json
    )
    console.print(
        f"🚀 Starting registry on {registry_config.host}:{registry_config.port} "
        f"(lease {registry_config.lease_duration}s, sweep {registry_config.sweep_interval}s)",
        style="bold blue",
    )

    app = create_registry_app(config=registry_config)
    uvicorn.run(
        app,
        host=registry_config.host,
        port=registry_config.port,
        log_level=logging_config.level.lower(),
        log_config=None,
    )


@registry.command()
@click.argument("service", required=False)
@click.option("--url", default="http://localhost:8761", show_default=True, help="Registry URL")
def instances(service: str | None, url: str):
    """List live instances, for one SERVICE or the whole registry."""
    try:
        directory = asyncio.run(_fetch_instances(url, service))
    except RegistryUnavailableError as e:
        console.print(f"❌ {e}", style="bold red")
        raise click.ClickException("Registry unavailable")

    if not any(directory.values()):
        console.print("No live instances", style="yellow")
        return

    table = Table(title=f"Registry: {url}")
    table.add_column("Service", style="cyan")
    table.add_column("Instance", style="green")
    table.add_column("Address", style="yellow")
    table.add_column("Status")

    for name, records in sorted(directory.items()):
        for record in records:
            table.add_row(name, record.instance_id, f"{record.host}:{record.port}", record.status.value)

    console.print(table)


async def _fetch_instances(url: str, service: str | None) -> dict:
    async with RegistryClient(url) as client:
        if service:
            return {service: await client.list_instances(service)}
        return await client.list_all()


def main():
    cli()


if __name__ == "__main__":
    main()
