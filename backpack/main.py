"""CLI entry point for backpack."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import click
import structlog

from backpack import __version__
from backpack.app import build_host, configure_logging
from backpack.core.config import BackpackConfig
from backpack.exceptions import ConfigError
from backpack.plugins.capabilities import Printer
from backpack.plugins.host import PluginHost

logger = structlog.get_logger()

HostAction = Callable[[PluginHost, Printer], Any]


async def _dispatch(
    config: BackpackConfig, command: str, args: list[str], action: HostAction
) -> None:
    host = build_host(config)
    printer = Printer(no_color=config.no_color)

    if not config.quiet:
        printer.echo("Initializing plugins", fg="cyan")
    await host.register_plugins()
    if not config.quiet:
        printer.echo("Plugin registration complete", fg="cyan")

    logger.debug("command_dispatch", command=command, args=args)
    await host.run_command(command, args, lambda: action(host, printer))
    if not config.quiet:
        printer.echo(f"{command.capitalize()} command complete", fg="green")


def _run(
    config: BackpackConfig, command: str, args: list[str], action: HostAction
) -> None:
    try:
        asyncio.run(_dispatch(config, command, args, action))
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from e


@click.group()
@click.version_option(__version__, prog_name="backpack")
@click.option(
    "-q", "--quiet", is_flag=True, help="Only print plugin and command output."
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option("--no-color", is_flag=True, help="Disable colored output.")
@click.option("--json", "json_logs", is_flag=True, help="Emit logs as JSON lines.")
@click.pass_context
def cli(
    ctx: click.Context, quiet: bool, verbose: bool, no_color: bool, json_logs: bool
) -> None:
    try:
        config = BackpackConfig()
    except Exception as e:
        click.echo(f"Configuration error: {e}", err=True)
        click.echo("Check the BACKPACK_* environment variables or .env file.", err=True)
        ctx.exit(1)

    updates: dict[str, Any] = {}
    if quiet:
        updates["quiet"] = True
    if verbose:
        updates["log_level"] = "DEBUG"
    if no_color:
        updates["no_color"] = True
    if json_logs:
        updates["log_format"] = "json"
    config = config.model_copy(update=updates)

    configure_logging(config)
    ctx.obj = config


@cli.command()
@click.pass_obj
def hello(config: BackpackConfig) -> None:
    """Check that the CLI and its plugins are wired up."""

    def action(host: PluginHost, printer: Printer) -> None:
        logger.info("ping_pong")
        printer.echo("Pong")

    _run(config, "hello", [], action)


@cli.command(name="plugins")
@click.pass_obj
def list_plugins(config: BackpackConfig) -> None:
    """List the plugins found in the plugin directory."""

    def action(host: PluginHost, printer: Printer) -> None:
        if not host.plugins:
            printer.echo("No plugins installed.")
            return
        for plugin in host.plugins:
            manifest = plugin.manifest
            printer.echo(manifest.name, fg="green")
            printer.echo(f"  {manifest.description}")
            printer.echo(f"  author: {manifest.author}")
            for label, value in (
                ("homepage", manifest.homepage),
                ("repo", manifest.repo),
                ("license", manifest.license),
            ):
                if value:
                    printer.echo(f"  {label}: {value}")
            printer.echo(f"  path: {plugin.directory}")

    _run(config, "plugins", [], action)


def run() -> None:
    cli()
