"""Shared utilities for gptpart CLI modules."""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from gptpart.core.logger import console as err_console
from gptpart.discovery.devices import DeviceDiscovery
from gptpart.models.device import DeviceDescriptor, parse_size


def size_option(value: Optional[str]) -> Optional[int]:
    """Typer callback turning ``10M`` style sizes into bytes."""
    if value is None:
        return None
    try:
        return parse_size(value)
    except ValueError as e:
        raise typer.BadParameter(str(e))


def global_block_size(ctx: typer.Context) -> Optional[int]:
    """The ``--block`` value given before the subcommand, if any."""
    obj = ctx.find_root().obj or {}
    return obj.get('block')


def is_verbose(ctx: typer.Context) -> bool:
    obj = ctx.find_root().obj or {}
    return bool(obj.get('verbose'))


def resolve_device(device: str, block_size: Optional[int] = None) -> DeviceDescriptor:
    """Resolve a DEVICE argument (path or ``auto``) to a descriptor.

    Raises:
        DeviceIOError: If the device can't be found or probed
    """
    return DeviceDiscovery().resolve(device, block_size=block_size)


def handle_cli_error(
    e: Exception,
    verbose: bool = False,
    exit_code: int = 1,
    console: Optional[Console] = None,
) -> None:
    """Report ``e`` and its chain of causes on stderr, then exit.

    Args:
        e: Exception to handle
        verbose: Show exception traceback if True
        exit_code: Exit code to use
        console: Console for output (default: stderr)
    """
    console = console or err_console
    console.print(f"[red]Error:[/red] {escape(str(e))}")
    cause = e.__cause__
    while cause is not None:
        console.print(f"  [dim]caused by:[/dim] {escape(str(cause) or type(cause).__name__)}")
        cause = cause.__cause__
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    """Print success message with consistent formatting.

    Args:
        console: Rich console for output
        message: Success message
        prefix: Prefix symbol (default: ✓)
    """
    console.print(f"[green]{prefix}[/green] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    """Print warning message with consistent formatting."""
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    """Print info message with consistent formatting."""
    console.print(f"[cyan]{prefix}[/cyan] {message}")
