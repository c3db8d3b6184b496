"""Partition table CLI commands - create, add-partition, dump, restore, show."""
from typing import Optional
from uuid import UUID

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gptpart.cli_support import (
    global_block_size,
    handle_cli_error,
    is_verbose,
    print_info,
    print_success,
    print_warning,
    resolve_device,
    size_option,
)
from gptpart.core import actions
from gptpart.core.config import get_config
from gptpart.core.errors import GptPartError
from gptpart.core.lock import device_lock
from gptpart.core.snapshot import SnapshotFormat, SnapshotVersion
from gptpart.discovery.devices import AUTO_DEVICE
from gptpart.models.device import format_size
from gptpart.models.partition import PlacementHint
from gptpart.table.gpt import describe_partition_type, parse_partition_type

# Module-level console instance (will be set by register function)
console: Console = Console()

DEVICE_HELP = "Path to device or image file, or 'auto' for the first disk"


def _partition_type(value: str) -> UUID:
    try:
        return parse_partition_type(value)
    except ValueError:
        raise typer.BadParameter(
            f"{value!r} is neither a partition type UUID nor a known type name"
        )


def _snapshot_format(value: Optional[SnapshotFormat]) -> SnapshotFormat:
    if value is not None:
        return value
    try:
        return SnapshotFormat(get_config().default_format)
    except ValueError:
        raise typer.BadParameter(
            f"GPTPART_DEFAULT_FORMAT={get_config().default_format!r} is not a snapshot format"
        )


def create(
    ctx: typer.Context,
    device: str = typer.Argument(AUTO_DEVICE, help=DEVICE_HELP),
    uuid: Optional[UUID] = typer.Option(
        None, "--uuid", help="Use this table UUID instead of generating one. GPT UUIDs must be unique."
    ),
):
    """Create a new GPT label.

    WARNING: This IMMEDIATELY overwrites any existing GPT on the device.
    """
    try:
        target = resolve_device(device, global_block_size(ctx))
        with device_lock(target.path):
            table = actions.create_table(target, table_id=uuid)
    except GptPartError as e:
        handle_cli_error(e, is_verbose(ctx))

    print_success(console, f"Created GPT {table.table_id} on {escape(str(target.path))}")


def add_partition(
    ctx: typer.Context,
    device: str = typer.Argument(AUTO_DEVICE, help=DEVICE_HELP),
    start: Optional[int] = typer.Option(
        None, "--start",
        help="Partition start, in bytes. Defaults to one block after the last partition, or 1 MiB.",
    ),
    end: Optional[int] = typer.Option(
        None, "--end",
        help="Partition end, in bytes. Inclusive, rounded to its block. Defaults to the remaining space.",
    ),
    size: Optional[str] = typer.Option(
        None, "--size", callback=size_option,
        help="Partition size; K, M, G and T suffixes are binary (the iB is optional). Rounded up to whole blocks.",
    ),
    partition_type: str = typer.Option(
        str(actions.DEFAULT_PARTITION_TYPE).upper(), "--partition-type", "-p",
        help="Partition type UUID or name (e.g. linux_swap). Defaults to Linux filesystem data.",
    ),
    uuid: Optional[UUID] = typer.Option(
        None, "--uuid", help="Use this partition UUID instead of generating one."
    ),
    name: str = typer.Option("", "--name", "-n", help="Partition name (at most 36 characters)"),
):
    """Add a partition to the GPT."""
    type_id = _partition_type(partition_type)
    try:
        hint = PlacementHint.from_options(start=start, end=end, size=size)
        target = resolve_device(device, global_block_size(ctx))
        with device_lock(target.path):
            table = actions.read_table(target)
            actions.add_partition(
                table, target, hint, partition_id=uuid, type_id=type_id, name=name
            )
            actions.write_table(table, target)
    except GptPartError as e:
        handle_cli_error(e, is_verbose(ctx))

    record = table.partitions[-1]
    print_success(
        console,
        f"Added partition {record.unique_id}: start {record.start_offset}, "
        f"end {record.end_offset}, {format_size(record.size(table.block_size))}",
    )


def dump(
    ctx: typer.Context,
    device: str = typer.Argument(AUTO_DEVICE, help=DEVICE_HELP),
    fmt: Optional[SnapshotFormat] = typer.Option(
        None, "--format", "-f", case_sensitive=False, help="Output format (default: json)"
    ),
    version: SnapshotVersion = typer.Option(
        SnapshotVersion.V1, "--version", case_sensitive=False, help="Snapshot version to write"
    ),
):
    """Dump the GPT label to stdout."""
    fmt = _snapshot_format(fmt)
    try:
        target = resolve_device(device, global_block_size(ctx))
        table = actions.read_table(target)
        text = actions.dump_table(table, target, fmt, version)
    except GptPartError as e:
        handle_cli_error(e, is_verbose(ctx))

    # Plain echo: the document must reach stdout byte for byte
    typer.echo(text, nl=False)


def restore(
    ctx: typer.Context,
    device: str = typer.Argument(AUTO_DEVICE, help=DEVICE_HELP),
    fmt: Optional[SnapshotFormat] = typer.Option(
        None, "--format", "-f", case_sensitive=False, help="Format of the dump (default: json)"
    ),
    override_block: bool = typer.Option(
        False, "--override-block", "-o",
        help="Let --block replace the block size recorded in the dump. Requires --block.",
    ),
):
    """Restore a GPT label to DEVICE from a dump read on stdin."""
    fmt = _snapshot_format(fmt)
    block = global_block_size(ctx)
    if override_block and block is None:
        raise typer.BadParameter("--override-block requires --block", param_hint="'--override-block'")

    text = typer.get_text_stream("stdin").read()
    try:
        table = actions.restore_table(
            text, fmt, override_block_size=block if override_block else None
        )
        target = resolve_device(device, block)
        recorded_size = table.total_size
        table = actions.fit_to_device(table, target)
        if recorded_size != target.total_size:
            print_warning(
                console,
                f"Dump was taken from a {format_size(recorded_size)} device, "
                f"{escape(str(target.path))} is {target.size_human}",
            )
        with device_lock(target.path):
            actions.write_table(table, target)
    except GptPartError as e:
        handle_cli_error(e, is_verbose(ctx))

    print_success(
        console,
        f"Restored GPT {table.table_id} with {len(table.partitions)} partition(s) "
        f"to {escape(str(target.path))}",
    )


def show(
    ctx: typer.Context,
    device: str = typer.Argument(AUTO_DEVICE, help=DEVICE_HELP),
):
    """List the partitions on DEVICE."""
    try:
        target = resolve_device(device, global_block_size(ctx))
        gpt = actions.read_table(target)
    except GptPartError as e:
        handle_cli_error(e, is_verbose(ctx))

    bs = gpt.block_size
    table = Table(title=f"GPT {gpt.table_id}", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Size", justify="right", style="green")
    table.add_column("Type", style="cyan")
    table.add_column("UUID", style="dim")

    for index, record in enumerate(gpt.partitions, start=1):
        table.add_row(
            str(index),
            escape(record.name),
            str(record.start_offset),
            str(record.end_offset),
            format_size(record.size(bs)),
            describe_partition_type(record.type_id),
            str(record.unique_id),
        )

    console.print(escape(target.label))
    if gpt.partitions:
        console.print(table)
    else:
        print_info(console, "No partitions")
    console.print(f"[dim]Free: {format_size(gpt.free_space())}, block size {bs}[/dim]")


def register_table_commands(app: typer.Typer, shared_console: Console):
    """Register partition table commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(create)
    app.command("add-partition")(add_partition)
    app.command("add", hidden=True)(add_partition)
    app.command()(dump)
    app.command()(restore)
    app.command()(show)
