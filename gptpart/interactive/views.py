"""Rich renderables for the interactive session."""
from typing import List

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gptpart.interactive.state import (
    CreateConfirmation,
    DeviceListScreen,
    DumpTargetEntry,
    ErrorDialog,
    ErrorRecovery,
    FreeSpacePreview,
    Machine,
    PartitionListScreen,
    Real,
    partition_rows,
)
from gptpart.models.device import format_size
from gptpart.table.gpt import describe_partition_type

CAPACITY_WARNING = "If Disk Capacity is incorrect DO NOT continue"


def render_device_list(screen: DeviceListScreen) -> RenderableType:
    table = Table(title="Select Disk", show_header=True, header_style="bold cyan")
    table.add_column("#", style="bold", justify="right")
    table.add_column("Disk", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Model", style="dim")

    for index, device in enumerate(screen.devices, start=1):
        table.add_row(
            str(index), Text(device.display_name), device.size_human, Text(device.model or "None")
        )

    parts: List[RenderableType] = [table, Text(CAPACITY_WARNING, style="bold yellow")]
    if not screen.devices:
        parts.insert(0, Text("No disks found", style="yellow"))
    return Group(*parts)


def render_partition_list(screen: PartitionListScreen, machine: Machine) -> RenderableType:
    gpt = machine.session.current_table
    bs = gpt.block_size

    table = Table(
        title=Text(f"{screen.device.label} - GPT {gpt.table_id}"),
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Start", justify="right")
    table.add_column("Size", justify="right")

    for index, row in enumerate(partition_rows(gpt)):
        style = "reverse" if index == screen.selected else ""
        if isinstance(row, Real):
            record = row.record
            table.add_row(
                str(index + 1),
                Text(record.name or "(unnamed)"),
                str(record.start_offset),
                format_size(record.size(bs)),
                style=style,
            )
        else:
            table.add_row(str(index + 1), row.label, "", format_size(gpt.free_space()),
                          style=f"green {style}".strip())

    return Group(table, render_detail(machine, screen))


def render_detail(machine: Machine, screen: PartitionListScreen) -> RenderableType:
    """Info panel for the selected row."""
    bs = machine.session.current_table.block_size
    detail = screen.detail

    if isinstance(detail, Real):
        record = detail.record
        lines = [
            f"Name:  {record.name or '(unnamed)'}",
            f"Start: {record.start_offset}",
            f"End:   {record.end_offset}",
            f"Size:  {format_size(record.size(bs))}",
            f"UUID:  {record.unique_id}",
            f"Type:  {describe_partition_type(record.type_id)}",
        ]
        return Panel(Text("\n".join(lines)), title="Partition", border_style="cyan")

    if isinstance(detail, FreeSpacePreview):
        if detail.size == 0:
            body = "No free space after the selected partition"
        else:
            body = "\n".join([
                f"Start: {detail.start}",
                f"End:   {detail.end}",
                f"Size:  {format_size(detail.size)}",
            ])
        return Panel(body, title="New Partition", border_style="green")

    return Text("")


def render_modal(machine: Machine) -> RenderableType:
    modal = machine.modal

    if isinstance(modal, ErrorRecovery):
        body = Text(f"{modal.message}\n\n")
        body.append("n", style="bold")
        body.append(" create new GPT   ")
        body.append("c", style="bold")
        body.append(" cancel")
        return Panel(body, title="Error", border_style="red")
    if isinstance(modal, CreateConfirmation):
        return Panel(
            Text(f"Create a new GPT on {modal.recovery.device.path}?\n"
                 "This will overwrite any existing content on the disk."),
            title="New Gpt", border_style="yellow",
        )
    if isinstance(modal, DumpTargetEntry):
        if modal.format is None:
            return Panel("Choose a dump format", title="Dump", border_style="blue")
        return Panel(f"Enter a file path for the {modal.format.value} dump",
                     title="Dump", border_style="blue")
    if isinstance(modal, ErrorDialog):
        return Panel(Text(modal.message), title="Error", border_style="red")
    return Text("")


def render(machine: Machine) -> RenderableType:
    """Full frame: current screen, status line and any open modal."""
    parts: List[RenderableType] = []

    screen = machine.screen
    if isinstance(screen, DeviceListScreen):
        parts.append(render_device_list(screen))
    elif isinstance(screen, PartitionListScreen):
        parts.append(render_partition_list(screen, machine))

    if machine.status:
        parts.append(Text(machine.status, style="green"))
    if machine.modal is not None:
        parts.append(render_modal(machine))
    return Group(*parts)
