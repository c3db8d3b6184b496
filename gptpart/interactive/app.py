"""Prompt-driven event loop for the interactive session."""
from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt

from gptpart.core.actions import DEFAULT_PARTITION_TYPE
from gptpart.core.logger import get_logger
from gptpart.core.snapshot import SnapshotFormat
from gptpart.interactive.state import (
    Back,
    ChooseDumpFormat,
    ConfirmCreate,
    CreateConfirmation,
    DeviceListScreen,
    Dismiss,
    DumpTargetEntry,
    ErrorDialog,
    ErrorRecovery,
    Event,
    Machine,
    PartitionListScreen,
    QuitSession,
    RequestCreate,
    RequestDump,
    SelectPartition,
    SubmitAdd,
    SubmitDevice,
    SubmitDump,
    open_device_session,
    start_session,
    transition,
)
from gptpart.interactive.views import render
from gptpart.models.device import DeviceDescriptor, parse_size
from gptpart.table.gpt import parse_partition_type

logger = get_logger(__name__)

PARTITION_HELP = "number select, a add, d dump, b back, q quit"


def run_session(devices: Iterable[DeviceDescriptor], console: Optional[Console] = None) -> Machine:
    """Run a session starting at the device list."""
    return run(start_session(devices), console)


def run_session_for_device(device: DeviceDescriptor, console: Optional[Console] = None) -> Machine:
    """Run a session opened directly on ``device``."""
    return run(open_device_session(device), console)


def run(machine: Machine, console: Optional[Console] = None) -> Machine:
    """Render, prompt and transition until the session finishes."""
    console = console or Console()

    while not machine.finished:
        console.print(render(machine))
        try:
            event = read_event(machine, console)
        except (EOFError, KeyboardInterrupt):
            console.print()
            event = QuitSession()
        if event is None:
            continue
        machine = transition(machine, event)
    return machine


def read_event(machine: Machine, console: Console) -> Optional[Event]:
    """Ask the user for the next action; None re-renders without a change."""
    modal = machine.modal
    if isinstance(modal, ErrorRecovery):
        choice = Prompt.ask("Create a new table?", choices=["n", "c"], default="c", console=console)
        return RequestCreate() if choice == "n" else Dismiss()

    if isinstance(modal, CreateConfirmation):
        if Confirm.ask("Create new GPT?", default=False, console=console):
            return ConfirmCreate()
        return Dismiss()

    if isinstance(modal, DumpTargetEntry):
        if modal.format is None:
            choices = [fmt.value for fmt in SnapshotFormat] + ["cancel"]
            choice = Prompt.ask("Format", choices=choices, default="json", console=console)
            if choice == "cancel":
                return Dismiss()
            return ChooseDumpFormat(SnapshotFormat(choice))
        path = Prompt.ask("Path (empty to cancel)", default="", console=console).strip()
        return SubmitDump(path) if path else Dismiss()

    if isinstance(modal, ErrorDialog):
        Prompt.ask("Press Enter to continue", default="", show_default=False, console=console)
        return Dismiss()

    screen = machine.screen
    if isinstance(screen, DeviceListScreen):
        return _read_device_choice(screen, console)
    if isinstance(screen, PartitionListScreen):
        return _read_partition_command(console)
    return QuitSession()


def _read_device_choice(screen: DeviceListScreen, console: Console) -> Optional[Event]:
    answer = Prompt.ask("Disk number, or q to quit", console=console).strip().lower()
    if answer in ("q", "quit"):
        return QuitSession()
    if answer.isdigit() and 1 <= int(answer) <= len(screen.devices):
        return SubmitDevice(screen.devices[int(answer) - 1])
    console.print(f"[red]No disk numbered {escape(repr(answer))}[/red]")
    return None


def _read_partition_command(console: Console) -> Optional[Event]:
    answer = Prompt.ask(PARTITION_HELP, console=console).strip().lower()
    if answer.isdigit():
        return SelectPartition(int(answer) - 1)
    if answer in ("a", "add"):
        return _read_new_partition(console)
    if answer in ("d", "dump"):
        return RequestDump()
    if answer in ("b", "back"):
        return Back()
    if answer in ("q", "quit"):
        return QuitSession()
    console.print(f"[red]Unknown command {escape(repr(answer))}[/red]")
    return None


def _read_new_partition(console: Console) -> Optional[Event]:
    """Prompt for the fields of a new partition at the free-space preview."""
    name = Prompt.ask("Name", default="", console=console)

    raw_size = Prompt.ask("Size (empty for all free space)", default="", console=console).strip()
    size = None
    if raw_size:
        try:
            size = parse_size(raw_size)
        except ValueError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            return None

    raw_type = Prompt.ask("Type", default="linux_filesystem", console=console)
    try:
        type_id = parse_partition_type(raw_type) if raw_type else DEFAULT_PARTITION_TYPE
    except ValueError:
        console.print(f"[red]Unknown partition type {escape(repr(raw_type))}[/red]")
        return None

    logger.debug(f"Interactive add: name={name!r} size={size} type={type_id}")
    return SubmitAdd(name=name, type_id=type_id, size=size)
