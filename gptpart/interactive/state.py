"""Interactive session state machine.

Every screen, modal dialog and user action is a plain value. ``transition``
is the only place state changes: it takes the current ``Machine`` and one
event and returns the next ``Machine``. Device I/O goes through
``gptpart.core.actions``; nothing here reads or writes the on-disk format.

Screens:
    DeviceListScreen -> PartitionListScreen

Modals (drawn over the current screen):
    ErrorRecovery -> CreateConfirmation   (no valid GPT on the device)
    DumpTargetEntry                       (format step, then path step)
    ErrorDialog                           (dismissible failure)
"""
import copy
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, Union
from uuid import UUID

from gptpart.core import actions
from gptpart.core.config import get_config
from gptpart.core.errors import GptPartError
from gptpart.core.logger import get_logger
from gptpart.core.placement import normalize, resolve
from gptpart.core.snapshot import SnapshotFormat
from gptpart.models.device import DeviceDescriptor
from gptpart.models.partition import PartitionRecord, PlacementHint, RelativeSize
from gptpart.table.gpt import GptParseError, GptTable

logger = get_logger(__name__)


# -----------------------------
#  Session data
# -----------------------------
@dataclass(frozen=True)
class SessionState:
    """Data shared by the partition list callbacks.

    ``last_selected_record`` only ever holds a real partition; selecting the
    free-space row leaves it untouched so the preview can be placed after it.
    """
    current_table: Optional[GptTable] = None
    last_selected_record: Optional[PartitionRecord] = None


@dataclass(frozen=True)
class Real:
    """A row or selection backed by a partition in the table."""
    record: PartitionRecord


@dataclass(frozen=True)
class FreeSpaceRow:
    """The synthetic row listed after the real partitions."""
    label: str = "Free Space"


@dataclass(frozen=True)
class FreeSpacePreview:
    """Where the next partition would go. Never stored in the table."""
    start: int
    end: int
    size: int


Row = Union[Real, FreeSpaceRow]
Selection = Union[Real, FreeSpacePreview]


# -----------------------------
#  Screens and modals
# -----------------------------
@dataclass(frozen=True)
class DeviceListScreen:
    devices: Tuple[DeviceDescriptor, ...]


@dataclass(frozen=True)
class PartitionListScreen:
    device: DeviceDescriptor
    selected: int = 0
    detail: Optional[Selection] = None
    # Screen to return to; None when the session was opened on this device
    parent: Optional[DeviceListScreen] = None


Screen = Union[DeviceListScreen, PartitionListScreen]


@dataclass(frozen=True)
class ErrorRecovery:
    """No valid table was found; offer to create one."""
    device: DeviceDescriptor
    message: str
    quit_on_dismiss: bool


@dataclass(frozen=True)
class CreateConfirmation:
    recovery: ErrorRecovery


@dataclass(frozen=True)
class DumpTargetEntry:
    """Dump flow; ``format`` is None until the user picks one."""
    format: Optional[SnapshotFormat] = None


@dataclass(frozen=True)
class ErrorDialog:
    message: str
    quit_on_dismiss: bool = False


Modal = Union[ErrorRecovery, CreateConfirmation, DumpTargetEntry, ErrorDialog]


@dataclass(frozen=True)
class Machine:
    """Complete interactive state. ``screen`` is None only while a modal is
    shown for a device that was opened directly.
    """
    screen: Optional[Screen]
    session: SessionState = field(default_factory=SessionState)
    modal: Optional[Modal] = None
    status: str = ""
    finished: bool = False


# -----------------------------
#  Events
# -----------------------------
@dataclass(frozen=True)
class SubmitDevice:
    device: DeviceDescriptor


@dataclass(frozen=True)
class SelectPartition:
    index: int


@dataclass(frozen=True)
class RequestCreate:
    pass


@dataclass(frozen=True)
class ConfirmCreate:
    pass


@dataclass(frozen=True)
class Dismiss:
    pass


@dataclass(frozen=True)
class RequestDump:
    pass


@dataclass(frozen=True)
class ChooseDumpFormat:
    format: SnapshotFormat


@dataclass(frozen=True)
class SubmitDump:
    path: str


@dataclass(frozen=True)
class SubmitAdd:
    """Add a partition at the free-space preview."""
    name: str = ""
    type_id: UUID = actions.DEFAULT_PARTITION_TYPE
    size: Optional[int] = None  # None = all remaining space


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class QuitSession:
    pass


Event = Union[
    SubmitDevice, SelectPartition, RequestCreate, ConfirmCreate, Dismiss,
    RequestDump, ChooseDumpFormat, SubmitDump, SubmitAdd, Back, QuitSession,
]


# -----------------------------
#  Derived data
# -----------------------------
def partition_rows(table: GptTable) -> Tuple[Row, ...]:
    """Visible rows: every partition, then the free-space row."""
    return tuple(Real(p) for p in table.partitions) + (FreeSpaceRow(),)


def free_space_preview(
    table: GptTable,
    last_selected: Optional[PartitionRecord],
    min_start: Optional[int] = None,
) -> FreeSpacePreview:
    """Preview placed one block after ``last_selected``, spanning the free
    space from there.
    """
    bs = table.block_size
    if last_selected is not None:
        start = last_selected.next_start(bs)
    else:
        start = get_config().min_start if min_start is None else min_start

    placement = normalize(resolve(table, PlacementHint(explicit_start=start)), bs)
    size = max(0, placement.end - placement.start + bs)
    return FreeSpacePreview(start=placement.start, end=placement.end, size=size)


# -----------------------------
#  Entry points
# -----------------------------
def start_session(devices) -> Machine:
    """Session starting at the device list."""
    return Machine(screen=DeviceListScreen(tuple(devices)))


def open_device_session(device: DeviceDescriptor) -> Machine:
    """Session opened directly on ``device``; dismissing errors quits."""
    return _open_device(Machine(screen=None), device, parent=None)


# -----------------------------
#  Transitions
# -----------------------------
def transition(machine: Machine, event: Event) -> Machine:
    """Apply ``event`` to ``machine``. Events that don't apply are ignored."""
    if machine.finished:
        return machine

    if isinstance(event, QuitSession):
        return replace(machine, finished=True)

    if machine.modal is not None:
        return _modal_transition(machine, event)

    screen = machine.screen
    if isinstance(screen, DeviceListScreen):
        if isinstance(event, SubmitDevice):
            return _open_device(machine, event.device, parent=screen)
        if isinstance(event, Back):
            return replace(machine, finished=True)

    elif isinstance(screen, PartitionListScreen):
        if isinstance(event, SelectPartition):
            return _select(replace(machine, status=""), event.index)
        if isinstance(event, SubmitAdd):
            return _add_partition(machine, screen, event)
        if isinstance(event, RequestDump):
            return replace(machine, modal=DumpTargetEntry(), status="")
        if isinstance(event, Back):
            if screen.parent is None:
                return replace(machine, finished=True)
            return Machine(screen=screen.parent)

    logger.debug(f"Ignoring {type(event).__name__} on {type(screen).__name__}")
    return machine


def _modal_transition(machine: Machine, event: Event) -> Machine:
    modal = machine.modal

    if isinstance(modal, ErrorRecovery):
        if isinstance(event, RequestCreate):
            return replace(machine, modal=CreateConfirmation(recovery=modal))
        if isinstance(event, Dismiss):
            if modal.quit_on_dismiss:
                return replace(machine, modal=None, finished=True)
            return replace(machine, modal=None)

    elif isinstance(modal, CreateConfirmation):
        if isinstance(event, ConfirmCreate):
            return _create_table(machine, modal.recovery)
        if isinstance(event, Dismiss):
            return replace(machine, modal=modal.recovery)

    elif isinstance(modal, DumpTargetEntry):
        if isinstance(event, ChooseDumpFormat):
            return replace(machine, modal=DumpTargetEntry(format=event.format))
        if isinstance(event, SubmitDump) and modal.format is not None:
            return _dump(machine, modal.format, event.path)
        if isinstance(event, Dismiss):
            return replace(machine, modal=None)

    elif isinstance(modal, ErrorDialog):
        if isinstance(event, Dismiss):
            if modal.quit_on_dismiss:
                return replace(machine, modal=None, finished=True)
            return replace(machine, modal=None)

    logger.debug(f"Ignoring {type(event).__name__} while {type(modal).__name__} is open")
    return machine


def _open_device(
    machine: Machine,
    device: DeviceDescriptor,
    parent: Optional[DeviceListScreen],
) -> Machine:
    try:
        table = actions.read_table(device)
    except GptParseError as e:
        return replace(machine, modal=ErrorRecovery(
            device=device,
            message=f"Couldn't read a GPT from {device.path}: {e}",
            quit_on_dismiss=parent is None,
        ))
    except GptPartError as e:
        return replace(machine, modal=ErrorDialog(str(e), quit_on_dismiss=parent is None))
    return _show_table(device, table, parent)


def _show_table(
    device: DeviceDescriptor,
    table: GptTable,
    parent: Optional[DeviceListScreen],
    selected: int = 0,
    status: str = "",
) -> Machine:
    machine = Machine(
        screen=PartitionListScreen(device=device, parent=parent),
        session=SessionState(current_table=table),
        status=status,
    )
    return _select(machine, selected)


def _select(machine: Machine, index: int) -> Machine:
    screen = machine.screen
    table = machine.session.current_table
    rows = partition_rows(table)
    index = max(0, min(index, len(rows) - 1))
    row = rows[index]

    session = machine.session
    if isinstance(row, Real):
        session = replace(session, last_selected_record=row.record)
        detail: Selection = row
    else:
        detail = free_space_preview(table, session.last_selected_record)

    return replace(
        machine,
        screen=replace(screen, selected=index, detail=detail),
        session=session,
    )


def _create_table(machine: Machine, recovery: ErrorRecovery) -> Machine:
    parent = machine.screen if isinstance(machine.screen, DeviceListScreen) else None
    try:
        table = actions.create_table(recovery.device)
    except GptPartError as e:
        return replace(machine, modal=ErrorDialog(
            f"Couldn't create a GPT on {recovery.device.path}: {e}",
            quit_on_dismiss=recovery.quit_on_dismiss,
        ))
    return _show_table(
        recovery.device, table, parent,
        status=f"Created GPT {table.table_id}",
    )


def _add_partition(machine: Machine, screen: PartitionListScreen, event: SubmitAdd) -> Machine:
    table = machine.session.current_table
    preview = free_space_preview(table, machine.session.last_selected_record)
    hint = PlacementHint(
        explicit_start=preview.start,
        end_spec=RelativeSize(event.size) if event.size else None,
    )

    # Work on a copy so a failed add or write leaves the list untouched
    draft = copy.deepcopy(table)
    try:
        actions.add_partition(draft, screen.device, hint, type_id=event.type_id, name=event.name)
        actions.write_table(draft, screen.device)
    except GptPartError as e:
        return replace(machine, modal=ErrorDialog(f"Couldn't add partition: {e}"))

    return _show_table(
        screen.device, draft, screen.parent,
        selected=len(draft.partitions) - 1,
        status=f"Added partition {draft.partitions[-1].unique_id}",
    )


def _dump(machine: Machine, fmt: SnapshotFormat, path: str) -> Machine:
    screen = machine.screen
    try:
        text = actions.dump_table(machine.session.current_table, screen.device, fmt)
        actions.write_dump(path, text)
    except GptPartError as e:
        return replace(machine, modal=ErrorDialog(str(e)))
    return replace(machine, modal=None, status=f"Dumped {fmt.value} to {path}")
