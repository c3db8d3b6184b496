"""Tests for the interactive session state machine."""
from pathlib import Path

import pytest

from gptpart.core import actions
from gptpart.core.config import MIB
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
    FreeSpacePreview,
    FreeSpaceRow,
    PartitionListScreen,
    QuitSession,
    Real,
    RequestCreate,
    RequestDump,
    SelectPartition,
    SubmitAdd,
    SubmitDevice,
    SubmitDump,
    open_device_session,
    partition_rows,
    start_session,
    transition,
)
from gptpart.models.device import DeviceDescriptor
from gptpart.models.partition import PlacementHint
from gptpart.table.gpt import PartitionType

BS = 512


def run(machine, *events):
    for event in events:
        machine = transition(machine, event)
    return machine


@pytest.fixture
def populated_device(gpt_device):
    """Image with two adjacent partitions: [1M, 2M) and [2M, 3M)."""
    table = actions.read_table(gpt_device)
    actions.add_partition(table, gpt_device, PlacementHint.from_options(size=MIB), name="one")
    actions.add_partition(table, gpt_device, PlacementHint.from_options(size=MIB), name="two")
    actions.write_table(table, gpt_device)
    return gpt_device


class TestDeviceList:
    """Opening devices from the device list."""

    def test_initial_state(self, device):
        machine = start_session([device])
        assert machine.screen == DeviceListScreen((device,))
        assert machine.modal is None
        assert not machine.finished

    def test_opens_partition_list(self, populated_device):
        machine = run(start_session([populated_device]), SubmitDevice(populated_device))

        screen = machine.screen
        assert isinstance(screen, PartitionListScreen)
        assert screen.parent == DeviceListScreen((populated_device,))
        assert screen.selected == 0

    def test_blank_device_offers_recovery(self, device):
        machine = run(start_session([device]), SubmitDevice(device))

        assert isinstance(machine.modal, ErrorRecovery)
        assert machine.modal.quit_on_dismiss is False
        assert isinstance(machine.screen, DeviceListScreen)

    def test_dismiss_recovery_returns_to_device_list(self, device):
        machine = run(start_session([device]), SubmitDevice(device), Dismiss())

        assert machine.modal is None
        assert isinstance(machine.screen, DeviceListScreen)
        assert not machine.finished

    def test_unreadable_device_shows_error_dialog(self, tmp_path):
        missing = DeviceDescriptor(tmp_path / "gone.img", BS, 100 * MIB, "", "gone.img")
        machine = run(start_session([missing]), SubmitDevice(missing))

        assert isinstance(machine.modal, ErrorDialog)
        assert "gone.img" in machine.modal.message

        machine = transition(machine, Dismiss())
        assert isinstance(machine.screen, DeviceListScreen)
        assert not machine.finished

    def test_back_quits(self, device):
        assert run(start_session([device]), Back()).finished


class TestDirectDevice:
    """Sessions opened straight on a device."""

    def test_dismiss_recovery_quits(self, device):
        machine = open_device_session(device)
        assert isinstance(machine.modal, ErrorRecovery)
        assert machine.modal.quit_on_dismiss is True
        assert machine.screen is None

        assert transition(machine, Dismiss()).finished

    def test_back_quits(self, populated_device):
        machine = open_device_session(populated_device)
        assert machine.screen.parent is None
        assert transition(machine, Back()).finished


class TestCreateTable:
    """Recovering from a missing table."""

    def test_confirmation_dismiss_returns_to_recovery(self, device):
        machine = run(open_device_session(device), RequestCreate())
        assert isinstance(machine.modal, CreateConfirmation)

        machine = transition(machine, Dismiss())
        assert isinstance(machine.modal, ErrorRecovery)

    def test_confirm_creates_table(self, device):
        machine = run(start_session([device]), SubmitDevice(device), RequestCreate(), ConfirmCreate())

        assert machine.modal is None
        assert isinstance(machine.screen, PartitionListScreen)
        assert machine.screen.parent == DeviceListScreen((device,))
        assert actions.read_table(device) == machine.session.current_table

    def test_empty_table_selects_free_space(self, device):
        machine = run(open_device_session(device), RequestCreate(), ConfirmCreate())

        assert machine.screen.selected == 0
        preview = machine.screen.detail
        assert isinstance(preview, FreeSpacePreview)
        assert preview.start == MIB
        assert preview.end == machine.session.current_table.last_usable_offset


class TestPartitionList:
    """Selecting rows and the free-space preview."""

    def test_rows_end_with_free_space(self, populated_device):
        table = actions.read_table(populated_device)
        rows = partition_rows(table)
        assert [type(r) for r in rows] == [Real, Real, FreeSpaceRow]

    def test_first_row_selected_on_entry(self, populated_device):
        machine = open_device_session(populated_device)
        first = machine.session.current_table.partitions[0]

        assert machine.screen.detail == Real(first)
        assert machine.session.last_selected_record == first

    def test_select_real_row_updates_last_selected(self, populated_device):
        machine = run(open_device_session(populated_device), SelectPartition(1))
        second = machine.session.current_table.partitions[1]

        assert machine.session.last_selected_record == second
        assert machine.screen.detail == Real(second)

    def test_free_space_preview_follows_last_selected(self, populated_device):
        machine = run(open_device_session(populated_device), SelectPartition(1), SelectPartition(2))
        second = machine.session.current_table.partitions[1]

        preview = machine.screen.detail
        assert isinstance(preview, FreeSpacePreview)
        assert preview.start == second.end_offset + BS
        assert preview.end == machine.session.current_table.last_usable_offset
        assert preview.size == preview.end - preview.start + BS
        # Selecting free space keeps the last real selection
        assert machine.session.last_selected_record == second

    def test_preview_is_not_inserted(self, populated_device):
        machine = run(open_device_session(populated_device), SelectPartition(2))
        assert len(machine.session.current_table.partitions) == 2
        assert len(actions.read_table(populated_device).partitions) == 2

    def test_preview_after_first_has_no_room(self, populated_device):
        machine = run(open_device_session(populated_device), SelectPartition(0), SelectPartition(2))
        assert machine.screen.detail.size == 0

    def test_selection_is_clamped(self, populated_device):
        machine = run(open_device_session(populated_device), SelectPartition(99))
        assert machine.screen.selected == 2

    def test_back_returns_to_device_list(self, populated_device):
        machine = run(start_session([populated_device]), SubmitDevice(populated_device), Back())
        assert machine.screen == DeviceListScreen((populated_device,))
        assert machine.session.current_table is None

    def test_irrelevant_events_are_ignored(self, populated_device):
        machine = open_device_session(populated_device)
        assert transition(machine, ConfirmCreate()) == machine

    def test_quit_from_modal(self, populated_device):
        machine = run(open_device_session(populated_device), RequestDump(), QuitSession())
        assert machine.finished


class TestAddPartition:
    """Submitting a new partition at the preview."""

    def test_add_after_last_partition(self, populated_device):
        machine = run(
            open_device_session(populated_device),
            SelectPartition(1),
            SelectPartition(2),
            SubmitAdd(name="three", size=4 * MIB, type_id=PartitionType.LINUX_SWAP.value),
        )

        table = machine.session.current_table
        assert machine.modal is None
        assert len(table.partitions) == 3
        added = table.partitions[2]
        assert added.name == "three"
        assert added.start_offset == 3 * MIB
        assert added.size(BS) == 4 * MIB
        assert added.type_id == PartitionType.LINUX_SWAP.value

        assert machine.screen.selected == 2
        assert machine.session.last_selected_record == added
        assert actions.read_table(populated_device) == table

    def test_failed_add_keeps_table(self, populated_device):
        # Preview after the first partition starts inside the second
        machine = run(open_device_session(populated_device), SelectPartition(0), SelectPartition(2))
        before = machine.session.current_table

        machine = transition(machine, SubmitAdd(size=MIB))

        assert isinstance(machine.modal, ErrorDialog)
        assert machine.session.current_table == before
        assert len(machine.session.current_table.partitions) == 2
        assert len(actions.read_table(populated_device).partitions) == 2

        machine = transition(machine, Dismiss())
        assert machine.modal is None
        assert isinstance(machine.screen, PartitionListScreen)
        assert not machine.finished


class TestDump:
    """Dumping from the partition list."""

    def test_format_then_path(self, populated_device, tmp_path):
        target = tmp_path / "layout.yaml"
        machine = run(open_device_session(populated_device), RequestDump())
        assert machine.modal == DumpTargetEntry()

        machine = transition(machine, ChooseDumpFormat(SnapshotFormat.YAML))
        assert machine.modal == DumpTargetEntry(format=SnapshotFormat.YAML)

        machine = transition(machine, SubmitDump(str(target)))
        assert machine.modal is None
        assert str(target) in machine.status

        restored = actions.restore_table(target.read_text(), SnapshotFormat.YAML)
        assert restored == machine.session.current_table

    def test_path_requires_format(self, populated_device, tmp_path):
        machine = run(open_device_session(populated_device), RequestDump())
        assert transition(machine, SubmitDump(str(tmp_path / "x.json"))) == machine

    def test_write_failure_keeps_partition_list(self, populated_device, tmp_path):
        machine = run(open_device_session(populated_device), SelectPartition(1))
        selected = machine.screen

        machine = run(
            machine,
            RequestDump(),
            ChooseDumpFormat(SnapshotFormat.JSON),
            SubmitDump(str(tmp_path / "missing" / "layout.json")),
        )
        assert isinstance(machine.modal, ErrorDialog)

        machine = transition(machine, Dismiss())
        assert machine.screen == selected
        assert not Path(tmp_path / "missing").exists()

    def test_cancel(self, populated_device):
        machine = run(open_device_session(populated_device), RequestDump(), Dismiss())
        assert machine.modal is None
