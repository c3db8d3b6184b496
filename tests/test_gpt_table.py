"""Tests for GPT encoding, decoding and validation."""
import io
from uuid import UUID, uuid4

import pytest

from gptpart.core.config import MIB
from gptpart.models.partition import PartitionRecord
from gptpart.table.gpt import (
    DuplicatePartitionError,
    GptParseError,
    GptTable,
    PartitionAlignmentError,
    PartitionBoundsError,
    PartitionOverlapError,
    PartitionType,
    TableValidationError,
    describe_partition_type,
    parse_partition_type,
)

BS = 512
SIZE = 8 * MIB
LINUX = PartitionType.LINUX_FILESYSTEM.value


def record(start, end, name="", type_id=LINUX, unique_id=None):
    return PartitionRecord(unique_id or uuid4(), name, type_id, start, end)


@pytest.fixture
def table():
    return GptTable(UUID('11111111-2222-3333-4444-555555555555'), SIZE, BS)


def write(table):
    buf = io.BytesIO(bytes(table.total_size))
    table.to_writer(buf)
    return buf


class TestGeometry:
    """Usable area and free space."""

    def test_usable_area_512(self, table):
        # MBR, header and 32 blocks of entries at the front; entries and header at the back
        assert table.first_usable_offset == 34 * BS
        assert table.last_usable_offset == (SIZE // BS - 34) * BS

    def test_usable_area_4096(self):
        table = GptTable(uuid4(), SIZE, 4096)
        assert table.first_usable_offset == 6 * 4096

    def test_invalid_block_size(self):
        with pytest.raises(TableValidationError, match="power of two"):
            GptTable(uuid4(), SIZE, 1000)

    def test_device_too_small(self):
        with pytest.raises(TableValidationError, match="too small"):
            GptTable(uuid4(), 16 * BS, BS)

    def test_remaining(self, table):
        table.add_partition(record(2 * MIB, 3 * MIB - BS))
        assert table.remaining(MIB) == MIB
        assert table.remaining(2 * MIB + BS) == 0
        assert table.remaining(0) == 0
        assert table.remaining(3 * MIB) == table.last_usable_offset + BS - 3 * MIB

    def test_free_space(self, table):
        before = table.free_space()
        table.add_partition(record(MIB, 2 * MIB - BS))
        assert table.free_space() == before - MIB


class TestValidation:
    """Validated insertion."""

    def test_add_keeps_insertion_order(self, table):
        second = record(3 * MIB, 4 * MIB - BS)
        first = record(MIB, 2 * MIB - BS)
        table.add_partition(second)
        table.add_partition(first)
        assert table.partitions == (second, first)

    def test_overlap(self, table):
        table.add_partition(record(MIB, 2 * MIB - BS))
        with pytest.raises(PartitionOverlapError):
            table.add_partition(record(2 * MIB - BS, 3 * MIB))

    def test_adjacent_partitions_allowed(self, table):
        table.add_partition(record(MIB, 2 * MIB - BS))
        table.add_partition(record(2 * MIB, 3 * MIB - BS))
        assert len(table.partitions) == 2

    def test_before_first_usable(self, table):
        with pytest.raises(PartitionBoundsError):
            table.add_partition(record(0, MIB))

    def test_past_last_usable(self, table):
        with pytest.raises(PartitionBoundsError):
            table.add_partition(record(MIB, table.last_usable_offset + BS))

    def test_start_after_end(self, table):
        with pytest.raises(PartitionBoundsError):
            table.add_partition(record(2 * MIB, MIB))

    def test_misaligned(self, table):
        with pytest.raises(PartitionAlignmentError):
            table.add_partition(record(MIB + 1, 2 * MIB))

    def test_duplicate_id(self, table):
        part = record(MIB, 2 * MIB - BS)
        table.add_partition(part)
        with pytest.raises(DuplicatePartitionError):
            table.add_partition(record(3 * MIB, 4 * MIB - BS, unique_id=part.unique_id))

    def test_name_too_long(self, table):
        with pytest.raises(TableValidationError, match="36"):
            table.add_partition(record(MIB, 2 * MIB - BS, name="x" * 37))

    def test_nil_type(self, table):
        with pytest.raises(TableValidationError, match="nil"):
            table.add_partition(record(MIB, 2 * MIB - BS, type_id=PartitionType.UNUSED.value))

    def test_rejected_partition_leaves_table_unchanged(self, table):
        table.add_partition(record(MIB, 2 * MIB - BS))
        with pytest.raises(PartitionOverlapError):
            table.add_partition(record(MIB, 2 * MIB - BS))
        assert len(table.partitions) == 1


class TestSerialization:
    """Reading and writing the on-disk format."""

    def test_round_trip(self, table):
        table.add_partition(record(MIB, 2 * MIB - BS, name="boot",
                                   type_id=PartitionType.EFI_SYSTEM.value))
        table.add_partition(record(2 * MIB, 6 * MIB - BS, name="root"))

        parsed = GptTable.from_reader(write(table), BS, SIZE)

        assert parsed == table
        assert [p.name for p in parsed.partitions] == ["boot", "root"]

    def test_round_trip_4096(self):
        table = GptTable(uuid4(), SIZE, 4096)
        table.add_partition(record(MIB, 2 * MIB - 4096))
        assert GptTable.from_reader(write(table), 4096, SIZE) == table

    def test_protective_mbr(self, table):
        data = write(table).getvalue()
        assert data[510:512] == b'\x55\xaa'
        assert data[446 + 4] == 0xEE
        assert data[BS:BS + 8] == b'EFI PART'

    def test_blank_device(self):
        with pytest.raises(GptParseError, match="No valid GPT"):
            GptTable.from_reader(io.BytesIO(bytes(SIZE)), BS, SIZE)

    def test_falls_back_to_backup_header(self, table):
        table.add_partition(record(MIB, 2 * MIB - BS, name="data"))
        buf = write(table)
        buf.seek(BS)
        buf.write(b'\x00' * BS)

        parsed = GptTable.from_reader(buf, BS, SIZE)
        assert parsed == table

    def test_both_headers_corrupt(self, table):
        buf = write(table)
        for lba in (1, SIZE // BS - 1):
            buf.seek(lba * BS)
            buf.write(b'\x00' * 8)
        with pytest.raises(GptParseError):
            GptTable.from_reader(buf, BS, SIZE)

    def test_corrupt_entry_array(self, table):
        table.add_partition(record(MIB, 2 * MIB - BS))
        buf = write(table)
        # Damage both copies of the first entry
        for offset in (2 * BS, SIZE - 33 * BS):
            buf.seek(offset + 40)
            buf.write(b'\xff')
        with pytest.raises(GptParseError, match="CRC32"):
            GptTable.from_reader(buf, BS, SIZE)

    def test_tiny_source(self):
        with pytest.raises(GptParseError, match="too small"):
            GptTable.from_reader(io.BytesIO(bytes(BS)), BS, BS)


class TestPartitionTypes:
    """Partition type names."""

    @pytest.mark.parametrize("value", ["linux_swap", "Linux Swap", "LINUX-SWAP"])
    def test_names(self, value):
        assert parse_partition_type(value) == PartitionType.LINUX_SWAP.value

    def test_uuid_string(self):
        assert parse_partition_type("0fc63daf-8483-4772-8e79-3d69d8477de4") == LINUX

    def test_unknown(self):
        with pytest.raises(ValueError):
            parse_partition_type("not-a-type")

    def test_describe(self):
        assert describe_partition_type(LINUX) == "Linux Filesystem"
        custom = UUID('12345678-1234-1234-1234-123456789abc')
        assert describe_partition_type(custom) == str(custom).upper()
