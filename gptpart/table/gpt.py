"""GUID partition table encoding, decoding and validated editing.

Offsets exposed by this module are always bytes. On disk the table works in
logical blocks (LBAs); conversion happens only when reading or writing.
"""
import struct
from enum import Enum
from typing import BinaryIO, Iterable, List, Optional, Tuple
from uuid import UUID
from zlib import crc32

from gptpart.core.errors import GptPartError
from gptpart.core.logger import get_logger
from gptpart.models.partition import PartitionRecord

logger = get_logger(__name__)

MIN_BLOCK_SIZE = 512

PRIMARY_HEADER_LBA = 1
SIGNATURE = b'EFI PART'
REVISION = 0x00010000  # 1.0
HEADER_SIZE = 92
HEADER_FORMAT = '<8sIIIIQQQQ16sQIII'

ENTRY_SIZE = 128
ENTRY_FORMAT = '<16s16sQQQ72s'
ENTRY_COUNT = 128
NAME_MAX_LEN = 36  # UTF-16LE code units

MBR_SIZE = 512
MBR_PROTECTIVE_TYPE = 0xEE
MBR_SIGNATURE = b'\x55\xaa'


class TableError(GptPartError):
    """Base class for partition table errors."""
    pass


class GptParseError(TableError):
    """Raised when no valid GPT can be read from a source."""
    pass


class TableValidationError(TableError):
    """Raised when a table or partition violates GPT constraints."""
    pass


class PartitionOverlapError(TableValidationError):
    """Raised when a partition would overlap an existing one."""
    pass


class PartitionBoundsError(TableValidationError):
    """Raised when a partition falls outside the usable area of the device."""
    pass


class PartitionAlignmentError(TableValidationError):
    """Raised when partition offsets are not multiples of the block size."""
    pass


class DuplicatePartitionError(TableValidationError):
    """Raised when a partition unique id is already present in the table."""
    pass


class PartitionType(Enum):
    """Common GPT partition types."""

    UNUSED = UUID('00000000-0000-0000-0000-000000000000')
    EFI_SYSTEM = UUID('C12A7328-F81F-11D2-BA4B-00A0C93EC93B')
    BIOS_BOOT = UUID('21686148-6449-6E6F-744E-656564454649')
    MICROSOFT_BASIC_DATA = UUID('EBD0A0A2-B9E5-4433-87C0-68B6B72699C7')
    MICROSOFT_RESERVED = UUID('E3C9E316-0B5C-4DB8-817D-F92DF00215AE')
    LINUX_FILESYSTEM = UUID('0FC63DAF-8483-4772-8E79-3D69D8477DE4')
    LINUX_ROOT_X86_64 = UUID('4F68BCE3-E8CD-4DB1-96E7-FBCAF984B709')
    LINUX_HOME = UUID('933AC7E1-2EB4-4F13-B844-0E14E2AEF915')
    LINUX_SWAP = UUID('0657FD6D-A4AB-43C4-84E5-0933C84B4F4F')
    LINUX_LVM = UUID('E6D6D379-F507-44C2-A23C-238F2A3DF928')
    LINUX_RAID = UUID('A19D880F-05FC-4D3B-A006-743F0F84911E')
    LINUX_LUKS = UUID('CA7D7CCB-63ED-4C53-861C-1742536059CC')


def parse_partition_type(value: str) -> UUID:
    """Parse a partition type given as a UUID or a known type name.

    Raises:
        ValueError: If ``value`` is neither
    """
    value = value.strip()
    key = value.upper().replace('-', '_').replace(' ', '_')
    if key in PartitionType.__members__:
        return PartitionType[key].value
    return UUID(value)


def describe_partition_type(type_id: UUID) -> str:
    """Known type name for ``type_id``, or the UUID itself."""
    try:
        return PartitionType(type_id).name.replace('_', ' ').title()
    except ValueError:
        return str(type_id).upper()


def _check_block_size(block_size: int) -> None:
    if block_size < MIN_BLOCK_SIZE or block_size & (block_size - 1):
        raise TableValidationError(
            f"GPT requires a power of two logical block size of at least "
            f"{MIN_BLOCK_SIZE} bytes, got {block_size}"
        )


def _array_blocks(block_size: int) -> int:
    """Blocks occupied by the partition entry array."""
    return (ENTRY_COUNT * ENTRY_SIZE - 1) // block_size + 1


def _encode_entry(record: PartitionRecord, block_size: int) -> bytes:
    return struct.pack(
        ENTRY_FORMAT,
        record.type_id.bytes_le,
        record.unique_id.bytes_le,
        record.start_offset // block_size,
        record.end_offset // block_size,
        0,  # attributes
        record.name.encode('utf-16le'),
    )


def _decode_entry(raw: bytes, block_size: int) -> Optional[PartitionRecord]:
    type_bytes, guid_bytes, start_lba, end_lba, _, name_bytes = struct.unpack(
        ENTRY_FORMAT, raw[:ENTRY_SIZE]
    )
    type_id = UUID(bytes_le=type_bytes)
    if type_id == PartitionType.UNUSED.value:
        return None
    if start_lba > end_lba:
        raise GptParseError(
            f"Partition entry starts after it ends (LBA {start_lba} > {end_lba})"
        )
    return PartitionRecord(
        unique_id=UUID(bytes_le=guid_bytes),
        name=name_bytes.decode('utf-16le', errors='replace').rstrip('\x00'),
        type_id=type_id,
        start_offset=start_lba * block_size,
        end_offset=end_lba * block_size,
    )


def _protective_mbr(total_blocks: int) -> bytes:
    """Protective MBR covering the whole device with one 0xEE partition."""
    entry = struct.pack(
        '<B3sB3sII',
        0x00,              # not bootable
        b'\x00\x02\x00',   # CHS of LBA 1
        MBR_PROTECTIVE_TYPE,
        b'\xff\xff\xff',
        PRIMARY_HEADER_LBA,
        min(total_blocks - 1, 0xFFFFFFFF),
    )
    return b'\x00' * 446 + entry + b'\x00' * 48 + MBR_SIGNATURE


class GptTable:
    """In-memory GUID partition table.

    Partitions keep their insertion order, which is also the order of the
    entries written to disk.
    """

    def __init__(self, table_id: UUID, total_size: int, block_size: int):
        _check_block_size(block_size)
        self.table_id = table_id
        self.total_size = total_size
        self.block_size = block_size
        self._partitions: List[PartitionRecord] = []

        if self.first_usable_offset > self.last_usable_offset:
            raise TableValidationError(
                f"Device of {total_size} bytes is too small for a GPT "
                f"with {block_size} byte blocks"
            )

    # -----------------------------
    #  Geometry
    # -----------------------------
    @property
    def total_blocks(self) -> int:
        return self.total_size // self.block_size

    @property
    def first_usable_offset(self) -> int:
        """Offset of the first block a partition may use."""
        return (PRIMARY_HEADER_LBA + 1 + _array_blocks(self.block_size)) * self.block_size

    @property
    def last_usable_offset(self) -> int:
        """Offset of the last block a partition may use."""
        last_lba = self.total_blocks - 1
        return (last_lba - _array_blocks(self.block_size) - 1) * self.block_size

    @property
    def partitions(self) -> Tuple[PartitionRecord, ...]:
        return tuple(self._partitions)

    def remaining(self, start: int) -> int:
        """Contiguous free bytes from ``start`` up to the next partition or the
        end of the usable area. Zero when ``start`` lies inside a partition or
        outside the usable area.
        """
        usable_end = self.last_usable_offset + self.block_size
        if start < self.first_usable_offset or start >= usable_end:
            return 0

        limit = usable_end
        for part in self._partitions:
            if part.start_offset <= start <= part.end_offset:
                return 0
            if part.start_offset > start:
                limit = min(limit, part.start_offset)
        return limit - start

    def free_space(self) -> int:
        """Total unallocated bytes inside the usable area."""
        usable = self.last_usable_offset + self.block_size - self.first_usable_offset
        used = sum(p.size(self.block_size) for p in self._partitions)
        return usable - used

    # -----------------------------
    #  Editing
    # -----------------------------
    def validate_partition(self, record: PartitionRecord) -> None:
        """Check ``record`` against GPT constraints and the existing layout.

        Raises:
            TableValidationError: Or one of its subclasses
        """
        bs = self.block_size

        if len(self._partitions) >= ENTRY_COUNT:
            raise TableValidationError(f"Partition table is full ({ENTRY_COUNT} entries)")

        if record.type_id == PartitionType.UNUSED.value:
            raise TableValidationError("Partition type must not be the unused (nil) type")

        if len(record.name.encode('utf-16le')) > NAME_MAX_LEN * 2:
            raise TableValidationError(
                f"Partition name must not be longer than {NAME_MAX_LEN} characters, "
                f"got {record.name!r}"
            )

        if record.start_offset % bs or record.end_offset % bs:
            raise PartitionAlignmentError(
                f"Partition [{record.start_offset}, {record.end_offset}] is not aligned "
                f"to the {bs} byte logical block size"
            )

        if record.start_offset > record.end_offset:
            raise PartitionBoundsError(
                f"Partition starts at {record.start_offset} but ends at {record.end_offset}"
            )

        if (record.start_offset < self.first_usable_offset
                or record.end_offset > self.last_usable_offset):
            raise PartitionBoundsError(
                f"Partition [{record.start_offset}, {record.end_offset}] is outside the "
                f"usable area [{self.first_usable_offset}, {self.last_usable_offset}]"
            )

        for existing in self._partitions:
            if existing.unique_id == record.unique_id:
                raise DuplicatePartitionError(
                    f"Partition id {record.unique_id} is already in use"
                )
            if not (record.end_offset < existing.start_offset
                    or record.start_offset > existing.end_offset):
                raise PartitionOverlapError(
                    f"Partition [{record.start_offset}, {record.end_offset}] overlaps "
                    f"partition {existing.unique_id} "
                    f"[{existing.start_offset}, {existing.end_offset}]"
                )

    def add_partition(self, record: PartitionRecord) -> None:
        """Validate and append ``record``."""
        self.validate_partition(record)
        self._partitions.append(record)
        logger.debug(
            f"Added partition {record.unique_id} [{record.start_offset}, {record.end_offset}]"
        )

    # -----------------------------
    #  Serialization
    # -----------------------------
    @classmethod
    def from_reader(cls, source: BinaryIO, block_size: int, total_size: int) -> "GptTable":
        """Parse a table from a readable, seekable byte source.

        The primary header is tried first, then the backup header in the
        last block.

        Raises:
            GptParseError: If neither header describes a valid table
        """
        _check_block_size(block_size)
        last_lba = total_size // block_size - 1
        if last_lba <= PRIMARY_HEADER_LBA:
            raise GptParseError(f"Device of {total_size} bytes is too small to hold a GPT")

        errors = []
        for header_lba, alternate_lba in ((PRIMARY_HEADER_LBA, last_lba),
                                          (last_lba, PRIMARY_HEADER_LBA)):
            try:
                return cls._parse_at(source, block_size, total_size, header_lba, alternate_lba)
            except GptParseError as e:
                logger.debug(f"No valid GPT header at LBA {header_lba}: {e}")
                errors.append(str(e))

        raise GptParseError(f"No valid GPT found ({'; '.join(errors)})")

    @classmethod
    def _parse_at(
        cls,
        source: BinaryIO,
        block_size: int,
        total_size: int,
        header_lba: int,
        alternate_lba: int,
    ) -> "GptTable":
        header = _read_exact(source, header_lba * block_size, block_size)
        (
            signature,
            revision,
            header_size,
            header_crc,
            _,  # reserved
            my_lba,
            alt_lba,
            _,  # first usable LBA
            _,  # last usable LBA
            disk_guid,
            array_lba,
            entry_count,
            entry_size,
            array_crc,
        ) = struct.unpack(HEADER_FORMAT, header[:HEADER_SIZE])

        if signature != SIGNATURE:
            raise GptParseError(f"Invalid GPT signature {signature!r}")
        if revision != REVISION:
            raise GptParseError(f"Unsupported GPT revision {revision:#x}")
        if not HEADER_SIZE <= header_size <= block_size:
            raise GptParseError(f"Invalid GPT header size {header_size}")

        crc_input = header[:16] + b'\x00' * 4 + header[20:header_size]
        if crc32(crc_input) != header_crc:
            raise GptParseError("CRC32 of GPT header does not match")
        if my_lba != header_lba or alt_lba != alternate_lba:
            raise GptParseError(
                f"Header LBAs ({my_lba}, {alt_lba}) don't match the device geometry"
            )
        if entry_size < ENTRY_SIZE or entry_size & (entry_size - 1):
            raise GptParseError(f"Invalid partition entry size {entry_size}")

        array = _read_exact(source, array_lba * block_size, entry_count * entry_size)
        if crc32(array) != array_crc:
            raise GptParseError("CRC32 of partition entry array does not match")

        try:
            table = cls(UUID(bytes_le=disk_guid), total_size, block_size)
        except TableValidationError as e:
            raise GptParseError(str(e)) from e
        for index in range(entry_count):
            raw = array[index * entry_size:(index + 1) * entry_size]
            record = _decode_entry(raw, block_size)
            if record is not None:
                table._partitions.append(record)
        return table

    def entry_array(self) -> bytes:
        entries = [_encode_entry(p, self.block_size) for p in self._partitions]
        entries.extend(b'\x00' * ENTRY_SIZE for _ in range(ENTRY_COUNT - len(entries)))
        return b''.join(entries)

    def _header(self, array_crc: int, header_lba: int, alternate_lba: int, array_lba: int) -> bytes:
        fields = [
            SIGNATURE,
            REVISION,
            HEADER_SIZE,
            0,  # header CRC32, filled below
            0,  # reserved
            header_lba,
            alternate_lba,
            self.first_usable_offset // self.block_size,
            self.last_usable_offset // self.block_size,
            self.table_id.bytes_le,
            array_lba,
            ENTRY_COUNT,
            ENTRY_SIZE,
            array_crc,
        ]
        header = struct.pack(HEADER_FORMAT, *fields)
        header = header[:16] + crc32(header).to_bytes(4, 'little') + header[20:]
        return header.ljust(self.block_size, b'\x00')

    def to_writer(self, sink: BinaryIO) -> None:
        """Write protective MBR, primary and backup GPT to a seekable sink."""
        bs = self.block_size
        last_lba = self.total_blocks - 1
        array_blocks = _array_blocks(bs)
        backup_array_lba = last_lba - array_blocks

        array = self.entry_array()
        array_crc = crc32(array)
        padded_array = array.ljust(array_blocks * bs, b'\x00')

        writes: Iterable[Tuple[int, bytes]] = (
            (0, _protective_mbr(self.total_blocks).ljust(bs, b'\x00')),
            (PRIMARY_HEADER_LBA,
             self._header(array_crc, PRIMARY_HEADER_LBA, last_lba, PRIMARY_HEADER_LBA + 1)),
            (PRIMARY_HEADER_LBA + 1, padded_array),
            (backup_array_lba, padded_array),
            (last_lba, self._header(array_crc, last_lba, PRIMARY_HEADER_LBA, backup_array_lba)),
        )
        for lba, data in writes:
            sink.seek(lba * bs)
            sink.write(data)
        sink.flush()

    def __eq__(self, other) -> bool:
        if isinstance(other, GptTable):
            return (
                self.table_id == other.table_id
                and self.block_size == other.block_size
                and self.total_size == other.total_size
                and self._partitions == other._partitions
            )
        return NotImplemented

    def __repr__(self) -> str:
        return (
            f"GptTable(table_id={self.table_id!r}, partitions={len(self._partitions)}, "
            f"block_size={self.block_size}, total_size={self.total_size})"
        )


def _read_exact(source: BinaryIO, offset: int, length: int) -> bytes:
    source.seek(offset)
    data = source.read(length)
    if data is None or len(data) != length:
        raise GptParseError(f"Short read at offset {offset}: wanted {length} bytes")
    return data
