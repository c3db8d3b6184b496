"""GPT editing actions, independent of the CLI or interactive front end."""
from pathlib import Path
from typing import Optional, Union
from uuid import UUID, uuid4

from gptpart.core import snapshot
from gptpart.core.errors import DeviceIOError, GptPartError
from gptpart.core.logger import get_logger
from gptpart.core.placement import normalize, resolve
from gptpart.core.snapshot import SnapshotFormat, SnapshotVersion
from gptpart.discovery.devices import open_device
from gptpart.models.device import DeviceDescriptor
from gptpart.models.partition import PartitionRecord, PlacementHint
from gptpart.table.gpt import GptTable, PartitionType

logger = get_logger(__name__)

DEFAULT_PARTITION_TYPE = PartitionType.LINUX_FILESYSTEM.value


def read_table(device: DeviceDescriptor) -> GptTable:
    """Parse the GPT currently on ``device``.

    Raises:
        DeviceIOError: If the device can't be opened
        GptParseError: If the device holds no valid GPT
    """
    with open_device(device) as handle:
        table = GptTable.from_reader(handle, device.logical_block_size, device.total_size)
    logger.debug(f"Read GPT {table.table_id} from {device.path}")
    return table


def write_table(table: GptTable, device: DeviceDescriptor) -> None:
    """Write ``table`` to ``device``, replacing whatever is there.

    Raises:
        DeviceIOError: If the device can't be opened or written
    """
    with open_device(device, writable=True) as handle:
        try:
            table.to_writer(handle)
        except OSError as e:
            raise DeviceIOError(f"Couldn't write GPT to {device.path}", path=device.path) from e
    logger.info(f"Wrote GPT {table.table_id} to {device.path}")


def create_table(device: DeviceDescriptor, table_id: Optional[UUID] = None) -> GptTable:
    """Create an empty table and write it out immediately.

    Args:
        device: Target device
        table_id: Table id to stamp, generated when omitted

    Raises:
        TableValidationError: If the device is too small or block size invalid
        DeviceIOError: If writing fails
    """
    table = GptTable(table_id or uuid4(), device.total_size, device.logical_block_size)
    write_table(table, device)
    return table


def add_partition(
    table: GptTable,
    device: DeviceDescriptor,
    hint: PlacementHint,
    partition_id: Optional[UUID] = None,
    type_id: UUID = DEFAULT_PARTITION_TYPE,
    name: str = "",
) -> GptTable:
    """Resolve a placement for ``hint`` and insert the partition into ``table``.

    The table is only modified in memory; call ``write_table`` to persist it.

    Raises:
        TableValidationError: If the table rejects the resolved partition
    """
    placement = normalize(resolve(table, hint), device.logical_block_size)
    record = PartitionRecord(
        unique_id=partition_id or uuid4(),
        name=name,
        type_id=type_id,
        start_offset=placement.start,
        end_offset=placement.end,
    )
    table.add_partition(record)
    logger.info(
        f"Added partition {record.unique_id} at [{record.start_offset}, {record.end_offset}] "
        f"on {device.path}"
    )
    return table


def dump_table(
    table: GptTable,
    device: DeviceDescriptor,
    fmt: SnapshotFormat = SnapshotFormat.JSON,
    version: SnapshotVersion = SnapshotVersion.V1,
) -> str:
    """Serialize ``table`` and ``device`` identity as a snapshot document."""
    return snapshot.dumps(snapshot.encode(table, device, version), fmt)


def restore_table(
    text: str,
    fmt: SnapshotFormat = SnapshotFormat.JSON,
    override_block_size: Optional[int] = None,
) -> GptTable:
    """Rebuild a table from a snapshot document. Nothing is written.

    Raises:
        SnapshotError: If the document is malformed
        TableValidationError: If a recorded partition is invalid
    """
    return snapshot.decode(snapshot.loads(text, fmt), override_block_size=override_block_size)


def fit_to_device(table: GptTable, device: DeviceDescriptor) -> GptTable:
    """Check a restored ``table`` against the device it will be written to.

    A table recorded on a device of another size is rebuilt for this one, so
    the backup header lands at the real end of the device. Partitions are
    replayed through validation and must still fit.

    Raises:
        GptPartError: If the block sizes differ
        TableValidationError: If a partition doesn't fit the device
    """
    if table.block_size != device.logical_block_size:
        raise GptPartError(
            f"Snapshot block size {table.block_size} doesn't match {device.path} "
            f"({device.logical_block_size}); pass --block with --override-block to force it"
        )
    if table.total_size == device.total_size:
        return table

    logger.info(
        f"Snapshot was taken from a {table.total_size} byte device, "
        f"{device.path} has {device.total_size} bytes"
    )
    fitted = GptTable(table.table_id, device.total_size, table.block_size)
    for record in table.partitions:
        fitted.add_partition(record)
    return fitted


def write_dump(path: Union[str, Path], text: str) -> None:
    """Write a snapshot document to ``path``.

    Raises:
        DeviceIOError: If the file can't be written
    """
    path = Path(path)
    try:
        path.write_text(text)
    except OSError as e:
        raise DeviceIOError(f"Couldn't write dump to {path}: {e.strerror or e}", path=path) from e
    logger.info(f"Dumped partition table to {path}")
