"""Portable, versioned snapshots of a device's partition layout.

A snapshot records the table id, the owning device's model, block size and
size, and every partition exactly as stored. Documents can be edited by hand;
decoding replays each partition through the table's validated insertion path,
so a broken snapshot fails the same way a bad ``add-partition`` would.

Example (JSON)::

    {
      "version": "V1",
      "table_id": "6d1c...",
      "model": "Samsung SSD 870",
      "logical_block_size": 512,
      "total_size": 104857600,
      "partitions": [
        {"name": "root", "type_id": "0fc63daf-...", "unique_id": "...",
         "start": 1048576, "end": 11533824}
      ]
    }
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

import yaml

from gptpart.core.errors import GptPartError
from gptpart.core.logger import get_logger
from gptpart.models.device import DeviceDescriptor
from gptpart.models.partition import PartitionRecord
from gptpart.table.gpt import GptTable, parse_partition_type

logger = get_logger(__name__)


class SnapshotError(GptPartError):
    """Raised when a snapshot document is malformed."""
    pass


class SnapshotVersion(str, Enum):
    """Snapshot document versions, oldest first."""
    V1 = "V1"

    @classmethod
    def earliest(cls) -> "SnapshotVersion":
        return list(cls)[0]


class SnapshotFormat(str, Enum):
    """Supported textual encodings for snapshots."""
    JSON = "json"
    YAML = "yaml"


@dataclass(frozen=True)
class SnapshotPartition:
    name: str
    type_id: UUID
    unique_id: UUID
    start: int
    end: int


@dataclass(frozen=True)
class Snapshot:
    """Device + partition layout, independent of the live device."""
    table_id: UUID
    model: str
    logical_block_size: int
    total_size: int
    partitions: List[SnapshotPartition] = field(default_factory=list)
    version: SnapshotVersion = SnapshotVersion.V1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version.value,
            'table_id': str(self.table_id),
            'model': self.model,
            'logical_block_size': self.logical_block_size,
            'total_size': self.total_size,
            'partitions': [
                {
                    'name': p.name,
                    'type_id': str(p.type_id),
                    'unique_id': str(p.unique_id),
                    'start': p.start,
                    'end': p.end,
                }
                for p in self.partitions
            ],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        """Build a snapshot from a parsed document.

        Raises:
            SnapshotError: On missing fields or values of the wrong type
        """
        if not isinstance(data, dict):
            raise SnapshotError("Snapshot must be a mapping at the top level")

        raw_version = data.get('version')
        if raw_version is None:
            version = SnapshotVersion.earliest()
        else:
            try:
                version = SnapshotVersion(str(raw_version).upper())
            except ValueError:
                raise SnapshotError(f"Unsupported snapshot version {raw_version!r}")

        raw_partitions = _require(data, 'partitions', 'snapshot')
        if not isinstance(raw_partitions, list):
            raise SnapshotError("'partitions' must be a list")

        partitions = []
        for index, entry in enumerate(raw_partitions):
            where = f"partition #{index + 1}"
            if not isinstance(entry, dict):
                raise SnapshotError(f"{where} must be a mapping")
            name = _require(entry, 'name', where)
            if not isinstance(name, str):
                raise SnapshotError(f"{where}: 'name' must be a string")
            try:
                type_id = parse_partition_type(str(_require(entry, 'type_id', where)))
            except ValueError:
                raise SnapshotError(f"{where}: invalid 'type_id' {entry['type_id']!r}")
            partitions.append(SnapshotPartition(
                name=name,
                type_id=type_id,
                unique_id=_uuid(_require(entry, 'unique_id', where), f"{where}: 'unique_id'"),
                start=_int(_require(entry, 'start', where), f"{where}: 'start'"),
                end=_int(_require(entry, 'end', where), f"{where}: 'end'"),
            ))

        model = data.get('model') or ""
        if not isinstance(model, str):
            raise SnapshotError("'model' must be a string")

        return cls(
            version=version,
            table_id=_uuid(_require(data, 'table_id', 'snapshot'), "'table_id'"),
            model=model,
            logical_block_size=_int(
                _require(data, 'logical_block_size', 'snapshot'), "'logical_block_size'"
            ),
            total_size=_int(_require(data, 'total_size', 'snapshot'), "'total_size'"),
            partitions=partitions,
        )


def _require(data: Dict[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise SnapshotError(f"{where} is missing required field '{key}'")
    return data[key]


def _int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SnapshotError(f"{what} must be an integer, got {value!r}")
    return value


def _uuid(value: Any, what: str) -> UUID:
    try:
        return UUID(str(value))
    except ValueError:
        raise SnapshotError(f"{what} is not a valid UUID: {value!r}")


def encode(
    table: GptTable,
    device: DeviceDescriptor,
    version: SnapshotVersion = SnapshotVersion.V1,
) -> Snapshot:
    """Capture ``table`` and the identity of ``device`` as a snapshot."""
    return Snapshot(
        version=version,
        table_id=table.table_id,
        model=device.model,
        logical_block_size=device.logical_block_size,
        total_size=device.total_size,
        partitions=[
            SnapshotPartition(
                name=p.name,
                type_id=p.type_id,
                unique_id=p.unique_id,
                start=p.start_offset,
                end=p.end_offset,
            )
            for p in table.partitions
        ],
    )


def decode(snapshot: Snapshot, override_block_size: Optional[int] = None) -> GptTable:
    """Rebuild a table from ``snapshot``.

    Args:
        snapshot: Snapshot to replay
        override_block_size: Replace the recorded block size, for restoring onto
            a device with different geometry. Each partition keeps the bytes
            it covered, so its last block moves to the new block size.

    Raises:
        TableValidationError: If any partition is rejected by the table
    """
    recorded = snapshot.logical_block_size
    block_size = recorded
    if override_block_size is not None:
        if override_block_size != recorded:
            logger.info(
                f"Overriding snapshot block size {recorded} with {override_block_size}"
            )
        block_size = override_block_size

    table = GptTable(snapshot.table_id, snapshot.total_size, block_size)
    for part in snapshot.partitions:
        # ``end`` is the offset of the last block at the recorded block size
        end = part.end + recorded - block_size
        table.add_partition(PartitionRecord(
            unique_id=part.unique_id,
            name=part.name,
            type_id=part.type_id,
            start_offset=part.start,
            end_offset=end,
        ))
    return table


def dumps(snapshot: Snapshot, fmt: SnapshotFormat = SnapshotFormat.JSON) -> str:
    """Serialize ``snapshot`` in the requested format."""
    data = snapshot.to_dict()
    if fmt == SnapshotFormat.JSON:
        return json.dumps(data, indent=2) + "\n"
    if fmt == SnapshotFormat.YAML:
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
    raise SnapshotError(f"Unsupported snapshot format {fmt!r}")


def loads(text: str, fmt: SnapshotFormat = SnapshotFormat.JSON) -> Snapshot:
    """Parse a snapshot document.

    Raises:
        SnapshotError: If the text isn't a valid document in ``fmt``
    """
    try:
        if fmt == SnapshotFormat.JSON:
            data = json.loads(text)
        elif fmt == SnapshotFormat.YAML:
            data = yaml.safe_load(text)
        else:
            raise SnapshotError(f"Unsupported snapshot format {fmt!r}")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SnapshotError(f"Couldn't parse {fmt.value} snapshot") from e

    return Snapshot.from_dict(data)
