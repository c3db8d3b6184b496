"""Partition records and placement hints."""
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from gptpart.core.errors import PlacementInputError


@dataclass(frozen=True)
class PartitionRecord:
    """A single GPT partition entry expressed in bytes.

    ``end_offset`` is the offset of the partition's last logical block, so
    both offsets are multiples of the block size and the partition covers
    ``end_offset - start_offset + block_size`` bytes.
    """
    unique_id: UUID
    name: str
    type_id: UUID
    start_offset: int
    end_offset: int

    def size(self, block_size: int) -> int:
        """Partition size in bytes."""
        return self.end_offset - self.start_offset + block_size

    def next_start(self, block_size: int) -> int:
        """First offset after this partition."""
        return self.end_offset + block_size


@dataclass(frozen=True)
class AbsoluteEnd:
    """Inclusive end byte offset."""
    offset: int


@dataclass(frozen=True)
class RelativeSize:
    """Partition length in bytes, counted from the start."""
    size: int


EndSpec = Union[AbsoluteEnd, RelativeSize]


@dataclass(frozen=True)
class PlacementHint:
    """Partial user input describing where a new partition should go.

    ``end_spec`` of None means "use all remaining space".
    """
    explicit_start: Optional[int] = None
    end_spec: Optional[EndSpec] = None

    @classmethod
    def from_options(
        cls,
        start: Optional[int] = None,
        end: Optional[int] = None,
        size: Optional[int] = None,
    ) -> "PlacementHint":
        """Build a hint from CLI-style options.

        Raises:
            PlacementInputError: If both ``end`` and ``size`` are given, or a
                value is negative/zero where that makes no sense
        """
        if end is not None and size is not None:
            raise PlacementInputError("Options 'end' and 'size' are mutually exclusive")
        if start is not None and start < 0:
            raise PlacementInputError(f"Partition start must not be negative, got {start}")
        if size is not None and size <= 0:
            raise PlacementInputError(f"Partition size must be positive, got {size}")
        if end is not None and end < 0:
            raise PlacementInputError(f"Partition end must not be negative, got {end}")

        end_spec: Optional[EndSpec] = None
        if end is not None:
            end_spec = AbsoluteEnd(end)
        elif size is not None:
            end_spec = RelativeSize(size)
        return cls(explicit_start=start, end_spec=end_spec)
