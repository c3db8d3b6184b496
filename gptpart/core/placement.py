"""Placement resolution: turn partial start/end/size input into a byte range.

The default start after existing partitions is one full logical block past
the last block of the partition ending furthest on disk. Offsets stay block
aligned as long as the existing partitions are.
"""
from dataclasses import dataclass
from typing import Optional

from gptpart.core.config import get_config
from gptpart.models.partition import AbsoluteEnd, PlacementHint, RelativeSize
from gptpart.table.gpt import GptTable


@dataclass(frozen=True)
class PlacementRange:
    """Resolved partition range; ``end`` is an inclusive byte offset."""
    start: int
    end: int


def default_start(table: GptTable, min_start: Optional[int] = None) -> int:
    """Where a partition goes when the user gives no start."""
    if table.partitions:
        last = max(table.partitions, key=lambda p: p.end_offset)
        return last.next_start(table.block_size)
    return get_config().min_start if min_start is None else min_start


def resolve(
    table: GptTable,
    hint: PlacementHint,
    min_start: Optional[int] = None,
) -> PlacementRange:
    """Resolve ``hint`` against the current layout of ``table``.

    Never raises; an unusable range (e.g. no space left) is rejected later by
    the table's validated insertion.

    Args:
        table: Table the partition will be added to
        hint: User supplied start / end / size
        min_start: First partition start for empty tables (default from config)

    Returns:
        PlacementRange with an explicit start and inclusive end byte
    """
    if hint.explicit_start is not None:
        start = hint.explicit_start
    else:
        start = default_start(table, min_start)

    end_spec = hint.end_spec
    if isinstance(end_spec, AbsoluteEnd):
        end = end_spec.offset
    elif isinstance(end_spec, RelativeSize):
        end = start + end_spec.size - 1
    else:
        end = start + table.remaining(start) - 1

    return PlacementRange(start=start, end=end)


def normalize(placement: PlacementRange, block_size: int) -> PlacementRange:
    """Express ``placement`` as (first block offset, last block offset).

    The end becomes the block holding the resolved end byte, so a relative
    size is rounded up to whole blocks. The start is left untouched; a
    misaligned explicit start is rejected by the table, not rounded.
    """
    end_block = placement.end // block_size
    return PlacementRange(start=placement.start, end=end_block * block_size)
