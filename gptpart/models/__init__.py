"""Data models for gptpart."""
from gptpart.models.device import DeviceDescriptor, format_size, parse_size
from gptpart.models.partition import (
    AbsoluteEnd,
    PartitionRecord,
    PlacementHint,
    RelativeSize,
)

__all__ = [
    'AbsoluteEnd',
    'DeviceDescriptor',
    'PartitionRecord',
    'PlacementHint',
    'RelativeSize',
    'format_size',
    'parse_size',
]
