"""GPT table encoding and validated editing."""
from gptpart.table.gpt import (
    DuplicatePartitionError,
    GptParseError,
    GptTable,
    PartitionAlignmentError,
    PartitionBoundsError,
    PartitionOverlapError,
    PartitionType,
    TableError,
    TableValidationError,
    describe_partition_type,
    parse_partition_type,
)

__all__ = [
    'DuplicatePartitionError',
    'GptParseError',
    'GptTable',
    'PartitionAlignmentError',
    'PartitionBoundsError',
    'PartitionOverlapError',
    'PartitionType',
    'TableError',
    'TableValidationError',
    'describe_partition_type',
    'parse_partition_type',
]
