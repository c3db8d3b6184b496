"""Block device models."""
import re
from dataclasses import dataclass
from pathlib import Path

SIZE_UNITS = {'': 1, 'K': 1024, 'M': 1024 ** 2, 'G': 1024 ** 3, 'T': 1024 ** 4}
_SIZE_RE = re.compile(r'^(\d+)\s*([KMGT]?)(?:I?B)?$')


def parse_size(value: str) -> int:
    """Parse a byte count with an optional binary suffix.

    ``"4096"``, ``"10M"``, ``"10MiB"`` and ``"1 GB"`` are all accepted; every
    suffix is a power of 1024.

    Raises:
        ValueError: If ``value`` isn't a size
    """
    match = _SIZE_RE.match(value.strip().upper())
    if not match:
        raise ValueError(f"Invalid size {value!r}, expected e.g. 4096, 512K, 10M or 1G")
    number, unit = match.groups()
    if not unit and value.strip().upper().endswith('IB'):
        raise ValueError(f"Invalid size {value!r}")
    return int(number) * SIZE_UNITS[unit]


def format_size(size_bytes: int) -> str:
    """Human-readable binary size."""
    size = float(size_bytes)
    for unit in ['B', 'KiB', 'MiB', 'GiB', 'TiB']:
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}PiB"


@dataclass(frozen=True)
class DeviceDescriptor:
    """Identity of a device or disk image, fixed for the whole session."""
    path: Path                # /dev/sda or ./disk.img
    logical_block_size: int   # Smallest addressable unit, in bytes
    total_size: int           # Device size in bytes
    model: str                # Manufacturer model, "" for images
    display_name: str         # sda, disk.img

    def __post_init__(self):
        if self.logical_block_size <= 0:
            raise ValueError(
                f"Logical block size must be positive, got {self.logical_block_size}"
            )
        if self.total_size < 0:
            raise ValueError(f"Device size must not be negative, got {self.total_size}")

    @property
    def size_human(self) -> str:
        """Human-readable size."""
        return format_size(self.total_size)

    @property
    def label(self) -> str:
        """One-line description used in device lists."""
        return f"Disk {self.display_name} - {self.size_human} - Model: {self.model or 'None'}"

    def with_block_size(self, logical_block_size: int) -> "DeviceDescriptor":
        """Copy of this descriptor with an overridden logical block size."""
        return DeviceDescriptor(
            path=self.path,
            logical_block_size=logical_block_size,
            total_size=self.total_size,
            model=self.model,
            display_name=self.display_name,
        )
