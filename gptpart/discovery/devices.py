"""Block device discovery and device handles."""
import json
import os
import stat
import subprocess
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Union

from gptpart.core.config import get_config
from gptpart.core.errors import DeviceIOError, DeviceNotFoundError
from gptpart.core.logger import get_logger
from gptpart.models.device import DeviceDescriptor

logger = get_logger(__name__)

# Device argument meaning "pick for me"
AUTO_DEVICE = "auto"

LSBLK_COLUMNS = "NAME,PATH,SIZE,TYPE,MODEL,LOG-SEC"


def _run(args: List[str]) -> str:
    result = subprocess.run(args, capture_output=True, text=True, check=True)
    return result.stdout


class DeviceDiscovery:
    """Enumerate disks and describe devices or image files."""

    def __init__(self, run_cmd: Optional[Callable[[List[str]], str]] = None):
        self.run_cmd = run_cmd or _run

    def list_devices(self) -> List[DeviceDescriptor]:
        """Connected whole disks, sorted by name.

        Raises:
            DeviceIOError: If lsblk is missing or fails
        """
        devices = [
            self._from_lsblk(entry)
            for entry in self._lsblk()
            if entry.get('type') == 'disk'
        ]
        return sorted(devices, key=lambda d: d.display_name)

    def describe(self, path: Union[str, Path], block_size: Optional[int] = None) -> DeviceDescriptor:
        """Descriptor for a block device or disk image at ``path``.

        Args:
            path: Device node or regular file
            block_size: Logical block size override

        Raises:
            DeviceNotFoundError: If nothing exists at ``path``
            DeviceIOError: If the device can't be probed
        """
        path = Path(path)
        try:
            st = path.stat()
        except FileNotFoundError:
            raise DeviceNotFoundError(f"No such device or file: {path}", path=path)
        except OSError as e:
            raise DeviceIOError(f"Couldn't stat {path}", path=path) from e

        if stat.S_ISBLK(st.st_mode):
            entries = self._lsblk(str(path))
            if not entries:
                raise DeviceNotFoundError(f"lsblk doesn't know about {path}", path=path)
            device = self._from_lsblk(entries[0])
        else:
            device = DeviceDescriptor(
                path=path,
                logical_block_size=get_config().default_block_size,
                total_size=st.st_size,
                model="",
                display_name=path.name,
            )

        if block_size is not None:
            device = device.with_block_size(block_size)
        logger.debug(
            f"Device {device.path}: {device.total_size} bytes, "
            f"{device.logical_block_size} byte blocks"
        )
        return device

    def resolve(self, device: str, block_size: Optional[int] = None) -> DeviceDescriptor:
        """Turn the CLI device argument into a descriptor.

        ``auto`` picks the first connected disk.
        """
        if device.lower() != AUTO_DEVICE:
            return self.describe(device, block_size=block_size)

        devices = self.list_devices()
        if not devices:
            raise DeviceNotFoundError("No disks found; pass a device path explicitly")
        chosen = devices[0]
        logger.info(f"Auto-selected {chosen.path}")
        if block_size is not None:
            chosen = chosen.with_block_size(block_size)
        return chosen

    def _lsblk(self, path: Optional[str] = None) -> List[dict]:
        args = ['lsblk', '-J', '-b', '-d', '-o', LSBLK_COLUMNS]
        if path:
            args.append(path)
        try:
            output = self.run_cmd(args)
            data = json.loads(output)
        except FileNotFoundError as e:
            raise DeviceIOError("lsblk is not installed") from e
        except subprocess.CalledProcessError as e:
            raise DeviceIOError(f"lsblk failed: {(e.stderr or '').strip() or e}") from e
        except json.JSONDecodeError as e:
            raise DeviceIOError("Couldn't parse lsblk output") from e
        return data.get('blockdevices', [])

    def _from_lsblk(self, entry: dict) -> DeviceDescriptor:
        name = entry['name']
        return DeviceDescriptor(
            path=Path(entry.get('path') or f"/dev/{name}"),
            logical_block_size=int(entry.get('log-sec') or 512),
            total_size=int(entry.get('size') or 0),
            model=(entry.get('model') or "").strip(),
            display_name=name,
        )


def open_device(device: DeviceDescriptor, writable: bool = False) -> BinaryIO:
    """Open a binary handle on ``device``.

    Raises:
        DeviceIOError: With the device path in the message
    """
    mode = 'r+b' if writable else 'rb'
    try:
        return open(device.path, mode)
    except OSError as e:
        action = "writing" if writable else "reading"
        raise DeviceIOError(
            f"Couldn't open {device.path} for {action}: {os.strerror(e.errno) if e.errno else e}",
            path=device.path,
        ) from e
