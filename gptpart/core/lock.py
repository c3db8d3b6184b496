"""Exclusive per-device locking.

Prevents two gptpart writers from touching the same device at once.
"""
import fcntl
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Optional, Union

from gptpart.core.config import get_config
from gptpart.core.errors import GptPartError
from gptpart.core.logger import get_logger

logger = get_logger(__name__)


class LockError(GptPartError):
    """Raised when unable to acquire a device lock."""
    pass


def lock_path_for(device_path: Union[str, Path], lock_dir: Optional[Path] = None) -> Path:
    """Lock file used for ``device_path``."""
    lock_dir = Path(lock_dir or get_config().lock_dir)
    key = str(Path(device_path).resolve()).strip('/').replace('/', '_')
    return lock_dir / f"{key}.lock"


def user_lock_dir() -> Path:
    """Per-user lock directory for when the configured one isn't writable."""
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        return Path(runtime_dir) / "gptpart"
    return Path(tempfile.gettempdir()) / f"gptpart-{os.getuid()}"


def _open_lock_file(path: Path) -> IO[str]:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Append mode keeps the holder's PID readable until we own the lock
    return open(path, 'a+')


class DeviceLock:
    """File-based lock guarding writes to one device.

    The lock file stays in place after release. Waiters always lock the same
    inode, and the kernel drops the lock when its holder exits.
    """

    def __init__(
        self,
        device_path: Union[str, Path],
        lock_dir: Optional[Path] = None,
        timeout: int = 0,
    ):
        """Initialize lock.

        Args:
            device_path: Device (or image) the lock protects
            lock_dir: Directory for lock files (default from config)
            timeout: Seconds to wait for lock (0 = fail immediately)
        """
        self.device_path = Path(device_path)
        self.lock_file = lock_path_for(device_path, lock_dir)
        self.timeout = timeout
        self.lock_fd = None

    def _open(self):
        try:
            return _open_lock_file(self.lock_file)
        except PermissionError as e:
            fallback = lock_path_for(self.device_path, user_lock_dir())
            if fallback == self.lock_file:
                raise LockError(f"Couldn't create lock file {self.lock_file}: {e}") from e
            logger.debug(f"{self.lock_file.parent} not writable, locking in {fallback.parent}")
            self.lock_file = fallback
        except OSError as e:
            raise LockError(f"Couldn't create lock file {self.lock_file}: {e}") from e

        try:
            return _open_lock_file(self.lock_file)
        except OSError as e:
            raise LockError(f"Couldn't create lock file {self.lock_file}: {e}") from e

    def acquire(self) -> bool:
        """Acquire the lock.

        Returns:
            True if lock acquired successfully

        Raises:
            LockError: If unable to acquire lock
        """
        self.lock_fd = self._open()

        start_time = time.time()
        while True:
            try:
                fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

                self.lock_fd.seek(0)
                self.lock_fd.truncate()
                self.lock_fd.write(f"{os.getpid()}\n")
                self.lock_fd.write(f"{time.strftime('%Y-%m-%d %H:%M:%S')}\n")
                self.lock_fd.flush()

                logger.debug(f"Acquired lock for {self.device_path}: {self.lock_file}")
                return True

            except OSError:
                elapsed = time.time() - start_time
                if elapsed >= self.timeout:
                    lock_info = self._read_lock_info()
                    self.lock_fd.close()
                    self.lock_fd = None
                    raise LockError(
                        f"{self.device_path} is in use by another gptpart process.\n"
                        f"Lock held by PID {lock_info['pid']} since {lock_info['time']}"
                    )

                time.sleep(0.5)

    def release(self):
        """Release the lock. The lock file is left for the next writer."""
        if self.lock_fd is None:
            return

        try:
            fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_UN)
            self.lock_fd.close()
            logger.debug(f"Released lock: {self.lock_file}")
        except OSError as e:
            logger.warning(f"Error releasing lock: {e}")
        finally:
            self.lock_fd = None

    def _read_lock_info(self) -> dict:
        """Read info from lock file about who holds it."""
        try:
            lines = self.lock_file.read_text().splitlines()
        except OSError:
            lines = []
        if len(lines) >= 2:
            return {'pid': lines[0].strip(), 'time': lines[1].strip()}
        return {'pid': 'unknown', 'time': 'unknown'}

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


@contextmanager
def device_lock(device_path: Union[str, Path], timeout: int = 0, lock_dir: Optional[Path] = None):
    """Context manager holding the write lock for ``device_path``.

    Usage:
        with device_lock(device.path):
            write_table(table, device)

    Raises:
        LockError: If unable to acquire lock
    """
    lock = DeviceLock(device_path, lock_dir=lock_dir, timeout=timeout)
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()
