"""Tests for per-device write locking."""
import os
import time

import pytest

from gptpart.core import lock as lock_module
from gptpart.core.lock import DeviceLock, LockError, device_lock, lock_path_for, user_lock_dir


class TestDeviceLock:
    """Test file-based locking mechanism."""

    def test_acquire_and_release(self, image, tmp_path):
        """Can acquire and release lock."""
        lock = DeviceLock(image, lock_dir=tmp_path / "locks")

        assert lock.acquire() is True
        assert lock.lock_file.exists()

        lock.release()
        assert lock.lock_fd is None

    def test_released_file_is_reused(self, image, tmp_path):
        """The lock file survives release so every writer locks the same inode."""
        first = DeviceLock(image, lock_dir=tmp_path, timeout=0)
        first.acquire()
        inode = first.lock_file.stat().st_ino
        first.release()

        assert first.lock_file.exists()
        second = DeviceLock(image, lock_dir=tmp_path, timeout=0)
        second.acquire()
        assert second.lock_file.stat().st_ino == inode
        second.release()

    def test_concurrent_lock_fails(self, image, tmp_path):
        """Second lock on the same device fails while the first is held."""
        lock1 = DeviceLock(image, lock_dir=tmp_path, timeout=0)
        lock1.acquire()

        lock2 = DeviceLock(image, lock_dir=tmp_path, timeout=0)
        with pytest.raises(LockError) as exc_info:
            lock2.acquire()

        assert "in use by another gptpart process" in str(exc_info.value)
        assert f"PID {os.getpid()}" in str(exc_info.value)

        lock1.release()

    def test_different_devices_do_not_conflict(self, make_image, tmp_path):
        first = DeviceLock(make_image("a.img"), lock_dir=tmp_path)
        second = DeviceLock(make_image("b.img"), lock_dir=tmp_path)

        first.acquire()
        second.acquire()
        first.release()
        second.release()

    def test_lock_timeout(self, image, tmp_path):
        """Lock times out after specified period."""
        lock1 = DeviceLock(image, lock_dir=tmp_path)
        lock1.acquire()

        lock2 = DeviceLock(image, lock_dir=tmp_path, timeout=1)
        start = time.time()
        with pytest.raises(LockError):
            lock2.acquire()

        elapsed = time.time() - start
        assert elapsed >= 1.0
        assert elapsed < 2.5

        lock1.release()

    def test_lock_info_written(self, image, tmp_path):
        """Lock file contains PID and timestamp."""
        lock = DeviceLock(image, lock_dir=tmp_path)
        lock.acquire()

        lines = lock.lock_file.read_text().splitlines()
        assert str(os.getpid()) in lines[0]
        assert '-' in lines[1]  # YYYY-MM-DD format

        lock.release()

    def test_lock_directory_creation(self, image, tmp_path):
        """Lock directory is created if missing."""
        lock_dir = tmp_path / "subdir" / "gptpart"
        lock = DeviceLock(image, lock_dir=lock_dir)
        lock.acquire()

        assert lock_dir.exists()
        lock.release()

    def test_unusable_lock_dir(self, image, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(LockError, match="Couldn't create lock file"):
            DeviceLock(image, lock_dir=blocker / "locks").acquire()


class TestUserLockDir:
    """Falling back when the configured lock directory isn't writable."""

    @pytest.fixture
    def denied(self, monkeypatch, tmp_path):
        denied_dir = tmp_path / "denied"
        real_open = lock_module._open_lock_file

        def open_lock_file(path):
            if denied_dir in path.parents:
                raise PermissionError(13, "Permission denied", str(path))
            return real_open(path)

        monkeypatch.setattr(lock_module, "_open_lock_file", open_lock_file)
        return denied_dir

    def test_runtime_dir_used(self, image, tmp_path, monkeypatch, denied):
        monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path / "run"))

        with device_lock(image, lock_dir=denied) as lock:
            assert lock.lock_file.parent == tmp_path / "run" / "gptpart"

    def test_tempdir_without_runtime_dir(self, monkeypatch, tmp_path):
        monkeypatch.delenv("XDG_RUNTIME_DIR", raising=False)
        monkeypatch.setattr(lock_module.tempfile, "gettempdir", lambda: str(tmp_path))

        assert user_lock_dir() == tmp_path / f"gptpart-{os.getuid()}"

    def test_fallback_also_denied(self, image, monkeypatch, denied):
        monkeypatch.setenv("XDG_RUNTIME_DIR", str(denied / "run"))

        with pytest.raises(LockError, match="Couldn't create lock file"):
            DeviceLock(image, lock_dir=denied).acquire()


class TestDeviceLockContext:
    """Test device_lock context manager."""

    def test_uses_configured_lock_dir(self, image, gptpart_config):
        with device_lock(image) as lock:
            assert lock.lock_file.parent == lock_path_for(image).parent
            assert str(lock.lock_file).startswith(gptpart_config.lock_dir)
        assert lock.lock_fd is None

    def test_failure_when_held(self, image, tmp_path):
        held = DeviceLock(image, lock_dir=tmp_path)
        held.acquire()

        with pytest.raises(LockError):
            with device_lock(image, timeout=0, lock_dir=tmp_path):
                pass

        held.release()

    def test_released_on_error(self, image, tmp_path):
        with pytest.raises(RuntimeError):
            with device_lock(image, lock_dir=tmp_path):
                raise RuntimeError("boom")

        with device_lock(image, lock_dir=tmp_path):
            pass

    def test_lock_path_is_per_device(self, tmp_path):
        path = lock_path_for("/nonexistent/disk.img", tmp_path)
        assert path == tmp_path / "nonexistent_disk.img.lock"
