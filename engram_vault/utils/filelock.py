"""
Cross-process advisory file locking.

- Unix/Linux/macOS: fcntl.flock
- Windows: msvcrt.locking

Usage:
    lock = FileLock("/data/vault/.lock")
    with lock:
        ...  # exclusive across processes sharing the directory
"""

import os
import platform

from engram_vault.core.errors import LockError


class FileLock:
    """
    Exclusive lock held on a single lock file.

    The file is created (or opened) at construction so that permission
    problems surface immediately instead of on the first write.
    Re-entering from the holder only bumps a depth counter; callers must
    serialize threads themselves (adapters hold their own mutex first).
    """

    def __init__(self, path: str):
        self.path = str(path)
        try:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise LockError(self.path, str(e)) from e
        os.close(fd)
        self._handle = None
        self._depth = 0

    def __enter__(self) -> "FileLock":
        if self._depth == 0:
            handle = open(self.path, "a+b")
            try:
                if platform.system() == "Windows":
                    _acquire_windows(handle)
                else:
                    _acquire_unix(handle)
            except OSError as e:
                handle.close()
                raise LockError(self.path, str(e)) from e
            self._handle = handle
        self._depth += 1
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._depth -= 1
        if self._depth > 0:
            return
        handle, self._handle = self._handle, None
        try:
            if platform.system() == "Windows":
                _release_windows(handle)
            else:
                _release_unix(handle)
        finally:
            handle.close()

    @property
    def held(self) -> bool:
        return self._depth > 0


# ========== Unix ==========

def _acquire_unix(handle) -> None:
    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)


def _release_unix(handle) -> None:
    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


# ========== Windows ==========

def _acquire_windows(handle) -> None:
    import msvcrt

    handle.seek(0)
    msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)


def _release_windows(handle) -> None:
    import msvcrt

    handle.seek(0)
    msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
