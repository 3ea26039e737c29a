"""
Read-before-edit tracking.

An edit tool built on top of the store should only apply a diff when the
caller has actually read the current content. ReadTracker records which
paths each caller has read so that check is cheap.

Usage:
    tracker = ReadTracker()
    tracker.register_read("agent-1", "fact/api.md")
    tracker.has_been_read("agent-1", "fact/api.md")  # True
    tracker.has_been_read("agent-2", "fact/api.md")  # False
"""

import threading


class ReadTracker:
    """Thread-safe record of (caller, path) reads. Never persisted."""

    def __init__(self):
        self._reads: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    def register_read(self, caller: str, path: str) -> None:
        """Mark a path as read by a caller."""
        with self._lock:
            self._reads.setdefault(caller, set()).add(path)

    def has_been_read(self, caller: str, path: str) -> bool:
        """Check whether a caller has read a path."""
        with self._lock:
            return path in self._reads.get(caller, ())

    def clear(self, caller: str) -> None:
        """Forget everything a single caller has read."""
        with self._lock:
            self._reads.pop(caller, None)

    def clear_all(self) -> None:
        """Forget all reads for all callers."""
        with self._lock:
            self._reads.clear()

    def paths_read(self, caller: str) -> set[str]:
        """Copy of the paths a caller has read."""
        with self._lock:
            return set(self._reads.get(caller, ()))
