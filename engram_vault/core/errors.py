"""
Exception hierarchy for Engram Vault.

Every error raised by the store derives from VaultError so callers can
catch the whole family at once. Caller errors (not-found, size limit,
bad patterns) also subclass the builtin they resemble, which keeps
``except KeyError`` / ``except ValueError`` call sites working.
"""


def format_bytes(num_bytes: int) -> str:
    """Render a byte count the way size errors report it (1.5MB, 12.0KB, 80B)."""
    if num_bytes >= 1_000_000:
        return f"{num_bytes / 1_000_000:.1f}MB"
    if num_bytes >= 1_000:
        return f"{num_bytes / 1_000:.1f}KB"
    return f"{num_bytes}B"


class VaultError(Exception):
    """Base class for all Engram Vault errors."""


class ConfigurationError(VaultError, ValueError):
    """Invalid store, search or embedding configuration."""


class InvalidPathError(VaultError, ValueError):
    """A logical path failed validation."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path {path!r}: {reason}")


class EntryNotFoundError(VaultError, KeyError):
    """No persisted or virtual entry exists at the path."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(path)

    def __str__(self) -> str:
        return f"memory://{self.path} not found"


class EntryTooLargeError(VaultError, ValueError):
    """Content exceeds the configured maximum entry size."""

    def __init__(self, path: str, limit: int, actual: int):
        self.path = path
        self.limit = limit
        self.actual = actual
        super().__init__(
            f"Content exceeds maximum size ({format_bytes(limit)}). "
            f"Current: {format_bytes(actual)}"
        )


class StorageFullError(VaultError):
    """A write would push the store past its total size quota."""

    def __init__(self, path: str, limit: int, actual: int):
        self.path = path
        self.limit = limit
        self.actual = actual
        super().__init__(
            f"Memory storage full ({format_bytes(actual)} / {format_bytes(limit)}) "
            f"while writing memory://{path}"
        )


class DimensionMismatchError(VaultError, ValueError):
    """Two vectors of different lengths were compared."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector dimension mismatch: {expected} != {actual}")


class InvalidPatternError(VaultError, ValueError):
    """A grep pattern is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        super().__init__(f"Invalid regex pattern {pattern!r}: {reason}")


class CorruptedMetadataError(VaultError):
    """A persisted metadata artifact could not be parsed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Corrupted metadata for {path}: {reason}")


class LockError(VaultError):
    """The cross-process lock file could not be created or opened."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Cannot use lock file {path}: {reason}")


class VirtualEntryError(VaultError):
    """Built-in entries cannot be deleted."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"memory://{path} is a built-in entry and cannot be deleted")
