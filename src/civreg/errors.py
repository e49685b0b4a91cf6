"""Error taxonomy for the record store."""

from pathlib import Path
from typing import Optional


class RegistryError(Exception):
    """Base class for record store failures."""


class LockTimeout(RegistryError, TimeoutError):
    """The lock marker for a ledger could not be created within the retry budget."""

    def __init__(self, path: Path, attempts: int):
        self.path = path
        self.attempts = attempts
        super().__init__(f"Timed out acquiring lock on {path} after {attempts} attempt(s)")


class NotFound(RegistryError, LookupError):
    """No record matched an identity lookup or update predicate."""


class MalformedRow(RegistryError, ValueError):
    """A ledger file contains a quoted field that is never terminated."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class DuplicateKey(RegistryError, ValueError):
    """An append would create a second record with the same identity value."""

    def __init__(self, column: str, value: str):
        self.column = column
        self.value = value
        super().__init__(f"A record with {column}={value!r} already exists")


class InvalidStatus(RegistryError, ValueError):
    """A birth record status outside pending/approved/rejected."""
