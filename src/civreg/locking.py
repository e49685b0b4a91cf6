"""Advisory exclusive locks on ledger files.

A lock is a marker file at ``<ledger>.lock`` created with O_CREAT | O_EXCL, so
creation fails if another holder already has it. The marker holds the owner's
pid and thread id for diagnostics. There is no TTL: a holder that crashes
leaves the marker behind and it has to be removed by hand
(``civreg ledger unlock``).
"""

import contextlib
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .errors import LockTimeout

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 50
DEFAULT_DELAY_SECONDS = 0.1


def lock_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".lock")


def _owner_id() -> str:
    return f"pid={os.getpid()} thread={threading.get_ident()}"


@dataclass(frozen=True)
class LockToken:
    """Proof of a held lock, returned by acquire() and consumed by release()."""

    ledger_path: Path
    marker_path: Path
    owner: str


def acquire(
    path: Path,
    max_retries: int = DEFAULT_MAX_RETRIES,
    delay: float = DEFAULT_DELAY_SECONDS,
) -> LockToken:
    """Create the lock marker for ``path``, retrying up to ``max_retries`` times.

    Args:
        path: Ledger file to lock (the marker lives beside it)
        max_retries: Number of creation attempts before giving up
        delay: Seconds to wait after each failed attempt

    Returns:
        LockToken for release()

    Raises:
        LockTimeout: If the marker still exists after every attempt
    """
    marker = lock_path_for(path)
    marker.parent.mkdir(parents=True, exist_ok=True)
    owner = _owner_id()
    attempts = max(1, max_retries)

    for attempt in range(1, attempts + 1):
        try:
            fd = os.open(marker, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            logger.debug(f"Lock busy on {path} (attempt {attempt}/{attempts})")
            time.sleep(delay)
            continue

        try:
            os.write(fd, owner.encode("utf-8"))
        except OSError:
            os.close(fd)
            marker.unlink(missing_ok=True)
            raise
        os.close(fd)
        return LockToken(ledger_path=path, marker_path=marker, owner=owner)

    logger.warning(f"Giving up on lock for {path} after {attempts} attempt(s)")
    raise LockTimeout(path, attempts)


def release(token: LockToken) -> None:
    """Remove the lock marker. Never raises."""
    try:
        token.marker_path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to release lock {token.marker_path}: {e}")


@contextlib.contextmanager
def held_lock(
    path: Path,
    max_retries: int = DEFAULT_MAX_RETRIES,
    delay: float = DEFAULT_DELAY_SECONDS,
) -> Iterator[LockToken]:
    """Hold the lock for ``path`` for the duration of the block."""
    token = acquire(path, max_retries=max_retries, delay=delay)
    try:
        yield token
    finally:
        release(token)


def read_owner(path: Path) -> str | None:
    """Return the owner written into the marker for ``path``, or None if unlocked."""
    try:
        return lock_path_for(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def clear_stale_lock(path: Path) -> bool:
    """Remove a leftover marker for ``path``. Returns True if one was removed."""
    marker = lock_path_for(path)
    try:
        marker.unlink()
    except FileNotFoundError:
        return False
    logger.warning(f"Cleared lock marker {marker}")
    return True
