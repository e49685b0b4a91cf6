"""Pre-mutation snapshots of ledger files.

Backups are best-effort: any failure is logged and the caller's mutation goes
ahead. Snapshots are never pruned.
"""

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def snapshot_name(path: Path, now: Optional[datetime] = None) -> str:
    """Build ``<basename>.<timestamp>.bak`` with a filesystem-safe ISO timestamp."""
    now = now or datetime.now(timezone.utc)
    stamp = now.isoformat().replace(":", "-").replace(".", "-")
    return f"{path.name}.{stamp}.bak"


def snapshot(path: Path, backups_dir: Path) -> Optional[Path]:
    """Copy the current bytes of ``path`` into ``backups_dir``.

    Args:
        path: Ledger file about to be mutated
        backups_dir: Directory that collects snapshots

    Returns:
        Path of the new snapshot, or None if ``path`` does not exist yet or
        the copy failed
    """
    if not path.exists():
        return None

    try:
        backups_dir.mkdir(parents=True, exist_ok=True)
        target = backups_dir / snapshot_name(path)
        shutil.copyfile(path, target)
    except OSError as e:
        logger.warning(f"Backup of {path} failed, continuing without snapshot: {e}")
        return None

    logger.debug(f"Snapshot {path} -> {target}")
    return target


def list_snapshots(backups_dir: Path, ledger_name: Optional[str] = None) -> list[Path]:
    """Snapshots in ``backups_dir`` (optionally for one ledger), oldest first."""
    if not backups_dir.exists():
        return []
    pattern = f"{ledger_name}.*.bak" if ledger_name else "*.bak"
    return sorted(backups_dir.glob(pattern))
