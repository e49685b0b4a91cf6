"""Path management for the registry data directory."""

from pathlib import Path

from .config import RegistryConfig
from .ledger import Ledger
from .locking import lock_path_for
from .models.records import ACCOUNTS, BIRTH_RECORDS, LedgerLayout


class StorePaths:
    """Manages paths within a registry data directory."""

    def __init__(self, data_dir: Path, accounts_file: str, birth_records_file: str, backups_dir_name: str = "backups"):
        self.root = data_dir
        self.accounts_file = data_dir / accounts_file
        self.birth_records_file = data_dir / birth_records_file
        self.backups = data_dir / backups_dir_name

    @classmethod
    def from_config(cls, config: RegistryConfig) -> "StorePaths":
        """Create StorePaths from a RegistryConfig."""
        return cls(
            config.data_dir,
            config.accounts_file,
            config.birth_records_file,
            config.backups_dir_name,
        )

    def get_all_directories(self) -> list[Path]:
        """Directories that should exist in the data directory."""
        return [self.root, self.backups]

    def ledger_file(self, layout: LedgerLayout) -> Path:
        if layout is ACCOUNTS:
            return self.accounts_file
        if layout is BIRTH_RECORDS:
            return self.birth_records_file
        raise ValueError(f"Unknown ledger: {layout.name}")

    def lock_file(self, layout: LedgerLayout) -> Path:
        return lock_path_for(self.ledger_file(layout))


def open_ledger(config: RegistryConfig, layout: LedgerLayout) -> Ledger:
    """Build a Ledger for ``layout`` using the paths and lock policy in ``config``."""
    paths = StorePaths.from_config(config)
    return Ledger(
        paths.ledger_file(layout),
        layout,
        backups_dir=paths.backups,
        lock_max_retries=config.lock_max_retries,
        lock_delay=config.lock_delay_seconds,
    )
