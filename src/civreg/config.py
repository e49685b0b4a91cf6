"""Configuration management for the registry store."""

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from .locking import DEFAULT_DELAY_SECONDS, DEFAULT_MAX_RETRIES
from .similarity import DEFAULT_LIMIT, DEFAULT_THRESHOLD


def _find_repo_root(start_dir: Path) -> Path:
    """Nearest directory at or above start_dir holding .git or pyproject.toml."""
    for candidate in (start_dir, *start_dir.parents):
        if any((candidate / marker).exists() for marker in (".git", "pyproject.toml")):
            return candidate
    return start_dir


def _load_repo_config_data(repo_root: Path) -> Optional[dict]:
    """Load repo config data from .civreg/config.toml if it exists."""
    config_file = repo_root / ".civreg" / "config.toml"

    if not config_file.exists():
        return None

    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError:
        # If config file is malformed, ignore it
        return None


def _store_section(data: Optional[dict]) -> dict[str, Any]:
    if not data:
        return {}
    section = data.get("store")
    return section if isinstance(section, dict) else {}


class RegistryConfig(BaseModel):
    """Where the ledgers live and how they are locked and searched."""

    data_dir: Path = Field(default_factory=lambda: Path("./registry_data"))
    accounts_file: str = Field(default="Users_Accounts_Information.csv")
    birth_records_file: str = Field(default="Birth_Records.csv")
    backups_dir_name: str = Field(default="backups")

    lock_max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    lock_delay_seconds: float = Field(default=DEFAULT_DELAY_SECONDS, ge=0.0)

    search_threshold: float = Field(default=DEFAULT_THRESHOLD, ge=0.0, le=1.0)
    search_limit: int = Field(default=DEFAULT_LIMIT, ge=1)

    model_config = {"frozen": False}

    @classmethod
    def from_env(cls, cli_data_dir: Optional[str] = None) -> "RegistryConfig":
        """Load configuration with the following precedence:

        1. CLI --data-dir option (data directory only)
        2. CIVREG_* environment variables
        3. repo-local .civreg/config.toml, [store] table
        4. Defaults

        Args:
            cli_data_dir: Data directory from the CLI (highest precedence)
        """
        section = _store_section(_load_repo_config_data(_find_repo_root(Path.cwd())))
        defaults = cls()

        def pick(key: str, env: str, default: Any) -> Any:
            if env in os.environ:
                return os.environ[env]
            return section.get(key, default)

        data_dir = cli_data_dir or pick("data_dir", "CIVREG_DATA_DIR", str(defaults.data_dir))

        return cls(
            data_dir=Path(str(data_dir)).expanduser(),
            accounts_file=pick("accounts_file", "CIVREG_ACCOUNTS_FILE", defaults.accounts_file),
            birth_records_file=pick("birth_records_file", "CIVREG_BIRTH_RECORDS_FILE", defaults.birth_records_file),
            backups_dir_name=pick("backups_dir", "CIVREG_BACKUPS_DIR", defaults.backups_dir_name),
            lock_max_retries=int(pick("lock_max_retries", "CIVREG_LOCK_MAX_RETRIES", defaults.lock_max_retries)),
            lock_delay_seconds=float(pick("lock_delay_seconds", "CIVREG_LOCK_DELAY_SECONDS", defaults.lock_delay_seconds)),
            search_threshold=float(pick("search_threshold", "CIVREG_SEARCH_THRESHOLD", defaults.search_threshold)),
            search_limit=int(pick("search_limit", "CIVREG_SEARCH_LIMIT", defaults.search_limit)),
        )
