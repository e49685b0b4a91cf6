"""Pytest fixtures for registry store tests."""

import pytest

from civreg.config import RegistryConfig
from civreg.models.records import ACCOUNTS, BIRTH_RECORDS
from civreg.paths import StorePaths, open_ledger


@pytest.fixture
def store_dir(tmp_path):
    """Empty registry_data directory under tmp_path."""
    data_dir = tmp_path / "registry_data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def store_config(store_dir):
    """RegistryConfig pointing at the temporary data directory, with a fast lock policy."""
    return RegistryConfig(data_dir=store_dir, lock_max_retries=2000, lock_delay_seconds=0.002)


@pytest.fixture
def store_paths(store_config):
    """StorePaths for the temporary data directory, with directories created."""
    paths = StorePaths.from_config(store_config)
    for directory in paths.get_all_directories():
        directory.mkdir(parents=True, exist_ok=True)
    return paths


@pytest.fixture
def accounts_ledger(store_config, store_paths):
    return open_ledger(store_config, ACCOUNTS)


@pytest.fixture
def birth_ledger(store_config, store_paths):
    return open_ledger(store_config, BIRTH_RECORDS)
