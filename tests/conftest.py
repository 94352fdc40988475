"""Shared pytest fixtures for ghostpass tests."""

from pathlib import Path
from typing import Generator

import pytest

MASTER_KEY = "hunter2"

CARRIER_SENTENCE = "The quick brown fox jumps over the lazy dog."


@pytest.fixture(autouse=True)
def fast_store_config():
    """Use cheap scrypt parameters so key derivation does not dominate test time."""
    from ghostpass.store.config import StoreConfig, set_store_config

    config = StoreConfig(scrypt_n=2**10, scrypt_r=8, scrypt_p=1)
    set_store_config(config)
    yield config
    set_store_config(None)


@pytest.fixture(autouse=True)
def key_guard():
    """Give every test a fresh key guard with no hooks installed."""
    from ghostpass.store.secure import KeyGuard

    KeyGuard.reset_instance()
    yield KeyGuard.get_instance()
    KeyGuard.reset_instance()


@pytest.fixture(autouse=True)
def settings(tmp_path: Path):
    """Point the global settings at a per-test workspace."""
    from ghostpass.config.settings import Settings, configure

    settings = Settings(workspace_dir=tmp_path / "workspace")
    configure(settings)
    yield settings
    configure(None)


@pytest.fixture
def workspace(settings) -> Path:
    """Provide the (created) workspace directory."""
    settings.workspace_dir.mkdir(parents=True, exist_ok=True)
    return settings.workspace_dir


@pytest.fixture
def manager(workspace: Path) -> Generator:
    """Provide a store manager over the test workspace."""
    from ghostpass.store import StoreManager

    manager = StoreManager(workspace)
    yield manager
    manager.close_all()


@pytest.fixture
def committed_store(manager) -> str:
    """Create a committed store named 'work' holding one field, then close it."""
    with manager.init("work", MASTER_KEY) as store:
        store.add_field("github", "alice", "pw1")
        store.commit()
    return "work"


@pytest.fixture
def corpus() -> str:
    """Carrier text large enough to hold a small store."""
    return " ".join([CARRIER_SENTENCE] * 200)
