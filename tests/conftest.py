from __future__ import annotations

import logging
import os

import pytest

from dynorm.core.config.manager import ConfigManager
from dynorm.core.config.paths import ConfigFsPaths
from dynorm.core.storage.memory import MemoryStore
from dynorm.core.storage.sqlite import SqliteStore


@pytest.fixture
def tmp_config_root(tmp_path):
    """
    Provides an isolated repo root with config/ under tmp_path.
    """
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    return fs


@pytest.fixture
def config_manager(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=None, read_only=False)
    cm.load_all()
    return cm


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SqliteStore(db_path=str(tmp_path / "data" / "dynorm.sqlite3"))
    store.init()
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        store = MemoryStore()
    else:
        store = SqliteStore(db_path=str(tmp_path / "store.sqlite3"))
    store.init()
    yield store
    store.close()


@pytest.fixture(autouse=True)
def _reset_dynorm_logger():
    """setup_logging() attaches handlers to a process-wide logger; detach them after each test."""
    yield
    logger = logging.getLogger("dynorm")
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
