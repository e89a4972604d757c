from __future__ import annotations

import os
from typing import Any, Optional

from dynorm.core.config.models import StoreBackend, StoreConfig
from dynorm.core.storage.base import StoreProvider
from dynorm.core.storage.memory import MemoryStore
from dynorm.core.storage.sqlite import SqliteStore


def open_store(cfg: Optional[StoreConfig] = None, *, root: str = ".", db_path: Optional[str] = None, logger: Any = None) -> StoreProvider:
    """
    Build the provider named by config/store.json.

    An explicit `db_path` always selects SQLite; relative sqlite paths resolve
    against `root`.
    """
    cfg = cfg or StoreConfig()
    if db_path:
        return SqliteStore(db_path=db_path, logger=logger)
    if cfg.backend == StoreBackend.sqlite:
        path = cfg.sqlite_path
        if not os.path.isabs(path):
            path = os.path.join(root, path)
        return SqliteStore(db_path=path, logger=logger)
    return MemoryStore(logger=logger)
