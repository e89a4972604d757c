from __future__ import annotations

from dynorm.core.config.manager import ConfigManager
from dynorm.core.config.models import DynormConfig, InstallerConfig, LoggingConfig, StoreConfig
from dynorm.core.config.paths import ConfigFsPaths

__all__ = [
    "ConfigFsPaths",
    "ConfigManager",
    "DynormConfig",
    "InstallerConfig",
    "LoggingConfig",
    "StoreConfig",
]
