"""
Install module manifests into a store.

Usage:
  python scripts/install_modules.py [--db PATH] [--root DIR] [--modules-dir DIR] [--dry-run] MANIFEST...

Without --db the backend comes from config/store.json (memory by default).
"""

from __future__ import annotations

import argparse
import os
from typing import List, Optional

from dynorm.core.config import ConfigFsPaths, ConfigManager
from dynorm.core.errors import DynormError
from dynorm.core.events import EventLogger
from dynorm.core.logger import setup_logging
from dynorm.core.modules.cli import error_lines, plan_lines, report_lines
from dynorm.core.modules.loader import load_manifest_dir, load_manifest_file
from dynorm.core.modules.manager import ModuleManager
from dynorm.core.modules.models import ModuleManifest
from dynorm.core.storage.factory import open_store


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="dynorm module installer")
    ap.add_argument("manifests", nargs="*", help="Paths to module.json files")
    ap.add_argument("--db", default=None, help="SQLite database path (overrides config/store.json)")
    ap.add_argument("--root", default=".", help="Root directory holding config/, data/ and logs/")
    ap.add_argument("--modules-dir", default=None, help="Also load <dir>/<module>/module.json")
    ap.add_argument("--dry-run", action="store_true", help="Validate and print the plan without installing")
    args = ap.parse_args(argv)

    fs = ConfigFsPaths(args.root)
    try:
        cm = ConfigManager(fs=fs, logger=None)
        cfg = cm.load_all()
    except DynormError as e:
        for line in error_lines(e):
            print(line)
        return 1

    log_cfg = cfg.logging.model_copy(update={"log_dir": os.path.join(args.root, cfg.logging.log_dir)})
    logger = setup_logging(config=log_cfg)
    events = EventLogger(os.path.join(args.root, cfg.installer.event_log_path))
    manager = ModuleManager(config=cfg.installer, logger=logger, event_logger=events)

    provider = None
    try:
        manifests: List[ModuleManifest] = [load_manifest_file(p) for p in args.manifests]
        if args.modules_dir:
            manifests.extend(load_manifest_dir(args.modules_dir))
        if not manifests:
            print("No manifests given.")
            return 1

        ordered = manager.resolve_order(manifests)
        for line in plan_lines(ordered):
            print(line)
        if args.dry_run:
            return 0

        provider = open_store(cfg.store, root=args.root, db_path=args.db, logger=logger)
        report = manager.install(ordered, provider, trace_id="cli")
        for line in report_lines(report):
            print(line)
        return 0
    except DynormError as e:
        for line in error_lines(e):
            print(line)
        return 1
    finally:
        if provider is not None:
            provider.close()


if __name__ == "__main__":
    raise SystemExit(main())
