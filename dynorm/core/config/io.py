from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None

    @property
    def missing(self) -> bool:
        return self.error == "missing"


def read_json_file(path: str) -> ReadResult:
    """Read a JSON object file. Never raises; failures come back as ReadResult.error."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except FileNotFoundError:
        return ReadResult(ok=False, data={}, error="missing")
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_json:{e}")
    except (OSError, UnicodeDecodeError) as e:
        return ReadResult(ok=False, data={}, error=str(e))
    if not isinstance(obj, dict):
        return ReadResult(ok=False, data={}, error="not_object")
    return ReadResult(ok=True, data=obj)


def _stash(path: str, backups_dir: str, tag: str, *, move: bool) -> Optional[str]:
    """Copy or move path to backups/<name>.<utc ts>.<tag>.json."""
    if not os.path.isfile(path):
        return None
    os.makedirs(backups_dir, exist_ok=True)
    stamp = time.strftime("%Y%m%d_%H%M%S", time.gmtime())
    dest = os.path.join(backups_dir, f"{os.path.basename(path)}.{stamp}.{tag}.json")
    try:
        if move:
            shutil.move(path, dest)
        else:
            shutil.copy2(path, dest)
    except OSError:
        return None
    return dest


def _prune_backups(name: str, backups_dir: str, keep: int) -> None:
    prefix = f"{name}."
    try:
        entries = [os.path.join(backups_dir, f) for f in os.listdir(backups_dir) if f.startswith(prefix)]
    except OSError:
        return
    entries.sort(key=os.path.getmtime, reverse=True)
    for stale in entries[max(keep, 0):]:
        try:
            os.remove(stale)
        except OSError:
            pass


def atomic_write_json(path: str, data: Dict[str, Any], backups_dir: str, *, max_backups: int = 10) -> None:
    """
    Write data to path via temp file + os.replace.
    The previous version (if any) is kept under backups_dir, newest max_backups per file.
    """
    target_dir = os.path.dirname(path) or "."
    os.makedirs(target_dir, exist_ok=True)
    os.makedirs(backups_dir, exist_ok=True)
    if _stash(path, backups_dir, "prewrite", move=False):
        _prune_backups(os.path.basename(path), backups_dir, max_backups)

    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=target_dir)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            f.write("\n")
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


def quarantine_corrupt(path: str, backups_dir: str) -> Optional[str]:
    """Move an unreadable config file aside. Returns its new path, or None when nothing moved."""
    return _stash(path, backups_dir, "corrupt", move=True)
