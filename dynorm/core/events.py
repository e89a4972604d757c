from __future__ import annotations

import json
import os
import re
import threading
import time
from typing import Any, Dict, Iterable, List, Optional


# Matched as substrings of lower-cased keys, so "db_password" and "pg_dsn" are covered.
SENSITIVE_KEY_PARTS = ("password", "secret", "token", "api_key", "dsn", "authorization", "connection_string")
REDACTED = "***REDACTED***"

_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s:]+:[^/@\s]+@", re.IGNORECASE)


def _is_sensitive(key: Any) -> bool:
    k = str(key).lower()
    return any(part in k for part in SENSITIVE_KEY_PARTS)


def redact(obj: Any) -> Any:
    """
    Copy of obj with sensitive keys masked and user:pass@ stripped from URL strings.
    Used for event details and error context.
    """
    if isinstance(obj, dict):
        return {k: (REDACTED if _is_sensitive(k) else redact(v)) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [redact(x) for x in obj]
    if isinstance(obj, str) and "://" in obj:
        return _URL_CREDENTIALS.sub(lambda m: f"{m.group('scheme')}{REDACTED}@", obj)
    return obj


class EventLogger:
    """
    Append-only JSONL log of install events.

    Each line: {"ts", "trace_id", "event", "details"}. Details are redacted before writing.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def log(self, trace_id: str, event_type: str, details: Optional[Dict[str, Any]] = None) -> None:
        entry = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "trace_id": trace_id,
            "event": event_type,
            "details": redact(details or {}),
        }
        line = json.dumps(entry, ensure_ascii=False, default=str)
        with self._lock:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def read_all(self) -> List[Dict[str, Any]]:
        return list(self._iter_entries())

    def read(self, *, event: Optional[str] = None, module: Optional[str] = None) -> List[Dict[str, Any]]:
        """Entries for one event type and/or one module (details.module)."""
        out: List[Dict[str, Any]] = []
        for entry in self._iter_entries():
            if event is not None and entry.get("event") != event:
                continue
            if module is not None and (entry.get("details") or {}).get("module") != module:
                continue
            out.append(entry)
        return out

    def _iter_entries(self) -> Iterable[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    # torn tail line from a crashed writer
                    continue
                if isinstance(entry, dict):
                    yield entry
