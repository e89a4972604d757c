from __future__ import annotations

import json
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from dynorm.core.errors import NotFoundError
from dynorm.core.modules.identifiers import validate_field_name, validate_model_name
from dynorm.core.modules.models import CreateModelTableImpact, ModelDefinition, ModuleDescriptor, impact_payload
from dynorm.core.query.engine import QueryEngine
from dynorm.core.query.filters import matches
from dynorm.core.query.models import QueryOptions
from dynorm.core.storage.base import OpResult, StoreProvider
from dynorm.core.storage.impacts import apply_impact_to_model
from dynorm.core.storage.records import DynamicRecord, apply_required_defaults, make_record, utc_now


def _iso(dt: datetime) -> str:
    return dt.isoformat()


def view_name_for(model_name: str) -> str:
    return "dm_" + model_name.replace(".", "_")


class SqliteStore(StoreProvider):
    """
    SQLite provider (stdlib sqlite3).

    NOTES:
    - records live in one table as JSON documents; per-model views and
      expression indexes are created by createModelTable / addIndex impacts
    - one connection in autocommit mode; begin_transaction() opens an explicit
      transaction that spans every write until commit()/rollback()
    - identifiers reaching DDL are re-validated against [A-Za-z0-9_.]
    """

    name = "sqlite"

    def __init__(self, *, db_path: str, logger: Any = None):
        self.db_path = str(db_path)
        self.logger = logger
        self._lock = threading.RLock()
        self._in_tx = False
        self._initialized = False
        if self.db_path != ":memory:":
            os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            try:
                self._conn.execute("PRAGMA journal_mode=WAL;")
                self._conn.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.DatabaseError as e:
                if self.logger:
                    self.logger.warning(f"sqlite pragmas not applied: {e}")
        self._engine = QueryEngine(self._source)

    # ---- setup ----
    def init(self) -> None:
        with self._lock:
            c = self._conn
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS dynorm_models (
                  name TEXT PRIMARY KEY,
                  module TEXT,
                  definition TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS dynorm_records (
                  id TEXT PRIMARY KEY,
                  model TEXT NOT NULL,
                  data TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_dynorm_records_model ON dynorm_records(model);")
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS dynorm_managed_schema (
                  name TEXT PRIMARY KEY,
                  module TEXT NOT NULL,
                  version TEXT NOT NULL,
                  definition TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS dynorm_schema_changes (
                  change_id INTEGER PRIMARY KEY AUTOINCREMENT,
                  ts TEXT NOT NULL,
                  model TEXT NOT NULL,
                  module TEXT NOT NULL,
                  version TEXT NOT NULL,
                  operation TEXT NOT NULL,
                  change TEXT NOT NULL
                )
                """
            )
            self._initialized = True

    def _ensure_init(self) -> None:
        if not self._initialized:
            self.init()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ---- transactions ----
    def begin_transaction(self) -> OpResult:
        self._ensure_init()
        with self._lock:
            if self._in_tx:
                return OpResult.failure("begin_transaction", "transaction already open")
            self._conn.execute("BEGIN")
            self._in_tx = True
        return OpResult.success("begin_transaction")

    def commit(self) -> OpResult:
        with self._lock:
            if not self._in_tx:
                return OpResult.failure("commit", "no open transaction")
            self._conn.execute("COMMIT")
            self._in_tx = False
        return OpResult.success("commit")

    def rollback(self) -> OpResult:
        with self._lock:
            if not self._in_tx:
                return OpResult.failure("rollback", "no open transaction")
            self._in_tx = False
            self._conn.execute("ROLLBACK")
        if self.logger:
            self.logger.info("sqlite store: transaction rolled back")
        return OpResult.success("rollback")

    @property
    def in_transaction(self) -> bool:
        return self._in_tx

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """
        Run writes inside the caller's transaction when one is open,
        otherwise in a transaction of their own.
        """
        self._ensure_init()
        with self._lock:
            own = not self._in_tx
            if own:
                self._conn.execute("BEGIN")
            try:
                yield self._conn
            except BaseException:
                if own:
                    self._conn.execute("ROLLBACK")
                raise
            else:
                if own:
                    self._conn.execute("COMMIT")

    # ---- schema ----
    def _load_model(self, model_name: str) -> Optional[ModelDefinition]:
        row = self._conn.execute("SELECT definition FROM dynorm_models WHERE name = ?", (model_name,)).fetchone()
        if row is None:
            return None
        return ModelDefinition.model_validate_json(row["definition"])

    def _save_model(self, conn: sqlite3.Connection, model: ModelDefinition) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO dynorm_models(name, module, definition, updated_at) VALUES (?, ?, ?, ?)",
            (model.name, model.module, model.model_dump_json(), _iso(utc_now())),
        )

    def register_model(self, model: ModelDefinition) -> None:
        validate_model_name(model.name)
        stored = model.model_copy(deep=True)
        if stored.module is None:
            stored.module = stored.name
        with self._write() as conn:
            self._save_model(conn, stored)

    def apply_impact(self, module: ModuleDescriptor, impact: Any) -> None:
        with self._write() as conn:
            current = self._load_model(impact.target_model)
            if current is None:
                raise NotFoundError(f"Model not found: {impact.target_model}", model=impact.target_model, module=module.name)
            outcome = apply_impact_to_model(current, impact)
            if outcome.index is not None:
                self._create_index(conn, current.name, outcome.index)
            if isinstance(impact, CreateModelTableImpact):
                self._create_view(conn, current.name)
            if outcome.changed:
                self._save_model(conn, outcome.model)

    def _create_index(self, conn: sqlite3.Connection, model_name: str, index: Dict[str, Any]) -> None:
        model_name = validate_model_name(model_name)
        field_name = validate_field_name(index["field"])
        index_name = validate_field_name(index["name"])
        unique = "UNIQUE " if index.get("unique") else ""
        if field_name == "id":
            expr = "id"
        else:
            expr = f"json_extract(data, '$.\"{field_name}\"')"
        conn.execute(
            f'CREATE {unique}INDEX IF NOT EXISTS "{index_name}" ON dynorm_records({expr}) '
            f"WHERE model = '{model_name}'"
        )

    def _create_view(self, conn: sqlite3.Connection, model_name: str) -> None:
        model_name = validate_model_name(model_name)
        conn.execute(
            f'CREATE VIEW IF NOT EXISTS "{view_name_for(model_name)}" AS '
            f"SELECT id, data, created_at, updated_at FROM dynorm_records WHERE model = '{model_name}'"
        )

    def get_model_definition(self, model_name: str) -> Optional[ModelDefinition]:
        self._ensure_init()
        with self._lock:
            return self._load_model(model_name)

    def list_models(self) -> List[ModelDefinition]:
        self._ensure_init()
        with self._lock:
            rows = self._conn.execute("SELECT definition FROM dynorm_models ORDER BY rowid").fetchall()
        return [ModelDefinition.model_validate_json(r["definition"]) for r in rows]

    def upsert_managed_schema(self, model: ModelDefinition, module: ModuleDescriptor) -> OpResult:
        with self._write() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO dynorm_managed_schema(name, module, version, definition, updated_at) VALUES (?, ?, ?, ?, ?)",
                (model.name, module.name, module.version, model.model_dump_json(), _iso(utc_now())),
            )
        return OpResult.success("upsert_managed_schema")

    def get_managed_schema(self, model_name: str) -> Optional[ModelDefinition]:
        self._ensure_init()
        with self._lock:
            row = self._conn.execute("SELECT definition FROM dynorm_managed_schema WHERE name = ?", (model_name,)).fetchone()
        if row is None:
            return None
        return ModelDefinition.model_validate_json(row["definition"])

    def log_schema_change(self, model_name: str, change: Any, module: ModuleDescriptor, operation: str) -> OpResult:
        payload = impact_payload(change) if hasattr(change, "model_dump") else dict(change or {})
        with self._write() as conn:
            conn.execute(
                "INSERT INTO dynorm_schema_changes(ts, model, module, version, operation, change) VALUES (?, ?, ?, ?, ?, ?)",
                (_iso(utc_now()), model_name, module.name, module.version, operation, json.dumps(payload, ensure_ascii=False)),
            )
        return OpResult.success("log_schema_change")

    def list_schema_changes(self, model_name: Optional[str] = None) -> List[Dict[str, Any]]:
        self._ensure_init()
        sql = "SELECT ts, model, module, version, operation, change FROM dynorm_schema_changes"
        params: List[Any] = []
        if model_name is not None:
            sql += " WHERE model = ?"
            params.append(model_name)
        sql += " ORDER BY change_id"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [
            {
                "ts": r["ts"],
                "model": r["model"],
                "module": r["module"],
                "version": r["version"],
                "operation": r["operation"],
                "change": json.loads(r["change"]),
            }
            for r in rows
        ]

    def list_objects(self, kind: str = "index") -> List[str]:
        """Names of SQLite schema objects (index|view|table) created so far."""
        self._ensure_init()
        with self._lock:
            rows = self._conn.execute("SELECT name FROM sqlite_master WHERE type = ? ORDER BY name", (kind,)).fetchall()
        return [r["name"] for r in rows]

    # ---- records ----
    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> DynamicRecord:
        return DynamicRecord(
            id=row["id"],
            model=row["model"],
            data=json.loads(row["data"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _require_model(self, model_name: str) -> ModelDefinition:
        model = self._load_model(model_name)
        if model is None:
            raise NotFoundError(f"Model not found: {model_name}", model=model_name)
        return model

    def _source(self, model_name: str) -> List[DynamicRecord]:
        self._ensure_init()
        with self._lock:
            self._require_model(model_name)
            rows = self._conn.execute(
                "SELECT id, model, data, created_at, updated_at FROM dynorm_records WHERE model = ? ORDER BY rowid",
                (model_name,),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def create_record(self, model_name: str, data: Dict[str, Any], *, record_id: Optional[str] = None) -> DynamicRecord:
        with self._write() as conn:
            model = self._require_model(model_name)
            rec = make_record(model_name, apply_required_defaults(model, data), record_id=record_id)
            conn.execute(
                "INSERT INTO dynorm_records(id, model, data, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (rec.id, rec.model, json.dumps(rec.data, ensure_ascii=False, default=str), _iso(rec.created_at), _iso(rec.updated_at)),
            )
        return rec

    def get_record_by_id(self, record_id: str) -> Optional[DynamicRecord]:
        self._ensure_init()
        with self._lock:
            row = self._conn.execute(
                "SELECT id, model, data, created_at, updated_at FROM dynorm_records WHERE id = ?",
                (record_id,),
            ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def get_records(self, model_name: str, options: Optional[QueryOptions] = None) -> List[DynamicRecord]:
        return self._engine.run(model_name, options)

    def update_record(self, record_id: str, data: Dict[str, Any]) -> DynamicRecord:
        with self._write() as conn:
            cur = conn.execute(
                "UPDATE dynorm_records SET data = ?, updated_at = ? WHERE id = ?",
                (json.dumps(dict(data), ensure_ascii=False, default=str), _iso(utc_now()), record_id),
            )
            if int(cur.rowcount or 0) == 0:
                raise NotFoundError("Record not found", record_id=record_id)
        rec = self.get_record_by_id(record_id)
        if rec is None:
            raise NotFoundError("Record not found", record_id=record_id)
        return rec

    def delete_record(self, record_id: str) -> None:
        with self._write() as conn:
            cur = conn.execute("DELETE FROM dynorm_records WHERE id = ?", (record_id,))
            if int(cur.rowcount or 0) == 0:
                raise NotFoundError("Record not found", record_id=record_id)

    def delete_records(self, model_name: str, options: Optional[QueryOptions] = None) -> int:
        where = options.where if options is not None else []
        doomed = [r.id for r in self._source(model_name) if matches(r, where)]
        with self._write() as conn:
            for rid in doomed:
                conn.execute("DELETE FROM dynorm_records WHERE id = ?", (rid,))
        return len(doomed)

    def upsert_record(self, model_name: str, record_id: Optional[str], data: Dict[str, Any]) -> DynamicRecord:
        if record_id is not None and self.get_record_by_id(record_id) is not None:
            return self.update_record(record_id, data)
        return self.create_record(model_name, data, record_id=record_id)
