from __future__ import annotations

import json
import logging

from dynorm.core.config.models import LoggingConfig
from dynorm.core.errors import ImpactApplicationError, InstallationError
from dynorm.core.events import EventLogger
from dynorm.core.logger import setup_logging
from .helpers.log_assertions import assert_no_secret_leak, read_jsonl


def test_event_logger_appends_jsonl_with_redaction(tmp_path):
    path = str(tmp_path / "logs" / "events.jsonl")
    ev = EventLogger(path)
    ev.log("t1", "module.installed", {"module": "crm", "token": "SECRET", "nested": {"password": "SECRET"}})
    ev.log("t2", "module.installed", {"module": "sales"})

    rows = read_jsonl(path)
    assert [r["trace_id"] for r in rows] == ["t1", "t2"]
    assert rows[0]["event"] == "module.installed"
    assert_no_secret_leak(rows, "SECRET")
    assert ev.read_all() == rows


def test_error_to_dict_redacts_context():
    err = InstallationError("boom", module="crm", api_key="SECRET")
    d = err.to_dict()
    assert d["code"] == "installation_error"
    assert d["user_message"] == "boom"
    assert d["context"]["module"] == "crm"
    assert "SECRET" not in json.dumps(d)


def test_impact_error_is_an_installation_error():
    err = ImpactApplicationError(module="crm", index=2, action="addIndex", reason="no field", target_model="contact")
    assert isinstance(err, InstallationError)
    assert err.code == "impact_failed"
    assert "#2" in str(err)
    assert "addIndex" in str(err)
    assert err.to_dict()["context"]["target_model"] == "contact"


def test_setup_logging_writes_rotating_file(tmp_path):
    log_dir = tmp_path / "logs"
    logger = setup_logging(config=LoggingConfig(log_dir=str(log_dir), level="debug"))
    try:
        assert logger.name == "dynorm"
        assert logger.level == logging.DEBUG
        logger.info("hello from test")
        for h in logger.handlers:
            h.flush()
        assert "hello from test" in (log_dir / "dynorm.log").read_text(encoding="utf-8")

        # Repeated setup does not stack handlers.
        count = len(logger.handlers)
        setup_logging(str(log_dir))
        assert len(logger.handlers) == count
    finally:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()


def test_event_logger_read_filters_by_event_and_module(tmp_path):
    ev = EventLogger(str(tmp_path / "events.jsonl"))
    ev.log("t1", "module.installed", {"module": "crm"})
    ev.log("t1", "impact.applied", {"module": "crm", "index": 0})
    ev.log("t1", "module.installed", {"module": "sales"})
    with open(ev.path, "a", encoding="utf-8") as f:
        f.write('{"event": "module.inst')

    assert [e["details"]["module"] for e in ev.read(event="module.installed")] == ["crm", "sales"]
    assert [e["event"] for e in ev.read(module="crm")] == ["module.installed", "impact.applied"]
    assert len(ev.read_all()) == 3


def test_redaction_covers_key_fragments_and_url_credentials(tmp_path):
    ev = EventLogger(str(tmp_path / "events.jsonl"))
    ev.log("t1", "store.opened", {"db_password": "SECRET", "url": "postgres://admin:SECRET@db:5432/app"})
    rows = read_jsonl(ev.path)
    assert_no_secret_leak(rows, "SECRET")
    assert rows[0]["details"]["url"] == "postgres://***REDACTED***@db:5432/app"
