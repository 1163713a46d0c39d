"""
Tests for structured logging and Prometheus metrics.
"""

import asyncio
import json
import logging
from dataclasses import replace

import pytest
from prometheus_client import REGISTRY

from careaudit.core.clock import ManualClock
from careaudit.log.memory_store import MemoryAuditStore
from careaudit.logging_config import get_logger, setup_logging
from careaudit.metrics import init_metrics
from careaudit.verify import IntegrityVerifier
from careaudit.writer import AuditLogWriter


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_json_logs_carry_trace_id(capsys, restore_root_logging):
    setup_logging(level="INFO", fmt="json")

    get_logger("careaudit.test", trace_id="req-42").info("recorded")
    logging.getLogger("careaudit.test").info("no trace")

    lines = [json.loads(line) for line in capsys.readouterr().err.splitlines()]
    assert lines[0]["message"] == "recorded"
    assert lines[0]["trace_id"] == "req-42"
    assert lines[0]["level"] == "INFO"
    assert lines[1]["trace_id"] == "N/A"


def test_text_format(capsys, restore_root_logging):
    setup_logging(level="WARNING", fmt="text")

    logging.getLogger("careaudit.test").info("hidden")
    logging.getLogger("careaudit.test").warning("shown")

    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "WARNING - shown [trace_id=N/A]" in err


def test_init_metrics_is_idempotent():
    init_metrics()
    init_metrics()


def test_append_and_failure_counters():
    init_metrics()
    writer = AuditLogWriter(MemoryAuditStore(), clock=ManualClock())
    appends_before = _sample("careaudit_appends_total", {"event_type": "system_backup"})
    invalid_before = _sample("careaudit_append_failures_total", {"reason": "invalid"})

    asyncio.run(writer.append("system_backup"))
    with pytest.raises(ValueError):
        asyncio.run(writer.append("no_such_event"))

    assert _sample("careaudit_appends_total", {"event_type": "system_backup"}) == appends_before + 1
    assert _sample("careaudit_append_failures_total", {"reason": "invalid"}) == invalid_before + 1


def test_verification_counters():
    init_metrics()
    store = MemoryAuditStore()
    writer = AuditLogWriter(store, clock=ManualClock())
    entry = asyncio.run(writer.append("data_export"))
    store._entries[0] = replace(entry, action="edited")
    runs_before = _sample("careaudit_verify_runs_total")
    broken_before = _sample("careaudit_verify_broken_entries_total")

    asyncio.run(IntegrityVerifier(store, writer.hasher).verify_chain())

    assert _sample("careaudit_verify_runs_total") == runs_before + 1
    assert _sample("careaudit_verify_broken_entries_total") == broken_before + 1
