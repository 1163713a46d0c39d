"""
Tests for request-derived audit helpers.
"""

import asyncio

import pytest

from careaudit.core.clock import ManualClock
from careaudit.core.entry import Resource
from careaudit.core.errors import StorageError
from careaudit.core.events import AuditEventType
from careaudit.log.memory_store import MemoryAuditStore
from careaudit.request import (
    RequestInfo,
    auth_event_type,
    event_type_for_method,
    record_auth_event,
    record_data_access,
    resource_from_path,
)
from careaudit.writer import AuditLogWriter


class FailingStore(MemoryAuditStore):
    async def insert(self, entry, expected_prev_hash=None):
        raise StorageError("database unavailable")


def _writer(store=None):
    return AuditLogWriter(store or MemoryAuditStore(), clock=ManualClock())


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/api/v2/clients/42", Resource("clients", "42")),
        ("/api/v1/visits", Resource("visits", None)),
        ("/clients/42/notes", Resource("clients", "42")),
        ("/api", Resource()),
        ("/", Resource()),
        ("/api/version/3", Resource("version", "3")),
    ],
)
def test_resource_from_path(path, expected):
    assert resource_from_path(path) == expected


def test_event_type_for_method():
    assert event_type_for_method("GET") is AuditEventType.DATA_ACCESS
    assert event_type_for_method("post") is AuditEventType.DATA_MODIFICATION
    assert event_type_for_method("PATCH") is AuditEventType.DATA_MODIFICATION
    assert event_type_for_method("DELETE") is AuditEventType.DATA_DELETION
    assert event_type_for_method("HEAD") is AuditEventType.DATA_ACCESS


def test_auth_event_type():
    assert auth_event_type(RequestInfo("POST", "/api/auth/login", 200)) is AuditEventType.LOGIN_SUCCESS
    assert auth_event_type(RequestInfo("POST", "/api/auth/login", 401)) is AuditEventType.LOGIN_FAILURE
    assert auth_event_type(RequestInfo("POST", "/api/auth/logout", 200)) is AuditEventType.LOGOUT
    assert auth_event_type(RequestInfo("GET", "/api/v2/clients", 200)) is None


def test_record_failed_login_keeps_attempted_username():
    request = RequestInfo(
        "POST",
        "/api/auth/login",
        401,
        ip_address="203.0.113.9",
        user_agent="Mozilla/5.0",
        body_username="amy",
    )

    entry = asyncio.run(record_auth_event(_writer(), request))

    assert entry.event_type is AuditEventType.LOGIN_FAILURE
    assert entry.actor_user_id is None
    assert entry.source_ip == "203.0.113.9"
    assert entry.details == {
        "attempted_username": "amy",
        "method": "POST",
        "path": "/api/auth/login",
        "status_code": 401,
    }


def test_record_auth_event_ignores_other_paths():
    store = MemoryAuditStore()

    assert asyncio.run(record_auth_event(_writer(store), RequestInfo("GET", "/api/v2/clients", 200))) is None
    assert asyncio.run(store.count()) == 0


def test_record_data_access():
    request = RequestInfo(
        "DELETE", "/api/v2/clients/42", 204, user_id=3, username="bob", query={"hard": "true"}
    )

    entry = asyncio.run(record_data_access(_writer(), request))

    assert entry.event_type is AuditEventType.DATA_DELETION
    assert (entry.resource_type, entry.resource_id) == ("clients", "42")
    assert entry.actor_username == "bob"
    assert entry.details["query"] == {"hard": "true"}


@pytest.mark.parametrize(
    "request_info",
    [
        RequestInfo("OPTIONS", "/api/v2/clients", 204),
        RequestInfo("GET", "/api/v2/health", 200),
        RequestInfo("GET", "/api/v2/monitoring/metrics", 200),
        RequestInfo("GET", "/api/v2/clients/42", 404),
        RequestInfo("POST", "/api/v2/clients", 500),
    ],
)
def test_record_data_access_skips(request_info):
    store = MemoryAuditStore()

    assert asyncio.run(record_data_access(_writer(store), request_info)) is None
    assert asyncio.run(store.count()) == 0


def test_write_failure_is_logged_and_reraised(caplog):
    request = RequestInfo("GET", "/api/v2/clients", 200, request_id="req-1")

    with caplog.at_level("ERROR", logger="careaudit.request"):
        with pytest.raises(StorageError):
            asyncio.run(record_data_access(_writer(FailingStore()), request))

    assert "Error creating audit log for GET /api/v2/clients" in caplog.text
