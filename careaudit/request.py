"""
Request-derived audit helpers.

Framework-agnostic: a web layer fills in a RequestInfo after the response
status is known and hands it to one of the record_* coroutines. Whether a
failed audit write blocks the business action is the caller's policy;
these helpers log the failure and re-raise.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

from .core.entry import Actor, AuditLogEntry, Provenance, Resource
from .core.events import AuditEventType
from .logging_config import get_logger
from .writer import AuditLogWriter

DEFAULT_EXCLUDED_PREFIXES: Tuple[str, ...] = ("/api/v2/monitoring", "/api/v2/health")

_VERSION_SEGMENT = re.compile(r"^v\d+$")

_METHOD_EVENT_TYPES = {
    "GET": AuditEventType.DATA_ACCESS,
    "POST": AuditEventType.DATA_MODIFICATION,
    "PUT": AuditEventType.DATA_MODIFICATION,
    "PATCH": AuditEventType.DATA_MODIFICATION,
    "DELETE": AuditEventType.DATA_DELETION,
}


@dataclass
class RequestInfo:
    """
    What the audit layer needs to know about one HTTP request.

    Fields:
        method: HTTP method
        path: URL path without query string
        status_code: Response status
        user_id: Authenticated user id, if any
        username: Authenticated username, if any
        ip_address: Client address
        user_agent: User-Agent header
        query: Parsed query parameters
        body_username: Username submitted in a login body
        request_id: Correlation id for logs
    """
    method: str
    path: str
    status_code: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    query: Dict[str, Any] = field(default_factory=dict)
    body_username: Optional[str] = None
    request_id: Optional[str] = None


def resource_from_path(path: str) -> Resource:
    """
    Derive the affected resource from a URL path.

    /api/v2/clients/42 -> Resource("clients", "42")
    """
    parts = [p for p in path.split("/") if p]
    if parts and parts[0] == "api":
        parts = parts[1:]
        if parts and _VERSION_SEGMENT.match(parts[0]):
            parts = parts[1:]

    if not parts:
        return Resource()
    if len(parts) == 1:
        return Resource(type=parts[0])
    return Resource(type=parts[0], id=parts[1])


def event_type_for_method(method: str) -> AuditEventType:
    return _METHOD_EVENT_TYPES.get(method.upper(), AuditEventType.DATA_ACCESS)


def auth_event_type(request: RequestInfo) -> Optional[AuditEventType]:
    """Classify an authentication request; None if it is not one."""
    if "/auth/login" in request.path:
        if request.status_code == 200:
            return AuditEventType.LOGIN_SUCCESS
        return AuditEventType.LOGIN_FAILURE
    if "/auth/logout" in request.path:
        return AuditEventType.LOGOUT
    return None


async def record_request(
    writer: AuditLogWriter,
    request: RequestInfo,
    event_type: AuditEventType,
    action: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLogEntry:
    """
    Append an entry whose actor, provenance and resource come from request.

    Raises:
        Whatever AuditLogWriter.append raises (after logging it)
    """
    log = get_logger(__name__, trace_id=request.request_id)
    try:
        return await writer.append(
            event_type,
            actor=Actor(user_id=request.user_id, username=request.username),
            provenance=Provenance(ip_address=request.ip_address, user_agent=request.user_agent),
            resource=resource_from_path(request.path),
            action=action,
            details=details,
        )
    except Exception:
        log.exception(f"Error creating audit log for {request.method} {request.path}")
        raise


async def record_auth_event(writer: AuditLogWriter, request: RequestInfo) -> Optional[AuditLogEntry]:
    """Record a login/logout outcome. Returns None for other paths."""
    event_type = auth_event_type(request)
    if event_type is None:
        return None

    details: Dict[str, Any] = {
        "method": request.method,
        "path": request.path,
        "status_code": request.status_code,
    }
    if "/auth/login" in request.path and request.body_username:
        details["attempted_username"] = request.body_username

    return await record_request(writer, request, event_type, details=details)


async def record_data_access(
    writer: AuditLogWriter,
    request: RequestInfo,
    excluded_prefixes: Sequence[str] = DEFAULT_EXCLUDED_PREFIXES,
) -> Optional[AuditLogEntry]:
    """
    Record a successful data request.

    Skips OPTIONS, excluded path prefixes and non-2xx responses (returns None).
    """
    if request.method.upper() == "OPTIONS":
        return None
    if any(request.path.startswith(prefix) for prefix in excluded_prefixes):
        return None
    if not 200 <= request.status_code < 300:
        return None

    details = {
        "method": request.method,
        "path": request.path,
        "query": dict(request.query),
    }
    return await record_request(
        writer, request, event_type_for_method(request.method), details=details
    )
