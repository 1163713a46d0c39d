"""
Read-side helpers for the audit log: filtered queries, summaries, exports.
"""

import csv
import io
import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from .core.clock import ensure_utc
from .core.entry import AuditLogEntry, format_timestamp
from .core.errors import InvalidRange
from .core.events import AuditEventType
from .log.store import AuditStore

EXPORT_FORMATS = ("json", "jsonl", "csv")

# Entries kept in each "top" list of a summary
SUMMARY_TOP_N = 10

AUTH_OUTCOMES = (
    AuditEventType.LOGIN_SUCCESS,
    AuditEventType.LOGIN_FAILURE,
    AuditEventType.LOGOUT,
    AuditEventType.TWO_FACTOR_SUCCESS,
    AuditEventType.TWO_FACTOR_FAILURE,
)

CSV_COLUMNS = [
    "id",
    "timestamp",
    "event_type",
    "actor_user_id",
    "actor_username",
    "source_ip",
    "user_agent",
    "resource_type",
    "resource_id",
    "action",
    "details",
    "hash",
    "previous_entry_hash",
]


@dataclass(frozen=True)
class TimeRange:
    """
    Inclusive [start, end] range of entry timestamps.

    Naive datetimes are taken as UTC.

    Raises:
        InvalidRange: If start > end
    """
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.start > self.end:
            raise InvalidRange(
                f"range start {format_timestamp(self.start)} is after end {format_timestamp(self.end)}"
            )

    @classmethod
    def coerce(cls, value: Union["TimeRange", Tuple[datetime, datetime]]) -> "TimeRange":
        if isinstance(value, cls):
            return value
        start, end = value
        return cls(start, end)

    def contains(self, ts: datetime) -> bool:
        return self.start <= ensure_utc(ts) <= self.end


@dataclass(frozen=True)
class AuditFilter:
    """
    AND-combined constraints; None means unconstrained.

    Raises:
        InvalidEventType: If event_type is not a known event type
    """
    event_type: Optional[Union[AuditEventType, str]] = None
    actor_user_id: Optional[int] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.event_type is not None:
            object.__setattr__(self, "event_type", AuditEventType.parse(self.event_type))

    def matches(self, entry: AuditLogEntry) -> bool:
        if self.event_type is not None and entry.event_type != self.event_type:
            return False
        if self.actor_user_id is not None and entry.actor_user_id != self.actor_user_id:
            return False
        if self.resource_type is not None and entry.resource_type != self.resource_type:
            return False
        if self.resource_id is not None and entry.resource_id != str(self.resource_id):
            return False
        return True


@dataclass(frozen=True)
class QueryResult:
    entries: List[AuditLogEntry]
    total: int


@dataclass
class AuditSummary:
    """
    Aggregate view of a time range.

    top_actors and top_source_ips are sorted by count (descending) and
    capped; auth_outcomes always lists every authentication outcome.
    Unreadable records are counted but have no timestamp to contribute.
    """
    total: int = 0
    by_event_type: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    by_actor: Dict[str, int] = field(default_factory=dict)
    by_resource_type: Dict[str, int] = field(default_factory=dict)
    top_actors: List[Dict[str, Any]] = field(default_factory=list)
    top_source_ips: List[Dict[str, Any]] = field(default_factory=list)
    auth_outcomes: Dict[str, int] = field(default_factory=dict)
    unreadable: int = 0
    first_timestamp: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_event_type": self.by_event_type,
            "by_category": self.by_category,
            "by_actor": self.by_actor,
            "by_resource_type": self.by_resource_type,
            "top_actors": self.top_actors,
            "top_source_ips": self.top_source_ips,
            "auth_outcomes": self.auth_outcomes,
            "unreadable": self.unreadable,
            "first_timestamp": format_timestamp(self.first_timestamp) if self.first_timestamp else None,
            "last_timestamp": format_timestamp(self.last_timestamp) if self.last_timestamp else None,
        }


def _top(counts: Counter, n: int) -> List[Tuple[Any, int]]:
    # Ties broken by key so summaries are reproducible
    return sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0])))[:n]


def _event_type_name(entry: AuditLogEntry) -> str:
    return entry.event_type.value if isinstance(entry.event_type, AuditEventType) else str(entry.event_type)


class AuditLogReader:
    """
    Read-only access to stored entries.

    Every read requires a time range so that no caller scans the whole log
    by accident.
    """

    def __init__(self, store: AuditStore) -> None:
        self.store = store

    async def _matching(
        self, time_range: Union[TimeRange, Tuple[datetime, datetime]], filters: Optional[AuditFilter]
    ) -> List[AuditLogEntry]:
        tr = TimeRange.coerce(time_range)
        entries = await self.store.select_range(tr.start, tr.end)
        if filters is None:
            return entries
        return [e for e in entries if filters.matches(e)]

    async def query(
        self,
        time_range: Union[TimeRange, Tuple[datetime, datetime]],
        filters: Optional[AuditFilter] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> QueryResult:
        """
        Filtered, paginated listing, most recent first (append order).

        Args:
            time_range: Inclusive timestamp range (mandatory)
            filters: Optional AND-combined filter
            limit: Page size
            offset: Entries to skip

        Returns:
            QueryResult; total counts every match regardless of paging

        Raises:
            InvalidRange: If start > end
            ValueError: If limit or offset is negative
        """
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")
        matches = await self._matching(time_range, filters)
        newest_first = list(reversed(matches))
        return QueryResult(entries=newest_first[offset : offset + limit], total=len(matches))

    async def summarize(
        self, time_range: Union[TimeRange, Tuple[datetime, datetime]], top: int = SUMMARY_TOP_N
    ) -> AuditSummary:
        """
        Counts over every entry in time_range.

        Args:
            time_range: Inclusive timestamp range (mandatory)
            top: Length cap for top_actors and top_source_ips
        """
        entries = await self._matching(time_range, None)
        by_type: Counter = Counter()
        by_category: Counter = Counter()
        by_actor: Counter = Counter()
        by_resource: Counter = Counter()
        actors: Counter = Counter()
        ips: Counter = Counter()
        readable = []
        for e in entries:
            by_type[_event_type_name(e)] += 1
            if isinstance(e.event_type, AuditEventType):
                by_category[e.event_type.category.value] += 1
            by_actor["anonymous" if e.actor_user_id is None else str(e.actor_user_id)] += 1
            if e.resource_type:
                by_resource[e.resource_type] += 1
            if e.actor_user_id is not None:
                actors[(e.actor_user_id, e.actor_username)] += 1
            if e.source_ip:
                ips[e.source_ip] += 1
            if e.unreadable is None:
                readable.append(e)

        return AuditSummary(
            total=len(entries),
            by_event_type=dict(sorted(by_type.items())),
            by_category=dict(sorted(by_category.items())),
            by_actor=dict(sorted(by_actor.items())),
            by_resource_type=dict(sorted(by_resource.items())),
            top_actors=[
                {"user_id": user_id, "username": username, "count": count}
                for (user_id, username), count in _top(actors, top)
            ],
            top_source_ips=[{"ip_address": ip, "count": count} for ip, count in _top(ips, top)],
            auth_outcomes={t.value: by_type[t.value] for t in AUTH_OUTCOMES},
            unreadable=len(entries) - len(readable),
            first_timestamp=min((e.timestamp for e in readable), default=None),
            last_timestamp=max((e.timestamp for e in readable), default=None),
        )

    async def export(
        self,
        time_range: Union[TimeRange, Tuple[datetime, datetime]],
        filters: Optional[AuditFilter] = None,
        fmt: str = "json",
    ) -> str:
        """
        Export matching entries in append order.

        Supported formats:
        - "json": JSON array of records
        - "jsonl": one record per line
        - "csv": header row plus one row per entry (details as JSON)

        Raises:
            ValueError: Unknown format
        """
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"unknown export format: {fmt} (expected one of {', '.join(EXPORT_FORMATS)})")
        records = [e.to_record() for e in await self._matching(time_range, filters)]

        if fmt == "json":
            return json.dumps(records, indent=2, ensure_ascii=False)
        if fmt == "jsonl":
            return "".join(json.dumps(r, ensure_ascii=False, sort_keys=True) + "\n" for r in records)

        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for r in records:
            row = dict(r)
            row["details"] = json.dumps(r["details"], sort_keys=True, ensure_ascii=False)
            writer.writerow(row)
        return buf.getvalue()
