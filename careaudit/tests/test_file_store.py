"""
Tests for the JSONL file store.

Goal: A stale expected_prev_hash must never write, torn writes must not
count as entries, records must survive a reopen, and a tampered line
must be readable (and reported) without blocking later appends.
"""

import asyncio
import json
import os
import tempfile
from dataclasses import replace
from datetime import datetime, timezone

from careaudit.core.entry import AuditLogEntry
from careaudit.core.events import AuditEventType
from careaudit.log.file_store import FileAuditStore
from careaudit.log.integrity import GENESIS_HASH, ChainHasher
from careaudit.verify import IntegrityVerifier


def _read_records(path: str):
    with open(path, "r") as f:
        return [json.loads(line) for line in f if line.strip()]


def _linked_entry(hasher: ChainHasher, n: int, prev: str) -> AuditLogEntry:
    e = AuditLogEntry(
        id=f"entry-{n}",
        timestamp=datetime(2024, 1, 1, 0, 0, n, tzinfo=timezone.utc),
        event_type=AuditEventType.USER_UPDATE,
        action="user_update",
        hash="",
        previous_entry_hash=prev,
        details={"n": n},
    )
    return replace(e, hash=hasher.hash_entry(e))


def test_genesis_record_on_disk():
    """First record chains to GENESIS_HASH and carries every field."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "audit.jsonl")
        store = FileAuditStore(path)
        e = _linked_entry(ChainHasher(store), 0, GENESIS_HASH)

        result = asyncio.run(store.insert(e, expected_prev_hash=GENESIS_HASH))

        assert result.committed
        assert result.seq == 0
        rec = _read_records(path)[0]
        assert rec["previous_entry_hash"] == GENESIS_HASH
        assert rec["hash"] == e.hash
        assert rec["timestamp"] == "2024-01-01T00:00:00.000000Z"
        assert rec["source_ip"] is None


def test_append_conflict_does_not_write():
    """Stale expected_prev_hash must conflict and not write a new record."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "audit.jsonl")
        store = FileAuditStore(path)
        hasher = ChainHasher(store)

        e1 = _linked_entry(hasher, 0, GENESIS_HASH)
        assert asyncio.run(store.insert(e1, expected_prev_hash=GENESIS_HASH)).committed

        e2 = _linked_entry(hasher, 1, GENESIS_HASH)
        r2 = asyncio.run(store.insert(e2, expected_prev_hash=GENESIS_HASH))

        assert r2.conflict
        assert not r2.committed
        assert r2.observed_prev_hash == e1.hash
        assert len(_read_records(path)) == 1


def test_reopen_reads_same_entries():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "audit.jsonl")
        store = FileAuditStore(path)
        hasher = ChainHasher(store)
        prev = GENESIS_HASH
        written = []
        for n in range(3):
            e = _linked_entry(hasher, n, prev)
            asyncio.run(store.insert(e, expected_prev_hash=prev))
            written.append(e)
            prev = e.hash

        reopened = FileAuditStore(path)

        assert asyncio.run(reopened.select_all()) == written
        assert asyncio.run(reopened.select_last()) == written[-1]
        assert asyncio.run(IntegrityVerifier(reopened, hasher).verify_chain()).valid


def test_torn_trailing_line_ignored_and_truncated():
    """A crash mid-write leaves a partial line; it is not an entry."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "audit.jsonl")
        store = FileAuditStore(path)
        hasher = ChainHasher(store)
        e1 = _linked_entry(hasher, 0, GENESIS_HASH)
        asyncio.run(store.insert(e1, expected_prev_hash=GENESIS_HASH))

        with open(path, "ab") as f:
            f.write(b'{"id": "half-writ')

        assert asyncio.run(store.select_all()) == [e1]

        e2 = _linked_entry(hasher, 1, e1.hash)
        result = asyncio.run(store.insert(e2, expected_prev_hash=e1.hash))

        assert result.seq == 1
        assert [r["id"] for r in _read_records(path)] == ["entry-0", "entry-1"]


def _rewrite_line(path: str, index: int, edit) -> None:
    with open(path, "r") as f:
        lines = f.read().splitlines()
    lines[index] = edit(lines[index])
    with open(path, "w") as f:
        f.write("\n".join(lines) + "\n")


def _write_chain(path: str, n: int):
    store = FileAuditStore(path)
    hasher = ChainHasher(store)
    prev = GENESIS_HASH
    written = []
    for i in range(n):
        e = _linked_entry(hasher, i, prev)
        asyncio.run(store.insert(e, expected_prev_hash=prev))
        written.append(e)
        prev = e.hash
    return store, hasher, written


def test_undecodable_line_read_as_unreadable_entry():
    """A committed line that is not JSON is returned, never raised."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "audit.jsonl")
        with open(path, "w") as f:
            f.write("not json\n")

        entries = asyncio.run(FileAuditStore(path).select_all())

        assert len(entries) == 1
        assert entries[0].unreadable is not None
        assert entries[0].hash == ""


def test_reformatted_timestamp_keeps_id_and_hash():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "audit.jsonl")
        store, _, written = _write_chain(path, 3)

        def reformat(line):
            rec = json.loads(line)
            rec["timestamp"] = "2024-01-01 00:00:01"
            return json.dumps(rec)

        _rewrite_line(path, 1, reformat)
        entries = asyncio.run(store.select_all())

        assert [e.id for e in entries] == [e.id for e in written]
        assert entries[1].unreadable is not None
        assert entries[1].hash == written[1].hash
        assert entries[1].previous_entry_hash == written[0].hash
        assert entries[0].unreadable is None and entries[2].unreadable is None


def test_append_continues_after_tampered_record():
    """One bad historical line must not block new events."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "audit.jsonl")
        store, hasher, written = _write_chain(path, 2)

        def drop_timestamp(line):
            rec = json.loads(line)
            rec["timestamp"] = "yesterday"
            del rec["action"]
            return json.dumps(rec)

        _rewrite_line(path, 1, drop_timestamp)

        last = asyncio.run(store.select_last())
        assert last.unreadable is not None
        assert asyncio.run(hasher.current_tip()) == written[1].hash

        e = _linked_entry(hasher, 5, written[1].hash)
        result = asyncio.run(store.insert(e, expected_prev_hash=written[1].hash))

        assert result.committed
        assert result.seq == 2
        assert [r["id"] for r in _read_records(path)][-1] == e.id


def test_tampered_record_reported_by_verifier():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "audit.jsonl")
        store, hasher, written = _write_chain(path, 3)

        def drop_hash(line):
            rec = json.loads(line)
            del rec["hash"]
            return json.dumps(rec)

        _rewrite_line(path, 1, drop_hash)
        result = asyncio.run(IntegrityVerifier(store, hasher).verify_chain())

        assert not result.valid
        assert written[1].id in result.broken_entry_ids
        # The successor still points at the hash that was deleted
        assert written[2].id in result.broken_entry_ids
        assert result.checked == 3


def test_select_range_in_append_order():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = FileAuditStore(os.path.join(tmpdir, "audit.jsonl"))
        hasher = ChainHasher(store)
        prev = GENESIS_HASH
        for n in range(5):
            e = _linked_entry(hasher, n, prev)
            asyncio.run(store.insert(e, expected_prev_hash=prev))
            prev = e.hash

        hits = asyncio.run(
            store.select_range(
                datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc),
                datetime(2024, 1, 1, 0, 0, 3, tzinfo=timezone.utc),
            )
        )

        assert [e.id for e in hits] == ["entry-1", "entry-2", "entry-3"]
