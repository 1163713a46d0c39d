"""
Unit tests for S3AuditStore using moto (S3 mock).

Test coverage:
- Append + read roundtrip through the writer
- Conditional put conflicts
- Tamper detection on stored objects, including undecodable ones
- Head hint object: kept current, corrected when stale
- Bucket access errors
"""

import asyncio
import json
from dataclasses import replace

import pytest

boto3 = pytest.importorskip("boto3")
moto = pytest.importorskip("moto")

from careaudit.core.clock import ManualClock  # noqa: E402
from careaudit.core.entry import AuditLogEntry  # noqa: E402
from careaudit.core.errors import StorageError  # noqa: E402
from careaudit.core.events import AuditEventType  # noqa: E402
from careaudit.log.integrity import GENESIS_HASH  # noqa: E402
from careaudit.log.s3_store import S3AuditStore  # noqa: E402
from careaudit.verify import IntegrityVerifier  # noqa: E402
from careaudit.writer import AuditLogWriter  # noqa: E402

mock_aws = moto.mock_aws

BUCKET = "test-bucket"


def _bucket():
    s3_client = boto3.client("s3", region_name="us-east-1")
    s3_client.create_bucket(Bucket=BUCKET)
    return s3_client


@mock_aws
def test_append_read_roundtrip():
    """Entries written to S3 read back in append order with a valid chain."""
    _bucket()
    store = S3AuditStore(bucket=BUCKET, prefix="audit")
    writer = AuditLogWriter(store, clock=ManualClock())

    async def run():
        written = [await writer.append("data_access", details={"idx": i}) for i in range(3)]
        return written, await store.select_all()

    written, read_back = asyncio.run(run())

    assert read_back == written
    assert read_back[0].previous_entry_hash == GENESIS_HASH
    assert asyncio.run(IntegrityVerifier(store, writer.hasher).verify_chain()).valid


@mock_aws
def test_object_keys_are_zero_padded_sequence():
    s3_client = _bucket()
    store = S3AuditStore(bucket=BUCKET, prefix="audit")
    writer = AuditLogWriter(store, clock=ManualClock())

    asyncio.run(writer.append("logout"))
    asyncio.run(writer.append("logout"))

    keys = [o["Key"] for o in s3_client.list_objects_v2(Bucket=BUCKET)["Contents"]]
    assert keys == ["audit/0000000000.json", "audit/0000000001.json", "audit/_head.json"]


@mock_aws
def test_stale_tip_conflicts():
    _bucket()
    store = S3AuditStore(bucket=BUCKET, prefix="audit")
    writer = AuditLogWriter(store, clock=ManualClock())
    first = asyncio.run(writer.append("login_success"))

    entry = AuditLogEntry(
        id="late",
        timestamp=first.timestamp,
        event_type=AuditEventType.LOGOUT,
        action="logout",
        hash="",
        previous_entry_hash=GENESIS_HASH,
    )
    entry = replace(entry, hash=writer.hasher.hash_entry(entry))
    result = asyncio.run(store.insert(entry, expected_prev_hash=GENESIS_HASH))

    assert result.conflict
    assert result.observed_prev_hash == first.hash
    assert asyncio.run(store.count()) == 1


@mock_aws
def test_tampered_object_detected():
    """Overwriting an object out of band is caught by verification."""
    s3_client = _bucket()
    store = S3AuditStore(bucket=BUCKET, prefix="audit")
    writer = AuditLogWriter(store, clock=ManualClock())
    entries = [asyncio.run(writer.append("data_access", details={"idx": i})) for i in range(3)]

    key = "audit/0000000001.json"
    rec = json.loads(s3_client.get_object(Bucket=BUCKET, Key=key)["Body"].read())
    rec["details"] = {"idx": 99}
    s3_client.put_object(Bucket=BUCKET, Key=key, Body=json.dumps(rec).encode("utf-8"))

    result = asyncio.run(IntegrityVerifier(store, writer.hasher).verify_chain())

    assert result.broken_entry_ids == [entries[1].id]


@mock_aws
def test_missing_bucket_raises_storage_error():
    with pytest.raises(StorageError):
        S3AuditStore(bucket="does-not-exist")


def _head_seq(s3_client) -> int:
    return json.loads(s3_client.get_object(Bucket=BUCKET, Key="audit/_head.json")["Body"].read())["last_seq"]


def _set_head(s3_client, last_seq: int) -> None:
    s3_client.put_object(
        Bucket=BUCKET, Key="audit/_head.json", Body=json.dumps({"last_seq": last_seq}).encode("utf-8")
    )


@mock_aws
def test_head_hint_tracks_last_seq():
    s3_client = _bucket()
    writer = AuditLogWriter(S3AuditStore(bucket=BUCKET, prefix="audit"), clock=ManualClock())

    for _ in range(3):
        asyncio.run(writer.append("data_access"))

    assert _head_seq(s3_client) == 2


@pytest.mark.parametrize("stale_seq", [0, 50])
@mock_aws
def test_stale_head_hint_does_not_fork_chain(stale_seq):
    """A head that lags behind or points past the end is only a hint."""
    s3_client = _bucket()
    store = S3AuditStore(bucket=BUCKET, prefix="audit")
    writer = AuditLogWriter(store, clock=ManualClock())
    entries = [asyncio.run(writer.append("data_access", details={"idx": i})) for i in range(3)]

    _set_head(s3_client, stale_seq)
    after = asyncio.run(writer.append("logout"))

    assert after.previous_entry_hash == entries[-1].hash
    assert s3_client.head_object(Bucket=BUCKET, Key="audit/0000000003.json")
    assert asyncio.run(IntegrityVerifier(store, writer.hasher).verify_chain()).valid


@mock_aws
def test_head_disabled_uses_listing_only():
    s3_client = _bucket()
    writer = AuditLogWriter(S3AuditStore(bucket=BUCKET, prefix="audit", use_head=False), clock=ManualClock())

    asyncio.run(writer.append("logout"))
    asyncio.run(writer.append("logout"))

    keys = [o["Key"] for o in s3_client.list_objects_v2(Bucket=BUCKET)["Contents"]]
    assert "audit/_head.json" not in keys
    assert len(keys) == 2


@mock_aws
def test_undecodable_object_reported_and_appends_continue():
    s3_client = _bucket()
    store = S3AuditStore(bucket=BUCKET, prefix="audit")
    writer = AuditLogWriter(store, clock=ManualClock())
    entries = [asyncio.run(writer.append("data_access", details={"idx": i})) for i in range(3)]

    key = "audit/0000000001.json"
    rec = json.loads(s3_client.get_object(Bucket=BUCKET, Key=key)["Body"].read())
    rec["timestamp"] = "yesterday"
    s3_client.put_object(Bucket=BUCKET, Key=key, Body=json.dumps(rec).encode("utf-8"))

    after = asyncio.run(writer.append("logout"))
    result = asyncio.run(IntegrityVerifier(store, writer.hasher).verify_chain())

    assert after.previous_entry_hash == entries[-1].hash
    assert result.broken_entry_ids == [entries[1].id]
    assert result.checked == 4
