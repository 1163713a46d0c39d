"""
S3-based audit store using one-object-per-entry pattern.

Each entry is stored as a separate S3 object with key: {prefix}/{seq:010d}.json
Body format: the entry record (canonical JSON), as in FileAuditStore.

This provides:
- Scalable storage (millions of entries)
- Strong read-after-write consistency (AWS S3 guarantee as of Dec 2020)
- Multi-instance safety: objects are written with If-None-Match, so two
  servers can never both claim the same sequence number
- O(1) tip lookups: a {prefix}/_head.json object records the last sequence
  number. It is only a hint: the store confirms the named object exists
  and steps past any newer ones, falling back to a full listing
"""

import asyncio
import json
import logging
from typing import List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.canonical import canonical_json_str
from ..core.entry import AuditLogEntry, load_entry
from ..core.errors import StorageError
from .integrity import GENESIS_HASH
from .store import AuditStore, InsertResult

_CONFLICT_CODES = ("PreconditionFailed", "412", "ConditionalRequestConflict", "409")
_MISSING_CODES = ("NoSuchKey", "404", "NotFound")

# Newer objects stepped over from the head hint before a full listing
HEAD_SCAN_LIMIT = 16

logger = logging.getLogger(__name__)


class S3AuditStore(AuditStore):
    """
    S3-based append-only audit store.

    Storage format: One JSON object per entry
    Object key: {prefix}/{seq:010d}.json

    Key naming: seq zero-padded to 10 digits ensures lex order = numeric order.
    Example: 0000000000.json, 0000000001.json, ...

    Paginator: boto3 list_objects_v2 returns max 1000 keys per call.
    Use paginator to iterate all keys.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "audit",
        endpoint_url: Optional[str] = None,
        region: str = "us-east-1",
        check_bucket: bool = True,
        use_head: bool = True,
    ) -> None:
        """
        Initialize S3 audit store.

        Args:
            bucket: S3 bucket name
            prefix: Key prefix for entries (default: "audit")
            endpoint_url: S3 endpoint URL (for MinIO, localstack, etc.)
            region: AWS region (default: us-east-1)
            check_bucket: Verify the bucket is reachable on construction
            use_head: Maintain and consult the _head.json hint object

        Raises:
            StorageError: If S3 client creation fails or the bucket is not accessible
        """
        self.bucket = bucket
        self.prefix = prefix.rstrip("/")
        self.endpoint_url = endpoint_url
        self.region = region
        self.use_head = use_head
        self.head_key = f"{self.prefix}/_head.json"

        # Credentials from environment: AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY
        try:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                region_name=region,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to create S3 client: {e}") from e

        if check_bucket:
            try:
                self.s3_client.head_bucket(Bucket=bucket)
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                raise StorageError(
                    f"Bucket '{bucket}' not accessible (code: {error_code})"
                ) from e

    def _key_for_seq(self, seq: int) -> str:
        """Generate S3 key for sequence number (zero-padded to 10 digits)."""
        return f"{self.prefix}/{seq:010d}.json"

    def _seq_from_key(self, key: str) -> Optional[int]:
        """Extract sequence number from S3 key."""
        if not key.startswith(self.prefix + "/"):
            return None
        basename = key[len(self.prefix) + 1 :]
        if not basename.endswith(".json"):
            return None
        try:
            return int(basename[:-5])
        except ValueError:
            return None

    def _list_keys(self) -> List[Tuple[int, str]]:
        """All (seq, key) pairs sorted by seq."""
        paginator = self.s3_client.get_paginator("list_objects_v2")
        keys = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix + "/"):
            for obj in page.get("Contents", []):
                seq = self._seq_from_key(obj["Key"])
                if seq is not None:
                    keys.append((seq, obj["Key"]))
        keys.sort()
        return keys

    def _error_code(self, e: ClientError) -> str:
        return e.response.get("Error", {}).get("Code", "")

    def _object_exists(self, key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if self._error_code(e) in _MISSING_CODES:
                return False
            raise

    def _get_entry(self, key: str) -> AuditLogEntry:
        response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
        return load_entry(response["Body"].read())

    def _read_head(self) -> Optional[int]:
        """
        Last sequence number recorded in the head object.

        Returns:
            last_seq, or None if the head is missing or malformed
        """
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=self.head_key)
            return int(json.loads(response["Body"].read())["last_seq"])
        except ClientError as e:
            if self._error_code(e) in _MISSING_CODES:
                return None
            raise
        except (ValueError, TypeError, KeyError):
            return None

    def _write_head(self, last_seq: int) -> None:
        """
        Best-effort head update. Uses If-Match to avoid overwriting a newer head.

        Never raises: the entry is already committed, and a stale head only
        costs extra lookups on the next append.
        """
        try:
            conditions = {"IfNoneMatch": "*"}
            try:
                response = self.s3_client.get_object(Bucket=self.bucket, Key=self.head_key)
                conditions = {"IfMatch": response["ETag"]}
                current = int(json.loads(response["Body"].read())["last_seq"])
                # A head pointing past the real end is replaced, not kept
                if current >= last_seq and self._object_exists(self._key_for_seq(current)):
                    return
            except ClientError as e:
                if self._error_code(e) not in _MISSING_CODES:
                    raise
            except (ValueError, TypeError, KeyError):
                pass

            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=self.head_key,
                Body=canonical_json_str({"last_seq": last_seq}).encode("utf-8"),
                ContentType="application/json",
                **conditions,
            )
        except ClientError as e:
            if self._error_code(e) not in _CONFLICT_CODES:
                logger.warning(f"Audit head update failed (seq={last_seq}): {e}")
        except BotoCoreError as e:
            logger.warning(f"Audit head update failed (seq={last_seq}): {e}")

    def _last_seq_and_key(self) -> Tuple[int, Optional[str]]:
        """
        Returns:
            (last_seq, last_key), or (-1, None) if no entries exist
        """
        if self.use_head:
            seq = self._read_head()
            if seq is not None and (seq < 0 or self._object_exists(self._key_for_seq(seq))):
                for _ in range(HEAD_SCAN_LIMIT):
                    if not self._object_exists(self._key_for_seq(seq + 1)):
                        return seq, (self._key_for_seq(seq) if seq >= 0 else None)
                    seq += 1

        keys = self._list_keys()
        if not keys:
            return -1, None
        return keys[-1]

    def _last_seq_and_entry(self) -> Tuple[int, Optional[AuditLogEntry]]:
        """
        Returns:
            (last_seq, last_entry), or (-1, None) if no entries exist
        """
        seq, key = self._last_seq_and_key()
        if key is None:
            return -1, None
        return seq, self._get_entry(key)

    def _put_entry_object(self, key: str, body: str) -> bool:
        """
        Put object only if it does not already exist.

        Returns:
            True if committed, False if conflict (object exists)
        """
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body.encode("utf-8"),
                ContentType="application/json",
                IfNoneMatch="*",
            )
            return True
        except ClientError as e:
            if self._error_code(e) in _CONFLICT_CODES:
                return False
            raise

    def _insert_sync(self, entry: AuditLogEntry, expected_prev_hash: Optional[str]) -> InsertResult:
        try:
            last_seq, last = self._last_seq_and_entry()
            last_hash = last.hash if last is not None else GENESIS_HASH

            if expected_prev_hash is not None and expected_prev_hash != last_hash:
                return InsertResult(
                    entry=entry,
                    seq=None,
                    committed=False,
                    conflict=True,
                    observed_prev_hash=last_hash,
                )

            seq = last_seq + 1
            body = canonical_json_str(entry.to_record())
            if not self._put_entry_object(self._key_for_seq(seq), body):
                # Another writer claimed this seq between our scan and put
                _, observed = self._last_seq_and_entry()
                return InsertResult(
                    entry=entry,
                    seq=None,
                    committed=False,
                    conflict=True,
                    observed_prev_hash=observed.hash if observed is not None else GENESIS_HASH,
                )

            if self.use_head:
                self._write_head(seq)

            return InsertResult(
                entry=entry,
                seq=seq,
                committed=True,
                conflict=False,
                observed_prev_hash=last_hash,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to append audit entry to S3: {e}") from e

    def _last_sync(self) -> Optional[AuditLogEntry]:
        try:
            _, last = self._last_seq_and_entry()
            return last
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to read last audit entry from S3: {e}") from e

    def _all_sync(self) -> List[AuditLogEntry]:
        try:
            return [self._get_entry(key) for _, key in self._list_keys()]
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to read audit entries from S3: {e}") from e

    async def insert(
        self, entry: AuditLogEntry, expected_prev_hash: Optional[str] = None
    ) -> InsertResult:
        return await asyncio.to_thread(self._insert_sync, entry, expected_prev_hash)

    async def select_last(self) -> Optional[AuditLogEntry]:
        return await asyncio.to_thread(self._last_sync)

    async def select_all(self) -> List[AuditLogEntry]:
        return await asyncio.to_thread(self._all_sync)
