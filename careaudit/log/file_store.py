"""
File-based audit store using append-only JSONL format.

Each line is one entry record (canonical JSON) including hash and
previous_entry_hash. Line order is append order.
"""

import asyncio
import os
from typing import List, Optional, Tuple

from ..core.canonical import canonical_json_str
from ..core.entry import AuditLogEntry, load_entry
from ..core.errors import StorageError
from .integrity import GENESIS_HASH
from .store import AuditStore, InsertResult

try:
    import fcntl
except ImportError:  # Windows or unsupported platform
    fcntl = None


class FileAuditStore(AuditStore):
    """
    File-based append-only audit store.

    Storage format: JSONL (newline-delimited JSON)
    Each line: {"id": "...", "timestamp": "...", ..., "hash": "...", "previous_entry_hash": "..."}

    Guarantees:
    - Append-only (no mutations)
    - Fsync after each append (durability)
    - Compare-and-append under an exclusive flock, so several processes
      may share one file without forking the chain
    - A trailing line without newline is a torn write and never counts
      as an entry
    - A committed line that no longer decodes is returned as an
      unreadable entry, never an error, so tampering with one record
      cannot block reads or later appends
    """

    def __init__(self, path: str) -> None:
        """
        Initialize file audit store.

        Args:
            path: Path to JSONL file
        """
        self.path = path

        # Ensure directory exists
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

        # Create empty file if not exists
        if not os.path.exists(path):
            with open(path, "wb") as f:
                f.write(b"")

    def _committed_lines(self, f) -> Tuple[List[bytes], int]:
        """
        Read committed (newline-terminated) lines.

        Returns:
            (lines, committed_size) where committed_size is the byte offset
            just past the last newline
        """
        f.seek(0)
        data = f.read()
        end = data.rfind(b"\n") + 1
        lines = [line for line in data[:end].split(b"\n") if line.strip()]
        return lines, end

    def _read_lines(self) -> List[bytes]:
        try:
            with open(self.path, "rb") as f:
                if fcntl:
                    fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    lines, _ = self._committed_lines(f)
                finally:
                    if fcntl:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            raise StorageError(str(e)) from e
        return lines

    def _load(self) -> List[AuditLogEntry]:
        return [load_entry(line) for line in self._read_lines()]

    def _insert_sync(self, entry: AuditLogEntry, expected_prev_hash: Optional[str]) -> InsertResult:
        line = canonical_json_str(entry.to_record()) + "\n"
        try:
            with open(self.path, "r+b") as f:
                if fcntl:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    lines, committed_size = self._committed_lines(f)
                    seq = len(lines)
                    last_hash = GENESIS_HASH
                    if lines:
                        last_hash = load_entry(lines[-1]).hash

                    if expected_prev_hash is not None and expected_prev_hash != last_hash:
                        return InsertResult(
                            entry=entry,
                            seq=None,
                            committed=False,
                            conflict=True,
                            observed_prev_hash=last_hash,
                        )

                    # Drop a torn tail left by an interrupted write
                    f.truncate(committed_size)
                    f.seek(committed_size)
                    f.write(line.encode("utf-8"))
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    if fcntl:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            raise StorageError(str(e)) from e

        return InsertResult(
            entry=entry,
            seq=seq,
            committed=True,
            conflict=False,
            observed_prev_hash=last_hash,
        )

    def _last_sync(self) -> Optional[AuditLogEntry]:
        lines = self._read_lines()
        return load_entry(lines[-1]) if lines else None

    async def insert(
        self, entry: AuditLogEntry, expected_prev_hash: Optional[str] = None
    ) -> InsertResult:
        """
        Append entry to the log with compare-and-append.

        Raises:
            StorageError: If the write fails
        """
        return await asyncio.to_thread(self._insert_sync, entry, expected_prev_hash)

    async def select_last(self) -> Optional[AuditLogEntry]:
        return await asyncio.to_thread(self._last_sync)

    async def select_all(self) -> List[AuditLogEntry]:
        return await asyncio.to_thread(self._load)
