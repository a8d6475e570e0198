"""In-memory file metadata store.

The store is the single authority over which files are live. ``pop`` is an
atomic check-and-remove: whichever trigger (download completion, expiry
sweep, session reset) pops a record first owns the physical deletion, and
every later caller gets ``None`` and does nothing.

Nothing here touches the filesystem.
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional

from ..errors import FileIdCollision
from .schemas import FileRecord

logger = logging.getLogger(__name__)


class FileStore:
    """Thread-safe map of file ID → :class:`FileRecord`."""

    def __init__(self) -> None:
        self._records: Dict[str, FileRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, file_id: str) -> bool:
        with self._lock:
            return file_id in self._records

    # ------------------------------------------------------------------
    # Writes (under lock)
    # ------------------------------------------------------------------

    def put(self, record: FileRecord) -> None:
        """Insert *record*.

        Raises:
            FileIdCollision: If the ID is already present.
        """
        with self._lock:
            if record.id in self._records:
                raise FileIdCollision()
            self._records[record.id] = record

    def pop(self, file_id: str) -> Optional[FileRecord]:
        """Remove and return the record, or ``None`` if someone else got there first."""
        with self._lock:
            return self._records.pop(file_id, None)

    def claim_download(self, file_id: str) -> Optional[FileRecord]:
        """Mark a file as being downloaded.

        Returns ``None`` if the file is gone or another download already holds
        the claim, so the same bytes are never served twice.
        """
        with self._lock:
            record = self._records.get(file_id)
            if record is None or record.downloaded:
                return None
            record.downloaded = True
            return record

    def release_download(self, file_id: str) -> None:
        """Drop a download claim after an aborted transfer."""
        with self._lock:
            record = self._records.get(file_id)
            if record is not None:
                record.downloaded = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, file_id: str) -> Optional[FileRecord]:
        with self._lock:
            return self._records.get(file_id)

    def list_by_session(self, session_id: str, file_ids: Iterable[str]) -> List[FileRecord]:
        """Return live records among *file_ids* owned by *session_id*.

        IDs that no longer resolve (already downloaded, expired) are skipped.
        """
        with self._lock:
            records = [self._records.get(file_id) for file_id in file_ids]
        return [r for r in records if r is not None and r.session_id == session_id]

    def expired(self, now: float) -> List[FileRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.is_expired(now)]
