"""Transfer orchestration for the file relay.

Ties the multipart extractor, blob storage, file store and session store
together:

    upload:   extracted part -> bytes on disk -> FileRecord -> session attach
    download: FileRecord lookup -> chunked stream -> removal on completion
    reset:    session swap -> cascade removal of the old session's files

Every deletion path (download completion, expiry sweep, session reset) goes
through :meth:`TransferService.remove_file`, which only deletes bytes after
winning the atomic ``FileStore.pop``.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import BinaryIO, Callable, List, Optional

from starlette.concurrency import run_in_threadpool

from ..errors import FileIdCollision, NotFoundOrExpired, RelayError
from ..ids import new_file_id
from ..sessions.store import SessionStore, short_id
from .multipart import ExtractedFile
from .schemas import FileRecord, content_type_for, sanitize_display_name
from .storage import BlobStorage, split_storage_key, storage_key_for
from .store import FileStore

logger = logging.getLogger(__name__)


@dataclass
class DownloadHandle:
    """An open, claimed download. Consume it with :meth:`TransferService.iter_download`."""
    record:       FileRecord
    content_type: str
    stream:       BinaryIO


class TransferService:
    """Upload, download and removal logic shared by the routers and the sweeper."""

    def __init__(
        self,
        files: FileStore,
        sessions: SessionStore,
        storage: BlobStorage,
        ttl_seconds: float = 4 * 60 * 60,
        chunk_size: int = 64 * 1024,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.files = files
        self.sessions = sessions
        self.storage = storage
        self._ttl = ttl_seconds
        self._chunk_size = chunk_size
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def store_upload(self, session_id: str, extracted: ExtractedFile) -> FileRecord:
        """Persist an extracted file and register it under *session_id*.

        Raises:
            StorageFailure: If the bytes cannot be written.
        """
        file_id = new_file_id()
        original_name = sanitize_display_name(extracted.file_name)
        storage_key = storage_key_for(file_id, original_name)

        if file_id in self.files or self.storage.exists(storage_key):
            raise FileIdCollision()

        await run_in_threadpool(self.storage.write, storage_key, extracted.content)

        now = self.now()
        record = FileRecord(
            id=file_id,
            original_name=original_name,
            storage_key=storage_key,
            size=len(extracted.content),
            upload_time=now,
            expiry_time=now + self._ttl,
            session_id=session_id,
        )
        try:
            self.files.put(record)
        except FileIdCollision:
            await run_in_threadpool(self.storage.delete, storage_key)
            raise

        if not self.sessions.attach_file(session_id, file_id):
            logger.warning(
                "Session %s vanished during upload of %s; file will expire unowned",
                short_id(session_id),
                storage_key,
            )

        logger.info(
            "File uploaded: %s as %s (%d bytes, session %s)",
            original_name,
            storage_key,
            record.size,
            short_id(session_id),
        )
        return record

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def open_download(self, storage_key: str) -> DownloadHandle:
        """Claim and open a file for a one-time download.

        Raises:
            NotFoundOrExpired: If the key is unknown, expired, already being
                downloaded, or its bytes are missing.
            StorageFailure: If the bytes exist but cannot be opened.
        """
        parts = split_storage_key(storage_key)
        if parts is None:
            raise NotFoundOrExpired()
        file_id, _ = parts

        record = self.files.get(file_id)
        if record is None or record.storage_key != storage_key or record.is_expired(self.now()):
            raise NotFoundOrExpired()

        record = self.files.claim_download(file_id)
        if record is None:
            raise NotFoundOrExpired()

        try:
            stream = await run_in_threadpool(self.storage.open, storage_key)
        except RelayError:
            self.files.release_download(file_id)
            raise

        return DownloadHandle(
            record=record,
            content_type=content_type_for(storage_key),
            stream=stream,
        )

    def iter_download(self, handle: DownloadHandle) -> "DownloadStream":
        """Return an async iterator over the file's chunks that removes it at EOF."""
        return DownloadStream(self, handle, self._chunk_size)

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    async def remove_file(self, file_id: str, reason: str = "removed") -> bool:
        """Remove a file's metadata and bytes exactly once.

        Returns:
            True if this call performed the removal, False if the file was
            already gone.
        """
        record = self.files.pop(file_id)
        if record is None:
            return False

        try:
            await run_in_threadpool(self.storage.delete, record.storage_key)
        except OSError as e:
            logger.warning("Error deleting bytes of %s (%s): %s", record.storage_key, reason, e)

        if record.session_id:
            self.sessions.detach_file(record.session_id, file_id)

        logger.info("File %s deleted (%s)", record.storage_key, reason)
        return True

    async def reset_session(self, session_id: Optional[str]) -> str:
        """Destroy *session_id* and every file it owns; return the replacement session ID."""
        owned, new_session_id = self.sessions.reset(session_id)
        for file_id in owned:
            try:
                await self.remove_file(file_id, reason="session reset")
            except Exception:
                logger.exception("Error deleting file %s during session reset", file_id)
        return new_session_id

    async def evict_expired(self, now: Optional[float] = None) -> int:
        """Remove every file whose expiry has passed. Returns the number removed."""
        now = self.now() if now is None else now
        removed = 0
        for record in self.files.expired(now):
            try:
                if await self.remove_file(record.id, reason="expired"):
                    removed += 1
            except Exception:
                logger.exception("Error evicting expired file %s", record.storage_key)
        return removed

    def evict_stale_sessions(self, now: Optional[float] = None) -> int:
        now = self.now() if now is None else now
        stale = self.sessions.sweep_stale(now)
        for session_id in stale:
            logger.info("Expired session %s deleted", short_id(session_id))
        return len(stale)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_files(self, session_id: str) -> List[FileRecord]:
        """Live, unexpired files owned by *session_id*, oldest first."""
        now = self.now()
        records = self.files.list_by_session(session_id, self.sessions.file_ids(session_id))
        return sorted(
            (r for r in records if not r.is_expired(now)),
            key=lambda r: r.upload_time,
        )


class DownloadStream:
    """Chunked body of a claimed download.

    End-of-file is only read after the server has taken the previous chunk,
    so removal happens on a confirmed complete transfer. Any other ending
    (cancellation, a read error, :meth:`aclose` before or during iteration)
    releases the claim and leaves the file downloadable until it expires.
    """

    def __init__(self, service: TransferService, handle: DownloadHandle, chunk_size: int):
        self._service = service
        self._handle = handle
        self._chunk_size = chunk_size
        self._finished = False

    def __aiter__(self) -> "DownloadStream":
        return self

    async def __anext__(self) -> bytes:
        if self._finished:
            raise StopAsyncIteration
        try:
            chunk = await run_in_threadpool(self._handle.stream.read, self._chunk_size)
        except BaseException:
            self.release()
            raise
        if chunk:
            return chunk

        record = self._handle.record
        self._finished = True
        self._handle.stream.close()
        try:
            await self._service.remove_file(record.id, reason="downloaded")
        except Exception:
            logger.exception("Post-download removal of %s failed", record.storage_key)
        raise StopAsyncIteration

    def release(self) -> None:
        """Close the file and drop the claim unless the download already finished."""
        if self._finished:
            return
        self._finished = True
        self._handle.stream.close()
        self._service.files.release_download(self._handle.record.id)
        logger.info("Download of %s did not complete; file kept", self._handle.record.storage_key)

    async def aclose(self) -> None:
        self.release()

    def __del__(self):
        if not self._finished:
            self.release()
