"""Durable byte storage for relayed files.

Files are stored flat in the upload directory as ``<file_id><ext>``. Keys
are always server generated and validated before they touch the
filesystem, so a key can never address anything outside the directory.

All methods are blocking; async callers run them in a worker thread.
"""
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from ..errors import NotFoundOrExpired, StorageFailure
from ..ids import FILE_ID_BYTES
from .schemas import file_extension

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"^\.[a-z0-9_+-]{1,16}$")
_STORAGE_KEY_RE = re.compile(
    r"^(?P<file_id>[0-9a-f]{%d})(?P<ext>\.[a-z0-9_+-]{1,16})?$" % (FILE_ID_BYTES * 2)
)
_TEMP_PREFIX = ".upload-"


def storage_key_for(file_id: str, original_name: str) -> str:
    """Build the storage key, keeping the original extension when it is tame."""
    ext = file_extension(original_name)
    if not _EXTENSION_RE.match(ext):
        ext = ""
    return f"{file_id}{ext}"


def split_storage_key(storage_key: str) -> Optional[Tuple[str, str]]:
    """Return ``(file_id, ext)`` for a well-formed key, else ``None``."""
    match = _STORAGE_KEY_RE.match(storage_key)
    if not match:
        return None
    return match.group("file_id"), match.group("ext") or ""


class BlobStorage:
    """Flat directory of uploaded files."""

    def __init__(self, root: str):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._purge_temp_files()

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, storage_key: str) -> Path:
        if split_storage_key(storage_key) is None:
            raise NotFoundOrExpired()
        return self._root / storage_key

    def _purge_temp_files(self) -> None:
        """Remove half-written uploads left behind by a crashed process."""
        for leftover in self._root.glob(f"{_TEMP_PREFIX}*"):
            try:
                leftover.unlink()
            except OSError as e:
                logger.warning("Could not remove stale temp file %s: %s", leftover.name, e)

    def write(self, storage_key: str, content: bytes) -> None:
        """Write *content* under *storage_key*.

        Bytes land in a temp file first and are renamed into place, so the
        key never names a partially written file.

        Raises:
            StorageFailure: If the write fails. The temp file is removed.
        """
        target = self._path_for(storage_key)
        fd, temp_name = tempfile.mkstemp(prefix=_TEMP_PREFIX, dir=self._root)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(content)
            os.replace(temp_name, target)
        except OSError as e:
            logger.error("Failed to write %s: %s", storage_key, e)
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            raise StorageFailure() from e

    def exists(self, storage_key: str) -> bool:
        try:
            return self._path_for(storage_key).is_file()
        except NotFoundOrExpired:
            return False

    def open(self, storage_key: str) -> BinaryIO:
        """Open the stored bytes for reading.

        Raises:
            NotFoundOrExpired: If the key is malformed or the file is gone.
            StorageFailure: On any other I/O error.
        """
        path = self._path_for(storage_key)
        try:
            return path.open("rb")
        except FileNotFoundError:
            raise NotFoundOrExpired()
        except OSError as e:
            logger.error("Failed to open %s: %s", storage_key, e)
            raise StorageFailure("File download failed") from e

    def delete(self, storage_key: str) -> bool:
        """Delete the stored bytes.

        Returns:
            True if a file was removed, False if it was already absent.

        Raises:
            OSError: For failures other than "already absent".
        """
        try:
            self._path_for(storage_key).unlink()
        except (FileNotFoundError, NotFoundOrExpired):
            return False
        return True
