"""Pydantic schemas for relayed files.

This module defines:
- FileRecord: metadata held in the in-memory file store
- FileSummary: one entry of the session's file listing
- UploadResponse / MessageResponse: API payloads

Wire payloads use camelCase keys and integer millisecond timestamps, which is
what the browser client expects. Internally timestamps are float seconds.
"""
import mimetypes
import re
from pathlib import PurePosixPath
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_CONTENT_TYPE = "application/octet-stream"
FALLBACK_NAME = "download"

# Content types served for common extensions; anything else falls back to
# the platform mimetypes table and then to octet-stream.
MIME_TYPES = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".txt": "text/plain",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".mp4": "video/mp4",
    ".mp3": "audio/mpeg",
}

_UNSAFE_NAME_CHARS = re.compile(r'[\x00-\x1f\x7f"]')


class FileRecord(BaseModel):
    """Metadata for one relayed file.

    ``storage_key`` is the server-generated on-disk name (``<id><ext>``);
    ``original_name`` is only ever used for display and Content-Disposition.
    """
    id: str = Field(..., description="Opaque file ID")
    original_name: str = Field(..., description="Sanitised client file name")
    storage_key: str = Field(..., description="Server-generated storage name")
    size: int = Field(..., description="Size in bytes")
    upload_time: float = Field(..., description="Upload timestamp (epoch seconds)")
    expiry_time: float = Field(..., description="Expiry timestamp (epoch seconds)")
    downloaded: bool = Field(False, description="Set while a download is in flight")
    session_id: Optional[str] = Field(None, description="Owning session ID")

    def is_expired(self, now: float) -> bool:
        return now > self.expiry_time


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileSummary(_CamelModel):
    id: str
    original_name: str
    size: int
    upload_time: int
    expiry_time: int
    download_link: str


class UploadResponse(_CamelModel):
    message: str
    file_id: str
    download_link: str
    expiry_time: int


class MessageResponse(BaseModel):
    message: str


def to_millis(timestamp: float) -> int:
    return int(timestamp * 1000)


def file_extension(file_name: str) -> str:
    """Return the lowercased extension of *file_name* (``""`` if none)."""
    return PurePosixPath(file_name.replace("\\", "/")).suffix.lower()


def content_type_for(name: str) -> str:
    ext = file_extension(name)
    if ext in MIME_TYPES:
        return MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type("file" + ext)
    return guessed or DEFAULT_CONTENT_TYPE


def sanitize_display_name(file_name: str) -> str:
    """Make a client-supplied file name safe to echo back.

    Directory components (either separator) are dropped, and control
    characters and double quotes are removed so the name cannot break the
    Content-Disposition header.
    """
    base = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    base = _UNSAFE_NAME_CHARS.sub("", base).strip()
    if base in ("", ".", ".."):
        return FALLBACK_NAME
    return base
