"""Binary-safe extraction of the file part from a multipart/form-data body.

The body is never decoded as a whole. Parts are located by scanning the raw
buffer for the ``--<boundary>`` delimiter and recording its offsets; only the
header block of the chosen part is decoded to read ``filename="..."``. The
payload is sliced straight out of the buffer, so arbitrary bytes (``0xFF``,
stray CRLFs, delimiter look-alikes inside the file) survive untouched.

Only the first file-bearing part is honored.
"""
import logging
import re
from dataclasses import dataclass
from typing import List

from ..errors import InvalidRequest, NoFileFound

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
HEADER_END = b"\r\n\r\n"
FILENAME_MARKER = b"filename="

_BOUNDARY_RE = re.compile(r'boundary=(?:"([^"]+)"|([^;]+))', re.IGNORECASE)
_FILENAME_RE = re.compile(r'filename="([^"]+)"')


@dataclass(frozen=True)
class ExtractedFile:
    file_name: str
    content: bytes


def parse_boundary(content_type: str) -> str:
    """Return the boundary token declared in a Content-Type header.

    Accepts both ``boundary="token"`` and ``boundary=token``.

    Raises:
        InvalidRequest: If the header carries no usable boundary.
    """
    match = _BOUNDARY_RE.search(content_type or "")
    if not match:
        raise InvalidRequest()
    boundary = (match.group(1) or match.group(2) or "").strip()
    if not boundary:
        raise InvalidRequest()
    return boundary


def _delimiter_offsets(body: bytes, delimiter: bytes) -> List[int]:
    offsets = []
    pos = 0
    while True:
        index = body.find(delimiter, pos)
        if index == -1:
            return offsets
        offsets.append(index)
        pos = index + len(delimiter)


def extract_file(body: bytes, boundary: str) -> ExtractedFile:
    """Locate the first file part in *body* and return its name and bytes.

    Parts without a header terminator, or whose ``filename=`` is not a
    quoted non-empty value, are skipped. A zero-byte payload is returned
    as-is.

    Raises:
        InvalidRequest: If *boundary* is empty.
        NoFileFound: If no part carries a file.
    """
    if not boundary:
        raise InvalidRequest()

    delimiter = b"--" + boundary.encode("latin-1", errors="replace")
    offsets = _delimiter_offsets(body, delimiter)

    for start, end in zip(offsets, offsets[1:]):
        part = body[start + len(delimiter):end]
        if FILENAME_MARKER not in part:
            continue

        header_end = part.find(HEADER_END)
        if header_end == -1:
            logger.debug("Skipping multipart part without header terminator")
            continue

        header = part[:header_end].decode("utf-8", errors="replace")
        match = _FILENAME_RE.search(header)
        if not match:
            continue

        content_start = header_end + len(HEADER_END)
        content_end = len(part)
        if part.endswith(CRLF) and content_end - len(CRLF) >= content_start:
            content_end -= len(CRLF)

        return ExtractedFile(
            file_name=match.group(1),
            content=bytes(part[content_start:content_end]),
        )

    raise NoFileFound()
