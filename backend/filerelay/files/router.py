"""FastAPI routers for uploading, listing and downloading relayed files."""
import logging
import unicodedata
from typing import List
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect

from ..config import RelayConfig
from ..dependencies import current_session, get_relay_config, get_service
from ..errors import InvalidRequest, TooLarge
from .multipart import extract_file, parse_boundary
from .schemas import FileSummary, UploadResponse, to_millis
from .service import TransferService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["files"])
download_router = APIRouter(tags=["download"])


def get_download_url(request: Request, storage_key: str) -> str:
    """Generate download URL for a storage key."""
    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}/download/{storage_key}"


def content_disposition(file_name: str) -> str:
    """Build an attachment header that keeps the original name.

    Non-ASCII names get an ASCII fallback in ``filename`` plus the exact
    name in RFC 5987 ``filename*`` form.
    """
    if file_name.isascii():
        return f'attachment; filename="{file_name}"'
    fallback = unicodedata.normalize("NFKD", file_name).encode("ascii", "ignore").decode("ascii")
    if not fallback.strip(" ."):
        fallback = "download"
    return f"attachment; filename=\"{fallback}\"; filename*=utf-8''{quote(file_name)}"


async def read_body_limited(request: Request, limit: int) -> bytearray:
    """Read the request body, giving up as soon as it exceeds *limit* bytes.

    Raises:
        TooLarge: If the declared or accumulated size crosses the limit.
        InvalidRequest: If the client disconnects mid-body.
    """
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise TooLarge()

    buffer = bytearray()
    try:
        async for chunk in request.stream():
            if len(buffer) + len(chunk) > limit:
                logger.warning("Upload rejected after %d bytes (limit %d)", len(buffer) + len(chunk), limit)
                raise TooLarge()
            buffer.extend(chunk)
    except ClientDisconnect:
        logger.info("Client disconnected after %d bytes; upload discarded", len(buffer))
        raise InvalidRequest("Upload aborted")
    return buffer


@router.get("/files", response_model=List[FileSummary])
async def list_files(
    request: Request,
    session_id: str = Depends(current_session),
    service: TransferService = Depends(get_service),
):
    """List the caller's live files."""
    return [
        FileSummary(
            id=record.id,
            original_name=record.original_name,
            size=record.size,
            upload_time=to_millis(record.upload_time),
            expiry_time=to_millis(record.expiry_time),
            download_link=get_download_url(request, record.storage_key),
        )
        for record in service.list_files(session_id)
    ]


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    request: Request,
    session_id: str = Depends(current_session),
    service: TransferService = Depends(get_service),
    config: RelayConfig = Depends(get_relay_config),
):
    """Upload a single file as multipart/form-data.

    Only the first file part is kept.

    Raises:
        InvalidRequest (400): Missing boundary.
        NoFileFound (400): No file part in the body.
        TooLarge (413): Body exceeds ``storage.max_upload_bytes``.
        StorageFailure (500): Bytes could not be written.
    """
    boundary = parse_boundary(request.headers.get("content-type", ""))
    body = await read_body_limited(request, config.storage.max_upload_bytes)
    extracted = extract_file(body, boundary)
    del body

    record = await service.store_upload(session_id, extracted)
    return UploadResponse(
        message="File uploaded successfully",
        file_id=record.id,
        download_link=get_download_url(request, record.storage_key),
        expiry_time=to_millis(record.expiry_time),
    )


@download_router.get("/download/{storage_key}")
async def download_file(
    storage_key: str,
    service: TransferService = Depends(get_service),
):
    """Stream a file once; it is deleted when the transfer completes.

    Raises:
        NotFoundOrExpired (404): Unknown, expired or already downloaded.
    """
    handle = await service.open_download(storage_key)
    body = service.iter_download(handle)
    return StreamingResponse(
        body,
        media_type=handle.content_type,
        headers={
            "Content-Disposition": content_disposition(handle.record.original_name),
            "Content-Length": str(handle.record.size),
        },
        background=BackgroundTask(body.aclose),
    )
