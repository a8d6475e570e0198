"""Shared test fixtures and configuration for relay tests."""
import pytest
from fastapi.testclient import TestClient

from filerelay.config import RelayConfig, StorageSettings, SweeperSettings
from filerelay.files.service import TransferService
from filerelay.files.storage import BlobStorage
from filerelay.files.store import FileStore
from filerelay.main import create_app
from filerelay.sessions.store import SessionStore

BOUNDARY = "----relayTestBoundary7MA4YWxk"
TTL = 4 * 60 * 60


class FakeClock:
    """Manually advanced stand-in for ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def multipart_body(
    file_name: str,
    content: bytes,
    boundary: str = BOUNDARY,
    fields: dict = None,
    content_type: str = "application/octet-stream",
) -> bytes:
    """Build a multipart/form-data body the way a browser would."""
    parts = []
    for name, value in (fields or {}).items():
        parts.append(
            f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n'.encode()
            + value.encode()
            + b"\r\n"
        )
    parts.append(
        f'--{boundary}\r\nContent-Disposition: form-data; name="file"; filename="{file_name}"\r\n'
        f"Content-Type: {content_type}\r\n\r\n".encode()
        + content
        + b"\r\n"
    )
    parts.append(f"--{boundary}--\r\n".encode())
    return b"".join(parts)


def multipart_headers(boundary: str = BOUNDARY) -> dict:
    return {"Content-Type": f"multipart/form-data; boundary={boundary}"}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def relay_config(upload_dir):
    return RelayConfig(
        storage=StorageSettings(
            upload_dir=str(upload_dir),
            max_upload_bytes=64 * 1024,
            file_ttl_seconds=TTL,
            download_chunk_bytes=4,
        ),
        sweeper=SweeperSettings(enabled=False),
    )


@pytest.fixture
def relay_app(relay_config, clock):
    return create_app(relay_config, clock=clock)


@pytest.fixture
def api_client(relay_app):
    """Provide a TestClient bound to a fresh app with its own stores."""
    return TestClient(relay_app)


@pytest.fixture
def service(upload_dir, clock):
    """A TransferService over real on-disk storage in a temp directory."""
    return TransferService(
        files=FileStore(),
        sessions=SessionStore(clock=clock),
        storage=BlobStorage(str(upload_dir)),
        ttl_seconds=TTL,
        chunk_size=4,
        clock=clock,
    )
