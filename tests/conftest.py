"""Pytest configuration and shared fixtures."""

import io
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest
from PIL import Image

from additiya.adapters.simulated_backend import SimulatedBackend
from additiya.adapters.storage import InMemoryStorage
from additiya.config import APIConfig, AppConfig, LoggingConfig, MediaConfig, StorageConfig
from additiya.domain.models import RedirectReason
from additiya.services.api_transport import ApiTransport
from additiya.services.session import SessionController
from additiya.services.token_store import TokenStore

TEST_BASE_URL = "http://backend.test"

SEEDED_USER: dict[str, Any] = {
    "name": "Asha Verma",
    "email": "asha.verma@example.com",
    "password": "s3cret-pass",
    "address": "221 Residency Road, Bengaluru",
    "phone": "9812345678",
}


class RecordingNavigator:
    """EntryNavigator double that remembers every redirect signal."""

    def __init__(self) -> None:
        self.redirects: list[RedirectReason] = []

    def redirect_to_entry(self, reason: RedirectReason) -> None:
        self.redirects.append(reason)


def make_image_bytes(size: tuple[int, int] = (640, 480), fmt: str = "PNG", mode: str = "RGB") -> bytes:
    color: Any = (200, 40, 90, 255) if mode == "RGBA" else (200, 40, 90)
    img = Image.new(mode, size, color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def app_config(tmp_path: Any) -> AppConfig:
    return AppConfig(
        environment="development",
        api=APIConfig(base_url=TEST_BASE_URL, timeout_seconds=2.0, deadline_seconds=3.0),
        storage=StorageConfig(data_dir=tmp_path),
        media=MediaConfig(),
        logging=LoggingConfig(level="DEBUG", format="console"),
    )


@pytest.fixture
def backend() -> SimulatedBackend:
    backend = SimulatedBackend()
    backend.seed_user(**SEEDED_USER)
    return backend


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def token_store(storage: InMemoryStorage) -> TokenStore:
    return TokenStore(storage)


@pytest.fixture
async def http_client(backend: SimulatedBackend) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=backend.transport(), base_url=TEST_BASE_URL) as client:
        yield client


@pytest.fixture
def transport(app_config: AppConfig, http_client: httpx.AsyncClient) -> ApiTransport:
    return ApiTransport(app_config.api, client=http_client)


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
def session(
    token_store: TokenStore, transport: ApiTransport, navigator: RecordingNavigator
) -> SessionController:
    return SessionController(token_store, transport, navigator=navigator)


@pytest.fixture
async def signed_in_session(session: SessionController) -> SessionController:
    result = await session.login(SEEDED_USER["email"], SEEDED_USER["password"])
    assert result.is_ok(), result
    return session


@pytest.fixture
def make_image() -> Any:
    """Factory for in-memory image files."""
    return make_image_bytes


@pytest.fixture
def seeded_user() -> dict[str, Any]:
    """Credentials and profile of the account every backend fixture starts with."""
    return dict(SEEDED_USER)
