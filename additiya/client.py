"""
Composition root for the screening client.

Wires configuration, storage, transport, the session state machine, profile
sync and the photo pipeline into one object a UI shell holds for the life of
the process:

    async with ScreeningClient(navigator=router) as client:
        await client.session.login(email, password)
        await client.profile.fetch(FetchTrigger.MOUNT)
"""

import httpx
import structlog

from additiya.adapters.storage import JsonFileStorage
from additiya.config import AppConfig, get_config
from additiya.domain.models import SessionState
from additiya.logging_config import configure_logging
from additiya.services.api_transport import ApiTransport
from additiya.services.media_upload import ImagePicker, MediaUploadPipeline, PermissionGateway
from additiya.services.profile_sync import ProfileSync
from additiya.services.session import EntryNavigator, SessionController
from additiya.services.token_store import KeyValueStorage, TokenStore

logger = structlog.get_logger(__name__)


class ScreeningClient:
    """Owns every stateful component; one instance per running app."""

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        storage: KeyValueStorage | None = None,
        navigator: EntryNavigator | None = None,
        permissions: PermissionGateway | None = None,
        picker: ImagePicker | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or get_config()
        configure_logging(self.config.logging.level, self.config.logging.format)
        self.logger = logger.bind(component="screening_client")

        self._init_storage(storage)
        self._init_session(http_client, navigator)
        self._init_profile()
        self._init_media(permissions, picker)

    def _init_storage(self, storage: KeyValueStorage | None) -> None:
        """Initialize credential storage."""
        medium = storage or JsonFileStorage(self.config.storage.token_file_path)
        self.token_store = TokenStore(medium, key=self.config.storage.token_key)
        self.logger.info("storage_initialized", medium=type(medium).__name__)

    def _init_session(self, http_client: httpx.AsyncClient | None, navigator: EntryNavigator | None) -> None:
        """Initialize transport and the session state machine."""
        self.transport = ApiTransport(self.config.api, client=http_client)
        self.session = SessionController(
            self.token_store,
            self.transport,
            navigator=navigator,
            logout_path=self.config.api.logout_path,
        )
        self.logger.info("session_initialized", base_url=self.config.api.base_url)

    def _init_profile(self) -> None:
        """Initialize profile sync; the snapshot is dropped whenever the session ends."""
        self.profile = ProfileSync(self.session)

        def on_session_change(state: SessionState) -> None:
            if state is SessionState.UNAUTHENTICATED:
                self.profile.reset()

        self.session.add_listener(on_session_change)

    def _init_media(self, permissions: PermissionGateway | None, picker: ImagePicker | None) -> None:
        """Initialize the photo pipeline when the host provides device access."""
        self.media: MediaUploadPipeline | None = None
        if permissions is None or picker is None:
            self.logger.info("media_pipeline_disabled")
            return
        self.media = MediaUploadPipeline(
            self.session, self.profile, permissions, picker, config=self.config.media
        )

    async def start(self) -> SessionState:
        """Restore the session from storage. Call once before showing any screen."""
        state = await self.session.restore()
        self.logger.info("client_started", state=state.value)
        return state

    async def aclose(self) -> None:
        await self.transport.aclose()
        self.logger.info("client_stopped")

    async def __aenter__(self) -> "ScreeningClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
