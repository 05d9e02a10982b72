"""Core orchestrator - wires storage, dispatcher and session together."""
from typing import Optional
import logging

from ..errors import StorageError
from ..models import UploaderConfig
from ..protocols import IStorageClient
from ..services.api_client import HTTPStorageClient
from ..services.file_policy import AcceptedFileTypes
from ..services.storage import StorageService

from .dispatcher import UploadDispatcher
from .session import UploadSession

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """
    Orchestrates batch uploads using injected services.

    Usage:
        # HTTP storage route from config
        async with UploadOrchestrator(config=UploaderConfig(storage_url=url)) as orchestrator:
            session = orchestrator.session
            session.open_modal()
            session.add_files(files)
            batch = await session.submit()

        # Any IStorageClient implementation
        async with UploadOrchestrator(storage_client=client) as orchestrator:
            ...
    """

    def __init__(
        self,
        config: Optional[UploaderConfig] = None,
        storage_client: Optional[IStorageClient] = None,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            config: Upload configuration
            storage_client: Pre-built storage client; when omitted an
                HTTPStorageClient is created from ``config.storage_url``
        """
        self._config = config or UploaderConfig()
        self._external_client = storage_client

        # Initialized in __aenter__
        self._http_client: Optional[HTTPStorageClient] = None
        self._storage: Optional[StorageService] = None
        self._session: Optional[UploadSession] = None
        self._storage_error: Optional[str] = None

    async def __aenter__(self):
        """Initialize services and session."""
        if self._external_client is not None:
            client = self._external_client
        elif self._config.storage_url:
            self._http_client = HTTPStorageClient(
                self._config.storage_url,
                bucket=self._config.bucket,
                timeout=self._config.request_timeout,
                max_retries=self._config.max_retries,
            )
            await self._http_client.__aenter__()
            client = self._http_client
        else:
            raise ValueError("Either storage_client or config.storage_url must be provided")

        self._storage = StorageService(
            client,
            policy=AcceptedFileTypes(self._config.accepted_extensions),
        )
        self._session = UploadSession(
            self._storage.upload,
            concurrency_limit=self._config.concurrency_limit,
            notification_ttl=self._config.notification_ttl,
            dispatcher=UploadDispatcher(),
        )

        await self._check_storage(client)
        return self

    async def __aexit__(self, *args):
        """Cleanup resources."""
        if self._session:
            self._session.close()
        if self._http_client:
            await self._http_client.__aexit__(*args)

    async def _check_storage(self, client) -> None:
        check_ready = getattr(client, "check_ready", None)
        if not callable(check_ready):
            return
        try:
            await check_ready()
            self._storage_error = None
        except StorageError as e:
            logger.error(f"Storage initialization error: {e}")
            self._storage_error = (
                "Failed to initialize storage. Please check your environment variables."
            )

    @property
    def config(self) -> UploaderConfig:
        return self._config

    @property
    def session(self) -> UploadSession:
        assert self._session is not None
        return self._session

    @property
    def storage(self) -> StorageService:
        assert self._storage is not None
        return self._storage

    @property
    def storage_error(self) -> Optional[str]:
        """Banner text when the storage route failed its readiness check."""
        return self._storage_error

    def dismiss_storage_error(self) -> None:
        self._storage_error = None
