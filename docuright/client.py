"""DocuRight client facade: wires the core components from settings."""

from __future__ import annotations

import logging
from pathlib import Path

from docuright.config import Settings
from docuright.documents import DocumentService
from docuright.preview.synchronizer import PreviewSynchronizer
from docuright.sessions.manager import TokenLifecycleManager
from docuright.sessions.models import SessionState
from docuright.storage.backends import FileBackend, MemoryBackend, RedisBackend, StorageBackend
from docuright.storage.store import PersistentStore
from docuright.transport import ApiTransport
from docuright.usage.meter import UsageMeter

logger = logging.getLogger(__name__)


def build_backend(settings: Settings) -> StorageBackend:
    """Pick the storage backend named by settings.storage_backend."""
    kind = settings.storage_backend.lower()
    if kind == "memory":
        return MemoryBackend()
    if kind == "file":
        return FileBackend(Path(settings.storage_dir))
    if kind == "redis":
        return RedisBackend(settings.redis_url)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


class DocuRightClient:
    """Owns transport, storage, session manager, usage meter and previews.

    Use as ``async with DocuRightClient.from_settings() as client:``; entering
    restores the persisted session, leaving disarms timers and closes HTTP.
    """

    def __init__(
        self,
        settings: Settings,
        transport: ApiTransport,
        store: PersistentStore,
    ):
        self.settings = settings
        self.transport = transport
        self.store = store
        self.usage = UsageMeter(store, max_free_generations=settings.max_free_generations)
        self.sessions = TokenLifecycleManager(
            transport,
            store,
            usage_meter=self.usage,
            access_token_ttl=settings.access_token_ttl,
            refresh_lead=settings.refresh_lead,
            min_refresh_delay=settings.min_refresh_delay,
            refresh_retry_delay=settings.refresh_retry_delay,
        )
        self.documents = DocumentService(transport, self.sessions, self.usage)
        self._previews: list[PreviewSynchronizer] = []

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> DocuRightClient:
        settings = settings or Settings()
        logging.getLogger("docuright").setLevel(settings.log_level.upper())
        transport = ApiTransport(settings.api_base_url, timeout=settings.request_timeout)
        store = PersistentStore(build_backend(settings))
        return cls(settings, transport, store)

    def preview(self, document_type: str | None = None) -> PreviewSynchronizer:
        """New preview synchronizer bound to this client's transport."""
        synchronizer = PreviewSynchronizer(
            self.transport,
            document_type or self.settings.preview_document_type,
            debounce_seconds=self.settings.preview_debounce_seconds,
        )
        self._previews.append(synchronizer)
        return synchronizer

    async def initialize(self) -> SessionState:
        return await self.sessions.initialize()

    async def aclose(self) -> None:
        for synchronizer in self._previews:
            await synchronizer.aclose()
        self._previews.clear()
        await self.sessions.aclose()
        await self.transport.aclose()

    async def __aenter__(self) -> DocuRightClient:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
