"""Build the runtime context every CyberGuard component shares."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from cyberguard.config import Settings
from cyberguard.core.index import LocalIndex
from cyberguard.core.models import StorageMode
from cyberguard.core.storage import StorageFacade
from cyberguard.database.connection import DatabaseConnection
from cyberguard.database.models import BlobModel, KeyValueModel
from cyberguard.network.client import ContentStoreClient, LocalBlobStore
from cyberguard.security.encryption import EncryptionProvider
from cyberguard.security.keystore import KeyringKeyStore, LocalKeyStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Container for the runtime objects; created once at startup."""

    settings: Settings
    db: DatabaseConnection
    encryption: EncryptionProvider
    client: ContentStoreClient
    index: LocalIndex
    storage: StorageFacade

    @property
    def mode(self) -> Optional[StorageMode]:
        return self.client.mode

    async def aclose(self) -> None:
        """Cancel subscriptions, close HTTP clients and the database."""
        try:
            await self.client.close()
        finally:
            self.db.close()

    async def __aenter__(self) -> "AppContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


async def build_context(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AppContext:
    """
    Open the durable store, pick the key store, and initialize the store client.

    The client decides CONNECTED vs FALLBACK here, once. An unreachable node is
    logged and leaves the context in local-only mode; it is not an error.
    ``transport`` is handed to httpx and exists for tests.
    """
    settings = settings or Settings.from_env()

    db = DatabaseConnection(settings.db_path)
    db.initialize()
    kv = KeyValueModel(db)

    if settings.key_backend == "keyring":
        key_store = KeyringKeyStore()
    else:
        key_store = LocalKeyStore(kv)
    encryption = EncryptionProvider(key_store)

    index = LocalIndex(kv)
    index.ensure()

    client = ContentStoreClient(
        LocalBlobStore(BlobModel(db)),
        api_url=settings.ipfs_api,
        timeout=settings.timeout,
        auth=settings.auth,
        connect_attempts=settings.connect_attempts,
        gateway=settings.gateway,
        gateway_reads=settings.gateway_reads,
        transport=transport,
    )
    await client.initialize(offline=settings.offline)

    storage = StorageFacade(
        client,
        index,
        encryption,
        gateway=settings.gateway,
        retry_locally=settings.retry_locally,
    )
    return AppContext(
        settings=settings,
        db=db,
        encryption=encryption,
        client=client,
        index=index,
        storage=storage,
    )
