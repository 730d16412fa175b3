"""
Storage facade

Flow for reference:
==============================
 store(payload, metadata, encrypt)
   -> EncryptionProvider.encrypt        (only when encrypt=True)
   -> envelope bytes
   -> ContentStoreClient.put            (IPFS, or local blob table)
   -> LocalIndex.upsert                 (only after the put succeeded)

 retrieve(content_id)
   -> LocalIndex.get                    (isEncrypted flag; missing entry is fine)
   -> ContentStoreClient.get / LocalBlobStore.get
   -> EncryptionProvider.decrypt        (only when the flag says so)
==============================
Envelopes:
> unencrypted: the JSON of the payload itself
> encrypted:   {"encrypted": "<base64 ciphertext>", "alg": "AES-256-GCM"}

Whether a record is encrypted is read from the index, never guessed from the
envelope's shape. Every public method returns a StorageResult; taxonomy errors
never cross this boundary.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

from .exceptions import (
    BackendError,
    CyberGuardError,
    DecryptionFailed,
    PayloadInvalid,
    StorageError,
    StorageUnavailable,
)
from .hashing import is_local_id
from .index import LocalIndex
from .models import IndexEntry, PutResult, StorageMethod, StorageMode, StorageResult, utc_now_iso
from ..network.client import ContentStoreClient
from ..security.encryption import ALGORITHM, EncryptionProvider

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY = "https://ipfs.io"


class StorageFacade:
    """Store, retrieve and track records; sole writer of the local index."""

    def __init__(
        self,
        client: ContentStoreClient,
        index: LocalIndex,
        encryption: EncryptionProvider,
        gateway: str = DEFAULT_GATEWAY,
        retry_locally: bool = True,
    ):
        self.client = client
        self.index = index
        self.encryption = encryption
        self.gateway = gateway
        self.retry_locally = retry_locally

    @property
    def mode(self) -> Optional[StorageMode]:
        return self.client.mode

    # ------------------------------------------------------------------
    # Envelope helpers
    # ------------------------------------------------------------------

    def _seal(self, payload: Any, encrypt: bool) -> bytes:
        try:
            text = json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise PayloadInvalid(f"Payload is not JSON-serializable: {e}") from e
        if not encrypt:
            return text.encode("utf-8")

        # decrypt() parses the JSON text back
        key = self.encryption.get_or_create_key()
        envelope = {"encrypted": self.encryption.encrypt(text, key), "alg": ALGORITHM}
        return json.dumps(envelope).encode("utf-8")

    @staticmethod
    def _check_metadata(metadata: Dict[str, Any]) -> None:
        try:
            json.dumps(metadata)
        except (TypeError, ValueError) as e:
            raise PayloadInvalid(f"Metadata is not JSON-serializable: {e}") from e

    def _open(self, raw: bytes, encrypted: bool) -> Any:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            if encrypted:
                raise DecryptionFailed("Encrypted envelope is not UTF-8 text") from e
            return raw
        try:
            envelope = json.loads(text)
        except ValueError:
            if encrypted:
                raise DecryptionFailed("Encrypted envelope is not valid JSON")
            return text

        if not encrypted:
            return envelope
        if not isinstance(envelope, dict) or not isinstance(envelope.get("encrypted"), str):
            raise DecryptionFailed("Record is flagged as encrypted but has no ciphertext")
        return self.encryption.decrypt(envelope["encrypted"])

    async def _put(self, data: bytes, pin: bool) -> tuple[PutResult, StorageMethod]:
        # BackendTimeout is not retried: the node may still commit the content.
        try:
            put = await self.client.put(data, pin=pin)
        except StorageError as e:
            raise StorageUnavailable(f"Local store failed: {e}") from e
        except BackendError as e:
            if not self.retry_locally:
                raise StorageUnavailable(f"IPFS put failed: {e}") from e
            logger.warning("IPFS put failed, storing locally instead: %s", e)
            try:
                return self.client.local.put(data), StorageMethod.LOCAL
            except StorageError as local_error:
                raise StorageUnavailable(
                    f"IPFS put failed ({e}) and local store failed ({local_error})"
                ) from local_error

        if self.client.is_connected:
            return put, StorageMethod.DISTRIBUTED
        return put, StorageMethod.LOCAL

    async def _fetch(self, content_id: str) -> bytes:
        if is_local_id(content_id):
            return self.client.local.get(content_id)
        return await self.client.get(content_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def store(
        self,
        payload: Any,
        metadata: Optional[Dict[str, Any]] = None,
        encrypt: bool = True,
        pin: bool = False,
    ) -> StorageResult:
        """
        Store ``payload`` and register it in the index.

        Returns ``{"content_id", "metadata"}`` on success. The index is only
        written once the store client has confirmed the put.
        """
        try:
            self._check_metadata(metadata or {})
            data = self._seal(payload, encrypt)
            put, method = await self._put(data, pin)

            final_metadata = {
                **(metadata or {}),
                "isEncrypted": bool(encrypt),
                "storageMethod": method.value,
                "gateway": self.gateway,
                "timestamp": utc_now_iso(),
            }
            entry = self.index.upsert(put.content_id, final_metadata)
            logger.info("Stored %s (%s, %d bytes)", put.content_id, method.value, put.size)
            return StorageResult.ok({"content_id": put.content_id, "metadata": entry.metadata})

        except CyberGuardError as e:
            logger.error("Failed to store data: %s", e)
            return StorageResult.fail(e)

    async def retrieve(self, content_id: str, encrypted: Optional[bool] = None) -> StorageResult:
        """
        Fetch and open a record.

        ``encrypted`` is only consulted when the index has no entry for
        ``content_id``; otherwise the recorded flag wins.
        Returns ``{"value", "metadata"}`` (``metadata`` is None without an entry).
        """
        try:
            entry = self.index.get(content_id)
            if entry is not None:
                is_encrypted = entry.is_encrypted
            else:
                is_encrypted = bool(encrypted)

            raw = await self._fetch(content_id)
            value = self._open(raw, is_encrypted)
            return StorageResult.ok({
                "value": value,
                "metadata": entry.metadata if entry is not None else None,
            })

        except CyberGuardError as e:
            logger.error("Failed to retrieve %s: %s", content_id, e)
            return StorageResult.fail(e)

    async def delete(self, content_id: str) -> StorageResult:
        """
        Stop tracking ``content_id``.

        Content on IPFS is left alone (other nodes may hold it anyway); local
        blobs are dropped since nothing else refers to them.
        """
        try:
            removed = self.index.remove(content_id)
            if is_local_id(content_id):
                self.client.local.delete(content_id)
            return StorageResult.ok({"content_id": content_id, "removed": removed})
        except CyberGuardError as e:
            logger.error("Failed to delete %s: %s", content_id, e)
            return StorageResult.fail(e)

    async def clear_all(self) -> StorageResult:
        """Empty the index; in fallback mode also purge the local blob table."""
        try:
            self.index.clear()
            purged = 0
            if self.client.mode is StorageMode.FALLBACK:
                purged = self.client.local.clear()
            logger.info("Cleared storage index (%d local blobs purged)", purged)
            return StorageResult.ok({"purged_blobs": purged})
        except CyberGuardError as e:
            logger.error("Failed to clear storage: %s", e)
            return StorageResult.fail(e)

    def list_index(self, type: Optional[str] = None, order: str = "newest") -> list[IndexEntry]:
        entries = self.index.filter(type=type) if type else self.index.list()
        return self.index.sort(entries, order)

    def stats(self) -> Dict[str, Any]:
        stats = self.index.stats()
        stats["mode"] = self.client.mode.value if self.client.mode else None
        stats["local_blobs"] = self.client.local.count()
        stats["local_bytes"] = self.client.local.total_size()
        return stats

    async def export(self, content_id: str) -> StorageResult:
        """Render a record as pretty JSON with a suggested download filename."""
        result = await self.retrieve(content_id)
        if not result.success:
            return result
        metadata = result.data["metadata"] or {}
        record_type = metadata.get("type") or "other"
        return StorageResult.ok({
            "filename": f"cyberguard-{record_type}-{int(time.time() * 1000)}.json",
            "content": json.dumps(result.data["value"], indent=2, ensure_ascii=False),
        })
