"""
Encryption provider for the CyberGuard storage layer.

One key for the whole process:

- generated lazily (32 random bytes) the first time it is needed
- persisted through a key store (the durable kv table by default)
- never rotated; losing it strands every encrypted record

Ciphertexts are strings so they can sit inside a JSON envelope:
``base64(nonce || AES-256-GCM ciphertext+tag)``.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from typing import Any, Optional, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import DecryptionFailed, EncryptionUnavailable
from ..core.hashing import calculate_sha256, canonical_string
from .kdf import generate_salt, hash_password

logger = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12
ALGORITHM = "AES-256-GCM"


class KeyStore(Protocol):
    def load(self) -> Optional[bytes]: ...

    def save(self, key: bytes) -> None: ...


def generate_key() -> bytes:
    return os.urandom(KEY_SIZE)


class EncryptionProvider:
    """
    Symmetric encryption with a single persisted key.

    It deliberately knows nothing about the index or the store client;
    `StorageFacade` decides when to call it.
    """

    def __init__(self, key_store: KeyStore):
        self.key_store = key_store
        self._key: Optional[bytes] = None

    # ------------------------------------------------------------------
    # Key lifecycle
    # ------------------------------------------------------------------

    def get_key(self) -> Optional[bytes]:
        """Return the persisted key, or None if none has been created yet."""
        if self._key is None:
            try:
                key = self.key_store.load()
            except Exception as e:
                raise EncryptionUnavailable(f"Could not load the encryption key: {e}") from e
            if key is not None and len(key) != KEY_SIZE:
                logger.error("Persisted key has unexpected length %d; ignoring it", len(key))
                key = None
            self._key = key
        return self._key

    def get_or_create_key(self) -> bytes:
        """
        Return the persisted key, generating and persisting one on first use.

        Raises ``EncryptionUnavailable`` when the key store cannot be written.
        """
        key = self.get_key()
        if key is not None:
            return key

        key = generate_key()
        try:
            self.key_store.save(key)
        except Exception as e:
            raise EncryptionUnavailable(f"Could not persist a new encryption key: {e}") from e

        logger.info("Generated a new encryption key")
        self._key = key
        return key

    def _resolve_key(self, key: Optional[bytes | str]) -> bytes:
        if key is None:
            key = self.get_key()
            if key is None:
                raise EncryptionUnavailable("No encryption key available")
            return key
        if isinstance(key, str):
            try:
                key = bytes.fromhex(key)
            except ValueError as e:
                raise EncryptionUnavailable("Supplied key is not valid hex") from e
        if len(key) != KEY_SIZE:
            raise EncryptionUnavailable(f"Supplied key must be {KEY_SIZE} bytes")
        return key

    # ------------------------------------------------------------------
    # Encrypt / decrypt
    # ------------------------------------------------------------------

    def encrypt(self, value: Any, key: Optional[bytes | str] = None) -> str:
        """
        Encrypt the canonical string form of ``value``.

        Strings are encrypted verbatim; anything else is JSON-encoded first.
        A fresh 96-bit nonce is drawn per call, so equal inputs produce
        different ciphertexts.
        """
        aead = AESGCM(self._resolve_key(key))
        nonce = os.urandom(NONCE_SIZE)
        ct = aead.encrypt(nonce, canonical_string(value).encode("utf-8"), None)
        return base64.b64encode(nonce + ct).decode("ascii")

    def decrypt(self, ciphertext: str, key: Optional[bytes | str] = None) -> Any:
        """
        Reverse :meth:`encrypt`.

        Returns parsed JSON when the plaintext is JSON, the raw string otherwise.
        """
        resolved = self._resolve_key(key)
        try:
            blob = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecryptionFailed("Ciphertext is not valid base64") from e

        if len(blob) < NONCE_SIZE + 16:
            raise DecryptionFailed("Ciphertext too short to contain nonce and tag")

        nonce, ct = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        try:
            raw = AESGCM(resolved).decrypt(nonce, ct, None)
        except InvalidTag as e:
            raise DecryptionFailed("Wrong key or corrupt ciphertext") from e

        text = raw.decode("utf-8")
        try:
            return json.loads(text)
        except ValueError:
            return text

    # ------------------------------------------------------------------
    # Hashing helpers
    # ------------------------------------------------------------------

    @staticmethod
    def hash(value: Any) -> str:
        return calculate_sha256(value)

    @staticmethod
    def generate_salt(length: int = 16) -> str:
        return generate_salt(length).hex()

    @staticmethod
    def hash_password(password: str, salt: str, **params) -> str:
        return hash_password(password, salt, **params)
