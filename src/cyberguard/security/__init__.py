"""Security helpers: key storage, password hashing and payload encryption.

This package provides:
- Argon2id-based salted password hashing
- a process-wide AES-256-GCM key kept in the durable store or the OS keyring
- string ciphertexts suitable for embedding in JSON envelopes
"""

from .kdf import generate_salt, derive_key, hash_password
from .keystore import LocalKeyStore, KeyringKeyStore, assess_keyring_backend
from .encryption import EncryptionProvider, generate_key

__all__ = [
    "generate_salt",
    "derive_key",
    "hash_password",
    "LocalKeyStore",
    "KeyringKeyStore",
    "assess_keyring_backend",
    "EncryptionProvider",
    "generate_key",
]
