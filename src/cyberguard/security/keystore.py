"""Where the process-wide encryption key lives.

Two stores are provided:

- ``LocalKeyStore`` keeps the hex-encoded key in the durable kv table next to
  the storage index (the default, mirroring the browser localStorage entry).
- ``KeyringKeyStore`` keeps it in the OS keystore through ``keyring``. This is
  opt-in; do not assume keyring provides hardware-backed security on all
  platforms.
"""
import base64
import binascii
import logging
from typing import Optional

try:
    import keyring
except Exception:
    keyring = None

from ..database.models import KeyValueModel

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_NAME = "cyberguard-encryption-key"
KEYRING_SERVICE = "cyberguard"


def _require_keyring():
    if keyring is None:
        raise RuntimeError("keyring package is not available; install keyring to use keystore features")


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics are used because the `keyring` package exposes different backends
    across platforms. If `keyring` is not available this returns (False, reason).
    """
    if keyring is None:
        return False, "keyring package is not installed"

    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return False, f"failed to get keyring backend: {e}"

    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File", "Fail")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


class LocalKeyStore:
    """Hex-encoded key under a well-known key of the durable kv table."""

    def __init__(self, kv: KeyValueModel, name: str = ENCRYPTION_KEY_NAME):
        self.kv = kv
        self.name = name

    def load(self) -> Optional[bytes]:
        stored = self.kv.get(self.name)
        if stored is None:
            return None
        try:
            return bytes.fromhex(stored)
        except ValueError:
            logger.error("Stored encryption key is not valid hex; ignoring it")
            return None

    def save(self, key: bytes) -> None:
        self.kv.set(self.name, key.hex())

    def delete(self) -> None:
        self.kv.delete(self.name)


class KeyringKeyStore:
    """Base64-encoded key in the OS keystore under (service, account)."""

    def __init__(self, account: str = ENCRYPTION_KEY_NAME, service: str = KEYRING_SERVICE, force: bool = False):
        self.service = service
        self.account = account
        self.force = force

    def load(self) -> Optional[bytes]:
        _require_keyring()
        secret = keyring.get_password(self.service, self.account)
        if secret is None:
            return None
        try:
            return base64.b64decode(secret, validate=True)
        except (binascii.Error, ValueError):
            return None

    def save(self, key: bytes) -> None:
        _require_keyring()
        if not self.force:
            secure, msg = assess_keyring_backend()
            if not secure:
                raise RuntimeError(
                    f"refusing to persist encryption key to OS keystore: {msg}; "
                    "pass force=True to override if you understand the risk"
                )
        keyring.set_password(self.service, self.account, base64.b64encode(key).decode("ascii"))

    def delete(self) -> None:
        _require_keyring()
        try:
            keyring.delete_password(self.service, self.account)
        except Exception as e:
            # ignore backend-specific errors
            logger.debug("keyring delete ignored: %s", e)
