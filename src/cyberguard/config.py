"""Runtime settings, read from ``CYBERGUARD_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple

DEFAULT_DB_PATH = Path.home() / ".cyberguard" / "cyberguard.db"
DEFAULT_IPFS_API = "http://127.0.0.1:5001"
DEFAULT_GATEWAY = "https://ipfs.io"

_TRUTHY = ("1", "true", "yes", "on")


def _flag(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    ipfs_api: Optional[str] = DEFAULT_IPFS_API
    gateway: str = DEFAULT_GATEWAY
    timeout: float = 10.0
    connect_attempts: int = 3
    offline: bool = False
    key_backend: str = "local"
    gateway_reads: bool = False
    retry_locally: bool = True
    auth: Optional[Tuple[str, str]] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        auth = None
        raw_auth = env.get("CYBERGUARD_AUTH")
        if raw_auth:
            user, sep, secret = raw_auth.partition(":")
            if not sep:
                raise ValueError("CYBERGUARD_AUTH must look like 'user:secret'")
            auth = (user, secret)

        key_backend = env.get("CYBERGUARD_KEY_BACKEND", "local").strip().lower()
        if key_backend not in ("local", "keyring"):
            raise ValueError(f"CYBERGUARD_KEY_BACKEND must be 'local' or 'keyring', got {key_backend!r}")

        return cls(
            db_path=Path(env.get("CYBERGUARD_DB_PATH") or DEFAULT_DB_PATH).expanduser(),
            # an empty value disables the node entirely
            ipfs_api=env.get("CYBERGUARD_IPFS_API", DEFAULT_IPFS_API) or None,
            gateway=env.get("CYBERGUARD_GATEWAY") or DEFAULT_GATEWAY,
            timeout=float(env.get("CYBERGUARD_TIMEOUT", "10")),
            connect_attempts=int(env.get("CYBERGUARD_CONNECT_ATTEMPTS", "3")),
            offline=_flag(env.get("CYBERGUARD_OFFLINE")),
            key_backend=key_backend,
            gateway_reads=_flag(env.get("CYBERGUARD_GATEWAY_READS")),
            auth=auth,
        )

    def override(self, **changes) -> "Settings":
        """Copy with the non-None ``changes`` applied (CLI flags)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
