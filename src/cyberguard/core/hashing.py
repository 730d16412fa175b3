""" Utility for content hashing operations. """

import hashlib
import json
from typing import Any


LOCAL_ID_PREFIX = "local-"
LOCAL_ID_LENGTH = 16


def canonical_string(value: Any) -> str:
    # Strings are taken verbatim, everything else goes through JSON.
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def calculate_sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def calculate_sha256(value: Any) -> str:
    """SHA-256 hex digest of the canonical string form of ``value``."""
    if isinstance(value, (bytes, bytearray)):
        return calculate_sha256_bytes(bytes(value))
    return calculate_sha256_bytes(canonical_string(value).encode("utf-8"))


def local_content_id(data: bytes) -> str:
    return LOCAL_ID_PREFIX + calculate_sha256_bytes(data)[:LOCAL_ID_LENGTH]


def is_local_id(content_id: str) -> bool:
    return content_id.startswith(LOCAL_ID_PREFIX)
