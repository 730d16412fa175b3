"""
Base data models for the storage index and facade results
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StorageMode(Enum):
    # How the store client was initialized; fixed for the client's lifetime
    CONNECTED = "connected"
    FALLBACK = "fallback"


class StorageMethod(Enum):
    # Where a given record actually landed
    DISTRIBUTED = "distributed"
    LOCAL = "local"


class RecordType(Enum):
    # Known record categories. The index accepts any string; these are the ones the dashboard writes.
    SCAN_RESULT = "scan_result"
    CHAT_HISTORY = "chat_history"
    INCIDENT_REPORT = "incident_report"
    OTHER = "other"


@dataclass
class IndexEntry:
    """One row of the local index.

    ``metadata`` holds the caller's keys merged with the storage keys
    (``isEncrypted``, ``storageMethod``, ``gateway``, ``timestamp``).
    """

    content_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def type(self) -> str:
        return self.metadata.get("type") or RecordType.OTHER.value

    @property
    def title(self) -> Optional[str]:
        return self.metadata.get("title")

    @property
    def is_encrypted(self) -> bool:
        return bool(self.metadata.get("isEncrypted", False))

    @property
    def storage_method(self) -> Optional[str]:
        return self.metadata.get("storageMethod")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cid": self.content_id,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexEntry":
        if not isinstance(data, dict) or not isinstance(data.get("cid"), str):
            raise ValueError(f"Malformed index entry: {data!r}")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError(f"Malformed index metadata for {data['cid']}")
        return cls(
            content_id=data["cid"],
            metadata=dict(metadata),
            timestamp=data.get("timestamp") or metadata.get("timestamp") or utc_now_iso(),
        )


@dataclass
class PutResult:
    content_id: str
    size: int


@dataclass
class StorageResult:
    """Outcome of a facade call.

    Exactly one of ``data`` / ``error`` is meaningful, selected by ``success``.
    ``error_type`` carries the exception class name from
    :mod:`cyberguard.core.exceptions` so callers can branch on it.
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "StorageResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: Exception) -> "StorageResult":
        return cls(success=False, error=str(exc), error_type=type(exc).__name__)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error, "errorType": self.error_type}
