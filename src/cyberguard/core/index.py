"""
Local index of stored records.

The whole index is one JSON array under ``cyberguard-storage-index`` in the
durable kv table. Every mutation rewrites the document; the index stays small
(one entry per record a single user stored), so that is acceptable.

A document that does not parse is reset to ``[]``: the index is only a
convenience registry and the records themselves stay reachable by content id.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from ..database.models import KeyValueModel
from .exceptions import IndexCorrupt
from .models import IndexEntry, utc_now_iso

logger = logging.getLogger(__name__)

STORAGE_INDEX_KEY = "cyberguard-storage-index"

SORT_ORDERS = ("newest", "oldest")


class LocalIndex:
    """Persisted list of :class:`IndexEntry` keyed by content id."""

    def __init__(self, kv: KeyValueModel, key: str = STORAGE_INDEX_KEY):
        self.kv = kv
        self.key = key

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _parse(self, raw: str) -> List[IndexEntry]:
        try:
            doc = json.loads(raw)
        except ValueError as e:
            raise IndexCorrupt(f"Index document is not valid JSON: {e}") from e
        if not isinstance(doc, list):
            raise IndexCorrupt(f"Index document must be a list, got {type(doc).__name__}")
        try:
            return [IndexEntry.from_dict(item) for item in doc]
        except ValueError as e:
            raise IndexCorrupt(str(e)) from e

    def _load(self) -> List[IndexEntry]:
        raw = self.kv.get(self.key)
        if raw is None:
            return []
        try:
            return self._parse(raw)
        except IndexCorrupt as e:
            logger.warning("Resetting corrupt storage index: %s", e)
            self._save([])
            return []

    def _save(self, entries: List[IndexEntry]) -> None:
        self.kv.set(self.key, json.dumps([e.to_dict() for e in entries], ensure_ascii=False))

    def ensure(self) -> None:
        """Write an empty document if none exists yet."""
        if self.kv.get(self.key) is None:
            self._save([])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> List[IndexEntry]:
        return self._load()

    def get(self, content_id: str) -> Optional[IndexEntry]:
        for entry in self._load():
            if entry.content_id == content_id:
                return entry
        return None

    def __len__(self) -> int:
        return len(self._load())

    def __contains__(self, content_id: str) -> bool:
        return self.get(content_id) is not None

    def filter(
        self,
        type: Optional[str] = None,
        encrypted: Optional[bool] = None,
        text: Optional[str] = None,
    ) -> List[IndexEntry]:
        """Entries matching every given criterion; ``text`` searches title and type."""
        entries = self._load()
        if type is not None:
            entries = [e for e in entries if e.type == type]
        if encrypted is not None:
            entries = [e for e in entries if e.is_encrypted == encrypted]
        if text:
            needle = text.lower()
            entries = [
                e for e in entries
                if needle in (e.title or "").lower() or needle in e.type.lower()
            ]
        return entries

    @staticmethod
    def sort(entries: List[IndexEntry], order: str = "newest") -> List[IndexEntry]:
        if order not in SORT_ORDERS:
            raise ValueError(f"Unknown sort order {order!r}; expected one of {SORT_ORDERS}")
        return sorted(entries, key=lambda e: e.timestamp, reverse=(order == "newest"))

    def stats(self) -> Dict[str, Any]:
        entries = self._load()
        return {
            "total_items": len(entries),
            "by_type": dict(Counter(e.type for e in entries)),
            "encrypted": sum(1 for e in entries if e.is_encrypted),
            "by_storage_method": dict(Counter(e.storage_method or "unknown" for e in entries)),
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upsert(self, content_id: str, metadata: Dict[str, Any]) -> IndexEntry:
        """Insert a new entry or merge ``metadata`` into the existing one."""
        entries = self._load()
        now = utc_now_iso()

        for i, entry in enumerate(entries):
            if entry.content_id == content_id:
                merged = {**entry.metadata, **metadata}
                entries[i] = IndexEntry(content_id=content_id, metadata=merged, timestamp=now)
                self._save(entries)
                return entries[i]

        entry = IndexEntry(content_id=content_id, metadata=dict(metadata), timestamp=now)
        entries.append(entry)
        self._save(entries)
        return entry

    def remove(self, content_id: str) -> bool:
        entries = self._load()
        remaining = [e for e in entries if e.content_id != content_id]
        if len(remaining) == len(entries):
            return False
        self._save(remaining)
        return True

    def clear(self) -> None:
        self._save([])
