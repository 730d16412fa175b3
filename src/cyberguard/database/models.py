"""Table helpers for the durable key-value store."""

from typing import Optional

from .connection import DatabaseConnection


class BaseModel:
    """Base class for table helpers."""

    __slots__ = ("db",)

    def __init__(self, db: DatabaseConnection):
        self.db = db


class KeyValueModel(BaseModel):
    """String values under well-known keys (index document, key material)."""

    def get(self, key: str) -> Optional[str]:
        row = self.db.fetch_one("SELECT value FROM kv WHERE key = ?", (key,))
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        query = """
            INSERT INTO kv (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """
        self.db.execute(query, (key, value))

    def delete(self, key: str) -> bool:
        return self.db.execute("DELETE FROM kv WHERE key = ?", (key,)) > 0


class BlobModel(BaseModel):
    """Raw envelope bytes keyed by content id (fallback mode only)."""

    def put(self, content_id: str, data: bytes) -> int:
        query = """
            INSERT OR REPLACE INTO blobs (content_id, data, size)
            VALUES (?, ?, ?)
        """
        self.db.execute(query, (content_id, data, len(data)))
        return len(data)

    def get(self, content_id: str) -> Optional[bytes]:
        row = self.db.fetch_one("SELECT data FROM blobs WHERE content_id = ?", (content_id,))
        return bytes(row["data"]) if row else None

    def delete(self, content_id: str) -> bool:
        return self.db.execute("DELETE FROM blobs WHERE content_id = ?", (content_id,)) > 0

    def clear(self) -> int:
        return self.db.execute("DELETE FROM blobs")

    def count(self) -> int:
        row = self.db.fetch_one("SELECT COUNT(*) AS n FROM blobs")
        return row["n"] if row else 0

    def total_size(self) -> int:
        row = self.db.fetch_one("SELECT COALESCE(SUM(size), 0) AS total FROM blobs")
        return row["total"] if row else 0
