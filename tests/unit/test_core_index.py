"""Unit tests for the local index."""

import json

import pytest

from cyberguard.core.index import STORAGE_INDEX_KEY, LocalIndex
from cyberguard.core.models import IndexEntry


def _entry(cid, ts, **metadata):
    return IndexEntry(content_id=cid, metadata=metadata, timestamp=ts)


def test_empty_index(index):
    assert index.list() == []
    assert len(index) == 0
    assert index.get("missing") is None


def test_ensure_writes_empty_document(kv, index):
    index.ensure()
    assert kv.get(STORAGE_INDEX_KEY) == "[]"


def test_upsert_insert_then_merge(index):
    first = index.upsert("bafy1", {"type": "scan_result", "title": "a"})
    second = index.upsert("bafy1", {"title": "b", "isEncrypted": True})

    assert len(index) == 1
    assert "bafy1" in index
    entry = index.get("bafy1")
    assert entry.metadata == {"type": "scan_result", "title": "b", "isEncrypted": True}
    assert second.timestamp >= first.timestamp


def test_document_format(kv, index):
    index.upsert("bafy1", {"type": "chat_history", "isEncrypted": False, "storageMethod": "local"})
    doc = json.loads(kv.get(STORAGE_INDEX_KEY))
    assert doc[0]["cid"] == "bafy1"
    assert doc[0]["metadata"]["storageMethod"] == "local"
    assert "timestamp" in doc[0]


def test_remove(index):
    index.upsert("bafy1", {})
    assert index.remove("bafy1") is True
    assert index.remove("bafy1") is False
    assert index.list() == []


def test_clear(index):
    index.upsert("a", {})
    index.upsert("b", {})
    index.clear()
    assert index.list() == []


@pytest.mark.parametrize("raw", ["{not json", '{"cid": "x"}', '[{"metadata": {}}]', '["x"]'])
def test_corrupt_document_resets_to_empty(kv, index, raw):
    kv.set(STORAGE_INDEX_KEY, raw)

    assert index.list() == []
    assert kv.get(STORAGE_INDEX_KEY) == "[]"


def test_filter(index):
    index.upsert("a", {"type": "scan_result", "title": "Nightly scan", "isEncrypted": True})
    index.upsert("b", {"type": "chat_history", "title": "Support chat", "isEncrypted": False})
    index.upsert("c", {"title": "untyped"})

    assert [e.content_id for e in index.filter(type="scan_result")] == ["a"]
    assert [e.content_id for e in index.filter(type="other")] == ["c"]
    assert [e.content_id for e in index.filter(encrypted=False)] == ["b", "c"]
    assert [e.content_id for e in index.filter(text="CHAT")] == ["b"]
    assert index.filter(type="scan_result", encrypted=False) == []


def test_sort_orders():
    entries = [
        _entry("mid", "2024-01-02T00:00:00+00:00"),
        _entry("old", "2024-01-01T00:00:00+00:00"),
        _entry("new", "2024-01-03T00:00:00+00:00"),
    ]
    assert [e.content_id for e in LocalIndex.sort(entries)] == ["new", "mid", "old"]
    assert [e.content_id for e in LocalIndex.sort(entries, "oldest")] == ["old", "mid", "new"]

    with pytest.raises(ValueError):
        LocalIndex.sort(entries, "size")


def test_stats(index):
    index.upsert("a", {"type": "scan_result", "isEncrypted": True, "storageMethod": "distributed"})
    index.upsert("b", {"type": "scan_result", "isEncrypted": False, "storageMethod": "local"})
    index.upsert("c", {"type": "incident_report", "isEncrypted": True})

    assert index.stats() == {
        "total_items": 3,
        "by_type": {"scan_result": 2, "incident_report": 1},
        "encrypted": 2,
        "by_storage_method": {"distributed": 1, "local": 1, "unknown": 1},
    }
