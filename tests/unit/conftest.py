"""Shared fixtures: temporary databases and an in-memory Kubo RPC node."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Dict, List

import httpx
import pytest

from cyberguard.config import Settings
from cyberguard.core.index import LocalIndex
from cyberguard.database.connection import DatabaseConnection
from cyberguard.database.models import BlobModel, KeyValueModel
from cyberguard.network.client import ContentStoreClient, LocalBlobStore
from cyberguard.network.ipfs import multibase_decode, multibase_encode
from cyberguard.security.encryption import EncryptionProvider
from cyberguard.security.keystore import LocalKeyStore


def _multipart_payload(request: httpx.Request) -> bytes:
    """Pull the first file part out of a multipart request body."""
    boundary = request.headers["content-type"].split("boundary=", 1)[1].encode()
    for part in request.content.split(b"--" + boundary):
        if b"\r\n\r\n" in part:
            _, _, data = part.partition(b"\r\n\r\n")
            return data[:-2] if data.endswith(b"\r\n") else data
    return b""


def _kubo_error(message: str) -> httpx.Response:
    return httpx.Response(500, json={"Message": message, "Code": 0, "Type": "error"})


class FakeKubo:
    """Enough of the Kubo RPC API for the store client."""

    def __init__(self):
        self.blocks: Dict[str, bytes] = {}
        self.pins: set = set()
        self.published: List[tuple] = []
        self.queued: Dict[str, List[bytes]] = {}
        self.swarm: List[str] = ["/ip4/10.0.0.2/tcp/4001"]
        self.calls: List[str] = []
        self.fail_add = False
        self.unreachable = False

    def cid_for(self, data: bytes) -> str:
        return "bafkrei" + hashlib.sha256(data).hexdigest()[:40]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path.removeprefix("/api/v0")
        arg = request.url.params.get("arg")
        self.calls.append(path)

        if path == "/id":
            return httpx.Response(200, json={
                "ID": "12D3KooWFakeNode",
                "AgentVersion": "kubo/0.29.0",
                "ProtocolVersion": "ipfs/0.1.0",
                "PublicKey": "CAESIFake",
                "Addresses": ["/ip4/127.0.0.1/tcp/4001"],
            })
        if path == "/version":
            return httpx.Response(200, json={"Version": "0.29.0"})
        if path == "/add":
            if self.fail_add:
                return _kubo_error("blockstore: disk full")
            request.read()
            data = _multipart_payload(request)
            cid = self.cid_for(data)
            self.blocks[cid] = data
            if request.url.params.get("pin") == "true":
                self.pins.add(cid)
            return httpx.Response(200, json={"Name": cid, "Hash": cid, "Size": str(len(data))})
        if path == "/cat":
            if arg not in self.blocks:
                return _kubo_error("block was not found locally (offline): ipld: could not find node")
            return httpx.Response(200, content=self.blocks[arg])
        if path == "/pin/add":
            self.pins.add(arg)
            return httpx.Response(200, json={"Pins": [arg]})
        if path == "/pin/rm":
            if arg not in self.pins:
                return _kubo_error("not pinned or pinned indirectly")
            self.pins.discard(arg)
            return httpx.Response(200, json={"Pins": [arg]})
        if path == "/swarm/peers":
            peers = [{"Addr": a, "Peer": f"QmPeer{i}", "Latency": "", "Muxer": "", "Streams": None}
                     for i, a in enumerate(self.swarm)]
            return httpx.Response(200, json={"Peers": peers})
        if path == "/swarm/connect":
            self.swarm.append(arg)
            return httpx.Response(200, json={"Strings": [f"connect {arg} success"]})
        if path == "/swarm/disconnect":
            if arg in self.swarm:
                self.swarm.remove(arg)
            return httpx.Response(200, json={"Strings": [f"disconnect {arg} success"]})
        if path == "/ping":
            count = int(request.url.params.get("count", "1"))
            lines = [json.dumps({"Success": True, "Time": 0, "Text": f"PING {arg}."})]
            lines += [json.dumps({"Success": True, "Time": 1200000, "Text": ""}) for _ in range(count)]
            return httpx.Response(200, content="\n".join(lines).encode())
        if path == "/pubsub/pub":
            request.read()
            topic = multibase_decode(arg).decode()
            self.published.append((topic, _multipart_payload(request)))
            return httpx.Response(200)
        if path == "/pubsub/sub":
            topic = multibase_decode(arg).decode()
            lines = [
                json.dumps({"from": "12D3KooWSender", "data": multibase_encode(d),
                            "seqno": multibase_encode(b"\x01"), "topicIDs": [arg]})
                for d in self.queued.get(topic, [])
            ]
            return httpx.Response(200, content="\n".join(lines).encode())

        return _kubo_error(f"unknown command {path}")


@pytest.fixture
def fake_kubo() -> FakeKubo:
    return FakeKubo()


@pytest.fixture
def db(tmp_path: Path):
    """An initialized database in tmp_path."""
    conn = DatabaseConnection(tmp_path / "cyberguard.db")
    conn.initialize()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def kv(db) -> KeyValueModel:
    return KeyValueModel(db)


@pytest.fixture
def local_blobs(db) -> LocalBlobStore:
    return LocalBlobStore(BlobModel(db))


@pytest.fixture
def index(kv) -> LocalIndex:
    return LocalIndex(kv)


@pytest.fixture
def encryption(kv) -> EncryptionProvider:
    return EncryptionProvider(LocalKeyStore(kv))


@pytest.fixture
def make_client(local_blobs, fake_kubo):
    """Factory for store clients wired to the fake node."""

    def _make(**kwargs) -> ContentStoreClient:
        kwargs.setdefault("api_url", "http://kubo.test:5001")
        kwargs.setdefault("timeout", 2.0)
        kwargs.setdefault("connect_attempts", 1)
        kwargs.setdefault("connect_base_delay", 0.0)
        kwargs.setdefault("transport", fake_kubo.transport())
        return ContentStoreClient(local_blobs, **kwargs)

    return _make


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "ctx.db",
        ipfs_api="http://kubo.test:5001",
        timeout=2.0,
        connect_attempts=1,
    )
