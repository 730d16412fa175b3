"""
Content-addressable store client.

The client runs in exactly one of two modes, decided by :meth:`initialize`:

  CONNECTED  -> a Kubo node answered the identity probe; content goes to IPFS
  FALLBACK   -> no node (unreachable, not configured, or offline forced);
                content goes to the local ``blobs`` table under ``local-`` ids

The mode never changes afterwards. Per-call failures in CONNECTED mode are
raised to the caller (``BackendError`` / ``BackendTimeout`` / ``NotFound``);
retrying somewhere else is the facade's decision, not the client's.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from ..core.exceptions import (
    BackendError,
    BackendTimeout,
    BackendUnreachable,
    NotFound,
    OperationUnsupported,
    ResultUnavailable,
)
from ..core.hashing import is_local_id, local_content_id
from ..core.models import PutResult, StorageMode
from ..database.models import BlobModel
from .ipfs import GatewayReader, KuboRpcClient, multibase_decode
from .polling import poll_with_backoff

logger = logging.getLogger(__name__)


@dataclass
class PubsubMessage:
    topic: str
    data: bytes
    sender: Optional[str] = None
    seqno: Optional[str] = None

    @classmethod
    def from_wire(cls, topic: str, raw: Dict[str, Any]) -> "PubsubMessage":
        return cls(
            topic=topic,
            data=multibase_decode(raw.get("data", "")),
            sender=raw.get("from"),
            seqno=raw.get("seqno"),
        )


@dataclass
class PeerInfo:
    addr: str
    peer: str
    latency: Optional[str] = None
    muxer: Optional[str] = None
    streams: List[Any] = field(default_factory=list)


MessageHandler = Callable[[PubsubMessage], Optional[Awaitable[None]]]


class LocalBlobStore:
    """Embedded blob table used in fallback mode (and for facade-level local retries)."""

    def __init__(self, blobs: BlobModel):
        self.blobs = blobs

    def put(self, data: bytes) -> PutResult:
        content_id = local_content_id(data)
        size = self.blobs.put(content_id, data)
        return PutResult(content_id=content_id, size=size)

    def get(self, content_id: str) -> bytes:
        data = self.blobs.get(content_id)
        if data is None:
            raise NotFound(f"Item not found in local store: {content_id}")
        return data

    def delete(self, content_id: str) -> bool:
        return self.blobs.delete(content_id)

    def clear(self) -> int:
        return self.blobs.clear()

    def count(self) -> int:
        return self.blobs.count()

    def total_size(self) -> int:
        return self.blobs.total_size()


class ContentStoreClient:
    """Two-mode front for IPFS with a local fallback."""

    def __init__(
        self,
        local: LocalBlobStore,
        api_url: Optional[str] = None,
        timeout: float = 10.0,
        auth: Optional[Tuple[str, str]] = None,
        connect_attempts: int = 3,
        connect_base_delay: float = 0.5,
        gateway: Optional[str] = None,
        gateway_reads: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.local = local
        self.api_url = api_url
        self.timeout = timeout
        self.auth = auth
        self.connect_attempts = connect_attempts
        self.connect_base_delay = connect_base_delay
        self.gateway = gateway
        self.gateway_reads = gateway_reads
        self._transport = transport

        self.mode: Optional[StorageMode] = None
        self.node_id: Optional[str] = None
        self.connection_error: Optional[str] = None
        self._rpc: Optional[KuboRpcClient] = None
        self._gateway: Optional[GatewayReader] = None
        self._subscriptions: Dict[str, asyncio.Task] = {}
        self.peers: set = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, offline: bool = False) -> StorageMode:
        """Decide the mode once. Backend trouble downgrades to FALLBACK, never raises."""
        if self.mode is not None:
            return self.mode

        if self.gateway and self.gateway_reads:
            self._gateway = GatewayReader(self.gateway, timeout=self.timeout, transport=self._transport)

        if offline or not self.api_url:
            self.mode = StorageMode.FALLBACK
            logger.info("Content store running in local-only mode")
            return self.mode

        rpc = KuboRpcClient(self.api_url, timeout=self.timeout, auth=self.auth, transport=self._transport)
        try:
            identity = await self._probe(rpc)
        except BackendUnreachable as e:
            await rpc.aclose()
            self.connection_error = str(e)
            self.mode = StorageMode.FALLBACK
            logger.warning("IPFS node unreachable, falling back to local storage: %s", e)
            return self.mode

        self._rpc = rpc
        self.node_id = identity.get("ID")
        self.mode = StorageMode.CONNECTED
        logger.info("Content store connected to IPFS node %s", self.node_id)
        return self.mode

    async def _probe(self, rpc: KuboRpcClient) -> Dict[str, Any]:
        last_error: List[str] = []

        async def probe():
            try:
                return await asyncio.wait_for(rpc.id(), timeout=self.timeout)
            except (BackendError, BackendTimeout, NotFound, asyncio.TimeoutError) as e:
                last_error.append(str(e) or type(e).__name__)
                return None

        try:
            return await poll_with_backoff(
                probe,
                max_attempts=self.connect_attempts,
                base_delay=self.connect_base_delay,
                operation_name="ipfs connect",
            )
        except ResultUnavailable as e:
            reason = last_error[-1] if last_error else str(e)
            raise BackendUnreachable(f"{self.api_url}: {reason}") from e

    async def close(self) -> None:
        """Cancel subscriptions and release HTTP clients."""
        for topic in list(self._subscriptions):
            await self.unsubscribe(topic)
        if self._rpc is not None:
            await self._rpc.aclose()
            self._rpc = None
        if self._gateway is not None:
            await self._gateway.aclose()
            self._gateway = None

    @property
    def is_connected(self) -> bool:
        return self.mode is StorageMode.CONNECTED

    def _require_rpc(self, operation: str) -> KuboRpcClient:
        if self.mode is None:
            raise RuntimeError("ContentStoreClient.initialize() has not been called")
        if self._rpc is None:
            raise OperationUnsupported(f"{operation} is not supported in local-only mode")
        return self._rpc

    async def _with_timeout(self, operation: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise BackendTimeout(f"{operation} exceeded {self.timeout}s") from e

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def put(self, data: bytes, pin: bool = False) -> PutResult:
        if self.mode is None:
            raise RuntimeError("ContentStoreClient.initialize() has not been called")
        if self.mode is StorageMode.FALLBACK:
            return self.local.put(data)

        body = await self._with_timeout("put", self._rpc.add(data, pin=pin))
        return PutResult(content_id=body["Hash"], size=int(body.get("Size", len(data))))

    async def get(self, content_id: str) -> bytes:
        if self.mode is None:
            raise RuntimeError("ContentStoreClient.initialize() has not been called")
        if self.mode is StorageMode.FALLBACK:
            if is_local_id(content_id) or self._gateway is None:
                return self.local.get(content_id)
            return await self._with_timeout("gateway get", self._gateway.fetch(content_id))

        return await self._with_timeout("get", self._rpc.cat(content_id))

    async def pin(self, content_id: str) -> None:
        rpc = self._require_rpc("pin")
        await self._with_timeout("pin", rpc.pin_add(content_id))

    async def unpin(self, content_id: str) -> None:
        rpc = self._require_rpc("unpin")
        await self._with_timeout("unpin", rpc.pin_rm(content_id))

    # ------------------------------------------------------------------
    # Peers
    # ------------------------------------------------------------------

    async def node_info(self) -> Dict[str, Any]:
        rpc = self._require_rpc("node info")
        identity = await self._with_timeout("id", rpc.id())
        version = await self._with_timeout("version", rpc.version())
        return {
            "peer_id": identity.get("ID"),
            "agent_version": identity.get("AgentVersion"),
            "protocol_version": identity.get("ProtocolVersion"),
            "public_key": identity.get("PublicKey"),
            "addresses": identity.get("Addresses") or [],
            "version": version.get("Version"),
        }

    async def list_peers(self) -> List[PeerInfo]:
        rpc = self._require_rpc("list peers")
        peers = await self._with_timeout("swarm peers", rpc.swarm_peers())
        return [
            PeerInfo(
                addr=p.get("Addr", ""),
                peer=p.get("Peer", ""),
                latency=p.get("Latency") or None,
                muxer=p.get("Muxer") or None,
                streams=p.get("Streams") or [],
            )
            for p in peers
        ]

    async def connect_peer(self, address: str) -> None:
        rpc = self._require_rpc("connect peer")
        await self._with_timeout("swarm connect", rpc.swarm_connect(address))
        self.peers.add(address)

    async def disconnect_peer(self, address: str) -> None:
        rpc = self._require_rpc("disconnect peer")
        await self._with_timeout("swarm disconnect", rpc.swarm_disconnect(address))
        self.peers.discard(address)

    async def ping(self, peer_id: str, count: int = 1) -> List[Dict[str, Any]]:
        rpc = self._require_rpc("ping")
        results = await self._with_timeout("ping", rpc.ping(peer_id, count))
        return [
            {"success": r.get("Success", False), "time": r.get("Time"), "text": r.get("Text", "")}
            for r in results
        ]

    # ------------------------------------------------------------------
    # Pubsub
    # ------------------------------------------------------------------

    async def publish(self, topic: str, data: bytes | str) -> None:
        rpc = self._require_rpc("publish")
        if isinstance(data, str):
            data = data.encode("utf-8")
        await self._with_timeout("publish", rpc.pubsub_pub(topic, data))

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Start delivering messages on ``topic`` to ``handler`` (sync or async)."""
        rpc = self._require_rpc("subscribe")
        if topic in self._subscriptions:
            raise BackendError(f"Already subscribed to {topic}")

        async def pump():
            try:
                async for raw in rpc.pubsub_sub(topic):
                    try:
                        message = PubsubMessage.from_wire(topic, raw)
                    except (ValueError, TypeError, AttributeError) as e:
                        logger.warning("Skipping malformed message on %s: %s", topic, e)
                        continue
                    try:
                        outcome = handler(message)
                        if inspect.isawaitable(outcome):
                            await outcome
                    except Exception:
                        logger.exception("Pubsub handler for %s failed", topic)
            except (BackendError, BackendTimeout, NotFound) as e:
                logger.error("Subscription to %s ended: %s", topic, e)

        self._subscriptions[topic] = asyncio.create_task(pump(), name=f"pubsub:{topic}")

    async def unsubscribe(self, topic: str) -> None:
        task = self._subscriptions.pop(topic, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            # pump ended with an error before it was cancelled
            logger.warning("Subscription to %s had failed: %s", topic, e)

    @property
    def subscriptions(self) -> List[str]:
        return list(self._subscriptions)
