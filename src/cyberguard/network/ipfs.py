"""
Thin async wrapper around the Kubo (go-ipfs) RPC HTTP API.

Endpoints used (all POST, under ``/api/v0``):

  id, version           -> node identity / version
  add                   -> store bytes, returns {"Hash", "Size"}
  cat                   -> stream bytes back
  pin/add, pin/rm       -> pin management
  swarm/peers|connect|disconnect
  ping                  -> ndjson stream of ping results
  pubsub/pub, pubsub/sub (topics and data are multibase base64url, 'u' prefix)

Errors come back as HTTP 500 with a JSON body {"Message", "Code", "Type"}.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from ..core.exceptions import BackendError, BackendTimeout, NotFound

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v0"
CHUNK_SIZE = 64 * 1024

# Kubo error messages that mean "there is no such content"
_NOT_FOUND_MARKERS = ("not found", "invalid path", "invalid cid", "no link named", "failed to resolve")


def multibase_encode(data: bytes | str) -> str:
    """Multibase base64url, no padding."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return "u" + base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def multibase_decode(value: str) -> bytes:
    if not value:
        return b""
    if value[0] != "u":
        raise ValueError(f"unsupported multibase prefix: {value[0]!r}")
    body = value[1:]
    return base64.urlsafe_b64decode(body + "=" * (-len(body) % 4))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
        if isinstance(body, dict) and body.get("Message"):
            return str(body["Message"])
    except ValueError:
        pass
    return response.text.strip() or f"HTTP {response.status_code}"


class KuboRpcClient:
    """Issue RPC calls against one Kubo node.

    Transport failures and HTTP errors are translated into the
    :mod:`cyberguard.core.exceptions` taxonomy; nothing from ``httpx``
    escapes this class.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        auth: Optional[Tuple[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = httpx.AsyncClient(
            base_url=self.base_url + API_PREFIX,
            timeout=timeout,
            auth=auth,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _raise_for(self, path: str, response: httpx.Response) -> None:
        if response.is_success:
            return
        message = _error_message(response)
        if response.status_code == 404 or any(m in message.lower() for m in _NOT_FOUND_MARKERS):
            raise NotFound(f"{path}: {message}")
        raise BackendError(f"{path} failed ({response.status_code}): {message}")

    async def _post(self, path: str, params: Optional[Dict[str, Any]] = None, files=None) -> httpx.Response:
        try:
            response = await self._http.post(path, params=params, files=files)
        except httpx.TimeoutException as e:
            raise BackendTimeout(f"{path} timed out") from e
        except httpx.HTTPError as e:
            raise BackendError(f"{path} failed: {e}") from e
        self._raise_for(path, response)
        return response

    async def _post_json(self, path: str, params: Optional[Dict[str, Any]] = None, files=None) -> Any:
        response = await self._post(path, params=params, files=files)
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"{path} returned a non-JSON body") from e

    async def _stream_lines(self, path: str, params: Dict[str, Any], timeout=None) -> AsyncIterator[Dict[str, Any]]:
        try:
            async with self._http.stream("POST", path, params=params, timeout=timeout) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for(path, response)
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield json.loads(line)
                    except ValueError:
                        logger.warning("%s: skipping malformed stream line", path)
        except httpx.TimeoutException as e:
            raise BackendTimeout(f"{path} timed out") from e
        except httpx.HTTPError as e:
            raise BackendError(f"{path} failed: {e}") from e

    # ------------------------------------------------------------------
    # Node
    # ------------------------------------------------------------------

    async def id(self) -> Dict[str, Any]:
        return await self._post_json("/id")

    async def version(self) -> Dict[str, Any]:
        return await self._post_json("/version")

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def add(self, data: bytes, pin: bool = False) -> Dict[str, Any]:
        params = {"pin": str(pin).lower(), "cid-version": 1}
        files = {"file": ("blob", data, "application/octet-stream")}
        body = await self._post_json("/add", params=params, files=files)
        if not isinstance(body, dict) or "Hash" not in body:
            raise BackendError("/add response is missing the content hash")
        return body

    async def cat(self, cid: str) -> bytes:
        path = "/cat"
        chunks: List[bytes] = []
        try:
            async with self._http.stream("POST", path, params={"arg": cid}) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for(path, response)
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    chunks.append(chunk)
        except httpx.TimeoutException as e:
            raise BackendTimeout(f"{path} timed out") from e
        except httpx.HTTPError as e:
            raise BackendError(f"{path} failed: {e}") from e
        return b"".join(chunks)

    async def pin_add(self, cid: str) -> Dict[str, Any]:
        return await self._post_json("/pin/add", params={"arg": cid})

    async def pin_rm(self, cid: str) -> Dict[str, Any]:
        return await self._post_json("/pin/rm", params={"arg": cid})

    # ------------------------------------------------------------------
    # Swarm
    # ------------------------------------------------------------------

    async def swarm_peers(self) -> List[Dict[str, Any]]:
        body = await self._post_json("/swarm/peers")
        return body.get("Peers") or []

    async def swarm_connect(self, addr: str) -> Dict[str, Any]:
        return await self._post_json("/swarm/connect", params={"arg": addr})

    async def swarm_disconnect(self, addr: str) -> Dict[str, Any]:
        return await self._post_json("/swarm/disconnect", params={"arg": addr})

    async def ping(self, peer_id: str, count: int = 1) -> List[Dict[str, Any]]:
        return [
            item async for item in self._stream_lines(
                "/ping", {"arg": peer_id, "count": count}, timeout=self.timeout
            )
        ]

    # ------------------------------------------------------------------
    # Pubsub
    # ------------------------------------------------------------------

    async def pubsub_pub(self, topic: str, data: bytes) -> None:
        files = {"file": ("data", data, "application/octet-stream")}
        await self._post("/pubsub/pub", params={"arg": multibase_encode(topic)}, files=files)

    def pubsub_sub(self, topic: str) -> AsyncIterator[Dict[str, Any]]:
        # Subscriptions stay open indefinitely, so no read timeout.
        return self._stream_lines("/pubsub/sub", {"arg": multibase_encode(topic)}, timeout=None)


class GatewayReader:
    """Read-only access to content through a public HTTP gateway."""

    def __init__(self, gateway: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.gateway = gateway.rstrip("/")
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True)

    async def fetch(self, cid: str) -> bytes:
        url = f"{self.gateway}/ipfs/{cid}"
        try:
            response = await self._http.get(url)
        except httpx.TimeoutException as e:
            raise BackendTimeout(f"gateway fetch of {cid} timed out") from e
        except httpx.HTTPError as e:
            raise BackendError(f"gateway fetch of {cid} failed: {e}") from e
        if response.status_code == 404:
            raise NotFound(f"{cid} not found on gateway")
        if not response.is_success:
            raise BackendError(f"Failed to fetch from gateway: {response.status_code}")
        return response.content

    async def aclose(self) -> None:
        await self._http.aclose()
