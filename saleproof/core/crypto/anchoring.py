"""
Anchor clients for corroborating fingerprints and audit roots externally.

The engine only relies on read-after-accept consistency: once an anchor has
returned a reference for a digest, ``read_back(ref)`` must return that same
digest. Failures surface as :class:`AnchorUnavailable` and never affect the
local ledger.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from saleproof.core.crypto.fingerprint import from_bytes32_hex, is_digest, to_bytes32_hex
from saleproof.core.exceptions import AnchorUnavailable
from saleproof.core.logging import get_logger

logger = get_logger(__name__)


class AnchorClient(Protocol):
    """Call/response contract of an external anchoring ledger."""

    async def submit_fingerprint(self, digest: str) -> str: ...

    async def submit_root(self, digest: str) -> str: ...

    async def read_back(self, ref: str) -> str: ...


class HttpAnchorClient:
    """JSON-over-HTTP anchor client.

    Digests travel as ``0x``-prefixed 32-byte hex words::

        POST {base}/fingerprints   {"digest": "0x..."} -> {"ref": "..."}
        POST {base}/roots          {"digest": "0x..."} -> {"ref": "..."}
        GET  {base}/anchors/{ref}                      -> {"digest": "0x..."}
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.strip().rstrip("/")
        self._timeout = timeout
        self._client = client

    async def submit_fingerprint(self, digest: str) -> str:
        return await self._submit("/fingerprints", digest)

    async def submit_root(self, digest: str) -> str:
        return await self._submit("/roots", digest)

    async def read_back(self, ref: str) -> str:
        data = await self._request("GET", f"/anchors/{ref}")
        value = data.get("digest")
        if not isinstance(value, str):
            raise AnchorUnavailable("Anchor returned no digest for reference")
        try:
            return from_bytes32_hex(value)
        except ValueError as exc:
            raise AnchorUnavailable(f"Anchor returned malformed digest: {value!r}") from exc

    async def _submit(self, path: str, digest: str) -> str:
        data = await self._request("POST", path, json={"digest": to_bytes32_hex(digest)})
        ref = data.get("ref")
        if not isinstance(ref, str) or not ref:
            raise AnchorUnavailable("Anchor accepted digest but returned no reference")
        return ref

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        if not self._base_url:
            raise AnchorUnavailable("Anchor URL is not configured")
        url = f"{self._base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("anchor_request_failed", method=method, url=url, exc_info=True)
            raise AnchorUnavailable(f"Anchor request failed: {exc}") from exc

        if response.status_code >= 500:
            raise AnchorUnavailable(f"Anchor returned server error {response.status_code}")
        if response.status_code >= 400:
            raise AnchorUnavailable(
                f"Anchor rejected request ({response.status_code}): {response.text}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise AnchorUnavailable("Anchor returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise AnchorUnavailable("Anchor returned unexpected payload")
        return data


class InMemoryAnchorClient:
    """Process-local anchor with read-after-accept semantics.

    Set ``available = False`` to simulate an unreachable anchor.
    """

    def __init__(self) -> None:
        self.available = True
        self._values: dict[str, str] = {}

    async def submit_fingerprint(self, digest: str) -> str:
        return self._accept("fp", digest)

    async def submit_root(self, digest: str) -> str:
        return self._accept("root", digest)

    async def read_back(self, ref: str) -> str:
        self._ensure_available()
        try:
            return self._values[ref]
        except KeyError as exc:
            raise AnchorUnavailable(f"Unknown anchor reference: {ref}") from exc

    def _accept(self, prefix: str, digest: str) -> str:
        self._ensure_available()
        if not is_digest(digest):
            raise AnchorUnavailable(f"Anchor rejected malformed digest: {digest!r}")
        ref = f"{prefix}-{len(self._values) + 1}"
        self._values[ref] = digest
        return ref

    def _ensure_available(self) -> None:
        if not self.available:
            raise AnchorUnavailable("In-memory anchor is offline")


async def corroborate(client: AnchorClient, ref: str, digest: str) -> bool | None:
    """Compare an anchored value with a local digest.

    Returns ``None`` when the anchor cannot be reached, so that an
    unavailable anchor is never mistaken for a confirmed match or mismatch.
    """
    try:
        anchored = await client.read_back(ref)
    except AnchorUnavailable:
        logger.warning("anchor_corroboration_unavailable", anchor_ref=ref, exc_info=True)
        return None
    return anchored == digest
