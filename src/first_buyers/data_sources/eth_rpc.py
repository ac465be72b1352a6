"""
Ethereum JSON-RPC client for the First Buyers Agent.

Any standard endpoint works (public node, Alchemy, Infura…).  Used for
``eth_call`` metadata reads, contract detection (``eth_getCode``) and as
a fallback for transaction / block lookups when the explorer is down.
Uses ``httpx`` for async HTTP with retry + exponential backoff.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ._retry import async_http_post_json
from ..cache import TTLCache
from ..circuit_breaker import CircuitBreaker
from ..utils import normalize_address

logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 3
_BACKOFF_BASE = 1.5  # seconds


class EthRpcClient:
    """Async Ethereum JSON-RPC client."""

    def __init__(
        self,
        endpoint: str,
        timeout: int = 15,
        circuit_breaker: CircuitBreaker | None = None,
        cache: TTLCache | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._id_counter = 0
        self._cb = circuit_breaker
        self._cache = cache or TTLCache()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def eth_call(self, to: str, data: str) -> Optional[str]:
        """Read-only contract call at ``latest``; hex return data or ``None``."""
        result = await self._call("eth_call", [{"to": to, "data": data}, "latest"])
        return result if isinstance(result, str) else None

    async def get_code(self, address: str) -> Optional[str]:
        result = await self._call("eth_getCode", [address, "latest"])
        return result if isinstance(result, str) else None

    async def is_contract(self, address: str) -> bool:
        """True when *address* has deployed code.  Lookup failure → ``False``."""
        async def _load() -> Optional[bool]:
            code = await self.get_code(address)
            if code is None:
                return None
            return code not in ("0x", "0x0", "")

        is_code = await self._cache.get_or_load(f"code:{normalize_address(address)}", _load)
        return bool(is_code)

    async def get_transaction(self, tx_hash: str) -> Optional[dict[str, Any]]:
        result = await self._call("eth_getTransactionByHash", [tx_hash])
        return result if isinstance(result, dict) else None

    async def get_block_miner(self, block_number: int) -> Optional[str]:
        """Fee recipient (``miner``) of *block_number*, lower-cased."""
        async def _load() -> Optional[str]:
            block = await self._call("eth_getBlockByNumber", [hex(block_number), False])
            if not isinstance(block, dict) or not block.get("miner"):
                return None
            return normalize_address(block["miner"])

        return await self._cache.get_or_load(f"miner:{block_number}", _load)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call(self, method: str, params: list[Any]) -> Any:
        """JSON-RPC call with retry, guarded by the circuit breaker."""
        self._id_counter += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id_counter,
            "method": method,
            "params": params,
        }
        client = await self._get_client()

        async def _do() -> Any:
            result = await async_http_post_json(
                client, self._endpoint, json_payload=payload,
                max_retries=_MAX_RETRIES, backoff_base=_BACKOFF_BASE,
                label=f"RPC {method}",
            )
            if result is None:
                raise httpx.RequestError(f"RPC {method}: no result")
            return result

        if self._cb is not None:
            return await self._cb.guard(_do, label=method)
        return await async_http_post_json(
            client, self._endpoint, json_payload=payload,
            max_retries=_MAX_RETRIES, backoff_base=_BACKOFF_BASE,
            label=f"RPC {method}",
        )
