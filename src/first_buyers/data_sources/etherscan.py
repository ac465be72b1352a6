"""
Etherscan API client for the First Buyers Agent.

Reference: https://docs.etherscan.io/etherscan-v2

Uses the V2 multichain endpoint (``chainid`` parameter) and ``httpx``
for async HTTP with retry + exponential backoff.  Responses come in two
shapes:

- ``module=account|token``: ``{"status": "1", "message": "OK", "result": [...]}``
- ``module=proxy``: a JSON-RPC envelope ``{"jsonrpc": "2.0", "result": {...}}``
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ._retry import async_http_get
from ..cache import TTLCache
from ..circuit_breaker import CircuitBreaker
from ..exceptions import NoTransactionsError, TransferLogUnavailableError
from ..models import TransferEvent
from ..utils import normalize_address, parse_quantity

logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 3
_BACKOFF_BASE = 1.0  # seconds

_NO_RESULTS_MESSAGES = ("no transactions found", "no records found")


def _is_throttled(body: Any) -> bool:
    """Explorer quota notices arrive as HTTP 200 with a string result."""
    if not isinstance(body, dict):
        return False
    result = body.get("result")
    return isinstance(result, str) and "rate limit" in result.lower()


def _is_no_results(body: dict[str, Any]) -> bool:
    message = str(body.get("message", "")).lower()
    return any(m in message for m in _NO_RESULTS_MESSAGES)


class EtherscanClient:
    """Async wrapper around the Etherscan REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.etherscan.io/v2/api",
        chain_id: int = 1,
        timeout: int = 15,
        page_size: int = 2000,
        circuit_breaker: CircuitBreaker | None = None,
        cache: TTLCache | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._chain_id = chain_id
        self._timeout = timeout
        self._page_size = page_size
        self._client: httpx.AsyncClient | None = None
        self._cb = circuit_breaker
        self._cache = cache or TTLCache()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transfer log
    # ------------------------------------------------------------------

    async def fetch_transfer_events(self, contract_address: str) -> list[TransferEvent]:
        """Return the token's ERC-20 transfers, oldest first.

        Raises ``TransferLogUnavailableError`` when the explorer can't be
        reached and ``NoTransactionsError`` when it answers with an error
        status or an empty list.
        """
        body = await self._get({
            "module": "account",
            "action": "tokentx",
            "contractaddress": contract_address,
            "startblock": 0,
            "endblock": 99999999,
            "page": 1,
            "offset": self._page_size,
            "sort": "asc",
        }, label="tokentx")
        if body is None:
            raise TransferLogUnavailableError(
                contract_address, f"Etherscan tokentx unreachable for {contract_address}"
            )
        rows = body.get("result")
        if str(body.get("status")) != "1" or not isinstance(rows, list) or not rows:
            logger.info(
                "Etherscan tokentx for %s: status=%s message=%s",
                contract_address, body.get("status"), body.get("message"),
            )
            raise NoTransactionsError(contract_address)

        events = self.rows_to_events(rows)
        if not events:
            raise NoTransactionsError(contract_address)
        logger.debug("Etherscan tokentx: %d transfers for %s", len(events), contract_address)
        return events

    @staticmethod
    def rows_to_events(rows: list[dict[str, Any]]) -> list[TransferEvent]:
        """Convert raw ``tokentx`` rows, ordered by (block, tx index, log index).

        Rows missing a recipient or hash are dropped.
        """
        def _order(row: dict[str, Any]) -> tuple[int, int, int]:
            return (
                parse_quantity(row.get("blockNumber")) or 0,
                parse_quantity(row.get("transactionIndex")) or 0,
                parse_quantity(row.get("logIndex")) or 0,
            )

        events: list[TransferEvent] = []
        for row in sorted(rows, key=_order):
            to_addr = row.get("to") or ""
            tx_hash = row.get("hash") or ""
            if not to_addr or not tx_hash:
                logger.debug("Skipping malformed tokentx row: %s", row)
                continue
            events.append(
                TransferEvent(
                    from_address=row.get("from") or "",
                    to_address=to_addr,
                    raw_value=str(row.get("value") or "0"),
                    tx_hash=tx_hash,
                    block_number=parse_quantity(row.get("blockNumber")) or 0,
                    timestamp=parse_quantity(row.get("timeStamp")) or 0,
                )
            )
        return events

    # ------------------------------------------------------------------
    # Token metadata
    # ------------------------------------------------------------------

    async def get_token_info(self, contract_address: str) -> Optional[dict[str, Any]]:
        """Raw ``token/tokeninfo`` record, or ``None``.

        The endpoint is limited to some API plans; a refusal is a normal
        ``None`` and the caller falls through to on-chain reads.
        """
        body = await self._get({
            "module": "token",
            "action": "tokeninfo",
            "contractaddress": contract_address,
        }, label="tokeninfo")
        if not body or str(body.get("status")) != "1":
            return None
        result = body.get("result")
        if isinstance(result, list) and result and isinstance(result[0], dict):
            return result[0]
        return None

    # ------------------------------------------------------------------
    # Transactions / blocks (proxy module)
    # ------------------------------------------------------------------

    async def get_transaction(self, tx_hash: str) -> Optional[dict[str, Any]]:
        result = await self._proxy("eth_getTransactionByHash", txhash=tx_hash)
        return result if isinstance(result, dict) else None

    async def get_block_miner(self, block_number: int) -> Optional[str]:
        async def _load() -> Optional[str]:
            block = await self._proxy(
                "eth_getBlockByNumber", tag=hex(block_number), boolean="false"
            )
            if not isinstance(block, dict) or not block.get("miner"):
                return None
            return normalize_address(block["miner"])

        return await self._cache.get_or_load(f"miner:{block_number}", _load)

    async def get_internal_transfers(self, tx_hash: str) -> Optional[list[dict[str, Any]]]:
        """Internal ETH transfers made by *tx_hash*.

        ``[]`` when the explorer reports none, ``None`` when the lookup
        itself failed. Callers must keep the two apart.
        """
        body = await self._get({
            "module": "account",
            "action": "txlistinternal",
            "txhash": tx_hash,
        }, label="txlistinternal")
        if body is None:
            return None
        result = body.get("result")
        if str(body.get("status")) == "1" and isinstance(result, list):
            return result
        if _is_no_results(body) or result == []:
            return []
        logger.debug("txlistinternal for %s: %s", tx_hash[:12], body.get("message"))
        return None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _proxy(self, action: str, **params: Any) -> Any:
        body = await self._get({"module": "proxy", "action": action, **params}, label=action)
        if not isinstance(body, dict) or "error" in body:
            return None
        return body.get("result")

    async def _get(self, params: dict[str, Any], *, label: str) -> Optional[dict[str, Any]]:
        """GET with retry + backoff, guarded by the circuit breaker."""
        client = await self._get_client()
        query = {**params, "chainid": self._chain_id, "apikey": self._api_key}

        async def _do() -> dict[str, Any]:
            result = await async_http_get(
                client, self._base_url, params=query,
                max_retries=_MAX_RETRIES, backoff_base=_BACKOFF_BASE,
                label=f"Etherscan {label}", is_throttled=_is_throttled,
            )
            if not isinstance(result, dict):
                raise httpx.RequestError(f"Etherscan {label}: all retries exhausted")
            return result

        if self._cb is not None:
            return await self._cb.guard(_do, label=label)
        try:
            return await _do()
        except httpx.RequestError as exc:
            logger.warning("%s", exc)
            return None
