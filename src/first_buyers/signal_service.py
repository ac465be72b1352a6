"""
Per-transaction gas / ordering / bribe evidence.

For one buyer transaction this service reports:

- ``gas_price_gwei``    : ``gasPrice`` of the transaction (effective price
                          for type-2 transactions as returned by nodes)
- ``priority_fee_gwei`` : ``maxPriorityFeePerGas``; ``None`` for legacy txs
- ``block_position``    : ``transactionIndex`` inside its block
- ``bribe_eth``         : sum of internal ETH transfers from the tx to the
                          block's fee recipient

The explorer's proxy module is tried first, then the JSON-RPC node.  The
bribe estimate only sees direct coinbase payments made inside the
transaction; Flashbots-style side payments are invisible to it.

``fetch_tx_signal`` never raises.  Results are memoised per tx hash; a
``failed`` signal is not memoised so a later request retries.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional, Protocol

from .cache import TTLCache
from .models import TxSignal
from .utils import normalize_address, parse_quantity, wei_to_eth, wei_to_gwei

logger = logging.getLogger(__name__)


class _TxSource(Protocol):
    async def get_transaction(self, tx_hash: str) -> Optional[dict[str, Any]]: ...

    async def get_block_miner(self, block_number: int) -> Optional[str]: ...


class _InternalTransferSource(Protocol):
    async def get_internal_transfers(self, tx_hash: str) -> Optional[list[dict[str, Any]]]: ...


def bribe_from_internal_transfers(
    transfers: Optional[list[dict[str, Any]]], miner: Optional[str]
) -> Optional[Decimal]:
    """Total ETH paid to *miner* by *transfers*.

    ``None`` when either input is unknown, ``Decimal(0)`` when the lookup
    worked and nothing went to the fee recipient.
    """
    if transfers is None or not miner:
        return None
    miner = normalize_address(miner)
    total_wei = 0
    for t in transfers:
        if str(t.get("isError", "0")) == "1":
            continue
        if normalize_address(str(t.get("to") or "")) != miner:
            continue
        total_wei += parse_quantity(t.get("value")) or 0
    return wei_to_eth(total_wei)


class TxSignalService:
    """``TxSignalPort`` backed by an explorer plus a JSON-RPC fallback."""

    def __init__(
        self,
        explorer: _TxSource,
        rpc: Optional[_TxSource] = None,
        internal_source: Optional[_InternalTransferSource] = None,
        cache: Optional[TTLCache] = None,
    ) -> None:
        self._explorer = explorer
        self._rpc = rpc
        self._internal = internal_source
        self._cache = cache or TTLCache()

    async def fetch_tx_signal(self, tx_hash: str) -> TxSignal:
        async def _load() -> TxSignal:
            try:
                return await self._build_signal(tx_hash)
            except Exception as exc:
                logger.warning("Signal build failed for %s: %s", tx_hash[:12], exc)
                return TxSignal.failed(tx_hash)

        # failed signals are retried on the next analysis
        return await self._cache.get_or_load(
            f"signal:{tx_hash.lower()}", _load,
            should_cache=lambda signal: signal.status == "ok",
        )

    async def _get_transaction(self, tx_hash: str) -> Optional[dict[str, Any]]:
        tx = await self._explorer.get_transaction(tx_hash)
        if tx is None and self._rpc is not None:
            logger.debug("Explorer tx lookup empty for %s – trying RPC", tx_hash[:12])
            tx = await self._rpc.get_transaction(tx_hash)
        return tx

    async def _get_block_miner(self, block_number: int) -> Optional[str]:
        miner = await self._explorer.get_block_miner(block_number)
        if miner is None and self._rpc is not None:
            miner = await self._rpc.get_block_miner(block_number)
        return miner

    async def _build_signal(self, tx_hash: str) -> TxSignal:
        tx = await self._get_transaction(tx_hash)
        if not tx:
            return TxSignal.failed(tx_hash)

        gas_wei = parse_quantity(tx.get("gasPrice"))
        prio_wei = parse_quantity(tx.get("maxPriorityFeePerGas"))
        position = parse_quantity(tx.get("transactionIndex"))
        block_number = parse_quantity(tx.get("blockNumber"))

        bribe: Optional[Decimal] = None
        if self._internal is not None and block_number is not None:
            transfers = await self._internal.get_internal_transfers(tx_hash)
            miner = await self._get_block_miner(block_number) if transfers else None
            if transfers == []:
                bribe = Decimal(0)
            else:
                bribe = bribe_from_internal_transfers(transfers, miner)

        return TxSignal(
            tx_hash=tx_hash,
            status="ok",
            gas_price_gwei=wei_to_gwei(gas_wei) if gas_wei is not None else None,
            priority_fee_gwei=wei_to_gwei(prio_wei) if prio_wei is not None else None,
            block_position=position,
            bribe_eth=bribe,
        )
