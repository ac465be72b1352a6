"""
HTTP client wiring for the First Buyers Agent.

``build_data_sources`` creates the Etherscan and JSON-RPC clients, one
circuit breaker per external service, and the port implementations the
pipeline consumes.  Callers own the returned ``DataSources`` and must
``await sources.aclose()`` at shutdown.

The pipeline never reaches for module globals: the bot, the API and the
CLI each build one container at startup and pass it in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..cache import TTLCache
from ..circuit_breaker import CircuitBreaker
from ..data_sources.eth_rpc import EthRpcClient
from ..data_sources.etherscan import EtherscanClient
from ..ports import ContractCheckPort, TokenMetadataPort, TransferLogPort, TxSignalPort
from ..signal_service import TxSignalService
from ..token_info_service import TokenInfoResolver
from config import (
    CACHE_TTL_SECONDS,
    CB_FAILURE_THRESHOLD,
    CB_RECOVERY_TIMEOUT,
    ETHERSCAN_API_KEY,
    ETHERSCAN_BASE_URL,
    ETHERSCAN_CHAIN_ID,
    ETHEREUM_RPC_URL,
    REQUEST_TIMEOUT,
    SKIP_CONTRACT_RECIPIENTS,
    TRANSFER_PAGE_SIZE,
)

logger = logging.getLogger(__name__)


@dataclass
class DataSources:
    """The four ports plus the resources behind them."""

    transfer_log: TransferLogPort
    token_metadata: TokenMetadataPort
    tx_signals: Optional[TxSignalPort] = None
    contract_check: Optional[ContractCheckPort] = None
    breakers: dict[str, CircuitBreaker] = field(default_factory=dict)
    _closeables: list[Any] = field(default_factory=list, repr=False)

    def health(self) -> dict[str, Any]:
        """Circuit-breaker status per external service."""
        return {name: cb.status() for name, cb in self.breakers.items()}

    async def aclose(self) -> None:
        """Close the HTTP clients gracefully (called at shutdown)."""
        for client in self._closeables:
            try:
                await client.close()
            except Exception as exc:
                logger.warning("Error closing %s: %s", type(client).__name__, exc)
        self._closeables.clear()


def build_data_sources(
    *,
    etherscan_api_key: str = ETHERSCAN_API_KEY,
    rpc_url: str = ETHEREUM_RPC_URL,
    skip_contract_recipients: bool = SKIP_CONTRACT_RECIPIENTS,
) -> DataSources:
    """Create the production adapters from ``config``."""
    if not etherscan_api_key:
        logger.warning("ETHERSCAN_API_KEY is not set – explorer calls will be throttled or refused")

    cache = TTLCache(default_ttl=CACHE_TTL_SECONDS)
    cb_etherscan = CircuitBreaker(
        "etherscan",
        failure_threshold=CB_FAILURE_THRESHOLD,
        recovery_timeout=CB_RECOVERY_TIMEOUT,
    )
    cb_rpc = CircuitBreaker(
        "eth_rpc",
        failure_threshold=CB_FAILURE_THRESHOLD,
        recovery_timeout=CB_RECOVERY_TIMEOUT,
    )

    etherscan = EtherscanClient(
        api_key=etherscan_api_key,
        base_url=ETHERSCAN_BASE_URL,
        chain_id=ETHERSCAN_CHAIN_ID,
        timeout=REQUEST_TIMEOUT,
        page_size=TRANSFER_PAGE_SIZE,
        circuit_breaker=cb_etherscan,
        cache=cache,
    )
    rpc = EthRpcClient(
        endpoint=rpc_url,
        timeout=REQUEST_TIMEOUT,
        circuit_breaker=cb_rpc,
        cache=cache,
    )

    return DataSources(
        transfer_log=etherscan,
        token_metadata=TokenInfoResolver(etherscan, rpc, cache=cache),
        tx_signals=TxSignalService(etherscan, rpc, internal_source=etherscan, cache=cache),
        contract_check=rpc if skip_contract_recipients else None,
        breakers={"etherscan": cb_etherscan, "eth_rpc": cb_rpc},
        _closeables=[etherscan, rpc],
    )
