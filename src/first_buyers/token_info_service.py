"""
Token metadata resolution with a three-step fallback chain.

1. Etherscan ``token/tokeninfo`` (one request, all four fields)
2. JSON-RPC ``eth_call`` of ``name()``, ``symbol()``, ``decimals()``,
   ``totalSupply()``, gathered concurrently, each field independently
3. Defaults: ``decimals=18``, ``total_supply=0``, ``"Unknown"`` labels

``resolve_token_info`` never raises.  Fields that ended on their default
are listed in ``TokenInfo.degraded_fields``.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Optional, Protocol

from .cache import TTLCache
from .constants import (
    DEFAULT_DECIMALS,
    SELECTOR_DECIMALS,
    SELECTOR_NAME,
    SELECTOR_SYMBOL,
    SELECTOR_TOTAL_SUPPLY,
    UNKNOWN_TOKEN_LABEL,
)
from .models import TokenInfo
from .utils import decode_abi_string, decode_abi_uint, parse_quantity, raw_to_decimal

logger = logging.getLogger(__name__)

_MAX_DECIMALS = 255


class _TokenInfoSource(Protocol):
    async def get_token_info(self, contract_address: str) -> Optional[dict[str, Any]]: ...


class _CallSource(Protocol):
    async def eth_call(self, to: str, data: str) -> Optional[str]: ...


def _from_explorer(address: str, raw: dict[str, Any]) -> Optional[TokenInfo]:
    """Build ``TokenInfo`` from a tokeninfo row; ``None`` if it is unusable."""
    decimals = parse_quantity(raw.get("divisor"))
    if decimals is None or not 0 <= decimals <= _MAX_DECIMALS:
        return None
    supply_raw = parse_quantity(raw.get("totalSupply"))
    try:
        total_supply = raw_to_decimal(supply_raw, decimals) if supply_raw else Decimal(0)
    except (ValueError, ArithmeticError):
        total_supply = Decimal(0)

    degraded: list[str] = []
    name = (raw.get("tokenName") or "").strip()
    symbol = (raw.get("symbol") or "").strip()
    if not name:
        degraded.append("name")
    if not symbol:
        degraded.append("symbol")
    if total_supply <= 0:
        degraded.append("total_supply")
    return TokenInfo(
        address=address,
        name=name or UNKNOWN_TOKEN_LABEL,
        symbol=symbol or UNKNOWN_TOKEN_LABEL,
        decimals=decimals,
        total_supply=total_supply,
        source="etherscan",
        degraded_fields=degraded,
    )


class TokenInfoResolver:
    """``TokenMetadataPort`` implementation."""

    def __init__(
        self,
        explorer: Optional[_TokenInfoSource],
        rpc: Optional[_CallSource],
        cache: Optional[TTLCache] = None,
    ) -> None:
        self._explorer = explorer
        self._rpc = rpc
        self._cache = cache or TTLCache()

    async def resolve_token_info(self, contract_address: str) -> TokenInfo:
        async def _load() -> TokenInfo:
            info = await self._resolve(contract_address)
            logger.info(
                "Token %s: %s (%s) decimals=%d source=%s degraded=%s",
                contract_address, info.name, info.symbol, info.decimals,
                info.source, info.degraded_fields or "-",
            )
            return info

        return await self._cache.get_or_load(
            f"token:{contract_address.lower()}", _load,
            should_cache=lambda info: not info.is_degraded,
        )

    async def _resolve(self, address: str) -> TokenInfo:
        partial: Optional[TokenInfo] = None
        if self._explorer is not None:
            try:
                raw = await self._explorer.get_token_info(address)
            except Exception as exc:
                logger.warning("tokeninfo lookup failed for %s: %s", address, exc)
                raw = None
            if raw:
                partial = _from_explorer(address, raw)
                if partial is not None and not partial.degraded_fields:
                    return partial

        if self._rpc is not None:
            on_chain = await self._resolve_on_chain(address)
            if partial is not None and len(partial.degraded_fields) <= len(on_chain.degraded_fields):
                return partial
            return on_chain

        if partial is not None:
            return partial
        return TokenInfo(
            address=address,
            source="default",
            degraded_fields=["name", "symbol", "decimals", "total_supply"],
        )

    async def _call(self, address: str, selector: str) -> Optional[str]:
        try:
            return await self._rpc.eth_call(address, selector)  # type: ignore[union-attr]
        except Exception as exc:
            logger.debug("eth_call %s on %s failed: %s", selector, address, exc)
            return None

    async def _resolve_on_chain(self, address: str) -> TokenInfo:
        name_hex, symbol_hex, decimals_hex, supply_hex = await asyncio.gather(
            self._call(address, SELECTOR_NAME),
            self._call(address, SELECTOR_SYMBOL),
            self._call(address, SELECTOR_DECIMALS),
            self._call(address, SELECTOR_TOTAL_SUPPLY),
        )
        degraded: list[str] = []

        name = decode_abi_string(name_hex)
        if name is None:
            degraded.append("name")
        symbol = decode_abi_string(symbol_hex)
        if symbol is None:
            degraded.append("symbol")

        decimals = decode_abi_uint(decimals_hex)
        if decimals is None or decimals > _MAX_DECIMALS:
            degraded.append("decimals")
            decimals = DEFAULT_DECIMALS

        total_supply = Decimal(0)
        supply_raw = decode_abi_uint(supply_hex)
        if supply_raw:
            total_supply = raw_to_decimal(supply_raw, decimals)
        else:
            degraded.append("total_supply")

        source = "default" if len(degraded) == 4 else "rpc"
        return TokenInfo(
            address=address,
            name=name or UNKNOWN_TOKEN_LABEL,
            symbol=symbol or UNKNOWN_TOKEN_LABEL,
            decimals=decimals,
            total_supply=total_supply,
            source=source,
            degraded_fields=degraded,
        )
