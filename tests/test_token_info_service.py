"""Tests for the token metadata fallback chain."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from first_buyers.constants import (
    SELECTOR_DECIMALS,
    SELECTOR_NAME,
    SELECTOR_SYMBOL,
    SELECTOR_TOTAL_SUPPLY,
)
from first_buyers.token_info_service import TokenInfoResolver

TOKEN = "0x" + "ab" * 20


def _uint(value: int) -> str:
    return "0x" + f"{value:064x}"


def _string(text: str) -> str:
    data = text.encode()
    padded = data.hex().ljust(((len(data) + 31) // 32) * 64, "0")
    return "0x" + f"{32:064x}" + f"{len(data):064x}" + padded


def _explorer(row):
    src = MagicMock()
    src.get_token_info = AsyncMock(return_value=row)
    return src


def _rpc(responses: dict):
    src = MagicMock()

    async def eth_call(to, data):
        value = responses.get(data)
        if isinstance(value, Exception):
            raise value
        return value

    src.eth_call = AsyncMock(side_effect=eth_call)
    return src


_FULL_RPC = {
    SELECTOR_NAME: _string("Pepe"),
    SELECTOR_SYMBOL: _string("PEPE"),
    SELECTOR_DECIMALS: _uint(9),
    SELECTOR_TOTAL_SUPPLY: _uint(420 * 10**9),
}


class TestExplorerPath:

    @pytest.mark.asyncio
    async def test_complete_tokeninfo(self):
        row = {"tokenName": "Pepe", "symbol": "PEPE", "divisor": "18",
               "totalSupply": str(1_000 * 10**18)}
        rpc = _rpc({})
        resolver = TokenInfoResolver(_explorer(row), rpc)
        info = await resolver.resolve_token_info(TOKEN)
        assert info.source == "etherscan"
        assert info.total_supply == Decimal(1000)
        assert not info.is_degraded
        rpc.eth_call.assert_not_called()

    @pytest.mark.asyncio
    async def test_cached_after_success(self):
        row = {"tokenName": "Pepe", "symbol": "PEPE", "divisor": "18", "totalSupply": "1"}
        explorer = _explorer(row)
        resolver = TokenInfoResolver(explorer, None)
        await resolver.resolve_token_info(TOKEN)
        await resolver.resolve_token_info(TOKEN)
        explorer.get_token_info.assert_awaited_once()


class TestRpcPath:

    @pytest.mark.asyncio
    async def test_falls_back_to_eth_call(self):
        resolver = TokenInfoResolver(_explorer(None), _rpc(_FULL_RPC))
        info = await resolver.resolve_token_info(TOKEN)
        assert info.source == "rpc"
        assert info.name == "Pepe"
        assert info.symbol == "PEPE"
        assert info.decimals == 9
        assert info.total_supply == Decimal(420)
        assert info.degraded_fields == []

    @pytest.mark.asyncio
    async def test_each_field_defaults_independently(self):
        partial = dict(_FULL_RPC)
        partial[SELECTOR_NAME] = RuntimeError("reverted")
        partial[SELECTOR_DECIMALS] = None
        resolver = TokenInfoResolver(None, _rpc(partial))
        info = await resolver.resolve_token_info(TOKEN)
        assert info.source == "rpc"
        assert info.name == "Unknown"
        assert info.symbol == "PEPE"
        assert info.decimals == 18
        assert set(info.degraded_fields) == {"name", "decimals"}

    @pytest.mark.asyncio
    async def test_bytes32_symbol(self):
        responses = dict(_FULL_RPC)
        responses[SELECTOR_SYMBOL] = "0x" + b"MKR".hex().ljust(64, "0")
        resolver = TokenInfoResolver(None, _rpc(responses))
        info = await resolver.resolve_token_info(TOKEN)
        assert info.symbol == "MKR"

    @pytest.mark.asyncio
    async def test_partial_explorer_row_beats_worse_rpc(self):
        row = {"tokenName": "Pepe", "symbol": "PEPE", "divisor": "18", "totalSupply": "0"}
        resolver = TokenInfoResolver(_explorer(row), _rpc({}))
        info = await resolver.resolve_token_info(TOKEN)
        assert info.source == "etherscan"
        assert info.degraded_fields == ["total_supply"]


class TestDefaults:

    @pytest.mark.asyncio
    async def test_everything_fails(self):
        resolver = TokenInfoResolver(_explorer(None), _rpc({}))
        info = await resolver.resolve_token_info(TOKEN)
        assert info.source == "default"
        assert info.decimals == 18
        assert info.total_supply == 0
        assert info.name == "Unknown"
        assert info.is_degraded

    @pytest.mark.asyncio
    async def test_no_sources(self):
        info = await TokenInfoResolver(None, None).resolve_token_info(TOKEN)
        assert info.source == "default"

    @pytest.mark.asyncio
    async def test_explorer_exception_never_escapes(self):
        explorer = MagicMock()
        explorer.get_token_info = AsyncMock(side_effect=RuntimeError("down"))
        info = await TokenInfoResolver(explorer, None).resolve_token_info(TOKEN)
        assert info.source == "default"

    @pytest.mark.asyncio
    async def test_degraded_result_not_cached(self):
        explorer = _explorer(None)
        resolver = TokenInfoResolver(explorer, None)
        await resolver.resolve_token_info(TOKEN)
        await resolver.resolve_token_info(TOKEN)
        assert explorer.get_token_info.await_count == 2
