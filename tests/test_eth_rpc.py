"""Tests for the Ethereum JSON-RPC client (async methods with mocked HTTP)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from first_buyers.data_sources.eth_rpc import EthRpcClient


@pytest.fixture
def rpc():
    return EthRpcClient(endpoint="https://rpc.example.com", timeout=5)


def _mock_client(*bodies):
    responses = []
    for body in bodies:
        resp = MagicMock()
        resp.status_code = 200
        resp.headers = {}
        resp.json.return_value = body
        resp.raise_for_status = MagicMock()
        responses.append(resp)
    client = AsyncMock()
    client.post = AsyncMock(side_effect=responses)
    client.is_closed = False
    return client


class TestCall:

    @pytest.mark.asyncio
    async def test_payload_shape(self, rpc):
        rpc._client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": "0x1"})
        result = await rpc._call("eth_blockNumber", [])
        assert result == "0x1"
        payload = rpc._client.post.call_args.kwargs["json"]
        assert payload["method"] == "eth_blockNumber"
        assert payload["jsonrpc"] == "2.0"

    @pytest.mark.asyncio
    async def test_rpc_error_returns_none(self, rpc):
        rpc._client = _mock_client({"jsonrpc": "2.0", "id": 1, "error": {"code": -32000}})
        assert await rpc._call("eth_call", []) is None


class TestEthCall:

    @pytest.mark.asyncio
    async def test_eth_call_latest(self, rpc):
        rpc._client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": "0x" + "0" * 63 + "1"})
        result = await rpc.eth_call("0xtoken", "0x313ce567")
        assert result.endswith("1")
        params = rpc._client.post.call_args.kwargs["json"]["params"]
        assert params == [{"to": "0xtoken", "data": "0x313ce567"}, "latest"]


class TestIsContract:

    @pytest.mark.asyncio
    async def test_code_means_contract(self, rpc):
        rpc._client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": "0x6080604052"})
        assert await rpc.is_contract("0xAbC") is True

    @pytest.mark.asyncio
    async def test_empty_code_means_wallet(self, rpc):
        rpc._client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": "0x"})
        assert await rpc.is_contract("0xabc") is False

    @pytest.mark.asyncio
    async def test_result_cached(self, rpc):
        rpc._client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": "0x"})
        await rpc.is_contract("0xabc")
        assert await rpc.is_contract("0xABC") is False
        assert rpc._client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_lookup_failure_means_not_contract(self, rpc):
        rpc.get_code = AsyncMock(return_value=None)
        assert await rpc.is_contract("0xabc") is False


class TestBlockMiner:

    @pytest.mark.asyncio
    async def test_lowercased_and_cached(self, rpc):
        rpc._client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": {"miner": "0xFEE"}})
        assert await rpc.get_block_miner(18_000_000) == "0xfee"
        assert await rpc.get_block_miner(18_000_000) == "0xfee"
        assert rpc._client.post.call_count == 1
        params = rpc._client.post.call_args.kwargs["json"]["params"]
        assert params == [hex(18_000_000), False]

    @pytest.mark.asyncio
    async def test_missing_block(self, rpc):
        rpc._client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": None})
        assert await rpc.get_block_miner(1) is None
