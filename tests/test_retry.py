"""Tests for the shared async retry helpers used by the Etherscan / RPC adapters."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from first_buyers.data_sources._retry import async_http_get, async_http_post_json

ETHERSCAN = "https://api.etherscan.io/v2/api"
RPC = "https://rpc.example.com"


def _resp(status: int = 200, body=None, headers=None):
    """Mock ``httpx.Response``; 429 / 403 never reach ``raise_for_status``."""
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.headers = headers or {}
    resp.raise_for_status = MagicMock()
    if status >= 400 and status not in (403, 429):
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            f"HTTP {status}", request=MagicMock(), response=resp,
        )
    return resp


def _client(*responses, method="get"):
    client = AsyncMock()
    setattr(client, method, AsyncMock(side_effect=list(responses)))
    return client


@pytest.fixture
def sleep():
    with patch("first_buyers.data_sources._retry.asyncio.sleep", new_callable=AsyncMock) as s:
        yield s


class TestAsyncHttpGet:

    @pytest.mark.asyncio
    async def test_tokentx_body_returned(self, sleep):
        body = {"status": "1", "message": "OK", "result": [{"hash": "0xa"}]}
        client = _client(_resp(200, body))
        assert await async_http_get(client, ETHERSCAN, params={"action": "tokentx"}) == body
        assert client.get.call_args.kwargs["params"] == {"action": "tokentx"}
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_429_honours_retry_after(self, sleep):
        client = _client(_resp(429, headers={"retry-after": "4"}), _resp(200, {"status": "1"}))
        assert await async_http_get(client, ETHERSCAN, backoff_base=0.01) == {"status": "1"}
        sleep.assert_awaited_once_with(4.0)

    @pytest.mark.asyncio
    async def test_403_gives_up_immediately(self, sleep):
        client = _client(_resp(403))
        assert await async_http_get(client, ETHERSCAN) is None
        assert client.get.call_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("first", [
        httpx.ConnectError("refused"),
        _resp(502),
    ])
    async def test_transient_failure_retried(self, sleep, first):
        client = _client(first, _resp(200, {"status": "1"}))
        assert await async_http_get(client, ETHERSCAN, backoff_base=0.01) == {"status": "1"}
        assert client.get.call_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_give_none(self, sleep):
        client = AsyncMock()
        client.get = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        assert await async_http_get(client, ETHERSCAN, max_retries=2, backoff_base=0.01) is None
        assert client.get.call_count == 2
        # no sleep after the final attempt
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_non_json_body_retried(self, sleep):
        bad = _resp(200)
        bad.json.side_effect = ValueError("Expecting value")
        client = _client(bad, _resp(200, {"status": "1"}))
        assert await async_http_get(client, ETHERSCAN, backoff_base=0.01) == {"status": "1"}


class TestBodyThrottling:

    @staticmethod
    def _throttled(body):
        return isinstance(body.get("result"), str) and "rate limit" in body["result"]

    @pytest.mark.asyncio
    async def test_rate_limit_notice_retried(self, sleep):
        notice = _resp(200, {"status": "0", "message": "NOTOK", "result": "Max rate limit reached"})
        client = _client(notice, _resp(200, {"status": "1", "result": []}))
        result = await async_http_get(
            client, ETHERSCAN, backoff_base=0.01, is_throttled=self._throttled,
        )
        assert result == {"status": "1", "result": []}

    @pytest.mark.asyncio
    async def test_persistent_notice_gives_none(self, sleep):
        notice = {"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}
        client = AsyncMock()
        client.get = AsyncMock(return_value=_resp(200, notice))
        result = await async_http_get(
            client, ETHERSCAN, max_retries=2, backoff_base=0.01, is_throttled=self._throttled,
        )
        assert result is None
        assert client.get.call_count == 2

    @pytest.mark.asyncio
    async def test_other_error_bodies_pass_through(self, sleep):
        body = {"status": "0", "message": "No transactions found", "result": []}
        client = _client(_resp(200, body))
        assert await async_http_get(client, ETHERSCAN, is_throttled=self._throttled) == body


class TestAsyncHttpPostJson:

    @pytest.mark.asyncio
    async def test_returns_result_member(self, sleep):
        client = _client(_resp(200, {"jsonrpc": "2.0", "id": 1, "result": "0x12"}), method="post")
        payload = {"jsonrpc": "2.0", "id": 1, "method": "eth_call", "params": []}
        assert await async_http_post_json(client, RPC, json_payload=payload) == "0x12"
        assert client.post.call_args.kwargs["json"] == payload

    @pytest.mark.asyncio
    async def test_rpc_error_not_retried(self, sleep):
        body = {"jsonrpc": "2.0", "id": 1, "error": {"code": 3, "message": "execution reverted"}}
        client = _client(_resp(200, body), method="post")
        assert await async_http_post_json(client, RPC, json_payload={}) is None
        assert client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_429_then_result(self, sleep):
        client = _client(_resp(429), _resp(200, {"result": "0x"}), method="post")
        result = await async_http_post_json(client, RPC, json_payload={}, backoff_base=0.01)
        assert result == "0x"
        assert client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_403_gives_up_immediately(self, sleep):
        client = _client(_resp(403), method="post")
        assert await async_http_post_json(client, RPC, json_payload={}) is None
        assert client.post.call_count == 1
