"""Tests for the production data-source wiring."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from first_buyers.data_sources._clients import DataSources, build_data_sources
from first_buyers.data_sources.eth_rpc import EthRpcClient
from first_buyers.data_sources.etherscan import EtherscanClient
from first_buyers.signal_service import TxSignalService
from first_buyers.token_info_service import TokenInfoResolver


class TestBuildDataSources:

    def test_wiring(self):
        sources = build_data_sources(
            etherscan_api_key="KEY", rpc_url="https://rpc.example.com",
            skip_contract_recipients=True,
        )
        assert isinstance(sources.transfer_log, EtherscanClient)
        assert isinstance(sources.token_metadata, TokenInfoResolver)
        assert isinstance(sources.tx_signals, TxSignalService)
        assert isinstance(sources.contract_check, EthRpcClient)
        assert set(sources.health()) == {"etherscan", "eth_rpc"}

    def test_contract_check_can_be_disabled(self):
        sources = build_data_sources(
            etherscan_api_key="KEY", rpc_url="https://rpc.example.com",
            skip_contract_recipients=False,
        )
        assert sources.contract_check is None


class TestAclose:

    @pytest.mark.asyncio
    async def test_closes_every_client_once(self):
        first, second = MagicMock(), MagicMock()
        first.close = AsyncMock(side_effect=RuntimeError("already closed"))
        second.close = AsyncMock()
        sources = DataSources(
            transfer_log=MagicMock(), token_metadata=MagicMock(),
            _closeables=[first, second],
        )
        await sources.aclose()
        await sources.aclose()
        first.close.assert_awaited_once()
        second.close.assert_awaited_once()
