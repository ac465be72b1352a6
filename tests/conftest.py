"""Shared test fixtures for the First Buyers Agent test suite."""

from __future__ import annotations

import sys
import os

# Ensure src/ is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from first_buyers.data_sources._clients import DataSources
from first_buyers.exceptions import NoTransactionsError
from first_buyers.models import BuyerRecord, TokenInfo, TransferEvent, TxSignal

TOKEN_ADDRESS = "0x" + "ab" * 20
DEPLOYER = "0x" + "de" * 20


def wallet(n: int) -> str:
    """Deterministic wallet address for index *n*."""
    return "0x" + f"{n:040x}"


# ---------------------------------------------------------------------------
# In-memory ports
# ---------------------------------------------------------------------------

class FakeTransferLog:
    def __init__(self, events: list[TransferEvent], error: Optional[Exception] = None):
        self.events = events
        self.error = error
        self.calls = 0

    async def fetch_transfer_events(self, contract_address: str) -> list[TransferEvent]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if not self.events:
            raise NoTransactionsError(contract_address)
        return list(self.events)


class FakeTokenMetadata:
    def __init__(self, info: TokenInfo):
        self.info = info
        self.calls = 0

    async def resolve_token_info(self, contract_address: str) -> TokenInfo:
        self.calls += 1
        return self.info


class FakeTxSignals:
    def __init__(self, signals: Optional[dict[str, TxSignal]] = None):
        self.signals = signals or {}
        self.requested: list[str] = []

    async def fetch_tx_signal(self, tx_hash: str) -> TxSignal:
        self.requested.append(tx_hash)
        return self.signals.get(tx_hash, TxSignal.failed(tx_hash))


class FakeContractCheck:
    def __init__(self, contracts: set[str]):
        self.contracts = {c.lower() for c in contracts}
        self.checked: list[str] = []

    async def is_contract(self, address: str) -> bool:
        self.checked.append(address.lower())
        return address.lower() in self.contracts


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_event():
    """Factory for ``TransferEvent`` objects."""
    def _make(
        to: str,
        value: str = "1000000000000000000",
        *,
        frm: str = DEPLOYER,
        tx_hash: Optional[str] = None,
        block: int = 100,
        ts: int = 1_700_000_000,
    ) -> TransferEvent:
        return TransferEvent(
            from_address=frm,
            to_address=to,
            raw_value=value,
            tx_hash=tx_hash or "0x" + to[2:].rjust(64, "0"),
            block_number=block,
            timestamp=ts,
        )
    return _make


@pytest.fixture
def make_buyer():
    """Factory for ``BuyerRecord`` objects with gas / position signals."""
    def _make(
        rank: int,
        *,
        position: Optional[int] = None,
        gas: Optional[str] = None,
        prio: Optional[str] = None,
        supply_percent: str = "1",
        block: int = 100,
    ) -> BuyerRecord:
        return BuyerRecord(
            rank=rank,
            wallet=wallet(rank),
            amount=Decimal(1000),
            supply_percent=Decimal(supply_percent),
            tx_hash="0x" + f"{rank:064x}",
            block_number=block,
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            gas_price_gwei=Decimal(gas) if gas is not None else None,
            priority_fee_gwei=Decimal(prio) if prio is not None else None,
            block_position=position,
            signal_status="ok" if gas is not None or position is not None else "skipped",
        )
    return _make


@pytest.fixture
def token_info():
    return TokenInfo(
        address=TOKEN_ADDRESS,
        name="Test Token",
        symbol="TEST",
        decimals=18,
        total_supply=Decimal(1_000_000),
        source="etherscan",
    )


@pytest.fixture
def make_sources(token_info):
    """Factory building a ``DataSources`` bundle over in-memory ports."""
    def _make(
        events: list[TransferEvent],
        *,
        signals: Optional[dict[str, TxSignal]] = None,
        contracts: Optional[set[str]] = None,
        info: Optional[TokenInfo] = None,
        transfer_error: Optional[Exception] = None,
    ) -> DataSources:
        return DataSources(
            transfer_log=FakeTransferLog(events, transfer_error),
            token_metadata=FakeTokenMetadata(info or token_info),
            tx_signals=FakeTxSignals(signals),
            contract_check=FakeContractCheck(contracts) if contracts is not None else None,
        )
    return _make
