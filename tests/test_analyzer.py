"""End-to-end tests for ``analyze_first_buyers`` over in-memory ports."""

from __future__ import annotations

from decimal import Decimal

import pytest

from first_buyers.analyzer import analyze_first_buyers, clamp_limit
from first_buyers.constants import ZERO_ADDRESS
from first_buyers.exceptions import (
    InvalidAddressError,
    NoBuyersError,
    NoTransactionsError,
    TransferLogUnavailableError,
)
from first_buyers.logging_config import request_id_ctx
from first_buyers.models import TokenInfo, TxSignal

TOKEN = "0x" + "ab" * 20
LP_PAIR = "0x" + "cc" * 20


def _w(n: int) -> str:
    return "0x" + f"{n:040x}"


def _launch(make_event):
    """Mint, LP seed, three bundled buyers at positions 1-3, two snipers."""
    events = [
        make_event(_w(99), value=str(1_000_000 * 10**18), frm=ZERO_ADDRESS, tx_hash="0xmint"),
        make_event(LP_PAIR, value=str(800_000 * 10**18), tx_hash="0xlp"),
    ]
    for i in range(1, 6):
        events.append(make_event(_w(i), value=str(i * 1000 * 10**18), tx_hash=f"0x{i:02x}"))
    # repeat buy by wallet 2 must not create a second record
    events.append(make_event(_w(2), value="1", tx_hash="0xrepeat"))
    return events


def _signals():
    positions = {"0xlp": 0, "0x01": 1, "0x02": 2, "0x03": 3, "0x04": 40, "0x05": 41}
    return {
        h: TxSignal(tx_hash=h, gas_price_gwei=Decimal(5), block_position=p, bribe_eth=Decimal(0))
        for h, p in positions.items()
    }


class TestPipeline:

    @pytest.mark.asyncio
    async def test_full_run(self, make_event, make_sources):
        sources = make_sources(_launch(make_event), signals=_signals())
        result = await analyze_first_buyers(TOKEN, 50, sources=sources)

        # LP seed dropped, ranks renumbered
        assert [b.wallet for b in result.buyers] == [_w(i) for i in range(1, 6)]
        assert [b.rank for b in result.buyers] == [1, 2, 3, 4, 5]
        assert result.bundle_end_rank == 3
        assert result.boundary_reason == "position_gap"
        assert [b.wallet for b in result.sniper_buyers] == [_w(4), _w(5)]
        assert result.buyers[0].supply_percent == Decimal("0.1")
        assert result.buyers[0].bribe_eth == 0

    @pytest.mark.asyncio
    async def test_idempotent(self, make_event, make_sources):
        sources = make_sources(_launch(make_event), signals=_signals())
        first = await analyze_first_buyers(TOKEN, 50, sources=sources)
        second = await analyze_first_buyers(TOKEN, 50, sources=sources)
        assert first == second

    @pytest.mark.asyncio
    async def test_limit_applies_before_lp_filter(self, make_event, make_sources):
        sources = make_sources(_launch(make_event), signals=_signals())
        result = await analyze_first_buyers(TOKEN, 3, sources=sources)
        # LP + 2 buyers retained, then LP dropped
        assert len(result.buyers) == 2

    @pytest.mark.asyncio
    async def test_contract_recipients_skipped(self, make_event, make_sources):
        sources = make_sources(
            _launch(make_event), signals=_signals(), contracts={LP_PAIR, _w(1)}
        )
        result = await analyze_first_buyers(TOKEN, 50, sources=sources)
        assert _w(1) not in [b.wallet for b in result.buyers]
        assert result.buyers[0].wallet == _w(2)

    @pytest.mark.asyncio
    async def test_address_is_normalized(self, make_event, make_sources):
        sources = make_sources(_launch(make_event), signals=_signals())
        result = await analyze_first_buyers("0x" + "AB" * 20, 50, sources=sources)
        assert result.contract_address == TOKEN

    @pytest.mark.asyncio
    async def test_degraded_metadata_still_succeeds(self, make_event, make_sources):
        info = TokenInfo(address=TOKEN, source="default", degraded_fields=["total_supply"])
        sources = make_sources(_launch(make_event), signals=_signals(), info=info)
        result = await analyze_first_buyers(TOKEN, 50, sources=sources)
        assert result.token.is_degraded
        # no supply -> no percentages -> LP seed can't be recognised
        assert all(b.supply_percent == 0 for b in result.buyers)
        assert result.buyers[0].wallet == LP_PAIR

    @pytest.mark.asyncio
    async def test_request_id_restored(self, make_event, make_sources):
        sources = make_sources(_launch(make_event), signals=_signals())
        token = request_id_ctx.set("-")
        try:
            await analyze_first_buyers(TOKEN, 50, sources=sources)
            assert request_id_ctx.get() == "-"
        finally:
            request_id_ctx.reset(token)


class TestFatalErrors:

    @pytest.mark.asyncio
    async def test_invalid_address(self, make_sources):
        sources = make_sources([])
        with pytest.raises(InvalidAddressError):
            await analyze_first_buyers("0x123", 50, sources=sources)
        assert sources.transfer_log.calls == 0

    @pytest.mark.asyncio
    async def test_empty_transfer_log(self, make_sources):
        sources = make_sources([])
        with pytest.raises(NoTransactionsError):
            await analyze_first_buyers(TOKEN, 50, sources=sources)
        # metadata is never fetched when there are no transfers
        assert sources.token_metadata.calls == 0

    @pytest.mark.asyncio
    async def test_transfer_log_unavailable(self, make_sources):
        sources = make_sources([], transfer_error=TransferLogUnavailableError(TOKEN))
        with pytest.raises(TransferLogUnavailableError):
            await analyze_first_buyers(TOKEN, 50, sources=sources)

    @pytest.mark.asyncio
    async def test_only_mints_means_no_buyers(self, make_event, make_sources):
        events = [make_event(_w(1), frm=ZERO_ADDRESS), make_event(_w(2), frm=ZERO_ADDRESS)]
        with pytest.raises(NoBuyersError):
            await analyze_first_buyers(TOKEN, 50, sources=make_sources(events))

    @pytest.mark.asyncio
    async def test_lp_only_means_no_buyers(self, make_event, make_sources):
        events = [make_event(LP_PAIR, value=str(900_000 * 10**18))]
        with pytest.raises(NoBuyersError):
            await analyze_first_buyers(TOKEN, 50, sources=make_sources(events))


class TestClampLimit:

    @pytest.mark.parametrize("raw, expected", [(0, 1), (-5, 1), (10, 10), (10_000, 100)])
    def test_clamp(self, raw, expected):
        assert clamp_limit(raw) == expected
