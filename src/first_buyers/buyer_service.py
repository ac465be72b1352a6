"""
Buyer discovery: from a raw transfer log to ranked, enriched buyers.

Three stages, each a plain function so the pipeline (and tests) can drive
them independently:

  dedupe_buyers     : first transfer per distinct recipient, skipping mints,
                      burns and routing infrastructure
  enrich_buyers     : decimal amount, share of supply, and (for the first
                      ``budget`` buyers only) gas / position / bribe signals
  drop_lp_outlier   : remove an initial liquidity deposit miscounted as a
                      buyer and re-rank the remainder

None of these raise on bad data: unparseable amounts become zero and
failed signal lookups become ``TxSignal(status="failed")``.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal, InvalidOperation, localcontext
from itertools import islice
from typing import Iterable, Iterator, Optional

from .constants import IGNORED_RECIPIENTS, ZERO_ADDRESS
from .models import BuyerRecord, TokenInfo, TransferEvent, TxSignal
from .ports import ContractCheckPort, TxSignalPort
from .utils import AMOUNT_PRECISION, normalize_address, raw_to_decimal, to_utc_datetime

logger = logging.getLogger(__name__)

# ── Tuning constants ──────────────────────────────────────────────────────────
_DEFAULT_SIGNAL_BUDGET     = 15     # buyers that get gas / bribe lookups
_DEFAULT_SIGNAL_CONCURRENCY = 4
_DEFAULT_SIGNAL_TIMEOUT_S  = 20
LP_OUTLIER_THRESHOLD_PCT   = Decimal(50)


# ─────────────────────────────────────────────────────────────────────────────
# Deduplication
# ─────────────────────────────────────────────────────────────────────────────

def build_exclusion_set(
    contract_address: str, extra: Iterable[str] = ()
) -> frozenset[str]:
    """Routers / aggregators, the token contract itself, plus *extra*."""
    return frozenset(
        {normalize_address(contract_address)}
        | IGNORED_RECIPIENTS
        | {normalize_address(a) for a in extra}
    )


def iter_first_recipients(
    events: Iterable[TransferEvent], excluded: frozenset[str]
) -> Iterator[TransferEvent]:
    """Yield the first transfer to each distinct recipient, in input order."""
    seen: set[str] = set()
    for event in events:
        if normalize_address(event.from_address) == ZERO_ADDRESS:
            continue  # mint
        recipient = normalize_address(event.to_address)
        if recipient == ZERO_ADDRESS or recipient in excluded:
            continue
        if recipient in seen:
            continue
        seen.add(recipient)
        yield event


def dedupe_buyers(
    events: Iterable[TransferEvent],
    contract_address: str,
    limit: int,
    excluded: Optional[frozenset[str]] = None,
) -> list[TransferEvent]:
    """Return at most *limit* first-purchase events, one per recipient."""
    if limit <= 0:
        return []
    if excluded is None:
        excluded = build_exclusion_set(contract_address)
    retained: list[TransferEvent] = []
    for event in iter_first_recipients(events, excluded):
        retained.append(event)
        if len(retained) >= limit:
            break
    return retained


async def _safe_is_contract(port: ContractCheckPort, address: str) -> bool:
    try:
        return await port.is_contract(address)
    except Exception as exc:
        logger.debug("Contract check failed for %s: %s", address, exc)
        return False


async def dedupe_buyers_async(
    events: Iterable[TransferEvent],
    contract_address: str,
    limit: int,
    *,
    excluded: Optional[frozenset[str]] = None,
    contract_check: Optional[ContractCheckPort] = None,
) -> list[TransferEvent]:
    """``dedupe_buyers`` that also drops recipients holding contract code.

    Candidates are checked in batches sized to the number of slots still
    open, so order is preserved and no more lookups are made than needed
    to fill *limit*.
    """
    if contract_check is None:
        return dedupe_buyers(events, contract_address, limit, excluded)
    if limit <= 0:
        return []
    if excluded is None:
        excluded = build_exclusion_set(contract_address)

    candidates = iter_first_recipients(events, excluded)
    retained: list[TransferEvent] = []
    while len(retained) < limit:
        batch = list(islice(candidates, limit - len(retained)))
        if not batch:
            break
        flags = await asyncio.gather(
            *[_safe_is_contract(contract_check, e.to_address) for e in batch]
        )
        for event, is_code in zip(batch, flags):
            if is_code:
                logger.debug("Skipping contract recipient %s", event.to_address)
                continue
            retained.append(event)
    return retained


# ─────────────────────────────────────────────────────────────────────────────
# Enrichment
# ─────────────────────────────────────────────────────────────────────────────

def to_amount(raw_value: object, decimals: int) -> Decimal:
    """Whole-token amount, or ``0`` when the raw value can't be converted."""
    try:
        return raw_to_decimal(raw_value, decimals)
    except (ValueError, TypeError, ArithmeticError) as exc:
        logger.warning("Amount conversion failed for %r (decimals=%s): %s", raw_value, decimals, exc)
        return Decimal(0)


def supply_share(amount: Decimal, total_supply: Decimal) -> Decimal:
    """``amount / total_supply * 100``; ``0`` for an unresolved supply."""
    if total_supply <= 0 or amount <= 0:
        return Decimal(0)
    try:
        with localcontext() as ctx:
            ctx.prec = AMOUNT_PRECISION
            return amount / total_supply * 100
    except (InvalidOperation, ArithmeticError):
        return Decimal(0)


def build_buyer_record(
    event: TransferEvent, token: TokenInfo, rank: int, signal: TxSignal
) -> BuyerRecord:
    amount = to_amount(event.raw_value, token.decimals)
    return BuyerRecord(
        rank=rank,
        wallet=event.to_address,
        amount=amount,
        supply_percent=supply_share(amount, token.total_supply),
        tx_hash=event.tx_hash,
        block_number=event.block_number,
        timestamp=to_utc_datetime(event.timestamp),
        gas_price_gwei=signal.gas_price_gwei,
        priority_fee_gwei=signal.priority_fee_gwei,
        block_position=signal.block_position,
        bribe_eth=signal.bribe_eth,
        signal_status=signal.status,
    )


async def _fetch_one_signal(
    port: TxSignalPort, tx_hash: str, sem: asyncio.Semaphore, timeout: float
) -> TxSignal:
    async with sem:
        try:
            return await asyncio.wait_for(port.fetch_tx_signal(tx_hash), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Signal lookup timed out for %s", tx_hash[:12])
        except Exception as exc:
            logger.warning("Signal lookup failed for %s: %s", tx_hash[:12], exc)
    return TxSignal.failed(tx_hash)


async def fetch_signals(
    events: list[TransferEvent],
    port: Optional[TxSignalPort],
    *,
    budget: int = _DEFAULT_SIGNAL_BUDGET,
    concurrency: int = _DEFAULT_SIGNAL_CONCURRENCY,
    timeout: float = _DEFAULT_SIGNAL_TIMEOUT_S,
) -> list[TxSignal]:
    """One signal per event; only the first *budget* events are looked up.

    Several recipients of one multi-transfer transaction share a single
    lookup.  Events past the budget reuse a signal already fetched for
    the same transaction, otherwise get ``TxSignal.skipped``; they never
    cause an external call.
    """
    budgeted = events[: max(budget, 0)] if port is not None else []
    unique_hashes = list(dict.fromkeys(e.tx_hash for e in budgeted))

    by_hash: dict[str, TxSignal] = {}
    if unique_hashes:
        sem = asyncio.Semaphore(max(concurrency, 1))
        results = await asyncio.gather(
            *[_fetch_one_signal(port, h, sem, timeout) for h in unique_hashes]  # type: ignore[arg-type]
        )
        by_hash = dict(zip(unique_hashes, results))
        logger.debug(
            "Signals: %d looked up, %d failed",
            len(results), sum(1 for r in results if r.status == "failed"),
        )

    signals: list[TxSignal] = []
    for event in events:
        signal = by_hash.get(event.tx_hash)
        signals.append(signal if signal is not None else TxSignal.skipped(event.tx_hash))
    return signals


async def enrich_buyers(
    events: list[TransferEvent],
    token: TokenInfo,
    signal_port: Optional[TxSignalPort],
    *,
    budget: int = _DEFAULT_SIGNAL_BUDGET,
    concurrency: int = _DEFAULT_SIGNAL_CONCURRENCY,
    timeout: float = _DEFAULT_SIGNAL_TIMEOUT_S,
) -> list[BuyerRecord]:
    """Turn deduplicated events into ranked ``BuyerRecord`` objects."""
    signals = await fetch_signals(
        events, signal_port, budget=budget, concurrency=concurrency, timeout=timeout,
    )
    return [
        build_buyer_record(event, token, rank, signal)
        for rank, (event, signal) in enumerate(zip(events, signals), start=1)
    ]


# ─────────────────────────────────────────────────────────────────────────────
# LP outlier
# ─────────────────────────────────────────────────────────────────────────────

def rerank(buyers: list[BuyerRecord]) -> list[BuyerRecord]:
    """Renumber ranks 1..N, preserving order."""
    return [
        b if b.rank == i else b.model_copy(update={"rank": i})
        for i, b in enumerate(buyers, start=1)
    ]


def drop_lp_outlier(
    buyers: list[BuyerRecord],
    threshold_pct: Decimal = LP_OUTLIER_THRESHOLD_PCT,
) -> list[BuyerRecord]:
    """Drop the head record when it holds more than *threshold_pct* of supply.

    Nobody buys half the supply in the first trade; that recipient is the
    liquidity pool being seeded.  Only the head is considered.
    """
    if not buyers:
        return buyers
    head = buyers[0]
    if head.supply_percent > threshold_pct:
        logger.info(
            "Dropping %s as LP deposit (%.2f%% of supply)",
            head.wallet, head.supply_percent,
        )
        return rerank(buyers[1:])
    return buyers
