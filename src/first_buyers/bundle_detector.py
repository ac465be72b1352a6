"""
Bundle / sniper boundary detection.

A coordinated launch bundle lands as a run of transactions at consecutive
positions in one block, all paying the same (usually low) gas.  Snipers
arrive afterwards, competing on gas and landing wherever the builder puts
them.  The boundary is the last buyer of that uniform run.

Rules, applied to each adjacent pair (i-1, i) from rank 2 upward, first
match wins:

  1. position gap   : ``pos[i] - pos[i-1] > max_position_gap``
  2. gas jump       : ``gas[i] > gas_jump_factor × gas[i-1]`` and above
                      ``gas_floor_gwei``; or the same test on the priority
                      fee with its own factor / floor

Fallback when no pair breaks: if the mean gas of the first
``average_window`` buyers is below ``cheap_gas_gwei``, the first later
buyer paying more than ``average_jump_factor ×`` that mean (and above
``average_floor_gwei``) starts the sniper segment.

Missing values never count as evidence.  The result depends only on the
ordered (position, gas, priority fee) sequence; block numbers are not
consulted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from config import (
    BUNDLE_AVERAGE_FLOOR_GWEI,
    BUNDLE_AVERAGE_JUMP_FACTOR,
    BUNDLE_AVERAGE_WINDOW,
    BUNDLE_CHEAP_GAS_GWEI,
    BUNDLE_GAS_FLOOR_GWEI,
    BUNDLE_GAS_JUMP_FACTOR,
    BUNDLE_MAX_POSITION_GAP,
    BUNDLE_PRIORITY_FLOOR_GWEI,
    BUNDLE_PRIORITY_JUMP_FACTOR,
)
from .models import BoundaryReason, BuyerRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BundleThresholds:
    max_position_gap: int = 1
    gas_jump_factor: Decimal = Decimal(2)
    gas_floor_gwei: Decimal = Decimal(10)
    priority_jump_factor: Decimal = Decimal(3)
    priority_floor_gwei: Decimal = Decimal(2)
    average_window: int = 20
    cheap_gas_gwei: Decimal = Decimal(10)
    average_jump_factor: Decimal = Decimal(3)
    average_floor_gwei: Decimal = Decimal(15)

    @classmethod
    def from_config(cls) -> "BundleThresholds":
        return cls(
            max_position_gap=BUNDLE_MAX_POSITION_GAP,
            gas_jump_factor=BUNDLE_GAS_JUMP_FACTOR,
            gas_floor_gwei=BUNDLE_GAS_FLOOR_GWEI,
            priority_jump_factor=BUNDLE_PRIORITY_JUMP_FACTOR,
            priority_floor_gwei=BUNDLE_PRIORITY_FLOOR_GWEI,
            average_window=BUNDLE_AVERAGE_WINDOW,
            cheap_gas_gwei=BUNDLE_CHEAP_GAS_GWEI,
            average_jump_factor=BUNDLE_AVERAGE_JUMP_FACTOR,
            average_floor_gwei=BUNDLE_AVERAGE_FLOOR_GWEI,
        )


DEFAULT_THRESHOLDS = BundleThresholds()


@dataclass(frozen=True)
class BundleBoundary:
    end_rank: int
    reason: BoundaryReason


def _is_jump(
    prev: Optional[Decimal], cur: Optional[Decimal], factor: Decimal, floor: Decimal
) -> bool:
    if prev is None or cur is None:
        return False
    return cur > prev * factor and cur > floor


def _pair_break(
    prev: BuyerRecord, cur: BuyerRecord, t: BundleThresholds
) -> Optional[BoundaryReason]:
    if prev.block_position is not None and cur.block_position is not None:
        if cur.block_position - prev.block_position > t.max_position_gap:
            return "position_gap"
    if _is_jump(prev.gas_price_gwei, cur.gas_price_gwei, t.gas_jump_factor, t.gas_floor_gwei):
        return "gas_jump"
    if _is_jump(
        prev.priority_fee_gwei, cur.priority_fee_gwei,
        t.priority_jump_factor, t.priority_floor_gwei,
    ):
        return "priority_fee_jump"
    return None


def _average_gas(buyers: Sequence[BuyerRecord], window: int) -> Optional[Decimal]:
    known = [b.gas_price_gwei for b in buyers[:window] if b.gas_price_gwei is not None]
    if not known:
        return None
    return sum(known, Decimal(0)) / len(known)


def detect_bundle_boundary(
    buyers: Sequence[BuyerRecord],
    thresholds: BundleThresholds = DEFAULT_THRESHOLDS,
) -> BundleBoundary:
    """Return the rank of the last bundled buyer and the rule that fired.

    *buyers* must be ranked 1..N in acquisition order.  ``end_rank == N``
    means no boundary was found; a single buyer is never a bundle.
    """
    n = len(buyers)
    if n <= 1:
        return BundleBoundary(0, "single_buyer")

    for i in range(1, n):
        reason = _pair_break(buyers[i - 1], buyers[i], thresholds)
        if reason is not None:
            logger.debug("Bundle boundary at rank %d (%s)", i, reason)
            return BundleBoundary(i, reason)

    avg = _average_gas(buyers, thresholds.average_window)
    if avg is not None and avg < thresholds.cheap_gas_gwei:
        trigger = avg * thresholds.average_jump_factor
        for i in range(1, n):
            gas = buyers[i].gas_price_gwei
            if gas is not None and gas > trigger and gas > thresholds.average_floor_gwei:
                logger.debug(
                    "Bundle boundary at rank %d (gas %s vs avg %s)", i, gas, avg
                )
                return BundleBoundary(i, "gas_average")

    return BundleBoundary(n, "none")
