"""
First-buyers analysis pipeline.

``analyze_first_buyers`` is the single entry point used by the bot, the
REST API and the CLI::

    sources = build_data_sources()
    result = await analyze_first_buyers("0x…", 50, sources=sources)

Steps, strictly in order:

  1. validate the address and clamp ``limit``
  2. fetch the transfer log            (fatal on failure / empty)
  3. resolve token metadata            (never fails, may degrade)
  4. dedupe → enrich → drop LP outlier (fatal when nothing is left)
  5. detect the bundle / sniper boundary and assemble the result

A fatal condition raises an ``AnalysisError`` subclass; no partial result
is ever returned.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from config import (
    DEFAULT_BUYER_LIMIT,
    EXTRA_IGNORED_ADDRESSES,
    LP_OUTLIER_THRESHOLD_PCT,
    MAX_BUYER_LIMIT,
    MAX_CONCURRENT_RPC,
    SIGNAL_BUDGET,
    SIGNAL_TIMEOUT_SECONDS,
)
from .bundle_detector import BundleBoundary, BundleThresholds, detect_bundle_boundary
from .buyer_service import (
    build_exclusion_set,
    dedupe_buyers_async,
    drop_lp_outlier,
    enrich_buyers,
)
from .data_sources._clients import DataSources
from .exceptions import InvalidAddressError, NoBuyersError, NoTransactionsError
from .logging_config import analysis_context
from .models import BuyerRecord, ClassificationResult, TokenInfo
from .utils import is_eth_address, normalize_address

logger = logging.getLogger(__name__)


def clamp_limit(limit: Optional[int]) -> int:
    """Clamp *limit* into ``1..MAX_BUYER_LIMIT``."""
    if limit is None:
        return min(DEFAULT_BUYER_LIMIT, MAX_BUYER_LIMIT)
    return max(1, min(int(limit), MAX_BUYER_LIMIT))


def assemble_result(
    contract_address: str,
    token: TokenInfo,
    buyers: list[BuyerRecord],
    boundary: BundleBoundary,
) -> ClassificationResult:
    return ClassificationResult(
        contract_address=contract_address,
        token=token,
        buyers=buyers,
        bundle_end_rank=boundary.end_rank,
        boundary_reason=boundary.reason,
    )


async def analyze_first_buyers(
    contract_address: str,
    limit: Optional[int] = DEFAULT_BUYER_LIMIT,
    *,
    sources: DataSources,
    thresholds: Optional[BundleThresholds] = None,
) -> ClassificationResult:
    """Discover, enrich and classify the first buyers of an ERC-20 token.

    Raises
    ------
    InvalidAddressError
        *contract_address* is not ``0x`` + 40 hex characters.
    TransferLogUnavailableError
        The transfer-log source could not be reached.
    NoTransactionsError
        The token has no transfers.
    NoBuyersError
        Transfers exist but none survive filtering.
    """
    with analysis_context():
        return await _run_pipeline(contract_address, limit, sources, thresholds)


async def _run_pipeline(
    contract_address: str,
    limit: Optional[int],
    sources: DataSources,
    thresholds: Optional[BundleThresholds],
) -> ClassificationResult:
    t0 = time.monotonic()
    if not is_eth_address(contract_address):
        logger.warning("Rejected invalid address %r", contract_address)
        raise InvalidAddressError(str(contract_address))
    address = normalize_address(contract_address)
    limit = clamp_limit(limit)
    logger.info("Analyzing first buyers of %s (limit=%d)", address, limit)

    # 1. Transfer log (the only fatal external call)
    events = await sources.transfer_log.fetch_transfer_events(address)
    if not events:
        raise NoTransactionsError(address)
    logger.info("Fetched %d transfers for %s", len(events), address)

    # 2. Metadata
    token = await sources.token_metadata.resolve_token_info(address)

    # 3. Buyers
    excluded = build_exclusion_set(address, EXTRA_IGNORED_ADDRESSES)
    first_events = await dedupe_buyers_async(
        events, address, limit,
        excluded=excluded, contract_check=sources.contract_check,
    )
    buyers = await enrich_buyers(
        first_events, token, sources.tx_signals,
        budget=SIGNAL_BUDGET,
        concurrency=MAX_CONCURRENT_RPC,
        timeout=SIGNAL_TIMEOUT_SECONDS,
    )
    buyers = drop_lp_outlier(buyers, LP_OUTLIER_THRESHOLD_PCT)
    if not buyers:
        logger.warning("No buyers left for %s after filtering", address)
        raise NoBuyersError(address)

    # 4. Classification
    boundary = detect_bundle_boundary(buyers, thresholds or BundleThresholds.from_config())
    result = assemble_result(address, token, buyers, boundary)

    logger.info(
        "Analysis of %s done in %.2fs: %d buyers, bundle_end=%d (%s)",
        address, time.monotonic() - t0, len(buyers),
        boundary.end_rank, boundary.reason,
    )
    return result
