"""
Command line interface for the First Buyers Agent.

Usage::

    python src/main.py --token <CONTRACT_ADDRESS> [--limit 50] [--range 1-20] [--json]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import os

# Ensure ``src/`` is on the import path
sys.path.insert(0, os.path.dirname(__file__))

from config import DEFAULT_BUYER_LIMIT
from first_buyers.analyzer import analyze_first_buyers
from first_buyers.data_sources._clients import build_data_sources
from first_buyers.exceptions import AnalysisError
from first_buyers.models import ClassificationResult
from first_buyers.report_formatter import (
    format_amount,
    format_gas,
    format_percent,
    parse_range,
    select_window,
)

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)


def _print_result(result: ClassificationResult, start: int, end: int | None) -> None:
    token = result.token
    print("=" * 72)
    print("  First Buyers Agent – Results")
    print("=" * 72)
    print(f"  Token        : {token.name} ({token.symbol})")
    print(f"  Contract     : {result.contract_address}")
    print(f"  Buyers       : {len(result.buyers)}")
    if result.boundary_detected:
        print(f"  Bundle       : ranks 1-{result.bundle_end_rank} ({result.boundary_reason})")
    elif result.is_fully_bundled:
        print(f"  Bundle       : all buyers ({result.boundary_reason})")
    else:
        print(f"  Bundle       : none ({result.boundary_reason})")
    if token.is_degraded:
        print(f"  Metadata     : degraded ({', '.join(token.degraded_fields) or token.source})")
    print("-" * 72)

    for b in select_window(result.buyers, start, end):
        tag = "BUNDLE" if b.rank <= result.bundle_end_rank else "SNIPER"
        print(
            f"  {b.rank:>3}. {tag:6s} {b.wallet}  "
            f"{format_amount(b.amount):>18s} ({format_percent(b.supply_percent)})"
        )
        print(f"       {format_gas(b)}")

    print("=" * 72)


async def _run(token: str, limit: int, window: tuple[int, int] | None, as_json: bool) -> int:
    """Async entry point; returns the process exit code."""
    sources = build_data_sources()
    try:
        result = await analyze_first_buyers(token, limit, sources=sources)
    except AnalysisError as exc:
        print(f"Error: {exc.user_message}", file=sys.stderr)
        return 1
    finally:
        await sources.aclose()

    if as_json:
        print(result.model_dump_json(indent=2))
        return 0

    start, end = window if window else (1, None)
    _print_result(result, start, end)
    return 0


def main() -> None:
    """Entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="List the first buyers of an ERC-20 token and flag the launch bundle"
    )
    parser.add_argument(
        "--token",
        required=True,
        help="Contract address of the token to analyse",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_BUYER_LIMIT,
        help="Number of distinct buyers to collect",
    )
    parser.add_argument(
        "--range",
        dest="window",
        default=None,
        help="Only display ranks START-END, e.g. 1-20",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="as_json",
        help="Output result as raw JSON",
    )
    args = parser.parse_args()

    window = None
    if args.window:
        window = parse_range(args.window)
        if window is None:
            parser.error(f"invalid --range {args.window!r}, expected START-END")

    sys.exit(asyncio.run(_run(args.token, args.limit, window, args.as_json)))


if __name__ == "__main__":
    main()
