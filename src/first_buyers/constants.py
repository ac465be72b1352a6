"""
Centralized constants for the First Buyers Agent.

This file contains:
- Ethereum infrastructure addresses that receive tokens but are never buyers
- ERC-20 selectors and unit scales shared by the data-source adapters

Import from this module rather than duplicating values across services.
"""

from __future__ import annotations

from decimal import Decimal

# ---------------------------------------------------------------------------
# Ethereum addresses
# ---------------------------------------------------------------------------

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# DEX routers / aggregators (lower-case)
UNISWAP_V2_ROUTER = "0x7a250d5630b4cf539739df2c5dacb4c659f2488d"
UNISWAP_V3_ROUTER = "0xe592427a0aece92de3edee1f18e0157c05861564"
UNISWAP_V3_ROUTER_2 = "0x68b3465833fb72a70ecdf485e0e4c7bd8665fc45"
ONEINCH_ROUTER = "0x1111111254eeb25477b68fb85ed929f73a960582"
ZEROX_EXCHANGE_PROXY = "0xdef1c0ded9bec7f1a1670819833240f027b25eff"

# ---------------------------------------------------------------------------
# Sets for filtering
# ---------------------------------------------------------------------------

# Recipients that are routing infrastructure, not end buyers
IGNORED_RECIPIENTS: frozenset[str] = frozenset({
    UNISWAP_V2_ROUTER,
    UNISWAP_V3_ROUTER,
    UNISWAP_V3_ROUTER_2,
    ONEINCH_ROUTER,
    ZEROX_EXCHANGE_PROXY,
})

# ---------------------------------------------------------------------------
# ERC-20 function selectors (first 4 bytes of keccak256(signature))
# ---------------------------------------------------------------------------
SELECTOR_NAME = "0x06fdde03"          # name()
SELECTOR_SYMBOL = "0x95d89b41"        # symbol()
SELECTOR_DECIMALS = "0x313ce567"      # decimals()
SELECTOR_TOTAL_SUPPLY = "0x18160ddd"  # totalSupply()

# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------
WEI_PER_GWEI = Decimal(10) ** 9
WEI_PER_ETH = Decimal(10) ** 18

DEFAULT_DECIMALS = 18
UNKNOWN_TOKEN_LABEL = "Unknown"
