"""
Settings for the First Buyers Agent, read once from the environment.

Every value has a working default except the credentials
(``TELEGRAM_BOT_TOKEN``, ``ETHERSCAN_API_KEY``, ``ETHEREUM_RPC_URL``).
A malformed number never stops startup: it is logged and replaced by the
default, and out-of-range numbers are clamped.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal, InvalidOperation
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def _env(name: str, default: str, convert: Callable[[str], _T]) -> _T:
    raw = os.getenv(name, default)
    try:
        return convert(raw)
    except (TypeError, ValueError, InvalidOperation):
        logger.error("%s=%r is not usable, falling back to %s", name, raw, default)
        return convert(default)


def _finite_decimal(raw: str) -> Decimal:
    value = Decimal(raw)
    if not value.is_finite():
        raise InvalidOperation(raw)
    return value


def _parse_float(name: str, default: str, *, low: float = 0.0, high: float = 1.0) -> float:
    """Float from *name*, clamped into ``[low, high]``."""
    value = _env(name, default, float)
    clamped = max(low, min(value, high))
    if clamped != value:
        logger.warning("%s=%s clamped to %s", name, value, clamped)
    return clamped


def _parse_int(name: str, default: str, *, minimum: int = 1) -> int:
    value = _env(name, default, int)
    if value < minimum:
        logger.warning("%s=%d raised to minimum %d", name, value, minimum)
        return minimum
    return value


def _parse_decimal(name: str, default: str, *, minimum: str = "0") -> Decimal:
    """Decimal threshold (gwei, percent) from *name*; NaN / inf rejected."""
    value = _env(name, default, _finite_decimal)
    floor = Decimal(minimum)
    if value < floor:
        logger.warning("%s=%s raised to minimum %s", name, value, floor)
        return floor
    return value


def _parse_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Telegram
# ---------------------------------------------------------------------------
TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
# Public base URL for webhook mode (e.g. https://my-app.onrender.com).
# Empty → long polling.
WEBHOOK_URL: str = os.getenv("WEBHOOK_URL", "").rstrip("/")
WEBHOOK_PORT: int = _parse_int("WEBHOOK_PORT", os.getenv("PORT", "3000"), minimum=1)

# ---------------------------------------------------------------------------
# Etherscan (V2 multichain endpoint)
# ---------------------------------------------------------------------------
ETHERSCAN_API_KEY: str = os.getenv("ETHERSCAN_API_KEY", "")
ETHERSCAN_BASE_URL: str = os.getenv(
    "ETHERSCAN_BASE_URL",
    "https://api.etherscan.io/v2/api",
)
ETHERSCAN_CHAIN_ID: int = _parse_int("ETHERSCAN_CHAIN_ID", "1", minimum=1)

# ---------------------------------------------------------------------------
# Ethereum JSON-RPC
# ---------------------------------------------------------------------------
ETHEREUM_RPC_URL: str = os.getenv(
    "ETHEREUM_RPC_URL",
    "https://ethereum-rpc.publicnode.com",
)

# ---------------------------------------------------------------------------
# Timeouts & concurrency
# ---------------------------------------------------------------------------
REQUEST_TIMEOUT: int = _parse_int("REQUEST_TIMEOUT", "15", minimum=1)
SIGNAL_TIMEOUT_SECONDS: int = _parse_int("SIGNAL_TIMEOUT_SECONDS", "20", minimum=1)
ANALYSIS_TIMEOUT_SECONDS: int = _parse_int("ANALYSIS_TIMEOUT_SECONDS", "120", minimum=5)
MAX_CONCURRENT_RPC: int = _parse_int("MAX_CONCURRENT_RPC", "4", minimum=1)

# ---------------------------------------------------------------------------
# Buyer discovery
# ---------------------------------------------------------------------------
TRANSFER_PAGE_SIZE: int = _parse_int("TRANSFER_PAGE_SIZE", "2000", minimum=10)
DEFAULT_BUYER_LIMIT: int = _parse_int("DEFAULT_BUYER_LIMIT", "50", minimum=1)
MAX_BUYER_LIMIT: int = _parse_int("MAX_BUYER_LIMIT", "100", minimum=1)
# Only the first N buyers get gas / position / bribe lookups
SIGNAL_BUDGET: int = _parse_int("SIGNAL_BUDGET", "15", minimum=0)
SKIP_CONTRACT_RECIPIENTS: bool = _parse_bool("SKIP_CONTRACT_RECIPIENTS", "true")
EXTRA_IGNORED_ADDRESSES: list[str] = [
    a.strip().lower()
    for a in os.getenv("EXTRA_IGNORED_ADDRESSES", "").split(",")
    if a.strip()
]

# ---------------------------------------------------------------------------
# Classification thresholds
# ---------------------------------------------------------------------------
LP_OUTLIER_THRESHOLD_PCT: Decimal = _parse_decimal("LP_OUTLIER_THRESHOLD_PCT", "50")
BUNDLE_MAX_POSITION_GAP: int = _parse_int("BUNDLE_MAX_POSITION_GAP", "1", minimum=0)
BUNDLE_GAS_JUMP_FACTOR: Decimal = _parse_decimal("BUNDLE_GAS_JUMP_FACTOR", "2", minimum="1")
BUNDLE_GAS_FLOOR_GWEI: Decimal = _parse_decimal("BUNDLE_GAS_FLOOR_GWEI", "10")
BUNDLE_PRIORITY_JUMP_FACTOR: Decimal = _parse_decimal(
    "BUNDLE_PRIORITY_JUMP_FACTOR", "3", minimum="1"
)
BUNDLE_PRIORITY_FLOOR_GWEI: Decimal = _parse_decimal("BUNDLE_PRIORITY_FLOOR_GWEI", "2")
BUNDLE_AVERAGE_WINDOW: int = _parse_int("BUNDLE_AVERAGE_WINDOW", "20", minimum=1)
BUNDLE_CHEAP_GAS_GWEI: Decimal = _parse_decimal("BUNDLE_CHEAP_GAS_GWEI", "10")
BUNDLE_AVERAGE_JUMP_FACTOR: Decimal = _parse_decimal(
    "BUNDLE_AVERAGE_JUMP_FACTOR", "3", minimum="1"
)
BUNDLE_AVERAGE_FLOOR_GWEI: Decimal = _parse_decimal("BUNDLE_AVERAGE_FLOOR_GWEI", "15")

# ---------------------------------------------------------------------------
# Cache (per-process memo of immutable chain data)
# ---------------------------------------------------------------------------
CACHE_TTL_SECONDS: int = _parse_int("CACHE_TTL_SECONDS", "3600", minimum=1)

# ---------------------------------------------------------------------------
# Rate limiting (slowapi format, e.g. "10/minute")
# ---------------------------------------------------------------------------
RATE_LIMIT_ANALYZE: str = os.getenv("RATE_LIMIT_ANALYZE", "10/minute")

# ---------------------------------------------------------------------------
# Sentry (error tracking)
# ---------------------------------------------------------------------------
SENTRY_DSN: str = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT: str = os.getenv("SENTRY_ENVIRONMENT", "production")
SENTRY_TRACES_SAMPLE_RATE: float = _parse_float(
    "SENTRY_TRACES_SAMPLE_RATE", "0.1", low=0.0, high=1.0
)

# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------
CB_FAILURE_THRESHOLD: int = _parse_int("CB_FAILURE_THRESHOLD", "8", minimum=1)
CB_RECOVERY_TIMEOUT: float = float(os.getenv("CB_RECOVERY_TIMEOUT", "60"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# ---------------------------------------------------------------------------
# API server
# ---------------------------------------------------------------------------
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = _parse_int("API_PORT", "8000", minimum=1)
CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]
