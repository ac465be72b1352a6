"""
Shared helpers for the First Buyers Agent.

- ``is_eth_address`` / ``normalize_address``: address validation
- ``parse_quantity``: hex (``0x…``) or decimal integer strings from APIs
- ``raw_to_decimal``: integer token amounts → whole-token ``Decimal``
- ``decode_abi_string`` / ``decode_abi_uint``: ``eth_call`` return data
- ``to_utc_datetime``: unix seconds → aware ``datetime``
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, localcontext
from typing import Optional

from .constants import WEI_PER_ETH, WEI_PER_GWEI

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# uint256 has 78 decimal digits; keep every one of them through division
AMOUNT_PRECISION = 80


# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------

def is_eth_address(value: object) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value.strip()))


def normalize_address(value: str) -> str:
    """Lower-case, stripped form used for every comparison."""
    return value.strip().lower()


def short_address(value: str) -> str:
    if len(value) <= 12:
        return value
    return f"{value[:6]}...{value[-4:]}"


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

def parse_quantity(value: object) -> Optional[int]:
    """Parse a JSON-RPC quantity (``"0x1a"``) or decimal string (``"26"``).

    Returns ``None`` for missing / malformed input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        if text[:2].lower() == "0x":
            return int(text, 16)
        return int(text)
    except ValueError:
        return None


def raw_to_decimal(raw: object, decimals: int) -> Decimal:
    """Scale an integer amount by ``10**decimals``.

    Raises ``ValueError`` / ``ArithmeticError`` for unparseable input so
    callers decide the fallback.
    """
    if isinstance(raw, str):
        raw = raw.strip()
    value = Decimal(raw)  # type: ignore[arg-type]
    if not value.is_finite():
        raise ValueError(f"non-finite amount: {raw!r}")
    if value != value.to_integral_value():
        raise ValueError(f"fractional raw amount: {raw!r}")
    if decimals < 0:
        raise ValueError(f"negative decimals: {decimals}")
    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        return value / (Decimal(10) ** decimals)


def wei_to_gwei(wei: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        return Decimal(wei) / WEI_PER_GWEI


def wei_to_eth(wei: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        return Decimal(wei) / WEI_PER_ETH


# ---------------------------------------------------------------------------
# ABI return data
# ---------------------------------------------------------------------------

def _hex_body(data: str) -> str:
    body = data[2:] if data[:2].lower() == "0x" else data
    if len(body) % 2:
        raise ValueError("odd-length hex data")
    return body


def decode_abi_uint(data: Optional[str]) -> Optional[int]:
    """Decode a single ``uint`` return word, ``None`` if empty / malformed."""
    if not data:
        return None
    try:
        body = _hex_body(data)
    except ValueError:
        return None
    if len(body) < 64:
        return None
    try:
        return int(body[:64], 16)
    except ValueError:
        return None


def decode_abi_string(data: Optional[str]) -> Optional[str]:
    """Decode a ``string`` return value.

    Handles both the dynamic ABI encoding (offset, length, bytes) and the
    legacy ``bytes32`` form some early tokens (e.g. MKR) return.
    """
    if not data:
        return None
    try:
        raw = bytes.fromhex(_hex_body(data))
    except ValueError:
        return None
    if not raw:
        return None

    if len(raw) >= 64:
        offset = int.from_bytes(raw[:32], "big")
        if offset + 32 <= len(raw):
            length = int.from_bytes(raw[offset:offset + 32], "big")
            start = offset + 32
            if start + length <= len(raw):
                text = raw[start:start + length].decode("utf-8", errors="replace")
                return text.strip("\x00").strip() or None

    if len(raw) == 32:
        text = raw.rstrip(b"\x00").decode("utf-8", errors="replace")
        return text.strip() or None
    return None


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

def to_utc_datetime(unix_seconds: int) -> datetime:
    try:
        return datetime.fromtimestamp(unix_seconds, tz=timezone.utc)
    except (ValueError, OSError, OverflowError):
        return datetime.fromtimestamp(0, tz=timezone.utc)
