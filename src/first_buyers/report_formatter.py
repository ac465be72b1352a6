"""
Telegram MarkdownV2 rendering of a ``ClassificationResult``.

The display window (``/analyze <addr> 1-20``) is applied here, never in
the pipeline: the classification always runs over the full buyer list.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Optional, Sequence

from .models import BuyerRecord, ClassificationResult
from .utils import short_address

# Telegram rejects messages longer than 4096 characters
MAX_MESSAGE_CHARS = 4000

ETHERSCAN_WEB = "https://etherscan.io"

_RANGE_RE = re.compile(r"^\[?\s*(\d+)\s*-\s*(\d+)\s*\]?$")

_REASON_LABELS = {
    "position_gap": "gap in block position",
    "gas_jump": "gas price jump",
    "priority_fee_jump": "priority fee jump",
    "gas_average": "gas above the launch average",
    "none": "no boundary found",
    "single_buyer": "single buyer",
}


# ------------------------------------------------------------------
# Markdown escaping helper
# ------------------------------------------------------------------

_MD_V2_SPECIAL = set(r"_*[]()~`>#+-=|{}.!")


def esc(text: str) -> str:
    """Escape special characters for Telegram MarkdownV2."""
    return "".join(f"\\{c}" if c in _MD_V2_SPECIAL else c for c in text)


def _link(label: str, url: str) -> str:
    safe_url = url.replace("\\", "\\\\").replace(")", "\\)")
    return f"[{esc(label)}]({safe_url})"


# ------------------------------------------------------------------
# Display window
# ------------------------------------------------------------------

def parse_range(text: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse ``"1-20"`` (or ``"[1-20]"``) into ``(1, 20)``.

    Returns ``None`` for anything else, including ``start > end`` or a
    zero start.
    """
    if not text:
        return None
    m = _RANGE_RE.match(text.strip())
    if not m:
        return None
    start, end = int(m.group(1)), int(m.group(2))
    if start < 1 or end < start:
        return None
    return start, end


def select_window(
    buyers: Sequence[BuyerRecord], start: int = 1, end: Optional[int] = None
) -> list[BuyerRecord]:
    """Buyers whose rank lies in ``[start, end]`` (inclusive)."""
    upper = end if end is not None else len(buyers)
    return [b for b in buyers if start <= b.rank <= upper]


# ------------------------------------------------------------------
# Field formatting
# ------------------------------------------------------------------

def format_amount(amount: Decimal) -> str:
    return f"{amount:,.0f}" if amount >= 1 else f"{amount:.6g}"


def format_percent(pct: Decimal) -> str:
    return f"{pct:.2f}%" if pct >= Decimal("0.01") or pct == 0 else "<0.01%"


def format_gas(buyer: BuyerRecord) -> str:
    if buyer.gas_price_gwei is None:
        return "⛽ gas N/A"
    text = f"⛽ {buyer.gas_price_gwei:.1f} Gwei"
    if buyer.priority_fee_gwei is not None and buyer.priority_fee_gwei > 0:
        text += f" (tip +{buyer.priority_fee_gwei:.1f})"
    if buyer.block_position is not None:
        text += f" · pos {buyer.block_position}"
    return text


def _format_buyer(buyer: BuyerRecord, symbol: str, in_bundle: bool) -> str:
    tag = "📦" if in_bundle else "🎯"
    lines = [
        f"{tag} *{buyer.rank}\\.* "
        f"{_link(short_address(buyer.wallet), f'{ETHERSCAN_WEB}/address/{buyer.wallet}')}",
        f"   💰 {esc(format_amount(buyer.amount))} {esc(symbol)} "
        f"\\({esc(format_percent(buyer.supply_percent))}\\)",
        f"   {esc(format_gas(buyer))}",
    ]
    if buyer.bribe_eth is not None and buyer.bribe_eth > 0:
        lines.append(f"   💸 bribe {esc(f'{buyer.bribe_eth:.4f}')} ETH")
    lines.append(
        f"   🕒 {esc(buyer.timestamp.strftime('%Y-%m-%d %H:%M:%S'))} UTC · "
        f"{_link('tx', f'{ETHERSCAN_WEB}/tx/{buyer.tx_hash}')}"
    )
    return "\n".join(lines)


def _format_summary(result: ClassificationResult) -> str:
    n = len(result.buyers)
    reason = _REASON_LABELS.get(result.boundary_reason, result.boundary_reason)
    if result.boundary_detected:
        return (
            f"📦 *Bundle:* ranks 1\\-{result.bundle_end_rank} "
            f"\\({esc(reason)}\\)\n"
            f"🎯 *Snipers:* ranks {result.bundle_end_rank + 1}\\-{n}"
        )
    if result.is_fully_bundled:
        return f"📦 *Bundle:* all {n} buyers look coordinated \\({esc(reason)}\\)"
    return f"🎯 *Snipers:* {n} buyer{'s' if n != 1 else ''} \\({esc(reason)}\\)"


# ------------------------------------------------------------------
# Report
# ------------------------------------------------------------------

def format_result(
    result: ClassificationResult,
    start: int = 1,
    end: Optional[int] = None,
) -> str:
    """Render *result* as a MarkdownV2 message (unsplit)."""
    token = result.token
    window = select_window(result.buyers, start, end)
    lines = [
        f"🪙 *{esc(token.name)}* \\({esc(token.symbol)}\\)",
        _link("Contract on Etherscan", f"{ETHERSCAN_WEB}/token/{result.contract_address}"),
        "",
        f"📊 *First {len(result.buyers)} buyers*",
        _format_summary(result),
    ]
    if token.is_degraded:
        missing = ", ".join(token.degraded_fields) or "metadata"
        lines.append(f"⚠️ _Token metadata incomplete: {esc(missing)}_")
    lines.append("")

    if not window:
        lines.append(esc(f"No buyers in range {start}-{end}."))
    for buyer in window:
        lines.append(_format_buyer(buyer, token.symbol, buyer.rank <= result.bundle_end_rank))
        lines.append("")

    lines.append(
        "💡 _Bribes only count ETH paid to the block builder inside the "
        "transaction; private\\-relay payments are not visible here\\._"
    )
    return "\n".join(lines)


def split_message(text: str, limit: int = MAX_MESSAGE_CHARS) -> list[str]:
    """Split *text* into chunks of at most *limit* characters.

    Breaks on line boundaries; a single line longer than *limit* is cut
    hard, never leaving a dangling MarkdownV2 escape at a chunk end.
    """
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    current = ""
    for line in text.split("\n"):
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) <= limit:
            current = candidate
            continue
        if current:
            chunks.append(current)
        while len(line) > limit:
            cut = limit
            while cut > 1 and line[cut - 1] == "\\" and (
                len(line[:cut]) - len(line[:cut].rstrip("\\"))
            ) % 2 == 1:
                cut -= 1
            chunks.append(line[:cut])
            line = line[cut:]
        current = line
    if current:
        chunks.append(current)
    return chunks


def format_report(
    result: ClassificationResult,
    start: int = 1,
    end: Optional[int] = None,
) -> list[str]:
    """Formatted result split into Telegram-sized messages."""
    return split_message(format_result(result, start, end))
