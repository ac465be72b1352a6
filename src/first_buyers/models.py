"""
Pydantic models used throughout the First Buyers Agent.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Raw transfer log
# ---------------------------------------------------------------------------
class TransferEvent(BaseModel):
    """One ERC-20 ``Transfer`` as reported by the transfer-log source."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_address: str = Field(..., alias="from")
    to_address: str = Field(..., alias="to")
    raw_value: str = Field("0", description="Integer amount in the token's smallest unit")
    tx_hash: str
    block_number: int = Field(0, ge=0)
    timestamp: int = Field(0, ge=0, description="Unix seconds of the block")


# ---------------------------------------------------------------------------
# Token metadata
# ---------------------------------------------------------------------------
class TokenInfo(BaseModel):
    """ERC-20 metadata resolved once per request."""

    address: str
    name: str = "Unknown"
    symbol: str = "Unknown"
    decimals: int = Field(18, ge=0, le=255)
    total_supply: Decimal = Field(
        Decimal(0), ge=0, description="Supply in whole tokens; 0 when unresolved"
    )
    source: Literal["etherscan", "rpc", "default"] = "default"
    degraded_fields: list[str] = Field(
        default_factory=list,
        description="Fields that fell back to their default value",
    )

    @property
    def is_degraded(self) -> bool:
        return self.source == "default" or bool(self.degraded_fields)


# ---------------------------------------------------------------------------
# Per-transaction signal
# ---------------------------------------------------------------------------
SignalStatus = Literal["ok", "failed", "skipped"]


class TxSignal(BaseModel):
    """Gas / ordering / bribe evidence for one transaction.

    ``skipped`` means the lookup was never attempted (enrichment budget
    exhausted); ``failed`` means it was attempted and nothing usable came
    back.  In both cases every field is ``None``.
    """

    model_config = ConfigDict(frozen=True)

    tx_hash: str
    status: SignalStatus = "ok"
    gas_price_gwei: Optional[Decimal] = None
    priority_fee_gwei: Optional[Decimal] = None
    block_position: Optional[int] = Field(None, ge=0)
    bribe_eth: Optional[Decimal] = None

    @classmethod
    def skipped(cls, tx_hash: str) -> "TxSignal":
        return cls(tx_hash=tx_hash, status="skipped")

    @classmethod
    def failed(cls, tx_hash: str) -> "TxSignal":
        return cls(tx_hash=tx_hash, status="failed")


# ---------------------------------------------------------------------------
# Buyer record
# ---------------------------------------------------------------------------
class BuyerRecord(BaseModel):
    """A distinct early buyer, ranked by acquisition order."""

    rank: int = Field(..., ge=1)
    wallet: str
    amount: Decimal = Decimal(0)
    supply_percent: Decimal = Field(Decimal(0), ge=0)
    tx_hash: str
    block_number: int = 0
    timestamp: datetime
    gas_price_gwei: Optional[Decimal] = None
    priority_fee_gwei: Optional[Decimal] = None
    block_position: Optional[int] = None
    # None = not looked up / lookup failed, 0 = looked up, no bribe found
    bribe_eth: Optional[Decimal] = None
    signal_status: SignalStatus = "skipped"


# ---------------------------------------------------------------------------
# Classification result  (the main output)
# ---------------------------------------------------------------------------
BoundaryReason = Literal[
    "position_gap",
    "gas_jump",
    "priority_fee_jump",
    "gas_average",
    "none",
    "single_buyer",
]


class ClassificationResult(BaseModel):
    """Ranked first buyers plus the bundle / sniper boundary."""

    contract_address: str
    token: TokenInfo
    buyers: list[BuyerRecord] = Field(default_factory=list)
    bundle_end_rank: int = Field(
        0, ge=0, description="Rank of the last bundled buyer; len(buyers) = no boundary"
    )
    boundary_reason: BoundaryReason = "none"

    @model_validator(mode="after")
    def _check_invariants(self) -> "ClassificationResult":
        if self.bundle_end_rank > len(self.buyers):
            raise ValueError("bundle_end_rank exceeds the number of buyers")
        ranks = [b.rank for b in self.buyers]
        if ranks != list(range(1, len(ranks) + 1)):
            raise ValueError("buyer ranks must be a dense 1..N sequence")
        wallets = [b.wallet.lower() for b in self.buyers]
        if len(set(wallets)) != len(wallets):
            raise ValueError("duplicate wallet in buyer list")
        return self

    @property
    def bundle_buyers(self) -> list[BuyerRecord]:
        return self.buyers[: self.bundle_end_rank]

    @property
    def sniper_buyers(self) -> list[BuyerRecord]:
        return self.buyers[self.bundle_end_rank:]

    @property
    def is_fully_bundled(self) -> bool:
        """Every buyer sits in one cohort (never true for a single buyer)."""
        return len(self.buyers) > 1 and self.bundle_end_rank == len(self.buyers)

    @property
    def boundary_detected(self) -> bool:
        return 0 < self.bundle_end_rank < len(self.buyers)
