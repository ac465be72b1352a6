"""
Fatal error taxonomy for a first-buyers analysis.

Only these conditions abort a request.  Everything else (metadata or
signal lookups failing, unparseable amounts) is absorbed into default
values by the stage that owns it.
"""

from __future__ import annotations


class AnalysisError(Exception):
    """Base class for conditions that abort an analysis."""

    user_message = "Analysis failed"

    def __init__(self, contract_address: str, detail: str = "") -> None:
        super().__init__(detail or f"{self.user_message} ({contract_address})")
        self.contract_address = contract_address


class InvalidAddressError(AnalysisError):
    user_message = "Invalid contract address"


class TransferLogUnavailableError(AnalysisError):
    """The transfer-log source could not be reached."""

    user_message = "Transfer history is unavailable right now"


class NoTransactionsError(AnalysisError):
    """The transfer-log source reported zero transfers for the token."""

    user_message = "No transactions found for this token"


class NoBuyersError(AnalysisError):
    """Transfers exist but none survive deduplication / filtering."""

    user_message = "No buyers found for this token"
