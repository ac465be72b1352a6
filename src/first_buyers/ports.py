"""
Interfaces the analysis pipeline consumes.

Concrete adapters live in ``data_sources/``, ``token_info_service`` and
``signal_service``;
tests substitute in-memory fakes.  The pipeline never constructs a client
itself: callers pass a ``DataSources`` bundle (or any object satisfying
these protocols).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import TokenInfo, TransferEvent, TxSignal


@runtime_checkable
class TokenMetadataPort(Protocol):
    async def resolve_token_info(self, contract_address: str) -> TokenInfo:
        """Return token metadata; never raises, degrades to defaults."""
        ...


@runtime_checkable
class TransferLogPort(Protocol):
    async def fetch_transfer_events(self, contract_address: str) -> list[TransferEvent]:
        """Return transfers in ascending chain order.

        Raises ``NoTransactionsError`` / ``TransferLogUnavailableError``.
        """
        ...


@runtime_checkable
class TxSignalPort(Protocol):
    async def fetch_tx_signal(self, tx_hash: str) -> TxSignal:
        """Return gas / position / bribe evidence; never raises."""
        ...


@runtime_checkable
class ContractCheckPort(Protocol):
    async def is_contract(self, address: str) -> bool:
        """True when *address* holds code; ``False`` on lookup failure."""
        ...
