"""Ledger access: interfaces, Solana RPC client, Helius index, simulation."""

from tokensweep.chain.base import (
    Anchor,
    BalanceIndex,
    Commitment,
    ConfirmationStatus,
    LedgerReader,
    SendOptions,
    SignedTransaction,
    TransactionSubmitter,
)
from tokensweep.chain.factory import get_balance_index, get_ledger

__all__ = [
    "Anchor",
    "BalanceIndex",
    "Commitment",
    "ConfirmationStatus",
    "LedgerReader",
    "SendOptions",
    "SignedTransaction",
    "TransactionSubmitter",
    "get_balance_index",
    "get_ledger",
]
