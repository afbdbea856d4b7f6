"""Collaborator interfaces for reading and writing ledger state.

The sweep core only talks to the ledger through these three interfaces:
- LedgerReader: balances, sub-account derivation, blockhash anchors
- TransactionSubmitter: broadcast and confirmation
- BalanceIndex: optional fast path for balances (indexer API)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from tokensweep.models import TOKEN_PROGRAM_ID

if TYPE_CHECKING:
    from tokensweep.models import TransferPlan

logger = logging.getLogger(__name__)

# Key of the native balance in BalanceIndex results
NATIVE_ASSET_KEY = "SOL"


def describe_http_error(error: Exception) -> str:
    """Short description of an httpx failure that never includes the request URL.

    Endpoint URLs may carry API keys in their query string.
    """
    response = getattr(error, "response", None)
    if response is not None:
        return f"HTTP {response.status_code} {response.reason_phrase}".strip()
    return type(error).__name__


class Commitment(str, Enum):
    """Finality tiers reported by the ledger, weakest first."""

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        return list(Commitment).index(self)

    def is_reached_by(self, status: Optional[str]) -> bool:
        """Check if a reported confirmation status satisfies this tier."""
        if not status:
            return False
        try:
            return Commitment(status.lower()).rank >= self.rank
        except ValueError:
            return False


class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Anchor:
    """Recent blockhash a transaction is built against.

    The transaction is valid until the chain passes ``last_valid_block_height``.
    """

    blockhash: str
    last_valid_block_height: int


@dataclass(frozen=True)
class SendOptions:
    skip_preflight: bool = False
    max_retries: int = 3
    preflight_commitment: str = Commitment.CONFIRMED.value


@dataclass(frozen=True)
class TokenAccountInfo:
    """One token account as listed by the ledger."""

    mint: str
    raw_amount: int
    decimals: int
    address: Optional[str] = None
    token_program: str = TOKEN_PROGRAM_ID


@dataclass(frozen=True)
class IndexedAmount:
    """Balance entry returned by a BalanceIndex."""

    raw_amount: int
    decimals: int
    account: Optional[str] = None
    token_program: str = TOKEN_PROGRAM_ID

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.raw_amount) / (Decimal(10) ** self.decimals)


@dataclass
class SignedTransaction:
    """Transaction ready for broadcast.

    Attributes:
        signature: Fee payer signature (transaction id)
        raw: Serialized wire transaction
        plan: The plan this transaction was compiled from
        anchor: Blockhash the transaction was signed against
    """

    signature: str
    raw: bytes
    plan: "TransferPlan"
    anchor: Anchor


class LedgerReader(ABC):
    """Read-only view of ledger state."""

    @abstractmethod
    async def get_native_balance(self, account: str) -> int:
        """Get native balance in lamports."""
        pass

    @abstractmethod
    async def list_token_accounts(self, account: str) -> list[TokenAccountInfo]:
        """List every token account owned by ``account`` (including empty ones)."""
        pass

    @abstractmethod
    def get_sub_account_address(
        self, owner: str, mint: str, token_program: str = TOKEN_PROGRAM_ID
    ) -> str:
        """Derive the owner's token account for a mint. Pure, no I/O."""
        pass

    @abstractmethod
    async def account_exists(self, address: str) -> bool:
        pass

    @abstractmethod
    async def get_latest_anchor(self, commitment: str = "confirmed") -> Anchor:
        """Fetch a fresh blockhash anchor."""
        pass


class TransactionSubmitter(ABC):
    """Broadcast side of the ledger."""

    @abstractmethod
    async def send(self, transaction: SignedTransaction, options: SendOptions) -> str:
        """Broadcast a signed transaction.

        Returns:
            Transaction signature

        Raises:
            TransactionRejected: Preflight refused the transaction
            RpcError: Transport failure
        """
        pass

    @abstractmethod
    async def await_confirmation(
        self, signature: str, anchor: Anchor, commitment: str = "confirmed"
    ) -> ConfirmationStatus:
        """Block until the transaction reaches ``commitment`` or the anchor expires.

        Raises:
            TransactionRejected: The transaction landed with an error
        """
        pass


class BalanceIndex(ABC):
    """Indexed balances, faster than walking token accounts over RPC."""

    @abstractmethod
    async def get_indexed_balances(self, account: str) -> dict[str, IndexedAmount]:
        """Map of asset key (mint, or NATIVE_ASSET_KEY) to balance."""
        pass
