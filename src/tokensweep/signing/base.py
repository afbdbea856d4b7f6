"""Base interface for transaction signing.

Signing flow:
1. Builder produces an unsigned TransferPlan
2. Sequencer fetches a fresh anchor (blockhash)
3. Signer compiles plan + anchor into a wire transaction and signs it
4. Sequencer broadcasts the signed transaction

A signer may refuse (wrong key, user rejection, disconnected wallet); that
surfaces as SignerDeclined and fails only the batch being signed.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from tokensweep.chain.base import Anchor, SignedTransaction
from tokensweep.models import TransferPlan

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend."""
    KEYPAIR = "keypair"       # Local solders keypair (hot wallet)
    SIMULATED = "simulated"   # Dry run, no cryptography


class TransactionSigner(ABC):
    """Abstract base class for signing backends."""

    def __init__(self, signer_type: SignerType):
        self.signer_type = signer_type

    @property
    @abstractmethod
    def public_key(self) -> Optional[str]:
        """Address of the signing wallet, if known."""
        pass

    @abstractmethod
    async def sign(
        self, plan: TransferPlan, fee_payer: str, anchor: Anchor
    ) -> SignedTransaction:
        """Compile and sign a plan against an anchor.

        Args:
            plan: Instructions to sign
            fee_payer: Address paying the transaction fee
            anchor: Fresh blockhash anchor

        Returns:
            SignedTransaction ready for broadcast

        Raises:
            SignerDeclined: If the signer refuses
        """
        pass

    async def health_check(self) -> bool:
        """Check if the signer is ready to sign."""
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"
