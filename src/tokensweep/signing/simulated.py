"""Simulated signer for dry runs (no cryptography)."""

import logging
import secrets
from typing import Iterable, Optional

from tokensweep.chain.base import Anchor, SignedTransaction
from tokensweep.exceptions import SignerDeclined
from tokensweep.models import TransferPlan
from tokensweep.signing.base import SignerType, TransactionSigner

logger = logging.getLogger(__name__)


class SimulatedSigner(TransactionSigner):
    """Wraps plans into SignedTransaction objects without signing.

    Args:
        public_key: Wallet identity; when set, other fee payers are refused
        declined_batches: Batch indexes to refuse, mimicking a user rejection
    """

    def __init__(
        self,
        public_key: Optional[str] = None,
        declined_batches: Iterable[int] = (),
    ):
        super().__init__(SignerType.SIMULATED)
        self._public_key = public_key
        self.declined_batches = set(declined_batches)
        self.signed: list[SignedTransaction] = []

    @property
    def public_key(self) -> Optional[str]:
        return self._public_key

    async def sign(
        self, plan: TransferPlan, fee_payer: str, anchor: Anchor
    ) -> SignedTransaction:
        if self._public_key is not None and fee_payer != self._public_key:
            raise SignerDeclined(f"Fee payer {fee_payer} is not the connected wallet")

        if plan.batch.index in self.declined_batches:
            logger.info(f"[SIMULATED] User rejected batch {plan.batch.index}")
            raise SignerDeclined(f"User rejected batch {plan.batch.index}")

        tx = SignedTransaction(
            signature=f"sim_sig_{secrets.token_hex(32)}",
            raw=b"",
            plan=plan,
            anchor=anchor,
        )
        self.signed.append(tx)
        return tx
