"""Local keypair signing backend.

Uses an in-memory ``solders`` keypair. Suitable for:
- Development against devnet
- Hot wallets sweeping small balances

WARNING: The secret key is held in memory for the lifetime of the process.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction

from tokensweep.chain.base import Anchor, SignedTransaction
from tokensweep.chain.solana import compile_plan
from tokensweep.exceptions import SignerDeclined
from tokensweep.models import TransferPlan
from tokensweep.signing.base import SignerType, TransactionSigner

logger = logging.getLogger(__name__)


def load_keypair(path: Path) -> Keypair:
    """Load a solana-keygen style keypair.

    Supports:
      - JSON array of 64 ints (Solana CLI default)
      - JSON string holding the base58 encoded secret
    """
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)

    if isinstance(payload, list):
        raw = bytes(int(x) for x in payload)
        if len(raw) != 64:
            raise ValueError(f"Keypair must be 64 bytes (got {len(raw)}): {path}")
        return Keypair.from_bytes(raw)
    if isinstance(payload, str):
        return Keypair.from_base58_string(payload.strip())

    raise ValueError(f"Unsupported keypair format: {path}")


class KeypairSigner(TransactionSigner):
    """Signs with a local ed25519 keypair."""

    def __init__(self, keypair: Keypair):
        super().__init__(SignerType.KEYPAIR)
        self._keypair = keypair

    @classmethod
    def from_file(cls, path: str) -> "KeypairSigner":
        keypair = load_keypair(Path(path).expanduser())
        logger.info(f"Loaded keypair for {keypair.pubkey()}")
        return cls(keypair)

    @classmethod
    def from_base58(cls, secret: str) -> "KeypairSigner":
        return cls(Keypair.from_base58_string(secret.strip()))

    @property
    def public_key(self) -> Optional[str]:
        return str(self._keypair.pubkey())

    async def sign(
        self, plan: TransferPlan, fee_payer: str, anchor: Anchor
    ) -> SignedTransaction:
        if fee_payer != self.public_key:
            raise SignerDeclined(
                f"Fee payer {fee_payer} does not match signing key {self.public_key}"
            )

        try:
            blockhash = Hash.from_string(anchor.blockhash)
            message = Message.new_with_blockhash(
                compile_plan(plan), self._keypair.pubkey(), blockhash
            )
            tx = Transaction.new_unsigned(message)
            tx.sign([self._keypair], blockhash)
        except Exception as e:
            logger.error(f"Keypair signing failed for batch {plan.batch.index}: {e}")
            raise SignerDeclined(f"Could not sign batch {plan.batch.index}: {e}") from e

        return SignedTransaction(
            signature=str(tx.signatures[0]),
            raw=bytes(tx),
            plan=plan,
            anchor=anchor,
        )
