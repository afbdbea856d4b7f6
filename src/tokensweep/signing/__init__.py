"""Transaction signing backends.

- KeypairSigner: local solders keypair (hot wallet)
- SimulatedSigner: dry run
"""

from tokensweep.signing.base import SignerType, TransactionSigner
from tokensweep.signing.factory import get_signer
from tokensweep.signing.simulated import SimulatedSigner

__all__ = [
    "SignerType",
    "SimulatedSigner",
    "TransactionSigner",
    "get_signer",
]
