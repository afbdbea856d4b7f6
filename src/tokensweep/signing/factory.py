"""Signer factory.

Creates the appropriate signing backend based on configuration:
1. Dry-run mode -> SimulatedSigner
2. KEYPAIR_PATH -> KeypairSigner loaded from file
3. KEYPAIR_SECRET -> KeypairSigner from base58 secret
"""

import logging
from typing import Optional

from tokensweep.config import get_settings
from tokensweep.signing.base import TransactionSigner

logger = logging.getLogger(__name__)

_signer_instance: Optional[TransactionSigner] = None


def get_signer() -> TransactionSigner:
    """Get the configured signer instance.

    Returns:
        TransactionSigner singleton

    Raises:
        RuntimeError: If live mode has no keypair configured
    """
    global _signer_instance

    if _signer_instance is not None:
        return _signer_instance

    settings = get_settings()

    if settings.dry_run:
        from tokensweep.signing.simulated import SimulatedSigner
        _signer_instance = SimulatedSigner()

    elif settings.keypair_path:
        from tokensweep.signing.local import KeypairSigner
        _signer_instance = KeypairSigner.from_file(settings.keypair_path)

    elif settings.keypair_secret:
        from tokensweep.signing.local import KeypairSigner
        _signer_instance = KeypairSigner.from_base58(settings.keypair_secret)

    else:
        raise RuntimeError("No keypair configured: set KEYPAIR_PATH or KEYPAIR_SECRET")

    logger.info(f"Initialized {_signer_instance.signer_type.value} signer")
    return _signer_instance


def reset_signer() -> None:
    """Reset the signer instance (for testing)."""
    global _signer_instance
    _signer_instance = None
