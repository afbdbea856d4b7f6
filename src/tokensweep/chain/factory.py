"""Factory for ledger collaborators.

- dry run: one shared SimulatedLedger (reader, submitter and index)
- live: SolanaRpcClient, plus HeliusBalanceIndex when HELIUS_API_KEY is set
"""

import logging
from typing import Optional, Union

from tokensweep.chain.base import BalanceIndex
from tokensweep.chain.helius import HeliusBalanceIndex
from tokensweep.chain.simulated import SimulatedLedger
from tokensweep.chain.solana import SolanaRpcClient
from tokensweep.config import get_settings

logger = logging.getLogger(__name__)

_ledger: Optional[Union[SimulatedLedger, SolanaRpcClient]] = None


def get_ledger() -> Union[SimulatedLedger, SolanaRpcClient]:
    """Get the configured ledger (reader + submitter).

    Returns:
        Cached ledger instance
    """
    global _ledger

    if _ledger is not None:
        return _ledger

    settings = get_settings()

    if settings.dry_run:
        logger.info("Dry-run mode: using simulated ledger")
        _ledger = SimulatedLedger()
    else:
        _ledger = SolanaRpcClient(
            rpc_url=settings.get_rpc_url(),
            timeout=settings.rpc_timeout,
            poll_interval=settings.confirmation_poll_interval,
            max_retries=settings.rpc_max_retries,
            backoff=settings.rpc_retry_backoff,
        )

    return _ledger


def get_balance_index() -> Optional[BalanceIndex]:
    """Get the fast balance index, or None when not configured."""
    settings = get_settings()

    if settings.dry_run:
        ledger = get_ledger()
        return ledger if isinstance(ledger, BalanceIndex) else None

    if settings.helius_api_key:
        return HeliusBalanceIndex(api_key=settings.helius_api_key, timeout=settings.rpc_timeout)

    return None


def reset_ledger() -> None:
    """Clear the cached ledger (useful for testing)."""
    global _ledger
    _ledger = None
