"""Per-account run guard.

Only one sweep may be active per source account. Unlike a balance lock, a
second caller does not wait its turn: it is rejected immediately, because a
queued run would re-plan against balances the first run is still moving.
"""

import asyncio
import logging
from typing import Optional

from tokensweep.exceptions import RunInProgressError

logger = logging.getLogger(__name__)

# Global lock registry: account address -> asyncio.Lock
_account_locks: dict[str, asyncio.Lock] = {}
_registry_lock = asyncio.Lock()


async def get_account_lock(account: str) -> asyncio.Lock:
    """Get or create the lock for an account.

    Args:
        account: Source wallet address

    Returns:
        asyncio.Lock for the account
    """
    async with _registry_lock:
        if account not in _account_locks:
            _account_locks[account] = asyncio.Lock()
        return _account_locks[account]


def is_run_active(account: str) -> bool:
    """Check if a run currently holds the account."""
    lock = _account_locks.get(account)
    return bool(lock and lock.locked())


class AccountRunGuard:
    """Context manager granting exclusive run access to an account.

    Example:
        async with AccountRunGuard(source, operation="sweep"):
            # scan, plan, submit
            ...

    Raises:
        RunInProgressError: If another run holds the account
    """

    def __init__(self, account: str, operation: str = "sweep"):
        self.account = account
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "AccountRunGuard":
        self._lock = await get_account_lock(self.account)

        if self._lock.locked():
            logger.warning(f"Rejected {self.operation} for {self.account}: run already in progress")
            raise RunInProgressError(self.account)

        await self._lock.acquire()
        self._acquired = True
        logger.debug(f"Run guard acquired for {self.account}: {self.operation}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Run guard released for {self.account}: {self.operation}")
        return False


def clear_account_locks() -> None:
    """Clear all account locks (useful for testing)."""
    _account_locks.clear()
