"""Post-run balance refresh.

After a run the ledger needs a moment to propagate; the trigger waits a
settle delay, re-scans, and hands the fresh balances to listeners.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from tokensweep.exceptions import SweepError
from tokensweep.models import NativeBalance, TokenBalance
from tokensweep.sweep.scanner import BalanceScanner

logger = logging.getLogger(__name__)

RefreshListener = Callable[
    [str, NativeBalance, list[TokenBalance]], Union[Awaitable[None], None]
]


class BalanceRefreshTrigger:
    """Schedules a delayed re-scan of an account."""

    def __init__(self, scanner: BalanceScanner, settle_delay: float = 2.0):
        self.scanner = scanner
        self.settle_delay = settle_delay
        self._listeners: list[RefreshListener] = []
        self._tasks: set[asyncio.Task] = set()

    def add_listener(self, listener: RefreshListener) -> None:
        """Register a callback receiving (account, native, tokens).

        Callback may be sync or async.
        """
        self._listeners.append(listener)

    def schedule(self, account: str) -> asyncio.Task:
        """Schedule a refresh; returns immediately."""
        task = asyncio.create_task(self._refresh(account))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait(self) -> None:
        """Wait for all scheduled refreshes to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _refresh(self, account: str) -> Optional[tuple[NativeBalance, list[TokenBalance]]]:
        await asyncio.sleep(self.settle_delay)

        try:
            native, tokens = await self.scanner.scan(account)
        except SweepError as e:
            logger.warning(f"Balance refresh failed for {account}: {e}")
            return None

        holdings = list(tokens)
        logger.info(
            f"Refreshed {account}: {native.amount_units} lamports, {len(holdings)} non-zero tokens"
        )

        for listener in self._listeners:
            try:
                result = listener(account, native, holdings)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Refresh listener error for {account}: {e}")

        return native, holdings
