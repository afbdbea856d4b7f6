"""Balance scanner.

Reads the source wallet's SOL balance and token holdings, trying the fast
balance index first and falling back to a direct ledger read.
"""

import logging
from typing import Iterable, Iterator, NamedTuple, Optional

from tokensweep.chain.base import (
    NATIVE_ASSET_KEY,
    BalanceIndex,
    LedgerReader,
    TokenAccountInfo,
)
from tokensweep.exceptions import BalancesUnavailable
from tokensweep.models import NativeBalance, TokenBalance

logger = logging.getLogger(__name__)


class ScanResult(NamedTuple):
    """Balances read in one scan.

    ``tokens`` is a one-shot iterator over non-zero holdings; scan again for
    fresh state instead of re-iterating.
    """

    native: NativeBalance
    tokens: Iterator[TokenBalance]


def _nonzero_tokens(accounts: Iterable[TokenAccountInfo]) -> Iterator[TokenBalance]:
    for acc in accounts:
        if acc.raw_amount <= 0:
            continue
        yield TokenBalance(
            mint=acc.mint,
            raw_amount=acc.raw_amount,
            decimals=acc.decimals,
            token_program=acc.token_program,
            source_account=acc.address,
        )


class BalanceScanner:
    """Two-tier balance reader: index first, ledger second."""

    def __init__(
        self,
        ledger: LedgerReader,
        index: Optional[BalanceIndex] = None,
        rent_exempt_reserve: int = 0,
    ):
        """Initialize scanner.

        Args:
            ledger: Direct ledger reader (fallback path)
            index: Optional balance index (fast path)
            rent_exempt_reserve: Lamports never swept from the wallet
        """
        self.ledger = ledger
        self.index = index
        self.rent_exempt_reserve = rent_exempt_reserve

    async def _read_index(self, account: str) -> tuple[int, list[TokenAccountInfo]]:
        balances = await self.index.get_indexed_balances(account)
        native = balances[NATIVE_ASSET_KEY]
        holdings = [
            TokenAccountInfo(
                mint=key,
                raw_amount=amount.raw_amount,
                decimals=amount.decimals,
                address=amount.account,
                token_program=amount.token_program,
            )
            for key, amount in balances.items()
            if key != NATIVE_ASSET_KEY
        ]
        return native.raw_amount, holdings

    async def _read_ledger(self, account: str) -> tuple[int, list[TokenAccountInfo]]:
        native = await self.ledger.get_native_balance(account)
        holdings = await self.ledger.list_token_accounts(account)
        return native, holdings

    async def scan(self, account: str) -> ScanResult:
        """Read current balances for ``account``.

        Every call re-reads state; nothing is cached between calls.

        Raises:
            BalancesUnavailable: If both the index and the ledger fail
        """
        read = None

        if self.index is not None:
            try:
                read = await self._read_index(account)
            except Exception as e:
                logger.warning(f"Balance index failed for {account}, falling back to ledger: {e}")

        if read is None:
            try:
                read = await self._read_ledger(account)
            except Exception as e:
                logger.error(f"Ledger balance read failed for {account}: {e}")
                raise BalancesUnavailable(f"Balances unavailable for {account}: {e}") from e

        native_units, holdings = read
        native = NativeBalance(amount_units=native_units, rent_exempt_reserve=self.rent_exempt_reserve)

        logger.info(
            f"Scanned {account}: {native.ui_amount} SOL "
            f"({native.usable_units} usable lamports), {len(holdings)} token accounts"
        )
        return ScanResult(native=native, tokens=_nonzero_tokens(holdings))
