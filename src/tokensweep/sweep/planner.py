"""Batch planner.

Splits token holdings into fixed-size transaction batches and decides which
batches carry a SOL sweep tranche.

Sweep policy:
- no tokens, usable SOL: one zero-token batch sweeping 100%
- tokens, usable SOL: the last token batch sweeps ``final_batch_sweep_pct``
  and a trailing zero-token batch sweeps the remainder

The split keeps the SOL transfer out of transactions already near their
size/compute ceiling. All tranches are computed against the usable balance
captured here, once.
"""

import logging
from decimal import Decimal
from typing import Callable, Iterable, Optional, Union

from tokensweep.models import Batch, NativeBalance, TokenBalance

logger = logging.getLogger(__name__)

PriorityKey = Callable[[TokenBalance], Union[int, float, Decimal]]

FULL_SWEEP_PCT = 100


class BatchPlanner:
    """Turns scanned balances into an ordered list of batches."""

    def __init__(self, max_batch_size: int = 5, final_batch_sweep_pct: int = 70):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if not 1 <= final_batch_sweep_pct <= FULL_SWEEP_PCT:
            raise ValueError("final_batch_sweep_pct must be between 1 and 100")
        self.max_batch_size = max_batch_size
        self.final_batch_sweep_pct = final_batch_sweep_pct

    @property
    def trailing_sweep_pct(self) -> int:
        return FULL_SWEEP_PCT - self.final_batch_sweep_pct

    def plan(
        self,
        tokens: Iterable[TokenBalance],
        native: NativeBalance,
        priority_key: Optional[PriorityKey] = None,
    ) -> list[Batch]:
        """Plan batches for one run.

        Args:
            tokens: Non-zero token balances in scan order
            native: Native balance with its reserve floor
            priority_key: Optional key; higher values move first, ties keep scan order

        Returns:
            Batches in submission order
        """
        ordered = [t for t in tokens if t.raw_amount > 0]
        if priority_key is not None:
            # sorted() is stable with reverse=True, so ties keep scan order
            ordered = sorted(ordered, key=priority_key, reverse=True)

        usable = native.usable_units
        size = self.max_batch_size
        groups = [tuple(ordered[i:i + size]) for i in range(0, len(ordered), size)]

        batches: list[Batch] = []

        if not groups:
            if usable > 0:
                batches.append(
                    Batch(index=0, native_sweep_pct=FULL_SWEEP_PCT, usable_native_units=usable)
                )
            self._log_plan(batches, usable)
            return batches

        last = len(groups) - 1
        for i, group in enumerate(groups):
            pct = self.final_batch_sweep_pct if i == last and usable > 0 else 0
            batches.append(
                Batch(index=i, tokens=group, native_sweep_pct=pct, usable_native_units=usable)
            )

        if usable > 0 and self.trailing_sweep_pct > 0:
            batches.append(
                Batch(
                    index=len(groups),
                    native_sweep_pct=self.trailing_sweep_pct,
                    usable_native_units=usable,
                )
            )

        self._log_plan(batches, usable)
        return batches

    def _log_plan(self, batches: list[Batch], usable: int) -> None:
        token_count = sum(len(b.tokens) for b in batches)
        sweep_pct = sum(b.native_sweep_pct for b in batches)
        logger.info(
            f"Planned {len(batches)} batches: {token_count} tokens, "
            f"{sweep_pct}% of {usable} usable lamports"
        )
