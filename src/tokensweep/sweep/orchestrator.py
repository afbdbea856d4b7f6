"""Sweep orchestrator.

Scanner -> Planner -> (Builder -> Sequencer, one batch at a time) -> Refresh.

Usage:
    orchestrator = SweepOrchestrator(ledger, ledger, signer, index=index)
    result = await orchestrator.run(source, destination)
"""

import asyncio
import logging
from typing import Optional

from tokensweep.chain.base import BalanceIndex, LedgerReader, TransactionSubmitter
from tokensweep.config import Settings, get_settings
from tokensweep.models import RunResult, TransferPlan
from tokensweep.signing.base import TransactionSigner
from tokensweep.sweep.builder import TransactionBuilder, build_plans
from tokensweep.sweep.planner import BatchPlanner, PriorityKey
from tokensweep.sweep.refresh import BalanceRefreshTrigger
from tokensweep.sweep.scanner import BalanceScanner
from tokensweep.sweep.sequencer import SubmissionSequencer
from tokensweep.utils.locks import AccountRunGuard

logger = logging.getLogger(__name__)


class SweepOrchestrator:
    """Moves every token and a rent-safe share of SOL to a destination."""

    def __init__(
        self,
        ledger: LedgerReader,
        submitter: TransactionSubmitter,
        signer: TransactionSigner,
        index: Optional[BalanceIndex] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.settings = settings

        self.scanner = BalanceScanner(
            ledger, index=index, rent_exempt_reserve=settings.rent_exempt_reserve_lamports
        )
        self.planner = BatchPlanner(
            max_batch_size=settings.max_batch_size,
            final_batch_sweep_pct=settings.final_batch_sweep_pct,
        )
        self.builder = TransactionBuilder(ledger)
        self.sequencer = SubmissionSequencer(
            ledger,
            submitter,
            signer,
            commitment=settings.commitment,
            max_retries=settings.submit_max_retries,
        )
        self.refresh = BalanceRefreshTrigger(
            self.scanner, settle_delay=settings.refresh_settle_delay
        )
        self._stops: dict[str, asyncio.Event] = {}

    async def run(
        self,
        source: str,
        destination: str,
        priority_key: Optional[PriorityKey] = None,
    ) -> RunResult:
        """Sweep ``source`` into ``destination``.

        Args:
            source: Wallet to empty (fee payer)
            destination: Wallet receiving all assets
            priority_key: Optional ordering key for tokens (e.g. USD value)

        Returns:
            RunResult; per-batch failures are reported inside it

        Raises:
            ValueError: If source and destination are the same
            RunInProgressError: If a run for ``source`` is active
            BalancesUnavailable: If balances could not be read
        """
        if source == destination:
            raise ValueError("Source and destination must differ")

        async with AccountRunGuard(source, operation="sweep"):
            logger.info(f"Starting sweep {source} -> {destination}")
            native, tokens = await self.scanner.scan(source)
            batches = self.planner.plan(tokens, native, priority_key)

            stop = asyncio.Event()
            self._stops[source] = stop
            try:
                result = await self.sequencer.run(
                    build_plans(self.builder, batches, source, destination), stop=stop
                )
                if result.cancelled:
                    result.record_not_run(batches)
            finally:
                self._stops.pop(source, None)
                # Even on partial failure observers need post-run balances
                self.refresh.schedule(source)

        logger.info(f"Sweep {source} complete: {result.summary()}")
        return result

    async def preview(
        self,
        source: str,
        destination: str,
        priority_key: Optional[PriorityKey] = None,
    ) -> list[TransferPlan]:
        """Scan, plan and build without signing or sending anything."""
        native, tokens = await self.scanner.scan(source)
        batches = self.planner.plan(tokens, native, priority_key)

        plans = []
        for batch in batches:
            plan = await self.builder.build(batch, source, destination)
            if plan is not None:
                plans.append(plan)
        return plans

    def request_stop(self, source: Optional[str] = None) -> None:
        """Cancel active runs at their next batch boundary.

        Args:
            source: Only stop the run sweeping this wallet (default: all runs)
        """
        if source is None:
            stops = list(self._stops.values())
        else:
            stops = [self._stops[source]] if source in self._stops else []
        for stop in stops:
            stop.set()
        logger.info(f"Stop requested for {source or 'all runs'} ({len(stops)} active)")
