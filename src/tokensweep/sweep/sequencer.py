"""Submission sequencer.

Submits plans strictly one after another. Per batch:

    Built -> AnchorAcquired -> Submitted -> Confirmed | Failed

A failed batch is recorded and the run moves on to the next batch; batches
move disjoint assets, so one failure never blocks the rest. Submissions are
never parallelized: the two SOL tranches depend on running in order.
"""

import asyncio
import logging
from typing import AsyncIterable, Optional

from tokensweep.chain.base import (
    ConfirmationStatus,
    LedgerReader,
    SendOptions,
    TransactionSubmitter,
)
from tokensweep.exceptions import (
    AccountCreationFailed,
    AnchorUnavailable,
    BatchError,
    ConfirmationTimeout,
    SignerDeclined,
    SubmissionFailed,
    TransactionRejected,
)
from tokensweep.models import (
    BatchOutcome,
    BatchState,
    CreateSubAccount,
    RunResult,
    TransferPlan,
)
from tokensweep.signing.base import TransactionSigner
from tokensweep.sweep.builder import BuiltBatch

logger = logging.getLogger(__name__)


def classify_rejection(plan: TransferPlan, error: TransactionRejected) -> BatchError:
    """Map a ledger rejection to the batch error it represents."""
    idx = error.instruction_index
    if idx is not None and 0 <= idx < len(plan.instructions):
        ix = plan.instructions[idx]
        if isinstance(ix, CreateSubAccount):
            return AccountCreationFailed(
                f"Creating {ix.address} for mint {ix.mint} was rejected: {error}"
            )
    return SubmissionFailed(f"Transaction rejected: {error}")


class SubmissionSequencer:
    """Signs, sends and confirms plans in order."""

    def __init__(
        self,
        ledger: LedgerReader,
        submitter: TransactionSubmitter,
        signer: TransactionSigner,
        commitment: str = "confirmed",
        max_retries: int = 3,
    ):
        """Initialize sequencer.

        Args:
            ledger: Source of fresh anchors
            submitter: Broadcast and confirmation
            signer: Signs each plan
            commitment: Finality tier to wait for
            max_retries: Transport-level resend budget per transaction
        """
        self.ledger = ledger
        self.submitter = submitter
        self.signer = signer
        self.commitment = commitment
        self.send_options = SendOptions(
            skip_preflight=False,
            max_retries=max_retries,
            preflight_commitment=commitment,
        )
        self._active_stops: set[asyncio.Event] = set()

    def request_stop(self) -> None:
        """Stop every active run at its next batch boundary.

        A batch in flight always finishes. Runs started later are unaffected.
        """
        for stop in self._active_stops:
            stop.set()
        logger.info(f"Stop requested for {len(self._active_stops)} active run(s)")

    async def run(
        self,
        plans: AsyncIterable[BuiltBatch],
        stop: Optional[asyncio.Event] = None,
    ) -> RunResult:
        """Process every built batch in order.

        Args:
            plans: Built batches, produced lazily
            stop: Event owned by this run; once set, no further batch starts

        Returns:
            RunResult with one outcome per processed batch
        """
        if stop is None:
            stop = asyncio.Event()
        self._active_stops.add(stop)
        result = RunResult()
        iterator = plans.__aiter__()

        try:
            while True:
                # Checked before the next plan is built, never mid-batch
                if stop.is_set():
                    result.cancelled = True
                    logger.info(f"Run cancelled after {len(result.outcomes)} batches")
                    break
                try:
                    built = await iterator.__anext__()
                except StopAsyncIteration:
                    break
                result.outcomes.append(await self._process(built))
        finally:
            self._active_stops.discard(stop)
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        logger.info(
            f"Run finished: {result.confirmed}/{result.attempted} batches confirmed, "
            f"{result.skipped} skipped, native sweep {result.native_sweep.value}"
        )
        return result

    async def _process(self, built: BuiltBatch) -> BatchOutcome:
        batch = built.batch

        if built.error is not None:
            logger.warning(f"Batch {batch.index} failed to build: {built.error}")
            return BatchOutcome(
                index=batch.index,
                state=BatchState.FAILED,
                error_type=type(built.error).__name__,
                error=str(built.error),
                token_count=len(batch.tokens),
                native_lamports=batch.sweep_lamports,
            )

        plan = built.plan
        if plan is None:
            return BatchOutcome(index=batch.index, state=BatchState.SKIPPED)

        outcome = BatchOutcome(
            index=batch.index,
            state=BatchState.BUILT,
            token_count=len(plan.token_transfers),
            native_lamports=plan.native_lamports,
        )

        try:
            await self._submit(plan, outcome)
        except BatchError as e:
            outcome.state = BatchState.FAILED
            outcome.error_type = type(e).__name__
            outcome.error = str(e)
            logger.warning(f"Batch {batch.index} failed ({outcome.error_type}): {e}")

        return outcome

    async def _submit(self, plan: TransferPlan, outcome: BatchOutcome) -> None:
        index = plan.batch.index

        # Never reuse an anchor: each batch signs against a fresh blockhash
        try:
            anchor = await self.ledger.get_latest_anchor(self.commitment)
        except Exception as e:
            raise AnchorUnavailable(f"Could not fetch blockhash: {e}") from e
        outcome.state = BatchState.ANCHOR_ACQUIRED

        try:
            signed = await self.signer.sign(plan, plan.fee_payer, anchor)
        except SignerDeclined:
            raise
        except Exception as e:
            raise SignerDeclined(f"Signer error: {e}") from e

        try:
            signature = await self.submitter.send(signed, self.send_options)
        except TransactionRejected as e:
            raise classify_rejection(plan, e) from e
        except Exception as e:
            raise SubmissionFailed(f"Send failed: {e}") from e

        outcome.state = BatchState.SUBMITTED
        outcome.signature = signature
        logger.info(f"Batch {index} submitted: {signature}")

        try:
            status = await self.submitter.await_confirmation(signature, anchor, self.commitment)
        except TransactionRejected as e:
            raise classify_rejection(plan, e) from e
        except Exception as e:
            raise ConfirmationTimeout(f"Lost track of {signature}: {e}") from e

        if status != ConfirmationStatus.CONFIRMED:
            raise ConfirmationTimeout(
                f"{signature} not {self.commitment} before block "
                f"{anchor.last_valid_block_height}"
            )

        outcome.state = BatchState.CONFIRMED
        logger.info(f"Batch {index} confirmed: {signature}")
