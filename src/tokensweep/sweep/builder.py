"""Transaction builder.

Turns a Batch into a TransferPlan: for each token an optional destination
account creation followed by a full-balance transfer, then an optional SOL
transfer. Only network access: the existence probe per destination account.
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional

from tokensweep.chain.base import LedgerReader
from tokensweep.exceptions import BatchError, PlanBuildFailed
from tokensweep.models import (
    Batch,
    CreateSubAccount,
    Instruction,
    NativeTransfer,
    TokenTransfer,
    TransferPlan,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuiltBatch:
    """Builder output handed to the sequencer.

    Exactly one of: a plan, no plan (nothing to submit), or a build error.
    """

    batch: Batch
    plan: Optional[TransferPlan] = None
    error: Optional[BatchError] = None


class TransactionBuilder:
    """Builds per-batch instruction lists."""

    def __init__(self, ledger: LedgerReader):
        self.ledger = ledger

    async def build(
        self, batch: Batch, source: str, destination: str
    ) -> Optional[TransferPlan]:
        """Build the plan for one batch.

        Args:
            batch: Planned batch
            source: Wallet paying fees and owning the balances
            destination: Wallet receiving everything

        Returns:
            TransferPlan, or None when there is nothing to submit
        """
        instructions: list[Instruction] = []
        scheduled: set[str] = set()

        for token in batch.tokens:
            if token.raw_amount <= 0:
                logger.debug(f"Batch {batch.index}: {token.mint} already empty, skipping")
                continue

            dest_account = self.ledger.get_sub_account_address(
                destination, token.mint, token.token_program
            )
            # Two source accounts of one mint share a destination: create it once
            if dest_account not in scheduled and not await self.ledger.account_exists(dest_account):
                instructions.append(
                    CreateSubAccount(
                        payer=source,
                        address=dest_account,
                        owner=destination,
                        mint=token.mint,
                        token_program=token.token_program,
                    )
                )
            scheduled.add(dest_account)

            source_account = token.source_account or self.ledger.get_sub_account_address(
                source, token.mint, token.token_program
            )
            instructions.append(
                TokenTransfer(
                    source=source_account,
                    destination=dest_account,
                    owner=source,
                    mint=token.mint,
                    amount=token.raw_amount,
                    decimals=token.decimals,
                    token_program=token.token_program,
                )
            )

        lamports = batch.sweep_lamports
        if lamports > 0:
            instructions.append(NativeTransfer(source=source, destination=destination, lamports=lamports))

        if not instructions:
            logger.info(f"Batch {batch.index}: nothing to submit")
            return None

        plan = TransferPlan(batch=batch, fee_payer=source, instructions=tuple(instructions))
        logger.debug(
            f"Built batch {batch.index}: {len(plan.account_creations)} creations, "
            f"{len(plan.token_transfers)} transfers, {plan.native_lamports} lamports"
        )
        return plan


async def build_plans(
    builder: TransactionBuilder,
    batches: Iterable[Batch],
    source: str,
    destination: str,
) -> AsyncIterator[BuiltBatch]:
    """Build plans lazily, one per batch, as the sequencer asks for them.

    Each plan is built only after the previous batch reached a terminal
    state, so existence probes see accounts created by earlier batches.
    """
    for batch in batches:
        try:
            plan = await builder.build(batch, source, destination)
        except Exception as e:
            logger.warning(f"Could not build batch {batch.index}: {e}")
            yield BuiltBatch(batch=batch, error=PlanBuildFailed(str(e)))
            continue
        yield BuiltBatch(batch=batch, plan=plan)
