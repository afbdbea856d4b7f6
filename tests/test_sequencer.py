"""Tests for the submission sequencer."""

import asyncio

import pytest

from tests.conftest import DESTINATION, SOURCE, give_tokens
from tokensweep.exceptions import PlanBuildFailed, RpcError, TransactionRejected
from tokensweep.models import (
    Batch,
    BatchState,
    CreateSubAccount,
    SweepOutcome,
    TokenBalance,
    TokenTransfer,
    TransferPlan,
)
from tokensweep.signing.simulated import SimulatedSigner
from tokensweep.sweep.builder import BuiltBatch, TransactionBuilder, build_plans
from tokensweep.sweep.sequencer import SubmissionSequencer, classify_rejection


async def _iter(items):
    for item in items:
        yield item


def token_batches(ledger, count: int, per_batch: int = 1) -> list[Batch]:
    mints = give_tokens(ledger, count)
    return [
        Batch(
            index=i,
            tokens=tuple(
                TokenBalance(mint=m, raw_amount=1_000 + count_i, decimals=6)
                for count_i, m in enumerate(mints)
                if count_i // per_batch == i
            ),
        )
        for i in range((count + per_batch - 1) // per_batch)
    ]


@pytest.fixture
def sequencer(ledger, signer) -> SubmissionSequencer:
    return SubmissionSequencer(ledger, ledger, signer)


async def run_batches(sequencer, ledger, batches):
    builder = TransactionBuilder(ledger)
    return await sequencer.run(build_plans(builder, batches, SOURCE, DESTINATION))


class TestHappyPath:
    """Tests for batches that land."""

    @pytest.mark.asyncio
    async def test_all_batches_confirm_in_order(self, sequencer, ledger):
        batches = token_batches(ledger, 3)

        result = await run_batches(sequencer, ledger, batches)

        assert [o.state for o in result.outcomes] == [BatchState.CONFIRMED] * 3
        assert [o.index for o in result.outcomes] == [0, 1, 2]
        assert [tx.plan.batch.index for tx in ledger.sent] == [0, 1, 2]
        assert all(o.signature for o in result.outcomes)
        assert ledger.token_balance(DESTINATION, "Mint01") == 1_001
        assert ledger.token_balance(SOURCE, "Mint01") == 0

    @pytest.mark.asyncio
    async def test_fresh_anchor_per_batch(self, sequencer, ledger):
        await run_batches(sequencer, ledger, token_batches(ledger, 3))

        anchors = [tx.anchor.blockhash for tx in ledger.sent]
        assert len(set(anchors)) == 3

    @pytest.mark.asyncio
    async def test_empty_plan_is_skipped(self, sequencer, ledger):
        batch = Batch(index=0, native_sweep_pct=30, usable_native_units=3)

        result = await run_batches(sequencer, ledger, [batch])

        assert result.outcomes[0].state == BatchState.SKIPPED
        assert result.attempted == 0
        assert ledger.sent == []
        assert result.native_sweep == SweepOutcome.SKIPPED


class TestBatchFailures:
    """Each failure kind fails only its own batch."""

    @pytest.mark.asyncio
    async def test_signer_declined(self, ledger):
        signer = SimulatedSigner(public_key=SOURCE, declined_batches={1})
        sequencer = SubmissionSequencer(ledger, ledger, signer)

        result = await run_batches(sequencer, ledger, token_batches(ledger, 3))

        states = [o.state for o in result.outcomes]
        assert states == [BatchState.CONFIRMED, BatchState.FAILED, BatchState.CONFIRMED]
        assert result.outcomes[1].error_type == "SignerDeclined"
        assert result.outcomes[1].signature is None
        assert ledger.token_balance(SOURCE, "Mint01") == 1_001

    @pytest.mark.asyncio
    async def test_wrong_fee_payer_declined(self, ledger):
        signer = SimulatedSigner(public_key="SomeoneElse")
        sequencer = SubmissionSequencer(ledger, ledger, signer)

        result = await run_batches(sequencer, ledger, token_batches(ledger, 1))

        assert result.outcomes[0].error_type == "SignerDeclined"

    @pytest.mark.asyncio
    async def test_send_failure(self, sequencer, ledger):
        ledger.send_failures = {1: RpcError("sendTransaction", "connection reset")}

        result = await run_batches(sequencer, ledger, token_batches(ledger, 2))

        assert result.outcomes[0].state == BatchState.FAILED
        assert result.outcomes[0].error_type == "SubmissionFailed"
        assert result.outcomes[1].state == BatchState.CONFIRMED

    @pytest.mark.asyncio
    async def test_preflight_rejection(self, sequencer, ledger):
        ledger.send_failures = {1: TransactionRejected("Insufficient token funds", 0)}

        result = await run_batches(sequencer, ledger, token_batches(ledger, 1))

        assert result.outcomes[0].error_type == "SubmissionFailed"

    @pytest.mark.asyncio
    async def test_confirmation_timeout_is_not_resent(self, sequencer, ledger):
        ledger.confirmation_timeouts = {1}

        result = await run_batches(sequencer, ledger, token_batches(ledger, 2))

        first, second = result.outcomes
        assert first.state == BatchState.FAILED
        assert first.error_type == "ConfirmationTimeout"
        assert first.signature is not None
        assert second.state == BatchState.CONFIRMED
        assert [tx.plan.batch.index for tx in ledger.sent] == [0, 1]

    @pytest.mark.asyncio
    async def test_anchor_unavailable(self, sequencer, ledger):
        ledger.anchor_failures = 1

        result = await run_batches(sequencer, ledger, token_batches(ledger, 2))

        assert result.outcomes[0].error_type == "AnchorUnavailable"
        assert result.outcomes[0].state == BatchState.FAILED
        assert result.outcomes[1].state == BatchState.CONFIRMED

    @pytest.mark.asyncio
    async def test_account_creation_failure(self, sequencer, ledger, monkeypatch):
        """Builder thinks the destination is missing but it already exists."""
        give_tokens(ledger, 1, with_destination=True)

        async def never_exists(address):
            return False

        monkeypatch.setattr(ledger, "account_exists", never_exists)
        batch = Batch(index=0, tokens=(TokenBalance(mint="Mint00", raw_amount=1_000, decimals=6),))

        result = await run_batches(sequencer, ledger, [batch])

        assert result.outcomes[0].error_type == "AccountCreationFailed"
        assert ledger.token_balance(SOURCE, "Mint00") == 1_000

    @pytest.mark.asyncio
    async def test_build_failure(self, sequencer):
        batch = Batch(index=0)
        built = [BuiltBatch(batch=batch, error=PlanBuildFailed("probe failed"))]

        result = await sequencer.run(_iter(built))

        assert result.outcomes[0].state == BatchState.FAILED
        assert result.outcomes[0].error_type == "PlanBuildFailed"


class TestClassifyRejection:
    """Tests for mapping ledger rejections to batch errors."""

    def _plan(self):
        create = CreateSubAccount(payer=SOURCE, address="ata", owner=DESTINATION, mint="M")
        move = TokenTransfer(
            source="src", destination="ata", owner=SOURCE, mint="M", amount=1, decimals=0
        )
        return TransferPlan(batch=Batch(index=0), fee_payer=SOURCE, instructions=(create, move))

    def test_creation_index(self):
        error = classify_rejection(self._plan(), TransactionRejected("in use", 0))
        assert type(error).__name__ == "AccountCreationFailed"

    def test_transfer_index(self):
        error = classify_rejection(self._plan(), TransactionRejected("no funds", 1))
        assert type(error).__name__ == "SubmissionFailed"

    def test_unknown_index(self):
        for idx in (None, 7):
            error = classify_rejection(self._plan(), TransactionRejected("boom", idx))
            assert type(error).__name__ == "SubmissionFailed"


class TestCancellation:
    """Tests for stopping at batch boundaries."""

    @pytest.mark.asyncio
    async def test_stop_after_current_batch(self, ledger):
        sequencer = None

        class StoppingSigner(SimulatedSigner):
            async def sign(self, plan, fee_payer, anchor):
                signed = await super().sign(plan, fee_payer, anchor)
                if plan.batch.index == 1:
                    sequencer.request_stop()
                return signed

        sequencer = SubmissionSequencer(ledger, ledger, StoppingSigner(public_key=SOURCE))

        result = await run_batches(sequencer, ledger, token_batches(ledger, 4))

        assert result.cancelled
        assert [o.state for o in result.outcomes] == [BatchState.CONFIRMED] * 2
        assert not result.success
        assert ledger.token_balance(SOURCE, "Mint03") == 1_003

    @pytest.mark.asyncio
    async def test_stop_before_run_has_no_effect(self, sequencer, ledger):
        sequencer.request_stop()

        result = await run_batches(sequencer, ledger, token_batches(ledger, 1))

        assert not result.cancelled
        assert result.confirmed == 1

    @pytest.mark.asyncio
    async def test_stop_event_only_affects_its_run(self, sequencer, ledger):
        builder = TransactionBuilder(ledger)
        batches = token_batches(ledger, 2)
        stopped = asyncio.Event()
        stopped.set()

        halted = await sequencer.run(
            build_plans(builder, batches[:1], SOURCE, DESTINATION), stop=stopped
        )
        result = await sequencer.run(build_plans(builder, batches[1:], SOURCE, DESTINATION))

        assert halted.cancelled
        assert halted.outcomes == []
        assert not result.cancelled
        assert result.confirmed == 1
