"""Tests for the balance scanner."""

from unittest.mock import AsyncMock

import pytest

from tests.conftest import SOURCE
from tokensweep.chain.simulated import SimulatedLedger
from tokensweep.exceptions import BalancesUnavailable
from tokensweep.models import TOKEN_2022_PROGRAM_ID
from tokensweep.sweep.scanner import BalanceScanner


@pytest.fixture
def wallet() -> SimulatedLedger:
    ledger = SimulatedLedger()
    ledger.fund(SOURCE, 50_000_000)
    ledger.mint_to(SOURCE, "USDC", 2_500_000, decimals=6)
    ledger.mint_to(SOURCE, "BONK", 7, decimals=5, token_program=TOKEN_2022_PROGRAM_ID)
    ledger.create_token_account(SOURCE, "EMPTY", decimals=9)
    return ledger


class TestBalanceScanner:
    """Tests for the two-tier balance read."""

    @pytest.mark.asyncio
    async def test_ledger_scan(self, wallet):
        scanner = BalanceScanner(wallet, rent_exempt_reserve=2_000_000)

        native, tokens = await scanner.scan(SOURCE)
        tokens = list(tokens)

        assert native.amount_units == 50_000_000
        assert native.usable_units == 48_000_000
        assert [t.mint for t in tokens] == ["USDC", "BONK"]
        assert tokens[1].token_program == TOKEN_2022_PROGRAM_ID
        assert tokens[0].source_account == wallet.get_sub_account_address(SOURCE, "USDC")

    @pytest.mark.asyncio
    async def test_zero_balances_filtered(self, wallet):
        scanner = BalanceScanner(wallet)
        _, tokens = await scanner.scan(SOURCE)
        assert "EMPTY" not in [t.mint for t in tokens]

    @pytest.mark.asyncio
    async def test_tokens_are_one_shot(self, wallet):
        scanner = BalanceScanner(wallet)
        result = await scanner.scan(SOURCE)

        assert len(list(result.tokens)) == 2
        assert list(result.tokens) == []

    @pytest.mark.asyncio
    async def test_each_scan_rereads(self, wallet):
        scanner = BalanceScanner(wallet)
        await scanner.scan(SOURCE)
        wallet.mint_to(SOURCE, "NEW", 1)

        _, tokens = await scanner.scan(SOURCE)
        assert "NEW" in [t.mint for t in tokens]

    @pytest.mark.asyncio
    async def test_index_is_preferred(self, wallet):
        wallet.ledger_available = False
        scanner = BalanceScanner(wallet, index=wallet)

        native, tokens = await scanner.scan(SOURCE)

        assert native.amount_units == 50_000_000
        assert sorted(t.mint for t in tokens) == ["BONK", "USDC"]

    @pytest.mark.asyncio
    async def test_index_failure_falls_back(self, wallet):
        index = AsyncMock()
        index.get_indexed_balances.side_effect = RuntimeError("index down")
        scanner = BalanceScanner(wallet, index=index)

        native, tokens = await scanner.scan(SOURCE)

        index.get_indexed_balances.assert_awaited_once_with(SOURCE)
        assert native.amount_units == 50_000_000
        assert len(list(tokens)) == 2

    @pytest.mark.asyncio
    async def test_index_without_native_falls_back(self, wallet):
        index = AsyncMock()
        index.get_indexed_balances.return_value = {}
        scanner = BalanceScanner(wallet, index=index)

        native, _ = await scanner.scan(SOURCE)
        assert native.amount_units == 50_000_000

    @pytest.mark.asyncio
    async def test_both_sources_fail(self, wallet):
        wallet.ledger_available = False
        wallet.index_available = False
        scanner = BalanceScanner(wallet, index=wallet)

        with pytest.raises(BalancesUnavailable):
            await scanner.scan(SOURCE)

    @pytest.mark.asyncio
    async def test_unknown_wallet_is_empty(self):
        scanner = BalanceScanner(SimulatedLedger())
        native, tokens = await scanner.scan("nobody")

        assert native.amount_units == 0
        assert list(tokens) == []
