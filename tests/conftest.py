"""Pytest configuration and fixtures."""

import os

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DRY_RUN"] = "true"
os.environ["HELIUS_API_KEY"] = ""
os.environ["DEBUG"] = "true"

from tokensweep.chain.factory import reset_ledger
from tokensweep.chain.simulated import SimulatedLedger
from tokensweep.config import Settings, get_settings
from tokensweep.models import LAMPORTS_PER_SOL
from tokensweep.signing.factory import reset_signer
from tokensweep.signing.simulated import SimulatedSigner
from tokensweep.sweep import SweepOrchestrator
from tokensweep.utils.locks import clear_account_locks

SOURCE = "SourceWallet111111111111111111111111111111"
DESTINATION = "DestWallet1111111111111111111111111111111"
RESERVE = 2_000_000


def mint_name(i: int) -> str:
    return f"Mint{i:02d}"


@pytest.fixture(autouse=True)
def reset_state():
    """Clear global registries between tests."""
    clear_account_locks()
    reset_ledger()
    reset_signer()
    get_settings.cache_clear()
    yield
    clear_account_locks()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        max_batch_size=5,
        final_batch_sweep_pct=70,
        rent_exempt_reserve_lamports=RESERVE,
        refresh_settle_delay=0,
        confirmation_poll_interval=0,
    )


@pytest.fixture
def ledger() -> SimulatedLedger:
    """Simulated ledger with a funded source wallet (1 SOL, no tokens)."""
    ledger = SimulatedLedger()
    ledger.fund(SOURCE, LAMPORTS_PER_SOL)
    return ledger


@pytest.fixture
def signer() -> SimulatedSigner:
    return SimulatedSigner(public_key=SOURCE)


@pytest.fixture
def orchestrator(ledger, signer, settings) -> SweepOrchestrator:
    return SweepOrchestrator(ledger, ledger, signer, index=ledger, settings=settings)


def give_tokens(ledger: SimulatedLedger, count: int, amount: int = 1_000, with_destination: bool = True):
    """Mint ``count`` distinct tokens to the source wallet.

    With ``with_destination`` the destination token accounts already exist,
    so no creation rent is charged.
    """
    mints = []
    for i in range(count):
        mint = mint_name(i)
        ledger.mint_to(SOURCE, mint, amount + i, decimals=6)
        if with_destination:
            ledger.create_token_account(DESTINATION, mint, decimals=6)
        mints.append(mint)
    return mints
