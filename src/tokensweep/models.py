"""Value objects flowing through the sweep pipeline.

Scanner output (balances) is immutable input to the planner, planner output
(batches) is immutable input to the builder, and so on. Nothing here is
mutated after construction except the run result, which the sequencer
appends to.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union

LAMPORTS_PER_SOL = 1_000_000_000

# Program IDs on Solana mainnet
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"


@dataclass(frozen=True)
class TokenBalance:
    """One fungible token held by the source wallet.

    Attributes:
        mint: Token mint address
        raw_amount: Balance in the token's smallest unit
        decimals: Display scaling factor
        token_program: Owning token program (SPL Token or Token-2022)
        source_account: Token account holding the balance (derived ATA if None)
    """

    mint: str
    raw_amount: int
    decimals: int
    token_program: str = TOKEN_PROGRAM_ID
    source_account: Optional[str] = None

    def __post_init__(self):
        if self.raw_amount < 0:
            raise ValueError(f"Negative token amount for {self.mint}: {self.raw_amount}")
        if self.decimals < 0:
            raise ValueError(f"Negative decimals for {self.mint}: {self.decimals}")

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.raw_amount) / (Decimal(10) ** self.decimals)


@dataclass(frozen=True)
class NativeBalance:
    """SOL balance of the source wallet, in lamports."""

    amount_units: int
    rent_exempt_reserve: int = 0

    def __post_init__(self):
        if self.amount_units < 0:
            raise ValueError(f"Negative native balance: {self.amount_units}")

    @property
    def usable_units(self) -> int:
        """Lamports that may be swept without touching the reserve floor."""
        return max(0, self.amount_units - self.rent_exempt_reserve)

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.amount_units) / Decimal(LAMPORTS_PER_SOL)


@dataclass(frozen=True)
class Batch:
    """A group of token transfers plus an optional SOL sweep tranche.

    ``usable_native_units`` is the usable balance captured once at plan time;
    every tranche of a run is computed against the same figure.
    """

    index: int
    tokens: tuple[TokenBalance, ...] = ()
    native_sweep_pct: int = 0
    usable_native_units: int = 0

    @property
    def sweep_lamports(self) -> int:
        if self.native_sweep_pct <= 0:
            return 0
        return self.usable_native_units * self.native_sweep_pct // 100

    @property
    def is_native_only(self) -> bool:
        return not self.tokens


# ======================
# Instructions
# ======================


@dataclass(frozen=True)
class CreateSubAccount:
    """Create the associated token account ``address`` for ``owner``/``mint``."""

    payer: str
    address: str
    owner: str
    mint: str
    token_program: str = TOKEN_PROGRAM_ID


@dataclass(frozen=True)
class TokenTransfer:
    """Move ``amount`` raw units of ``mint`` between two token accounts."""

    source: str
    destination: str
    owner: str
    mint: str
    amount: int
    decimals: int
    token_program: str = TOKEN_PROGRAM_ID


@dataclass(frozen=True)
class NativeTransfer:
    source: str
    destination: str
    lamports: int


Instruction = Union[CreateSubAccount, TokenTransfer, NativeTransfer]


@dataclass(frozen=True)
class TransferPlan:
    """Ordered instructions for one batch, ready to be signed."""

    batch: Batch
    fee_payer: str
    instructions: tuple[Instruction, ...]

    @property
    def native_lamports(self) -> int:
        return sum(ix.lamports for ix in self.instructions if isinstance(ix, NativeTransfer))

    @property
    def token_transfers(self) -> list[TokenTransfer]:
        return [ix for ix in self.instructions if isinstance(ix, TokenTransfer)]

    @property
    def account_creations(self) -> list[CreateSubAccount]:
        return [ix for ix in self.instructions if isinstance(ix, CreateSubAccount)]

    def __len__(self) -> int:
        return len(self.instructions)


# ======================
# Outcomes
# ======================


class BatchState(str, Enum):
    """Lifecycle of a single batch inside the sequencer."""

    BUILT = "built"
    ANCHOR_ACQUIRED = "anchor_acquired"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    SKIPPED = "skipped"  # empty plan, nothing to submit
    CANCELLED = "cancelled"  # planned, never reached after a stop request


class SweepOutcome(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class BatchOutcome:
    """Terminal state of one batch."""

    index: int
    state: BatchState
    signature: Optional[str] = None
    error_type: Optional[str] = None
    error: Optional[str] = None
    token_count: int = 0
    native_lamports: int = 0

    @property
    def is_confirmed(self) -> bool:
        return self.state == BatchState.CONFIRMED

    @property
    def is_failed(self) -> bool:
        return self.state == BatchState.FAILED


@dataclass
class RunResult:
    """Aggregate outcome of one orchestrator run."""

    outcomes: list[BatchOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def confirmed(self) -> int:
        return sum(1 for o in self.outcomes if o.is_confirmed)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.is_failed)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.state == BatchState.SKIPPED)

    @property
    def not_run(self) -> int:
        return sum(1 for o in self.outcomes if o.state == BatchState.CANCELLED)

    @property
    def attempted(self) -> int:
        return self.confirmed + self.failed

    @property
    def native_swept_lamports(self) -> int:
        return sum(o.native_lamports for o in self.outcomes if o.is_confirmed)

    @property
    def native_sweep(self) -> SweepOutcome:
        carrying = [o for o in self.outcomes if o.native_lamports > 0]
        if not carrying:
            return SweepOutcome.SKIPPED
        if any(o.is_failed or o.state == BatchState.CANCELLED for o in carrying):
            return SweepOutcome.FAILED
        return SweepOutcome.SENT

    def record_not_run(self, batches: Iterable[Batch]) -> None:
        """Record a CANCELLED outcome for each planned batch the run never reached."""
        seen = {o.index for o in self.outcomes}
        for batch in batches:
            if batch.index in seen:
                continue
            self.outcomes.append(
                BatchOutcome(
                    index=batch.index,
                    state=BatchState.CANCELLED,
                    token_count=len(batch.tokens),
                    native_lamports=batch.sweep_lamports,
                )
            )

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.cancelled

    def summary(self) -> dict:
        return {
            "confirmed": self.confirmed,
            "attempted": self.attempted,
            "failed": self.failed,
            "skipped": self.skipped,
            "not_run": self.not_run,
            "native_sweep": self.native_sweep.value,
            "native_swept_lamports": self.native_swept_lamports,
            "cancelled": self.cancelled,
        }
