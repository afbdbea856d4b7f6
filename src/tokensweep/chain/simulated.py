"""In-memory ledger for dry runs and tests (no real blockchain queries).

Implements every collaborator interface at once. Transactions are validated
and applied atomically: if any instruction fails, nothing but the fee is
charged, mirroring how the real ledger executes transactions.
"""

import hashlib
import logging
from dataclasses import dataclass, replace
from typing import Optional

from tokensweep.chain.base import (
    NATIVE_ASSET_KEY,
    Anchor,
    BalanceIndex,
    ConfirmationStatus,
    IndexedAmount,
    LedgerReader,
    SendOptions,
    SignedTransaction,
    TokenAccountInfo,
    TransactionSubmitter,
)
from tokensweep.exceptions import RpcError, TransactionRejected
from tokensweep.models import (
    TOKEN_PROGRAM_ID,
    CreateSubAccount,
    NativeTransfer,
    TokenTransfer,
    TransferPlan,
)

logger = logging.getLogger(__name__)

FEE_PER_SIGNATURE = 5_000
TOKEN_ACCOUNT_RENT = 2_039_280  # rent-exempt minimum for a 165-byte token account
BLOCKHASH_VALIDITY = 150


@dataclass
class SimulatedTokenAccount:
    owner: str
    mint: str
    amount: int
    decimals: int
    token_program: str = TOKEN_PROGRAM_ID


class SimulatedLedger(LedgerReader, TransactionSubmitter, BalanceIndex):
    """Simulated ledger with failure injection.

    Failure knobs:
        ledger_available: False makes every read raise RpcError
        index_available: False makes get_indexed_balances raise RpcError
        send_failures: {send attempt (1-based): exception raised by send()}
        confirmation_timeouts: send attempts that are dropped and never confirm
        anchor_failures: number of upcoming get_latest_anchor calls that fail
    """

    def __init__(
        self,
        block_height: int = 800_000,
        fee_per_signature: int = FEE_PER_SIGNATURE,
        account_rent: int = TOKEN_ACCOUNT_RENT,
    ):
        self.block_height = block_height
        self.fee_per_signature = fee_per_signature
        self.account_rent = account_rent

        self._native: dict[str, int] = {}
        self._token_accounts: dict[str, SimulatedTokenAccount] = {}
        self._mint_decimals: dict[str, int] = {}
        self._results: dict[str, Optional[TransactionRejected]] = {}
        self._dropped: set[str] = set()
        self._send_count = 0

        self.sent: list[SignedTransaction] = []
        self.ledger_available = True
        self.index_available = True
        self.send_failures: dict[int, Exception] = {}
        self.confirmation_timeouts: set[int] = set()
        self.anchor_failures = 0
        self.probe_count = 0

    # ======================
    # Setup helpers
    # ======================

    def fund(self, owner: str, lamports: int) -> None:
        self._native[owner] = self._native.get(owner, 0) + lamports

    def create_token_account(
        self,
        owner: str,
        mint: str,
        decimals: int = 6,
        token_program: str = TOKEN_PROGRAM_ID,
    ) -> str:
        """Create an empty associated token account."""
        self._mint_decimals.setdefault(mint, decimals)
        address = self.get_sub_account_address(owner, mint, token_program)
        if address not in self._token_accounts:
            self._token_accounts[address] = SimulatedTokenAccount(
                owner=owner, mint=mint, amount=0, decimals=decimals, token_program=token_program
            )
        return address

    def mint_to(
        self,
        owner: str,
        mint: str,
        amount: int,
        decimals: int = 6,
        token_program: str = TOKEN_PROGRAM_ID,
    ) -> str:
        address = self.create_token_account(owner, mint, decimals, token_program)
        self._token_accounts[address].amount += amount
        return address

    def native_balance(self, owner: str) -> int:
        return self._native.get(owner, 0)

    def token_balance(self, owner: str, mint: str, token_program: str = TOKEN_PROGRAM_ID) -> int:
        account = self._token_accounts.get(self.get_sub_account_address(owner, mint, token_program))
        return account.amount if account else 0

    def _check_available(self, method: str) -> None:
        if not self.ledger_available:
            raise RpcError(method, "Simulated ledger unavailable")

    # ======================
    # LedgerReader
    # ======================

    async def get_native_balance(self, account: str) -> int:
        self._check_available("getBalance")
        return self._native.get(account, 0)

    async def list_token_accounts(self, account: str) -> list[TokenAccountInfo]:
        self._check_available("getTokenAccountsByOwner")
        return [
            TokenAccountInfo(
                mint=acc.mint,
                raw_amount=acc.amount,
                decimals=acc.decimals,
                address=address,
                token_program=acc.token_program,
            )
            for address, acc in self._token_accounts.items()
            if acc.owner == account
        ]

    def get_sub_account_address(
        self, owner: str, mint: str, token_program: str = TOKEN_PROGRAM_ID
    ) -> str:
        digest = hashlib.sha256(f"{owner}:{token_program}:{mint}".encode()).hexdigest()
        return f"ata_{digest[:32]}"

    async def account_exists(self, address: str) -> bool:
        self._check_available("getAccountInfo")
        self.probe_count += 1
        return address in self._token_accounts or address in self._native

    async def get_latest_anchor(self, commitment: str = "confirmed") -> Anchor:
        self._check_available("getLatestBlockhash")
        if self.anchor_failures > 0:
            self.anchor_failures -= 1
            raise RpcError("getLatestBlockhash", "Simulated anchor failure")
        return Anchor(
            blockhash=f"simhash_{self.block_height}",
            last_valid_block_height=self.block_height + BLOCKHASH_VALIDITY,
        )

    # ======================
    # BalanceIndex
    # ======================

    async def get_indexed_balances(self, account: str) -> dict[str, IndexedAmount]:
        if not self.index_available:
            raise RpcError("getAssetsByOwner", "Simulated index unavailable")

        balances = {NATIVE_ASSET_KEY: IndexedAmount(raw_amount=self._native.get(account, 0), decimals=9)}
        for address, acc in self._token_accounts.items():
            if acc.owner == account and acc.mint not in balances:
                balances[acc.mint] = IndexedAmount(
                    raw_amount=acc.amount,
                    decimals=acc.decimals,
                    account=address,
                    token_program=acc.token_program,
                )
        return balances

    # ======================
    # TransactionSubmitter
    # ======================

    def _execute(
        self,
        plan: TransferPlan,
        native: dict[str, int],
        tokens: dict[str, SimulatedTokenAccount],
    ) -> Optional[TransactionRejected]:
        """Apply a plan to scratch copies of state. Returns the first error."""
        payer = plan.fee_payer
        if native.get(payer, 0) < self.fee_per_signature:
            return TransactionRejected("Insufficient funds for fee")
        native[payer] -= self.fee_per_signature

        for idx, ix in enumerate(plan.instructions):
            if isinstance(ix, CreateSubAccount):
                if ix.address in tokens:
                    return TransactionRejected(f"Account {ix.address} already in use", idx)
                if native.get(ix.payer, 0) < self.account_rent:
                    return TransactionRejected("Insufficient lamports for rent", idx)
                native[ix.payer] -= self.account_rent
                tokens[ix.address] = SimulatedTokenAccount(
                    owner=ix.owner,
                    mint=ix.mint,
                    amount=0,
                    decimals=self._mint_decimals.get(ix.mint, 0),
                    token_program=ix.token_program,
                )

            elif isinstance(ix, TokenTransfer):
                source = tokens.get(ix.source)
                destination = tokens.get(ix.destination)
                if source is None or source.owner != ix.owner or source.mint != ix.mint:
                    return TransactionRejected("Invalid source token account", idx)
                if destination is None or destination.mint != ix.mint:
                    return TransactionRejected("Invalid destination token account", idx)
                if ix.decimals != source.decimals:
                    return TransactionRejected("Mint decimals mismatch", idx)
                if source.amount < ix.amount:
                    return TransactionRejected("Insufficient token funds", idx)
                source.amount -= ix.amount
                destination.amount += ix.amount

            elif isinstance(ix, NativeTransfer):
                if native.get(ix.source, 0) < ix.lamports:
                    return TransactionRejected("Insufficient lamports", idx)
                native[ix.source] -= ix.lamports
                native[ix.destination] = native.get(ix.destination, 0) + ix.lamports

        return None

    async def send(self, transaction: SignedTransaction, options: SendOptions) -> str:
        self._send_count += 1
        attempt = self._send_count
        self.block_height += 1

        if attempt in self.send_failures:
            raise self.send_failures[attempt]

        if transaction.anchor.last_valid_block_height < self.block_height:
            raise TransactionRejected("Blockhash not found")

        signature = transaction.signature
        self.sent.append(transaction)

        if attempt in self.confirmation_timeouts:
            logger.info(f"[SIMULATED] Dropping transaction {signature}")
            self._dropped.add(signature)
            return signature

        native = dict(self._native)
        tokens = {address: replace(acc) for address, acc in self._token_accounts.items()}
        error = self._execute(transaction.plan, native, tokens)

        if error is not None:
            if not options.skip_preflight:
                raise error
            # Lands on chain as failed: only the fee is taken
            payer = transaction.plan.fee_payer
            self._native[payer] = max(0, self._native.get(payer, 0) - self.fee_per_signature)
        else:
            self._native = native
            self._token_accounts = tokens

        self._results[signature] = error
        logger.info(
            f"[SIMULATED] Sent {signature} with {len(transaction.plan)} instructions"
        )
        return signature

    async def await_confirmation(
        self, signature: str, anchor: Anchor, commitment: str = "confirmed"
    ) -> ConfirmationStatus:
        if signature in self._dropped or signature not in self._results:
            self.block_height = max(self.block_height, anchor.last_valid_block_height + 1)
            return ConfirmationStatus.TIMEOUT

        error = self._results[signature]
        if error is not None:
            raise error
        return ConfirmationStatus.CONFIRMED
