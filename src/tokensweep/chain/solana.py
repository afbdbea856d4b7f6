"""Solana JSON-RPC ledger client.

Implements both LedgerReader and TransactionSubmitter on top of the public
Solana RPC (or a Helius RPC endpoint). Instruction compilation to ``solders``
types also lives here since it is Solana-specific wire encoding.
"""

import asyncio
import base64
import logging
import struct
from typing import Any, Optional

import httpx
from solders.instruction import AccountMeta
from solders.instruction import Instruction as SoldersInstruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from tokensweep.chain.base import (
    Anchor,
    Commitment,
    ConfirmationStatus,
    LedgerReader,
    SendOptions,
    SignedTransaction,
    TokenAccountInfo,
    TransactionSubmitter,
    describe_http_error,
)
from tokensweep.exceptions import RpcError, TransactionRejected
from tokensweep.models import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    CreateSubAccount,
    Instruction,
    NativeTransfer,
    TokenTransfer,
    TransferPlan,
)

logger = logging.getLogger(__name__)

SOLANA_MAINNET = "https://api.mainnet-beta.solana.com"
SOLANA_DEVNET = "https://api.devnet.solana.com"

# Upper bound on the delay between RPC retries (seconds)
MAX_BACKOFF = 8.0
# Consecutive failed status polls tolerated while awaiting confirmation
MAX_POLL_ERRORS = 10

# Instruction tags
ATA_CREATE_IX = bytes([0])
TRANSFER_CHECKED_IX = 12


# ======================
# Instruction encoding
# ======================


def derive_associated_token_address(
    owner: str, mint: str, token_program: str = TOKEN_PROGRAM_ID
) -> str:
    """Derive the associated token account address for owner/mint."""
    address, _bump = Pubkey.find_program_address(
        [
            bytes(Pubkey.from_string(owner)),
            bytes(Pubkey.from_string(token_program)),
            bytes(Pubkey.from_string(mint)),
        ],
        Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID),
    )
    return str(address)


def build_create_ata_ix(ix: CreateSubAccount) -> SoldersInstruction:
    return SoldersInstruction(
        program_id=Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID),
        accounts=[
            AccountMeta(pubkey=Pubkey.from_string(ix.payer), is_signer=True, is_writable=True),
            AccountMeta(pubkey=Pubkey.from_string(ix.address), is_signer=False, is_writable=True),
            AccountMeta(pubkey=Pubkey.from_string(ix.owner), is_signer=False, is_writable=False),
            AccountMeta(pubkey=Pubkey.from_string(ix.mint), is_signer=False, is_writable=False),
            AccountMeta(pubkey=Pubkey.from_string(SYSTEM_PROGRAM_ID), is_signer=False, is_writable=False),
            AccountMeta(pubkey=Pubkey.from_string(ix.token_program), is_signer=False, is_writable=False),
        ],
        data=ATA_CREATE_IX,
    )


def build_transfer_checked_ix(ix: TokenTransfer) -> SoldersInstruction:
    # TransferChecked: tag u8 | amount u64 LE | decimals u8
    data = struct.pack("<BQB", TRANSFER_CHECKED_IX, ix.amount, ix.decimals)
    return SoldersInstruction(
        program_id=Pubkey.from_string(ix.token_program),
        accounts=[
            AccountMeta(pubkey=Pubkey.from_string(ix.source), is_signer=False, is_writable=True),
            AccountMeta(pubkey=Pubkey.from_string(ix.mint), is_signer=False, is_writable=False),
            AccountMeta(pubkey=Pubkey.from_string(ix.destination), is_signer=False, is_writable=True),
            AccountMeta(pubkey=Pubkey.from_string(ix.owner), is_signer=True, is_writable=False),
        ],
        data=data,
    )


def build_native_transfer_ix(ix: NativeTransfer) -> SoldersInstruction:
    return transfer(
        TransferParams(
            from_pubkey=Pubkey.from_string(ix.source),
            to_pubkey=Pubkey.from_string(ix.destination),
            lamports=int(ix.lamports),
        )
    )


def compile_instruction(ix: Instruction) -> SoldersInstruction:
    if isinstance(ix, CreateSubAccount):
        return build_create_ata_ix(ix)
    if isinstance(ix, TokenTransfer):
        return build_transfer_checked_ix(ix)
    if isinstance(ix, NativeTransfer):
        return build_native_transfer_ix(ix)
    raise TypeError(f"Unsupported instruction: {type(ix).__name__}")


def compile_plan(plan: TransferPlan) -> list[SoldersInstruction]:
    """Compile a plan's instructions in order."""
    return [compile_instruction(ix) for ix in plan.instructions]


def parse_instruction_error(err: Any) -> Optional[int]:
    """Extract the failing instruction index from a transaction error.

    Errors look like ``{"InstructionError": [1, {"Custom": 0}]}``.
    """
    if isinstance(err, dict):
        detail = err.get("InstructionError")
        if isinstance(detail, list) and detail and isinstance(detail[0], int):
            return detail[0]
    return None


# ======================
# RPC client
# ======================


class SolanaRpcClient(LedgerReader, TransactionSubmitter):
    """Solana ledger over JSON-RPC."""

    def __init__(
        self,
        rpc_url: str = SOLANA_MAINNET,
        timeout: float = 30.0,
        poll_interval: float = 0.5,
        max_retries: int = 4,
        backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            rpc_url: JSON-RPC endpoint
            timeout: HTTP timeout in seconds
            poll_interval: Seconds between signature status polls
            max_retries: Attempts per call on 429, 5xx and transport errors
            backoff: Base delay in seconds, grows linearly per attempt
            transport: Custom httpx transport (tests)
        """
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_retries = max(1, max_retries)
        self.backoff = backoff
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _rpc(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        data = None

        for attempt in range(1, self.max_retries + 1):
            try:
                async with self._client() as client:
                    response = await client.post(self.rpc_url, json=payload)
                    response.raise_for_status()
                    data = response.json()
                break
            except (httpx.HTTPStatusError, httpx.TransportError) as e:
                status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
                transient = status is None or status == 429 or status >= 500
                if not transient or attempt == self.max_retries:
                    raise RpcError(method, describe_http_error(e)) from e
                delay = min(self.backoff * attempt, MAX_BACKOFF)
                logger.warning(
                    f"{method} failed ({describe_http_error(e)}), "
                    f"retry {attempt}/{self.max_retries - 1} in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
            except httpx.HTTPError as e:
                raise RpcError(method, describe_http_error(e)) from e
            except ValueError as e:
                raise RpcError(method, f"Invalid JSON response: {e}") from e

        error = data.get("error")
        if error:
            message = error.get("message", "unknown error")
            # sendTransaction preflight failures carry the simulation error
            details = error.get("data")
            err = details.get("err") if isinstance(details, dict) else None
            if err is not None:
                raise TransactionRejected(message, parse_instruction_error(err))
            raise RpcError(method, message, code=error.get("code"))

        if "result" not in data:
            raise RpcError(method, "Missing result")
        return data["result"]

    # ---------- LedgerReader ----------

    async def get_native_balance(self, account: str) -> int:
        result = await self._rpc("getBalance", [account, {"commitment": "confirmed"}])
        return int(result.get("value", 0) or 0)

    async def list_token_accounts(self, account: str) -> list[TokenAccountInfo]:
        accounts: list[TokenAccountInfo] = []

        for program_id in (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID):
            result = await self._rpc(
                "getTokenAccountsByOwner",
                [
                    account,
                    {"programId": program_id},
                    {"encoding": "jsonParsed", "commitment": "confirmed"},
                ],
            )
            for entry in result.get("value", []) or []:
                try:
                    info = entry["account"]["data"]["parsed"]["info"]
                    token_amount = info["tokenAmount"]
                    accounts.append(
                        TokenAccountInfo(
                            mint=info["mint"],
                            raw_amount=int(token_amount["amount"]),
                            decimals=int(token_amount["decimals"]),
                            address=entry["pubkey"],
                            token_program=program_id,
                        )
                    )
                except (KeyError, TypeError, ValueError) as e:
                    logger.debug(f"Skipping unparseable token account {entry.get('pubkey')}: {e}")

        return accounts

    def get_sub_account_address(
        self, owner: str, mint: str, token_program: str = TOKEN_PROGRAM_ID
    ) -> str:
        return derive_associated_token_address(owner, mint, token_program)

    async def account_exists(self, address: str) -> bool:
        result = await self._rpc(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": "confirmed"}],
        )
        return result.get("value") is not None

    async def get_latest_anchor(self, commitment: str = "confirmed") -> Anchor:
        result = await self._rpc("getLatestBlockhash", [{"commitment": commitment}])
        value = result.get("value") or {}
        blockhash = value.get("blockhash")
        if not blockhash:
            raise RpcError("getLatestBlockhash", "No blockhash in response")
        return Anchor(
            blockhash=blockhash,
            last_valid_block_height=int(value.get("lastValidBlockHeight", 0)),
        )

    async def get_block_height(self, commitment: str = "confirmed") -> int:
        result = await self._rpc("getBlockHeight", [{"commitment": commitment}])
        return int(result)

    async def get_minimum_balance_for_rent_exemption(self, data_len: int = 0) -> int:
        result = await self._rpc("getMinimumBalanceForRentExemption", [int(data_len)])
        return int(result)

    # ---------- TransactionSubmitter ----------

    async def send(self, transaction: SignedTransaction, options: SendOptions) -> str:
        encoded = base64.b64encode(transaction.raw).decode("utf-8")
        signature = await self._rpc(
            "sendTransaction",
            [
                encoded,
                {
                    "encoding": "base64",
                    "skipPreflight": options.skip_preflight,
                    "preflightCommitment": options.preflight_commitment,
                    "maxRetries": options.max_retries,
                },
            ],
        )
        if not signature:
            raise RpcError("sendTransaction", "No signature returned")
        return str(signature)

    async def await_confirmation(
        self, signature: str, anchor: Anchor, commitment: str = "confirmed"
    ) -> ConfirmationStatus:
        target = Commitment(commitment)
        poll_errors = 0

        while True:
            try:
                result = await self._rpc("getSignatureStatuses", [[signature]])
                status = (result.get("value") or [None])[0]

                if status is not None:
                    err = status.get("err")
                    if err:
                        raise TransactionRejected(
                            f"Transaction {signature} failed: {err}",
                            parse_instruction_error(err),
                        )
                    if target.is_reached_by(status.get("confirmationStatus")):
                        return ConfirmationStatus.CONFIRMED

                block_height = await self.get_block_height(commitment)
            except RpcError as e:
                # Keep polling through transient failures until the anchor expires
                poll_errors += 1
                if poll_errors >= MAX_POLL_ERRORS:
                    raise
                logger.warning(f"Status poll for {signature[:16]}... failed ({poll_errors}): {e}")
                await asyncio.sleep(self.poll_interval)
                continue

            poll_errors = 0
            if block_height > anchor.last_valid_block_height:
                logger.warning(
                    f"Blockhash expired for {signature[:16]}... "
                    f"(height {block_height} > {anchor.last_valid_block_height})"
                )
                return ConfirmationStatus.TIMEOUT

            await asyncio.sleep(self.poll_interval)
