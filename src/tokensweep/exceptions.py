"""Error taxonomy for the sweep pipeline.

Only ``BalancesUnavailable`` and ``RunInProgressError`` escape a run; every
``BatchError`` is recorded against its batch and the run moves on.
"""

from typing import Optional


class SweepError(Exception):
    """Base class for all sweep errors."""

    pass


class BalancesUnavailable(SweepError):
    """Neither the balance index nor the ledger could be read."""

    pass


class RunInProgressError(SweepError):
    """A run for the same account is already active."""

    def __init__(self, account: str):
        self.account = account
        super().__init__(f"Sweep run already in progress for {account}")


# ======================
# Transport
# ======================


class RpcError(SweepError):
    """JSON-RPC call failed (HTTP error, RPC error object, malformed reply)."""

    def __init__(self, method: str, message: str, code: Optional[int] = None):
        self.method = method
        self.code = code
        super().__init__(f"{method}: {message}")


class TransactionRejected(SweepError):
    """The ledger refused a transaction in preflight or on execution.

    ``instruction_index`` points at the failing instruction when known.
    """

    def __init__(self, message: str, instruction_index: Optional[int] = None):
        self.instruction_index = instruction_index
        super().__init__(message)


# ======================
# Per-batch failures
# ======================


class BatchError(SweepError):
    """A single batch failed; the run continues."""

    pass


class PlanBuildFailed(BatchError):
    pass


class AnchorUnavailable(BatchError):
    pass


class SignerDeclined(BatchError):
    """The signer refused (user rejection, disconnected wallet, wrong key)."""

    pass


class SubmissionFailed(BatchError):
    pass


class ConfirmationTimeout(BatchError):
    """Sent, but finality was not observed before the blockhash expired.

    The transaction may still land; it is never resent.
    """

    pass


class AccountCreationFailed(BatchError):
    pass
