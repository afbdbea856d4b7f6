"""Multi-asset sweep pipeline."""

from tokensweep.sweep.builder import BuiltBatch, TransactionBuilder
from tokensweep.sweep.orchestrator import SweepOrchestrator
from tokensweep.sweep.planner import BatchPlanner
from tokensweep.sweep.refresh import BalanceRefreshTrigger
from tokensweep.sweep.scanner import BalanceScanner, ScanResult
from tokensweep.sweep.sequencer import SubmissionSequencer

__all__ = [
    "BalanceRefreshTrigger",
    "BalanceScanner",
    "BatchPlanner",
    "BuiltBatch",
    "ScanResult",
    "SubmissionSequencer",
    "SweepOrchestrator",
    "TransactionBuilder",
]
