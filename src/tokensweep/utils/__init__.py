"""Utility modules for tokensweep."""

from tokensweep.utils.locks import AccountRunGuard, is_run_active

__all__ = ["AccountRunGuard", "is_run_active"]
