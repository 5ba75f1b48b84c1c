"""Utility modules for Gracemark functions."""

from utils.recon_logger import (
    log_reconciliation_start,
    log_reconciliation_phase,
    log_final_choice,
    log_reconciliation_failed,
    log_acid_test_result,
)

__all__ = [
    "log_reconciliation_start",
    "log_reconciliation_phase",
    "log_final_choice",
    "log_reconciliation_failed",
    "log_acid_test_result",
]
