"""
StealthPay - Services Package
===============================
High-level service layer.
"""

from stealth_pay.services.scanner_service import ChainScanner, deduplicate_matches
from stealth_pay.services.sweep_service import StealthWithdrawalSweep, SweepResult
from stealth_pay.services.stealth_service import StealthService

__all__ = [
    "ChainScanner",
    "deduplicate_matches",
    "StealthWithdrawalSweep",
    "SweepResult",
    "StealthService",
]
