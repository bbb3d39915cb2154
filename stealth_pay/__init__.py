"""
StealthPay - Multi-Chain Stealth Payments
===========================================
Stealth address protocol: meta-address, view-tag scanning,
recupero chiavi e sweep verso il wallet principale.

Version: 1.0.0
License: MIT
"""

from stealth_pay.version import __version__

# Core
from stealth_pay.domain.models import (
    StealthMetaAddress,
    StealthPaymentEvent,
    GeneratedStealthAddress,
    DerivedKeys,
    ScanResult,
)
from stealth_pay.wallet.key_derivation import DeterministicKeyDeriver, SignatureSession
from stealth_pay.wallet.stealth_address import (
    StealthAddressGenerator,
    ViewTagFilter,
    StealthKeyRecoverer,
)
from stealth_pay.config import StealthSettings, get_settings

# Services
from stealth_pay.services.scanner_service import ChainScanner
from stealth_pay.services.sweep_service import StealthWithdrawalSweep, SweepResult
from stealth_pay.services.stealth_service import StealthService

__all__ = [
    # Version
    "__version__",

    # Core
    "StealthMetaAddress",
    "StealthPaymentEvent",
    "GeneratedStealthAddress",
    "DerivedKeys",
    "ScanResult",
    "DeterministicKeyDeriver",
    "SignatureSession",
    "StealthAddressGenerator",
    "ViewTagFilter",
    "StealthKeyRecoverer",
    "StealthSettings",
    "get_settings",

    # Services
    "ChainScanner",
    "StealthWithdrawalSweep",
    "SweepResult",
    "StealthService",
]
