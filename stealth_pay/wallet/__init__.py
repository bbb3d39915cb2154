"""
StealthPay - Wallet Package
=============================
Derivazione chiavi e matematica degli stealth address.
"""

from stealth_pay.wallet.key_derivation import (
    DeterministicKeyDeriver,
    SignatureSession,
)
from stealth_pay.wallet.stealth_address import (
    StealthAddressGenerator,
    ViewTagFilter,
    StealthKeyRecoverer,
)

__all__ = [
    # Keys
    "DeterministicKeyDeriver",
    "SignatureSession",

    # Stealth
    "StealthAddressGenerator",
    "ViewTagFilter",
    "StealthKeyRecoverer",
]
