"""
StealthPay - Domain Package
=============================
Primitive crittografiche, indirizzi e modelli del protocollo.
"""

from stealth_pay.domain.crypto_core import (
    CurveMath,
    CoincurveCurve,
    PythonCurve,
    get_curve_backend,
)
from stealth_pay.domain.addressing import (
    public_key_to_address,
    private_key_to_address,
    normalize_address,
    get_address_format,
)
from stealth_pay.domain.models import (
    StealthMetaAddress,
    KeyPair,
    DerivedKeys,
    GeneratedStealthAddress,
    StealthPaymentEvent,
    StealthPaymentMatch,
    ScanResult,
)

__all__ = [
    "CurveMath",
    "CoincurveCurve",
    "PythonCurve",
    "get_curve_backend",
    "public_key_to_address",
    "private_key_to_address",
    "normalize_address",
    "get_address_format",
    "StealthMetaAddress",
    "KeyPair",
    "DerivedKeys",
    "GeneratedStealthAddress",
    "StealthPaymentEvent",
    "StealthPaymentMatch",
    "ScanResult",
]
