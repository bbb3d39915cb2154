"""
StealthPay - Network Package
==============================
Interfacce esterne e relative implementazioni (web3, in-memory).
"""

from stealth_pay.network.interfaces import (
    TransferRequest,
    TxReceipt,
    MetaAddressRegistry,
    PaymentLogSource,
    SignatureSource,
    TransactionBroadcaster,
)
from stealth_pay.network.memory import InMemoryLedger

__all__ = [
    "TransferRequest",
    "TxReceipt",
    "MetaAddressRegistry",
    "PaymentLogSource",
    "SignatureSource",
    "TransactionBroadcaster",
    "InMemoryLedger",
]
