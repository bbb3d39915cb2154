"""
StealthPay - External Interfaces
==================================
Protocol per i servizi esterni consumati dal core.

- MetaAddressRegistry: lookup/registrazione meta-address on-chain
- PaymentLogSource: eventi StealthPaymentReceived per range di blocchi
- SignatureSource: firma del messaggio fisso (wallet)
- TransactionBroadcaster: saldi, gas price, invio e conferma transazioni

Il trasporto (JSON-RPC, retry HTTP) è compito delle implementazioni.
Gli errori transitori vanno sollevati come RpcFailureError.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple, Dict, Any, runtime_checkable

from stealth_pay.domain.models import StealthPaymentEvent


# ============================================================================
# TRANSACTION TYPES
# ============================================================================

@dataclass(frozen=True)
class TransferRequest:
    """
    Trasferimento da firmare e inviare.

    token_address None = trasferimento nativo di `value` wei;
    altrimenti ERC-20 transfer(to, token_amount).
    """

    private_key: int = field(repr=False)
    to: str
    value: int = 0
    token_address: Optional[str] = None
    token_amount: int = 0
    gas_price: int = 0
    gas_limit: int = 21_000

    @property
    def is_token_transfer(self) -> bool:
        return self.token_address is not None

    @property
    def max_fee(self) -> int:
        return self.gas_price * self.gas_limit


@dataclass(frozen=True)
class TxReceipt:
    """Receipt di una transazione confermata"""

    tx_hash: str
    status: bool
    block_number: Optional[int] = None
    gas_used: int = 0

    @property
    def success(self) -> bool:
        return self.status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
        }


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class MetaAddressRegistry(Protocol):

    def get_meta_address(self, owner: str) -> Tuple[bytes, bytes]:
        """(spend_pubkey, viewing_pubkey); bytes vuoti se non registrato"""
        ...

    def register_meta_address(self, spend_public_key: bytes, viewing_public_key: bytes, private_key: int) -> str:
        """Registra il meta-address dell'owner della chiave; ritorna tx hash"""
        ...


@runtime_checkable
class PaymentLogSource(Protocol):

    def get_block_number(self) -> int:
        ...

    def get_payment_events(self, from_block: int, to_block: int) -> List[StealthPaymentEvent]:
        """Eventi in [from_block, to_block] inclusivo"""
        ...


@runtime_checkable
class SignatureSource(Protocol):

    @property
    def address(self) -> str:
        ...

    def sign(self, message: str) -> bytes:
        ...


@runtime_checkable
class TransactionBroadcaster(Protocol):

    def get_gas_price(self) -> int:
        ...

    def get_native_balance(self, address: str) -> int:
        ...

    def get_token_balance(self, token_address: str, address: str) -> int:
        ...

    def get_transaction_count(self, address: str) -> int:
        ...

    def send_transaction(self, request: TransferRequest) -> TxReceipt:
        """Firma, invia e attende conferma"""
        ...


__all__ = [
    "TransferRequest",
    "TxReceipt",
    "MetaAddressRegistry",
    "PaymentLogSource",
    "SignatureSource",
    "TransactionBroadcaster",
]
