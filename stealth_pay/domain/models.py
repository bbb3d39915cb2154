"""
StealthPay - Core Domain Models
=================================
Strutture dati del protocollo stealth address.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

Models:
- StealthMetaAddress: (spend pubkey, viewing pubkey) pubblicato dal destinatario
- KeyPair / DerivedKeys: chiavi spend + viewing derivate dalla firma
- EphemeralKeyPair: chiave effimera del mittente (mai trasmessa)
- GeneratedStealthAddress: output del generatore
- StealthPaymentEvent: evento on-chain (pubblico, append-only)
- StealthPaymentMatch / ScanResult: output dello scanner

Tutte le strutture sono immutabili (frozen) per thread-safety.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Union

from stealth_pay.constants import (
    COMPRESSED_POINT_SIZE,
    META_ADDRESS_SIZE,
    META_ADDRESS_VERSION,
    MAX_K_INDEX,
)
from stealth_pay.errors import (
    InvalidMetaAddressError,
    format_validation_error,
)


def _hex(data: bytes) -> str:
    return "0x" + data.hex()


def _unhex(text: str) -> bytes:
    text = text.strip()
    if text.lower().startswith("0x"):
        text = text[2:]
    return bytes.fromhex(text)


def validate_k(k: int) -> int:
    """
    Valida indice k (uint32).

    Raises:
        ValidationError: k non intero o fuori [0, 2^32 - 1]
    """
    if isinstance(k, bool) or not isinstance(k, int) or not 0 <= k <= MAX_K_INDEX:
        raise format_validation_error("k", k, "uint32 in [0, 2^32 - 1]", code="INVALID_K_INDEX")
    return k


# ============================================================================
# META-ADDRESS
# ============================================================================

@dataclass(frozen=True)
class StealthMetaAddress:
    """
    Meta-address pubblico del destinatario.

    Wire format: version (0x01) || spend_pubkey (33B) || viewing_pubkey (33B)

    Attributes:
        spend_public_key: Public key di spesa (compressa)
        viewing_public_key: Public key di visualizzazione (compressa)

    Examples:
        >>> meta = StealthMetaAddress.from_hex(registry_value)
        >>> meta.to_bytes()[0]
        1
    """

    spend_public_key: bytes
    viewing_public_key: bytes

    def __post_init__(self):
        for name in ("spend_public_key", "viewing_public_key"):
            key = getattr(self, name)
            if not isinstance(key, (bytes, bytearray)) or len(key) != COMPRESSED_POINT_SIZE:
                raise InvalidMetaAddressError(
                    f"{name} must be a {COMPRESSED_POINT_SIZE}-byte compressed point",
                    code="INVALID_META_KEY_LENGTH",
                    details={"field": name, "length": len(key) if isinstance(key, (bytes, bytearray)) else None}
                )
            if key[0] not in (0x02, 0x03):
                raise InvalidMetaAddressError(
                    f"{name} has invalid compressed point prefix",
                    code="INVALID_META_KEY_PREFIX",
                    details={"field": name, "prefix": key[0]}
                )

    def to_bytes(self) -> bytes:
        """Serializza nel wire format versionato (67 bytes)"""
        return bytes([META_ADDRESS_VERSION]) + bytes(self.spend_public_key) + bytes(self.viewing_public_key)

    def to_hex(self) -> str:
        return _hex(self.to_bytes())

    @classmethod
    def from_bytes(cls, data: bytes) -> StealthMetaAddress:
        """
        Decodifica wire format.

        Raises:
            InvalidMetaAddressError: versione o lunghezza errate
        """
        if len(data) != META_ADDRESS_SIZE:
            raise InvalidMetaAddressError(
                f"Invalid meta-address length: expected {META_ADDRESS_SIZE}, got {len(data)}",
                code="INVALID_META_LENGTH",
                details={"length": len(data)}
            )
        if data[0] != META_ADDRESS_VERSION:
            raise InvalidMetaAddressError(
                f"Unsupported meta-address version: {data[0]:#04x}",
                code="INVALID_META_VERSION",
                details={"version": data[0]}
            )
        return cls(
            spend_public_key=bytes(data[1:1 + COMPRESSED_POINT_SIZE]),
            viewing_public_key=bytes(data[1 + COMPRESSED_POINT_SIZE:])
        )

    @classmethod
    def from_hex(cls, text: str) -> StealthMetaAddress:
        try:
            data = _unhex(text)
        except (ValueError, AttributeError) as e:
            raise InvalidMetaAddressError(
                "Meta-address is not valid hex",
                code="INVALID_META_HEX"
            ) from e
        return cls.from_bytes(data)

    @classmethod
    def parse(cls, value: Union[StealthMetaAddress, bytes, str]) -> StealthMetaAddress:
        """Accetta istanza, wire bytes o hex"""
        if isinstance(value, cls):
            return value
        if isinstance(value, (bytes, bytearray)):
            return cls.from_bytes(bytes(value))
        if isinstance(value, str):
            return cls.from_hex(value)
        raise InvalidMetaAddressError(
            f"Unsupported meta-address type: {type(value).__name__}",
            code="INVALID_META_TYPE"
        )

    def __str__(self) -> str:
        return self.to_hex()


# ============================================================================
# KEYS
# ============================================================================

@dataclass(frozen=True)
class KeyPair:
    """Coppia (scalare privato, public key compressa)"""

    private_key: int = field(repr=False)
    public_key: bytes

    def private_key_hex(self) -> str:
        return f"0x{self.private_key:064x}"


@dataclass(frozen=True)
class EphemeralKeyPair(KeyPair):
    """Chiave effimera del mittente: usa e getta, mai trasmessa."""
    pass


@dataclass(frozen=True)
class DerivedKeys:
    """
    Chiavi spend e viewing derivate da una firma del wallet.

    Ri-derivabili in ogni momento firmando lo stesso messaggio fisso;
    il core non le persiste mai.
    """

    spend: KeyPair
    viewing: KeyPair

    @property
    def meta_address(self) -> StealthMetaAddress:
        return StealthMetaAddress(
            spend_public_key=self.spend.public_key,
            viewing_public_key=self.viewing.public_key
        )


# ============================================================================
# GENERATOR OUTPUT
# ============================================================================

@dataclass(frozen=True)
class GeneratedStealthAddress:
    """
    Output di StealthAddressGenerator.generate().

    Attributes:
        stealth_address: Indirizzo one-time (EIP-55 o felt Starknet)
        stealth_public_key: Public key one-time (compressa)
        ephemeral_public_key: Public key effimera da pubblicare nell'evento
        view_hint: Primo byte dello shared secret
        k: Indice di derivazione
    """

    stealth_address: str
    stealth_public_key: bytes
    ephemeral_public_key: bytes
    view_hint: int
    k: int

    @property
    def view_hint_bytes(self) -> bytes:
        return bytes([self.view_hint])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stealth_address": self.stealth_address,
            "stealth_public_key": _hex(self.stealth_public_key),
            "ephemeral_public_key": _hex(self.ephemeral_public_key),
            "view_hint": _hex(self.view_hint_bytes),
            "k": self.k,
        }


# ============================================================================
# ON-CHAIN EVENT
# ============================================================================

@dataclass(frozen=True)
class StealthPaymentEvent:
    """
    Evento StealthPaymentReceived (record pubblico, ri-leggibile).

    Attributes:
        stealth_address: Indirizzo one-time che ha ricevuto i fondi
        ephemeral_public_key: R = r·G (33 bytes)
        view_hint: 1 byte
        k: Indice uint32
        amount: Amount (unità minime del token)
        symbol: Simbolo token
        block_number: Blocco di inclusione
        tx_hash: Hash transazione
        log_index: Indice del log nel blocco
        source_chain: Chain sorgente (pagamenti cross-chain)
    """

    stealth_address: str
    ephemeral_public_key: bytes
    view_hint: int
    k: int
    amount: int
    symbol: str
    block_number: int
    tx_hash: str
    log_index: int = 0
    source_chain: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.view_hint, int) or not 0 <= self.view_hint <= 0xFF:
            raise format_validation_error("view_hint", self.view_hint, "single byte 0..255")
        validate_k(self.k)
        if self.block_number < 0:
            raise format_validation_error("block_number", self.block_number, "non-negative integer")

    @property
    def uid(self) -> tuple:
        """Identità del log (tx_hash, log_index)"""
        return (self.tx_hash.lower(), self.log_index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stealth_address": self.stealth_address,
            "ephemeral_public_key": _hex(self.ephemeral_public_key),
            "view_hint": _hex(bytes([self.view_hint])),
            "k": self.k,
            "amount": str(self.amount),
            "symbol": self.symbol,
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
            "log_index": self.log_index,
            "source_chain": self.source_chain,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StealthPaymentEvent:
        view_hint = data["view_hint"]
        if isinstance(view_hint, str):
            view_hint = _unhex(view_hint)[0]
        ephemeral = data["ephemeral_public_key"]
        if isinstance(ephemeral, str):
            ephemeral = _unhex(ephemeral)
        return cls(
            stealth_address=data["stealth_address"],
            ephemeral_public_key=ephemeral,
            view_hint=view_hint,
            k=int(data["k"]),
            amount=int(data["amount"]),
            symbol=data.get("symbol", ""),
            block_number=int(data["block_number"]),
            tx_hash=data["tx_hash"],
            log_index=int(data.get("log_index", 0)),
            source_chain=data.get("source_chain"),
        )


# ============================================================================
# SCANNER OUTPUT
# ============================================================================

@dataclass(frozen=True)
class StealthPaymentMatch:
    """
    Pagamento verificato dallo scanner.

    `stealth_private_key` è presente solo se lo scan ha ricevuto
    la spend private key.
    """

    event: StealthPaymentEvent
    stealth_public_key: bytes
    verified: bool = True
    stealth_private_key: Optional[int] = field(default=None, repr=False)

    @property
    def tx_hash(self) -> str:
        return self.event.tx_hash

    @property
    def stealth_address(self) -> str:
        return self.event.stealth_address

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.event.to_dict(),
            "stealth_public_key": _hex(self.stealth_public_key),
            "verified": self.verified,
        }


@dataclass
class ScanResult:
    """
    Risultato (anche parziale) di una scansione.

    Attributes:
        matches: Pagamenti verificati, in ordine di blocco
        from_block: Primo blocco richiesto
        to_block: Ultimo blocco (risolto una volta all'inizio)
        scanned_to_block: Ultimo blocco completamente scansionato (None se nessuno)
        cancelled: True se interrotto tra due chunk
        events_seen: Eventi ricevuti dal log source
        hint_hits: Eventi passati dal view-tag filter
    """

    matches: List[StealthPaymentMatch] = field(default_factory=list)
    from_block: int = 0
    to_block: int = 0
    scanned_to_block: Optional[int] = None
    cancelled: bool = False
    events_seen: int = 0
    hint_hits: int = 0

    @property
    def events(self) -> List[StealthPaymentEvent]:
        return [m.event for m in self.matches]

    @property
    def is_complete(self) -> bool:
        if self.cancelled:
            return False
        # range vuoto (head sotto from_block)
        return self.to_block < self.from_block or self.scanned_to_block == self.to_block

    @property
    def next_block(self) -> int:
        """Blocco da cui riprendere la scansione"""
        if self.scanned_to_block is None:
            return self.from_block
        return self.scanned_to_block + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_block": self.from_block,
            "to_block": self.to_block,
            "scanned_to_block": self.scanned_to_block,
            "cancelled": self.cancelled,
            "events_seen": self.events_seen,
            "hint_hits": self.hint_hits,
            "matches": [m.to_dict() for m in self.matches],
        }


__all__ = [
    "validate_k",
    "StealthMetaAddress",
    "KeyPair",
    "EphemeralKeyPair",
    "DerivedKeys",
    "GeneratedStealthAddress",
    "StealthPaymentEvent",
    "StealthPaymentMatch",
    "ScanResult",
]
