"""
StealthPay - Address Management
=================================
Derivazione e validazione indirizzi per chain.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0

Formati supportati (AddressFormat):
    evm:
        1. Public key non compressa (65 bytes, prefisso 0x04)
        2. Keccak-256 di X || Y (64 bytes)
        3. Ultimi 20 bytes
        4. Checksum EIP-55
    starknet:
        1. Public key compressa (33 bytes)
        2. Keccak-256
        3. Primi 31 bytes (felt252, < 2^251)
        4. 0x + 62 hex lowercase
"""

import re
from typing import Optional, Protocol

from web3 import Web3

from stealth_pay.constants import ADDRESS_FORMATS, FELT252_BOUND, STARKNET_ADDRESS_SIZE
from stealth_pay.domain.crypto_core import (
    CurveMath,
    CoincurveCurve,
    compute_keccak256,
)
from stealth_pay.errors import InvalidAddressError, InvalidConfigError


STARKNET_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-f]{1,64}$")


# ============================================================================
# ADDRESS GENERATION
# ============================================================================

def public_key_to_address(public_key: bytes, curve: Optional[CurveMath] = None) -> str:
    """
    Genera address EVM da public key (compressa o non compressa).

    Args:
        public_key: Public key secp256k1 (33 o 65 bytes)
        curve: Backend CurveMath (default coincurve)

    Returns:
        str: Address EIP-55 (0x + 40 hex)

    Raises:
        InvalidKeyMaterialError: public key non valida

    Examples:
        >>> from stealth_pay.domain.crypto_core import CoincurveCurve
        >>> public_key_to_address(CoincurveCurve().base_mul(1))
        '0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf'
    """
    curve = curve or CoincurveCurve()
    uncompressed = curve.serialize_uncompressed(public_key)
    digest = compute_keccak256(uncompressed[1:])
    return Web3.to_checksum_address("0x" + digest[-20:].hex())


def private_key_to_address(private_key: int, curve: Optional[CurveMath] = None) -> str:
    """Address EVM controllato da una chiave privata"""
    curve = curve or CoincurveCurve()
    return public_key_to_address(curve.base_mul(private_key), curve)


def public_key_to_starknet_address(public_key: bytes, curve: Optional[CurveMath] = None) -> str:
    """
    Address Starknet: keccak256(compressed)[:31].

    31 bytes < 2^248, quindi il valore è sempre un felt252 valido.
    """
    curve = curve or CoincurveCurve()
    digest = compute_keccak256(curve.deserialize(public_key))
    return "0x" + digest[:STARKNET_ADDRESS_SIZE].hex()


# ============================================================================
# VALIDATION
# ============================================================================

def validate_address(address: str) -> bool:
    """
    Valida formato address EVM (hex 20 bytes; checksum se mixed-case).
    """
    return isinstance(address, str) and Web3.is_address(address)


def normalize_address(address: str) -> str:
    """
    Normalizza address in forma EIP-55.

    Raises:
        InvalidAddressError: address malformato
    """
    if not validate_address(address.strip() if isinstance(address, str) else address):
        raise InvalidAddressError(
            f"Invalid EVM address: {address}",
            code="INVALID_ADDRESS",
            details={"address": address}
        )
    return Web3.to_checksum_address(address.strip())


def compare_addresses(addr1: str, addr2: str) -> bool:
    """
    Confronta due address (case-insensitive, il checksum non conta).

    Examples:
        >>> compare_addresses(
        ...     "0x7e5f4552091a69125d5dfcb7b8c2659029395bdf",
        ...     "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf")
        True
    """
    return addr1.strip().lower() == addr2.strip().lower()


def shorten_address(address: str, chars: int = 6) -> str:
    """Forma troncata per log e tabelle (0x7E5F45...395Bdf)"""
    return f"{address[:2 + chars]}...{address[-chars:]}"


def _felt_value(address: str) -> Optional[int]:
    if not isinstance(address, str):
        return None
    text = address.strip().lower()
    if not STARKNET_ADDRESS_PATTERN.match(text):
        return None
    value = int(text, 16)
    return value if value < FELT252_BOUND else None


# ============================================================================
# ADDRESS FORMAT PROTOCOL
# ============================================================================

class AddressFormat(Protocol):
    """
    Strategia di derivazione dell'indirizzo esterno di una chain.

    Generator, recoverer e scanner la ricevono come il backend CurveMath:
    la stessa public key stealth produce indirizzi diversi per chain.
    """

    name: str

    def from_public_key(self, public_key: bytes, curve: CurveMath) -> str:
        """Indirizzo derivato dalla stealth public key"""
        ...

    def validate(self, address: str) -> bool:
        ...

    def normalize(self, address: str) -> str:
        """Forma canonica; InvalidAddressError se malformato"""
        ...

    def compare(self, addr1: str, addr2: str) -> bool:
        ...


class EvmAddressFormat:
    """Indirizzi EVM (EIP-55)"""

    name = "evm"

    def from_public_key(self, public_key: bytes, curve: CurveMath) -> str:
        return public_key_to_address(public_key, curve)

    def validate(self, address: str) -> bool:
        return validate_address(address)

    def normalize(self, address: str) -> str:
        return normalize_address(address)

    def compare(self, addr1: str, addr2: str) -> bool:
        return compare_addresses(addr1, addr2)


class StarknetAddressFormat:
    """
    Indirizzi Starknet (felt252).

    Il confronto è sul valore del felt: zeri iniziali e maiuscole
    non contano.

    Examples:
        >>> fmt = StarknetAddressFormat()
        >>> fmt.normalize("0x00AB")
        '0x000000000000000000000000000000000000000000000000000000000000ab'
    """

    name = "starknet"

    def from_public_key(self, public_key: bytes, curve: CurveMath) -> str:
        return public_key_to_starknet_address(public_key, curve)

    def validate(self, address: str) -> bool:
        return _felt_value(address) is not None

    def normalize(self, address: str) -> str:
        value = _felt_value(address)
        if value is None:
            raise InvalidAddressError(
                f"Invalid Starknet address: {address}",
                code="INVALID_ADDRESS",
                details={"address": address, "format": self.name}
            )
        return f"0x{value:0{2 * STARKNET_ADDRESS_SIZE}x}"

    def compare(self, addr1: str, addr2: str) -> bool:
        value = _felt_value(addr1)
        return value is not None and value == _felt_value(addr2)


# ============================================================================
# FORMAT FACTORY
# ============================================================================

def get_address_format(name: str = "evm") -> AddressFormat:
    """
    Factory per AddressFormat.

    Args:
        name: "evm" o "starknet"

    Raises:
        InvalidConfigError: formato non supportato

    Examples:
        >>> get_address_format("starknet").name
        'starknet'
    """
    name = name.lower()

    if name == "evm":
        return EvmAddressFormat()

    elif name == "starknet":
        return StarknetAddressFormat()

    raise InvalidConfigError(
        f"Unsupported address format: {name}",
        code="UNSUPPORTED_ADDRESS_FORMAT",
        details={"supported": list(ADDRESS_FORMATS)}
    )


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "public_key_to_address",
    "private_key_to_address",
    "public_key_to_starknet_address",
    "validate_address",
    "normalize_address",
    "compare_addresses",
    "shorten_address",
    "AddressFormat",
    "EvmAddressFormat",
    "StarknetAddressFormat",
    "get_address_format",
]
