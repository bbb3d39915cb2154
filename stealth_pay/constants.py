"""
StealthPay - Core Constants
=============================
Costanti immutabili del protocollo stealth address.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

IMPORTANTE: le costanti crittografiche e di wire format sono condivise
con i consumer on-chain degli eventi. Cambiarle rompe la compatibilità
con tutti i pagamenti già emessi.
"""

from enum import Enum
from typing import Final


# ============================================================================
# IDENTIFICAZIONE PROGETTO
# ============================================================================

PROJECT_NAME: Final[str] = "StealthPay"
PROTOCOL_VERSION: Final[int] = 1


# ============================================================================
# CURVA secp256k1
# ============================================================================

SECP256K1_N: Final[int] = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_P: Final[int] = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
SECP256K1_GX: Final[int] = 0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798
SECP256K1_GY: Final[int] = 0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8
SECP256K1_A: Final[int] = 0
SECP256K1_B: Final[int] = 7

SCALAR_SIZE: Final[int] = 32
COMPRESSED_POINT_SIZE: Final[int] = 33
UNCOMPRESSED_POINT_SIZE: Final[int] = 65


# ============================================================================
# META-ADDRESS WIRE FORMAT
# ============================================================================

# version (1B) || spend pubkey (33B) || viewing pubkey (33B)
META_ADDRESS_VERSION: Final[int] = 0x01
META_ADDRESS_SIZE: Final[int] = 1 + 2 * COMPRESSED_POINT_SIZE

# Indice k: uint32 big-endian nel tweak
MAX_K_INDEX: Final[int] = 2 ** 32 - 1
VIEW_HINT_SIZE: Final[int] = 1


# ============================================================================
# ADDRESS FORMATS
# ============================================================================

# evm: keccak256(X || Y)[-20:], EIP-55
# starknet: keccak256(compressed)[:31], sempre < 2^251 (felt252)
ADDRESS_FORMATS: Final[tuple] = ("evm", "starknet")
STARKNET_ADDRESS_SIZE: Final[int] = 31
FELT252_BOUND: Final[int] = 2 ** 251


# ============================================================================
# KEY DERIVATION
# ============================================================================

# Messaggio fisso firmato dal wallet: deve restare identico per sempre,
# altrimenti le chiavi derivate cambiano.
DEFAULT_SIGNATURE_MESSAGE: Final[str] = (
    "Sign this message to access your StealthPay stealth keys.\n\n"
    "This signature does not authorize any transaction."
)

KEY_DERIVATION_DOMAIN: Final[bytes] = b"stealthpay/key-derivation/v1"
SPEND_KEY_LABEL: Final[bytes] = b"spend"
VIEWING_KEY_LABEL: Final[bytes] = b"viewing"


# ============================================================================
# SCANNING
# ============================================================================

# Range massimo per eth_getLogs su provider pubblici
DEFAULT_SCAN_CHUNK_SIZE: Final[int] = 10_000
DEFAULT_SCAN_MAX_RETRIES: Final[int] = 3
DEFAULT_SCAN_RETRY_BACKOFF_SECONDS: Final[float] = 1.0
LATEST_BLOCK: Final[str] = "latest"


# ============================================================================
# GAS / SWEEP
# ============================================================================

NATIVE_TRANSFER_GAS_LIMIT: Final[int] = 21_000
TOKEN_TRANSFER_GAS_LIMIT: Final[int] = 65_000
DEFAULT_GAS_TOPUP_MULTIPLIER: Final[int] = 2
DEFAULT_TX_CONFIRMATION_TIMEOUT: Final[int] = 120

WEI_PER_ETHER: Final[int] = 10 ** 18


class SweepPhase(Enum):
    """Fasi del protocollo di sweep"""
    TOP_UP = "top_up"
    SWEEP = "sweep"


class Network(Enum):
    """Network supportate"""
    MAINNET = "mainnet"
    TESTNET = "testnet"
    LOCAL = "local"


# Chain ID di default per network
DEFAULT_CHAIN_IDS: Final[dict] = {
    Network.MAINNET.value: 8453,     # Base
    Network.TESTNET.value: 84532,    # Base Sepolia
    Network.LOCAL.value: 31337,      # Hardhat / Anvil
}


def format_wei(amount_wei: int, unit: str = "ETH") -> str:
    """
    Formatta un amount in wei per visualizzazione.

    Examples:
        >>> format_wei(1_500_000_000_000_000_000)
        '1.500000000000000000 ETH'
    """
    whole, frac = divmod(amount_wei, WEI_PER_ETHER)
    return f"{whole}.{frac:018d} {unit}"


__all__ = [
    "PROJECT_NAME",
    "PROTOCOL_VERSION",
    "SECP256K1_N",
    "SECP256K1_P",
    "SECP256K1_GX",
    "SECP256K1_GY",
    "SECP256K1_A",
    "SECP256K1_B",
    "SCALAR_SIZE",
    "COMPRESSED_POINT_SIZE",
    "UNCOMPRESSED_POINT_SIZE",
    "META_ADDRESS_VERSION",
    "META_ADDRESS_SIZE",
    "MAX_K_INDEX",
    "VIEW_HINT_SIZE",
    "ADDRESS_FORMATS",
    "STARKNET_ADDRESS_SIZE",
    "FELT252_BOUND",
    "DEFAULT_SIGNATURE_MESSAGE",
    "KEY_DERIVATION_DOMAIN",
    "SPEND_KEY_LABEL",
    "VIEWING_KEY_LABEL",
    "DEFAULT_SCAN_CHUNK_SIZE",
    "DEFAULT_SCAN_MAX_RETRIES",
    "DEFAULT_SCAN_RETRY_BACKOFF_SECONDS",
    "LATEST_BLOCK",
    "NATIVE_TRANSFER_GAS_LIMIT",
    "TOKEN_TRANSFER_GAS_LIMIT",
    "DEFAULT_GAS_TOPUP_MULTIPLIER",
    "DEFAULT_TX_CONFIRMATION_TIMEOUT",
    "WEI_PER_ETHER",
    "SweepPhase",
    "Network",
    "DEFAULT_CHAIN_IDS",
    "format_wei",
]
