"""
StealthPay - Configuration Management
=======================================
Configurazione centralizzata con Pydantic Settings.
Supporta environment variables, file .env, override runtime.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0

Features:
- Validazione automatica tipi
- Environment variables con prefisso STEALTHPAY_
- File .env support
- Profile multipli (local/testnet/mainnet)
"""

from pathlib import Path
from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from stealth_pay.constants import (
    ADDRESS_FORMATS,
    DEFAULT_CHAIN_IDS,
    DEFAULT_SIGNATURE_MESSAGE,
    DEFAULT_SCAN_CHUNK_SIZE,
    DEFAULT_SCAN_MAX_RETRIES,
    DEFAULT_SCAN_RETRY_BACKOFF_SECONDS,
    NATIVE_TRANSFER_GAS_LIMIT,
    TOKEN_TRANSFER_GAS_LIMIT,
    DEFAULT_GAS_TOPUP_MULTIPLIER,
    DEFAULT_TX_CONFIRMATION_TIMEOUT,
    Network,
)


CURVE_BACKENDS = ("coincurve", "python")


# ============================================================================
# MAIN CONFIGURATION CLASS
# ============================================================================

class StealthSettings(BaseSettings):
    """
    Configurazione principale StealthPay.

    Example:
        # Da environment
        export STEALTHPAY_RPC_URL="https://sepolia.base.org"
        export STEALTHPAY_SCAN_CHUNK_SIZE=2000

        # Da codice
        config = StealthSettings(network="local")

        # Da .env file
        config = StealthSettings(_env_file=".env")
    """

    model_config = SettingsConfigDict(
        env_prefix='STEALTHPAY_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # ========================================================================
    # NETWORK
    # ========================================================================

    network: str = Field(
        default=Network.TESTNET.value,
        description="Network: mainnet, testnet, local"
    )

    rpc_url: str = Field(
        default="http://127.0.0.1:8545",
        description="Endpoint JSON-RPC del nodo EVM"
    )

    chain_id: Optional[int] = Field(
        default=None,
        ge=1,
        description="Chain ID (default per network se None)"
    )

    payment_contract_address: Optional[str] = Field(
        default=None,
        description="Contratto che emette StealthPaymentReceived"
    )

    registry_contract_address: Optional[str] = Field(
        default=None,
        description="Registry meta-address (default: payment contract)"
    )

    # ========================================================================
    # CRYPTO
    # ========================================================================

    curve_backend: str = Field(
        default="coincurve",
        description="Backend CurveMath: coincurve, python"
    )

    address_format: str = Field(
        default="evm",
        description="Formato indirizzo stealth: evm, starknet"
    )

    signature_message: str = Field(
        default=DEFAULT_SIGNATURE_MESSAGE,
        description="Messaggio fisso firmato per derivare le chiavi"
    )

    signature_cache_ttl_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="TTL cache firma di sessione (None = fino a clear)"
    )

    # ========================================================================
    # SCANNING
    # ========================================================================

    scan_chunk_size: int = Field(
        default=DEFAULT_SCAN_CHUNK_SIZE,
        ge=1,
        le=1_000_000,
        description="Blocchi per query eth_getLogs"
    )

    scan_max_retries: int = Field(
        default=DEFAULT_SCAN_MAX_RETRIES,
        ge=0,
        le=20,
        description="Retry per chunk su errore RPC"
    )

    scan_retry_backoff_seconds: float = Field(
        default=DEFAULT_SCAN_RETRY_BACKOFF_SECONDS,
        ge=0.0,
        le=60.0,
        description="Backoff base (esponenziale) tra retry"
    )

    scan_from_block: int = Field(
        default=0,
        ge=0,
        description="Blocco iniziale di default (deploy del contratto)"
    )

    # ========================================================================
    # GAS / SWEEP
    # ========================================================================

    gas_price_wei: Optional[int] = Field(
        default=None,
        ge=1,
        description="Gas price fisso (None = eth_gasPrice)"
    )

    native_transfer_gas_limit: int = Field(
        default=NATIVE_TRANSFER_GAS_LIMIT,
        ge=21_000,
        description="Gas limit trasferimento nativo"
    )

    token_transfer_gas_limit: int = Field(
        default=TOKEN_TRANSFER_GAS_LIMIT,
        ge=21_000,
        description="Gas limit transfer ERC-20"
    )

    gas_topup_multiplier: int = Field(
        default=DEFAULT_GAS_TOPUP_MULTIPLIER,
        ge=1,
        le=10,
        description="Moltiplicatore top-up rispetto al costo gas stimato"
    )

    tx_confirmation_timeout: int = Field(
        default=DEFAULT_TX_CONFIRMATION_TIMEOUT,
        ge=1,
        description="Timeout attesa receipt (secondi)"
    )

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: str = Field(default="INFO", description="Log level")
    log_to_file: bool = Field(default=False, description="Log su file")
    log_dir: Path = Field(default=Path("./logs"), description="Directory log")
    log_format: str = Field(default="json", description="Formato file: json, text")
    audit_enabled: bool = Field(default=False, description="Audit trail su file")

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Valida log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator('network')
    @classmethod
    def validate_network(cls, v: str) -> str:
        """Valida network"""
        valid_networks = [n.value for n in Network]
        v_lower = v.lower()
        if v_lower not in valid_networks:
            raise ValueError(f"Invalid network: {v}. Must be one of {valid_networks}")
        return v_lower

    @field_validator('curve_backend')
    @classmethod
    def validate_curve_backend(cls, v: str) -> str:
        """Valida backend CurveMath"""
        v_lower = v.lower()
        if v_lower not in CURVE_BACKENDS:
            raise ValueError(f"Invalid curve_backend: {v}. Must be one of {list(CURVE_BACKENDS)}")
        return v_lower

    @field_validator('address_format')
    @classmethod
    def validate_address_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ADDRESS_FORMATS:
            raise ValueError(f"Invalid address_format: {v}. Must be one of {list(ADDRESS_FORMATS)}")
        return v_lower

    @field_validator('payment_contract_address', 'registry_contract_address')
    @classmethod
    def validate_contract_address(cls, v: Optional[str]) -> Optional[str]:
        """Valida e normalizza indirizzo (EIP-55)"""
        if v is None or v == "":
            return None
        if not Web3.is_address(v):
            raise ValueError(f"Invalid contract address: {v}")
        return Web3.to_checksum_address(v)

    @field_validator('signature_message')
    @classmethod
    def validate_signature_message(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("signature_message cannot be empty")
        return v

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def get_chain_id(self) -> int:
        """Chain ID effettivo (esplicito o default di network)"""
        return self.chain_id or DEFAULT_CHAIN_IDS[self.network]

    def get_registry_address(self) -> Optional[str]:
        """Registry address (fallback sul payment contract)"""
        return self.registry_contract_address or self.payment_contract_address

    def is_mainnet(self) -> bool:
        return self.network == Network.MAINNET.value

    def to_dict(self) -> dict:
        """Serializza config"""
        return self.model_dump()

    def to_json(self) -> str:
        """Serializza config in JSON"""
        return self.model_dump_json(indent=2)

    @classmethod
    def from_file(cls, path: Path) -> "StealthSettings":
        """Carica config da file JSON"""
        return cls.model_validate_json(path.read_text())

    def save_to_file(self, path: Path) -> None:
        """Salva config su file"""
        path.write_text(self.to_json())

    def __repr__(self) -> str:
        return (
            f"StealthSettings("
            f"network={self.network}, "
            f"rpc_url={self.rpc_url}, "
            f"curve_backend={self.curve_backend}, "
            f"address_format={self.address_format}, "
            f"scan_chunk_size={self.scan_chunk_size})"
        )


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

@lru_cache(maxsize=1)
def get_settings() -> StealthSettings:
    """
    Ottieni istanza cached di StealthSettings.

    Returns:
        StealthSettings: Instance configurazione
    """
    return StealthSettings()


def reload_settings() -> StealthSettings:
    """
    Ricarica settings (invalida cache).

    Usare quando si cambiano environment variables a runtime.
    """
    get_settings.cache_clear()
    return get_settings()


def override_settings(**kwargs) -> StealthSettings:
    """
    Crea settings con valori custom (utile per testing).

    Example:
        >>> test_config = override_settings(network="local", scan_chunk_size=100)
    """
    return StealthSettings(**kwargs)


# ============================================================================
# PROFILE PRESETS
# ============================================================================

def get_development_config() -> StealthSettings:
    """
    Config preset per development (Hardhat/Anvil locale).

    Features:
    - Network local, RPC 127.0.0.1:8545
    - Chunk piccoli, nessun backoff
    - Log DEBUG
    """
    return StealthSettings(
        network=Network.LOCAL.value,
        rpc_url="http://127.0.0.1:8545",
        scan_chunk_size=1_000,
        scan_retry_backoff_seconds=0.0,
        log_level="DEBUG",
    )


def get_testnet_config() -> StealthSettings:
    """Config preset per Base Sepolia"""
    return StealthSettings(
        network=Network.TESTNET.value,
        rpc_url="https://sepolia.base.org",
        log_level="INFO",
    )


# ============================================================================
# CONFIGURATION VALIDATION
# ============================================================================

def validate_config(config: StealthSettings) -> tuple[bool, list[str]]:
    """
    Valida configurazione completa.

    Returns:
        tuple: (is_valid, errors_list)

    Example:
        >>> is_valid, errors = validate_config(get_settings())
    """
    errors = []

    if not config.payment_contract_address:
        errors.append("payment_contract_address is required for scanning")

    if not config.get_registry_address():
        errors.append("registry_contract_address (or payment_contract_address) is required")

    if config.network == Network.MAINNET.value and config.rpc_url.startswith("http://127.0.0.1"):
        errors.append("mainnet configured with a local rpc_url")

    if config.token_transfer_gas_limit < config.native_transfer_gas_limit:
        errors.append("token_transfer_gas_limit must be >= native_transfer_gas_limit")

    return (len(errors) == 0, errors)


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "StealthSettings",
    "CURVE_BACKENDS",
    "get_settings",
    "reload_settings",
    "override_settings",
    "get_development_config",
    "get_testnet_config",
    "validate_config",
]
