"""
StealthPay - Custom Exceptions
================================
Gerarchia di eccezioni per il protocollo stealth address.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0
"""

from typing import Optional, Any


# ============================================================================
# BASE EXCEPTION
# ============================================================================

class StealthPayException(Exception):
    """
    Eccezione base per tutte le eccezioni StealthPay.

    Attributes:
        message (str): Messaggio errore
        code (str): Codice errore (es. "SWEEP_001")
        details (dict): Dettagli aggiuntivi (contesto per resume)
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serializza eccezione per CLI/logging"""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            return f"[{self.code}] {self.message} | Details: {self.details}"
        return f"[{self.code}] {self.message}"


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ConfigError(StealthPayException):
    """Errore configurazione sistema"""
    pass


class InvalidConfigError(ConfigError):
    """Configurazione invalida"""
    pass


# ============================================================================
# VALIDATION ERRORS
# ============================================================================

class ValidationError(StealthPayException):
    """Input non valido (indice k, block range, lunghezze)"""
    pass


class InvalidAddressError(ValidationError):
    """Indirizzo EVM non valido"""
    pass


# ============================================================================
# CRYPTO ERRORS
# ============================================================================

class CryptoError(StealthPayException):
    """Errore crittografico generico"""
    pass


class InvalidKeyMaterialError(CryptoError):
    """
    Scalare o punto degenere (zero, identità, punto fuori curva).

    Fatale per la singola derivazione: il chiamante può ri-firmare
    o ri-salare e riprovare.
    """
    pass


class ZeroPrivateKeyError(InvalidKeyMaterialError):
    """Chiave privata stealth uguale a zero modulo n"""
    pass


class InvalidMetaAddressError(CryptoError):
    """Meta-address malformato (versione o lunghezza). Non ritentare."""
    pass


class StealthAddressMismatchError(CryptoError):
    """Chiave recuperata non corrisponde all'indirizzo on-chain"""
    pass


# ============================================================================
# REGISTRY ERRORS
# ============================================================================

class RegistryError(StealthPayException):
    """Errore registry meta-address"""
    pass


class MetaAddressNotRegisteredError(RegistryError):
    """Nessun meta-address registrato per l'owner"""
    pass


# ============================================================================
# NETWORK ERRORS
# ============================================================================

class NetworkError(StealthPayException):
    """Errore backend RPC / trasporto"""
    pass


class RpcFailureError(NetworkError):
    """
    Errore transitorio RPC.

    Quando sollevato dallo scanner, `details` contiene
    `last_scanned_block` e `partial_result` il risultato parziale,
    così la scansione può riprendere.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict] = None,
        partial_result: Any = None
    ):
        super().__init__(message, code=code, details=details)
        self.partial_result = partial_result


# ============================================================================
# WITHDRAWAL ERRORS
# ============================================================================

class WithdrawalError(StealthPayException):
    """Errore sweep stealth address"""
    pass


class NoBalanceError(WithdrawalError):
    """Stealth address senza saldo da spostare"""
    pass


class AlreadyWithdrawnError(NoBalanceError):
    """Stealth address già svuotato da uno sweep precedente"""
    pass


class InsufficientGasError(WithdrawalError):
    """Gas insufficiente per top-up o sweep. Nessun trasferimento eseguito."""
    pass


class SweepError(WithdrawalError):
    """
    Fallimento di una fase dello sweep.

    `details["phase"]` indica la fase ("top_up" o "sweep"); i fondi
    restano sullo stealth address e l'operazione è ripetibile.
    """
    pass


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def format_validation_error(
    field: str,
    value: Any,
    expected: str,
    code: Optional[str] = None
) -> ValidationError:
    """
    Helper per creare ValidationError formattati.

    Args:
        field: Nome campo invalido
        value: Valore ricevuto
        expected: Valore/tipo atteso
        code: Codice errore custom

    Returns:
        ValidationError: Eccezione formattata

    Example:
        >>> raise format_validation_error("k", -1, "uint32")
    """
    return ValidationError(
        message=f"Invalid field '{field}': expected {expected}, got {value}",
        code=code or "VALIDATION_FAILED",
        details={"field": field, "value": value, "expected": expected}
    )


# ============================================================================
# EXPORT ALL
# ============================================================================

__all__ = [
    # Base
    "StealthPayException",

    # Config
    "ConfigError",
    "InvalidConfigError",

    # Validation
    "ValidationError",
    "InvalidAddressError",

    # Crypto
    "CryptoError",
    "InvalidKeyMaterialError",
    "ZeroPrivateKeyError",
    "InvalidMetaAddressError",
    "StealthAddressMismatchError",

    # Registry
    "RegistryError",
    "MetaAddressNotRegisteredError",

    # Network
    "NetworkError",
    "RpcFailureError",

    # Withdrawal
    "WithdrawalError",
    "NoBalanceError",
    "AlreadyWithdrawnError",
    "InsufficientGasError",
    "SweepError",

    # Helpers
    "format_validation_error",
]
