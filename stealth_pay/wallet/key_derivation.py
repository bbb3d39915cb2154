"""
StealthPay - Deterministic Key Derivation
===========================================
Derivazione chiavi spend/viewing da una firma del wallet.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

Algorithm:
    signature_hash = keccak256(signature)
    seed(label, counter) = sha256(DOMAIN || label || signature_hash || be32(counter))
    scalar = seed mod n   (se zero: counter += 1, ri-salatura deterministica)
    public_key = scalar · G

Stessa firma → stesse chiavi, sempre. Il core non persiste nulla:
l'utente ri-deriva firmando di nuovo lo stesso messaggio fisso.
"""

import threading
import time
from typing import Dict, Optional, Tuple

from stealth_pay.constants import (
    KEY_DERIVATION_DOMAIN,
    SPEND_KEY_LABEL,
    VIEWING_KEY_LABEL,
    DEFAULT_SIGNATURE_MESSAGE,
    SECP256K1_N,
)
from stealth_pay.domain.crypto_core import (
    CurveMath,
    CoincurveCurve,
    compute_sha256,
    compute_keccak256,
    bytes_to_scalar,
)
from stealth_pay.domain.models import KeyPair, DerivedKeys
from stealth_pay.errors import format_validation_error, InvalidKeyMaterialError
from stealth_pay.logging_setup import get_logger


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("wallet.keys")

# Limite di sicurezza: seed ≡ 0 (mod n) ha probabilità ~2^-256
MAX_RESALT_ATTEMPTS = 256


# ============================================================================
# DETERMINISTIC KEY DERIVER
# ============================================================================

class DeterministicKeyDeriver:
    """
    Deriva (spend, viewing) da hash di firma a 32 bytes.

    Attributes:
        curve: Backend CurveMath
        domain: Domain separator del protocollo

    Examples:
        >>> deriver = DeterministicKeyDeriver()
        >>> keys = deriver.derive_keys(b"\\x11" * 32)
        >>> keys == deriver.derive_keys(b"\\x11" * 32)
        True
    """

    def __init__(self, curve: Optional[CurveMath] = None, domain: bytes = KEY_DERIVATION_DOMAIN):
        self.curve = curve or CoincurveCurve()
        self.domain = domain

    def _derive_scalar(self, label: bytes, signature_hash: bytes) -> Tuple[int, int]:
        for counter in range(MAX_RESALT_ATTEMPTS):
            seed = compute_sha256(
                self.domain + label + signature_hash + counter.to_bytes(4, "big")
            )
            scalar = bytes_to_scalar(seed) % SECP256K1_N
            if scalar != 0:
                return scalar, counter
            logger.warning("Degenerate seed, re-salting", extra_data={"label": label.decode(), "counter": counter})

        raise InvalidKeyMaterialError(
            "Key derivation exhausted re-salt attempts",
            code="DERIVATION_EXHAUSTED",
            details={"label": label.decode()}
        )

    def derive_key_pair(self, label: bytes, signature_hash: bytes) -> KeyPair:
        """Deriva la coppia per una singola label"""
        scalar, counter = self._derive_scalar(label, signature_hash)
        if counter:
            logger.info("Key derived after re-salt", extra_data={"label": label.decode(), "counter": counter})
        return KeyPair(private_key=scalar, public_key=self.curve.base_mul(scalar))

    def derive_keys(self, signature_hash: bytes) -> DerivedKeys:
        """
        Deriva spend e viewing key da signature_hash.

        Args:
            signature_hash: Hash della firma (32 bytes)

        Returns:
            DerivedKeys: Chiavi spend + viewing

        Raises:
            ValidationError: signature_hash non di 32 bytes
        """
        if not isinstance(signature_hash, (bytes, bytearray)) or len(signature_hash) != 32:
            raise format_validation_error(
                "signature_hash",
                len(signature_hash) if isinstance(signature_hash, (bytes, bytearray)) else type(signature_hash).__name__,
                "32 bytes",
                code="INVALID_SIGNATURE_HASH"
            )

        signature_hash = bytes(signature_hash)
        keys = DerivedKeys(
            spend=self.derive_key_pair(SPEND_KEY_LABEL, signature_hash),
            viewing=self.derive_key_pair(VIEWING_KEY_LABEL, signature_hash),
        )

        logger.debug(
            "Stealth keys derived",
            extra_data={
                "spend_pub": keys.spend.public_key.hex()[:16],
                "viewing_pub": keys.viewing.public_key.hex()[:16],
            }
        )
        return keys

    def derive_from_signature(self, signature: bytes) -> DerivedKeys:
        """Deriva da firma grezza: derive_keys(keccak256(signature))"""
        if not isinstance(signature, (bytes, bytearray)) or not signature:
            raise format_validation_error("signature", signature, "non-empty bytes", code="INVALID_SIGNATURE")
        return self.derive_keys(compute_keccak256(bytes(signature)))

    def derive_from_source(
        self,
        source,
        message: str = DEFAULT_SIGNATURE_MESSAGE,
        session: Optional["SignatureSession"] = None
    ) -> DerivedKeys:
        """
        Firma il messaggio fisso con il SignatureSource e deriva le chiavi.

        Args:
            source: SignatureSource (address + sign)
            message: Messaggio fisso
            session: Cache di sessione opzionale

        Returns:
            DerivedKeys
        """
        if session is not None:
            signature = session.get_signature(source, message)
        else:
            signature = source.sign(message)
        return self.derive_from_signature(signature)


# ============================================================================
# SIGNATURE SESSION
# ============================================================================

class SignatureSession:
    """
    Cache esplicita delle firme per la durata della sessione.

    Una firma per (wallet address, messaggio), valida fino a clear(),
    scadenza TTL o fine processo. Thread-safe.

    Attributes:
        ttl_seconds: Scadenza (None = nessuna)
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Dict[Tuple[str, str], Tuple[bytes, float]] = {}

    @staticmethod
    def _key(address: str, message: str) -> Tuple[str, str]:
        return (address.lower(), message)

    def _is_expired(self, stored_at: float) -> bool:
        return self.ttl_seconds is not None and self._clock() - stored_at >= self.ttl_seconds

    def get_cached(self, address: str, message: str = DEFAULT_SIGNATURE_MESSAGE) -> Optional[bytes]:
        """Firma in cache (None se assente o scaduta)"""
        key = self._key(address, message)
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            signature, stored_at = entry
            if self._is_expired(stored_at):
                del self._cache[key]
                return None
            return signature

    def get_signature(self, source, message: str = DEFAULT_SIGNATURE_MESSAGE) -> bytes:
        """
        Restituisce la firma in cache o chiede al SignatureSource.

        Il lock non è tenuto durante source.sign() (può richiedere
        interazione utente).
        """
        cached = self.get_cached(source.address, message)
        if cached is not None:
            return cached

        signature = bytes(source.sign(message))
        with self._lock:
            self._cache[self._key(source.address, message)] = (signature, self._clock())

        logger.debug("Signature cached for session", extra_data={"address": source.address})
        return signature

    def clear(self, address: Optional[str] = None) -> None:
        """Svuota la cache (tutta o per un singolo wallet)"""
        with self._lock:
            if address is None:
                self._cache.clear()
            else:
                for key in [k for k in self._cache if k[0] == address.lower()]:
                    del self._cache[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


__all__ = [
    "DeterministicKeyDeriver",
    "SignatureSession",
    "MAX_RESALT_ATTEMPTS",
]
