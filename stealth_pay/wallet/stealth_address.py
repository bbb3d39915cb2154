"""
StealthPay - Stealth Addresses
================================
Generazione indirizzi one-time, view-tag filter e recupero chiave.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

Protocollo (dual-key ECDH):
    Mittente:
        r casuale, R = r·G
        shared_secret = sha256(compress(r · V))          V = viewing pubkey
        tweak = sha256(shared_secret || be32(k)) mod n
        P = S + tweak·G                                  S = spend pubkey
        address = AddressFormat(P)                       evm | starknet
        view_hint = shared_secret[0]

    Destinatario:
        shared_secret = sha256(compress(v · R))          (v·R = r·V)
        p = (s + tweak) mod n                            p·G = P

Il view hint scarta ~255/256 degli eventi con una sola
moltiplicazione scalare; non è una prova di appartenenza.
"""

from typing import Optional, Union

from stealth_pay.constants import SECP256K1_N, VIEW_HINT_SIZE
from stealth_pay.domain.crypto_core import (
    CurveMath,
    CoincurveCurve,
    compute_sha256,
    bytes_to_scalar,
    reduce_scalar,
    parse_private_key,
)
from stealth_pay.domain.addressing import AddressFormat, EvmAddressFormat
from stealth_pay.domain.models import (
    StealthMetaAddress,
    EphemeralKeyPair,
    GeneratedStealthAddress,
    validate_k,
)
from stealth_pay.errors import (
    InvalidKeyMaterialError,
    InvalidMetaAddressError,
    ZeroPrivateKeyError,
    StealthAddressMismatchError,
)
from stealth_pay.logging_setup import get_logger


logger = get_logger("stealth")


PrivateKeyLike = Union[int, bytes, str]


# ============================================================================
# SHARED PRIMITIVES
# ============================================================================

def compute_shared_secret(curve: CurveMath, private_key: int, public_key: bytes) -> bytes:
    """
    Shared secret ECDH: sha256(compress(private_key · public_key)).

    Simmetrico: r·V == v·R.
    """
    shared_point = curve.scalar_mul(public_key, private_key)
    return compute_sha256(shared_point)


def compute_tweak(shared_secret: bytes, k: int) -> int:
    """
    tweak = sha256(shared_secret || be32(k)) mod n

    Raises:
        InvalidKeyMaterialError: tweak ≡ 0 (mod n)
    """
    digest = compute_sha256(shared_secret + k.to_bytes(4, "big"))
    return reduce_scalar(bytes_to_scalar(digest), "tweak")


def _hint_value(view_hint: Union[int, bytes]) -> int:
    if isinstance(view_hint, (bytes, bytearray)):
        if len(view_hint) != VIEW_HINT_SIZE:
            raise InvalidKeyMaterialError(
                f"View hint must be 1 byte, got {len(view_hint)}",
                code="INVALID_VIEW_HINT"
            )
        return view_hint[0]
    return view_hint


# ============================================================================
# GENERATOR (SENDER SIDE)
# ============================================================================

class StealthAddressGenerator:
    """
    Genera un indirizzo one-time per un meta-address.

    Examples:
        >>> generator = StealthAddressGenerator()
        >>> result = generator.generate(meta_address, k=0)
        >>> result.stealth_address
        '0x...'
    """

    def __init__(self, curve: Optional[CurveMath] = None, address_format: Optional[AddressFormat] = None):
        self.curve = curve or CoincurveCurve()
        self.address_format = address_format or EvmAddressFormat()

    def validate_meta_address(self, meta_address) -> StealthMetaAddress:
        """
        Parse + verifica che entrambe le chiavi siano punti della curva.

        Raises:
            InvalidMetaAddressError
        """
        meta = StealthMetaAddress.parse(meta_address)
        try:
            self.curve.deserialize(meta.spend_public_key)
            self.curve.deserialize(meta.viewing_public_key)
        except InvalidKeyMaterialError as e:
            raise InvalidMetaAddressError(
                "Meta-address contains an invalid curve point",
                code="INVALID_META_POINT",
                details={"reason": e.message}
            ) from e
        return meta

    def _ephemeral_key_pair(self, private_key: Optional[PrivateKeyLike]) -> EphemeralKeyPair:
        if private_key is None:
            scalar = self.curve.random_scalar()
        else:
            scalar = parse_private_key(private_key)
        return EphemeralKeyPair(private_key=scalar, public_key=self.curve.base_mul(scalar))

    def generate(
        self,
        meta_address: Union[StealthMetaAddress, bytes, str],
        k: int = 0,
        ephemeral_private_key: Optional[PrivateKeyLike] = None
    ) -> GeneratedStealthAddress:
        """
        Genera stealth address.

        Args:
            meta_address: Meta-address del destinatario (istanza, bytes o hex)
            k: Indice uint32
            ephemeral_private_key: Chiave effimera fissa (solo per test)

        Returns:
            GeneratedStealthAddress

        Raises:
            InvalidMetaAddressError: meta-address malformato
            ValidationError: k fuori range
            InvalidKeyMaterialError: tweak o punto degenere
        """
        meta = self.validate_meta_address(meta_address)
        validate_k(k)

        ephemeral = self._ephemeral_key_pair(ephemeral_private_key)
        ephemeral_public = ephemeral.public_key

        shared_secret = compute_shared_secret(self.curve, ephemeral.private_key, meta.viewing_public_key)
        tweak = compute_tweak(shared_secret, k)

        stealth_public = self.curve.point_add(meta.spend_public_key, self.curve.base_mul(tweak))
        stealth_address = self.address_format.from_public_key(stealth_public, self.curve)

        logger.debug(
            "Stealth address generated",
            extra_data={
                "address": stealth_address[:10],
                "ephemeral": ephemeral_public.hex()[:16],
                "k": k,
            }
        )

        return GeneratedStealthAddress(
            stealth_address=stealth_address,
            stealth_public_key=stealth_public,
            ephemeral_public_key=ephemeral_public,
            view_hint=shared_secret[0],
            k=k,
        )


# ============================================================================
# VIEW TAG FILTER
# ============================================================================

class ViewTagFilter:
    """
    Filtro veloce: confronta il primo byte dello shared secret.

    False positive rate ~1/256; mai falsi negativi.
    """

    def __init__(self, curve: Optional[CurveMath] = None):
        self.curve = curve or CoincurveCurve()

    def compute_hint(self, ephemeral_public_key: bytes, viewing_private_key: PrivateKeyLike) -> int:
        viewing = parse_private_key(viewing_private_key)
        return compute_shared_secret(self.curve, viewing, ephemeral_public_key)[0]

    def matches(
        self,
        ephemeral_public_key: bytes,
        viewing_private_key: PrivateKeyLike,
        view_hint: Union[int, bytes]
    ) -> bool:
        """
        Raises:
            InvalidKeyMaterialError: ephemeral key malformata
        """
        return self.compute_hint(ephemeral_public_key, viewing_private_key) == _hint_value(view_hint)


# ============================================================================
# KEY RECOVERER (RECIPIENT SIDE)
# ============================================================================

class StealthKeyRecoverer:
    """
    Ricostruisce la chiave privata di un indirizzo stealth.
    """

    def __init__(self, curve: Optional[CurveMath] = None, address_format: Optional[AddressFormat] = None):
        self.curve = curve or CoincurveCurve()
        self.address_format = address_format or EvmAddressFormat()

    def _tweak(self, ephemeral_public_key: bytes, viewing_private_key: PrivateKeyLike, k: int) -> int:
        validate_k(k)
        viewing = parse_private_key(viewing_private_key)
        shared_secret = compute_shared_secret(self.curve, viewing, ephemeral_public_key)
        return compute_tweak(shared_secret, k)

    def recover(
        self,
        ephemeral_public_key: bytes,
        viewing_private_key: PrivateKeyLike,
        spend_private_key: PrivateKeyLike,
        k: int
    ) -> int:
        """
        p = (spend + tweak) mod n

        Raises:
            ZeroPrivateKeyError: p ≡ 0 (mod n)
        """
        tweak = self._tweak(ephemeral_public_key, viewing_private_key, k)
        stealth_private = (parse_private_key(spend_private_key) + tweak) % SECP256K1_N
        if stealth_private == 0:
            raise ZeroPrivateKeyError(
                "Recovered stealth private key is zero",
                code="ZERO_STEALTH_KEY",
                details={"k": k}
            )
        return stealth_private

    def stealth_public_key(
        self,
        ephemeral_public_key: bytes,
        viewing_private_key: PrivateKeyLike,
        spend_public_key: bytes,
        k: int
    ) -> bytes:
        """
        P = S + tweak·G, calcolabile con la sola viewing key.
        """
        tweak = self._tweak(ephemeral_public_key, viewing_private_key, k)
        return self.curve.point_add(spend_public_key, self.curve.base_mul(tweak))

    def recover_and_verify(
        self,
        ephemeral_public_key: bytes,
        viewing_private_key: PrivateKeyLike,
        spend_private_key: PrivateKeyLike,
        k: int,
        stealth_address: str
    ) -> int:
        """
        Recover + verifica che la chiave controlli stealth_address.

        Raises:
            StealthAddressMismatchError
        """
        stealth_private = self.recover(ephemeral_public_key, viewing_private_key, spend_private_key, k)
        derived = self.address_format.from_public_key(self.curve.base_mul(stealth_private), self.curve)

        if not self.address_format.compare(derived, stealth_address):
            raise StealthAddressMismatchError(
                "Recovered key does not control the stealth address",
                code="STEALTH_ADDRESS_MISMATCH",
                details={"expected": stealth_address, "derived": derived}
            )
        return stealth_private


__all__ = [
    "compute_shared_secret",
    "compute_tweak",
    "StealthAddressGenerator",
    "ViewTagFilter",
    "StealthKeyRecoverer",
]
