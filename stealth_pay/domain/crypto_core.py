"""
StealthPay - Cryptographic Core Layer
=======================================
Primitive crittografiche di basso livello: hash, scalari, CurveMath.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

SECURITY NOTICE:
Questo modulo implementa primitive crittografiche critiche.
Ogni modifica deve essere sottoposta a security audit.

Algorithms:
- Hash: SHA-256 (protocollo), Keccak-256 (indirizzi EVM, firme)
- Curve: secp256k1 (compressed points, 33 bytes)

Backends CurveMath (strategy iniettata, scelta allo startup):
- coincurve: libsecp256k1 (default, production)
- python: aritmetica affine in puro Python (cross-check, debugging)
"""

import hashlib
import secrets
from typing import Optional, Protocol, Tuple

import coincurve
from web3 import Web3

from stealth_pay.constants import (
    SECP256K1_N,
    SECP256K1_P,
    SECP256K1_GX,
    SECP256K1_GY,
    SECP256K1_A,
    SECP256K1_B,
    SCALAR_SIZE,
    COMPRESSED_POINT_SIZE,
    UNCOMPRESSED_POINT_SIZE,
)
from stealth_pay.errors import (
    InvalidConfigError,
    CryptoError,
    InvalidKeyMaterialError,
)
from stealth_pay.logging_setup import get_logger


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("crypto")


# ============================================================================
# HASH FUNCTIONS
# ============================================================================

def compute_sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash.

    SHA-256 è l'hash del protocollo per:
    - Shared secret ECDH
    - Tweak (shared_secret || be32(k))
    - Seed di derivazione chiavi

    Examples:
        >>> compute_sha256(b"").hex()
        'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
    """
    if not isinstance(data, (bytes, bytearray)):
        raise CryptoError(
            f"compute_sha256 requires bytes, got {type(data).__name__}",
            code="INVALID_INPUT_TYPE"
        )
    return hashlib.sha256(data).digest()


def compute_keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 (variante Ethereum, non SHA3-256).

    Examples:
        >>> compute_keccak256(b"").hex()[:16]
        'c5d2460186f7233c'
    """
    if not isinstance(data, (bytes, bytearray)):
        raise CryptoError(
            f"compute_keccak256 requires bytes, got {type(data).__name__}",
            code="INVALID_INPUT_TYPE"
        )
    return bytes(Web3.keccak(bytes(data)))


# ============================================================================
# SCALAR HELPERS
# ============================================================================

def scalar_to_bytes(scalar: int) -> bytes:
    """Serializza scalare in 32 bytes big-endian"""
    return scalar.to_bytes(SCALAR_SIZE, "big")


def bytes_to_scalar(data: bytes) -> int:
    """Interpreta bytes big-endian come intero (non ridotto)"""
    return int.from_bytes(data, "big")


def reduce_scalar(value: int, what: str = "scalar") -> int:
    """
    Riduce modulo n e rifiuta lo zero.

    Raises:
        InvalidKeyMaterialError: se value ≡ 0 (mod n)
    """
    reduced = value % SECP256K1_N
    if reduced == 0:
        raise InvalidKeyMaterialError(
            f"Degenerate {what}: zero modulo curve order",
            code="ZERO_SCALAR",
            details={"what": what}
        )
    return reduced


def parse_private_key(value) -> int:
    """
    Normalizza una chiave privata (int, bytes, hex con/senza 0x).

    Raises:
        InvalidKeyMaterialError: formato invalido o fuori [1, n-1]
    """
    if isinstance(value, int):
        scalar = value
    elif isinstance(value, (bytes, bytearray)):
        if len(value) != SCALAR_SIZE:
            raise InvalidKeyMaterialError(
                f"Private key must be {SCALAR_SIZE} bytes, got {len(value)}",
                code="INVALID_KEY_LENGTH"
            )
        scalar = bytes_to_scalar(value)
    elif isinstance(value, str):
        text = value[2:] if value.lower().startswith("0x") else value
        try:
            scalar = int(text, 16)
        except ValueError:
            raise InvalidKeyMaterialError("Private key is not valid hex", code="INVALID_KEY_HEX")
    else:
        raise InvalidKeyMaterialError(
            f"Unsupported private key type: {type(value).__name__}",
            code="INVALID_KEY_TYPE"
        )

    if not 0 < scalar < SECP256K1_N:
        raise InvalidKeyMaterialError("Private key out of range [1, n-1]", code="KEY_OUT_OF_RANGE")
    return scalar


def generate_random_scalar() -> int:
    """
    Genera scalare casuale uniforme in [1, n-1] (CSPRNG).
    """
    return secrets.randbelow(SECP256K1_N - 1) + 1


# ============================================================================
# CURVE MATH PROTOCOL
# ============================================================================

class CurveMath(Protocol):
    """
    Protocol per aritmetica su secp256k1.

    I punti sono sempre bytes compressi (33 bytes); gli scalari sono int
    ridotti modulo n. Operazioni pure, thread-safe, senza stato condiviso.
    """

    name: str

    def scalar_mul(self, point: bytes, scalar: int) -> bytes:
        """scalar · point"""
        ...

    def base_mul(self, scalar: int) -> bytes:
        """scalar · G"""
        ...

    def point_add(self, p1: bytes, p2: bytes) -> bytes:
        """p1 + p2"""
        ...

    def deserialize(self, data: bytes) -> bytes:
        """Valida punto (33 o 65 bytes) e restituisce la forma compressa"""
        ...

    def serialize_uncompressed(self, point: bytes) -> bytes:
        """Forma non compressa 0x04 || X || Y (65 bytes)"""
        ...

    def random_scalar(self) -> int:
        """Scalare casuale in [1, n-1]"""
        ...


def _check_point_length(data: bytes) -> bytes:
    if not isinstance(data, (bytes, bytearray)):
        raise InvalidKeyMaterialError(
            f"Point must be bytes, got {type(data).__name__}",
            code="INVALID_POINT_TYPE"
        )
    if len(data) not in (COMPRESSED_POINT_SIZE, UNCOMPRESSED_POINT_SIZE):
        raise InvalidKeyMaterialError(
            f"Invalid point length: {len(data)}",
            code="INVALID_POINT_LENGTH",
            details={"length": len(data)}
        )
    return bytes(data)


# ============================================================================
# COINCURVE BACKEND (libsecp256k1)
# ============================================================================

class CoincurveCurve:
    """
    Backend CurveMath su libsecp256k1 (coincurve).

    Examples:
        >>> curve = CoincurveCurve()
        >>> len(curve.base_mul(1))
        33
    """

    name = "coincurve"

    def _load(self, data: bytes) -> coincurve.PublicKey:
        data = _check_point_length(data)
        try:
            return coincurve.PublicKey(data)
        except ValueError as e:
            raise InvalidKeyMaterialError(
                f"Invalid curve point: {e}",
                code="INVALID_POINT"
            ) from e

    def scalar_mul(self, point: bytes, scalar: int) -> bytes:
        tweak = scalar_to_bytes(reduce_scalar(scalar))
        try:
            return self._load(point).multiply(tweak).format(compressed=True)
        except ValueError as e:
            raise InvalidKeyMaterialError(f"Scalar multiplication failed: {e}", code="EC_MUL") from e

    def base_mul(self, scalar: int) -> bytes:
        secret = scalar_to_bytes(reduce_scalar(scalar))
        try:
            return coincurve.PublicKey.from_secret(secret).format(compressed=True)
        except ValueError as e:
            raise InvalidKeyMaterialError(f"Base multiplication failed: {e}", code="EC_MUL") from e

    def point_add(self, p1: bytes, p2: bytes) -> bytes:
        keys = [self._load(p1), self._load(p2)]
        try:
            return coincurve.PublicKey.combine_keys(keys).format(compressed=True)
        except ValueError as e:
            # p1 = -p2: somma nel punto all'infinito
            raise InvalidKeyMaterialError(
                "Point addition resulted in point at infinity",
                code="EC_INFINITY"
            ) from e

    def deserialize(self, data: bytes) -> bytes:
        return self._load(data).format(compressed=True)

    def serialize_uncompressed(self, point: bytes) -> bytes:
        return self._load(point).format(compressed=False)

    def random_scalar(self) -> int:
        return generate_random_scalar()


# ============================================================================
# PURE PYTHON BACKEND
# ============================================================================

class Point:
    """
    Punto affine su secp256k1 (None, None = punto all'infinito).
    """

    __slots__ = ("x", "y")

    def __init__(self, x: Optional[int], y: Optional[int]):
        self.x = x
        self.y = y

    def is_infinity(self) -> bool:
        """Check se punto all'infinito"""
        return self.x is None and self.y is None

    def __eq__(self, other) -> bool:
        if not isinstance(other, Point):
            return False
        return self.x == other.x and self.y == other.y

    def __repr__(self) -> str:
        if self.is_infinity():
            return "Point(INF)"
        return f"Point({hex(self.x)[:10]}..., {hex(self.y)[:10]}...)"


INFINITY = Point(None, None)
GENERATOR = Point(SECP256K1_GX, SECP256K1_GY)


class ECC:
    """
    Operazioni affini su secp256k1.
    """

    @staticmethod
    def is_on_curve(point: Point) -> bool:
        if point.is_infinity():
            return True
        return (point.y * point.y - pow(point.x, 3, SECP256K1_P) - SECP256K1_B) % SECP256K1_P == 0

    @staticmethod
    def point_add(p1: Point, p2: Point) -> Point:
        """
        Addizione di punti.

        Args:
            p1: Primo punto
            p2: Secondo punto

        Returns:
            Point: p1 + p2
        """
        if p1.is_infinity():
            return p2
        if p2.is_infinity():
            return p1

        if p1.x == p2.x:
            if (p1.y + p2.y) % SECP256K1_P == 0:
                return INFINITY
            # Point doubling
            s = (3 * p1.x * p1.x + SECP256K1_A) * pow(2 * p1.y, -1, SECP256K1_P)
        else:
            s = (p2.y - p1.y) * pow(p2.x - p1.x, -1, SECP256K1_P)
        s %= SECP256K1_P

        x = (s * s - p1.x - p2.x) % SECP256K1_P
        y = (s * (p1.x - x) - p1.y) % SECP256K1_P

        return Point(x, y)

    @staticmethod
    def point_multiply(k: int, point: Point) -> Point:
        """
        Moltiplicazione scalare double-and-add.

        Returns:
            Point: k * point
        """
        k %= SECP256K1_N
        if k == 0 or point.is_infinity():
            return INFINITY

        result = INFINITY
        addend = point

        while k:
            if k & 1:
                result = ECC.point_add(result, addend)
            addend = ECC.point_add(addend, addend)
            k >>= 1

        return result

    @staticmethod
    def compress_point(point: Point) -> bytes:
        """Punto compresso (33 bytes)"""
        if point.is_infinity():
            raise InvalidKeyMaterialError("Cannot serialize point at infinity", code="EC_INFINITY")

        prefix = b'\x02' if point.y % 2 == 0 else b'\x03'
        return prefix + point.x.to_bytes(32, 'big')

    @staticmethod
    def decompress_point(data: bytes) -> Point:
        """
        Decodifica punto compresso o non compresso, verificando la curva.

        Raises:
            InvalidKeyMaterialError: prefisso invalido o punto fuori curva
        """
        data = _check_point_length(data)
        prefix = data[0]

        if len(data) == UNCOMPRESSED_POINT_SIZE:
            if prefix != 0x04:
                raise InvalidKeyMaterialError("Invalid uncompressed point prefix", code="INVALID_POINT")
            point = Point(int.from_bytes(data[1:33], 'big'), int.from_bytes(data[33:], 'big'))
        else:
            if prefix not in (0x02, 0x03):
                raise InvalidKeyMaterialError("Invalid compressed point prefix", code="INVALID_POINT")
            x = int.from_bytes(data[1:], 'big')
            if x >= SECP256K1_P:
                raise InvalidKeyMaterialError("Point x out of field", code="INVALID_POINT")

            # y^2 = x^3 + 7 (mod p)
            y_squared = (pow(x, 3, SECP256K1_P) + SECP256K1_B) % SECP256K1_P
            y = pow(y_squared, (SECP256K1_P + 1) // 4, SECP256K1_P)

            if (y % 2 == 0 and prefix == 0x03) or (y % 2 == 1 and prefix == 0x02):
                y = SECP256K1_P - y
            point = Point(x, y)

        if point.x >= SECP256K1_P or point.y >= SECP256K1_P or not ECC.is_on_curve(point):
            raise InvalidKeyMaterialError("Point is not on secp256k1", code="INVALID_POINT")

        return point


class PythonCurve:
    """
    Backend CurveMath in puro Python (lento, non constant-time).

    Usato per cross-check del backend coincurve e per debugging.
    """

    name = "python"

    def scalar_mul(self, point: bytes, scalar: int) -> bytes:
        k = reduce_scalar(scalar)
        result = ECC.point_multiply(k, ECC.decompress_point(point))
        return ECC.compress_point(result)

    def base_mul(self, scalar: int) -> bytes:
        return ECC.compress_point(ECC.point_multiply(reduce_scalar(scalar), GENERATOR))

    def point_add(self, p1: bytes, p2: bytes) -> bytes:
        return ECC.compress_point(
            ECC.point_add(ECC.decompress_point(p1), ECC.decompress_point(p2))
        )

    def deserialize(self, data: bytes) -> bytes:
        return ECC.compress_point(ECC.decompress_point(data))

    def serialize_uncompressed(self, point: bytes) -> bytes:
        p = ECC.decompress_point(point)
        return b'\x04' + p.x.to_bytes(32, 'big') + p.y.to_bytes(32, 'big')

    def random_scalar(self) -> int:
        return generate_random_scalar()


# ============================================================================
# BACKEND FACTORY
# ============================================================================

def get_curve_backend(name: str = "coincurve") -> CurveMath:
    """
    Factory per backend CurveMath.

    Args:
        name: "coincurve" o "python"

    Raises:
        InvalidConfigError: backend non supportato

    Examples:
        >>> get_curve_backend("python").name
        'python'
    """
    name = name.lower()

    if name == "coincurve":
        return CoincurveCurve()

    elif name == "python":
        return PythonCurve()

    raise InvalidConfigError(
        f"Unsupported curve backend: {name}",
        code="UNSUPPORTED_CURVE_BACKEND",
        details={"supported": ["coincurve", "python"]}
    )


def generate_keypair(curve: Optional[CurveMath] = None) -> Tuple[int, bytes]:
    """
    Genera keypair casuale (private scalar, compressed public key).
    """
    curve = curve or CoincurveCurve()
    private_key = curve.random_scalar()
    return private_key, curve.base_mul(private_key)


__all__ = [
    "compute_sha256",
    "compute_keccak256",
    "scalar_to_bytes",
    "bytes_to_scalar",
    "reduce_scalar",
    "parse_private_key",
    "generate_random_scalar",
    "generate_keypair",
    "CurveMath",
    "CoincurveCurve",
    "PythonCurve",
    "Point",
    "ECC",
    "get_curve_backend",
]
