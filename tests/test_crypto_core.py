"""
StealthPay - Crypto Core Tests
================================
Unit tests for hashing, scalars, CurveMath backends and EVM addresses.
"""

import pytest

from stealth_pay.constants import SECP256K1_N
from stealth_pay.domain.addressing import (
    public_key_to_address,
    private_key_to_address,
    validate_address,
    normalize_address,
    compare_addresses,
    shorten_address,
    public_key_to_starknet_address,
    EvmAddressFormat,
    StarknetAddressFormat,
    get_address_format,
)
from stealth_pay.domain.crypto_core import (
    compute_sha256,
    compute_keccak256,
    reduce_scalar,
    parse_private_key,
    generate_keypair,
    get_curve_backend,
    CoincurveCurve,
    PythonCurve,
)
from stealth_pay.errors import (
    ConfigError,
    CryptoError,
    InvalidAddressError,
    InvalidKeyMaterialError,
)


GENERATOR_COMPRESSED = "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
DOUBLE_GENERATOR_COMPRESSED = "02c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5"
ADDRESS_KEY_1 = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
ADDRESS_KEY_2 = "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF"


class TestHashFunctions:
    """Test hash primitives"""

    def test_sha256_vector(self):
        """Test SHA-256 empty string vector"""
        assert compute_sha256(b"").hex() == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_keccak256_vector(self):
        """Test Keccak-256 differs from SHA3-256"""
        assert compute_keccak256(b"").hex() == (
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_hash_rejects_non_bytes(self):
        """Test hash input type check"""
        with pytest.raises(CryptoError):
            compute_sha256("not bytes")
        with pytest.raises(CryptoError):
            compute_keccak256(123)


class TestScalars:
    """Test scalar helpers"""

    def test_reduce_scalar(self):
        """Test modular reduction"""
        assert reduce_scalar(SECP256K1_N + 5) == 5

    def test_reduce_scalar_zero(self):
        """Test zero modulo n is rejected"""
        with pytest.raises(InvalidKeyMaterialError):
            reduce_scalar(SECP256K1_N)

    def test_parse_private_key_formats(self):
        """Test int, bytes and hex are equivalent"""
        raw = (42).to_bytes(32, "big")
        assert parse_private_key(42) == 42
        assert parse_private_key(raw) == 42
        assert parse_private_key("0x" + raw.hex()) == 42
        assert parse_private_key(raw.hex()) == 42

    def test_parse_private_key_invalid(self):
        """Test out-of-range and malformed keys"""
        for value in (0, SECP256K1_N, b"\x01" * 31, "0xzz", 1.5):
            with pytest.raises(InvalidKeyMaterialError):
                parse_private_key(value)


class TestCurveBackends:
    """Test CurveMath implementations"""

    def test_base_mul_generator(self, any_curve):
        """Test 1·G and 2·G"""
        assert any_curve.base_mul(1).hex() == GENERATOR_COMPRESSED
        assert any_curve.base_mul(2).hex() == DOUBLE_GENERATOR_COMPRESSED

    def test_point_add_matches_double(self, any_curve):
        """Test G + G == 2·G"""
        g = any_curve.base_mul(1)
        assert any_curve.point_add(g, g) == any_curve.base_mul(2)

    def test_scalar_mul(self, any_curve):
        """Test a·(b·G) == (a·b)·G"""
        point = any_curve.base_mul(7)
        assert any_curve.scalar_mul(point, 11) == any_curve.base_mul(77)

    def test_backends_agree(self, curve, python_curve):
        """Test coincurve and pure Python produce identical points"""
        for scalar in (3, 0xA11CE, SECP256K1_N - 1, 2 ** 200 + 12345):
            assert curve.base_mul(scalar) == python_curve.base_mul(scalar)

        point = curve.base_mul(0xBEEF)
        assert curve.scalar_mul(point, 99) == python_curve.scalar_mul(point, 99)
        assert curve.serialize_uncompressed(point) == python_curve.serialize_uncompressed(point)

    def test_deserialize_uncompressed(self, any_curve):
        """Test 65-byte points are normalized to compressed form"""
        point = any_curve.base_mul(5)
        uncompressed = any_curve.serialize_uncompressed(point)

        assert len(uncompressed) == 65
        assert uncompressed[0] == 0x04
        assert any_curve.deserialize(uncompressed) == point

    def test_deserialize_invalid(self, any_curve):
        """Test invalid length, prefix and off-curve points"""
        with pytest.raises(InvalidKeyMaterialError):
            any_curve.deserialize(b"\x02" * 10)
        with pytest.raises(InvalidKeyMaterialError):
            any_curve.deserialize(b"\x05" + bytes.fromhex(GENERATOR_COMPRESSED)[1:])
        with pytest.raises(InvalidKeyMaterialError):
            any_curve.deserialize(b"\x02" + b"\xff" * 32)

    def test_point_add_infinity(self, any_curve):
        """Test P + (-P) is rejected"""
        g = any_curve.base_mul(1)
        neg_g = b"\x03" + g[1:]

        with pytest.raises(InvalidKeyMaterialError):
            any_curve.point_add(g, neg_g)

    def test_zero_scalar_rejected(self, any_curve):
        """Test 0·G is rejected"""
        with pytest.raises(InvalidKeyMaterialError):
            any_curve.base_mul(0)

    def test_backend_factory(self):
        """Test get_curve_backend"""
        assert isinstance(get_curve_backend("coincurve"), CoincurveCurve)
        assert isinstance(get_curve_backend("PYTHON"), PythonCurve)

        with pytest.raises(ConfigError):
            get_curve_backend("nope")

    def test_generate_keypair(self, curve):
        """Test random keypair consistency"""
        private_key, public_key = generate_keypair(curve)

        assert 0 < private_key < SECP256K1_N
        assert curve.base_mul(private_key) == public_key


class TestAddressing:
    """Test EVM address derivation"""

    def test_known_addresses(self, any_curve):
        """Test address vectors for keys 1 and 2"""
        assert private_key_to_address(1, any_curve) == ADDRESS_KEY_1
        assert private_key_to_address(2, any_curve) == ADDRESS_KEY_2

    def test_compressed_and_uncompressed_agree(self, curve):
        """Test address does not depend on point encoding"""
        point = curve.base_mul(1)
        assert public_key_to_address(curve.serialize_uncompressed(point)) == public_key_to_address(point)

    def test_validate_address(self):
        """Test address validation"""
        assert validate_address(ADDRESS_KEY_1)
        assert validate_address(ADDRESS_KEY_1.lower())
        assert not validate_address("0x1234")
        assert not validate_address(None)

    def test_normalize_address(self):
        """Test EIP-55 normalization"""
        assert normalize_address(ADDRESS_KEY_1.lower()) == ADDRESS_KEY_1

        with pytest.raises(InvalidAddressError):
            normalize_address("not-an-address")

    def test_compare_and_shorten(self):
        """Test case-insensitive compare and short form"""
        assert compare_addresses(ADDRESS_KEY_1, ADDRESS_KEY_1.lower())
        assert not compare_addresses(ADDRESS_KEY_1, ADDRESS_KEY_2)
        assert shorten_address(ADDRESS_KEY_1) == "0x7E5F45...395Bdf"


class TestAddressFormats:
    """Test per-chain address strategies"""

    def test_starknet_derivation(self, any_curve):
        """Test keccak256(compressed)[:31] as a felt"""
        address = public_key_to_starknet_address(any_curve.base_mul(1), any_curve)

        assert address == "0x" + compute_keccak256(bytes.fromhex(GENERATOR_COMPRESSED))[:31].hex()
        assert len(address) == 64
        assert int(address, 16) < 2 ** 251

    def test_starknet_encoding_independent(self, curve):
        """Test uncompressed input gives the same felt"""
        point = curve.base_mul(2)
        assert public_key_to_starknet_address(curve.serialize_uncompressed(point), curve) == \
            public_key_to_starknet_address(point, curve)

    def test_starknet_validate(self):
        """Test felt252 bounds"""
        fmt = StarknetAddressFormat()

        assert fmt.validate("0x1")
        assert fmt.validate("0x" + "f" * 62)
        assert fmt.validate("0x07" + "f" * 62)
        assert not fmt.validate("0x08" + "0" * 62)
        assert not fmt.validate("1234")
        assert not fmt.validate("0xzz")
        assert not fmt.validate(None)

    def test_starknet_normalize_and_compare(self):
        """Test leading zeros and case do not matter"""
        fmt = StarknetAddressFormat()

        assert fmt.normalize("0x00AB") == "0x" + "0" * 60 + "ab"
        assert fmt.compare("0xAB", "0x00ab")
        assert not fmt.compare("0xab", "0xac")
        assert not fmt.compare("bad", "bad")

        with pytest.raises(InvalidAddressError) as exc_info:
            fmt.normalize(ADDRESS_KEY_1 + "zz")

        assert exc_info.value.details["format"] == "starknet"

    def test_evm_format_delegates(self, curve):
        """Test EVM strategy matches the module functions"""
        fmt = EvmAddressFormat()

        assert fmt.from_public_key(curve.base_mul(1), curve) == ADDRESS_KEY_1
        assert fmt.normalize(ADDRESS_KEY_1.lower()) == ADDRESS_KEY_1
        assert fmt.compare(ADDRESS_KEY_1, ADDRESS_KEY_1.lower())
        assert not fmt.validate("0x1234")

    def test_format_factory(self):
        """Test factory by name"""
        assert isinstance(get_address_format(), EvmAddressFormat)
        assert get_address_format("STARKNET").name == "starknet"

        with pytest.raises(ConfigError) as exc_info:
            get_address_format("solana")

        assert exc_info.value.code == "UNSUPPORTED_ADDRESS_FORMAT"
        assert exc_info.value.details["supported"] == ["evm", "starknet"]
