"""
StealthPay - Configuration Tests
==================================
Unit tests for StealthSettings and config helpers.
"""

import json

import pytest
from web3 import Web3

from stealth_pay.config import (
    StealthSettings,
    override_settings,
    get_development_config,
    get_settings,
    get_testnet_config,
    reload_settings,
    validate_config,
)
from stealth_pay.constants import DEFAULT_SCAN_CHUNK_SIZE, DEFAULT_SIGNATURE_MESSAGE


CONTRACT = "0x036cbd53842c5426634e7929541ec2318f3dcf7e"


class TestStealthSettings:
    """Test settings loading and validation"""

    def test_defaults(self):
        """Test default values"""
        config = StealthSettings(_env_file=None)

        assert config.scan_chunk_size == DEFAULT_SCAN_CHUNK_SIZE
        assert config.signature_message == DEFAULT_SIGNATURE_MESSAGE
        assert config.curve_backend == "coincurve"
        assert config.address_format == "evm"
        assert config.payment_contract_address is None

    def test_env_override(self, monkeypatch):
        """Test STEALTHPAY_ environment variables"""
        monkeypatch.setenv("STEALTHPAY_SCAN_CHUNK_SIZE", "2000")
        monkeypatch.setenv("STEALTHPAY_NETWORK", "LOCAL")

        config = StealthSettings(_env_file=None)

        assert config.scan_chunk_size == 2000
        assert config.network == "local"

    def test_invalid_values(self):
        """Test validators reject bad input"""
        with pytest.raises(ValueError):
            override_settings(network="moon")
        with pytest.raises(ValueError):
            override_settings(curve_backend="openssl")
        with pytest.raises(ValueError):
            override_settings(address_format="solana")
        with pytest.raises(ValueError):
            override_settings(log_level="LOUD")
        with pytest.raises(ValueError):
            override_settings(scan_chunk_size=0)
        with pytest.raises(ValueError):
            override_settings(payment_contract_address="0x1234")
        with pytest.raises(ValueError):
            override_settings(signature_message="   ")

    def test_contract_address_checksummed(self):
        """Test contract addresses are normalized to EIP-55"""
        config = override_settings(payment_contract_address=CONTRACT)

        assert config.payment_contract_address == Web3.to_checksum_address(CONTRACT)
        assert config.get_registry_address() == config.payment_contract_address

    def test_chain_id(self):
        """Test explicit and per-network chain id"""
        assert override_settings(network="local").get_chain_id() == 31337
        assert override_settings(network="mainnet").get_chain_id() == 8453
        assert override_settings(network="local", chain_id=1337).get_chain_id() == 1337

    def test_address_format_normalized(self):
        """Test address format is lower-cased"""
        assert override_settings(address_format="StarkNet").address_format == "starknet"

    def test_log_level_normalized(self):
        """Test log level is upper-cased"""
        assert override_settings(log_level="debug").log_level == "DEBUG"

    def test_development_preset(self):
        """Test development profile"""
        config = get_development_config()

        assert config.network == "local"
        assert config.scan_retry_backoff_seconds == 0.0


class TestValidateConfig:
    """Test full configuration validation"""

    def test_missing_contracts(self):
        """Test scanning requires a payment contract"""
        is_valid, errors = validate_config(override_settings(network="local"))

        assert not is_valid
        assert len(errors) == 2

    def test_valid_config(self):
        """Test complete configuration"""
        is_valid, errors = validate_config(
            override_settings(network="local", payment_contract_address=CONTRACT)
        )

        assert is_valid
        assert errors == []

    def test_mainnet_local_rpc(self):
        """Test mainnet with a local node is flagged"""
        is_valid, errors = validate_config(
            override_settings(network="mainnet", payment_contract_address=CONTRACT)
        )

        assert not is_valid
        assert any("mainnet" in e for e in errors)


class TestConfigHelpers:
    """Test serialization, presets and cache"""

    def test_save_and_load(self, tmp_path):
        """Test JSON file roundtrip"""
        config = override_settings(network="local", scan_chunk_size=500, payment_contract_address=CONTRACT)
        path = tmp_path / "stealthpay.json"

        config.save_to_file(path)
        loaded = StealthSettings.from_file(path)

        assert loaded.scan_chunk_size == 500
        assert loaded.payment_contract_address == config.payment_contract_address
        assert loaded.to_dict() == config.to_dict()

    def test_to_json(self):
        """Test JSON export"""
        data = json.loads(override_settings(network="local").to_json())

        assert data["network"] == "local"
        assert "scan_chunk_size" in data

    def test_reload_settings(self, monkeypatch):
        """Test cache invalidation picks up new environment"""
        monkeypatch.setenv("STEALTHPAY_SCAN_CHUNK_SIZE", "1234")
        try:
            assert reload_settings().scan_chunk_size == 1234
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()

    def test_testnet_preset(self):
        """Test Base Sepolia profile"""
        config = get_testnet_config()

        assert config.network == "testnet"
        assert config.get_chain_id() == 84532
        assert not config.is_mainnet()
        assert override_settings(network="mainnet").is_mainnet()
