"""
StealthPay - Stealth Service Tests
====================================
End-to-end tests of the service facade on the in-memory ledger.
"""

import pytest

from stealth_pay.config import override_settings
from stealth_pay.domain.addressing import private_key_to_address
from stealth_pay.errors import ConfigError, MetaAddressNotRegisteredError
from stealth_pay.network.interfaces import (
    MetaAddressRegistry,
    PaymentLogSource,
    TransactionBroadcaster,
)
from stealth_pay.network.web3_adapters import LocalAccountSignatureSource
from stealth_pay.services.stealth_service import StealthService


RECIPIENT_KEY = 0xA11CE
MAIN_WALLET = private_key_to_address(0xD00D)


@pytest.fixture
def service(ledger, test_config):
    return StealthService(registry=ledger, log_source=ledger, broadcaster=ledger, settings=test_config)


@pytest.fixture
def recipient():
    return LocalAccountSignatureSource(RECIPIENT_KEY)


class TestStealthService:
    """Test StealthService"""

    def test_ledger_implements_interfaces(self, ledger):
        """Test in-memory ledger satisfies the external protocols"""
        assert isinstance(ledger, MetaAddressRegistry)
        assert isinstance(ledger, PaymentLogSource)
        assert isinstance(ledger, TransactionBroadcaster)

    def test_full_cycle(self, service, ledger, recipient):
        """Test derive → register → pay → scan → sweep"""
        keys = service.derive_keys(recipient)
        tx_hash = service.register_meta_address(keys, RECIPIENT_KEY)
        assert tx_hash.startswith("0x")

        assert service.lookup_meta_address(recipient.address) == keys.meta_address

        generated = service.generate_for(recipient.address, k=0)
        ledger.emit_payment(generated, 10 ** 17)
        ledger.mine(3)

        result = service.scan(keys)
        assert len(result.matches) == 1
        match = result.matches[0]
        assert match.stealth_address == generated.stealth_address

        sweep = service.sweep(
            match.stealth_private_key,
            MAIN_WALLET,
            expected_stealth_address=match.stealth_address,
        )
        assert ledger.get_native_balance(MAIN_WALLET) == sweep.amount
        assert ledger.get_native_balance(generated.stealth_address) == 0

    def test_keys_stable_across_sessions(self, service, ledger, test_config, recipient):
        """Test re-derivation in a new session gives the same meta-address"""
        first = service.derive_keys(recipient)
        second = StealthService(settings=test_config).derive_keys(recipient)

        assert first.meta_address == second.meta_address

    def test_signature_cached_for_session(self, service, recipient):
        """Test wallet is asked to sign once per session"""
        service.derive_keys(recipient)
        service.derive_keys(recipient)

        assert len(service.session) == 1

    def test_matches_and_recover(self, service, recipient):
        """Test view hint check and key recovery via the facade"""
        keys = service.derive_keys(recipient)
        generated = service.generate(keys.meta_address, k=2)

        assert service.matches(generated.ephemeral_public_key, keys.viewing.private_key, generated.view_hint)
        key = service.recover(generated.ephemeral_public_key, keys.viewing.private_key, keys.spend.private_key, 2)
        assert private_key_to_address(key) == generated.stealth_address

    def test_unregistered_owner(self, service):
        """Test lookup of an owner with no meta-address"""
        with pytest.raises(MetaAddressNotRegisteredError):
            service.lookup_meta_address(MAIN_WALLET)

    def test_missing_component(self, test_config, recipient):
        """Test operations needing an absent interface"""
        service = StealthService(settings=test_config)
        keys = service.derive_keys(recipient)

        with pytest.raises(ConfigError) as exc_info:
            service.scan(keys)
        assert exc_info.value.code == "COMPONENT_NOT_CONFIGURED"

        with pytest.raises(ConfigError):
            service.lookup_meta_address(MAIN_WALLET)

    def test_from_settings_requires_contract(self, test_config):
        """Test web3 wiring without contract addresses"""
        with pytest.raises(ConfigError) as exc_info:
            StealthService.from_settings(test_config)
        assert exc_info.value.code == "MISSING_CONTRACT_ADDRESS"

    def test_scan_default_from_block(self, ledger, recipient):
        """Test scan starts at the configured block"""
        settings = override_settings(network="local", scan_from_block=5, scan_retry_backoff_seconds=0.0)
        service = StealthService(log_source=ledger, settings=settings)
        ledger.mine(8)

        result = service.scan(service.derive_keys(recipient))

        assert result.from_block == 5
        assert ledger.log_queries == [(5, 8)]

    def test_audit_registration(self, ledger, recipient, tmp_path):
        """Test audit trail when enabled"""
        settings = override_settings(network="local", audit_enabled=True, log_dir=tmp_path)
        service = StealthService(registry=ledger, settings=settings)
        service.register_meta_address(service.derive_keys(recipient), RECIPIENT_KEY)

        content = (tmp_path / "audit.log").read_text()
        assert "Meta-address registered" in content
        assert recipient.address in content

    def test_starknet_address_format(self, ledger, recipient):
        """Test configured address format flows to generate and scan"""
        settings = override_settings(network="local", address_format="starknet", scan_retry_backoff_seconds=0.0)
        service = StealthService(log_source=ledger, broadcaster=ledger, settings=settings)
        keys = service.derive_keys(recipient)

        generated = service.generate(keys.meta_address, k=1)
        ledger.emit_payment(generated, 10 ** 17)

        assert len(generated.stealth_address) == 64
        result = service.scan(keys)
        assert [m.stealth_address for m in result.matches] == [generated.stealth_address]

        with pytest.raises(ConfigError) as exc_info:
            service.sweep(result.matches[0].stealth_private_key, MAIN_WALLET)
        assert exc_info.value.code == "SWEEP_REQUIRES_EVM"
        assert ledger.sent == []
