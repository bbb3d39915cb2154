"""
StealthPay - Stealth Service
==============================
Facade del protocollo: chiavi, registry, generazione, scansione, sweep.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0
"""

from typing import Optional

from stealth_pay.config import StealthSettings, get_settings
from stealth_pay.domain.addressing import get_address_format, private_key_to_address
from stealth_pay.domain.crypto_core import CurveMath, get_curve_backend, parse_private_key
from stealth_pay.domain.models import (
    StealthMetaAddress,
    DerivedKeys,
    GeneratedStealthAddress,
    ScanResult,
)
from stealth_pay.errors import ConfigError, MetaAddressNotRegisteredError
from stealth_pay.network.interfaces import (
    MetaAddressRegistry,
    PaymentLogSource,
    SignatureSource,
    TransactionBroadcaster,
)
from stealth_pay.services.scanner_service import ChainScanner
from stealth_pay.services.sweep_service import StealthWithdrawalSweep, SweepResult
from stealth_pay.wallet.key_derivation import DeterministicKeyDeriver, SignatureSession
from stealth_pay.wallet.stealth_address import (
    StealthAddressGenerator,
    ViewTagFilter,
    StealthKeyRecoverer,
)
from stealth_pay.logging_setup import get_logger, AuditLogger


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("services.stealth")


# ============================================================================
# STEALTH SERVICE
# ============================================================================

class StealthService:
    """
    Service per il protocollo stealth address.

    Features:
    - Derivazione chiavi da firma (con SignatureSession)
    - Registrazione / lookup meta-address
    - Generazione stealth address per un destinatario
    - Scansione pagamenti e recupero chiavi
    - Sweep verso il wallet principale

    Attributes:
        settings: StealthSettings
        curve: Backend CurveMath configurato
        registry / log_source / broadcaster: Interfacce esterne (opzionali)

    Examples:
        >>> service = StealthService.from_settings()
        >>> keys = service.derive_keys(LocalAccountSignatureSource(main_key))
        >>> meta = service.lookup_meta_address("0xRecipient...")
        >>> generated = service.generate(meta, k=0)
    """

    def __init__(
        self,
        registry: Optional[MetaAddressRegistry] = None,
        log_source: Optional[PaymentLogSource] = None,
        broadcaster: Optional[TransactionBroadcaster] = None,
        settings: Optional[StealthSettings] = None,
        curve: Optional[CurveMath] = None,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.settings = settings or get_settings()
        self.curve = curve or get_curve_backend(self.settings.curve_backend)
        self.address_format = get_address_format(self.settings.address_format)
        self.registry = registry
        self.log_source = log_source
        self.broadcaster = broadcaster

        if audit_logger is None and self.settings.audit_enabled:
            audit_logger = AuditLogger(self.settings.log_dir)
        self.audit_logger = audit_logger

        self.deriver = DeterministicKeyDeriver(self.curve)
        self.session = SignatureSession(ttl_seconds=self.settings.signature_cache_ttl_seconds)
        self.generator = StealthAddressGenerator(self.curve, self.address_format)
        self.view_filter = ViewTagFilter(self.curve)
        self.recoverer = StealthKeyRecoverer(self.curve, self.address_format)

        self.scanner = None
        if log_source is not None:
            self.scanner = ChainScanner.from_settings(log_source, self.settings, self.curve, self.audit_logger)

        self.sweeper = None
        if broadcaster is not None:
            self.sweeper = StealthWithdrawalSweep.from_settings(broadcaster, self.settings, self.curve, self.audit_logger)

        logger.info(
            "Stealth service initialized",
            extra_data={
                "network": self.settings.network,
                "backend": self.curve.name,
                "address_format": self.address_format.name,
            }
        )

    @classmethod
    def from_settings(cls, settings: Optional[StealthSettings] = None) -> "StealthService":
        """
        Costruisce il service con gli adapter web3.

        Raises:
            ConfigError: nessun contratto configurato
        """
        from stealth_pay.network.web3_adapters import (
            connect,
            Web3PaymentLogSource,
            Web3MetaAddressRegistry,
            Web3TransactionBroadcaster,
        )

        settings = settings or get_settings()
        w3 = connect(settings.rpc_url, timeout=settings.tx_confirmation_timeout)
        chain_id = settings.get_chain_id()

        log_source = None
        if settings.payment_contract_address:
            log_source = Web3PaymentLogSource(w3, settings.payment_contract_address)

        registry = None
        if settings.get_registry_address():
            registry = Web3MetaAddressRegistry(
                w3,
                settings.get_registry_address(),
                chain_id,
                gas_price=settings.gas_price_wei,
                confirmation_timeout=settings.tx_confirmation_timeout,
            )

        if log_source is None and registry is None:
            raise ConfigError(
                "No contract configured: set STEALTHPAY_PAYMENT_CONTRACT_ADDRESS",
                code="MISSING_CONTRACT_ADDRESS"
            )

        broadcaster = Web3TransactionBroadcaster(w3, chain_id, settings.tx_confirmation_timeout)
        return cls(registry=registry, log_source=log_source, broadcaster=broadcaster, settings=settings)

    def _require(self, component, name: str):
        if component is None:
            raise ConfigError(f"{name} is not configured", code="COMPONENT_NOT_CONFIGURED", details={"component": name})
        return component

    # ========================================================================
    # KEYS
    # ========================================================================

    def derive_keys(self, source: SignatureSource) -> DerivedKeys:
        """Firma (o riusa la firma di sessione) e deriva le chiavi"""
        keys = self.deriver.derive_from_source(source, self.settings.signature_message, self.session)
        logger.info("Stealth keys derived", extra_data={"wallet": source.address})
        return keys

    def register_meta_address(self, keys: DerivedKeys, owner_private_key) -> str:
        """Pubblica il meta-address sul registry; ritorna tx hash"""
        registry = self._require(self.registry, "registry")
        owner_private_key = parse_private_key(owner_private_key)
        tx_hash = registry.register_meta_address(
            keys.spend.public_key, keys.viewing.public_key, owner_private_key
        )
        logger.info("Meta-address registered", extra_data={"tx_hash": tx_hash})
        if self.audit_logger is not None:
            self.audit_logger.log_meta_address_registered(
                owner=private_key_to_address(owner_private_key, self.curve),
                meta_address=keys.meta_address.to_hex(),
                tx_hash=tx_hash,
            )
        return tx_hash

    def lookup_meta_address(self, owner: str) -> StealthMetaAddress:
        """
        Raises:
            MetaAddressNotRegisteredError: chiavi vuote nel registry
        """
        registry = self._require(self.registry, "registry")
        spend, viewing = registry.get_meta_address(owner)
        if not spend or not viewing:
            raise MetaAddressNotRegisteredError(
                f"No meta-address registered for {owner}",
                code="META_ADDRESS_NOT_REGISTERED",
                details={"owner": owner}
            )
        meta = StealthMetaAddress(spend_public_key=spend, viewing_public_key=viewing)
        return self.generator.validate_meta_address(meta)

    # ========================================================================
    # PROTOCOL
    # ========================================================================

    def generate(self, meta_address, k: int = 0, ephemeral_private_key=None) -> GeneratedStealthAddress:
        return self.generator.generate(meta_address, k, ephemeral_private_key)

    def generate_for(self, owner: str, k: int = 0) -> GeneratedStealthAddress:
        """Lookup nel registry + generate"""
        return self.generate(self.lookup_meta_address(owner), k)

    def matches(self, ephemeral_public_key: bytes, viewing_private_key, view_hint) -> bool:
        return self.view_filter.matches(ephemeral_public_key, viewing_private_key, view_hint)

    def recover(self, ephemeral_public_key: bytes, viewing_private_key, spend_private_key, k: int) -> int:
        return self.recoverer.recover(ephemeral_public_key, viewing_private_key, spend_private_key, k)

    def scan(self, keys: DerivedKeys, recover_keys: bool = True, **kwargs) -> ScanResult:
        """
        Scansione con le chiavi derivate.

        kwargs: from_block, to_block, chunk_size, on_progress, cancel_event
        """
        scanner = self._require(self.scanner, "log_source")
        kwargs.setdefault("from_block", self.settings.scan_from_block)
        return scanner.scan(
            keys.viewing.private_key,
            keys.spend.public_key,
            spend_private_key=keys.spend.private_key if recover_keys else None,
            **kwargs
        )

    def sweep(
        self,
        stealth_private_key,
        destination: str,
        token_address: Optional[str] = None,
        funder_private_key=None,
        expected_stealth_address: Optional[str] = None
    ) -> SweepResult:
        """
        Raises:
            ConfigError: broadcaster assente o formato indirizzo non EVM
        """
        # il broadcaster firma transazioni EVM
        if self.address_format.name != "evm":
            raise ConfigError(
                f"Sweep is not supported for {self.address_format.name} addresses",
                code="SWEEP_REQUIRES_EVM",
                details={"address_format": self.address_format.name}
            )
        sweeper = self._require(self.sweeper, "broadcaster")
        return sweeper.sweep(
            stealth_private_key,
            destination,
            token_address=token_address,
            funder_private_key=funder_private_key,
            expected_stealth_address=expected_stealth_address,
        )


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "StealthService",
]
