"""
StealthPay - Pytest Configuration
===================================
Fixtures e configurazione per testing.

Last Updated: 2026-10-19
Version: 1.0.0
"""

import logging

import pytest

# Internal imports
from stealth_pay.config import override_settings
from stealth_pay.domain.crypto_core import CoincurveCurve, PythonCurve
from stealth_pay.network.memory import InMemoryLedger
from stealth_pay.services.scanner_service import ChainScanner
from stealth_pay.services.sweep_service import StealthWithdrawalSweep
from stealth_pay.wallet.key_derivation import DeterministicKeyDeriver
from stealth_pay.wallet.stealth_address import (
    StealthAddressGenerator,
    StealthKeyRecoverer,
    ViewTagFilter,
)


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================

@pytest.fixture
def test_config():
    """Test configuration"""
    return override_settings(
        network="local",
        scan_chunk_size=10_000,
        scan_retry_backoff_seconds=0.0,
        log_level="DEBUG",
    )


@pytest.fixture(autouse=True)
def reset_logging():
    """I logger non devono sopravvivere agli stream catturati"""
    yield
    for name in ("stealthpay", "stealthpay.audit"):
        log = logging.getLogger(name)
        for handler in list(log.handlers):
            handler.close()
            log.removeHandler(handler)
    logging.getLogger("stealthpay").setLevel(logging.NOTSET)


# ============================================================================
# CRYPTO FIXTURES
# ============================================================================

@pytest.fixture
def curve():
    """Backend di default (libsecp256k1)"""
    return CoincurveCurve()


@pytest.fixture
def python_curve():
    """Backend puro Python"""
    return PythonCurve()


@pytest.fixture(params=["coincurve", "python"])
def any_curve(request):
    """Entrambi i backend"""
    return CoincurveCurve() if request.param == "coincurve" else PythonCurve()


# ============================================================================
# KEY FIXTURES
# ============================================================================

@pytest.fixture
def deriver(curve):
    return DeterministicKeyDeriver(curve)


@pytest.fixture
def recipient_keys(deriver):
    """Chiavi spend/viewing del destinatario"""
    return deriver.derive_keys(b"\x11" * 32)


@pytest.fixture
def other_keys(deriver):
    """Chiavi di un secondo destinatario (rumore)"""
    return deriver.derive_keys(b"\x22" * 32)


@pytest.fixture
def meta_address(recipient_keys):
    return recipient_keys.meta_address


@pytest.fixture
def generator(curve):
    return StealthAddressGenerator(curve)


@pytest.fixture
def recoverer(curve):
    return StealthKeyRecoverer(curve)


@pytest.fixture
def view_filter(curve):
    return ViewTagFilter(curve)


# ============================================================================
# LEDGER / SERVICE FIXTURES
# ============================================================================

@pytest.fixture
def ledger():
    """Ledger in memoria (gas price basso per conti leggibili)"""
    return InMemoryLedger(gas_price=10)


@pytest.fixture
def sleeps():
    """Registro dei backoff richiesti dallo scanner"""
    return []


@pytest.fixture
def scanner(ledger, curve, sleeps):
    """Scanner senza attese reali"""
    return ChainScanner(
        ledger,
        curve=curve,
        chunk_size=10_000,
        max_retries=3,
        retry_backoff_seconds=0.5,
        sleep=sleeps.append,
    )


@pytest.fixture
def sweeper(ledger, curve):
    return StealthWithdrawalSweep(ledger, curve=curve)
