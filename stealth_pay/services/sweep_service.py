"""
StealthPay - Stealth Withdrawal Sweep
=======================================
Sweep in due fasi dei fondi da uno stealth address al wallet principale.

Security Level: CRITICAL
Last Updated: 2026-10-19
Version: 1.0.0

Protocollo (token ERC-20):
    1. TOP-UP: se lo stealth address non ha gas, il funder invia
       gas_price * gas_limit * multiplier in nativo
    2. SWEEP: lo stealth address trasferisce l'intero saldo token

Protocollo (nativo):
    SWEEP unico di (balance - gas_price * 21000)

Ogni transazione attende conferma. Il protocollo non è atomico:
una fase fallita lascia i fondi sullo stealth address e la fase 2
non viene mai ritentata automaticamente.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from stealth_pay.config import StealthSettings
from stealth_pay.constants import (
    NATIVE_TRANSFER_GAS_LIMIT,
    TOKEN_TRANSFER_GAS_LIMIT,
    DEFAULT_GAS_TOPUP_MULTIPLIER,
    SweepPhase,
)
from stealth_pay.domain.addressing import (
    private_key_to_address,
    normalize_address,
    compare_addresses,
    shorten_address,
)
from stealth_pay.domain.crypto_core import CurveMath, CoincurveCurve, parse_private_key
from stealth_pay.errors import (
    AlreadyWithdrawnError,
    InsufficientGasError,
    NoBalanceError,
    RpcFailureError,
    StealthAddressMismatchError,
    SweepError,
)
from stealth_pay.network.interfaces import TransactionBroadcaster, TransferRequest, TxReceipt
from stealth_pay.logging_setup import get_logger, AuditLogger


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("services.sweep")


# ============================================================================
# RESULT
# ============================================================================

@dataclass(frozen=True)
class SweepResult:
    """
    Esito di uno sweep completato.

    Attributes:
        stealth_address: Indirizzo svuotato
        destination: Wallet principale
        amount: Amount trasferito (wei o unità token)
        token_address: Token (None = nativo)
        sweep_tx_hash: Hash della fase 2
        topup_tx_hash: Hash della fase 1 (None se non necessaria)
        topup_amount: Gas inviato dal funder
        gas_price: Gas price usato
    """

    stealth_address: str
    destination: str
    amount: int
    token_address: Optional[str]
    sweep_tx_hash: str
    topup_tx_hash: Optional[str] = None
    topup_amount: int = 0
    gas_price: int = 0

    @property
    def is_token(self) -> bool:
        return self.token_address is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stealth_address": self.stealth_address,
            "destination": self.destination,
            "amount": str(self.amount),
            "token_address": self.token_address,
            "sweep_tx_hash": self.sweep_tx_hash,
            "topup_tx_hash": self.topup_tx_hash,
            "topup_amount": str(self.topup_amount),
            "gas_price": self.gas_price,
        }


# ============================================================================
# SWEEP SERVICE
# ============================================================================

class StealthWithdrawalSweep:
    """
    Sweep stealth address → destination.

    Attributes:
        broadcaster: TransactionBroadcaster
        gas_price: Override gas price (None = broadcaster)
        native_gas_limit: Gas limit trasferimento nativo
        token_gas_limit: Gas limit transfer ERC-20
        topup_multiplier: Margine del top-up

    Examples:
        >>> sweeper = StealthWithdrawalSweep(broadcaster)
        >>> result = sweeper.sweep(stealth_key, "0xMain...", token_address=usdc,
        ...                        funder_private_key=main_key)
        >>> result.topup_tx_hash, result.sweep_tx_hash
    """

    def __init__(
        self,
        broadcaster: TransactionBroadcaster,
        curve: Optional[CurveMath] = None,
        gas_price: Optional[int] = None,
        native_gas_limit: int = NATIVE_TRANSFER_GAS_LIMIT,
        token_gas_limit: int = TOKEN_TRANSFER_GAS_LIMIT,
        topup_multiplier: int = DEFAULT_GAS_TOPUP_MULTIPLIER,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.broadcaster = broadcaster
        self.curve = curve or CoincurveCurve()
        self.gas_price = gas_price
        self.native_gas_limit = native_gas_limit
        self.token_gas_limit = token_gas_limit
        self.topup_multiplier = topup_multiplier
        self.audit_logger = audit_logger

    @classmethod
    def from_settings(
        cls,
        broadcaster: TransactionBroadcaster,
        settings: StealthSettings,
        curve: Optional[CurveMath] = None,
        audit_logger: Optional[AuditLogger] = None
    ) -> "StealthWithdrawalSweep":
        return cls(
            broadcaster,
            curve=curve,
            gas_price=settings.gas_price_wei,
            native_gas_limit=settings.native_transfer_gas_limit,
            token_gas_limit=settings.token_transfer_gas_limit,
            topup_multiplier=settings.gas_topup_multiplier,
            audit_logger=audit_logger,
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def sweep(
        self,
        stealth_private_key,
        destination: str,
        token_address: Optional[str] = None,
        funder_private_key=None,
        expected_stealth_address: Optional[str] = None
    ) -> SweepResult:
        """
        Sposta l'intero saldo dello stealth address su destination.

        Args:
            stealth_private_key: Chiave recuperata dallo scanner
            destination: Wallet principale
            token_address: Token ERC-20 (None = nativo)
            funder_private_key: Wallet che paga il top-up del gas
            expected_stealth_address: Controllo di coerenza sulla chiave

        Returns:
            SweepResult

        Raises:
            StealthAddressMismatchError: chiave non corrispondente
            NoBalanceError / AlreadyWithdrawnError: niente da spostare
            InsufficientGasError: gas non copribile (nessun trasferimento)
            SweepError: fase fallita (details["phase"], resumable)
        """
        stealth_key = parse_private_key(stealth_private_key)
        destination = normalize_address(destination)
        stealth_address = private_key_to_address(stealth_key, self.curve)

        if expected_stealth_address and not compare_addresses(stealth_address, expected_stealth_address):
            raise StealthAddressMismatchError(
                "Private key does not control the expected stealth address",
                code="STEALTH_ADDRESS_MISMATCH",
                details={"expected": expected_stealth_address, "derived": stealth_address}
            )

        gas_price = self._resolve_gas_price()

        logger.info(
            "Sweep started",
            extra_data={
                "stealth_address": shorten_address(stealth_address),
                "destination": shorten_address(destination),
                "token": token_address or "native",
                "gas_price": gas_price,
            }
        )

        if token_address is None:
            result = self._sweep_native(stealth_key, stealth_address, destination, gas_price)
        else:
            result = self._sweep_token(
                stealth_key, stealth_address, destination,
                normalize_address(token_address), gas_price, funder_private_key
            )

        logger.info("Sweep completed", extra_data=result.to_dict())
        if self.audit_logger is not None:
            self.audit_logger.log_sweep(
                stealth_address=result.stealth_address,
                destination=result.destination,
                amount=result.amount,
                token=result.token_address,
                sweep_tx_hash=result.sweep_tx_hash,
                topup_tx_hash=result.topup_tx_hash,
            )
        return result

    # ========================================================================
    # NATIVE
    # ========================================================================

    def _sweep_native(self, stealth_key: int, stealth_address: str, destination: str, gas_price: int) -> SweepResult:
        balance = self.broadcaster.get_native_balance(stealth_address)
        if balance == 0:
            raise self._empty_error(stealth_address, None)

        fee = gas_price * self.native_gas_limit
        if balance <= fee:
            raise InsufficientGasError(
                "Stealth balance does not cover the transfer fee",
                code="BALANCE_BELOW_FEE",
                details={"stealth_address": stealth_address, "balance": balance, "fee": fee}
            )

        amount = balance - fee
        receipt = self._send(
            SweepPhase.SWEEP,
            TransferRequest(
                private_key=stealth_key,
                to=destination,
                value=amount,
                gas_price=gas_price,
                gas_limit=self.native_gas_limit,
            ),
            stealth_address,
        )

        return SweepResult(
            stealth_address=stealth_address,
            destination=destination,
            amount=amount,
            token_address=None,
            sweep_tx_hash=receipt.tx_hash,
            gas_price=gas_price,
        )

    # ========================================================================
    # TOKEN
    # ========================================================================

    def _sweep_token(
        self,
        stealth_key: int,
        stealth_address: str,
        destination: str,
        token_address: str,
        gas_price: int,
        funder_private_key
    ) -> SweepResult:
        balance = self.broadcaster.get_token_balance(token_address, stealth_address)
        if balance == 0:
            raise self._empty_error(stealth_address, token_address)

        required_gas = gas_price * self.token_gas_limit
        native = self.broadcaster.get_native_balance(stealth_address)

        topup_tx_hash = None
        topup_amount = 0
        if native < required_gas:
            topup_amount = required_gas * self.topup_multiplier
            topup_tx_hash = self._top_up(stealth_address, topup_amount, gas_price, funder_private_key)

        # Fase 2: saldo riletto dopo il top-up
        amount = self.broadcaster.get_token_balance(token_address, stealth_address)
        if amount == 0:
            raise NoBalanceError(
                "Token balance disappeared between phases",
                code="NO_BALANCE",
                details={"stealth_address": stealth_address, "token": token_address, "topup_tx_hash": topup_tx_hash}
            )

        receipt = self._send(
            SweepPhase.SWEEP,
            TransferRequest(
                private_key=stealth_key,
                to=destination,
                token_address=token_address,
                token_amount=amount,
                gas_price=gas_price,
                gas_limit=self.token_gas_limit,
            ),
            stealth_address,
            topup_tx_hash,
        )

        return SweepResult(
            stealth_address=stealth_address,
            destination=destination,
            amount=amount,
            token_address=token_address,
            sweep_tx_hash=receipt.tx_hash,
            topup_tx_hash=topup_tx_hash,
            topup_amount=topup_amount,
            gas_price=gas_price,
        )

    def _top_up(self, stealth_address: str, topup_amount: int, gas_price: int, funder_private_key) -> str:
        if funder_private_key is None:
            raise InsufficientGasError(
                "Stealth address has no gas and no funder was provided",
                code="NO_FUNDER",
                details={"stealth_address": stealth_address, "required": topup_amount}
            )

        funder_key = parse_private_key(funder_private_key)
        funder_address = private_key_to_address(funder_key, self.curve)
        funder_balance = self.broadcaster.get_native_balance(funder_address)
        funder_cost = topup_amount + gas_price * self.native_gas_limit

        if funder_balance < funder_cost:
            raise InsufficientGasError(
                "Funder cannot cover the gas top-up",
                code="FUNDER_INSUFFICIENT",
                details={"funder": funder_address, "balance": funder_balance, "required": funder_cost}
            )

        receipt = self._send(
            SweepPhase.TOP_UP,
            TransferRequest(
                private_key=funder_key,
                to=stealth_address,
                value=topup_amount,
                gas_price=gas_price,
                gas_limit=self.native_gas_limit,
            ),
            stealth_address,
        )

        logger.info(
            "Gas top-up confirmed",
            extra_data={"stealth_address": shorten_address(stealth_address), "amount": topup_amount, "tx_hash": receipt.tx_hash}
        )
        return receipt.tx_hash

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _resolve_gas_price(self) -> int:
        if self.gas_price is not None:
            return self.gas_price
        return self.broadcaster.get_gas_price()

    def _empty_error(self, stealth_address: str, token_address: Optional[str]) -> NoBalanceError:
        details = {"stealth_address": stealth_address, "token": token_address or "native"}
        if self.broadcaster.get_transaction_count(stealth_address) > 0:
            return AlreadyWithdrawnError(
                "Stealth address was already swept",
                code="ALREADY_WITHDRAWN",
                details=details
            )
        return NoBalanceError("Stealth address has no balance", code="NO_BALANCE", details=details)

    def _send(
        self,
        phase: SweepPhase,
        request: TransferRequest,
        stealth_address: str,
        topup_tx_hash: Optional[str] = None
    ) -> TxReceipt:
        details = {
            "phase": phase.value,
            "stealth_address": stealth_address,
            "topup_tx_hash": topup_tx_hash,
            "resumable": True,
        }

        try:
            receipt = self.broadcaster.send_transaction(request)
        except RpcFailureError as e:
            logger.error(f"Sweep phase '{phase.value}' failed", extra_data={**details, "error": e.message})
            raise SweepError(
                f"Sweep phase '{phase.value}' failed: {e.message}",
                code="SWEEP_PHASE_FAILED",
                details={**details, "error": e.message}
            ) from e

        if not receipt.success:
            logger.error(f"Sweep phase '{phase.value}' reverted", extra_data={**details, "tx_hash": receipt.tx_hash})
            raise SweepError(
                f"Sweep phase '{phase.value}' reverted",
                code="SWEEP_PHASE_REVERTED",
                details={**details, "tx_hash": receipt.tx_hash}
            )
        return receipt


__all__ = [
    "SweepResult",
    "StealthWithdrawalSweep",
]
