"""
StealthPay - In-Memory Ledger
===============================
Chain EVM simulata in memoria: registry, log eventi, saldi, nonce.

Implementa MetaAddressRegistry, PaymentLogSource e TransactionBroadcaster.
Usata da demo e test; supporta iniezione di errori RPC e revert.

Semplificazioni:
- Una transazione = un blocco
- gas_used = gas_limit (fee addebitata per intero)
"""

import threading
from typing import Dict, List, Optional, Tuple

from stealth_pay.domain.addressing import private_key_to_address
from stealth_pay.domain.crypto_core import CurveMath, compute_keccak256
from stealth_pay.domain.models import GeneratedStealthAddress, StealthPaymentEvent
from stealth_pay.errors import RpcFailureError
from stealth_pay.network.interfaces import TransferRequest, TxReceipt
from stealth_pay.logging_setup import get_logger


logger = get_logger("network.memory")


class InMemoryLedger:
    """
    Ledger EVM minimale e thread-safe.

    Examples:
        >>> ledger = InMemoryLedger(gas_price=1)
        >>> ledger.fund("0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf", 10**18)
        >>> ledger.get_native_balance("0x7e5f4552091a69125d5dfcb7b8c2659029395bdf")
        1000000000000000000
    """

    def __init__(self, gas_price: int = 1_000_000_000, start_block: int = 0, curve: Optional[CurveMath] = None):
        self.gas_price = gas_price
        self.curve = curve
        self._block_number = start_block
        self._lock = threading.RLock()

        self._native: Dict[str, int] = {}
        self._tokens: Dict[Tuple[str, str], int] = {}
        self._nonces: Dict[str, int] = {}
        self._events: List[StealthPaymentEvent] = []
        self._registry: Dict[str, Tuple[bytes, bytes]] = {}

        # Failure injection
        self._log_failures = 0
        self._send_failures = 0
        self._reverts = 0

        self.log_queries: List[Tuple[int, int]] = []
        self.sent: List[TransferRequest] = []

    # ========================================================================
    # STATE HELPERS
    # ========================================================================

    @staticmethod
    def _key(address: str) -> str:
        return address.lower()

    def _mine(self) -> int:
        self._block_number += 1
        return self._block_number

    def mine(self, blocks: int = 1) -> int:
        """Avanza la chain di `blocks` blocchi vuoti"""
        with self._lock:
            self._block_number += blocks
            return self._block_number

    def fund(self, address: str, amount: int, token_address: Optional[str] = None) -> None:
        """Accredita saldo nativo o token"""
        with self._lock:
            if token_address is None:
                self._native[self._key(address)] = self._native.get(self._key(address), 0) + amount
            else:
                key = (self._key(token_address), self._key(address))
                self._tokens[key] = self._tokens.get(key, 0) + amount

    def add_event(self, event: StealthPaymentEvent) -> None:
        """Inserisce un evento già costruito (anche a blocchi passati)"""
        with self._lock:
            self._events.append(event)
            self._block_number = max(self._block_number, event.block_number)

    def emit_payment(
        self,
        generated: GeneratedStealthAddress,
        amount: int,
        symbol: str = "ETH",
        token_address: Optional[str] = None,
        source_chain: Optional[str] = None
    ) -> StealthPaymentEvent:
        """
        Simula il contratto di pagamento: accredita lo stealth address
        ed emette StealthPaymentReceived in un nuovo blocco.
        """
        with self._lock:
            self.fund(generated.stealth_address, amount, token_address)
            block = self._mine()
            tx_hash = "0x" + compute_keccak256(
                generated.ephemeral_public_key + block.to_bytes(8, "big")
            ).hex()
            event = StealthPaymentEvent(
                stealth_address=generated.stealth_address,
                ephemeral_public_key=generated.ephemeral_public_key,
                view_hint=generated.view_hint,
                k=generated.k,
                amount=amount,
                symbol=symbol,
                block_number=block,
                tx_hash=tx_hash,
                log_index=0,
                source_chain=source_chain,
            )
            self._events.append(event)
            return event

    # ========================================================================
    # FAILURE INJECTION
    # ========================================================================

    def fail_next_log_queries(self, count: int) -> None:
        """Le prossime `count` get_payment_events sollevano RpcFailureError"""
        with self._lock:
            self._log_failures = count

    def fail_next_sends(self, count: int) -> None:
        """Le prossime `count` send_transaction sollevano RpcFailureError"""
        with self._lock:
            self._send_failures = count

    def revert_next_transactions(self, count: int) -> None:
        """Le prossime `count` transazioni vengono minate con status 0"""
        with self._lock:
            self._reverts = count

    # ========================================================================
    # PaymentLogSource
    # ========================================================================

    def get_block_number(self) -> int:
        with self._lock:
            return self._block_number

    def get_payment_events(self, from_block: int, to_block: int) -> List[StealthPaymentEvent]:
        with self._lock:
            self.log_queries.append((from_block, to_block))
            if self._log_failures > 0:
                self._log_failures -= 1
                raise RpcFailureError(
                    "Simulated eth_getLogs failure",
                    code="RPC_UNAVAILABLE",
                    details={"from_block": from_block, "to_block": to_block}
                )
            return [e for e in self._events if from_block <= e.block_number <= to_block]

    # ========================================================================
    # MetaAddressRegistry
    # ========================================================================

    def get_meta_address(self, owner: str) -> Tuple[bytes, bytes]:
        with self._lock:
            return self._registry.get(self._key(owner), (b"", b""))

    def register_meta_address(self, spend_public_key: bytes, viewing_public_key: bytes, private_key: int) -> str:
        owner = private_key_to_address(private_key, self.curve)
        with self._lock:
            self._registry[self._key(owner)] = (bytes(spend_public_key), bytes(viewing_public_key))
            nonce = self._nonces.get(self._key(owner), 0)
            self._nonces[self._key(owner)] = nonce + 1
            block = self._mine()
        return self._tx_hash(owner, nonce, block)

    # ========================================================================
    # TransactionBroadcaster
    # ========================================================================

    def get_gas_price(self) -> int:
        return self.gas_price

    def get_native_balance(self, address: str) -> int:
        with self._lock:
            return self._native.get(self._key(address), 0)

    def get_token_balance(self, token_address: str, address: str) -> int:
        with self._lock:
            return self._tokens.get((self._key(token_address), self._key(address)), 0)

    def get_transaction_count(self, address: str) -> int:
        with self._lock:
            return self._nonces.get(self._key(address), 0)

    @staticmethod
    def _tx_hash(sender: str, nonce: int, block: int) -> str:
        payload = f"{sender.lower()}:{nonce}:{block}".encode()
        return "0x" + compute_keccak256(payload).hex()

    def send_transaction(self, request: TransferRequest) -> TxReceipt:
        """
        Applica il trasferimento in un nuovo blocco.

        Raises:
            RpcFailureError: errore iniettato o fondi insufficienti per la fee
                (il nodo rifiuta la transazione prima del mining)
        """
        sender = private_key_to_address(request.private_key, self.curve)
        sender_key = self._key(sender)
        fee = request.max_fee

        with self._lock:
            if self._send_failures > 0:
                self._send_failures -= 1
                raise RpcFailureError("Simulated broadcast failure", code="RPC_UNAVAILABLE")

            native = self._native.get(sender_key, 0)
            if native < fee + request.value:
                raise RpcFailureError(
                    "insufficient funds for gas * price + value",
                    code="INSUFFICIENT_FUNDS",
                    details={"address": sender, "balance": native, "required": fee + request.value}
                )

            nonce = self._nonces.get(sender_key, 0)
            self._nonces[sender_key] = nonce + 1
            self._native[sender_key] = native - fee
            block = self._mine()
            tx_hash = self._tx_hash(sender, nonce, block)

            if self._reverts > 0:
                self._reverts -= 1
                logger.debug("Simulated revert", extra_data={"tx_hash": tx_hash})
                return TxReceipt(tx_hash=tx_hash, status=False, block_number=block, gas_used=request.gas_limit)

            if request.is_token_transfer:
                src = (self._key(request.token_address), sender_key)
                balance = self._tokens.get(src, 0)
                if balance < request.token_amount:
                    return TxReceipt(tx_hash=tx_hash, status=False, block_number=block, gas_used=request.gas_limit)
                dst = (self._key(request.token_address), self._key(request.to))
                self._tokens[src] = balance - request.token_amount
                self._tokens[dst] = self._tokens.get(dst, 0) + request.token_amount
            else:
                self._native[sender_key] -= request.value
                self._native[self._key(request.to)] = self._native.get(self._key(request.to), 0) + request.value

            self.sent.append(request)
            return TxReceipt(tx_hash=tx_hash, status=True, block_number=block, gas_used=request.gas_limit)


__all__ = ["InMemoryLedger"]
