"""
StealthPay - Chain Scanner Service
====================================
Scansione a chunk degli eventi di pagamento con view-tag filter.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0

Features:
- "latest" risolto una sola volta all'inizio
- Partizione contigua e inclusiva [start, min(start + chunk - 1, to)]
- Retry per chunk con backoff esponenziale
- Cancellazione cooperativa tra chunk (threading.Event)
- Verifica completa degli hit del view hint (public key ricalcolata)
"""

import threading
import time
from typing import Callable, Iterable, Iterator, List, Optional, Tuple, Union

from stealth_pay.config import StealthSettings
from stealth_pay.constants import (
    DEFAULT_SCAN_CHUNK_SIZE,
    DEFAULT_SCAN_MAX_RETRIES,
    DEFAULT_SCAN_RETRY_BACKOFF_SECONDS,
    LATEST_BLOCK,
)
from stealth_pay.domain.addressing import (
    AddressFormat,
    EvmAddressFormat,
    get_address_format,
    shorten_address,
)
from stealth_pay.domain.crypto_core import CurveMath, CoincurveCurve, parse_private_key
from stealth_pay.domain.models import (
    StealthPaymentEvent,
    StealthPaymentMatch,
    ScanResult,
)
from stealth_pay.errors import (
    InvalidKeyMaterialError,
    RpcFailureError,
    ValidationError,
    ZeroPrivateKeyError,
    format_validation_error,
)
from stealth_pay.network.interfaces import PaymentLogSource
from stealth_pay.wallet.stealth_address import ViewTagFilter, StealthKeyRecoverer
from stealth_pay.logging_setup import get_logger, PerformanceLogger, AuditLogger


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("services.scanner")

ProgressCallback = Callable[[int, int], None]

# Soglia oltre la quale una query eth_getLogs è considerata lenta
SLOW_CHUNK_THRESHOLD_MS = 5_000


# ============================================================================
# HELPERS
# ============================================================================

def iter_chunks(from_block: int, to_block: int, chunk_size: int) -> Iterator[Tuple[int, int]]:
    """
    Partizione contigua, inclusiva, senza sovrapposizioni.

    Examples:
        >>> list(iter_chunks(0, 25, 10))
        [(0, 9), (10, 19), (20, 25)]
    """
    if chunk_size < 1:
        raise format_validation_error("chunk_size", chunk_size, "integer >= 1")

    start = from_block
    while start <= to_block:
        end = min(start + chunk_size - 1, to_block)
        yield start, end
        start = end + 1


def deduplicate_matches(matches: Iterable[StealthPaymentMatch]) -> List[StealthPaymentMatch]:
    """
    Unisce risultati di scansioni sovrapposte.

    Chiave: (tx_hash, log_index). Più pagamenti nella stessa
    transazione restano distinti. Output ordinato per blocco.
    """
    seen = {}
    for match in matches:
        seen.setdefault(match.event.uid, match)
    return sorted(seen.values(), key=lambda m: (m.event.block_number, m.event.log_index))


# ============================================================================
# CHAIN SCANNER
# ============================================================================

class ChainScanner:
    """
    Scanner sequenziale single-flight su un PaymentLogSource.

    Attributes:
        log_source: Sorgente eventi
        curve: Backend CurveMath
        chunk_size: Blocchi per query
        max_retries: Retry per chunk su RpcFailureError
        retry_backoff_seconds: Backoff base (raddoppia a ogni tentativo)
        address_format: Formato indirizzo della chain scansionata

    Examples:
        >>> scanner = ChainScanner(log_source, chunk_size=2_000)
        >>> result = scanner.scan(keys.viewing.private_key, keys.spend.public_key)
        >>> [m.stealth_address for m in result.matches]
    """

    def __init__(
        self,
        log_source: PaymentLogSource,
        curve: Optional[CurveMath] = None,
        chunk_size: int = DEFAULT_SCAN_CHUNK_SIZE,
        max_retries: int = DEFAULT_SCAN_MAX_RETRIES,
        retry_backoff_seconds: float = DEFAULT_SCAN_RETRY_BACKOFF_SECONDS,
        audit_logger: Optional[AuditLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
        address_format: Optional[AddressFormat] = None
    ):
        if chunk_size < 1:
            raise format_validation_error("chunk_size", chunk_size, "integer >= 1")

        self.log_source = log_source
        self.curve = curve or CoincurveCurve()
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.audit_logger = audit_logger
        self._sleep = sleep
        self.address_format = address_format or EvmAddressFormat()

        self.view_filter = ViewTagFilter(self.curve)
        self.recoverer = StealthKeyRecoverer(self.curve, self.address_format)

    @classmethod
    def from_settings(
        cls,
        log_source: PaymentLogSource,
        settings: StealthSettings,
        curve: Optional[CurveMath] = None,
        audit_logger: Optional[AuditLogger] = None
    ) -> "ChainScanner":
        return cls(
            log_source,
            curve=curve,
            chunk_size=settings.scan_chunk_size,
            max_retries=settings.scan_max_retries,
            retry_backoff_seconds=settings.scan_retry_backoff_seconds,
            audit_logger=audit_logger,
            address_format=get_address_format(settings.address_format),
        )

    # ========================================================================
    # SCAN
    # ========================================================================

    def scan(
        self,
        viewing_private_key,
        spend_public_key: bytes,
        from_block: int = 0,
        to_block: Union[int, str, None] = LATEST_BLOCK,
        chunk_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        spend_private_key=None,
        cancel_event: Optional[threading.Event] = None
    ) -> ScanResult:
        """
        Scansiona [from_block, to_block] e restituisce i pagamenti verificati.

        Args:
            viewing_private_key: Viewing key (int, bytes o hex)
            spend_public_key: Spend public key (verifica degli hit)
            from_block: Primo blocco (inclusivo)
            to_block: Ultimo blocco (inclusivo) o "latest"/None
            chunk_size: Override della dimensione chunk
            on_progress: Callback (blocchi scansionati, blocchi totali)
            spend_private_key: Se presente, la chiave stealth viene recuperata
            cancel_event: Evento di cancellazione, controllato tra i chunk

        Returns:
            ScanResult

        Raises:
            ValidationError: range o chunk_size non validi
            InvalidKeyMaterialError: chiavi del destinatario non valide
            RpcFailureError: head o chunk falliti dopo i retry (partial_result allegato)
        """
        if chunk_size is None:
            chunk_size = self.chunk_size
        if chunk_size < 1:
            raise format_validation_error("chunk_size", chunk_size, "integer >= 1")
        viewing = parse_private_key(viewing_private_key)
        spend_public = self.curve.deserialize(spend_public_key)
        spend_private = self._check_spend_private_key(spend_private_key, spend_public)

        if isinstance(from_block, bool) or not isinstance(from_block, int) or from_block < 0:
            raise format_validation_error("from_block", from_block, "non-negative integer")

        resolved_to = self._resolve_to_block(to_block, from_block)
        result = ScanResult(from_block=from_block, to_block=resolved_to)

        if resolved_to < from_block:
            logger.info(
                "Nothing to scan: chain head below from_block",
                extra_data={"from_block": from_block, "head": resolved_to}
            )
            return result

        total = resolved_to - from_block + 1

        logger.info(
            "Scan started",
            extra_data={
                "from_block": from_block,
                "to_block": resolved_to,
                "chunk_size": chunk_size,
                "backend": self.curve.name,
            }
        )

        for start, end in iter_chunks(from_block, resolved_to, chunk_size):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.info("Scan cancelled", extra_data={"next_block": result.next_block})
                break

            events = self._fetch_chunk(start, end, result)

            for event in events:
                if not start <= event.block_number <= end:
                    continue
                result.events_seen += 1
                match = self._check_event(event, viewing, spend_public, spend_private, result)
                if match is not None:
                    result.matches.append(match)

            result.scanned_to_block = end
            if on_progress is not None:
                on_progress(end - from_block + 1, total)

        logger.info(
            "Scan finished",
            extra_data={
                "scanned_to_block": result.scanned_to_block,
                "events_seen": result.events_seen,
                "hint_hits": result.hint_hits,
                "matches": len(result.matches),
                "cancelled": result.cancelled,
            }
        )
        return result

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _check_spend_private_key(self, spend_private_key, spend_public: bytes) -> Optional[int]:
        if spend_private_key is None:
            return None
        spend_private = parse_private_key(spend_private_key)
        if self.curve.base_mul(spend_private) != spend_public:
            raise InvalidKeyMaterialError(
                "spend_private_key does not match spend_public_key",
                code="SPEND_KEY_MISMATCH"
            )
        return spend_private

    def _resolve_to_block(self, to_block, from_block: int) -> int:
        if to_block is None or to_block == LATEST_BLOCK:
            try:
                return self._with_retries(self.log_source.get_block_number, "eth_blockNumber")
            except RpcFailureError as e:
                logger.error(
                    "Chain head lookup failed after retries",
                    extra_data={"from_block": from_block, "error": e.message}
                )
                # head ignoto: range vuoto non completato, si riprende da from_block
                raise RpcFailureError(
                    f"Scan aborted before first chunk: {e.message}",
                    code="SCAN_HEAD_FAILED",
                    details={
                        "from_block": from_block,
                        "last_scanned_block": None,
                        "operation": "eth_blockNumber",
                    },
                    partial_result=ScanResult(from_block=from_block, to_block=from_block)
                ) from e

        if isinstance(to_block, bool) or not isinstance(to_block, int) or to_block < from_block:
            raise format_validation_error(
                "to_block", to_block, f"'latest' or integer >= from_block ({from_block})",
                code="INVALID_BLOCK_RANGE"
            )
        return to_block

    def _backoff(self, attempt: int) -> float:
        return self.retry_backoff_seconds * (2 ** attempt)

    def _with_retries(self, call: Callable, operation: str):
        attempt = 0
        while True:
            try:
                return call()
            except RpcFailureError as e:
                if attempt >= self.max_retries:
                    raise
                delay = self._backoff(attempt)
                logger.warning(
                    f"{operation} failed, retrying in {delay:.1f}s",
                    extra_data={"attempt": attempt + 1, "error": e.message}
                )
                self._sleep(delay)
                attempt += 1

    def _fetch_chunk(self, start: int, end: int, result: ScanResult) -> List[StealthPaymentEvent]:
        def query():
            with PerformanceLogger(
                logger, "scan_chunk", threshold_ms=SLOW_CHUNK_THRESHOLD_MS,
                extra_data={"start": start, "end": end}
            ):
                return list(self.log_source.get_payment_events(start, end))

        try:
            return self._with_retries(query, "eth_getLogs")
        except RpcFailureError as e:
            logger.error(
                "Chunk failed after retries",
                extra_data={"start": start, "end": end, "last_scanned_block": result.scanned_to_block}
            )
            raise RpcFailureError(
                f"Scan aborted at chunk [{start}, {end}]: {e.message}",
                code="SCAN_CHUNK_FAILED",
                details={
                    "from_block": result.from_block,
                    "to_block": result.to_block,
                    "last_scanned_block": result.scanned_to_block,
                    "failed_chunk": [start, end],
                    "matches_so_far": len(result.matches),
                },
                partial_result=result
            ) from e

    def _check_event(
        self,
        event: StealthPaymentEvent,
        viewing: int,
        spend_public: bytes,
        spend_private: Optional[int],
        result: ScanResult
    ) -> Optional[StealthPaymentMatch]:
        try:
            if not self.view_filter.matches(event.ephemeral_public_key, viewing, event.view_hint):
                return None
            result.hint_hits += 1
            stealth_public = self.recoverer.stealth_public_key(
                event.ephemeral_public_key, viewing, spend_public, event.k
            )
        except (InvalidKeyMaterialError, ValidationError) as e:
            logger.warning(
                "Skipping malformed payment event",
                extra_data={"tx_hash": event.tx_hash, "block": event.block_number, "error": e.message}
            )
            return None

        derived = self.address_format.from_public_key(stealth_public, self.curve)
        if not self.address_format.compare(derived, event.stealth_address):
            logger.debug(
                "View hint false positive",
                extra_data={"tx_hash": event.tx_hash, "address": shorten_address(event.stealth_address)}
            )
            return None

        stealth_private = None
        if spend_private is not None:
            try:
                stealth_private = self.recoverer.recover(event.ephemeral_public_key, viewing, spend_private, event.k)
            except ZeroPrivateKeyError:
                logger.warning("Degenerate stealth key, payment excluded", extra_data={"tx_hash": event.tx_hash})
                return None

        logger.info(
            "Stealth payment detected",
            extra_data={
                "address": shorten_address(event.stealth_address),
                "block": event.block_number,
                "amount": event.amount,
                "symbol": event.symbol,
            }
        )
        if self.audit_logger is not None:
            self.audit_logger.log_payment_detected(
                stealth_address=event.stealth_address,
                tx_hash=event.tx_hash,
                block_number=event.block_number,
                amount=event.amount,
            )

        return StealthPaymentMatch(
            event=event,
            stealth_public_key=stealth_public,
            verified=True,
            stealth_private_key=stealth_private,
        )


__all__ = [
    "ChainScanner",
    "iter_chunks",
    "deduplicate_matches",
    "ProgressCallback",
]
