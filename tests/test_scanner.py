"""
StealthPay - Chain Scanner Tests
==================================
Unit tests for chunked scanning, retries, cancellation and
view-hint verification.
"""

import threading

import pytest

from stealth_pay.domain.addressing import StarknetAddressFormat, private_key_to_address
from stealth_pay.domain.models import StealthPaymentEvent
from stealth_pay.errors import InvalidKeyMaterialError, RpcFailureError, ValidationError
from stealth_pay.services.scanner_service import ChainScanner, iter_chunks, deduplicate_matches
from stealth_pay.wallet.stealth_address import StealthAddressGenerator


BOUNDARY_BLOCKS = [0, 9_999, 10_000, 20_000, 49_999, 50_000]


def make_event(generated, block, log_index=0, amount=1_000, stealth_address=None, ephemeral=None):
    """Evento costruito a mano a un blocco arbitrario"""
    return StealthPaymentEvent(
        stealth_address=stealth_address or generated.stealth_address,
        ephemeral_public_key=ephemeral or generated.ephemeral_public_key,
        view_hint=generated.view_hint,
        k=generated.k,
        amount=amount,
        symbol="ETH",
        block_number=block,
        tx_hash=f"0x{block:064x}",
        log_index=log_index,
    )


@pytest.fixture
def boundary_ledger(ledger, generator, meta_address, other_keys):
    """Pagamenti del destinatario ai bordi dei chunk, più rumore"""
    for block in BOUNDARY_BLOCKS:
        ledger.add_event(make_event(generator.generate(meta_address, k=block % 7), block))
        noise = generator.generate(other_keys.meta_address)
        ledger.add_event(make_event(noise, block, log_index=1))
    return ledger


def scan_all(scanner, keys, **kwargs):
    return scanner.scan(keys.viewing.private_key, keys.spend.public_key, **kwargs)


class TestChunking:
    """Test block range partition"""

    def test_iter_chunks(self):
        """Test contiguous inclusive partition"""
        assert list(iter_chunks(0, 25, 10)) == [(0, 9), (10, 19), (20, 25)]
        assert list(iter_chunks(5, 5, 10)) == [(5, 5)]
        assert list(iter_chunks(0, 9, 10)) == [(0, 9)]

    def test_iter_chunks_invalid_size(self):
        """Test chunk size must be positive"""
        with pytest.raises(ValidationError):
            list(iter_chunks(0, 10, 0))

    def test_scanner_rejects_invalid_chunk(self, ledger):
        """Test constructor validation"""
        with pytest.raises(ValidationError):
            ChainScanner(ledger, chunk_size=0)


class TestChainScanner:
    """Test ChainScanner.scan"""

    def test_boundary_events_found(self, scanner, boundary_ledger, recipient_keys):
        """Test events on chunk boundaries are neither lost nor duplicated"""
        result = scan_all(scanner, recipient_keys, from_block=0, to_block=50_000)

        assert [m.event.block_number for m in result.matches] == BOUNDARY_BLOCKS
        assert result.events_seen == 2 * len(BOUNDARY_BLOCKS)
        assert result.is_complete
        assert boundary_ledger.log_queries == [
            (0, 9_999), (10_000, 19_999), (20_000, 29_999),
            (30_000, 39_999), (40_000, 49_999), (50_000, 50_000),
        ]

    def test_chunk_size_invariance(self, scanner, boundary_ledger, recipient_keys):
        """Test result does not depend on chunk size"""
        results = [
            scan_all(scanner, recipient_keys, from_block=0, to_block=50_000, chunk_size=size)
            for size in (10_000, 50_001, 3_333)
        ]

        uids = [[m.event.uid for m in r.matches] for r in results]
        assert uids[0] == uids[1] == uids[2]
        assert len(uids[0]) == len(BOUNDARY_BLOCKS)

    def test_single_chunk_with_partial_range(self, scanner, boundary_ledger, recipient_keys):
        """Test sub-range only returns events inside it"""
        result = scan_all(scanner, recipient_keys, from_block=9_999, to_block=20_000)
        assert [m.event.block_number for m in result.matches] == [9_999, 10_000, 20_000]

    def test_progress_reports(self, scanner, boundary_ledger, recipient_keys):
        """Test progress is (scanned, total) after each chunk"""
        calls = []
        scan_all(scanner, recipient_keys, from_block=0, to_block=50_000, on_progress=lambda s, t: calls.append((s, t)))

        assert calls == [
            (10_000, 50_001), (20_000, 50_001), (30_000, 50_001),
            (40_000, 50_001), (50_000, 50_001), (50_001, 50_001),
        ]

    def test_latest_resolved_once(self, scanner, boundary_ledger, generator, meta_address, recipient_keys):
        """Test blocks mined during the scan are not chased"""
        def emit_during_scan(scanned, total):
            boundary_ledger.emit_payment(generator.generate(meta_address), 500)

        result = scan_all(scanner, recipient_keys, on_progress=emit_during_scan)

        assert result.to_block == 50_000
        assert boundary_ledger.get_block_number() > 50_000
        assert len(result.matches) == len(BOUNDARY_BLOCKS)
        assert boundary_ledger.log_queries[-1] == (50_000, 50_000)

    def test_head_below_from_block(self, scanner, ledger, recipient_keys):
        """Test empty result when the chain head is behind from_block"""
        ledger.mine(10)
        result = scan_all(scanner, recipient_keys, from_block=100)

        assert result.matches == []
        assert result.to_block == 10
        assert ledger.log_queries == []
        assert result.is_complete

    def test_invalid_ranges(self, scanner, ledger, recipient_keys):
        """Test explicit to_block before from_block and negative from_block"""
        with pytest.raises(ValidationError) as exc_info:
            scan_all(scanner, recipient_keys, from_block=10, to_block=5)
        assert exc_info.value.code == "INVALID_BLOCK_RANGE"

        with pytest.raises(ValidationError):
            scan_all(scanner, recipient_keys, from_block=-1, to_block=5)

        with pytest.raises(ValidationError):
            scan_all(scanner, recipient_keys, from_block=0, to_block=5, chunk_size=0)

    def test_retry_with_backoff(self, scanner, boundary_ledger, recipient_keys, sleeps):
        """Test transient failures are retried with exponential backoff"""
        boundary_ledger.fail_next_log_queries(2)

        result = scan_all(scanner, recipient_keys, from_block=0, to_block=50_000)

        assert sleeps == [0.5, 1.0]
        assert len(result.matches) == len(BOUNDARY_BLOCKS)

    def test_failure_returns_partial_and_resumes(self, scanner, boundary_ledger, recipient_keys, sleeps):
        """Test exhausted retries raise with partial result, then resume"""
        def break_rpc(scanned, total):
            if scanned == 10_000:
                boundary_ledger.fail_next_log_queries(10)

        with pytest.raises(RpcFailureError) as exc_info:
            scan_all(scanner, recipient_keys, from_block=0, to_block=50_000, on_progress=break_rpc)

        error = exc_info.value
        partial = error.partial_result
        assert error.code == "SCAN_CHUNK_FAILED"
        assert error.details["last_scanned_block"] == 9_999
        assert error.details["failed_chunk"] == [10_000, 19_999]
        assert [m.event.block_number for m in partial.matches] == [0, 9_999]
        assert partial.next_block == 10_000
        assert not partial.is_complete
        assert sleeps == [0.5, 1.0, 2.0]

        boundary_ledger.fail_next_log_queries(0)
        resumed = scan_all(scanner, recipient_keys, from_block=partial.next_block, to_block=50_000)

        merged = deduplicate_matches(partial.matches + resumed.matches)
        assert [m.event.block_number for m in merged] == BOUNDARY_BLOCKS

    def test_head_lookup_retried(self, scanner, ledger, recipient_keys, sleeps, monkeypatch):
        """Test eth_blockNumber failures are retried"""
        attempts = []

        def flaky_head():
            attempts.append(1)
            if len(attempts) < 3:
                raise RpcFailureError("timeout")
            return 5

        monkeypatch.setattr(ledger, "get_block_number", flaky_head)
        result = scan_all(scanner, recipient_keys)

        assert result.to_block == 5
        assert sleeps == [0.5, 1.0]

    def test_head_lookup_failure_has_context(self, scanner, ledger, recipient_keys, sleeps, monkeypatch):
        """Test eth_blockNumber failing after retries keeps the resume point"""
        def dead_head():
            raise RpcFailureError("connection refused", code="RPC_UNAVAILABLE")

        monkeypatch.setattr(ledger, "get_block_number", dead_head)

        with pytest.raises(RpcFailureError) as exc_info:
            scan_all(scanner, recipient_keys, from_block=5)

        error = exc_info.value
        assert error.code == "SCAN_HEAD_FAILED"
        assert error.details == {"from_block": 5, "last_scanned_block": None, "operation": "eth_blockNumber"}
        assert error.partial_result.next_block == 5
        assert error.partial_result.matches == []
        assert not error.partial_result.is_complete
        assert isinstance(error.__cause__, RpcFailureError)
        assert sleeps == [0.5, 1.0, 2.0]
        assert ledger.log_queries == []

    def test_cancellation(self, scanner, boundary_ledger, recipient_keys):
        """Test cancel between chunks keeps partial matches"""
        cancel = threading.Event()

        result = scan_all(
            scanner, recipient_keys, from_block=0, to_block=50_000,
            on_progress=lambda s, t: cancel.set(), cancel_event=cancel
        )

        assert result.cancelled
        assert result.scanned_to_block == 9_999
        assert result.next_block == 10_000
        assert [m.event.block_number for m in result.matches] == [0, 9_999]
        assert len(boundary_ledger.log_queries) == 1

    def test_false_positive_excluded(self, scanner, ledger, generator, meta_address, recipient_keys):
        """Test hint hit with a different address is not a match"""
        generated = generator.generate(meta_address)
        ledger.add_event(make_event(generated, 3, stealth_address=private_key_to_address(1)))

        result = scan_all(scanner, recipient_keys, from_block=0)

        assert result.hint_hits == 1
        assert result.matches == []

    def test_malformed_event_skipped(self, scanner, ledger, generator, meta_address, recipient_keys):
        """Test invalid ephemeral key does not abort the scan"""
        generated = generator.generate(meta_address)
        ledger.add_event(make_event(generated, 1, ephemeral=b"\x02" + b"\xff" * 32))
        ledger.add_event(make_event(generated, 2))

        result = scan_all(scanner, recipient_keys, from_block=0)

        assert result.events_seen == 2
        assert [m.event.block_number for m in result.matches] == [2]

    def test_stealth_key_recovery(self, scanner, ledger, generator, meta_address, recipient_keys):
        """Test spend private key recovers controlling keys"""
        event = ledger.emit_payment(generator.generate(meta_address, k=4), 10 ** 18)

        result = scan_all(scanner, recipient_keys, spend_private_key=recipient_keys.spend.private_key)

        match = result.matches[0]
        assert match.verified
        assert match.tx_hash == event.tx_hash
        assert private_key_to_address(match.stealth_private_key) == event.stealth_address

    def test_view_only_scan(self, scanner, ledger, generator, meta_address, recipient_keys):
        """Test scan without spend private key"""
        ledger.emit_payment(generator.generate(meta_address), 1)

        result = scan_all(scanner, recipient_keys)

        assert result.matches[0].stealth_private_key is None

    def test_spend_key_mismatch(self, scanner, ledger, recipient_keys, other_keys):
        """Test spend private key must match spend public key"""
        with pytest.raises(InvalidKeyMaterialError) as exc_info:
            scan_all(scanner, recipient_keys, spend_private_key=other_keys.spend.private_key)
        assert exc_info.value.code == "SPEND_KEY_MISMATCH"

    def test_backends_agree(self, boundary_ledger, python_curve, recipient_keys, sleeps):
        """Test pure Python backend finds the same payments"""
        scanner = ChainScanner(boundary_ledger, curve=python_curve, chunk_size=25_000, sleep=sleeps.append)
        result = scan_all(scanner, recipient_keys, from_block=0, to_block=50_000)

        assert [m.event.block_number for m in result.matches] == BOUNDARY_BLOCKS

    def test_starknet_addresses(self, ledger, curve, meta_address, other_keys, recipient_keys, sleeps):
        """Test scan verifies hits against Starknet addresses"""
        starknet = StarknetAddressFormat()
        generator = StealthAddressGenerator(curve, starknet)
        generated = generator.generate(meta_address, k=3)
        ledger.add_event(make_event(generated, 10, stealth_address=generated.stealth_address.upper().replace("0X", "0x")))
        ledger.add_event(make_event(generator.generate(other_keys.meta_address), 11))

        scanner = ChainScanner(ledger, curve, address_format=starknet, sleep=sleeps.append)
        result = scan_all(scanner, recipient_keys, spend_private_key=recipient_keys.spend.private_key)

        assert [m.event.block_number for m in result.matches] == [10]
        key = result.matches[0].stealth_private_key
        assert starknet.from_public_key(curve.base_mul(key), curve) == generated.stealth_address

    def test_format_mismatch_not_matched(self, ledger, curve, generator, meta_address, recipient_keys, sleeps):
        """Test EVM payment is not verified by a Starknet scanner"""
        ledger.add_event(make_event(generator.generate(meta_address), 2))

        scanner = ChainScanner(ledger, curve, address_format=StarknetAddressFormat(), sleep=sleeps.append)
        result = scan_all(scanner, recipient_keys)

        assert result.hint_hits == 1
        assert result.matches == []


class TestDeduplication:
    """Test merging of overlapping scans"""

    def test_overlapping_scans(self, scanner, boundary_ledger, recipient_keys):
        """Test union of overlapping ranges has each payment once"""
        first = scan_all(scanner, recipient_keys, from_block=0, to_block=20_000)
        second = scan_all(scanner, recipient_keys, from_block=10_000, to_block=50_000)

        merged = deduplicate_matches(second.matches + first.matches)
        assert [m.event.block_number for m in merged] == BOUNDARY_BLOCKS

    def test_same_tx_distinct_logs(self, scanner, ledger, generator, meta_address, recipient_keys):
        """Test two payments in one transaction stay distinct"""
        a = make_event(generator.generate(meta_address), 7, log_index=0)
        b = make_event(generator.generate(meta_address), 7, log_index=1)
        ledger.add_event(a)
        ledger.add_event(b)

        result = scan_all(scanner, recipient_keys, from_block=0)

        assert len(deduplicate_matches(result.matches + result.matches)) == 2
