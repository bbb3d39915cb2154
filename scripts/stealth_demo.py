#!/usr/bin/env python3
"""
StealthPay - Stealth Address Demo
===================================
Ciclo completo su ledger in memoria: chiavi → registry → pagamento
→ scansione → sweep.

Usage:
    python scripts/stealth_demo.py
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from stealth_pay.config import override_settings
from stealth_pay.constants import format_wei, WEI_PER_ETHER
from stealth_pay.network.memory import InMemoryLedger
from stealth_pay.network.web3_adapters import LocalAccountSignatureSource
from stealth_pay.services.stealth_service import StealthService

console = Console()

RECIPIENT_KEY = 0xA11CE
USDC = "0x036cbd53842c5426634e7929541ec2318f3dcf7e"


def main():
    """Run stealth address demo"""

    console.print(Panel.fit(
        "[cyan]StealthPay - Stealth Address Demo[/cyan]\n\n"
        "One-time addresses, view-tag scanning, gas-relay sweep",
        border_style="cyan"
    ))

    ledger = InMemoryLedger(gas_price=1_000_000_000)
    settings = override_settings(network="local", scan_chunk_size=2, scan_retry_backoff_seconds=0.0)
    service = StealthService(registry=ledger, log_source=ledger, broadcaster=ledger, settings=settings)

    # ========================================================================
    # STEP 1: Recipient derives keys and registers the meta-address
    # ========================================================================

    console.print("\n[yellow]Step 1: Recipient derives stealth keys[/yellow]")

    recipient = LocalAccountSignatureSource(RECIPIENT_KEY)
    keys = service.derive_keys(recipient)
    service.register_meta_address(keys, RECIPIENT_KEY)

    table = Table(title="Recipient")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Wallet", recipient.address)
    table.add_row("Spend Key", keys.spend.public_key.hex()[:16] + "...")
    table.add_row("Viewing Key", keys.viewing.public_key.hex()[:16] + "...")
    table.add_row("Meta-address", keys.meta_address.to_hex()[:24] + "...")
    console.print(table)

    # ========================================================================
    # STEP 2: Sender pays two one-time addresses
    # ========================================================================

    console.print("\n[yellow]Step 2: Sender looks up the registry and pays[/yellow]")

    native = service.generate_for(recipient.address, k=0)
    ledger.emit_payment(native, WEI_PER_ETHER // 10, symbol="ETH")

    token = service.generate_for(recipient.address, k=1)
    ledger.emit_payment(token, 250_000_000, symbol="USDC", token_address=USDC, source_chain="base")

    ledger.mine(5)

    console.print(f"[cyan]Native payment → {native.stealth_address}[/cyan]")
    console.print(f"[cyan]Token payment  → {token.stealth_address}[/cyan]")
    console.print("[dim]Addresses are unlinkable to the recipient wallet[/dim]")

    # ========================================================================
    # STEP 3: Recipient scans the chain
    # ========================================================================

    console.print("\n[yellow]Step 3: Recipient scans for payments[/yellow]")

    result = service.scan(
        keys,
        on_progress=lambda scanned, total: console.print(f"[dim]  {scanned}/{total} blocks[/dim]")
    )

    console.print(f"[green]✅ Found {len(result.matches)} payments[/green] "
                  f"({result.events_seen} events, {result.hint_hits} hint hits)")

    # ========================================================================
    # STEP 4: Sweep to the main wallet
    # ========================================================================

    console.print("\n[yellow]Step 4: Sweep to main wallet[/yellow]")

    ledger.fund(recipient.address, WEI_PER_ETHER)

    for match in result.matches:
        token_address = USDC if match.event.symbol == "USDC" else None
        sweep = service.sweep(
            match.stealth_private_key,
            recipient.address,
            token_address=token_address,
            funder_private_key=RECIPIENT_KEY,
            expected_stealth_address=match.stealth_address,
        )
        amount = f"{sweep.amount} USDC units" if sweep.is_token else format_wei(sweep.amount)
        console.print(f"[green]✅ Swept {amount}[/green] (top-up: {sweep.topup_tx_hash or 'not needed'})")

    console.print(Panel.fit(
        f"Main wallet ETH:  {format_wei(ledger.get_native_balance(recipient.address))}\n"
        f"Main wallet USDC: {ledger.get_token_balance(USDC, recipient.address)}",
        title="Demo Complete",
        border_style="green"
    ))


if __name__ == "__main__":
    main()
