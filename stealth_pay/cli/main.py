"""
StealthPay - Command Line Interface
=====================================
CLI per chiavi, pagamenti, scansione e sweep su nodo EVM.

Security Level: MEDIUM
Last Updated: 2026-10-19
Version: 1.0.0

Commands:
- keys: Derivazione e registrazione meta-address
- pay: Generazione stealth address per un destinatario
- scan: Ricerca pagamenti ricevuti
- sweep: Trasferimento fondi al wallet principale
"""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, BarColumn, TextColumn, TimeElapsedColumn

# Internal imports
from stealth_pay.config import StealthSettings, get_settings
from stealth_pay.constants import format_wei
from stealth_pay.domain.addressing import shorten_address
from stealth_pay.domain.models import StealthMetaAddress
from stealth_pay.errors import StealthPayException, RpcFailureError
from stealth_pay.network.web3_adapters import LocalAccountSignatureSource
from stealth_pay.services.stealth_service import StealthService
from stealth_pay.logging_setup import setup_logging
from stealth_pay.version import get_build_info


# ============================================================================
# CLI APP
# ============================================================================

app = typer.Typer(
    name="stealthpay",
    help="StealthPay - Stealth payments CLI",
    add_completion=False
)

console = Console()


# ============================================================================
# GLOBAL STATE
# ============================================================================

class CLIState:
    """Global CLI state"""
    config: Optional[StealthSettings] = None
    service: Optional[StealthService] = None


state = CLIState()


def get_service() -> StealthService:
    if state.service is None:
        state.service = StealthService.from_settings(state.config or get_settings())
    return state.service


def fail(message: str, error: Exception) -> None:
    """Stampa errore e termina con exit code 1"""
    console.print(f"[red]{message}: {error}[/red]")
    raise typer.Exit(1)


WALLET_KEY_OPTION = typer.Option(
    ...,
    "--private-key",
    "-k",
    envvar="STEALTHPAY_WALLET_KEY",
    prompt=True,
    hide_input=True,
    help="Private key del wallet principale"
)


@app.callback()
def main(
    rpc_url: Optional[str] = typer.Option(None, "--rpc-url", help="Endpoint JSON-RPC"),
    contract: Optional[str] = typer.Option(None, "--contract", help="Payment/registry contract"),
    network: Optional[str] = typer.Option(None, "--network", "-n", help="mainnet/testnet/local"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level"),
):
    """StealthPay CLI"""
    overrides = {}
    if rpc_url:
        overrides["rpc_url"] = rpc_url
    if contract:
        overrides["payment_contract_address"] = contract
    if network:
        overrides["network"] = network
    if log_level:
        overrides["log_level"] = log_level

    try:
        config = StealthSettings(**overrides) if overrides else get_settings()
    except ValueError as e:
        fail("Invalid configuration", e)

    state.config = config
    setup_logging(
        log_level=config.log_level,
        log_to_file=config.log_to_file,
        log_dir=config.log_dir,
        log_format=config.log_format,
    )


@app.command("version")
def version():
    """Show version info"""
    for key, value in get_build_info().items():
        console.print(f"[cyan]{key}[/cyan]: {value}")


# ============================================================================
# KEYS COMMANDS
# ============================================================================

keys_app = typer.Typer(help="Stealth keys and meta-address")
app.add_typer(keys_app, name="keys")


@keys_app.command("derive")
def keys_derive(
    private_key: str = WALLET_KEY_OPTION,
    show_private: bool = typer.Option(False, "--show-private", help="Mostra le chiavi private")
):
    """Derive spend/viewing keys from the wallet signature"""
    try:
        service = StealthService(settings=state.config or get_settings())
        source = LocalAccountSignatureSource(private_key)
        keys = service.derive_keys(source)

        body = (
            f"Wallet: [cyan]{source.address}[/cyan]\n\n"
            f"Meta-address:\n[bold]{keys.meta_address.to_hex()}[/bold]\n\n"
            f"Spend pubkey:   {keys.spend.public_key.hex()}\n"
            f"Viewing pubkey: {keys.viewing.public_key.hex()}"
        )
        if show_private:
            body += (
                f"\n\n[red]Spend private:   {keys.spend.private_key_hex()}\n"
                f"Viewing private: {keys.viewing.private_key_hex()}[/red]"
            )

        console.print(Panel.fit(body, title="Stealth Keys", border_style="green"))

    except StealthPayException as e:
        fail("Error deriving keys", e)


@keys_app.command("register")
def keys_register(private_key: str = WALLET_KEY_OPTION):
    """Register the meta-address on-chain"""
    try:
        service = get_service()
        keys = service.derive_keys(LocalAccountSignatureSource(private_key))
        tx_hash = service.register_meta_address(keys, private_key)

        console.print(f"[green]✅ Meta-address registered[/green] (tx {tx_hash})")

    except StealthPayException as e:
        fail("Error registering meta-address", e)


# ============================================================================
# PAY COMMANDS
# ============================================================================

pay_app = typer.Typer(help="Sender side")
app.add_typer(pay_app, name="pay")


@pay_app.command("address")
def pay_address(
    meta: Optional[str] = typer.Option(None, "--meta", "-m", help="Meta-address hex (0x01...)"),
    recipient: Optional[str] = typer.Option(None, "--recipient", "-r", help="Owner nel registry"),
    k: int = typer.Option(0, "--k", help="Indice k (uint32)")
):
    """Generate a one-time stealth address for a recipient"""
    if not meta and not recipient:
        console.print("[red]Provide --meta or --recipient.[/red]")
        raise typer.Exit(1)

    try:
        if meta:
            service = StealthService(settings=state.config or get_settings())
            generated = service.generate(StealthMetaAddress.from_hex(meta), k)
        else:
            generated = get_service().generate_for(recipient, k)

        table = Table(title="Stealth Payment")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        for field, value in generated.to_dict().items():
            table.add_row(field, str(value))
        console.print(table)

    except StealthPayException as e:
        fail("Error generating stealth address", e)


# ============================================================================
# SCAN COMMAND
# ============================================================================

@app.command("scan")
def scan(
    private_key: str = WALLET_KEY_OPTION,
    from_block: Optional[int] = typer.Option(None, "--from-block", "-f", help="Blocco iniziale"),
    to_block: Optional[int] = typer.Option(None, "--to-block", "-t", help="Blocco finale (default latest)"),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", "-c", help="Blocchi per query"),
    show_keys: bool = typer.Option(False, "--show-keys", help="Mostra chiavi stealth recuperate")
):
    """Scan the chain for incoming stealth payments"""
    try:
        service = get_service()
        keys = service.derive_keys(LocalAccountSignatureSource(private_key))

        kwargs = {"to_block": to_block, "chunk_size": chunk_size}
        if from_block is not None:
            kwargs["from_block"] = from_block

        with Progress(
            TextColumn("[cyan]Scanning"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total} blocks"),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("scan", total=None)

            def on_progress(scanned: int, total: int):
                progress.update(task, completed=scanned, total=total)

            result = service.scan(keys, on_progress=on_progress, **kwargs)

    except RpcFailureError as e:
        partial = e.partial_result
        if partial is not None and partial.matches:
            console.print(f"[yellow]Partial results: {len(partial.matches)} payments[/yellow]")
        console.print(f"[yellow]Resume with --from-block {partial.next_block if partial else from_block}[/yellow]")
        fail("Scan failed", e)
    except StealthPayException as e:
        fail("Error scanning", e)

    if not result.matches:
        console.print("[yellow]No payments found.[/yellow]")
        return

    table = Table(title=f"Stealth Payments (blocks {result.from_block}-{result.to_block})")
    table.add_column("Block", style="cyan")
    table.add_column("Stealth Address", style="green")
    table.add_column("Amount", justify="right")
    table.add_column("Symbol")
    table.add_column("k", justify="right")
    table.add_column("Ephemeral Key")
    if show_keys:
        table.add_column("Stealth Key", style="red")

    for match in result.matches:
        event = match.event
        row = [
            str(event.block_number),
            event.stealth_address,
            str(event.amount),
            event.symbol,
            str(event.k),
            event.ephemeral_public_key.hex(),
        ]
        if show_keys:
            row.append(f"0x{match.stealth_private_key:064x}" if match.stealth_private_key else "-")
        table.add_row(*row)

    console.print(table)


# ============================================================================
# SWEEP COMMAND
# ============================================================================

@app.command("sweep")
def sweep(
    private_key: str = WALLET_KEY_OPTION,
    ephemeral_key: str = typer.Option(..., "--ephemeral-key", "-e", help="Ephemeral pubkey dell'evento (hex)"),
    k: int = typer.Option(0, "--k", help="Indice k dell'evento"),
    stealth_address: str = typer.Option(..., "--stealth-address", "-s", help="Stealth address da svuotare"),
    destination: Optional[str] = typer.Option(None, "--destination", "-d", help="Default: wallet principale"),
    token: Optional[str] = typer.Option(None, "--token", help="Token ERC-20 (default nativo)")
):
    """Sweep a stealth address back to the main wallet"""
    try:
        service = get_service()
        source = LocalAccountSignatureSource(private_key)
        keys = service.derive_keys(source)

        ephemeral = bytes.fromhex(ephemeral_key[2:] if ephemeral_key.startswith("0x") else ephemeral_key)
        stealth_key = service.recoverer.recover_and_verify(
            ephemeral, keys.viewing.private_key, keys.spend.private_key, k, stealth_address
        )

        result = service.sweep(
            stealth_key,
            destination or source.address,
            token_address=token,
            funder_private_key=private_key,
            expected_stealth_address=stealth_address,
        )

        amount = str(result.amount) if result.is_token else format_wei(result.amount)
        console.print(Panel.fit(
            f"[green]✅ Swept {amount}[/green]\n\n"
            f"From: {shorten_address(result.stealth_address)}\n"
            f"To:   {result.destination}\n"
            f"Top-up tx: {result.topup_tx_hash or '-'}\n"
            f"Sweep tx:  {result.sweep_tx_hash}",
            title="Sweep Complete",
            border_style="green"
        ))

    except ValueError as e:
        fail("Invalid ephemeral key", e)
    except StealthPayException as e:
        fail("Error sweeping", e)


if __name__ == "__main__":
    app()
