"""
CLI interface for the marketplace finance core.

Provides command-line access to pricing, escrow, deviation checks and the
vendor wallet ledger.
"""

import logging
import sys
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from marketplace_finance.config.loader import DEFAULT_POLICY, PolicyConfig, load_policy_config
from marketplace_finance.core.deviation import check_deviation
from marketplace_finance.core.errors import FinanceError
from marketplace_finance.core.escrow import compute_release
from marketplace_finance.core.ledger import LedgerAccountant
from marketplace_finance.core.payout import PayoutProcessor
from marketplace_finance.core.pricing import (
    ParentUplift,
    PricingInput,
    UpliftKind,
    calculate_price,
    round_to_friendly_price,
)
from marketplace_finance.core.shipping import ShippingFeeInput, calculate_shipping_fee
from marketplace_finance.storage.db import DEFAULT_DB_PATH
from marketplace_finance.storage.models import (
    BalanceStatus,
    LedgerEntryDraft,
    TransactionType,
    VendorWallet,
)
from marketplace_finance.storage.repository import get_repository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1


class _Settings:
    """Options shared by every command."""
    def __init__(self, db_path: str = DEFAULT_DB_PATH, policy: PolicyConfig = DEFAULT_POLICY):
        self.db_path = db_path
        self.policy = policy


def _settings(ctx: typer.Context) -> _Settings:
    return ctx.obj if isinstance(ctx.obj, _Settings) else _Settings()


def _accountant(ctx: typer.Context) -> LedgerAccountant:
    settings = _settings(ctx)
    return LedgerAccountant(get_repository(settings.db_path), policy=settings.policy)


def _parse_amount(value: str, name: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise typer.BadParameter(f"{name} must be a number, got {value!r}")
    if not amount.is_finite():
        raise typer.BadParameter(f"{name} must be finite")
    return amount


def _parse_datetime(value: str, name: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"{name} must be an ISO-8601 date, got {value!r}")


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/] {error}")
    sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite database path"),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="YAML policy configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Marketplace finance CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )

    policy = DEFAULT_POLICY
    if config is not None:
        try:
            policy = load_policy_config(config)
        except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
            console.print(f"[red]Invalid policy configuration:[/] {e}")
            sys.exit(EXIT_CODE_FAIL)
    ctx.obj = _Settings(db_path=db_path, policy=policy)

    if ctx.invoked_subcommand is None:
        console.print("Marketplace Finance - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the wallet and ledger database."""
    try:
        initialize_schema(_settings(ctx).db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_OK)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def price(
    ctx: typer.Context,
    base_price: str = typer.Argument(..., help="Vendor base price"),
    category: str = typer.Option(..., "--category", "-k", help="Category identifier"),
    vat_registered: bool = typer.Option(
        False, "--vat-registered", help="Vendor is VAT-registered"
    ),
    non_legalized: bool = typer.Option(
        False, "--non-legalized", help="Vendor sells through a cooperative"
    ),
    parent_uplift_kind: Optional[UpliftKind] = typer.Option(
        None, "--parent-uplift-kind", help="Parent vendor uplift kind"
    ),
    parent_uplift_value: Optional[str] = typer.Option(
        None, "--parent-uplift-value", help="Fixed amount or fraction of base price"
    ),
    override: Optional[str] = typer.Option(
        None, "--override", help="Manual commission rate, replaces the category rate"
    ),
):
    """Calculate the customer price and its four-bucket split."""
    policy = _settings(ctx).policy

    parent_uplift = None
    if parent_uplift_kind is not None or parent_uplift_value is not None:
        if parent_uplift_kind is None or parent_uplift_value is None:
            raise typer.BadParameter(
                "--parent-uplift-kind and --parent-uplift-value must be given together"
            )
        parent_uplift = ParentUplift(
            kind=parent_uplift_kind,
            value=_parse_amount(parent_uplift_value, "parent uplift value"),
        )

    pricing_input = PricingInput(
        vendor_base_price=_parse_amount(base_price, "base price"),
        category_id=category,
        is_vendor_vat_registered=vat_registered,
        is_non_legalized_vendor=non_legalized,
        parent_uplift=parent_uplift,
        custom_uplift_override=_parse_amount(override, "override") if override else None,
    )

    try:
        breakdown = calculate_price(pricing_input, policy)
    except FinanceError as e:
        _fail(e)

    table = Table(title="Price Breakdown")
    table.add_column("Component")
    table.add_column("Amount", justify="right")
    rows = [
        ("Vendor base price", breakdown.vendor_base_price),
        ("Cooperative fee", breakdown.cooperative_fee),
        ("Parent vendor uplift", breakdown.parent_uplift_amount),
        ("Marketplace uplift", breakdown.marketplace_uplift),
        ("Logistics surcharge", breakdown.logistics_surcharge),
        ("Bucket A - vendor revenue", breakdown.bucket_a_vendor_revenue),
        ("Bucket B - vendor VAT", breakdown.bucket_b_vendor_vat),
        ("Bucket C - platform revenue", breakdown.bucket_c_platform_revenue),
        ("Bucket D - platform VAT", breakdown.bucket_d_platform_vat),
        ("Final price", breakdown.final_price),
        ("Vendor net payout", breakdown.vendor_net_payout),
        ("Total VAT", breakdown.total_vat),
    ]
    for label, amount in rows:
        table.add_row(label, _format_currency(amount))
    console.print(table)
    console.print(f"Commission rate: {_format_rate(breakdown.commission_rate)}")
    category_config = policy.get_category(category)
    if category_config is not None:
        console.print(
            f"Category band: {_format_rate(category_config.min_rate)} to "
            f"{_format_rate(category_config.max_rate)} ({category_config.risk.value} risk)"
        )
    console.print(f"Platform margin: {breakdown.margin_percent}%")
    console.print(
        f"Friendly price: {_format_currency(round_to_friendly_price(breakdown.final_price, policy))}"
    )


@app.command()
def escrow(
    ctx: typer.Context,
    delivery_date: str = typer.Argument(..., help="Delivery timestamp (ISO-8601)"),
):
    """Show when escrowed funds for a delivery are released."""
    result = compute_release(
        _parse_datetime(delivery_date, "delivery date"), policy=_settings(ctx).policy
    )
    console.print(f"Release date: {result.release_date.isoformat()}")
    console.print(f"Hold days: {result.hold_days}")
    if result.is_released:
        console.print("[green]Released[/]")
    else:
        console.print(f"[yellow]On hold[/] ({result.days_remaining} days remaining)")


@app.command()
def deviation(
    ctx: typer.Context,
    observed_price: str = typer.Argument(..., help="Listing price"),
    benchmark: str = typer.Argument(..., help="Category average price"),
    threshold: Optional[str] = typer.Option(
        None, "--threshold", "-t", help="Allowed deviation as a fraction"
    ),
):
    """Check a listing price against its category benchmark."""
    try:
        result = check_deviation(
            _parse_amount(observed_price, "price"),
            _parse_amount(benchmark, "benchmark"),
            threshold=_parse_amount(threshold, "threshold") if threshold else None,
            policy=_settings(ctx).policy,
        )
    except FinanceError as e:
        _fail(e)

    console.print(f"Deviation: {_format_rate(result.deviation_percent)}")
    console.print(f"Threshold: {_format_rate(result.threshold)}")
    if result.is_flagged:
        console.print(f"[red]FLAGGED[/] ({result.direction.value} benchmark)")
    else:
        console.print("[green]OK[/]")


@app.command()
def shipping(
    ctx: typer.Context,
    weight: str = typer.Option(..., "--weight", help="Actual weight in kg"),
    length: str = typer.Option(..., "--length", help="Length in cm"),
    width: str = typer.Option(..., "--width", help="Width in cm"),
    height: str = typer.Option(..., "--height", help="Height in cm"),
    base_rate: str = typer.Option(..., "--base-rate", help="Zone base rate (first kg)"),
    per_kg_rate: str = typer.Option(..., "--per-kg-rate", help="Rate per extra kg"),
):
    """Calculate the shipping fee for a parcel."""
    shipping_input = ShippingFeeInput(
        actual_weight_kg=_parse_amount(weight, "weight"),
        length_cm=_parse_amount(length, "length"),
        width_cm=_parse_amount(width, "width"),
        height_cm=_parse_amount(height, "height"),
        base_rate=_parse_amount(base_rate, "base rate"),
        per_kg_rate=_parse_amount(per_kg_rate, "per-kg rate"),
    )
    try:
        result = calculate_shipping_fee(shipping_input, _settings(ctx).policy)
    except FinanceError as e:
        _fail(e)

    console.print(f"Chargeable weight: {result.chargeable_weight_kg} kg "
                  f"(volumetric {result.volumetric_weight_kg} kg)")
    console.print(f"Total fee: {_format_currency(result.total_fee)}")
    console.print(f"Customer fee: {_format_currency(result.customer_fee)}")
    console.print(f"Platform subsidy: {_format_currency(result.platform_subsidy)}")


@app.command("open-wallet")
def open_wallet(
    ctx: typer.Context,
    vendor_id: str = typer.Argument(..., help="Vendor identifier"),
):
    """Provision an empty wallet for a vendor."""
    try:
        wallet = _accountant(ctx).open_wallet(vendor_id)
    except FinanceError as e:
        _fail(e)
    console.print(f"[green]✓[/] Wallet opened for vendor {wallet.vendor_id}")


@app.command()
def record(
    ctx: typer.Context,
    vendor_id: str = typer.Argument(..., help="Vendor identifier"),
    transaction_type: TransactionType = typer.Option(..., "--type", help="Transaction type"),
    status: BalanceStatus = typer.Option(..., "--status", help="Balance status"),
    amount: str = typer.Option(..., "--amount", help="Signed transaction amount"),
    vendor_amount: Optional[str] = typer.Option(
        None, "--vendor-amount", help="Vendor portion (defaults to amount)"
    ),
    commission_amount: str = typer.Option("0", "--commission", help="Commission portion"),
    vat_amount: str = typer.Option("0", "--vat", help="VAT portion"),
    description: Optional[str] = typer.Option(
        None, "--description", "-d", help="Entry description (defaults to a summary)"
    ),
    order_id: Optional[str] = typer.Option(None, "--order-id", help="Related order"),
):
    """Record a ledger entry and apply it to the vendor's wallet."""
    total = _parse_amount(amount, "amount")
    draft = LedgerEntryDraft(
        transaction_type=transaction_type,
        amount=total,
        vendor_amount=_parse_amount(vendor_amount, "vendor amount") if vendor_amount else total,
        commission_amount=_parse_amount(commission_amount, "commission"),
        vat_amount=_parse_amount(vat_amount, "VAT"),
        balance_status=status,
        description=description or f"Manual {transaction_type.value} entry of {total:,.2f}",
        order_id=order_id,
    )
    accountant = _accountant(ctx)
    try:
        entry = accountant.apply_entry(vendor_id, draft)
        wallet = accountant.get_wallet(vendor_id)
    except FinanceError as e:
        _fail(e)
    console.print(f"[green]✓[/] Recorded entry {entry.entry_id}")
    _display_wallet(wallet)


@app.command()
def release(
    ctx: typer.Context,
    vendor_id: str = typer.Argument(..., help="Vendor identifier"),
    amount: str = typer.Argument(..., help="Amount to release from escrow"),
    delivered_on: str = typer.Option(
        ..., "--delivered-on", help="Delivery timestamp (ISO-8601)"
    ),
    order_id: Optional[str] = typer.Option(None, "--order-id", help="Related order"),
):
    """Move escrowed funds to the available balance once the hold is over."""
    accountant = _accountant(ctx)
    try:
        entry = accountant.release_escrow(
            vendor_id,
            _parse_amount(amount, "amount"),
            _parse_datetime(delivered_on, "delivery date"),
            order_id=order_id,
        )
        wallet = accountant.get_wallet(vendor_id)
    except FinanceError as e:
        _fail(e)
    console.print(f"[green]✓[/] Released {_format_currency(entry.vendor_amount)}")
    _display_wallet(wallet)


@app.command()
def payout(
    ctx: typer.Context,
    vendor_id: str = typer.Argument(..., help="Vendor identifier"),
    amount: str = typer.Argument(..., help="Amount to pay out"),
    note: Optional[str] = typer.Option(None, "--note", "-n", help="Payout note"),
):
    """Pay out available funds to a vendor."""
    accountant = _accountant(ctx)
    try:
        entry = PayoutProcessor(accountant).payout(
            vendor_id, _parse_amount(amount, "amount"), note=note
        )
        wallet = accountant.get_wallet(vendor_id)
    except FinanceError as e:
        _fail(e)
    console.print(f"[green]✓[/] Payout recorded as entry {entry.entry_id}")
    _display_wallet(wallet)


@app.command()
def wallet(
    ctx: typer.Context,
    vendor_id: str = typer.Argument(..., help="Vendor identifier"),
):
    """Show a vendor's wallet balances."""
    try:
        current = _accountant(ctx).get_wallet(vendor_id)
    except FinanceError as e:
        _fail(e)
    _display_wallet(current)


@app.command()
def ledger(
    ctx: typer.Context,
    vendor_id: str = typer.Argument(..., help="Vendor identifier"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum entries to show"),
):
    """List a vendor's ledger entries, newest first."""
    entries = _accountant(ctx).list_entries(vendor_id, limit=limit)
    if not entries:
        console.print(f"[dim]No ledger entries for vendor {vendor_id}.[/]")
        return

    table = Table(title=f"Ledger - {vendor_id}")
    table.add_column("Created")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Vendor amount", justify="right")
    table.add_column("Description")
    for entry in entries:
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
            entry.transaction_type.value,
            entry.balance_status.value,
            _format_signed(entry.vendor_amount),
            entry.description,
        )
    console.print(table)


def _format_currency(amount: Decimal) -> str:
    """Format currency with thousands separators."""
    return f"{amount:,.2f}"


def _format_signed(amount: Decimal) -> str:
    return f"{'-' if amount < 0 else ''}{abs(amount):,.2f}"


def _format_rate(rate: Decimal) -> str:
    """Format a fraction as a percentage."""
    return f"{rate * 100:,.2f}%"


def _display_wallet(current: VendorWallet) -> None:
    """Display wallet balances in a clean, financial format."""
    table = Table(title=f"Wallet - {current.vendor_id}")
    table.add_column("Balance")
    table.add_column("Amount", justify="right")
    table.add_row("Pending", _format_currency(current.pending_balance))
    table.add_row("Available", _format_currency(current.available_balance))
    table.add_row("Lifetime earnings", _format_currency(current.lifetime_earnings))
    table.add_row("Lifetime payouts", _format_currency(current.lifetime_payouts))
    table.add_row("Lifetime reversals", _format_currency(current.lifetime_reversals))
    console.print(table)


if __name__ == "__main__":
    app()
