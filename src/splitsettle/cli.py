"""CLI for SplitSettle using Typer."""

import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .clients.rates import CachingRateProvider, HttpRateProvider, StaticRateProvider
from .config import Settings, load_settings
from .currencies import format_amount, supported_currencies
from .db import Database
from .models import Expense, Settlement, Transfer
from .money import Money
from .normalizer import CurrencyNormalizer
from .service import SettlementEngine

app = typer.Typer(
    name="split-settle",
    help="Group expense balances and minimal settlement transfers",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_engine(settings: Settings) -> Iterator[tuple[SettlementEngine, Database]]:
    """Build an engine over the configured database and rate source."""
    db = Database(settings.database_path)
    http_provider = None
    try:
        if settings.rate_source == "http":
            http_provider = HttpRateProvider(
                settings.rates_api_url, api_key=settings.rates_api_key
            )
            provider = CachingRateProvider(
                http_provider,
                ttl=timedelta(seconds=settings.rate_cache_ttl_seconds),
                database=db,
            )
        else:
            provider = StaticRateProvider.from_base_rates()

        normalizer = CurrencyNormalizer(provider, max_rate_age=settings.rate_max_age)
        engine = SettlementEngine(
            normalizer, store=db, reporting_currency=settings.reporting_currency
        )
        yield engine, db
    finally:
        if http_provider is not None:
            http_provider.close()
        db.close()


def format_money(money: Money, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    """
    formatted = format_amount(money.negate() if money.minor_units < 0 else money)
    if money.minor_units < 0:
        return f"([red]{formatted}[/red])" if use_color else f"({formatted})"
    return f" [green]{formatted}[/green] " if use_color else f" {formatted} "


def load_expenses(path: Path) -> list[Expense]:
    """Read one expense object or a list of them from a JSON file."""
    data = json.loads(path.read_text(encoding="utf-8"))
    records = data if isinstance(data, list) else [data]
    return [Expense.model_validate(record) for record in records]


def display_transfers(transfers: list[Transfer]):
    """Display settlement transfers in a table."""
    if not transfers:
        console.print("[green]✓ Everyone is settled up.[/green]")
        return

    table = Table(
        title="Suggested Transfers",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("From", style="cyan")
    table.add_column("To", style="cyan")
    table.add_column("Amount", justify="right")
    for transfer in transfers:
        table.add_row(
            transfer.from_user_id,
            transfer.to_user_id,
            format_money(transfer.amount),
        )
    console.print(table)


def _fail(e: Exception, verbose: bool):
    console.print(f"\n[bold red]Error:[/bold red] {e}")
    if verbose:
        raise e
    sys.exit(1)


@app.command("add-expense")
def add_expense(
    path: Path = typer.Argument(..., exists=True, help="JSON file with expense(s)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Validate and store expenses from a JSON file.

    Every expense is resolved before anything is saved; one bad expense
    rejects the whole file.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        with open_engine(settings) as (engine, db):
            expenses = load_expenses(path)
            for expense in expenses:
                engine.resolve_expense(expense)
            for expense in expenses:
                db.save_expense(expense)

        console.print(f"[green]✓ Stored {len(expenses)} expense(s)[/green]")
    except Exception as e:
        _fail(e, verbose)


@app.command("remove-expense")
def remove_expense(
    expense_id: str = typer.Argument(..., help="Expense id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete a stored expense."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        with open_engine(settings) as (engine, db):
            expense = engine.get_expense(expense_id)
            db.delete_expense(expense.id)

        console.print(f"[green]✓ Removed expense {expense_id}[/green]")
    except Exception as e:
        _fail(e, verbose)


@app.command()
def settle(
    group_id: str = typer.Argument(..., help="Group id"),
    from_user: str = typer.Argument(..., help="Member who paid"),
    to_user: str = typer.Argument(..., help="Member who received"),
    amount: str = typer.Argument(..., help="Amount in major units, e.g. 12.50"),
    currency: str = typer.Option("USD", "--currency", "-c", help="Currency code"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record a completed settlement payment between two members."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        with open_engine(settings) as (_engine, db):
            settlement = Settlement(
                id=str(uuid.uuid4()),
                group_id=group_id,
                from_user_id=from_user,
                to_user_id=to_user,
                amount=Money.from_decimal(Decimal(amount), currency),
            )
            db.save_settlement(settlement)

        console.print(
            f"[green]✓ Recorded {from_user} → {to_user} "
            f"{format_amount(settlement.amount)}[/green]"
        )
    except Exception as e:
        _fail(e, verbose)


@app.command()
def balances(
    group_id: str = typer.Argument(..., help="Group id"),
    currency: str | None = typer.Option(
        None, "--currency", "-c", help="Reporting currency (default: per currency)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show each member's net balance in a group."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        with open_engine(settings) as (engine, _db):
            engine.rebuild_group(group_id)
            lines = engine.get_group_balances(group_id, currency)

        if not lines:
            console.print("[green]✓ All balances are zero.[/green]")
            return

        table = Table(
            title=f"Balances: {group_id}",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Member", style="cyan")
        table.add_column("Currency", style="dim")
        table.add_column("Net", justify="right")
        for line in lines:
            table.add_row(
                line.user_id,
                line.currency,
                format_money(Money(minor_units=line.net, currency=line.currency)),
            )
        console.print(table)
    except Exception as e:
        _fail(e, verbose)


@app.command()
def debts(
    group_id: str = typer.Argument(..., help="Group id"),
    currency: str | None = typer.Option(
        None, "--currency", "-c", help="Settle everything in this currency"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show the transfers that settle a group."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        with open_engine(settings) as (engine, _db):
            engine.rebuild_group(group_id)
            transfers = engine.simplify_debts(group_id, currency)

        display_transfers(transfers)
    except Exception as e:
        _fail(e, verbose)


@app.command()
def member(
    group_id: str = typer.Argument(..., help="Group id"),
    user_id: str = typer.Argument(..., help="Member id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show what one member paid and owes in a group."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        with open_engine(settings) as (engine, _db):
            engine.rebuild_group(group_id)
            rows = engine.get_user_balance(group_id, user_id)

        table = Table(
            title=f"{user_id} in {group_id}",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Currency", style="dim")
        table.add_column("Paid", justify="right")
        table.add_column("Owed", justify="right")
        table.add_column("Net", justify="right")
        for row in rows:
            table.add_row(
                row.currency,
                format_amount(Money(minor_units=row.total_paid, currency=row.currency)),
                format_amount(Money(minor_units=row.total_owed, currency=row.currency)),
                format_money(
                    Money(minor_units=row.net_minor_units, currency=row.currency)
                ),
            )
        console.print(table)
    except Exception as e:
        _fail(e, verbose)


@app.command()
def currencies():
    """List supported currencies."""
    table = Table(
        title="Supported Currencies", show_header=True, header_style="bold magenta"
    )
    table.add_column("Code", style="cyan", width=6)
    table.add_column("Name")
    table.add_column("Symbol", justify="center")
    table.add_column("Decimals", justify="right", style="dim")
    for info in supported_currencies():
        table.add_row(info.code, info.name, info.symbol, str(info.precision))
    console.print(table)


if __name__ == "__main__":
    app()
