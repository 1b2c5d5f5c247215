#!/usr/bin/env python3
"""Report subcommand - Display holdings, gains and portfolio totals."""

from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from ..accounting import calculate_allocation
from ..config import build_exchange_rate_manager, build_pricing_manager
from ..pricehistory import load_price_history, save_price_history
from ..pricingdata import PricePoint
from ..portfolio import Portfolio, summarize
from ..symbols import format_quantity
from .common import (
    add_common_arguments,
    format_money,
    format_signed,
    open_catalog,
    open_store,
    parse_currency,
    parse_datetime,
    settings_from_args,
)


def register_subcommand(subparsers):
    """Register the report subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "report",
        help="Display holdings, gains and portfolio totals",
        description="Display positions with FIFO realized/unrealized gains, portfolio totals and allocation.",
    )
    parser.add_argument(
        "--currency",
        "-c",
        default=None,
        help="Display currency (default: $ASSETTRACKER_DISPLAY_CURRENCY or USD)",
    )
    parser.add_argument(
        "--as-of",
        default=None,
        help="Only count transactions on or before this date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use the latest recorded prices instead of fetching live ones",
    )
    parser.add_argument(
        "--sort",
        choices=["asc", "desc"],
        default="asc",
        help="Order positions by last transaction date (default: asc)",
    )
    add_common_arguments(parser)
    parser.set_defaults(func=run)


def run(args):
    """Print the positions table, the summary panel and the allocation table.

    Args:
        args: Parsed argparse namespace.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    console = Console()

    try:
        settings = settings_from_args(args)
        display_currency = parse_currency(args.currency) if args.currency else settings.display_currency
        as_of = parse_datetime(args.as_of, end_of_day=True)
        transactions = open_store(settings).load_transactions()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not transactions:
        console.print("No transactions recorded yet. Add one with [cyan]assettracker add[/cyan].")
        return 0

    catalog = open_catalog(settings)
    history = load_price_history(settings.price_history_path)
    portfolio = Portfolio(
        transactions=transactions,
        display_currency=display_currency,
        exchange_rate_manager=build_exchange_rate_manager(settings),
        pricing_manager=build_pricing_manager(settings, catalog),
    )

    if args.offline:
        current_prices: dict[str, PricePoint] = {}
        for symbol in portfolio.symbols:
            entries = history.get_asset_price_history(symbol)
            if entries:
                last = entries[-1]
                current_prices[symbol] = PricePoint(symbol, last.entry_datetime, last.price, last.currency)
    else:
        current_prices = portfolio.get_current_prices()
        for price_point in current_prices.values():
            history.record_price_point(price_point)
        save_price_history(history, settings.price_history_path)

    try:
        positions, results, summary = summarize(portfolio, as_of, current_prices)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    convert = portfolio.exchange_rate_manager.convert
    report_time = (as_of or datetime.now(timezone.utc)).astimezone()

    positions.sort(
        key=lambda p: p.last_transaction_datetime or datetime.min.replace(tzinfo=timezone.utc),
        reverse=args.sort == "desc",
    )

    table = Table(title=f"Positions on {report_time.strftime('%Y-%m-%d %H:%M %Z')}")
    table.add_column("Asset", style="cyan", justify="left")
    table.add_column("Holdings", style="magenta", justify="right")
    table.add_column(f"Buy Value ({display_currency.value})", style="yellow", justify="right")
    table.add_column("Market Price", justify="right")
    table.add_column(f"Market Value ({display_currency.value})", style="green", justify="right")
    table.add_column("Realized", justify="right")
    table.add_column("Unrealized", justify="right")
    table.add_column("Total Return", justify="right")
    table.add_column("Last Transaction", justify="right")

    for position in positions:
        info = catalog.get(position.symbol)
        result = results[position.symbol]

        if position.symbol in current_prices:
            price_str = format_money(position.current_price, position.current_price_currency)
        else:
            price_str = "N/A"

        if result.gain_percentage >= 0:
            pct_str = f"[green]+{result.gain_percentage:.2f}%[/green]"
        else:
            pct_str = f"[red]{result.gain_percentage:.2f}%[/red]"

        last_date = position.last_transaction_datetime
        table.add_row(
            f"{info.name} ({info.symbol})",
            format_quantity(info, position.net_quantity),
            f"{convert(position.total_buy_value, position.total_buy_currency, display_currency):,.2f}",
            price_str,
            f"{result.current_value:,.2f}",
            format_signed(result.realized_gain, display_currency),
            format_signed(result.unrealized_gain, display_currency),
            f"{format_signed(result.total_gain, display_currency)} ({pct_str})",
            last_date.astimezone().strftime("%Y-%m-%d") if last_date else "",
        )

    console.print(table)

    profit_style = "green" if summary.total_profit >= 0 else "red"
    console.print(
        Panel(
            f"Total Buy Value: [yellow]{format_money(summary.total_buy_value, display_currency)}[/yellow]\n"
            f"Total Earnings: {format_money(summary.total_earnings, display_currency)}\n"
            f"Current Value: [green]{format_money(summary.total_current_value, display_currency)}[/green]\n"
            f"[bold {profit_style}]Total Profit/Loss: {format_money(summary.total_profit, display_currency)}[/bold {profit_style}]\n"
            f"  Trading: {format_money(summary.trading_profit, display_currency)} | "
            f"Earnings: {format_money(summary.total_earnings, display_currency)}",
            title="Summary",
        )
    )

    allocation = calculate_allocation(results)
    if allocation:
        allocation_table = Table(title="Portfolio Distribution")
        allocation_table.add_column("Asset", style="cyan", justify="left")
        allocation_table.add_column(f"Value ({display_currency.value})", style="green", justify="right")
        allocation_table.add_column("Share", justify="right")
        for slice_ in allocation:
            allocation_table.add_row(slice_.symbol, f"{slice_.value:,.2f}", f"{slice_.percentage:.2f}%")
        console.print(allocation_table)

    return 0
