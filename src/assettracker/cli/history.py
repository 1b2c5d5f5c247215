"""History subcommand - Portfolio value over time from recorded prices."""

from rich.console import Console
from rich.table import Table

from ..accounting import group_by_symbol
from ..config import build_exchange_rate_manager
from ..pricehistory import (
    TimeInterval,
    backfill_price_history,
    calculate_portfolio_value_by_period,
    load_price_history,
    save_price_history,
)
from ..pricingdata import YFinancePricingDataManager
from .common import (
    add_common_arguments,
    open_store,
    parse_currency,
    parse_datetime,
    settings_from_args,
)


def register_subcommand(subparsers):
    """Register the history subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "history",
        help="Show portfolio value over time",
        description="Value the holdings at regular dates using recorded monthly prices.",
    )
    parser.add_argument(
        "--interval",
        "-i",
        type=str.upper,
        choices=[interval.value for interval in TimeInterval],
        default=TimeInterval.MONTHLY.value,
        help="Spacing of the series (default: MONTHLY)",
    )
    parser.add_argument("--currency", "-c", default=None, help="Display currency")
    parser.add_argument("--start", default=None, help="First date (default: first transaction)")
    parser.add_argument("--end", default=None, help="Last date (default: now)")
    parser.add_argument(
        "--backfill",
        action="store_true",
        help="Fetch missing monthly prices from Yahoo Finance before computing",
    )
    add_common_arguments(parser)
    parser.set_defaults(func=run)


def run(args):
    """Print one row per date with the total and per-asset values.

    Args:
        args: Parsed argparse namespace.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    console = Console()
    try:
        settings = settings_from_args(args)
        display_currency = parse_currency(args.currency) if args.currency else settings.display_currency
        start = parse_datetime(args.start)
        end = parse_datetime(args.end, end_of_day=True)
        transactions = open_store(settings).load_transactions()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not transactions:
        console.print("No transactions recorded yet.")
        return 0

    history = load_price_history(settings.price_history_path)

    if args.backfill:
        pricing_manager = YFinancePricingDataManager(cache_dir=settings.data_dir / "yfinance_prices")
        for symbol, symbol_transactions in group_by_symbol(transactions).items():
            first = min(txn.transaction_datetime for txn in symbol_transactions)
            with console.status(f"Backfilling {symbol}..."):
                added = backfill_price_history(history, symbol, first, pricing_manager)
            if added:
                console.print(f"  {symbol}: {added} monthly prices added")
        save_price_history(history, settings.price_history_path)

    exchange_rate_manager = build_exchange_rate_manager(settings)
    try:
        points = calculate_portfolio_value_by_period(
            transactions,
            history,
            TimeInterval(args.interval),
            display_currency,
            exchange_rate_manager.convert,
            start=start,
            end=end,
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    symbols = sorted({symbol for point in points for symbol in point.by_symbol})
    table = Table(title=f"Portfolio Value ({args.interval.lower()}, {display_currency.value})")
    table.add_column("Date", justify="left")
    table.add_column("Total", style="green", justify="right")
    for symbol in symbols:
        table.add_column(symbol, style="cyan", justify="right")

    for point in points:
        table.add_row(
            point.point_datetime.strftime("%Y-%m-%d"),
            f"{point.total_value:,.2f}",
            *[f"{point.by_symbol[symbol]:,.2f}" if symbol in point.by_symbol else "" for symbol in symbols],
        )

    console.print(table)
    return 0
