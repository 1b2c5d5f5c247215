"""Helpers shared by the CLI subcommands."""

import warnings
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from pathlib import Path

from ..config import Settings, load_settings
from ..currency import Currency
from ..store import TransactionStore
from ..symbols import SymbolCatalog, load_symbol_catalog


def add_common_arguments(parser):
    """Add the options every subcommand understands.

    Args:
        parser: The subcommand's argparse parser.
    """
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding transactions, symbols and price history (default: $ASSETTRACKER_DATA_DIR or .assettracker)",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file with API keys (default: ./.env)",
    )
    parser.add_argument(
        "--ignore-errors",
        action="store_true",
        help="Silence data consistency warnings",
    )


def settings_from_args(args) -> Settings:
    """Load settings, applying command line overrides."""
    if args.ignore_errors:
        warnings.filterwarnings("ignore", category=UserWarning)

    settings = load_settings(args.env_file)
    if args.data_dir:
        settings.data_dir = Path(args.data_dir)
    return settings


def open_store(settings: Settings) -> TransactionStore:
    return TransactionStore(settings.transactions_path)


def open_catalog(settings: Settings) -> SymbolCatalog:
    return load_symbol_catalog(settings.symbols_path)


def parse_currency(code: str) -> Currency:
    """Raises ValueError with a readable message for unknown codes."""
    try:
        return Currency(code.strip().upper())
    except ValueError:
        raise ValueError(f"Unknown currency '{code}'") from None


def parse_decimal(text: str, name: str) -> Decimal:
    try:
        return Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Invalid {name}: '{text}'") from None


def parse_datetime(text: str | None, end_of_day: bool = False) -> datetime | None:
    """Parse an ISO date or datetime; dates without a timezone use local time.

    With ``end_of_day`` a bare date means the last moment of that day, so a
    cutoff of 2024-01-15 includes everything recorded on the 15th.
    """
    if text is None:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Invalid date '{text}', expected YYYY-MM-DD or an ISO datetime") from None
    if end_of_day and _is_bare_date(text):
        parsed = datetime.combine(parsed.date(), time.max)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def _is_bare_date(text: str) -> bool:
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def format_money(amount: Decimal, currency: Currency) -> str:
    return f"{amount:,.2f} {currency.value}"


def format_signed(amount: Decimal, currency: Currency) -> str:
    """Money with a sign, green for gains and red for losses."""
    if amount >= 0:
        return f"[green]+{amount:,.2f} {currency.value}[/green]"
    return f"[red]{amount:,.2f} {currency.value}[/red]"
