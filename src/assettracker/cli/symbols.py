"""Symbols subcommand - List and maintain the asset symbol catalog."""

from rich.console import Console
from rich.table import Table

from ..symbols import SymbolInfo, SymbolKind, save_symbol_catalog
from .common import add_common_arguments, open_catalog, settings_from_args


def register_subcommand(subparsers):
    """Register the symbols subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "symbols",
        help="List, add or remove asset symbols",
        description="Maintain the catalog of asset names and units shown in reports.",
    )
    parser.add_argument("action", nargs="?", choices=["list", "add", "remove"], default="list")
    parser.add_argument("symbol", nargs="?", default=None, help="Symbol key, e.g. ADA")
    parser.add_argument("name", nargs="?", default=None, help="Display name (add only)")
    parser.add_argument(
        "--kind",
        type=str.upper,
        choices=[kind.value for kind in SymbolKind],
        default=SymbolKind.CRYPTO.value,
        help="Where the symbol is priced from (default: CRYPTO)",
    )
    parser.add_argument("--unit", default=None, help="Unit label, e.g. grams")
    add_common_arguments(parser)
    parser.set_defaults(func=run)


def run(args):
    console = Console()
    try:
        settings = settings_from_args(args)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    catalog = open_catalog(settings)

    if args.action == "list":
        table = Table(title="Symbols")
        table.add_column("Symbol", style="cyan")
        table.add_column("Name")
        table.add_column("Kind")
        table.add_column("Unit")
        for info in catalog.symbols:
            table.add_row(info.symbol, info.name, info.kind.value, info.unit or "")
        console.print(table)
        return 0

    if not args.symbol:
        console.print(f"[red]Error: {args.action} needs a symbol[/red]")
        return 1
    symbol = args.symbol.strip().upper()

    try:
        if args.action == "add":
            catalog.add(SymbolInfo(symbol, args.name or "", SymbolKind(args.kind), args.unit))
        else:
            catalog.remove(symbol)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except KeyError:
        console.print(f"[red]Error: Symbol not found: {symbol}[/red]")
        return 1

    save_symbol_catalog(catalog, settings.symbols_path)
    console.print(f"[green]{'Added' if args.action == 'add' else 'Removed'}[/green] {symbol}")
    return 0
