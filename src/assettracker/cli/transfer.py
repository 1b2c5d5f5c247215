"""Import and export subcommands for JSON and Excel transaction files."""

from pathlib import Path

from rich.console import Console

from ..portfolio import (
    Portfolio,
    load_portfolio_from_excel,
    load_portfolio_from_json,
    save_portfolio_to_excel,
    save_portfolio_to_json,
)
from .common import add_common_arguments, open_store, settings_from_args

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


def register_subcommand(subparsers):
    """Register the import and export subcommands.

    Args:
        subparsers: The argparse subparsers action to add the commands to.
    """
    import_parser = subparsers.add_parser(
        "import",
        help="Import transactions from a JSON or Excel file",
        description="Import transactions. The file type is chosen by extension (.json or .xlsx).",
    )
    import_parser.add_argument("file", help="File to import")
    import_parser.add_argument(
        "--replace",
        action="store_true",
        help="Replace all stored transactions instead of appending",
    )
    add_common_arguments(import_parser)
    import_parser.set_defaults(func=run_import)

    export_parser = subparsers.add_parser(
        "export",
        help="Export transactions to a JSON or Excel file",
        description="Export all stored transactions. The file type is chosen by extension (.json or .xlsx).",
    )
    export_parser.add_argument("file", help="Destination file")
    add_common_arguments(export_parser)
    export_parser.set_defaults(func=run_export)


def run_import(args):
    console = Console()
    path = Path(args.file)
    try:
        settings = settings_from_args(args)
        if path.suffix.lower() in EXCEL_SUFFIXES:
            imported = load_portfolio_from_excel(str(path))
        else:
            imported = load_portfolio_from_json(str(path))

        store = open_store(settings)
        if args.replace:
            added = list(imported.transactions)
            transactions = added
        else:
            existing = store.load_transactions()
            known_ids = {txn.id for txn in existing}
            added = [txn for txn in imported.transactions if txn.id not in known_ids]
            transactions = existing + added
        store.replace_all(transactions)
    except FileNotFoundError:
        console.print(f"[red]Error: File not found: {args.file}[/red]")
        return 1
    except (ValueError, KeyError) as e:
        console.print(f"[red]Error: could not import '{args.file}': {e}[/red]")
        return 1

    console.print(f"[green]Imported[/green] {len(added)} transactions from {args.file}")
    return 0


def run_export(args):
    console = Console()
    path = Path(args.file)
    try:
        settings = settings_from_args(args)
        portfolio = Portfolio(open_store(settings).load_transactions())
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if path.suffix.lower() in EXCEL_SUFFIXES:
        save_portfolio_to_excel(portfolio, str(path))
    else:
        save_portfolio_to_json(portfolio, str(path))

    console.print(f"[green]Exported[/green] {len(portfolio.transactions)} transactions to {args.file}")
    return 0
