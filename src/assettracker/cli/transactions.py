"""Transaction subcommands - add, edit, delete, list and convert."""

from rich.console import Console
from rich.table import Table

from ..symbols import format_quantity
from ..transactions import TransactionType
from .common import (
    add_common_arguments,
    open_catalog,
    open_store,
    parse_currency,
    parse_datetime,
    parse_decimal,
    settings_from_args,
)

RECORDABLE_TYPES = [TransactionType.BUY.value, TransactionType.SELL.value, TransactionType.EARN.value]


def register_subcommand(subparsers):
    """Register add, edit, delete, list and convert.

    Args:
        subparsers: The argparse subparsers action to add the commands to.
    """
    add_parser = subparsers.add_parser(
        "add",
        help="Record a BUY, SELL or EARN transaction",
        description="Record a transaction. PRICE is the total paid or received, not the unit price.",
    )
    add_parser.add_argument("symbol", help="Asset symbol, e.g. BTC or GOLD")
    add_parser.add_argument("transaction_type", type=str.upper, choices=RECORDABLE_TYPES, help="Transaction type")
    add_parser.add_argument("quantity", help="Units transacted")
    add_parser.add_argument("price", nargs="?", default="0", help="Total price (default: 0)")
    add_parser.add_argument("--currency", "-c", default="USD", help="Currency of the price (default: USD)")
    add_parser.add_argument("--date", default=None, help="Transaction date (default: now)")
    add_common_arguments(add_parser)
    add_parser.set_defaults(func=run_add)

    edit_parser = subparsers.add_parser(
        "edit",
        help="Edit a stored transaction",
        description="Change fields of a stored transaction. Unspecified fields are kept.",
    )
    edit_parser.add_argument("id", help="Transaction id")
    edit_parser.add_argument("--symbol", default=None)
    edit_parser.add_argument("--type", dest="transaction_type", type=str.upper, default=None,
                             choices=[t.value for t in TransactionType])
    edit_parser.add_argument("--quantity", default=None)
    edit_parser.add_argument("--price", default=None)
    edit_parser.add_argument("--currency", "-c", default=None)
    edit_parser.add_argument("--date", default=None)
    add_common_arguments(edit_parser)
    edit_parser.set_defaults(func=run_edit)

    delete_parser = subparsers.add_parser(
        "delete",
        help="Delete a stored transaction",
        description="Delete a transaction. Deleting one leg of a conversion deletes both legs.",
    )
    delete_parser.add_argument("id", help="Transaction id")
    add_common_arguments(delete_parser)
    delete_parser.set_defaults(func=run_delete)

    list_parser = subparsers.add_parser(
        "list",
        help="List stored transactions",
        description="List stored transactions by date, optionally for one symbol.",
    )
    list_parser.add_argument("--symbol", "-s", default=None, help="Only show this symbol")
    add_common_arguments(list_parser)
    list_parser.set_defaults(func=run_list)

    convert_parser = subparsers.add_parser(
        "convert",
        help="Record a conversion from one asset into another",
        description="Record both legs of a conversion. VALUE is the worth of what moved in --currency.",
    )
    convert_parser.add_argument("from_symbol", help="Asset given up")
    convert_parser.add_argument("from_quantity", help="Units given up")
    convert_parser.add_argument("to_symbol", help="Asset received")
    convert_parser.add_argument("to_quantity", help="Units received")
    convert_parser.add_argument("value", help="Value of the conversion")
    convert_parser.add_argument("--currency", "-c", default="USD", help="Currency of the value (default: USD)")
    convert_parser.add_argument("--date", default=None, help="Conversion date (default: now)")
    add_common_arguments(convert_parser)
    convert_parser.set_defaults(func=run_convert)


def run_add(args):
    console = Console()
    try:
        settings = settings_from_args(args)
        transaction = open_store(settings).add_transaction(
            symbol=args.symbol.strip().upper(),
            transaction_type=TransactionType(args.transaction_type),
            quantity=parse_decimal(args.quantity, "quantity"),
            price=parse_decimal(args.price, "price"),
            currency=parse_currency(args.currency),
            transaction_datetime=parse_datetime(args.date),
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print(f"[green]Recorded[/green] {transaction.transaction_type.value} {transaction.quantity} "
                  f"{transaction.symbol} (id {transaction.id})")
    return 0


def run_edit(args):
    console = Console()
    changes = {}
    try:
        settings = settings_from_args(args)
        if args.symbol is not None:
            changes["symbol"] = args.symbol.strip().upper()
        if args.transaction_type is not None:
            changes["transaction_type"] = TransactionType(args.transaction_type)
        if args.quantity is not None:
            changes["quantity"] = parse_decimal(args.quantity, "quantity")
        if args.price is not None:
            changes["price"] = parse_decimal(args.price, "price")
        if args.currency is not None:
            changes["currency"] = parse_currency(args.currency)
        if args.date is not None:
            changes["transaction_datetime"] = parse_datetime(args.date)

        if not changes:
            console.print("[yellow]Nothing to change.[/yellow]")
            return 0

        transaction = open_store(settings).update_transaction(args.id, **changes)
    except (ValueError, KeyError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print(f"[green]Updated[/green] {transaction}")
    return 0


def run_delete(args):
    console = Console()
    try:
        settings = settings_from_args(args)
        transaction = open_store(settings).delete_transaction(args.id)
    except (ValueError, KeyError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print(f"[green]Deleted[/green] {transaction}")
    return 0


def run_list(args):
    console = Console()
    try:
        settings = settings_from_args(args)
        transactions = open_store(settings).load_transactions()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    catalog = open_catalog(settings)
    if args.symbol:
        symbol = args.symbol.strip().upper()
        transactions = [txn for txn in transactions if txn.symbol == symbol]
    transactions.sort(key=lambda t: t.transaction_datetime)

    table = Table(title="Transactions")
    table.add_column("ID", style="dim")
    table.add_column("Date", justify="left")
    table.add_column("Asset", style="cyan")
    table.add_column("Type", justify="left")
    table.add_column("Quantity", style="magenta", justify="right")
    table.add_column("Price", style="yellow", justify="right")
    table.add_column("Unit Price", justify="right")

    for txn in transactions:
        info = catalog.get(txn.symbol)
        table.add_row(
            txn.id,
            txn.transaction_datetime.astimezone().strftime("%Y-%m-%d %H:%M"),
            txn.symbol,
            txn.transaction_type.value,
            format_quantity(info, txn.quantity),
            f"{txn.price:,.2f} {txn.currency.value}",
            f"{txn.unit_price:,.2f} {txn.currency.value}",
        )

    console.print(table)
    return 0


def run_convert(args):
    console = Console()
    try:
        settings = settings_from_args(args)
        outflow, inflow = open_store(settings).add_conversion(
            from_symbol=args.from_symbol.strip().upper(),
            from_quantity=parse_decimal(args.from_quantity, "quantity"),
            to_symbol=args.to_symbol.strip().upper(),
            to_quantity=parse_decimal(args.to_quantity, "quantity"),
            value=parse_decimal(args.value, "value"),
            currency=parse_currency(args.currency),
            transaction_datetime=parse_datetime(args.date),
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print(f"[green]Converted[/green] {outflow.quantity} {outflow.symbol} into "
                  f"{inflow.quantity} {inflow.symbol} (link {outflow.link_id})")
    return 0
