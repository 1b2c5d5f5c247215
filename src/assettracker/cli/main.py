#!/usr/bin/env python3
"""Main entry point for the assettracker CLI."""

import argparse
import sys


def main():
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Returns:
        int: Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="assettracker",
        description="Asset Tracker - FIFO positions and gains for crypto and commodity holdings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  assettracker add BTC BUY 0.5 21000              Record a purchase of 0.5 BTC for 21000 USD
  assettracker add GOLD BUY 10 2900 -c MYR        Record 10 grams of gold bought for 2900 MYR
  assettracker convert ETH 2 SOL 40 6000          Record ETH converted into SOL
  assettracker report -c MYR                      Display holdings and gains in MYR
  assettracker history --interval YEARLY          Display portfolio value per year
  assettracker export transactions.xlsx           Export all transactions to Excel
        """,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    # Import subcommand modules and register them
    from .report import register_subcommand as register_report
    from .transactions import register_subcommand as register_transactions
    from .transfer import register_subcommand as register_transfer
    from .history import register_subcommand as register_history
    from .symbols import register_subcommand as register_symbols
    from .version import register_subcommand as register_version

    register_report(subparsers)
    register_transactions(subparsers)
    register_transfer(subparsers)
    register_history(subparsers)
    register_symbols(subparsers)
    register_version(subparsers)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
