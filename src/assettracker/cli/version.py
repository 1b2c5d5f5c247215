"""Version subcommand for the assettracker CLI."""

from importlib.metadata import PackageNotFoundError, version


def register_subcommand(subparsers):
    """Register the version subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers object to register with.
    """
    parser = subparsers.add_parser(
        "version",
        help="Display assettracker version information",
        description="Display the installed assettracker version.",
    )
    parser.set_defaults(func=run)


def run(args):
    try:
        ver = version("assettracker")
    except PackageNotFoundError:
        ver = "unknown"

    print(f" Version: {ver}")
    return 0
