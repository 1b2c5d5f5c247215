"""Asset symbol catalog.

A symbol is identified by a plain string key ("BTC", "GOLD"). Everything
shown to the user about it (name, unit, whether it is a crypto asset or a
commodity) lives in a ``SymbolInfo`` looked up through ``SymbolCatalog``.
"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from enum import Enum
from pathlib import Path
import json
import warnings


class SymbolKind(Enum):
    """Where a symbol is priced from."""

    CRYPTO = "CRYPTO"
    COMMODITY = "COMMODITY"


@dataclass(frozen=True)
class SymbolInfo:
    """Display metadata for an asset symbol."""

    symbol: str
    name: str
    kind: SymbolKind = SymbolKind.CRYPTO
    unit: str | None = None


DEFAULT_SYMBOLS: list[SymbolInfo] = [
    SymbolInfo("GOLD", "Gold", SymbolKind.COMMODITY, "grams"),
    SymbolInfo("BTC", "Bitcoin"),
    SymbolInfo("ETH", "Ethereum"),
    SymbolInfo("BNB", "Binance Coin"),
    SymbolInfo("XRP", "Ripple"),
    SymbolInfo("SOL", "Solana"),
    SymbolInfo("ADA", "Cardano"),
    SymbolInfo("DOGE", "Dogecoin"),
    SymbolInfo("DOT", "Polkadot"),
    SymbolInfo("MATIC", "Polygon"),
    SymbolInfo("LINK", "Chainlink"),
    SymbolInfo("WLD", "Worldcoin"),
    SymbolInfo("CELO", "Celo"),
    SymbolInfo("SUI", "Sui"),
    SymbolInfo("XLM", "Stellar Lumens"),
    SymbolInfo("LTC", "Litecoin"),
]


class SymbolCatalog:
    """Lookup table from symbol key to its metadata."""

    def __init__(self, symbols: list[SymbolInfo] | None = None):
        if symbols is None:
            symbols = DEFAULT_SYMBOLS
        self._symbols: dict[str, SymbolInfo] = {}
        for info in symbols:
            self._symbols[info.symbol] = info

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._symbols

    def __len__(self) -> int:
        return len(self._symbols)

    @property
    def symbols(self) -> list[SymbolInfo]:
        return list(self._symbols.values())

    def get(self, symbol: str) -> SymbolInfo:
        """Return metadata for ``symbol``.

        Unknown symbols get a minimal crypto entry named after the key, so
        transactions for symbols removed from the catalog still display.
        """
        info = self._symbols.get(symbol)
        if info is None:
            return SymbolInfo(symbol, symbol)
        return info

    def add(self, info: SymbolInfo) -> None:
        """Add a symbol.

        Raises:
            ValueError: If the symbol key is empty or already present.
        """
        if not info.symbol or not info.name:
            raise ValueError("Symbol and name are required")
        if info.symbol in self._symbols:
            raise ValueError(f"Symbol already exists: {info.symbol}")
        self._symbols[info.symbol] = info

    def remove(self, symbol: str) -> None:
        """Remove a symbol. Raises KeyError if it is not in the catalog."""
        del self._symbols[symbol]

    def symbols_of_kind(self, kind: SymbolKind) -> list[str]:
        return [info.symbol for info in self._symbols.values() if info.kind == kind]


def load_symbol_catalog(file_path: str | Path) -> SymbolCatalog:
    """Load a symbol catalog from a JSON file.

    A missing file yields the default catalog. A file that cannot be parsed
    also yields the defaults, with a warning.
    """
    path = Path(file_path)
    if not path.exists():
        return SymbolCatalog()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        symbols = [
            SymbolInfo(
                symbol=str(item["symbol"]),
                name=str(item["name"]),
                kind=SymbolKind(item.get("kind", SymbolKind.CRYPTO.value)),
                unit=item.get("unit"),
            )
            for item in data
        ]
    except (ValueError, KeyError, TypeError) as e:
        warnings.warn(
            f"Could not parse symbol catalog '{path}' ({e}); using the default symbols.",
            UserWarning
        )
        return SymbolCatalog()

    return SymbolCatalog(symbols)


def save_symbol_catalog(catalog: SymbolCatalog, file_path: str | Path) -> None:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = []
    for info in catalog.symbols:
        item = asdict(info)
        item["kind"] = info.kind.value
        data.append(item)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def format_quantity(info: SymbolInfo, quantity: Decimal) -> str:
    """Format a holding quantity for display.

    Commodities show two decimals and their unit; crypto assets show up to
    eight decimals with trailing zeros stripped.
    """
    if info.kind == SymbolKind.COMMODITY:
        text = f"{quantity:,.2f}"
        return f"{text} {info.unit}" if info.unit else text

    text = f"{quantity:,.8f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"
