"""Recorded price history and portfolio value over time.

At most one price is kept per symbol per calendar month; the series
functions value holdings at the latest recorded price on or before each
date.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping
import json
import sys

import pandas as pd

from .accounting import ConvertFn, group_by_symbol
from .currency import Currency
from .pricingdata import PricePoint, PricingDataManager
from .transactions import Transaction


class TimeInterval(Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


_FREQUENCIES = {
    TimeInterval.DAILY: pd.DateOffset(days=1),
    TimeInterval.WEEKLY: pd.DateOffset(weeks=1),
    TimeInterval.MONTHLY: pd.DateOffset(months=1),
    TimeInterval.YEARLY: pd.DateOffset(years=1),
}


@dataclass(frozen=True)
class PriceHistoryEntry:
    entry_datetime: datetime
    price: Decimal
    currency: Currency = Currency.USD


@dataclass
class ValuePoint:
    """Portfolio value on one date, in total and per symbol."""

    point_datetime: datetime
    total_value: Decimal
    by_symbol: dict[str, Decimal] = field(default_factory=dict)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _month_key(dt: datetime) -> tuple[int, int]:
    return dt.year, dt.month


class PriceHistory:
    """Monthly price observations per symbol."""

    def __init__(self, last_updated: datetime | None = None):
        self.last_updated = last_updated
        self._entries: dict[str, list[PriceHistoryEntry]] = {}

    @property
    def symbols(self) -> list[str]:
        return list(self._entries)

    def add_price_entry(
        self,
        symbol: str,
        price: Decimal,
        currency: Currency = Currency.USD,
        entry_datetime: datetime | None = None,
    ) -> bool:
        """
        Record a price unless the symbol already has one for that month.

        Returns:
            True if the entry was added.
        """
        if entry_datetime is None:
            entry_datetime = datetime.now(timezone.utc)
        else:
            entry_datetime = _as_utc(entry_datetime)

        entries = self._entries.setdefault(symbol, [])
        month = _month_key(entry_datetime)
        if any(_month_key(entry.entry_datetime) == month for entry in entries):
            return False

        entries.append(PriceHistoryEntry(entry_datetime, price, currency))
        entries.sort(key=lambda e: e.entry_datetime)
        self.last_updated = datetime.now(timezone.utc)
        return True

    def record_price_point(self, price_point: PricePoint) -> bool:
        return self.add_price_entry(
            price_point.symbol, price_point.price, price_point.base_currency, price_point.price_datetime
        )

    def get_asset_price_history(self, symbol: str) -> list[PriceHistoryEntry]:
        """Entries for ``symbol`` oldest first; empty if none."""
        return list(self._entries.get(symbol, []))

    def price_on(self, symbol: str, as_of: datetime) -> PriceHistoryEntry | None:
        """Latest entry on or before ``as_of``."""
        as_of = _as_utc(as_of)
        latest = None
        for entry in self._entries.get(symbol, []):
            if entry.entry_datetime > as_of:
                break
            latest = entry
        return latest

    def to_dict(self) -> dict:
        return {
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "assets": [
                {
                    "symbol": symbol,
                    "prices": [
                        {
                            "date": entry.entry_datetime.isoformat(),
                            "price": str(entry.price),
                            "currency": entry.currency.value,
                        }
                        for entry in entries
                    ],
                }
                for symbol, entries in self._entries.items()
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PriceHistory":
        last_updated = data.get("last_updated")
        history = cls(datetime.fromisoformat(last_updated) if last_updated else None)
        for asset in data.get("assets", []):
            entries = [
                PriceHistoryEntry(
                    entry_datetime=datetime.fromisoformat(item["date"]),
                    price=Decimal(str(item["price"])),
                    currency=Currency(item.get("currency", Currency.USD.value)),
                )
                for item in asset.get("prices", [])
            ]
            history._entries[asset["symbol"]] = sorted(entries, key=lambda e: e.entry_datetime)
        return history


def load_price_history(file_path: str | Path) -> PriceHistory:
    """Load price history from JSON; a missing file is an empty history."""
    path = Path(file_path)
    if not path.exists():
        return PriceHistory()
    with open(path, "r", encoding="utf-8") as f:
        return PriceHistory.from_dict(json.load(f))


def save_price_history(history: PriceHistory, file_path: str | Path) -> None:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(history.to_dict(), f, indent=2)


def generate_date_range(start: datetime, end: datetime, interval: TimeInterval) -> list[datetime]:
    """Dates from ``start`` stepping by ``interval`` while not after ``end``, in UTC."""
    start = _as_utc(start)
    end = _as_utc(end)
    if start > end:
        return []
    stamps = pd.date_range(start=start, end=end, freq=_FREQUENCIES[interval])
    return [stamp.to_pydatetime() for stamp in stamps]


def backfill_price_history(
    history: PriceHistory,
    symbol: str,
    start: datetime,
    pricing_manager: PricingDataManager,
    end: datetime | None = None,
) -> int:
    """
    Fill monthly prices for ``symbol`` from ``start`` up to ``end``.

    Months that already have an entry are skipped without a lookup. A failed
    lookup is reported on stderr and the month is left empty.

    Returns:
        Number of entries added.
    """
    if end is None:
        end = datetime.now(timezone.utc)

    known_months = {_month_key(entry.entry_datetime) for entry in history.get_asset_price_history(symbol)}

    added = 0
    for point in generate_date_range(start, end, TimeInterval.MONTHLY):
        if _month_key(point) in known_months:
            continue
        try:
            price_point = pricing_manager.get_price_point(symbol, point)
        except ValueError as e:
            print(f"Warning: no historical price for {symbol} on {point.date()}: {e}", file=sys.stderr)
            continue
        if history.add_price_entry(symbol, price_point.price, price_point.base_currency, point):
            added += 1
    return added


def calculate_portfolio_value_by_period(
    transactions: Iterable[Transaction],
    history: PriceHistory,
    interval: TimeInterval,
    display_currency: Currency,
    convert: ConvertFn,
    current_prices: Mapping[str, PricePoint] | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[ValuePoint]:
    """
    Value the holdings at each date of a regular series.

    For every date the quantity held is the net of all transactions on or
    before it. Each symbol is priced at its latest history entry on or before
    the date, or at its current price when it has no such entry; a symbol
    with neither is left out.

    Args:
        transactions: Full transaction history.
        history: Recorded prices.
        interval: Spacing of the series.
        display_currency: Currency of the returned values.
        convert: Currency converter.
        current_prices: Fallback prices per symbol.
        start: First date. Defaults to the earliest transaction.
        end: Last date. Defaults to now.

    Returns:
        One ValuePoint per date, oldest first. Empty when there are no
        transactions.
    """
    grouped = group_by_symbol(transactions)
    if not grouped:
        return []
    if current_prices is None:
        current_prices = {}

    if start is None:
        start = min(txn.transaction_datetime for txns in grouped.values() for txn in txns)
    if end is None:
        end = datetime.now(timezone.utc)

    points: list[ValuePoint] = []
    for point_datetime in generate_date_range(start, end, interval):
        by_symbol: dict[str, Decimal] = {}
        for symbol, symbol_transactions in grouped.items():
            quantity = sum(
                (txn.signed_quantity for txn in symbol_transactions if txn.transaction_datetime <= point_datetime),
                Decimal("0"),
            )
            if quantity <= 0:
                continue

            entry = history.price_on(symbol, point_datetime)
            if entry is not None:
                price, currency = entry.price, entry.currency
            elif symbol in current_prices:
                price, currency = current_prices[symbol].price, current_prices[symbol].base_currency
            else:
                continue

            by_symbol[symbol] = convert(price * quantity, currency, display_currency)

        points.append(ValuePoint(point_datetime, sum(by_symbol.values(), Decimal("0")), by_symbol))

    return points
