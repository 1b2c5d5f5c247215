"""Tests for recorded price history and portfolio value series."""

from datetime import datetime, timezone
from decimal import Decimal

from assettracker.currency import Currency, FixedExchangeRateManager
from assettracker.pricehistory import (
    PriceHistory,
    TimeInterval,
    backfill_price_history,
    calculate_portfolio_value_by_period,
    generate_date_range,
    load_price_history,
    save_price_history,
)
from assettracker.pricingdata import PricePoint, PricingDataManager
from assettracker.transactions import Transaction, TransactionType


def _utc(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


class TestPriceHistory:

    def test_one_entry_per_month(self):
        history = PriceHistory()

        assert history.add_price_entry("BTC", Decimal("40000"), entry_datetime=_utc(2024, 1, 5))
        assert not history.add_price_entry("BTC", Decimal("41000"), entry_datetime=_utc(2024, 1, 25))
        assert history.add_price_entry("BTC", Decimal("45000"), entry_datetime=_utc(2024, 2, 1))

        prices = [entry.price for entry in history.get_asset_price_history("BTC")]
        assert prices == [Decimal("40000"), Decimal("45000")]

    def test_entries_kept_in_date_order(self):
        history = PriceHistory()
        history.add_price_entry("ETH", Decimal("3000"), entry_datetime=_utc(2024, 3, 1))
        history.add_price_entry("ETH", Decimal("2000"), entry_datetime=_utc(2024, 1, 1))

        dates = [entry.entry_datetime for entry in history.get_asset_price_history("ETH")]
        assert dates == [_utc(2024, 1, 1), _utc(2024, 3, 1)]

    def test_naive_datetime_is_utc(self):
        history = PriceHistory()
        history.add_price_entry("ETH", Decimal("3000"), entry_datetime=datetime(2024, 3, 1))
        assert history.get_asset_price_history("ETH")[0].entry_datetime == _utc(2024, 3, 1)

    def test_record_price_point(self):
        history = PriceHistory()
        history.record_price_point(PricePoint("GOLD", _utc(2024, 4, 2), Decimal("75"), Currency.USD))

        entry = history.get_asset_price_history("GOLD")[0]
        assert entry.price == Decimal("75")
        assert history.last_updated is not None

    def test_price_on(self):
        history = PriceHistory()
        history.add_price_entry("BTC", Decimal("40000"), entry_datetime=_utc(2024, 1, 5))
        history.add_price_entry("BTC", Decimal("45000"), entry_datetime=_utc(2024, 2, 5))

        assert history.price_on("BTC", _utc(2024, 1, 1)) is None
        assert history.price_on("BTC", _utc(2024, 1, 31)).price == Decimal("40000")
        assert history.price_on("BTC", _utc(2024, 6, 1)).price == Decimal("45000")
        assert history.price_on("ETH", _utc(2024, 6, 1)) is None

    def test_save_and_load(self, tmp_path):
        history = PriceHistory()
        history.add_price_entry("BTC", Decimal("40000.5"), entry_datetime=_utc(2024, 1, 5))
        history.add_price_entry("GOLD", Decimal("300"), Currency.MYR, entry_datetime=_utc(2024, 1, 5))
        path = tmp_path / "history" / "price_history.json"

        save_price_history(history, path)
        loaded = load_price_history(path)

        assert loaded.symbols == ["BTC", "GOLD"]
        assert loaded.get_asset_price_history("GOLD") == history.get_asset_price_history("GOLD")
        assert loaded.last_updated == history.last_updated

    def test_missing_file_is_empty(self, tmp_path):
        assert load_price_history(tmp_path / "none.json").symbols == []


def test_monthly_date_range():
    dates = generate_date_range(_utc(2024, 1, 15), _utc(2024, 4, 20), TimeInterval.MONTHLY)
    assert [d.date() for d in dates] == [
        datetime(2024, 1, 15).date(),
        datetime(2024, 2, 15).date(),
        datetime(2024, 3, 15).date(),
        datetime(2024, 4, 15).date(),
    ]


def test_weekly_and_yearly_ranges():
    assert len(generate_date_range(_utc(2024, 1, 1), _utc(2024, 1, 29), TimeInterval.WEEKLY)) == 5
    assert len(generate_date_range(_utc(2020, 6, 1), _utc(2024, 1, 1), TimeInterval.YEARLY)) == 4
    assert len(generate_date_range(_utc(2024, 1, 1), _utc(2024, 1, 3), TimeInterval.DAILY)) == 3


def test_date_range_start_after_end():
    assert generate_date_range(_utc(2024, 2, 1), _utc(2024, 1, 1), TimeInterval.DAILY) == []


class ScriptedPricingDataManager(PricingDataManager):
    """Prices every date at its month number, except months listed as failing."""

    def __init__(self, failing_months=()):
        self.failing_months = set(failing_months)
        self.requested = []

    def get_price_point(self, symbol, price_datetime=None):
        self.requested.append(price_datetime.date())
        if price_datetime.month in self.failing_months:
            raise ValueError("no data")
        return PricePoint(symbol, price_datetime, Decimal(price_datetime.month))


def test_backfill_skips_known_and_failed_months(capsys):
    history = PriceHistory()
    history.add_price_entry("BTC", Decimal("99"), entry_datetime=_utc(2024, 2, 20))
    manager = ScriptedPricingDataManager(failing_months={3})

    added = backfill_price_history(history, "BTC", _utc(2024, 1, 10), manager, end=_utc(2024, 4, 30))

    assert added == 2
    assert len(manager.requested) == 3
    prices = {entry.entry_datetime.month: entry.price for entry in history.get_asset_price_history("BTC")}
    assert prices == {1: Decimal("1"), 2: Decimal("99"), 4: Decimal("4")}
    assert "no historical price for BTC" in capsys.readouterr().err


class TestPortfolioValueByPeriod:

    def _transactions(self):
        return [
            Transaction("BTC", _utc(2024, 1, 1), TransactionType.BUY, Decimal("1"), Decimal("100")),
            Transaction("BTC", _utc(2024, 2, 20), TransactionType.SELL, Decimal("0.5"), Decimal("100")),
            Transaction("ETH", _utc(2024, 1, 1), TransactionType.BUY, Decimal("2"), Decimal("20")),
        ]

    def _history(self):
        history = PriceHistory()
        history.add_price_entry("BTC", Decimal("100"), entry_datetime=_utc(2024, 1, 5))
        history.add_price_entry("BTC", Decimal("300"), entry_datetime=_utc(2024, 3, 3))
        return history

    def test_monthly_values(self):
        convert = FixedExchangeRateManager().convert
        points = calculate_portfolio_value_by_period(
            self._transactions(), self._history(), TimeInterval.MONTHLY, Currency.USD, convert,
            start=_utc(2024, 1, 10), end=_utc(2024, 4, 10),
        )

        assert [point.total_value for point in points] == [
            Decimal("100"), Decimal("100"), Decimal("150"), Decimal("150"),
        ]
        assert all("ETH" not in point.by_symbol for point in points)

    def test_current_price_fills_symbols_without_history(self):
        convert = FixedExchangeRateManager().convert
        points = calculate_portfolio_value_by_period(
            self._transactions(), self._history(), TimeInterval.MONTHLY, Currency.MYR, convert,
            current_prices={"ETH": PricePoint("ETH", _utc(2024, 5, 1), Decimal("10"))},
            start=_utc(2024, 1, 10), end=_utc(2024, 1, 10),
        )

        assert len(points) == 1
        assert points[0].by_symbol == {"BTC": Decimal("471.00"), "ETH": Decimal("94.20")}
        assert points[0].total_value == Decimal("565.20")

    def test_no_holdings_before_first_transaction(self):
        points = calculate_portfolio_value_by_period(
            self._transactions(), self._history(), TimeInterval.DAILY, Currency.USD,
            FixedExchangeRateManager().convert,
            start=_utc(2023, 12, 30), end=_utc(2023, 12, 31),
        )
        assert [point.total_value for point in points] == [Decimal("0"), Decimal("0")]

    def test_no_transactions(self):
        points = calculate_portfolio_value_by_period(
            [], PriceHistory(), TimeInterval.MONTHLY, Currency.USD, FixedExchangeRateManager().convert
        )
        assert points == []
