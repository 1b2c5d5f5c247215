from enum import Enum
from abc import ABC, abstractmethod
from decimal import Decimal
from datetime import datetime, timedelta, timezone
import sys

import requests

class Currency(Enum):
    """Supported currencies for prices and display."""

    USD = "USD"
    MYR = "MYR"
    CAD = "CAD"
    EUR = "EUR"
    TWD = "TWD"
    SGD = "SGD"
    AUD = "AUD"
    JPY = "JPY"
    KRW = "KRW"
    GBP = "GBP"
    BRL = "BRL"
    CNY = "CNY"
    HKD = "HKD"
    MXN = "MXN"
    ZAR = "ZAR"
    CHF = "CHF"
    THB = "THB"

class ExchangeRateManager(ABC):
    """Abstract base class for currency exchange rate providers.

    Subclasses supply ``get_exchange_rate``; ``convert`` is the converter
    contract the accounting core consumes.
    """

    @abstractmethod
    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, datetime:datetime|None = None) -> Decimal:
        """Get the exchange rate between two currencies.

        Args:
            from_currency: The source currency.
            to_currency: The target currency.
            datetime: The date for the rate lookup. If None, uses the latest rate.

        Returns:
            The exchange rate as a Decimal.

        Raises:
            NotImplementedError: Always, must be overridden by subclasses.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")

    def convert(self, amount: Decimal, from_currency: Currency, to_currency: Currency) -> Decimal:
        """Convert an amount between two currencies at the latest rate.

        Identity when both currencies are equal. An unknown pair raises
        ValueError from ``get_exchange_rate``.

        Args:
            amount: The amount denominated in ``from_currency``.
            from_currency: The source currency.
            to_currency: The target currency.

        Returns:
            The amount denominated in ``to_currency``.
        """
        if from_currency == to_currency:
            return amount
        return amount * self.get_exchange_rate(from_currency, to_currency)

# Units of each currency per 1 USD, used when no live rates are available.
DEFAULT_USD_RATES: dict[Currency, Decimal] = {
    Currency.USD: Decimal("1"),
    Currency.MYR: Decimal("4.71"),
}

class FixedExchangeRateManager(ExchangeRateManager):
    """Exchange rate manager using fixed, hardcoded rates.

    Provides static exchange rates that do not vary by date. Useful for
    testing, offline use, or when no openexchangerates.org key is configured.
    """

    global_exchange_rates = {
        (Currency.USD, Currency.MYR): Decimal("4.71"),
        (Currency.MYR, Currency.USD): Decimal("0.2123"),
        (Currency.USD, Currency.CAD): Decimal("1.25"),
        (Currency.CAD, Currency.USD): Decimal("0.80"),
        (Currency.USD, Currency.EUR): Decimal("0.85"),
        (Currency.EUR, Currency.USD): Decimal("1.18"),
        (Currency.USD, Currency.SGD): Decimal("1.35"),
        (Currency.SGD, Currency.USD): Decimal("0.74"),
        (Currency.USD, Currency.GBP): Decimal("0.79"),
        (Currency.GBP, Currency.USD): Decimal("1.27"),
        (Currency.USD, Currency.JPY): Decimal("150.0"),
        (Currency.JPY, Currency.USD): Decimal("0.0067"),
        (Currency.USD, Currency.TWD): Decimal("27.5"),
        (Currency.TWD, Currency.USD): Decimal("0.036"),
        (Currency.USD, Currency.AUD): Decimal("1.55"),
        (Currency.AUD, Currency.USD): Decimal("0.65"),
        (Currency.USD, Currency.KRW): Decimal("1300.0"),
        (Currency.KRW, Currency.USD): Decimal("0.00077"),
        (Currency.USD, Currency.BRL): Decimal("5.0"),
        (Currency.BRL, Currency.USD): Decimal("0.20"),
        (Currency.USD, Currency.CNY): Decimal("7.25"),
        (Currency.CNY, Currency.USD): Decimal("0.14"),
        (Currency.USD, Currency.HKD): Decimal("7.80"),
        (Currency.HKD, Currency.USD): Decimal("0.128"),
        (Currency.USD, Currency.MXN): Decimal("17.0"),
        (Currency.MXN, Currency.USD): Decimal("0.059"),
        (Currency.USD, Currency.ZAR): Decimal("18.5"),
        (Currency.ZAR, Currency.USD): Decimal("0.054"),
        (Currency.USD, Currency.CHF): Decimal("0.88"),
        (Currency.CHF, Currency.USD): Decimal("1.14"),
        (Currency.USD, Currency.THB): Decimal("35.0"),
        (Currency.THB, Currency.USD): Decimal("0.029"),
    }

    def __init__(self, exchange_rates:dict[tuple[Currency, Currency], Decimal]|None = None, use_defaults: bool = True):
        """Initialize with optional custom exchange rates.

        Args:
            exchange_rates: Custom rates to use.
            use_defaults: If True, pairs missing from ``exchange_rates`` are
                filled from ``global_exchange_rates``.
        """
        self.exchange_rates = dict(exchange_rates or {})
        if use_defaults:
            for pair, rate in self.global_exchange_rates.items():
                self.exchange_rates.setdefault(pair, rate)

    def set_exchange_rate(self, from_currency: Currency, to_currency: Currency, rate: Decimal):
        """Set or override the exchange rate for a currency pair."""
        self.exchange_rates[(from_currency, to_currency)] = rate

    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, datetime:datetime|None=None) -> Decimal:
        """Get the fixed exchange rate between two currencies.

        Falls back to USD-triangulated conversion if no direct rate exists.

        Raises:
            ValueError: If no rate is available for the currency pair.
        """
        if from_currency == to_currency:
            return Decimal("1.0")

        if (from_currency, to_currency) in self.exchange_rates:
            return self.exchange_rates[(from_currency, to_currency)]

        if from_currency != Currency.USD and to_currency != Currency.USD:
            from_to_usd = (from_currency, Currency.USD)
            usd_to_target = (Currency.USD, to_currency)

            if from_to_usd in self.exchange_rates and usd_to_target in self.exchange_rates:
                return self.exchange_rates[from_to_usd] * self.exchange_rates[usd_to_target]

        raise ValueError(f"Exchange rate from {from_currency.value} to {to_currency.value} not available.")

class RateCache:
    """Holds the last fetched USD-based rate table with its fetch time.

    Passed into ``OpenExchangeRatesManager`` so staleness is visible to
    callers and tests instead of living in module state.
    """

    def __init__(self, ttl: timedelta = timedelta(hours=1)):
        self.ttl = ttl
        self.rates: dict[Currency, Decimal] | None = None
        self.fetched_at: datetime | None = None

    def is_fresh(self, now: datetime | None = None) -> bool:
        if self.rates is None or self.fetched_at is None:
            return False
        if now is None:
            now = datetime.now(timezone.utc)
        return now - self.fetched_at < self.ttl

    def put(self, rates: dict[Currency, Decimal], fetched_at: datetime | None = None) -> None:
        self.rates = dict(rates)
        self.fetched_at = fetched_at if fetched_at is not None else datetime.now(timezone.utc)

class OpenExchangeRatesManager(ExchangeRateManager):
    """Exchange rate manager backed by openexchangerates.org latest rates.

    Rates are USD-based (units of currency per 1 USD), so any pair converts
    through USD: ``rate(from -> to) = rates[to] / rates[from]``. When a fetch
    fails the last known table is reused, then ``DEFAULT_USD_RATES``.
    """

    LATEST_URL = "https://openexchangerates.org/api/latest.json"

    def __init__(self, app_id: str, cache: RateCache | None = None, session: requests.Session | None = None, timeout: float = 10.0):
        """Initialize the manager.

        Args:
            app_id: openexchangerates.org application id.
            cache: Rate cache to use. A fresh one-hour cache if not provided.
            session: HTTP session, injectable for tests.
            timeout: Request timeout in seconds.
        """
        self.app_id = app_id
        self.cache = cache if cache is not None else RateCache()
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _fetch_rates(self) -> dict[Currency, Decimal]:
        response = self.session.get(
            self.LATEST_URL,
            params={"app_id": self.app_id, "base": "USD"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        rates: dict[Currency, Decimal] = {Currency.USD: Decimal("1")}
        for code, value in data.get("rates", {}).items():
            try:
                currency = Currency(code)
            except ValueError:
                continue
            rates[currency] = Decimal(str(value))
        return rates

    def get_rates(self) -> dict[Currency, Decimal]:
        """Return the USD-based rate table, refreshing it when stale."""
        if self.cache.is_fresh():
            assert self.cache.rates is not None
            return self.cache.rates

        try:
            rates = self._fetch_rates()
        except (requests.RequestException, ValueError) as e:
            print(f"Warning: exchange rate request failed: {e}", file=sys.stderr)
            if self.cache.rates is not None:
                return self.cache.rates
            return dict(DEFAULT_USD_RATES)

        self.cache.put(rates)
        return rates

    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, datetime: datetime | None = None) -> Decimal:
        """Get the latest exchange rate for a currency pair.

        ``datetime`` is accepted for interface compatibility; only latest
        rates are served.

        Raises:
            ValueError: If either currency is missing from the rate table.
        """
        if from_currency == to_currency:
            return Decimal("1.0")

        rates = self.get_rates()
        if from_currency not in rates or to_currency not in rates:
            raise ValueError(f"Exchange rate from {from_currency.value} to {to_currency.value} not available.")

        return rates[to_currency] / rates[from_currency]
