from abc import ABC, abstractmethod
from decimal import Decimal
from datetime import datetime, date, timedelta, timezone
from pathlib import Path
import sys

import requests
import yfinance as yf  # type: ignore[import-untyped]
import pandas as pd

from .currency import Currency

# When True, print status messages during data fetching (e.g. "Fetching BTC …").
# Defaults to False so CLI output stays clean.
verbose: bool = False

# goldapi.io quotes per troy ounce; holdings are recorded in grams.
GRAMS_PER_TROY_OUNCE = Decimal("31.1034768")

class PricePoint:
    """A single price observation for an asset."""

    def __init__(self, symbol: str, price_datetime: datetime, price: Decimal, base_currency:Currency = Currency.USD):
        """Initialize a PricePoint.

        Args:
            symbol: Asset symbol (e.g., "BTC", "GOLD").
            price_datetime: The datetime the price was observed.
            price: Price of one unit of the asset.
            base_currency: Currency the price is denominated in.
        """
        self.symbol: str = symbol
        self.price_datetime: datetime = price_datetime
        self.price: Decimal = price
        self.base_currency:Currency = base_currency

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PricePoint):
            return NotImplemented
        return (
            self.symbol == other.symbol
            and self.price_datetime == other.price_datetime
            and self.price == other.price
            and self.base_currency == other.base_currency
        )

    def __repr__(self):
        return f"PricePoint(symbol={self.symbol}, price={self.price}, currency={self.base_currency.value}, at={self.price_datetime})"

class PriceCache:
    """Last fetched price per symbol, with the time it was fetched.

    ``get_fresh`` serves entries younger than ``ttl``; ``get_last_known``
    serves any entry, which is what managers fall back to when a fetch fails.
    """

    def __init__(self, ttl: timedelta = timedelta(minutes=5)):
        self.ttl = ttl
        self._entries: dict[str, tuple[PricePoint, datetime]] = {}

    def put(self, price_point: PricePoint, fetched_at: datetime | None = None) -> None:
        if fetched_at is None:
            fetched_at = datetime.now(timezone.utc)
        self._entries[price_point.symbol] = (price_point, fetched_at)

    def get_fresh(self, symbol: str, now: datetime | None = None) -> PricePoint | None:
        entry = self._entries.get(symbol)
        if entry is None:
            return None
        price_point, fetched_at = entry
        if now is None:
            now = datetime.now(timezone.utc)
        if now - fetched_at >= self.ttl:
            return None
        return price_point

    def get_last_known(self, symbol: str) -> PricePoint | None:
        entry = self._entries.get(symbol)
        return entry[0] if entry is not None else None

    def fetched_at(self, symbol: str) -> datetime | None:
        entry = self._entries.get(symbol)
        return entry[1] if entry is not None else None

def _is_current(price_datetime: datetime | None) -> bool:
    """True when a lookup asks for today's (live) price."""
    if price_datetime is None:
        return True
    return price_datetime.date() >= date.today()

class PricingDataManager(ABC):
    """Abstract base class for all pricing data providers."""

    @abstractmethod
    def get_price_point(self, symbol: str, price_datetime: datetime | None = None) -> PricePoint:
        """Get the price of one unit of ``symbol``.

        Args:
            symbol: Asset symbol.
            price_datetime: When the price applies. None means now.

        Raises:
            ValueError: If no price can be produced.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")

    def get_current_prices(self, symbols: list[str]) -> dict[str, PricePoint]:
        """Get current prices for several symbols.

        Symbols whose lookup fails are left out of the result; the accounting
        core values them at zero.
        """
        prices: dict[str, PricePoint] = {}
        for symbol in symbols:
            try:
                prices[symbol] = self.get_price_point(symbol)
            except ValueError as e:
                print(f"Warning: no price for {symbol}: {e}", file=sys.stderr)
        return prices

class FixedPricingDataManager(PricingDataManager):
    """Pricing manager that returns fixed prices.

    Used for offline reports and tests.
    """

    def __init__(self, price_for_everything:Decimal = Decimal("1.0"), prices: dict[str, Decimal] | None = None, currency: Currency = Currency.USD):
        """Initialize with fixed prices.

        Args:
            price_for_everything: Price for symbols not in ``prices``.
            prices: Per-symbol prices.
            currency: Currency of every returned price.
        """
        self.price = price_for_everything
        self.prices = dict(prices or {})
        self.currency = currency

    def get_price_point(self, symbol: str, price_datetime: datetime | None = None) -> PricePoint:
        if price_datetime is None:
            price_datetime = datetime.now(timezone.utc)
        return PricePoint(
            symbol=symbol,
            price_datetime=price_datetime,
            price=self.prices.get(symbol, self.price),
            base_currency=self.currency
        )

class CryptoComparePricingDataManager(PricingDataManager):
    """Crypto prices in USD from the CryptoCompare public API."""

    PRICE_MULTI_URL = "https://min-api.cryptocompare.com/data/pricemulti"
    PRICE_HISTORICAL_URL = "https://min-api.cryptocompare.com/data/pricehistorical"

    def __init__(self, cache: PriceCache | None = None, session: requests.Session | None = None, timeout: float = 10.0):
        """Initialize the manager.

        Args:
            cache: Price cache shared with other managers. A new five-minute
                cache if not provided.
            session: HTTP session, injectable for tests.
            timeout: Request timeout in seconds.
        """
        self.cache = cache if cache is not None else PriceCache()
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _fetch_current(self, symbols: list[str]) -> dict[str, PricePoint]:
        if verbose:
            print(f"  Fetching {', '.join(symbols)} from CryptoCompare …", flush=True)
        response = self.session.get(
            self.PRICE_MULTI_URL,
            params={"fsyms": ",".join(symbols), "tsyms": "USD"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        now = datetime.now(timezone.utc)
        prices: dict[str, PricePoint] = {}
        for symbol in symbols:
            quote = data.get(symbol)
            if not quote or "USD" not in quote:
                continue
            prices[symbol] = PricePoint(symbol, now, Decimal(str(quote["USD"])), Currency.USD)
        return prices

    def get_current_prices(self, symbols: list[str]) -> dict[str, PricePoint]:
        """Get current prices with one batched request for uncached symbols.

        Symbols the API does not return keep their last known price when
        there is one.
        """
        prices: dict[str, PricePoint] = {}
        missing: list[str] = []
        for symbol in symbols:
            cached = self.cache.get_fresh(symbol)
            if cached is not None:
                prices[symbol] = cached
            else:
                missing.append(symbol)

        if missing:
            try:
                fetched = self._fetch_current(missing)
            except (requests.RequestException, ValueError) as e:
                print(f"Warning: CryptoCompare request failed: {e}", file=sys.stderr)
                fetched = {}

            for symbol in missing:
                if symbol in fetched:
                    self.cache.put(fetched[symbol])
                    prices[symbol] = fetched[symbol]
                else:
                    last_known = self.cache.get_last_known(symbol)
                    if last_known is not None:
                        prices[symbol] = last_known

        return prices

    def get_price_point(self, symbol: str, price_datetime: datetime | None = None) -> PricePoint:
        if _is_current(price_datetime):
            prices = self.get_current_prices([symbol])
            if symbol not in prices:
                raise ValueError(f"No price data available for {symbol}")
            return prices[symbol]

        assert price_datetime is not None
        timestamp = int(price_datetime.timestamp())
        try:
            response = self.session.get(
                self.PRICE_HISTORICAL_URL,
                params={"fsym": symbol, "tsyms": "USD", "ts": timestamp},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ValueError(f"Error fetching price data for {symbol}: {e}") from e

        quote = data.get(symbol)
        if not quote or "USD" not in quote:
            raise ValueError(f"No price data available for {symbol} on {price_datetime.date()}")

        return PricePoint(symbol, price_datetime, Decimal(str(quote["USD"])), Currency.USD)

class GoldApiPricingDataManager(PricingDataManager):
    """Gold prices per gram in USD from goldapi.io.

    A failed or empty response falls back to the last known price, then to
    ``fallback_price``.
    """

    BASE_URL = "https://www.goldapi.io/api/XAU/USD"

    def __init__(self, api_key: str | None, cache: PriceCache | None = None, fallback_price: Decimal = Decimal("60"), session: requests.Session | None = None, timeout: float = 10.0):
        """Initialize the manager.

        Args:
            api_key: goldapi.io access token. Without one every lookup uses
                the fallback chain.
            cache: Price cache shared with other managers.
            fallback_price: USD per gram used when nothing else is known.
            session: HTTP session, injectable for tests.
            timeout: Request timeout in seconds.
        """
        self.api_key = api_key
        self.cache = cache if cache is not None else PriceCache()
        self.fallback_price = fallback_price
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _fetch(self, url: str) -> Decimal:
        if not self.api_key:
            raise ValueError("Gold API key not configured")
        if verbose:
            print("  Fetching GOLD from goldapi.io …", flush=True)
        response = self.session.get(url, headers={"x-access-token": self.api_key}, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if not data or not data.get("price"):
            raise ValueError("goldapi.io returned no price")
        return Decimal(str(data["price"])) / GRAMS_PER_TROY_OUNCE

    def get_price_point(self, symbol: str, price_datetime: datetime | None = None) -> PricePoint:
        if not _is_current(price_datetime):
            assert price_datetime is not None
            url = f"{self.BASE_URL}/{price_datetime.strftime('%Y%m%d')}"
            try:
                price = self._fetch(url)
            except (requests.RequestException, ValueError) as e:
                raise ValueError(f"Error fetching gold price for {price_datetime.date()}: {e}") from e
            return PricePoint(symbol, price_datetime, price, Currency.USD)

        cached = self.cache.get_fresh(symbol)
        if cached is not None:
            return cached

        try:
            price = self._fetch(self.BASE_URL)
        except (requests.RequestException, ValueError) as e:
            print(f"Warning: failed to fetch gold price ({e}), using cached or fallback price", file=sys.stderr)
            last_known = self.cache.get_last_known(symbol)
            if last_known is not None:
                return last_known
            return PricePoint(symbol, datetime.now(timezone.utc), self.fallback_price, Currency.USD)

        price_point = PricePoint(symbol, datetime.now(timezone.utc), price, Currency.USD)
        self.cache.put(price_point)
        return price_point

def get_yfinance_cache_path(ticker: str, cache_dir: Path | None = None) -> Path:
    """Get the CSV cache file path for a Yahoo ticker."""
    if cache_dir is None:
        cache_dir = Path.cwd() / ".cache" / "yfinance_prices"
    return cache_dir / f"{ticker.replace('=', '_')}.csv"

def fetch_yfinance_data(ticker: str, min_date: date, max_date: date, cache_dir: Path | None = None) -> pd.DataFrame:
    """
    Fetch daily closes for a Yahoo ticker, using a CSV cache.

    The cache is extended when the requested range is not fully covered.
    On a failed or empty request the cached rows (possibly none) are returned.

    Returns:
        DataFrame with columns Date and Close.
    """
    cache_path = get_yfinance_cache_path(ticker, cache_dir)

    cached_df: pd.DataFrame | None = None
    if cache_path.exists():
        cached_df = pd.read_csv(cache_path)
        if cached_df.empty:
            cached_df = None
        else:
            cached_df['Date'] = pd.to_datetime(cached_df['Date']).dt.date

    fetch_start, fetch_end = min_date, max_date
    if cached_df is not None:
        cached_min = cached_df['Date'].min()
        cached_max = cached_df['Date'].max()
        if cached_min <= min_date and max_date <= cached_max:
            return cached_df
        fetch_start = min(min_date, cached_min)
        fetch_end = max(max_date, cached_max)

    if verbose:
        print(f"  Fetching {ticker} ({fetch_start} to {fetch_end}) …", flush=True)

    empty = pd.DataFrame(columns=['Date', 'Close'])
    try:
        # yfinance end date is exclusive
        new_df: pd.DataFrame = yf.Ticker(ticker).history(  # type: ignore[call-arg]
            start=fetch_start.isoformat(),
            end=(fetch_end + timedelta(days=1)).isoformat(),
            auto_adjust=False,
        )
    except Exception as e:
        # yfinance raises a wide range of errors on rate limiting and network failures
        print(f"Warning: yfinance request failed for {ticker}: {e}", file=sys.stderr)
        return cached_df if cached_df is not None else empty

    if new_df.empty:
        print(f"Warning: yfinance returned no data for {ticker}", file=sys.stderr)
        return cached_df if cached_df is not None else empty

    new_df = new_df.reset_index()
    new_df['Date'] = pd.to_datetime(new_df['Date']).dt.date
    new_df = new_df[['Date', 'Close']]

    if cached_df is not None:
        new_df = pd.concat([cached_df, new_df], ignore_index=True)
        new_df = new_df.drop_duplicates(subset=['Date'], keep='last')
    new_df = new_df.sort_values('Date').reset_index(drop=True)

    cache_path.parent.mkdir(parents=True, exist_ok=True)
    new_df.to_csv(cache_path, index=False)
    return new_df

class YFinancePricingDataManager(PricingDataManager):
    """Historical daily closes from Yahoo Finance.

    Crypto symbols map to their ``<SYMBOL>-USD`` pairs; GOLD maps to the
    COMEX future quoted per troy ounce and is converted to grams.
    """

    TICKERS = {"GOLD": "GC=F"}
    PER_OUNCE = {"GOLD"}

    def __init__(self, cache_dir: Path | None = None):
        self.cache_dir = cache_dir

    def ticker_for(self, symbol: str) -> str:
        return self.TICKERS.get(symbol, f"{symbol}-USD")

    def get_price_point(self, symbol: str, price_datetime: datetime | None = None) -> PricePoint:
        """Get the close for a symbol on a date.

        When the date has no row (weekend, holiday) the most recent close in
        the previous seven days is used.
        """
        if price_datetime is None:
            price_datetime = datetime.now(timezone.utc)
        target_date = price_datetime.date()
        ticker = self.ticker_for(symbol)

        df = fetch_yfinance_data(ticker, target_date - timedelta(days=10), target_date, self.cache_dir)
        if df.empty:
            raise ValueError(f"No price data available for {symbol}")

        for days_back in range(8):
            lookup_date = target_date - timedelta(days=days_back)
            matching_rows = df[df['Date'] == lookup_date]
            if not matching_rows.empty:
                price = Decimal(str(matching_rows.iloc[0]['Close']))
                if symbol in self.PER_OUNCE:
                    price = price / GRAMS_PER_TROY_OUNCE
                return PricePoint(
                    symbol=symbol,
                    price_datetime=datetime.combine(lookup_date, datetime.min.time()),
                    price=price,
                    base_currency=Currency.USD
                )

        raise ValueError(
            f"No price data available for {symbol} on {target_date} or the previous 7 days."
        )

class RoutingPricingDataManager(PricingDataManager):
    """Dispatches each symbol to the manager registered for it."""

    def __init__(self, routes: dict[str, PricingDataManager], default: PricingDataManager):
        self.routes = dict(routes)
        self.default = default

    def manager_for(self, symbol: str) -> PricingDataManager:
        return self.routes.get(symbol, self.default)

    def get_price_point(self, symbol: str, price_datetime: datetime | None = None) -> PricePoint:
        return self.manager_for(symbol).get_price_point(symbol, price_datetime)

    def get_current_prices(self, symbols: list[str]) -> dict[str, PricePoint]:
        """Batch symbols per manager so batched APIs get one request each."""
        grouped: dict[int, tuple[PricingDataManager, list[str]]] = {}
        for symbol in symbols:
            manager = self.manager_for(symbol)
            grouped.setdefault(id(manager), (manager, []))[1].append(symbol)

        prices: dict[str, PricePoint] = {}
        for manager, manager_symbols in grouped.values():
            prices.update(manager.get_current_prices(manager_symbols))
        return {symbol: prices[symbol] for symbol in symbols if symbol in prices}
