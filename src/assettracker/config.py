"""Settings loaded from the environment and wiring of the external collaborators.

API keys and paths are read once into a ``Settings`` object and handed to
the managers that need them.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from .currency import Currency, ExchangeRateManager, FixedExchangeRateManager, OpenExchangeRatesManager, RateCache
from .pricingdata import (
    PriceCache,
    PricingDataManager,
    CryptoComparePricingDataManager,
    GoldApiPricingDataManager,
    RoutingPricingDataManager,
)
from .symbols import SymbolCatalog, SymbolKind

DEFAULT_DATA_DIR = ".assettracker"
DEFAULT_PRICE_TTL_SECONDS = 300


@dataclass
class Settings:
    """Runtime configuration."""

    openexchange_api_key: str | None = None
    gold_api_key: str | None = None
    display_currency: Currency = Currency.USD
    data_dir: Path = field(default_factory=lambda: Path(DEFAULT_DATA_DIR))
    price_cache_ttl: timedelta = timedelta(seconds=DEFAULT_PRICE_TTL_SECONDS)

    @property
    def transactions_path(self) -> Path:
        return self.data_dir / "transactions.json"

    @property
    def symbols_path(self) -> Path:
        return self.data_dir / "symbols.json"

    @property
    def price_history_path(self) -> Path:
        return self.data_dir / "price_history.json"


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from a ``.env`` file and the environment.

    Variables already set in the environment win over the file.

    Args:
        env_file: Path to a dotenv file. Defaults to ``.env`` in the
            working directory. A missing file is ignored.

    Raises:
        ValueError: If a variable holds an unusable value.
    """
    if env_file is None:
        env_file = Path.cwd() / ".env"
    load_dotenv(env_file)

    currency_code = os.getenv("ASSETTRACKER_DISPLAY_CURRENCY", Currency.USD.value).strip().upper()
    try:
        display_currency = Currency(currency_code)
    except ValueError:
        raise ValueError(f"ASSETTRACKER_DISPLAY_CURRENCY: unknown currency '{currency_code}'") from None

    ttl_text = os.getenv("ASSETTRACKER_PRICE_TTL", str(DEFAULT_PRICE_TTL_SECONDS))
    try:
        ttl_seconds = int(ttl_text)
    except ValueError:
        raise ValueError(f"ASSETTRACKER_PRICE_TTL: expected a number of seconds, got '{ttl_text}'") from None
    if ttl_seconds < 0:
        raise ValueError(f"ASSETTRACKER_PRICE_TTL: must not be negative, got {ttl_seconds}")

    return Settings(
        openexchange_api_key=os.getenv("OPENEXCHANGE_API_KEY") or None,
        gold_api_key=os.getenv("GOLD_API_KEY") or None,
        display_currency=display_currency,
        data_dir=Path(os.getenv("ASSETTRACKER_DATA_DIR", DEFAULT_DATA_DIR)),
        price_cache_ttl=timedelta(seconds=ttl_seconds),
    )


def build_exchange_rate_manager(settings: Settings) -> ExchangeRateManager:
    """Live openexchangerates.org rates when a key is configured, fixed rates otherwise."""
    if settings.openexchange_api_key:
        return OpenExchangeRatesManager(settings.openexchange_api_key, cache=RateCache())
    return FixedExchangeRateManager()


def build_pricing_manager(settings: Settings, catalog: SymbolCatalog) -> PricingDataManager:
    """Route commodities to goldapi.io and everything else to CryptoCompare.

    Both managers share one price cache with the configured TTL.
    """
    cache = PriceCache(ttl=settings.price_cache_ttl)
    gold_manager = GoldApiPricingDataManager(settings.gold_api_key, cache=cache)
    crypto_manager = CryptoComparePricingDataManager(cache=cache)

    routes: dict[str, PricingDataManager] = {
        symbol: gold_manager for symbol in catalog.symbols_of_kind(SymbolKind.COMMODITY)
    }
    return RoutingPricingDataManager(routes, default=crypto_manager)
