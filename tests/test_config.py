"""Tests for settings loading and collaborator wiring."""

from datetime import timedelta
from pathlib import Path

import pytest

from assettracker.config import (
    Settings,
    build_exchange_rate_manager,
    build_pricing_manager,
    load_settings,
)
from assettracker.currency import Currency, FixedExchangeRateManager, OpenExchangeRatesManager
from assettracker.pricingdata import CryptoComparePricingDataManager, GoldApiPricingDataManager
from assettracker.symbols import SymbolCatalog, SymbolInfo, SymbolKind


def test_defaults_without_env_file(tmp_path):
    settings = load_settings(tmp_path / "missing.env")

    assert settings.openexchange_api_key is None
    assert settings.gold_api_key is None
    assert settings.display_currency == Currency.USD
    assert settings.data_dir == Path(".assettracker")
    assert settings.price_cache_ttl == timedelta(seconds=300)


def test_values_from_env_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "OPENEXCHANGE_API_KEY=oxr-key\n"
        "GOLD_API_KEY=gold-key\n"
        "ASSETTRACKER_DISPLAY_CURRENCY=myr\n"
        f"ASSETTRACKER_DATA_DIR={tmp_path / 'data'}\n"
        "ASSETTRACKER_PRICE_TTL=60\n"
    )

    settings = load_settings(env_file)

    assert settings.openexchange_api_key == "oxr-key"
    assert settings.gold_api_key == "gold-key"
    assert settings.display_currency == Currency.MYR
    assert settings.transactions_path == tmp_path / "data" / "transactions.json"
    assert settings.symbols_path == tmp_path / "data" / "symbols.json"
    assert settings.price_history_path == tmp_path / "data" / "price_history.json"
    assert settings.price_cache_ttl == timedelta(seconds=60)


def test_environment_wins_over_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("ASSETTRACKER_DISPLAY_CURRENCY=MYR\n")
    monkeypatch.setenv("ASSETTRACKER_DISPLAY_CURRENCY", "EUR")

    assert load_settings(env_file).display_currency == Currency.EUR


def test_default_env_file_is_in_working_directory(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("GOLD_API_KEY=from-cwd\n")
    monkeypatch.chdir(tmp_path)

    assert load_settings().gold_api_key == "from-cwd"


@pytest.mark.parametrize(
    "variable, value, message",
    [
        ("ASSETTRACKER_DISPLAY_CURRENCY", "XYZ", "unknown currency"),
        ("ASSETTRACKER_PRICE_TTL", "soon", "expected a number of seconds"),
        ("ASSETTRACKER_PRICE_TTL", "-5", "must not be negative"),
    ],
)
def test_invalid_values_name_the_variable(tmp_path, monkeypatch, variable, value, message):
    monkeypatch.setenv(variable, value)
    with pytest.raises(ValueError, match=f"{variable}: {message}"):
        load_settings(tmp_path / "missing.env")


def test_exchange_rate_manager_depends_on_key():
    assert isinstance(build_exchange_rate_manager(Settings()), FixedExchangeRateManager)

    manager = build_exchange_rate_manager(Settings(openexchange_api_key="oxr-key"))
    assert isinstance(manager, OpenExchangeRatesManager)
    assert manager.app_id == "oxr-key"


def test_pricing_manager_routes_commodities_to_gold():
    catalog = SymbolCatalog()
    catalog.add(SymbolInfo("SILVER", "Silver", SymbolKind.COMMODITY, "grams"))
    settings = Settings(gold_api_key="gold-key", price_cache_ttl=timedelta(seconds=30))

    manager = build_pricing_manager(settings, catalog)

    gold = manager.manager_for("GOLD")
    assert isinstance(gold, GoldApiPricingDataManager)
    assert gold.api_key == "gold-key"
    assert manager.manager_for("SILVER") is gold

    crypto = manager.manager_for("BTC")
    assert isinstance(crypto, CryptoComparePricingDataManager)
    assert crypto.cache is gold.cache
    assert gold.cache.ttl == timedelta(seconds=30)
