import os

import pytest

SETTINGS_VARIABLES = [
    "OPENEXCHANGE_API_KEY",
    "GOLD_API_KEY",
    "ASSETTRACKER_DISPLAY_CURRENCY",
    "ASSETTRACKER_DATA_DIR",
    "ASSETTRACKER_PRICE_TTL",
]


@pytest.fixture(autouse=True)
def clean_settings_environment(monkeypatch):
    """Start every test without settings variables and drop any a .env file loaded."""
    for name in SETTINGS_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    yield
    for name in SETTINGS_VARIABLES:
        os.environ.pop(name, None)
