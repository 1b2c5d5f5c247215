from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
import json
import os
import warnings

import pandas as pd
from openpyxl import Workbook

from .accounting import (
    GainLoss,
    PortfolioSummary,
    Position,
    aggregate_positions,
    compute_all_gain_loss,
    summarize_portfolio,
)
from .currency import Currency, ExchangeRateManager, FixedExchangeRateManager
from .pricingdata import PricePoint, PricingDataManager, FixedPricingDataManager
from .transactions import Transaction, TransactionType

EXCEL_HEADERS = ["ID", "SYMBOL", "DATE AND TIME", "TRANSACTION TYPE", "QUANTITY", "PRICE", "CURRENCY", "CREATED AT", "LINK ID"]
REQUIRED_COLUMNS = {"SYMBOL", "DATE AND TIME", "TRANSACTION TYPE", "QUANTITY", "PRICE", "CURRENCY"}


class Portfolio():
    """A set of asset transactions plus the collaborators needed to value them.

    The portfolio holds no derived state: positions, gains and totals are
    recomputed from ``transactions`` on every call.
    """

    def __init__(
        self,
        transactions: list[Transaction],
        display_currency: Currency = Currency.USD,
        exchange_rate_manager: ExchangeRateManager | None = None,
        pricing_manager: PricingDataManager | None = None
    ):
        """Initialize a Portfolio.

        Args:
            transactions: Transactions to include.
            display_currency: Currency all gains and totals are reported in.
            exchange_rate_manager: Manager for currency conversions. Defaults
                to FixedExchangeRateManager.
            pricing_manager: Manager for current prices. Defaults to
                FixedPricingDataManager, which prices everything at 1 USD.
        """
        self.transactions: list[Transaction] = transactions
        self.display_currency = display_currency
        self.exchange_rate_manager = exchange_rate_manager if exchange_rate_manager else FixedExchangeRateManager()
        self.pricing_manager = pricing_manager if pricing_manager else FixedPricingDataManager()

    @property
    def symbols(self) -> list[str]:
        """Distinct symbols in first-seen order."""
        return list(dict.fromkeys(txn.symbol for txn in self.transactions))

    def transactions_as_of(self, as_of: datetime | None = None) -> list[Transaction]:
        if as_of is None:
            return list(self.transactions)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)
        return [txn for txn in self.transactions if txn.transaction_datetime <= as_of]

    def get_current_prices(self) -> dict[str, PricePoint]:
        return self.pricing_manager.get_current_prices(self.symbols)


def _warn_if_timezone_missing(raw_datetimes: list[datetime], file_path: str) -> None:
    if any(dt.tzinfo is None for dt in raw_datetimes):
        warnings.warn(
            f"Some transactions in '{file_path}' were missing timezone information. "
            f"Assuming UTC for these transactions.",
            UserWarning
        )


def load_portfolio_from_json(
    file_path: str,
    display_currency: Currency = Currency.USD,
    exchange_rate_manager: ExchangeRateManager | None = None,
    pricing_manager: PricingDataManager | None = None,
) -> Portfolio:
    """
    Load a portfolio from a JSON export.

    Expected JSON structure:
        [
            {
                "symbol": "BTC",
                "datetime": "2024-01-15T10:30:00+00:00",
                "transaction_type": "BUY",
                "quantity": "0.5",
                "price": "21000",
                "currency": "USD"
            },
            ...
        ]

    ``id``, ``created_at`` and ``link_id`` are kept when present.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a list of transactions.
    """
    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError("JSON file must contain a list of transactions")

    transactions: list[Transaction] = []
    raw_datetimes: list[datetime] = []
    item: Any
    for item in data:  # type: ignore[union-attr]
        raw_datetimes.append(datetime.fromisoformat(item["datetime"]))
        transactions.append(Transaction.from_dict(item))

    _warn_if_timezone_missing(raw_datetimes, file_path)

    return Portfolio(
        transactions=transactions,
        display_currency=display_currency,
        exchange_rate_manager=exchange_rate_manager,
        pricing_manager=pricing_manager,
    )


def save_portfolio_to_json(portfolio: Portfolio, file_path: str) -> None:
    """Write the portfolio's transactions as a JSON list (see ``load_portfolio_from_json``)."""
    data = [txn.to_dict() for txn in portfolio.transactions]
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def _cell_text(value: Any) -> str | None:
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def load_portfolio_from_excel(
    file_path: str,
    display_currency: Currency = Currency.USD,
    exchange_rate_manager: ExchangeRateManager | None = None,
    pricing_manager: PricingDataManager | None = None,
) -> Portfolio:
    """
    Load a portfolio from an Excel file.

    Expected Excel columns (order independent):
        - SYMBOL: Asset symbol
        - DATE AND TIME: Transaction datetime
        - TRANSACTION TYPE: BUY, SELL, EARN, CONVERT, CONVERT_FROM
        - QUANTITY: Units transacted
        - PRICE: Total transaction price
        - CURRENCY: Currency code. If empty for a row, the currency of the
          first row is used.
    Optional columns ID, CREATED AT and LINK ID round-trip exports.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If required columns are missing.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Portfolio file not found: {file_path}")

    df = pd.read_excel(file_path)

    if df.empty:
        return Portfolio(
            transactions=[],
            display_currency=display_currency,
            exchange_rate_manager=exchange_rate_manager,
            pricing_manager=pricing_manager,
        )

    missing_columns = REQUIRED_COLUMNS - set(df.columns)
    if missing_columns:
        raise ValueError(f"Missing required columns: {missing_columns}")

    default_currency = Currency(_cell_text(df["CURRENCY"].iloc[0]) or Currency.USD.value)

    transactions: list[Transaction] = []
    raw_datetimes: list[datetime] = []

    for _, row in df.iterrows():
        raw_datetime = pd.to_datetime(row["DATE AND TIME"]).to_pydatetime()  # type: ignore[assignment]
        raw_datetimes.append(raw_datetime)

        currency_code = _cell_text(row["CURRENCY"])
        kwargs: dict[str, Any] = {
            "symbol": str(row["SYMBOL"]).strip(),
            "transaction_datetime": raw_datetime,
            "transaction_type": TransactionType(str(row["TRANSACTION TYPE"]).strip().upper()),
            "quantity": Decimal(str(row["QUANTITY"])),
            "price": Decimal(str(row["PRICE"])) if _cell_text(row["PRICE"]) else Decimal("0"),
            "currency": Currency(currency_code) if currency_code else default_currency,
        }

        transaction_id = _cell_text(row.get("ID"))
        if transaction_id:
            kwargs["id"] = transaction_id
        created_at = _cell_text(row.get("CREATED AT"))
        if created_at:
            kwargs["created_at"] = datetime.fromisoformat(created_at)
        kwargs["link_id"] = _cell_text(row.get("LINK ID"))

        transactions.append(Transaction(**kwargs))

    _warn_if_timezone_missing(raw_datetimes, file_path)

    return Portfolio(
        transactions=transactions,
        display_currency=display_currency,
        exchange_rate_manager=exchange_rate_manager,
        pricing_manager=pricing_manager,
    )


def save_portfolio_to_excel(portfolio: Portfolio, file_path: str) -> None:
    """Write the portfolio's transactions to an Excel file with ``EXCEL_HEADERS`` columns."""
    wb = Workbook()
    ws = wb.active
    assert ws is not None

    for col, header in enumerate(EXCEL_HEADERS, start=1):
        ws.cell(row=1, column=col, value=header)

    for row, txn in enumerate(portfolio.transactions, start=2):
        ws.cell(row=row, column=1, value=txn.id)
        ws.cell(row=row, column=2, value=txn.symbol)
        ws.cell(row=row, column=3, value=txn.transaction_datetime.isoformat())
        ws.cell(row=row, column=4, value=txn.transaction_type.value)
        ws.cell(row=row, column=5, value=str(txn.quantity))
        ws.cell(row=row, column=6, value=str(txn.price))
        ws.cell(row=row, column=7, value=txn.currency.value)
        ws.cell(row=row, column=8, value=txn.created_at.isoformat())
        ws.cell(row=row, column=9, value=txn.link_id)

    wb.save(file_path)


def get_positions(
    portfolio: Portfolio,
    as_of: datetime | None = None,
    current_prices: dict[str, PricePoint] | None = None,
) -> list[Position]:
    """
    Aggregate positions from the transactions up to ``as_of``.

    Args:
        portfolio: Portfolio with transactions and collaborators.
        as_of: Only transactions on or before this datetime count. None means all.
        current_prices: Prices to use. Fetched from the pricing manager if None.
    """
    if current_prices is None:
        current_prices = portfolio.get_current_prices()
    return aggregate_positions(
        portfolio.transactions_as_of(as_of),
        current_prices,
        portfolio.exchange_rate_manager.convert,
    )


def get_gain_loss(
    portfolio: Portfolio,
    as_of: datetime | None = None,
    current_prices: dict[str, PricePoint] | None = None,
) -> dict[str, GainLoss]:
    """FIFO gain/loss per symbol in the portfolio's display currency."""
    if current_prices is None:
        current_prices = portfolio.get_current_prices()
    return compute_all_gain_loss(
        portfolio.transactions_as_of(as_of),
        current_prices,
        portfolio.display_currency,
        portfolio.exchange_rate_manager.convert,
    )


def summarize(
    portfolio: Portfolio,
    as_of: datetime | None = None,
    current_prices: dict[str, PricePoint] | None = None,
) -> tuple[list[Position], dict[str, GainLoss], PortfolioSummary]:
    """
    Compute positions, per-symbol gains and portfolio totals in one pass
    over a single set of prices.

    Returns:
        A tuple of (positions, gain/loss by symbol, summary).
    """
    if current_prices is None:
        current_prices = portfolio.get_current_prices()

    positions = get_positions(portfolio, as_of, current_prices)
    results = get_gain_loss(portfolio, as_of, current_prices)
    summary = summarize_portfolio(
        positions,
        results,
        portfolio.display_currency,
        portfolio.exchange_rate_manager.convert,
    )
    return positions, results, summary
