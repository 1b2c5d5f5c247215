"""Position and gain/loss accounting.

Everything here is a pure function of its inputs: transactions, current
prices and a currency converter go in, derived views come out. Nothing is
cached between calls, so results are recomputed from the full history on
every read.

Cost basis follows FIFO: each acquisition (BUY, EARN, CONVERT_FROM) opens a
lot, each disposal (SELL, CONVERT) consumes the oldest open lots first.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Mapping
import warnings

from .currency import Currency
from .pricingdata import PricePoint
from .transactions import Transaction, TransactionType

# convert(amount, from_currency, to_currency) -> amount in to_currency
ConvertFn = Callable[[Decimal, Currency, Currency], Decimal]

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass
class Lot:
    """Units acquired together at one unit cost, tracked until sold."""

    quantity: Decimal
    unit_price: Decimal
    currency: Currency

    @property
    def cost(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class Position:
    """Aggregate view of one symbol's holdings.

    Monetary totals are in ``total_buy_currency``; the current price is in
    ``current_price_currency``.
    """

    symbol: str
    net_quantity: Decimal = ZERO
    total_buy_value: Decimal = ZERO
    total_buy_currency: Currency = Currency.USD
    current_price: Decimal = ZERO
    current_price_currency: Currency = Currency.USD
    last_transaction_datetime: datetime | None = None
    bought_quantity: Decimal = ZERO
    sold_quantity: Decimal = ZERO
    earned_quantity: Decimal = ZERO

    @property
    def average_cost(self) -> Decimal:
        """Average BUY price per unit; zero when nothing was bought."""
        if self.bought_quantity == 0:
            return ZERO
        return self.total_buy_value / self.bought_quantity

    @property
    def current_value(self) -> Decimal:
        """Market value of the net holding, in ``current_price_currency``."""
        return self.current_price * self.net_quantity


@dataclass(frozen=True)
class GainLoss:
    """FIFO result for one symbol. Monetary fields are in ``currency``."""

    symbol: str
    currency: Currency
    realized_gain: Decimal = ZERO
    unrealized_gain: Decimal = ZERO
    total_gain: Decimal = ZERO
    gain_percentage: Decimal = ZERO
    current_value: Decimal = ZERO
    remaining_cost_basis: Decimal = ZERO
    total_buy_value: Decimal = ZERO
    net_quantity: Decimal = ZERO
    remaining_lots: tuple[Lot, ...] = field(default_factory=tuple)
    # Disposed units that had no open lot to draw from.
    unmatched_quantity: Decimal = ZERO


@dataclass(frozen=True)
class PortfolioSummary:
    """Portfolio-wide totals in ``currency``."""

    currency: Currency
    total_buy_value: Decimal = ZERO
    total_current_value: Decimal = ZERO
    total_profit: Decimal = ZERO
    total_earnings: Decimal = ZERO

    @property
    def trading_profit(self) -> Decimal:
        """Profit excluding the current value of earned units."""
        return self.total_profit - self.total_earnings


@dataclass(frozen=True)
class AllocationSlice:
    symbol: str
    value: Decimal
    percentage: Decimal


def group_by_symbol(transactions: Iterable[Transaction]) -> dict[str, list[Transaction]]:
    """Group transactions by symbol, keeping first-seen symbol order and input order within a group."""
    grouped: dict[str, list[Transaction]] = {}
    for txn in transactions:
        grouped.setdefault(txn.symbol, []).append(txn)
    return grouped


def aggregate_positions(
    transactions: Iterable[Transaction],
    current_prices: Mapping[str, PricePoint],
    convert: ConvertFn,
) -> list[Position]:
    """
    Build one Position per distinct symbol.

    Net quantity adds acquisitions and subtracts disposals. Only BUY
    transactions contribute to ``total_buy_value``; true cost basis after
    sales comes from ``compute_gain_loss``.

    The reference currency of a position is the currency of its first BUY in
    iteration order, or of its first transaction when it has no BUY.

    Args:
        transactions: Transactions for any number of symbols, in any order.
        current_prices: Latest price per symbol. A symbol without a price is
            valued at zero in its reference currency.
        convert: Currency converter.

    Returns:
        Positions in first-seen symbol order.
    """
    positions: list[Position] = []

    for symbol, symbol_transactions in group_by_symbol(transactions).items():
        first_buy = next(
            (t for t in symbol_transactions if t.transaction_type == TransactionType.BUY),
            symbol_transactions[0],
        )
        position = Position(symbol=symbol, total_buy_currency=first_buy.currency)

        for txn in symbol_transactions:
            position.net_quantity += txn.signed_quantity

            if txn.transaction_type == TransactionType.BUY:
                position.total_buy_value += convert(txn.price, txn.currency, position.total_buy_currency)
                position.bought_quantity += txn.quantity
            elif txn.transaction_type == TransactionType.EARN:
                position.earned_quantity += txn.quantity
            elif txn.is_disposal:
                position.sold_quantity += txn.quantity

            if position.last_transaction_datetime is None or txn.transaction_datetime > position.last_transaction_datetime:
                position.last_transaction_datetime = txn.transaction_datetime

        price_point = current_prices.get(symbol)
        if price_point is not None:
            position.current_price = price_point.price
            position.current_price_currency = price_point.base_currency
        else:
            position.current_price_currency = position.total_buy_currency

        positions.append(position)

    return positions


def compute_gain_loss(
    transactions: Iterable[Transaction],
    current_price: PricePoint | None,
    display_currency: Currency,
    convert: ConvertFn,
) -> GainLoss:
    """
    Split one symbol's gain into realized and unrealized parts using FIFO.

    Transactions are replayed by date; ties keep their input order (the sort
    is stable). A disposal with more units than the open lots hold is a data
    inconsistency: the excess adds no cost basis, is reported in
    ``unmatched_quantity`` and triggers a UserWarning.

    Args:
        transactions: Full history of a single symbol, in any order.
        current_price: Latest price, or None if unknown (valued at zero).
        display_currency: Currency of every monetary field of the result.
        convert: Currency converter.

    Returns:
        A GainLoss with realized, unrealized and total gain, the gain
        percentage, and the open lots.

    Raises:
        ValueError: If the transactions span more than one symbol.
    """
    history = sorted(transactions, key=lambda t: t.transaction_datetime)

    symbols = {txn.symbol for txn in history}
    if len(symbols) > 1:
        raise ValueError(f"compute_gain_loss expects a single symbol, got {sorted(symbols)}")
    if symbols:
        symbol = symbols.pop()
    elif current_price is not None:
        symbol = current_price.symbol
    else:
        symbol = ""

    lots: deque[Lot] = deque()
    realized_gain = ZERO
    total_buy_value = ZERO
    unmatched_quantity = ZERO

    for txn in history:
        if txn.is_acquisition:
            lots.append(Lot(quantity=txn.quantity, unit_price=txn.unit_price, currency=txn.currency))
            if txn.transaction_type == TransactionType.BUY:
                total_buy_value += convert(txn.price, txn.currency, display_currency)
            continue

        remaining = txn.quantity
        unit_sale_price = txn.unit_price

        while remaining > 0 and lots:
            lot = lots[0]
            consumed = min(lot.quantity, remaining)

            cost_basis = convert(lot.unit_price * consumed, lot.currency, display_currency)
            sale_value = convert(unit_sale_price * consumed, txn.currency, display_currency)
            realized_gain += sale_value - cost_basis

            lot.quantity -= consumed
            remaining -= consumed
            if lot.quantity == 0:
                lots.popleft()

        if remaining > 0:
            unmatched_quantity += remaining
            warnings.warn(
                f"{txn.transaction_type.value} of {txn.quantity} {symbol} on "
                f"{txn.transaction_datetime.date()} exceeds recorded holdings by {remaining}; "
                f"the excess is treated as having no cost basis.",
                UserWarning
            )

    remaining_cost_basis = ZERO
    net_quantity = ZERO
    for lot in lots:
        remaining_cost_basis += convert(lot.cost, lot.currency, display_currency)
        net_quantity += lot.quantity

    if current_price is not None:
        current_value = convert(current_price.price * net_quantity, current_price.base_currency, display_currency)
    else:
        current_value = ZERO

    unrealized_gain = current_value - remaining_cost_basis
    total_gain = realized_gain + unrealized_gain

    cost_for_percentage = remaining_cost_basis if net_quantity > 0 else total_buy_value
    if cost_for_percentage != 0:
        gain_percentage = total_gain / cost_for_percentage * HUNDRED
    else:
        gain_percentage = ZERO

    return GainLoss(
        symbol=symbol,
        currency=display_currency,
        realized_gain=realized_gain,
        unrealized_gain=unrealized_gain,
        total_gain=total_gain,
        gain_percentage=gain_percentage,
        current_value=current_value,
        remaining_cost_basis=remaining_cost_basis,
        total_buy_value=total_buy_value,
        net_quantity=net_quantity,
        remaining_lots=tuple(Lot(lot.quantity, lot.unit_price, lot.currency) for lot in lots),
        unmatched_quantity=unmatched_quantity,
    )


def compute_all_gain_loss(
    transactions: Iterable[Transaction],
    current_prices: Mapping[str, PricePoint],
    display_currency: Currency,
    convert: ConvertFn,
) -> dict[str, GainLoss]:
    """Run ``compute_gain_loss`` for every symbol, keyed by symbol in first-seen order."""
    return {
        symbol: compute_gain_loss(symbol_transactions, current_prices.get(symbol), display_currency, convert)
        for symbol, symbol_transactions in group_by_symbol(transactions).items()
    }


def summarize_portfolio(
    positions: Iterable[Position],
    gain_loss_results: Mapping[str, GainLoss],
    display_currency: Currency,
    convert: ConvertFn,
) -> PortfolioSummary:
    """
    Roll per-symbol results into portfolio totals.

    - total_buy_value: each position's BUY total converted to the display currency.
    - total_current_value: sum of FIFO current values.
    - total_profit: sum of realized plus unrealized gains.
    - total_earnings: earned units valued at the current price, since EARN
      transactions carry no meaningful purchase price.

    Positions without a gain/loss entry contribute nothing to value or profit.
    """
    total_buy_value = ZERO
    total_current_value = ZERO
    total_profit = ZERO
    total_earnings = ZERO

    for position in positions:
        total_buy_value += convert(position.total_buy_value, position.total_buy_currency, display_currency)

        if position.earned_quantity > 0:
            total_earnings += convert(
                position.earned_quantity * position.current_price,
                position.current_price_currency,
                display_currency,
            )

        result = gain_loss_results.get(position.symbol)
        if result is None:
            continue
        if result.currency != display_currency:
            raise ValueError(
                f"Gain/loss for {position.symbol} is in {result.currency.value}, "
                f"expected {display_currency.value}"
            )
        total_current_value += result.current_value
        total_profit += result.total_gain

    return PortfolioSummary(
        currency=display_currency,
        total_buy_value=total_buy_value,
        total_current_value=total_current_value,
        total_profit=total_profit,
        total_earnings=total_earnings,
    )


def calculate_allocation(gain_loss_results: Mapping[str, GainLoss]) -> list[AllocationSlice]:
    """Share of total current value held in each symbol, largest first.

    Symbols with no positive value are left out.
    """
    values = {symbol: result.current_value for symbol, result in gain_loss_results.items() if result.current_value > 0}
    total = sum(values.values(), ZERO)
    if total == 0:
        return []

    slices = [
        AllocationSlice(symbol=symbol, value=value, percentage=value / total * HUNDRED)
        for symbol, value in values.items()
    ]
    slices.sort(key=lambda s: s.value, reverse=True)
    return slices
