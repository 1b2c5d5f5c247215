from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable
import uuid

from .currency import Currency


class TransactionType(Enum):
    """Enumeration of supported asset transaction types."""

    BUY = "BUY"
    SELL = "SELL"
    EARN = "EARN"
    CONVERT = "CONVERT" # Outflow leg of a conversion: units leave this symbol.
    CONVERT_FROM = "CONVERT_FROM" # Inflow leg of a conversion: units arrive in this symbol.


ACQUISITION_TYPES = frozenset({TransactionType.BUY, TransactionType.EARN, TransactionType.CONVERT_FROM})
DISPOSAL_TYPES = frozenset({TransactionType.SELL, TransactionType.CONVERT})


class TransactionValidationError(ValueError):
    """Raised when a transaction is rejected before it reaches the store."""


def _new_id() -> str:
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC so all transactions compare."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Transaction:
    """A single asset transaction.

    ``price`` is the total paid or received for ``quantity`` units, not a
    per-unit price. Quantities are always positive; the direction of the
    movement comes from ``transaction_type``.
    """

    symbol: str
    transaction_datetime: datetime
    transaction_type: TransactionType
    quantity: Decimal
    price: Decimal = Decimal("0")
    currency: Currency = Currency.USD
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utc_now)
    link_id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "quantity", _to_decimal(self.quantity))
        object.__setattr__(self, "price", _to_decimal(self.price))
        object.__setattr__(self, "transaction_datetime", _ensure_aware(self.transaction_datetime))
        object.__setattr__(self, "created_at", _ensure_aware(self.created_at))

    @property
    def is_acquisition(self) -> bool:
        return self.transaction_type in ACQUISITION_TYPES

    @property
    def is_disposal(self) -> bool:
        return self.transaction_type in DISPOSAL_TYPES

    @property
    def signed_quantity(self) -> Decimal:
        return -self.quantity if self.is_disposal else self.quantity

    @property
    def unit_price(self) -> Decimal:
        """Price per unit; zero when quantity is zero."""
        if self.quantity == 0:
            return Decimal("0")
        return self.price / self.quantity

    def with_changes(self, **changes: Any) -> "Transaction":
        """Return a copy with some fields replaced. ``id`` and ``created_at`` are kept."""
        changes.pop("id", None)
        changes.pop("created_at", None)
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "datetime": self.transaction_datetime.isoformat(),
            "transaction_type": self.transaction_type.value,
            "quantity": str(self.quantity),
            "price": str(self.price),
            "currency": self.currency.value,
            "created_at": self.created_at.isoformat(),
            "link_id": self.link_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Transaction":
        """Build a transaction from its ``to_dict`` form.

        ``id`` and ``created_at`` are optional so hand-written import files
        work; missing ones are generated.
        """
        kwargs: dict[str, Any] = {
            "symbol": str(data["symbol"]),
            "transaction_datetime": datetime.fromisoformat(data["datetime"]),
            "transaction_type": TransactionType(data["transaction_type"]),
            "quantity": _to_decimal(data["quantity"]),
            "price": _to_decimal(data.get("price") or 0),
            "currency": Currency(data.get("currency") or Currency.USD.value),
            "link_id": data.get("link_id"),
        }
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        if data.get("created_at"):
            kwargs["created_at"] = datetime.fromisoformat(data["created_at"])
        return cls(**kwargs)

    def __repr__(self):
        return f"Transaction(id={self.id}, symbol={self.symbol}, date={self.transaction_datetime}, type={self.transaction_type.value}, quantity={self.quantity}, price={self.price}, currency={self.currency.value})"


def make_conversion(
    from_symbol: str,
    from_quantity: Decimal,
    to_symbol: str,
    to_quantity: Decimal,
    value: Decimal,
    currency: Currency,
    transaction_datetime: datetime,
) -> tuple[Transaction, Transaction]:
    """
    Build the two linked legs of a conversion between assets.

    Both legs carry the same ``value`` (the worth of what moved, in
    ``currency``) and share a ``link_id``. The outflow leg realizes a gain or
    loss on ``from_symbol``; the inflow leg opens a lot in ``to_symbol`` at
    that value.

    Returns:
        A tuple of (CONVERT transaction, CONVERT_FROM transaction).
    """
    link_id = _new_id()
    outflow = Transaction(
        symbol=from_symbol,
        transaction_datetime=transaction_datetime,
        transaction_type=TransactionType.CONVERT,
        quantity=from_quantity,
        price=value,
        currency=currency,
        link_id=link_id,
    )
    inflow = Transaction(
        symbol=to_symbol,
        transaction_datetime=transaction_datetime,
        transaction_type=TransactionType.CONVERT_FROM,
        quantity=to_quantity,
        price=value,
        currency=currency,
        link_id=link_id,
    )
    return outflow, inflow


def validate_transaction_fields(transaction: Transaction) -> None:
    """Reject an empty symbol, a non-positive quantity or a negative price."""
    if not transaction.symbol:
        raise TransactionValidationError("Symbol is required")
    if not transaction.quantity.is_finite() or transaction.quantity <= 0:
        raise TransactionValidationError(f"Quantity must be positive, got {transaction.quantity}")
    if not transaction.price.is_finite() or transaction.price < 0:
        raise TransactionValidationError(f"Price must not be negative, got {transaction.price}")


def validate_transaction(transaction: Transaction, existing: Iterable[Transaction] = ()) -> None:
    """
    Check a transaction before it is stored.

    ``existing`` is the rest of the stored history. A transaction with the
    same id in ``existing`` is treated as the record being replaced.

    Raises:
        TransactionValidationError: If the symbol is empty, the quantity is not
            positive, the price is negative, or the symbol's balance would go
            negative at any point in its date-ordered history.
    """
    validate_transaction_fields(transaction)

    history = [
        txn for txn in existing
        if txn.symbol == transaction.symbol and txn.id != transaction.id
    ]
    history.append(transaction)
    check_sufficient_balance(history)


def check_sufficient_balance(transactions: Iterable[Transaction]) -> None:
    """
    Replay transactions in date order and reject any point where a symbol's
    balance goes negative.

    Raises:
        TransactionValidationError: On the first disposal exceeding the balance.
    """
    balances: dict[str, Decimal] = {}
    for txn in sorted(transactions, key=lambda t: t.transaction_datetime):
        balance = balances.get(txn.symbol, Decimal("0")) + txn.signed_quantity
        if balance < 0:
            available = balance + txn.quantity
            raise TransactionValidationError(
                f"Insufficient {txn.symbol} balance on {txn.transaction_datetime.date()}: "
                f"{txn.transaction_type.value} of {txn.quantity} exceeds available {available}"
            )
        balances[txn.symbol] = balance
