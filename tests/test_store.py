"""Tests for transaction validation and the JSON transaction store."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from assettracker.currency import Currency
from assettracker.store import TransactionStore
from assettracker.transactions import (
    Transaction,
    TransactionType,
    TransactionValidationError,
    make_conversion,
    validate_transaction,
)


def _day(day: int) -> datetime:
    return datetime(2024, 2, day, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    return TransactionStore(tmp_path / "data" / "transactions.json")


class TestTransaction:

    def test_naive_datetime_is_utc(self):
        txn = Transaction("BTC", datetime(2024, 1, 1, 9, 30), TransactionType.BUY, Decimal("1"), Decimal("10"))
        assert txn.transaction_datetime.tzinfo == timezone.utc

    def test_numbers_become_decimals(self):
        txn = Transaction("BTC", _day(1), TransactionType.BUY, 0.1, 3)
        assert txn.quantity == Decimal("0.1")
        assert txn.price == Decimal("3")

    def test_unit_price(self):
        txn = Transaction("ETH", _day(1), TransactionType.BUY, Decimal("4"), Decimal("10"))
        assert txn.unit_price == Decimal("2.5")

    def test_signed_quantity(self):
        assert Transaction("ETH", _day(1), TransactionType.CONVERT, Decimal("2")).signed_quantity == Decimal("-2")
        assert Transaction("ETH", _day(1), TransactionType.EARN, Decimal("2")).signed_quantity == Decimal("2")

    def test_dict_round_trip(self):
        txn = Transaction("GOLD", _day(3), TransactionType.BUY, Decimal("10.5"), Decimal("3200"), Currency.MYR)
        assert Transaction.from_dict(txn.to_dict()) == txn

    def test_from_dict_generates_missing_id(self):
        txn = Transaction.from_dict({
            "symbol": "BTC",
            "datetime": "2024-01-15T10:30:00+00:00",
            "transaction_type": "BUY",
            "quantity": "0.5",
            "price": "21000",
        })
        assert txn.id
        assert txn.currency == Currency.USD

    def test_with_changes_keeps_identity(self):
        txn = Transaction("BTC", _day(1), TransactionType.BUY, Decimal("1"), Decimal("10"))
        edited = txn.with_changes(price=Decimal("12"), id="other")

        assert edited.id == txn.id
        assert edited.created_at == txn.created_at
        assert edited.price == Decimal("12")


def test_conversion_legs_share_link():
    outflow, inflow = make_conversion(
        "ETH", Decimal("2"), "SOL", Decimal("40"), Decimal("6000"), Currency.USD, _day(5)
    )
    assert outflow.transaction_type == TransactionType.CONVERT
    assert inflow.transaction_type == TransactionType.CONVERT_FROM
    assert outflow.link_id == inflow.link_id
    assert outflow.price == inflow.price == Decimal("6000")


class TestValidation:

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1"), Decimal("NaN")])
    def test_rejects_non_positive_quantity(self, quantity):
        txn = Transaction("BTC", _day(1), TransactionType.BUY, quantity, Decimal("10"))
        with pytest.raises(TransactionValidationError, match="Quantity must be positive"):
            validate_transaction(txn)

    def test_rejects_negative_price(self):
        txn = Transaction("BTC", _day(1), TransactionType.BUY, Decimal("1"), Decimal("-10"))
        with pytest.raises(TransactionValidationError, match="Price must not be negative"):
            validate_transaction(txn)

    def test_rejects_empty_symbol(self):
        txn = Transaction("", _day(1), TransactionType.BUY, Decimal("1"), Decimal("10"))
        with pytest.raises(TransactionValidationError, match="Symbol is required"):
            validate_transaction(txn)

    def test_validation_error_is_value_error(self):
        assert issubclass(TransactionValidationError, ValueError)

    def test_sell_within_balance(self):
        buy = Transaction("BTC", _day(1), TransactionType.BUY, Decimal("1"), Decimal("10"))
        sell = Transaction("BTC", _day(2), TransactionType.SELL, Decimal("1"), Decimal("15"))
        validate_transaction(sell, [buy])

    def test_sell_before_buy_is_rejected(self):
        """Verify the balance is checked at the sell's date, not against the final total."""
        buy = Transaction("BTC", _day(5), TransactionType.BUY, Decimal("1"), Decimal("10"))
        sell = Transaction("BTC", _day(2), TransactionType.SELL, Decimal("1"), Decimal("15"))
        with pytest.raises(TransactionValidationError, match="Insufficient BTC balance"):
            validate_transaction(sell, [buy])

    def test_other_symbols_do_not_count(self):
        buy = Transaction("ETH", _day(1), TransactionType.BUY, Decimal("5"), Decimal("10"))
        sell = Transaction("BTC", _day(2), TransactionType.SELL, Decimal("1"), Decimal("15"))
        with pytest.raises(TransactionValidationError):
            validate_transaction(sell, [buy])


class TestTransactionStore:

    def test_missing_file_is_empty(self, store):
        assert store.load_transactions() == []

    def test_add_and_reload(self, store):
        added = store.add_transaction("BTC", TransactionType.BUY, Decimal("0.5"), Decimal("21000"),
                                      transaction_datetime=_day(1))

        reloaded = TransactionStore(store.path).load_transactions()

        assert reloaded == [added]
        assert store.get_transaction(added.id) == added

    def test_add_defaults_to_now(self, store):
        before = datetime.now(timezone.utc)
        added = store.add_transaction("ETH", TransactionType.EARN, Decimal("0.1"), Decimal("0"))
        assert added.transaction_datetime >= before

    def test_load_orders_by_creation(self, store):
        later = store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(9))
        earlier = store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(1))

        assert [txn.id for txn in store.load_transactions()] == [later.id, earlier.id]

    def test_oversell_is_not_stored(self, store):
        store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(1))

        with pytest.raises(TransactionValidationError):
            store.add_transaction("BTC", TransactionType.SELL, Decimal("2"), Decimal("30"), transaction_datetime=_day(2))

        assert len(store.load_transactions()) == 1

    def test_duplicate_id_rejected(self, store):
        txn = store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(1))
        with pytest.raises(ValueError, match="already exists"):
            store.add(txn)

    def test_update_transaction(self, store):
        txn = store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(1))

        updated = store.update_transaction(txn.id, quantity=Decimal("2"), price=Decimal("25"))

        assert updated.id == txn.id
        assert store.get_transaction(txn.id).quantity == Decimal("2")
        assert store.get_transaction(txn.id).price == Decimal("25")

    def test_update_that_breaks_a_later_sell_is_rejected(self, store):
        buy = store.add_transaction("BTC", TransactionType.BUY, Decimal("2"), Decimal("10"), transaction_datetime=_day(1))
        store.add_transaction("BTC", TransactionType.SELL, Decimal("2"), Decimal("30"), transaction_datetime=_day(2))

        with pytest.raises(TransactionValidationError):
            store.update_transaction(buy.id, quantity=Decimal("1"))

        assert store.get_transaction(buy.id).quantity == Decimal("2")

    def test_price_edit_keeps_same_day_order(self, store):
        buy = store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(1))
        store.add_transaction("BTC", TransactionType.SELL, Decimal("1"), Decimal("30"), transaction_datetime=_day(1))

        updated = store.update_transaction(buy.id, price=Decimal("12"))

        assert updated.price == Decimal("12")
        assert [txn.transaction_type for txn in store.load_transactions()] == [TransactionType.BUY, TransactionType.SELL]

    def test_symbol_change_rechecks_old_symbol(self, store):
        buy = store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(1))
        store.add_transaction("BTC", TransactionType.SELL, Decimal("1"), Decimal("30"), transaction_datetime=_day(2))

        with pytest.raises(TransactionValidationError, match="Insufficient BTC balance"):
            store.update_transaction(buy.id, symbol="ETH")

        assert store.get_transaction(buy.id).symbol == "BTC"

    def test_update_unknown_id(self, store):
        with pytest.raises(KeyError):
            store.update_transaction("missing", price=Decimal("1"))

    def test_delete_transaction(self, store):
        txn = store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(1))
        store.delete_transaction(txn.id)
        assert store.load_transactions() == []

    def test_delete_unknown_id(self, store):
        with pytest.raises(KeyError):
            store.delete_transaction("missing")

    def test_delete_buy_backing_a_sell_is_rejected(self, store):
        buy = store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(1))
        store.add_transaction("BTC", TransactionType.SELL, Decimal("1"), Decimal("30"), transaction_datetime=_day(2))

        with pytest.raises(TransactionValidationError):
            store.delete_transaction(buy.id)
        assert len(store.load_transactions()) == 2

    def test_conversion_stored_and_deleted_together(self, store):
        store.add_transaction("ETH", TransactionType.BUY, Decimal("3"), Decimal("6000"), transaction_datetime=_day(1))

        outflow, inflow = store.add_conversion("ETH", Decimal("2"), "SOL", Decimal("40"), Decimal("5000"),
                                               transaction_datetime=_day(2))
        assert len(store.load_transactions()) == 3

        store.delete_transaction(inflow.id)

        remaining = store.load_transactions()
        assert [txn.symbol for txn in remaining] == ["ETH"]
        assert outflow.id not in {txn.id for txn in remaining}

    def test_conversion_without_balance_stores_nothing(self, store):
        with pytest.raises(TransactionValidationError):
            store.add_conversion("ETH", Decimal("1"), "SOL", Decimal("10"), Decimal("100"),
                                 transaction_datetime=_day(2))
        assert store.load_transactions() == []

    def test_replace_all(self, store):
        store.add_transaction("BTC", TransactionType.BUY, Decimal("1"), Decimal("10"), transaction_datetime=_day(1))
        replacement = [
            Transaction("ETH", _day(1), TransactionType.BUY, Decimal("2"), Decimal("100")),
            Transaction("ETH", _day(2), TransactionType.SELL, Decimal("1"), Decimal("80")),
        ]

        store.replace_all(replacement)

        assert {txn.symbol for txn in store.load_transactions()} == {"ETH"}

    def test_replace_all_rejects_inconsistent_history(self, store):
        with pytest.raises(TransactionValidationError):
            store.replace_all([Transaction("ETH", _day(2), TransactionType.SELL, Decimal("1"), Decimal("80"))])

    def test_file_must_hold_a_list(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps({"transactions": []}))
        with pytest.raises(ValueError, match="must contain a list"):
            store.load_transactions()
