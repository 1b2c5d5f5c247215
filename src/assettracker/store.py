from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
import json

from .currency import Currency
from .transactions import (
    Transaction,
    TransactionType,
    check_sufficient_balance,
    make_conversion,
    validate_transaction,
    validate_transaction_fields,
)


class TransactionStore:
    """Transactions persisted as a JSON list in a single file.

    Every write validates against the full stored history, loads the file,
    applies the change and writes the whole list back. Reads return records
    in creation order.
    """

    def __init__(self, file_path: str | Path):
        self.path = Path(file_path)

    def load_transactions(self) -> list[Transaction]:
        """Return all stored transactions ordered by ``created_at``.

        A missing file is an empty store.

        Raises:
            ValueError: If the file is not a JSON list of transactions.
        """
        if not self.path.exists():
            return []

        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, list):
            raise ValueError(f"Transaction store '{self.path}' must contain a list of transactions")

        item: Any
        transactions = [Transaction.from_dict(item) for item in data]  # type: ignore[union-attr]
        return sorted(transactions, key=lambda t: t.created_at)

    def _write(self, transactions: list[Transaction]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [txn.to_dict() for txn in transactions]
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(self.path)

    def get_transaction(self, transaction_id: str) -> Transaction:
        """Raises KeyError if no transaction has this id."""
        for txn in self.load_transactions():
            if txn.id == transaction_id:
                return txn
        raise KeyError(f"Transaction not found: {transaction_id}")

    def add(self, transaction: Transaction) -> Transaction:
        """Validate and store an already built transaction."""
        transactions = self.load_transactions()
        if any(txn.id == transaction.id for txn in transactions):
            raise ValueError(f"Transaction id already exists: {transaction.id}")
        validate_transaction(transaction, transactions)
        transactions.append(transaction)
        self._write(transactions)
        return transaction

    def add_transaction(
        self,
        symbol: str,
        transaction_type: TransactionType,
        quantity: Decimal,
        price: Decimal,
        currency: Currency = Currency.USD,
        transaction_datetime: datetime | None = None,
    ) -> Transaction:
        """
        Create, validate and store a transaction.

        Args:
            symbol: Asset symbol.
            transaction_type: BUY, SELL or EARN.
            quantity: Units transacted, strictly positive.
            price: Total price of the transaction in ``currency``.
            currency: Currency of ``price``.
            transaction_datetime: Effective date. Defaults to now.

        Returns:
            The stored transaction, with its new id.

        Raises:
            TransactionValidationError: If the transaction is rejected.
        """
        if transaction_datetime is None:
            transaction_datetime = datetime.now().astimezone()

        transaction = Transaction(
            symbol=symbol,
            transaction_datetime=transaction_datetime,
            transaction_type=transaction_type,
            quantity=quantity,
            price=price,
            currency=currency,
        )
        return self.add(transaction)

    def add_conversion(
        self,
        from_symbol: str,
        from_quantity: Decimal,
        to_symbol: str,
        to_quantity: Decimal,
        value: Decimal,
        currency: Currency = Currency.USD,
        transaction_datetime: datetime | None = None,
    ) -> tuple[Transaction, Transaction]:
        """Store both legs of a conversion, or neither if either is rejected."""
        if transaction_datetime is None:
            transaction_datetime = datetime.now().astimezone()

        outflow, inflow = make_conversion(
            from_symbol, from_quantity, to_symbol, to_quantity, value, currency, transaction_datetime
        )
        transactions = self.load_transactions()
        validate_transaction(outflow, transactions)
        validate_transaction(inflow, transactions + [outflow])
        transactions.extend([outflow, inflow])
        self._write(transactions)
        return outflow, inflow

    def update_transaction(self, transaction_id: str, **changes: Any) -> Transaction:
        """
        Replace a stored transaction with an edited copy.

        Accepted fields are those of Transaction other than ``id`` and
        ``created_at``, which are preserved.

        Raises:
            KeyError: If no transaction has this id.
            TransactionValidationError: If the edited record is rejected.
        """
        transactions = self.load_transactions()
        for index, txn in enumerate(transactions):
            if txn.id == transaction_id:
                updated = txn.with_changes(**changes)
                validate_transaction_fields(updated)
                # The edited record keeps its place among same-day records.
                transactions[index] = updated
                affected = {txn.symbol, updated.symbol}
                check_sufficient_balance(t for t in transactions if t.symbol in affected)
                self._write(transactions)
                return updated
        raise KeyError(f"Transaction not found: {transaction_id}")

    def delete_transaction(self, transaction_id: str) -> Transaction:
        """
        Delete a transaction by id.

        Deleting one leg of a conversion deletes its linked leg as well.

        Raises:
            KeyError: If no transaction has this id.
            TransactionValidationError: If removing it would leave a later
                disposal without enough balance.
        """
        transactions = self.load_transactions()
        target = next((txn for txn in transactions if txn.id == transaction_id), None)
        if target is None:
            raise KeyError(f"Transaction not found: {transaction_id}")

        def is_removed(txn: Transaction) -> bool:
            if txn.id == target.id:
                return True
            return target.link_id is not None and txn.link_id == target.link_id

        affected = {txn.symbol for txn in transactions if is_removed(txn)}
        remaining = [txn for txn in transactions if not is_removed(txn)]
        check_sufficient_balance(txn for txn in remaining if txn.symbol in affected)
        self._write(remaining)
        return target

    def replace_all(self, transactions: list[Transaction]) -> None:
        """Overwrite the store, e.g. after an import. The new set must be consistent."""
        for txn in transactions:
            validate_transaction_fields(txn)
        check_sufficient_balance(transactions)
        self._write(list(transactions))
