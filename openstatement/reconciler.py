from collections.abc import Sequence
from datetime import date
from itertools import zip_longest
from typing import Iterable, Iterator, List, Union

from openstatement.logging_setup import get_logger
from openstatement.models import ComparisonResult, Transaction

logger = get_logger(__name__)


def _order_key(transaction: Transaction) -> tuple:
    return (
        transaction.date or date.min,
        transaction.amount,
        transaction.currency,
        transaction.operation_type.value,
    )


class TransactionHolder(Sequence):
    """
    Date-ordered list of normalized transactions.

    Accepts any statement object with a ``collect_transactions()`` method, or
    an iterable of `Transaction`. The sort is stable, so transactions on the
    same date keep their statement order; undated transactions come first.
    """

    def __init__(self, source: Union[object, Iterable[Transaction]]):
        if hasattr(source, "collect_transactions"):
            transactions = source.collect_transactions()
        else:
            transactions = list(source)
        self.transactions: List[Transaction] = sorted(
            transactions, key=lambda t: t.date or date.min
        )

    def __len__(self) -> int:
        return len(self.transactions)

    def __getitem__(self, index):
        return self.transactions[index]

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self.transactions)


class Reconciler:
    """
    Checks whether two statements hold the same transactions, whatever their
    formats, by walking both date-ordered sequences side by side.
    """

    @staticmethod
    def compare(first, second) -> ComparisonResult:
        """
        Compares two statements (or holders, or transaction lists).

        Stops at the first position where only one side has a transaction or
        where the two transactions differ. A length mismatch reports the
        transaction of the longer side. Of a differing pair the transaction that
        sorts first (date, amount, currency, direction) is reported, so swapping
        the statements swaps the reported side.
        """
        first = first if isinstance(first, TransactionHolder) else TransactionHolder(first)
        second = second if isinstance(second, TransactionHolder) else TransactionHolder(second)

        for position, (a, b) in enumerate(zip_longest(first, second)):
            if b is None:
                logger.debug("Second statement ends at position %d", position)
                return ComparisonResult(False, "first", a, None, position)
            if a is None:
                logger.debug("First statement ends at position %d", position)
                return ComparisonResult(False, "second", b, None, position)
            if a != b:
                logger.debug("Statements differ at position %d", position)
                if _order_key(a) <= _order_key(b):
                    return ComparisonResult(False, "first", a, b, position)
                return ComparisonResult(False, "second", b, a, position)
        return ComparisonResult(True)

    @staticmethod
    def is_match(first, second) -> bool:
        return Reconciler.compare(first, second).is_match
