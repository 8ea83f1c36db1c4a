from typing import Iterable, Iterator, Optional

from schemas import TransactionOut


class LedgerCache:
    """Ordered, session-owned copy of a user's transactions.

    The cache is only as fresh as the last fetch or local mutation: a fetch
    replaces everything, and successful creates/updates/deletes patch it in
    place so the caller does not have to re-fetch after each edit.
    """

    def __init__(self, transactions: Optional[Iterable[TransactionOut]] = None) -> None:
        self._items: list[TransactionOut] = list(transactions or [])

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[TransactionOut]:
        return iter(list(self._items))

    @property
    def items(self) -> tuple[TransactionOut, ...]:
        return tuple(self._items)

    def get(self, transaction_id: int) -> Optional[TransactionOut]:
        for txn in self._items:
            if txn.id == transaction_id:
                return txn
        return None

    def replace_all(self, transactions: Iterable[TransactionOut]) -> None:
        self._items = list(transactions)

    def append(self, transaction: TransactionOut) -> None:
        self._items.append(transaction)

    def replace(self, transaction: TransactionOut) -> bool:
        for index, txn in enumerate(self._items):
            if txn.id == transaction.id:
                self._items[index] = transaction
                return True
        return False

    def remove(self, transaction_id: int) -> bool:
        before = len(self._items)
        self._items = [txn for txn in self._items if txn.id != transaction_id]
        return len(self._items) != before
