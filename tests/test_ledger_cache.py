from datetime import date
from decimal import Decimal

from ledger_cache import LedgerCache
from models import TransactionType
from schemas import TransactionOut


def _txn(txn_id: int, amount: str = "10", description=None) -> TransactionOut:
    return TransactionOut(
        id=txn_id,
        user_id=1,
        amount=Decimal(amount),
        type=TransactionType.expense,
        date=date(2024, 1, txn_id),
        description=description,
    )


def test_replace_all_discards_previous_contents() -> None:
    cache = LedgerCache([_txn(1), _txn(2)])
    cache.replace_all([_txn(3)])
    assert [txn.id for txn in cache] == [3]
    assert len(cache) == 1


def test_append_keeps_order() -> None:
    cache = LedgerCache()
    cache.append(_txn(2))
    cache.append(_txn(1))
    assert [txn.id for txn in cache.items] == [2, 1]


def test_replace_swaps_matching_entry_in_place() -> None:
    cache = LedgerCache([_txn(1), _txn(2), _txn(3)])

    assert cache.replace(_txn(2, amount="99", description="fixed"))
    assert [txn.id for txn in cache] == [1, 2, 3]
    assert cache.get(2).amount == Decimal("99")
    assert cache.get(2).description == "fixed"

    assert not cache.replace(_txn(7))
    assert len(cache) == 3


def test_remove_reports_whether_anything_changed() -> None:
    cache = LedgerCache([_txn(1), _txn(2)])
    assert cache.remove(1)
    assert not cache.remove(1)
    assert cache.get(1) is None
    assert [txn.id for txn in cache] == [2]


def test_iteration_is_a_snapshot() -> None:
    cache = LedgerCache([_txn(1), _txn(2)])
    for txn in cache:
        cache.remove(txn.id)
    assert len(cache) == 0
