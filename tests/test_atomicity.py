from datetime import date

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from database import StorageError, atomic
from models import Source, Transaction, TransactionType
from schemas import TransactionIn, TransactionPatch
from services import TransactionService


def _failing_commit():
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


def _expense(category, source, amount_cents):
    return TransactionIn(
        amount_cents=amount_cents,
        type=TransactionType.expense,
        date=date(2025, 4, 2),
        category_id=category.id,
        source_id=source.id,
    )


def test_commit_failure_rolls_back_row_and_balance(
    session, make_category, make_source, monkeypatch
):
    food = make_category("Food")
    cash = make_source("Cash", balance_cents=10_000)

    monkeypatch.setattr(session, "commit", _failing_commit)
    with pytest.raises(StorageError):
        TransactionService(session, 1).create(_expense(food, cash, 2_000))
    monkeypatch.undo()

    assert session.get(Source, cash.id).balance_cents == 10_000
    assert session.query(Transaction).count() == 0


def test_flush_failure_after_balance_change(session, make_category, make_source):
    food = make_category("Food")
    cash = make_source("Cash", balance_cents=10_000)

    def fail_flush(flush_session, flush_context, instances):
        if any(isinstance(obj, Transaction) for obj in flush_session.new):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

    event.listen(session, "before_flush", fail_flush)
    try:
        with pytest.raises(StorageError):
            TransactionService(session, 1).create(_expense(food, cash, 2_000))
    finally:
        event.remove(session, "before_flush", fail_flush)

    assert cash.balance_cents == 10_000
    assert session.query(Transaction).count() == 0


def test_delete_commit_failure_keeps_transaction(
    session, make_category, make_source, monkeypatch
):
    food = make_category("Food")
    cash = make_source("Cash", balance_cents=10_000)
    service = TransactionService(session, 1)
    txn = service.create(_expense(food, cash, 2_000))

    monkeypatch.setattr(session, "commit", _failing_commit)
    with pytest.raises(StorageError):
        service.delete(txn.id)
    monkeypatch.undo()

    assert cash.balance_cents == 8_000
    assert service.get(txn.id).amount_cents == 2_000


def test_atomic_reraises_domain_errors_after_rollback(session, make_source):
    cash = make_source("Cash", balance_cents=500)

    with pytest.raises(KeyError):
        with atomic(session):
            cash.balance_cents = 0
            session.flush()
            raise KeyError("boom")

    assert cash.balance_cents == 500


def test_update_commit_failure_keeps_both_sources(
    session, make_category, make_source, monkeypatch
):
    food = make_category("Food")
    wallet = make_source("Wallet", balance_cents=10_000)
    bank = make_source("Bank", balance_cents=10_000)
    service = TransactionService(session, 1)
    txn = service.create(_expense(food, wallet, 2_000))

    monkeypatch.setattr(session, "commit", _failing_commit)
    with pytest.raises(StorageError):
        service.update(txn.id, TransactionPatch(amount_cents=3_000, source_id=bank.id))
    monkeypatch.undo()

    assert session.get(Source, wallet.id).balance_cents == 8_000
    assert session.get(Source, bank.id).balance_cents == 10_000
    stored = service.get(txn.id)
    assert (stored.amount_cents, stored.source_id) == (2_000, wallet.id)
