from datetime import date
from decimal import Decimal

import pytest

from models import Category, Jar, Source, SourceType, TransactionType
from schemas import AddTransactionArgs, UpdateTransactionArgs
from services import (
    EntryResolver,
    EntryService,
    InsufficientFunds,
    InvalidReference,
    TransactionValidationError,
    classify_jar,
)


def test_classify_jar_keywords() -> None:
    assert classify_jar("Coffee shop", TransactionType.expense) == Jar.play
    assert classify_jar("Online course", TransactionType.expense) == Jar.education
    assert classify_jar("Crypto", TransactionType.expense) == Jar.financial_freedom
    assert classify_jar("Charity", TransactionType.expense) == Jar.give
    assert classify_jar("Groceries", TransactionType.expense) == Jar.necessities
    assert classify_jar("Misc", TransactionType.expense) == Jar.necessities
    assert classify_jar("Movie royalties", TransactionType.income) == Jar.necessities


def test_category_lookup_is_case_insensitive_and_typed(session, make_category):
    food = make_category("Food")
    resolver = EntryResolver(session, 1)

    assert resolver.resolve_category("  food ", TransactionType.expense).id == food.id

    income_food = resolver.resolve_category("Food", TransactionType.income)
    assert income_food.id != food.id
    assert income_food.type == TransactionType.income


def test_category_auto_create_picks_jar(session):
    resolver = EntryResolver(session, 1)

    coffee = resolver.resolve_category("Coffee", TransactionType.expense)
    books = resolver.resolve_category("Misc", TransactionType.expense, jar=Jar.education)

    assert coffee.jar == Jar.play
    assert books.jar == Jar.education
    with pytest.raises(TransactionValidationError):
        resolver.resolve_category("   ", TransactionType.expense)


def test_default_source_is_created_once(session, make_source):
    resolver = EntryResolver(session, 1)

    created = resolver.resolve_source("default")
    assert created.name == "Main Account"
    assert created.type == SourceType.bank_account
    assert created.balance_cents == 0
    assert resolver.resolve_source(None).id == created.id
    assert resolver.resolve_source("").id == created.id

    other = EntryResolver(session, 2)
    bank = make_source("Bank", user_id=2)
    make_source("Wallet", user_id=2)
    assert other.resolve_source("Default").id == bank.id


def test_explicit_source_must_be_owned(session, make_source):
    mine = make_source("Bank")
    theirs = make_source("Bank", user_id=2)
    resolver = EntryResolver(session, 1)

    assert resolver.resolve_source(str(mine.id)).id == mine.id
    assert resolver.resolve_source(mine.id).id == mine.id
    with pytest.raises(InvalidReference):
        resolver.resolve_source(theirs.id)
    with pytest.raises(InvalidReference):
        resolver.resolve_source("savings")


def test_entry_creates_category_and_default_source(session):
    entry = EntryService(session, 1)

    txn = entry.add_transaction(
        AddTransactionArgs(
            amount=Decimal("1250.50"),
            type=TransactionType.income,
            category="Salary",
        )
    )

    assert txn.amount_cents == 125_050
    assert txn.category.name == "Salary"
    assert txn.source.name == "Main Account"
    assert txn.source.balance_cents == 125_050
    assert txn.date == entry.today()
    assert txn.description is None


def test_failed_entry_leaves_no_auto_created_records(session):
    entry = EntryService(session, 1)

    with pytest.raises(InsufficientFunds):
        entry.add_transaction(
            AddTransactionArgs(
                amount=Decimal("5"), type=TransactionType.expense, category="Lunch"
            )
        )

    assert session.query(Category).count() == 0
    assert session.query(Source).count() == 0


def test_sub_cent_amounts_are_rejected(session, make_source):
    make_source("Bank", balance_cents=1_000, source_type=SourceType.bank_account)

    with pytest.raises(TransactionValidationError):
        EntryService(session, 1).add_transaction(
            AddTransactionArgs(
                amount=Decimal("0.004"), type=TransactionType.expense, category="Gum"
            )
        )


def test_entry_update_resolves_names(session, make_source):
    bank = make_source("Bank", balance_cents=10_000)
    wallet = make_source("Wallet", balance_cents=10_000)
    entry = EntryService(session, 1)
    txn = entry.add_transaction(
        AddTransactionArgs(
            amount=Decimal("20"),
            type=TransactionType.expense,
            category="Food",
            sourceId=bank.id,
            date=date(2025, 7, 4),
        )
    )

    updated = entry.update_transaction(
        UpdateTransactionArgs(
            transactionId=txn.id,
            amount=Decimal("30"),
            category="Dining",
            sourceId=str(wallet.id),
        )
    )

    assert updated.category.name == "Dining"
    assert updated.category.type == TransactionType.expense
    assert session.get(Source, bank.id).balance_cents == 10_000
    assert session.get(Source, wallet.id).balance_cents == 7_000
    assert updated.date == date(2025, 7, 4)


def test_entry_type_flip_moves_to_matching_category(session, make_source):
    bank = make_source("Bank", balance_cents=10_000)
    entry = EntryService(session, 1)
    txn = entry.add_transaction(
        AddTransactionArgs(
            amount=Decimal("15"), type=TransactionType.expense, category="Refunds"
        )
    )
    assert session.get(Source, bank.id).balance_cents == 8_500

    flipped = entry.update_transaction(
        UpdateTransactionArgs(transactionId=txn.id, type=TransactionType.income)
    )

    assert flipped.type == TransactionType.income
    assert flipped.category.name == "Refunds"
    assert flipped.category.type == TransactionType.income
    assert session.get(Source, bank.id).balance_cents == 11_500
