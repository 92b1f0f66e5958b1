from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import case, delete, func, select
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from database import StorageError, atomic
from models import (
    BulkDeleteScope,
    Category,
    Jar,
    Source,
    SourceType,
    Transaction,
    TransactionType,
)
from schemas import (
    MAX_AMOUNT_CENTS,
    MAX_BALANCE_CENTS,
    AddTransactionArgs,
    CategoryIn,
    SourceIn,
    SourceUpdate,
    TransactionIn,
    TransactionPatch,
    UpdateTransactionArgs,
    to_cents,
)

logger = logging.getLogger(__name__)


class TransactionValidationError(ValueError):
    pass


class InvalidReference(ValueError):
    pass


class InsufficientFunds(ValueError):
    def __init__(self, source_name: str, balance_cents: int) -> None:
        self.source_name = source_name
        self.balance_cents = balance_cents
        super().__init__(
            f"Insufficient funds in {source_name}. "
            f"Current balance: {format_cents(balance_cents)}"
        )


class RecordNotFound(ValueError):
    pass


class PermissionDenied(ValueError):
    pass


class NothingToDelete(ValueError):
    pass


class RecordInUse(ValueError):
    pass


def format_cents(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def _validated_type(value: Any) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError as exc:
        raise TransactionValidationError(
            f"Unknown transaction type: {value!r}"
        ) from exc


def _validated_amount(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise TransactionValidationError("Amount must be a positive number of cents")
    if value > MAX_AMOUNT_CENTS:
        raise TransactionValidationError(
            f"Amount must not exceed {format_cents(MAX_AMOUNT_CENTS)}"
        )
    return value


def signed_amount(txn_type: TransactionType, amount_cents: int) -> int:
    """Effect of a transaction on its source balance: +amount for income, -amount for expense."""
    if _validated_type(txn_type) == TransactionType.income:
        return amount_cents
    return -amount_cents


def apply_delta(source: Source, signed_cents: int, *, check_funds: bool = True) -> None:
    """
    Add a signed amount to the cached balance of a source.

    Must run inside the same atomic unit that writes the matching transaction
    row; persisting the source is left to that unit. Expense-direction deltas
    that would take the balance below zero raise InsufficientFunds and leave
    the source unchanged. Reversals pass check_funds=False because they
    restore a previously valid state. A result outside the BIGINT range is
    rejected in either direction.
    """
    new_balance = source.balance_cents + signed_cents
    if abs(new_balance) > MAX_BALANCE_CENTS:
        raise TransactionValidationError(
            f"Balance of {source.name} would be out of range"
        )
    if check_funds and signed_cents < 0 and new_balance < 0:
        raise InsufficientFunds(source.name, source.balance_cents)
    source.balance_cents = new_balance


def _lock_source(session: Session, source_id: int) -> Optional[Source]:
    return session.scalar(
        select(Source)
        .where(Source.id == source_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    source_id: Optional[int] = None
    start: Optional[date] = None
    end: Optional[date] = None


@dataclass(frozen=True)
class DeleteResult:
    transaction_id: int
    amount_cents: int


@dataclass(frozen=True)
class BulkDeleteResult:
    deleted_count: int
    type: BulkDeleteScope


@dataclass(frozen=True)
class FailedItem:
    spec: Any
    error: str


@dataclass
class BatchResult:
    successful: list[Transaction] = field(default_factory=list)
    failed: list[FailedItem] = field(default_factory=list)

    @property
    def total_created(self) -> int:
        return len(self.successful)

    @property
    def total_failed(self) -> int:
        return len(self.failed)


@dataclass(frozen=True)
class BalanceDrift:
    source_id: int
    user_id: int
    name: str
    cached_cents: int
    expected_cents: int

    @property
    def drift_cents(self) -> int:
        return self.cached_cents - self.expected_cents


def run_best_effort(
    items: Iterable[Any], create_one: Callable[[Any], Transaction]
) -> BatchResult:
    """
    Feed each item to create_one in input order, collecting failures.

    Every call is expected to run in its own atomic unit, so a failing item
    never undoes the ones before it. Only a non-iterable input raises.
    """
    if isinstance(items, (str, bytes, Mapping)) or not isinstance(items, Iterable):
        raise TypeError("Expected an iterable of transaction specs")

    result = BatchResult()
    for index, item in enumerate(items):
        try:
            result.successful.append(create_one(item))
        except (ValueError, StorageError) as exc:
            logger.warning(f"batch_item_failed: index={index} error={exc}")
            result.failed.append(FailedItem(spec=item, error=str(exc)))
    return result


def ledger_totals(session: Session, user_id: Optional[int] = None) -> dict[int, int]:
    signed = case(
        (Transaction.type == TransactionType.income, Transaction.amount_cents),
        else_=-Transaction.amount_cents,
    )
    stmt = select(Transaction.source_id, func.coalesce(func.sum(signed), 0)).group_by(
        Transaction.source_id
    )
    if user_id is not None:
        stmt = stmt.where(Transaction.user_id == user_id)
    return {source_id: int(total) for source_id, total in session.execute(stmt).all()}


def find_balance_drift(
    session: Session, user_id: Optional[int] = None
) -> list[BalanceDrift]:
    totals = ledger_totals(session, user_id)
    stmt = select(Source).order_by(Source.id)
    if user_id is not None:
        stmt = stmt.where(Source.user_id == user_id)
    drifts: list[BalanceDrift] = []
    for source in session.scalars(stmt).all():
        expected = source.opening_balance_cents + totals.get(source.id, 0)
        if source.balance_cents != expected:
            drifts.append(
                BalanceDrift(
                    source_id=source.id,
                    user_id=source.user_id,
                    name=source.name,
                    cached_cents=source.balance_cents,
                    expected_cents=expected,
                )
            )
    return drifts


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, txn_type: Optional[TransactionType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name)
        )
        if txn_type:
            stmt = stmt.where(Category.type == txn_type)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise RecordNotFound("Category not found")
        return category

    def _ensure_unique_name(
        self, name: str, txn_type: TransactionType, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            Category.type == txn_type,
            func.lower(Category.name) == name.strip().lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise TransactionValidationError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        with atomic(self.session):
            self._ensure_unique_name(data.name, data.type)
            category = Category(
                user_id=self.user_id,
                name=data.name.strip(),
                type=data.type,
                jar=data.jar,
            )
            self.session.add(category)
        return category

    def rename(self, category_id: int, name: str) -> Category:
        with atomic(self.session):
            category = self.get(category_id)
            self._ensure_unique_name(name, category.type, exclude_id=category.id)
            category.name = name.strip()
        return category

    def delete(self, category_id: int) -> None:
        with atomic(self.session):
            category = self.get(category_id)
            in_use = self.session.scalar(
                select(func.count(Transaction.id)).where(
                    Transaction.category_id == category.id
                )
            )
            if in_use:
                raise RecordInUse(
                    f"Category is used by {in_use} transaction(s) and cannot be deleted"
                )
            self.session.delete(category)


class SourceService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Source]:
        stmt = select(Source).where(Source.user_id == self.user_id).order_by(Source.id)
        return self.session.scalars(stmt).all()

    def get(self, source_id: int) -> Source:
        source = self.session.get(Source, source_id)
        if not source or source.user_id != self.user_id:
            raise RecordNotFound("Source not found")
        return source

    def _get_locked(self, source_id: int) -> Source:
        source = _lock_source(self.session, source_id)
        if not source or source.user_id != self.user_id:
            raise RecordNotFound("Source not found")
        return source

    def create(self, data: SourceIn) -> Source:
        with atomic(self.session):
            source = Source(
                user_id=self.user_id,
                name=data.name.strip(),
                type=data.type,
                balance_cents=data.balance_cents,
                opening_balance_cents=data.balance_cents,
                status=data.status,
                interest_rate=data.interest_rate,
                category_label=data.category_label,
                transfer_time=data.transfer_time,
            )
            self.session.add(source)
        logger.info(
            f"source_created: user_id={self.user_id} source_id={source.id} "
            f"balance_cents={source.balance_cents}"
        )
        return source

    def update(self, source_id: int, data: SourceUpdate) -> Source:
        changes = data.model_dump(exclude_unset=True)
        with atomic(self.session):
            source = self._get_locked(source_id)
            new_balance = changes.pop("balance_cents", None)
            if new_balance is not None and new_balance != source.balance_cents:
                # A manual edit re-anchors the opening balance so the cached
                # balance still equals opening + ledger.
                delta = new_balance - source.balance_cents
                source.balance_cents = new_balance
                source.opening_balance_cents += delta
                logger.info(
                    f"source_balance_adjusted: user_id={self.user_id} "
                    f"source_id={source.id} delta_cents={delta}"
                )
            for key, value in changes.items():
                if value is not None:
                    setattr(source, key, value.strip() if key == "name" else value)
        return source

    def delete(self, source_id: int, *, cascade: bool = False) -> int:
        """
        Delete a source. Returns the number of transactions removed with it.

        Sources still referenced by transactions are kept unless cascade is
        set, in which case the source and its transactions go together.
        """
        with atomic(self.session):
            source = self._get_locked(source_id)
            count = int(
                self.session.scalar(
                    select(func.count(Transaction.id)).where(
                        Transaction.source_id == source.id
                    )
                )
                or 0
            )
            if count and not cascade:
                raise RecordInUse(
                    f"Source {source.name} has {count} transaction(s); "
                    "delete them first or delete with cascade"
                )
            if count:
                self.session.execute(
                    delete(Transaction).where(Transaction.source_id == source.id)
                )
            self.session.delete(source)
        logger.info(
            f"source_deleted: user_id={self.user_id} source_id={source_id} "
            f"transactions_removed={count}"
        )
        return count

    def total_balance(self) -> int:
        return int(
            self.session.scalar(
                select(func.coalesce(func.sum(Source.balance_cents), 0)).where(
                    Source.user_id == self.user_id
                )
            )
            or 0
        )

    def audit_balances(self) -> list[BalanceDrift]:
        return find_balance_drift(self.session, self.user_id)

    def reconcile(self, source_id: int) -> Source:
        with atomic(self.session):
            source = self._get_locked(source_id)
            ledger = ledger_totals(self.session, self.user_id).get(source.id, 0)
            expected = source.opening_balance_cents + ledger
            if source.balance_cents != expected:
                logger.warning(
                    f"source_reconciled: user_id={self.user_id} source_id={source.id} "
                    f"cached_cents={source.balance_cents} expected_cents={expected}"
                )
                source.balance_cents = expected
        return source


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _owned_category(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise InvalidReference("Category not found")
        return category

    def _owned_source(self, source_id: int) -> Source:
        source = _lock_source(self.session, source_id)
        if not source or source.user_id != self.user_id:
            raise InvalidReference("Source not found")
        return source

    def get_for_update(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not txn:
            raise RecordNotFound("Transaction not found")
        if txn.user_id != self.user_id:
            raise PermissionDenied("Not authorized to modify this transaction")
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.source))
            .where(Transaction.id == transaction_id)
        )
        if not txn:
            raise RecordNotFound("Transaction not found")
        if txn.user_id != self.user_id:
            raise PermissionDenied("Not authorized to access this transaction")
        return txn

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.source))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.source_id:
            stmt = stmt.where(Transaction.source_id == filters.source_id)
        if filters.start:
            stmt = stmt.where(Transaction.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Transaction.date <= filters.end)
        return self.session.scalars(stmt).all()

    def count(self) -> int:
        return int(
            self.session.scalar(
                select(func.count(Transaction.id)).where(
                    Transaction.user_id == self.user_id
                )
            )
            or 0
        )

    def create(self, data: TransactionIn) -> Transaction:
        with atomic(self.session):
            txn = self.create_in_unit(data)
        logger.info(
            f"transaction_created: user_id={self.user_id} transaction_id={txn.id} "
            f"type={txn.type.value} amount_cents={txn.amount_cents} "
            f"source_id={txn.source_id}"
        )
        return txn

    def create_in_unit(self, data: TransactionIn) -> Transaction:
        """Create without committing; the caller owns the atomic unit."""
        txn_type = _validated_type(data.type)
        amount = _validated_amount(data.amount_cents)
        category = self._owned_category(data.category_id)
        if category.type != txn_type:
            raise TransactionValidationError("Category type mismatch")
        source = self._owned_source(data.source_id)

        apply_delta(source, signed_amount(txn_type, amount))

        txn = Transaction(
            user_id=self.user_id,
            date=data.date,
            type=txn_type,
            amount_cents=amount,
            description=data.description,
            category=category,
            source=source,
        )
        self.session.add(txn)
        self.session.flush()
        return txn

    def update(self, transaction_id: int, patch: TransactionPatch) -> Transaction:
        with atomic(self.session):
            txn = self.update_in_unit(transaction_id, patch.model_dump(exclude_unset=True))
        logger.info(
            f"transaction_updated: user_id={self.user_id} transaction_id={txn.id} "
            f"type={txn.type.value} amount_cents={txn.amount_cents} "
            f"source_id={txn.source_id}"
        )
        return txn

    def update_in_unit(self, transaction_id: int, changes: dict[str, Any]) -> Transaction:
        txn = self.get_for_update(transaction_id)

        def merged(key: str, current: Any) -> Any:
            value = changes.get(key)
            return current if value is None else value

        new_type = _validated_type(merged("type", txn.type))
        new_amount = _validated_amount(merged("amount_cents", txn.amount_cents))
        new_category_id = merged("category_id", txn.category_id)
        new_source_id = merged("source_id", txn.source_id)

        category = txn.category
        if new_category_id != txn.category_id or new_type != txn.type:
            category = self._owned_category(new_category_id)
            if category.type != new_type:
                raise TransactionValidationError("Category type mismatch")

        old_source = _lock_source(self.session, txn.source_id)
        if old_source is None:
            raise RecordNotFound("Source not found")
        apply_delta(
            old_source, -signed_amount(txn.type, txn.amount_cents), check_funds=False
        )
        if new_source_id == old_source.id:
            target = old_source
        else:
            target = self._owned_source(new_source_id)
        apply_delta(target, signed_amount(new_type, new_amount))

        txn.type = new_type
        txn.amount_cents = new_amount
        txn.category = category
        txn.source = target
        txn.date = merged("date", txn.date)
        if "description" in changes:
            txn.description = changes["description"]
        self.session.flush()
        return txn

    def delete(self, transaction_id: int) -> DeleteResult:
        with atomic(self.session):
            txn = self.get_for_update(transaction_id)
            source = _lock_source(self.session, txn.source_id)
            if source is None:
                raise RecordNotFound("Source not found")
            apply_delta(
                source, -signed_amount(txn.type, txn.amount_cents), check_funds=False
            )
            result = DeleteResult(transaction_id=txn.id, amount_cents=txn.amount_cents)
            self.session.delete(txn)
        logger.info(
            f"transaction_deleted: user_id={self.user_id} "
            f"transaction_id={result.transaction_id} amount_cents={result.amount_cents}"
        )
        return result


class BatchService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def add_multiple(self, specs: Iterable[Any]) -> BatchResult:
        transactions = TransactionService(self.session, self.user_id)

        def create_one(spec: Any) -> Transaction:
            data = (
                spec
                if isinstance(spec, TransactionIn)
                else TransactionIn.model_validate(spec)
            )
            return transactions.create(data)

        result = run_best_effort(specs, create_one)
        logger.info(
            f"batch_created: user_id={self.user_id} created={result.total_created} "
            f"failed={result.total_failed}"
        )
        return result

    def bulk_delete(self, scope: BulkDeleteScope | str) -> BulkDeleteResult:
        try:
            scope = BulkDeleteScope(scope)
        except ValueError as exc:
            raise TransactionValidationError(
                f"Unknown transaction filter: {scope!r}"
            ) from exc

        with atomic(self.session):
            stmt = (
                select(
                    Transaction.id,
                    Transaction.source_id,
                    Transaction.type,
                    Transaction.amount_cents,
                )
                .where(Transaction.user_id == self.user_id)
                .with_for_update()
            )
            if scope != BulkDeleteScope.all:
                stmt = stmt.where(Transaction.type == TransactionType(scope.value))
            rows = self.session.execute(stmt).all()
            if not rows:
                raise NothingToDelete(f"No {scope.value} transactions to delete")

            deltas: dict[int, int] = defaultdict(int)
            for row in rows:
                deltas[row.source_id] -= signed_amount(row.type, row.amount_cents)

            sources = self.session.scalars(
                select(Source)
                .where(Source.id.in_(list(deltas)))
                .with_for_update()
                .execution_options(populate_existing=True)
            ).all()
            for source in sources:
                apply_delta(source, deltas[source.id], check_funds=False)

            self.session.execute(
                delete(Transaction).where(Transaction.id.in_([row.id for row in rows]))
            )
        logger.info(
            f"transactions_bulk_deleted: user_id={self.user_id} type={scope.value} "
            f"count={len(rows)} sources={len(deltas)}"
        )
        return BulkDeleteResult(deleted_count=len(rows), type=scope)


JAR_KEYWORDS: list[tuple[Jar, tuple[str, ...]]] = [
    (
        Jar.necessities,
        (
            "rent",
            "mortgage",
            "utilities",
            "groceries",
            "gas",
            "fuel",
            "insurance",
            "phone",
            "internet",
            "electricity",
            "water",
            "food",
        ),
    ),
    (
        Jar.play,
        (
            "entertainment",
            "movie",
            "game",
            "coffee",
            "restaurant",
            "bar",
            "hobby",
            "fun",
            "vacation",
        ),
    ),
    (
        Jar.education,
        ("education", "course", "book", "training", "seminar", "learning"),
    ),
    (
        Jar.financial_freedom,
        ("investment", "stock", "crypto", "bond", "mutual fund"),
    ),
    (Jar.long_term_savings, ("savings", "retirement", "emergency fund")),
    (Jar.give, ("charity", "donation", "gift", "tip")),
]


def classify_jar(name: str, txn_type: TransactionType) -> Jar:
    """Best-effort Six Jars tag for an auto-created category."""
    if txn_type == TransactionType.income:
        return Jar.necessities
    lowered = name.lower()
    for jar, keywords in JAR_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return jar
    return Jar.necessities


class EntryResolver:
    """
    Turns loose references from the agent path into concrete records.

    Lookups never cross user boundaries. Records created here are flushed but
    not committed, so they share the caller's atomic unit.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def resolve_category(
        self, name: str, txn_type: TransactionType, jar: Optional[Jar] = None
    ) -> Category:
        clean_name = (name or "").strip()
        if not clean_name:
            raise TransactionValidationError("Category name cannot be empty")
        txn_type = _validated_type(txn_type)

        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == txn_type,
                func.lower(Category.name) == clean_name.lower(),
            )
        )
        if existing:
            return existing

        category = Category(
            user_id=self.user_id,
            name=clean_name,
            type=txn_type,
            jar=jar or classify_jar(clean_name, txn_type),
        )
        self.session.add(category)
        self.session.flush()
        logger.info(
            f"category_auto_created: user_id={self.user_id} category_id={category.id} "
            f"jar={category.jar.value}"
        )
        return category

    def resolve_source(self, ref: Optional[str | int]) -> Source:
        if ref is None or str(ref).strip().lower() in ("", "default"):
            first = self.session.scalar(
                select(Source)
                .where(Source.user_id == self.user_id)
                .order_by(Source.id)
                .limit(1)
            )
            if first:
                return first
            source = Source(
                user_id=self.user_id,
                name=get_settings().default_source_name,
                type=SourceType.bank_account,
                balance_cents=0,
                opening_balance_cents=0,
            )
            self.session.add(source)
            self.session.flush()
            logger.info(
                f"source_auto_created: user_id={self.user_id} source_id={source.id}"
            )
            return source

        try:
            source_id = int(str(ref).strip())
        except ValueError as exc:
            raise InvalidReference("Source not found or doesn't belong to user") from exc
        source = self.session.get(Source, source_id)
        if not source or source.user_id != self.user_id:
            raise InvalidReference("Source not found or doesn't belong to user")
        return source


class EntryService:
    """Transaction entry for the agent path: resolve loose references, then write."""

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.resolver = EntryResolver(session, user_id)
        self.transactions = TransactionService(session, user_id)

    @staticmethod
    def _cents(amount: Any) -> int:
        cents = to_cents(amount)
        if cents <= 0:
            raise TransactionValidationError("Amount must be at least 0.01")
        return cents

    def today(self) -> date:
        return datetime.now(ZoneInfo(get_settings().timezone)).date()

    def add_transaction(self, args: AddTransactionArgs) -> Transaction:
        with atomic(self.session):
            category = self.resolver.resolve_category(args.category, args.type)
            source = self.resolver.resolve_source(args.source_id)
            txn = self.transactions.create_in_unit(
                TransactionIn(
                    amount_cents=self._cents(args.amount),
                    type=args.type,
                    date=args.date or self.today(),
                    description=args.description or None,
                    category_id=category.id,
                    source_id=source.id,
                )
            )
        logger.info(
            f"entry_transaction_created: user_id={self.user_id} transaction_id={txn.id} "
            f"category_id={txn.category_id} source_id={txn.source_id}"
        )
        return txn

    def add_multiple(self, items: Iterable[Any]) -> BatchResult:
        def create_one(item: Any) -> Transaction:
            args = (
                item
                if isinstance(item, AddTransactionArgs)
                else AddTransactionArgs.model_validate(item)
            )
            return self.add_transaction(args)

        result = run_best_effort(items, create_one)
        logger.info(
            f"entry_batch_created: user_id={self.user_id} "
            f"created={result.total_created} failed={result.total_failed}"
        )
        return result

    def update_transaction(self, args: UpdateTransactionArgs) -> Transaction:
        with atomic(self.session):
            current = self.transactions.get_for_update(args.transaction_id)
            changes: dict[str, Any] = {}
            if args.amount is not None:
                changes["amount_cents"] = self._cents(args.amount)
            if args.type is not None:
                changes["type"] = args.type
            if args.date is not None:
                changes["date"] = args.date
            if args.description is not None:
                changes["description"] = args.description
            new_type = args.type or current.type
            if args.category is not None:
                changes["category_id"] = self.resolver.resolve_category(
                    args.category, new_type
                ).id
            elif new_type != current.type:
                # Same category name under the new type, created if missing.
                changes["category_id"] = self.resolver.resolve_category(
                    current.category.name, new_type
                ).id
            if args.source_id is not None:
                changes["source_id"] = self.resolver.resolve_source(args.source_id).id
            txn = self.transactions.update_in_unit(args.transaction_id, changes)
        logger.info(
            f"entry_transaction_updated: user_id={self.user_id} transaction_id={txn.id}"
        )
        return txn
