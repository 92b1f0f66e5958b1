import datetime as dt
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class BulkDeleteScope(str, Enum):
    expense = "expense"
    income = "income"
    all = "all"


class SourceType(str, Enum):
    bank_account = "bank_account"
    e_wallet = "e_wallet"
    cash = "cash"
    other = "other"


class SourceStatus(str, Enum):
    available = "available"
    locked = "locked"
    not_available = "not_available"


class Jar(str, Enum):
    necessities = "necessities"
    play = "play"
    education = "education"
    financial_freedom = "financial_freedom"
    long_term_savings = "long_term_savings"
    give = "give"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    jar: Mapped[Optional[Jar]] = mapped_column(SAEnum(Jar))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category", passive_deletes="all"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )


class Source(Base, TimestampMixin):
    __tablename__ = "sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[SourceType] = mapped_column(SAEnum(SourceType), nullable=False)
    # Cached aggregate: opening_balance_cents + signed sum of its transactions.
    balance_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    opening_balance_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    status: Mapped[SourceStatus] = mapped_column(
        SAEnum(SourceStatus), nullable=False, default=SourceStatus.available
    )
    interest_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    category_label: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    transfer_time: Mapped[str] = mapped_column(
        String(50), nullable=False, default="Instant"
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="source", passive_deletes="all"
    )

    __mapper_args__ = {"version_id_col": version_id}


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    source_id: Mapped[int] = mapped_column(ForeignKey("sources.id"), nullable=False)

    category: Mapped["Category"] = relationship(
        "Category", back_populates="transactions"
    )
    source: Mapped["Source"] = relationship("Source", back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type", "user_id", "type"),
        Index("ix_transactions_source", "source_id"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )
