import os
import tempfile

# Importing database builds the engine from settings, so point it somewhere
# disposable before any project module loads.
os.environ.setdefault("LEDGER_DATA_DIR", tempfile.mkdtemp(prefix="ledger-tests-"))
os.environ.setdefault("LEDGER_AUDIT_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Jar, SourceType, TransactionType
from schemas import CategoryIn, SourceIn
from services import CategoryService, SourceService


@pytest.fixture()
def session():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture()
def make_category(session):
    def factory(
        name: str = "Food",
        txn_type: TransactionType = TransactionType.expense,
        user_id: int = 1,
        jar: Jar | None = None,
    ):
        return CategoryService(session, user_id).create(
            CategoryIn(name=name, type=txn_type, jar=jar)
        )

    return factory


@pytest.fixture()
def make_source(session):
    def factory(
        name: str = "Cash",
        balance_cents: int = 0,
        user_id: int = 1,
        source_type: SourceType = SourceType.cash,
    ):
        return SourceService(session, user_id).create(
            SourceIn(name=name, type=source_type, balance_cents=balance_cents)
        )

    return factory
