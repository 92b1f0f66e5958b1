import pytest

from agent import ToolRegistry, UnknownTool, registry
from models import Jar, Source, SourceType
from schemas import CreateSourceArgs, ToolCallIn
from services import TransactionService, TransactionValidationError


def test_registry_exposes_tool_declarations() -> None:
    assert registry.names() == [
        "addMultipleTransactions",
        "addTransaction",
        "createCategory",
        "createSource",
        "deleteMultipleTransactions",
        "deleteTransaction",
        "updateTransaction",
    ]
    declarations = {d["name"]: d for d in registry.declarations()}
    add = declarations["addTransaction"]["parameters"]
    assert "sourceId" in add["properties"]
    assert set(add["required"]) == {"amount", "type", "category"}


def test_duplicate_registration_is_rejected() -> None:
    local = ToolRegistry()
    local.register("noop", CreateSourceArgs, "noop")(lambda s, u, a: ("ok", {}))

    with pytest.raises(ValueError):
        local.register("noop", CreateSourceArgs, "again")(lambda s, u, a: ("ok", {}))


def test_add_transaction_tool(session, make_source):
    bank = make_source("Bank", balance_cents=10_000)

    result = registry.call(
        session,
        1,
        "addTransaction",
        {"amount": 25.5, "type": "expense", "category": "Food", "sourceId": bank.id},
    )

    assert result.ok
    assert result.type == "transaction"
    assert result.data["amount_cents"] == 2_550
    assert result.data["category"]["name"] == "Food"
    assert result.data["source"]["balance_cents"] == 7_450


def test_unknown_tool_and_bad_arguments(session):
    with pytest.raises(UnknownTool):
        registry.call(session, 1, "transferMoney", {})
    with pytest.raises(TransactionValidationError, match="Invalid arguments"):
        registry.call(session, 1, "addTransaction", {"amount": -3, "type": "expense"})


def test_dispatch_turns_failures_into_error_results(session, make_source):
    make_source("Bank", balance_cents=1_000)
    calls = [
        ToolCallIn(
            name="addTransaction",
            arguments={"amount": "2", "type": "expense", "category": "Snacks"},
        ),
        ToolCallIn(name="transferMoney"),
        ToolCallIn(name="deleteTransaction", arguments={"transactionId": 999}),
        ToolCallIn(
            name="addTransaction",
            arguments={"amount": "50", "type": "expense", "category": "Snacks"},
        ),
    ]

    results = registry.dispatch(session, 1, calls)

    assert [r.type for r in results] == ["transaction", "error", "error", "error"]
    assert [r.ok for r in results] == [True, False, False, False]
    assert results[1].message == "Unknown tool: transferMoney"
    assert results[3].message == "Insufficient funds in Bank. Current balance: 8.00"


def test_batch_tool_reports_partial_success(session, make_source):
    make_source("Bank", balance_cents=1_000)

    result = registry.call(
        session,
        1,
        "addMultipleTransactions",
        {
            "transactions": [
                {"amount": 3, "type": "expense", "category": "Bus"},
                {"amount": 300, "type": "expense", "category": "Bus"},
                {"amount": 10, "type": "income", "category": "Gift"},
            ]
        },
    )

    assert result.type == "transactions"
    assert result.data["total_created"] == 2
    assert result.data["total_failed"] == 1
    assert result.data["failed"][0]["spec"]["amount"] == 300


def test_update_and_delete_tools(session, make_source):
    bank = make_source("Bank", balance_cents=10_000)
    created = registry.call(
        session, 1, "addTransaction", {"amount": 40, "type": "expense", "category": "Fuel"}
    )
    txn_id = created.data["id"]

    updated = registry.call(
        session,
        1,
        "updateTransaction",
        {"transactionId": txn_id, "amount": 25, "description": "Half tank"},
    )
    assert updated.data["amount_cents"] == 2_500
    assert updated.data["description"] == "Half tank"
    assert session.get(Source, bank.id).balance_cents == 7_500

    deleted = registry.call(session, 1, "deleteTransaction", {"transactionId": txn_id})
    assert deleted.type == "deleted"
    assert deleted.data == {"transaction_id": txn_id, "amount_cents": 2_500}
    assert session.get(Source, bank.id).balance_cents == 10_000


def test_delete_multiple_tool(session, make_source):
    make_source("Bank", balance_cents=10_000)
    for amount in (5, 6):
        registry.call(
            session, 1, "addTransaction", {"amount": amount, "type": "expense", "category": "Tea"}
        )

    result = registry.call(session, 1, "deleteMultipleTransactions", {"type": "expense"})

    assert result.data == {"deleted_count": 2, "type": "expense"}
    assert TransactionService(session, 1).count() == 0


def test_create_category_tool_reuses_existing(session):
    first = registry.call(
        session,
        1,
        "createCategory",
        {"name": "Courses", "type": "expense", "sixJarsCategory": "education"},
    )
    again = registry.call(
        session, 1, "createCategory", {"name": "courses", "type": "expense"}
    )

    assert first.data["jar"] == Jar.education.value
    assert again.data["id"] == first.data["id"]


def test_create_source_tool(session):
    created = registry.call(
        session,
        1,
        "createSource",
        {"name": "GoPay", "type": "wallet", "balance": "12.34"},
    )
    again = registry.call(session, 1, "createSource", {"name": "gopay"})
    odd = registry.call(session, 1, "createSource", {"name": "Safe", "type": "vault"})

    assert created.data["type"] == SourceType.e_wallet.value
    assert created.data["balance_cents"] == 1_234
    assert again.data["id"] == created.data["id"]
    assert odd.data["type"] == SourceType.other.value
