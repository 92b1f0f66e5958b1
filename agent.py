"""
Tool registry for the chat agent.

The language-model adapter turns a model's function calls into
``(name, arguments)`` pairs; this module validates the arguments against a
pydantic model and hands them to the ledger operations. Prompting and
response parsing live outside this package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from database import StorageError, atomic
from models import Category, Source, Transaction
from schemas import (
    AddMultipleTransactionsArgs,
    AddTransactionArgs,
    CreateCategoryArgs,
    CreateSourceArgs,
    DeleteMultipleTransactionsArgs,
    DeleteTransactionArgs,
    SourceIn,
    ToolCallIn,
    UpdateTransactionArgs,
    to_cents,
)
from services import (
    BatchResult,
    BatchService,
    BulkDeleteResult,
    DeleteResult,
    EntryResolver,
    EntryService,
    SourceService,
    TransactionService,
    TransactionValidationError,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Session, int, Any], Any]


class UnknownTool(LookupError):
    pass


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: Handler


@dataclass
class ToolResult:
    name: str
    type: str
    data: Optional[dict[str, Any]] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.type != "error"


def transaction_payload(txn: Transaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "amount_cents": txn.amount_cents,
        "type": txn.type.value,
        "date": txn.date.isoformat(),
        "description": txn.description,
        "category": {"id": txn.category.id, "name": txn.category.name},
        "source": {
            "id": txn.source.id,
            "name": txn.source.name,
            "balance_cents": txn.source.balance_cents,
        },
    }


def batch_payload(result: BatchResult) -> dict[str, Any]:
    return {
        "successful": [transaction_payload(txn) for txn in result.successful],
        "failed": [{"spec": item.spec, "error": item.error} for item in result.failed],
        "total_created": result.total_created,
        "total_failed": result.total_failed,
    }


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(
        self, name: str, args_model: type[BaseModel], description: str
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            if name in self._tools:
                raise ValueError(f"Tool already registered: {name}")
            self._tools[name] = Tool(name, description, args_model, handler)
            return handler

        return decorator

    def names(self) -> list[str]:
        return sorted(self._tools)

    def get(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownTool(f"Unknown tool: {name}")
        return tool

    def declarations(self) -> list[dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.args_model.model_json_schema(by_alias=True),
            }
            for tool in (self._tools[name] for name in self.names())
        ]

    def call(
        self, session: Session, user_id: int, name: str, arguments: dict[str, Any]
    ) -> ToolResult:
        tool = self.get(name)
        try:
            args = tool.args_model.model_validate(arguments or {})
        except ValidationError as exc:
            raise TransactionValidationError(
                f"Invalid arguments for {name}: {exc.error_count()} error(s); "
                + "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in exc.errors()
                )
            ) from exc
        logger.info(f"tool_call: user_id={user_id} tool={name}")
        kind, data = tool.handler(session, user_id, args)
        return ToolResult(name=name, type=kind, data=data)

    def dispatch(
        self, session: Session, user_id: int, calls: list[ToolCallIn]
    ) -> list[ToolResult]:
        """Run calls in order; a failing call becomes an error result."""
        results: list[ToolResult] = []
        for call in calls:
            try:
                results.append(self.call(session, user_id, call.name, call.arguments))
            except (ValueError, LookupError, StorageError) as exc:
                logger.warning(f"tool_call_failed: tool={call.name} error={exc}")
                results.append(ToolResult(name=call.name, type="error", message=str(exc)))
        return results


registry = ToolRegistry()


@registry.register(
    "addTransaction",
    AddTransactionArgs,
    "Records a new expense or income transaction for the user",
)
def add_transaction(session: Session, user_id: int, args: AddTransactionArgs):
    txn = EntryService(session, user_id).add_transaction(args)
    return "transaction", transaction_payload(txn)


@registry.register(
    "addMultipleTransactions",
    AddMultipleTransactionsArgs,
    "Records several transactions at once; each one succeeds or fails on its own",
)
def add_multiple_transactions(
    session: Session, user_id: int, args: AddMultipleTransactionsArgs
):
    result = EntryService(session, user_id).add_multiple(args.transactions)
    return "transactions", batch_payload(result)


@registry.register(
    "updateTransaction",
    UpdateTransactionArgs,
    "Changes the amount, type, category, source, date or description of a transaction",
)
def update_transaction(session: Session, user_id: int, args: UpdateTransactionArgs):
    txn = EntryService(session, user_id).update_transaction(args)
    return "transaction", transaction_payload(txn)


@registry.register(
    "deleteTransaction",
    DeleteTransactionArgs,
    "Deletes one transaction and restores its source balance",
)
def delete_transaction(session: Session, user_id: int, args: DeleteTransactionArgs):
    result: DeleteResult = TransactionService(session, user_id).delete(
        args.transaction_id
    )
    return "deleted", {
        "transaction_id": result.transaction_id,
        "amount_cents": result.amount_cents,
    }


@registry.register(
    "deleteMultipleTransactions",
    DeleteMultipleTransactionsArgs,
    "Deletes all of the user's expense, income or all transactions",
)
def delete_multiple_transactions(
    session: Session, user_id: int, args: DeleteMultipleTransactionsArgs
):
    result: BulkDeleteResult = BatchService(session, user_id).bulk_delete(args.type)
    return "deleted", {"deleted_count": result.deleted_count, "type": result.type.value}


@registry.register(
    "createCategory",
    CreateCategoryArgs,
    "Creates an expense or income category, reusing an existing one with the same name",
)
def create_category(session: Session, user_id: int, args: CreateCategoryArgs):
    with atomic(session):
        category = EntryResolver(session, user_id).resolve_category(
            args.name, args.type, jar=args.jar
        )
    return "category", _category_payload(category)


@registry.register(
    "createSource",
    CreateSourceArgs,
    "Creates a money source such as a bank account or wallet, reusing one with the same name",
)
def create_source(session: Session, user_id: int, args: CreateSourceArgs):
    sources = SourceService(session, user_id)
    for source in sources.list_all():
        if source.name.lower() == args.name.strip().lower():
            return "source", _source_payload(source)
    source = sources.create(
        SourceIn(name=args.name, type=args.type, balance_cents=to_cents(args.balance))
    )
    return "source", _source_payload(source)


def _category_payload(category: Category) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "jar": category.jar.value if category.jar else None,
    }


def _source_payload(source: Source) -> dict[str, Any]:
    return {
        "id": source.id,
        "name": source.name,
        "type": source.type.value,
        "balance_cents": source.balance_cents,
    }
