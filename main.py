import datetime as dt
import logging
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from agent import UnknownTool, registry
from config import get_settings
from database import SessionLocal, StorageError
from models import TransactionType
from scheduler import SchedulerManager
from schemas import (
    BulkDeleteIn,
    CategoryIn,
    CategoryOut,
    CategoryRename,
    SourceIn,
    SourceOut,
    SourceUpdate,
    ToolCallIn,
    TransactionIn,
    TransactionOut,
    TransactionPatch,
)
from services import (
    BatchService,
    CategoryService,
    PermissionDenied,
    RecordNotFound,
    SourceService,
    TransactionFilters,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Source Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(x_user_id: int = Header(..., gt=0)) -> int:
    # Set by the authenticating proxy in front of this service.
    return x_user_id


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (RecordNotFound, UnknownTool)):
        status_code = 404
    elif isinstance(exc, PermissionDenied):
        status_code = 403
    elif isinstance(exc, StorageError):
        status_code = 503
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=str(exc))


DOMAIN_ERRORS = (ValueError, LookupError, StorageError)

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if settings.audit_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400, content={"detail": jsonable_encoder(exc.errors())}
    )


@app.get("/api/sources", response_model=list[SourceOut])
def list_sources(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return SourceService(db, user_id).list_all()


@app.post("/api/sources", response_model=SourceOut, status_code=201)
def create_source(
    data: SourceIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return SourceService(db, user_id).create(data)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.get("/api/sources/total")
def sources_total(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return {"total_cents": SourceService(db, user_id).total_balance()}


@app.get("/api/sources/audit")
def sources_audit(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    drifts = SourceService(db, user_id).audit_balances()
    return {
        "consistent": not drifts,
        "drifts": [
            {
                "source_id": d.source_id,
                "name": d.name,
                "cached_cents": d.cached_cents,
                "expected_cents": d.expected_cents,
                "drift_cents": d.drift_cents,
            }
            for d in drifts
        ],
    }


@app.get("/api/sources/{source_id}", response_model=SourceOut)
def get_source(
    source_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return SourceService(db, user_id).get(source_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.put("/api/sources/{source_id}", response_model=SourceOut)
def update_source(
    source_id: int,
    data: SourceUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return SourceService(db, user_id).update(source_id, data)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.delete("/api/sources/{source_id}")
def delete_source(
    source_id: int,
    cascade: bool = Query(False),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        removed = SourceService(db, user_id).delete(source_id, cascade=cascade)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"message": "Source removed", "transactions_removed": removed}


@app.post("/api/sources/{source_id}/reconcile", response_model=SourceOut)
def reconcile_source(
    source_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return SourceService(db, user_id).reconcile(source_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    type: Optional[TransactionType] = Query(None),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).list_all(type)


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).create(data)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def rename_category(
    category_id: int,
    data: CategoryRename,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).rename(category_id, data.name)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"message": "Category removed"}


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    type: Optional[TransactionType] = Query(None),
    category_id: Optional[int] = Query(None),
    source_id: Optional[int] = Query(None),
    start: Optional[dt.date] = Query(None),
    end: Optional[dt.date] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = TransactionFilters(
        type=type, category_id=category_id, source_id=source_id, start=start, end=end
    )
    return TransactionService(db, user_id).list(filters, limit=limit, offset=offset)


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).create(data)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.post("/api/transactions/batch")
def create_transactions_batch(
    specs: list[Any] = Body(...),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = BatchService(db, user_id).add_multiple(specs)
    return {
        "successful": [
            TransactionOut.model_validate(txn).model_dump(mode="json")
            for txn in result.successful
        ],
        "failed": [
            {"spec": jsonable_encoder(item.spec), "error": item.error}
            for item in result.failed
        ],
        "total_created": result.total_created,
        "total_failed": result.total_failed,
    }


@app.post("/api/transactions/bulk-delete")
def bulk_delete_transactions(
    data: BulkDeleteIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = BatchService(db, user_id).bulk_delete(data.type)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"deleted_count": result.deleted_count, "type": result.type.value}


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).get(transaction_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.patch("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    patch: TransactionPatch,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).update(transaction_id, patch)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = TransactionService(db, user_id).delete(transaction_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"message": "Transaction removed", "amount_cents": result.amount_cents}


@app.get("/api/agent/tools")
def agent_tools():
    return registry.declarations()


@app.post("/api/agent/tools/{name}")
def agent_call_tool(
    name: str,
    arguments: Optional[dict[str, Any]] = Body(None),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return registry.call(db, user_id, name, arguments or {})
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@app.post("/api/agent/dispatch")
def agent_dispatch(
    calls: list[ToolCallIn],
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return {"results": registry.dispatch(db, user_id, calls)}
