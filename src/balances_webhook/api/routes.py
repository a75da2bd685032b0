"""
API routes for webhook ingestion and source/transaction management.
"""
import hmac
import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from config.settings import Settings, settings
from ..core.envelope import FixedWindowRateLimiter
from ..core.exceptions import NotFoundError
from ..core.parse_error_repository import ParseErrorRepository
from ..core.source_resolver import SourceResolver
from ..core.transaction_repository import TransactionRepository
from ..core.validation import is_valid_source_value
from ..core.webhook_processor import WebhookProcessor
from ..models.database import get_db
from ..models.schemas import CreateSourceRequest, UserSourceRequest

logger = logging.getLogger(__name__)

router = APIRouter()
v2_router = APIRouter()

# Shared by both webhook endpoints for the life of the process
rate_limiter = FixedWindowRateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)


def get_settings() -> Settings:
    return settings


def get_rate_limiter() -> FixedWindowRateLimiter:
    return rate_limiter


def verify_admin_api_key(
    x_api_key: Optional[str] = Header(None),
    app_settings: Settings = Depends(get_settings),
):
    """
    Verify API key for management endpoints.

    Args:
        x_api_key: API key from X-API-Key header

    Raises:
        HTTPException: If API key is invalid or missing
    """
    # No key configured means the management endpoints are open
    if not app_settings.admin_api_key:
        return True

    if not x_api_key:
        raise HTTPException(
            status_code=401,
            detail="API key required. Provide X-API-Key header."
        )

    if not hmac.compare_digest(x_api_key.encode("utf-8"), app_settings.admin_api_key.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Invalid API key")

    return True


def _peer(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


async def read_body_capped(request: Request, max_bytes: int) -> bytes:
    """
    Read the request body, stopping once it grows past max_bytes.

    The returned bytes are then at most one chunk over the limit, which is
    enough for the envelope size check to answer 413. A declared
    Content-Length over the limit is not read at all.
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.strip().isdigit() and int(declared) > max_bytes:
        return b""

    chunks = []
    received = 0
    async for chunk in request.stream():
        chunks.append(chunk)
        received += len(chunk)
        if received > max_bytes:
            logger.warning(f"Request body exceeded {max_bytes} bytes, stopped reading")
            break
    return b"".join(chunks)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

@router.post("/webhook/sms")
async def receive_sms_webhook(
    request: Request,
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    """Receive a raw bank SMS, parse it and store the transaction."""
    body = await read_body_capped(request, app_settings.sms_max_payload_bytes)
    processor = WebhookProcessor(db, app_settings, limiter)
    outcome = await run_in_threadpool(processor.handle_sms, request.headers, body, _peer(request))
    return JSONResponse(status_code=outcome.http_status, content=outcome.to_response())


@v2_router.post("/webhook/transaction")
async def receive_transaction_webhook(
    request: Request,
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    """Receive a structured transaction payload, route it to its source and store it."""
    body = await read_body_capped(request, app_settings.structured_max_payload_bytes)
    processor = WebhookProcessor(db, app_settings, limiter)
    outcome = await run_in_threadpool(processor.handle_structured, request.headers, body, _peer(request))
    return JSONResponse(status_code=outcome.http_status, content=outcome.to_response())


@v2_router.get("/webhook/transaction")
async def transaction_webhook_health():
    """Health check for senders of the structured webhook."""
    return {
        "status": "healthy",
        "version": "v2",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ---------------------------------------------------------------------------
# Sources and subscriptions
# ---------------------------------------------------------------------------

@router.get("/sources", dependencies=[Depends(verify_admin_api_key)])
def get_sources(
    user_id: Optional[str] = Query(None, alias="userId"),
    source_id: Optional[str] = Query(None, alias="sourceId"),
    db: Session = Depends(get_db),
):
    """Look up one source by id, or list the sources a user is subscribed to."""
    resolver = SourceResolver(db)
    if source_id:
        source = resolver.get_source_by_id(source_id)
        if source is None:
            raise NotFoundError("Source", source_id)
        return {"source": source.to_dict()}
    if user_id:
        sources = resolver.get_sources_for_user(user_id)
        return {"sources": [s.to_dict() for s in sources], "count": len(sources)}
    raise HTTPException(status_code=400, detail="Provide userId or sourceId")


@router.post("/sources", status_code=201, dependencies=[Depends(verify_admin_api_key)])
def create_source(body: CreateSourceRequest, db: Session = Depends(get_db)):
    """Register a source explicitly. Returns the existing one if already known."""
    if not is_valid_source_value(body.source_value, body.source_type):
        raise HTTPException(status_code=400, detail=f"Invalid {body.source_type} source value")
    source = SourceResolver(db).find_or_create_source(body.source_type, body.source_value)
    return {"source": source.to_dict()}


@router.get("/sources/users", dependencies=[Depends(verify_admin_api_key)])
def get_source_users(source_id: str = Query(..., alias="sourceId"), db: Session = Depends(get_db)):
    """User ids actively subscribed to a source."""
    resolver = SourceResolver(db)
    if resolver.get_source_by_id(source_id) is None:
        raise NotFoundError("Source", source_id)
    user_ids = resolver.get_users_for_source(source_id)
    return {"sourceId": source_id, "userIds": user_ids, "count": len(user_ids)}


@router.post("/sources/users", status_code=201, dependencies=[Depends(verify_admin_api_key)])
def add_source_user(body: UserSourceRequest, db: Session = Depends(get_db)):
    """Subscribe a user to a source."""
    link = SourceResolver(db).add_user_source(body.user_id, body.source_id)
    return {"userSource": link.to_dict()}


@router.delete("/sources/users", dependencies=[Depends(verify_admin_api_key)])
def remove_source_user(
    user_id: str = Query(..., alias="userId"),
    source_id: str = Query(..., alias="sourceId"),
    db: Session = Depends(get_db),
):
    """Deactivate a user's subscription to a source."""
    if not SourceResolver(db).remove_user_source(user_id, source_id):
        raise NotFoundError("Active subscription", f"{user_id}/{source_id}")
    return {"success": True}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

@router.get("/transactions", dependencies=[Depends(verify_admin_api_key)])
def get_transactions(
    user_id: str = Query(..., alias="userId"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Transactions from every source the user is subscribed to, newest first."""
    transactions = TransactionRepository(db).get_transactions_for_user(user_id, limit, offset)
    return {
        "transactions": [t.to_dict() for t in transactions],
        "count": len(transactions),
        "limit": limit,
        "offset": offset,
    }


@router.get("/transactions/metrics", dependencies=[Depends(verify_admin_api_key)])
def get_transaction_metrics(
    user_id: Optional[str] = Query(None, alias="userId"),
    start_date: Optional[date] = Query(None, alias="startDate", description="Start date (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, alias="endDate", description="End date (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
):
    """Total, count and average of processed transactions."""
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")

    metrics = TransactionRepository(db).get_transaction_metrics(user_id, start_date, end_date)
    return {
        "totalAmount": str(metrics["total_amount"]),
        "transactionCount": metrics["transaction_count"],
        "averageAmount": str(metrics["average_amount"]),
        "lastUpdated": datetime.now(timezone.utc).isoformat(),
    }


# ---------------------------------------------------------------------------
# Parse errors
# ---------------------------------------------------------------------------

@router.get("/parse-errors", dependencies=[Depends(verify_admin_api_key)])
def get_parse_errors(
    resolved: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Messages the SMS parser rejected, newest first."""
    records = ParseErrorRepository(db).get_parse_errors(resolved, limit, offset)
    return {"parseErrors": [r.to_dict() for r in records], "count": len(records)}


@router.post("/parse-errors/{parse_error_id}/resolve", dependencies=[Depends(verify_admin_api_key)])
def resolve_parse_error(parse_error_id: str, db: Session = Depends(get_db)):
    """Mark a parse error as handled."""
    record = ParseErrorRepository(db).resolve_parse_error(parse_error_id)
    return {"parseError": record.to_dict()}
