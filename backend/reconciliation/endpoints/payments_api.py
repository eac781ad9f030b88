"""
Payments Reconciliation API Endpoints

REST API for the deposit reconciliation engine:
- POST /api/payments/webhook - Receive a provider deposit notification
- GET /api/payments/status - Module status
- GET /api/payments/stats - Dashboard statistics
- GET /api/payments - Paginated deposit listing
- GET /api/payments/{deposit_id} - Deposit detail with match state
- GET /api/payments/{deposit_id}/candidates - Ranked candidate orders
- POST /api/payments/{deposit_id}/match - Match a deposit to an order
- POST /api/payments/{deposit_id}/unmatch - Release a deposit's match

Permissions:
- Webhook: Public (protected by per-provider signature)
- Operator actions record the X-User-Id header as the actor

Errors always come back as {"success": false, "error": "..."}.
"""

import logging
from typing import Optional
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database.connection import get_db
from database.payment_models import MatchType
from reconciliation.errors import ReconciliationError
from reconciliation.provider_registry import provider_registry
from reconciliation.services.reconciliation_service import ReconciliationService
from reconciliation.webhooks.ingestor import WebhookIngestor
from sentry_integration import capture_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments Reconciliation"])


# ==================== Request Models ====================

class MatchRequest(BaseModel):
    """Request to match a deposit to an order."""
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., alias="orderId", min_length=1, description="Order to mark as paid")
    is_manual: bool = Field(default=False, alias="isManual", description="Operator-confirmed match")


# ==================== Helpers ====================

def error_response(error: ReconciliationError) -> JSONResponse:
    """Render a reconciliation error as the standard failure body."""
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.message}
    )


def internal_error(operation: str, error: Exception) -> JSONResponse:
    logger.error(f"{operation} failed: {error}", exc_info=True)
    capture_exception(error, operation=operation)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": f"{operation} failed"}
    )


# ==================== Webhook ====================

@router.post("/webhook", summary="Receive deposit webhook")
async def receive_deposit_webhook(
    request: Request,
    x_payment_provider: Optional[str] = Header(None, alias="X-Payment-Provider"),
    x_webhook_signature: Optional[str] = Header(None, alias="X-Webhook-Signature"),
    db: AsyncSession = Depends(get_db)
):
    """
    Receive a bank deposit notification.

    This endpoint is publicly accessible but protected by signature verification.

    **Headers:**
    - X-Payment-Provider: bank_feed, toss or open_banking
    - X-Webhook-Signature: sha256=<hex HMAC-SHA256 of the raw body>

    Redeliveries of an already ingested transaction return 200 with
    status DUPLICATE so the sender stops retrying.
    """
    # Raw body is needed for signature verification
    body = await request.body()

    try:
        ingestor = WebhookIngestor(ReconciliationService(db))
        result = await ingestor.handle(body, x_payment_provider, x_webhook_signature)

        return {
            "success": True,
            "status": result.status.value,
            "depositId": result.deposit_id,
            "match": result.match.to_dict() if result.match else None
        }

    except ReconciliationError as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Deposit webhook", e)


# ==================== Dashboard ====================

@router.get("/status", summary="Module status")
async def get_module_status():
    """
    Get reconciliation module status.

    Returns enabled providers and the matching thresholds in force.
    """
    settings = get_settings()
    return {
        "module": "payments_reconciliation",
        "status": "operational",
        "version": settings.API_VERSION,
        "providers": provider_registry.to_dict(),
        "providers_enabled": [p.value for p in provider_registry.get_enabled_providers()],
        "thresholds": {
            "match_min_score": settings.MATCH_MIN_SCORE,
            "auto_match_threshold": settings.AUTO_MATCH_THRESHOLD,
            "manual_match_score": settings.MANUAL_MATCH_SCORE,
            "candidate_limit": settings.CANDIDATE_LIMIT,
            "candidate_window_days": settings.CANDIDATE_WINDOW_DAYS,
            "candidate_amount_tolerance": settings.CANDIDATE_AMOUNT_TOLERANCE,
            "evaluator_top_n": settings.EVALUATOR_TOP_N,
        },
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/stats", summary="Reconciliation statistics")
async def get_stats(db: AsyncSession = Depends(get_db)):
    """Counts by status, total deposited amount and match rate."""
    try:
        service = ReconciliationService(db)
        stats = await service.get_stats()
        return {"success": True, **stats}
    except ReconciliationError as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Statistics", e)


@router.get("", summary="List deposits")
async def list_deposits(
    status: Optional[str] = Query(default=None, description="Filter by deposit status"),
    bank_code: Optional[str] = Query(default=None, alias="bankCode", description="Filter by bank code"),
    search: Optional[str] = Query(default=None, description="Depositor name, memo or transaction id"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """
    Paginated deposit listing, newest transaction first.
    """
    try:
        service = ReconciliationService(db)
        result = await service.list_deposits(
            status=status,
            bank_code=bank_code,
            search=search,
            page=page,
            limit=limit
        )
        return {"success": True, **result}
    except ReconciliationError as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Deposit listing", e)


@router.get("/{deposit_id}", summary="Get deposit")
async def get_deposit(deposit_id: str, db: AsyncSession = Depends(get_db)):
    try:
        service = ReconciliationService(db)
        deposit = await service.get_deposit(deposit_id)
        return {"success": True, "deposit": deposit}
    except ReconciliationError as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Deposit lookup", e)


@router.get("/{deposit_id}/candidates", summary="Find match candidates")
async def get_candidates(deposit_id: str, db: AsyncSession = Depends(get_db)):
    """
    Ranked candidate orders for operator review.

    Candidates scoring below the surfacing threshold are never returned.
    """
    try:
        service = ReconciliationService(db)
        suggestions = await service.get_candidates(deposit_id)
        return {
            "success": True,
            "depositId": deposit_id,
            "candidates": [s.to_dict() for s in suggestions]
        }
    except ReconciliationError as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Candidate search", e)


# ==================== Matching ====================

@router.post("/{deposit_id}/match", summary="Match deposit to order")
async def match_deposit(
    deposit_id: str,
    request: MatchRequest,
    db: AsyncSession = Depends(get_db),
    x_user_id: Optional[str] = Header(default="system", alias="X-User-Id")
):
    """
    Match a deposit to an order and mark the order paid.

    Manual matches record the fixed manual confidence score.
    Returns 400 when the order is already matched to another deposit.
    """
    try:
        service = ReconciliationService(db)
        outcome = await service.commit_match(
            deposit_id=deposit_id,
            order_id=request.order_id,
            match_type=MatchType.MANUAL if request.is_manual else MatchType.AUTO,
            actor_id=x_user_id or "system"
        )
        return {
            "success": True,
            "message": "Deposit matched",
            "match": outcome.to_dict()
        }
    except ReconciliationError as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Match", e)


@router.post("/{deposit_id}/unmatch", summary="Release deposit match")
async def unmatch_deposit(
    deposit_id: str,
    db: AsyncSession = Depends(get_db),
    x_user_id: Optional[str] = Header(default="system", alias="X-User-Id")
):
    """
    Release a deposit's active match.

    The order returns to PENDING and the deposit to UNMATCHED.
    """
    try:
        service = ReconciliationService(db)
        outcome = await service.unmatch(deposit_id, actor_id=x_user_id or "system")
        return {
            "success": True,
            "message": "Match released",
            "match": outcome.to_dict()
        }
    except ReconciliationError as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Unmatch", e)
