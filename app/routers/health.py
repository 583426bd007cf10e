# app/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + reconciler + payment gateway reachability.
"""

import requests
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from sqlalchemy import text
from app.database import get_db
from app.config import settings
from datetime import datetime, timedelta

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Reconciler checkpoint (last pass, totals)
    - Payment gateway: configured / reachable
    """
    result = {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "reconciler": "disabled",
        "payment_gateway": "not_configured",
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    # Reconciler: stale if no pass within three intervals
    state = getattr(request.app.state, "reconciler_state", None)
    if settings.RECONCILER_ENABLED and state is not None:
        checkpoint = state.to_dict()
        stale_after = timedelta(seconds=settings.RECONCILE_INTERVAL_SECONDS * 3)
        if state.last_run_at and datetime.utcnow() - state.last_run_at > stale_after:
            checkpoint["status"] = "stale"
            result["status"] = "degraded"
        else:
            checkpoint["status"] = "ok" if state.last_error is None else "error"
        result["reconciler"] = checkpoint

    # Ping the payment gateway
    if settings.STRIPE_SECRET_KEY:
        try:
            resp = requests.get(
                f"{settings.STRIPE_API_BASE.rstrip('/')}/balance",
                auth=(settings.STRIPE_SECRET_KEY, ""),
                timeout=3,
            )
            result["payment_gateway"] = "ok" if resp.status_code == 200 else f"http_{resp.status_code}"
        except requests.exceptions.ConnectionError:
            result["payment_gateway"] = "unreachable"
            result["status"] = "degraded"
        except requests.exceptions.RequestException as e:
            result["payment_gateway"] = f"error: {str(e)}"

    return result
