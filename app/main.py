# app/main.py
"""
FastAPI application entry point.
Includes security middleware, error handlers, all routers, and the
background reconciler task.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from app.routers import parking, bookings, payments, admin, health
from app.database import create_tables, SessionLocal
from app.config import settings
from app.exceptions import ParkingError
from app.services.reconciler import ReconcilerState, run_reconciler
from app.utils.logger import get_logger
import time
import asyncio

logger = get_logger(__name__)

app = FastAPI(
    title="Parking Slot Reservation API",
    description="Parking space registry, slot availability, and atomic reservations.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Reconciler checkpoint is owned by this app instance
app.state.reconciler_state = ReconcilerState()
app.state.reconciler_task = None

# ── CORS (mobile app + admin dashboard) ──────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to dashboard origin in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth in front of every endpoint except health
    and docs. Set API_KEY in .env. Leave empty to disable auth.
    """
    open_paths = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(ParkingError)
async def parking_error_handler(request: Request, exc: ParkingError):
    if exc.is_defect:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message} {exc.context}")
    else:
        logger.info(f"{request.method} {request.url.path} → {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(parking.router,  prefix="/api/v1", tags=["🅿️  Parking Spaces"])
app.include_router(payments.router, prefix="/api/v1", tags=["💳 Payments"])
app.include_router(bookings.router, prefix="/api/v1", tags=["🎫 Bookings"])
app.include_router(admin.router,    prefix="/api/v1", tags=["🛠  Admin"])
app.include_router(health.router,   prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 Parking Backend starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"🕒 Booking time zone: {settings.TIMEZONE}")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")

    if settings.RECONCILER_ENABLED:
        app.state.reconciler_task = asyncio.create_task(
            run_reconciler(SessionLocal, app.state.reconciler_state, settings.RECONCILE_INTERVAL_SECONDS),
            name="reconciler",
        )
    else:
        logger.warning("Reconciler disabled — expired bookings will not release their slots")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Parking Backend shutting down...")
    task = app.state.reconciler_task
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
