# plazas_api/main.py
"""
FastAPI application entry point.
Includes security middleware, domain/global error handlers, and all routers.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from plazas_api.routers import health, occupancies, plazas, reservations, subscriptions
from plazas_api.database import create_tables
from plazas_api.config import settings
from plazas_api.errors import PlazaEngineError
from plazas_api.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="Plazas API",
    description="Plaza state, reservations, tariffs and subscription expiry for parking lots.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (driver app and operator panel) ─────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to the front-end origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth.
    Health, docs, the payment webhook and the cron sweeps are excluded; the
    sweeps carry their own X-Cron-Key. Leave API_KEY empty to disable auth.
    """
    open_paths = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}
    open_suffixes = ("/payment", "/expire")

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in self.open_paths or path.endswith(self.open_suffixes) or not settings.API_KEY:
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
@app.exception_handler(PlazaEngineError)
async def domain_exception_handler(request: Request, exc: PlazaEngineError):
    logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(plazas.router,        prefix="/api/v1", tags=["🅿️  Plazas"])
app.include_router(reservations.router,  prefix="/api/v1", tags=["📅 Reservations"])
app.include_router(occupancies.router,   prefix="/api/v1", tags=["🚗 Occupancies"])
app.include_router(subscriptions.router, prefix="/api/v1", tags=["🎫 Subscriptions"])
app.include_router(health.router,        prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 Plazas API starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"🕒 Lot timezone: {settings.LOT_TIMEZONE}")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_HOST}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Plazas API shutting down...")
