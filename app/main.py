"""
app/main.py

Purpose: Application entry point

- Builds the FastAPI app (logging, CORS, timing, error handlers)
- Registers the WhatsApp, Stripe and health routers
- Startup: validate settings, connect to MongoDB, ensure indexes
- Runs the periodic sweep of the in-process dedup cache / rate limiter
- No business logic should be written here
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager, suppress
import asyncio
import time

from app.core.config import settings, validate_settings
from app.core.errors import add_exception_handlers
from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, check_database_health
from app.db.indexes import create_indexes
from app.dependencies import get_services
from app.api import billing, health, webhook

setup_logging()
logger = get_logger(__name__)

SWEEP_INTERVAL_SECONDS = 60

# Twilio times out webhook calls after 15s
SLOW_REQUEST_SECONDS = 5.0


async def _sweep_loop():
    """Keeps the in-process dedup cache and rate limiter bounded."""
    while True:
        await asyncio.sleep(SWEEP_INTERVAL_SECONDS)
        await sweep_once()


async def sweep_once():
    try:
        removed = get_services().admission.sweep()
    except Exception as e:
        # Never propagate: _sweep_loop must keep running
        logger.error(f"In-process sweep failed: {e}", exc_info=True)
        return None
    logger.debug(f"Swept in-process maps: {removed}")
    return removed


async def _startup():
    validate_settings()
    await connect_to_mongo()
    await create_indexes()

    if await check_database_health():
        logger.info("✅ Database ready")
    else:
        logger.warning("⚠️ Database health check failed during startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Starting CobraYa ({settings.ENVIRONMENT}, debug={settings.DEBUG})")
    try:
        await _startup()
    except Exception as e:
        logger.critical(f"Failed to start application: {e}", exc_info=True)
        raise

    sweeper = asyncio.create_task(_sweep_loop())
    logger.info("🎉 CobraYa started")

    yield

    logger.info("🛑 Shutting down CobraYa...")
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper

    try:
        await close_mongo_connection()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


app = FastAPI(
    title="CobraYa - Cobranza por WhatsApp",
    description="WhatsApp debt-collection assistant for small businesses",
    version=health.APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    started = time.time()
    response = await call_next(request)
    elapsed = time.time() - started
    response.headers["X-Process-Time"] = str(elapsed)

    if elapsed > SLOW_REQUEST_SECONDS:
        logger.warning(
            f"Slow request: {request.method} {request.url.path}",
            extra={"process_time": elapsed}
        )

    return response


add_exception_handlers(app)

app.include_router(webhook.router, prefix=settings.API_PREFIX, tags=["Webhook"])
app.include_router(billing.router, prefix=settings.API_PREFIX, tags=["Billing"])
app.include_router(health.router, tags=["Health"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
