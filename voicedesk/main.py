"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from voicedesk.core.config import settings
from voicedesk.core.container import build_services
from voicedesk.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Callers' phone numbers and transcripts stay out of Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from voicedesk.core.rate_limit import limiter


# ============================================================================
# Lifespan
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(SessionLocal)
    app.state.services = services
    if settings.QUEUE_PROCESSOR_ENABLED:
        services.processor.start()
    else:
        logger.info("Queue processor disabled; use POST /queue/process or the worker")
    try:
        yield
    finally:
        await services.processor.stop()
        await services.jobs.drain()


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="VoiceDesk API",
    description="Multi-tenant voice receptionist backend",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ============================================================================
# Routers
# ============================================================================

from voicedesk.routers import appointments, queue, webhooks

# Webhooks (Retell call events, per tenant)
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Operator queue view and actions
app.include_router(queue.router)

# Appointment reminder hooks
app.include_router(appointments.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
