"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from formbridge.core.config import settings
from formbridge.core.errors import (
    CredentialUnavailableError,
    ExternalApiError,
    FormConfigurationError,
    InvalidWebhookPayload,
    NotFoundError,
    ResponseValidationError,
)
from formbridge.core.structured_logging import configure_logging
from formbridge.db.session import engine

configure_logging()
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
        send_default_pii=False,  # Answers may contain PII
    )
    logger.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from formbridge.core.rate_limit import limiter

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Formbridge API",
    description="Airtable-backed forms with conditional logic and two-way sync",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Owner-Id"],
)

# ============================================================================
# Error mapping
# ============================================================================


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"success": False, "error": str(exc)})


@app.exception_handler(FormConfigurationError)
async def form_configuration_handler(request: Request, exc: FormConfigurationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": exc.message, "details": exc.details},
    )


@app.exception_handler(ResponseValidationError)
async def response_validation_handler(request: Request, exc: ResponseValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Validation failed", "details": exc.details},
    )


@app.exception_handler(InvalidWebhookPayload)
async def invalid_payload_handler(request: Request, exc: InvalidWebhookPayload):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(CredentialUnavailableError)
async def credential_handler(request: Request, exc: CredentialUnavailableError):
    return JSONResponse(status_code=401, content={"success": False, "error": str(exc)})


@app.exception_handler(ExternalApiError)
async def external_api_handler(request: Request, exc: ExternalApiError):
    logger.warning("Airtable API error surfaced to client: %s", exc.message)
    return JSONResponse(status_code=502, content={"success": False, "error": exc.message})


# ============================================================================
# Routers
# ============================================================================

from formbridge.routers import airtable, forms, internal, responses, webhooks

app.include_router(forms.router)
app.include_router(airtable.router)
app.include_router(forms.public_router)
app.include_router(responses.router)

# Webhooks (Airtable change notifications, manual resync)
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Internal endpoints (scheduled/cron jobs - protected by INTERNAL_SECRET)
app.include_router(internal.router)


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
