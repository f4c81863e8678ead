"""Paygate - payment gateway integration service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.deps import make_client_factory
from app.api.routes import callback, channels, open_payments, payments, reconciliation
from app.core.config import settings
from app.core.database import Base, SessionLocal, engine
from app.core.exceptions import PaymentError
from app.core.logging import setup_logging
from app.services.payment.channels import validate_stored_channels
from app.services.payment.gateway import build_http_client
from app.services.payment.poller import ReconciliationPoller
from app.services.payment.signature import SignatureEngine

logger = setup_logging(
    settings.log_level,
    secrets=(settings.gateway_private_key, settings.gateway_api_key),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    # A malformed stored fee schedule must stop the service before it quotes.
    db = SessionLocal()
    try:
        validate_stored_channels(db)
    finally:
        db.close()

    app.state.http_client = build_http_client(settings)
    poller = None
    if settings.poller_enabled:
        signer = SignatureEngine(
            settings.gateway_merchant_code, settings.gateway_private_key
        )
        poller = ReconciliationPoller(
            session_factory=SessionLocal,
            client_factory=make_client_factory(app.state.http_client, signer, settings),
            config=settings,
        )
        poller.start()
    app.state.poller = poller
    logger.info(
        "Paygate ready: gateway=%s mode=%s poller=%s",
        settings.resolved_gateway_url,
        settings.gateway_mode,
        "on" if poller else "off",
    )

    yield

    if poller is not None:
        poller.stop(timeout=settings.gateway_timeout_seconds)
    app.state.http_client.close()


# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Channels",
        "description": (
            "Payment channels synced from the gateway, admin switches, and "
            "fee quotes."
        ),
    },
    {
        "name": "Payments",
        "description": (
            "Create closed (single-use) payments, read them back, and force a "
            "status check."
        ),
    },
    {
        "name": "Open Payments",
        "description": "Reusable pay codes and the payments captured on them.",
    },
    {
        "name": "Callback",
        "description": "Signed status notifications sent by the gateway.",
    },
    {
        "name": "Reconciliation",
        "description": (
            "Poll the gateway for pending payments whose callback never "
            "arrived, synchronously or as background jobs."
        ),
    },
]


app = FastAPI(
    title="Paygate",
    description=(
        "## Payment Gateway Integration API\n\n"
        "Creates payments on the gateway, receives its signed callbacks, and "
        "polls for the ones that never call back. Every status change goes "
        "through one idempotent transition, so callbacks and polls can race "
        "without double-crediting a member.\n\n"
        "### Payment statuses\n"
        "- `pending` - created, waiting for the member to pay\n"
        "- `paid` - confirmed by callback or poll\n"
        "- `failed` - the gateway reported a failure\n"
        "- `expired` - the pay code lapsed unpaid\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
    redirect_slashes=False,
    lifespan=lifespan,
)


@app.exception_handler(PaymentError)
def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    """Render payment errors as ``{"success": false, ...}`` with their HTTP status."""
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s (%s)", request.method, request.url.path, exc.error_code, exc.message
        )
    else:
        logger.warning(
            "%s %s rejected: %s (%s)", request.method, request.url.path, exc.error_code, exc.message
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error_code": exc.error_code,
            "message": exc.public_message if exc.status_code >= 500 else exc.message,
        },
    )


app.include_router(channels.router, prefix="/api/v1/channels", tags=["Channels"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(
    open_payments.router, prefix="/api/v1/open-payments", tags=["Open Payments"]
)
app.include_router(callback.router, prefix="/api/v1", tags=["Callback"])
app.include_router(
    reconciliation.router, prefix="/api/v1/reconciliation", tags=["Reconciliation"]
)


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    Useful for load balancers and monitoring systems.
    """
    return {"status": "healthy", "service": "paygate"}
