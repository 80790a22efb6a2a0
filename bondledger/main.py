"""
Bond Ledger - Compliance-Gated Debt Token Service

Main application entry point.

Balances move only between compliant holders, never above the holding
limit, and every change is a hash-chained event.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.routes import router
from .config import LedgerSettings
from .core import (
    ComplianceMode,
    InMemoryClaimsRegistry,
    InMemoryIdentityRegistry,
    TokenLedger,
)
from .db.store import InMemoryEventStore
from .observability import (
    setup_logging,
    get_logger,
    RequestContextMiddleware,
    check_health,
    get_metrics,
)

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)


def build_ledger(settings: LedgerSettings) -> tuple[TokenLedger, dict]:
    """
    Build a fresh ledger from settings.

    Registry mode gets in-memory identity and claims registries, returned
    alongside the ledger so the development endpoints can seed them.
    """
    registries = {"identity_registry": None, "claims_registry": None}
    if settings.compliance_mode == ComplianceMode.REGISTRY:
        registries["identity_registry"] = InMemoryIdentityRegistry()
        registries["claims_registry"] = InMemoryClaimsRegistry()

    ledger = TokenLedger(
        settings.name,
        settings.symbol,
        settings.initial_supply,
        settings.issuer,
        registries["identity_registry"],
        registries["claims_registry"],
        max_holding_bps=settings.max_holding_bps,
        allowed_countries=settings.allowed_countries,
        require_sender_compliance=settings.require_sender_compliance,
        enforce_single_redemption=settings.enforce_single_redemption,
        event_store=InMemoryEventStore(),
    )
    return ledger, registries


def create_app(
    settings: Optional[LedgerSettings] = None,
    ledger: Optional[TokenLedger] = None,
    identity_registry: Optional[InMemoryIdentityRegistry] = None,
    claims_registry: Optional[InMemoryClaimsRegistry] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Pass a prebuilt ledger (and its in-memory registries, if any) to serve
    it; otherwise one is built at startup from settings, or from the
    environment when settings is None.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        if ledger is not None:
            app.state.ledger = ledger
            app.state.identity_registry = identity_registry
            app.state.claims_registry = claims_registry
        else:
            built, registries = build_ledger(settings or LedgerSettings.from_env())
            app.state.ledger = built
            app.state.identity_registry = registries["identity_registry"]
            app.state.claims_registry = registries["claims_registry"]
        app.state.event_store = app.state.ledger.event_store

        if app.state.ledger.verify_chain_integrity():
            logger.info("Chain integrity verified OK", event_count=app.state.ledger.event_count)
        else:
            logger.error("Chain integrity check FAILED!")

        logger.info(
            "Application startup complete",
            token=app.state.ledger.symbol,
            mode=app.state.ledger.compliance_mode.value,
            event_count=app.state.ledger.event_count,
        )

        yield

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Bond Ledger",
        description="""
## Compliance-Gated Debt Token Ledger

Balances of a regulated debt instrument, transferable only to
compliant holders and capped per holder.

### Acting Caller

Every command names its caller in the `X-Caller` header. Roles
(issuer, compliance officer, transfer agent) are checked against it.

### Errors

Rejections return `{"detail": {"reason": ..., "message": ...}}` where
`reason` is a stable code such as `RecipientNotCompliant` or
`HoldingLimitExceeded`.
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add request context middleware for logging
    app.add_middleware(RequestContextMiddleware)

    app.include_router(router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health():
        """Basic liveness check."""
        return {"status": "healthy", "service": "bondledger"}

    @app.get("/health/detailed", tags=["System"])
    async def health_detailed(request: Request):
        """
        Detailed health check.

        Checks:
        - Event store head
        - Chain integrity
        - Supply invariant

        Returns 200 if healthy, 503 if unhealthy.
        """
        health_status = check_health(
            ledger=request.app.state.ledger,
            event_store=request.app.state.event_store,
        )
        return JSONResponse(
            status_code=200 if health_status.healthy else 503,
            content={
                "status": "healthy" if health_status.healthy else "unhealthy",
                "checks": health_status.checks,
                "duration_ms": health_status.duration_ms,
            },
        )

    @app.get("/metrics", tags=["System"])
    async def metrics():
        """Ledger and request counters with mean latencies."""
        return get_metrics().get_summary()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
