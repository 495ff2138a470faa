"""
Certify - Soulbound Credential Registry

Main application entry point.

Issuers are admitted by admins, mint credentials to recipients,
and those credentials stay with their recipients forever.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from certify.api import NonceStore, router
from certify.core import (
    CertificateRegistry,
    CredentialNotFound,
    InvalidIdentity,
    IssuerAlreadyExists,
    IssuerDeactivated,
    IssuerNotActive,
    IssuerNotFound,
    RegistryError,
    StatusUnchanged,
    TransferForbidden,
    Unauthorized,
)
from certify.db.store import AuditLogError, AuditLogUnavailable
from certify.schemas import Role
from certify.observability import (
    setup_logging,
    get_logger,
    RequestContextMiddleware,
    check_health,
    get_metrics,
)
from certify.shared import get_registry

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)


ERROR_STATUS: dict[type, int] = {
    Unauthorized: 403,
    IssuerNotActive: 403,
    TransferForbidden: 403,
    IssuerNotFound: 404,
    CredentialNotFound: 404,
    IssuerAlreadyExists: 409,
    IssuerDeactivated: 409,
    StatusUnchanged: 409,
    InvalidIdentity: 422,
}


def error_status(error: RegistryError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status_code
    return 400


def create_app(registry: Optional[CertificateRegistry] = None) -> FastAPI:
    """
    Build the ASGI application.

    Args:
        registry: Registry to serve. If None, the process-wide registry
                  from certify.shared is used (requires CERTIFY_ROOT_ADMIN).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        app.state.registry = registry if registry is not None else get_registry()
        app.state.nonces = NonceStore()

        audit_log = app.state.registry.audit_log
        if audit_log.verify_integrity():
            logger.info("Audit chain verified OK", event_count=audit_log.get_event_count())
        else:
            logger.error("Audit chain integrity check FAILED!")

        logger.info(
            "Application startup complete",
            audit_log=type(audit_log).__name__,
            root_admins=len(app.state.registry.members_of(Role.ROOT_ADMIN)),
        )

        yield

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Certify",
        description="""
## Soulbound Credential Registry

Role-gated issuers mint non-transferable credentials.

### Roles

```
RootAdmin -> grants Admin
Admin     -> admits, suspends and deactivates Issuers
Issuer    -> mints credentials while Active
```

### API Design

**Commands** (write operations):
- Signed with the caller's Ed25519 key over canonical JSON
- Each carries a single-use nonce
- Every accepted command is recorded in the hash-chained audit log

**Queries** (read operations):
- Public, unauthenticated

### Audit Log Backends

- **InMemoryAuditLog**: Development/testing (default)
- **PostgresAuditLog**: Durable trail for indexers

Set `DATABASE_URL` or `DATABASE_HOST` environment variables to use PostgreSQL.
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add request context middleware for logging
    app.add_middleware(RequestContextMiddleware)

    app.include_router(router, prefix="/api/v1")

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError):
        return JSONResponse(
            status_code=error_status(exc),
            content={"error": exc.code, "detail": str(exc)},
        )

    @app.exception_handler(AuditLogError)
    async def audit_log_error_handler(request: Request, exc: AuditLogError):
        logger.error("Audit log failure", error=str(exc), error_type=type(exc).__name__)
        status_code = 503 if isinstance(exc, AuditLogUnavailable) else 500
        return JSONResponse(
            status_code=status_code,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    @app.get("/health", tags=["System"])
    async def health():
        """
        Basic health check endpoint.

        Returns 200 if the service is running.
        For detailed health, use /health/detailed
        """
        return {"status": "healthy", "service": "certify"}

    @app.get("/health/detailed", tags=["System"])
    def health_detailed(request: Request):
        """
        Detailed health check with audit chain verification.

        Checks:
        - Service liveness
        - Audit log connectivity
        - Audit chain integrity

        Returns 200 if healthy, 503 if unhealthy.
        """
        registry = request.app.state.registry
        health_status = check_health(registry=registry, audit_log=registry.audit_log)

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
        """
        Get application metrics.

        Returns counters and latency percentiles.
        """
        return get_metrics().get_summary()

    return app


app = create_app()
