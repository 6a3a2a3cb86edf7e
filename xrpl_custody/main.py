"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.utils import get_openapi

from xrpl_custody.config import get_settings
from xrpl_custody.exceptions import CustodyError
from xrpl_custody.schemas.common import ErrorResponse
from xrpl_custody.services.notifications import NotificationHub
from xrpl_custody.api import (
    auth_router,
    policies_router,
    approvals_router,
    signing_router,
    audit_router,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting XRPL Custody Policy Service...")

    app.state.notifications = NotificationHub(enabled=settings.notifications_enabled)
    logger.info(f"Notification hub ready (enabled={settings.notifications_enabled})")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.notifications.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="XRPL Custody - Signing Policy & Approval Service",
    description="""
## Signing policy and multi-signature approval workflow for XRPL custody

Decides whether a custodial wallet may sign a transaction immediately, must
collect approvals first, or is refused, and runs the approval workflow through
to a single execution.

### Features
- **Signing Policies**: per (network, wallet role) limits, allowed transaction types and multi-sign requirements
- **Policy Evaluation**: deterministic ALLOW / REQUIRE_MULTISIG / DENY decisions with reason codes
- **Signing Authorization**: daily and per-minute limits on top of policy evaluation
- **Approval Requests**: quorum tracking, single-reject veto, lazy expiry
- **Execution Gate**: at-most-once execution of approved requests
- **Audit Log**: Tamper-evident hash-chain audit trail

### Security
- JWT-based authentication with RBAC
- Segregation of duties (no self-approval, one signature per approver)
- Role snapshots on every request and signature
- Complete audit trail
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CustodyError)
async def custody_exception_handler(request: Request, exc: CustodyError):
    """Map domain errors onto the standard error envelope."""
    if exc.status_code >= 500:
        logger.error(f"{exc.reason}: {exc}", exc_info=True)
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.reason}")
    body = ErrorResponse(
        correlation_id=request.headers.get("X-Correlation-ID", "unknown"),
        error=exc.message,
        error_code=exc.reason,
        details=exc.details if isinstance(exc.details, dict) else None,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "correlation_id": request.headers.get("X-Correlation-ID", "unknown"),
            "error": "Internal server error",
            "error_code": "INTERNAL_ERROR"
        }
    )


# Include routers
app.include_router(auth_router)
app.include_router(policies_router)
app.include_router(approvals_router)
app.include_router(signing_router)
app.include_router(audit_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "notifications_enabled": settings.notifications_enabled
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "XRPL Custody Policy API",
        "version": "1.0.0",
        "docs": "/docs",
        "openapi": "/openapi.json"
    }


def custom_openapi():
    """Generate custom OpenAPI schema."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    # Add security schemes
    openapi_schema["components"]["securitySchemes"] = {
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT"
        }
    }

    # Add global headers
    openapi_schema["components"]["parameters"] = {
        "CorrelationId": {
            "name": "X-Correlation-ID",
            "in": "header",
            "required": False,
            "schema": {"type": "string"},
            "description": "Request correlation ID for tracing"
        }
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("xrpl_custody.main:app", host="0.0.0.0", port=8000, reload=True)
