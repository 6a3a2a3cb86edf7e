"""API routers package."""
from xrpl_custody.api.auth import router as auth_router
from xrpl_custody.api.policies import router as policies_router
from xrpl_custody.api.approvals import router as approvals_router
from xrpl_custody.api.signing import router as signing_router
from xrpl_custody.api.audit import router as audit_router

__all__ = [
    "auth_router",
    "policies_router",
    "approvals_router",
    "signing_router",
    "audit_router",
]
