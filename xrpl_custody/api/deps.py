"""API dependencies for dependency injection."""
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from fastapi import Depends, HTTPException, Header, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from xrpl_custody.config import Settings, get_settings
from xrpl_custody.database import get_db
from xrpl_custody.models.user import User, UserRole
from xrpl_custody.schemas.common import ActorSnapshot
from xrpl_custody.services.audit import AuditService
from xrpl_custody.services.auth import AuthService
from xrpl_custody.services.notifications import NotificationHub
from xrpl_custody.services.policy import PolicyStore
from xrpl_custody.services.evaluator import PolicyEvaluator
from xrpl_custody.services.approval import ApprovalLedger, SignatureCollector
from xrpl_custody.services.execution import ExecutionGate
from xrpl_custody.services.signing import SigningAuthorizer

security = HTTPBearer()


def get_correlation_id(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-ID")
) -> str:
    """Get or generate correlation ID for request tracing."""
    return x_correlation_id or str(uuid4())


def get_clock() -> Callable[[], datetime]:
    """Time source for expiry and rate-limit windows."""
    return datetime.utcnow


def get_notification_hub(request: Request) -> Optional[NotificationHub]:
    """Hub owned by the application lifespan."""
    return getattr(request.app.state, "notifications", None)


# Service dependencies

async def get_audit_service(db: AsyncSession = Depends(get_db)) -> AuditService:
    """Get audit service instance."""
    return AuditService(db)


async def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Get auth service instance."""
    return AuthService(db)


async def get_policy_store(
    db: AsyncSession = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
) -> PolicyStore:
    """Get policy store instance."""
    return PolicyStore(db, audit)


async def get_policy_evaluator(
    store: PolicyStore = Depends(get_policy_store)
) -> PolicyEvaluator:
    return PolicyEvaluator(store)


async def get_approval_ledger(
    db: AsyncSession = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    notifications: Optional[NotificationHub] = Depends(get_notification_hub),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock)
) -> ApprovalLedger:
    """Get approval ledger instance."""
    return ApprovalLedger(db, audit, notifications, settings, clock)


async def get_signature_collector(
    ledger: ApprovalLedger = Depends(get_approval_ledger)
) -> SignatureCollector:
    return SignatureCollector(ledger)


async def get_execution_gate(
    ledger: ApprovalLedger = Depends(get_approval_ledger)
) -> ExecutionGate:
    return ExecutionGate(ledger)


async def get_signing_authorizer(
    db: AsyncSession = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    evaluator: PolicyEvaluator = Depends(get_policy_evaluator),
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock)
) -> SigningAuthorizer:
    """Get signing authorizer instance."""
    return SigningAuthorizer(db, audit, evaluator, ledger, settings, clock)


# Authentication dependencies

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    auth: AuthService = Depends(get_auth_service)
) -> User:
    """Get current authenticated user from JWT token."""
    payload = await auth.verify_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user = await auth.get_user_by_id(payload["sub"])
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )

    return user


def require_roles(*roles: UserRole):
    """Dependency factory to require specific user roles."""
    async def role_checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Required roles: {[r.value for r in roles]}"
            )
        return user
    return role_checker


def actor_for(*roles: UserRole):
    """Like require_roles, but yields the caller's identity snapshot."""
    checker = require_roles(*roles)

    async def snapshot(user: User = Depends(checker)) -> ActorSnapshot:
        return ActorSnapshot.from_user(user)
    return snapshot
