"""Authentication API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from xrpl_custody.database import get_db
from xrpl_custody.schemas.auth import UserCreate, UserLogin, TokenResponse, UserResponse
from xrpl_custody.schemas.common import CorrelatedResponse
from xrpl_custody.services.auth import AuthService
from xrpl_custody.services.audit import AuditService
from xrpl_custody.models.audit import AuditEventType
from xrpl_custody.api.deps import get_audit_service, get_auth_service, get_correlation_id, get_current_user
from xrpl_custody.models.user import User

router = APIRouter(prefix="/v1/auth", tags=["Authentication"])


@router.post("/register", response_model=CorrelatedResponse[UserResponse])
async def register_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    audit_service: AuditService = Depends(get_audit_service),
    correlation_id: str = Depends(get_correlation_id)
):
    """Register a new user."""
    user = await auth_service.create_user(user_data)

    await audit_service.log_event(
        event_type=AuditEventType.USER_REGISTERED,
        correlation_id=correlation_id,
        actor_id=user.id,
        entity_type="USER",
        entity_id=user.id,
        payload={"username": user.username, "role": user.role.value}
    )
    await db.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=UserResponse.model_validate(user)
    )


@router.post("/login", response_model=CorrelatedResponse[TokenResponse])
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    audit_service: AuditService = Depends(get_audit_service),
    correlation_id: str = Depends(get_correlation_id)
):
    """Authenticate user and return JWT token."""
    user = await auth_service.authenticate(credentials.username, credentials.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    token = auth_service.create_token(user)

    await audit_service.log_event(
        event_type=AuditEventType.USER_LOGIN,
        correlation_id=correlation_id,
        actor_id=user.id,
        entity_type="USER",
        entity_id=user.id,
        payload={"username": user.username}
    )
    await db.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=token
    )


@router.get("/me", response_model=CorrelatedResponse[UserResponse])
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id)
):
    """Get current authenticated user info."""
    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=UserResponse.model_validate(current_user)
    )
