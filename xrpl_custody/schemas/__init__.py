"""Pydantic schemas for API validation."""
from xrpl_custody.schemas.common import (
    CorrelatedResponse,
    PaginatedResponse,
    ErrorResponse,
    ActorSnapshot,
)
from xrpl_custody.schemas.policy import (
    SigningPolicyUpsert,
    SigningPolicyActiveUpdate,
    SigningPolicyResponse,
    PolicyEvaluateRequest,
    DecisionResponse,
)
from xrpl_custody.schemas.approval import (
    ApprovalRequestCreate,
    ApprovalRequestResponse,
    ApprovalDetailResponse,
    SignatureCreate,
    SignatureResponse,
    SignResultResponse,
    SignatureNotes,
)
from xrpl_custody.schemas.signing import (
    SigningAuthorizationRequest,
    SigningAuthorizationResponse,
)
from xrpl_custody.schemas.auth import (
    UserCreate,
    UserLogin,
    TokenResponse,
    UserResponse,
)
from xrpl_custody.schemas.audit import (
    AuditEventResponse,
    ApprovalPackageResponse,
    AuditVerifyResponse,
)

__all__ = [
    "CorrelatedResponse",
    "PaginatedResponse",
    "ErrorResponse",
    "ActorSnapshot",
    "SigningPolicyUpsert",
    "SigningPolicyActiveUpdate",
    "SigningPolicyResponse",
    "PolicyEvaluateRequest",
    "DecisionResponse",
    "ApprovalRequestCreate",
    "ApprovalRequestResponse",
    "ApprovalDetailResponse",
    "SignatureCreate",
    "SignatureResponse",
    "SignResultResponse",
    "SignatureNotes",
    "SigningAuthorizationRequest",
    "SigningAuthorizationResponse",
    "UserCreate",
    "UserLogin",
    "TokenResponse",
    "UserResponse",
    "AuditEventResponse",
    "ApprovalPackageResponse",
    "AuditVerifyResponse",
]
