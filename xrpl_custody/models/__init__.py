"""Database models package."""
from xrpl_custody.models.user import User, UserRole
from xrpl_custody.models.policy import (
    Network,
    WalletRole,
    TxType,
    DecisionOutcome,
    SigningPolicy,
    SigningActivity,
)
from xrpl_custody.models.approval import (
    ApprovalActionType,
    ApprovalEntityType,
    ApprovalStatus,
    ApprovalRequest,
    ApprovalSignature,
    HIGH_RISK_ACTIONS,
    VALID_TRANSITIONS,
)
from xrpl_custody.models.audit import AuditEvent, AuditEventType

__all__ = [
    "User",
    "UserRole",
    # Policy models
    "Network",
    "WalletRole",
    "TxType",
    "DecisionOutcome",
    "SigningPolicy",
    "SigningActivity",
    # Approval models
    "ApprovalActionType",
    "ApprovalEntityType",
    "ApprovalStatus",
    "ApprovalRequest",
    "ApprovalSignature",
    "HIGH_RISK_ACTIONS",
    "VALID_TRANSITIONS",
    # Audit
    "AuditEvent",
    "AuditEventType",
]
