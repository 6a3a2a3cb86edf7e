"""Approval request model and state machine."""
import enum
from datetime import datetime
from typing import Optional, List
from uuid import uuid4

from sqlalchemy import String, Enum, DateTime, Text, Integer, Boolean, ForeignKey, JSON, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from xrpl_custody.database import Base
from xrpl_custody.models.user import UserRole


class ApprovalActionType(str, enum.Enum):
    """Actions that can be queued for multi-role approval."""
    WALLET_PROVISION = "WALLET_PROVISION"
    WALLET_SUSPEND = "WALLET_SUSPEND"
    WALLET_ARCHIVE = "WALLET_ARCHIVE"
    TOKEN_ISSUE = "TOKEN_ISSUE"
    TOKEN_MINT = "TOKEN_MINT"
    TOKEN_BURN = "TOKEN_BURN"
    TOKEN_FREEZE = "TOKEN_FREEZE"
    TOKEN_CLAWBACK = "TOKEN_CLAWBACK"
    ESCROW_CREATE = "ESCROW_CREATE"
    ESCROW_FINISH = "ESCROW_FINISH"
    ESCROW_CANCEL = "ESCROW_CANCEL"
    TRANSFER = "TRANSFER"
    SIGNER_LIST_UPDATE = "SIGNER_LIST_UPDATE"


# Actions that never move without a second pair of eyes
HIGH_RISK_ACTIONS = frozenset({
    ApprovalActionType.TOKEN_CLAWBACK,
    ApprovalActionType.TOKEN_FREEZE,
    ApprovalActionType.TOKEN_BURN,
    ApprovalActionType.ESCROW_FINISH,
    ApprovalActionType.ESCROW_CANCEL,
    ApprovalActionType.TRANSFER,
    ApprovalActionType.SIGNER_LIST_UPDATE,
})


class ApprovalEntityType(str, enum.Enum):
    """Entity types that can carry approval requests."""
    WALLET = "WALLET"
    TOKEN = "TOKEN"
    ESCROW = "ESCROW"
    PAYMENT_CHANNEL = "PAYMENT_CHANNEL"
    CHECK = "CHECK"


class ApprovalStatus(str, enum.Enum):
    """
    Approval request status state machine.

    PENDING -> APPROVED -> EXECUTED is the happy path. REJECTED, EXPIRED,
    EXECUTED and CANCELLED are terminal.
    """
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    EXECUTED = "EXECUTED"
    CANCELLED = "CANCELLED"


VALID_TRANSITIONS = {
    ApprovalStatus.PENDING: [
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.EXPIRED,
        ApprovalStatus.CANCELLED,
    ],
    ApprovalStatus.APPROVED: [
        ApprovalStatus.EXECUTED,
        ApprovalStatus.EXPIRED,
    ],
    ApprovalStatus.REJECTED: [],  # Terminal state
    ApprovalStatus.EXPIRED: [],  # Terminal state
    ApprovalStatus.EXECUTED: [],  # Terminal state
    ApprovalStatus.CANCELLED: [],  # Terminal state
}

# States in which a request can still lapse
EXPIRABLE_STATES = (ApprovalStatus.PENDING, ApprovalStatus.APPROVED)


class ApprovalRequest(Base):
    """Append-only record of an action awaiting quorum."""
    __tablename__ = "approval_requests"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4()))

    # What is being approved
    action_type: Mapped[ApprovalActionType] = mapped_column(Enum(ApprovalActionType), nullable=False, index=True)
    entity_type: Mapped[ApprovalEntityType] = mapped_column(Enum(ApprovalEntityType), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # Write-once

    # Requestor snapshot
    requested_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    requested_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    requested_by_role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False)

    # Quorum
    required_approvers: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    current_approvals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_rejections: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejection_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # State machine
    status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus), nullable=False, default=ApprovalStatus.PENDING, index=True
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Policy snapshot (weak reference)
    policy_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), nullable=True)
    policy_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Timing
    requested_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    executed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    correlation_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    signatures: Mapped[List["ApprovalSignature"]] = relationship(
        "ApprovalSignature",
        back_populates="request",
        lazy="selectin",
        order_by="ApprovalSignature.signed_at",
    )

    __table_args__ = (
        Index("ix_approval_requests_status_requested", "status", "requested_at"),
        Index("ix_approval_requests_entity", "entity_type", "entity_id"),
        CheckConstraint("required_approvers >= 1", name="ck_approval_requests_required"),
        CheckConstraint("current_approvals <= required_approvers", name="ck_approval_requests_quorum"),
        CheckConstraint("expires_at > requested_at", name="ck_approval_requests_expiry"),
    )

    def can_transition_to(self, new_status: ApprovalStatus) -> bool:
        """Check if transition to new status is valid."""
        return new_status in VALID_TRANSITIONS.get(self.status, [])

    def is_expired_at(self, now: datetime) -> bool:
        return self.status in EXPIRABLE_STATES and now >= self.expires_at


class ApprovalSignature(Base):
    """Individual approve/reject signature; immutable once written."""
    __tablename__ = "approval_signatures"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4()))
    request_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("approval_requests.id"), nullable=False, index=True
    )

    # Approver snapshot
    approver_id: Mapped[str] = mapped_column(String(64), nullable=False)
    approver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    approver_role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False)

    approved: Mapped[bool] = mapped_column(Boolean, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    signed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    request: Mapped["ApprovalRequest"] = relationship("ApprovalRequest", back_populates="signatures")

    __table_args__ = (
        Index("ix_approval_signatures_request_approver", "request_id", "approver_id", unique=True),
    )
