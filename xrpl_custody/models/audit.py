"""Audit log model with hash chain for tamper evidence."""
import enum
import hashlib
import json
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, Enum, DateTime, Index, JSON
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from xrpl_custody.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class AuditEventType(str, enum.Enum):
    """Types of auditable events."""
    # Policy events
    POLICY_CREATED = "POLICY_CREATED"
    POLICY_UPDATED = "POLICY_UPDATED"
    POLICY_ACTIVATED = "POLICY_ACTIVATED"
    POLICY_DEACTIVATED = "POLICY_DEACTIVATED"
    POLICY_EVALUATED = "POLICY_EVALUATED"

    # Signing gate events
    SIGNING_ALLOWED = "SIGNING_ALLOWED"
    SIGNING_DENIED = "SIGNING_DENIED"

    # Approval workflow events
    APPROVAL_REQUESTED = "APPROVAL_REQUESTED"
    APPROVAL_SIGNED = "APPROVAL_SIGNED"
    APPROVAL_REJECTION_SIGNED = "APPROVAL_REJECTION_SIGNED"
    APPROVAL_APPROVED = "APPROVAL_APPROVED"
    APPROVAL_REJECTED = "APPROVAL_REJECTED"
    APPROVAL_EXPIRED = "APPROVAL_EXPIRED"
    APPROVAL_EXECUTED = "APPROVAL_EXECUTED"
    APPROVAL_CANCELLED = "APPROVAL_CANCELLED"

    # Auth events
    USER_LOGIN = "USER_LOGIN"
    USER_REGISTERED = "USER_REGISTERED"


class AuditEvent(Base):
    """Append-only audit log with hash chain."""
    __tablename__ = "audit_events"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4()))
    sequence_number: Mapped[int] = mapped_column(nullable=False, unique=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    event_type: Mapped[AuditEventType] = mapped_column(Enum(AuditEventType), nullable=False, index=True)

    # Actor
    actor_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    actor_type: Mapped[str] = mapped_column(String(50), default="USER")  # USER, SYSTEM

    # Entity references (what was affected)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # POLICY, APPROVAL_REQUEST, WALLET
    entity_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    entity_refs: Mapped[Optional[dict]] = mapped_column(JSONPayload, nullable=True)

    # Event payload (no key material)
    payload: Mapped[Optional[dict]] = mapped_column(JSONPayload, nullable=True)

    # Correlation ID for request tracing
    correlation_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Hash chain for tamper evidence
    prev_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # NULL for first event
    hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    __table_args__ = (
        Index("ix_audit_events_entity", "entity_type", "entity_id"),
        Index("ix_audit_events_timestamp_type", "timestamp", "event_type"),
    )

    @staticmethod
    def compute_hash(
        event_id: str,
        timestamp: datetime,
        event_type: str,
        actor_id: Optional[str],
        entity_type: Optional[str],
        entity_id: Optional[str],
        payload: Optional[dict],
        prev_hash: Optional[str]
    ) -> str:
        """Compute SHA-256 hash for the event."""
        data = {
            "event_id": event_id,
            "timestamp": timestamp.isoformat(),
            "event_type": event_type,
            "actor_id": actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "payload": payload,
            "prev_hash": prev_hash
        }
        canonical = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode()).hexdigest()
