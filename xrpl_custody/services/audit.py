"""Audit service with hash-chain for tamper evidence."""
import hashlib
import json
from datetime import datetime
from typing import Optional, List
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from xrpl_custody.exceptions import RequestNotFoundError
from xrpl_custody.models.audit import AuditEvent, AuditEventType
from xrpl_custody.models.approval import ApprovalRequest
from xrpl_custody.schemas.audit import ApprovalPackageResponse, AuditEventResponse, AuditVerifyResponse


class AuditService:
    """Service for managing audit events with hash chain."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_event(
        self,
        event_type: AuditEventType,
        correlation_id: str,
        actor_id: Optional[str] = None,
        actor_type: str = "USER",
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        entity_refs: Optional[dict] = None,
        payload: Optional[dict] = None,
    ) -> AuditEvent:
        """Create a new audit event with hash chain."""
        prev_event = await self._get_last_event()
        prev_hash = prev_event.hash if prev_event else None

        seq_result = await self.db.execute(
            select(func.coalesce(func.max(AuditEvent.sequence_number), 0) + 1)
        )
        sequence_number = seq_result.scalar()

        event_id = str(uuid4())
        timestamp = datetime.utcnow()

        event_hash = AuditEvent.compute_hash(
            event_id=event_id,
            timestamp=timestamp,
            event_type=event_type.value,
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
            prev_hash=prev_hash
        )

        event = AuditEvent(
            id=event_id,
            sequence_number=sequence_number,
            timestamp=timestamp,
            event_type=event_type,
            actor_id=actor_id,
            actor_type=actor_type,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_refs=entity_refs,
            payload=payload,
            correlation_id=correlation_id,
            prev_hash=prev_hash,
            hash=event_hash
        )

        self.db.add(event)
        await self.db.flush()

        return event

    async def _get_last_event(self) -> Optional[AuditEvent]:
        """Get the last audit event for hash chain continuation."""
        result = await self.db.execute(
            select(AuditEvent)
            .order_by(AuditEvent.sequence_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_events_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        limit: int = 100
    ) -> List[AuditEvent]:
        """Get audit events for a specific entity."""
        result = await self.db.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type)
            .where(AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.sequence_number.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def build_approval_package(
        self,
        request_id: str,
        correlation_id: str
    ) -> ApprovalPackageResponse:
        """Build a complete audit package for an approval request."""
        result = await self.db.execute(
            select(ApprovalRequest).where(ApprovalRequest.id == request_id)
        )
        request = result.scalar_one_or_none()

        if not request:
            raise RequestNotFoundError(f"Approval request {request_id} not found")

        events = await self.get_events_for_entity("APPROVAL_REQUEST", request_id)

        execution = None
        if request.executed_at:
            execution = {
                "executed_at": request.executed_at.isoformat(),
                "executed_by": request.executed_by,
            }

        package_data = {
            "request_id": request_id,
            "request": {
                "id": request.id,
                "action_type": request.action_type.value,
                "entity_type": request.entity_type.value,
                "entity_id": request.entity_id,
                "entity_name": request.entity_name,
                "payload": request.payload,
                "status": request.status.value,
                "requested_by": request.requested_by,
                "requested_by_name": request.requested_by_name,
                "requested_by_role": request.requested_by_role.value,
                "required_approvers": request.required_approvers,
                "current_approvals": request.current_approvals,
                "current_rejections": request.current_rejections,
                "rejection_reason": request.rejection_reason,
                "requested_at": request.requested_at.isoformat(),
                "expires_at": request.expires_at.isoformat(),
            },
            "policy_snapshot": request.policy_snapshot,
            "signatures": [
                {
                    "id": s.id,
                    "approver_id": s.approver_id,
                    "approver_name": s.approver_name,
                    "approver_role": s.approver_role.value,
                    "approved": s.approved,
                    "notes": s.notes,
                    "signed_at": s.signed_at.isoformat()
                }
                for s in request.signatures
            ],
            "execution": execution,
            "audit_events": [
                AuditEventResponse.model_validate(e) for e in events
            ],
            "generated_at": datetime.utcnow().isoformat()
        }

        package_hash = hashlib.sha256(
            json.dumps(package_data, sort_keys=True, default=str).encode()
        ).hexdigest()

        return ApprovalPackageResponse(
            request_id=request_id,
            request=package_data["request"],
            policy_snapshot=request.policy_snapshot,
            signatures=package_data["signatures"],
            execution=execution,
            audit_events=package_data["audit_events"],
            package_hash=package_hash,
            generated_at=datetime.utcnow()
        )

    async def verify_chain(
        self,
        from_sequence: Optional[int] = None,
        to_sequence: Optional[int] = None
    ) -> AuditVerifyResponse:
        """Verify the integrity of the audit hash chain."""
        query = select(AuditEvent).order_by(AuditEvent.sequence_number.asc())

        if from_sequence is not None:
            query = query.where(AuditEvent.sequence_number >= from_sequence)
        if to_sequence is not None:
            query = query.where(AuditEvent.sequence_number <= to_sequence)

        result = await self.db.execute(query)
        events = list(result.scalars().all())

        if not events:
            return AuditVerifyResponse(
                is_valid=True,
                total_events=0,
                verified_events=0,
                first_event_id=None,
                last_event_id=None,
                chain_intact=True,
                errors=[]
            )

        errors = []
        verified = 0
        prev_hash = None

        # For the first event in range, get its expected prev_hash
        if from_sequence and from_sequence > 1:
            prev_result = await self.db.execute(
                select(AuditEvent)
                .where(AuditEvent.sequence_number == from_sequence - 1)
            )
            prev_event = prev_result.scalar_one_or_none()
            if prev_event:
                prev_hash = prev_event.hash

        for event in events:
            if event.prev_hash != prev_hash:
                errors.append(
                    f"Event {event.id} (seq {event.sequence_number}): "
                    f"prev_hash mismatch. Expected {prev_hash}, got {event.prev_hash}"
                )

            expected_hash = AuditEvent.compute_hash(
                event_id=event.id,
                timestamp=event.timestamp,
                event_type=event.event_type.value,
                actor_id=event.actor_id,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                payload=event.payload,
                prev_hash=event.prev_hash
            )

            if event.hash != expected_hash:
                errors.append(
                    f"Event {event.id} (seq {event.sequence_number}): "
                    f"hash mismatch. Possible tampering detected."
                )
            else:
                verified += 1

            prev_hash = event.hash

        return AuditVerifyResponse(
            is_valid=len(errors) == 0,
            total_events=len(events),
            verified_events=verified,
            first_event_id=events[0].id,
            last_event_id=events[-1].id,
            chain_intact=len(errors) == 0,
            errors=errors
        )
