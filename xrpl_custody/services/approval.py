"""Approval request ledger and signature collection.

Every status change goes through ``ApprovalLedger.transition``, a single
``UPDATE ... WHERE status = <expected>``; the in-memory object is only
refreshed afterwards. Expiry is lazy: any read, sign or execute that observes
``now >= expires_at`` on a PENDING or APPROVED request persists EXPIRED.

Workflow notifications are queued on the ledger and only published by
``ApprovalLedger.commit``; a rolled-back transition is never announced.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, update, func, and_, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from xrpl_custody.config import Settings, get_settings
from xrpl_custody.exceptions import (
    DuplicateSignatureError,
    InvalidStateError,
    RequestNotFoundError,
    RequestNotPendingError,
    SelfApprovalError,
    ValidationError,
)
from xrpl_custody.models.approval import (
    ApprovalActionType,
    ApprovalEntityType,
    ApprovalRequest,
    ApprovalSignature,
    ApprovalStatus,
    HIGH_RISK_ACTIONS,
)
from xrpl_custody.models.audit import AuditEventType
from xrpl_custody.schemas.approval import ApprovalRequestCreate
from xrpl_custody.schemas.common import ActorSnapshot
from xrpl_custody.services.audit import AuditService
from xrpl_custody.services.notifications import NotificationHub, WorkflowNotification

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

TRANSITION_EVENTS = {
    ApprovalStatus.APPROVED: AuditEventType.APPROVAL_APPROVED,
    ApprovalStatus.REJECTED: AuditEventType.APPROVAL_REJECTED,
    ApprovalStatus.EXPIRED: AuditEventType.APPROVAL_EXPIRED,
    ApprovalStatus.EXECUTED: AuditEventType.APPROVAL_EXECUTED,
    ApprovalStatus.CANCELLED: AuditEventType.APPROVAL_CANCELLED,
}


class ApprovalLedger:
    """Append-only store of approval requests and their state machine."""

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditService,
        notifications: Optional[NotificationHub] = None,
        settings: Optional[Settings] = None,
        clock: Clock = datetime.utcnow,
    ):
        self.db = db
        self.audit = audit
        self.notifications = notifications
        self.settings = settings or get_settings()
        self.clock = clock
        self._outbox: List[WorkflowNotification] = []

    @staticmethod
    def requires_approval(action_type: ApprovalActionType) -> bool:
        """Whether an action is high-risk and must go through quorum."""
        return action_type in HIGH_RISK_ACTIONS

    def _notify(
        self,
        event_type: AuditEventType,
        request: ApprovalRequest,
        actor_id: Optional[str] = None,
        payload: Optional[dict] = None
    ) -> None:
        if self.notifications is None:
            return
        self._outbox.append(
            WorkflowNotification(
                event_type=event_type.value,
                entity_type="APPROVAL_REQUEST",
                entity_id=request.id,
                status=request.status.value,
                actor_id=actor_id,
                payload=payload or {},
            )
        )

    async def commit(self) -> None:
        """Commit the session, then publish what the commit made durable."""
        await self.db.commit()
        outbox, self._outbox = self._outbox, []
        for notification in outbox:
            self.notifications.publish(notification)

    async def rollback(self) -> None:
        await self.db.rollback()
        if self._outbox:
            logger.info(f"Dropping {len(self._outbox)} unpublished workflow notifications after rollback")
        self._outbox = []

    async def record(
        self,
        event_type: AuditEventType,
        request: ApprovalRequest,
        correlation_id: Optional[str],
        actor_id: Optional[str] = None,
        payload: Optional[dict] = None
    ) -> None:
        await self.audit.log_event(
            event_type=event_type,
            correlation_id=correlation_id or request.correlation_id or str(uuid4()),
            actor_id=actor_id,
            actor_type="USER" if actor_id else "SYSTEM",
            entity_type="APPROVAL_REQUEST",
            entity_id=request.id,
            entity_refs={"entity_type": request.entity_type.value, "entity_id": request.entity_id},
            payload=payload
        )
        self._notify(event_type, request, actor_id, payload)

    async def create_request(
        self,
        data: ApprovalRequestCreate,
        requestor: ActorSnapshot,
        correlation_id: str,
        policy_id: Optional[str] = None,
        policy_snapshot: Optional[dict] = None
    ) -> ApprovalRequest:
        """Open a new PENDING approval request."""
        required = data.required_approvers
        if required is None:
            required = self.settings.approval_default_required_approvers
        expires_in_hours = data.expires_in_hours
        if expires_in_hours is None:
            expires_in_hours = self.settings.approval_default_expires_in_hours

        errors = {}
        if required < 1:
            errors["required_approvers"] = "must be at least 1"
        now = self.clock()
        expires_at = None
        if expires_in_hours <= 0:
            errors["expires_in_hours"] = "must be positive"
        else:
            try:
                expires_at = now + timedelta(hours=expires_in_hours)
            except (OverflowError, ValueError):
                errors["expires_in_hours"] = "is out of range"
            else:
                # Sub-microsecond windows round away to nothing
                if expires_at <= now:
                    errors["expires_in_hours"] = "is too small"
        if errors:
            raise ValidationError("Invalid approval request", details=errors)

        request = ApprovalRequest(
            id=str(uuid4()),
            action_type=data.action_type,
            entity_type=data.entity_type,
            entity_id=data.entity_id,
            entity_name=data.entity_name,
            payload=dict(data.payload or {}),
            requested_by=requestor.user_id,
            requested_by_name=requestor.display_name,
            requested_by_role=requestor.role,
            required_approvers=required,
            current_approvals=0,
            current_rejections=0,
            rejection_threshold=self.settings.approval_rejection_threshold,
            status=ApprovalStatus.PENDING,
            policy_id=policy_id,
            policy_snapshot=policy_snapshot,
            requested_at=now,
            expires_at=expires_at,
            correlation_id=correlation_id,
        )
        self.db.add(request)
        await self.db.flush()

        await self.record(
            AuditEventType.APPROVAL_REQUESTED,
            request,
            correlation_id,
            actor_id=requestor.user_id,
            payload={
                "action_type": request.action_type.value,
                "entity_name": request.entity_name,
                "required_approvers": required,
                "expires_at": request.expires_at.isoformat(),
                "requested_by_role": requestor.role.value,
                "policy_id": policy_id,
            }
        )
        logger.info(
            f"Approval request {request.id} opened for {request.action_type.value} "
            f"on {request.entity_type.value} {request.entity_id} ({required} approvers)"
        )

        return request

    async def load(self, request_id: str) -> ApprovalRequest:
        result = await self.db.execute(
            select(ApprovalRequest).where(ApprovalRequest.id == request_id)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise RequestNotFoundError(f"Approval request {request_id} not found")
        return request

    async def transition(
        self,
        request: ApprovalRequest,
        to_status: ApprovalStatus,
        correlation_id: Optional[str],
        actor_id: Optional[str] = None,
        values: Optional[dict] = None,
        payload: Optional[dict] = None
    ) -> bool:
        """
        Compare-and-set the request status.

        Raises InvalidStateError for transitions the state machine does not
        allow. Returns False when the row was no longer in the expected state
        at write time; the request is refreshed either way.
        """
        from_status = request.status
        if not request.can_transition_to(to_status):
            logger.warning(
                f"Invalid transition for approval request {request.id}: "
                f"{from_status.value} -> {to_status.value}"
            )
            raise InvalidStateError(
                f"Approval request {request.id} cannot move from {from_status.value} to {to_status.value}",
                from_status=from_status.value,
                to_status=to_status.value,
            )

        result = await self.db.execute(
            update(ApprovalRequest)
            .where(ApprovalRequest.id == request.id)
            .where(ApprovalRequest.status == from_status)
            .values(status=to_status, updated_at=self.clock(), **(values or {}))
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(request)

        if result.rowcount == 0:
            logger.warning(
                f"Approval request {request.id} changed concurrently; "
                f"expected {from_status.value}, found {request.status.value}"
            )
            return False

        event_payload = {"old_status": from_status.value, "new_status": to_status.value}
        if payload:
            event_payload.update(payload)
        await self.record(TRANSITION_EVENTS[to_status], request, correlation_id, actor_id, event_payload)
        logger.info(f"Approval request {request.id}: {from_status.value} -> {to_status.value}")
        return True

    async def apply_expiry(
        self,
        request: ApprovalRequest,
        correlation_id: Optional[str] = None
    ) -> ApprovalRequest:
        """Persist EXPIRED if the request has lapsed."""
        if request.is_expired_at(self.clock()):
            await self.transition(
                request,
                ApprovalStatus.EXPIRED,
                correlation_id,
                payload={"expires_at": request.expires_at.isoformat()}
            )
        return request

    async def get_request(self, request_id: str, correlation_id: Optional[str] = None) -> ApprovalRequest:
        request = await self.load(request_id)
        return await self.apply_expiry(request, correlation_id)

    async def get_with_signatures(
        self,
        request_id: str,
        correlation_id: Optional[str] = None
    ) -> Tuple[ApprovalRequest, List[ApprovalSignature]]:
        request = await self.get_request(request_id, correlation_id)
        return request, list(request.signatures)

    async def list_requests(
        self,
        status: Optional[ApprovalStatus] = None,
        entity_type: Optional[ApprovalEntityType] = None,
        entity_id: Optional[str] = None,
        action_type: Optional[ApprovalActionType] = None,
        requested_by: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        correlation_id: Optional[str] = None
    ) -> dict:
        """List approval requests, newest first, with pagination metadata."""
        query = select(ApprovalRequest)
        count_query = select(func.count()).select_from(ApprovalRequest)

        filters = [
            (status, ApprovalRequest.status),
            (entity_type, ApprovalRequest.entity_type),
            (entity_id, ApprovalRequest.entity_id),
            (action_type, ApprovalRequest.action_type),
            (requested_by, ApprovalRequest.requested_by),
        ]
        for value, column in filters:
            if value:
                query = query.where(column == value)
                count_query = count_query.where(column == value)

        count_result = await self.db.execute(count_query)
        total = count_result.scalar()

        result = await self.db.execute(
            query
            .order_by(ApprovalRequest.requested_at.desc(), ApprovalRequest.id)
            .limit(limit)
            .offset(offset)
        )
        items = list(result.scalars().all())
        for request in items:
            await self.apply_expiry(request, correlation_id)

        return {
            "items": items,
            "total": total,
            "has_more": offset + len(items) < total,
        }

    async def pending_for_review(self, user_id: str, limit: int = 100) -> List[ApprovalRequest]:
        """
        Requests this user can still act on.

        PENDING, not yet expired, not opened by the user and not already
        signed by them.
        """
        already_signed = exists().where(
            and_(
                ApprovalSignature.request_id == ApprovalRequest.id,
                ApprovalSignature.approver_id == user_id,
            )
        )
        result = await self.db.execute(
            select(ApprovalRequest)
            .where(ApprovalRequest.status == ApprovalStatus.PENDING)
            .where(ApprovalRequest.expires_at > self.clock())
            .where(ApprovalRequest.requested_by != user_id)
            .where(~already_signed)
            .order_by(ApprovalRequest.requested_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())


class SignatureCollector:
    """Accepts approve/reject signatures and drives quorum transitions."""

    def __init__(self, ledger: ApprovalLedger):
        self.ledger = ledger
        self.db = ledger.db

    async def _has_signed(self, request_id: str, approver_id: str) -> bool:
        result = await self.db.execute(
            select(ApprovalSignature.id)
            .where(ApprovalSignature.request_id == request_id)
            .where(ApprovalSignature.approver_id == approver_id)
        )
        return result.first() is not None

    async def _count(self, request: ApprovalRequest, approved: bool) -> bool:
        """Increment the approval or rejection counter while still PENDING."""
        stmt = (
            update(ApprovalRequest)
            .where(ApprovalRequest.id == request.id)
            .where(ApprovalRequest.status == ApprovalStatus.PENDING)
        )
        if approved:
            stmt = stmt.where(
                ApprovalRequest.current_approvals < ApprovalRequest.required_approvers
            ).values(current_approvals=ApprovalRequest.current_approvals + 1)
        else:
            stmt = stmt.values(current_rejections=ApprovalRequest.current_rejections + 1)

        result = await self.db.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    async def sign_request(
        self,
        request_id: str,
        approver: ActorSnapshot,
        approved: bool,
        notes: Optional[str],
        correlation_id: str
    ) -> Tuple[ApprovalSignature, ApprovalRequest]:
        """
        Record a signature and apply the resulting transition.

        Raises SelfApprovalError, DuplicateSignatureError or
        RequestNotPendingError; the (request, approver) unique index is the
        guard against concurrent duplicates.
        """
        request = await self.ledger.get_request(request_id, correlation_id)

        # Separation of duties
        if approver.user_id == request.requested_by:
            logger.warning(f"Self-approval attempt on approval request {request.id} by {approver.user_id}")
            raise SelfApprovalError(
                "Segregation of Duties: requestor cannot sign their own approval request",
                details={"request_id": request.id}
            )

        if request.status != ApprovalStatus.PENDING:
            if await self._has_signed(request.id, approver.user_id):
                raise DuplicateSignatureError(
                    f"{approver.display_name} has already signed approval request {request.id}"
                )
            raise RequestNotPendingError(
                f"Approval request {request.id} is {request.status.value}, not PENDING",
                from_status=request.status.value,
            )

        signature = ApprovalSignature(
            id=str(uuid4()),
            request_id=request.id,
            approver_id=approver.user_id,
            approver_name=approver.display_name,
            approver_role=approver.role,
            approved=approved,
            notes=notes,
            signed_at=self.ledger.clock(),
        )

        try:
            async with self.db.begin_nested():
                self.db.add(signature)
                await self.db.flush()
                if not await self._count(request, approved):
                    raise RequestNotPendingError(
                        f"Approval request {request.id} left PENDING before the signature was counted",
                        from_status=ApprovalStatus.PENDING.value,
                    )
        except IntegrityError:
            logger.warning(f"Duplicate signature on approval request {request.id} by {approver.user_id}")
            raise DuplicateSignatureError(
                f"{approver.display_name} has already signed approval request {request.id}"
            )
        finally:
            await self.db.refresh(request)

        await self.ledger.record(
            AuditEventType.APPROVAL_SIGNED if approved else AuditEventType.APPROVAL_REJECTION_SIGNED,
            request,
            correlation_id,
            actor_id=approver.user_id,
            payload={
                "signature_id": signature.id,
                "approved": approved,
                "notes": notes,
                "approver_role": approver.role.value,
                "current_approvals": request.current_approvals,
                "current_rejections": request.current_rejections,
                "required_approvers": request.required_approvers,
            }
        )

        if approved and request.current_approvals >= request.required_approvers:
            await self.ledger.transition(
                request,
                ApprovalStatus.APPROVED,
                correlation_id,
                actor_id=approver.user_id,
                payload={"current_approvals": request.current_approvals}
            )
        elif not approved and request.current_rejections >= request.rejection_threshold:
            reason = notes or f"Rejected by {approver.display_name}"
            await self.ledger.transition(
                request,
                ApprovalStatus.REJECTED,
                correlation_id,
                actor_id=approver.user_id,
                values={"rejection_reason": reason},
                payload={"rejection_reason": reason}
            )

        return signature, request

    async def approve(
        self,
        request_id: str,
        approver: ActorSnapshot,
        correlation_id: str,
        notes: Optional[str] = None
    ) -> Tuple[ApprovalSignature, ApprovalRequest]:
        return await self.sign_request(request_id, approver, True, notes, correlation_id)

    async def reject(
        self,
        request_id: str,
        approver: ActorSnapshot,
        correlation_id: str,
        notes: Optional[str] = None
    ) -> Tuple[ApprovalSignature, ApprovalRequest]:
        return await self.sign_request(request_id, approver, False, notes, correlation_id)

    async def get_signatures(self, request_id: str) -> List[ApprovalSignature]:
        """Signatures for a request in signing order."""
        await self.ledger.load(request_id)
        result = await self.db.execute(
            select(ApprovalSignature)
            .where(ApprovalSignature.request_id == request_id)
            .order_by(ApprovalSignature.signed_at.asc(), ApprovalSignature.id)
        )
        return list(result.scalars().all())
