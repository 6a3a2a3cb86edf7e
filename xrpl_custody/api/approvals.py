"""Approval request API endpoints."""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from xrpl_custody.exceptions import CustodyError
from xrpl_custody.schemas.approval import (
    ApprovalRequestCreate,
    ApprovalRequestResponse,
    ApprovalDetailResponse,
    SignatureNotes,
    SignatureCreate,
    SignatureResponse,
    SignResultResponse,
)
from xrpl_custody.schemas.common import ActorSnapshot, CorrelatedResponse, PaginatedResponse
from xrpl_custody.services.approval import ApprovalLedger, SignatureCollector
from xrpl_custody.services.execution import ExecutionGate
from xrpl_custody.api.deps import (
    actor_for,
    get_approval_ledger,
    get_correlation_id,
    get_current_user,
    get_execution_gate,
    get_signature_collector,
    require_roles,
)
from xrpl_custody.models.approval import ApprovalActionType, ApprovalEntityType, ApprovalStatus
from xrpl_custody.models.user import User, APPROVER_ROLES, SIGNING_ROLES

router = APIRouter(prefix="/v1/approvals", tags=["Approvals"])


def _sign_result(signature, request) -> SignResultResponse:
    return SignResultResponse(
        signature=SignatureResponse.model_validate(signature),
        request=ApprovalRequestResponse.model_validate(request),
    )


@router.post("", response_model=CorrelatedResponse[ApprovalRequestResponse])
async def create_approval_request(
    body: ApprovalRequestCreate,
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    actor: ActorSnapshot = Depends(actor_for(*SIGNING_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Open an approval request for a high-risk action."""
    request = await ledger.create_request(body, actor, correlation_id)
    await ledger.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=ApprovalRequestResponse.model_validate(request)
    )


@router.get("", response_model=PaginatedResponse[ApprovalRequestResponse])
async def list_approval_requests(
    status: Optional[ApprovalStatus] = Query(None),
    entity_type: Optional[ApprovalEntityType] = Query(None),
    entity_id: Optional[str] = Query(None),
    action_type: Optional[ApprovalActionType] = Query(None),
    requested_by: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    current_user: User = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id)
):
    """List approval requests with optional filters."""
    page = await ledger.list_requests(
        status=status,
        entity_type=entity_type,
        entity_id=entity_id,
        action_type=action_type,
        requested_by=requested_by,
        limit=limit,
        offset=offset,
        correlation_id=correlation_id
    )
    await ledger.commit()

    return PaginatedResponse(
        correlation_id=correlation_id,
        items=[ApprovalRequestResponse.model_validate(r) for r in page["items"]],
        total=page["total"],
        limit=limit,
        offset=offset,
        has_more=page["has_more"]
    )


@router.get("/review-queue", response_model=CorrelatedResponse[List[ApprovalRequestResponse]])
async def review_queue(
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    current_user: User = Depends(require_roles(*APPROVER_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Pending requests the caller may still sign."""
    requests = await ledger.pending_for_review(current_user.id)

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=[ApprovalRequestResponse.model_validate(r) for r in requests]
    )


@router.get("/{request_id}", response_model=CorrelatedResponse[ApprovalDetailResponse])
async def get_approval_request(
    request_id: str,
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    current_user: User = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id)
):
    """Get an approval request with its signatures."""
    request, signatures = await ledger.get_with_signatures(request_id, correlation_id)
    await ledger.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=ApprovalDetailResponse(
            request=ApprovalRequestResponse.model_validate(request),
            signatures=[SignatureResponse.model_validate(s) for s in signatures]
        )
    )


@router.get("/{request_id}/signatures", response_model=CorrelatedResponse[List[SignatureResponse]])
async def list_signatures(
    request_id: str,
    collector: SignatureCollector = Depends(get_signature_collector),
    current_user: User = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id)
):
    """Signatures recorded against a request, in signing order."""
    signatures = await collector.get_signatures(request_id)

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=[SignatureResponse.model_validate(s) for s in signatures]
    )


@router.post("/{request_id}/signatures", response_model=CorrelatedResponse[SignResultResponse])
async def sign_approval_request(
    request_id: str,
    body: SignatureCreate,
    collector: SignatureCollector = Depends(get_signature_collector),
    actor: ActorSnapshot = Depends(actor_for(*APPROVER_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """
    Approve or reject a request.

    SoD: the requestor cannot sign their own request, and each approver
    signs at most once.
    """
    try:
        signature, request = await collector.sign_request(
            request_id, actor, body.approved, body.notes, correlation_id
        )
    except CustodyError:
        # Keep an expiry observed during the attempt
        await collector.ledger.commit()
        raise
    await collector.ledger.commit()

    return CorrelatedResponse(correlation_id=correlation_id, data=_sign_result(signature, request))


@router.post("/{request_id}/approve", response_model=CorrelatedResponse[SignResultResponse])
async def approve_request(
    request_id: str,
    body: Optional[SignatureNotes] = None,
    collector: SignatureCollector = Depends(get_signature_collector),
    actor: ActorSnapshot = Depends(actor_for(*APPROVER_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Shorthand for an approving signature."""
    try:
        signature, request = await collector.approve(
            request_id, actor, correlation_id, notes=body.notes if body else None
        )
    except CustodyError:
        await collector.ledger.commit()
        raise
    await collector.ledger.commit()

    return CorrelatedResponse(correlation_id=correlation_id, data=_sign_result(signature, request))


@router.post("/{request_id}/reject", response_model=CorrelatedResponse[SignResultResponse])
async def reject_request(
    request_id: str,
    body: Optional[SignatureNotes] = None,
    collector: SignatureCollector = Depends(get_signature_collector),
    actor: ActorSnapshot = Depends(actor_for(*APPROVER_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Shorthand for a rejecting signature; notes become the rejection reason."""
    try:
        signature, request = await collector.reject(
            request_id, actor, correlation_id, notes=body.notes if body else None
        )
    except CustodyError:
        await collector.ledger.commit()
        raise
    await collector.ledger.commit()

    return CorrelatedResponse(correlation_id=correlation_id, data=_sign_result(signature, request))


@router.post("/{request_id}/execute", response_model=CorrelatedResponse[ApprovalRequestResponse])
async def execute_request(
    request_id: str,
    gate: ExecutionGate = Depends(get_execution_gate),
    current_user: User = Depends(require_roles(*SIGNING_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Mark an APPROVED request as executed. Succeeds at most once."""
    try:
        request = await gate.execute(request_id, current_user.id, correlation_id)
    except CustodyError:
        await gate.ledger.commit()
        raise
    await gate.ledger.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=ApprovalRequestResponse.model_validate(request)
    )


@router.post("/{request_id}/cancel", response_model=CorrelatedResponse[ApprovalRequestResponse])
async def cancel_request(
    request_id: str,
    gate: ExecutionGate = Depends(get_execution_gate),
    current_user: User = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id)
):
    """Withdraw a PENDING request. Only its requestor may cancel."""
    try:
        request = await gate.cancel(request_id, current_user.id, correlation_id)
    except CustodyError:
        await gate.ledger.commit()
        raise
    await gate.ledger.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=ApprovalRequestResponse.model_validate(request)
    )
