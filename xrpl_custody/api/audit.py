"""Audit API endpoints."""
from typing import Optional, List
from fastapi import APIRouter, Depends, Query

from xrpl_custody.schemas.audit import ApprovalPackageResponse, AuditEventResponse, AuditVerifyResponse
from xrpl_custody.schemas.common import CorrelatedResponse
from xrpl_custody.services.audit import AuditService
from xrpl_custody.api.deps import (
    get_correlation_id,
    get_audit_service,
    require_roles
)
from xrpl_custody.models.user import User, UserRole, OVERSIGHT_ROLES

router = APIRouter(prefix="/v1/audit", tags=["Audit"])


@router.get("/packages/{request_id}", response_model=CorrelatedResponse[ApprovalPackageResponse])
async def get_approval_package(
    request_id: str,
    audit_service: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(*OVERSIGHT_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """
    Get complete audit package for an approval request.

    Returns aggregated audit trail including:
    - Request details and requestor snapshot
    - Policy limits as evaluated
    - All signatures with approver role snapshots
    - Execution details
    - All related audit events
    - Package hash for verification
    """
    package = await audit_service.build_approval_package(request_id, correlation_id)

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=package
    )


@router.get("/verify", response_model=CorrelatedResponse[AuditVerifyResponse])
async def verify_audit_chain(
    from_sequence: Optional[int] = Query(None, description="Start verification from this sequence number"),
    to_sequence: Optional[int] = Query(None, description="End verification at this sequence number"),
    audit_service: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.SYSTEM_ADMIN, UserRole.AUDITOR)),
    correlation_id: str = Depends(get_correlation_id)
):
    """
    Verify integrity of the audit log hash chain.

    Returns verification result including:
    - Whether chain is valid (no tampering detected)
    - Number of events verified
    - Any errors found
    """
    result = await audit_service.verify_chain(
        from_sequence=from_sequence,
        to_sequence=to_sequence
    )

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=result
    )


@router.get("/events", response_model=CorrelatedResponse[List[AuditEventResponse]])
async def get_entity_events(
    entity_type: str = Query(..., description="POLICY, APPROVAL_REQUEST, WALLET or USER"),
    entity_id: str = Query(...),
    limit: int = Query(100, le=1000),
    audit_service: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(*OVERSIGHT_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Audit events for one entity, oldest first."""
    events = await audit_service.get_events_for_entity(entity_type, entity_id, limit=limit)

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=[AuditEventResponse.model_validate(e) for e in events]
    )
