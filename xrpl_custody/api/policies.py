"""Signing policy API endpoints."""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from xrpl_custody.database import get_db
from xrpl_custody.schemas.policy import (
    SigningPolicyUpsert,
    SigningPolicyActiveUpdate,
    SigningPolicyResponse,
    PolicyEvaluateRequest,
    DecisionResponse,
)
from xrpl_custody.schemas.common import CorrelatedResponse
from xrpl_custody.services.policy import PolicyStore
from xrpl_custody.services.evaluator import PolicyEvaluator, SigningContext
from xrpl_custody.services.audit import AuditService
from xrpl_custody.api.deps import (
    get_audit_service,
    get_correlation_id,
    get_policy_evaluator,
    get_policy_store,
    require_roles
)
from xrpl_custody.models.audit import AuditEventType
from xrpl_custody.models.policy import Network, WalletRole
from xrpl_custody.models.user import User, POLICY_ADMIN_ROLES, OVERSIGHT_ROLES, SIGNING_ROLES

router = APIRouter(prefix="/v1/policies", tags=["Signing Policies"])

POLICY_READERS = tuple(dict.fromkeys(POLICY_ADMIN_ROLES + OVERSIGHT_ROLES))
EVALUATORS = tuple(dict.fromkeys(SIGNING_ROLES + OVERSIGHT_ROLES))


@router.post("", response_model=CorrelatedResponse[SigningPolicyResponse])
async def upsert_policy(
    policy_data: SigningPolicyUpsert,
    db: AsyncSession = Depends(get_db),
    store: PolicyStore = Depends(get_policy_store),
    current_user: User = Depends(require_roles(*POLICY_ADMIN_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Create a signing policy, or update it when ``id`` is given."""
    policy = await store.upsert_policy(policy_data, current_user.id, correlation_id)
    await db.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=SigningPolicyResponse.model_validate(policy)
    )


@router.get("", response_model=CorrelatedResponse[List[SigningPolicyResponse]])
async def list_policies(
    network: Optional[Network] = Query(None),
    wallet_role: Optional[WalletRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    limit: int = Query(100, le=1000),
    store: PolicyStore = Depends(get_policy_store),
    current_user: User = Depends(require_roles(*POLICY_READERS)),
    correlation_id: str = Depends(get_correlation_id)
):
    """List signing policies with optional filters."""
    policies = await store.list_policies(
        network=network,
        wallet_role=wallet_role,
        is_active=is_active,
        limit=limit
    )

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=[SigningPolicyResponse.model_validate(p) for p in policies]
    )


@router.post("/evaluate", response_model=CorrelatedResponse[DecisionResponse])
async def evaluate_policy(
    body: PolicyEvaluateRequest,
    db: AsyncSession = Depends(get_db),
    evaluator: PolicyEvaluator = Depends(get_policy_evaluator),
    audit: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(*EVALUATORS)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Dry-run policy evaluation; nothing is signed or queued."""
    context = SigningContext(
        network=body.network,
        wallet_role=body.wallet_role,
        tx_type=body.tx_type,
        amount=body.amount,
        daily_tx_count_so_far=body.daily_tx_count_so_far,
    )
    decision = await evaluator.evaluate(context)

    await audit.log_event(
        event_type=AuditEventType.POLICY_EVALUATED,
        correlation_id=correlation_id,
        actor_id=current_user.id,
        entity_type="POLICY",
        entity_id=decision.policy_id,
        payload={**context.to_dict(), "decision": decision.to_dict(), "dry_run": True}
    )
    await db.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=DecisionResponse.model_validate(decision)
    )


@router.get("/{policy_id}", response_model=CorrelatedResponse[SigningPolicyResponse])
async def get_policy(
    policy_id: str,
    store: PolicyStore = Depends(get_policy_store),
    current_user: User = Depends(require_roles(*POLICY_READERS)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Get signing policy by ID."""
    policy = await store.get_policy_by_id(policy_id)

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=SigningPolicyResponse.model_validate(policy)
    )


@router.patch("/{policy_id}/active", response_model=CorrelatedResponse[SigningPolicyResponse])
async def set_policy_active(
    policy_id: str,
    body: SigningPolicyActiveUpdate,
    db: AsyncSession = Depends(get_db),
    store: PolicyStore = Depends(get_policy_store),
    current_user: User = Depends(require_roles(*POLICY_ADMIN_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """Activate or deactivate a policy. Policies are never deleted."""
    policy = await store.set_active(policy_id, body.is_active, current_user.id, correlation_id)
    await db.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=SigningPolicyResponse.model_validate(policy)
    )
