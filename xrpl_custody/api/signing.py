"""Signing authorization API endpoints."""
from fastapi import APIRouter, Depends

from xrpl_custody.schemas.approval import ApprovalRequestResponse
from xrpl_custody.schemas.common import ActorSnapshot, CorrelatedResponse
from xrpl_custody.schemas.policy import DecisionResponse
from xrpl_custody.schemas.signing import SigningAuthorizationRequest, SigningAuthorizationResponse
from xrpl_custody.services.signing import SigningAuthorizer
from xrpl_custody.api.deps import actor_for, get_correlation_id, get_signing_authorizer
from xrpl_custody.models.user import SIGNING_ROLES

router = APIRouter(prefix="/v1/signing", tags=["Signing"])


@router.post("/authorize", response_model=CorrelatedResponse[SigningAuthorizationResponse])
async def authorize_signing(
    body: SigningAuthorizationRequest,
    authorizer: SigningAuthorizer = Depends(get_signing_authorizer),
    actor: ActorSnapshot = Depends(actor_for(*SIGNING_ROLES)),
    correlation_id: str = Depends(get_correlation_id)
):
    """
    Ask whether a wallet may sign a transaction now.

    - ALLOW: the caller may hand the transaction to the submitter.
    - REQUIRE_MULTISIG: an approval request is opened and returned.
    - DENY: the reason code says which limit was hit.

    Denials are a normal outcome and return 200; every attempt is recorded.
    """
    result = await authorizer.authorize(body, actor, correlation_id)
    await authorizer.ledger.commit()

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=SigningAuthorizationResponse(
            decision=DecisionResponse.model_validate(result.decision),
            daily_tx_count=result.daily_tx_count,
            approval_request=(
                ApprovalRequestResponse.model_validate(result.approval_request)
                if result.approval_request else None
            ),
            activity_id=result.activity.id,
        )
    )
