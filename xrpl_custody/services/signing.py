"""Signing authorization: the gate in front of the transaction submitter."""
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from xrpl_custody.config import Settings, get_settings
from xrpl_custody.models.approval import ApprovalActionType, ApprovalEntityType, ApprovalRequest
from xrpl_custody.models.audit import AuditEventType
from xrpl_custody.models.policy import DecisionOutcome, KeyStorageType, Network, SigningActivity, WalletStatus
from xrpl_custody.schemas.approval import ApprovalRequestCreate
from xrpl_custody.schemas.common import ActorSnapshot
from xrpl_custody.schemas.signing import SigningAuthorizationRequest
from xrpl_custody.services.approval import ApprovalLedger
from xrpl_custody.services.audit import AuditService
from xrpl_custody.services.evaluator import (
    Decision,
    PolicyEvaluator,
    REASON_RATE_LIMIT_EXCEEDED,
    SigningContext,
)

logger = logging.getLogger(__name__)

REASON_WALLET_SUSPENDED = "WALLET_SUSPENDED"
REASON_WALLET_ARCHIVED = "WALLET_ARCHIVED"
REASON_LEGACY_MAINNET_BLOCKED = "LEGACY_MAINNET_BLOCKED"
REASON_MULTI_SIGN_REQUIRED = "MULTI_SIGN_REQUIRED"


@dataclass
class SigningAuthorization:
    """Outcome of one authorization attempt."""
    decision: Decision
    daily_tx_count: int
    activity: SigningActivity
    approval_request: Optional[ApprovalRequest] = None


class SigningAuthorizer:
    """
    Decides whether a wallet may sign now.

    Flow: refuse unusable wallets -> count today's allowed signings ->
    evaluate policy -> enforce the per-minute rate limit on ALLOW -> open an
    approval request on REQUIRE_MULTISIG -> record activity. Nothing is built
    or submitted here; an ALLOW outcome is the signal for the submitter.
    """

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditService,
        evaluator: PolicyEvaluator,
        ledger: ApprovalLedger,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.audit = audit
        self.evaluator = evaluator
        self.ledger = ledger
        self.settings = settings or get_settings()
        self.clock = clock

    async def _count_allowed_since(self, wallet_id: str, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(SigningActivity)
            .where(SigningActivity.wallet_id == wallet_id)
            .where(SigningActivity.outcome == DecisionOutcome.ALLOW)
            .where(SigningActivity.created_at >= since)
        )
        return result.scalar() or 0

    async def daily_tx_count(self, wallet_id: str) -> int:
        """Allowed signings for the wallet since UTC midnight."""
        now = self.clock()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return await self._count_allowed_since(wallet_id, midnight)

    @staticmethod
    def _wallet_refusal(request: SigningAuthorizationRequest) -> Optional[Decision]:
        """DENY for a wallet that cannot sign at all, before any policy is read."""
        if request.wallet_status == WalletStatus.SUSPENDED:
            return Decision(
                outcome=DecisionOutcome.DENY,
                reason="wallet is suspended",
                reason_code=REASON_WALLET_SUSPENDED,
            )
        if request.wallet_status == WalletStatus.ARCHIVED:
            return Decision(
                outcome=DecisionOutcome.DENY,
                reason="wallet is archived",
                reason_code=REASON_WALLET_ARCHIVED,
            )
        if request.key_storage_type == KeyStorageType.LEGACY_DB and request.network == Network.MAINNET:
            return Decision(
                outcome=DecisionOutcome.DENY,
                reason="legacy wallets cannot sign mainnet transactions",
                reason_code=REASON_LEGACY_MAINNET_BLOCKED,
            )
        return None

    async def _enforce_rate_limit(self, wallet_id: str, decision: Decision) -> Decision:
        if not decision.rate_limit_per_minute:
            return decision

        window_start = self.clock() - timedelta(seconds=self.settings.rate_limit_window_seconds)
        recent = await self._count_allowed_since(wallet_id, window_start)
        if recent >= decision.rate_limit_per_minute:
            logger.warning(
                f"Rate limit hit for wallet {wallet_id}: {recent} signings in "
                f"{self.settings.rate_limit_window_seconds}s (limit {decision.rate_limit_per_minute})"
            )
            return replace(
                decision,
                outcome=DecisionOutcome.DENY,
                reason="rate limit exceeded",
                reason_code=REASON_RATE_LIMIT_EXCEEDED,
            )
        return decision

    async def _open_approval(
        self,
        request: SigningAuthorizationRequest,
        decision: Decision,
        requestor: ActorSnapshot,
        correlation_id: str
    ) -> ApprovalRequest:
        payload = dict(request.payload)
        payload.update({
            "wallet_id": request.wallet_id,
            "wallet_role": request.wallet_role.value,
            "network": request.network.value,
            "tx_type": request.tx_type.value,
            "amount": str(request.amount) if request.amount is not None else None,
        })
        return await self.ledger.create_request(
            ApprovalRequestCreate(
                action_type=request.action_type or ApprovalActionType.TRANSFER,
                entity_type=request.entity_type or ApprovalEntityType.WALLET,
                entity_id=request.entity_id or request.wallet_id,
                entity_name=request.entity_name,
                payload=payload,
                required_approvers=decision.required_approvers,
            ),
            requestor,
            correlation_id,
            policy_id=decision.policy_id,
            policy_snapshot=decision.limits,
        )

    async def authorize(
        self,
        request: SigningAuthorizationRequest,
        requestor: ActorSnapshot,
        correlation_id: str
    ) -> SigningAuthorization:
        daily_count = await self.daily_tx_count(request.wallet_id)

        context = SigningContext(
            network=request.network,
            wallet_role=request.wallet_role,
            tx_type=request.tx_type,
            amount=request.amount,
            daily_tx_count_so_far=daily_count,
        )
        decision = self._wallet_refusal(request)
        if decision is None:
            decision = await self.evaluator.evaluate(context)

        if decision.outcome == DecisionOutcome.REQUIRE_MULTISIG and request.multi_sign_enabled is False:
            decision = replace(
                decision,
                outcome=DecisionOutcome.DENY,
                reason="policy requires multi-signature but wallet is not configured for multi-sign",
                reason_code=REASON_MULTI_SIGN_REQUIRED,
                required_approvers=0,
            )

        if decision.outcome == DecisionOutcome.ALLOW:
            decision = await self._enforce_rate_limit(request.wallet_id, decision)

        approval_request = None
        if decision.outcome == DecisionOutcome.REQUIRE_MULTISIG:
            approval_request = await self._open_approval(request, decision, requestor, correlation_id)

        activity = SigningActivity(
            id=str(uuid4()),
            wallet_id=request.wallet_id,
            network=request.network,
            wallet_role=request.wallet_role,
            tx_type=request.tx_type,
            amount=request.amount,
            outcome=decision.outcome,
            reason=decision.reason_code or decision.reason,
            policy_id=decision.policy_id,
            approval_request_id=approval_request.id if approval_request else None,
            requested_by=requestor.user_id,
            created_at=self.clock(),
        )
        self.db.add(activity)
        await self.db.flush()

        event_type = {
            DecisionOutcome.ALLOW: AuditEventType.SIGNING_ALLOWED,
            DecisionOutcome.DENY: AuditEventType.SIGNING_DENIED,
            DecisionOutcome.REQUIRE_MULTISIG: AuditEventType.POLICY_EVALUATED,
        }[decision.outcome]
        await self.audit.log_event(
            event_type=event_type,
            correlation_id=correlation_id,
            actor_id=requestor.user_id,
            entity_type="WALLET",
            entity_id=request.wallet_id,
            entity_refs={"approval_request_id": activity.approval_request_id} if approval_request else None,
            payload={
                **context.to_dict(),
                "decision": decision.to_dict(),
                "activity_id": activity.id,
            }
        )

        logger.info(
            f"Signing authorization for wallet {request.wallet_id} "
            f"({request.tx_type.value}): {decision.outcome.value}"
        )

        return SigningAuthorization(
            decision=decision,
            daily_tx_count=daily_count,
            activity=activity,
            approval_request=approval_request,
        )
