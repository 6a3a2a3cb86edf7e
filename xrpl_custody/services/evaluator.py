"""Signing policy evaluation.

Selects the single applicable policy for a (network, wallet role, tx type)
context and turns it into an ALLOW / REQUIRE_MULTISIG / DENY decision.
``decide`` is a pure function of the context and the policy set so it can be
tested without a database; ``PolicyEvaluator`` only adds the store read.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from xrpl_custody.models.policy import DecisionOutcome, Network, SigningPolicy, TxType, WalletRole

logger = logging.getLogger(__name__)

REASON_TX_TYPE_NOT_ALLOWED = "TX_TYPE_NOT_ALLOWED"
REASON_AMOUNT_LIMIT_EXCEEDED = "AMOUNT_LIMIT_EXCEEDED"
REASON_DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"
REASON_RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"


@dataclass
class SigningContext:
    """Proposed transaction as seen by the evaluator."""
    network: Network
    wallet_role: WalletRole
    tx_type: TxType
    amount: Optional[Decimal] = None
    daily_tx_count_so_far: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "network": self.network.value,
            "wallet_role": self.wallet_role.value,
            "tx_type": self.tx_type.value,
            "amount": str(self.amount) if self.amount is not None else None,
            "daily_tx_count_so_far": self.daily_tx_count_so_far,
        }


@dataclass
class Decision:
    """Result of policy evaluation."""
    outcome: DecisionOutcome
    reason: Optional[str] = None
    reason_code: Optional[str] = None
    policy_id: Optional[str] = None
    policy_name: Optional[str] = None
    required_approvers: int = 0
    rate_limit_per_minute: Optional[int] = None
    limits: Optional[dict] = None
    evaluated_policies: List[str] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.outcome == DecisionOutcome.ALLOW

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "reason_code": self.reason_code,
            "policy_id": self.policy_id,
            "policy_name": self.policy_name,
            "required_approvers": self.required_approvers,
            "rate_limit_per_minute": self.rate_limit_per_minute,
            "limits": self.limits,
            "evaluated_policies": list(self.evaluated_policies),
        }


def policy_sort_key(policy: SigningPolicy):
    """
    Most restrictive first.

    Lowest max_amount_xrp wins, unbounded policies sort last, then oldest,
    then id so two otherwise identical policies always resolve the same way.
    Unsaved policies without a timestamp or id sort before saved ones.
    """
    unbounded = policy.max_amount_xrp is None
    return (
        unbounded,
        policy.max_amount_xrp if not unbounded else Decimal(0),
        policy.created_at or datetime.min,
        policy.id or "",
    )


def select_policy(policies: Iterable[SigningPolicy]) -> Optional[SigningPolicy]:
    ordered = sorted(policies, key=policy_sort_key)
    return ordered[0] if ordered else None


def decide(context: SigningContext, policies: Iterable[SigningPolicy]) -> Decision:
    """Evaluate a signing context against a set of policies."""
    scoped = [
        p for p in policies
        if p.is_active and p.applies_to(context.network, context.wallet_role)
    ]
    candidates = [p for p in scoped if p.allows_tx_type(context.tx_type)]
    evaluated = [f"{p.name}: {'MATCH' if p in candidates else 'TX_TYPE_MISMATCH'}" for p in scoped]

    policy = select_policy(candidates)
    if policy is None:
        return Decision(
            outcome=DecisionOutcome.DENY,
            reason="transaction type not permitted for role",
            reason_code=REASON_TX_TYPE_NOT_ALLOWED,
            evaluated_policies=evaluated,
        )

    base = dict(
        policy_id=policy.id,
        policy_name=policy.name,
        rate_limit_per_minute=policy.rate_limit_per_minute,
        limits=policy.limits_snapshot(),
        evaluated_policies=evaluated,
    )

    if (
        context.amount is not None
        and policy.max_amount_xrp is not None
        and Decimal(context.amount) > policy.max_amount_xrp
    ):
        return Decision(
            outcome=DecisionOutcome.DENY,
            reason="amount exceeds policy limit",
            reason_code=REASON_AMOUNT_LIMIT_EXCEEDED,
            **base,
        )

    if (
        context.daily_tx_count_so_far is not None
        and policy.max_daily_txs is not None
        and context.daily_tx_count_so_far >= policy.max_daily_txs
    ):
        return Decision(
            outcome=DecisionOutcome.DENY,
            reason="daily transaction limit reached",
            reason_code=REASON_DAILY_LIMIT_REACHED,
            **base,
        )

    if policy.requires_multi_sign:
        return Decision(
            outcome=DecisionOutcome.REQUIRE_MULTISIG,
            reason=f"policy {policy.name} requires {policy.min_signers} signers",
            required_approvers=policy.min_signers,
            **base,
        )

    return Decision(outcome=DecisionOutcome.ALLOW, **base)


class PolicyEvaluator:
    """Loads the candidate policy set from the store and applies ``decide``."""

    def __init__(self, store):
        self.store = store

    async def evaluate(self, context: SigningContext) -> Decision:
        policies = await self.store.active_policies_for(context.network, context.wallet_role)
        decision = decide(context, policies)

        if decision.outcome == DecisionOutcome.DENY:
            logger.warning(
                f"Signing denied for {context.wallet_role.value}/{context.network.value} "
                f"{context.tx_type.value}: {decision.reason}"
            )
        else:
            logger.info(
                f"Policy {decision.policy_name} -> {decision.outcome.value} for "
                f"{context.wallet_role.value}/{context.network.value} {context.tx_type.value}"
            )
        return decision
