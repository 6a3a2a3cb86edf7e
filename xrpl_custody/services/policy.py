"""Signing policy store."""
import logging
from datetime import datetime
from typing import Optional, List
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from xrpl_custody.exceptions import PolicyNotFoundError, ValidationError
from xrpl_custody.models.audit import AuditEventType
from xrpl_custody.models.policy import Network, SigningPolicy, WalletRole
from xrpl_custody.schemas.policy import SigningPolicyUpsert
from xrpl_custody.services.audit import AuditService
from xrpl_custody.services.evaluator import select_policy

logger = logging.getLogger(__name__)


def _unique_values(items) -> List[str]:
    seen = []
    for item in items:
        value = item.value if hasattr(item, "value") else str(item)
        if value not in seen:
            seen.append(value)
    return seen


class PolicyStore:
    """
    Persistence for signing policies.

    Policies are never hard-deleted; ``set_active(id, False)`` is the only
    removal path. The store does not enforce one active policy per
    (network, wallet role); the evaluator tie-break resolves overlaps.
    """

    def __init__(self, db: AsyncSession, audit: AuditService):
        self.db = db
        self.audit = audit

    def _validate(self, data: SigningPolicyUpsert) -> None:
        errors = {}
        if not data.name or not data.name.strip():
            errors["name"] = "must not be empty"
        if not data.wallet_roles:
            errors["wallet_roles"] = "must contain at least one role"
        if not data.allowed_tx_types:
            errors["allowed_tx_types"] = "must contain at least one transaction type"
        if data.max_amount_xrp is not None and data.max_amount_xrp <= 0:
            errors["max_amount_xrp"] = "must be positive"
        if data.max_daily_txs is not None and data.max_daily_txs <= 0:
            errors["max_daily_txs"] = "must be positive"
        if data.rate_limit_per_minute is not None and data.rate_limit_per_minute <= 0:
            errors["rate_limit_per_minute"] = "must be positive"
        if data.requires_multi_sign and data.min_signers < 2:
            errors["min_signers"] = "must be at least 2 when multi-sign is required"
        elif data.min_signers < 1:
            errors["min_signers"] = "must be at least 1"

        if errors:
            raise ValidationError("Invalid signing policy", details=errors)

    async def upsert_policy(
        self,
        data: SigningPolicyUpsert,
        actor_id: Optional[str],
        correlation_id: str
    ) -> SigningPolicy:
        """Insert a new policy, or update the one named by ``data.id``."""
        self._validate(data)

        fields = dict(
            name=data.name.strip(),
            description=data.description,
            network=data.network,
            wallet_roles=_unique_values(data.wallet_roles),
            allowed_tx_types=_unique_values(data.allowed_tx_types),
            max_amount_xrp=data.max_amount_xrp,
            max_daily_txs=data.max_daily_txs,
            rate_limit_per_minute=data.rate_limit_per_minute,
            requires_multi_sign=data.requires_multi_sign,
            min_signers=data.min_signers if data.requires_multi_sign else 1,
            is_active=data.is_active,
        )

        if data.id:
            policy = await self.get_policy_by_id(data.id)
            for key, value in fields.items():
                setattr(policy, key, value)
            policy.updated_by = actor_id
            policy.updated_at = datetime.utcnow()
            event_type = AuditEventType.POLICY_UPDATED
        else:
            policy = SigningPolicy(id=str(uuid4()), created_by=actor_id, updated_by=actor_id, **fields)
            self.db.add(policy)
            event_type = AuditEventType.POLICY_CREATED

        await self.db.flush()

        await self.audit.log_event(
            event_type=event_type,
            correlation_id=correlation_id,
            actor_id=actor_id,
            entity_type="POLICY",
            entity_id=policy.id,
            payload={
                "name": policy.name,
                "network": policy.network.value,
                "wallet_roles": policy.wallet_roles,
                "allowed_tx_types": policy.allowed_tx_types,
                **policy.limits_snapshot(),
                "is_active": policy.is_active,
            }
        )
        logger.info(f"{event_type.value}: signing policy {policy.name} ({policy.id})")

        return policy

    async def get_policy_by_id(self, policy_id: str) -> SigningPolicy:
        result = await self.db.execute(
            select(SigningPolicy).where(SigningPolicy.id == policy_id)
        )
        policy = result.scalar_one_or_none()
        if not policy:
            raise PolicyNotFoundError(f"Signing policy {policy_id} not found")
        return policy

    async def active_policies_for(self, network: Network, wallet_role: WalletRole) -> List[SigningPolicy]:
        """Active policies whose scope covers the (network, wallet role) pair."""
        result = await self.db.execute(
            select(SigningPolicy)
            .where(SigningPolicy.is_active == True)
            .where(SigningPolicy.network == network)
        )
        # Role sets are stored as JSON lists; membership is checked in Python
        return [p for p in result.scalars().all() if p.applies_to(network, wallet_role)]

    async def get_policy(self, network: Network, wallet_role: WalletRole) -> Optional[SigningPolicy]:
        """The single applicable active policy, or None."""
        return select_policy(await self.active_policies_for(network, wallet_role))

    async def list_policies(
        self,
        network: Optional[Network] = None,
        wallet_role: Optional[WalletRole] = None,
        is_active: Optional[bool] = None,
        limit: int = 100
    ) -> List[SigningPolicy]:
        """List policies."""
        query = select(SigningPolicy)

        if network:
            query = query.where(SigningPolicy.network == network)
        if is_active is not None:
            query = query.where(SigningPolicy.is_active == is_active)

        query = query.order_by(SigningPolicy.created_at.desc(), SigningPolicy.id)

        result = await self.db.execute(query)
        policies = list(result.scalars().all())
        if wallet_role:
            policies = [p for p in policies if wallet_role.value in (p.wallet_roles or [])]
        return policies[:limit]

    async def set_active(
        self,
        policy_id: str,
        is_active: bool,
        actor_id: Optional[str],
        correlation_id: str
    ) -> SigningPolicy:
        """Activate or soft-delete a policy."""
        policy = await self.get_policy_by_id(policy_id)

        if policy.is_active != is_active:
            policy.is_active = is_active
            policy.updated_by = actor_id
            policy.updated_at = datetime.utcnow()
            await self.db.flush()

            await self.audit.log_event(
                event_type=AuditEventType.POLICY_ACTIVATED if is_active else AuditEventType.POLICY_DEACTIVATED,
                correlation_id=correlation_id,
                actor_id=actor_id,
                entity_type="POLICY",
                entity_id=policy.id,
                payload={"name": policy.name, "is_active": is_active}
            )
            logger.info(f"Signing policy {policy.name} ({policy.id}) is_active={is_active}")

        return policy
