"""Tests for the signing authorization gate."""
import pytest
from decimal import Decimal

from sqlalchemy import select

from xrpl_custody.models.approval import ApprovalActionType, ApprovalStatus
from xrpl_custody.models.audit import AuditEventType
from xrpl_custody.models.policy import (
    DecisionOutcome,
    KeyStorageType,
    Network,
    SigningActivity,
    TxType,
    WalletRole,
    WalletStatus,
)
from xrpl_custody.schemas.policy import SigningPolicyUpsert
from xrpl_custody.schemas.signing import SigningAuthorizationRequest
from xrpl_custody.services.signing import SigningAuthorizer


@pytest.fixture
def authorizer(db_session, audit, evaluator, ledger, settings, clock) -> SigningAuthorizer:
    return SigningAuthorizer(db_session, audit, evaluator, ledger, settings, clock)


async def add_policy(store, actors, correlation_id, **overrides):
    fields = dict(
        name="Ops payments",
        network=Network.TESTNET,
        wallet_roles=[WalletRole.OPS],
        allowed_tx_types=[TxType.PAYMENT],
        max_amount_xrp=Decimal("10000"),
        requires_multi_sign=False,
        min_signers=1,
    )
    fields.update(overrides)
    return await store.upsert_policy(SigningPolicyUpsert(**fields), actors["admin"].user_id, correlation_id)


def payment(wallet_id="w_ops_01", role=WalletRole.OPS, amount="250", **wallet) -> SigningAuthorizationRequest:
    return SigningAuthorizationRequest(
        wallet_id=wallet_id,
        wallet_role=role,
        network=Network.TESTNET,
        tx_type=TxType.PAYMENT,
        amount=Decimal(amount),
        payload={"destination": "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"},
        **wallet,
    )


@pytest.mark.asyncio
async def test_allowed_signing_records_activity(authorizer, store, audit, actors, correlation_id):
    policy = await add_policy(store, actors, correlation_id)

    result = await authorizer.authorize(payment(), actors["requestor"], correlation_id)

    assert result.decision.outcome == DecisionOutcome.ALLOW
    assert result.decision.policy_id == policy.id
    assert result.daily_tx_count == 0
    assert result.approval_request is None
    assert result.activity.outcome == DecisionOutcome.ALLOW
    assert result.activity.requested_by == actors["requestor"].user_id

    events = await audit.get_events_for_entity("WALLET", "w_ops_01")
    assert [e.event_type for e in events] == [AuditEventType.SIGNING_ALLOWED]
    assert events[0].payload["decision"]["outcome"] == "ALLOW"


@pytest.mark.asyncio
async def test_no_policy_denies_and_is_audited(authorizer, audit, actors, correlation_id):
    result = await authorizer.authorize(payment(role=WalletRole.ISSUER), actors["requestor"], correlation_id)

    assert result.decision.outcome == DecisionOutcome.DENY
    assert result.decision.reason_code == "TX_TYPE_NOT_ALLOWED"
    assert result.activity.reason == "TX_TYPE_NOT_ALLOWED"

    events = await audit.get_events_for_entity("WALLET", "w_ops_01")
    assert events[0].event_type == AuditEventType.SIGNING_DENIED


@pytest.mark.asyncio
async def test_daily_limit_counts_only_allowed_signings_today(authorizer, store, actors, clock, correlation_id):
    await add_policy(store, actors, correlation_id, max_daily_txs=2, rate_limit_per_minute=100)

    for _ in range(2):
        assert (await authorizer.authorize(payment(), actors["requestor"], correlation_id)).decision.allowed
        clock.advance(minutes=2)

    # Denied attempts do not consume the allowance
    denied = await authorizer.authorize(payment(amount="50000"), actors["requestor"], correlation_id)
    assert denied.decision.reason_code == "AMOUNT_LIMIT_EXCEEDED"

    blocked = await authorizer.authorize(payment(), actors["requestor"], correlation_id)
    assert blocked.daily_tx_count == 2
    assert blocked.decision.reason_code == "DAILY_LIMIT_REACHED"

    # Another wallet has its own count
    other = await authorizer.authorize(payment(wallet_id="w_ops_02"), actors["requestor"], correlation_id)
    assert other.decision.allowed

    # The count resets at UTC midnight
    clock.advance(days=1)
    assert (await authorizer.authorize(payment(), actors["requestor"], correlation_id)).decision.allowed


@pytest.mark.asyncio
async def test_rate_limit_per_minute(authorizer, store, actors, clock, correlation_id):
    await add_policy(store, actors, correlation_id, rate_limit_per_minute=2)

    assert (await authorizer.authorize(payment(), actors["requestor"], correlation_id)).decision.allowed
    clock.advance(seconds=10)
    assert (await authorizer.authorize(payment(), actors["requestor"], correlation_id)).decision.allowed
    clock.advance(seconds=10)

    limited = await authorizer.authorize(payment(), actors["requestor"], correlation_id)
    assert limited.decision.outcome == DecisionOutcome.DENY
    assert limited.decision.reason == "rate limit exceeded"
    assert limited.decision.reason_code == "RATE_LIMIT_EXCEEDED"

    clock.advance(seconds=45)
    assert (await authorizer.authorize(payment(), actors["requestor"], correlation_id)).decision.allowed


@pytest.mark.asyncio
async def test_multisig_opens_approval_request(db_session, authorizer, store, audit, actors, correlation_id):
    policy = await add_policy(
        store,
        actors,
        correlation_id,
        name="Treasury payments",
        wallet_roles=[WalletRole.TREASURY],
        max_amount_xrp=Decimal("500000"),
        requires_multi_sign=True,
        min_signers=2,
    )

    result = await authorizer.authorize(
        payment(wallet_id="w_treasury_01", role=WalletRole.TREASURY, amount="400000"),
        actors["requestor"],
        correlation_id
    )

    assert result.decision.outcome == DecisionOutcome.REQUIRE_MULTISIG
    request = result.approval_request
    assert request is not None
    assert request.status == ApprovalStatus.PENDING
    assert request.action_type == ApprovalActionType.TRANSFER
    assert request.entity_id == "w_treasury_01"
    assert request.required_approvers == 2
    assert request.policy_id == policy.id
    assert request.policy_snapshot["max_amount_xrp"] == "500000"
    assert request.payload["amount"] == "400000"
    assert request.payload["destination"] == "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"

    assert result.activity.approval_request_id == request.id

    events = await audit.get_events_for_entity("WALLET", "w_treasury_01")
    assert events[0].event_type == AuditEventType.POLICY_EVALUATED
    assert events[0].entity_refs == {"approval_request_id": request.id}


@pytest.mark.asyncio
async def test_policy_snapshot_survives_policy_edit(authorizer, store, ledger, actors, correlation_id):
    policy = await add_policy(
        store,
        actors,
        correlation_id,
        wallet_roles=[WalletRole.TREASURY],
        max_amount_xrp=Decimal("500000"),
        requires_multi_sign=True,
        min_signers=2,
    )
    result = await authorizer.authorize(
        payment(wallet_id="w_treasury_01", role=WalletRole.TREASURY, amount="100000"),
        actors["requestor"],
        correlation_id
    )

    await add_policy(
        store,
        actors,
        correlation_id,
        id=policy.id,
        wallet_roles=[WalletRole.TREASURY],
        max_amount_xrp=Decimal("50000"),
        requires_multi_sign=True,
        min_signers=3,
    )

    request = await ledger.get_request(result.approval_request.id)
    assert request.policy_snapshot["max_amount_xrp"] == "500000"
    assert request.policy_snapshot["min_signers"] == 2
    assert request.required_approvers == 2


@pytest.mark.asyncio
async def test_every_attempt_is_logged(db_session, authorizer, store, actors, correlation_id):
    await add_policy(store, actors, correlation_id)

    await authorizer.authorize(payment(), actors["requestor"], correlation_id)
    await authorizer.authorize(payment(amount="99999"), actors["requestor"], correlation_id)

    result = await db_session.execute(
        select(SigningActivity.outcome).where(SigningActivity.wallet_id == "w_ops_01")
    )
    assert sorted(o.value for o in result.scalars().all()) == ["ALLOW", "DENY"]


@pytest.mark.asyncio
@pytest.mark.parametrize("wallet, reason_code", [
    ({"wallet_status": WalletStatus.SUSPENDED}, "WALLET_SUSPENDED"),
    ({"wallet_status": WalletStatus.ARCHIVED}, "WALLET_ARCHIVED"),
])
async def test_unusable_wallet_is_denied_before_policy(authorizer, store, audit, actors, correlation_id, wallet, reason_code):
    await add_policy(store, actors, correlation_id)

    result = await authorizer.authorize(payment(**wallet), actors["requestor"], correlation_id)

    assert result.decision.outcome == DecisionOutcome.DENY
    assert result.decision.reason_code == reason_code
    assert result.decision.policy_id is None
    assert result.activity.reason == reason_code

    events = await audit.get_events_for_entity("WALLET", "w_ops_01")
    assert events[0].event_type == AuditEventType.SIGNING_DENIED


@pytest.mark.asyncio
async def test_legacy_key_storage_is_blocked_on_mainnet_only(authorizer, store, actors, correlation_id):
    await add_policy(store, actors, correlation_id, network=Network.MAINNET)
    await add_policy(store, actors, correlation_id)

    mainnet = payment(key_storage_type=KeyStorageType.LEGACY_DB).model_copy(update={"network": Network.MAINNET})
    blocked = await authorizer.authorize(mainnet, actors["requestor"], correlation_id)
    assert blocked.decision.reason_code == "LEGACY_MAINNET_BLOCKED"

    testnet = await authorizer.authorize(
        payment(key_storage_type=KeyStorageType.LEGACY_DB), actors["requestor"], correlation_id
    )
    assert testnet.decision.allowed


@pytest.mark.asyncio
async def test_multisig_policy_needs_multisig_wallet(authorizer, store, actors, correlation_id):
    await add_policy(
        store,
        actors,
        correlation_id,
        wallet_roles=[WalletRole.TREASURY],
        max_amount_xrp=Decimal("500000"),
        requires_multi_sign=True,
        min_signers=2,
    )
    treasury = dict(wallet_id="w_treasury_01", role=WalletRole.TREASURY, amount="1000")

    refused = await authorizer.authorize(payment(**treasury, multi_sign_enabled=False), actors["requestor"], correlation_id)
    assert refused.decision.outcome == DecisionOutcome.DENY
    assert refused.decision.reason_code == "MULTI_SIGN_REQUIRED"
    assert refused.approval_request is None

    # Not reported means not checked
    opened = await authorizer.authorize(payment(**treasury), actors["requestor"], correlation_id)
    assert opened.decision.outcome == DecisionOutcome.REQUIRE_MULTISIG
    assert opened.approval_request is not None
