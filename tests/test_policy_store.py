"""Tests for signing policy persistence."""
import pytest
from decimal import Decimal

from xrpl_custody.exceptions import PolicyNotFoundError, ValidationError
from xrpl_custody.models.audit import AuditEventType
from xrpl_custody.models.policy import Network, TxType, WalletRole
from xrpl_custody.schemas.policy import SigningPolicyUpsert


def treasury_policy(**overrides) -> SigningPolicyUpsert:
    fields = dict(
        name="Treasury payments",
        network=Network.TESTNET,
        wallet_roles=[WalletRole.TREASURY],
        allowed_tx_types=[TxType.PAYMENT],
        max_amount_xrp=Decimal("500000"),
        requires_multi_sign=True,
        min_signers=2,
    )
    fields.update(overrides)
    return SigningPolicyUpsert(**fields)


@pytest.mark.asyncio
async def test_create_policy_writes_audit_event(store, audit, actors, correlation_id):
    admin = actors["admin"]
    policy = await store.upsert_policy(treasury_policy(), admin.user_id, correlation_id)

    assert policy.id
    assert policy.wallet_roles == ["TREASURY"]
    assert policy.allowed_tx_types == ["Payment"]
    assert policy.is_active
    assert policy.created_by == admin.user_id

    events = await audit.get_events_for_entity("POLICY", policy.id)
    assert [e.event_type for e in events] == [AuditEventType.POLICY_CREATED]
    assert events[0].payload["max_amount_xrp"] == "500000"
    assert events[0].payload["min_signers"] == 2


@pytest.mark.asyncio
async def test_update_policy_by_id(store, audit, actors, correlation_id):
    admin = actors["admin"]
    policy = await store.upsert_policy(treasury_policy(), admin.user_id, correlation_id)

    updated = await store.upsert_policy(
        treasury_policy(id=policy.id, max_amount_xrp=Decimal("750000"), max_daily_txs=20),
        admin.user_id,
        correlation_id
    )

    assert updated.id == policy.id
    assert updated.max_amount_xrp == Decimal("750000")
    assert updated.max_daily_txs == 20

    events = await audit.get_events_for_entity("POLICY", policy.id)
    assert [e.event_type for e in events] == [
        AuditEventType.POLICY_CREATED,
        AuditEventType.POLICY_UPDATED,
    ]


@pytest.mark.asyncio
async def test_update_unknown_policy_raises(store, actors, correlation_id):
    with pytest.raises(PolicyNotFoundError):
        await store.upsert_policy(
            treasury_policy(id="9b1f3c7e-0000-4000-8000-000000000000"),
            actors["admin"].user_id,
            correlation_id
        )


@pytest.mark.asyncio
async def test_invalid_policy_is_rejected_with_field_details(store, actors, correlation_id):
    bad = treasury_policy(
        name="  ",
        wallet_roles=[],
        allowed_tx_types=[],
        max_amount_xrp=Decimal("0"),
        rate_limit_per_minute=0,
        min_signers=1,
    )

    with pytest.raises(ValidationError) as exc_info:
        await store.upsert_policy(bad, actors["admin"].user_id, correlation_id)

    details = exc_info.value.details
    assert set(details) == {
        "name",
        "wallet_roles",
        "allowed_tx_types",
        "max_amount_xrp",
        "rate_limit_per_minute",
        "min_signers",
    }


@pytest.mark.asyncio
async def test_single_sign_policy_stores_one_signer(store, actors, correlation_id):
    policy = await store.upsert_policy(
        treasury_policy(requires_multi_sign=False, min_signers=3),
        actors["admin"].user_id,
        correlation_id
    )

    assert policy.min_signers == 1


@pytest.mark.asyncio
async def test_duplicate_roles_and_types_are_collapsed(store, actors, correlation_id):
    policy = await store.upsert_policy(
        treasury_policy(
            wallet_roles=[WalletRole.TREASURY, WalletRole.OPS, WalletRole.TREASURY],
            allowed_tx_types=[TxType.PAYMENT, TxType.PAYMENT, TxType.ESCROW_CREATE],
        ),
        actors["admin"].user_id,
        correlation_id
    )

    assert policy.wallet_roles == ["TREASURY", "OPS"]
    assert policy.allowed_tx_types == ["Payment", "EscrowCreate"]


@pytest.mark.asyncio
async def test_deactivate_is_soft_and_audited_once(store, audit, actors, correlation_id):
    admin = actors["admin"]
    policy = await store.upsert_policy(treasury_policy(), admin.user_id, correlation_id)

    await store.set_active(policy.id, False, admin.user_id, correlation_id)
    # Repeating the same flag is a no-op
    await store.set_active(policy.id, False, admin.user_id, correlation_id)

    assert (await store.get_policy_by_id(policy.id)).is_active is False
    assert await store.get_policy(Network.TESTNET, WalletRole.TREASURY) is None

    await store.set_active(policy.id, True, admin.user_id, correlation_id)
    assert (await store.get_policy(Network.TESTNET, WalletRole.TREASURY)).id == policy.id

    events = await audit.get_events_for_entity("POLICY", policy.id)
    assert [e.event_type for e in events] == [
        AuditEventType.POLICY_CREATED,
        AuditEventType.POLICY_DEACTIVATED,
        AuditEventType.POLICY_ACTIVATED,
    ]


@pytest.mark.asyncio
async def test_set_active_unknown_policy_raises(store, actors, correlation_id):
    with pytest.raises(PolicyNotFoundError):
        await store.set_active("9b1f3c7e-0000-4000-8000-000000000001", False, actors["admin"].user_id, correlation_id)


@pytest.mark.asyncio
async def test_get_policy_picks_most_restrictive(store, actors, correlation_id):
    admin = actors["admin"].user_id
    await store.upsert_policy(
        treasury_policy(name="wide", max_amount_xrp=None, requires_multi_sign=False, min_signers=1),
        admin,
        correlation_id
    )
    strict = await store.upsert_policy(
        treasury_policy(name="strict", max_amount_xrp=Decimal("100000")),
        admin,
        correlation_id
    )
    await store.upsert_policy(
        treasury_policy(name="mainnet", network=Network.MAINNET, max_amount_xrp=Decimal("1")),
        admin,
        correlation_id
    )

    selected = await store.get_policy(Network.TESTNET, WalletRole.TREASURY)

    assert selected.id == strict.id
    assert await store.get_policy(Network.DEVNET, WalletRole.TREASURY) is None
    assert await store.get_policy(Network.TESTNET, WalletRole.ISSUER) is None


@pytest.mark.asyncio
async def test_list_policies_filters(store, actors, correlation_id):
    admin = actors["admin"].user_id
    treasury = await store.upsert_policy(treasury_policy(), admin, correlation_id)
    issuer = await store.upsert_policy(
        treasury_policy(name="Issuer controls", wallet_roles=[WalletRole.ISSUER], allowed_tx_types=[TxType.CLAWBACK]),
        admin,
        correlation_id
    )
    await store.upsert_policy(treasury_policy(name="Mainnet treasury", network=Network.MAINNET), admin, correlation_id)
    await store.set_active(issuer.id, False, admin, correlation_id)

    testnet = await store.list_policies(network=Network.TESTNET)
    assert {p.id for p in testnet} == {treasury.id, issuer.id}

    active_testnet = await store.list_policies(network=Network.TESTNET, is_active=True)
    assert [p.id for p in active_testnet] == [treasury.id]

    issuers = await store.list_policies(wallet_role=WalletRole.ISSUER)
    assert [p.id for p in issuers] == [issuer.id]

    assert len(await store.list_policies(limit=1)) == 1
