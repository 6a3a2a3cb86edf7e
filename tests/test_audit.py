"""Unit tests for Audit hash chain."""
import pytest
from uuid import uuid4

from sqlalchemy import update

from xrpl_custody.exceptions import RequestNotFoundError
from xrpl_custody.models.approval import ApprovalActionType, ApprovalEntityType
from xrpl_custody.models.audit import AuditEvent, AuditEventType
from xrpl_custody.schemas.approval import ApprovalRequestCreate
from xrpl_custody.services.audit import AuditService


@pytest.mark.asyncio
async def test_audit_hash_chain_integrity(db_session):
    """Test that audit events form a valid hash chain."""
    audit = AuditService(db_session)
    correlation_id = f"test-{uuid4()}"

    # Create multiple events
    events = []
    for i in range(5):
        event = await audit.log_event(
            event_type=AuditEventType.POLICY_CREATED,
            correlation_id=correlation_id,
            actor_id=str(uuid4()),
            entity_type="POLICY",
            entity_id=str(uuid4()),
            payload={"index": i}
        )
        events.append(event)

    await db_session.commit()

    # Verify chain
    result = await audit.verify_chain()

    assert result.is_valid
    assert result.chain_intact
    assert result.total_events == 5
    assert result.verified_events == 5
    assert len(result.errors) == 0


@pytest.mark.asyncio
async def test_audit_hash_chain_prev_hash(db_session):
    """Test that each event references the previous event's hash."""
    audit = AuditService(db_session)
    correlation_id = f"test-{uuid4()}"

    # Create first event
    event1 = await audit.log_event(
        event_type=AuditEventType.APPROVAL_REQUESTED,
        correlation_id=correlation_id,
        actor_id=str(uuid4()),
        entity_type="APPROVAL_REQUEST",
        entity_id=str(uuid4()),
        payload={"test": 1}
    )

    # First event should have no prev_hash
    assert event1.prev_hash is None
    assert event1.hash is not None
    assert event1.sequence_number == 1

    # Create second event
    event2 = await audit.log_event(
        event_type=AuditEventType.APPROVAL_SIGNED,
        correlation_id=correlation_id,
        actor_id=str(uuid4()),
        entity_type="APPROVAL_REQUEST",
        entity_id=str(uuid4()),
        payload={"test": 2}
    )

    # Second event should reference first event's hash
    assert event2.prev_hash == event1.hash
    assert event2.sequence_number == 2
    assert event2.hash != event1.hash


@pytest.mark.asyncio
async def test_audit_hash_computation():
    """Test that hash is computed correctly and is deterministic."""
    from datetime import datetime

    event_id = str(uuid4())
    timestamp = datetime(2024, 1, 15, 12, 0, 0)

    hash1 = AuditEvent.compute_hash(
        event_id=event_id,
        timestamp=timestamp,
        event_type="APPROVAL_SIGNED",
        actor_id="actor-123",
        entity_type="APPROVAL_REQUEST",
        entity_id="request-456",
        payload={"key": "value"},
        prev_hash="abc123"
    )

    # Same inputs should produce same hash
    hash2 = AuditEvent.compute_hash(
        event_id=event_id,
        timestamp=timestamp,
        event_type="APPROVAL_SIGNED",
        actor_id="actor-123",
        entity_type="APPROVAL_REQUEST",
        entity_id="request-456",
        payload={"key": "value"},
        prev_hash="abc123"
    )

    assert hash1 == hash2
    assert len(hash1) == 64  # SHA-256 produces 64 hex characters

    # Different input should produce different hash
    hash3 = AuditEvent.compute_hash(
        event_id=event_id,
        timestamp=timestamp,
        event_type="APPROVAL_SIGNED",
        actor_id="actor-123",
        entity_type="APPROVAL_REQUEST",
        entity_id="request-456",
        payload={"key": "different"},  # Changed payload
        prev_hash="abc123"
    )

    assert hash3 != hash1


@pytest.mark.asyncio
async def test_tampered_payload_breaks_chain(db_session):
    audit = AuditService(db_session)
    correlation_id = f"test-{uuid4()}"

    events = []
    for i in range(3):
        events.append(await audit.log_event(
            event_type=AuditEventType.SIGNING_ALLOWED,
            correlation_id=correlation_id,
            entity_type="WALLET",
            entity_id="w_ops_01",
            payload={"amount": str(100 * (i + 1))}
        ))
    await db_session.commit()

    await db_session.execute(
        update(AuditEvent)
        .where(AuditEvent.id == events[1].id)
        .values(payload={"amount": "1"})
    )
    await db_session.commit()

    result = await audit.verify_chain()

    assert not result.is_valid
    assert result.verified_events == 2
    assert any(events[1].id in error for error in result.errors)


@pytest.mark.asyncio
async def test_approval_package_collects_history(ledger, collector, gate, audit, actors, clock, correlation_id):
    request = await ledger.create_request(
        ApprovalRequestCreate(
            action_type=ApprovalActionType.TOKEN_FREEZE,
            entity_type=ApprovalEntityType.TOKEN,
            entity_id="tok_harbor_a",
            payload={"holder": "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"},
            required_approvers=2,
        ),
        actors["requestor"],
        correlation_id,
        policy_snapshot={"policy_name": "Issuer controls", "min_signers": 2},
    )
    await collector.approve(request.id, actors["approver_a"], correlation_id)
    clock.advance(minutes=10)
    await collector.approve(request.id, actors["approver_b"], correlation_id)
    await gate.execute(request.id, actors["requestor"].user_id, correlation_id)

    package = await audit.build_approval_package(request.id, correlation_id)

    assert package.request_id == request.id
    assert package.request["status"] == "EXECUTED"
    assert package.policy_snapshot == {"policy_name": "Issuer controls", "min_signers": 2}
    assert [s["approver_name"] for s in package.signatures] == ["Aiko Nakamura", "Bola Adeyemi"]
    assert package.execution["executed_by"] == actors["requestor"].user_id
    assert [e.event_type for e in package.audit_events] == [
        AuditEventType.APPROVAL_REQUESTED,
        AuditEventType.APPROVAL_SIGNED,
        AuditEventType.APPROVAL_SIGNED,
        AuditEventType.APPROVAL_APPROVED,
        AuditEventType.APPROVAL_EXECUTED,
    ]
    assert len(package.package_hash) == 64


@pytest.mark.asyncio
async def test_approval_package_unknown_request(audit, correlation_id):
    with pytest.raises(RequestNotFoundError):
        await audit.build_approval_package(str(uuid4()), correlation_id)
