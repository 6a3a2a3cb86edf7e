"""Initial schema: users, signing policies, approvals, audit.

Revision ID: 001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


USER_ROLES = (
    'SUPER_ADMIN', 'SYSTEM_ADMIN', 'OPERATIONS_ADMIN', 'TOKENIZATION_MANAGER',
    'COMPLIANCE_OFFICER', 'RISK_ANALYST', 'AUDITOR', 'FINANCE_OFFICER',
    'CUSTODY_OFFICER', 'VIEWER',
)
NETWORKS = ('MAINNET', 'TESTNET', 'DEVNET')
WALLET_ROLES = ('ISSUER', 'TREASURY', 'OPS', 'CUSTODY', 'ESCROW', 'SETTLEMENT')
TX_TYPES = (
    'ACCOUNT_DELETE', 'ACCOUNT_SET', 'SET_REGULAR_KEY', 'SIGNER_LIST_SET', 'DEPOSIT_PREAUTH',
    'PAYMENT', 'TRUST_SET', 'OFFER_CREATE', 'OFFER_CANCEL',
    'AMM_BID', 'AMM_DEPOSIT', 'AMM_WITHDRAW', 'AMM_VOTE',
    'ESCROW_CREATE', 'ESCROW_FINISH', 'ESCROW_CANCEL',
    'CHECK_CREATE', 'CHECK_CASH', 'CHECK_CANCEL',
    'PAYMENT_CHANNEL_CREATE', 'PAYMENT_CHANNEL_CLAIM', 'PAYMENT_CHANNEL_FUND',
    'NFTOKEN_MINT', 'NFTOKEN_BURN', 'NFTOKEN_CREATE_OFFER', 'NFTOKEN_ACCEPT_OFFER', 'NFTOKEN_CANCEL_OFFER',
    'TICKET_CREATE', 'CLAWBACK', 'MPTOKEN_ISSUANCE_CREATE', 'MPTOKEN_ISSUANCE_SET', 'MPTOKEN_AUTHORIZE',
    'CONTRACT_CALL',
)
DECISION_OUTCOMES = ('ALLOW', 'REQUIRE_MULTISIG', 'DENY')
ACTION_TYPES = (
    'WALLET_PROVISION', 'WALLET_SUSPEND', 'WALLET_ARCHIVE',
    'TOKEN_ISSUE', 'TOKEN_MINT', 'TOKEN_BURN', 'TOKEN_FREEZE', 'TOKEN_CLAWBACK',
    'ESCROW_CREATE', 'ESCROW_FINISH', 'ESCROW_CANCEL', 'TRANSFER', 'SIGNER_LIST_UPDATE',
)
ENTITY_TYPES = ('WALLET', 'TOKEN', 'ESCROW', 'PAYMENT_CHANNEL', 'CHECK')
APPROVAL_STATUSES = ('PENDING', 'APPROVED', 'REJECTED', 'EXPIRED', 'EXECUTED', 'CANCELLED')
AUDIT_EVENT_TYPES = (
    'POLICY_CREATED', 'POLICY_UPDATED', 'POLICY_ACTIVATED', 'POLICY_DEACTIVATED', 'POLICY_EVALUATED',
    'SIGNING_ALLOWED', 'SIGNING_DENIED',
    'APPROVAL_REQUESTED', 'APPROVAL_SIGNED', 'APPROVAL_REJECTION_SIGNED', 'APPROVAL_APPROVED',
    'APPROVAL_REJECTED', 'APPROVAL_EXPIRED', 'APPROVAL_EXECUTED', 'APPROVAL_CANCELLED',
    'USER_LOGIN', 'USER_REGISTERED',
)


def upgrade() -> None:
    user_role = postgresql.ENUM(*USER_ROLES, name='userrole')
    network = postgresql.ENUM(*NETWORKS, name='network')
    wallet_role = postgresql.ENUM(*WALLET_ROLES, name='walletrole')
    tx_type = postgresql.ENUM(*TX_TYPES, name='txtype')
    outcome = postgresql.ENUM(*DECISION_OUTCOMES, name='decisionoutcome')
    for enum_type in (user_role, network, wallet_role, tx_type, outcome):
        enum_type.create(op.get_bind(), checkfirst=True)

    # Users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('username', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', postgresql.ENUM(*USER_ROLES, name='userrole', create_type=False), default='VIEWER'),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Signing policies table
    op.create_table(
        'signing_policies',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('network', postgresql.ENUM(*NETWORKS, name='network', create_type=False), nullable=False, index=True),
        sa.Column('wallet_roles', sa.JSON(), nullable=False),
        sa.Column('allowed_tx_types', sa.JSON(), nullable=False),
        sa.Column('max_amount_xrp', sa.Numeric(28, 6), nullable=True),
        sa.Column('max_daily_txs', sa.Integer(), nullable=True),
        sa.Column('rate_limit_per_minute', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('requires_multi_sign', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('min_signers', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), default=True, index=True),
        sa.Column('created_by', sa.String(64), nullable=True),
        sa.Column('updated_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.CheckConstraint('min_signers >= 1', name='ck_signing_policies_min_signers'),
        sa.CheckConstraint('rate_limit_per_minute > 0', name='ck_signing_policies_rate_limit'),
    )
    op.create_index('ix_signing_policies_network_active', 'signing_policies', ['network', 'is_active'])

    # Signing activity table
    op.create_table(
        'signing_activity',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('wallet_id', sa.String(64), nullable=False),
        sa.Column('network', postgresql.ENUM(*NETWORKS, name='network', create_type=False), nullable=False),
        sa.Column('wallet_role', postgresql.ENUM(*WALLET_ROLES, name='walletrole', create_type=False), nullable=False),
        sa.Column('tx_type', postgresql.ENUM(*TX_TYPES, name='txtype', create_type=False), nullable=False),
        sa.Column('amount', sa.Numeric(28, 6), nullable=True),
        sa.Column('outcome', postgresql.ENUM(*DECISION_OUTCOMES, name='decisionoutcome', create_type=False), nullable=False),
        sa.Column('reason', sa.String(255), nullable=True),
        sa.Column('policy_id', postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column('approval_request_id', postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column('requested_by', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, default=sa.func.now()),
    )
    op.create_index('ix_signing_activity_wallet_created', 'signing_activity', ['wallet_id', 'created_at'])

    # Approval requests table
    op.create_table(
        'approval_requests',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('action_type', sa.Enum(*ACTION_TYPES, name='approvalactiontype'), nullable=False, index=True),
        sa.Column('entity_type', sa.Enum(*ENTITY_TYPES, name='approvalentitytype'), nullable=False),
        sa.Column('entity_id', sa.String(255), nullable=False),
        sa.Column('entity_name', sa.String(255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('requested_by', sa.String(64), nullable=False, index=True),
        sa.Column('requested_by_name', sa.String(255), nullable=False),
        sa.Column('requested_by_role', postgresql.ENUM(*USER_ROLES, name='userrole', create_type=False), nullable=False),
        sa.Column('required_approvers', sa.Integer(), nullable=False),
        sa.Column('current_approvals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_rejections', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rejection_threshold', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.Enum(*APPROVAL_STATUSES, name='approvalstatus'), nullable=False, index=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('policy_id', postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column('policy_snapshot', sa.JSON(), nullable=True),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('executed_at', sa.DateTime(), nullable=True),
        sa.Column('executed_by', sa.String(64), nullable=True),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.Column('correlation_id', sa.String(255), nullable=True),
        sa.CheckConstraint('required_approvers >= 1', name='ck_approval_requests_required'),
        sa.CheckConstraint('current_approvals <= required_approvers', name='ck_approval_requests_quorum'),
        sa.CheckConstraint('expires_at > requested_at', name='ck_approval_requests_expiry'),
    )
    op.create_index('ix_approval_requests_status_requested', 'approval_requests', ['status', 'requested_at'])
    op.create_index('ix_approval_requests_entity', 'approval_requests', ['entity_type', 'entity_id'])

    # Approval signatures table
    op.create_table(
        'approval_signatures',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('request_id', postgresql.UUID(as_uuid=False), sa.ForeignKey('approval_requests.id'), nullable=False, index=True),
        sa.Column('approver_id', sa.String(64), nullable=False),
        sa.Column('approver_name', sa.String(255), nullable=False),
        sa.Column('approver_role', postgresql.ENUM(*USER_ROLES, name='userrole', create_type=False), nullable=False),
        sa.Column('approved', sa.Boolean(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('signed_at', sa.DateTime(), nullable=False),
    )
    op.create_index(
        'ix_approval_signatures_request_approver',
        'approval_signatures',
        ['request_id', 'approver_id'],
        unique=True
    )

    # Audit events table (append-only hash chain)
    op.create_table(
        'audit_events',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('sequence_number', sa.Integer(), unique=True, nullable=False),
        sa.Column('timestamp', sa.DateTime(), default=sa.func.now(), nullable=False, index=True),
        sa.Column('event_type', sa.Enum(*AUDIT_EVENT_TYPES, name='auditeventtype'), nullable=False, index=True),
        sa.Column('actor_id', sa.String(64), nullable=True, index=True),
        sa.Column('actor_type', sa.String(50), default='USER'),
        sa.Column('entity_type', sa.String(50), nullable=True),
        sa.Column('entity_id', sa.String(255), nullable=True, index=True),
        sa.Column('entity_refs', postgresql.JSONB(), nullable=True),
        sa.Column('payload', postgresql.JSONB(), nullable=True),
        sa.Column('correlation_id', sa.String(255), nullable=False, index=True),
        sa.Column('prev_hash', sa.String(64), nullable=True),
        sa.Column('hash', sa.String(64), nullable=False, index=True),
    )
    op.create_index('ix_audit_events_entity', 'audit_events', ['entity_type', 'entity_id'])
    op.create_index('ix_audit_events_timestamp_type', 'audit_events', ['timestamp', 'event_type'])


def downgrade() -> None:
    op.drop_table('audit_events')
    op.drop_table('approval_signatures')
    op.drop_table('approval_requests')
    op.drop_table('signing_activity')
    op.drop_table('signing_policies')
    op.drop_table('users')

    # Drop enums
    op.execute("DROP TYPE IF EXISTS auditeventtype")
    op.execute("DROP TYPE IF EXISTS approvalstatus")
    op.execute("DROP TYPE IF EXISTS approvalentitytype")
    op.execute("DROP TYPE IF EXISTS approvalactiontype")
    op.execute("DROP TYPE IF EXISTS decisionoutcome")
    op.execute("DROP TYPE IF EXISTS txtype")
    op.execute("DROP TYPE IF EXISTS walletrole")
    op.execute("DROP TYPE IF EXISTS network")
    op.execute("DROP TYPE IF EXISTS userrole")
