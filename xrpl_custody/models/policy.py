"""Signing policy models."""
import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import String, Enum, DateTime, Numeric, Boolean, Integer, Text, JSON, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from xrpl_custody.database import Base


class Network(str, enum.Enum):
    """XRPL networks."""
    MAINNET = "mainnet"
    TESTNET = "testnet"
    DEVNET = "devnet"


class WalletRole(str, enum.Enum):
    """Functional category of a custodial key."""
    ISSUER = "ISSUER"
    TREASURY = "TREASURY"
    OPS = "OPS"
    CUSTODY = "CUSTODY"
    ESCROW = "ESCROW"
    SETTLEMENT = "SETTLEMENT"


class WalletStatus(str, enum.Enum):
    """Lifecycle state of a custodial wallet, as reported by the caller."""
    PROVISIONING = "PROVISIONING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    ARCHIVED = "ARCHIVED"


class KeyStorageType(str, enum.Enum):
    """Where a wallet's signing key lives."""
    LEGACY_DB = "LEGACY_DB"
    VAULT = "VAULT"


class TxType(str, enum.Enum):
    """XRPL transaction types a policy can allow."""
    # Account management
    ACCOUNT_DELETE = "AccountDelete"
    ACCOUNT_SET = "AccountSet"
    SET_REGULAR_KEY = "SetRegularKey"
    SIGNER_LIST_SET = "SignerListSet"
    DEPOSIT_PREAUTH = "DepositPreauth"
    # Payments and trust lines
    PAYMENT = "Payment"
    TRUST_SET = "TrustSet"
    # DEX
    OFFER_CREATE = "OfferCreate"
    OFFER_CANCEL = "OfferCancel"
    # AMM
    AMM_BID = "AMMBid"
    AMM_DEPOSIT = "AMMDeposit"
    AMM_WITHDRAW = "AMMWithdraw"
    AMM_VOTE = "AMMVote"
    # Escrow
    ESCROW_CREATE = "EscrowCreate"
    ESCROW_FINISH = "EscrowFinish"
    ESCROW_CANCEL = "EscrowCancel"
    # Checks
    CHECK_CREATE = "CheckCreate"
    CHECK_CASH = "CheckCash"
    CHECK_CANCEL = "CheckCancel"
    # Payment channels
    PAYMENT_CHANNEL_CREATE = "PaymentChannelCreate"
    PAYMENT_CHANNEL_CLAIM = "PaymentChannelClaim"
    PAYMENT_CHANNEL_FUND = "PaymentChannelFund"
    # NFTokens
    NFTOKEN_MINT = "NFTokenMint"
    NFTOKEN_BURN = "NFTokenBurn"
    NFTOKEN_CREATE_OFFER = "NFTokenCreateOffer"
    NFTOKEN_ACCEPT_OFFER = "NFTokenAcceptOffer"
    NFTOKEN_CANCEL_OFFER = "NFTokenCancelOffer"
    # Tickets
    TICKET_CREATE = "TicketCreate"
    # Token issuance controls
    CLAWBACK = "Clawback"
    MPTOKEN_ISSUANCE_CREATE = "MPTokenIssuanceCreate"
    MPTOKEN_ISSUANCE_SET = "MPTokenIssuanceSet"
    MPTOKEN_AUTHORIZE = "MPTokenAuthorize"
    # Platform custom
    CONTRACT_CALL = "ContractCall"


class DecisionOutcome(str, enum.Enum):
    """Policy evaluation outcome."""
    ALLOW = "ALLOW"
    REQUIRE_MULTISIG = "REQUIRE_MULTISIG"
    DENY = "DENY"


class SigningPolicy(Base):
    """Named rule set constraining what a (network, wallet role) pair may sign."""
    __tablename__ = "signing_policies"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Scope
    network: Mapped[Network] = mapped_column(Enum(Network), nullable=False, index=True)
    wallet_roles: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    allowed_tx_types: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Limits
    max_amount_xrp: Mapped[Optional[Decimal]] = mapped_column(Numeric(28, 6), nullable=True)
    max_daily_txs: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rate_limit_per_minute: Mapped[int] = mapped_column(Integer, nullable=False, default=60)

    # Multi-sign requirement
    requires_multi_sign: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_signers: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Soft delete
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_signing_policies_network_active", "network", "is_active"),
        CheckConstraint("min_signers >= 1", name="ck_signing_policies_min_signers"),
        CheckConstraint("rate_limit_per_minute > 0", name="ck_signing_policies_rate_limit"),
    )

    def applies_to(self, network: Network, wallet_role: WalletRole) -> bool:
        """Check whether the policy scope covers the (network, role) pair."""
        return self.network == network and wallet_role.value in (self.wallet_roles or [])

    def allows_tx_type(self, tx_type: TxType) -> bool:
        return tx_type.value in (self.allowed_tx_types or [])

    def limits_snapshot(self) -> dict:
        """Limit values as evaluated, for copying onto approval records."""
        return {
            "policy_id": self.id,
            "policy_name": self.name,
            "max_amount_xrp": str(self.max_amount_xrp) if self.max_amount_xrp is not None else None,
            "max_daily_txs": self.max_daily_txs,
            "rate_limit_per_minute": self.rate_limit_per_minute,
            "requires_multi_sign": self.requires_multi_sign,
            "min_signers": self.min_signers,
        }

    def __repr__(self) -> str:
        return f"<SigningPolicy {self.name} ({self.network.value})>"


class SigningActivity(Base):
    """Signing attempt log used for daily counts and rate limiting."""
    __tablename__ = "signing_activity"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4()))
    wallet_id: Mapped[str] = mapped_column(String(64), nullable=False)
    network: Mapped[Network] = mapped_column(Enum(Network), nullable=False)
    wallet_role: Mapped[WalletRole] = mapped_column(Enum(WalletRole), nullable=False)
    tx_type: Mapped[TxType] = mapped_column(Enum(TxType), nullable=False)
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(28, 6), nullable=True)

    outcome: Mapped[DecisionOutcome] = mapped_column(Enum(DecisionOutcome), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    policy_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), nullable=True)
    approval_request_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), nullable=True)

    requested_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_signing_activity_wallet_created", "wallet_id", "created_at"),
    )
