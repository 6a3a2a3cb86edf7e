"""Signing policy schemas."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from xrpl_custody.models.policy import Network, WalletRole, TxType, DecisionOutcome


class SigningPolicyUpsert(BaseModel):
    """
    Schema for creating or updating a signing policy.

    Range checks (non-empty sets, positive limits, signer counts) are enforced
    by the policy store so that every caller gets the same validation.
    """
    id: Optional[str] = None
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    network: Network
    wallet_roles: List[WalletRole]
    allowed_tx_types: List[TxType]
    max_amount_xrp: Optional[Decimal] = None
    max_daily_txs: Optional[int] = None
    rate_limit_per_minute: int = 60
    requires_multi_sign: bool = False
    min_signers: int = 1
    is_active: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Treasury payments (testnet)",
                "network": "testnet",
                "wallet_roles": ["TREASURY"],
                "allowed_tx_types": ["Payment"],
                "max_amount_xrp": "500000",
                "requires_multi_sign": True,
                "min_signers": 2,
                "rate_limit_per_minute": 10
            }
        }


class SigningPolicyActiveUpdate(BaseModel):
    """Schema for toggling a policy's active flag."""
    is_active: bool


class SigningPolicyResponse(BaseModel):
    """Schema for signing policy response."""
    id: str
    name: str
    description: Optional[str]
    network: Network
    wallet_roles: List[WalletRole]
    allowed_tx_types: List[TxType]
    max_amount_xrp: Optional[Decimal]
    max_daily_txs: Optional[int]
    rate_limit_per_minute: int
    requires_multi_sign: bool
    min_signers: int
    is_active: bool
    created_by: Optional[str]
    updated_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PolicyEvaluateRequest(BaseModel):
    """Schema for a dry-run policy evaluation."""
    network: Network
    wallet_role: WalletRole
    tx_type: TxType
    amount: Optional[Decimal] = Field(None, ge=0)
    daily_tx_count_so_far: Optional[int] = Field(None, ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "network": "testnet",
                "wallet_role": "TREASURY",
                "tx_type": "Payment",
                "amount": "400000"
            }
        }


class DecisionResponse(BaseModel):
    """Schema for a policy decision."""
    outcome: DecisionOutcome
    reason: Optional[str]
    reason_code: Optional[str]
    policy_id: Optional[str]
    policy_name: Optional[str]
    required_approvers: int
    rate_limit_per_minute: Optional[int]
    limits: Optional[dict]
    evaluated_policies: List[str] = []

    class Config:
        from_attributes = True
