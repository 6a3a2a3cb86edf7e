"""Signing authorization schemas."""
from decimal import Decimal
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from xrpl_custody.models.approval import ApprovalActionType, ApprovalEntityType
from xrpl_custody.models.policy import KeyStorageType, Network, TxType, WalletRole, WalletStatus
from xrpl_custody.schemas.approval import ApprovalRequestResponse
from xrpl_custody.schemas.policy import DecisionResponse


class SigningAuthorizationRequest(BaseModel):
    """
    Request to sign an XRPL transaction from a custodial wallet.

    The action/entity descriptors are only used when the policy requires
    multi-signature approval; they default to a TRANSFER against the wallet.

    ``wallet_status``, ``key_storage_type`` and ``multi_sign_enabled`` describe
    the wallet as the caller's registry knows it. Each is checked only when
    supplied.
    """
    wallet_id: str = Field(..., min_length=1, max_length=64)
    wallet_role: WalletRole
    network: Network
    tx_type: TxType
    amount: Optional[Decimal] = Field(None, ge=0)
    wallet_status: Optional[WalletStatus] = None
    key_storage_type: Optional[KeyStorageType] = None
    multi_sign_enabled: Optional[bool] = None
    action_type: Optional[ApprovalActionType] = None
    entity_type: Optional[ApprovalEntityType] = None
    entity_id: Optional[str] = Field(None, max_length=255)
    entity_name: Optional[str] = Field(None, max_length=255)
    payload: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "wallet_id": "w_treasury_01",
                "wallet_role": "TREASURY",
                "network": "testnet",
                "tx_type": "Payment",
                "amount": "250000",
                "payload": {"destination": "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"}
            }
        }


class SigningAuthorizationResponse(BaseModel):
    """Outcome of a signing authorization."""
    decision: DecisionResponse
    daily_tx_count: int
    approval_request: Optional[ApprovalRequestResponse] = None
    activity_id: str
