"""Approval request schemas."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from xrpl_custody.models.approval import ApprovalActionType, ApprovalEntityType, ApprovalStatus
from xrpl_custody.models.user import UserRole


class ApprovalRequestCreate(BaseModel):
    """Schema for opening an approval request.

    ``required_approvers`` and ``expires_in_hours`` fall back to the configured
    defaults when omitted; the ledger validates their ranges.
    """
    action_type: ApprovalActionType
    entity_type: ApprovalEntityType
    entity_id: str = Field(..., min_length=1, max_length=255)
    entity_name: Optional[str] = Field(None, max_length=255)
    payload: Dict[str, Any] = Field(default_factory=dict)
    required_approvers: Optional[int] = None
    expires_in_hours: Optional[float] = None

    class Config:
        json_schema_extra = {
            "example": {
                "action_type": "TOKEN_CLAWBACK",
                "entity_type": "TOKEN",
                "entity_id": "tok_8f2c",
                "entity_name": "Harbor Tower Class A",
                "payload": {"holder": "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe", "amount": "1500"},
                "required_approvers": 2,
                "expires_in_hours": 24
            }
        }


class SignatureCreate(BaseModel):
    """Schema for approving or rejecting a request."""
    approved: bool
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "approved": True,
                "notes": "Verified holder consent and clawback order"
            }
        }


class SignatureNotes(BaseModel):
    """Optional notes for the approve and reject shortcuts."""
    notes: Optional[str] = None


class SignatureResponse(BaseModel):
    """Schema for approval signature response."""
    id: str
    request_id: str
    approver_id: str
    approver_name: str
    approver_role: UserRole
    approved: bool
    notes: Optional[str]
    signed_at: datetime

    class Config:
        from_attributes = True


class ApprovalRequestResponse(BaseModel):
    """Schema for approval request response."""
    id: str
    action_type: ApprovalActionType
    entity_type: ApprovalEntityType
    entity_id: str
    entity_name: Optional[str]
    payload: Dict[str, Any]
    requested_by: str
    requested_by_name: str
    requested_by_role: UserRole
    required_approvers: int
    current_approvals: int
    current_rejections: int
    status: ApprovalStatus
    rejection_reason: Optional[str]
    policy_id: Optional[str]
    policy_snapshot: Optional[dict]
    requested_at: datetime
    expires_at: datetime
    executed_at: Optional[datetime]
    executed_by: Optional[str]

    class Config:
        from_attributes = True


class ApprovalDetailResponse(BaseModel):
    """Approval request together with its signatures."""
    request: ApprovalRequestResponse
    signatures: List[SignatureResponse] = []


class SignResultResponse(BaseModel):
    """Result of a signature submission."""
    signature: SignatureResponse
    request: ApprovalRequestResponse
