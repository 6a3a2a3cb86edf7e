"""Authentication schemas."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, EmailStr

from xrpl_custody.models.user import UserRole


class UserCreate(BaseModel):
    """Schema for creating a new user."""
    username: str = Field(..., min_length=3, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)
    display_name: Optional[str] = Field(None, max_length=255)
    role: UserRole = UserRole.VIEWER

    class Config:
        json_schema_extra = {
            "example": {
                "username": "m.okafor",
                "email": "m.okafor@example.com",
                "password": "securepassword123",
                "display_name": "Mira Okafor",
                "role": "CUSTODY_OFFICER"
            }
        }


class UserLogin(BaseModel):
    """Schema for user login."""
    username: str
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "username": "m.okafor",
                "password": "securepassword123"
            }
        }


class TokenResponse(BaseModel):
    """Schema for JWT token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    username: str
    display_name: str
    role: UserRole


class UserResponse(BaseModel):
    """Schema for user response."""
    id: str
    username: str
    email: str
    display_name: str
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
