"""User model for authentication and authorization."""
import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import String, Enum, DateTime, Boolean
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from xrpl_custody.database import Base


class UserRole(str, enum.Enum):
    """Platform roles relevant to custody operations."""
    SUPER_ADMIN = "SUPER_ADMIN"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    OPERATIONS_ADMIN = "OPERATIONS_ADMIN"
    TOKENIZATION_MANAGER = "TOKENIZATION_MANAGER"
    COMPLIANCE_OFFICER = "COMPLIANCE_OFFICER"
    RISK_ANALYST = "RISK_ANALYST"
    AUDITOR = "AUDITOR"
    FINANCE_OFFICER = "FINANCE_OFFICER"
    CUSTODY_OFFICER = "CUSTODY_OFFICER"
    VIEWER = "VIEWER"


# Roles allowed to manage signing policies
POLICY_ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.SYSTEM_ADMIN, UserRole.CUSTODY_OFFICER)

# Roles allowed to request signing / open approval requests
SIGNING_ROLES = (
    UserRole.SUPER_ADMIN,
    UserRole.CUSTODY_OFFICER,
    UserRole.TOKENIZATION_MANAGER,
    UserRole.OPERATIONS_ADMIN,
)

# Roles allowed to sign (approve or reject) approval requests
APPROVER_ROLES = (
    UserRole.SUPER_ADMIN,
    UserRole.CUSTODY_OFFICER,
    UserRole.COMPLIANCE_OFFICER,
    UserRole.FINANCE_OFFICER,
)

# Read-only oversight
OVERSIGHT_ROLES = (
    UserRole.SUPER_ADMIN,
    UserRole.SYSTEM_ADMIN,
    UserRole.COMPLIANCE_OFFICER,
    UserRole.RISK_ANALYST,
    UserRole.AUDITOR,
    UserRole.CUSTODY_OFFICER,
)


class User(Base):
    """User model for authentication."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4()))
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.VIEWER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
