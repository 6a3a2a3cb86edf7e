"""Authentication service with JWT."""
import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from xrpl_custody.config import get_settings
from xrpl_custody.exceptions import UserExistsError
from xrpl_custody.models.user import User
from xrpl_custody.schemas.auth import UserCreate, TokenResponse


settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
logger = logging.getLogger(__name__)


class AuthService:
    """Service for authentication and identity lookup."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_user(self, user_data: UserCreate) -> User:
        """Create a new local user."""
        existing = await self.db.execute(
            select(User).where(
                (User.username == user_data.username) |
                (User.email == user_data.email)
            )
        )
        if existing.scalar_one_or_none():
            raise UserExistsError("User with this username or email already exists")

        # bcrypt has 72 byte limit, truncate if needed
        password = user_data.password[:72]

        user = User(
            id=str(uuid4()),
            username=user_data.username,
            email=user_data.email,
            display_name=user_data.display_name or user_data.username,
            password_hash=pwd_context.hash(password),
            role=user_data.role
        )

        self.db.add(user)
        await self.db.flush()

        logger.info(f"Registered user {user.username} with role {user.role.value}")
        return user

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        """Authenticate user with username and password."""
        result = await self.db.execute(
            select(User).where(User.username == username)
        )
        user = result.scalar_one_or_none()

        if not user or not user.is_active:
            return None

        # bcrypt has 72 byte limit, truncate for consistency
        if not pwd_context.verify(password[:72], user.password_hash):
            return None

        return user

    def create_token(self, user: User) -> TokenResponse:
        """Create JWT token for user."""
        expire = datetime.utcnow() + timedelta(minutes=settings.jwt_expire_minutes)

        payload = {
            "sub": user.id,
            "username": user.username,
            "name": user.display_name,
            "role": user.role.value,
            "exp": expire
        }

        token = jwt.encode(
            payload,
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm
        )

        return TokenResponse(
            access_token=token,
            token_type="bearer",
            expires_in=settings.jwt_expire_minutes * 60,
            user_id=user.id,
            username=user.username,
            display_name=user.display_name,
            role=user.role
        )

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def verify_token(self, token: str) -> Optional[dict]:
        """Verify JWT token and return payload."""
        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=[settings.jwt_algorithm]
            )
            return payload
        except JWTError:
            return None
