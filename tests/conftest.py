"""Pytest configuration and fixtures."""
import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator
from uuid import uuid4

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from httpx import AsyncClient, ASGITransport

from xrpl_custody.config import Settings
from xrpl_custody.database import Base, get_db
from xrpl_custody.main import app
from xrpl_custody.models.user import User, UserRole
from xrpl_custody.schemas.common import ActorSnapshot
from xrpl_custody.services.approval import ApprovalLedger, SignatureCollector
from xrpl_custody.services.audit import AuditService
from xrpl_custody.services.auth import AuthService
from xrpl_custody.services.evaluator import PolicyEvaluator
from xrpl_custody.services.execution import ExecutionGate
from xrpl_custody.services.notifications import NotificationHub
from xrpl_custody.services.policy import PolicyStore
from xrpl_custody.api.deps import get_clock


# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Controllable time source injected into services."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with session_maker() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 30, 0))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        approval_default_required_approvers=2,
        approval_default_expires_in_hours=24,
        approval_rejection_threshold=1,
        rate_limit_window_seconds=60,
    )


@pytest.fixture
def hub() -> NotificationHub:
    return NotificationHub()


def make_user(username: str, role: UserRole, display_name: str) -> User:
    return User(
        id=str(uuid4()),
        username=username,
        email=f"{username}@example.com",
        display_name=display_name,
        password_hash="not-a-real-hash",
        role=role,
        is_active=True
    )


@pytest_asyncio.fixture(scope="function")
async def users(db_session: AsyncSession) -> dict:
    """Requestor, two approvers and an administrator."""
    people = {
        "requestor": make_user("r.ostrowski", UserRole.CUSTODY_OFFICER, "Rafal Ostrowski"),
        "approver_a": make_user("a.nakamura", UserRole.COMPLIANCE_OFFICER, "Aiko Nakamura"),
        "approver_b": make_user("b.adeyemi", UserRole.FINANCE_OFFICER, "Bola Adeyemi"),
        "admin": make_user("s.admin", UserRole.SUPER_ADMIN, "Sam Admin"),
        "viewer": make_user("v.iewer", UserRole.VIEWER, "Vic Iewer"),
    }
    db_session.add_all(people.values())
    await db_session.commit()
    return people


@pytest.fixture
def actors(users) -> dict:
    return {key: ActorSnapshot.from_user(user) for key, user in users.items()}


@pytest.fixture
def audit(db_session) -> AuditService:
    return AuditService(db_session)


@pytest.fixture
def store(db_session, audit) -> PolicyStore:
    return PolicyStore(db_session, audit)


@pytest.fixture
def evaluator(store) -> PolicyEvaluator:
    return PolicyEvaluator(store)


@pytest.fixture
def ledger(db_session, audit, hub, settings, clock) -> ApprovalLedger:
    return ApprovalLedger(db_session, audit, hub, settings, clock)


@pytest.fixture
def collector(ledger) -> SignatureCollector:
    return SignatureCollector(ledger)


@pytest.fixture
def gate(ledger) -> ExecutionGate:
    return ExecutionGate(ledger)


@pytest.fixture
def correlation_id() -> str:
    return f"test-{uuid4()}"


@pytest.fixture
def token_for(db_session):
    """Bearer headers for a given user."""
    auth_service = AuthService(db_session)

    def _headers(user: User) -> dict:
        token = auth_service.create_token(user).access_token
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, clock: FakeClock) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    # Override database dependency
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
