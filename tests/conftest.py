import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.models import AppUser
from app.auth.security import create_access_token
from app.database import Base, get_db
from app.main import app

# In-memory SQLite keeps the suite self-contained; StaticPool shares the one
# connection so every session sees the same database.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine():
    """Create a fresh schema for each test."""
    # Import models to register them
    from app.achievements import models as achievements_models  # noqa: F401
    from app.quizzes import models as quizzes_models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(engine):
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(db_session):
    """Create a test client bound to the test database session."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


async def create_test_user(
    db_session, user_id: int = 1, tier: str = "free", **fields
) -> AppUser:
    """Helper to create a user with the given subscription fields."""
    user = AppUser(
        id=user_id,
        email=f"testuser{user_id}@example.com",
        token_version=0,
        tier=tier,
        **fields,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def test_user(db_session) -> AppUser:
    return await create_test_user(db_session)


@pytest.fixture
async def premium_user(db_session) -> AppUser:
    return await create_test_user(db_session, user_id=2, tier="premium")


def auth_headers_for(user: AppUser) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.token_version)}"}


@pytest.fixture
def auth_headers(test_user) -> dict:
    """Get authorization headers for the free test user."""
    return auth_headers_for(test_user)


@pytest.fixture
def premium_headers(premium_user) -> dict:
    return auth_headers_for(premium_user)
