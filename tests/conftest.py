import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ALLOW_SELF_REGISTRATION"] = "false"

from typing import AsyncGenerator, Awaitable, Callable, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kas.auth.models import User
from kas.auth.services import create_user
from kas.core.enums import Role
from kas.db.schema_check import ensure_tables
from kas.db.session import get_db
from kas.main import app


ADMIN_PASSWORD = "bendahara-secret"
STUDENT_PASSWORD = "siswa-secret"


@pytest.fixture()
async def engine(tmp_path):
    """A fresh SQLite file per test; every session gets its own connection."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'kas-test.db'}", future=True)
    await ensure_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for test setup and assertions, separate from the ones requests use."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def admin_user(db_session: AsyncSession) -> User:
    return await create_user(
        db_session,
        username="bendahara",
        password=ADMIN_PASSWORD,
        full_name="Bendahara Kelas",
        role=Role.ADMIN,
    )


@pytest.fixture()
async def student_user(db_session: AsyncSession) -> User:
    return await create_user(
        db_session,
        username="siswa1",
        password=STUDENT_PASSWORD,
        full_name="Siti Aminah",
        role=Role.USER,
        kelas="XI RPL 1",
        nis="20230001",
    )


@pytest.fixture()
async def other_student(db_session: AsyncSession) -> User:
    return await create_user(
        db_session,
        username="siswa2",
        password=STUDENT_PASSWORD,
        full_name="Budi Santoso",
        role=Role.USER,
        kelas="XI RPL 1",
        nis="20230002",
    )


@pytest.fixture()
def login_as(client: AsyncClient) -> Callable[..., Awaitable[Dict[str, str]]]:
    """Log in through the API and return bearer headers for the token."""

    async def _login(username: str, password: str, admin: bool = False) -> Dict[str, str]:
        path = "/api/v1/auth/admin-login" if admin else "/api/v1/auth/login"
        response = await client.post(path, json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login


@pytest.fixture()
async def admin_headers(admin_user: User, login_as) -> Dict[str, str]:
    return await login_as(admin_user.username, ADMIN_PASSWORD, admin=True)


@pytest.fixture()
async def student_headers(student_user: User, login_as) -> Dict[str, str]:
    return await login_as(student_user.username, STUDENT_PASSWORD)
