import os

# Set before farmshop is imported: no Redis cache, Celery runs tasks in-process
os.environ["REDIS_URL"] = ""
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import pytest
from decimal import Decimal
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from farmshop import auth, models
from farmshop.database import Base, get_db
from farmshop.main import app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def new_client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    clients = []

    def _new():
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _new
    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()


@pytest.fixture
async def client(new_client):
    return new_client()


@pytest.fixture
def make_user(session_factory):
    async def _make(username, password="pw123456", role=models.Role.CUSTOMER, email=None):
        async with session_factory() as db:
            user = models.User(
                username=username,
                email=email or f"{username}@x.com",
                hashed_password=auth.get_password_hash(password),
                role=role.value,
            )
            db.add(user)
            await db.commit()
            await db.refresh(user)
            return user
    return _make


@pytest.fixture
def login_client(new_client):
    async def _login(username, password="pw123456"):
        client = new_client()
        res = await client.post("/api/auth/login", json={"username": username, "password": password})
        assert res.status_code == 200, res.text
        return client
    return _login


@pytest.fixture
async def admin(make_user):
    return await make_user("admin", password="adminpass", role=models.Role.ADMIN)


@pytest.fixture
async def admin_client(admin, login_client):
    return await login_client("admin", "adminpass")


@pytest.fixture
async def alice(make_user):
    return await make_user("alice")


@pytest.fixture
async def alice_client(alice, login_client):
    return await login_client("alice")


@pytest.fixture
async def products(session_factory):
    """Product #1 at 500 and product #2 at 300, ten of each in stock."""
    async with session_factory() as db:
        vegetables = models.ProductCategory(name="Vegetables", description="Fresh from the field")
        db.add(vegetables)
        await db.flush()
        items = [
            models.Product(name="Sukuma Wiki Bunch", description="Organic kale", price=Decimal("500.00"),
                           stock=10, category_id=vegetables.id),
            models.Product(name="Free Range Eggs", description="Tray of 30, farm fresh", price=Decimal("300.00"),
                           stock=10),
        ]
        db.add_all(items)
        await db.commit()
        return items
