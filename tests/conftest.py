from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base, get_db
from app.api.deps import create_access_token
from app.models import Product, Warehouse, Shelf, StockCondition
from app.services.inventory import CorrectionEngine, Location
from tests.factories import (
    ProductFactory,
    WarehouseFactory,
    ShelfFactory,
    EmployeeFactory,
    TokenClaimsFactory,
)

# Test database URL (in-memory SQLite shared by every connection of the pool)
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def catalog(test_db: AsyncSession):
    """
    One product, two warehouses, shelves S1/S2 in W1 and S3 in W2.

    Committed so the engines start from a clean transaction.
    """
    product = Product(**ProductFactory())
    w1 = Warehouse(**WarehouseFactory())
    w2 = Warehouse(**WarehouseFactory())
    test_db.add_all([product, w1, w2])
    await test_db.flush()

    s1 = Shelf(**ShelfFactory(warehouse_id=w1.id))
    s2 = Shelf(**ShelfFactory(warehouse_id=w1.id))
    s3 = Shelf(**ShelfFactory(warehouse_id=w2.id))
    test_db.add_all([s1, s2, s3])
    await test_db.commit()

    return SimpleNamespace(product=product, w1=w1, w2=w2, s1=s1, s2=s2, s3=s3)


@pytest.fixture
def actor():
    return EmployeeFactory()


@pytest.fixture
def stock(test_db: AsyncSession, catalog, actor):
    """
    Put units into a bucket through the engine and return the bucket id.

    Usage:
        bucket_id = await stock(10)
        bucket_id = await stock(5, condition=StockCondition.damaged, shelf=catalog.s2)
    """
    engine = CorrectionEngine()

    async def _stock(quantity, condition=StockCondition.good, warehouse=None, shelf="default"):
        warehouse = warehouse or catalog.w1
        if shelf == "default":
            shelf = catalog.s1 if warehouse is catalog.w1 else None
        result = await engine.stock_in(
            test_db,
            product_id=catalog.product.id,
            location=Location(warehouse.id, shelf.id if shelf else None),
            quantity=quantity,
            actor=actor,
            condition=condition,
        )
        return result.bucket_id

    return _stock


@pytest_asyncio.fixture
async def client(test_db: AsyncSession):
    """Create test client with overridden database."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def token_claims():
    return TokenClaimsFactory()


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient, token_claims: dict):
    """Test client carrying a bearer token for an employee."""
    token = create_access_token(token_claims)
    client.headers["Authorization"] = f"Bearer {token}"
    return client
