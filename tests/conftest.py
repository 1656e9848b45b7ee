"""
Shared fixtures.

Every test gets its own SQLite file, engine and session. The environment
is pinned before ``tableside`` is imported so settings, the module-level
engine and the identity factories all see the test configuration.
"""

import os

os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./.tableside-test.db"
os.environ["JWT_SECRET"] = "test-signing-key-0123456789abcdef0123"
os.environ["BCRYPT_ROUNDS"] = "4"

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tableside.database import Base
from tableside.models import (
    Category,
    Component,
    Extra,
    Product,
    ProductComponent,
    ProductExtra,
    Restaurant,
    Table,
    User,
    UserRole,
)


@pytest.fixture
async def engine(tmp_path_factory):
    import tableside.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path_factory.mktemp('db') / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


# =============================================================================
# DATA FACTORIES
# =============================================================================

async def make_user(db, email: str = "customer@test.com", role: UserRole = UserRole.CUSTOMER) -> User:
    user = User(name=email.split("@")[0].title(), email=email, role=role)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def customer(db) -> User:
    return await make_user(db)


@pytest.fixture
async def restaurant(db) -> Restaurant:
    restaurant = Restaurant(name="Greek Restaurant", delivery_enabled=True)
    db.add(restaurant)
    await db.commit()
    return restaurant


@pytest.fixture
async def menu(db, restaurant):
    """
    One category and one product, Chicken Gyro at 12.99:

    - extras: Extra sauce 1.00, Halloumi 2.50
    - components: Olives 0.50 (removable), Pita 0 (not removable)
    """
    category = Category(restaurant_id=restaurant.id, name="Main Dishes")
    sauce = Extra(restaurant_id=restaurant.id, name="Extra sauce", price=Decimal("1.00"))
    halloumi = Extra(restaurant_id=restaurant.id, name="Halloumi", price=Decimal("2.50"))
    olives = Component(restaurant_id=restaurant.id, name="Olives", cost_impact=Decimal("0.50"))
    pita = Component(restaurant_id=restaurant.id, name="Pita", cost_impact=Decimal("0"))
    db.add_all([category, sauce, halloumi, olives, pita])
    await db.flush()

    gyro = Product(
        restaurant_id=restaurant.id,
        category_id=category.id,
        name="Chicken Gyro",
        base_price=Decimal("12.99"),
        is_active=True,
    )
    gyro.components = [
        ProductComponent(component_id=olives.id, is_removable=True),
        ProductComponent(component_id=pita.id, is_removable=False),
    ]
    gyro.extras = [ProductExtra(extra_id=sauce.id), ProductExtra(extra_id=halloumi.id)]
    db.add(gyro)
    await db.commit()

    # Start tests from rows loaded the way a request would load them
    db.expunge_all()
    gyro = (await db.execute(select(Product).where(Product.id == gyro.id))).scalar_one()

    return {
        "restaurant": restaurant,
        "category": category,
        "product": gyro,
        "sauce": sauce,
        "halloumi": halloumi,
        "olives": olives,
        "pita": pita,
    }


@pytest.fixture
async def tables(db, restaurant) -> list[Table]:
    rows = [
        Table(restaurant_id=restaurant.id, table_number="1", capacity=2),
        Table(restaurant_id=restaurant.id, table_number="2", capacity=4),
        Table(restaurant_id=restaurant.id, table_number="3", capacity=6),
    ]
    db.add_all(rows)
    await db.commit()
    return rows
