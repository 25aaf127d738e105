"""
Test Suite Configuration
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional
import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from storefront.config import ReportingSettings
from storefront.database.connection import build_engine, build_session_factory
from storefront.database.models import Base, Order, Product, Transaction, User
from storefront.database.stores import OrderStore, ProductStore, TransactionStore, UserStore, to_money
from storefront.reporting import ReportingAggregator


@pytest.fixture
def reporting_settings() -> ReportingSettings:
    """Reporting settings with a sequential cascade and a short refresh bound"""
    return ReportingSettings(
        cascade_concurrency=1,
        refresh_timeout_seconds=5.0,
        default_currency_rate=Decimal("190.00"),
    )


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test"""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def aggregator(session_factory, reporting_settings) -> ReportingAggregator:
    return ReportingAggregator(session_factory, settings=reporting_settings)


class Seeder:
    """Writes sample rows, each in its own committed session"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def product(
        self,
        name: str = "Rice 25kg",
        category: str = "groceries",
        price_usd: Any = "10.00",
        price_lrd: Optional[Any] = None,
        quantity_in_stock: int = 20,
    ) -> Product:
        if price_lrd is None:
            price_lrd = to_money(Decimal(str(price_usd)) * Decimal("190"))
        async with self.session_factory() as session:
            product = await ProductStore(session).create({
                "name": name,
                "category": category,
                "price_usd": price_usd,
                "price_lrd": price_lrd,
                "quantity_in_stock": quantity_in_stock,
            })
            await session.commit()
        return product

    async def transaction(
        self,
        product: Product,
        quantity: int = 1,
        payment_method: str = "cash",
        status: str = "completed",
        transaction_date: Optional[datetime] = None,
        price_usd: Optional[Any] = None,
        price_lrd: Optional[Any] = None,
    ) -> Transaction:
        fields = {
            "product_id": product.id,
            "product_name": product.name,
            "category": product.category,
            "quantity_bought": quantity,
            "price_at_sale_usd": Decimal(str(price_usd)) if price_usd is not None else product.price_usd,
            "price_at_sale_lrd": Decimal(str(price_lrd)) if price_lrd is not None else product.price_lrd,
            "buyer_name": "Walk-in customer",
            "payment_method": payment_method,
            "transaction_status": status,
        }
        if transaction_date is not None:
            fields["transaction_date"] = transaction_date
        async with self.session_factory() as session:
            transaction = await TransactionStore(session).create(fields)
            await session.commit()
        return transaction

    async def order(self, status: str = "pending", total_usd: Any = "10.00") -> Order:
        async with self.session_factory() as session:
            order = await OrderStore(session).create({
                "user_id": uuid.uuid4(),
                "items": [],
                "total_usd": Decimal(str(total_usd)),
                "total_lrd": to_money(Decimal(str(total_usd)) * Decimal("190")),
                "status": status,
                "payment_method": "mobile_money",
            })
            await session.commit()
        return order

    async def user(self, role: str = "customer") -> User:
        async with self.session_factory() as session:
            user = await UserStore(session).create({
                "username": f"user-{uuid.uuid4().hex[:8]}",
                "phone_number": "+231770000000",
                "role": role,
            })
            await session.commit()
        return user


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)
