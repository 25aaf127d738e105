"""
Record Stores

Thin async repositories over the operational tables. Each store wraps one
``AsyncSession``; committing is the caller's job so several store calls can
share a unit of work.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple
import uuid

from sqlalchemy import delete as sa_delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import Order, Product, Transaction, TransactionStatus, User

CENTS = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Round an amount to cents."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class ProductStore:
    """Product catalog access. Keeps total values in step with price and stock."""

    PRICE_FIELDS = ("price_usd", "price_lrd", "quantity_in_stock")

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_all(self) -> List[Product]:
        """All products in storage (insertion) order."""
        result = await self.session.execute(
            select(Product).order_by(Product.created_at, Product.id)
        )
        return list(result.scalars().all())

    async def list_newest(self) -> List[Product]:
        result = await self.session.execute(
            select(Product).order_by(Product.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_by_category(self, category: str) -> List[Product]:
        result = await self.session.execute(
            select(Product)
            .where(Product.category == category)
            .order_by(Product.created_at.desc())
        )
        return list(result.scalars().all())

    async def search(self, query: str) -> List[Product]:
        """Case-insensitive match on name, category or description."""
        pattern = f"%{query}%"
        result = await self.session.execute(
            select(Product)
            .where(
                or_(
                    Product.name.ilike(pattern),
                    Product.category.ilike(pattern),
                    Product.description.ilike(pattern),
                )
            )
            .order_by(Product.created_at.desc())
        )
        return list(result.scalars().all())

    async def count(self) -> int:
        return (await self.session.execute(select(func.count(Product.id)))).scalar() or 0

    async def get(self, product_id: uuid.UUID) -> Optional[Product]:
        return await self.session.get(Product, product_id)

    async def create(self, fields: Dict[str, Any]) -> Product:
        product = Product(**fields)
        product.price_usd = to_money(product.price_usd)
        product.price_lrd = to_money(product.price_lrd)
        product.quantity_in_stock = product.quantity_in_stock or 0
        self._recompute_totals(product)
        self.session.add(product)
        await self.session.flush()
        return product

    async def update(self, product_id: uuid.UUID, fields: Dict[str, Any]) -> Optional[Product]:
        """
        Apply ``fields`` to a product.

        Total values are recomputed whenever a price or the stock level
        changes. Returns None when the product does not exist.
        """
        product = await self.get(product_id)
        if product is None:
            return None

        for name, value in fields.items():
            if name in ("price_usd", "price_lrd"):
                value = to_money(value)
            setattr(product, name, value)

        if any(name in fields for name in self.PRICE_FIELDS):
            self._recompute_totals(product)

        await self.session.flush()
        return product

    async def delete(self, product_id: uuid.UUID) -> bool:
        result = await self.session.execute(sa_delete(Product).where(Product.id == product_id))
        return result.rowcount > 0

    @staticmethod
    def _recompute_totals(product: Product) -> None:
        product.total_value_usd = to_money(Decimal(product.price_usd) * product.quantity_in_stock)
        product.total_value_lrd = to_money(Decimal(product.price_lrd) * product.quantity_in_stock)


class OrderStore:
    """Customer order access."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def count_all(self) -> int:
        return (await self.session.execute(select(func.count(Order.id)))).scalar() or 0

    async def count_by_status(self, status: str) -> int:
        result = await self.session.execute(
            select(func.count(Order.id)).where(Order.status == status)
        )
        return result.scalar() or 0

    async def count_grouped_by_status(self) -> Dict[str, int]:
        """Order counts keyed by every status present in storage."""
        result = await self.session.execute(
            select(Order.status, func.count(Order.id).label("count")).group_by(Order.status)
        )
        return {row.status: row.count for row in result.all()}

    async def create(self, fields: Dict[str, Any]) -> Order:
        order = Order(**fields)
        self.session.add(order)
        await self.session.flush()
        return order

    async def get(self, order_id: uuid.UUID) -> Optional[Order]:
        return await self.session.get(Order, order_id)

    async def list(self, status: Optional[str] = None, user_id: Optional[uuid.UUID] = None) -> List[Order]:
        query = select(Order)
        if status:
            query = query.where(Order.status == status)
        if user_id:
            query = query.where(Order.user_id == user_id)
        result = await self.session.execute(query.order_by(Order.created_at.desc()))
        return list(result.scalars().all())

    async def update_status(self, order_id: uuid.UUID, status: str) -> Optional[Order]:
        order = await self.get(order_id)
        if order is None:
            return None
        order.status = status
        await self.session.flush()
        return order


class TransactionStore:
    """Sale transaction access."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_completed(self, since: Optional[datetime] = None) -> List[Transaction]:
        """Completed transactions in storage (insertion) order."""
        query = select(Transaction).where(
            Transaction.transaction_status == TransactionStatus.COMPLETED.value
        )
        if since is not None:
            query = query.where(Transaction.transaction_date >= since)
        result = await self.session.execute(query.order_by(Transaction.created_at, Transaction.id))
        return list(result.scalars().all())

    async def daily_totals(self, start: datetime, end: datetime) -> List[Tuple[Any, Decimal, Decimal, int]]:
        """
        Completed sales in ``[start, end]`` grouped by calendar day.

        Returns:
            Rows of (day, usd_total, lrd_total, count) ascending by day
        """
        day = func.date(Transaction.transaction_date)
        result = await self.session.execute(
            select(
                day.label("day"),
                func.sum(Transaction.total_bought_usd).label("usd"),
                func.sum(Transaction.total_bought_lrd).label("lrd"),
                func.count(Transaction.id).label("count"),
            )
            .where(
                Transaction.transaction_status == TransactionStatus.COMPLETED.value,
                Transaction.transaction_date >= start,
                Transaction.transaction_date <= end,
            )
            .group_by(day)
            .order_by(day)
        )
        return [(row.day, row.usd, row.lrd, row.count) for row in result.all()]

    async def create(self, fields: Dict[str, Any]) -> Transaction:
        transaction = Transaction(**fields)
        transaction.price_at_sale_usd = to_money(transaction.price_at_sale_usd)
        transaction.price_at_sale_lrd = to_money(transaction.price_at_sale_lrd)
        transaction.total_bought_usd = to_money(transaction.price_at_sale_usd * transaction.quantity_bought)
        transaction.total_bought_lrd = to_money(transaction.price_at_sale_lrd * transaction.quantity_bought)
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def get(self, transaction_id: uuid.UUID) -> Optional[Transaction]:
        return await self.session.get(Transaction, transaction_id)

    async def list(self, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[Transaction]:
        query = select(Transaction)
        if status:
            query = query.where(Transaction.transaction_status == status)
        result = await self.session.execute(
            query.order_by(Transaction.transaction_date.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    async def update_status(self, transaction_id: uuid.UUID, status: str) -> Optional[Transaction]:
        transaction = await self.get(transaction_id)
        if transaction is None:
            return None
        transaction.transaction_status = status
        await self.session.flush()
        return transaction


class UserStore:
    """User account access. Passwords and sessions live elsewhere."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def count_by_role(self, role: str) -> int:
        result = await self.session.execute(
            select(func.count(User.id)).where(User.role == role)
        )
        return result.scalar() or 0

    async def create(self, fields: Dict[str, Any]) -> User:
        user = User(**fields)
        self.session.add(user)
        await self.session.flush()
        return user

    async def get(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def list(self, role: Optional[str] = None) -> List[User]:
        query = select(User)
        if role:
            query = query.where(User.role == role)
        result = await self.session.execute(query.order_by(User.created_at.desc()))
        return list(result.scalars().all())

    async def list_by_roles(self, roles: List[str]) -> List[User]:
        result = await self.session.execute(
            select(User).where(User.role.in_(roles)).order_by(User.username)
        )
        return list(result.scalars().all())

    async def delete(self, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(sa_delete(User).where(User.id == user_id))
        return result.rowcount > 0
