"""
Database Models - Storefront Documents

Operational tables owned by the storefront:

- Product: catalog entry with dual-currency pricing and inventory value
- Order: customer order with line items
- Transaction: completed point-of-sale record, the source of sales reporting
- User: account with a role

Reporting:

- DashboardSnapshot: the single cached dashboard document

Status and payment-method columns are plain strings rather than database
enums so that rows written by older clients with unexpected values can still
be loaded; the reporting layer decides what to do with them.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List
import uuid

from sqlalchemy import (
    JSON,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes use this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderPaymentMethod(str, Enum):
    """Payment methods accepted on customer orders"""
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    CASH_ON_DELIVERY = "cash_on_delivery"


class PaymentMethod(str, Enum):
    """Point-of-sale payment methods"""
    CASH = "cash"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class TransactionStatus(str, Enum):
    """Sale transaction status enumeration"""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class Currency(str, Enum):
    USD = "USD"
    LRD = "LRD"


class UserRole(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"
    CUSTOMER = "customer"


# =============================================================================
# OPERATIONAL TABLES
# =============================================================================

class Product(Base):
    """
    Product Table

    Catalog entry. ``total_value_usd``/``total_value_lrd`` hold
    price x quantity in stock and are kept current by the product store.
    """
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    features: Mapped[Optional[List[str]]] = mapped_column(JSON)

    # Pricing
    price_usd: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    price_lrd: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # Inventory
    quantity_in_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_value_usd: Mapped[Decimal] = mapped_column(Numeric(16, 2), default=0, nullable=False)
    total_value_lrd: Mapped[Decimal] = mapped_column(Numeric(16, 2), default=0, nullable=False)

    # Audit
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_products_category", "category"),
        Index("ix_products_stock", "quantity_in_stock"),
        Index("ix_products_created", "created_at"),
    )


class Order(Base):
    """
    Order Table

    Customer order; ``items`` is a list of
    ``{product_id, quantity, price_usd, price_lrd}`` captured at checkout.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    items: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)

    total_usd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    total_lrd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)

    shipping_address: Mapped[Optional[dict]] = mapped_column(JSON)
    notes: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_orders_user", "user_id"),
        Index("ix_orders_status", "status"),
    )


class Transaction(Base):
    """
    Sale Transaction Table

    One row per point-of-sale transaction. Only rows with
    ``transaction_status == "completed"`` count towards reporting.
    """
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Denormalized product attributes at time of sale
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), default=Currency.USD.value, nullable=False)
    quantity_bought: Mapped[int] = mapped_column(Integer, nullable=False)
    price_at_sale_usd: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    price_at_sale_lrd: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_bought_usd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    total_bought_lrd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    # Buyer
    buyer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    buyer_contact: Mapped[Optional[str]] = mapped_column(String(100))
    buyer_email: Mapped[Optional[str]] = mapped_column(String(200))

    transaction_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), default=PaymentMethod.CASH.value, nullable=False)
    transaction_status: Mapped[str] = mapped_column(
        String(20), default=TransactionStatus.COMPLETED.value, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_transactions_status_date", "transaction_status", "transaction_date"),
        Index("ix_transactions_product", "product_id"),
        Index("ix_transactions_created", "created_at"),
    )


class User(Base):
    """User Table (account fields only; credentials are kept elsewhere)"""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    phone_number: Mapped[str] = mapped_column(String(30), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.CUSTOMER.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_users_role", "role"),
    )


# =============================================================================
# REPORTING
# =============================================================================

class DashboardSnapshot(Base):
    """
    Dashboard Snapshot Table

    Holds exactly one row (``id == 1``): the serialized dashboard snapshot.
    The conversion rate and timestamp are also kept as columns so they can be
    read without decoding the document.
    """
    __tablename__ = "dashboard_snapshot"

    SINGLETON_ID = 1

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    currency_conversion_rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime)
