"""
Reporting Schemas

Typed shape of the dashboard snapshot and of the views sliced from it.
Monetary values are always ``Money`` pairs, serialized as ``{"USD", "LRD"}``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.database.models import OrderStatus, PaymentMethod

PERIODS = ("daily", "weekly", "monthly")


class Money(BaseModel):
    """Paired USD / LRD amount"""

    model_config = ConfigDict(populate_by_name=True)

    usd: Decimal = Field(default=Decimal("0"), alias="USD")
    lrd: Decimal = Field(default=Decimal("0"), alias="LRD")

    def __add__(self, other: "Money") -> "Money":
        return Money(usd=self.usd + other.usd, lrd=self.lrd + other.lrd)


class ProductSales(BaseModel):
    product_id: str
    product_name: str
    quantity_sold: int
    revenue: Money


class CategorySales(BaseModel):
    category: str
    quantity_sold: int
    revenue: Money


class LowStockProduct(BaseModel):
    product_id: str
    product_name: str
    current_stock: int
    threshold: int


class PaymentMethodStat(BaseModel):
    count: int = 0
    amount: Money = Field(default_factory=Money)


class RecentSale(BaseModel):
    date: datetime
    amount: Money
    product_id: str
    product_name: str


class PeriodBucket(BaseModel):
    """Sales in one bucket: ``YYYY-MM-DD``, ``YYYY-Www`` or ``YYYY-MM``"""
    bucket_key: str
    amount: Money
    count: int


class SalesByPeriod(BaseModel):
    daily: List[PeriodBucket] = Field(default_factory=list)
    weekly: List[PeriodBucket] = Field(default_factory=list)
    monthly: List[PeriodBucket] = Field(default_factory=list)


def empty_orders_by_status() -> Dict[str, int]:
    return {status.value: 0 for status in OrderStatus}


def empty_payment_method_stats() -> Dict[str, PaymentMethodStat]:
    return {method.value: PaymentMethodStat() for method in PaymentMethod}


class Snapshot(BaseModel):
    """
    Dashboard Snapshot

    The single cached aggregate document. A freshly created snapshot is
    zero-valued with ``last_updated`` unset.
    """

    total_revenue: Money = Field(default_factory=Money)
    total_orders: int = 0
    total_products: int = 0
    total_customers: int = 0
    inventory_value: Money = Field(default_factory=Money)
    orders_by_status: Dict[str, int] = Field(default_factory=empty_orders_by_status)
    top_products: List[ProductSales] = Field(default_factory=list)
    sales_by_category: List[CategorySales] = Field(default_factory=list)
    low_stock_products: List[LowStockProduct] = Field(default_factory=list)
    payment_method_stats: Dict[str, PaymentMethodStat] = Field(default_factory=empty_payment_method_stats)
    recent_sales: List[RecentSale] = Field(default_factory=list)
    sales_by_period: SalesByPeriod = Field(default_factory=SalesByPeriod)
    currency_conversion_rate: Decimal
    last_updated: Optional[datetime] = None


class Summary(BaseModel):
    total_revenue: Money
    total_orders: int
    total_products: int
    total_customers: int
    inventory_value: Money
    orders_by_status: Dict[str, int]
    last_updated: Optional[datetime]


class DailySales(BaseModel):
    """One day of an ad-hoc range query"""
    date: str
    amount: Money
    count: int


class CurrencyRate(BaseModel):
    rate: Decimal
    last_updated: Optional[datetime]


class CascadeResult(BaseModel):
    """Outcome of a rate change; ``updated_count < total_products`` is a partial success"""
    rate: Decimal
    updated_count: int
    failed_count: int
    total_products: int
