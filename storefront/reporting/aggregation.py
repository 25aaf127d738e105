"""
Dashboard Aggregation

Pure functions that derive every part of the dashboard snapshot from source
records already fetched from the stores. Nothing here touches the database,
so a snapshot is either built completely or not at all.

Transactions passed in are assumed to be completed ones, in storage order.
Grouped results keep the order in which each group was first encountered and
are then sorted stably, so ties keep that order.
"""

from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import structlog

from storefront.config import ReportingSettings
from storefront.database.models import PaymentMethod, Product, Transaction
from storefront.reporting.errors import UnknownBucketError
from storefront.reporting.schemas import (
    CategorySales,
    LowStockProduct,
    Money,
    PaymentMethodStat,
    PeriodBucket,
    ProductSales,
    RecentSale,
    SalesByPeriod,
    Snapshot,
    empty_orders_by_status,
    empty_payment_method_stats,
)

logger = structlog.get_logger(__name__)


def transaction_amount(transaction: Transaction) -> Money:
    return Money(usd=Decimal(transaction.total_bought_usd), lrd=Decimal(transaction.total_bought_lrd))


def sum_money(amounts: Iterable[Money]) -> Money:
    total = Money()
    for amount in amounts:
        total = total + amount
    return total


# =============================================================================
# TOTALS
# =============================================================================

def total_revenue(transactions: Iterable[Transaction]) -> Money:
    return sum_money(transaction_amount(t) for t in transactions)


def inventory_value(products: Iterable[Product]) -> Money:
    """Sum of the stored per-product total values (not recomputed here)."""
    return sum_money(
        Money(usd=Decimal(p.total_value_usd), lrd=Decimal(p.total_value_lrd))
        for p in products
    )


def orders_by_status(status_counts: Mapping[str, int], policy: str = "drop") -> Dict[str, int]:
    """
    Fold raw per-status counts into the four known statuses.

    Unknown statuses are left out; with ``policy == "fail"`` they raise
    instead. There is no catch-all order bucket, so ``"other"`` behaves like
    ``"drop"`` here.
    """
    counts = empty_orders_by_status()
    for status, count in status_counts.items():
        if status in counts:
            counts[status] = count
        elif policy == "fail":
            raise UnknownBucketError(f"Unknown order status: {status!r}")
        else:
            logger.debug("Order status not counted", status=status, count=count)
    return counts


# =============================================================================
# RANKINGS
# =============================================================================

def top_products(transactions: Iterable[Transaction], limit: int = 5) -> List[ProductSales]:
    """Products ranked by USD revenue, best first."""
    groups: "OrderedDict[str, ProductSales]" = OrderedDict()
    for t in transactions:
        key = str(t.product_id)
        entry = groups.get(key)
        if entry is None:
            groups[key] = ProductSales(
                product_id=key,
                product_name=t.product_name,
                quantity_sold=t.quantity_bought,
                revenue=transaction_amount(t),
            )
        else:
            entry.quantity_sold += t.quantity_bought
            entry.revenue = entry.revenue + transaction_amount(t)

    ranked = sorted(groups.values(), key=lambda g: g.revenue.usd, reverse=True)
    return ranked[:limit]


def sales_by_category(transactions: Iterable[Transaction]) -> List[CategorySales]:
    groups: "OrderedDict[str, CategorySales]" = OrderedDict()
    for t in transactions:
        entry = groups.get(t.category)
        if entry is None:
            groups[t.category] = CategorySales(
                category=t.category,
                quantity_sold=t.quantity_bought,
                revenue=transaction_amount(t),
            )
        else:
            entry.quantity_sold += t.quantity_bought
            entry.revenue = entry.revenue + transaction_amount(t)

    return sorted(groups.values(), key=lambda g: g.revenue.usd, reverse=True)


def low_stock_products(
    products: Iterable[Product],
    threshold: int = 5,
    limit: int = 10,
) -> List[LowStockProduct]:
    """First ``limit`` products, in storage order, at or below ``threshold``."""
    flagged = []
    for p in products:
        if p.quantity_in_stock <= threshold:
            flagged.append(LowStockProduct(
                product_id=str(p.id),
                product_name=p.name,
                current_stock=p.quantity_in_stock,
                threshold=threshold,
            ))
            if len(flagged) >= limit:
                break
    return flagged


def payment_method_stats(
    transactions: Iterable[Transaction],
    policy: str = "drop",
) -> Dict[str, PaymentMethodStat]:
    """
    Count and amount per known payment method.

    Transactions with an unknown method are dropped (``"drop"``), folded into
    ``other`` (``"other"``) or rejected (``"fail"``).
    """
    stats = empty_payment_method_stats()
    dropped = 0
    for t in transactions:
        method = t.payment_method
        if method not in stats:
            if policy == "fail":
                raise UnknownBucketError(f"Unknown payment method: {method!r}")
            if policy == "other":
                method = PaymentMethod.OTHER.value
            else:
                dropped += 1
                continue
        bucket = stats[method]
        bucket.count += 1
        bucket.amount = bucket.amount + transaction_amount(t)

    if dropped:
        logger.warning("Transactions with unknown payment method left out", dropped=dropped)
    return stats


def recent_sales(transactions: Iterable[Transaction], limit: int = 10) -> List[RecentSale]:
    newest_first = sorted(transactions, key=lambda t: t.transaction_date, reverse=True)
    return [
        RecentSale(
            date=t.transaction_date,
            amount=transaction_amount(t),
            product_id=str(t.product_id),
            product_name=t.product_name,
        )
        for t in newest_first[:limit]
    ]


# =============================================================================
# TIME BUCKETS
# =============================================================================

def day_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")


def week_key(moment: datetime) -> str:
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


def month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


def bucket_sales(
    transactions: Iterable[Transaction],
    key: Callable[[datetime], str],
    since: Optional[datetime] = None,
) -> List[PeriodBucket]:
    """Sum amount and count per bucket key, ascending by key."""
    buckets: Dict[str, PeriodBucket] = {}
    for t in transactions:
        if since is not None and t.transaction_date < since:
            continue
        bucket_key = key(t.transaction_date)
        bucket = buckets.get(bucket_key)
        if bucket is None:
            buckets[bucket_key] = PeriodBucket(bucket_key=bucket_key, amount=transaction_amount(t), count=1)
        else:
            bucket.amount = bucket.amount + transaction_amount(t)
            bucket.count += 1
    return [buckets[k] for k in sorted(buckets)]


def _week_start(moment: datetime, weeks_back: int) -> datetime:
    monday = moment.date() - timedelta(days=moment.weekday())
    return datetime.combine(monday - timedelta(weeks=weeks_back), datetime.min.time())


def _month_start(moment: datetime, months_back: int) -> datetime:
    months = moment.year * 12 + (moment.month - 1) - months_back
    return datetime.combine(date(months // 12, months % 12 + 1, 1), datetime.min.time())


def sales_by_period(
    transactions: Sequence[Transaction],
    now: datetime,
    settings: ReportingSettings,
) -> SalesByPeriod:
    """
    Daily buckets cover the trailing ``daily_window_days`` (rolling from
    ``now``); weekly and monthly buckets cover whole ISO weeks / calendar
    months, the current one included.
    """
    return SalesByPeriod(
        daily=bucket_sales(transactions, day_key, now - timedelta(days=settings.daily_window_days)),
        weekly=bucket_sales(transactions, week_key, _week_start(now, settings.weekly_window_weeks - 1)),
        monthly=bucket_sales(transactions, month_key, _month_start(now, settings.monthly_window_months - 1)),
    )


# =============================================================================
# SNAPSHOT
# =============================================================================

def build_snapshot(
    *,
    products: Sequence[Product],
    transactions: Sequence[Transaction],
    order_status_counts: Mapping[str, int],
    total_orders: int,
    total_customers: int,
    currency_rate: Decimal,
    now: datetime,
    settings: ReportingSettings,
) -> Snapshot:
    """Compute a complete snapshot from source records."""
    policy = settings.unknown_bucket_policy
    return Snapshot(
        total_revenue=total_revenue(transactions),
        total_orders=total_orders,
        total_products=len(products),
        total_customers=total_customers,
        inventory_value=inventory_value(products),
        orders_by_status=orders_by_status(order_status_counts, policy),
        top_products=top_products(transactions, settings.top_products_limit),
        sales_by_category=sales_by_category(transactions),
        low_stock_products=low_stock_products(
            products, settings.low_stock_threshold, settings.low_stock_limit
        ),
        payment_method_stats=payment_method_stats(transactions, policy),
        recent_sales=recent_sales(transactions, settings.recent_sales_limit),
        sales_by_period=sales_by_period(transactions, now, settings),
        currency_conversion_rate=currency_rate,
        last_updated=now,
    )
