"""
Reporting Aggregator

Owns the dashboard snapshot lifecycle:

- refresh: recompute the whole snapshot from products, orders, users and
  completed transactions, then persist it in one write
- read accessors: slices of the stored snapshot
- range query: per-day sales for an arbitrary window, straight from
  transactions
- currency rate: update the USD to LRD rate and cascade it into product prices

One aggregator is created per process (see the application lifespan) so the
single-flight refresh guard covers every request.
"""

import asyncio
import time
from datetime import date, datetime, time as dt_time, timedelta, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
import uuid

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.config import ReportingSettings, get_settings
from storefront.database.models import UserRole, utcnow
from storefront.database.stores import OrderStore, ProductStore, TransactionStore, UserStore, to_money
from storefront.reporting.aggregation import build_snapshot
from storefront.reporting.errors import (
    InvalidArgumentError,
    NotFoundError,
    UpstreamUnavailableError,
)
from storefront.reporting.schemas import (
    PERIODS,
    CascadeResult,
    CategorySales,
    CurrencyRate,
    DailySales,
    LowStockProduct,
    Money,
    PaymentMethodStat,
    PeriodBucket,
    ProductSales,
    RecentSale,
    Snapshot,
    Summary,
)
from storefront.reporting.store import SnapshotStore
from storefront.serving.cache import CacheManager

logger = structlog.get_logger(__name__)

SOURCE_ERRORS = (SQLAlchemyError, OSError)

# Scale of the stored rate column
RATE_PRECISION = Decimal("0.0001")


def parse_rate(rate: Any) -> Decimal:
    """
    Validate a conversion rate: a finite number greater than zero.

    The result is rounded to the stored precision, so products are repriced
    with exactly the rate that is persisted.
    """
    if isinstance(rate, bool) or rate is None:
        raise InvalidArgumentError("Currency rate must be a positive number")
    try:
        value = Decimal(str(rate).strip())
    except (InvalidOperation, ValueError):
        raise InvalidArgumentError(f"Currency rate is not a number: {rate!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidArgumentError(f"Currency rate must be a positive number, got {rate!r}")
    value = value.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)
    if value <= 0:
        raise InvalidArgumentError(f"Currency rate rounds to zero: {rate!r}")
    return value


def parse_date_bound(value: Any, name: str) -> datetime:
    """Accept a date, datetime or ISO-8601 string; return naive UTC."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime.combine(value, dt_time.min)
    elif isinstance(value, str) and value.strip():
        try:
            moment = datetime.fromisoformat(value.strip())
        except ValueError:
            raise InvalidArgumentError(f"Invalid date format for {name}: {value!r}")
    else:
        raise InvalidArgumentError(f"{name} is required")

    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


class ReportingAggregator:
    """
    Dashboard snapshot service.

    Args:
        session_factory: Creates the sessions used for every read and write
        settings: Reporting settings, defaults to the application settings
        product_cache: Product cache invalidated after a rate cascade
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[ReportingSettings] = None,
        product_cache: Optional[CacheManager] = None,
    ):
        self._session_factory = session_factory
        self.settings = settings or get_settings().reporting
        self._product_cache = product_cache
        self._inflight: Optional[asyncio.Task] = None

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.staleness_ttl_seconds)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh(self) -> Snapshot:
        """
        Recompute and persist the snapshot.

        Only one refresh runs at a time; callers arriving while one is in
        flight wait for its result instead of starting another.
        """
        # No await between the check and the assignment
        task = self._inflight
        if task is None:
            task = asyncio.ensure_future(self._refresh_with_timeout())
            self._inflight = task
            task.add_done_callback(self._clear_inflight)
        return await asyncio.shield(task)

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh_with_timeout(self) -> Snapshot:
        try:
            return await asyncio.wait_for(
                self._compute_and_persist(),
                timeout=self.settings.refresh_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error("Dashboard refresh timed out", timeout_seconds=self.settings.refresh_timeout_seconds)
            raise UpstreamUnavailableError("Dashboard refresh timed out") from e

    async def _compute_and_persist(self) -> Snapshot:
        started = time.perf_counter()
        now = utcnow()
        logger.info("Refreshing dashboard snapshot")

        async with self._session_factory() as session:
            snapshots = SnapshotStore(session, self.settings)
            orders = OrderStore(session)
            try:
                current = await snapshots.load()
                products = await ProductStore(session).list_all()
                total_orders = await orders.count_all()
                status_counts = await orders.count_grouped_by_status()
                total_customers = await UserStore(session).count_by_role(UserRole.CUSTOMER.value)
                transactions = await TransactionStore(session).list_completed()
            except SOURCE_ERRORS as e:
                logger.error("Source store unavailable during refresh", error=str(e), error_type=type(e).__name__)
                raise UpstreamUnavailableError("Source data unavailable, dashboard not refreshed") from e

            rate = current.currency_conversion_rate if current else self.settings.default_currency_rate
            snapshot = build_snapshot(
                products=products,
                transactions=transactions,
                order_status_counts=status_counts,
                total_orders=total_orders,
                total_customers=total_customers,
                currency_rate=rate,
                now=now,
                settings=self.settings,
            )

            try:
                # A rate stored while computing wins over the one read at the start
                snapshot.currency_conversion_rate = await snapshots.save(snapshot)
                await session.commit()
            except SOURCE_ERRORS as e:
                await session.rollback()
                logger.error("Failed to persist dashboard snapshot", error=str(e))
                raise UpstreamUnavailableError("Dashboard snapshot could not be saved") from e

        logger.info(
            "Dashboard snapshot refreshed",
            products=len(products),
            transactions=len(transactions),
            orders=total_orders,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return snapshot

    # -------------------------------------------------------------------------
    # Snapshot access
    # -------------------------------------------------------------------------

    async def _load(self) -> Optional[Snapshot]:
        try:
            async with self._session_factory() as session:
                return await SnapshotStore(session, self.settings).load()
        except SOURCE_ERRORS as e:
            logger.error("Snapshot store unavailable", error=str(e))
            raise UpstreamUnavailableError("Dashboard data unavailable") from e

    async def _require_snapshot(self) -> Snapshot:
        snapshot = await self._load()
        if snapshot is None:
            raise NotFoundError("Dashboard data not found")
        return snapshot

    async def get_snapshot(self) -> Snapshot:
        """Stored snapshot, refreshed first when missing or stale."""
        snapshot = await self._load()
        if SnapshotStore.is_stale(snapshot, utcnow(), self.ttl):
            logger.info("Dashboard snapshot missing or stale, refreshing")
            snapshot = await self.refresh()
        return snapshot

    async def force_refresh(self) -> Snapshot:
        return await self.refresh()

    async def get_by_period(self, period: str) -> List[PeriodBucket]:
        if period not in PERIODS:
            raise InvalidArgumentError("Invalid period. Use daily, weekly, or monthly.")
        snapshot = await self._require_snapshot()
        return getattr(snapshot.sales_by_period, period)

    async def get_top_products(self) -> List[ProductSales]:
        return (await self._require_snapshot()).top_products

    async def get_sales_by_category(self) -> List[CategorySales]:
        return (await self._require_snapshot()).sales_by_category

    async def get_low_stock(self) -> List[LowStockProduct]:
        return (await self._require_snapshot()).low_stock_products

    async def get_payment_method_stats(self) -> Dict[str, PaymentMethodStat]:
        return (await self._require_snapshot()).payment_method_stats

    async def get_recent_sales(self) -> List[RecentSale]:
        return (await self._require_snapshot()).recent_sales

    async def get_summary(self) -> Summary:
        snapshot = await self._require_snapshot()
        return Summary(
            total_revenue=snapshot.total_revenue,
            total_orders=snapshot.total_orders,
            total_products=snapshot.total_products,
            total_customers=snapshot.total_customers,
            inventory_value=snapshot.inventory_value,
            orders_by_status=snapshot.orders_by_status,
            last_updated=snapshot.last_updated,
        )

    # -------------------------------------------------------------------------
    # Ad-hoc range
    # -------------------------------------------------------------------------

    async def range_query(self, start: Any, end: Any) -> List[DailySales]:
        """
        Completed sales per calendar day between ``start`` and the end of
        ``end``'s day. Days without sales are omitted; ``start > end`` simply
        matches nothing.
        """
        start_at = parse_date_bound(start, "start_date")
        end_at = datetime.combine(parse_date_bound(end, "end_date").date(), dt_time.max)

        try:
            async with self._session_factory() as session:
                rows = await TransactionStore(session).daily_totals(start_at, end_at)
        except SOURCE_ERRORS as e:
            logger.error("Transaction store unavailable for range query", error=str(e))
            raise UpstreamUnavailableError("Sales data unavailable") from e

        return [
            DailySales(
                date=str(day),
                amount=Money(usd=usd or Decimal("0"), lrd=lrd or Decimal("0")),
                count=count,
            )
            for day, usd, lrd, count in rows
        ]

    # -------------------------------------------------------------------------
    # Currency
    # -------------------------------------------------------------------------

    async def get_currency_rate(self) -> CurrencyRate:
        try:
            async with self._session_factory() as session:
                snapshot = await SnapshotStore(session, self.settings).get()
        except SOURCE_ERRORS as e:
            raise UpstreamUnavailableError("Dashboard data unavailable") from e
        return CurrencyRate(rate=snapshot.currency_conversion_rate, last_updated=snapshot.last_updated)

    async def set_currency_rate(self, rate: Any) -> CascadeResult:
        """
        Store a new USD to LRD rate and reprice every product's LRD fields.

        Only the rate and timestamp are written; the snapshot document is left
        as it is. The rate is committed before the cascade starts. Each
        product is then updated on its own; a product that fails is logged and
        skipped, so a result with ``updated_count < total_products`` is a
        partial success.
        Aggregates such as the inventory value stay as they were until the
        next refresh.
        """
        value = parse_rate(rate)

        try:
            async with self._session_factory() as session:
                await SnapshotStore(session, self.settings).save_rate(value, utcnow())
                await session.commit()

            async with self._session_factory() as session:
                product_ids = [p.id for p in await ProductStore(session).list_all()]
        except SOURCE_ERRORS as e:
            logger.error("Failed to store currency rate", error=str(e))
            raise UpstreamUnavailableError("Currency rate could not be saved") from e

        logger.info("Currency rate updated, repricing products", rate=str(value), products=len(product_ids))

        semaphore = asyncio.Semaphore(self.settings.cascade_concurrency)
        outcomes = await asyncio.gather(
            *(self._reprice_product(product_id, value, semaphore) for product_id in product_ids)
        )
        updated = sum(1 for ok in outcomes if ok)
        failed = len(product_ids) - updated

        if self._product_cache is not None:
            await self._product_cache.invalidate_all()

        log = logger.warning if failed else logger.info
        log("Currency cascade finished", rate=str(value), updated=updated, failed=failed)
        return CascadeResult(
            rate=value,
            updated_count=updated,
            failed_count=failed,
            total_products=len(product_ids),
        )

    async def _reprice_product(self, product_id: uuid.UUID, rate: Decimal, semaphore: asyncio.Semaphore) -> bool:
        async with semaphore:
            try:
                async with self._session_factory() as session:
                    store = ProductStore(session)
                    product = await store.get(product_id)
                    if product is None:
                        logger.warning("Product vanished during currency cascade", product_id=str(product_id))
                        return False
                    await store.update(product_id, {"price_lrd": to_money(Decimal(product.price_usd) * rate)})
                    await session.commit()
                return True
            except SOURCE_ERRORS as e:
                logger.warning(
                    "Failed to reprice product, skipping",
                    product_id=str(product_id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False
