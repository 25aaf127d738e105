"""
Unit Tests - Reporting Aggregator
"""
import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from storefront.database.models import utcnow
from storefront.database.stores import ProductStore, TransactionStore
from storefront.reporting import (
    InvalidArgumentError,
    NotFoundError,
    ReportingAggregator,
    SnapshotStore,
    UnknownBucketError,
    UpstreamUnavailableError,
)
from storefront.reporting.aggregator import parse_date_bound, parse_rate
from storefront.reporting.schemas import Snapshot


def _unavailable(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("connection refused"))


class TestParsing:
    """Tests for argument validation"""

    @pytest.mark.parametrize("rate", [-1, 0, "abc", "", None, True, float("nan"), float("inf"), "-2.5", "0.00004"])
    def test_invalid_rates(self, rate):
        with pytest.raises(InvalidArgumentError):
            parse_rate(rate)

    @pytest.mark.parametrize("rate, expected", [(2, "2"), (2.5, "2.5"), ("190.75", "190.75"), ("190.12345", "190.1235")])
    def test_valid_rates(self, rate, expected):
        assert parse_rate(rate) == Decimal(expected)

    def test_date_bound_formats(self):
        assert parse_date_bound("2024-01-01", "start") == datetime(2024, 1, 1)
        assert parse_date_bound(date(2024, 1, 1), "start") == datetime(2024, 1, 1)
        assert parse_date_bound("2024-01-01T10:00:00+01:00", "start") == datetime(2024, 1, 1, 9, 0)

    @pytest.mark.parametrize("value", ["not-a-date", "2024-13-01", None, ""])
    def test_invalid_date_bounds(self, value):
        with pytest.raises(InvalidArgumentError):
            parse_date_bound(value, "start_date")


class TestRefresh:
    """Tests for snapshot computation and persistence"""

    @pytest.mark.asyncio
    async def test_revenue_matches_completed_transactions(self, aggregator, seed):
        rice = await seed.product("Rice", price_usd="10.00", price_lrd="1900.00")
        await seed.transaction(rice, quantity=2)
        await seed.transaction(rice, quantity=1, price_usd="12.00", price_lrd="2280.00")
        await seed.transaction(rice, quantity=5, status="pending")

        snapshot = await aggregator.refresh()

        assert snapshot.total_revenue.usd == Decimal("32.00")
        assert snapshot.total_revenue.lrd == Decimal("6080.00")

    @pytest.mark.asyncio
    async def test_counts(self, aggregator, seed):
        await seed.product("Rice")
        await seed.product("Oil")
        await seed.order(status="pending")
        await seed.order(status="completed")
        await seed.order(status="completed")
        await seed.user(role="customer")
        await seed.user(role="admin")

        snapshot = await aggregator.refresh()

        assert snapshot.total_products == 2
        assert snapshot.total_orders == 3
        assert snapshot.total_customers == 1
        assert snapshot.orders_by_status == {"pending": 1, "processing": 0, "completed": 2, "cancelled": 0}

    @pytest.mark.asyncio
    async def test_top_products_subset_of_sold(self, aggregator, seed):
        products = [await seed.product(f"P{i}", price_usd=str(i + 1)) for i in range(7)]
        for product in products:
            await seed.transaction(product)
        await seed.product("Never sold", price_usd="999.00")

        snapshot = await aggregator.refresh()

        sold_ids = {str(p.id) for p in products}
        revenues = [p.revenue.usd for p in snapshot.top_products]
        assert len(snapshot.top_products) == 5
        assert revenues == sorted(revenues, reverse=True)
        assert {p.product_id for p in snapshot.top_products} <= sold_ids

    @pytest.mark.asyncio
    async def test_low_stock(self, aggregator, seed):
        await seed.product("Low", quantity_in_stock=5)
        await seed.product("Empty", quantity_in_stock=0)
        await seed.product("Plenty", quantity_in_stock=6)

        snapshot = await aggregator.refresh()

        assert {p.product_name for p in snapshot.low_stock_products} == {"Low", "Empty"}

    @pytest.mark.asyncio
    async def test_unknown_payment_method_dropped_by_default(self, aggregator, seed):
        rice = await seed.product("Rice")
        await seed.transaction(rice, payment_method="cash")
        await seed.transaction(rice, payment_method="crypto")

        snapshot = await aggregator.refresh()

        assert sum(s.count for s in snapshot.payment_method_stats.values()) == 1
        assert snapshot.total_revenue.usd == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_strict_policy_fails_refresh(self, session_factory, reporting_settings, seed):
        reporting_settings.unknown_bucket_policy = "fail"
        aggregator = ReportingAggregator(session_factory, settings=reporting_settings)
        rice = await seed.product("Rice")
        await seed.transaction(rice, payment_method="crypto")

        with pytest.raises(UnknownBucketError):
            await aggregator.refresh()

        async with session_factory() as session:
            assert await SnapshotStore(session, reporting_settings).load() is None

    @pytest.mark.asyncio
    async def test_idempotent(self, aggregator, seed):
        rice = await seed.product("Rice", quantity_in_stock=3)
        await seed.transaction(rice, quantity=2)
        await seed.order(status="processing")

        first = await aggregator.refresh()
        second = await aggregator.refresh()

        assert first.model_dump(exclude={"last_updated"}) == second.model_dump(exclude={"last_updated"})

    @pytest.mark.asyncio
    async def test_persisted_snapshot_round_trips(self, aggregator, seed, session_factory, reporting_settings):
        rice = await seed.product("Rice")
        await seed.transaction(rice)

        computed = await aggregator.refresh()

        async with session_factory() as session:
            stored = await SnapshotStore(session, reporting_settings).load()
        assert stored.total_revenue == computed.total_revenue
        assert stored.top_products == computed.top_products
        assert stored.last_updated == computed.last_updated

    @pytest.mark.asyncio
    async def test_single_flight(self, aggregator, monkeypatch):
        calls = 0
        release = asyncio.Event()
        original = aggregator._compute_and_persist

        async def slow_compute():
            nonlocal calls
            calls += 1
            await release.wait()
            return await original()

        monkeypatch.setattr(aggregator, "_compute_and_persist", slow_compute)

        first = asyncio.ensure_future(aggregator.refresh())
        second = asyncio.ensure_future(aggregator.refresh())
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(first, second)

        assert calls == 1
        assert results[0] == results[1]

    @pytest.mark.asyncio
    async def test_new_refresh_after_previous_finished(self, aggregator):
        await aggregator.refresh()
        await aggregator.refresh()

        assert aggregator._inflight is None

    @pytest.mark.asyncio
    async def test_source_failure_keeps_previous_snapshot(self, aggregator, seed, monkeypatch):
        rice = await seed.product("Rice")
        await seed.transaction(rice)
        previous = await aggregator.refresh()
        await seed.transaction(rice)

        monkeypatch.setattr(TransactionStore, "list_completed", _unavailable)
        with pytest.raises(UpstreamUnavailableError):
            await aggregator.refresh()
        monkeypatch.undo()

        current = await aggregator._require_snapshot()
        assert current.total_revenue == previous.total_revenue
        assert current.last_updated == previous.last_updated

    @pytest.mark.asyncio
    async def test_refresh_timeout(self, session_factory, reporting_settings, monkeypatch):
        reporting_settings.refresh_timeout_seconds = 0.01
        aggregator = ReportingAggregator(session_factory, settings=reporting_settings)

        async def hang():
            await asyncio.sleep(1)

        monkeypatch.setattr(aggregator, "_compute_and_persist", hang)

        with pytest.raises(UpstreamUnavailableError):
            await aggregator.refresh()


class TestSnapshotAccess:
    """Tests for staleness and read accessors"""

    @pytest.mark.asyncio
    async def test_accessors_need_a_snapshot(self, aggregator):
        with pytest.raises(NotFoundError):
            await aggregator.get_top_products()
        with pytest.raises(NotFoundError):
            await aggregator.get_summary()
        with pytest.raises(NotFoundError):
            await aggregator.get_by_period("daily")

    @pytest.mark.asyncio
    async def test_get_snapshot_creates_when_missing(self, aggregator):
        snapshot = await aggregator.get_snapshot()

        assert snapshot.total_orders == 0
        assert snapshot.last_updated is not None
        assert await aggregator.get_top_products() == []

    @pytest.mark.asyncio
    async def test_fresh_snapshot_is_not_recomputed(self, aggregator, seed):
        first = await aggregator.get_snapshot()
        await seed.product("Added later")

        second = await aggregator.get_snapshot()

        assert second.total_products == first.total_products == 0
        assert second.last_updated == first.last_updated

    @pytest.mark.asyncio
    async def test_stale_snapshot_is_recomputed(self, aggregator, seed, session_factory, reporting_settings):
        await aggregator.refresh()
        await seed.product("Added later")
        async with session_factory() as session:
            store = SnapshotStore(session, reporting_settings)
            snapshot = await store.load()
            snapshot.last_updated = utcnow() - timedelta(hours=2)
            await store.save(snapshot)
            await session.commit()

        refreshed = await aggregator.get_snapshot()

        assert refreshed.total_products == 1

    def test_is_stale(self):
        now = datetime(2024, 1, 1, 12, 0)
        rate = Decimal("190.00")

        assert SnapshotStore.is_stale(None, now)
        assert SnapshotStore.is_stale(Snapshot(currency_conversion_rate=rate), now)
        assert SnapshotStore.is_stale(Snapshot(currency_conversion_rate=rate, last_updated=now - timedelta(minutes=61)), now)
        assert not SnapshotStore.is_stale(Snapshot(currency_conversion_rate=rate, last_updated=now - timedelta(minutes=59)), now)

    @pytest.mark.asyncio
    async def test_invalid_period(self, aggregator):
        await aggregator.refresh()

        with pytest.raises(InvalidArgumentError):
            await aggregator.get_by_period("yearly")

    @pytest.mark.asyncio
    async def test_projections(self, aggregator, seed):
        rice = await seed.product("Rice", category="groceries", quantity_in_stock=2)
        await seed.transaction(rice, quantity=1, payment_method="mobile_money")
        snapshot = await aggregator.refresh()

        assert await aggregator.get_top_products() == snapshot.top_products
        assert await aggregator.get_sales_by_category() == snapshot.sales_by_category
        assert await aggregator.get_low_stock() == snapshot.low_stock_products
        assert await aggregator.get_recent_sales() == snapshot.recent_sales
        assert (await aggregator.get_payment_method_stats())["mobile_money"].count == 1
        assert (await aggregator.get_by_period("daily"))[0].count == 1

        summary = await aggregator.get_summary()
        assert summary.total_revenue == snapshot.total_revenue
        assert summary.total_products == 1


class TestRangeQuery:
    """Tests for the ad-hoc date range report"""

    @pytest.mark.asyncio
    async def test_single_day(self, aggregator, seed):
        item = await seed.product("Generator", price_usd="50.00", price_lrd="9500.00")
        await seed.transaction(item, transaction_date=datetime(2024, 1, 1, 10, 0, 0))

        days = await aggregator.range_query("2024-01-01", "2024-01-01")

        assert len(days) == 1
        assert days[0].date == "2024-01-01"
        assert days[0].amount.usd == Decimal("50.00")
        assert days[0].count == 1

    @pytest.mark.asyncio
    async def test_groups_by_day_ascending(self, aggregator, seed):
        item = await seed.product("Soap", price_usd="2.00", price_lrd="380.00")
        await seed.transaction(item, transaction_date=datetime(2024, 1, 3, 9, 0))
        await seed.transaction(item, transaction_date=datetime(2024, 1, 1, 8, 0))
        await seed.transaction(item, transaction_date=datetime(2024, 1, 1, 23, 59))
        await seed.transaction(item, transaction_date=datetime(2024, 1, 4, 0, 0))
        await seed.transaction(item, transaction_date=datetime(2024, 1, 2, 12, 0), status="refunded")

        days = await aggregator.range_query("2024-01-01", "2024-01-03")

        assert [d.date for d in days] == ["2024-01-01", "2024-01-03"]
        assert days[0].count == 2
        assert days[0].amount.lrd == Decimal("760.00")

    @pytest.mark.asyncio
    async def test_reversed_range_is_empty(self, aggregator, seed):
        item = await seed.product("Soap")
        await seed.transaction(item, transaction_date=datetime(2024, 1, 2, 12, 0))

        assert await aggregator.range_query("2024-01-03", "2024-01-01") == []

    @pytest.mark.asyncio
    async def test_invalid_dates(self, aggregator):
        with pytest.raises(InvalidArgumentError):
            await aggregator.range_query("yesterday", "2024-01-01")

    @pytest.mark.asyncio
    async def test_does_not_touch_snapshot(self, aggregator, session_factory, reporting_settings):
        await aggregator.range_query("2024-01-01", "2024-01-31")

        async with session_factory() as session:
            assert await SnapshotStore(session, reporting_settings).load() is None


class TestCurrencyRate:
    """Tests for the conversion rate and its price cascade"""

    @pytest.mark.asyncio
    async def test_default_rate(self, aggregator):
        rate = await aggregator.get_currency_rate()

        assert rate.rate == Decimal("190.00")

    @pytest.mark.asyncio
    async def test_cascade_reprices_products(self, aggregator, seed, session_factory):
        product = await seed.product("Lamp", price_usd="10.00", price_lrd="1900.00", quantity_in_stock=5)

        result = await aggregator.set_currency_rate(2.0)

        assert result.updated_count == 1
        assert result.failed_count == 0
        async with session_factory() as session:
            repriced = await ProductStore(session).get(product.id)
        assert repriced.price_lrd == Decimal("20.00")
        assert repriced.total_value_lrd == Decimal("100.00")
        assert repriced.price_usd == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_rate_is_stored(self, aggregator):
        await aggregator.refresh()
        before = await aggregator.get_currency_rate()

        await aggregator.set_currency_rate("205.5")

        after = await aggregator.get_currency_rate()
        assert after.rate == Decimal("205.5")
        assert after.last_updated >= before.last_updated

    @pytest.mark.asyncio
    async def test_rate_survives_refresh(self, aggregator):
        await aggregator.set_currency_rate(200)

        snapshot = await aggregator.refresh()

        assert snapshot.currency_conversion_rate == Decimal("200")

    @pytest.mark.asyncio
    async def test_cascade_leaves_inventory_value_until_refresh(self, aggregator, seed):
        await seed.product("Lamp", price_usd="10.00", price_lrd="1900.00", quantity_in_stock=5)
        before = await aggregator.refresh()

        await aggregator.set_currency_rate(2)

        assert (await aggregator.get_summary()).inventory_value == before.inventory_value
        assert (await aggregator.refresh()).inventory_value.lrd == Decimal("100.00")

    @pytest.mark.parametrize("rate", [-1, "abc", True])
    @pytest.mark.asyncio
    async def test_invalid_rate_leaves_snapshot_unchanged(self, aggregator, seed, rate):
        await seed.product("Lamp")
        before = await aggregator.refresh()

        with pytest.raises(InvalidArgumentError):
            await aggregator.set_currency_rate(rate)

        after = await aggregator._require_snapshot()
        assert after.currency_conversion_rate == before.currency_conversion_rate
        assert after.last_updated == before.last_updated

    @pytest.mark.asyncio
    async def test_partial_failure_is_reported(self, aggregator, seed, session_factory, monkeypatch):
        good = await seed.product("Good")
        bad = await seed.product("Bad")
        original_update = ProductStore.update

        async def flaky_update(self, product_id, fields):
            if product_id == bad.id:
                _unavailable()
            return await original_update(self, product_id, fields)

        monkeypatch.setattr(ProductStore, "update", flaky_update)

        result = await aggregator.set_currency_rate(3)

        assert result.total_products == 2
        assert result.updated_count == 1
        assert result.failed_count == 1
        assert (await aggregator.get_currency_rate()).rate == Decimal("3")
        async with session_factory() as session:
            assert (await ProductStore(session).get(good.id)).price_lrd == Decimal("30.00")

    @pytest.mark.asyncio
    async def test_new_snapshot_from_rate_stays_stale(self, aggregator, seed):
        await aggregator.set_currency_rate(150)
        await seed.product("Lamp")

        snapshot = await aggregator.get_snapshot()

        assert snapshot.total_products == 1
        assert snapshot.currency_conversion_rate == Decimal("150")

    @pytest.mark.asyncio
    async def test_rate_set_during_refresh_is_kept(self, aggregator, seed, session_factory, monkeypatch):
        product = await seed.product("Lamp", price_usd="10.00", price_lrd="1900.00")
        await aggregator.refresh()
        entered = asyncio.Event()
        release = asyncio.Event()
        original = TransactionStore.list_completed

        async def held_open(self, since=None):
            entered.set()
            await release.wait()
            return await original(self, since)

        monkeypatch.setattr(TransactionStore, "list_completed", held_open)
        refreshing = asyncio.ensure_future(aggregator.refresh())
        await entered.wait()

        result = await aggregator.set_currency_rate("2")
        release.set()
        snapshot = await refreshing

        assert result.rate == Decimal("2")
        assert snapshot.currency_conversion_rate == Decimal("2")
        assert (await aggregator.get_currency_rate()).rate == Decimal("2")
        async with session_factory() as session:
            assert (await ProductStore(session).get(product.id)).price_lrd == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_rate_update_keeps_figures_of_overlapping_refresh(self, aggregator, seed, monkeypatch):
        await aggregator.refresh()
        await seed.product("Added later")
        original = SnapshotStore.save_rate

        async def refresh_first(self, rate, updated_at):
            await aggregator.refresh()
            await original(self, rate, updated_at)

        monkeypatch.setattr(SnapshotStore, "save_rate", refresh_first)

        await aggregator.set_currency_rate(3)

        assert (await aggregator.get_summary()).total_products == 1
        assert (await aggregator.get_currency_rate()).rate == Decimal("3")

    @pytest.mark.asyncio
    async def test_rate_rounded_to_stored_precision(self, aggregator, seed, session_factory):
        product = await seed.product("Lamp", price_usd="10.00", price_lrd="1900.00")

        result = await aggregator.set_currency_rate("190.12345")

        stored = await aggregator.get_currency_rate()
        assert result.rate == stored.rate == Decimal("190.1235")
        async with session_factory() as session:
            assert (await ProductStore(session).get(product.id)).price_lrd == Decimal("1901.24")

    @pytest.mark.asyncio
    async def test_timezone_aware_dates_normalized(self, aggregator, seed):
        item = await seed.product("Soap", price_usd="2.00", price_lrd="380.00")
        await seed.transaction(item, transaction_date=datetime(2024, 1, 1, 23, 30))

        days = await aggregator.range_query(
            datetime(2024, 1, 2, 0, 0, tzinfo=timezone(timedelta(hours=1))),
            "2024-01-01",
        )

        assert [d.date for d in days] == ["2024-01-01"]
