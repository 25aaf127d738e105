"""
Dashboard API Endpoints

Read-only views of the cached dashboard snapshot, an explicit refresh, an
ad-hoc date range report and the currency conversion rate.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from storefront.reporting import ReportingAggregator, Snapshot
from storefront.reporting.schemas import (
    CascadeResult,
    CategorySales,
    CurrencyRate,
    DailySales,
    LowStockProduct,
    PaymentMethodStat,
    PeriodBucket,
    ProductSales,
    RecentSale,
    Summary,
)
from storefront.serving.api.deps import get_reporting

router = APIRouter()
logger = structlog.get_logger(__name__)


class RangeRequest(BaseModel):
    """Dates are validated by the aggregator so bad input maps to a 400"""
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class RateRequest(BaseModel):
    rate: Any = None


@router.get("", response_model=Snapshot)
async def get_dashboard(reporting: ReportingAggregator = Depends(get_reporting)) -> Snapshot:
    """Dashboard snapshot, refreshed first when older than the staleness TTL."""
    return await reporting.get_snapshot()


@router.post("/update", response_model=Snapshot)
async def force_update(reporting: ReportingAggregator = Depends(get_reporting)) -> Snapshot:
    logger.info("Forced dashboard refresh requested")
    return await reporting.force_refresh()


@router.get("/sales/{period}", response_model=List[PeriodBucket])
async def get_sales_by_period(
    period: str,
    reporting: ReportingAggregator = Depends(get_reporting),
) -> List[PeriodBucket]:
    return await reporting.get_by_period(period)


@router.get("/top-products", response_model=List[ProductSales])
async def get_top_products(reporting: ReportingAggregator = Depends(get_reporting)) -> List[ProductSales]:
    return await reporting.get_top_products()


@router.get("/sales-by-category", response_model=List[CategorySales])
async def get_sales_by_category(reporting: ReportingAggregator = Depends(get_reporting)) -> List[CategorySales]:
    return await reporting.get_sales_by_category()


@router.get("/low-stock", response_model=List[LowStockProduct])
async def get_low_stock(reporting: ReportingAggregator = Depends(get_reporting)) -> List[LowStockProduct]:
    return await reporting.get_low_stock()


@router.get("/payment-methods", response_model=Dict[str, PaymentMethodStat])
async def get_payment_methods(
    reporting: ReportingAggregator = Depends(get_reporting),
) -> Dict[str, PaymentMethodStat]:
    return await reporting.get_payment_method_stats()


@router.get("/recent-sales", response_model=List[RecentSale])
async def get_recent_sales(reporting: ReportingAggregator = Depends(get_reporting)) -> List[RecentSale]:
    return await reporting.get_recent_sales()


@router.get("/summary", response_model=Summary)
async def get_summary(reporting: ReportingAggregator = Depends(get_reporting)) -> Summary:
    return await reporting.get_summary()


@router.post("/custom-range", response_model=List[DailySales])
async def get_custom_range(
    payload: RangeRequest,
    reporting: ReportingAggregator = Depends(get_reporting),
) -> List[DailySales]:
    """Per-day completed sales between two dates, end date inclusive."""
    logger.info("Custom range requested", start_date=str(payload.start_date), end_date=str(payload.end_date))
    return await reporting.range_query(payload.start_date, payload.end_date)


@router.get("/currency-rate", response_model=CurrencyRate)
async def get_currency_rate(reporting: ReportingAggregator = Depends(get_reporting)) -> CurrencyRate:
    return await reporting.get_currency_rate()


@router.put("/currency-rate", response_model=CascadeResult)
async def update_currency_rate(
    payload: RateRequest,
    reporting: ReportingAggregator = Depends(get_reporting),
) -> CascadeResult:
    """Set the USD to LRD rate and reprice every product in LRD."""
    return await reporting.set_currency_rate(payload.rate)
