"""
Orders API Endpoints

Customer orders: checkout, listing and status changes. Order statuses feed
the dashboard's per-status counts.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.connection import get_db_dependency
from storefront.database.models import OrderPaymentMethod, OrderStatus
from storefront.database.stores import OrderStore, ProductStore, to_money

router = APIRouter()
logger = structlog.get_logger(__name__)


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class OrderItemInput(BaseModel):
    product_id: UUID
    quantity: int = Field(ge=1)


class OrderCreate(BaseModel):
    user_id: UUID
    items: List[OrderItemInput] = Field(min_length=1)
    payment_method: OrderPaymentMethod
    shipping_address: Optional[Dict[str, str]] = None
    notes: str = ""


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    items: List[dict]
    total_usd: Decimal
    total_lrd: Decimal
    status: str
    payment_method: str
    shipping_address: Optional[dict]
    notes: str
    created_at: datetime
    updated_at: datetime


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db_dependency),
) -> OrderResponse:
    """Create an order, pricing each line at the product's current prices."""
    products = ProductStore(db)
    items = []
    total_usd = Decimal("0")
    total_lrd = Decimal("0")

    for line in payload.items:
        product = await products.get(line.product_id)
        if not product:
            raise HTTPException(status_code=404, detail=f"Product not found: {line.product_id}")
        if product.quantity_in_stock < line.quantity:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Insufficient stock for {product.name}",
            )
        items.append({
            "product_id": str(product.id),
            "quantity": line.quantity,
            "price_usd": str(product.price_usd),
            "price_lrd": str(product.price_lrd),
        })
        total_usd += Decimal(product.price_usd) * line.quantity
        total_lrd += Decimal(product.price_lrd) * line.quantity

    order = await OrderStore(db).create({
        "user_id": payload.user_id,
        "items": items,
        "total_usd": to_money(total_usd),
        "total_lrd": to_money(total_lrd),
        "payment_method": payload.payment_method.value,
        "shipping_address": payload.shipping_address,
        "notes": payload.notes,
    })
    logger.info("Order created", order_id=str(order.id), items=len(items), total_usd=str(order.total_usd))
    return OrderResponse.model_validate(order)


@router.get("", response_model=List[OrderResponse])
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    user_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db_dependency),
) -> List[OrderResponse]:
    orders = await OrderStore(db).list(
        status=status_filter.value if status_filter else None,
        user_id=user_id,
    )
    return [OrderResponse.model_validate(o) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_db_dependency),
) -> OrderResponse:
    order = await OrderStore(db).get(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderResponse.model_validate(order)


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db_dependency),
) -> OrderResponse:
    order = await OrderStore(db).update_status(order_id, payload.status.value)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info("Order status updated", order_id=str(order_id), status=payload.status.value)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_db_dependency),
) -> OrderResponse:
    """Cancel an order that has not started processing."""
    store = OrderStore(db)
    order = await store.get(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.status != OrderStatus.PENDING.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only pending orders can be cancelled (status: {order.status})",
        )
    order = await store.update_status(order_id, OrderStatus.CANCELLED.value)
    logger.info("Order cancelled", order_id=str(order_id))
    return OrderResponse.model_validate(order)
