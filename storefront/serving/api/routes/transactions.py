"""
Transactions API Endpoints

Point-of-sale records. Completed transactions are the source of every sales
figure on the dashboard.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.connection import get_db_dependency
from storefront.database.models import Currency, PaymentMethod, TransactionStatus
from storefront.database.stores import ProductStore, TransactionStore

router = APIRouter()
logger = structlog.get_logger(__name__)


class TransactionCreate(BaseModel):
    """
    A sale of one product.

    Prices default to the product's current prices when omitted.
    """
    product_id: UUID
    quantity_bought: int = Field(ge=1)
    buyer_name: str = Field(min_length=1, max_length=200)
    buyer_contact: Optional[str] = None
    buyer_email: Optional[str] = None
    currency: Currency = Currency.USD
    price_at_sale_usd: Optional[Decimal] = Field(default=None, ge=0)
    price_at_sale_lrd: Optional[Decimal] = Field(default=None, ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    transaction_status: TransactionStatus = TransactionStatus.COMPLETED
    transaction_date: Optional[datetime] = None
    notes: Optional[str] = None
    processed_by: Optional[UUID] = None


class TransactionStatusUpdate(BaseModel):
    status: TransactionStatus


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    product_name: str
    category: str
    currency: str
    quantity_bought: int
    price_at_sale_usd: Decimal
    price_at_sale_lrd: Decimal
    total_bought_usd: Decimal
    total_bought_lrd: Decimal
    buyer_name: str
    buyer_contact: Optional[str]
    buyer_email: Optional[str]
    transaction_date: datetime
    payment_method: str
    transaction_status: str
    notes: Optional[str]


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def record_transaction(
    payload: TransactionCreate,
    db: AsyncSession = Depends(get_db_dependency),
) -> TransactionResponse:
    product = await ProductStore(db).get(payload.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    fields = payload.model_dump(exclude_none=True, mode="python")
    fields.update(
        product_name=product.name,
        category=product.category,
        currency=payload.currency.value,
        payment_method=payload.payment_method.value,
        transaction_status=payload.transaction_status.value,
    )
    fields.setdefault("price_at_sale_usd", product.price_usd)
    fields.setdefault("price_at_sale_lrd", product.price_lrd)
    sold_at = fields.get("transaction_date")
    if sold_at is not None and sold_at.tzinfo is not None:
        fields["transaction_date"] = sold_at.astimezone(timezone.utc).replace(tzinfo=None)

    transaction = await TransactionStore(db).create(fields)
    logger.info(
        "Transaction recorded",
        transaction_id=str(transaction.id),
        product_id=str(product.id),
        quantity=transaction.quantity_bought,
        total_usd=str(transaction.total_bought_usd),
    )
    return TransactionResponse.model_validate(transaction)


@router.get("", response_model=List[TransactionResponse])
async def list_transactions(
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[TransactionResponse]:
    """Transactions, most recent sale first."""
    transactions = await TransactionStore(db).list(
        status=status_filter.value if status_filter else None,
        limit=limit,
        offset=offset,
    )
    return [TransactionResponse.model_validate(t) for t in transactions]


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: UUID,
    db: AsyncSession = Depends(get_db_dependency),
) -> TransactionResponse:
    transaction = await TransactionStore(db).get(transaction_id)
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return TransactionResponse.model_validate(transaction)


@router.patch("/{transaction_id}/status", response_model=TransactionResponse)
async def update_transaction_status(
    transaction_id: UUID,
    payload: TransactionStatusUpdate,
    db: AsyncSession = Depends(get_db_dependency),
) -> TransactionResponse:
    transaction = await TransactionStore(db).update_status(transaction_id, payload.status.value)
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    logger.info("Transaction status updated", transaction_id=str(transaction_id), status=payload.status.value)
    return TransactionResponse.model_validate(transaction)
