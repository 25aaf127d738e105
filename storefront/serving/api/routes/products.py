"""
Products API Endpoints

Catalog CRUD. Total values (price x stock) are maintained by the product
store; single-product reads are cached in Redis.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.connection import get_db_dependency
from storefront.database.stores import ProductStore, to_money
from storefront.reporting import ReportingAggregator
from storefront.serving.api.deps import get_reporting
from storefront.serving.cache import products_cache

router = APIRouter()
logger = structlog.get_logger(__name__)


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str]
    category: str
    features: Optional[List[str]]
    price_usd: Decimal
    price_lrd: Decimal
    quantity_in_stock: int
    total_value_usd: Decimal
    total_value_lrd: Decimal
    created_at: datetime
    updated_at: datetime


class ProductCreate(BaseModel):
    """New product; ``price_lrd`` defaults to ``price_usd`` at the current rate"""
    name: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1, max_length=100)
    price_usd: Decimal = Field(ge=0)
    price_lrd: Optional[Decimal] = Field(default=None, ge=0)
    quantity_in_stock: int = Field(default=0, ge=0)
    description: Optional[str] = None
    features: Optional[List[str]] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    price_usd: Optional[Decimal] = Field(default=None, ge=0)
    price_lrd: Optional[Decimal] = Field(default=None, ge=0)
    quantity_in_stock: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None
    features: Optional[List[str]] = None


@router.get("", response_model=List[ProductResponse])
async def list_products(db: AsyncSession = Depends(get_db_dependency)) -> List[ProductResponse]:
    """All products, newest first."""
    products = await ProductStore(db).list_newest()
    return [ProductResponse.model_validate(p) for p in products]


@router.get("/search", response_model=List[ProductResponse])
async def search_products(
    query: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[ProductResponse]:
    """Case-insensitive search over name, category and description."""
    if not query or not query.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query is required")
    products = await ProductStore(db).search(query.strip())
    return [ProductResponse.model_validate(p) for p in products]


@router.get("/category/{category}", response_model=List[ProductResponse])
async def list_products_by_category(
    category: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> List[ProductResponse]:
    products = await ProductStore(db).list_by_category(category)
    return [ProductResponse.model_validate(p) for p in products]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_db_dependency),
) -> ProductResponse:
    async def load() -> dict:
        product = await ProductStore(db).get(product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        return ProductResponse.model_validate(product).model_dump(mode="json")

    return ProductResponse(**await products_cache.get_or_set(str(product_id), load))


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    db: AsyncSession = Depends(get_db_dependency),
    reporting: ReportingAggregator = Depends(get_reporting),
) -> ProductResponse:
    fields = payload.model_dump()
    if fields["price_lrd"] is None:
        rate = (await reporting.get_currency_rate()).rate
        fields["price_lrd"] = to_money(payload.price_usd * rate)

    product = await ProductStore(db).create(fields)
    logger.info("Product created", product_id=str(product.id), name=product.name)
    return ProductResponse.model_validate(product)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: UUID,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_db_dependency),
) -> ProductResponse:
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)
    product = await ProductStore(db).update(product_id, fields)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    await products_cache.delete(str(product_id))
    logger.info("Product updated", product_id=str(product_id), fields=sorted(fields))
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}")
async def delete_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_db_dependency),
) -> dict:
    if not await ProductStore(db).delete(product_id):
        raise HTTPException(status_code=404, detail="Product not found")

    await products_cache.delete(str(product_id))
    logger.info("Product deleted", product_id=str(product_id))
    return {"message": "Product deleted successfully"}
