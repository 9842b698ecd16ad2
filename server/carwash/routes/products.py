"""Shop catalogue endpoints: categories and products."""

import logging
from typing import Optional

from carwash.dependencies import CurrentUser, require_admin
from carwash.models.order import OrderItem
from carwash.models.product import Category, Product
from carwash.schemas import CategoryCreate, ProductCreate, ProductUpdate
from carwash.services.database import get_db
from carwash.utils.serialization import serialize_category, serialize_product
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

router = APIRouter()


def require_name(name: Optional[str]) -> str:
    if not name or not name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    return name.strip()


async def get_category_or_404(db: AsyncSession, category_id: str) -> Category:
    category = await db.get(Category, category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


async def load_product(db: AsyncSession, product_id: str) -> Product:
    result = await db.execute(
        select(Product)
        .options(selectinload(Product.category))
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


def validate_product_values(price, stock) -> None:
    if price is not None and price < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Price cannot be negative"
        )
    if stock is not None and stock < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Stock cannot be negative"
        )


# ============================================================================
# Categories
# ============================================================================


@router.get("/categories")
async def list_categories(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Category).order_by(Category.name.asc()))
    return [serialize_category(c) for c in result.scalars().all()]


@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    category = Category(name=require_name(payload.name))
    db.add(category)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Category already exists"
        )

    logger.info(f"Category created: {category.name}")
    return serialize_category(category)


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    payload: CategoryCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    name = require_name(payload.name)
    category = await get_category_or_404(db, category_id)
    category.name = name
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Category already exists"
        )
    return serialize_category(category)


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete a category that no product uses."""
    category = await get_category_or_404(db, category_id)

    in_use = await db.scalar(
        select(func.count(Product.id)).where(Product.category_id == category_id)
    )
    if in_use:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete category with associated products",
        )

    await db.delete(category)
    await db.commit()
    logger.info(f"Category deleted: {category_id}")
    return {"success": True}


# ============================================================================
# Products
# ============================================================================


@router.get("/products")
async def list_products(
    category_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    query = select(Product).options(selectinload(Product.category)).order_by(
        Product.created_at.desc()
    )
    if category_id:
        query = query.where(Product.category_id == category_id)

    result = await db.execute(query)
    return [serialize_product(p) for p in result.scalars().all()]


@router.get("/products/{product_id}")
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)):
    return serialize_product(await load_product(db, product_id))


@router.post("/products", status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    name = require_name(payload.name)
    validate_product_values(payload.price, payload.stock)
    await get_category_or_404(db, payload.category_id)

    product = Product(
        name=name,
        description=payload.description,
        price=payload.price,
        stock=payload.stock,
        category_id=payload.category_id,
        images=list(payload.images),
    )
    db.add(product)
    await db.commit()

    logger.info(f"Product created: {product.id} ({product.name})")
    return serialize_product(await load_product(db, product.id))


@router.put("/products/{product_id}")
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await load_product(db, product_id)
    changes = payload.model_dump(exclude_unset=True)

    validate_product_values(changes.get("price"), changes.get("stock"))
    if "name" in changes:
        changes["name"] = require_name(changes["name"])
    if changes.get("category_id"):
        await get_category_or_404(db, changes["category_id"])

    for field, value in changes.items():
        if value is not None:
            setattr(product, field, value)
    await db.commit()

    logger.info(f"Product updated: {product_id}")
    return serialize_product(await load_product(db, product_id))


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await load_product(db, product_id)

    ordered = await db.scalar(
        select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id)
    )
    if ordered:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete product with associated orders",
        )

    await db.delete(product)
    await db.commit()
    logger.info(f"Product deleted: {product_id}")
    return {"success": True}
