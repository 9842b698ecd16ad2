"""Customer order endpoints."""

import logging
from collections import defaultdict
from decimal import Decimal

from carwash.dependencies import CurrentUser, get_current_user
from carwash.models.appointment import PaymentMethod, PaymentStatus
from carwash.models.order import Order, OrderItem, OrderStatus
from carwash.models.product import Product
from carwash.schemas import OrderCreate
from carwash.services.database import get_db
from carwash.utils.serialization import serialize_order
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

router = APIRouter()


def order_details():
    """Loader options for an order with its items, products and payment."""
    return (
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.payment),
    )


@router.post("/orders", status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Place an order awaiting payment.

    Stock is only checked here; it is decremented once the payment settles.
    """
    if not payload.items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Order items are required"
        )
    if not payload.address or not payload.address.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Address is required")
    if not payload.phone_number or not payload.phone_number.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Phone number is required"
        )

    requested = defaultdict(int)
    for item in payload.items:
        requested[item.product_id] += item.quantity

    result = await db.execute(select(Product).where(Product.id.in_(list(requested))))
    products = {p.id: p for p in result.scalars().all()}
    if len(products) != len(requested):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="One or more products not found"
        )

    for product_id, quantity in requested.items():
        product = products[product_id]
        if product.stock < quantity:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Not enough stock for {product.name}",
            )

    total_amount = payload.total_amount
    if total_amount is None:
        total_amount = sum((i.price * i.quantity for i in payload.items), Decimal("0"))

    order = Order(
        user_id=current_user.id,
        total_amount=total_amount,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        payment_method=payload.payment_method or PaymentMethod.ESEWA,
        address=payload.address.strip(),
        phone_number=payload.phone_number.strip(),
    )
    order.items = [
        OrderItem(product_id=i.product_id, quantity=i.quantity, price=i.price)
        for i in payload.items
    ]
    db.add(order)
    await db.commit()

    logger.info(f"Order {order.id} created by user {current_user.id} ({total_amount})")

    result = await db.execute(
        select(Order)
        .options(*order_details())
        .where(Order.id == order.id)
        .execution_options(populate_existing=True)
    )
    return serialize_order(result.scalar_one())


@router.get("/orders")
async def list_my_orders(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Order)
        .options(*order_details())
        .where(Order.user_id == current_user.id)
        .order_by(Order.created_at.desc())
    )
    return [serialize_order(o) for o in result.scalars().all()]


@router.get("/orders/{order_id}")
async def get_my_order(
    order_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Order).options(*order_details()).where(Order.id == order_id))
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if order.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return serialize_order(order)
