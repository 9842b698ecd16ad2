"""Admin back-office endpoints: order management and the dashboard."""

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple

from carwash.dependencies import CurrentUser, require_admin
from carwash.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from carwash.models.notification import NotificationType
from carwash.models.order import ADMIN_ORDER_STATUSES, Order, OrderItem, OrderStatus
from carwash.models.payment import Payment
from carwash.models.staff import Staff
from carwash.models.user import User, UserRole
from carwash.schemas import OrderStatusUpdate
from carwash.services.database import get_db
from carwash.services.notifications import notify_user
from carwash.utils.serialization import serialize_order, staff_display_name
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

router = APIRouter()

# Labels the dashboard uses for appointment statuses
DASHBOARD_STATUS = {AppointmentStatus.CONFIRMED: "SCHEDULED"}


def admin_order_options():
    return (
        selectinload(Order.user),
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.payment),
    )


async def load_admin_order(db: AsyncSession, order_id: str) -> Order:
    result = await db.execute(
        select(Order)
        .options(*admin_order_options())
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


# ============================================================================
# Orders
# ============================================================================


@router.get("/admin/orders")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: str = Query("ALL", alias="status"),
    search: str = Query(""),
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Paginated order list.

    ``status=ALL`` disables the status filter; ``search`` matches the order
    id, customer email or customer name case-insensitively.
    """
    conditions = []
    if status_filter and status_filter.upper() != "ALL":
        try:
            conditions.append(Order.status == OrderStatus(status_filter.upper()))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid order status"
            )

    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(Order.id.ilike(pattern), User.email.ilike(pattern), User.name.ilike(pattern))
        )

    total_orders = await db.scalar(
        select(func.count(Order.id)).join(User, Order.user_id == User.id).where(*conditions)
    )

    result = await db.execute(
        select(Order)
        .join(User, Order.user_id == User.id)
        .options(*admin_order_options())
        .where(*conditions)
        .order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    return {
        "orders": [serialize_order(o) for o in result.scalars().all()],
        "total_orders": total_orders or 0,
        "total_pages": math.ceil((total_orders or 0) / limit),
        "current_page": page,
    }


@router.get("/admin/orders/{order_id}")
async def get_order(
    order_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return serialize_order(await load_admin_order(db, order_id))


@router.patch("/admin/orders/{order_id}")
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Set an order's status; refunding also refunds its payment."""
    try:
        new_status = OrderStatus(payload.status.strip().upper())
    except ValueError:
        new_status = None
    if new_status not in ADMIN_ORDER_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid order status")

    order = await load_admin_order(db, order_id)
    order.status = new_status
    await db.commit()

    # Separate write, as in the payment flows
    if new_status == OrderStatus.REFUNDED and order.payment is not None:
        order.payment.status = PaymentStatus.REFUNDED
        await db.commit()

    logger.info(f"Order {order_id} set to {new_status.value} by admin {current_user.id}")

    await notify_user(
        db,
        order.user_id,
        "Order Updated",
        f"Your order #{order.id[:8]} is now {new_status.value.lower()}.",
        NotificationType.ORDER,
        clerk_id=order.user.clerk_id if order.user else None,
    )

    return serialize_order(await load_admin_order(db, order_id))


# ============================================================================
# Dashboard
# ============================================================================


def month_windows(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """First instant of this month and of last month (UTC)."""
    now = now or datetime.now(timezone.utc)
    this_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if this_month.month == 1:
        last_month = this_month.replace(year=this_month.year - 1, month=12)
    else:
        last_month = this_month.replace(month=this_month.month - 1)
    return this_month, last_month


def percent_change(current, previous) -> float:
    if not previous:
        return 100.0
    return float((current - previous) / previous * 100)


@router.get("/admin/dashboard/stats")
async def dashboard_stats(
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """This month vs last month: revenue, bookings, active customers, completed services."""
    this_month, last_month = month_windows()
    windows = {
        "current": (Appointment.created_at >= this_month,),
        "previous": (Appointment.created_at >= last_month, Appointment.created_at < this_month),
    }
    payment_windows = {
        "current": (Payment.created_at >= this_month,),
        "previous": (Payment.created_at >= last_month, Payment.created_at < this_month),
    }

    stats = {}
    for key in ("current", "previous"):
        revenue = await db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(*payment_windows[key])
        )
        bookings = await db.scalar(select(func.count(Appointment.id)).where(*windows[key]))
        customers = await db.scalar(
            select(func.count(distinct(Appointment.user_id)))
            .join(User, Appointment.user_id == User.id)
            .where(User.role == UserRole.CUSTOMER, *windows[key])
        )
        completed = await db.scalar(
            select(func.count(Appointment.id)).where(
                Appointment.status == AppointmentStatus.COMPLETED, *windows[key]
            )
        )
        stats[key] = {
            "revenue": Decimal(str(revenue or 0)),
            "bookings": bookings or 0,
            "customers": customers or 0,
            "completed": completed or 0,
        }

    current, previous = stats["current"], stats["previous"]
    return {
        "total_revenue": {
            "amount": float(current["revenue"]),
            "percent_change": percent_change(current["revenue"], previous["revenue"]),
        },
        "bookings": {
            "count": current["bookings"],
            "percent_change": percent_change(current["bookings"], previous["bookings"]),
        },
        "active_customers": {
            "count": current["customers"],
            "percent_change": percent_change(current["customers"], previous["customers"]),
        },
        "services_completed": {
            "count": current["completed"],
            "percent_change": percent_change(current["completed"], previous["completed"]),
        },
    }


@router.get("/admin/dashboard/recent-bookings")
async def recent_bookings(
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Latest five bookings formatted for the dashboard table."""
    result = await db.execute(
        select(Appointment)
        .options(
            selectinload(Appointment.user),
            selectinload(Appointment.service),
            selectinload(Appointment.staff).selectinload(Staff.user),
        )
        .order_by(Appointment.created_at.desc())
        .limit(5)
    )

    bookings = []
    for appointment in result.scalars().all():
        bookings.append(
            {
                "id": appointment.id,
                "customer": appointment.user.name if appointment.user else None,
                "service": appointment.service.name if appointment.service else None,
                "date_time": appointment.date.strftime("%b %d, %Y, %I:%M %p"),
                "employee": staff_display_name(appointment.staff),
                "status": DASHBOARD_STATUS.get(appointment.status, appointment.status.value),
                "amount": float(appointment.price),
            }
        )
    return bookings
