"""
Settlement of gateway payments against orders and appointments.

The success callback and the client-side verify endpoint share this logic;
they differ only in how the outcome is reported (redirect vs JSON).
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from carwash.models.appointment import Appointment, PaymentStatus, PaymentType
from carwash.models.notification import NotificationType
from carwash.models.order import Order, OrderItem, OrderStatus
from carwash.models.payment import Payment
from carwash.models.user import User
from carwash.services import esewa
from carwash.services.notifications import notify_admins, notify_user
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

# Below this share of the price an appointment counts as half paid
FULL_PAYMENT_THRESHOLD = Decimal("0.9")

# Payments whose order or appointment has already been settled
SETTLED_STATUSES = (PaymentStatus.PAID, PaymentStatus.REFUNDED)

# Gateway status -> (payment status, order status)
GATEWAY_STATUS_MAP = {
    esewa.STATUS_COMPLETE: (PaymentStatus.PAID, OrderStatus.PAID),
    esewa.STATUS_PENDING: (PaymentStatus.PENDING, OrderStatus.PENDING),
    esewa.STATUS_FULL_REFUND: (PaymentStatus.REFUNDED, OrderStatus.REFUNDED),
    esewa.STATUS_PARTIAL_REFUND: (PaymentStatus.REFUNDED, OrderStatus.REFUNDED),
    esewa.STATUS_CANCELED: (PaymentStatus.FAILED, OrderStatus.CANCELED),
    esewa.STATUS_NOT_FOUND: (PaymentStatus.FAILED, OrderStatus.CANCELED),
}


class SettlementError(Exception):
    """A callback that cannot settle a payment.

    ``reason`` is the machine-readable code passed on to the frontend.
    """

    def __init__(self, reason: str, message: str, gateway_status: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.gateway_status = gateway_status


@dataclass
class SettlementResult:
    payment: Payment
    order_id: Optional[str] = None
    appointment_id: Optional[str] = None
    already_settled: bool = False

    @property
    def kind(self) -> str:
        return "order" if self.order_id else "appointment"


def appointment_payment_status(appointment: Appointment, amount: Decimal) -> PaymentStatus:
    if appointment.payment_type == PaymentType.HALF:
        return PaymentStatus.HALF_PAID
    if amount < Decimal(appointment.price) * FULL_PAYMENT_THRESHOLD:
        return PaymentStatus.HALF_PAID
    return PaymentStatus.PAID


def paid_amount(data: Dict[str, Any], payment: Payment) -> Decimal:
    """Amount reported by the gateway, falling back to the stored amount."""
    try:
        return esewa.parse_amount(data["total_amount"])
    except (KeyError, InvalidOperation):
        return Decimal(payment.amount)


async def find_payment(db: AsyncSession, transaction_uuid: str) -> Optional[Payment]:
    result = await db.execute(select(Payment).where(Payment.transaction_id == transaction_uuid))
    return result.scalar_one_or_none()


def validate_callback(data: Dict[str, Any]) -> str:
    """Check a decoded success payload and return its transaction uuid.

    Raises:
        SettlementError: with reason ``invalid_data``, ``invalid_signature``
            or ``payment_failed``.
    """
    transaction_uuid = data.get("transaction_uuid")
    gateway_status = data.get("status")
    if not transaction_uuid or not gateway_status:
        raise SettlementError("invalid_data", "Missing required fields in eSewa response")

    if not esewa.verify_signature(data):
        raise SettlementError("invalid_signature", "Invalid signature in eSewa response")

    if gateway_status != esewa.STATUS_COMPLETE:
        raise SettlementError(
            "payment_failed", f"Payment not complete: {gateway_status}", gateway_status
        )
    return transaction_uuid


async def settle_order(db: AsyncSession, payment: Payment, amount: Decimal) -> Order:
    result = await db.execute(
        select(Order)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .where(Order.id == payment.order_id)
    )
    order = result.scalar_one()

    order.status = OrderStatus.PROCESSING
    order.payment_status = PaymentStatus.PAID

    for item in order.items:
        product = item.product
        if product.stock < item.quantity:
            logger.warning(
                f"Stock for product {product.id} ({product.stock}) is below the "
                f"{item.quantity} paid for in order {order.id}"
            )
        product.stock = max(product.stock - item.quantity, 0)

    await db.commit()
    logger.info(f"Order {order.id} paid ({amount}); stock decremented")

    owner = await db.get(User, order.user_id)
    item_count = sum(item.quantity for item in order.items)
    await notify_user(
        db,
        order.user_id,
        "Payment Successful",
        f"Your payment of Rs{order.total_amount} for the order has been received. "
        f"Your order is being processed.",
        NotificationType.PAYMENT,
        clerk_id=owner.clerk_id if owner else None,
    )
    await notify_admins(
        db,
        "New Order Payment",
        f"{owner.name if owner and owner.name else 'A customer'} has paid "
        f"Rs{order.total_amount} for {item_count} item(s). Order #{order.id[:8]}.",
        NotificationType.PAYMENT,
        broadcast={
            "message": f"New order payment received: Rs{order.total_amount}",
            "order_id": order.id,
        },
    )
    return order


async def settle_appointment(db: AsyncSession, payment: Payment, amount: Decimal) -> Appointment:
    result = await db.execute(
        select(Appointment)
        .options(selectinload(Appointment.service), selectinload(Appointment.user))
        .where(Appointment.id == payment.appointment_id)
    )
    appointment = result.scalar_one()

    appointment.payment_status = appointment_payment_status(appointment, amount)
    await db.commit()
    logger.info(
        f"Appointment {appointment.id} payment settled: "
        f"{appointment.payment_status.value} ({amount} of {appointment.price})"
    )

    customer = appointment.user
    service_name = appointment.service.name if appointment.service else "car wash"
    await notify_user(
        db,
        appointment.user_id,
        "Payment Successful",
        f"Your payment of Rs{amount} for the {service_name} booking has been received. "
        f"We look forward to serving you!",
        NotificationType.PAYMENT,
        clerk_id=customer.clerk_id if customer else None,
    )
    await notify_admins(
        db,
        "New Service Booking Payment",
        f"{customer.name if customer and customer.name else 'A customer'} has paid "
        f"Rs{amount} for {service_name} on {appointment.date.date().isoformat()}.",
        NotificationType.PAYMENT,
        broadcast={
            "message": f"New booking payment received: Rs{amount}",
            "appointment_id": appointment.id,
        },
    )
    return appointment


async def settle_payment(
    db: AsyncSession, payment: Payment, amount: Decimal, reference_id: Optional[str]
) -> SettlementResult:
    """Mark a gateway payment paid and settle what it paid for.

    Runs at most once per payment. Confirmations for a payment that is
    already paid or refunded are acknowledged without touching stock or
    notifying again.
    """
    if payment.status in SETTLED_STATUSES:
        logger.info(f"Payment {payment.id} already settled; ignoring replay")
        return SettlementResult(
            payment=payment,
            order_id=payment.order_id,
            appointment_id=payment.appointment_id,
            already_settled=True,
        )

    payment.status = PaymentStatus.PAID
    if reference_id:
        payment.reference_id = reference_id

    if payment.order_id:
        await settle_order(db, payment, amount)
    elif payment.appointment_id:
        await settle_appointment(db, payment, amount)
    else:
        await db.commit()
        logger.warning(f"Payment {payment.id} is not linked to an order or appointment")

    return SettlementResult(
        payment=payment, order_id=payment.order_id, appointment_id=payment.appointment_id
    )


async def settle_callback(db: AsyncSession, data: Dict[str, Any]) -> SettlementResult:
    """Apply a decoded success payload.

    Raises:
        SettlementError: when the payload is invalid or unknown.
    """
    transaction_uuid = validate_callback(data)

    payment = await find_payment(db, transaction_uuid)
    if payment is None:
        raise SettlementError("transaction_not_found", f"No payment for {transaction_uuid}")

    return await settle_payment(
        db,
        payment,
        paid_amount(data, payment),
        data.get("transaction_code") or data.get("ref_id"),
    )


async def mark_failed(db: AsyncSession, transaction_uuid: Optional[str]) -> Optional[Payment]:
    """Record a failed gateway payment; unknown transactions are only logged."""
    payment = await find_payment(db, transaction_uuid) if transaction_uuid else None
    if payment is None:
        logger.warning(f"No payment record found for failed transaction: {transaction_uuid}")
        return None

    if payment.status in SETTLED_STATUSES:
        logger.warning(f"Ignoring failure report for settled payment {payment.id}")
        return payment

    payment.status = PaymentStatus.FAILED
    if payment.order_id:
        order = await db.get(Order, payment.order_id)
        if order:
            order.status = OrderStatus.PAYMENT_FAILED
            order.payment_status = PaymentStatus.FAILED
    await db.commit()

    logger.info(f"Payment {payment.id} marked FAILED")
    return payment


async def apply_gateway_status(
    db: AsyncSession, payment: Payment, status_data: Dict[str, Any]
) -> None:
    """Mirror a status API answer onto the payment and its order.

    A COMPLETE answer for an unsettled payment settles it exactly like the
    success callback. Unknown gateway statuses leave the records unchanged.
    The payment and the order are written in separate commits.
    """
    gateway_status = status_data.get("status")
    mapped = GATEWAY_STATUS_MAP.get(gateway_status)
    if mapped is None:
        logger.warning(f"Unmapped eSewa status {gateway_status} for payment {payment.id}")
        return

    if gateway_status == esewa.STATUS_COMPLETE:
        await settle_payment(
            db, payment, paid_amount(status_data, payment), status_data.get("ref_id")
        )

    payment_status, order_status = mapped
    payment.status = payment_status
    if status_data.get("ref_id"):
        payment.reference_id = status_data["ref_id"]
    await db.commit()

    if payment.order_id:
        order = await db.get(Order, payment.order_id)
        if order:
            order.status = order_status
            order.payment_status = payment_status
            await db.commit()

    logger.info(f"Payment {payment.id} synced with gateway status {gateway_status}")
