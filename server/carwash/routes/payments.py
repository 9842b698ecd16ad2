"""
eSewa payment endpoints.

Initiation returns an auto-submitting HTML form; the gateway then redirects
the browser to the success or failure callback, which settles the payment
and redirects on to the frontend.
"""

import logging
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

from carwash.config import settings
from carwash.dependencies import CurrentUser, get_current_user
from carwash.models.appointment import Appointment, PaymentMethod, PaymentStatus, PaymentType
from carwash.models.order import Order, OrderItem
from carwash.models.payment import Payment
from carwash.schemas import PaymentInitiate, PaymentStatusCheck, PaymentVerify
from carwash.services import esewa, settlement
from carwash.services.database import get_db
from carwash.utils.serialization import serialize_payment
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

router = APIRouter()

ORDER_FAILED_PATH = "/dashboard/user/orders/failed"
ORDER_SUCCESS_PATH = "/dashboard/user/orders/success"
BOOKINGS_PATH = "/dashboard/user/bookings"


def frontend_url(path: str, **params) -> str:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    base = f"{settings.FRONTEND_URL.rstrip('/')}{path}"
    return f"{base}?{query}" if query else base


def failure_redirect(reason: str, **params) -> RedirectResponse:
    return RedirectResponse(frontend_url(ORDER_FAILED_PATH, reason=reason, **params))


def callback_urls() -> tuple:
    base = f"{settings.API_BASE_URL.rstrip('/')}/payments/esewa"
    return f"{base}/success", f"{base}/failure"


async def upsert_order_payment(
    db: AsyncSession, order: Order, transaction_uuid: str
) -> Payment:
    result = await db.execute(select(Payment).where(Payment.order_id == order.id))
    payment = result.scalar_one_or_none()
    if payment is None:
        payment = Payment(user_id=order.user_id, order_id=order.id)
        db.add(payment)

    payment.amount = order.total_amount
    payment.status = PaymentStatus.PENDING
    payment.method = PaymentMethod.ESEWA
    payment.transaction_id = transaction_uuid
    payment.reference_id = None
    return payment


async def upsert_appointment_payment(
    db: AsyncSession, appointment: Appointment, transaction_uuid: str
) -> Payment:
    """Reuse the appointment's pending payment (a retried checkout) or add one."""
    result = await db.execute(
        select(Payment).where(
            Payment.appointment_id == appointment.id,
            Payment.status == PaymentStatus.PENDING,
        )
    )
    payment = result.scalars().first()
    if payment is None:
        payment = Payment(user_id=appointment.user_id, appointment_id=appointment.id)
        db.add(payment)

    amount = Decimal(appointment.price)
    if appointment.payment_type == PaymentType.HALF:
        amount = amount / 2

    payment.amount = amount
    payment.status = PaymentStatus.PENDING
    payment.method = PaymentMethod.ESEWA
    payment.transaction_id = transaction_uuid
    return payment


@router.post("/payments/esewa", response_class=HTMLResponse)
async def initiate_esewa_payment(
    payload: PaymentInitiate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Start a gateway payment for one of the caller's orders or appointments."""
    if not payload.order_id and not payload.appointment_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="orderId or appointmentId is required",
        )

    transaction_uuid = esewa.new_transaction_uuid()

    if payload.order_id:
        order = await db.get(Order, payload.order_id)
        if not order or order.user_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
        if order.payment_status == PaymentStatus.PAID:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Order is already paid"
            )
        payment = await upsert_order_payment(db, order, transaction_uuid)
    else:
        appointment = await db.get(Appointment, payload.appointment_id)
        if not appointment or appointment.user_id != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found"
            )
        # A half-paid booking settles its balance at the wash, not online
        if appointment.payment_status in (PaymentStatus.PAID, PaymentStatus.HALF_PAID):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Appointment is already paid"
            )
        payment = await upsert_appointment_payment(db, appointment, transaction_uuid)

    await db.commit()

    # The gateway only accepts whole rupee amounts
    amount = esewa.round_amount(payment.amount)
    success_url, failure_url = callback_urls()
    form_data = esewa.create_form_data(amount, transaction_uuid, success_url, failure_url)

    logger.info(
        f"eSewa payment {payment.id} initiated by {current_user.id}: "
        f"transaction {transaction_uuid}, amount {amount}"
    )
    return HTMLResponse(esewa.render_redirect_form(form_data))


@router.get("/payments/esewa/success")
async def esewa_success_callback(
    data: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Gateway success redirect: verify, settle and send the browser on."""
    if not data:
        logger.error("No encoded data received from eSewa")
        return failure_redirect("no_data")

    try:
        decoded = esewa.decode_callback(data)
    except esewa.PaymentGatewayError as e:
        logger.error(f"Error decoding eSewa response: {e}")
        return failure_redirect("invalid_response")

    try:
        result = await settlement.settle_callback(db, decoded)
    except settlement.SettlementError as e:
        logger.error(f"eSewa success callback rejected: {e.message}")
        return failure_redirect(e.reason, status=e.gateway_status)
    except Exception as e:
        logger.error(f"Error processing eSewa success callback: {e}", exc_info=True)
        await db.rollback()
        return failure_redirect("server_error")

    if result.order_id:
        return RedirectResponse(
            frontend_url(ORDER_SUCCESS_PATH, order_id=result.order_id, clear_cart="true")
        )
    return RedirectResponse(frontend_url(BOOKINGS_PATH, payment_success="true"))


@router.get("/payments/esewa/failure")
async def esewa_failure_callback(
    data: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Gateway failure redirect: mark the payment failed."""
    if not data:
        logger.error("No data received from eSewa failure callback")
        return failure_redirect("no_data")

    try:
        decoded = esewa.decode_callback(data)
    except esewa.PaymentGatewayError as e:
        logger.error(f"Error decoding eSewa failure response: {e}")
        return failure_redirect("invalid_response")

    gateway_status = decoded.get("status") or "FAILED"
    message = decoded.get("message") or "Payment failed"

    try:
        await settlement.mark_failed(db, decoded.get("transaction_uuid"))
    except Exception as e:
        logger.error(f"Error processing eSewa failure callback: {e}", exc_info=True)
        await db.rollback()
        return failure_redirect("server_error")

    return failure_redirect("payment_failed", message=message, status=gateway_status)


@router.post("/payments/esewa/status")
async def check_esewa_status(
    payload: PaymentStatusCheck,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Ask the gateway for a transaction's status and sync local records."""
    payment = await settlement.find_payment(db, payload.transaction_uuid)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    try:
        status_data = await esewa.check_transaction_status(
            payload.total_amount, payload.transaction_uuid
        )
    except esewa.PaymentGatewayError as e:
        logger.error(f"Error checking eSewa payment status: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to check payment status"
        )

    await settlement.apply_gateway_status(db, payment, status_data)

    return {
        "success": True,
        "status": status_data.get("status"),
        "esewa_ref_id": status_data.get("ref_id"),
    }


@router.post("/payments/esewa/verify")
async def verify_esewa_payment(
    payload: PaymentVerify,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Settle from a callback payload forwarded by the frontend."""
    try:
        decoded = esewa.decode_callback(payload.encoded_response)
    except esewa.PaymentGatewayError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "Invalid response format"},
        )

    try:
        result = await settlement.settle_callback(db, decoded)
    except settlement.SettlementError as e:
        code = (
            status.HTTP_404_NOT_FOUND
            if e.reason == "transaction_not_found"
            else status.HTTP_400_BAD_REQUEST
        )
        return JSONResponse(
            status_code=code,
            content={"success": False, "reason": e.reason, "message": e.message},
        )

    return {
        "success": True,
        "message": "Payment verified successfully",
        "payment_type": result.kind,
        "already_settled": result.already_settled,
        "payment": serialize_payment(result.payment),
    }


@router.get("/payments")
async def list_my_payments(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Caller's payments, newest first, with the paid order or appointment."""
    result = await db.execute(
        select(Payment)
        .options(
            selectinload(Payment.order).selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Payment.appointment).selectinload(Appointment.service),
        )
        .where(Payment.user_id == current_user.id)
        .order_by(Payment.created_at.desc())
    )
    return [serialize_payment(p) for p in result.scalars().all()]
