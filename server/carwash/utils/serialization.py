"""
Response serializers.

Models are turned into plain dicts here instead of being returned directly:
``Numeric`` columns come back as ``Decimal`` and are rendered as strings so
amounts keep their exact precision in JSON, and relationships are only
included when they were eagerly loaded (async sessions cannot lazy-load).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import inspect


def money(value: Optional[Decimal]) -> Optional[str]:
    """Render a Decimal amount as a string, keeping its scale."""
    if value is None:
        return None
    return str(value)


def iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def enum_value(value) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


def is_loaded(obj, attr: str) -> bool:
    """True when ``attr`` is already populated on ``obj``."""
    if obj is None:
        return False
    return attr not in inspect(obj).unloaded


# ============================================================================
# Users & staff
# ============================================================================


def serialize_user_summary(user) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "profile_image": user.profile_image,
    }


def serialize_user(user) -> Dict[str, Any]:
    data = serialize_user_summary(user)
    data.update(
        {
            "clerk_id": user.clerk_id,
            "role": enum_value(user.role),
            "created_at": iso(user.created_at),
        }
    )
    return data


def serialize_review(review) -> Dict[str, Any]:
    data = {
        "id": review.id,
        "staff_id": review.staff_id,
        "rating": review.rating,
        "comment": review.comment,
        "created_at": iso(review.created_at),
    }
    if is_loaded(review, "user") and review.user is not None:
        data["user"] = {"name": review.user.name, "profile_image": review.user.profile_image}
    return data


def serialize_staff(staff, include_appointments: bool = False) -> Dict[str, Any]:
    data = {
        "id": staff.id,
        "role": staff.role,
        "average_rating": staff.average_rating,
        "total_reviews": staff.total_reviews,
        "created_at": iso(staff.created_at),
        "updated_at": iso(staff.updated_at),
    }
    if is_loaded(staff, "user"):
        data["user"] = serialize_user_summary(staff.user)
    if is_loaded(staff, "reviews"):
        data["reviews"] = [serialize_review(r) for r in staff.reviews]
    if include_appointments and is_loaded(staff, "appointments"):
        data["appointments"] = [serialize_appointment(a) for a in staff.appointments]
    return data


def staff_display_name(staff) -> Optional[str]:
    if staff is None:
        return None
    if is_loaded(staff, "user") and staff.user is not None:
        return staff.user.name
    return f"Staff {staff.id[:5]}"


# ============================================================================
# Catalogue
# ============================================================================


def serialize_service(service) -> Dict[str, Any]:
    data = {
        "id": service.id,
        "name": service.name,
        "description": service.description or "",
        "price": money(service.price),
        "duration": service.duration,
    }
    if is_loaded(service, "features"):
        data["features"] = [f.name for f in service.features]
    return data


def serialize_vehicle(vehicle) -> Optional[Dict[str, Any]]:
    if vehicle is None:
        return None
    return {
        "id": vehicle.id,
        "type": vehicle.type,
        "model": vehicle.model,
        "plate": vehicle.plate,
        "created_at": iso(vehicle.created_at),
    }


def serialize_category(category) -> Optional[Dict[str, Any]]:
    if category is None:
        return None
    return {
        "id": category.id,
        "name": category.name,
        "created_at": iso(category.created_at),
    }


def serialize_product(product) -> Dict[str, Any]:
    data = {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": money(product.price),
        "stock": product.stock,
        "category_id": product.category_id,
        "images": list(product.images or []),
        "created_at": iso(product.created_at),
    }
    if is_loaded(product, "category"):
        data["category"] = serialize_category(product.category)
    return data


def serialize_product_summary(product) -> Optional[Dict[str, Any]]:
    if product is None:
        return None
    return {
        "id": product.id,
        "name": product.name,
        "price": money(product.price),
        "images": list(product.images or []),
    }


# ============================================================================
# Bookings
# ============================================================================


def serialize_appointment(appointment) -> Dict[str, Any]:
    data = {
        "id": appointment.id,
        "user_id": appointment.user_id,
        "service_id": appointment.service_id,
        "vehicle_id": appointment.vehicle_id,
        "staff_id": appointment.staff_id,
        "date": iso(appointment.date),
        "time_slot": appointment.time_slot,
        "notes": appointment.notes,
        "price": money(appointment.price),
        "status": enum_value(appointment.status),
        "payment_method": enum_value(appointment.payment_method),
        "payment_type": enum_value(appointment.payment_type),
        "payment_status": enum_value(appointment.payment_status),
        "needs_staff_assignment": appointment.needs_staff_assignment,
        "created_at": iso(appointment.created_at),
        "updated_at": iso(appointment.updated_at),
    }
    if is_loaded(appointment, "service") and appointment.service is not None:
        data["service"] = serialize_service(appointment.service)
    if is_loaded(appointment, "vehicle"):
        data["vehicle"] = serialize_vehicle(appointment.vehicle)
    if is_loaded(appointment, "user"):
        data["user"] = serialize_user_summary(appointment.user)
    if is_loaded(appointment, "staff"):
        staff = appointment.staff
        data["staff"] = (
            {"id": staff.id, "name": staff_display_name(staff)} if staff is not None else None
        )
    return data


# ============================================================================
# Orders & payments
# ============================================================================


def serialize_order_item(item) -> Dict[str, Any]:
    data = {
        "id": item.id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "price": money(item.price),
    }
    if is_loaded(item, "product"):
        data["product"] = serialize_product_summary(item.product)
    return data


def serialize_payment_summary(payment) -> Optional[Dict[str, Any]]:
    if payment is None:
        return None
    return {
        "id": payment.id,
        "amount": money(payment.amount),
        "status": enum_value(payment.status),
        "method": enum_value(payment.method),
        "transaction_id": payment.transaction_id,
        "reference_id": payment.reference_id,
        "created_at": iso(payment.created_at),
    }


def serialize_order(order) -> Dict[str, Any]:
    data = {
        "id": order.id,
        "user_id": order.user_id,
        "total_amount": money(order.total_amount),
        "status": enum_value(order.status),
        "payment_status": enum_value(order.payment_status),
        "payment_method": enum_value(order.payment_method),
        "address": order.address,
        "phone_number": order.phone_number,
        "created_at": iso(order.created_at),
        "updated_at": iso(order.updated_at),
    }
    if is_loaded(order, "items"):
        data["items"] = [serialize_order_item(i) for i in order.items]
    if is_loaded(order, "user"):
        data["user"] = serialize_user_summary(order.user)
    if is_loaded(order, "payment"):
        data["payment"] = serialize_payment_summary(order.payment)
    return data


def serialize_payment(payment) -> Dict[str, Any]:
    data = serialize_payment_summary(payment)
    data.update(
        {
            "user_id": payment.user_id,
            "order_id": payment.order_id,
            "appointment_id": payment.appointment_id,
        }
    )
    if is_loaded(payment, "order"):
        data["order"] = serialize_order(payment.order) if payment.order is not None else None
    if is_loaded(payment, "appointment"):
        data["appointment"] = (
            serialize_appointment(payment.appointment) if payment.appointment is not None else None
        )
    return data


# ============================================================================
# Notifications
# ============================================================================


def serialize_notification(notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "title": notification.title,
        "message": notification.message,
        "type": enum_value(notification.type),
        "is_read": notification.is_read,
        "created_at": iso(notification.created_at),
    }
