"""
Request bodies.

The frontend sends camelCase keys; every model also accepts the snake_case
field name. Business-rule checks that must answer 400 (e.g. "price must be
positive") are done in the handlers, so most fields here are optional.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from carwash.models.appointment import PaymentMethod, PaymentType
from carwash.models.notification import NotificationType
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Shared config: camelCase aliases, snake_case accepted, extras ignored."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        alias_generator=to_camel,
    )


# Users


class RoleUpdate(BaseSchema):
    role: str


# Services & vehicles


class ServiceCreate(BaseSchema):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    duration: Optional[int] = None
    features: List[str] = Field(default_factory=list)


class ServiceUpdate(BaseSchema):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    duration: Optional[int] = None
    features: Optional[List[str]] = None


class VehicleCreate(BaseSchema):
    type: str
    model: str
    plate: str


# Appointments & staff


class AppointmentCreate(BaseSchema):
    service_id: str
    vehicle_id: str
    date: datetime
    time_slot: str
    notes: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.ESEWA
    payment_type: PaymentType = PaymentType.FULL


class AppointmentUpdate(BaseSchema):
    service_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    date: Optional[datetime] = None
    time_slot: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    staff_id: Optional[str] = None
    payment_status: Optional[str] = None


class ReviewCreate(BaseSchema):
    rating: int
    comment: Optional[str] = None


class TaskStatusUpdate(BaseSchema):
    status: str
    completion_notes: Optional[str] = None


# Catalogue


class CategoryCreate(BaseSchema):
    name: Optional[str] = None


class ProductCreate(BaseSchema):
    name: str
    description: Optional[str] = None
    price: Decimal
    stock: int = 0
    category_id: str
    images: List[str] = Field(default_factory=list)


class ProductUpdate(BaseSchema):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    stock: Optional[int] = None
    category_id: Optional[str] = None
    images: Optional[List[str]] = None


# Orders


class OrderItemCreate(BaseSchema):
    product_id: str
    quantity: int = Field(gt=0)
    price: Decimal


class OrderCreate(BaseSchema):
    items: List[OrderItemCreate] = Field(default_factory=list)
    total_amount: Optional[Decimal] = None
    address: Optional[str] = None
    phone_number: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None


class OrderStatusUpdate(BaseSchema):
    status: str


# Payments


class PaymentInitiate(BaseSchema):
    order_id: Optional[str] = None
    appointment_id: Optional[str] = None


class PaymentStatusCheck(BaseSchema):
    transaction_uuid: str
    total_amount: Decimal


class PaymentVerify(BaseSchema):
    encoded_response: Optional[str] = None


# Notifications


class NotificationCreate(BaseSchema):
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.SYSTEM
