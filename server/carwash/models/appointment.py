"""Appointment model."""

import enum

from carwash.models.base import Base, TimestampMixin, generate_id
from sqlalchemy import Boolean, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship


class AppointmentStatus(str, enum.Enum):
    """Appointment status enum."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    """Supported payment methods."""

    ESEWA = "ESEWA"


class PaymentType(str, enum.Enum):
    """Whether the customer pays the full price up front or half of it."""

    FULL = "FULL"
    HALF = "HALF"


class PaymentStatus(str, enum.Enum):
    """Payment status shared by appointments, orders and payments."""

    PENDING = "PENDING"
    PAID = "PAID"
    HALF_PAID = "HALF_PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Appointment(Base, TimestampMixin):
    """A booked car wash.

    The price is copied from the service when the booking is made so later
    catalogue changes do not alter what the customer owes.
    """

    __tablename__ = "appointments"

    __table_args__ = (
        Index("ix_appointments_status_date", "status", "date"),
        Index("ix_appointments_staff_date", "staff_id", "date"),
    )

    # Primary Identity
    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)
    staff_id = Column(String(36), ForeignKey("staff.id"), index=True)

    # Scheduling
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    time_slot = Column(String(50), nullable=False)
    notes = Column(Text)

    # Billing
    price = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(SQLEnum(PaymentMethod), default=PaymentMethod.ESEWA, nullable=False)
    payment_type = Column(SQLEnum(PaymentType), default=PaymentType.FULL, nullable=False)
    payment_status = Column(
        SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )

    # Workflow
    status = Column(
        SQLEnum(AppointmentStatus), default=AppointmentStatus.PENDING, nullable=False, index=True
    )
    needs_staff_assignment = Column(Boolean, default=True, nullable=False)

    # Relationships
    user = relationship("User", back_populates="appointments")
    service = relationship("Service", back_populates="appointments")
    vehicle = relationship("Vehicle", back_populates="appointments")
    staff = relationship("Staff", back_populates="appointments")
    payments = relationship("Payment", back_populates="appointment")

    def __repr__(self):
        return f"<Appointment(id={self.id}, user_id={self.user_id}, date='{self.date}', status='{self.status}')>"
