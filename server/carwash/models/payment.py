"""Payment model."""

from carwash.models.appointment import PaymentMethod, PaymentStatus
from carwash.models.base import Base, TimestampMixin, generate_id
from sqlalchemy import Column
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import relationship


class Payment(Base, TimestampMixin):
    """Gateway payment for either an order or an appointment.

    ``transaction_id`` is the uuid we send to the gateway; ``reference_id``
    holds the gateway's own transaction code once it reports back.
    """

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), unique=True, index=True)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    method = Column(SQLEnum(PaymentMethod), default=PaymentMethod.ESEWA, nullable=False)

    transaction_id = Column(String(100), unique=True, index=True)
    reference_id = Column(String(100))

    # Relationships
    user = relationship("User", back_populates="payments")
    order = relationship("Order", back_populates="payment")
    appointment = relationship("Appointment", back_populates="payments")

    def __repr__(self):
        return f"<Payment(id={self.id}, transaction_id='{self.transaction_id}', status='{self.status}')>"
