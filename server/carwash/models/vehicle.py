"""Vehicle model."""

from carwash.models.base import Base, TimestampMixin, generate_id
from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship


class Vehicle(Base, TimestampMixin):
    """Vehicle registered by a customer for booking washes."""

    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    type = Column(String(100), nullable=False)  # sedan, suv, bike, ...
    model = Column(String(100), nullable=False)
    plate = Column(String(20), nullable=False, index=True)

    # Relationships
    user = relationship("User", back_populates="vehicles")
    appointments = relationship("Appointment", back_populates="vehicle")

    def __repr__(self):
        return f"<Vehicle(id={self.id}, model='{self.model}', plate='{self.plate}')>"
