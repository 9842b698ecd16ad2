"""Car wash service catalogue models."""

from carwash.models.base import Base, TimestampMixin, generate_id
from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship


class Service(Base, TimestampMixin):
    """A bookable car wash service (e.g. "Premium Wash")."""

    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    duration = Column(Integer, nullable=False)  # minutes

    # Relationships
    features = relationship(
        "Feature",
        back_populates="service",
        cascade="all, delete-orphan",
        order_by="Feature.created_at",
    )
    appointments = relationship("Appointment", back_populates="service")

    def __repr__(self):
        return f"<Service(id={self.id}, name='{self.name}', price={self.price})>"


class Feature(Base, TimestampMixin):
    """A bullet point listed under a service."""

    __tablename__ = "features"

    id = Column(String(36), primary_key=True, default=generate_id)
    service_id = Column(
        String(36), ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)

    service = relationship("Service", back_populates="features")
