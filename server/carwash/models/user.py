"""User model."""

import enum
import re

from carwash.models.base import Base, TimestampMixin, generate_id
from sqlalchemy import Column
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import String
from sqlalchemy.orm import relationship, validates


class UserRole(str, enum.Enum):
    """User role enum."""

    CUSTOMER = "CUSTOMER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"

    @classmethod
    def from_metadata(cls, value) -> "UserRole":
        """Map an identity provider metadata role to a local role.

        The provider stores lowercase roles ("customer", "employee", "staff",
        "admin"). Unknown or missing values fall back to CUSTOMER.
        """
        normalized = str(value or "").strip().upper()
        if normalized == "EMPLOYEE":
            return cls.STAFF
        try:
            return cls(normalized)
        except ValueError:
            return cls.CUSTOMER


class User(Base, TimestampMixin):
    """Local mirror of an identity provider account.

    Rows are created and updated from identity webhooks; ``clerk_id`` links
    the row to the provider's user id carried in session tokens.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    clerk_id = Column(String(255), unique=True, nullable=False, index=True)

    name = Column(String(200), nullable=False, default="")
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20))
    profile_image = Column(String(500))
    role = Column(SQLEnum(UserRole), default=UserRole.CUSTOMER, nullable=False, index=True)

    # Relationships
    vehicles = relationship("Vehicle", back_populates="user", cascade="all, delete-orphan")
    appointments = relationship(
        "Appointment", back_populates="user", cascade="all, delete-orphan"
    )
    orders = relationship("Order", back_populates="user", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )
    staff_profile = relationship(
        "Staff", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    reviews = relationship("StaffReview", back_populates="user", cascade="all, delete-orphan")

    @validates("email")
    def validate_email(self, key, value):
        """Normalize email to lowercase and check its shape."""
        if not value:
            raise ValueError("Email is required")

        value = value.strip().lower()
        if len(value) > 255:
            raise ValueError(f"Email must be <= 255 characters, got {len(value)}")
        if not re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", value):
            raise ValueError(f"Invalid email format: {value}")
        return value

    def __repr__(self):
        return f"<User(id={self.id}, clerk_id='{self.clerk_id}', role='{self.role}')>"
