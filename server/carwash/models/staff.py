"""Staff and staff review models."""

from carwash.models.base import Base, TimestampMixin, generate_id
from sqlalchemy import CheckConstraint, Column, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship


class Staff(Base, TimestampMixin):
    """Staff profile attached to a user with the STAFF role."""

    __tablename__ = "staff"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    role = Column(String(50), nullable=False, default="CLEANER")

    average_rating = Column(Float, nullable=False, default=0.0)
    total_reviews = Column(Integer, nullable=False, default=0)

    # Relationships
    user = relationship("User", back_populates="staff_profile")
    reviews = relationship(
        "StaffReview",
        back_populates="staff",
        cascade="all, delete-orphan",
        order_by="StaffReview.created_at.desc()",
    )
    appointments = relationship("Appointment", back_populates="staff")

    def __repr__(self):
        return f"<Staff(id={self.id}, user_id={self.user_id}, rating={self.average_rating})>"


class StaffReview(Base, TimestampMixin):
    """Customer review of a staff member."""

    __tablename__ = "staff_reviews"
    __table_args__ = (CheckConstraint("rating BETWEEN 1 AND 5", name="ck_staff_reviews_rating"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    staff_id = Column(String(36), ForeignKey("staff.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text)

    # Relationships
    staff = relationship("Staff", back_populates="reviews")
    user = relationship("User", back_populates="reviews")
