"""Shop catalogue models."""

from carwash.models.base import Base, TimestampMixin, generate_id
from sqlalchemy import JSON, CheckConstraint, Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship


class Category(Base, TimestampMixin):
    """Product category."""

    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), unique=True, nullable=False)

    products = relationship("Product", back_populates="category")

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"


class Product(Base, TimestampMixin):
    """Product sold in the shop (shampoo, wax, microfiber cloths...)."""

    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    images = Column(JSON, default=list)  # List of image URLs

    # Relationships
    category = relationship("Category", back_populates="products")
    order_items = relationship("OrderItem", back_populates="product")

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"
