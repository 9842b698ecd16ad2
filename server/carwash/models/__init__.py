"""Database models for the application."""

from carwash.models.appointment import Appointment
from carwash.models.base import Base
from carwash.models.notification import Notification
from carwash.models.order import Order, OrderItem
from carwash.models.payment import Payment
from carwash.models.product import Category, Product
from carwash.models.service import Feature, Service
from carwash.models.staff import Staff, StaffReview
from carwash.models.user import User
from carwash.models.vehicle import Vehicle

__all__ = [
    "Base",
    "User",
    "Service",
    "Feature",
    "Vehicle",
    "Staff",
    "StaffReview",
    "Appointment",
    "Category",
    "Product",
    "Order",
    "OrderItem",
    "Payment",
    "Notification",
]
