"""Appointment booking endpoints."""

import logging
from typing import Optional

from carwash.dependencies import CurrentUser, get_current_user, require_admin
from carwash.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from carwash.models.notification import NotificationType
from carwash.models.service import Service
from carwash.models.staff import Staff
from carwash.models.user import User
from carwash.models.vehicle import Vehicle
from carwash.schemas import AppointmentCreate, AppointmentUpdate
from carwash.services.database import get_db
from carwash.services.notifications import notify_admins, notify_user
from carwash.utils.serialization import serialize_appointment
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

router = APIRouter()

# Fields a customer may change on their own booking
OWNER_FIELDS = {"service_id", "vehicle_id", "date", "time_slot", "notes"}


def with_details(query):
    """Eager-load everything serialize_appointment renders."""
    return query.options(
        selectinload(Appointment.service).selectinload(Service.features),
        selectinload(Appointment.vehicle),
        selectinload(Appointment.user),
        selectinload(Appointment.staff).selectinload(Staff.user),
    )


async def load_appointment(db: AsyncSession, appointment_id: str) -> Appointment:
    # Refresh rows already in the session so changed foreign keys are reflected
    result = await db.execute(
        with_details(select(Appointment))
        .where(Appointment.id == appointment_id)
        .execution_options(populate_existing=True)
    )
    appointment = result.scalar_one_or_none()
    if not appointment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    return appointment


async def get_staff_id(db: AsyncSession, user_id: str) -> Optional[str]:
    result = await db.execute(select(Staff.id).where(Staff.user_id == user_id))
    return result.scalar_one_or_none()


def parse_enum(enum_cls, value: str, label: str):
    try:
        return enum_cls(value.strip().upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {label}: {value}"
        )


@router.post("/appointments", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Book a wash.

    The appointment starts PENDING with a PENDING payment and is flagged for
    staff assignment. The customer and every admin are notified.
    """
    service = await db.get(Service, payload.service_id)
    if not service:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")

    vehicle = await db.get(Vehicle, payload.vehicle_id)
    if not vehicle or vehicle.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")

    appointment = Appointment(
        user_id=current_user.id,
        service_id=service.id,
        vehicle_id=vehicle.id,
        date=payload.date,
        time_slot=payload.time_slot,
        notes=payload.notes,
        price=service.price,
        payment_method=payload.payment_method,
        payment_type=payload.payment_type,
        payment_status=PaymentStatus.PENDING,
        status=AppointmentStatus.PENDING,
        needs_staff_assignment=True,
    )
    db.add(appointment)
    await db.commit()

    logger.info(f"Appointment {appointment.id} booked by user {current_user.id}")

    when = f"{payload.date.date().isoformat()} ({payload.time_slot})"
    await notify_user(
        db,
        current_user.id,
        "Booking Received",
        f"Your {service.name} booking for {when} has been received.",
        NotificationType.BOOKING,
        clerk_id=current_user.clerk_id,
    )
    await notify_admins(
        db,
        "New Booking",
        f"{current_user.name or current_user.email} booked {service.name} for {when}.",
        NotificationType.BOOKING,
        broadcast={
            "type": NotificationType.BOOKING.value,
            "title": "New Booking",
            "appointment_id": appointment.id,
        },
    )

    return serialize_appointment(await load_appointment(db, appointment.id))


@router.get("/appointments")
async def list_my_appointments(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        with_details(select(Appointment))
        .where(Appointment.user_id == current_user.id)
        .order_by(Appointment.date.desc())
    )
    return [serialize_appointment(a) for a in result.scalars().all()]


@router.get("/appointments/{appointment_id}")
async def get_appointment(
    appointment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Visible to the owner, the assigned staff member and admins."""
    appointment = await load_appointment(db, appointment_id)

    if not current_user.is_admin and appointment.user_id != current_user.id:
        staff_id = await get_staff_id(db, current_user.id)
        if staff_id is None or appointment.staff_id != staff_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    return serialize_appointment(appointment)


@router.patch("/appointments/{appointment_id}")
async def update_appointment(
    appointment_id: str,
    payload: AppointmentUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Partially update an appointment.

    Owners may reschedule (service, vehicle, date, slot, notes); admins may
    also set status, staff and payment status. Changing the service re-prices
    the booking.
    """
    appointment = await load_appointment(db, appointment_id)
    changes = payload.model_dump(exclude_unset=True)

    if not current_user.is_admin:
        if appointment.user_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        if set(changes) - OWNER_FIELDS:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only admins can change status, staff or payment",
            )

    previous_status = appointment.status
    assigned_staff: Optional[Staff] = None

    if changes.get("service_id"):
        service = await db.get(Service, changes["service_id"])
        if not service:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
        appointment.service_id = service.id
        appointment.price = service.price

    if changes.get("vehicle_id"):
        vehicle = await db.get(Vehicle, changes["vehicle_id"])
        if not vehicle or vehicle.user_id != appointment.user_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
        appointment.vehicle_id = vehicle.id

    if changes.get("date"):
        appointment.date = changes["date"]
    if changes.get("time_slot"):
        appointment.time_slot = changes["time_slot"]
    if "notes" in changes:
        appointment.notes = changes["notes"]

    if changes.get("status"):
        appointment.status = parse_enum(AppointmentStatus, changes["status"], "status")
    if changes.get("payment_status"):
        appointment.payment_status = parse_enum(
            PaymentStatus, changes["payment_status"], "payment status"
        )

    if changes.get("staff_id"):
        result = await db.execute(
            select(Staff).options(selectinload(Staff.user)).where(Staff.id == changes["staff_id"])
        )
        assigned_staff = result.scalar_one_or_none()
        if not assigned_staff:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff not found")
        appointment.staff_id = assigned_staff.id
        appointment.needs_staff_assignment = False

    await db.commit()
    logger.info(f"Appointment {appointment_id} updated: {sorted(changes)}")

    appointment = await load_appointment(db, appointment_id)
    when = f"{appointment.date.date().isoformat()} ({appointment.time_slot})"

    if assigned_staff is not None and assigned_staff.user is not None:
        await notify_user(
            db,
            assigned_staff.user_id,
            "New Task Assigned",
            f"You have been assigned a {appointment.service.name} on {when}.",
            NotificationType.TASK,
            clerk_id=assigned_staff.user.clerk_id,
        )

    if appointment.status != previous_status:
        owner = await db.get(User, appointment.user_id)
        await notify_user(
            db,
            appointment.user_id,
            "Booking Updated",
            f"Your {appointment.service.name} booking on {when} is now "
            f"{appointment.status.value.replace('_', ' ').lower()}.",
            NotificationType.BOOKING,
            clerk_id=owner.clerk_id if owner else None,
        )

    return serialize_appointment(appointment)


@router.get("/bookings")
async def list_all_bookings(
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Every appointment, newest date first."""
    result = await db.execute(with_details(select(Appointment)).order_by(Appointment.date.desc()))
    return [serialize_appointment(a) for a in result.scalars().all()]
