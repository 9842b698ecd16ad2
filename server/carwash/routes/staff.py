"""Staff directory, reviews and the staff task board."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from carwash.dependencies import CurrentUser, get_current_user, require_staff
from carwash.models.appointment import Appointment, AppointmentStatus
from carwash.models.notification import NotificationType
from carwash.models.service import Service
from carwash.models.staff import Staff, StaffReview
from carwash.models.user import User
from carwash.schemas import ReviewCreate, TaskStatusUpdate
from carwash.services.database import get_db
from carwash.services.notifications import notify_user
from carwash.utils.serialization import iso, serialize_review, serialize_staff
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

router = APIRouter()

# Task board vocabulary <-> appointment status
TASK_STATUS_FROM_DB = {
    AppointmentStatus.PENDING: "scheduled",
    AppointmentStatus.IN_PROGRESS: "in-progress",
    AppointmentStatus.COMPLETED: "completed",
}
TASK_STATUS_TO_DB = {label: db_status for db_status, label in TASK_STATUS_FROM_DB.items()}


def to_task_status(value: AppointmentStatus) -> str:
    return TASK_STATUS_FROM_DB.get(value, value.value.lower())


def to_db_status(value: str) -> AppointmentStatus:
    """Accept the task board labels or a raw appointment status."""
    normalized = value.strip().lower()
    if normalized in TASK_STATUS_TO_DB:
        return TASK_STATUS_TO_DB[normalized]
    try:
        return AppointmentStatus(normalized.upper().replace("-", "_"))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid task status: {value}"
        )


def today_window(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Start and end (exclusive) of the current UTC day."""
    now = now or datetime.now(timezone.utc)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def serialize_task(appointment: Appointment) -> Dict[str, Any]:
    customer = appointment.user
    vehicle = appointment.vehicle
    service = appointment.service
    completed = appointment.status == AppointmentStatus.COMPLETED

    return {
        "id": appointment.id,
        "service": service.name if service else None,
        "customer": {
            "name": customer.name if customer else None,
            "email": customer.email if customer else None,
            "phone": (customer.phone or "") if customer else "",
            "notes": appointment.notes or "",
        },
        "vehicle": {
            "make": vehicle.type if vehicle else None,
            "model": vehicle.model if vehicle else None,
            "license_plate": vehicle.plate if vehicle else None,
        },
        "scheduled_time": iso(appointment.date),
        "time_slot": appointment.time_slot,
        "estimated_duration": service.duration if service else None,
        "status": to_task_status(appointment.status),
        "special_instructions": appointment.notes or "",
        "completed_at": iso(appointment.updated_at) if completed else None,
    }


async def get_my_staff(db: AsyncSession, user_id: str) -> Staff:
    result = await db.execute(select(Staff).where(Staff.user_id == user_id))
    staff = result.scalar_one_or_none()
    if not staff:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found"
        )
    return staff


def task_query(staff_id: str):
    return (
        select(Appointment)
        .options(
            selectinload(Appointment.service),
            selectinload(Appointment.vehicle),
            selectinload(Appointment.user),
        )
        .where(Appointment.staff_id == staff_id)
    )


# ============================================================================
# Task board (declared before /staff/{staff_id})
# ============================================================================


@router.get("/staff/me/tasks")
async def list_my_tasks(
    scope: Optional[str] = Query(None, description="'today' limits to today's tasks"),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Appointments assigned to the calling staff member, earliest first."""
    staff = await get_my_staff(db, current_user.id)

    query = task_query(staff.id).order_by(Appointment.date.asc())
    if scope == "today":
        start, end = today_window()
        query = query.where(Appointment.date >= start, Appointment.date < end)

    result = await db.execute(query)
    return [serialize_task(a) for a in result.scalars().all()]


@router.patch("/staff/me/tasks/{task_id}")
async def update_my_task(
    task_id: str,
    payload: TaskStatusUpdate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Move a task along the board; optional completion notes are timestamped."""
    staff = await get_my_staff(db, current_user.id)

    result = await db.execute(task_query(staff.id).where(Appointment.id == task_id))
    appointment = result.scalar_one_or_none()
    if not appointment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")

    new_status = to_db_status(payload.status)
    appointment.status = new_status
    if payload.completion_notes:
        appointment.notes = (
            f"{payload.completion_notes}\n{datetime.now(timezone.utc).isoformat()}"
        )
    await db.commit()

    logger.info(f"Task {task_id} set to {new_status.value} by staff {staff.id}")

    customer = appointment.user
    await notify_user(
        db,
        appointment.user_id,
        "Service Update",
        f"Your {appointment.service.name} is now {to_task_status(new_status)}.",
        NotificationType.BOOKING,
        clerk_id=customer.clerk_id if customer else None,
    )

    return serialize_task(appointment)


@router.get("/staff/me/performance")
async def get_my_performance(
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Rating summary, last five reviews and today's task counts."""
    staff = await get_my_staff(db, current_user.id)

    reviews_result = await db.execute(
        select(StaffReview)
        .options(selectinload(StaffReview.user))
        .where(StaffReview.staff_id == staff.id)
        .order_by(StaffReview.created_at.desc())
        .limit(5)
    )

    start, end = today_window()
    today = (
        Appointment.staff_id == staff.id,
        Appointment.date >= start,
        Appointment.date < end,
    )
    total_tasks = await db.scalar(select(func.count(Appointment.id)).where(*today))
    completed_tasks = await db.scalar(
        select(func.count(Appointment.id)).where(
            *today, Appointment.status == AppointmentStatus.COMPLETED
        )
    )

    return {
        "staff": {
            "id": staff.id,
            "role": staff.role,
            "average_rating": staff.average_rating,
            "total_reviews": staff.total_reviews,
        },
        "reviews": [serialize_review(r) for r in reviews_result.scalars().all()],
        "completed_tasks": completed_tasks or 0,
        "total_tasks": total_tasks or 0,
    }


# ============================================================================
# Directory & reviews
# ============================================================================


@router.get("/staff")
async def list_staff(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Staff)
        .options(
            selectinload(Staff.user),
            selectinload(Staff.reviews).selectinload(StaffReview.user),
        )
        .order_by(Staff.created_at.desc())
    )
    return [serialize_staff(s) for s in result.scalars().all()]


@router.get("/staff/{staff_id}")
async def get_staff(staff_id: str, db: AsyncSession = Depends(get_db)):
    """Staff member with reviews and assigned appointments."""
    result = await db.execute(
        select(Staff)
        .options(
            selectinload(Staff.user),
            selectinload(Staff.reviews).selectinload(StaffReview.user),
            selectinload(Staff.appointments).selectinload(Appointment.service).selectinload(
                Service.features
            ),
            selectinload(Staff.appointments).selectinload(Appointment.vehicle),
            selectinload(Staff.appointments).selectinload(Appointment.user),
        )
        .where(Staff.id == staff_id)
    )
    staff = result.scalar_one_or_none()
    if not staff:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found"
        )

    data = serialize_staff(staff, include_appointments=True)
    data["appointments"].sort(key=lambda a: a["date"] or "", reverse=True)
    return data


async def refresh_rating(db: AsyncSession, staff: Staff) -> None:
    """Recompute a staff member's review count and average from the stored reviews."""
    count, average = (
        await db.execute(
            select(func.count(StaffReview.id), func.avg(StaffReview.rating)).where(
                StaffReview.staff_id == staff.id
            )
        )
    ).one()
    staff.total_reviews = count
    staff.average_rating = float(average or 0)


@router.post("/staff/{staff_id}/reviews", status_code=status.HTTP_201_CREATED)
async def create_review(
    staff_id: str,
    payload: ReviewCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Review a staff member and recompute their rating."""
    if not 1 <= payload.rating <= 5:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Rating must be between 1 and 5"
        )

    staff = await db.get(Staff, staff_id)
    if not staff:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found"
        )

    review = StaffReview(
        staff_id=staff.id,
        user_id=current_user.id,
        rating=payload.rating,
        comment=payload.comment,
    )
    db.add(review)
    await db.flush()
    await refresh_rating(db, staff)
    await db.commit()

    logger.info(f"Review {review.id} added for staff {staff_id} (avg={staff.average_rating:.2f})")

    reviewer = await db.get(User, current_user.id)
    data = serialize_review(review)
    data["user"] = {
        "name": reviewer.name if reviewer else current_user.name,
        "profile_image": reviewer.profile_image if reviewer else None,
    }
    return data
