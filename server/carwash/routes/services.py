"""Car wash service catalogue endpoints."""

import logging
from decimal import Decimal
from typing import List, Optional

from carwash.dependencies import CurrentUser, require_admin
from carwash.models.appointment import Appointment
from carwash.models.service import Feature, Service
from carwash.schemas import ServiceCreate, ServiceUpdate
from carwash.services.database import get_db
from carwash.utils.serialization import serialize_service
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

router = APIRouter()


def validate_service_fields(
    name: Optional[str], price: Optional[Decimal], duration: Optional[int]
) -> None:
    if not name or not name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    if price is None or price <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Price must be a positive number"
        )
    if duration is None or duration <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Duration must be a positive number"
        )


def clean_features(features: List[str]) -> List[str]:
    return [f.strip() for f in features if f and f.strip()]


async def load_service(db: AsyncSession, service_id: str) -> Service:
    result = await db.execute(
        select(Service)
        .options(selectinload(Service.features))
        .where(Service.id == service_id)
        .execution_options(populate_existing=True)
    )
    service = result.scalar_one_or_none()
    if not service:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
    return service


@router.get("/services")
async def list_services(db: AsyncSession = Depends(get_db)):
    """All services with their feature names."""
    result = await db.execute(
        select(Service).options(selectinload(Service.features)).order_by(Service.created_at)
    )
    return [serialize_service(s) for s in result.scalars().all()]


@router.post("/services", status_code=status.HTTP_201_CREATED)
async def create_service(
    payload: ServiceCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    validate_service_fields(payload.name, payload.price, payload.duration)

    service = Service(
        name=payload.name.strip(),
        description=payload.description or "",
        price=payload.price,
        duration=payload.duration,
    )
    service.features = [Feature(name=name) for name in clean_features(payload.features)]
    db.add(service)
    await db.commit()

    logger.info(f"Service created: {service.id} ({service.name})")
    return serialize_service(await load_service(db, service.id))


@router.put("/services/{service_id}")
async def update_service(
    service_id: str,
    payload: ServiceUpdate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Replace a service's fields; a features list replaces all features."""
    service = await load_service(db, service_id)

    name = payload.name if payload.name is not None else service.name
    price = payload.price if payload.price is not None else service.price
    duration = payload.duration if payload.duration is not None else service.duration
    validate_service_fields(name, price, duration)

    service.name = name.strip()
    service.price = price
    service.duration = duration
    if payload.description is not None:
        service.description = payload.description

    if payload.features is not None:
        # delete-orphan cascade removes the old rows
        service.features = [Feature(name=name) for name in clean_features(payload.features)]

    await db.commit()

    logger.info(f"Service updated: {service_id}")
    return serialize_service(await load_service(db, service_id))


@router.delete("/services/{service_id}")
async def delete_service(
    service_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    service = await load_service(db, service_id)

    booked = await db.scalar(
        select(func.count(Appointment.id)).where(Appointment.service_id == service_id)
    )
    if booked:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete service with associated bookings",
        )

    # Features go first through the relationship cascade
    await db.delete(service)
    await db.commit()

    logger.info(f"Service deleted: {service_id}")
    return {"success": True}
