"""Customer vehicle endpoints."""

import logging

from carwash.dependencies import CurrentUser, get_current_user
from carwash.models.vehicle import Vehicle
from carwash.schemas import VehicleCreate
from carwash.services.database import get_db
from carwash.utils.serialization import serialize_vehicle
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/vehicles")
async def list_my_vehicles(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Vehicle).where(Vehicle.user_id == current_user.id).order_by(Vehicle.created_at)
    )
    return [serialize_vehicle(v) for v in result.scalars().all()]


@router.post("/vehicles", status_code=status.HTTP_201_CREATED)
async def add_vehicle(
    payload: VehicleCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Register a vehicle for the current user."""
    if not payload.type.strip() or not payload.model.strip() or not payload.plate.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Type, model and plate are required"
        )

    vehicle = Vehicle(
        user_id=current_user.id,
        type=payload.type.strip(),
        model=payload.model.strip(),
        plate=payload.plate.strip().upper(),
    )
    db.add(vehicle)
    await db.commit()

    logger.info(f"Vehicle {vehicle.id} added for user {current_user.id}")
    return serialize_vehicle(vehicle)
