"""
Main FastAPI application for the car wash booking and shop API.
Registers the resource routers and manages database/Redis lifecycles.
"""

import logging
from contextlib import asynccontextmanager

from carwash import __version__
from carwash.config import settings
from carwash.routes import (
    admin,
    appointments,
    health,
    notifications,
    orders,
    payments,
    products,
    services,
    staff,
    users,
    vehicles,
    webhooks,
)
from carwash.services.database import close_db, init_db
from carwash.services.redis_client import close_redis, init_redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    await init_db()
    await init_redis()
    logger.info(f"Car wash API started ({settings.APP_ENV})")

    yield
    # Shutdown
    await close_db()
    await close_redis()


app = FastAPI(
    title="Car Wash Booking API",
    description="Car wash bookings, staff tasks, shop orders and eSewa payments",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(webhooks.router, prefix="/api/v1/webhooks", tags=["webhooks"])
app.include_router(users.router, prefix="/api/v1", tags=["users"])
app.include_router(services.router, prefix="/api/v1", tags=["services"])
app.include_router(vehicles.router, prefix="/api/v1", tags=["vehicles"])
app.include_router(appointments.router, prefix="/api/v1", tags=["appointments"])
app.include_router(staff.router, prefix="/api/v1", tags=["staff"])
app.include_router(products.router, prefix="/api/v1", tags=["products"])
app.include_router(orders.router, prefix="/api/v1", tags=["orders"])
app.include_router(payments.router, prefix="/api/v1", tags=["payments"])
app.include_router(notifications.router, prefix="/api/v1", tags=["notifications"])
app.include_router(admin.router, prefix="/api/v1", tags=["admin"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Car Wash Booking API",
        "version": __version__,
        "status": "running",
    }
