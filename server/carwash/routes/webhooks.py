"""Webhook endpoints for external services."""

import json
import logging
from typing import Any, Dict, Optional

from carwash.config import settings
from carwash.models.staff import StaffReview
from carwash.models.user import User, UserRole
from carwash.routes.staff import refresh_rating
from carwash.routes.users import ensure_staff_profile
from carwash.services.database import get_db
from carwash.services.identity import IdentityClient, IdentityError, get_identity_client
from carwash.services.redis_client import invalidate_user_cache
from carwash.services.webhook_security import (
    MissingWebhookHeadersError,
    WebhookSignatureError,
    verify_svix_webhook,
)
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

router = APIRouter()


def extract_profile(data: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Pull the fields we mirror locally out of a provider user object."""
    first_name = data.get("first_name") or ""
    last_name = data.get("last_name") or ""

    emails = data.get("email_addresses") or []
    phones = data.get("phone_numbers") or []

    return {
        "name": f"{first_name} {last_name}".strip(),
        "email": emails[0].get("email_address") if emails else None,
        "phone": phones[0].get("phone_number") if phones else None,
        "profile_image": data.get("image_url"),
    }


async def handle_user_created(
    db: AsyncSession, identity: IdentityClient, clerk_id: str, profile: Dict[str, Optional[str]]
) -> None:
    # New accounts are customers until an admin promotes them
    await identity.update_user_metadata(clerk_id, {"role": "customer"})

    user = User(clerk_id=clerk_id, role=UserRole.CUSTOMER, **profile)
    db.add(user)
    await db.commit()
    logger.info(f"Created user for identity {clerk_id}")


async def handle_user_updated(
    db: AsyncSession, identity: IdentityClient, clerk_id: str, profile: Dict[str, Optional[str]]
) -> None:
    provider_user = await identity.get_user(clerk_id)
    metadata = provider_user.get("public_metadata") or {}
    role = UserRole.from_metadata(metadata.get("role"))

    result = await db.execute(select(User).where(User.clerk_id == clerk_id))
    user = result.scalar_one_or_none()
    if user is None:
        # The created event may have been missed; mirror the account now
        user = User(clerk_id=clerk_id)
        db.add(user)

    user.name = profile["name"]
    user.email = profile["email"]
    user.phone = profile["phone"]
    user.profile_image = profile["profile_image"]
    user.role = role
    await db.flush()

    if role == UserRole.STAFF:
        await ensure_staff_profile(db, user.id)

    await db.commit()
    await invalidate_user_cache(clerk_id)
    logger.info(f"Updated user for identity {clerk_id} (role={role.value})")


async def handle_user_deleted(db: AsyncSession, clerk_id: str) -> None:
    """Remove the local user; staff they reviewed get their ratings recomputed."""
    result = await db.execute(
        select(User)
        .options(selectinload(User.reviews).selectinload(StaffReview.staff))
        .where(User.clerk_id == clerk_id)
    )
    user = result.scalar_one_or_none()
    if user is None:
        logger.info(f"Deleted identity {clerk_id} has no local user")
        return

    reviewed = {review.staff for review in user.reviews if review.staff.user_id != user.id}

    await db.delete(user)
    await db.flush()
    for staff in reviewed:
        await refresh_rating(db, staff)
    await db.commit()
    await invalidate_user_cache(clerk_id)
    logger.info(f"Deleted user for identity {clerk_id}")


@router.post("/identity")
async def handle_identity_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    identity: IdentityClient = Depends(get_identity_client),
):
    """
    Identity provider webhook (delivered through Svix).

    Handles:
    - user.created: tag the account as a customer and mirror it locally
    - user.updated: re-read the provider role and update the local row
    - user.deleted: remove the local row

    Other event types are acknowledged and ignored.
    """
    secret = settings.CLERK_WEBHOOK_SECRET
    if not secret:
        logger.error("CLERK_WEBHOOK_SECRET is not configured")
        return PlainTextResponse("Error: Webhook secret not configured", status_code=500)

    body = await request.body()

    try:
        verify_svix_webhook(secret, request.headers, body)
    except MissingWebhookHeadersError:
        return PlainTextResponse("Error: Missing Svix headers", status_code=400)
    except WebhookSignatureError as e:
        logger.error(f"Could not verify identity webhook: {e}")
        return PlainTextResponse("Error: Verification error", status_code=400)

    try:
        event = json.loads(body)
    except ValueError:
        return PlainTextResponse("Error: Invalid JSON payload", status_code=400)

    event_type = event.get("type")
    data = event.get("data") or {}
    logger.info(f"Identity webhook received: {event_type}")

    if event_type not in ("user.created", "user.updated", "user.deleted"):
        return PlainTextResponse("Webhook received", status_code=200)

    clerk_id = data.get("id")
    if not clerk_id:
        return PlainTextResponse("Error: User ID not found in webhook payload", status_code=400)

    try:
        if event_type == "user.deleted":
            await handle_user_deleted(db, clerk_id)
        else:
            profile = extract_profile(data)
            if event_type == "user.created":
                await handle_user_created(db, identity, clerk_id, profile)
            else:
                await handle_user_updated(db, identity, clerk_id, profile)
    except (IdentityError, SQLAlchemyError, ValueError) as e:
        await db.rollback()
        logger.error(f"Error processing {event_type} for {clerk_id}: {e}", exc_info=True)
        return PlainTextResponse("Error: Could not assign role or create user", status_code=500)

    return PlainTextResponse("Webhook received", status_code=200)
