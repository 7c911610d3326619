"""
Gatekeeping endpoints:
  GET  /gatekeeping/eligibility              — may the viewer gatekeep right now?
  POST /gatekeeping/restaurants/{id}         — gatekeep a restaurant
  GET  /gatekeeping/restaurants              — active gatekept restaurants (premium)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.auth import get_current_user
from spoonfeed.database import get_db
from spoonfeed.models import GatekeptRestaurant, Restaurant, User, utcnow
from spoonfeed.schemas import EligibilityResponse, GatekeepCreate, GatekeepResponse
from spoonfeed.services.gatekeeping import next_eligible_at, window

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.get("/eligibility", response_model=EligibilityResponse)
async def eligibility(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    next_at = await next_eligible_at(db, user)
    return EligibilityResponse(eligible=next_at is None, next_eligible_at=next_at)


@router.post(
    "/restaurants/{restaurant_id}",
    response_model=GatekeepResponse,
    status_code=status.HTTP_201_CREATED,
)
async def gatekeep_restaurant(
    restaurant_id: str,
    body: GatekeepCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("gatekeep_restaurant") as span:
        span.set_attribute("gatekeep.user_id", user.id)
        if not await db.get(Restaurant, restaurant_id):
            raise HTTPException(status_code=404, detail="Restaurant not found")

        next_at = await next_eligible_at(db, user)
        if next_at is not None:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"You can gatekeep again after {next_at.isoformat()}",
            )

        now = utcnow()
        entry = GatekeptRestaurant(
            restaurant_id=restaurant_id,
            user_id=user.id,
            reason=body.reason,
            created_at=now,
            expires_at=now + window(),
        )
        db.add(entry)
        await db.flush()

        result = await db.execute(
            select(GatekeptRestaurant)
            .where(GatekeptRestaurant.id == entry.id)
            .execution_options(populate_existing=True)
        )
        logger.info("Restaurant %s gatekept by %s", restaurant_id, user.id)
        return result.unique().scalar_one()


@router.get("/restaurants", response_model=list[GatekeepResponse])
async def list_gatekept(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not user.is_premium:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Gatekept restaurants are a premium feature",
        )
    rows = await db.execute(
        select(GatekeptRestaurant)
        .where(GatekeptRestaurant.expires_at > utcnow())
        .order_by(GatekeptRestaurant.created_at.desc())
    )
    return rows.unique().scalars().all()
