"""
User & social-graph endpoints:
  GET    /users/search?q=         — find users by username
  GET    /users/me/saved?type=    — the viewer's wishlist / visited restaurants
  GET    /users/me/bookmarks      — lists the viewer has bookmarked
  GET    /users/{id}              — profile with counts and is_following
  PUT    /users/{id}/follow       — follow
  DELETE /users/{id}/follow       — unfollow
  GET    /users/{id}/followers    — who follows this user
  GET    /users/{id}/following    — who this user follows
  GET    /users/{id}/reviews      — this user's reviews, newest first
  GET    /users/{id}/lists        — this user's lists
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opentelemetry import trace
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.auth import get_current_user, get_optional_user
from spoonfeed.config import settings
from spoonfeed.database import get_db
from spoonfeed.enums import SavedType
from spoonfeed.models import Follower, ListFavorite, RestaurantList, Review, SavedRestaurant, User
from spoonfeed.schemas import (
    ListSummary,
    ReviewResponse,
    SavedRestaurantResponse,
    ToggleResponse,
    UserProfileResponse,
    UserSummary,
)
from spoonfeed.services.gatekeeping import hide_gatekept_reviews
from spoonfeed.services.lists import to_list_summaries, visible_to
from spoonfeed.services.profiles import to_profiles
from spoonfeed.services.reviews import to_review_responses
from spoonfeed.telemetry import TOGGLE_MUTATIONS_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _get_user_or_404(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def _followers_count(db: AsyncSession, user_id: str) -> int:
    return await db.scalar(
        select(func.count()).select_from(Follower).where(Follower.following_id == user_id)
    )


@router.get("/search", response_model=list[UserProfileResponse])
async def search_users(
    q: str = Query(..., min_length=1, max_length=100),
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    rows = await db.execute(
        select(User)
        .where(User.username.ilike(f"%{q.strip()}%"))
        .order_by(User.username)
        .limit(settings.search_limit)
    )
    return await to_profiles(db, list(rows.scalars().all()), viewer)


@router.get("/me/saved", response_model=list[SavedRestaurantResponse])
async def my_saved_restaurants(
    type: Optional[SavedType] = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    stmt = select(SavedRestaurant).where(SavedRestaurant.user_id == user.id)
    if type is not None:
        stmt = stmt.where(SavedRestaurant.type == type.value)
    rows = await db.execute(stmt.order_by(SavedRestaurant.created_at.desc()))
    return rows.unique().scalars().all()


@router.get("/me/bookmarks", response_model=list[ListSummary])
async def my_bookmarked_lists(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows = await db.execute(
        select(RestaurantList)
        .join(ListFavorite, ListFavorite.list_id == RestaurantList.id)
        .where(ListFavorite.user_id == user.id, visible_to(user))
        .order_by(ListFavorite.created_at.desc())
    )
    return await to_list_summaries(db, list(rows.unique().scalars().all()), user)


@router.get("/{user_id}", response_model=UserProfileResponse)
async def get_profile(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    user = await _get_user_or_404(db, user_id)
    return (await to_profiles(db, [user], viewer))[0]


@router.put("/{user_id}/follow", response_model=ToggleResponse)
async def follow_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: User = Depends(get_current_user),
):
    """
    Create a follower → following edge. Following someone twice is a 409 so
    clients can tell a duplicate apart from a fresh follow.
    """
    with tracer.start_as_current_span("follow_user") as span:
        span.set_attribute("follow.follower_id", viewer.id)
        span.set_attribute("follow.following_id", user_id)
        if user_id == viewer.id:
            raise HTTPException(status_code=400, detail="Cannot follow yourself")
        await _get_user_or_404(db, user_id)

        existing = await db.get(Follower, (viewer.id, user_id))
        if existing:
            TOGGLE_MUTATIONS_TOTAL.labels(relation="follow", action="duplicate").inc()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail="Already following this user"
            )

        db.add(Follower(follower_id=viewer.id, following_id=user_id))
        await db.flush()
        TOGGLE_MUTATIONS_TOTAL.labels(relation="follow", action="on").inc()
        logger.info("User %s followed %s", viewer.id, user_id)
        return ToggleResponse(active=True, count=await _followers_count(db, user_id))


@router.delete("/{user_id}/follow", response_model=ToggleResponse)
async def unfollow_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("unfollow_user"):
        await _get_user_or_404(db, user_id)
        await db.execute(
            delete(Follower).where(
                Follower.follower_id == viewer.id, Follower.following_id == user_id
            )
        )
        TOGGLE_MUTATIONS_TOTAL.labels(relation="follow", action="off").inc()
        return ToggleResponse(active=False, count=await _followers_count(db, user_id))


@router.get("/{user_id}/followers", response_model=list[UserSummary])
async def list_followers(user_id: str, db: AsyncSession = Depends(get_db)):
    await _get_user_or_404(db, user_id)
    rows = await db.execute(
        select(User)
        .join(Follower, Follower.follower_id == User.id)
        .where(Follower.following_id == user_id)
        .order_by(Follower.created_at.desc())
    )
    return rows.scalars().all()


@router.get("/{user_id}/following", response_model=list[UserSummary])
async def list_following(user_id: str, db: AsyncSession = Depends(get_db)):
    await _get_user_or_404(db, user_id)
    rows = await db.execute(
        select(User)
        .join(Follower, Follower.following_id == User.id)
        .where(Follower.follower_id == user_id)
        .order_by(Follower.created_at.desc())
    )
    return rows.scalars().all()


@router.get("/{user_id}/reviews", response_model=list[ReviewResponse])
async def list_user_reviews(
    user_id: str,
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    await _get_user_or_404(db, user_id)
    stmt = hide_gatekept_reviews(select(Review).where(Review.user_id == user_id), viewer)
    rows = await db.execute(
        stmt.order_by(Review.created_at.desc(), Review.id.desc()).limit(limit)
    )
    return await to_review_responses(db, list(rows.unique().scalars().all()), viewer)


@router.get("/{user_id}/lists", response_model=list[ListSummary])
async def list_user_lists(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    await _get_user_or_404(db, user_id)
    rows = await db.execute(
        select(RestaurantList)
        .where(RestaurantList.user_id == user_id, visible_to(viewer))
        .order_by(RestaurantList.created_at.desc())
    )
    return await to_list_summaries(db, list(rows.unique().scalars().all()), viewer)
