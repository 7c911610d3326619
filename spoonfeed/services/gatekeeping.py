"""
Gatekeeping: a user hides a restaurant from non-premium users for a while.

Rules:
  • one gatekeep per user per settings.gatekeep_window_days
  • a gatekeep expires gatekeep_window_days after it was created
  • while active, the restaurant is left out of search and trending for
    non-premium viewers
  • reviews flagged is_gatekept are visible to premium viewers and their
    authors only
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.config import settings
from spoonfeed.models import GatekeptRestaurant, Restaurant, Review, User, as_utc, utcnow


def window() -> timedelta:
    return timedelta(days=settings.gatekeep_window_days)


async def next_eligible_at(db: AsyncSession, user: User) -> Optional[datetime]:
    """When the user may gatekeep again; None means now."""
    since = utcnow() - window()
    latest = await db.scalar(
        select(GatekeptRestaurant.created_at)
        .where(GatekeptRestaurant.user_id == user.id, GatekeptRestaurant.created_at > since)
        .order_by(GatekeptRestaurant.created_at.desc())
        .limit(1)
    )
    if latest is None:
        return None
    return as_utc(latest) + window()


def active_gatekept_ids() -> Select:
    return select(GatekeptRestaurant.restaurant_id).where(
        GatekeptRestaurant.expires_at > utcnow()
    )


def hide_gatekept(stmt: Select, viewer: Optional[User]) -> Select:
    """Filter actively gatekept restaurants out of `stmt` unless the viewer is premium."""
    if viewer is not None and viewer.is_premium:
        return stmt
    return stmt.where(Restaurant.id.not_in(active_gatekept_ids()))


def can_see_review(review: Review, viewer: Optional[User]) -> bool:
    if not review.is_gatekept:
        return True
    return viewer is not None and (viewer.is_premium or viewer.id == review.user_id)


def hide_gatekept_reviews(stmt: Select, viewer: Optional[User]) -> Select:
    """Gatekept reviews are shown to premium viewers and to their authors only."""
    if viewer is None:
        return stmt.where(Review.is_gatekept.is_(False))
    if viewer.is_premium:
        return stmt
    return stmt.where(Review.is_gatekept.is_(False) | (Review.user_id == viewer.id))
