"""Review loading and hydration shared by the feed, review, user and restaurant routers."""
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.models import Review, ReviewLike, User
from spoonfeed.schemas import ReviewResponse


async def liked_review_ids(
    db: AsyncSession, viewer: Optional[User], review_ids: Iterable[str]
) -> set[str]:
    """Which of `review_ids` the viewer has liked — one query per page."""
    ids = list(review_ids)
    if viewer is None or not ids:
        return set()
    rows = await db.execute(
        select(ReviewLike.review_id).where(
            ReviewLike.user_id == viewer.id, ReviewLike.review_id.in_(ids)
        )
    )
    return set(rows.scalars().all())


async def to_review_responses(
    db: AsyncSession, reviews: list[Review], viewer: Optional[User]
) -> list[ReviewResponse]:
    liked = await liked_review_ids(db, viewer, (r.id for r in reviews))
    responses = []
    for review in reviews:
        response = ReviewResponse.model_validate(review)
        response.is_liked = review.id in liked
        responses.append(response)
    return responses


async def load_review(db: AsyncSession, review_id: str) -> Optional[Review]:
    """Fetch a review with its author and restaurant, bypassing stale identity-map state."""
    result = await db.execute(
        select(Review)
        .where(Review.id == review_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()
