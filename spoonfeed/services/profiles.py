"""
Profile hydration: social and review counts for a batch of users.

Each concern is one grouped aggregate over all requested ids, so a page of
search results costs four queries regardless of its size.
"""
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.aggregates import normalize_count
from spoonfeed.models import Follower, Review, User
from spoonfeed.schemas import ProfileStats, UserProfileResponse


async def profile_stats(db: AsyncSession, user_ids: list[str]) -> dict[str, ProfileStats]:
    if not user_ids:
        return {}

    review_rows = await db.execute(
        select(
            Review.user_id,
            func.count(Review.id),
            func.sum(case((Review.is_golden_spoon, 1), else_=0)),
            func.sum(case((Review.is_wooden_spoon, 1), else_=0)),
        )
        .where(Review.user_id.in_(user_ids))
        .group_by(Review.user_id)
    )
    follower_rows = await db.execute(
        select(Follower.following_id, func.count())
        .where(Follower.following_id.in_(user_ids))
        .group_by(Follower.following_id)
    )
    following_rows = await db.execute(
        select(Follower.follower_id, func.count())
        .where(Follower.follower_id.in_(user_ids))
        .group_by(Follower.follower_id)
    )

    stats = {uid: ProfileStats() for uid in user_ids}
    for uid, reviews, golden, wooden in review_rows.all():
        stats[uid].reviews_count = normalize_count(reviews)
        stats[uid].golden_spoon_count = normalize_count(golden)
        stats[uid].wooden_spoon_count = normalize_count(wooden)
    for uid, count in follower_rows.all():
        stats[uid].followers_count = normalize_count(count)
    for uid, count in following_rows.all():
        stats[uid].following_count = normalize_count(count)
    return stats


async def followed_ids(db: AsyncSession, viewer: Optional[User], user_ids: list[str]) -> set[str]:
    if viewer is None or not user_ids:
        return set()
    rows = await db.execute(
        select(Follower.following_id).where(
            Follower.follower_id == viewer.id, Follower.following_id.in_(user_ids)
        )
    )
    return set(rows.scalars().all())


async def to_profiles(
    db: AsyncSession, users: list[User], viewer: Optional[User]
) -> list[UserProfileResponse]:
    ids = [u.id for u in users]
    stats = await profile_stats(db, ids)
    following = await followed_ids(db, viewer, ids)
    return [
        UserProfileResponse(
            id=u.id,
            username=u.username,
            avatar_url=u.avatar_url,
            bio=u.bio,
            cuisines=u.cuisines or [],
            stats=stats[u.id],
            is_following=u.id in following,
        )
        for u in users
    ]
