"""List hydration: restaurant counts and the viewer's bookmarks, batched per page."""
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.models import ListFavorite, ListRestaurant, RestaurantList, User
from spoonfeed.schemas import ListDetail, ListEntry, ListSummary, RestaurantSummary, UserSummary


async def restaurant_counts(db: AsyncSession, list_ids: list[str]) -> dict[str, list[dict]]:
    """Grouped join-row counts, shaped as aggregate records for ListSummary to fold."""
    if not list_ids:
        return {}
    rows = await db.execute(
        select(ListRestaurant.list_id, func.count())
        .where(ListRestaurant.list_id.in_(list_ids))
        .group_by(ListRestaurant.list_id)
    )
    return {list_id: [{"count": count}] for list_id, count in rows.all()}


async def favorited_ids(db: AsyncSession, viewer: Optional[User], list_ids: list[str]) -> set[str]:
    if viewer is None or not list_ids:
        return set()
    rows = await db.execute(
        select(ListFavorite.list_id).where(
            ListFavorite.user_id == viewer.id, ListFavorite.list_id.in_(list_ids)
        )
    )
    return set(rows.scalars().all())


def _summary_fields(lst: RestaurantList) -> dict:
    return dict(
        id=lst.id,
        name=lst.name,
        description=lst.description,
        cover_url=lst.cover_url,
        is_public=lst.is_public,
        favorites_count=lst.favorites_count,
        created_at=lst.created_at,
        user=UserSummary.model_validate(lst.owner),
    )


async def to_list_summaries(
    db: AsyncSession, lists: list[RestaurantList], viewer: Optional[User]
) -> list[ListSummary]:
    ids = [lst.id for lst in lists]
    counts = await restaurant_counts(db, ids)
    favorited = await favorited_ids(db, viewer, ids)
    return [
        ListSummary(
            **_summary_fields(lst),
            restaurant_count=counts.get(lst.id),
            is_favorited=lst.id in favorited,
        )
        for lst in lists
    ]


async def to_list_detail(
    db: AsyncSession, lst: RestaurantList, viewer: Optional[User]
) -> ListDetail:
    rows = await db.execute(
        select(ListRestaurant)
        .where(ListRestaurant.list_id == lst.id)
        .order_by(ListRestaurant.created_at)
    )
    entries = [
        ListEntry(
            restaurant=RestaurantSummary.model_validate(row.restaurant),
            note=row.note,
            added_at=row.created_at,
        )
        for row in rows.unique().scalars().all()
    ]
    favorited = await favorited_ids(db, viewer, [lst.id])
    return ListDetail(
        **_summary_fields(lst),
        restaurant_count=len(entries),
        is_favorited=lst.id in favorited,
        restaurants=entries,
    )


def visible_to(viewer: Optional[User]):
    """Public lists, plus the viewer's own private ones."""
    if viewer is None:
        return RestaurantList.is_public.is_(True)
    return RestaurantList.is_public.is_(True) | (RestaurantList.user_id == viewer.id)
