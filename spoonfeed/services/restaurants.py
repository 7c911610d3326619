"""
Restaurant lookup-or-create keyed by Google place id.

Two submitters reviewing the same newly discovered place race to create its
row. The insert is ON CONFLICT DO NOTHING on google_place_id followed by a
re-select, so both end up with the same restaurant and neither transaction
aborts.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.models import Restaurant, _uuid, utcnow
from spoonfeed.schemas import PlaceDetails

logger = logging.getLogger(__name__)


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Unsupported database dialect: {dialect}")


def _row_values(place: PlaceDetails) -> dict:
    return {
        "google_place_id": place.google_place_id,
        "name": place.name,
        "address": place.address or "",
        "cuisine_type": place.cuisine_type,
        "latitude": place.latitude,
        "longitude": place.longitude,
        "photos": place.photos or [],
    }


async def get_by_place_id(db: AsyncSession, google_place_id: str) -> Optional[Restaurant]:
    result = await db.execute(
        select(Restaurant).where(Restaurant.google_place_id == google_place_id)
    )
    return result.scalar_one_or_none()


async def resolve_restaurant(db: AsyncSession, place: PlaceDetails) -> Restaurant:
    """Return the restaurant for `place`, creating it if nobody has yet."""
    existing = await get_by_place_id(db, place.google_place_id)
    if existing is not None:
        return existing

    insert = _insert_for(db)
    values = _row_values(place)
    values.update(
        id=_uuid(),
        created_at=utcnow(),
        rating_avg=0.0,
        review_count=0,
        visit_count=0,
        golden_spoon_count=0,
        wooden_spoon_count=0,
        review_distribution=[0, 0, 0, 0, 0],
        most_common_tag_count=0,
    )
    await db.execute(
        insert(Restaurant)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["google_place_id"])
    )
    restaurant = await get_by_place_id(db, place.google_place_id)
    if restaurant is None:
        raise RuntimeError(f"Restaurant for place {place.google_place_id} vanished after insert")
    logger.info("Resolved restaurant %s for place %s", restaurant.id, place.google_place_id)
    return restaurant


async def upsert_places(db: AsyncSession, places: list[PlaceDetails]) -> list[Restaurant]:
    """
    Store discovery results. Existing rows get their listing fields refreshed;
    stats columns are left alone.
    """
    if not places:
        return []
    insert = _insert_for(db)
    for place in places:
        values = _row_values(place)
        stmt = insert(Restaurant).values(
            id=_uuid(),
            created_at=utcnow(),
            rating_avg=0.0,
            review_count=0,
            visit_count=0,
            golden_spoon_count=0,
            wooden_spoon_count=0,
            review_distribution=[0, 0, 0, 0, 0],
            most_common_tag_count=0,
            **values,
        )
        updates = {k: stmt.excluded[k] for k in ("name", "address", "latitude", "longitude", "photos")}
        if place.cuisine_type:
            updates["cuisine_type"] = stmt.excluded.cuisine_type
        await db.execute(
            stmt.on_conflict_do_update(index_elements=["google_place_id"], set_=updates)
        )

    ids = [p.google_place_id for p in places]
    rows = await db.execute(
        select(Restaurant)
        .where(Restaurant.google_place_id.in_(ids))
        .execution_options(populate_existing=True)
    )
    by_place = {r.google_place_id: r for r in rows.scalars().all()}
    return [by_place[pid] for pid in dict.fromkeys(ids) if pid in by_place]
