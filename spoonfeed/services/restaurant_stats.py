"""
Restaurant statistics, recomputed from rows.

The denormalised columns on `restaurants` (rating_avg, review_count,
review_distribution, spoon counts, most_common_tag, visit_count) are derived
data. They are rewritten wholesale inside the same transaction as the write
that changed their inputs, so they never drift from the reviews and saved
rows they summarise.
"""
import logging
from collections import Counter
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.aggregates import normalize_count
from spoonfeed.enums import REVIEW_TAG_VALUES, SavedType
from spoonfeed.models import Restaurant, Review, SavedRestaurant
from spoonfeed.schemas import MostCommonTag, RestaurantStats

logger = logging.getLogger(__name__)


def classify_distribution(distribution: Sequence[int]) -> str:
    """
    Shape of a 5-bucket rating histogram, by comparing mean and median.
    Empty histograms are "Normal".
    """
    total = sum(distribution)
    if total == 0:
        return "Normal"

    mean = sum(count * (i + 1) for i, count in enumerate(distribution)) / total
    running = 0
    median = len(distribution)
    for i, count in enumerate(distribution):
        running += count
        if running >= total / 2:
            median = i + 1
            break

    if abs(mean - median) < 0.5:
        return "Normal"
    if mean > median:
        return "Right-skewed"
    return "Left-skewed"


async def refresh_restaurant_stats(db: AsyncSession, restaurant_id: str) -> Optional[Restaurant]:
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        return None

    rows = (
        await db.execute(
            select(Review.rating, Review.tag, Review.is_golden_spoon, Review.is_wooden_spoon)
            .where(Review.restaurant_id == restaurant_id)
        )
    ).all()

    distribution = [0, 0, 0, 0, 0]
    tags: Counter = Counter()
    golden = wooden = 0
    for rating, tag, is_golden, is_wooden in rows:
        if 1 <= rating <= 5:
            distribution[rating - 1] += 1
        if tag in REVIEW_TAG_VALUES:
            tags[tag] += 1
        golden += int(bool(is_golden))
        wooden += int(bool(is_wooden))

    visits = await db.scalar(
        select(func.count())
        .select_from(SavedRestaurant)
        .where(
            SavedRestaurant.restaurant_id == restaurant_id,
            SavedRestaurant.type == SavedType.VISITED.value,
        )
    )

    review_count = len(rows)
    restaurant.review_count = review_count
    restaurant.rating_avg = (
        round(sum(r[0] for r in rows) / review_count, 2) if review_count else 0.0
    )
    restaurant.review_distribution = distribution
    restaurant.golden_spoon_count = golden
    restaurant.wooden_spoon_count = wooden
    if tags:
        tag, count = tags.most_common(1)[0]
        restaurant.most_common_tag = tag
        restaurant.most_common_tag_count = count
    else:
        restaurant.most_common_tag = None
        restaurant.most_common_tag_count = 0
    restaurant.visit_count = normalize_count(visits)

    await db.flush()
    logger.debug("Refreshed stats for restaurant %s (%d reviews)", restaurant_id, review_count)
    return restaurant


def stats_for(restaurant: Restaurant) -> RestaurantStats:
    distribution = [normalize_count(c) for c in (restaurant.review_distribution or [])]
    distribution = (distribution + [0] * 5)[:5]
    most_common = None
    if restaurant.most_common_tag in REVIEW_TAG_VALUES:
        most_common = MostCommonTag(
            tag=restaurant.most_common_tag, count=restaurant.most_common_tag_count
        )
    return RestaurantStats(
        rating_avg=restaurant.rating_avg or 0.0,
        review_count=restaurant.review_count,
        visit_count=restaurant.visit_count,
        golden_spoon_count=restaurant.golden_spoon_count,
        wooden_spoon_count=restaurant.wooden_spoon_count,
        review_distribution=distribution,
        most_common_tag=most_common,
        distribution_shape=classify_distribution(distribution),
    )
