"""
Feed endpoint — GET /feed?cursor=&page_size=&following_only=

Newest reviews first, keyset-paginated on (created_at, id):

  page 1 │ no cursor        → newest page_size + 1 rows
  page n │ cursor = (c, i)  → rows strictly older than (c, i)

One extra row is fetched to learn whether another page exists, so a client
that stops on has_more = false issues exactly ceil(N / page_size) requests.
`is_liked` for the whole page comes from one batched query.
"""
import base64
import binascii
import logging
import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from opentelemetry import trace
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.auth import get_optional_user
from spoonfeed.config import settings
from spoonfeed.database import get_db
from spoonfeed.models import Follower, Review, User, as_utc
from spoonfeed.schemas import FeedPage
from spoonfeed.services.gatekeeping import hide_gatekept_reviews
from spoonfeed.services.reviews import to_review_responses
from spoonfeed.telemetry import FEED_LATENCY

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def encode_cursor(review: Review) -> str:
    raw = f"{as_utc(review.created_at).isoformat()}|{review.id}"
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        created_at, review_id = raw.split("|", 1)
        return as_utc(datetime.fromisoformat(created_at)), review_id
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="Invalid cursor") from exc


@router.get("/", response_model=FeedPage)
async def get_feed(
    cursor: Optional[str] = None,
    page_size: int = Query(settings.feed_page_size, ge=1, le=settings.feed_max_page_size),
    following_only: bool = False,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    start_time = time.time()

    with tracer.start_as_current_span("get_feed") as span:
        span.set_attribute("feed.page_size", page_size)
        if viewer is not None:
            span.set_attribute("user.id", viewer.id)

        stmt = select(Review)
        if cursor:
            created_at, review_id = decode_cursor(cursor)
            stmt = stmt.where(
                or_(
                    Review.created_at < created_at,
                    and_(Review.created_at == created_at, Review.id < review_id),
                )
            )
        if following_only:
            if viewer is None:
                raise HTTPException(status_code=401, detail="Sign in to see reviews from people you follow")
            followed = select(Follower.following_id).where(Follower.follower_id == viewer.id)
            stmt = stmt.where(Review.user_id.in_(followed))

        stmt = hide_gatekept_reviews(stmt, viewer)
        rows = await db.execute(
            stmt.order_by(Review.created_at.desc(), Review.id.desc()).limit(page_size + 1)
        )
        reviews = list(rows.unique().scalars().all())
        has_more = len(reviews) > page_size
        reviews = reviews[:page_size]

        items = await to_review_responses(db, reviews, viewer)
        next_cursor = encode_cursor(reviews[-1]) if has_more else None

        FEED_LATENCY.observe(time.time() - start_time)
        span.set_attribute("feed.items_returned", len(items))
        span.set_attribute("feed.has_more", has_more)

        return FeedPage(items=items, next_cursor=next_cursor, has_more=has_more, page_size=page_size)
