"""
Restaurant endpoints:
  GET    /restaurants/search?q=               — by name
  GET    /restaurants/trending                — new this week, most reviewed
  GET    /restaurants/discover?location=&q=   — places API search near a location
  POST   /restaurants/lookup                  — lookup-or-create from place details
  GET    /restaurants/{id}                    — detail with stats
  GET    /restaurants/{id}/reviews            — reviews, newest first
  GET    /restaurants/{id}/photos/{n}         — place photo, fetched server-side
  PUT    /restaurants/{id}/saved/{type}       — add to wishlist / mark visited
  DELETE /restaurants/{id}/saved/{type}       — undo
"""
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status
from opentelemetry import trace
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.auth import get_current_user, get_optional_user
from spoonfeed.clients.places_client import PlacesClient, PlacesUnavailable, get_places_client
from spoonfeed.config import settings
from spoonfeed.database import get_db
from spoonfeed.enums import SavedType
from spoonfeed.models import Restaurant, Review, SavedRestaurant, User, utcnow
from spoonfeed.schemas import (
    PlaceDetails,
    RestaurantDetailResponse,
    RestaurantResponse,
    ReviewResponse,
    ToggleResponse,
    photo_names,
)
from spoonfeed.services.gatekeeping import hide_gatekept, hide_gatekept_reviews
from spoonfeed.services.restaurant_stats import refresh_restaurant_stats, stats_for
from spoonfeed.services.restaurants import resolve_restaurant, upsert_places
from spoonfeed.services.reviews import to_review_responses
from spoonfeed.telemetry import TOGGLE_MUTATIONS_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _get_restaurant_or_404(db: AsyncSession, restaurant_id: str) -> Restaurant:
    restaurant = await db.get(Restaurant, restaurant_id)
    if not restaurant:
        raise HTTPException(status_code=404, detail="Restaurant not found")
    return restaurant


async def _saved_count(db: AsyncSession, restaurant_id: str, saved_type: SavedType) -> int:
    return await db.scalar(
        select(func.count())
        .select_from(SavedRestaurant)
        .where(
            SavedRestaurant.restaurant_id == restaurant_id,
            SavedRestaurant.type == saved_type.value,
        )
    )


@router.get("/search", response_model=list[RestaurantResponse])
async def search_restaurants(
    q: str = Query(..., min_length=1, max_length=100),
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    stmt = select(Restaurant).where(Restaurant.name.ilike(f"%{q.strip()}%"))
    stmt = hide_gatekept(stmt, viewer)
    rows = await db.execute(stmt.order_by(Restaurant.name).limit(settings.search_limit))
    return rows.scalars().all()


@router.get("/trending", response_model=list[RestaurantResponse])
async def trending_restaurants(
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    since = utcnow() - timedelta(days=settings.trending_restaurants_days)
    stmt = select(Restaurant).where(Restaurant.created_at >= since)
    stmt = hide_gatekept(stmt, viewer)
    rows = await db.execute(
        stmt.order_by(Restaurant.review_count.desc(), Restaurant.created_at.desc())
        .limit(settings.trending_restaurants_limit)
    )
    return rows.scalars().all()


@router.get("/discover", response_model=list[RestaurantResponse])
async def discover_restaurants(
    location: str = Query(..., min_length=1, max_length=200),
    q: str = Query("", max_length=100),
    cuisine: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
    places: PlacesClient = Depends(get_places_client),
):
    """
    Geocode `location`, search the places API within the configured radius,
    and store every result so it can be reviewed or listed straight away.
    """
    with tracer.start_as_current_span("discover_restaurants") as span:
        span.set_attribute("discover.location", location)
        if not places.enabled:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Restaurant discovery is not configured",
            )
        try:
            point = await places.geocode(location)
            if point is None:
                raise HTTPException(status_code=404, detail="Could not find location")
            found = await places.search_text(q.strip(), point[0], point[1], cuisine=cuisine)
        except PlacesUnavailable as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Restaurant discovery is temporarily unavailable",
            ) from exc

        span.set_attribute("discover.results", len(found))
        return await upsert_places(db, found)


@router.post("/lookup", response_model=RestaurantResponse)
async def lookup_or_create(
    body: PlaceDetails,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("lookup_restaurant"):
        return await resolve_restaurant(db, body)


@router.get("/{restaurant_id}", response_model=RestaurantDetailResponse)
async def get_restaurant(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    restaurant = await _get_restaurant_or_404(db, restaurant_id)
    saved_as: list[str] = []
    if viewer is not None:
        rows = await db.execute(
            select(SavedRestaurant.type).where(
                SavedRestaurant.user_id == viewer.id,
                SavedRestaurant.restaurant_id == restaurant_id,
            )
        )
        saved_as = sorted(rows.scalars().all())

    response = RestaurantDetailResponse.model_validate(
        {
            **RestaurantResponse.model_validate(restaurant).model_dump(),
            "stats": stats_for(restaurant),
            "saved_as": saved_as,
        }
    )
    return response


@router.get("/{restaurant_id}/reviews", response_model=list[ReviewResponse])
async def list_restaurant_reviews(
    restaurant_id: str,
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    await _get_restaurant_or_404(db, restaurant_id)
    stmt = hide_gatekept_reviews(
        select(Review).where(Review.restaurant_id == restaurant_id), viewer
    )
    rows = await db.execute(
        stmt.order_by(Review.created_at.desc(), Review.id.desc()).limit(limit)
    )
    return await to_review_responses(db, list(rows.unique().scalars().all()), viewer)


@router.get("/{restaurant_id}/photos/{index}")
async def get_restaurant_photo(
    restaurant_id: str,
    index: int = Path(..., ge=0),
    db: AsyncSession = Depends(get_db),
    places: PlacesClient = Depends(get_places_client),
):
    restaurant = await _get_restaurant_or_404(db, restaurant_id)
    names = photo_names(restaurant.photos)
    if index >= len(names):
        raise HTTPException(status_code=404, detail="Photo not found")
    if not places.enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Restaurant photos are not configured",
        )
    try:
        content, media_type = await places.fetch_photo(names[index])
    except PlacesUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Restaurant photos are temporarily unavailable",
        ) from exc
    return Response(
        content=content,
        media_type=media_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )


@router.put("/{restaurant_id}/saved/{saved_type}", response_model=ToggleResponse)
async def save_restaurant(
    restaurant_id: str,
    saved_type: SavedType,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("save_restaurant"):
        await _get_restaurant_or_404(db, restaurant_id)
        existing = await db.get(SavedRestaurant, (user.id, restaurant_id, saved_type.value))
        if existing:
            TOGGLE_MUTATIONS_TOTAL.labels(relation="save", action="duplicate").inc()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already saved")

        db.add(SavedRestaurant(user_id=user.id, restaurant_id=restaurant_id, type=saved_type.value))
        await db.flush()
        if saved_type is SavedType.VISITED:
            await refresh_restaurant_stats(db, restaurant_id)
        TOGGLE_MUTATIONS_TOTAL.labels(relation="save", action="on").inc()
        return ToggleResponse(active=True, count=await _saved_count(db, restaurant_id, saved_type))


@router.delete("/{restaurant_id}/saved/{saved_type}", response_model=ToggleResponse)
async def unsave_restaurant(
    restaurant_id: str,
    saved_type: SavedType,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("unsave_restaurant"):
        await _get_restaurant_or_404(db, restaurant_id)
        await db.execute(
            delete(SavedRestaurant).where(
                SavedRestaurant.user_id == user.id,
                SavedRestaurant.restaurant_id == restaurant_id,
                SavedRestaurant.type == saved_type.value,
            )
        )
        if saved_type is SavedType.VISITED:
            await refresh_restaurant_stats(db, restaurant_id)
        TOGGLE_MUTATIONS_TOTAL.labels(relation="save", action="off").inc()
        return ToggleResponse(active=False, count=await _saved_count(db, restaurant_id, saved_type))
