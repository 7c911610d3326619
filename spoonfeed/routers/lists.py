"""
Curated restaurant lists:
  POST   /lists                               — create
  GET    /lists/trending                      — most bookmarked public lists
  GET    /lists/search?q=                     — public lists by name
  GET    /lists/{id}                          — detail with restaurants
  PATCH  /lists/{id}                          — rename / describe / publish
  DELETE /lists/{id}                          — delete
  POST   /lists/{id}/cover                    — upload a cover image
  POST   /lists/{id}/restaurants              — add a restaurant (with note)
  PATCH  /lists/{id}/restaurants/{rid}        — edit the note
  DELETE /lists/{id}/restaurants/{rid}        — remove a restaurant
  PUT    /lists/{id}/favorite                 — bookmark
  DELETE /lists/{id}/favorite                 — remove bookmark
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.auth import get_current_user, get_optional_user
from spoonfeed.clients.storage_client import ObjectStorage, get_storage
from spoonfeed.config import settings
from spoonfeed.database import get_db
from spoonfeed.models import ListFavorite, ListRestaurant, Restaurant, RestaurantList, User
from spoonfeed.schemas import (
    ListCreate,
    ListDetail,
    ListNoteUpdate,
    ListRestaurantAdd,
    ListSummary,
    ListUpdate,
    ToggleResponse,
)
from spoonfeed.services.lists import to_list_detail, to_list_summaries, visible_to
from spoonfeed.telemetry import MEDIA_UPLOAD_FAILURES_TOTAL, TOGGLE_MUTATIONS_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _load_list(db: AsyncSession, list_id: str) -> Optional[RestaurantList]:
    result = await db.execute(
        select(RestaurantList)
        .where(RestaurantList.id == list_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()


async def _visible_list_or_404(db: AsyncSession, list_id: str, viewer: Optional[User]) -> RestaurantList:
    lst = await _load_list(db, list_id)
    # Private lists are indistinguishable from missing ones to everyone but the owner
    if not lst or (not lst.is_public and (viewer is None or viewer.id != lst.user_id)):
        raise HTTPException(status_code=404, detail="List not found")
    return lst


async def _own_list_or_403(db: AsyncSession, list_id: str, user: User) -> RestaurantList:
    lst = await _visible_list_or_404(db, list_id, user)
    if lst.user_id != user.id:
        raise HTTPException(status_code=403, detail="You can only edit your own lists")
    return lst


@router.post("/", response_model=ListDetail, status_code=status.HTTP_201_CREATED)
async def create_list(
    body: ListCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("create_list"):
        lst = RestaurantList(
            user_id=user.id,
            name=body.name,
            description=body.description,
            is_public=body.is_public,
        )
        db.add(lst)
        await db.flush()
        logger.info("List %s created by %s", lst.id, user.id)
        return await to_list_detail(db, await _load_list(db, lst.id), user)


@router.get("/trending", response_model=list[ListSummary])
async def trending_lists(
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    rows = await db.execute(
        select(RestaurantList)
        .where(RestaurantList.is_public.is_(True))
        .order_by(RestaurantList.favorites_count.desc(), RestaurantList.created_at.desc())
        .limit(settings.trending_lists_limit)
    )
    return await to_list_summaries(db, list(rows.unique().scalars().all()), viewer)


@router.get("/search", response_model=list[ListSummary])
async def search_lists(
    q: str = Query(..., min_length=1, max_length=100),
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    rows = await db.execute(
        select(RestaurantList)
        .where(RestaurantList.name.ilike(f"%{q.strip()}%"), visible_to(viewer))
        .order_by(RestaurantList.favorites_count.desc(), RestaurantList.name)
        .limit(settings.search_limit)
    )
    return await to_list_summaries(db, list(rows.unique().scalars().all()), viewer)


@router.get("/{list_id}", response_model=ListDetail)
async def get_list(
    list_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    lst = await _visible_list_or_404(db, list_id, viewer)
    return await to_list_detail(db, lst, viewer)


@router.patch("/{list_id}", response_model=ListDetail)
async def update_list(
    list_id: str,
    body: ListUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    lst = await _own_list_or_403(db, list_id, user)
    for field, value in body.get_update_data().items():
        setattr(lst, field, value.strip() if isinstance(value, str) else value)
    await db.flush()
    return await to_list_detail(db, lst, user)


@router.delete("/{list_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_list(
    list_id: str,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("delete_list"):
        lst = await _own_list_or_403(db, list_id, user)
        cover_key = lst.cover_key
        await db.execute(delete(ListRestaurant).where(ListRestaurant.list_id == list_id))
        await db.execute(delete(ListFavorite).where(ListFavorite.list_id == list_id))
        await db.delete(lst)
        await db.commit()
        if cover_key:
            try:
                storage.delete(cover_key)
            except Exception as exc:
                logger.warning("Could not delete cover %s of list %s: %s", cover_key, list_id, exc)


@router.post("/{list_id}/cover", response_model=ListDetail)
async def upload_cover(
    list_id: str,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    user: User = Depends(get_current_user),
):
    lst = await _own_list_or_403(db, list_id, user)
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="List covers must be images",
        )
    data = await file.read()
    if len(data) > settings.image_max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Cover image is too large",
        )

    old_key = lst.cover_key
    key = storage.build_key("covers", user.id, file.filename, content_type)
    try:
        lst.cover_url = storage.upload(key, data, content_type)
    except Exception:
        MEDIA_UPLOAD_FAILURES_TOTAL.labels(kind="cover").inc()
        raise
    lst.cover_key = key
    try:
        await db.commit()
    except Exception:
        storage.delete(key)
        raise
    if old_key:
        try:
            storage.delete(old_key)
        except Exception as exc:
            logger.warning("Could not delete old cover %s: %s", old_key, exc)
    return await to_list_detail(db, lst, user)


@router.post("/{list_id}/restaurants", response_model=ListDetail, status_code=status.HTTP_201_CREATED)
async def add_restaurant(
    list_id: str,
    body: ListRestaurantAdd,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("add_list_restaurant"):
        lst = await _own_list_or_403(db, list_id, user)
        if not await db.get(Restaurant, body.restaurant_id):
            raise HTTPException(status_code=404, detail="Restaurant not found")
        if await db.get(ListRestaurant, (list_id, body.restaurant_id)):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Restaurant is already in this list",
            )
        db.add(
            ListRestaurant(
                list_id=list_id,
                restaurant_id=body.restaurant_id,
                note=(body.note or "").strip() or None,
            )
        )
        await db.flush()
        return await to_list_detail(db, lst, user)


@router.patch("/{list_id}/restaurants/{restaurant_id}", response_model=ListDetail)
async def update_note(
    list_id: str,
    restaurant_id: str,
    body: ListNoteUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    lst = await _own_list_or_403(db, list_id, user)
    entry = await db.get(ListRestaurant, (list_id, restaurant_id))
    if not entry:
        raise HTTPException(status_code=404, detail="Restaurant is not in this list")
    entry.note = (body.note or "").strip() or None
    await db.flush()
    return await to_list_detail(db, lst, user)


@router.delete("/{list_id}/restaurants/{restaurant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_restaurant(
    list_id: str,
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await _own_list_or_403(db, list_id, user)
    await db.execute(
        delete(ListRestaurant).where(
            ListRestaurant.list_id == list_id, ListRestaurant.restaurant_id == restaurant_id
        )
    )


@router.put("/{list_id}/favorite", response_model=ToggleResponse)
async def favorite_list(
    list_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("favorite_list"):
        lst = await _visible_list_or_404(db, list_id, user)
        if await db.get(ListFavorite, (list_id, user.id)):
            TOGGLE_MUTATIONS_TOTAL.labels(relation="bookmark", action="duplicate").inc()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="List already bookmarked")
        db.add(ListFavorite(list_id=list_id, user_id=user.id))
        lst.favorites_count += 1
        await db.flush()
        TOGGLE_MUTATIONS_TOTAL.labels(relation="bookmark", action="on").inc()
        return ToggleResponse(active=True, count=lst.favorites_count)


@router.delete("/{list_id}/favorite", response_model=ToggleResponse)
async def unfavorite_list(
    list_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("unfavorite_list"):
        lst = await _visible_list_or_404(db, list_id, user)
        result = await db.execute(
            delete(ListFavorite).where(ListFavorite.list_id == list_id, ListFavorite.user_id == user.id)
        )
        if result.rowcount:
            lst.favorites_count = max(lst.favorites_count - 1, 0)
            await db.flush()
        TOGGLE_MUTATIONS_TOTAL.labels(relation="bookmark", action="off").inc()
        return ToggleResponse(active=False, count=lst.favorites_count)
