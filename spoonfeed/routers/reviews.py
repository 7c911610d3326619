"""
Review endpoints:
  POST   /reviews                          — submit (multipart: fields + media + audio)
  GET    /reviews/search?q=&tag=           — text / tag search
  GET    /reviews/{id}                     — fetch one review
  DELETE /reviews/{id}                     — delete your own review
  PUT    /reviews/{id}/like                — like
  DELETE /reviews/{id}/like                — unlike
  GET    /reviews/{id}/comments            — comments, newest first
  POST   /reviews/{id}/comments            — add a comment
  DELETE /reviews/{id}/comments/{cid}      — delete your own comment
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from opentelemetry import trace
from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.auth import get_current_user, get_optional_user
from spoonfeed.clients.storage_client import ObjectStorage, get_storage
from spoonfeed.config import settings
from spoonfeed.database import get_db
from spoonfeed.enums import ReviewTag
from spoonfeed.models import Review, ReviewComment, ReviewLike, User
from spoonfeed.schemas import (
    CommentCreate,
    CommentResponse,
    PlaceDetails,
    ReviewCreate,
    ReviewResponse,
    ToggleResponse,
)
from spoonfeed.services.gatekeeping import can_see_review, hide_gatekept_reviews
from spoonfeed.services.restaurant_stats import refresh_restaurant_stats
from spoonfeed.services.review_submission import FilePart, ReviewSubmission
from spoonfeed.services.reviews import load_review, to_review_responses
from spoonfeed.telemetry import TOGGLE_MUTATIONS_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _get_review_or_404(db: AsyncSession, review_id: str, viewer: Optional[User]) -> Review:
    review = await load_review(db, review_id)
    # Gatekept reviews read as missing to viewers who may not see them
    if not review or not can_see_review(review, viewer):
        raise HTTPException(status_code=404, detail="Review not found")
    return review


async def _read_part(upload: UploadFile) -> FilePart:
    return FilePart(
        filename=upload.filename,
        content_type=upload.content_type or "application/octet-stream",
        data=await upload.read(),
    )


@router.post("/", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def submit_review(
    rating: int = Form(...),
    text: str = Form(...),
    tag: str = Form(...),
    restaurant_id: Optional[str] = Form(None),
    place: Optional[str] = Form(None, description="PlaceDetails as JSON"),
    is_golden_spoon: bool = Form(False),
    is_wooden_spoon: bool = Form(False),
    is_gatekept: bool = Form(False),
    audio_duration_seconds: Optional[float] = Form(None),
    media: Optional[list[UploadFile]] = File(None),
    audio: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    user: User = Depends(get_current_user),
):
    """
    Write path for a new review. The whole flow (uploads, restaurant
    resolution, insert, stats refresh) succeeds or leaves nothing behind;
    see services.review_submission.
    """
    try:
        form = ReviewCreate(
            restaurant_id=restaurant_id or None,
            place=PlaceDetails.model_validate_json(place) if place else None,
            rating=rating,
            text=text,
            tag=tag,
            is_golden_spoon=is_golden_spoon,
            is_wooden_spoon=is_wooden_spoon,
            is_gatekept=is_gatekept,
            audio_duration_seconds=audio_duration_seconds,
        )
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False, include_context=False))

    media_parts = [await _read_part(m) for m in (media or [])]
    audio_part = await _read_part(audio) if audio is not None else None

    submission = ReviewSubmission(db, storage, user)
    review = await submission.submit(form, media_parts, audio_part)
    return (await to_review_responses(db, [review], user))[0]


@router.get("/search", response_model=list[ReviewResponse])
async def search_reviews(
    q: str = Query("", max_length=100),
    tag: Optional[ReviewTag] = None,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    stmt = select(Review)
    if q.strip():
        stmt = stmt.where(Review.text.ilike(f"%{q.strip()}%"))
    if tag is not None:
        stmt = stmt.where(Review.tag == tag.value)
    stmt = hide_gatekept_reviews(stmt, viewer)
    rows = await db.execute(
        stmt.order_by(Review.created_at.desc(), Review.id.desc()).limit(settings.search_limit)
    )
    return await to_review_responses(db, list(rows.unique().scalars().all()), viewer)


@router.get("/{review_id}", response_model=ReviewResponse)
async def get_review(
    review_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    review = await _get_review_or_404(db, review_id, viewer)
    return (await to_review_responses(db, [review], viewer))[0]


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: str,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("delete_review"):
        review = await _get_review_or_404(db, review_id, user)
        if review.user_id != user.id:
            raise HTTPException(status_code=403, detail="You can only delete your own reviews")

        keys = [m["key"] for m in review.media or [] if m.get("key")]
        if review.audio_key:
            keys.append(review.audio_key)
        restaurant_id = review.restaurant_id

        await db.execute(delete(ReviewLike).where(ReviewLike.review_id == review_id))
        await db.execute(delete(ReviewComment).where(ReviewComment.review_id == review_id))
        await db.delete(review)
        await db.flush()
        await refresh_restaurant_stats(db, restaurant_id)
        await db.commit()

        # Objects go only once the row is gone for good
        for key in keys:
            try:
                storage.delete(key)
            except Exception as exc:
                logger.warning("Could not delete object %s of review %s: %s", key, review_id, exc)
        logger.info("Review %s deleted by %s", review_id, user.id)


@router.put("/{review_id}/like", response_model=ToggleResponse)
async def like_review(
    review_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("like_review"):
        review = await _get_review_or_404(db, review_id, user)
        existing = await db.get(ReviewLike, (user.id, review_id))
        if existing:
            TOGGLE_MUTATIONS_TOTAL.labels(relation="like", action="duplicate").inc()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already liked")

        db.add(ReviewLike(user_id=user.id, review_id=review_id))
        review.likes_count += 1
        await db.flush()
        TOGGLE_MUTATIONS_TOTAL.labels(relation="like", action="on").inc()
        return ToggleResponse(active=True, count=review.likes_count)


@router.delete("/{review_id}/like", response_model=ToggleResponse)
async def unlike_review(
    review_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("unlike_review"):
        review = await _get_review_or_404(db, review_id, user)
        result = await db.execute(
            delete(ReviewLike).where(ReviewLike.user_id == user.id, ReviewLike.review_id == review_id)
        )
        if result.rowcount:
            review.likes_count = max(review.likes_count - 1, 0)
            await db.flush()
        TOGGLE_MUTATIONS_TOTAL.labels(relation="like", action="off").inc()
        return ToggleResponse(active=False, count=review.likes_count)


@router.get("/{review_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    review_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    await _get_review_or_404(db, review_id, viewer)
    rows = await db.execute(
        select(ReviewComment)
        .where(ReviewComment.review_id == review_id)
        .order_by(ReviewComment.created_at.desc(), ReviewComment.id.desc())
    )
    return rows.unique().scalars().all()


@router.post(
    "/{review_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    review_id: str,
    body: CommentCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("add_comment"):
        review = await _get_review_or_404(db, review_id, user)
        comment = ReviewComment(review_id=review_id, user_id=user.id, content=body.content)
        db.add(comment)
        review.comments_count += 1
        await db.flush()

        result = await db.execute(
            select(ReviewComment)
            .where(ReviewComment.id == comment.id)
            .execution_options(populate_existing=True)
        )
        return result.unique().scalar_one()


@router.delete("/{review_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    review_id: str,
    comment_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    review = await _get_review_or_404(db, review_id, user)
    comment = await db.get(ReviewComment, comment_id)
    if not comment or comment.review_id != review_id:
        raise HTTPException(status_code=404, detail="Comment not found")
    if comment.user_id != user.id:
        raise HTTPException(status_code=403, detail="You can only delete your own comments")
    await db.delete(comment)
    review.comments_count = max(review.comments_count - 1, 0)
