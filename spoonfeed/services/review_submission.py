"""
Review submission — the write path for a new review.

  1. Validate the form (ReviewCreate) and every attached file.
  2. Upload each photo/video, then the optional audio clip, as separate objects.
  3. Resolve the restaurant (existing id, or lookup-or-create from place details).
  4. Insert the review row.
  5. Recompute the restaurant's stats.
  6. Commit.

If anything after the first upload fails, every object uploaded so far is
deleted again before the error propagates, so a failed submission leaves
neither a review row nor orphaned media behind.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.clients.storage_client import ObjectStorage
from spoonfeed.config import settings
from spoonfeed.enums import MediaType
from spoonfeed.models import Restaurant, Review, User
from spoonfeed.schemas import ReviewCreate
from spoonfeed.services.restaurant_stats import refresh_restaurant_stats
from spoonfeed.services.restaurants import resolve_restaurant
from spoonfeed.services.reviews import load_review
from spoonfeed.telemetry import (
    COMPENSATING_DELETES_TOTAL,
    MEDIA_UPLOAD_FAILURES_TOTAL,
    REVIEW_SUBMISSIONS_TOTAL,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class FilePart:
    """One uploaded file, already read into memory."""
    filename: Optional[str]
    content_type: str
    data: bytes


def classify_media(part: FilePart) -> MediaType:
    content_type = (part.content_type or "").lower()
    if content_type.startswith("image/"):
        kind, limit = MediaType.PHOTO, settings.image_max_bytes
    elif content_type.startswith("video/"):
        kind, limit = MediaType.VIDEO, settings.video_max_bytes
    else:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported media type: {part.content_type or 'unknown'}",
        )
    if len(part.data) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"{part.filename or kind.value} exceeds the {limit // (1024 * 1024)}MB limit",
        )
    return kind


def check_audio(part: FilePart) -> None:
    if not (part.content_type or "").lower().startswith("audio/"):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Audio note must be an audio file",
        )
    if len(part.data) > settings.audio_max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Audio note is too large",
        )


class ReviewSubmission:
    def __init__(self, db: AsyncSession, storage: ObjectStorage, user: User) -> None:
        self.db = db
        self.storage = storage
        self.user = user
        self.uploaded_keys: list[str] = []

    def _upload(self, prefix: str, part: FilePart, kind: str) -> tuple[str, str]:
        key = self.storage.build_key(prefix, self.user.id, part.filename, part.content_type)
        try:
            url = self.storage.upload(key, part.data, part.content_type)
        except Exception:
            MEDIA_UPLOAD_FAILURES_TOTAL.labels(kind=kind).inc()
            raise
        self.uploaded_keys.append(key)
        return key, url

    def _compensate(self) -> None:
        for key in self.uploaded_keys:
            try:
                self.storage.delete(key)
                COMPENSATING_DELETES_TOTAL.inc()
            except Exception as exc:
                # Keep going: one stuck object must not leave the rest behind
                logger.error("Compensating delete failed for %s: %s", key, exc)
        self.uploaded_keys = []

    async def _restaurant(self, form: ReviewCreate) -> Restaurant:
        if form.restaurant_id:
            restaurant = await self.db.get(Restaurant, form.restaurant_id)
            if restaurant is None:
                raise HTTPException(status_code=404, detail="Restaurant not found")
            return restaurant
        return await resolve_restaurant(self.db, form.place)

    async def submit(
        self,
        form: ReviewCreate,
        media: list[FilePart],
        audio: Optional[FilePart] = None,
    ) -> Review:
        with tracer.start_as_current_span("submit_review") as span:
            span.set_attribute("review.user_id", self.user.id)
            span.set_attribute("review.media_count", len(media))

            # Reject bad files before anything leaves the process
            kinds = [classify_media(part) for part in media]
            if audio is not None:
                check_audio(audio)

            try:
                stored_media = []
                for part, kind in zip(media, kinds):
                    key, url = self._upload("reviews", part, kind.value)
                    stored_media.append({"type": kind.value, "url": url, "key": key})

                audio_key = audio_url = None
                if audio is not None:
                    audio_key, audio_url = self._upload("audio", audio, "audio")

                restaurant = await self._restaurant(form)
                review = Review(
                    user_id=self.user.id,
                    restaurant_id=restaurant.id,
                    rating=form.rating,
                    text=form.text,
                    tag=form.tag.value,
                    media=stored_media,
                    audio_url=audio_url,
                    audio_key=audio_key,
                    is_golden_spoon=form.is_golden_spoon,
                    is_wooden_spoon=form.is_wooden_spoon,
                    is_gatekept=form.is_gatekept,
                )
                self.db.add(review)
                await self.db.flush()
                await refresh_restaurant_stats(self.db, restaurant.id)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                self._compensate()
                REVIEW_SUBMISSIONS_TOTAL.labels(outcome="failed").inc()
                raise

            REVIEW_SUBMISSIONS_TOTAL.labels(outcome="created").inc()
            span.set_attribute("review.id", review.id)
            logger.info(
                "Review %s created by %s for restaurant %s", review.id, self.user.id, restaurant.id
            )
            return await load_review(self.db, review.id)
