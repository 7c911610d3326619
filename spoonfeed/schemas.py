"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.
The client layer (spoonfeed.clients.api_client) parses responses with the same
models, so both ends agree on one wire shape.
"""
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from spoonfeed.aggregates import normalize_count
from spoonfeed.config import settings
from spoonfeed.enums import REVIEW_TAG_VALUES, MediaType, ReviewTag, SavedType


PLACE_PHOTO_NAME = re.compile(r"^places/[^/]+/photos/[^/]+$")


def photo_names(values) -> list[str]:
    """Places photo resource names; anything else (e.g. a keyed URL) is dropped."""
    return [v for v in values or [] if isinstance(v, str) and PLACE_PHOTO_NAME.match(v)]


def _strip_required(value: str, field_name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{field_name} must not be empty")
    return value


# ──────────────────────────── Auth ────────────────────────────────────────

class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=settings.password_min_length, max_length=128)
    username: Optional[str] = Field(None, min_length=3, max_length=100)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class CurrentUserResponse(BaseModel):
    id: str
    email: str
    username: str
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    cuisines: list[str] = []
    is_premium: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("cuisines", mode="before")
    @classmethod
    def coerce_cuisines(cls, v):
        return v or []


class SessionResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: CurrentUserResponse


class ProfileUpdate(BaseModel):
    """Onboarding / settings form. Only provided fields are written."""
    username: Optional[str] = Field(None, min_length=3, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)
    avatar_url: Optional[str] = Field(None, max_length=500)
    cuisines: Optional[list[str]] = None

    def get_update_data(self) -> dict:
        """Return only fields that are not None."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


# ──────────────────────────── Users ───────────────────────────────────────

class UserSummary(BaseModel):
    id: str
    username: str
    avatar_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProfileStats(BaseModel):
    followers_count: int = 0
    following_count: int = 0
    reviews_count: int = 0
    golden_spoon_count: int = 0
    wooden_spoon_count: int = 0


class UserProfileResponse(UserSummary):
    bio: Optional[str] = None
    cuisines: list[str] = []
    stats: ProfileStats = ProfileStats()
    is_following: bool = False

    @field_validator("cuisines", mode="before")
    @classmethod
    def coerce_cuisines(cls, v):
        return v or []


class ToggleResponse(BaseModel):
    """State of a two-way relation after a follow/like/bookmark mutation."""
    active: bool
    count: Optional[int] = None


# ──────────────────────────── Restaurants ─────────────────────────────────

class RestaurantSummary(BaseModel):
    id: str
    name: str
    address: str = ""
    cuisine_type: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RestaurantResponse(RestaurantSummary):
    google_place_id: Optional[str] = None
    neighborhood: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    photos: list[str] = []
    rating_avg: float = 0.0
    review_count: int = 0
    created_at: datetime

    @field_validator("photos", mode="before")
    @classmethod
    def coerce_photos(cls, v):
        # Stored rows carry photo names; parsed responses carry proxy paths already
        proxied = [p for p in v or [] if isinstance(p, str) and p.startswith("/restaurants/")]
        return proxied or photo_names(v)

    @model_validator(mode="after")
    def proxy_photo_urls(self):
        self.photos = [
            p if p.startswith("/restaurants/") else f"/restaurants/{self.id}/photos/{i}"
            for i, p in enumerate(self.photos)
        ]
        return self


class MostCommonTag(BaseModel):
    tag: ReviewTag
    count: int


class RestaurantStats(BaseModel):
    rating_avg: float
    review_count: int
    visit_count: int
    golden_spoon_count: int
    wooden_spoon_count: int
    review_distribution: list[int]
    most_common_tag: Optional[MostCommonTag] = None
    distribution_shape: str


class RestaurantDetailResponse(RestaurantResponse):
    stats: RestaurantStats
    saved_as: list[SavedType] = []


class PlaceDetails(BaseModel):
    """A place picked from discovery results, enough to create the restaurant row."""
    google_place_id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    address: str = ""
    cuisine_type: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    photos: list[str] = []

    @field_validator("photos", mode="before")
    @classmethod
    def keep_photo_names(cls, v):
        return photo_names(v)


class SavedRestaurantResponse(BaseModel):
    restaurant: RestaurantSummary
    type: SavedType
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ──────────────────────────── Reviews ─────────────────────────────────────

class MediaItem(BaseModel):
    type: MediaType
    url: str


class ReviewCreate(BaseModel):
    """Validated review submission (files travel alongside as multipart parts)."""
    restaurant_id: Optional[str] = None
    place: Optional[PlaceDetails] = None
    rating: int = Field(..., ge=1, le=5)
    text: str = Field(..., max_length=settings.review_text_max_length)
    tag: ReviewTag
    is_golden_spoon: bool = False
    is_wooden_spoon: bool = False
    is_gatekept: bool = False
    audio_duration_seconds: Optional[float] = Field(None, ge=0)

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        return _strip_required(v, "Review text")

    @model_validator(mode="after")
    def check_review(self):
        if self.is_golden_spoon and self.is_wooden_spoon:
            raise ValueError("A review cannot carry both a golden and a wooden spoon")
        if not self.restaurant_id and self.place is None:
            raise ValueError("Either restaurant_id or place details are required")
        if (
            self.audio_duration_seconds is not None
            and self.audio_duration_seconds > settings.audio_max_seconds
        ):
            raise ValueError(
                f"Audio clips are limited to {settings.audio_max_seconds} seconds"
            )
        return self


class ReviewResponse(BaseModel):
    id: str
    rating: int
    text: str
    tag: Optional[ReviewTag] = None
    media: list[MediaItem] = []
    audio_url: Optional[str] = None
    is_golden_spoon: bool = False
    is_wooden_spoon: bool = False
    is_gatekept: bool = False
    likes_count: int = 0
    comments_count: int = 0
    created_at: datetime
    user: UserSummary
    restaurant: Optional[RestaurantSummary] = None
    is_liked: bool = False

    model_config = ConfigDict(from_attributes=True)

    @field_validator("tag", mode="before")
    @classmethod
    def drop_unknown_tag(cls, v):
        # Legacy rows may carry free-form tags; those render as untagged
        return v if v in REVIEW_TAG_VALUES else None

    @field_validator("media", mode="before")
    @classmethod
    def coerce_media(cls, v):
        return [{"type": m["type"], "url": m["url"]} for m in (v or [])]


class FeedPage(BaseModel):
    items: list[ReviewResponse]
    next_cursor: Optional[str] = None
    has_more: bool
    page_size: int


class CommentCreate(BaseModel):
    content: str = Field(..., max_length=settings.comment_max_length)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        return _strip_required(v, "Comment")


class CommentResponse(BaseModel):
    id: str
    content: str
    created_at: datetime
    likes_count: int = 0
    user: UserSummary

    model_config = ConfigDict(from_attributes=True)


# ──────────────────────────── Lists ───────────────────────────────────────

class ListCreate(BaseModel):
    name: str = Field(..., max_length=settings.list_name_max_length)
    description: Optional[str] = Field(None, max_length=settings.list_description_max_length)
    is_public: bool = True

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _strip_required(v, "List name")

    @field_validator("description")
    @classmethod
    def blank_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class ListUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=settings.list_name_max_length)
    description: Optional[str] = Field(None, max_length=settings.list_description_max_length)
    is_public: Optional[bool] = None

    def get_update_data(self) -> dict:
        """Return only fields that are not None."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class ListSummary(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    cover_url: Optional[str] = None
    is_public: bool = True
    favorites_count: int = 0
    restaurant_count: int = 0
    created_at: datetime
    user: UserSummary
    is_favorited: bool = False

    @field_validator("restaurant_count", mode="before")
    @classmethod
    def fold_restaurant_count(cls, v):
        return normalize_count(v)


class ListEntry(BaseModel):
    restaurant: RestaurantSummary
    note: Optional[str] = None
    added_at: datetime


class ListDetail(ListSummary):
    restaurants: list[ListEntry] = []


class ListRestaurantAdd(BaseModel):
    restaurant_id: str
    note: Optional[str] = Field(None, max_length=500)


class ListNoteUpdate(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


# ──────────────────────────── Gatekeeping ─────────────────────────────────

class GatekeepCreate(BaseModel):
    reason: str = Field(..., max_length=2000)

    @field_validator("reason")
    @classmethod
    def reason_is_substantial(cls, v: str) -> str:
        v = _strip_required(v, "Reason")
        if len(v) < settings.gatekeep_min_reason_length:
            raise ValueError(
                f"Tell us why in at least {settings.gatekeep_min_reason_length} characters"
            )
        return v


class GatekeepResponse(BaseModel):
    id: str
    restaurant: RestaurantSummary
    reason: str
    created_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EligibilityResponse(BaseModel):
    eligible: bool
    next_eligible_at: Optional[datetime] = None
