"""
The review form's local state, before anything is sent.

Selection rules mirror the form controls: picking the selected rating or tag
again clears it, and the golden and wooden spoons toggle against each other.
"""
from dataclasses import dataclass, field
from typing import Optional

from spoonfeed.config import settings
from spoonfeed.enums import ReviewTag
from spoonfeed.schemas import PlaceDetails


@dataclass
class ReviewDraft:
    restaurant_id: Optional[str] = None
    place: Optional[PlaceDetails] = None
    text: str = ""
    rating: int = 0
    tag: Optional[ReviewTag] = None
    is_golden_spoon: bool = False
    is_wooden_spoon: bool = False
    is_gatekept: bool = False
    audio_duration_seconds: Optional[float] = None
    media_count: int = 0
    errors: list[str] = field(default_factory=list)

    def select_rating(self, rating: int) -> None:
        if not 1 <= rating <= 5:
            raise ValueError("Rating must be between 1 and 5")
        self.rating = 0 if rating == self.rating else rating

    def select_tag(self, tag) -> None:
        tag = ReviewTag(tag)
        self.tag = None if tag == self.tag else tag

    def toggle_golden_spoon(self) -> None:
        self.is_golden_spoon = not self.is_golden_spoon
        self.is_wooden_spoon = False

    def toggle_wooden_spoon(self) -> None:
        self.is_wooden_spoon = not self.is_wooden_spoon
        self.is_golden_spoon = False

    def validate(self) -> list[str]:
        """Problems that stop submission; empty when the draft can be sent."""
        errors = []
        text = self.text.strip()
        if not text:
            errors.append("Please write a review")
        elif len(text) > settings.review_text_max_length:
            errors.append(f"Reviews are limited to {settings.review_text_max_length} characters")
        if not self.rating:
            errors.append("Please select a rating")
        if self.tag is None:
            errors.append("Please select a tag")
        if not self.restaurant_id and self.place is None:
            errors.append("Please choose a restaurant")
        if (
            self.audio_duration_seconds is not None
            and self.audio_duration_seconds > settings.audio_max_seconds
        ):
            errors.append(f"Voice notes are limited to {settings.audio_max_seconds} seconds")
        self.errors = errors
        return errors

    def to_form(self) -> dict:
        return {
            "restaurant_id": self.restaurant_id,
            "place": self.place.model_dump() if self.place else None,
            "rating": self.rating,
            "text": self.text.strip(),
            "tag": self.tag.value if self.tag else None,
            "is_golden_spoon": self.is_golden_spoon,
            "is_wooden_spoon": self.is_wooden_spoon,
            "is_gatekept": self.is_gatekept,
            "audio_duration_seconds": self.audio_duration_seconds,
        }
