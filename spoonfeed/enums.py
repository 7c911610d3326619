"""Enumeration types shared by the API and the client layer."""

from enum import Enum


class ReviewTag(str, Enum):
    WORTH_THE_HYPE = "worth the hype"
    UNDERRATED = "underrated"
    OVERHYPED = "overhyped"
    ELITE = "elite"
    DAYLIGHT_ROBBERY = "daylight robbery"
    GUILTY_PLEASURE = "guilty pleasure"
    MARMITE = "marmite"
    MID = "mid"
    NPC_CENTRAL = "NPC central"


class MediaType(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"


class SavedType(str, Enum):
    WISHLIST = "wishlist"
    VISITED = "visited"


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


REVIEW_TAG_VALUES = frozenset(tag.value for tag in ReviewTag)
