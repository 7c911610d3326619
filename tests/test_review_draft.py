import pytest

from spoonfeed.enums import ReviewTag
from spoonfeed.schemas import PlaceDetails
from spoonfeed.sync.review_draft import ReviewDraft


def complete_draft(**overrides) -> ReviewDraft:
    draft = ReviewDraft(restaurant_id="rest-1", text="Great bacon naan")
    draft.select_rating(5)
    draft.select_tag(ReviewTag.ELITE)
    for key, value in overrides.items():
        setattr(draft, key, value)
    return draft


def test_spoons_are_mutually_exclusive():
    draft = ReviewDraft()
    draft.toggle_golden_spoon()
    assert draft.is_golden_spoon and not draft.is_wooden_spoon

    draft.toggle_wooden_spoon()
    assert draft.is_wooden_spoon and not draft.is_golden_spoon

    draft.toggle_wooden_spoon()
    assert not draft.is_wooden_spoon and not draft.is_golden_spoon


def test_reselecting_tag_clears_it():
    draft = ReviewDraft()
    draft.select_tag("mid")
    assert draft.tag is ReviewTag.MID
    draft.select_tag("marmite")
    assert draft.tag is ReviewTag.MARMITE
    draft.select_tag("marmite")
    assert draft.tag is None


def test_unknown_tag_is_rejected():
    with pytest.raises(ValueError):
        ReviewDraft().select_tag("tasty")


def test_reselecting_rating_clears_it():
    draft = ReviewDraft()
    draft.select_rating(3)
    draft.select_rating(3)
    assert draft.rating == 0
    with pytest.raises(ValueError):
        draft.select_rating(6)


def test_complete_draft_is_valid():
    assert complete_draft().validate() == []


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"text": "   "}, "Please write a review"),
        ({"text": "x" * 251}, "Reviews are limited to 250 characters"),
        ({"rating": 0}, "Please select a rating"),
        ({"tag": None}, "Please select a tag"),
        ({"restaurant_id": None}, "Please choose a restaurant"),
        ({"audio_duration_seconds": 61}, "Voice notes are limited to 60 seconds"),
    ],
)
def test_validation_errors(overrides, message):
    draft = complete_draft(**overrides)
    assert message in draft.validate()
    assert message in draft.errors


def test_text_at_limit_is_fine():
    assert complete_draft(text="x" * 250).validate() == []


def test_to_form_carries_place_details():
    place = PlaceDetails(google_place_id="gp-1", name="Bao", address="Lexington St")
    draft = complete_draft(restaurant_id=None, place=place, text="  Fluffy  ")
    draft.toggle_golden_spoon()

    form = draft.to_form()

    assert form["place"]["google_place_id"] == "gp-1"
    assert form["text"] == "Fluffy"
    assert form["tag"] == "elite"
    assert form["rating"] == 5
    assert form["is_golden_spoon"] is True
    assert form["is_wooden_spoon"] is False
