"""The API client and client-side state machines, driven against the app in-process."""
import math

import httpx
import pytest

from spoonfeed.clients.api_client import ApiError, AuthError, DuplicateError, NotFoundError, SpoonfeedClient
from spoonfeed.enums import ReviewTag, SavedType
from spoonfeed.sync.paginator import FeedPaginator
from spoonfeed.sync.review_draft import ReviewDraft
from spoonfeed.sync.toggles import ToggleState, follow_toggle, like_toggle

from conftest import create_restaurant, seed_reviews


@pytest.fixture
def sdk(client):
    return SpoonfeedClient(client)


async def test_sign_up_sets_token(sdk):
    session = await sdk.sign_up("ana@example.com", "secret123")
    assert sdk.access_token == session.access_token

    me = await sdk.me()
    assert me.email == "ana@example.com"

    await sdk.sign_out(session.refresh_token)
    assert sdk.access_token is None
    with pytest.raises(AuthError):
        await sdk.me()


@pytest.mark.parametrize("total", [0, 9, 10, 20, 25])
async def test_paginator_request_count(sdk, session_factory, total):
    session = await sdk.sign_up("ana@example.com", "secret123")
    restaurant = await create_restaurant(session_factory)
    ids = await seed_reviews(session_factory, session.user.id, restaurant.id, total)

    paginator = FeedPaginator.for_client(sdk)
    await paginator.load_initial()
    while not paginator.exhausted:
        assert await paginator.on_sentinel_visible()

    assert paginator.requests_issued == max(math.ceil(total / 10), 1)
    assert [item.id for item in paginator.items] == ids
    assert not await paginator.on_sentinel_visible()
    assert paginator.requests_issued == max(math.ceil(total / 10), 1)


async def test_follow_toggle_treats_existing_follow_as_success(client):
    ana, ben = SpoonfeedClient(client), SpoonfeedClient(client)
    await ana.sign_up("ana@example.com", "secret123")
    ben_session = await ben.sign_up("ben@example.com", "secret123")
    ben_id = ben_session.user.id
    await ana.follow(ben_id)

    # A stale screen still shows "Follow"
    toggle = follow_toggle(ana, ben_id, ToggleState(active=False, count=0))
    result = await toggle.toggle()

    assert result.ok and result.duplicate
    assert toggle.state.active is True
    assert (await ana.get_profile(ben_id)).stats.followers_count == 1

    result = await toggle.toggle()
    assert result.ok
    assert toggle.state == ToggleState(active=False, count=0)


async def test_like_toggle_rolls_back_on_missing_review(sdk):
    await sdk.sign_up("ana@example.com", "secret123")
    toggle = like_toggle(sdk, "no-such-review", ToggleState(active=False, count=3))

    result = await toggle.toggle()

    assert not result.ok
    assert isinstance(result.error, NotFoundError)
    assert toggle.state == ToggleState(active=False, count=3)


async def test_submit_draft(sdk, session_factory):
    await sdk.sign_up("ana@example.com", "secret123")
    restaurant = await create_restaurant(session_factory)

    draft = ReviewDraft(restaurant_id=restaurant.id, text="  Black daal, every time  ")
    draft.select_rating(4)
    draft.select_tag("elite")
    draft.toggle_golden_spoon()
    assert draft.validate() == []

    review = await sdk.submit_review(draft.to_form(), media=[("daal.jpg", b"jpeg", "image/jpeg")])

    assert review.text == "Black daal, every time"
    assert review.tag is ReviewTag.ELITE
    assert review.is_golden_spoon
    assert len(review.media) == 1

    detail = await sdk.get_restaurant(restaurant.id)
    assert detail.stats.golden_spoon_count == 1


async def test_saved_and_list_round_trip(sdk, session_factory):
    await sdk.sign_up("ana@example.com", "secret123")
    restaurant = await create_restaurant(session_factory)

    await sdk.save_restaurant(restaurant.id, SavedType.WISHLIST)
    with pytest.raises(DuplicateError):
        await sdk.save_restaurant(restaurant.id, SavedType.WISHLIST)

    lst = await sdk.create_list("Curry crawl")
    lst = await sdk.add_to_list(lst.id, restaurant.id, note="Chicken ruby")
    assert lst.restaurant_count == 1
    assert (await sdk.get_list(lst.id)).restaurants[0].note == "Chicken ruby"


@pytest.mark.parametrize(
    "response, detail",
    [
        (httpx.Response(502, json=["upstream", "down"]), ["upstream", "down"]),
        (httpx.Response(502, json="gateway timeout"), "gateway timeout"),
        (httpx.Response(502, text="<html>Bad Gateway</html>"), "<html>Bad Gateway</html>"),
        (httpx.Response(502, json={"detail": "Try again"}), "Try again"),
    ],
)
async def test_error_bodies_of_any_shape(response, detail):
    transport = httpx.MockTransport(lambda request: response)
    async with httpx.AsyncClient(transport=transport, base_url="http://api.test") as http:
        with pytest.raises(ApiError) as excinfo:
            await SpoonfeedClient(http).me()

    assert excinfo.value.status_code == 502
    assert excinfo.value.detail == detail
