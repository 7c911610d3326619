import json

from sqlalchemy import func, select

from spoonfeed.models import Restaurant, Review

from conftest import create_restaurant, make_premium, sign_up

PHOTO = ("naan.jpg", b"\xff\xd8jpeg-bytes", "image/jpeg")
VIDEO = ("sizzle.mp4", b"mp4-bytes", "video/mp4")
AUDIO = ("note.webm", b"webm-bytes", "audio/webm")


def review_form(restaurant_id=None, **overrides) -> dict:
    form = {"rating": "5", "text": "Bacon naan roll is elite", "tag": "elite"}
    if restaurant_id:
        form["restaurant_id"] = restaurant_id
    form.update(overrides)
    return form


async def review_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(Review))


async def test_submit_with_media_and_audio(client, session_factory, storage):
    ana, _ = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)

    resp = await client.post(
        "/reviews/",
        headers=ana,
        data=review_form(restaurant.id, is_golden_spoon="true", audio_duration_seconds="42"),
        files=[("media", PHOTO), ("media", VIDEO), ("audio", AUDIO)],
    )

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert [m["type"] for m in body["media"]] == ["photo", "video"]
    assert body["audio_url"].startswith("http://media.test/reviews/audio/")
    assert body["is_golden_spoon"] is True
    assert body["tag"] == "elite"
    assert body["restaurant"]["id"] == restaurant.id
    assert len(storage.objects) == 3

    detail = (await client.get(f"/restaurants/{restaurant.id}")).json()
    assert detail["stats"]["review_count"] == 1
    assert detail["stats"]["golden_spoon_count"] == 1
    assert detail["stats"]["review_distribution"] == [0, 0, 0, 0, 1]


async def test_submit_resolves_new_place(client, session_factory):
    ana, _ = await sign_up(client, "ana@example.com")
    place = {"google_place_id": "ChIJ-bao", "name": "Bao", "address": "Lexington St"}

    first = await client.post("/reviews/", headers=ana, data=review_form(place=json.dumps(place)))
    second = await client.post("/reviews/", headers=ana, data=review_form(place=json.dumps(place)))

    assert first.status_code == 201, first.text
    assert first.json()["restaurant"]["id"] == second.json()["restaurant"]["id"]
    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(Restaurant)) == 1


async def test_validation_rejects_before_upload(client, session_factory, storage):
    ana, _ = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)

    cases = [
        review_form(restaurant.id, is_golden_spoon="true", is_wooden_spoon="true"),
        review_form(restaurant.id, text="x" * 251),
        review_form(restaurant.id, text="   "),
        review_form(restaurant.id, tag="tasty"),
        review_form(restaurant.id, rating="6"),
        review_form(),
        review_form(restaurant.id, audio_duration_seconds="61"),
    ]
    for form in cases:
        resp = await client.post("/reviews/", headers=ana, data=form, files=[("media", PHOTO)])
        assert resp.status_code == 422, form

    assert storage.uploads == 0
    assert await review_count(session_factory) == 0


async def test_unsupported_media_type(client, session_factory, storage):
    ana, _ = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)

    resp = await client.post(
        "/reviews/",
        headers=ana,
        data=review_form(restaurant.id),
        files=[("media", PHOTO), ("media", ("menu.pdf", b"%PDF", "application/pdf"))],
    )
    assert resp.status_code == 415
    assert storage.uploads == 0

    audio = await client.post(
        "/reviews/", headers=ana, data=review_form(restaurant.id), files=[("audio", PHOTO)]
    )
    assert audio.status_code == 415


async def test_oversized_photo_is_rejected(client, session_factory):
    ana, _ = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)
    big = ("big.jpg", b"x" * (5 * 1024 * 1024 + 1), "image/jpeg")

    resp = await client.post("/reviews/", headers=ana, data=review_form(restaurant.id), files=[("media", big)])
    assert resp.status_code == 413


async def test_failed_upload_deletes_earlier_uploads(client, session_factory, storage):
    ana, _ = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)
    storage.fail_on_upload = 3

    resp = await client.post(
        "/reviews/",
        headers=ana,
        data=review_form(restaurant.id),
        files=[("media", PHOTO), ("media", VIDEO), ("audio", AUDIO)],
    )

    assert resp.status_code == 500
    assert storage.objects == {}
    assert len(storage.deleted) == 2
    assert await review_count(session_factory) == 0


async def test_missing_restaurant_deletes_uploads(client, session_factory, storage):
    ana, _ = await sign_up(client, "ana@example.com")

    resp = await client.post(
        "/reviews/", headers=ana, data=review_form("no-such-restaurant"), files=[("media", PHOTO)]
    )

    assert resp.status_code == 404
    assert storage.objects == {}
    assert len(storage.deleted) == 1


async def test_like_unlike(client, session_factory):
    ana, _ = await sign_up(client, "ana@example.com")
    ben, _ = await sign_up(client, "ben@example.com")
    restaurant = await create_restaurant(session_factory)
    review = (await client.post("/reviews/", headers=ana, data=review_form(restaurant.id))).json()

    assert (await client.put(f"/reviews/{review['id']}/like", headers=ben)).json() == {"active": True, "count": 1}
    dup = await client.put(f"/reviews/{review['id']}/like", headers=ben)
    assert dup.status_code == 409
    assert (await client.put(f"/reviews/{review['id']}/like", headers=ana)).json()["count"] == 2

    fetched = (await client.get(f"/reviews/{review['id']}", headers=ben)).json()
    assert fetched["is_liked"] is True
    assert fetched["likes_count"] == 2

    assert (await client.delete(f"/reviews/{review['id']}/like", headers=ben)).json() == {"active": False, "count": 1}
    assert (await client.delete(f"/reviews/{review['id']}/like", headers=ben)).json()["count"] == 1


async def test_comments(client, session_factory):
    ana, _ = await sign_up(client, "ana@example.com")
    ben, _ = await sign_up(client, "ben@example.com")
    restaurant = await create_restaurant(session_factory)
    review = (await client.post("/reviews/", headers=ana, data=review_form(restaurant.id))).json()
    url = f"/reviews/{review['id']}/comments"

    first = await client.post(url, headers=ben, json={"content": "Agreed!"})
    assert first.status_code == 201
    assert first.json()["user"]["username"] == "ben"
    await client.post(url, headers=ana, json={"content": "Go on a weekday"})

    assert (await client.post(url, headers=ben, json={"content": "  "})).status_code == 422
    assert (await client.post(url, headers=ben, json={"content": "x" * 281})).status_code == 422

    comments = (await client.get(url)).json()
    assert [c["content"] for c in comments] == ["Go on a weekday", "Agreed!"]
    assert (await client.get(f"/reviews/{review['id']}")).json()["comments_count"] == 2

    forbidden = await client.delete(f"{url}/{first.json()['id']}", headers=ana)
    assert forbidden.status_code == 403
    assert (await client.delete(f"{url}/{first.json()['id']}", headers=ben)).status_code == 204
    assert (await client.get(f"/reviews/{review['id']}")).json()["comments_count"] == 1


async def test_delete_review_removes_media_and_stats(client, session_factory, storage):
    ana, _ = await sign_up(client, "ana@example.com")
    ben, _ = await sign_up(client, "ben@example.com")
    restaurant = await create_restaurant(session_factory)
    review = (
        await client.post("/reviews/", headers=ana, data=review_form(restaurant.id), files=[("media", PHOTO)])
    ).json()

    assert (await client.delete(f"/reviews/{review['id']}", headers=ben)).status_code == 403
    assert (await client.delete(f"/reviews/{review['id']}", headers=ana)).status_code == 204

    assert (await client.get(f"/reviews/{review['id']}")).status_code == 404
    assert storage.objects == {}
    detail = (await client.get(f"/restaurants/{restaurant.id}")).json()
    assert detail["stats"]["review_count"] == 0
    assert detail["stats"]["rating_avg"] == 0.0


async def test_search_reviews(client, session_factory):
    ana, _ = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)
    await client.post("/reviews/", headers=ana, data=review_form(restaurant.id, text="Crispy duck", tag="mid"))
    await client.post("/reviews/", headers=ana, data=review_form(restaurant.id, text="Soggy duck", tag="overhyped"))

    by_text = (await client.get("/reviews/search", params={"q": "duck"})).json()
    assert len(by_text) == 2
    by_tag = (await client.get("/reviews/search", params={"q": "duck", "tag": "mid"})).json()
    assert [r["text"] for r in by_tag] == ["Crispy duck"]


async def test_unknown_stored_tag_renders_untagged(client, session_factory):
    _, body = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)
    async with session_factory() as session:
        review = Review(
            user_id=body["user"]["id"], restaurant_id=restaurant.id, rating=3, text="legacy", tag="yummy"
        )
        session.add(review)
        await session.commit()

    fetched = (await client.get(f"/reviews/{review.id}")).json()
    assert fetched["tag"] is None


async def test_gatekept_reviews_need_premium_or_authorship(client, session_factory):
    ana, ana_body = await sign_up(client, "ana@example.com")
    ben, ben_body = await sign_up(client, "ben@example.com")
    restaurant = await create_restaurant(session_factory)
    secret = (
        await client.post(
            "/reviews/", headers=ana, data=review_form(restaurant.id, text="secret gem", is_gatekept="true")
        )
    ).json()
    await client.post("/reviews/", headers=ana, data=review_form(restaurant.id, text="not so secret"))

    async def visible_texts(headers):
        paths = [
            ("/feed/", {}),
            ("/reviews/search", {"q": "secret"}),
            (f"/users/{ana_body['user']['id']}/reviews", {}),
            (f"/restaurants/{restaurant.id}/reviews", {}),
        ]
        seen = []
        for path, params in paths:
            body = (await client.get(path, params=params, headers=headers)).json()
            items = body["items"] if isinstance(body, dict) else body
            seen.append(sorted(r["text"] for r in items))
        return seen

    everything = ["not so secret", "secret gem"]
    assert await visible_texts({}) == [["not so secret"]] * 4
    assert await visible_texts(ben) == [["not so secret"]] * 4
    assert await visible_texts(ana) == [everything] * 4

    assert (await client.get(f"/reviews/{secret['id']}")).status_code == 404
    assert (await client.get(f"/reviews/{secret['id']}/comments", headers=ben)).status_code == 404
    assert (await client.put(f"/reviews/{secret['id']}/like", headers=ben)).status_code == 404
    assert (await client.get(f"/reviews/{secret['id']}", headers=ana)).json()["is_gatekept"] is True

    await make_premium(session_factory, ben_body["user"]["id"])
    assert await visible_texts(ben) == [everything] * 4
    assert (await client.put(f"/reviews/{secret['id']}/like", headers=ben)).status_code == 200
