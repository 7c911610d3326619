import pytest

from conftest import create_restaurant, seed_reviews, sign_up


async def collect_feed(client, headers=None, page_size=10, **params):
    pages, cursor = [], None
    while True:
        query = {"page_size": page_size, **params}
        if cursor:
            query["cursor"] = cursor
        resp = await client.get("/feed/", params=query, headers=headers or {})
        assert resp.status_code == 200, resp.text
        page = resp.json()
        pages.append(page)
        if not page["has_more"]:
            return pages
        cursor = page["next_cursor"]


@pytest.mark.parametrize("total, expected_pages", [(0, [0]), (10, [10]), (25, [10, 10, 5])])
async def test_feed_pages_newest_first(client, session_factory, total, expected_pages):
    _, body = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)
    ids = await seed_reviews(session_factory, body["user"]["id"], restaurant.id, total)

    pages = await collect_feed(client)

    assert [len(p["items"]) for p in pages] == expected_pages
    assert [item["id"] for p in pages for item in p["items"]] == ids
    assert pages[-1]["next_cursor"] is None


async def test_feed_breaks_timestamp_ties_by_id(client, session_factory):
    _, body = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)
    ids = await seed_reviews(session_factory, body["user"]["id"], restaurant.id, 12, same_timestamp=True)

    pages = await collect_feed(client)
    seen = [item["id"] for p in pages for item in p["items"]]

    assert [len(p["items"]) for p in pages] == [10, 2]
    assert seen == sorted(ids, reverse=True)


async def test_feed_marks_liked_reviews(client, session_factory):
    ana, body = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)
    ids = await seed_reviews(session_factory, body["user"]["id"], restaurant.id, 3)
    await client.put(f"/reviews/{ids[2]}/like", headers=ana)

    signed_in = (await client.get("/feed/", headers=ana)).json()
    anonymous = (await client.get("/feed/")).json()

    assert [i["is_liked"] for i in signed_in["items"]] == [False, False, True]
    assert not any(i["is_liked"] for i in anonymous["items"])


async def test_following_only(client, session_factory):
    ana, _ = await sign_up(client, "ana@example.com")
    _, ben = await sign_up(client, "ben@example.com")
    _, cat = await sign_up(client, "cat@example.com")
    restaurant = await create_restaurant(session_factory)
    ben_ids = await seed_reviews(session_factory, ben["user"]["id"], restaurant.id, 2)
    await seed_reviews(session_factory, cat["user"]["id"], restaurant.id, 2)
    await client.put(f"/users/{ben['user']['id']}/follow", headers=ana)

    page = (await client.get("/feed/", params={"following_only": "true"}, headers=ana)).json()
    assert [i["id"] for i in page["items"]] == ben_ids

    assert (await client.get("/feed/", params={"following_only": "true"})).status_code == 401


async def test_invalid_cursor_and_page_size(client):
    assert (await client.get("/feed/", params={"cursor": "%%%garbage"})).status_code == 400
    assert (await client.get("/feed/", params={"page_size": 0})).status_code == 422
    assert (await client.get("/feed/", params={"page_size": 51})).status_code == 422
