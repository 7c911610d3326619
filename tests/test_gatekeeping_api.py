from datetime import timedelta

from spoonfeed.models import GatekeptRestaurant, utcnow

from conftest import create_restaurant, make_premium, sign_up

REASON = "Tiny counter, twelve seats, and the owner cooks everything herself. " * 2


async def test_gatekeep_once_per_window(client, session_factory):
    ana, _ = await sign_up(client, "ana@example.com")
    first = await create_restaurant(session_factory, "Kiln")
    second = await create_restaurant(session_factory, "Smoking Goat")

    before = (await client.get("/gatekeeping/eligibility", headers=ana)).json()
    assert before == {"eligible": True, "next_eligible_at": None}

    resp = await client.post(f"/gatekeeping/restaurants/{first.id}", headers=ana, json={"reason": REASON})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["restaurant"]["id"] == first.id
    assert body["reason"] == REASON.strip()

    again = await client.post(f"/gatekeeping/restaurants/{second.id}", headers=ana, json={"reason": REASON})
    assert again.status_code == 429

    after = (await client.get("/gatekeeping/eligibility", headers=ana)).json()
    assert after["eligible"] is False
    assert after["next_eligible_at"] is not None


async def test_reason_must_be_substantial(client, session_factory):
    ana, _ = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)

    resp = await client.post(f"/gatekeeping/restaurants/{restaurant.id}", headers=ana, json={"reason": "x" * 99})
    assert resp.status_code == 422

    padded = await client.post(
        f"/gatekeeping/restaurants/{restaurant.id}", headers=ana, json={"reason": "x" + " " * 120}
    )
    assert padded.status_code == 422
    assert (await client.get("/gatekeeping/eligibility", headers=ana)).json()["eligible"] is True


async def test_missing_restaurant(client):
    ana, _ = await sign_up(client, "ana@example.com")
    resp = await client.post("/gatekeeping/restaurants/nope", headers=ana, json={"reason": REASON})
    assert resp.status_code == 404


async def test_listing_is_premium_only(client, session_factory):
    ana, body = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)
    await client.post(f"/gatekeeping/restaurants/{restaurant.id}", headers=ana, json={"reason": REASON})

    assert (await client.get("/gatekeeping/restaurants", headers=ana)).status_code == 403
    assert (await client.get("/gatekeeping/restaurants")).status_code == 401

    await make_premium(session_factory, body["user"]["id"])
    listed = (await client.get("/gatekeeping/restaurants", headers=ana)).json()
    assert [g["restaurant"]["name"] for g in listed] == ["Dishoom"]


async def test_expired_gatekeeps_lapse(client, session_factory):
    ana, body = await sign_up(client, "ana@example.com")
    restaurant = await create_restaurant(session_factory)
    long_ago = utcnow() - timedelta(days=31)
    async with session_factory() as session:
        session.add(
            GatekeptRestaurant(
                restaurant_id=restaurant.id,
                user_id=body["user"]["id"],
                reason=REASON,
                created_at=long_ago,
                expires_at=long_ago + timedelta(days=30),
            )
        )
        await session.commit()

    assert (await client.get("/gatekeeping/eligibility", headers=ana)).json()["eligible"] is True
    found = (await client.get("/restaurants/search", params={"q": "dishoom"})).json()
    assert [r["id"] for r in found] == [restaurant.id]

    await make_premium(session_factory, body["user"]["id"])
    assert (await client.get("/gatekeeping/restaurants", headers=ana)).json() == []
