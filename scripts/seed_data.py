#!/usr/bin/env python3
"""
Seed script: creates a small, realistic dataset through the public API.

Creates:
  • 8 users
  • A follow graph (each user follows 3 others)
  • A handful of restaurants, resolved by place id
  • 4 reviews per user with ratings, tags and spoons
  • Likes, comments, a few lists and bookmarks

Run after docker compose up:
  python scripts/seed_data.py --api-url http://localhost:8000
"""
import argparse
import asyncio
import random

import httpx

from spoonfeed.clients.api_client import ApiError, DuplicateError, SpoonfeedClient
from spoonfeed.enums import ReviewTag
from spoonfeed.schemas import PlaceDetails
from spoonfeed.sync.review_draft import ReviewDraft

PASSWORD = "spoonfeed-seed"

BASE_USERS = ["ayesha_eats", "ben_bites", "chloe_crumbs", "dev_dines", "ella_orders", "finn_forks", "gia_grazes", "hugo_hungry"]

PLACES = [
    PlaceDetails(google_place_id="seed-dishoom", name="Dishoom", address="7 Boundary St, London", cuisine_type="Indian"),
    PlaceDetails(google_place_id="seed-bao", name="Bao", address="53 Lexington St, London", cuisine_type="Taiwanese"),
    PlaceDetails(google_place_id="seed-kiln", name="Kiln", address="58 Brewer St, London", cuisine_type="Thai"),
    PlaceDetails(google_place_id="seed-padella", name="Padella", address="6 Southwark St, London", cuisine_type="Italian"),
    PlaceDetails(google_place_id="seed-smoking-goat", name="Smoking Goat", address="64 Shoreditch High St, London", cuisine_type="Thai"),
]

SAMPLE_REVIEWS = [
    "Bacon naan roll lived up to every bit of the queue.",
    "Pici cacio e pepe is worth the wait, the tiramisu less so.",
    "Cornish lamb skewers were smoky and perfectly charred.",
    "Fried chicken bao was great, the rest felt a bit mid.",
    "Tiny room, loud music, incredible fish sauce wings.",
    "Service was slow but the daal made up for it.",
    "Overpriced for the portion size, would not queue again.",
    "Best lunch deal in Soho, hands down.",
]

SAMPLE_COMMENTS = ["Adding this to my list!", "Totally agree", "Go on a weekday, no queue", "The chai is a must"]


async def wait_for_api(http: httpx.AsyncClient, retries: int = 15) -> None:
    print(f"Waiting for API at {http.base_url} ...")
    for _ in range(retries):
        try:
            resp = await http.get("/health")
            if resp.status_code == 200 and resp.json().get("status") == "ok":
                print("  API is ready!\n")
                return
        except httpx.HTTPError:
            pass
        await asyncio.sleep(3)
    raise RuntimeError(f"API not reachable at {http.base_url} after {retries} retries")


async def sign_up_or_in(http: httpx.AsyncClient, username: str) -> SpoonfeedClient:
    client = SpoonfeedClient(http)
    email = f"{username}@example.com"
    try:
        await client.sign_up(email, PASSWORD, username=username)
    except DuplicateError:
        await client.sign_in(email, PASSWORD)
    return client


async def main(api_url: str) -> None:
    async with httpx.AsyncClient(base_url=api_url, timeout=10.0) as http:
        await wait_for_api(http)

        # ── Users ──────────────────────────────────────────────────────────
        print("Creating users...")
        clients: dict[str, SpoonfeedClient] = {}
        ids: dict[str, str] = {}
        for username in BASE_USERS:
            client = await sign_up_or_in(http, username)
            me = await client.me()
            clients[username], ids[username] = client, me.id
            print(f"  ✓ {username} ({me.id})")

        # ── Follow graph ───────────────────────────────────────────────────
        print("\nCreating follow relationships...")
        for username, client in clients.items():
            for other in random.sample([u for u in BASE_USERS if u != username], k=3):
                try:
                    await client.follow(ids[other])
                except DuplicateError:
                    pass
        print("  ✓ Follow graph created")

        # ── Restaurants ────────────────────────────────────────────────────
        print("\nResolving restaurants...")
        first = clients[BASE_USERS[0]]
        restaurants = [await first.lookup_restaurant(place) for place in PLACES]
        print(f"  ✓ {len(restaurants)} restaurants")

        # ── Reviews ────────────────────────────────────────────────────────
        print("\nCreating reviews...")
        review_ids: list[str] = []
        for username, client in clients.items():
            for restaurant in random.sample(restaurants, k=4):
                draft = ReviewDraft(restaurant_id=restaurant.id, text=random.choice(SAMPLE_REVIEWS))
                draft.select_rating(random.randint(1, 5))
                draft.select_tag(random.choice(list(ReviewTag)))
                if draft.rating == 5 and random.random() < 0.3:
                    draft.toggle_golden_spoon()
                elif draft.rating == 1 and random.random() < 0.3:
                    draft.toggle_wooden_spoon()
                try:
                    review = await client.submit_review(draft.to_form())
                except ApiError as exc:
                    print(f"  ✗ {username}: {exc}")
                    continue
                review_ids.append(review.id)
        print(f"  ✓ {len(review_ids)} reviews created")

        # ── Likes and comments ─────────────────────────────────────────────
        print("\nAdding likes and comments...")
        likes = comments = 0
        for review_id in review_ids:
            for username in random.sample(BASE_USERS, k=random.randint(0, 4)):
                try:
                    await clients[username].like(review_id)
                    likes += 1
                except DuplicateError:
                    pass
            if random.random() < 0.4:
                commenter = clients[random.choice(BASE_USERS)]
                await commenter.add_comment(review_id, random.choice(SAMPLE_COMMENTS))
                comments += 1
        print(f"  ✓ {likes} likes, {comments} comments")

        # ── Lists and bookmarks ────────────────────────────────────────────
        print("\nCreating lists...")
        list_ids = []
        for username, name in zip(BASE_USERS[:3], ["Date night", "Cheap eats", "Worth the queue"]):
            lst = await clients[username].create_list(name)
            for restaurant in random.sample(restaurants, k=3):
                await clients[username].add_to_list(lst.id, restaurant.id)
            list_ids.append(lst.id)
        for username in BASE_USERS[3:]:
            try:
                await clients[username].favorite_list(random.choice(list_ids))
            except DuplicateError:
                pass
        print(f"  ✓ {len(list_ids)} lists")

        # ── Summary ────────────────────────────────────────────────────────
        print("\n" + "=" * 60)
        print("Seed complete! Try:\n")
        print(f"  curl -s '{api_url}/feed/' | python3 -m json.tool")
        print(f"  curl -s '{api_url}/restaurants/{restaurants[0].id}' | python3 -m json.tool")
        print(f"  curl -s '{api_url}/lists/trending' | python3 -m json.tool")
        print(f"\nEvery seeded user signs in with password '{PASSWORD}'.")
        print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the Spoonfeed API")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    args = parser.parse_args()
    asyncio.run(main(args.api_url))
