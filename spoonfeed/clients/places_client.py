"""
Google Places / Geocoding client.

Discovery is two calls:
  1. Geocoding API   GET  /maps/api/geocode/json?address=...
     → the centre point of a free-text location ("Shoreditch, London")
  2. Places API (V1) POST /v1/places:searchText
     → restaurants matching a keyword, biased to a circle around that point

Photos are stored as resource names and downloaded through the API with the
server key (GET /v1/{name}/media), so the key never reaches a client.

The V1 endpoint needs a field mask header; we only ask for what the
restaurants table stores.
"""
import logging
from typing import Optional

import httpx

from spoonfeed.config import settings
from spoonfeed.schemas import PlaceDetails

logger = logging.getLogger(__name__)

FIELD_MASK = (
    "places.id,places.displayName,places.formattedAddress,"
    "places.location,places.primaryType,places.photos"
)


class PlacesUnavailable(Exception):
    """No API key configured, or the upstream API failed."""


class PlacesClient:
    def __init__(self, api_key: Optional[str] = None) -> None:
        self.api_key = settings.google_maps_api_key if api_key is None else api_key
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def start(self) -> None:
        self._http = httpx.AsyncClient(timeout=5.0)

    async def stop(self) -> None:
        if self._http:
            await self._http.aclose()

    def _client(self) -> httpx.AsyncClient:
        if not self.enabled:
            raise PlacesUnavailable("GOOGLE_MAPS_API_KEY not set")
        if self._http is None:
            raise RuntimeError("Places client not started — call start() at startup")
        return self._http

    async def geocode(self, location: str) -> Optional[tuple[float, float]]:
        """Return (lat, lng) for a free-text location, or None if nothing matched."""
        http = self._client()
        try:
            resp = await http.get(
                f"{settings.geocode_base_url}/maps/api/geocode/json",
                params={"address": location, "key": self.api_key},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Geocoding failed for %r: %s", location, exc)
            raise PlacesUnavailable(str(exc)) from exc

        results = resp.json().get("results") or []
        if not results:
            return None
        loc = results[0]["geometry"]["location"]
        return loc["lat"], loc["lng"]

    async def search_text(
        self,
        query: str,
        latitude: float,
        longitude: float,
        cuisine: Optional[str] = None,
    ) -> list[PlaceDetails]:
        """Restaurants matching `query` near (latitude, longitude)."""
        http = self._client()
        body = {
            "textQuery": " ".join(p for p in (query, cuisine, "restaurant") if p),
            "includedType": "restaurant",
            "maxResultCount": settings.places_max_results,
            "locationBias": {
                "circle": {
                    "center": {"latitude": latitude, "longitude": longitude},
                    "radius": settings.places_search_radius_m,
                }
            },
        }
        try:
            resp = await http.post(
                f"{settings.places_base_url}/v1/places:searchText",
                json=body,
                headers={"X-Goog-Api-Key": self.api_key, "X-Goog-FieldMask": FIELD_MASK},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Places search failed for %r: %s", query, exc)
            raise PlacesUnavailable(str(exc)) from exc

        return [self._to_details(p, cuisine) for p in resp.json().get("places") or []]

    async def fetch_photo(self, name: str) -> tuple[bytes, str]:
        """Download one place photo by resource name; returns (content, content type)."""
        http = self._client()
        try:
            resp = await http.get(
                f"{settings.places_base_url}/v1/{name}/media",
                params={
                    "maxHeightPx": settings.places_photo_max_px,
                    "maxWidthPx": settings.places_photo_max_px,
                },
                headers={"X-Goog-Api-Key": self.api_key},
                follow_redirects=True,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Photo fetch failed for %s: %s", name, exc)
            raise PlacesUnavailable(str(exc)) from exc
        return resp.content, resp.headers.get("content-type", "image/jpeg")

    def _to_details(self, place: dict, cuisine: Optional[str]) -> PlaceDetails:
        location = place.get("location") or {}
        # Resource names only; the keyed media URL is built in fetch_photo
        photos = [photo["name"] for photo in (place.get("photos") or [])[:5] if photo.get("name")]
        return PlaceDetails(
            google_place_id=place["id"],
            name=(place.get("displayName") or {}).get("text") or "Unnamed",
            address=place.get("formattedAddress") or "",
            cuisine_type=cuisine,
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
            photos=photos,
        )


# Singleton
places_client = PlacesClient()


def get_places_client() -> PlacesClient:
    """FastAPI dependency returning the process-wide places client."""
    return places_client
