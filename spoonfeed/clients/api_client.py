"""
Spoonfeed API client.

The client is constructed explicitly around an injected httpx.AsyncClient,
so applications and tests decide the transport (a real base URL, or an
ASGITransport over the app in-process). Nothing here is a module singleton.

HTTP failures are raised as ApiError subclasses; "already exists" responses
(409) become DuplicateError so callers can treat them as friendly no-ops.
"""
import json
import logging
from typing import Any, Optional

import httpx

from spoonfeed.enums import SavedType
from spoonfeed.schemas import (
    CommentResponse,
    CurrentUserResponse,
    FeedPage,
    ListDetail,
    ListSummary,
    PlaceDetails,
    RestaurantDetailResponse,
    RestaurantResponse,
    ReviewResponse,
    SessionResponse,
    ToggleResponse,
    UserProfileResponse,
)

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class DuplicateError(ApiError):
    """The relation or row already exists (HTTP 409)."""


class NotFoundError(ApiError):
    pass


class AuthError(ApiError):
    pass


class ValidationFailed(ApiError):
    pass


def _error_for(status_code: int) -> type[ApiError]:
    if status_code == 409:
        return DuplicateError
    if status_code == 404:
        return NotFoundError
    if status_code in (401, 403):
        return AuthError
    if status_code in (400, 413, 415, 422):
        return ValidationFailed
    return ApiError


class SpoonfeedClient:
    def __init__(self, http: httpx.AsyncClient, access_token: Optional[str] = None) -> None:
        self._http = http
        self.access_token = access_token

    # ── plumbing ───────────────────────────────────────────────────────────

    def _headers(self) -> dict:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        resp = await self._http.request(method, path, headers=self._headers(), **kwargs)
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            detail = body.get("detail") if isinstance(body, dict) else body
            logger.debug("%s %s failed: %s %s", method, path, resp.status_code, detail)
            raise _error_for(resp.status_code)(resp.status_code, detail)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # ── auth ───────────────────────────────────────────────────────────────

    async def sign_up(self, email: str, password: str, username: Optional[str] = None) -> SessionResponse:
        body = {"email": email, "password": password}
        if username:
            body["username"] = username
        session = SessionResponse.model_validate(await self._request("POST", "/auth/sign-up", json=body))
        self.access_token = session.access_token
        return session

    async def sign_in(self, email: str, password: str) -> SessionResponse:
        data = await self._request("POST", "/auth/sign-in", json={"email": email, "password": password})
        session = SessionResponse.model_validate(data)
        self.access_token = session.access_token
        return session

    async def refresh(self, refresh_token: str) -> SessionResponse:
        data = await self._request("POST", "/auth/refresh", json={"refresh_token": refresh_token})
        session = SessionResponse.model_validate(data)
        self.access_token = session.access_token
        return session

    async def sign_out(self, refresh_token: str) -> None:
        await self._request("POST", "/auth/sign-out", json={"refresh_token": refresh_token})
        self.access_token = None

    async def me(self) -> CurrentUserResponse:
        return CurrentUserResponse.model_validate(await self._request("GET", "/auth/me"))

    async def update_profile(self, **fields) -> CurrentUserResponse:
        return CurrentUserResponse.model_validate(await self._request("PATCH", "/auth/me", json=fields))

    # ── users ──────────────────────────────────────────────────────────────

    async def get_profile(self, user_id: str) -> UserProfileResponse:
        return UserProfileResponse.model_validate(await self._request("GET", f"/users/{user_id}"))

    async def search_users(self, q: str) -> list[UserProfileResponse]:
        data = await self._request("GET", "/users/search", params={"q": q})
        return [UserProfileResponse.model_validate(u) for u in data]

    async def follow(self, user_id: str) -> ToggleResponse:
        return ToggleResponse.model_validate(await self._request("PUT", f"/users/{user_id}/follow"))

    async def unfollow(self, user_id: str) -> ToggleResponse:
        return ToggleResponse.model_validate(await self._request("DELETE", f"/users/{user_id}/follow"))

    # ── feed ───────────────────────────────────────────────────────────────

    async def get_feed_page(
        self,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
        following_only: bool = False,
    ) -> FeedPage:
        params: dict = {}
        if cursor:
            params["cursor"] = cursor
        if page_size:
            params["page_size"] = page_size
        if following_only:
            params["following_only"] = "true"
        return FeedPage.model_validate(await self._request("GET", "/feed/", params=params))

    # ── reviews ────────────────────────────────────────────────────────────

    async def submit_review(
        self,
        form: dict,
        media: Optional[list[tuple[str, bytes, str]]] = None,
        audio: Optional[tuple[str, bytes, str]] = None,
    ) -> ReviewResponse:
        """
        `form` is ReviewDraft.to_form(); `media` items and `audio` are
        (filename, bytes, content_type) triples.
        """
        data = {}
        for key, value in form.items():
            if value is None:
                continue
            if key == "place":
                data[key] = json.dumps(value)
            elif isinstance(value, bool):
                data[key] = "true" if value else "false"
            else:
                data[key] = str(value)
        files = [("media", part) for part in (media or [])]
        if audio is not None:
            files.append(("audio", audio))
        resp = await self._request("POST", "/reviews/", data=data, files=files or None)
        return ReviewResponse.model_validate(resp)

    async def get_review(self, review_id: str) -> ReviewResponse:
        return ReviewResponse.model_validate(await self._request("GET", f"/reviews/{review_id}"))

    async def delete_review(self, review_id: str) -> None:
        await self._request("DELETE", f"/reviews/{review_id}")

    async def like(self, review_id: str) -> ToggleResponse:
        return ToggleResponse.model_validate(await self._request("PUT", f"/reviews/{review_id}/like"))

    async def unlike(self, review_id: str) -> ToggleResponse:
        return ToggleResponse.model_validate(await self._request("DELETE", f"/reviews/{review_id}/like"))

    async def list_comments(self, review_id: str) -> list[CommentResponse]:
        data = await self._request("GET", f"/reviews/{review_id}/comments")
        return [CommentResponse.model_validate(c) for c in data]

    async def add_comment(self, review_id: str, content: str) -> CommentResponse:
        data = await self._request("POST", f"/reviews/{review_id}/comments", json={"content": content})
        return CommentResponse.model_validate(data)

    # ── restaurants ────────────────────────────────────────────────────────

    async def lookup_restaurant(self, place: PlaceDetails) -> RestaurantResponse:
        data = await self._request("POST", "/restaurants/lookup", json=place.model_dump())
        return RestaurantResponse.model_validate(data)

    async def get_restaurant(self, restaurant_id: str) -> RestaurantDetailResponse:
        data = await self._request("GET", f"/restaurants/{restaurant_id}")
        return RestaurantDetailResponse.model_validate(data)

    async def save_restaurant(self, restaurant_id: str, saved_type: SavedType) -> ToggleResponse:
        data = await self._request("PUT", f"/restaurants/{restaurant_id}/saved/{saved_type.value}")
        return ToggleResponse.model_validate(data)

    async def unsave_restaurant(self, restaurant_id: str, saved_type: SavedType) -> ToggleResponse:
        data = await self._request("DELETE", f"/restaurants/{restaurant_id}/saved/{saved_type.value}")
        return ToggleResponse.model_validate(data)

    # ── lists ──────────────────────────────────────────────────────────────

    async def create_list(self, name: str, description: Optional[str] = None, is_public: bool = True) -> ListDetail:
        body = {"name": name, "description": description, "is_public": is_public}
        return ListDetail.model_validate(await self._request("POST", "/lists/", json=body))

    async def get_list(self, list_id: str) -> ListDetail:
        return ListDetail.model_validate(await self._request("GET", f"/lists/{list_id}"))

    async def add_to_list(self, list_id: str, restaurant_id: str, note: Optional[str] = None) -> ListDetail:
        body = {"restaurant_id": restaurant_id, "note": note}
        return ListDetail.model_validate(await self._request("POST", f"/lists/{list_id}/restaurants", json=body))

    async def trending_lists(self) -> list[ListSummary]:
        return [ListSummary.model_validate(item) for item in await self._request("GET", "/lists/trending")]

    async def user_lists(self, user_id: str) -> list[ListSummary]:
        return [ListSummary.model_validate(item) for item in await self._request("GET", f"/users/{user_id}/lists")]

    async def favorite_list(self, list_id: str) -> ToggleResponse:
        return ToggleResponse.model_validate(await self._request("PUT", f"/lists/{list_id}/favorite"))

    async def unfavorite_list(self, list_id: str) -> ToggleResponse:
        return ToggleResponse.model_validate(await self._request("DELETE", f"/lists/{list_id}/favorite"))
