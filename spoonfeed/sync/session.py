"""
Client-side auth session: who is signed in, with which tokens, and who wants
to hear about it when that changes.
"""
import logging
from typing import Callable, Optional

from spoonfeed.clients.api_client import SpoonfeedClient
from spoonfeed.enums import AuthEvent
from spoonfeed.schemas import CurrentUserResponse, SessionResponse

logger = logging.getLogger(__name__)

Listener = Callable[[AuthEvent, Optional[CurrentUserResponse]], None]


class AuthSession:
    def __init__(self, client: SpoonfeedClient) -> None:
        self.client = client
        self.user: Optional[CurrentUserResponse] = None
        self.refresh_token: Optional[str] = None
        self._listeners: list[Listener] = []

    @property
    def signed_in(self) -> bool:
        return self.user is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; call the returned function to unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: AuthEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self.user)
            except Exception:
                logger.exception("Auth listener failed on %s", event.value)

    def _adopt(self, session: SessionResponse, event: AuthEvent) -> CurrentUserResponse:
        self.user = session.user
        self.refresh_token = session.refresh_token
        self._emit(event)
        return session.user

    async def sign_up(self, email: str, password: str, username: Optional[str] = None) -> CurrentUserResponse:
        return self._adopt(await self.client.sign_up(email, password, username), AuthEvent.SIGNED_IN)

    async def sign_in(self, email: str, password: str) -> CurrentUserResponse:
        return self._adopt(await self.client.sign_in(email, password), AuthEvent.SIGNED_IN)

    async def refresh(self) -> CurrentUserResponse:
        if self.refresh_token is None:
            raise RuntimeError("No session to refresh")
        return self._adopt(await self.client.refresh(self.refresh_token), AuthEvent.TOKEN_REFRESHED)

    async def update_profile(self, **fields) -> CurrentUserResponse:
        self.user = await self.client.update_profile(**fields)
        self._emit(AuthEvent.USER_UPDATED)
        return self.user

    async def sign_out(self) -> None:
        token, self.refresh_token = self.refresh_token, None
        try:
            if token is not None:
                await self.client.sign_out(token)
        finally:
            # Local state is cleared even if revoking the token failed
            self.user = None
            self.client.access_token = None
            self._emit(AuthEvent.SIGNED_OUT)
