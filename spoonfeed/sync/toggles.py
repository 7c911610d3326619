"""
Optimistic two-way toggles (follow, list bookmark, review like).

A toggle flips its local state and counter immediately, fires exactly one
remote mutation, then either reconciles with the count the server returned
or restores the state it had before the flip. Results are returned as a
MutationResult rather than raised, so the caller decides how to surface a
rollback.
"""
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from spoonfeed.clients.api_client import DuplicateError, SpoonfeedClient
from spoonfeed.schemas import ToggleResponse

logger = logging.getLogger(__name__)

Mutation = Callable[[], Awaitable[ToggleResponse]]


@dataclass(frozen=True)
class ToggleState:
    active: bool
    count: Optional[int] = None


@dataclass(frozen=True)
class MutationResult:
    ok: bool
    state: ToggleState
    rolled_back_state: Optional[ToggleState] = None
    error: Optional[Exception] = None
    duplicate: bool = False
    # False when the toggle refused to act (already in flight / already there)
    sent: bool = True


class OptimisticToggle:
    def __init__(
        self,
        state: ToggleState,
        activate: Mutation,
        deactivate: Mutation,
        on_change: Optional[Callable[[ToggleState], None]] = None,
    ) -> None:
        self.state = state
        self._activate = activate
        self._deactivate = deactivate
        self._on_change = on_change
        self.in_flight = False

    async def toggle(self) -> MutationResult:
        return await self.set_active(not self.state.active)

    async def set_active(self, active: bool) -> MutationResult:
        if self.in_flight:
            return MutationResult(ok=False, state=self.state, sent=False)
        if self.state.active == active:
            # Already there; inserting again would only produce a duplicate row
            return MutationResult(ok=True, state=self.state, duplicate=active, sent=False)

        prior = self.state
        self.state = ToggleState(active=active, count=_shift(prior.count, 1 if active else -1))
        self.in_flight = True
        try:
            response = await (self._activate() if active else self._deactivate())
        except DuplicateError as exc:
            # The relation existed server-side already; being active is the goal
            self.state = replace(prior, active=True)
            self._notify()
            return MutationResult(ok=True, state=self.state, error=exc, duplicate=True)
        except Exception as exc:
            logger.warning("Toggle mutation failed, rolling back: %s", exc)
            self.state = prior
            return MutationResult(ok=False, state=prior, rolled_back_state=prior, error=exc)
        finally:
            self.in_flight = False

        count = response.count if response.count is not None else self.state.count
        self.state = ToggleState(active=response.active, count=count)
        self._notify()
        return MutationResult(ok=True, state=self.state)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)


def _shift(count: Optional[int], delta: int) -> Optional[int]:
    if count is None:
        return None
    return max(count + delta, 0)


def follow_toggle(client: SpoonfeedClient, user_id: str, state: ToggleState, on_change=None) -> OptimisticToggle:
    return OptimisticToggle(
        state,
        activate=lambda: client.follow(user_id),
        deactivate=lambda: client.unfollow(user_id),
        on_change=on_change,
    )


def bookmark_toggle(client: SpoonfeedClient, list_id: str, state: ToggleState, on_change=None) -> OptimisticToggle:
    return OptimisticToggle(
        state,
        activate=lambda: client.favorite_list(list_id),
        deactivate=lambda: client.unfavorite_list(list_id),
        on_change=on_change,
    )


def like_toggle(client: SpoonfeedClient, review_id: str, state: ToggleState, on_change=None) -> OptimisticToggle:
    return OptimisticToggle(
        state,
        activate=lambda: client.like(review_id),
        deactivate=lambda: client.unlike(review_id),
        on_change=on_change,
    )
