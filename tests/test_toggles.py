import asyncio

from spoonfeed.clients.api_client import ApiError, DuplicateError
from spoonfeed.schemas import ToggleResponse
from spoonfeed.sync.toggles import OptimisticToggle, ToggleState


class Remote:
    """Scripted remote: records calls, answers with queued results."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.gate = None

    def mutation(self, name):
        async def call():
            self.calls.append(name)
            if self.gate is not None:
                await self.gate.wait()
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return call


def make_toggle(remote, state, changes=None):
    return OptimisticToggle(
        state,
        activate=remote.mutation("on"),
        deactivate=remote.mutation("off"),
        on_change=changes.append if changes is not None else None,
    )


async def test_success_reconciles_with_server_count():
    remote = Remote(ToggleResponse(active=True, count=12))
    changes = []
    toggle = make_toggle(remote, ToggleState(active=False, count=10), changes)

    result = await toggle.toggle()

    assert result.ok and not result.duplicate
    assert toggle.state == ToggleState(active=True, count=12)
    assert remote.calls == ["on"]
    assert changes == [ToggleState(active=True, count=12)]


async def test_failure_rolls_back_and_reports_prior_state():
    remote = Remote(ApiError(500, "boom"))
    changes = []
    prior = ToggleState(active=True, count=4)
    toggle = make_toggle(remote, prior, changes)

    result = await toggle.toggle()

    assert not result.ok
    assert result.rolled_back_state == prior
    assert toggle.state == prior
    assert isinstance(result.error, ApiError)
    assert changes == []


async def test_optimistic_state_visible_while_in_flight():
    remote = Remote(ToggleResponse(active=True, count=1))
    remote.gate = asyncio.Event()
    toggle = make_toggle(remote, ToggleState(active=False, count=0))

    task = asyncio.create_task(toggle.toggle())
    await asyncio.sleep(0)
    assert toggle.state == ToggleState(active=True, count=1)
    assert toggle.in_flight

    remote.gate.set()
    await task
    assert not toggle.in_flight


async def test_second_toggle_while_in_flight_is_refused():
    remote = Remote(ToggleResponse(active=True, count=1))
    remote.gate = asyncio.Event()
    toggle = make_toggle(remote, ToggleState(active=False, count=0))

    first = asyncio.create_task(toggle.toggle())
    await asyncio.sleep(0)
    second = await toggle.toggle()
    remote.gate.set()
    await first

    assert not second.ok and not second.sent
    assert remote.calls == ["on"]
    assert toggle.state.active


async def test_activating_active_control_sends_nothing():
    remote = Remote()
    toggle = make_toggle(remote, ToggleState(active=True, count=3))

    result = await toggle.set_active(True)

    assert result.ok and result.duplicate and not result.sent
    assert remote.calls == []
    assert toggle.state == ToggleState(active=True, count=3)


async def test_remote_duplicate_keeps_control_active_with_prior_count():
    remote = Remote(DuplicateError(409, "Already following this user"))
    changes = []
    toggle = make_toggle(remote, ToggleState(active=False, count=7), changes)

    result = await toggle.toggle()

    assert result.ok and result.duplicate
    assert toggle.state == ToggleState(active=True, count=7)
    assert changes == [ToggleState(active=True, count=7)]


async def test_deactivate_counter_never_goes_negative():
    remote = Remote(ApiError(503, "down"))
    toggle = make_toggle(remote, ToggleState(active=True, count=0))

    task = asyncio.create_task(toggle.toggle())
    await asyncio.sleep(0)
    await task

    assert toggle.state == ToggleState(active=True, count=0)


async def test_toggle_without_counter():
    remote = Remote(ToggleResponse(active=True, count=None))
    toggle = make_toggle(remote, ToggleState(active=False))

    result = await toggle.toggle()

    assert result.ok
    assert toggle.state == ToggleState(active=True, count=None)
