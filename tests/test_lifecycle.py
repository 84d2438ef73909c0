import asyncio

import pytest

from quotedesk.lifecycle import (
    CancellationToken,
    FetchCancelled,
    FetchOutcome,
    FetchState,
    LifecycleScope,
    LifecycleState,
)


def _delayed_loader(delays: dict[str, float], calls: list[str] | None = None):
    async def loader(key: str, token: CancellationToken) -> dict:
        if calls is not None:
            calls.append(key)
        await asyncio.sleep(delays[key])
        return {"id": key}

    return loader


def _stubborn_loader(delays: dict[str, float]):
    """Loader that keeps going after being cancelled."""

    async def loader(key: str, token: CancellationToken) -> dict:
        try:
            await asyncio.sleep(delays[key])
        except asyncio.CancelledError:
            await asyncio.sleep(delays[key])
        return {"id": key}

    return loader


def test_token_cancel_is_idempotent_and_runs_callbacks_once() -> None:
    token = CancellationToken()
    seen: list[str] = []
    token.add_callback(lambda: seen.append("first"))

    token.cancel()
    token.cancel()
    token.add_callback(lambda: seen.append("late"))

    assert token.cancelled
    assert seen == ["first", "late"]
    with pytest.raises(FetchCancelled):
        token.raise_if_cancelled()


def test_scope_state_transitions() -> None:
    scope = LifecycleScope()
    assert scope.state is LifecycleState.PENDING
    scope.activate()
    assert scope.active
    scope.dispose()
    scope.dispose()
    assert scope.state is LifecycleState.DISPOSED
    with pytest.raises(RuntimeError):
        scope.activate()


@pytest.mark.asyncio
async def test_only_latest_fetch_is_applied() -> None:
    async with LifecycleScope() as scope:
        op = scope.operation(_delayed_loader({"1": 0.05, "2": 0.05}))

        first = asyncio.create_task(op.fetch("1"))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(op.fetch("2"))

        outcomes = await asyncio.gather(first, second)

        assert outcomes == [FetchOutcome.CANCELLED, FetchOutcome.APPLIED]
        assert op.data == {"id": "2"}
        assert op.key == "2"
        assert op.is_loading is False
        assert op.state is FetchState.IDLE


@pytest.mark.asyncio
async def test_stale_result_arriving_last_is_dropped() -> None:
    async with LifecycleScope() as scope:
        applied: list[dict] = []
        op = scope.operation(_stubborn_loader({"A": 0.05, "B": 0.01}), on_result=applied.append)

        first = asyncio.create_task(op.fetch("A"))
        await asyncio.sleep(0)
        second = asyncio.create_task(op.fetch("B"))

        assert await second is FetchOutcome.APPLIED
        assert await first is FetchOutcome.CANCELLED
        assert op.data == {"id": "B"}
        assert applied == [{"id": "B"}]


@pytest.mark.asyncio
async def test_loading_flag_tracks_latest_fetch() -> None:
    async with LifecycleScope() as scope:
        op = scope.operation(_delayed_loader({"1": 0.02, "2": 0.05}))

        first = asyncio.create_task(op.fetch("1"))
        await asyncio.sleep(0)
        assert op.is_loading is True
        assert op.state is FetchState.FETCHING

        second = asyncio.create_task(op.fetch("2"))
        await first
        # The superseded fetch must not clear the newer fetch's flag
        assert op.is_loading is True

        await second
        assert op.is_loading is False


@pytest.mark.asyncio
async def test_dispose_before_resolution_leaves_no_state() -> None:
    scope = LifecycleScope()
    scope.activate()
    op = scope.operation(_stubborn_loader({"1": 0.03}))

    pending = asyncio.create_task(op.fetch("1"))
    await asyncio.sleep(0.01)
    scope.dispose()

    assert await pending is FetchOutcome.CANCELLED
    assert op.data is None
    assert op.key is None
    assert op.is_loading is False


@pytest.mark.asyncio
async def test_close_resets_state() -> None:
    async with LifecycleScope() as scope:
        op = scope.operation(_delayed_loader({"1": 0}))
        assert await op.fetch("1") is FetchOutcome.APPLIED

        op.close()

        assert op.data is None
        assert op.key is None
        assert op.error is None


@pytest.mark.asyncio
async def test_fetch_on_inactive_scope_does_nothing() -> None:
    calls: list[str] = []
    scope = LifecycleScope()
    op = scope.operation(_delayed_loader({"1": 0}, calls))

    assert await op.fetch("1") is FetchOutcome.DISCARDED
    assert calls == []
    assert op.is_loading is False


@pytest.mark.asyncio
async def test_failure_is_reported_not_raised() -> None:
    reported: list[tuple[str, str]] = []

    async def failing(key: str, token: CancellationToken) -> dict:
        raise RuntimeError("boom")

    async with LifecycleScope() as scope:
        op = scope.operation(failing, notify=lambda title, desc: reported.append((title, desc)), name="lead")

        assert await op.fetch("1") is FetchOutcome.ERRORED

        assert isinstance(op.error, RuntimeError)
        assert op.data is None
        assert op.is_loading is False
        assert reported == [("Failed to load lead", "boom")]


@pytest.mark.asyncio
async def test_failure_after_cancellation_is_silent() -> None:
    reported: list[tuple[str, str]] = []

    async def failing_late(key: str, token: CancellationToken) -> dict:
        try:
            await asyncio.sleep(0.05)
        except asyncio.CancelledError:
            raise RuntimeError("connection reset")
        return {}

    async with LifecycleScope() as scope:
        op = scope.operation(failing_late, notify=lambda title, desc: reported.append((title, desc)))
        pending = asyncio.create_task(op.fetch("1"))
        await asyncio.sleep(0.01)
        op.cancel()

        assert await pending is FetchOutcome.CANCELLED
        assert reported == []
        assert op.error is None
        assert op.is_loading is False


@pytest.mark.asyncio
async def test_caller_cancellation_propagates() -> None:
    async with LifecycleScope() as scope:
        op = scope.operation(_delayed_loader({"1": 1.0}))
        pending = asyncio.create_task(op.fetch("1"))
        await asyncio.sleep(0.01)

        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        assert op.is_loading is False


@pytest.mark.asyncio
async def test_result_handler_failure_is_reported_not_raised() -> None:
    reported: list[tuple[str, str]] = []

    async def loader(key: str, token: CancellationToken) -> dict:
        return {"id": key}

    def render(result: dict) -> None:
        raise ValueError("render failed")

    async with LifecycleScope() as scope:
        op = scope.operation(
            loader,
            on_result=render,
            notify=lambda title, desc: reported.append((title, desc)),
            name="lead",
        )

        assert await op.fetch("1") is FetchOutcome.ERRORED

        assert isinstance(op.error, ValueError)
        assert op.is_loading is False
        assert op.state is FetchState.IDLE
        assert reported == [("Failed to load lead", "render failed")]
