import pytest
from datetime import datetime, timedelta, timezone

from crash_console.domain.models import BranchCrashState, CrashTimerState
from crash_console.domain.services.crash_timer import (
    CountdownTicker,
    compute_remaining,
    format_remaining,
)

T = datetime(2024, 3, 1, 18, 0, 0, tzinfo=timezone.utc)


def _active(**fields) -> BranchCrashState:
    return BranchCrashState(branch_id="b1", name="Downtown", active=True, **fields)


def test_inactive_branch_is_not_crashing():
    state = BranchCrashState(
        branch_id="b1",
        name="Downtown",
        active=False,
        start_time=T,
        end_time=T + timedelta(minutes=15),
    )
    assert compute_remaining(state, T) == CrashTimerState(remaining_seconds=0, expired=True)


def test_active_branch_without_times_is_not_crashing():
    assert compute_remaining(_active(), T) == CrashTimerState(0, True)


@pytest.mark.parametrize("overshoot", [0, 1, 59, 3600, 86400 * 30])
def test_expired_for_any_now_at_or_after_end(overshoot):
    state = _active(start_time=T - timedelta(minutes=15), end_time=T)
    timer = compute_remaining(state, T + timedelta(seconds=overshoot))
    assert timer.expired is True
    assert timer.remaining_seconds == 0


def test_end_time_derived_from_start_and_duration():
    state = _active(start_time=T, duration_minutes=15)
    now = T + timedelta(minutes=14, seconds=30)

    first = compute_remaining(state, now)
    second = compute_remaining(state, now)

    assert state.effective_end_time == T + timedelta(minutes=15)
    assert first == second == CrashTimerState(remaining_seconds=30, expired=False)


def test_explicit_end_time_wins_over_duration():
    state = _active(start_time=T, end_time=T + timedelta(minutes=5), duration_minutes=60)
    assert compute_remaining(state, T).remaining_seconds == 300


def test_partial_seconds_round_up():
    state = _active(start_time=T, end_time=T + timedelta(seconds=10))
    timer = compute_remaining(state, T + timedelta(seconds=9, milliseconds=400))
    assert timer == CrashTimerState(remaining_seconds=1, expired=False)


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "00:00"), (5, "00:05"), (65, "01:05"), (900, "15:00"), (3661, "1:01:01"), (-3, "00:00")],
)
def test_format_remaining(seconds, expected):
    assert format_remaining(seconds) == expected


@pytest.mark.asyncio
async def test_ticker_recomputes_from_end_time_on_every_tick(scheduler, clock):
    seen = []
    state = _active(start_time=clock.now, end_time=clock.now + timedelta(seconds=90))
    ticker = CountdownTicker(state, scheduler, clock=clock, on_tick=seen.append)

    assert ticker.start().remaining_seconds == 90
    assert [job.name for job in scheduler.active()] == ["crash-countdown:b1"]
    assert scheduler.active()[0].interval_seconds == 1.0

    # Ticks that were missed do not accumulate drift
    clock.advance(30)
    await scheduler.tick("crash-countdown")

    assert seen == [CrashTimerState(remaining_seconds=60, expired=False)]
    assert ticker.timer.remaining_seconds == 60


@pytest.mark.asyncio
async def test_ticker_fires_expiry_on_transition_then_every_recheck(scheduler, clock):
    expired = []
    state = _active(start_time=clock.now, end_time=clock.now + timedelta(seconds=2))
    ticker = CountdownTicker(
        state, scheduler, clock=clock, on_expired=expired.append, recheck_every=5
    )
    ticker.start()

    clock.advance(1)
    await scheduler.tick("crash-countdown")
    assert expired == []

    clock.advance(1)
    await scheduler.tick("crash-countdown")
    assert expired == [state]

    await scheduler.tick("crash-countdown", times=4)
    assert len(expired) == 1

    await scheduler.tick("crash-countdown")
    assert len(expired) == 2


@pytest.mark.asyncio
async def test_ticker_update_with_new_end_time_resets_expiry(scheduler, clock):
    expired = []
    state = _active(start_time=clock.now, end_time=clock.now)
    ticker = CountdownTicker(
        state, scheduler, clock=clock, on_expired=expired.append, recheck_every=5
    )
    ticker.start()
    await scheduler.tick("crash-countdown")
    assert len(expired) == 1

    ticker.update_state(_active(start_time=clock.now, end_time=clock.now + timedelta(seconds=1)))
    assert ticker.timer == CrashTimerState(remaining_seconds=1, expired=False)

    clock.advance(1)
    await scheduler.tick("crash-countdown")
    assert len(expired) == 2


def test_ticker_stop_cancels_the_recurring_job(scheduler, clock):
    ticker = CountdownTicker(_active(start_time=clock.now), scheduler, clock=clock)
    ticker.start()
    assert ticker.running

    ticker.stop()

    assert not ticker.running
    assert scheduler.active() == []
