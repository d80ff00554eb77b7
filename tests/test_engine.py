"""
Tests for the session state machine (forest/session/engine.py).

Time is driven by a ManualClock so every elapsed-time assertion is exact.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from forest.config import config
from forest.session.engine import FocusSessionEngine, PersistenceError
from forest.session.state import SessionState
from forest.storage.session_store import InMemorySessionStore
from forest.timing.clock import ManualClock


# ── start ────────────────────────────────────────────────────────────────────


class TestStart:
    def test_engine_starts_idle(self, engine):
        assert engine.state is SessionState.IDLE
        assert engine.current is None
        assert engine.remaining_seconds == 1500
        assert engine.stage == 0

    def test_start_creates_active_session(self, engine, wall):
        s = engine.start()
        assert s.state is SessionState.ACTIVE
        assert s.start_time == wall.now
        assert s.end_time is None
        assert s.active_duration == 0.0

    def test_start_persists_record(self, engine, store):
        s = engine.start()
        saved = store.get(s.id)
        assert saved is not None
        assert saved.state is SessionState.ACTIVE

    def test_start_schedules_completion_notification(self, engine, notifier):
        s = engine.start()
        assert notifier.scheduled == {s.id: 1500}

    def test_start_twice_returns_same_session(self, engine, store, notifier):
        first = engine.start()
        second = engine.start()
        assert first.id == second.id
        assert store.count() == 1
        assert len(notifier.scheduled) == 1

    def test_start_while_paused_returns_existing(self, engine):
        first = engine.start()
        engine.pause()
        assert engine.start().id == first.id
        assert engine.state is SessionState.PAUSED

    def test_new_session_after_terminal(self, engine, clock, store):
        first = engine.start()
        engine.abandon()
        second = engine.start()
        assert second.id != first.id
        assert second.state is SessionState.ACTIVE
        assert store.count() == 2


# ── pause / resume ───────────────────────────────────────────────────────────


class TestPauseResume:
    def test_pause_folds_active_time(self, engine, clock):
        engine.start()
        clock.advance(100)
        s = engine.pause()
        assert s.state is SessionState.PAUSED
        assert s.active_duration == pytest.approx(100)

    def test_active_duration_frozen_while_paused(self, engine, clock):
        engine.start()
        clock.advance(100)
        engine.pause()
        clock.advance(500)
        s = engine.tick()
        assert s.active_duration == pytest.approx(100)
        assert engine.remaining_seconds == pytest.approx(1400)

    def test_resume_accumulates_paused_duration(self, engine, clock):
        engine.start()
        clock.advance(100)
        engine.pause()
        clock.advance(40)
        s = engine.resume()
        assert s.state is SessionState.ACTIVE
        assert s.paused_duration == pytest.approx(40)

    def test_paused_time_excluded_from_active(self, engine, clock):
        engine.start()
        clock.advance(300)
        engine.pause()
        clock.advance(600)
        engine.resume()
        clock.advance(200)
        s = engine.tick()
        assert s.active_duration == pytest.approx(500)
        assert engine.remaining_seconds == pytest.approx(1000)

    def test_pause_preserves_remaining_and_stage(self, engine, clock):
        engine.start()
        clock.advance(700)
        engine.tick()
        remaining, stage = engine.remaining_seconds, engine.stage
        engine.pause()
        assert engine.remaining_seconds == pytest.approx(remaining)
        assert engine.stage == stage == 2

    def test_pause_persists(self, engine, store, clock):
        s = engine.start()
        clock.advance(10)
        engine.pause()
        assert store.get(s.id).state is SessionState.PAUSED

    def test_pause_when_idle_is_noop(self, engine, store):
        assert engine.pause() is None
        assert engine.state is SessionState.IDLE
        assert store.count() == 0

    def test_resume_when_active_is_noop(self, engine, clock):
        engine.start()
        clock.advance(50)
        s = engine.resume()
        assert s.state is SessionState.ACTIVE
        assert s.paused_duration == 0.0

    def test_pause_after_exhaustion_completes(self, engine, clock):
        engine.start()
        clock.advance(1600)
        s = engine.pause()
        assert s.state is SessionState.COMPLETED
        assert s.active_duration == 1500

    def test_can_pause_and_can_resume(self, engine):
        assert not engine.can_pause and not engine.can_resume
        engine.start()
        assert engine.can_pause and not engine.can_resume
        engine.pause()
        assert engine.can_resume and not engine.can_pause


# ── abandon ──────────────────────────────────────────────────────────────────


class TestAbandon:
    def test_abandon_from_active(self, engine, clock, wall):
        engine.start()
        clock.advance(400)
        wall.now += timedelta(seconds=400)
        s = engine.abandon()
        assert s.state is SessionState.ABANDONED
        assert s.end_time == wall.now
        assert s.active_duration == pytest.approx(400)

    def test_abandon_from_paused(self, engine, clock):
        engine.start()
        clock.advance(200)
        engine.pause()
        clock.advance(30)
        s = engine.abandon()
        assert s.state is SessionState.ABANDONED
        assert s.active_duration == pytest.approx(200)
        assert s.paused_duration == pytest.approx(30)

    def test_abandon_resets_display(self, engine, clock):
        engine.start()
        clock.advance(900)
        engine.tick()
        assert engine.stage == 3
        engine.abandon()
        assert engine.remaining_seconds == 1500
        assert engine.stage == 0
        assert engine.formatted_remaining == "25:00"

    def test_abandon_cancels_notification(self, engine, notifier):
        s = engine.start()
        engine.abandon()
        assert s.id in notifier.cancelled
        assert notifier.scheduled == {}

    def test_abandon_persists_terminal_record(self, engine, store):
        s = engine.start()
        engine.abandon()
        saved = store.get(s.id)
        assert saved.state is SessionState.ABANDONED
        assert saved.end_time is not None

    def test_abandon_when_idle_is_noop(self, engine, notifier):
        assert engine.abandon() is None
        assert notifier.cancelled == []

    def test_abandon_twice_is_noop(self, engine, wall):
        engine.start()
        first_end = engine.abandon().end_time
        wall.now += timedelta(minutes=5)
        assert engine.abandon().end_time == first_end

    def test_abandoned_duration_frozen(self, engine, clock):
        engine.start()
        clock.advance(100)
        engine.abandon()
        clock.advance(5000)
        s = engine.tick()
        assert s.active_duration == pytest.approx(100)
        assert s.state is SessionState.ABANDONED


# ── tick / completion ────────────────────────────────────────────────────────


class TestTick:
    def test_tick_updates_remaining_and_stage(self, engine, clock):
        engine.start()
        clock.advance(301)
        engine.tick()
        assert engine.remaining_seconds == pytest.approx(1199)
        assert engine.stage == 1
        assert engine.formatted_remaining == "19:59"

    def test_tick_completes_when_exhausted(self, engine, clock, notifier, store):
        s = engine.start()
        clock.advance(1500)
        engine.tick()
        assert s.state is SessionState.COMPLETED
        assert s.active_duration == 1500
        assert s.end_time is not None
        assert engine.remaining_seconds == 0
        assert engine.stage == 5
        assert s.id in notifier.cancelled
        assert store.get(s.id).state is SessionState.COMPLETED

    def test_overshoot_is_clamped(self, engine, clock):
        s = engine.start()
        clock.advance(10_000)
        engine.tick()
        assert s.active_duration == 1500
        assert engine.remaining_seconds == 0

    def test_tick_does_not_write_until_completion(self, engine, clock, store):
        s = engine.start()
        for _ in range(10):
            clock.advance(1)
            engine.tick()
        assert store.get(s.id).active_duration == 0.0

    def test_active_duration_monotonic(self, engine, clock):
        engine.start()
        seen = []
        for _ in range(30):
            clock.advance(60)
            seen.append(engine.tick().active_duration)
        assert seen == sorted(seen)
        assert all(0 <= v <= 1500 for v in seen)

    def test_stage_monotonic_and_full_only_at_completion(self, engine, clock):
        engine.start()
        stages = []
        for _ in range(1500):
            clock.advance(1)
            s = engine.tick()
            stages.append(engine.stage)
            if engine.stage == 5:
                assert s.active_duration == 1500
        assert stages == sorted(stages)
        assert stages[-1] == 5

    def test_clock_regression_counts_as_zero(self, engine, clock):
        engine.start()
        clock.advance(200)
        engine.tick()
        clock.set(clock.now() - 150)
        s = engine.tick()
        assert s.active_duration == pytest.approx(200)
        assert engine.remaining_seconds == pytest.approx(1300)

    def test_tick_when_idle_is_noop(self, engine):
        assert engine.tick() is None


# ── background catch-up ──────────────────────────────────────────────────────


class TestBackgroundSync:
    @pytest.mark.parametrize("n", [0, 1, 59, 600, 1499, 1500])
    def test_ticks_equal_single_sync(self, notifier, wall, n):
        ticking_clock = ManualClock()
        ticking = FocusSessionEngine(InMemorySessionStore(), notifier, clock=ticking_clock, wall_clock=wall)
        ticking.start()
        for _ in range(n):
            ticking_clock.advance(1)
            ticking.tick()

        syncing = FocusSessionEngine(InMemorySessionStore(), notifier, clock=ManualClock(), wall_clock=wall)
        syncing.start()
        syncing.sync_background(n)

        assert syncing.current.active_duration == pytest.approx(ticking.current.active_duration)
        assert syncing.state is ticking.state

    def test_sync_overshoot_completes_immediately(self, engine, clock):
        s = engine.start()
        clock.advance(1000)
        engine.tick()
        engine.sync_background(3600)
        assert s.state is SessionState.COMPLETED
        assert s.active_duration == 1500
        assert engine.remaining_seconds == 0

    def test_suspend_measured_by_clock_not_double_counted(self, engine, clock):
        s = engine.start()
        clock.advance(100)
        engine.note_suspend()
        clock.advance(300)          # the monotonic clock kept running
        engine.sync_background(300)
        assert s.active_duration == pytest.approx(400)

    def test_suspend_partially_measured_by_clock(self, engine, clock):
        s = engine.start()
        engine.note_suspend()
        clock.advance(60)           # clock stopped for most of the gap
        engine.sync_background(500)
        assert s.active_duration == pytest.approx(500)

    def test_sync_while_paused_goes_to_paused_duration(self, engine, clock):
        s = engine.start()
        clock.advance(100)
        engine.pause()
        engine.sync_background(250)
        assert s.state is SessionState.PAUSED
        assert s.active_duration == pytest.approx(100)
        assert s.paused_duration == pytest.approx(250)

    def test_negative_sync_ignored(self, engine, clock):
        s = engine.start()
        clock.advance(10)
        engine.sync_background(-500)
        assert s.active_duration == pytest.approx(10)

    def test_sync_when_terminal_is_noop(self, engine):
        s = engine.start()
        engine.abandon()
        engine.sync_background(5000)
        assert s.state is SessionState.ABANDONED
        assert engine.remaining_seconds == 1500

    def test_suspend_noted_while_idle_bounds_new_session(self, engine, clock):
        engine.note_suspend()
        clock.advance(100)
        s = engine.start()
        clock.advance(50)
        engine.sync_background(150)
        assert s.active_duration == pytest.approx(50)


# ── persistence failures ─────────────────────────────────────────────────────


class TestPersistenceFailure:
    def test_failed_insert_keeps_session(self, engine, store):
        store.failing = True
        with pytest.raises(PersistenceError) as exc:
            engine.start()
        assert exc.value.operation == "insert"
        assert engine.state is SessionState.ACTIVE
        assert engine.pending_writes == 1

    def test_failed_terminal_write_keeps_transition(self, engine, store, clock):
        s = engine.start()
        store.failing = True
        clock.advance(1500)
        with pytest.raises(PersistenceError):
            engine.tick()
        assert s.state is SessionState.COMPLETED
        assert store.get(s.id).state is SessionState.ACTIVE

    def test_flush_retries_pending(self, engine, store, clock):
        s = engine.start()
        store.failing = True
        with pytest.raises(PersistenceError):
            engine.abandon()
        store.failing = False
        assert engine.flush_pending() == 0
        assert store.get(s.id).state is SessionState.ABANDONED

    def test_pending_insert_retried_as_insert(self, engine, store):
        store.failing = True
        with pytest.raises(PersistenceError):
            engine.start()
        with pytest.raises(PersistenceError):
            engine.pause()
        store.failing = False
        engine.flush_pending()
        saved = store.get(engine.current.id)
        assert saved.state is SessionState.PAUSED

    def test_flush_failure_raises_again(self, engine, store):
        store.failing = True
        with pytest.raises(PersistenceError):
            engine.start()
        with pytest.raises(PersistenceError):
            engine.flush_pending()
        assert engine.pending_writes == 1

    def test_flush_attempts_every_queued_write(self, engine, store):
        store.failing = True
        with pytest.raises(PersistenceError):
            engine.start()
        first = engine.current
        with pytest.raises(PersistenceError):
            engine.abandon()
        with pytest.raises(PersistenceError):
            engine.start()
        second = engine.current
        assert engine.pending_writes == 2

        store.failing = False
        store.fail_ids = {first.id}
        with pytest.raises(PersistenceError) as exc:
            engine.flush_pending()
        assert exc.value.session is first
        assert engine.pending_writes == 1
        assert store.get(second.id) is not None
        assert store.get(first.id) is None

    def test_start_retries_queued_completion(self, engine, store, clock):
        s = engine.start()
        clock.advance(1500)
        store.failing = True
        with pytest.raises(PersistenceError):
            engine.tick()
        store.failing = False
        engine.start()
        assert engine.pending_writes == 0
        assert store.get(s.id).state is SessionState.COMPLETED

    def test_notifier_failure_does_not_block_start(self, store, clock, wall):
        class BrokenNotifier:
            def schedule(self, identifier, fire_after_s):
                raise RuntimeError("no permission")

            def cancel(self, identifier):
                raise RuntimeError("no permission")

            def cancel_all(self):
                pass

        eng = FocusSessionEngine(store, BrokenNotifier(), clock=clock, wall_clock=wall)
        s = eng.start()
        assert s.state is SessionState.ACTIVE
        eng.abandon()
        assert s.state is SessionState.ABANDONED


# ── listeners / recovery ─────────────────────────────────────────────────────


class TestListenersAndRecovery:
    def test_listener_sees_every_transition(self, engine, clock):
        seen = []
        engine.register_listener(lambda s, state: seen.append(state))
        engine.start()
        engine.pause()
        engine.resume()
        clock.advance(1500)
        engine.tick()
        assert seen == [
            SessionState.ACTIVE,
            SessionState.PAUSED,
            SessionState.ACTIVE,
            SessionState.COMPLETED,
        ]

    def test_listener_not_called_for_rejected_transition(self, engine):
        seen = []
        engine.register_listener(lambda s, state: seen.append(state))
        engine.pause()
        engine.resume()
        assert seen == []

    def test_failing_listener_is_isolated(self, engine):
        def boom(s, state):
            raise RuntimeError("listener bug")

        engine.register_listener(boom)
        assert engine.start().state is SessionState.ACTIVE

    def test_recover_abandons_stale_sessions(self, store, notifier, clock, wall):
        old = FocusSessionEngine(store, notifier, clock=clock, wall_clock=wall)
        stale = old.start()

        fresh = FocusSessionEngine(store, notifier, clock=clock, wall_clock=wall)
        recovered = fresh.recover(store.query_all())
        assert [s.id for s in recovered] == [stale.id]
        assert store.get(stale.id).state is SessionState.ABANDONED
        assert store.get(stale.id).end_time is not None

    def test_recover_leaves_terminal_sessions(self, engine, store):
        engine.start()
        engine.abandon()
        assert engine.recover(store.query_all()) == []


# ── status snapshot ──────────────────────────────────────────────────────────


def test_status_snapshot(engine, clock):
    engine.start()
    clock.advance(750)
    engine.tick()
    st = engine.status()
    assert st.state is SessionState.ACTIVE
    assert st.progress == pytest.approx(0.5)
    assert st.stage == 2
    assert st.formatted_remaining == "12:30"
    assert st.pending_writes == 0


def test_session_length_defaults_to_config(store, notifier, monkeypatch):
    monkeypatch.setattr(config, "session_length_s", 600)
    engine = FocusSessionEngine(store, notifier, clock=ManualClock())
    assert engine.session_length == 600
    assert engine.remaining_seconds == 600
