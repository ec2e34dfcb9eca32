"""
Tests for core/engine.py - drives the SessionEngine with a fake signal
source and the scheduler's logical clock, so no camera or wall-clock
waiting is involved.
"""

import random
import sys
import unittest
import logging
from dataclasses import replace
from pathlib import Path

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from camera.compliance import PresenceSignal, RectZone
from core.engine import SessionEngine
from core.errors import InputUnavailable, InvalidConfig
from core.penalty import PenaltyBand
from core.scheduler import TaskKind
from core.settings import SessionSettings
from narration.narrator import LogNarrator
from tracking.session import SessionState

logger = logging.getLogger(__name__)


class FakeSource:
    """Signal source double that counts open/close calls."""

    def __init__(self, fail_open: bool = False):
        self.fail_open = fail_open
        self.open_calls = 0
        self.close_calls = 0

    def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise InputUnavailable("No camera detected")

    async def sample(self) -> PresenceSignal:
        return PresenceSignal(compliant=True)

    def close(self) -> None:
        self.close_calls += 1


def make_settings(**overrides) -> SessionSettings:
    """Fast, deterministic defaults: seconds, no grace, one 30s band."""
    settings = SessionSettings(
        min_duration=60,
        max_duration=60,
        duration_unit="seconds",
        bounded=False,
        grace_seconds=0,
        settle_seconds=8,
        penalty_bands=[PenaltyBand(30, 30)],
        zone=RectZone(0.25, 0.25, 0.75, 0.75),
    )
    return replace(settings, **overrides)


def make_engine(seed: int = 7, source: FakeSource = None, **overrides) -> SessionEngine:
    return SessionEngine(
        settings=make_settings(**overrides),
        source=source or FakeSource(),
        narrator=LogNarrator(),
        rng=random.Random(seed),
    )


class TestSessionEngineInit(unittest.TestCase):
    """Test engine initialisation and default state."""

    def test_init_defaults(self):
        """Engine initialises idle with no callbacks."""
        engine = make_engine()
        self.assertEqual(engine.state, SessionState.IDLE)
        self.assertFalse(engine.is_active)
        self.assertEqual(engine.session.violation_count, 0)
        self.assertIsNone(engine.on_display)
        self.assertIsNone(engine.on_state_change)
        self.assertIsNone(engine.on_session_ended)
        self.assertIsNone(engine.on_error)

    def test_get_status_idle(self):
        """get_status() returns correct idle state."""
        status = make_engine().get_status()
        self.assertEqual(status["state"], "idle")
        self.assertEqual(status["remaining_seconds"], 0)
        self.assertTrue(status["compliant"])

    def test_invalid_settings_rejected(self):
        """Attention checks with the motion backend are a configuration error."""
        with self.assertRaises(InvalidConfig):
            make_engine(attention_checks_enabled=True, backend="motion")


class TestStartValidation(unittest.TestCase):
    """Bounds are validated before anything changes."""

    def test_min_greater_than_max(self):
        source = FakeSource()
        engine = make_engine(source=source)
        with self.assertRaises(InvalidConfig):
            engine.start_session(10, 5)
        self.assertEqual(engine.state, SessionState.IDLE)
        self.assertEqual(source.open_calls, 0)
        self.assertEqual(engine.scheduler.pending(), [])

    def test_non_positive_durations(self):
        engine = make_engine()
        for low, high in [(0, 5), (-1, 5), (0, 0), (3, -2)]:
            with self.assertRaises(InvalidConfig):
                engine.start_session(low, high)
        self.assertEqual(engine.state, SessionState.IDLE)

    def test_non_integer_duration(self):
        with self.assertRaises(InvalidConfig):
            make_engine().start_session(1.5, 3)

    def test_invalid_start_keeps_running_session(self):
        """A rejected restart leaves the current session untouched."""
        engine = make_engine()
        engine.start_session()
        epoch = engine.session.epoch
        with self.assertRaises(InvalidConfig):
            engine.start_session(5, 1)
        self.assertEqual(engine.state, SessionState.MONITORING)
        self.assertEqual(engine.session.epoch, epoch)

    def test_sampled_duration_within_range_minutes(self):
        """remaining_seconds lies in [min*60, max*60] for every seed."""
        for seed in range(50):
            engine = make_engine(seed=seed, duration_unit="minutes")
            low = 1 + seed % 3
            high = low + seed % 5
            duration = engine.start_session(low, high)
            self.assertEqual(duration, engine.session.remaining_seconds)
            self.assertGreaterEqual(duration, low * 60)
            self.assertLessEqual(duration, high * 60)
            self.assertEqual(duration % 60, 0)

    def test_sampled_duration_within_range_seconds(self):
        for seed in range(50):
            engine = make_engine(seed=seed)
            duration = engine.start_session(90, 120)
            self.assertTrue(90 <= duration <= 120)

    def test_fixed_length_with_min_only(self):
        engine = make_engine(duration_unit="minutes")
        self.assertEqual(engine.start_session(2), 120)

    def test_max_only_means_one_to_max(self):
        for seed in range(30):
            engine = make_engine(seed=seed, duration_unit="minutes", bounded=True)
            duration = engine.start_session(max_duration=3)
            self.assertTrue(60 <= duration <= 180)
            self.assertEqual(engine.session.bound_seconds, 180)

    def test_explicit_bound_below_max_rejected(self):
        engine = make_engine(bounded=True, bound_seconds=30)
        with self.assertRaises(InvalidConfig):
            engine.start_session(60, 60)


class TestInputUnavailable(unittest.TestCase):
    """A source that fails to open leaves the engine idle."""

    def test_open_failure(self):
        source = FakeSource(fail_open=True)
        engine = make_engine(source=source)
        errors = []
        engine.on_error = lambda t, m: errors.append((t, m))

        with self.assertRaises(InputUnavailable):
            engine.start_session()

        self.assertEqual(engine.state, SessionState.IDLE)
        self.assertEqual(source.close_calls, 1)
        self.assertEqual(engine.scheduler.pending(), [])
        self.assertEqual(engine.narrator.spoken, [])
        self.assertEqual(errors[0][0], "input_unavailable")

        # Nothing fires later either
        engine.scheduler.advance(300)
        self.assertEqual(engine.narrator.spoken, [])

    def test_missing_source(self):
        engine = SessionEngine(settings=make_settings(), narrator=LogNarrator())
        with self.assertRaises(InputUnavailable):
            engine.start_session()
        self.assertEqual(engine.state, SessionState.IDLE)

    def test_unexpected_open_error_wrapped(self):
        source = FakeSource()
        source.open = lambda: 1 / 0
        engine = make_engine(source=source)
        with self.assertRaises(InputUnavailable):
            engine.start_session()
        self.assertEqual(source.close_calls, 1)

    def test_failure_mid_session(self):
        source = FakeSource()
        engine = make_engine(source=source)
        engine.start_session()
        engine.handle_input_failure(InputUnavailable("Camera stopped delivering frames"))
        self.assertEqual(engine.state, SessionState.IDLE)
        self.assertEqual(source.close_calls, 1)

    def test_can_restart_after_failure(self):
        source = FakeSource(fail_open=True)
        engine = make_engine(source=source)
        with self.assertRaises(InputUnavailable):
            engine.start_session()
        source.fail_open = False
        engine.start_session()
        self.assertEqual(engine.state, SessionState.MONITORING)


class TestGraceAndCountdown(unittest.TestCase):
    """Grace countdown and the 1 Hz session timer."""

    def test_grace_then_monitoring(self):
        engine = make_engine(grace_seconds=3)
        engine.start_session()
        self.assertEqual(engine.state, SessionState.GRACE)
        self.assertEqual(engine.narrator.spoken[0], engine.settings.prepare_phrase)

        engine.scheduler.advance(2)
        self.assertEqual(engine.state, SessionState.GRACE)
        self.assertEqual(engine.session.grace_remaining, 1)
        self.assertEqual(engine.session.remaining_seconds, 60)

        engine.scheduler.advance(1)
        self.assertEqual(engine.state, SessionState.MONITORING)
        self.assertEqual(engine.session.remaining_seconds, 60)

    def test_violations_ignored_during_grace(self):
        engine = make_engine(grace_seconds=5)
        engine.start_session()
        engine.handle_compliance(False)
        self.assertEqual(engine.state, SessionState.GRACE)
        self.assertEqual(engine.session.violation_count, 0)

    def test_completes_after_exactly_sixty_ticks(self):
        """start(1, 1) minutes with a compliant subject ends after 60 ticks."""
        source = FakeSource()
        engine = make_engine(source=source, duration_unit="minutes")
        ended = []
        engine.on_session_ended = ended.append
        engine.start_session(1, 1)

        for tick in range(59):
            engine.scheduler.advance(1)
            engine.handle_compliance(True)
        self.assertEqual(engine.state, SessionState.MONITORING)
        self.assertEqual(engine.session.remaining_seconds, 1)

        engine.scheduler.advance(1)
        self.assertEqual(engine.state, SessionState.COMPLETE)
        self.assertEqual(engine.session.violation_count, 0)
        self.assertEqual(engine.session.remaining_seconds, 0)
        self.assertEqual(source.close_calls, 1)
        self.assertEqual(engine.narrator.spoken[-1], engine.settings.completion_phrase)
        self.assertEqual(len(ended), 1)
        self.assertEqual(ended[0]["violations"], 0)

        # Nothing left to fire
        self.assertEqual(engine.scheduler.pending(), [])

    def test_display_each_tick(self):
        engine = make_engine()
        frames = []
        engine.on_display = frames.append
        engine.start_session()
        frames.clear()

        engine.scheduler.advance(3)
        ticks = [f for f in frames if f["state"] == "monitoring"]
        self.assertEqual([f["remaining_seconds"] for f in ticks], [59, 58, 57])
        self.assertTrue(all("compliant" in f for f in ticks))


class TestViolations(unittest.TestCase):
    """Penalties, the settle window and clamping."""

    def test_single_violation_at_tick_ten(self):
        states = []
        engine = make_engine(duration_unit="minutes", penalty_bands=[PenaltyBand(15, 60)])
        engine.on_state_change = lambda old, new: states.append(new)
        engine.start_session(1, 1)

        engine.scheduler.advance(10)
        self.assertEqual(engine.session.remaining_seconds, 50)

        engine.handle_compliance(False)
        self.assertEqual(engine.state, SessionState.PENALIZED)
        self.assertEqual(engine.session.violation_count, 1)
        added = engine.session.remaining_seconds - 50
        self.assertTrue(15 <= added <= 60)
        self.assertIn(f"{added} seconds", engine.narrator.spoken[-1])

        engine.scheduler.advance(8)
        self.assertEqual(engine.state, SessionState.MONITORING)
        self.assertEqual(states[-3:], [SessionState.MONITORING, SessionState.PENALIZED,
                                       SessionState.MONITORING])

    def test_settle_window_ignores_violations_and_pauses_timer(self):
        engine = make_engine()
        engine.start_session()
        engine.handle_compliance(False)
        remaining = engine.session.remaining_seconds
        self.assertEqual(remaining, 90)

        for _ in range(5):
            engine.handle_compliance(False)
            engine.scheduler.advance(1)
        self.assertEqual(engine.session.violation_count, 1)
        self.assertEqual(engine.session.remaining_seconds, remaining)

        engine.scheduler.advance(3)
        self.assertEqual(engine.state, SessionState.MONITORING)
        engine.scheduler.advance(1)
        self.assertEqual(engine.session.remaining_seconds, remaining - 1)

    def test_violation_after_settle_counts_again(self):
        engine = make_engine()
        engine.start_session()
        engine.handle_compliance(False)
        engine.scheduler.advance(8)
        engine.handle_compliance(False)
        self.assertEqual(engine.session.violation_count, 2)
        self.assertEqual(engine.session.remaining_seconds, 120)

    def test_escalating_bands(self):
        engine = make_engine(penalty_bands=[PenaltyBand(10, 10), PenaltyBand(20, 20),
                                            PenaltyBand(30, 30)])
        engine.start_session()
        added = []
        for _ in range(4):
            before = engine.session.remaining_seconds
            engine.handle_compliance(False)
            added.append(engine.session.remaining_seconds - before)
            engine.scheduler.advance(8)
        self.assertEqual(added, [10, 20, 30, 30])
        self.assertEqual(engine.session.violation_count, 4)

    def test_bounded_penalty_clamped(self):
        """bound 120, remaining 115, penalty 30 -> only 5 seconds added."""
        engine = make_engine(bounded=True, bound_seconds=120)
        engine.start_session(115, 115)
        engine.handle_compliance(False)
        self.assertEqual(engine.session.remaining_seconds, 120)
        self.assertEqual(engine.session.violation_count, 1)
        self.assertIn("5 seconds", engine.narrator.spoken[-1])

    def test_at_bound_reminder_only(self):
        """Nothing can be added: reminder, no count, timer keeps running."""
        engine = make_engine(bounded=True)
        engine.start_session()
        self.assertEqual(engine.session.bound_seconds, 60)

        engine.handle_compliance(False)
        self.assertEqual(engine.state, SessionState.MONITORING)
        self.assertEqual(engine.session.violation_count, 0)
        self.assertEqual(engine.session.remaining_seconds, 60)
        self.assertEqual(engine.narrator.spoken[-1], engine.settings.reminder_phrase)

        # Further slips inside the cooldown are ignored
        spoken = len(engine.narrator.spoken)
        engine.handle_compliance(False)
        self.assertEqual(len(engine.narrator.spoken), spoken)

        engine.scheduler.advance(1)
        self.assertEqual(engine.session.remaining_seconds, 59)

    def test_remaining_never_exceeds_bound(self):
        engine = make_engine(seed=3, bounded=True, duration_unit="minutes",
                             penalty_bands=[PenaltyBand(15, 60)])
        engine.start_session(1, 2)
        bound = engine.session.bound_seconds
        for step in range(400):
            if engine.state == SessionState.COMPLETE:
                break
            before = engine.session.remaining_seconds
            state = engine.state
            engine.handle_compliance(step % 7 != 0)
            engine.scheduler.advance(1)
            self.assertLessEqual(engine.session.remaining_seconds, bound)
            if engine.session.remaining_seconds < before:
                # Only a Monitoring tick may lower the countdown
                self.assertEqual(before - engine.session.remaining_seconds, 1)
                self.assertEqual(state, SessionState.MONITORING)

    def test_motion_signal_drives_violation(self):
        engine = make_engine(motion_threshold=5.0)
        engine.start_session()
        self.assertTrue(engine.process_signal(PresenceSignal(magnitude=None)))
        self.assertTrue(engine.process_signal(PresenceSignal(magnitude=2.0)))
        self.assertFalse(engine.process_signal(PresenceSignal(magnitude=40.0)))
        self.assertEqual(engine.state, SessionState.PENALIZED)


class TestStaleTasks(unittest.TestCase):
    """Tasks from an earlier epoch never act on a later state."""

    def test_pending_tasks_belong_to_current_epoch(self):
        engine = make_engine(praise_delay_range=(5.0, 5.0))
        engine.start_session()
        engine.scheduler.advance(2)
        engine.handle_compliance(False)
        epoch = engine.session.epoch
        for task in engine.scheduler.pending():
            self.assertEqual(task.epoch, epoch)
        self.assertEqual([t.kind for t in engine.scheduler.pending()], [TaskKind.COOLDOWN_EXPIRY])

    def test_no_praise_while_penalized(self):
        engine = make_engine(praise_delay_range=(5.0, 5.0), settle_seconds=20)
        engine.start_session()
        engine.scheduler.advance(4)
        engine.handle_compliance(False)
        spoken = list(engine.narrator.spoken)

        engine.scheduler.advance(10)
        self.assertEqual(engine.narrator.spoken, spoken)

    def test_praise_while_monitoring(self):
        engine = make_engine(praise_delay_range=(5.0, 5.0))
        engine.start_session()
        engine.scheduler.advance(5)
        self.assertIn(engine.narrator.spoken[-1], engine.settings.praise_phrases)
        engine.scheduler.advance(5)
        self.assertEqual(
            sum(1 for text in engine.narrator.spoken if text in engine.settings.praise_phrases), 2
        )

    def test_old_epoch_task_is_dropped(self):
        engine = make_engine()
        engine.start_session()
        old_epoch = engine.session.epoch
        fired = []
        engine.scheduler.after(1000, old_epoch, TaskKind.PRAISE, lambda: fired.append(1))
        engine.handle_compliance(False)
        engine.scheduler.advance(2)
        self.assertEqual(fired, [])


class TestStop(unittest.TestCase):
    """Explicit stop and restart."""

    def test_stop_is_idempotent(self):
        source = FakeSource()
        engine = make_engine(source=source)
        engine.start_session()
        engine.handle_compliance(False)

        self.assertTrue(engine.stop_session())
        self.assertEqual(engine.state, SessionState.IDLE)
        self.assertEqual(engine.session.violation_count, 0)
        self.assertEqual(source.close_calls, 1)
        self.assertEqual(engine.scheduler.pending(), [])
        self.assertEqual(engine.last_summary["violations"], 1)

        epoch = engine.session.epoch
        self.assertFalse(engine.stop_session())
        self.assertEqual(source.close_calls, 1)
        self.assertEqual(engine.session.epoch, epoch)

    def test_stop_after_complete_does_not_release_twice(self):
        source = FakeSource()
        engine = make_engine(source=source, min_duration=2, max_duration=2)
        engine.start_session()
        engine.scheduler.advance(2)
        self.assertEqual(engine.state, SessionState.COMPLETE)
        self.assertTrue(engine.stop_session())
        self.assertEqual(engine.state, SessionState.IDLE)
        self.assertEqual(source.close_calls, 1)

    def test_restart_resets_previous_session(self):
        source = FakeSource()
        engine = make_engine(source=source)
        engine.start_session()
        engine.handle_compliance(False)
        engine.start_session()
        self.assertEqual(source.open_calls, 2)
        self.assertEqual(source.close_calls, 1)
        self.assertEqual(engine.session.violation_count, 0)
        self.assertEqual(engine.state, SessionState.MONITORING)

    def test_nothing_fires_after_stop(self):
        engine = make_engine(praise_delay_range=(5.0, 5.0))
        engine.start_session()
        engine.stop_session()
        spoken = list(engine.narrator.spoken)
        engine.scheduler.advance(120)
        self.assertEqual(engine.narrator.spoken, spoken)
        self.assertEqual(engine.session.remaining_seconds, 0)


class TestAttentionChecks(unittest.TestCase):
    """Attention checks with the keypoint backend."""

    def make(self, **overrides) -> SessionEngine:
        options = dict(
            backend="keypoint",
            attention_checks_enabled=True,
            attention_delay_range=(5.0, 5.0),
            attention_timeout_seconds=10,
            praise_delay_range=(500.0, 500.0),
        )
        options.update(overrides)
        return make_engine(**options)

    def test_check_pauses_timer(self):
        engine = self.make()
        engine.start_session()
        engine.scheduler.advance(5)
        self.assertEqual(engine.state, SessionState.ATTENTION_CHECK)
        self.assertIn(engine.narrator.spoken[-1], engine.settings.attention_challenge_phrases)

        x, y = engine.attention_target
        margin = engine.settings.attention_margin
        self.assertTrue(margin <= x <= 1 - margin)
        self.assertTrue(margin <= y <= 1 - margin)

        remaining = engine.session.remaining_seconds
        engine.scheduler.advance(3)
        self.assertEqual(engine.session.remaining_seconds, remaining)

    def test_timeout_records_exactly_one_violation(self):
        engine = self.make()
        engine.start_session()
        engine.scheduler.advance(5)

        for _ in range(3):
            engine.handle_compliance(False)
        self.assertEqual(engine.state, SessionState.ATTENTION_CHECK)
        self.assertEqual(engine.session.violation_count, 0)

        engine.scheduler.advance(10)
        self.assertEqual(engine.state, SessionState.PENALIZED)
        self.assertEqual(engine.session.violation_count, 1)
        self.assertEqual(engine.session.attention_checks_failed, 1)

        for _ in range(5):
            engine.handle_compliance(False)
            engine.scheduler.advance(1)
        self.assertEqual(engine.session.violation_count, 1)

    def test_reaching_target_passes(self):
        engine = self.make()
        engine.start_session()
        engine.scheduler.advance(5)
        x, y = engine.attention_target

        # Camera coordinates are mirrored relative to the self-view
        compliant = engine.process_signal(PresenceSignal(position=(1.0 - x, y), confidence=0.9))
        self.assertTrue(compliant)
        self.assertEqual(engine.state, SessionState.MONITORING)
        self.assertEqual(engine.session.attention_checks_passed, 1)
        self.assertIsNone(engine.attention_target)
        self.assertIn(engine.narrator.spoken[-1], engine.settings.attention_success_phrases)

        # Timeout from the check never fires
        engine.scheduler.advance(10)
        self.assertEqual(engine.session.violation_count, 0)

    def test_low_confidence_at_target_does_not_pass(self):
        engine = self.make()
        engine.start_session()
        engine.scheduler.advance(5)
        x, y = engine.attention_target
        engine.process_signal(PresenceSignal(position=(1.0 - x, y), confidence=0.1))
        self.assertEqual(engine.state, SessionState.ATTENTION_CHECK)

    def test_timeout_at_bound_returns_to_monitoring(self):
        engine = self.make(bounded=True)
        engine.start_session()
        engine.scheduler.advance(5)
        engine.session.remaining_seconds = engine.session.bound_seconds
        engine.scheduler.advance(10)
        self.assertEqual(engine.state, SessionState.MONITORING)
        self.assertEqual(engine.session.violation_count, 0)
        self.assertEqual(engine.session.attention_checks_failed, 1)
        self.assertEqual(engine.session.remaining_seconds, engine.session.bound_seconds)
        self.assertEqual(engine.narrator.spoken[-1], engine.settings.reminder_phrase)


class TestCallbackPattern(unittest.TestCase):
    """Test that callbacks are invoked correctly."""

    def test_error_callback(self):
        """_notify_error calls the callback."""
        engine = make_engine()
        calls = []
        engine.on_error = lambda t, m: calls.append((t, m))
        engine._notify_error("test_error", "Something broke")
        self.assertEqual(calls, [("test_error", "Something broke")])

    def test_callback_exception_swallowed(self):
        """Broken callbacks don't crash the engine."""
        engine = make_engine()
        engine.on_display = lambda status: 1 / 0  # Raises ZeroDivisionError
        engine.on_state_change = lambda old, new: 1 / 0
        engine.start_session()
        engine.scheduler.advance(3)
        self.assertEqual(engine.session.remaining_seconds, 57)

    def test_narrator_exception_swallowed(self):
        engine = make_engine()
        engine.narrator.speak = lambda text: 1 / 0
        engine.start_session()
        engine.handle_compliance(False)
        self.assertEqual(engine.state, SessionState.PENALIZED)


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    unittest.main()
