"""
SessionEngine: the state machine behind a monitored countdown session.

The engine owns the Session, the Scheduler and the signal source handle.
It consumes one boolean per sample (via process_signal / handle_compliance),
runs a 1 Hz countdown, fires randomized praise and attention checks, and
extends the countdown when the subject breaks compliance.

Every transition bumps the session epoch and cancels the outgoing epoch's
tasks before the new state schedules anything, so a callback captured under
an old state can never act on a newer one.

This module has no UI or camera dependencies. Front ends call the public
methods and receive updates via callbacks:

    on_display(status: dict)                   every tick and transition
    on_state_change(old: SessionState, new: SessionState)
    on_session_ended(summary: dict)
    on_error(error_type: str, message: str)
"""

import logging
import random
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from camera.compliance import CircleZone, ComplianceEvaluator, PresenceSignal, Zone
from core.errors import InputUnavailable, InvalidConfig
from core.penalty import clamp_penalty, compute_penalty
from core.scheduler import Scheduler, TaskKind
from core.settings import SessionSettings
from narration.narrator import LogNarrator, NarratorProtocol, pick_phrase
from tracking.analytics import format_clock, summarise_session
from tracking.session import Session, SessionState

logger = logging.getLogger(__name__)

TICK_SECONDS = 1


class SessionEngine:
    """
    Session controller.

    Handles:
    - Session lifecycle (start, stop, completion)
    - Grace countdown and the 1 Hz session timer
    - Violations, penalties and the settle window
    - Random praise and attention checks
    - Exclusive ownership of the signal source handle

    The engine does NOT run its own loop. A driver (core.runner.SessionRunner
    or a test) feeds samples in and advances self.scheduler.
    """

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def __init__(
        self,
        settings: Optional[SessionSettings] = None,
        source=None,
        narrator: Optional[NarratorProtocol] = None,
        evaluator: Optional[ComplianceEvaluator] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Args:
            settings: Session settings (default: SessionSettings.from_config()).
            source: Signal source with open()/sample()/close(); required to start.
            narrator: Phrase sink (default: LogNarrator).
            evaluator: Compliance evaluator (default: built from settings).
            rng: Random source for durations, penalties, phrases and delays.
        """
        self.settings = settings or SessionSettings.from_config()
        self.settings.validate()

        self.source = source
        self.narrator = narrator if narrator is not None else LogNarrator()
        self.evaluator = evaluator or ComplianceEvaluator(
            mode=self.settings.backend,
            motion_threshold=self.settings.motion_threshold,
            compliant_when_still=self.settings.compliant_when_still,
            min_confidence=self.settings.min_confidence,
        )
        self.rng = rng or random.Random()

        self.session = Session(zone=self.settings.zone)
        self.scheduler = Scheduler(epoch_source=lambda: self.session.epoch)

        self.last_compliant: bool = True
        self.attention_target: Optional[Tuple[float, float]] = None
        self.last_summary: Optional[Dict] = None
        self._reminder_cooldown: bool = False
        self._source_open: bool = False

        if self.settings.attention_checks_enabled and not self.evaluator.supports_targets:
            logger.warning("Attention checks disabled: evaluator cannot judge point targets")

        # ---- Callbacks (set by the front end) ----
        self.on_display: Optional[Callable[[Dict], None]] = None
        self.on_state_change: Optional[Callable[[SessionState, SessionState], None]] = None
        self.on_session_ended: Optional[Callable[[Dict], None]] = None
        self.on_error: Optional[Callable[[str, str], None]] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def is_active(self) -> bool:
        return self.session.is_active

    @property
    def attention_checks_active(self) -> bool:
        return self.settings.attention_checks_enabled and self.evaluator.supports_targets

    @property
    def active_zone(self) -> Zone:
        """Zone samples are judged against: the target during an attention check."""
        if self.session.state == SessionState.ATTENTION_CHECK and self.attention_target:
            x, y = self.attention_target
            return CircleZone(x, y, self.settings.attention_tolerance)
        return self.session.zone

    def start_session(self, min_duration: Optional[int] = None,
                      max_duration: Optional[int] = None) -> int:
        """
        Start a new session.

        With no arguments the configured range is used. A single
        min_duration is a fixed length; a single max_duration means
        "anything from 1 up to max". Values are in settings.duration_unit.

        A start request while a session exists resets that session first.

        Returns:
            The sampled session length in seconds.

        Raises:
            InvalidConfig: Bounds are non-positive or inverted. Nothing changes.
            InputUnavailable: The signal source failed to open. The session
                is left Idle and nothing is scheduled.
        """
        low, high = self._resolve_bounds(min_duration, max_duration)
        unit = self.settings.unit_seconds

        bound = None
        if self.settings.bounded:
            bound = self.settings.bound_seconds or high * unit
            if bound < high * unit:
                raise InvalidConfig(
                    f"Bound of {bound}s is shorter than the maximum duration of {high * unit}s"
                )

        if self.session.state != SessionState.IDLE:
            logger.info("Start requested while a session exists, resetting it first")
            self.stop_session()

        self._open_source()

        duration = self.rng.randint(low, high) * unit
        self.session.begin(duration, bound, self.settings.grace_seconds)
        self.last_compliant = True
        self.attention_target = None
        self._reminder_cooldown = False
        self.last_summary = None

        self._transition(SessionState.GRACE)
        logger.info(
            f"Session started: {format_clock(duration)} "
            f"(range {low}-{high} {self.settings.duration_unit}, bound {bound})"
        )
        self._narrate(self.settings.prepare_phrase)

        if self.settings.grace_seconds > 0:
            self._schedule(TICK_SECONDS, TaskKind.TIMER_TICK, self._on_grace_tick)
            self._emit_display()
        else:
            self._enter_monitoring()
        return duration

    def stop_session(self) -> bool:
        """
        Stop the session and return to Idle.

        Calling it again (or while Idle) is a no-op.

        Returns:
            True if something was stopped.
        """
        if self.session.state == SessionState.IDLE:
            return False

        was_active = self.session.is_active
        if was_active:
            self.session.end_time = datetime.now()
            self.last_summary = summarise_session(self.session)

        self._transition(SessionState.IDLE)
        self.scheduler.clear()
        self.session.reset()
        self.last_compliant = True
        self.attention_target = None
        self._reminder_cooldown = False
        self._release_source()

        logger.info("Session stopped")
        self._emit_display()
        if was_active:
            self._notify_session_ended()
        return True

    def process_signal(self, signal: PresenceSignal) -> bool:
        """
        Evaluate one sample against the active zone and act on it.

        Returns:
            The compliance flag the sample produced.
        """
        compliant = self.evaluator.evaluate(signal, self.active_zone)
        self.handle_compliance(compliant)
        return compliant

    def handle_compliance(self, compliant: bool) -> None:
        """
        Act on one evaluated sample.

        Non-compliance while Monitoring is a violation. A compliant sample
        during an attention check passes it. Samples in any other state
        (grace, settle window, idle, complete) are ignored.
        """
        self.last_compliant = compliant
        state = self.session.state

        if state == SessionState.MONITORING:
            if not compliant and not self._reminder_cooldown:
                self._register_violation("left the zone")
        elif state == SessionState.ATTENTION_CHECK:
            if compliant:
                self._pass_attention_check()

    def handle_input_failure(self, error: Exception) -> None:
        """Abort the session after the signal source stopped producing samples."""
        logger.error(f"Signal source failed mid-session: {error}")
        self._notify_error("input_unavailable", str(error))
        self.stop_session()

    def get_status(self) -> Dict:
        """
        Current display state.

        Returns:
            dict with keys: state, remaining_seconds, compliant,
            grace_remaining, violations, attention_target.
        """
        return {
            "state": self.session.state.value,
            "remaining_seconds": self.session.remaining_seconds,
            "compliant": self.last_compliant,
            "grace_remaining": self.session.grace_remaining,
            "violations": self.session.violation_count,
            "attention_target": self.attention_target,
        }

    # ------------------------------------------------------------------
    # Start helpers
    # ------------------------------------------------------------------

    def _resolve_bounds(self, min_duration: Optional[int],
                        max_duration: Optional[int]) -> Tuple[int, int]:
        if min_duration is None and max_duration is None:
            low, high = self.settings.min_duration, self.settings.max_duration
        elif max_duration is None:
            low = high = min_duration
        elif min_duration is None:
            low, high = 1, max_duration
        else:
            low, high = min_duration, max_duration

        for value in (low, high):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfig(f"Durations must be whole numbers, got {value!r}")
        if low <= 0 or high <= 0:
            raise InvalidConfig(f"Durations must be positive, got {low}-{high}")
        if low > high:
            raise InvalidConfig(f"Minimum duration {low} exceeds maximum {high}")
        return low, high

    def _open_source(self) -> None:
        if self.source is None:
            raise InputUnavailable("No signal source configured")

        try:
            self.source.open()
        except InputUnavailable as e:
            self._abandon_source(e)
            raise
        except Exception as e:
            error = InputUnavailable(f"Signal source failed to open: {e}")
            self._abandon_source(error)
            raise error from e

        self._source_open = True

    def _abandon_source(self, error: InputUnavailable) -> None:
        """Release a source whose open() failed part-way."""
        logger.error(f"Signal source unavailable: {error}")
        try:
            self.source.close()
        except Exception as e:
            logger.debug(f"Closing failed source raised: {e}")
        self._notify_error("input_unavailable", str(error))

    def _release_source(self) -> None:
        if not self._source_open:
            return
        self._source_open = False
        try:
            self.source.close()
            logger.info("Signal source released")
        except Exception as e:
            logger.warning(f"Error releasing signal source: {e}")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, new_state: SessionState) -> None:
        old_state = self.session.state
        self.scheduler.cancel_all(self.session.epoch)
        self.session.advance_epoch(new_state)
        logger.info(f"State {old_state.value} -> {new_state.value} (epoch {self.session.epoch})")
        self._notify_state_change(old_state, new_state)

    def _schedule(self, delay_seconds: float, kind: TaskKind,
                  effect: Callable[[], None]) -> int:
        delay_ms = int(round(delay_seconds * 1000))
        return self.scheduler.after(delay_ms, self.session.epoch, kind, effect)

    def _enter_monitoring(self) -> None:
        self._transition(SessionState.MONITORING)
        self.last_compliant = True
        self.attention_target = None
        self._reminder_cooldown = False

        self._schedule(TICK_SECONDS, TaskKind.TIMER_TICK, self._on_timer_tick)
        self._schedule_praise()
        if self.attention_checks_active:
            self._schedule_attention_check()
        self._emit_display()

    def _complete(self) -> None:
        self._transition(SessionState.COMPLETE)
        self.session.remaining_seconds = 0
        self.session.end_time = datetime.now()
        self._narrate(self.settings.completion_phrase)
        self._release_source()

        self.last_summary = summarise_session(self.session)
        logger.info(
            f"Session of {format_clock(self.session.planned_seconds)} complete "
            f"with {self.session.violation_count} violation(s)"
        )
        self._emit_display()
        self._notify_session_ended()

    # ------------------------------------------------------------------
    # Scheduled effects
    # ------------------------------------------------------------------

    def _on_grace_tick(self) -> None:
        self.session.grace_remaining -= 1
        if self.session.grace_remaining <= 0:
            self.session.grace_remaining = 0
            self._enter_monitoring()
            return
        self._schedule(TICK_SECONDS, TaskKind.TIMER_TICK, self._on_grace_tick)
        self._emit_display()

    def _on_timer_tick(self) -> None:
        self.session.remaining_seconds = max(0, self.session.remaining_seconds - TICK_SECONDS)
        if self.session.remaining_seconds == 0:
            self._complete()
            return
        self._schedule(TICK_SECONDS, TaskKind.TIMER_TICK, self._on_timer_tick)
        self._emit_display()

    def _schedule_praise(self) -> None:
        delay = self.rng.uniform(*self.settings.praise_delay_range)
        self._schedule(delay, TaskKind.PRAISE, self._on_praise)

    def _on_praise(self) -> None:
        if not self._reminder_cooldown:
            self._narrate(pick_phrase(self.rng, self.settings.praise_phrases))
        self._schedule_praise()

    def _schedule_attention_check(self) -> None:
        delay = self.rng.uniform(*self.settings.attention_delay_range)
        self._schedule(delay, TaskKind.ATTENTION_CHECK, self._on_attention_check)

    def _on_attention_check(self) -> None:
        self._transition(SessionState.ATTENTION_CHECK)
        margin = self.settings.attention_margin
        self.attention_target = (
            self.rng.uniform(margin, 1.0 - margin),
            self.rng.uniform(margin, 1.0 - margin),
        )
        logger.info(
            f"Attention check: target ({self.attention_target[0]:.2f}, "
            f"{self.attention_target[1]:.2f}) within {self.settings.attention_timeout_seconds}s"
        )
        self._narrate(pick_phrase(self.rng, self.settings.attention_challenge_phrases))
        self._schedule(self.settings.attention_timeout_seconds,
                       TaskKind.ATTENTION_CHECK_TIMEOUT, self._on_attention_timeout)
        self._emit_display()

    def _pass_attention_check(self) -> None:
        self.session.attention_checks_passed += 1
        logger.info("Attention check passed")
        self._enter_monitoring()
        self._narrate(pick_phrase(self.rng, self.settings.attention_success_phrases))

    def _on_attention_timeout(self) -> None:
        self.session.attention_checks_failed += 1
        logger.info("Attention check timed out")
        self._register_violation("attention check timed out")

    def _on_settle_complete(self) -> None:
        self._enter_monitoring()

    def _end_reminder_cooldown(self) -> None:
        self._reminder_cooldown = False

    # ------------------------------------------------------------------
    # Violations
    # ------------------------------------------------------------------

    def _register_violation(self, reason: str) -> None:
        """
        Penalise a violation.

        The penalty is drawn for the next violation number and clamped to
        the bound. When nothing can be added the subject only hears a
        reminder: no count, no Penalized state, the timer keeps running,
        and further violations are ignored for the settle window.
        """
        count = self.session.violation_count + 1
        penalty = compute_penalty(count, self.settings.penalty_bands, self.rng)
        added = clamp_penalty(penalty, self.session.remaining_seconds, self.session.bound_seconds)

        if added <= 0:
            logger.info(f"Violation ({reason}) at the time bound, reminder only")
            if self.session.state != SessionState.MONITORING:
                self._enter_monitoring()
            self._reminder_cooldown = True
            self._schedule(self.settings.settle_seconds, TaskKind.COOLDOWN_EXPIRY,
                           self._end_reminder_cooldown)
            self._narrate(self.settings.reminder_phrase)
            return

        self._transition(SessionState.PENALIZED)
        self.session.violation_count = count
        self.session.add_time(added)
        logger.info(
            f"Violation #{count} ({reason}): +{added}s, "
            f"{format_clock(self.session.remaining_seconds)} remaining"
        )
        self._narrate(pick_phrase(self.rng, self.settings.negative_phrases, seconds=added))
        self._schedule(self.settings.settle_seconds, TaskKind.COOLDOWN_EXPIRY,
                       self._on_settle_complete)
        self._emit_display()

    # ------------------------------------------------------------------
    # Callback helpers
    # ------------------------------------------------------------------

    def _narrate(self, text: str) -> None:
        try:
            self.narrator.speak(text)
        except Exception as e:
            logger.warning(f"Narrator error: {e}")

    def _emit_display(self) -> None:
        if self.on_display:
            try:
                self.on_display(self.get_status())
            except Exception as e:
                logger.debug(f"on_display callback error: {e}")

    def _notify_state_change(self, old_state: SessionState, new_state: SessionState) -> None:
        if self.on_state_change:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                logger.debug(f"on_state_change callback error: {e}")

    def _notify_session_ended(self) -> None:
        if self.on_session_ended:
            try:
                self.on_session_ended(self.last_summary or {})
            except Exception as e:
                logger.debug(f"on_session_ended callback error: {e}")

    def _notify_error(self, error_type: str, message: str) -> None:
        """Notify of an error via callback."""
        if self.on_error:
            try:
                self.on_error(error_type, message)
            except Exception as e:
                logger.debug(f"on_error callback error: {e}")
