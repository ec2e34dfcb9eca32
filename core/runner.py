"""
asyncio driver for a SessionEngine.

Two coroutines share one event loop: the sampling loop awaits one sample at
a time from the signal source and hands it to the engine, and the timer pump
moves the engine's scheduler clock along with loop time. Every engine call
happens on the loop thread; sources push blocking capture/inference work to
the default executor themselves.
"""

import asyncio
import logging
from typing import Optional

import config
from core.engine import SessionEngine
from core.errors import InputUnavailable
from tracking.session import SessionState

logger = logging.getLogger(__name__)


class SessionRunner:
    """
    Runs one session of an engine to completion (or until cancelled).

    Args:
        engine: The engine to drive; it must have a signal source.
        sample_interval: Pause between samples, in seconds.
        pump_interval: Longest the timer pump sleeps between checks.
    """

    def __init__(self, engine: SessionEngine, sample_interval: Optional[float] = None,
                 pump_interval: float = 0.25):
        self.engine = engine
        self.sample_interval = sample_interval if sample_interval is not None else config.SAMPLE_INTERVAL
        self.pump_interval = pump_interval
        self._origin: float = 0.0

    async def run(self, min_duration: Optional[int] = None,
                  max_duration: Optional[int] = None) -> SessionState:
        """
        Start a session and drive it until it completes or stops.

        Raises:
            InvalidConfig / InputUnavailable: From start_session().

        However run() exits, the session is stopped and its source released
        if it is still active.

        Returns:
            The engine state when the session ended (COMPLETE or IDLE).
        """
        loop = asyncio.get_running_loop()
        self.engine.start_session(min_duration, max_duration)
        self._origin = loop.time() - self.engine.scheduler.now

        sampler = asyncio.create_task(self._sampling_loop(), name="session-sampler")
        pump = asyncio.create_task(self._timer_loop(), name="session-timer")
        try:
            await asyncio.gather(sampler, pump)
        except asyncio.CancelledError:
            logger.info("Session runner cancelled, stopping session")
            raise
        finally:
            sampler.cancel()
            pump.cancel()
            if self.engine.is_active:
                self.engine.stop_session()
        return self.engine.state

    def _clock(self) -> float:
        return asyncio.get_running_loop().time() - self._origin

    async def _sampling_loop(self) -> None:
        source = self.engine.source
        while self.engine.is_active:
            try:
                # At most one sample in flight; frames arriving meanwhile are skipped
                signal = await source.sample()
            except InputUnavailable as e:
                if self.engine.is_active:
                    self.engine.handle_input_failure(e)
                break
            except Exception as e:
                logger.error(f"Signal source raised during sampling: {e}", exc_info=True)
                if self.engine.is_active:
                    self.engine.handle_input_failure(
                        InputUnavailable(f"Signal source failed: {e}"))
                break

            if not self.engine.is_active:
                break

            # Let due ticks land before judging the sample
            self.engine.scheduler.run_until(self._clock())
            if self.engine.is_active:
                self.engine.process_signal(signal)

            await asyncio.sleep(self.sample_interval)

    async def _timer_loop(self) -> None:
        while self.engine.is_active:
            self.engine.scheduler.run_until(self._clock())
            if not self.engine.is_active:
                break

            next_at = self.engine.scheduler.next_fire_time()
            if next_at is None:
                delay = self.pump_interval
            else:
                delay = min(max(0.0, next_at - self._clock()), self.pump_interval)
            await asyncio.sleep(delay)
