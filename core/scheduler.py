"""
Epoch-gated task scheduler.

All delayed and recurring work of a session (timer ticks, praise, attention
checks, timeouts, cooldowns) is registered here. Tasks carry the session
epoch they were scheduled under and only run while that epoch is still
current; anything older is dropped silently when it comes due.

The scheduler keeps its own logical clock. It never sleeps or spawns
threads: a driver (core.runner.SessionRunner, or a test) moves the clock
forward with run_until() / advance() and due effects run inline, on the
caller's thread, in (fire_at, scheduling order) order.
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class TaskKind(Enum):
    """What a scheduled task is for."""
    PRAISE = "praise"
    ATTENTION_CHECK = "attention_check"
    ATTENTION_CHECK_TIMEOUT = "attention_check_timeout"
    COOLDOWN_EXPIRY = "cooldown_expiry"
    TIMER_TICK = "timer_tick"


@dataclass(order=True)
class ScheduledTask:
    """A single delayed effect, tagged with the epoch it belongs to."""
    fire_at: float
    seq: int
    id: int = field(compare=False)
    epoch: int = field(compare=False)
    kind: TaskKind = field(compare=False)
    effect: Callable[[], None] = field(compare=False, repr=False)
    cancelled: bool = field(default=False, compare=False)


class Scheduler:
    """
    Cancellable delayed callbacks on a logical clock.

    Args:
        epoch_source: Returns the session's current epoch; consulted at
            fire time to drop stale tasks.
        start_time: Initial logical time in seconds.
    """

    def __init__(self, epoch_source: Callable[[], int], start_time: float = 0.0):
        self._epoch_source = epoch_source
        self._now = start_time
        self._queue: List[ScheduledTask] = []
        self._tasks: Dict[int, ScheduledTask] = {}
        self._ids = itertools.count(1)
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        """Current logical time in seconds."""
        return self._now

    def after(self, delay_ms: int, epoch: int, kind: TaskKind,
              effect: Callable[[], None]) -> int:
        """
        Schedule an effect to run delay_ms after the current logical time.

        Args:
            delay_ms: Delay in milliseconds (>= 0).
            epoch: Session epoch the task belongs to.
            kind: Task kind, used for inspection and logging.
            effect: Zero-argument callable. Must not block.

        Returns:
            The task id, usable with cancel().

        Raises:
            ValueError: If delay_ms is negative.
        """
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {delay_ms}")

        task = ScheduledTask(
            fire_at=self._now + delay_ms / 1000.0,
            seq=next(self._seq),
            id=next(self._ids),
            epoch=epoch,
            kind=kind,
            effect=effect,
        )
        heapq.heappush(self._queue, task)
        self._tasks[task.id] = task
        return task.id

    def cancel(self, task_id: int) -> bool:
        """
        Cancel one task.

        Returns:
            True if the task was pending, False if unknown or already done.
        """
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False
        task.cancelled = True
        return True

    def cancel_all(self, epoch: int) -> int:
        """
        Cancel every pending task scheduled under the given epoch.

        Returns:
            Number of tasks cancelled.
        """
        doomed = [task_id for task_id, task in self._tasks.items() if task.epoch == epoch]
        for task_id in doomed:
            self.cancel(task_id)
        return len(doomed)

    def clear(self) -> None:
        """Cancel everything regardless of epoch."""
        for task in self._tasks.values():
            task.cancelled = True
        self._tasks.clear()
        self._queue.clear()

    def pending(self, kind: Optional[TaskKind] = None) -> List[ScheduledTask]:
        """Pending tasks in firing order, optionally filtered by kind."""
        tasks = sorted(self._tasks.values())
        if kind is not None:
            tasks = [task for task in tasks if task.kind == kind]
        return tasks

    def next_fire_time(self) -> Optional[float]:
        """Logical time of the earliest pending task, or None."""
        self._discard_cancelled_head()
        return self._queue[0].fire_at if self._queue else None

    def run_until(self, timestamp: float) -> int:
        """
        Move the clock to timestamp, running every task that comes due.

        The clock is set to each task's fire_at before its effect runs, so
        tasks scheduled from inside an effect are relative to that moment.

        Returns:
            Number of effects that actually ran (stale tasks excluded).
        """
        fired = 0
        while True:
            self._discard_cancelled_head()
            if not self._queue or self._queue[0].fire_at > timestamp:
                break

            task = heapq.heappop(self._queue)
            del self._tasks[task.id]
            self._now = max(self._now, task.fire_at)

            if task.epoch != self._epoch_source():
                logger.debug(f"Dropping stale {task.kind.value} task from epoch {task.epoch}")
                continue

            task.effect()
            fired += 1

        self._now = max(self._now, timestamp)
        return fired

    def advance(self, seconds: float) -> int:
        """Run everything due within the next `seconds` of logical time."""
        return self.run_until(self._now + seconds)

    def _discard_cancelled_head(self) -> None:
        while self._queue and self._queue[0].cancelled:
            heapq.heappop(self._queue)
