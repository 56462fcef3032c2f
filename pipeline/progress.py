"""
Progress-Simulated Task Runner

Wraps one long-running call (OCR + generation) in a visible progress
lifecycle:

    IDLE -> RUNNING -> FINALIZING -> IDLE

While RUNNING a ticker thread ramps the percentage (fast below 90, one
point at a time up to 98, never past 98). When the task settles, success or
failure alike, the ticker is stopped, progress is forced to 100, the outcome
is handed to the caller, and the running flag clears after a short delay.
The ramp carries no information about real completion.
"""

import logging
import random
import threading
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger("doc_studio.progress")


FAST_RAMP_LIMIT = 90
PROGRESS_CEILING = 98
PROGRESS_DONE = 100


class RunnerState(Enum):
    """Lifecycle states of a ProgressRunner."""
    IDLE = "idle"
    RUNNING = "running"
    FINALIZING = "finalizing"


def next_progress(current: int, rng: random.Random) -> int:
    """One ramp step: +1..5 below 90, +1 up to 98, capped at 98."""
    if current < FAST_RAMP_LIMIT:
        current += rng.randint(1, 5)
    elif current < PROGRESS_CEILING:
        current += 1
    return min(current, PROGRESS_CEILING)


class ProgressTicker:
    """Owned handle for the periodic ramp; exactly one per running task."""

    def __init__(self, advance: Callable[[], None], interval: float):
        self.interval = interval
        self._advance = advance
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="progress-ticker", daemon=True)

    def _run(self):
        while not self._stopped.wait(self.interval):
            self._advance()

    def start(self) -> "ProgressTicker":
        self._thread.start()
        return self

    def stop(self):
        self._stopped.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=max(self.interval * 2, 1.0))


def start_ramp(advance: Callable[[], None], interval: float) -> ProgressTicker:
    """Start a ticker and return its handle."""
    return ProgressTicker(advance, interval).start()


def stop_ramp(ticker: Optional[ProgressTicker]):
    """Stop a ticker handle (None is allowed)."""
    if ticker is not None:
        ticker.stop()


class ProgressRunner:
    """
    Runs one task at a time on a worker thread with simulated progress.

    Args:
        tick_interval: Seconds between ramp ticks
        finalize_delay: Seconds the 100% state stays before returning to IDLE
        rng: Random source for the ramp step size
        on_progress: Observer called with every new percentage (under the lock)
    """

    def __init__(
        self,
        tick_interval: float = 0.15,
        finalize_delay: float = 0.5,
        rng: Optional[random.Random] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ):
        self.tick_interval = tick_interval
        self.finalize_delay = finalize_delay
        self._rng = rng or random.Random()
        self._on_progress = on_progress

        self._lock = threading.Lock()
        self._state = RunnerState.IDLE
        self._progress = 0
        self._ticker: Optional[ProgressTicker] = None
        self._idle = threading.Event()
        self._idle.set()

        self.result: Any = None
        self.error: Optional[BaseException] = None

    @property
    def state(self) -> RunnerState:
        with self._lock:
            return self._state

    @property
    def progress(self) -> int:
        with self._lock:
            return self._progress

    @property
    def is_running(self) -> bool:
        """True from start until the post-finalize delay has elapsed."""
        with self._lock:
            return self._state is not RunnerState.IDLE

    def start(
        self,
        task: Callable[[Any], Any],
        artifact: Any,
        on_success: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> bool:
        """
        Start `task(artifact)` on a worker thread.

        Returns:
            True if the task was started. A missing artifact is a no-op and
            a runner that is not IDLE rejects the call; both return False.
        """
        if artifact is None:
            logger.debug("start() without an input artifact, nothing to do")
            return False

        with self._lock:
            if self._state is not RunnerState.IDLE:
                logger.warning(f"start() rejected, runner is {self._state.value}")
                return False
            self._state = RunnerState.RUNNING
            self._idle.clear()
            self.result = None
            self.error = None
            self._set_progress(0)
            self._ticker = start_ramp(self._advance, self.tick_interval)

        worker = threading.Thread(
            target=self._execute,
            args=(task, artifact, on_success, on_error),
            name="progress-task",
            daemon=True,
        )
        worker.start()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the runner is IDLE again. Returns False on timeout."""
        return self._idle.wait(timeout)

    def close(self):
        """Stop a live ticker (teardown). The worker itself cannot be cancelled."""
        with self._lock:
            ticker, self._ticker = self._ticker, None
        stop_ramp(ticker)

    def _set_progress(self, value: int):
        # Caller holds the lock
        self._progress = value
        if self._on_progress is not None:
            self._on_progress(value)

    def _advance(self):
        with self._lock:
            if self._state is not RunnerState.RUNNING:
                return
            value = next_progress(self._progress, self._rng)
            if value != self._progress:
                self._set_progress(value)

    def _execute(self, task, artifact, on_success, on_error):
        try:
            failed = False
            try:
                self.result = task(artifact)
            except Exception as e:
                failed = True
                self.error = e
                logger.error(f"Task failed: {type(e).__name__}: {e}", exc_info=True)
            finally:
                self._finalize()

            if failed and on_error is not None:
                on_error(self.error)
            elif not failed and on_success is not None:
                on_success(self.result)
        finally:
            self._schedule_idle()

    def _finalize(self):
        with self._lock:
            ticker, self._ticker = self._ticker, None
            self._state = RunnerState.FINALIZING
            self._set_progress(PROGRESS_DONE)
        stop_ramp(ticker)

    def _schedule_idle(self):
        if self.finalize_delay > 0:
            timer = threading.Timer(self.finalize_delay, self._settle)
            timer.daemon = True
            timer.start()
        else:
            self._settle()

    def _settle(self):
        with self._lock:
            self._state = RunnerState.IDLE
        self._idle.set()
