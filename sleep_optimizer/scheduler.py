import threading
import time
from collections.abc import Callable

from aws_lambda_powertools import Logger

logger = Logger(service="sleep-optimizer")


def next_due(previous_due: float, now: float, period: float) -> tuple[float, int]:
    """Next due time on the grid ``previous_due + k * period`` that is not in the past.

    Returns (due, skipped) where skipped counts grid points that passed while the
    previous tick was still running. Those ticks are dropped, never queued.
    """
    due = previous_due + period
    if now <= due:
        return due, 0
    missed = int((now - due) // period) + 1
    return due + missed * period, missed


class Ticker:
    """Fixed-period driver with a single consumer.

    One worker thread waits for the next due time and runs ``on_tick`` inline, so
    two ticks can never overlap. ``stop()`` prevents any further tick from firing;
    a tick already running is allowed to finish and is waited for.
    """

    def __init__(
        self,
        period: float,
        on_tick: Callable[[], None],
        clock: Callable[[], float] = time.monotonic,
        name: str = "sleep-optimizer-ticker",
    ) -> None:
        if period <= 0:
            raise ValueError(f"tick period must be positive, got {period}")
        self._period = float(period)
        self._on_tick = on_tick
        self._clock = clock
        self._name = name
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self.fired = 0
        self.skipped = 0

    @property
    def period(self) -> float:
        return self._period

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop.is_set()

    def start(self) -> None:
        while True:
            with self._lock:
                previous = self._thread
                if previous is None or not previous.is_alive():
                    self._stop.clear()
                    self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                    self._thread.start()
                    break
                if not self._stop.is_set():
                    return
                if previous is threading.current_thread():
                    # Restarted from inside on_tick; the same worker carries on
                    self._stop.clear()
                    return
            # A stopped worker may still be finishing its last tick
            previous.join()
        logger.info("ticker_started", period=self._period)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        with self._lock:
            thread = self._thread
        # stop() may be called from inside on_tick; the worker exits on its own then
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        with self._lock:
            # The reference is kept until the worker has really exited
            if thread is not None and self._thread is thread and not thread.is_alive():
                self._thread = None
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            logger.warning("ticker_stop_timed_out", timeout=timeout)
        logger.info("ticker_stopped", fired=self.fired, skipped=self.skipped)

    def _run(self) -> None:
        due = self._clock()
        while True:
            delay = max(0.0, due - self._clock())
            if self._stop.wait(delay):
                break
            self._fire()
            due, skipped = next_due(due, self._clock(), self._period)
            if skipped:
                self.skipped += skipped
                logger.warning("ticks_skipped", skipped=skipped, period=self._period)

    def _fire(self) -> None:
        self.fired += 1
        try:
            self._on_tick()
        except Exception:
            # A failing tick must not end the loop
            logger.exception("tick_failed", tick=self.fired)
