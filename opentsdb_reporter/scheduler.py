"""Fixed-period driver for report cycles.

``ReportScheduler`` calls ``reporter.run()`` on a single daemon thread,
so cycles never overlap: a slow cycle delays the next one instead of
running beside it.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Callable, Optional, Protocol

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class _Runnable(Protocol):
    def run(self) -> Any: ...


class ReportScheduler:
    """Run a reporter every ``period_seconds`` until stopped.

    Args:
        reporter: Object whose ``run()`` executes one cycle.
        period_seconds: Time between the starts of successive cycles.
        name: Thread name.
        monotonic: Clock used to compute the next start time.

    Example::

        with ReportScheduler(reporter, period_seconds=60):
            serve_forever()
    """

    def __init__(
        self,
        reporter: _Runnable,
        period_seconds: float,
        *,
        name: str = "opentsdb-reporter",
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if not math.isfinite(period_seconds) or period_seconds <= 0:
            raise ConfigurationError("period_seconds must be a positive number")
        self._reporter = reporter
        self._period = float(period_seconds)
        self._name = name
        self._monotonic = monotonic
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._cycles = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def cycles(self) -> int:
        """Return how many cycles have completed."""
        return self._cycles

    def start(self) -> None:
        """Start the polling thread; the first cycle runs after one period."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling and wait for an in-flight cycle to finish."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Reporter thread %s did not stop within %ss", self._name, timeout)
                return
        self._thread = None

    def __enter__(self) -> "ReportScheduler":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    def _loop(self) -> None:
        next_start = self._monotonic() + self._period
        while not self._stop.wait(max(0.0, next_start - self._monotonic())):
            try:
                self._reporter.run()
            except Exception:
                logger.exception("Report cycle raised unexpectedly")
            self._cycles += 1
            next_start += self._period
            now = self._monotonic()
            if next_start < now:
                # Overran one or more periods; skip them rather than bursting.
                missed = math.ceil((now - next_start) / self._period)
                next_start += missed * self._period


__all__ = ["ReportScheduler"]
