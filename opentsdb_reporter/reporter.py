"""OpenTSDBReporter: one report cycle from snapshot to socket.

Each call to ``run()`` is one cycle::

    idle -> connecting -> streaming -> idle

Connecting opens a fresh transport. Streaming encodes and writes the
runtime-health catalog, then every registry reading that passes the
predicate, then flushes. Any failure abandons the rest of the cycle and
goes straight to teardown. Failures are logged, never raised: the next
scheduled cycle simply tries again.
"""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from .config import DEFAULT_HOST, DEFAULT_PORT, ReporterConfig
from .exceptions import EncodeError
from .naming import compose_tags, host_tag
from .protocol import LineEncoder, RuntimeEntry
from .registry import ALL, MetricPredicate, MetricsRegistry, sort_and_filter_metrics
from .runtime import ProcessHealthProvider, RuntimeHealthProvider
from .transport import LineTransport, SocketTransport, open_cycle

logger = logging.getLogger(__name__)

ReporterState = Literal["idle", "connecting", "streaming"]
TransportFactory = Callable[..., LineTransport]


@dataclass(frozen=True, slots=True)
class CycleReport:
    """Outcome of one report cycle."""

    timestamp: int
    lines_written: int = 0
    readings_written: int = 0
    readings_skipped: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _CycleCounters:
    __slots__ = ("lines", "written", "skipped")

    def __init__(self) -> None:
        self.lines = 0
        self.written = 0
        self.skipped = 0

    def skip(self, entry: RuntimeEntry) -> None:
        self.skipped += 1


class OpenTSDBReporter:
    """Push registry and runtime-health metrics to an OpenTSDB collector.

    Usage::

        registry = StaticRegistry()
        reporter = OpenTSDBReporter(registry, host="tsdb.internal", prefix="app")
        report = reporter.run()   # call once per period

    Args:
        registry: Source of metric readings, read once per cycle.
        host: Collector host.
        port: Collector telnet-protocol port.
        prefix: Prepended to every metric name with a ``.`` separator.
        tags: Static ``key=value`` tags appended after the host tag.
        predicate: Filter on ``(dotted_name, reading)``; default accepts all.
        runtime: Runtime-health provider. Defaults to a
            ``ProcessHealthProvider`` when ``report_runtime`` is True.
        report_runtime: Emit the runtime-health catalog each cycle.
        connect_timeout: Transport timeout in seconds; None blocks.
        clock: Returns epoch seconds; truncated to whole seconds per cycle.
        transport_factory: Builds a fresh transport per cycle from
            ``(host, port, timeout=...)``.
        hostname_resolver: Resolves the ``host=`` tag once, at construction.
    """

    def __init__(
        self,
        registry: MetricsRegistry,
        *,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        prefix: Optional[str] = None,
        tags: str = "",
        predicate: Optional[MetricPredicate] = None,
        runtime: Optional[RuntimeHealthProvider] = None,
        report_runtime: bool = True,
        connect_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        transport_factory: TransportFactory = SocketTransport,
        hostname_resolver: Callable[[], str] = socket.gethostname,
    ) -> None:
        self._registry = registry
        self._host = host
        self._port = int(port)
        self._predicate: MetricPredicate = predicate or ALL
        self._connect_timeout = connect_timeout
        self._clock = clock
        self._transport_factory = transport_factory
        self._encoder = LineEncoder(
            prefix=prefix,
            tags=compose_tags(host_tag(hostname_resolver), tags),
        )

        self._owns_runtime = False
        self._runtime: Optional[RuntimeHealthProvider] = None
        if report_runtime:
            if runtime is None:
                runtime = ProcessHealthProvider()
                self._owns_runtime = True
            self._runtime = runtime

        self._state: ReporterState = "idle"

    @classmethod
    def from_config(
        cls,
        config: ReporterConfig,
        registry: MetricsRegistry,
        **overrides: Any,
    ) -> "OpenTSDBReporter":
        """Create a reporter from a ReporterConfig; kwargs override collaborators."""
        kwargs: dict[str, Any] = dict(
            host=config.host,
            port=config.port,
            prefix=config.prefix,
            tags=config.tags,
            report_runtime=config.report_runtime,
            connect_timeout=config.connect_timeout,
        )
        kwargs.update(overrides)
        return cls(registry, **kwargs)

    @property
    def state(self) -> ReporterState:
        """Return the current cycle state."""
        return self._state

    @property
    def tags(self) -> str:
        """Return the tag string attached to every line."""
        return self._encoder.tags

    @property
    def prefix(self) -> str:
        return self._encoder.prefix

    @property
    def destination(self) -> tuple[str, int]:
        return (self._host, self._port)

    def run(self) -> CycleReport:
        """Execute one report cycle. Never raises."""
        timestamp = int(self._clock())
        counters = _CycleCounters()
        error: Optional[str] = None

        self._state = "connecting"
        try:
            transport = self._transport_factory(
                self._host, self._port, timeout=self._connect_timeout
            )
            with open_cycle(transport):
                self._state = "streaming"
                if self._runtime is not None:
                    self._stream_runtime(self._runtime, transport, timestamp, counters)
                self._stream_registry(transport, timestamp, counters)
                if not transport.flush():
                    error = "flush failed"
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Error writing to OpenTSDB", exc_info=True)
            else:
                logger.warning("Error writing to OpenTSDB: %s", error)
        finally:
            self._state = "idle"

        report = CycleReport(
            timestamp=timestamp,
            lines_written=counters.lines,
            readings_written=counters.written,
            readings_skipped=counters.skipped,
            error=error,
        )
        logger.debug(
            "OpenTSDB cycle at %s: %d lines, %d readings, %d skipped",
            timestamp,
            report.lines_written,
            report.readings_written,
            report.readings_skipped,
        )
        return report

    def close(self) -> None:
        """Release the runtime provider this reporter created, if any."""
        if self._owns_runtime and isinstance(self._runtime, ProcessHealthProvider):
            self._runtime.close()
        self._owns_runtime = False

    def __enter__(self) -> "OpenTSDBReporter":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _stream_runtime(
        self,
        runtime: RuntimeHealthProvider,
        transport: LineTransport,
        timestamp: int,
        counters: _CycleCounters,
    ) -> None:
        lines = self._encoder.encode_runtime(
            runtime.sample(), timestamp, on_skip=counters.skip
        )
        counters.lines += transport.write_lines(lines)

    def _stream_registry(
        self,
        transport: LineTransport,
        timestamp: int,
        counters: _CycleCounters,
    ) -> None:
        metrics = sort_and_filter_metrics(self._registry.all_metrics(), self._predicate)
        for namespace, readings in metrics.items():
            for name, reading in readings.items():
                full_name = f"{namespace}.{name}"
                try:
                    lines = self._encoder.encode(full_name, reading, timestamp)
                except EncodeError:
                    logger.error("Error encoding metric %s", full_name, exc_info=True)
                    counters.skipped += 1
                    continue
                counters.lines += transport.write_lines(lines)
                counters.written += 1


__all__ = ["CycleReport", "OpenTSDBReporter", "ReporterState"]
