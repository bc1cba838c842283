"""OpenTSDB Reporter: periodic metric export over the telnet ``put`` protocol.

Encodes gauges, counters, histograms, meters and timers, plus a fixed
catalog of process runtime-health samples, and pushes them to an
OpenTSDB collector over one short-lived TCP connection per cycle.

Usage::

    from opentsdb_reporter import Counter, OpenTSDBReporter, ReportScheduler, StaticRegistry

    registry = StaticRegistry()
    registry.update("http", "requests", Counter(count=42))

    with OpenTSDBReporter(registry, host="tsdb.internal", port=4242, prefix="app") as reporter:
        with ReportScheduler(reporter, period_seconds=60):
            ...
"""

from .config import ReporterConfig, get_reporter_config
from .exceptions import (
    ConfigurationError,
    ConnectError,
    EncodeError,
    HostResolutionError,
    ReporterError,
    WriteError,
)
from .formatting import US_FORMAT, NumberFormat, format_float, format_int
from .naming import compose_tags, host_tag, sanitize_name
from .protocol import LineEncoder, runtime_entries
from .registry import ALL, MetricPredicate, MetricsRegistry, StaticRegistry
from .reporter import CycleReport, OpenTSDBReporter
from .runtime import ProcessHealthProvider, RuntimeHealthProvider
from .scheduler import ReportScheduler
from .schema import (
    Counter,
    GarbageCollectorStats,
    Gauge,
    Histogram,
    Metered,
    MetricReading,
    ProtocolLine,
    RuntimeHealthSample,
    Timer,
    parse_reading,
)
from .transport import LineTransport, SocketTransport

__version__ = "1.0.0"

__all__ = [
    "ALL",
    "ConfigurationError",
    "ConnectError",
    "Counter",
    "CycleReport",
    "EncodeError",
    "GarbageCollectorStats",
    "Gauge",
    "Histogram",
    "HostResolutionError",
    "LineEncoder",
    "LineTransport",
    "Metered",
    "MetricPredicate",
    "MetricReading",
    "MetricsRegistry",
    "NumberFormat",
    "OpenTSDBReporter",
    "ProcessHealthProvider",
    "ProtocolLine",
    "ReportScheduler",
    "ReporterConfig",
    "ReporterError",
    "RuntimeHealthProvider",
    "RuntimeHealthSample",
    "SocketTransport",
    "StaticRegistry",
    "Timer",
    "US_FORMAT",
    "WriteError",
    "compose_tags",
    "format_float",
    "format_int",
    "get_reporter_config",
    "host_tag",
    "parse_reading",
    "runtime_entries",
    "sanitize_name",
]
