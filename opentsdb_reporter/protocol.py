"""OpenTSDB ``put`` line encoder.

Turns one named reading into the exact sequence of protocol lines for
its variant::

    put <prefix><name>.<field> <epoch-seconds> <value> <tags>

Integer fields (counts) render without a decimal point; every other
field renders with two fractional digits via ``formatting``. Encoding is
pure: no I/O, and a reading either yields all of its lines or raises
``EncodeError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence

from .exceptions import EncodeError
from .formatting import US_FORMAT, NumberFormat, format_float, format_int
from .naming import compose_tags, sanitize_name
from .schema import (
    Counter,
    Gauge,
    Histogram,
    Metered,
    ProtocolLine,
    RuntimeHealthSample,
    Timer,
)

logger = logging.getLogger(__name__)

RUNTIME_NAMESPACE = "jvm"

HISTOGRAM_FIELDS: tuple[str, ...] = (
    "min",
    "max",
    "mean",
    "stddev",
    "median",
    "75percentile",
    "95percentile",
    "98percentile",
    "99percentile",
    "999percentile",
)
METERED_FIELDS: tuple[str, ...] = (
    "count",
    "meanRate",
    "1MinuteRate",
    "5MinuteRate",
    "15MinuteRate",
)

# (field suffix, value, render as integer)
_Field = tuple[str, Any, bool]


@dataclass(frozen=True, slots=True)
class RuntimeEntry:
    """One runtime-health data point in the fixed catalog."""

    name: str
    value: Any
    integer: bool = False
    extra_tags: Optional[str] = None


def normalize_prefix(prefix: Optional[str]) -> str:
    """Return ``prefix`` with exactly one trailing dot, or ``""`` when unset."""
    if prefix is None:
        return ""
    stripped = prefix.strip().rstrip(".")
    return f"{stripped}." if stripped else ""


class LineEncoder:
    """Render readings as OpenTSDB protocol lines.

    Args:
        prefix: Prepended to every metric name; a trailing ``.`` is added.
        tags: Tag string shared by every line (host tag plus static tags).
        number_format: Decimal convention for fractional values.
    """

    def __init__(
        self,
        *,
        prefix: Optional[str] = None,
        tags: str = "",
        number_format: NumberFormat = US_FORMAT,
    ) -> None:
        self._prefix = normalize_prefix(prefix)
        self._tags = compose_tags(tags, "")
        self._format = number_format

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def tags(self) -> str:
        return self._tags

    def encode(self, name: str, reading: Any, timestamp: int) -> list[ProtocolLine]:
        """Encode one reading into its protocol lines.

        Raises:
            EncodeError: If the reading is of an unknown type or any of its
                values cannot be rendered. No partial output is returned.
        """
        try:
            fields = self._fields(reading)
            return [
                self._line(f"{name}.{suffix}", value, timestamp, integer=integer)
                for suffix, value, integer in fields
            ]
        except EncodeError:
            raise
        except Exception as exc:
            raise EncodeError(f"Cannot encode {name!r}: {exc}") from exc

    def encode_field(
        self,
        name: str,
        value: Any,
        timestamp: int,
        *,
        integer: bool = False,
        extra_tags: Optional[str] = None,
    ) -> ProtocolLine:
        """Encode a single named value with no field suffix."""
        try:
            return self._line(name, value, timestamp, integer=integer, extra_tags=extra_tags)
        except EncodeError:
            raise
        except Exception as exc:
            raise EncodeError(f"Cannot encode {name!r}: {exc}") from exc

    def encode_runtime(
        self,
        sample: RuntimeHealthSample,
        timestamp: int,
        *,
        on_skip: Optional[Callable[[RuntimeEntry], None]] = None,
    ) -> list[ProtocolLine]:
        """Encode the runtime-health catalog for ``sample``.

        An entry that cannot be encoded is logged and left out; the rest of
        the catalog is still returned. ``on_skip`` is called once per
        skipped entry.
        """
        lines: list[ProtocolLine] = []
        for entry in runtime_entries(sample):
            try:
                lines.append(
                    self.encode_field(
                        entry.name,
                        entry.value,
                        timestamp,
                        integer=entry.integer,
                        extra_tags=entry.extra_tags,
                    )
                )
            except EncodeError:
                logger.error("Error encoding runtime metric %s", entry.name, exc_info=True)
                if on_skip is not None:
                    on_skip(entry)
        return lines

    def _line(
        self,
        name: str,
        value: Any,
        timestamp: int,
        *,
        integer: bool,
        extra_tags: Optional[str] = None,
    ) -> ProtocolLine:
        rendered = format_int(value) if integer else format_float(value, self._format)
        return ProtocolLine(
            metric=f"{self._prefix}{sanitize_name(name)}",
            timestamp=int(timestamp),
            value=rendered,
            tags=compose_tags(self._tags, "", extra_tags),
        )

    def _fields(self, reading: Any) -> Sequence[_Field]:
        match reading:
            case Gauge():
                return [("value", reading.value, False)]
            case Counter():
                return [("count", reading.count, True)]
            case Histogram():
                return _histogram_fields(reading)
            case Metered():
                return _metered_fields(reading)
            case Timer():
                return [*_metered_fields(reading), *_histogram_fields(reading)]
            case _:
                raise EncodeError(f"Unsupported reading type {type(reading).__name__}")


def _metered_fields(reading: Metered | Timer) -> list[_Field]:
    values = (
        reading.count,
        reading.mean_rate,
        reading.one_minute_rate,
        reading.five_minute_rate,
        reading.fifteen_minute_rate,
    )
    return [
        (suffix, value, suffix == "count")
        for suffix, value in zip(METERED_FIELDS, values)
    ]


def _histogram_fields(reading: Histogram | Timer) -> list[_Field]:
    percentiles = tuple(reading.percentiles)
    if len(percentiles) != 6:
        raise EncodeError(f"Expected 6 percentile values, got {len(percentiles)}")
    values = (reading.min, reading.max, reading.mean, reading.stddev, *percentiles)
    return [(suffix, value, False) for suffix, value in zip(HISTOGRAM_FIELDS, values)]


def runtime_entries(sample: RuntimeHealthSample) -> list[RuntimeEntry]:
    """Flatten a runtime-health sample into the fixed catalog, in emission order.

    Scalars left as None by the provider produce no entry.
    """
    ns = RUNTIME_NAMESPACE
    entries: list[RuntimeEntry] = []

    def scalar(name: str, value: Any, *, integer: bool = False) -> None:
        if value is not None:
            entries.append(RuntimeEntry(f"{ns}.{name}", value, integer))

    scalar("memory.heap_usage", sample.heap_usage)
    scalar("memory.non_heap_usage", sample.non_heap_usage)
    for pool, usage in _sorted_items(sample.memory_pool_usages):
        scalar(f"memory.memory_pool_usages.{pool}", usage)

    scalar("daemon_thread_count", sample.daemon_thread_count, integer=True)
    scalar("thread_count", sample.thread_count, integer=True)
    scalar("uptime", sample.uptime)
    scalar("fd_usage", sample.fd_usage)

    for state, share in _sorted_items(sample.thread_states):
        scalar(f"thread-states.{state.lower()}", share)

    for collector, stats in _sorted_items(sample.garbage_collectors):
        gc_tag = f"gc={sanitize_name(collector)}"
        entries.append(RuntimeEntry(f"{ns}.gc.time", stats.time_ms, True, gc_tag))
        entries.append(RuntimeEntry(f"{ns}.gc.runs", stats.runs, True, gc_tag))

    return entries


def _sorted_items(mapping: Any) -> Iterator[tuple[str, Any]]:
    return iter(sorted(mapping.items(), key=lambda item: str(item[0])))


def render_lines(lines: Iterable[ProtocolLine]) -> str:
    """Concatenate rendered lines into one wire payload."""
    return "".join(line.render() for line in lines)


__all__ = [
    "HISTOGRAM_FIELDS",
    "LineEncoder",
    "METERED_FIELDS",
    "RUNTIME_NAMESPACE",
    "RuntimeEntry",
    "normalize_prefix",
    "render_lines",
    "runtime_entries",
]
