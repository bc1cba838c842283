"""Pydantic schemas for metric readings and runtime-health samples.

These models define the read-only contract between the metrics registry
(or runtime-health provider) and the line encoder. A registry snapshot
is a mapping of namespace -> instrument name -> ``MetricReading``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

# Quantiles read from a distribution, in emission order.
PERCENTILE_CUTS: Tuple[float, ...] = (0.5, 0.75, 0.95, 0.98, 0.99, 0.999)

Percentiles = Tuple[float, float, float, float, float, float]


class _Reading(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class Gauge(_Reading):
    """Instantaneous numeric value."""

    kind: Literal["gauge"] = "gauge"
    value: float


class Counter(_Reading):
    """Monotonic or up/down integer count."""

    kind: Literal["counter"] = "counter"
    count: int


class _MeteredFields(_Reading):
    count: int = Field(..., ge=0)
    mean_rate: float
    one_minute_rate: float
    five_minute_rate: float
    fifteen_minute_rate: float


class _HistogramFields(_Reading):
    min: float
    max: float
    mean: float
    stddev: float
    percentiles: Percentiles = Field(
        ..., description="Values at PERCENTILE_CUTS, in the same order"
    )


class Metered(_MeteredFields):
    """Event count plus mean and exponentially-weighted rates."""

    kind: Literal["metered"] = "metered"


class Histogram(_HistogramFields):
    """Distribution summary over a sample reservoir."""

    kind: Literal["histogram"] = "histogram"


class Timer(_MeteredFields, _HistogramFields):
    """Latency timer: a rate meter and a distribution over the same events."""

    kind: Literal["timer"] = "timer"


MetricReading = Annotated[
    Union[Gauge, Counter, Histogram, Metered, Timer],
    Field(discriminator="kind"),
]

_READING_ADAPTER: TypeAdapter[Any] = TypeAdapter(MetricReading)


def parse_reading(data: Any) -> Any:
    """Validate a plain mapping into the matching reading variant.

    Args:
        data: Mapping with a ``kind`` key (``gauge``, ``counter``,
            ``histogram``, ``metered`` or ``timer``) and the variant's fields.

    Returns:
        The validated reading model.

    Raises:
        pydantic.ValidationError: If the kind is unknown or fields are invalid.
    """
    return _READING_ADAPTER.validate_python(data)


class GarbageCollectorStats(BaseModel):
    """Cumulative activity of one garbage collector."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    runs: int = Field(..., ge=0)
    time_ms: int = Field(default=0, ge=0)


class RuntimeHealthSample(BaseModel):
    """Process-level health readings taken at the start of a cycle.

    Ratios are in [0, 1] by convention but not enforced; a provider that
    cannot measure a value leaves it as None and no line is emitted for it.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    heap_usage: Optional[float] = None
    non_heap_usage: Optional[float] = None
    memory_pool_usages: Dict[str, float] = Field(default_factory=dict)

    daemon_thread_count: Optional[int] = Field(default=None, ge=0)
    thread_count: Optional[int] = Field(default=None, ge=0)
    uptime: Optional[float] = Field(default=None, description="Seconds since process start")
    fd_usage: Optional[float] = None

    thread_states: Dict[str, float] = Field(default_factory=dict)
    garbage_collectors: Dict[str, GarbageCollectorStats] = Field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProtocolLine:
    """One ``put`` data point, ready for the wire."""

    metric: str
    timestamp: int
    value: str
    tags: str = ""

    def render(self) -> str:
        head = f"put {self.metric} {self.timestamp} {self.value}"
        if self.tags:
            return f"{head} {self.tags}\n"
        return f"{head}\n"


__all__ = [
    "Counter",
    "GarbageCollectorStats",
    "Gauge",
    "Histogram",
    "Metered",
    "MetricReading",
    "PERCENTILE_CUTS",
    "Percentiles",
    "ProtocolLine",
    "RuntimeHealthSample",
    "Timer",
    "parse_reading",
]
