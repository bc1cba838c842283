"""Metrics registry contract consumed by the reporter.

The reporter only reads a registry: ``all_metrics()`` must return a
snapshot mapping of namespace -> instrument name -> reading that stays
unchanged for the duration of a cycle.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

from .schema import MetricReading, parse_reading

MetricPredicate = Callable[[str, Any], bool]


def ALL(name: str, reading: Any) -> bool:
    """Predicate accepting every metric."""
    return True


@runtime_checkable
class MetricsRegistry(Protocol):
    """Protocol for sources of named metric readings."""

    def all_metrics(self) -> Mapping[str, Mapping[str, MetricReading]]:
        """Return a point-in-time snapshot grouped by namespace."""
        ...


def sort_and_filter_metrics(
    metrics: Mapping[str, Mapping[str, Any]],
    predicate: Optional[MetricPredicate] = None,
) -> dict[str, dict[str, Any]]:
    """Order a snapshot by namespace then name, keeping matching readings.

    The predicate receives the dotted ``namespace.name`` and the reading.
    None readings are dropped, as are namespaces left without readings.
    """
    accept = predicate or ALL
    result: dict[str, dict[str, Any]] = {}
    for namespace in sorted(metrics):
        kept = {
            name: reading
            for name, reading in sorted(metrics[namespace].items())
            if reading is not None and accept(f"{namespace}.{name}", reading)
        }
        if kept:
            result[namespace] = kept
    return result


class StaticRegistry:
    """Mapping-backed registry for hosts that push ready-made readings.

    Updates and snapshots are guarded by a lock, so a snapshot taken by
    the reporter never observes a half-applied update.
    """

    def __init__(self, metrics: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[str, dict[str, Any]] = {}
        for namespace, readings in (metrics or {}).items():
            for name, reading in readings.items():
                self.update(namespace, name, reading)

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Mapping[str, Any]]]) -> "StaticRegistry":
        """Build a registry from plain mappings, validating each reading."""
        return cls(
            {
                namespace: {name: parse_reading(raw) for name, raw in readings.items()}
                for namespace, readings in data.items()
            }
        )

    def update(self, namespace: str, name: str, reading: Any) -> None:
        """Set or replace one reading."""
        with self._lock:
            self._metrics.setdefault(namespace, {})[name] = reading

    def remove(self, namespace: str, name: str) -> None:
        """Drop one reading; unknown names are ignored."""
        with self._lock:
            readings = self._metrics.get(namespace)
            if readings is None:
                return
            readings.pop(name, None)
            if not readings:
                del self._metrics[namespace]

    def all_metrics(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {namespace: dict(readings) for namespace, readings in self._metrics.items()}


__all__ = [
    "ALL",
    "MetricPredicate",
    "MetricsRegistry",
    "StaticRegistry",
    "sort_and_filter_metrics",
]
