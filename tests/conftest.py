"""Shared fixtures for the opentsdb-reporter test suite."""

from __future__ import annotations

from typing import Any, Iterable, Optional

import pytest

from opentsdb_reporter.exceptions import ConnectError, WriteError
from opentsdb_reporter.schema import (
    Counter,
    GarbageCollectorStats,
    Gauge,
    Histogram,
    Metered,
    ProtocolLine,
    RuntimeHealthSample,
    Timer,
)


class RecordingTransport:
    """In-memory LineTransport that records every call."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        timeout: Optional[float] = None,
        fail_connect: bool = False,
        fail_after_lines: Optional[int] = None,
        fail_flush: bool = False,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.fail_connect = fail_connect
        self.fail_after_lines = fail_after_lines
        self.fail_flush = fail_flush
        self.lines: list[ProtocolLine] = []
        self.opened = 0
        self.flushes = 0
        self.closes = 0

    @property
    def payload(self) -> str:
        return "".join(line.render() for line in self.lines)

    def open(self) -> None:
        if self.fail_connect:
            raise ConnectError(f"Cannot connect to {self.host}:{self.port}: refused")
        self.opened += 1

    def write_lines(self, lines: Iterable[ProtocolLine]) -> int:
        written = 0
        for line in lines:
            if self.fail_after_lines is not None and len(self.lines) >= self.fail_after_lines:
                raise WriteError("Error sending: broken pipe")
            self.lines.append(line)
            written += 1
        return written

    def flush(self) -> bool:
        self.flushes += 1
        return not self.fail_flush

    def close(self) -> None:
        self.closes += 1


class TransportRecorder:
    """Transport factory that keeps every transport it builds."""

    def __init__(self, **behaviour: Any) -> None:
        self.behaviour = behaviour
        self.created: list[RecordingTransport] = []

    def __call__(self, host: str, port: int, *, timeout: Optional[float] = None) -> RecordingTransport:
        transport = RecordingTransport(host, port, timeout=timeout, **self.behaviour)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> RecordingTransport:
        return self.created[-1]


class FakeRuntime:
    def __init__(self, sample: Optional[RuntimeHealthSample] = None) -> None:
        self._sample = sample or RuntimeHealthSample()
        self.calls = 0

    def sample(self) -> RuntimeHealthSample:
        self.calls += 1
        return self._sample


@pytest.fixture
def timer_reading() -> Timer:
    return Timer(
        count=10,
        mean_rate=1.0,
        one_minute_rate=2.0,
        five_minute_rate=3.0,
        fifteen_minute_rate=4.0,
        min=0.1,
        max=9.9,
        mean=5.0,
        stddev=1.23,
        percentiles=(4.9, 6.0, 7.0, 7.5, 7.9, 8.0),
    )


@pytest.fixture
def histogram_reading() -> Histogram:
    return Histogram(
        min=1.0,
        max=20.0,
        mean=7.5,
        stddev=2.25,
        percentiles=(7.0, 9.0, 15.0, 18.0, 19.0, 19.9),
    )


@pytest.fixture
def metered_reading() -> Metered:
    return Metered(
        count=120,
        mean_rate=2.0,
        one_minute_rate=1.5,
        five_minute_rate=1.25,
        fifteen_minute_rate=1.125,
    )


@pytest.fixture
def mixed_metrics(timer_reading: Timer, metered_reading: Metered) -> dict[str, dict[str, Any]]:
    return {
        "http": {
            "requests": Counter(count=42),
            "latency": timer_reading,
        },
        "cache": {
            "hit_ratio": Gauge(value=0.875),
            "evictions": metered_reading,
        },
    }


@pytest.fixture
def runtime_sample() -> RuntimeHealthSample:
    return RuntimeHealthSample(
        heap_usage=0.25,
        non_heap_usage=0.5,
        memory_pool_usages={"swap": 0.1, "physical": 0.6},
        daemon_thread_count=2,
        thread_count=5,
        uptime=3600.0,
        fd_usage=0.01,
        thread_states={"DAEMON": 0.4, "non_daemon": 0.6},
        garbage_collectors={
            "gen0": GarbageCollectorStats(runs=12, time_ms=30),
            "gen1": GarbageCollectorStats(runs=3, time_ms=7),
        },
    )


@pytest.fixture
def recorder() -> TransportRecorder:
    return TransportRecorder()


@pytest.fixture
def make_recorder():
    def _make(**behaviour: Any) -> TransportRecorder:
        return TransportRecorder(**behaviour)

    return _make


@pytest.fixture
def make_runtime():
    def _make(sample: Optional[RuntimeHealthSample] = None) -> FakeRuntime:
        return FakeRuntime(sample)

    return _make
