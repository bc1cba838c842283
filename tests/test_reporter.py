"""Tests for the report cycle orchestrator."""

from __future__ import annotations

import gc
import logging
from typing import Any

import pytest

from opentsdb_reporter import OpenTSDBReporter, ReporterConfig, StaticRegistry
from opentsdb_reporter.schema import Counter, Gauge, Histogram

EPOCH = 1000


def _reporter(registry: Any, recorder: Any, **kwargs: Any) -> OpenTSDBReporter:
    kwargs.setdefault("report_runtime", False)
    kwargs.setdefault("hostname_resolver", lambda: "x")
    return OpenTSDBReporter(
        registry,
        host="tsdb",
        port=4242,
        prefix="app",
        clock=lambda: EPOCH + 0.9,
        transport_factory=recorder,
        **kwargs,
    )


def _broken_histogram() -> Histogram:
    return Histogram.model_construct(
        min=0.0, max=1.0, mean=float("nan"), stddev=0.0, percentiles=(0, 0, 0, 0, 0, 0)
    )


# ---------------------------------------------------------------------------
# Successful cycles
# ---------------------------------------------------------------------------


class TestSuccessfulCycle:
    def test_counter_line_on_the_wire(self, recorder) -> None:
        registry = StaticRegistry({"http": {"requests": Counter(count=42)}})
        report = _reporter(registry, recorder).run()

        assert report.ok
        assert recorder.last.payload == "put app.http.requests.count 1000 42 host=x\n"
        assert report.timestamp == EPOCH

    def test_all_readings_sorted_by_namespace_then_name(self, recorder, mixed_metrics) -> None:
        report = _reporter(StaticRegistry(mixed_metrics), recorder).run()

        metrics = [line.metric for line in recorder.last.lines]
        assert metrics[0] == "app.cache.evictions.count"
        assert metrics[5] == "app.cache.hit_ratio.value"
        assert metrics[6] == "app.http.latency.count"
        assert metrics[-1] == "app.http.requests.count"
        assert report.readings_written == 4
        assert report.lines_written == 5 + 1 + 15 + 1

    def test_static_tags_follow_host_tag(self, recorder) -> None:
        registry = StaticRegistry({"http": {"requests": Counter(count=1)}})
        reporter = _reporter(registry, recorder, tags="env=prod dc=eu")
        reporter.run()
        assert reporter.tags == "host=x env=prod dc=eu"
        assert recorder.last.lines[0].tags == "host=x env=prod dc=eu"

    def test_predicate_filters_readings(self, recorder, mixed_metrics) -> None:
        reporter = _reporter(
            StaticRegistry(mixed_metrics),
            recorder,
            predicate=lambda name, reading: name.startswith("http."),
        )
        report = reporter.run()
        assert {line.metric.split(".")[1] for line in recorder.last.lines} == {"http"}
        assert report.readings_written == 2

    def test_runtime_lines_come_first(self, recorder, make_runtime, runtime_sample) -> None:
        runtime = make_runtime(runtime_sample)
        registry = StaticRegistry({"http": {"requests": Counter(count=1)}})
        report = _reporter(registry, recorder, runtime=runtime, report_runtime=True).run()

        metrics = [line.metric for line in recorder.last.lines]
        assert metrics[0] == "app.jvm.memory.heap_usage"
        assert metrics[-1] == "app.http.requests.count"
        assert runtime.calls == 1
        assert report.lines_written == 15

    def test_one_connection_per_cycle(self, recorder) -> None:
        reporter = _reporter(StaticRegistry(), recorder, connect_timeout=3.0)
        reporter.run()
        reporter.run()
        assert len(recorder.created) == 2
        for transport in recorder.created:
            assert transport.opened == 1
            assert transport.closes == 1
            assert transport.timeout == 3.0

    def test_state_returns_to_idle(self, recorder) -> None:
        seen: list[str] = []

        class ObservingRegistry:
            def all_metrics(self):
                seen.append(reporter.state)
                return {}

        reporter = _reporter(ObservingRegistry(), recorder)
        assert reporter.state == "idle"
        reporter.run()
        assert seen == ["streaming"]
        assert reporter.state == "idle"


# ---------------------------------------------------------------------------
# Failure containment
# ---------------------------------------------------------------------------


class TestFailureContainment:
    def test_connect_failure_writes_nothing_and_does_not_raise(
        self, make_recorder, mixed_metrics, caplog: pytest.LogCaptureFixture
    ) -> None:
        recorder = make_recorder(fail_connect=True)
        report = _reporter(StaticRegistry(mixed_metrics), recorder).run()

        assert not report.ok
        assert recorder.last.lines == []
        assert report.lines_written == 0
        assert "Error writing to OpenTSDB" in caplog.text

    def test_connect_failure_logs_traceback_at_debug(
        self, make_recorder, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.DEBUG, logger="opentsdb_reporter.reporter")
        _reporter(StaticRegistry(), make_recorder(fail_connect=True)).run()
        records = [r for r in caplog.records if r.getMessage() == "Error writing to OpenTSDB"]
        assert records and records[0].exc_info is not None

    def test_encode_failure_skips_only_that_reading(
        self, recorder, caplog: pytest.LogCaptureFixture
    ) -> None:
        registry = StaticRegistry(
            {
                "a": {"broken": _broken_histogram(), "ok": Counter(count=1)},
                "b": {"gauge": Gauge(value=2.0)},
            }
        )
        report = _reporter(registry, recorder).run()

        assert report.ok
        assert report.readings_skipped == 1
        assert report.readings_written == 2
        assert [line.metric for line in recorder.last.lines] == [
            "app.a.ok.count",
            "app.b.gauge.value",
        ]
        assert "Error encoding metric a.broken" in caplog.text

    def test_unexpected_value_error_skips_only_that_reading(self, recorder) -> None:
        class LazyValue:
            def __float__(self) -> float:
                raise RuntimeError("sensor offline")

        registry = StaticRegistry(
            {
                "a": {"bad": Gauge.model_construct(value=LazyValue())},
                "b": {"ok": Counter(count=1)},
            }
        )
        report = _reporter(registry, recorder).run()

        assert report.ok
        assert report.readings_skipped == 1
        assert recorder.last.payload == "put app.b.ok.count 1000 1 host=x\n"

    def test_write_failure_closes_exactly_once(self, make_recorder, mixed_metrics) -> None:
        recorder = make_recorder(fail_after_lines=3)
        report = _reporter(StaticRegistry(mixed_metrics), recorder).run()

        transport = recorder.last
        assert not report.ok
        assert len(transport.lines) == 3
        assert transport.flushes == 1
        assert transport.closes == 1

    def test_flush_failure_reported(self, make_recorder) -> None:
        recorder = make_recorder(fail_flush=True)
        report = _reporter(StaticRegistry({"a": {"c": Counter(count=1)}}), recorder).run()
        assert report.error == "flush failed"
        assert recorder.last.closes == 1

    def test_registry_failure_aborts_cycle(self, recorder) -> None:
        class BrokenRegistry:
            def all_metrics(self):
                raise RuntimeError("registry unavailable")

        report = _reporter(BrokenRegistry(), recorder).run()
        assert report.error == "registry unavailable"
        assert recorder.last.closes == 1

    def test_bad_runtime_entry_skipped(self, recorder, make_runtime) -> None:
        from opentsdb_reporter.schema import RuntimeHealthSample

        runtime = make_runtime(RuntimeHealthSample(heap_usage=float("nan"), thread_count=4))
        report = _reporter(
            StaticRegistry(), recorder, runtime=runtime, report_runtime=True
        ).run()
        assert report.ok
        assert report.readings_skipped == 1
        assert recorder.last.payload == "put app.jvm.thread_count 1000 4 host=x\n"

    def test_host_resolution_failure_omits_host_tag(self, recorder) -> None:
        def broken() -> str:
            raise OSError("no name")

        registry = StaticRegistry({"http": {"requests": Counter(count=42)}})
        reporter = _reporter(registry, recorder, hostname_resolver=broken, tags="env=prod")
        reporter.run()
        assert reporter.tags == "env=prod"
        assert recorder.last.payload == "put app.http.requests.count 1000 42 env=prod\n"


class TestFromConfig:
    def test_builds_from_config(self, recorder) -> None:
        config = ReporterConfig(
            host="tsdb.internal",
            port=14242,
            prefix="svc",
            tags="env=stage",
            connect_timeout=1.5,
            report_runtime=False,
        )
        reporter = OpenTSDBReporter.from_config(
            config,
            StaticRegistry(),
            transport_factory=recorder,
            hostname_resolver=lambda: "h1",
        )
        reporter.run()
        assert reporter.destination == ("tsdb.internal", 14242)
        assert reporter.prefix == "svc."
        assert reporter.tags == "host=h1 env=stage"
        assert recorder.last.timeout == 1.5


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_context_manager_detaches_owned_runtime_provider(self, recorder) -> None:
        before = len(gc.callbacks)
        with _reporter(StaticRegistry(), recorder, report_runtime=True) as reporter:
            assert len(gc.callbacks) == before + 1
            reporter.run()
        assert len(gc.callbacks) == before

    def test_injected_runtime_is_left_alone(self, recorder, make_runtime) -> None:
        runtime = make_runtime()
        before = len(gc.callbacks)
        with _reporter(StaticRegistry(), recorder, runtime=runtime, report_runtime=True):
            pass
        assert len(gc.callbacks) == before
