"""Runtime-health sampling for the reporting process.

``RuntimeHealthProvider`` is the contract the reporter consumes.
``ProcessHealthProvider`` is the default implementation for a CPython
process, built on psutil, ``threading`` and ``gc`` callbacks.
"""

from __future__ import annotations

import gc
import logging
import threading
import time
from typing import Any, Callable, Optional, Protocol, TypeVar, runtime_checkable

import psutil

from .schema import GarbageCollectorStats, RuntimeHealthSample

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class RuntimeHealthProvider(Protocol):
    """Protocol for sources of process health readings."""

    def sample(self) -> RuntimeHealthSample:
        """Return the current readings."""
        ...


class ProcessHealthProvider:
    """Sample memory, thread, descriptor and collector health of this process.

    Catalog mapping for CPython:

    - ``heap_usage``: resident set size as a share of physical memory
    - ``non_heap_usage``: share of system swap in use
    - ``memory_pool_usages``: ``physical`` (system memory in use) and
      ``swap``
    - ``thread_states``: share of ``daemon`` and ``non_daemon`` threads
    - ``garbage_collectors``: one entry per generation (``gen0`` ..),
      with pause time accumulated from ``gc.callbacks``

    Args:
        process: psutil process to sample. Defaults to the current process.
        track_gc_time: Register a ``gc`` callback to measure pause time.
            Call ``close()`` to detach it.
    """

    def __init__(
        self,
        *,
        process: Optional[psutil.Process] = None,
        track_gc_time: bool = True,
    ) -> None:
        self._process = process or psutil.Process()
        self._gc_time_ns = [0] * len(gc.get_stats())
        self._gc_started_ns: Optional[int] = None
        self._tracking = False
        if track_gc_time:
            gc.callbacks.append(self._on_gc)
            self._tracking = True

    def sample(self) -> RuntimeHealthSample:
        physical = _guard("virtual_memory", psutil.virtual_memory)
        swap = _guard("swap_memory", psutil.swap_memory)

        heap_usage: Optional[float] = None
        uptime: Optional[float] = None
        with self._process.oneshot():
            if physical is not None and physical.total > 0:
                rss = _guard("memory_info", lambda: self._process.memory_info().rss)
                if rss is not None:
                    heap_usage = rss / physical.total
            created = _guard("create_time", self._process.create_time)
            if created is not None:
                uptime = max(0.0, time.time() - created)
            fd_usage = self._fd_usage()

        pools: dict[str, float] = {}
        if physical is not None:
            pools["physical"] = physical.percent / 100.0
        if swap is not None:
            pools["swap"] = swap.percent / 100.0

        threads = threading.enumerate()
        total = len(threads)
        daemons = sum(1 for thread in threads if thread.daemon)
        thread_states: dict[str, float] = {}
        if total:
            thread_states = {
                "daemon": daemons / total,
                "non_daemon": (total - daemons) / total,
            }

        return RuntimeHealthSample(
            heap_usage=heap_usage,
            non_heap_usage=pools.get("swap"),
            memory_pool_usages=pools,
            daemon_thread_count=daemons,
            thread_count=total,
            uptime=uptime,
            fd_usage=fd_usage,
            thread_states=thread_states,
            garbage_collectors=self._collectors(),
        )

    def close(self) -> None:
        """Detach the ``gc`` callback."""
        if self._tracking:
            try:
                gc.callbacks.remove(self._on_gc)
            except ValueError:
                pass
            self._tracking = False

    def _fd_usage(self) -> Optional[float]:
        # num_fds and RLIMIT_NOFILE are POSIX-only in psutil.
        if not hasattr(self._process, "num_fds") or not hasattr(psutil, "RLIMIT_NOFILE"):
            return None
        opened = _guard("num_fds", self._process.num_fds)
        limits = _guard("rlimit", lambda: self._process.rlimit(psutil.RLIMIT_NOFILE))
        if opened is None or limits is None:
            return None
        soft = limits[0]
        if soft is None or soft <= 0 or soft == psutil.RLIM_INFINITY:
            return None
        return opened / soft

    def _collectors(self) -> dict[str, GarbageCollectorStats]:
        collectors: dict[str, GarbageCollectorStats] = {}
        for generation, stats in enumerate(gc.get_stats()):
            elapsed_ns = self._gc_time_ns[generation] if generation < len(self._gc_time_ns) else 0
            collectors[f"gen{generation}"] = GarbageCollectorStats(
                runs=int(stats.get("collections", 0)),
                time_ms=elapsed_ns // 1_000_000,
            )
        return collectors

    def _on_gc(self, phase: str, info: dict[str, Any]) -> None:
        if phase == "start":
            self._gc_started_ns = time.perf_counter_ns()
            return
        started = self._gc_started_ns
        self._gc_started_ns = None
        generation = info.get("generation")
        if started is None or not isinstance(generation, int):
            return
        if 0 <= generation < len(self._gc_time_ns):
            self._gc_time_ns[generation] += time.perf_counter_ns() - started


def _guard(what: str, fn: Callable[[], T]) -> Optional[T]:
    try:
        return fn()
    except psutil.Error as exc:
        logger.debug("Runtime sample %s unavailable: %s", what, exc)
        return None


__all__ = ["ProcessHealthProvider", "RuntimeHealthProvider"]
