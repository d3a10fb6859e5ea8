"""Sampling manager that refreshes CPU time state on a fixed cadence."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from ..config import PoolsConfig, SamplerConfig
from ..pools import PoolSource
from ..sampler.procstat import CpuTimeStat
from .base import MetricSample
from .publisher import PublishedMetrics, publish, to_samples

logger = logging.getLogger(__name__)


class SamplingManager:
    """Samples CPU time in the background and fans results out to sinks.

    Instantiate it with the :class:`CpuTimeStat` handle it should refresh,
    register sinks via :meth:`add_sink`, then call :meth:`start` /
    :meth:`stop`. A failed sample is logged and the previous snapshot stays
    in place for readers.
    """

    def __init__(
        self,
        stat: CpuTimeStat,
        pool_source: PoolSource,
        config: SamplerConfig,
        pools_config: PoolsConfig | None = None,
    ) -> None:
        self._stat = stat
        self._pool_source = pool_source
        self._config = config
        self._policy_name = (pools_config or PoolsConfig()).policy_name
        self._sinks: list[Callable[[list[MetricSample]], None]] = []
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def add_sink(self, sink: Callable[[list[MetricSample]], None]) -> None:
        """Register a callback to receive published samples."""
        self._sinks.append(sink)

    def collect_once(self) -> PublishedMetrics | None:
        """Take one sample and publish it. Returns None if sampling failed."""
        try:
            snapshot = self._stat.sample()
        except Exception:
            logger.exception("Sampling %s failed", self._stat.path)
            return None

        try:
            pools = self._pool_source.pools()
        except Exception:
            logger.exception("Reading the pool table failed")
            pools = {}
        published = publish(snapshot, pools, self._policy_name)
        if self._sinks:
            samples = to_samples(published)
            for sink in self._sinks:
                try:
                    sink(samples)
                except Exception:
                    logger.exception("Sink failed")
        return published

    def _run(self) -> None:
        """Background thread loop."""
        while not self._stop_event.is_set():
            try:
                self.collect_once()
            except Exception:
                logger.exception("Collection pass failed")
            self._stop_event.wait(self._config.interval_seconds)

    def start(self) -> None:
        """Start sampling in the background."""
        if not self._config.enabled:
            return
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="poolstat-sampler", daemon=True)
        self._thread.start()
        logger.info("SamplingManager started (interval=%.1fs)", self._config.interval_seconds)

    def stop(self) -> None:
        """Stop background sampling."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("SamplingManager stopped")
