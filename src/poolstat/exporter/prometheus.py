"""Pull-based Prometheus exporter for processor and pool CPU usage."""

from __future__ import annotations

import logging
from typing import Iterator

from prometheus_client import CollectorRegistry, start_http_server
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from ..collector.publisher import (
    DESCRIPTORS,
    POOL_CPU_USAGE,
    THREAD_CPU_USAGE,
    MetricDescriptor,
    PublishedMetrics,
    publish,
)
from ..config import PrometheusConfig
from ..pools import PoolSource
from ..sampler.procstat import CpuTimeStat

logger = logging.getLogger(__name__)


def _family(desc: MetricDescriptor) -> GaugeMetricFamily:
    return GaugeMetricFamily(desc.name, desc.help, labels=list(desc.labels))


class PoolUsageCollector(Collector):
    """Builds ``thread_cpu_usage`` and ``pool_cpu_usage`` on every scrape.

    With *sample_on_scrape* each scrape takes a fresh sample first; a failed
    sample raises out of :meth:`collect` and fails that scrape only.
    Otherwise the latest snapshot taken by the sampling loop is published.
    """

    def __init__(
        self,
        stat: CpuTimeStat,
        pool_source: PoolSource,
        policy_name: str = "podpools",
        sample_on_scrape: bool = False,
    ) -> None:
        self._stat = stat
        self._pool_source = pool_source
        self._policy_name = policy_name
        self._sample_on_scrape = sample_on_scrape

    def describe(self) -> Iterator[GaugeMetricFamily]:
        for desc in DESCRIPTORS:
            yield _family(desc)

    def published(self) -> PublishedMetrics:
        snapshot = self._stat.sample() if self._sample_on_scrape else self._stat.snapshot()
        try:
            pools = self._pool_source.pools()
        except Exception:
            logger.exception("Reading the pool table failed")
            pools = {}
        return publish(snapshot, pools, self._policy_name)

    def collect(self) -> Iterator[GaugeMetricFamily]:
        published = self.published()

        threads = _family(THREAD_CPU_USAGE)
        for t in published.threads:
            threads.add_metric(list(t.label_values()), t.usage_percent, timestamp=t.timestamp or None)
        pools = _family(POOL_CPU_USAGE)
        for p in published.pools:
            pools.add_metric(list(p.label_values()), p.usage_percent, timestamp=p.timestamp or None)

        yield threads
        yield pools


class PrometheusExporter:
    """Serves :class:`PoolUsageCollector` output over HTTP."""

    def __init__(
        self,
        config: PrometheusConfig,
        collector: PoolUsageCollector,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self._config = config
        self.registry = registry or CollectorRegistry()
        self.registry.register(collector)
        self._server = None
        self._thread = None

    def serve(self) -> None:
        """Start the scrape endpoint in a background thread."""
        if self._server is not None:
            return
        self._server, self._thread = start_http_server(
            self._config.port,
            addr=self._config.address,
            registry=self.registry,
        )
        logger.info(
            "Prometheus endpoint listening on %s:%d",
            self._config.address,
            self._config.port,
        )

    def shutdown(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._thread = None
        logger.info("PrometheusExporter shut down")
