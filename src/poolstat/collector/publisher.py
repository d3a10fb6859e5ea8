"""Snapshot processor and pool CPU usage into immutable metric records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from ..errors import PoolStatError
from ..pools import PoolDescriptor
from ..sampler.pool import pool_cpu_usage
from ..sampler.procstat import CpuTimeSnapshot
from .base import MetricSample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricDescriptor:
    """Name, help text and label names of an exported gauge."""

    name: str
    help: str
    labels: tuple[str, ...]


THREAD_CPU_USAGE = MetricDescriptor(
    name="thread_cpu_usage",
    help="CPU usage for a given thread",
    labels=("thread_id",),
)

POOL_CPU_USAGE = MetricDescriptor(
    name="pool_cpu_usage",
    help="CPU usage for a given pool",
    labels=(
        "policy",
        "pretty_name",
        "def_name",
        "CPUs",
        "memory",
        "pool_size",
        "pod_name",
        "container_name",
    ),
)

DESCRIPTORS = (THREAD_CPU_USAGE, POOL_CPU_USAGE)


@dataclass(frozen=True)
class ThreadCpuUsage:
    """CPU usage of one logical processor."""

    cpu_id: int
    usage_percent: float
    timestamp: float

    def label_values(self) -> tuple[str, ...]:
        return (str(self.cpu_id),)


@dataclass(frozen=True)
class PoolCpuUsage:
    """CPU usage of one pool together with its descriptive labels."""

    policy: str
    pool_name: str
    def_name: str
    cpus: str
    mems: str
    cpu_milli_size: str
    pod_names: str
    container_names: str
    usage_percent: float
    timestamp: float

    def label_values(self) -> tuple[str, ...]:
        return (
            self.policy,
            self.pool_name,
            self.def_name,
            self.cpus,
            self.mems,
            self.cpu_milli_size,
            self.pod_names,
            self.container_names,
        )


@dataclass(frozen=True)
class PublishedMetrics:
    """Everything exported for one collection pass.

    ``errors`` maps the names of pools left out of ``pools`` to the reason.
    """

    threads: tuple[ThreadCpuUsage, ...]
    pools: tuple[PoolCpuUsage, ...]
    errors: dict[str, str] = field(default_factory=dict)


def publish(
    snapshot: CpuTimeSnapshot,
    pools: Mapping[str, PoolDescriptor] | None,
    policy_name: str = "podpools",
) -> PublishedMetrics:
    """Build the metric records for *snapshot* and the pool table *pools*.

    A pool that cannot be aggregated is logged and left out; the other pools
    and all processors are still published. Pools are ordered by name.
    """
    threads = tuple(
        ThreadCpuUsage(cpu_id=cpu, usage_percent=usage, timestamp=snapshot.timestamp)
        for cpu, usage in enumerate(snapshot.usage)
    )

    if not pools:
        logger.error("No pool state available, publishing processor usage only")
        return PublishedMetrics(threads=threads, pools=())

    records: list[PoolCpuUsage] = []
    errors: dict[str, str] = {}
    for name in sorted(pools):
        desc = pools[name]
        try:
            usage = pool_cpu_usage(desc.cpus, snapshot, pool_name=name)
        except PoolStatError as exc:
            logger.warning("Skipping pool %s: %s", name, exc)
            errors[name] = str(exc)
            continue
        records.append(PoolCpuUsage(
            policy=policy_name,
            pool_name=name,
            def_name=desc.def_name,
            cpus=desc.cpus,
            mems=desc.mems,
            cpu_milli_size=desc.cpu_milli_size,
            pod_names=desc.pod_names,
            container_names=desc.container_names,
            usage_percent=usage,
            timestamp=snapshot.timestamp,
        ))
    return PublishedMetrics(threads=threads, pools=tuple(records), errors=errors)


def to_samples(published: PublishedMetrics) -> list[MetricSample]:
    """Flatten *published* into timestamped gauge samples."""
    samples: list[MetricSample] = []
    for t in published.threads:
        samples.append(MetricSample(
            name=THREAD_CPU_USAGE.name,
            value=t.usage_percent,
            unit="%",
            timestamp=t.timestamp,
            labels=dict(zip(THREAD_CPU_USAGE.labels, t.label_values())),
            description=THREAD_CPU_USAGE.help,
        ))
    for p in published.pools:
        samples.append(MetricSample(
            name=POOL_CPU_USAGE.name,
            value=p.usage_percent,
            unit="%",
            timestamp=p.timestamp,
            labels=dict(zip(POOL_CPU_USAGE.labels, p.label_values())),
            description=POOL_CPU_USAGE.help,
        ))
    return samples
