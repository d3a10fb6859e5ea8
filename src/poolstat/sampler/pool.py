"""Aggregation of per-processor CPU time deltas into pool usage."""

from __future__ import annotations

from .cpuset import expand_cpuset
from .procstat import CpuTimeSnapshot
from ..errors import PoolCpuOutOfRangeError


def pool_cpu_usage(cpuset: str, snapshot: CpuTimeSnapshot, pool_name: str = "") -> float:
    """CPU usage of the pool whose processors are given by *cpuset*.

    The pool's idle and total deltas are summed and the busy fraction is
    scaled by the number of processors in the pool::

        usage = (1 - sum(delta_idle) / sum(delta_total)) * 100 * len(cpus)

    The result is busy-processor-equivalents in percentage points, so a pool
    of four fully busy processors reports 400. It equals the sum of the
    per-processor usages only when every processor in the pool accumulated
    the same number of total ticks during the interval. When no ticks
    elapsed at all the usage is 0.0.

    Raises :class:`PoolCpuOutOfRangeError` if *cpuset* names a processor
    that is not part of *snapshot*.
    """
    cpus = [int(cpu) for cpu in expand_cpuset(cpuset)]
    delta_idle = 0
    delta_total = 0
    for cpu in cpus:
        if cpu >= snapshot.cpu_count:
            raise PoolCpuOutOfRangeError(pool_name or cpuset, cpu, snapshot.cpu_count)
        delta_idle += snapshot.delta_idle[cpu]
        delta_total += snapshot.delta_total[cpu]

    if delta_total == 0:
        return 0.0
    return (1.0 - delta_idle / delta_total) * 100.0 * len(cpus)
