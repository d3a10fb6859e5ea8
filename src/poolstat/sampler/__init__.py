"""CPU time sampling and pool usage aggregation."""

from .cpuset import expand_cpuset
from .pool import pool_cpu_usage
from .procstat import CpuTimeSnapshot, CpuTimeStat, discover_cpu_count, new_cpu_time_stat

__all__ = [
    "CpuTimeSnapshot",
    "CpuTimeStat",
    "discover_cpu_count",
    "expand_cpuset",
    "new_cpu_time_stat",
    "pool_cpu_usage",
]
