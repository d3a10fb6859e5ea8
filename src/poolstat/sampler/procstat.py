"""Per-processor CPU time statistics sampled from ``/proc/stat``.

``/proc/stat`` looks like this::

    cpu  130216 19944 162525 1491240 3784 24749 17773 0 0 0
    cpu0 40321 11452 49784 403099 2615 6076 6748 0 0 0
    cpu1 26585 2425 36639 151166 404 2533 3541 0 0 0
    ...
    intr 114930548 113199788 3 0 5 263 0 4 [... lots more numbers ...]

Counters are cumulative ticks since boot in the order user, nice, system,
idle, iowait, irq, softirq, steal, guest, guest_nice. The fourth counter of
a ``cpuN`` row is its idle time and the sum of all counters its total time.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

from ..errors import (
    MalformedCounterRowError,
    MalformedTokenError,
    PoolStatError,
    SourceUnavailableError,
)

if TYPE_CHECKING:
    from ..config import SamplerConfig

logger = logging.getLogger(__name__)

PARSE_POLICIES = ("strict", "lenient")

_IDLE_FIELD = 3


@dataclass(frozen=True)
class CpuTimeSnapshot:
    """CPU time state of every processor for one sampling interval.

    ``prev_*`` are the counters the deltas were taken against, ``cur_*``
    the counters of the latest sample. Until ``bootstrapped`` is set the
    deltas are zero and usage is reported as 0%.
    """

    cpu_count: int
    prev_idle: tuple[int, ...]
    prev_total: tuple[int, ...]
    cur_idle: tuple[int, ...]
    cur_total: tuple[int, ...]
    delta_idle: tuple[int, ...]
    delta_total: tuple[int, ...]
    usage: tuple[float, ...]
    bootstrapped: bool = False
    timestamp: float = 0.0

    @classmethod
    def empty(cls, cpu_count: int) -> CpuTimeSnapshot:
        zeros = (0,) * cpu_count
        return cls(
            cpu_count=cpu_count,
            prev_idle=zeros,
            prev_total=zeros,
            cur_idle=zeros,
            cur_total=zeros,
            delta_idle=zeros,
            delta_total=zeros,
            usage=(0.0,) * cpu_count,
        )


def cpu_usage(delta_idle: int, delta_total: int) -> float:
    """Busy percentage for one interval; 0.0 when no ticks elapsed."""
    if delta_total == 0:
        return 0.0
    return (1.0 - delta_idle / delta_total) * 100.0


def read_lines(path: str | Path) -> list[str]:
    """Read *path* fully and return its non-blank lines."""
    try:
        with open(path, encoding="ascii") as fh:
            data = fh.read()
    except OSError as exc:
        raise SourceUnavailableError(str(path), exc) from exc
    except UnicodeDecodeError as exc:
        raise MalformedCounterRowError(f"{path} is not ASCII text: {exc}") from exc
    return [line for line in data.split("\n") if line.strip()]


def _parse_counter(token: str, row: str, policy: str) -> int:
    if token.isascii() and token.isdigit():
        return int(token)
    if policy == "lenient":
        logger.warning("Counting malformed token %r in row %s as zero", token, row)
        return 0
    raise MalformedTokenError(token, f"row {row}")


def parse_cpu_rows(
    lines: list[str], cpu_count: int, policy: str = "strict"
) -> list[tuple[int, int]]:
    """Extract ``(idle, total)`` counters for the first *cpu_count* processors.

    Only ``cpuN`` rows are used; the aggregate ``cpu`` row and the other
    kernel statistics are skipped. Raises :class:`MalformedCounterRowError`
    if fewer than *cpu_count* rows are present or a row has fewer than four
    counters. Malformed counters are handled according to *policy*.
    """
    rows: list[list[str]] = []
    for line in lines:
        fields = line.split()
        label = fields[0]
        if label.startswith("cpu") and label[3:].isdigit():
            rows.append(fields)

    if len(rows) < cpu_count:
        raise MalformedCounterRowError(
            f"expected {cpu_count} cpu rows, found {len(rows)}"
        )

    counters: list[tuple[int, int]] = []
    for fields in rows[:cpu_count]:
        values = [_parse_counter(tok, fields[0], policy) for tok in fields[1:]]
        if len(values) <= _IDLE_FIELD:
            raise MalformedCounterRowError(
                f"row {fields[0]} has {len(values)} counters, need at least {_IDLE_FIELD + 1}"
            )
        counters.append((values[_IDLE_FIELD], sum(values)))
    return counters


def next_snapshot(
    prev: CpuTimeSnapshot,
    counters: list[tuple[int, int]],
    timestamp: float,
) -> CpuTimeSnapshot:
    """Derive the snapshot that follows *prev* given freshly read *counters*."""
    cur_idle = tuple(idle for idle, _ in counters)
    cur_total = tuple(total for _, total in counters)

    if not prev.bootstrapped:
        zeros = (0,) * prev.cpu_count
        return CpuTimeSnapshot(
            cpu_count=prev.cpu_count,
            prev_idle=cur_idle,
            prev_total=cur_total,
            cur_idle=cur_idle,
            cur_total=cur_total,
            delta_idle=zeros,
            delta_total=zeros,
            usage=(0.0,) * prev.cpu_count,
            bootstrapped=True,
            timestamp=timestamp,
        )

    # A counter that went backwards (processor re-onlined) restarts at zero.
    delta_idle = tuple(max(0, c - p) for c, p in zip(cur_idle, prev.cur_idle))
    delta_total = tuple(max(0, c - p) for c, p in zip(cur_total, prev.cur_total))
    return CpuTimeSnapshot(
        cpu_count=prev.cpu_count,
        prev_idle=prev.cur_idle,
        prev_total=prev.cur_total,
        cur_idle=cur_idle,
        cur_total=cur_total,
        delta_idle=delta_idle,
        delta_total=delta_total,
        usage=tuple(cpu_usage(i, t) for i, t in zip(delta_idle, delta_total)),
        bootstrapped=True,
        timestamp=timestamp,
    )


class CpuTimeStat:
    """Lock-guarded handle to the CPU time state of all processors.

    :meth:`sample` reads the counter source without holding the state lock
    and then swaps in a whole new :class:`CpuTimeSnapshot`, so callers of
    :meth:`snapshot` never wait on file I/O and never see a partial update.
    """

    def __init__(
        self,
        cpu_count: int,
        proc_root: str | Path = "/proc",
        parse_policy: str = "strict",
    ) -> None:
        if cpu_count < 1:
            raise ValueError(f"cpu_count must be positive, got {cpu_count}")
        if parse_policy not in PARSE_POLICIES:
            raise ValueError(f"unknown parse policy {parse_policy!r}")
        self._path = Path(proc_root) / "stat"
        self._parse_policy = parse_policy
        self._lock = threading.Lock()
        self._sample_lock = threading.Lock()
        self._snapshot = CpuTimeSnapshot.empty(cpu_count)

    @property
    def cpu_count(self) -> int:
        return self._snapshot.cpu_count

    @property
    def path(self) -> Path:
        return self._path

    def sample(self) -> CpuTimeSnapshot:
        """Take a new sample and return the resulting snapshot.

        On failure the previous snapshot stays in place.
        """
        with self._sample_lock:
            lines = read_lines(self._path)
            counters = parse_cpu_rows(lines, self.cpu_count, self._parse_policy)
            now = time.time()
            with self._lock:
                self._snapshot = next_snapshot(self._snapshot, counters, now)
                snap = self._snapshot
        logger.debug("Sampled %d cpus from %s", snap.cpu_count, self._path)
        return snap

    def snapshot(self) -> CpuTimeSnapshot:
        """Return the latest snapshot."""
        with self._lock:
            return self._snapshot


def discover_cpu_count() -> int:
    """Number of logical processors on this host."""
    count = psutil.cpu_count(logical=True)
    if not count:
        raise PoolStatError("cannot determine the number of logical cpus")
    return count


def new_cpu_time_stat(config: SamplerConfig) -> CpuTimeStat:
    """Create the CPU time state sized for this host's topology."""
    cpu_count = config.cpu_count or discover_cpu_count()
    stat = CpuTimeStat(
        cpu_count,
        proc_root=config.proc_root,
        parse_policy=config.parse_policy,
    )
    logger.info("Tracking %d cpus from %s", cpu_count, stat.path)
    return stat
