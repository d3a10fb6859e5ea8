"""Pool membership as supplied by the resource-pooling policy.

The policy owns pool definitions and pod/container bookkeeping; poolstat
only needs a read-only view of it per collection pass. A pool table file
looks like this::

    pools:
      - name: "dualcpu[0]"
        def_name: dualcpu
        cpus: "2-3"
        mems: "0"
        pods:
          pod-uid-1: [container-id-1, container-id-2]
    pod_names:
      pod-uid-1: web-0
    container_names:
      container-id-1: web-0/app
      container-id-2: web-0/sidecar
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import PoolStatError
from .sampler.cpuset import expand_cpuset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolDescriptor:
    """Descriptive view of one pool."""

    pool_name: str
    def_name: str
    cpus: str
    mems: str = ""
    cpu_milli_size: str = "0"
    pod_names: str = ""
    container_names: str = ""


class PoolSource(abc.ABC):
    """Supplies the current pool table."""

    @abc.abstractmethod
    def pools(self) -> dict[str, PoolDescriptor]:
        """Return pool name -> descriptor for the current collection pass."""


class StaticPoolSource(PoolSource):
    """A fixed pool table held in memory."""

    def __init__(self, pools: Mapping[str, PoolDescriptor] | None = None) -> None:
        self._pools = dict(pools or {})

    def pools(self) -> dict[str, PoolDescriptor]:
        return dict(self._pools)


def resolve_member_names(
    pods: Mapping[str, list[str]],
    pod_names: Mapping[str, str],
    container_names: Mapping[str, str],
) -> tuple[str, str]:
    """Resolve pod and container ids of a pool to comma-joined names.

    Pods are visited in sorted id order. Ids without a known name are
    skipped. Returns ``(pod_names, container_names)``.
    """
    pods_out: list[str] = []
    containers_out: list[str] = []
    for pod_id in sorted(pods):
        for container_id in pods[pod_id] or []:
            name = container_names.get(container_id)
            if name:
                containers_out.append(name)
        pod_name = pod_names.get(pod_id)
        if pod_name:
            pods_out.append(pod_name)
    return ",".join(pods_out), ",".join(containers_out)


def build_descriptor(
    entry: Mapping[str, Any],
    pod_names: Mapping[str, str],
    container_names: Mapping[str, str],
) -> PoolDescriptor:
    """Build a :class:`PoolDescriptor` from one pool table entry.

    A malformed cpuset keeps the descriptor with a size of ``"0"`` so the
    error surfaces when the pool is aggregated.
    """
    cpus = str(entry.get("cpus", ""))
    try:
        milli_size = str(len(expand_cpuset(cpus)) * 1000)
    except PoolStatError:
        milli_size = "0"
    pods, containers = resolve_member_names(entry.get("pods") or {}, pod_names, container_names)
    return PoolDescriptor(
        pool_name=str(entry["name"]),
        def_name=str(entry.get("def_name", "")),
        cpus=cpus,
        mems=str(entry.get("mems", "")),
        cpu_milli_size=milli_size,
        pod_names=pods,
        container_names=containers,
    )


class YamlPoolSource(PoolSource):
    """Reads the pool table from a YAML file on every call.

    A missing, empty or unparseable file yields an empty table. Entries
    without a ``name`` are logged and skipped.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def pools(self) -> dict[str, PoolDescriptor]:
        if not self._path.exists():
            logger.debug("Pool table %s does not exist", self._path)
            return {}
        try:
            with open(self._path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            logger.error("Cannot load pool table %s: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            return {}

        pod_names = data.get("pod_names") or {}
        container_names = data.get("container_names") or {}
        if not isinstance(pod_names, dict) or not isinstance(container_names, dict):
            logger.error("Pool table %s has malformed name lookups", self._path)
            return {}
        result: dict[str, PoolDescriptor] = {}
        for entry in data.get("pools") or []:
            if not isinstance(entry, dict) or "name" not in entry:
                logger.warning("Skipping pool table entry without a name: %r", entry)
                continue
            desc = build_descriptor(entry, pod_names, container_names)
            result[desc.pool_name] = desc
        return result
