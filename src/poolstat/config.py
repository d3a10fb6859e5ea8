"""Configuration loading and validation for poolstat."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .sampler.procstat import PARSE_POLICIES


@dataclass
class SamplerConfig:
    """CPU time sampler settings."""

    enabled: bool = True
    proc_root: str = "/proc"
    interval_seconds: float = 2.0
    parse_policy: str = "strict"
    cpu_count: int = 0
    sample_on_scrape: bool = False


@dataclass
class PoolsConfig:
    """Pool table settings."""

    path: str = "./pools.yaml"
    policy_name: str = "podpools"


@dataclass
class PrometheusConfig:
    """Pull-based Prometheus endpoint settings."""

    enabled: bool = True
    address: str = "0.0.0.0"
    port: int = 9091


@dataclass
class OtelExporterConfig:
    """OpenTelemetry exporter settings."""

    enabled: bool = False
    endpoint: str = "http://localhost:4318"
    service_name: str = "poolstat"
    headers: dict[str, str] = field(default_factory=dict)
    export_interval_ms: int = 10000


@dataclass
class LocalExporterConfig:
    """Local file exporter settings."""

    enabled: bool = False
    output_dir: str = "./poolstat_data"


@dataclass
class PoolStatConfig:
    """Top-level poolstat configuration."""

    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    pools: PoolsConfig = field(default_factory=PoolsConfig)
    prometheus: PrometheusConfig = field(default_factory=PrometheusConfig)
    otel: OtelExporterConfig = field(default_factory=OtelExporterConfig)
    local_exporter: LocalExporterConfig = field(default_factory=LocalExporterConfig)


_ENV_MAP = {
    "POOLSTAT_PROC_ROOT": ("sampler", "proc_root"),
    "POOLSTAT_INTERVAL": ("sampler", "interval_seconds"),
    "POOLSTAT_PARSE_POLICY": ("sampler", "parse_policy"),
    "POOLSTAT_POOLS_PATH": ("pools", "path"),
    "POOLSTAT_PROMETHEUS_PORT": ("prometheus", "port"),
    "POOLSTAT_OTEL_ENDPOINT": ("otel", "endpoint"),
    "POOLSTAT_LOCAL_OUTPUT_DIR": ("local_exporter", "output_dir"),
}

_ENV_COERCE = {
    "interval_seconds": float,
    "port": int,
}


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides using POOLSTAT_ prefix."""
    for env_key, path in _ENV_MAP.items():
        value = os.environ.get(env_key)
        if value is not None:
            obj = data
            for part in path[:-1]:
                obj = obj.setdefault(part, {})
            final_key = path[-1]
            obj[final_key] = _ENV_COERCE.get(final_key, str)(value)
    return data


def _section(cls: type, data: dict[str, Any], key: str) -> Any:
    raw = data.get(key) or {}
    return cls(**{k: v for k, v in raw.items() if k in cls.__dataclass_fields__})


def _dict_to_config(data: dict[str, Any]) -> PoolStatConfig:
    """Convert a raw dictionary to a PoolStatConfig dataclass."""
    cfg = PoolStatConfig(
        sampler=_section(SamplerConfig, data, "sampler"),
        pools=_section(PoolsConfig, data, "pools"),
        prometheus=_section(PrometheusConfig, data, "prometheus"),
        otel=_section(OtelExporterConfig, data, "otel"),
        local_exporter=_section(LocalExporterConfig, data, "local_exporter"),
    )
    if cfg.sampler.parse_policy not in PARSE_POLICIES:
        raise ValueError(
            f"sampler.parse_policy must be one of {PARSE_POLICIES}, "
            f"got {cfg.sampler.parse_policy!r}"
        )
    if cfg.sampler.interval_seconds <= 0:
        raise ValueError("sampler.interval_seconds must be positive")
    return cfg


def load_config(path: str | Path | None = None) -> PoolStatConfig:
    """Load configuration from a YAML file with environment overrides.

    Looks for ``poolstat.yaml`` in the current directory if *path* is None.
    """
    data: dict[str, Any] = {}
    if path is None:
        path = Path("poolstat.yaml")
    else:
        path = Path(path)

    if path.exists():
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
            if isinstance(loaded, dict):
                data = loaded

    data = _apply_env_overrides(data)
    return _dict_to_config(data)
