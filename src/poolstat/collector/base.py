"""Timestamped metric samples handed to push exporters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class MetricSample:
    """A single gauge data point."""

    name: str
    value: float
    unit: str
    timestamp: float
    labels: dict[str, str] = field(default_factory=dict)
    description: str = ""


def samples_to_dicts(samples: list[MetricSample]) -> list[dict[str, Any]]:
    """Serialize samples to plain dictionaries."""
    return [
        {
            "name": s.name,
            "value": s.value,
            "unit": s.unit,
            "timestamp": s.timestamp,
            "labels": s.labels,
        }
        for s in samples
    ]
