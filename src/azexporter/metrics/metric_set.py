# src/azexporter/metrics/metric_set.py
"""
Staging buffer for labeled samples produced by one collection pass.

A MetricSet is filled by exactly one producer (one collector invocation
for one scope) and handed off to a publisher once the invocation has
finished. It is not thread-safe and offers no removal.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Union

from ..utils.date_utils import to_epoch_seconds


class SampleKind(str, Enum):
    INFO = "info"
    VALUE = "value"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class Sample:
    labels: Dict[str, str]
    value: float
    kind: SampleKind = SampleKind.VALUE


def _normalize_labels(labels: Mapping[str, object]) -> Dict[str, str]:
    return {str(key): "" if value is None else str(value) for key, value in labels.items()}


class MetricSet:
    """Write-once collection of samples destined for one MetricPublisher."""

    def __init__(self, samples: Optional[List[Sample]] = None):
        self._samples: List[Sample] = list(samples or [])

    def add_info(self, labels: Mapping[str, object]) -> None:
        """Appends an info sample; the value is always 1."""
        self._samples.append(Sample(_normalize_labels(labels), 1.0, SampleKind.INFO))

    def add(self, labels: Mapping[str, object], value: float) -> None:
        self._samples.append(Sample(_normalize_labels(labels), float(value), SampleKind.VALUE))

    def add_time(self, labels: Mapping[str, object], timestamp: Union[datetime, str]) -> None:
        """
        Appends a timestamp sample. The value is seconds since the epoch,
        fractional part included. Naive datetimes are treated as UTC.
        """
        seconds = to_epoch_seconds(timestamp)
        self._samples.append(Sample(_normalize_labels(labels), seconds, SampleKind.TIMESTAMP))

    @property
    def samples(self) -> List[Sample]:
        return list(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __bool__(self) -> bool:
        # An empty set is still a meaningful emission.
        return True

    def __repr__(self) -> str:
        return f"MetricSet(samples={len(self._samples)})"
