# src/azexporter/metrics/publisher.py
"""
Live, concurrently readable series tables and the registry that owns them.

Each MetricPublisher holds the authoritative label-set -> value mapping
for one gauge. Writers replace the whole table at once: the new table is
built and validated off to the side, then swapped in under a lock that is
held only for the reference assignment. Readers take the current reference
under the same lock and a table is never mutated once swapped in, so a
reader always sees one complete apply.
"""

import logging
import re
import threading
from typing import Dict, Iterator, List, Sequence, Tuple

from ..core.exceptions import RegistrationError, SchemaMismatchError
from .metric_set import MetricSet

logger = logging.getLogger(__name__)

_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")


class StagedSeries:
    """A validated series table waiting to be committed to its publisher."""

    __slots__ = ("publisher", "table")

    def __init__(self, publisher: "MetricPublisher", table: Dict[Tuple[str, ...], float]):
        self.publisher = publisher
        self.table = table

    def __len__(self) -> int:
        return len(self.table)


class MetricPublisher:
    """Owns the current series set of one named gauge."""

    def __init__(self, name: str, help: str, label_names: Sequence[str]):
        if not _METRIC_NAME_RE.match(name):
            raise ValueError(f"Invalid metric name: '{name}'")
        label_names = tuple(label_names)
        for label in label_names:
            if not _LABEL_NAME_RE.match(label):
                raise ValueError(f"Invalid label name '{label}' for metric '{name}'")
        if len(set(label_names)) != len(label_names):
            raise ValueError(f"Duplicate label names for metric '{name}': {label_names}")

        self.name = name
        self.help = help
        self.label_names: Tuple[str, ...] = label_names
        self._label_set = frozenset(label_names)
        self._series: Dict[Tuple[str, ...], float] = {}
        self._lock = threading.Lock()

    def apply(self, *metric_sets: MetricSet) -> None:
        """
        Replaces all published series with exactly the series in the given sets.

        Sets are merged in order; a label set seen twice keeps the last value.
        If any sample does not match the label schema the whole apply is
        rejected and the current series are left untouched.
        """
        self.commit(self.stage(*metric_sets))

    def stage(self, *metric_sets: MetricSet) -> "StagedSeries":
        """Validates and merges the given sets without touching the published series."""
        table: Dict[Tuple[str, ...], float] = {}
        for metric_set in metric_sets:
            for sample in metric_set:
                if sample.labels.keys() != self._label_set:
                    raise SchemaMismatchError(self.name, self.label_names, sample.labels.keys())
                key = tuple(sample.labels[label] for label in self.label_names)
                table[key] = sample.value
        return StagedSeries(self, table)

    def commit(self, staged: "StagedSeries") -> None:
        """Swaps a staged table in as the published series."""
        if staged.publisher is not self:
            raise ValueError(f"Staged series belong to '{staged.publisher.name}', not '{self.name}'")
        table = staged.table
        with self._lock:
            previous = len(self._series)
            self._series = table

        logger.debug("Applied %d series to '%s' (previously %d)", len(table), self.name, previous)

    def reset(self) -> None:
        """Drops every published series."""
        self.apply(MetricSet())

    def snapshot(self) -> List[Tuple[Dict[str, str], float]]:
        """Returns the current series as (labels, value) pairs ordered by label values."""
        with self._lock:
            series = self._series
        return [(dict(zip(self.label_names, key)), value) for key, value in sorted(series.items())]

    def __len__(self) -> int:
        with self._lock:
            return len(self._series)

    def __repr__(self) -> str:
        return f"MetricPublisher(name={self.name!r}, labels={self.label_names!r})"


class Registry:
    """
    Set of publishers created at process start.

    Constructed once and handed to every collector's setup and to the
    scheduler.
    """

    def __init__(self):
        self._publishers: Dict[str, MetricPublisher] = {}
        self._lock = threading.Lock()

    def register(self, name: str, help: str, label_names: Sequence[str]) -> MetricPublisher:
        publisher = MetricPublisher(name, help, label_names)
        with self._lock:
            if name in self._publishers:
                raise RegistrationError(f"Metric '{name}' is already registered")
            self._publishers[name] = publisher
        logger.debug("Registered metric '%s' with labels %s", name, publisher.label_names)
        return publisher

    def get(self, name: str) -> MetricPublisher:
        return self._publishers[name]

    def publishers(self) -> List[MetricPublisher]:
        with self._lock:
            return list(self._publishers.values())

    def __contains__(self, name: str) -> bool:
        return name in self._publishers

    def __iter__(self) -> Iterator[MetricPublisher]:
        return iter(self.publishers())

    def __len__(self) -> int:
        return len(self._publishers)
