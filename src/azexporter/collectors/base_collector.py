# src/azexporter/collectors/base_collector.py
"""
This module defines the abstract base class for all resource collectors.

A collector owns one or more publishers, registered once at startup, and
for a given scope produces exactly one MetricSet per owned publisher. The
sets are handed to the `emit` callback; the scheduler decides when (and
whether) they reach the publishers.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ..metrics.metric_set import MetricSet
from ..metrics.publisher import MetricPublisher, Registry
from ..models.azure import Scope
from ..utils.pagination import chunked, drain_pages

logger = logging.getLogger(__name__)

Emit = Callable[[MetricSet, MetricPublisher], None]

__all__ = ["BaseCollector", "Emit", "chunked", "drain_pages", "tag_label_names", "tag_labels"]

_INVALID_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def _tag_label_name(tag: str) -> str:
    return "tag_" + _INVALID_LABEL_CHARS.sub("_", tag)


def tag_label_names(tags: Sequence[str]) -> List[str]:
    """Label names used for the configured Azure tags, in configuration order."""
    names = []
    for tag in tags:
        name = _tag_label_name(tag)
        if name not in names:
            names.append(name)
    return names


def tag_labels(tags: Optional[Mapping[str, str]], wanted: Sequence[str]) -> Dict[str, str]:
    """
    Builds tag labels for the configured tag names. Azure tag names are
    case-insensitive; missing tags become empty strings.
    """
    lowered = {key.lower(): value for key, value in (tags or {}).items()}
    labels = {}
    for tag in wanted:
        name = _tag_label_name(tag)
        if name not in labels:
            labels[name] = lowered.get(tag.lower()) or ""
    return labels


class BaseCollector(ABC):
    """
    Abstract Base Class for all resource collectors.
    """

    name: str = "collector"

    def __init__(self):
        self._publishers: List[MetricPublisher] = []

    def register(self, registry: Registry, name: str, help: str, label_names: Sequence[str]) -> MetricPublisher:
        """Registers a publisher owned by this collector. Called from setup()."""
        publisher = registry.register(name, help, label_names)
        self._publishers.append(publisher)
        return publisher

    @abstractmethod
    def setup(self, registry: Registry) -> None:
        """
        Creates and registers this collector's publishers. Runs once at process
        start; a name conflict raises RegistrationError.
        """
        pass

    @abstractmethod
    async def collect(self, scope: Scope, emit: Emit) -> None:
        """
        Queries the provider for one scope and calls `emit` exactly once per
        owned publisher, also when nothing was found. Provider errors propagate.
        """
        pass

    def publishers(self) -> List[MetricPublisher]:
        return list(self._publishers)

    def select_scopes(self, scopes: Sequence[Scope]) -> List[Scope]:
        """The scopes this collector runs against. Subscription collectors use all of them."""
        return list(scopes)

    async def close(self):
        """
        Clean up resources (e.g., close HTTP sessions or API clients).
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
