# src/azexporter/metrics/exposition.py
"""Bridges the publisher registry to the prometheus_client exposition layer."""

import logging

from prometheus_client import CollectorRegistry, generate_latest, start_http_server
from prometheus_client.core import GaugeMetricFamily

from .publisher import Registry

logger = logging.getLogger(__name__)


class RegistryCollector:
    """prometheus_client custom collector rendering every publisher as a gauge family."""

    def __init__(self, registry: Registry):
        self.registry = registry

    def describe(self):
        # Publishers are registered up front; no name collision checks are needed.
        return []

    def collect(self):
        for publisher in self.registry:
            family = GaugeMetricFamily(publisher.name, publisher.help, labels=list(publisher.label_names))
            for labels, value in publisher.snapshot():
                family.add_metric([labels[name] for name in publisher.label_names], value)
            yield family


def build_collector_registry(registry: Registry) -> CollectorRegistry:
    """Returns a dedicated CollectorRegistry without the default process/platform collectors."""
    collector_registry = CollectorRegistry()
    collector_registry.register(RegistryCollector(registry))
    return collector_registry


def render(registry: Registry) -> str:
    """Renders the current state of all publishers in the text exposition format."""
    return generate_latest(build_collector_registry(registry)).decode("utf-8")


def start_exposition(registry: Registry, port: int, addr: str = "0.0.0.0"):
    """Starts the prometheus_client HTTP server in a background thread."""
    result = start_http_server(port, addr=addr, registry=build_collector_registry(registry))
    logger.info("Serving metrics on %s:%d/metrics", addr, port)
    return result
