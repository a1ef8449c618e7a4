from .metric_set import MetricSet, Sample, SampleKind
from .publisher import MetricPublisher, Registry

__all__ = [
    "MetricPublisher",
    "MetricSet",
    "Registry",
    "Sample",
    "SampleKind",
]
