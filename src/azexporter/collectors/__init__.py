from .base_collector import BaseCollector
from .database_collector import DatabaseCollector
from .graph_apps_collector import GraphAppsCollector
from .iam_collector import IamCollector
from .resources_collector import ResourcesCollector

__all__ = [
    "BaseCollector",
    "DatabaseCollector",
    "GraphAppsCollector",
    "IamCollector",
    "ResourcesCollector",
]
