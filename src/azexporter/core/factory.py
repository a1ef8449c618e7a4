# src/azexporter/core/factory.py
"""
Factory functions wiring the registry, API clients, collectors and the
scheduler from the configuration.
"""

import logging
from typing import List, Optional

from ..collectors.base_collector import BaseCollector
from ..collectors.database_collector import DatabaseCollector
from ..collectors.graph_apps_collector import GraphAppsCollector
from ..collectors.iam_collector import IamCollector
from ..collectors.resources_collector import ResourcesCollector
from ..metrics.publisher import Registry
from ..utils.http_client import AzureApiClient
from .config import Config, config
from .credentials import ARM_SCOPE, GRAPH_SCOPE, ClientSecretCredentialProvider
from .directory import SubscriptionDirectory
from .iterator import FailurePolicy, ScopeIterator
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


def get_credential_provider(scope: str, settings: Config = config) -> ClientSecretCredentialProvider:
    return ClientSecretCredentialProvider(
        tenant_id=settings.AZURE_TENANT_ID,
        client_id=settings.AZURE_CLIENT_ID,
        client_secret=settings.AZURE_CLIENT_SECRET,
        scope=scope,
        authority_host=settings.AZURE_AUTHORITY_HOST,
    )


def get_arm_client(settings: Config = config) -> AzureApiClient:
    return AzureApiClient(settings.AZURE_MANAGEMENT_URL, get_credential_provider(ARM_SCOPE, settings))


def get_graph_client(settings: Config = config) -> AzureApiClient:
    return AzureApiClient(settings.AZURE_GRAPH_URL, get_credential_provider(GRAPH_SCOPE, settings))


def get_collectors(arm_client, graph_client, settings: Config = config) -> List[BaseCollector]:
    """Instantiates the collectors enabled by COLLECTORS, in the configured order."""
    builders = {
        "resources": lambda: ResourcesCollector(
            arm_client,
            resource_tags=settings.AZURE_RESOURCE_TAGS,
            resource_group_tags=settings.AZURE_RESOURCEGROUP_TAGS,
        ),
        "iam": lambda: IamCollector(arm_client, graph_client),
        "database": lambda: DatabaseCollector(arm_client, resource_tags=settings.AZURE_RESOURCE_TAGS),
        "graph_apps": lambda: GraphAppsCollector(
            graph_client,
            tenant_id=settings.AZURE_TENANT_ID,
            application_filter=settings.GRAPH_APPLICATION_FILTER,
        ),
    }

    collectors = []
    for name in settings.COLLECTORS:
        builder = builders.get(name)
        if builder is None:
            raise ValueError(f"Unknown collector '{name}'. Available: {', '.join(sorted(builders))}")
        collectors.append(builder())
    logger.info("Enabled collectors: %s", ", ".join(c.name for c in collectors))
    return collectors


def get_scheduler(settings: Config = config, registry: Optional[Registry] = None) -> Scheduler:
    """
    Builds a fully wired Scheduler and registers every collector's metrics.
    Registration conflicts raise RegistrationError; the process cannot serve correctly.
    """
    registry = registry if registry is not None else Registry()
    arm_client = get_arm_client(settings)
    graph_client = get_graph_client(settings)

    scheduler = Scheduler(
        registry=registry,
        directory=SubscriptionDirectory(arm_client, allow_list=settings.AZURE_SUBSCRIPTIONS),
        collectors=get_collectors(arm_client, graph_client, settings),
        iterator=ScopeIterator(
            concurrency=settings.SCOPE_CONCURRENCY,
            policy=FailurePolicy(settings.SCOPE_FAILURE_POLICY),
        ),
        tick_timeout=settings.TICK_TIMEOUT_SECONDS,
        failure_policy=settings.TICK_FAILURE_POLICY,
    )
    scheduler.setup()
    return scheduler
