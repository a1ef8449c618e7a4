# src/azexporter/collectors/resources_collector.py

import logging
from typing import Sequence

from ..metrics.metric_set import MetricSet
from ..metrics.publisher import Registry
from ..models.azure import Scope, parse_resource_id
from .base_collector import BaseCollector, Emit, tag_label_names, tag_labels

logger = logging.getLogger(__name__)

RESOURCES_API_VERSION = "2021-04-01"


def _lower(value) -> str:
    return (value or "").lower()


class ResourcesCollector(BaseCollector):
    """Publishes one info series per resource group and per resource of a subscription."""

    name = "resources"

    def __init__(self, client, resource_tags: Sequence[str] = (), resource_group_tags: Sequence[str] = ()):
        super().__init__()
        self.client = client
        self.resource_tags = list(resource_tags)
        self.resource_group_tags = list(resource_group_tags)
        self.resource_group_info = None
        self.resource_info = None

    def setup(self, registry: Registry) -> None:
        self.resource_group_info = self.register(
            registry,
            "azurerm_resourcegroup_info",
            "Azure ResourceManager resourcegroup information",
            ["resourceID", "subscriptionID", "resourceGroup", "location", "provisioningState"]
            + tag_label_names(self.resource_group_tags),
        )
        self.resource_info = self.register(
            registry,
            "azurerm_resource_info",
            "Azure Resource information",
            [
                "resourceID",
                "resourceName",
                "subscriptionID",
                "resourceGroup",
                "resourceType",
                "provider",
                "location",
                "provisioningState",
            ]
            + tag_label_names(self.resource_tags),
        )

    async def collect(self, scope: Scope, emit: Emit) -> None:
        await self._collect_resource_groups(scope, emit)
        await self._collect_resources(scope, emit)

    async def _collect_resource_groups(self, scope: Scope, emit: Emit) -> None:
        rows = await self.client.list_all(
            f"{scope.resource_id}/resourcegroups", params={"api-version": RESOURCES_API_VERSION}
        )

        info = MetricSet()
        for row in rows:
            azure_id = parse_resource_id(row.get("id"))
            labels = {
                "resourceID": _lower(row.get("id")),
                "subscriptionID": azure_id.subscription,
                "resourceGroup": azure_id.resource_group,
                "location": _lower(row.get("location")),
                "provisioningState": _lower((row.get("properties") or {}).get("provisioningState")),
            }
            labels.update(tag_labels(row.get("tags"), self.resource_group_tags))
            info.add_info(labels)

        logger.debug("Scope %s: %d resource group(s)", scope, len(info))
        emit(info, self.resource_group_info)

    async def _collect_resources(self, scope: Scope, emit: Emit) -> None:
        rows = await self.client.list_all(
            f"{scope.resource_id}/resources",
            params={"api-version": RESOURCES_API_VERSION, "$expand": "provisioningState"},
        )

        info = MetricSet()
        for row in rows:
            resource_id = row.get("id") or ""
            azure_id = parse_resource_id(resource_id)
            labels = {
                "resourceID": resource_id.lower(),
                "resourceName": azure_id.resource_name,
                "subscriptionID": azure_id.subscription,
                "resourceGroup": azure_id.resource_group,
                "resourceType": azure_id.resource_type,
                "provider": azure_id.provider,
                "location": _lower(row.get("location")),
                "provisioningState": _lower(row.get("provisioningState")),
            }
            labels.update(tag_labels(row.get("tags"), self.resource_tags))
            info.add_info(labels)

        logger.debug("Scope %s: %d resource(s)", scope, len(info))
        emit(info, self.resource_info)

    async def close(self):
        await self.client.close()
