# src/azexporter/collectors/database_collector.py

import logging
from typing import Dict, Sequence

from ..metrics.metric_set import MetricSet
from ..metrics.publisher import Registry
from ..models.azure import Scope, parse_resource_id
from .base_collector import BaseCollector, Emit, tag_label_names, tag_labels

logger = logging.getLogger(__name__)

# (label value for 'type', provider namespace, api version)
DATABASE_SERVER_KINDS = (
    ("postgresql", "Microsoft.DBforPostgreSQL", "2017-12-01"),
    ("mysql", "Microsoft.DBforMySQL", "2017-12-01"),
)

BYTES_PER_MB = 1048576


class DatabaseCollector(BaseCollector):
    """Publishes PostgreSQL and MySQL server inventory and status values."""

    name = "database"

    def __init__(self, client, resource_tags: Sequence[str] = ()):
        super().__init__()
        self.client = client
        self.resource_tags = list(resource_tags)
        self.database_info = None
        self.database_status = None

    def setup(self, registry: Registry) -> None:
        self.database_info = self.register(
            registry,
            "azurerm_database_info",
            "Azure Database info",
            [
                "resourceID",
                "subscriptionID",
                "location",
                "type",
                "serverName",
                "resourceGroup",
                "version",
                "skuName",
                "skuTier",
                "fqdn",
                "sslEnforcement",
                "geoRedundantBackup",
            ]
            + tag_label_names(self.resource_tags),
        )
        self.database_status = self.register(
            registry,
            "azurerm_database_status",
            "Azure Database status informations",
            ["resourceID", "type"],
        )

    async def collect(self, scope: Scope, emit: Emit) -> None:
        # Both server kinds share the two publishers, so everything is fetched
        # before the sets are emitted.
        info = MetricSet()
        status = MetricSet()
        for server_type, namespace, api_version in DATABASE_SERVER_KINDS:
            rows = await self.client.list_all(
                f"{scope.resource_id}/providers/{namespace}/servers", params={"api-version": api_version}
            )
            for row in rows:
                self._add_server(scope, server_type, row, info, status)
            logger.debug("Scope %s: %d %s server(s)", scope, len(rows), server_type)

        emit(info, self.database_info)
        emit(status, self.database_status)

    def _add_server(self, scope: Scope, server_type: str, row: Dict, info: MetricSet, status: MetricSet) -> None:
        resource_id = row.get("id") or ""
        properties = row.get("properties") or {}
        storage = properties.get("storageProfile") or {}
        sku = row.get("sku") or {}

        labels = {
            "resourceID": resource_id,
            "subscriptionID": scope.subscription_id,
            "location": row.get("location"),
            "type": server_type,
            "serverName": row.get("name"),
            "resourceGroup": parse_resource_id(resource_id).resource_group,
            "version": properties.get("version"),
            "skuName": sku.get("name"),
            "skuTier": sku.get("tier"),
            "fqdn": properties.get("fullyQualifiedDomainName"),
            "sslEnforcement": properties.get("sslEnforcement"),
            "geoRedundantBackup": storage.get("geoRedundantBackup"),
        }
        labels.update(tag_labels(row.get("tags"), self.resource_tags))
        info.add_info(labels)

        if storage.get("backupRetentionDays") is not None:
            status.add({"resourceID": resource_id, "type": "backupRetentionDays"}, storage["backupRetentionDays"])

        if properties.get("earliestRestoreDate"):
            status.add_time(
                {"resourceID": resource_id, "type": "earliestRestoreDate"}, properties["earliestRestoreDate"]
            )

        if properties.get("replicaCapacity") is not None:
            status.add({"resourceID": resource_id, "type": "replicaCapacity"}, properties["replicaCapacity"])

        if storage.get("storageMB") is not None:
            status.add({"resourceID": resource_id, "type": "storage"}, float(storage["storageMB"]) * BYTES_PER_MB)

    async def close(self):
        await self.client.close()
