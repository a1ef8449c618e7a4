# src/azexporter/collectors/graph_apps_collector.py

import logging
from typing import List, Optional, Sequence

from ..metrics.metric_set import MetricSet
from ..metrics.publisher import Registry
from ..models.azure import Scope
from .base_collector import BaseCollector, Emit

logger = logging.getLogger(__name__)

# Graph field name -> label value for 'credentialType'
CREDENTIAL_KINDS = (
    ("passwordCredentials", "password"),
    ("keyCredentials", "key"),
)


class GraphAppsCollector(BaseCollector):
    """
    Publishes app registrations of the tenant and the validity window of
    their credentials. Runs once per tick against the tenant, not per
    subscription.
    """

    name = "graph_apps"

    def __init__(self, graph_client, tenant_id: Optional[str] = None, application_filter: str = ""):
        super().__init__()
        self.graph_client = graph_client
        self.tenant_id = tenant_id
        self.application_filter = application_filter
        self.app_info = None
        self.app_credential = None

    def setup(self, registry: Registry) -> None:
        self.app_info = self.register(
            registry,
            "azurerm_graph_app_info",
            "Azure GraphQL applications",
            ["appAppID", "appObjectID", "appDisplayName", "appObjectType"],
        )
        self.app_credential = self.register(
            registry,
            "azurerm_graph_app_credential",
            "Azure GraphQL application credentials",
            ["appAppID", "credentialID", "credentialType", "type"],
        )

    def select_scopes(self, scopes: Sequence[Scope]) -> List[Scope]:
        return [Scope.tenant(self.tenant_id)]

    async def collect(self, scope: Scope, emit: Emit) -> None:
        params = {}
        if self.application_filter:
            params["$filter"] = self.application_filter
        rows = await self.graph_client.list_all("/v1.0/applications", params=params or None)

        apps = MetricSet()
        credentials = MetricSet()
        for row in rows:
            app_id = row.get("appId")
            apps.add_info(
                {
                    "appAppID": app_id,
                    "appObjectID": row.get("id"),
                    "appDisplayName": row.get("displayName"),
                    "appObjectType": "Application",
                }
            )

            for field, credential_type in CREDENTIAL_KINDS:
                for credential in row.get(field) or []:
                    for date_field, date_type in (("startDateTime", "startDate"), ("endDateTime", "endDate")):
                        if credential.get(date_field):
                            credentials.add_time(
                                {
                                    "appAppID": app_id,
                                    "credentialID": credential.get("keyId"),
                                    "credentialType": credential_type,
                                    "type": date_type,
                                },
                                credential[date_field],
                            )

        logger.debug("Tenant %s: %d application(s)", scope, len(apps))
        emit(apps, self.app_info)
        emit(credentials, self.app_credential)

    async def close(self):
        await self.graph_client.close()
