# src/azexporter/collectors/iam_collector.py
"""
IamCollector publishes role definitions, role assignments and the
directory principals those assignments refer to.

Principal IDs are resolved through Microsoft Graph, which accepts a
bounded number of IDs per call; the lookups run batch by batch and are
folded into a single MetricSet.
"""

import logging
from typing import List

from ..metrics.metric_set import MetricSet
from ..metrics.publisher import Registry
from ..models.azure import (
    ApplicationPrincipal,
    GroupPrincipal,
    Principal,
    Scope,
    ServicePrincipal,
    UnknownPrincipal,
    UserPrincipal,
    extract_role_definition_id,
    parse_principal,
    parse_resource_id,
)
from .base_collector import BaseCollector, Emit, chunked

logger = logging.getLogger(__name__)

AUTHORIZATION_API_VERSION = "2022-04-01"

# Graph rejects getByIds calls with more IDs than this.
PRINCIPAL_BATCH_SIZE = 999


class IamCollector(BaseCollector):
    name = "iam"

    def __init__(self, client, graph_client, batch_size: int = PRINCIPAL_BATCH_SIZE):
        super().__init__()
        self.client = client
        self.graph_client = graph_client
        self.batch_size = batch_size
        self.role_assignment_info = None
        self.role_definition_info = None
        self.principal_info = None

    def setup(self, registry: Registry) -> None:
        self.role_assignment_info = self.register(
            registry,
            "azurerm_iam_roleassignment_info",
            "Azure IAM RoleAssignment info",
            ["subscriptionID", "roleAssignmentID", "resourceID", "resourceGroup", "principalID", "roleDefinitionID"],
        )
        self.role_definition_info = self.register(
            registry,
            "azurerm_iam_roledefinition_info",
            "Azure IAM RoleDefinition info",
            ["subscriptionID", "roleDefinitionID", "name", "roleName", "roleType"],
        )
        self.principal_info = self.register(
            registry,
            "azurerm_iam_principal_info",
            "Azure IAM Principal info",
            ["subscriptionID", "principalID", "principalName", "principalType"],
        )

    async def collect(self, scope: Scope, emit: Emit) -> None:
        await self._collect_role_definitions(scope, emit)
        await self._collect_role_assignments(scope, emit)

    async def _collect_role_definitions(self, scope: Scope, emit: Emit) -> None:
        rows = await self.client.list_all(
            f"{scope.resource_id}/providers/Microsoft.Authorization/roleDefinitions",
            params={"api-version": AUTHORIZATION_API_VERSION},
        )

        info = MetricSet()
        for row in rows:
            properties = row.get("properties") or {}
            info.add_info(
                {
                    "subscriptionID": scope.subscription_id,
                    "roleDefinitionID": extract_role_definition_id(row.get("id")),
                    "name": row.get("name"),
                    "roleName": properties.get("roleName"),
                    "roleType": properties.get("type"),
                }
            )
        emit(info, self.role_definition_info)

    async def _collect_role_assignments(self, scope: Scope, emit: Emit) -> None:
        rows = await self.client.list_all(
            f"{scope.resource_id}/providers/Microsoft.Authorization/roleAssignments",
            params={"api-version": AUTHORIZATION_API_VERSION},
        )

        info = MetricSet()
        principal_ids = {}
        for row in rows:
            properties = row.get("properties") or {}
            principal_id = properties.get("principalId") or ""
            resource_scope = properties.get("scope") or ""
            info.add_info(
                {
                    "subscriptionID": scope.subscription_id,
                    "roleAssignmentID": row.get("id"),
                    "roleDefinitionID": extract_role_definition_id(properties.get("roleDefinitionId")),
                    "resourceID": resource_scope,
                    "resourceGroup": parse_resource_id(resource_scope).resource_group,
                    "principalID": principal_id,
                }
            )
            if principal_id:
                principal_ids[principal_id] = None

        principals = await self.collect_principals(scope, list(principal_ids))
        emit(principals, self.principal_info)
        emit(info, self.role_assignment_info)

    async def collect_principals(self, scope: Scope, principal_ids: List[str]) -> MetricSet:
        """
        Resolves principal IDs in sequential batches into one MetricSet. Every
        page of a batch is read before the next batch is sent.
        """
        info = MetricSet()
        unique_ids = list(dict.fromkeys(principal_ids))
        for batch in chunked(unique_ids, self.batch_size):
            response = await self.graph_client.post("/v1.0/directoryObjects/getByIds", json={"ids": batch})
            rows = list(response.get("value") or [])
            next_link = response.get("@odata.nextLink")
            if next_link:
                rows.extend(await self.graph_client.list_all(next_link))
            for row in rows:
                labels = self._principal_labels(scope, parse_principal(row))
                if labels is not None:
                    info.add_info(labels)
        logger.debug("Scope %s: resolved %d of %d principal(s)", scope, len(info), len(unique_ids))
        return info

    @staticmethod
    def _principal_labels(scope: Scope, principal: Principal):
        if isinstance(principal, (UserPrincipal, GroupPrincipal, ServicePrincipal, ApplicationPrincipal)):
            return {
                "subscriptionID": scope.subscription_id,
                "principalID": principal.object_id,
                "principalName": principal.display_name,
                "principalType": principal.kind,
            }
        if isinstance(principal, UnknownPrincipal):
            logger.debug("Dropping principal %s of unsupported type %s", principal.object_id, principal.odata_type)
            return None
        raise TypeError(f"Unhandled principal kind: {principal!r}")

    async def close(self):
        await self.client.close()
        await self.graph_client.close()
