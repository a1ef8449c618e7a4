# src/azexporter/core/directory.py

import logging
from typing import List, Optional, Sequence

from ..models.azure import Scope
from .exceptions import AzExporterError, DirectoryError

logger = logging.getLogger(__name__)

SUBSCRIPTIONS_API_VERSION = "2020-01-01"


class SubscriptionDirectory:
    """
    Lists the subscriptions visible to the exporter's identity.

    When an allow-list is configured only those subscription IDs are kept;
    a configured ID that is not visible is logged and skipped.
    """

    def __init__(self, client, allow_list: Optional[Sequence[str]] = None):
        self.client = client
        self.allow_list = [sub.lower() for sub in (allow_list or [])]

    async def list_scopes(self) -> List[Scope]:
        try:
            rows = await self.client.list_all("/subscriptions", params={"api-version": SUBSCRIPTIONS_API_VERSION})
        except AzExporterError as e:
            raise DirectoryError(f"Failed to list subscriptions: {e}") from e

        scopes = []
        for row in rows:
            subscription_id = row.get("subscriptionId")
            if not subscription_id:
                logger.debug("Skipping subscription entry without subscriptionId: %s", row)
                continue
            scopes.append(
                Scope(
                    subscription_id=subscription_id,
                    display_name=row.get("displayName") or "",
                    tenant_id=row.get("tenantId"),
                    state=row.get("state"),
                )
            )

        if self.allow_list:
            visible = {scope.subscription_id.lower() for scope in scopes}
            for missing in sorted(set(self.allow_list) - visible):
                logger.warning("Configured subscription '%s' is not visible to this identity", missing)
            scopes = [scope for scope in scopes if scope.subscription_id.lower() in self.allow_list]

        logger.info("Discovered %d subscription(s)", len(scopes))
        return scopes


class StaticDirectory:
    """Returns a fixed list of scopes."""

    def __init__(self, scopes: Sequence[Scope]):
        self._scopes = list(scopes)

    async def list_scopes(self) -> List[Scope]:
        return list(self._scopes)
