# src/azexporter/models/azure.py
"""
Pydantic models for the Azure objects the pipeline passes around.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Scope(BaseModel):
    """
    One cloud subscription being polled.

    Tenant-wide collectors receive a scope whose subscription_id is empty.
    """

    model_config = ConfigDict(frozen=True)

    subscription_id: str = Field(..., description="Subscription GUID, empty for a tenant scope")
    display_name: str = Field("", description="Human readable subscription name")
    tenant_id: Optional[str] = Field(None, description="Tenant owning the subscription")
    state: Optional[str] = Field(None, description="Subscription state (Enabled, Disabled, ...)")

    @property
    def resource_id(self) -> str:
        return f"/subscriptions/{self.subscription_id}"

    @classmethod
    def tenant(cls, tenant_id: Optional[str]) -> "Scope":
        return cls(subscription_id="", display_name="tenant", tenant_id=tenant_id)

    def __str__(self) -> str:
        if not self.subscription_id:
            return f"tenant:{self.tenant_id or '-'}"
        return self.subscription_id


class Credential(BaseModel):
    """An access token for one API family."""

    token: str
    expires_on: Optional[datetime] = Field(None, description="Expiry of the token, None if it never expires")

    def expires_within(self, seconds: float) -> bool:
        if self.expires_on is None:
            return False
        return (self.expires_on - datetime.now(timezone.utc)).total_seconds() <= seconds


class Page(BaseModel):
    """One page of a paged list API response."""

    rows: List[Dict[str, Any]] = Field(default_factory=list)
    next_token: Optional[str] = None


class ResourceId(BaseModel):
    """The components of an ARM resource ID."""

    subscription: str = ""
    resource_group: str = ""
    provider: str = ""
    resource_type: str = ""
    resource_name: str = ""


def parse_resource_id(resource_id: str) -> ResourceId:
    """
    Splits an ARM ID like
    /subscriptions/<sub>/resourceGroups/<rg>/providers/<ns>/<type>/<name>[/<subtype>/<subname>...]
    into its components. Subscription and resource group are lowercased.
    Unknown shapes yield empty components rather than raising.
    """
    parts = [part for part in (resource_id or "").split("/") if part]
    pairs = {}
    i = 0
    while i + 1 < len(parts):
        key = parts[i].lower()
        if key == "providers":
            break
        pairs[key] = parts[i + 1]
        i += 2

    result = ResourceId(
        subscription=pairs.get("subscriptions", "").lower(),
        resource_group=pairs.get("resourcegroups", "").lower(),
    )

    if i < len(parts) and parts[i].lower() == "providers" and i + 1 < len(parts):
        provider = parts[i + 1]
        rest = parts[i + 2 :]
        types = rest[0::2]
        names = rest[1::2]
        result.provider = provider
        result.resource_type = "/".join(types)
        result.resource_name = names[-1] if names else ""
    return result


def extract_role_definition_id(azure_id: str) -> str:
    """Returns the GUID at the end of a role definition resource ID."""
    return (azure_id or "").rstrip("/").rsplit("/", 1)[-1]


# --- Directory principals -------------------------------------------------
# Graph returns directory objects tagged with '@odata.type'. Each known kind
# is its own model; anything else becomes UnknownPrincipal and is dropped.


class _PrincipalBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    object_id: str = Field(..., alias="id")
    display_name: Optional[str] = Field(None, alias="displayName")


class UserPrincipal(_PrincipalBase):
    kind: Literal["User"] = "User"


class GroupPrincipal(_PrincipalBase):
    kind: Literal["Group"] = "Group"


class ServicePrincipal(_PrincipalBase):
    kind: Literal["ServicePrincipal"] = "ServicePrincipal"


class ApplicationPrincipal(_PrincipalBase):
    kind: Literal["Application"] = "Application"


class UnknownPrincipal(BaseModel):
    kind: Literal["Unknown"] = "Unknown"
    odata_type: Optional[str] = None
    object_id: Optional[str] = None


Principal = Union[UserPrincipal, GroupPrincipal, ServicePrincipal, ApplicationPrincipal, UnknownPrincipal]

_PRINCIPAL_KINDS = {
    "#microsoft.graph.user": UserPrincipal,
    "#microsoft.graph.group": GroupPrincipal,
    "#microsoft.graph.serviceprincipal": ServicePrincipal,
    "#microsoft.graph.application": ApplicationPrincipal,
}


def parse_principal(data: Dict[str, Any]) -> Principal:
    odata_type = data.get("@odata.type")
    model = _PRINCIPAL_KINDS.get((odata_type or "").lower())
    if model is None or not data.get("id"):
        return UnknownPrincipal(odata_type=odata_type, object_id=data.get("id"))
    return model.model_validate(data)
