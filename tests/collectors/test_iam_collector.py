# tests/collectors/test_iam_collector.py

from unittest.mock import AsyncMock

import pytest

from azexporter.collectors.iam_collector import IamCollector
from azexporter.core.exceptions import ProviderError
from azexporter.models.azure import Scope

SCOPE = Scope(subscription_id="sub-1")

ROLE_DEFINITIONS = [
    {
        "id": "/subscriptions/sub-1/providers/Microsoft.Authorization/roleDefinitions/def-reader",
        "name": "def-reader",
        "properties": {"roleName": "Reader", "type": "BuiltInRole"},
    }
]

ROLE_ASSIGNMENTS = [
    {
        "id": "/subscriptions/sub-1/providers/Microsoft.Authorization/roleAssignments/ra-1",
        "properties": {
            "principalId": "user-1",
            "scope": "/subscriptions/sub-1/resourceGroups/RG-Data",
            "roleDefinitionId": "/subscriptions/sub-1/providers/Microsoft.Authorization/roleDefinitions/def-reader",
        },
    },
    {
        "id": "/subscriptions/sub-1/providers/Microsoft.Authorization/roleAssignments/ra-2",
        "properties": {
            "principalId": "user-1",
            "scope": "/subscriptions/sub-1",
            "roleDefinitionId": "/subscriptions/sub-1/providers/Microsoft.Authorization/roleDefinitions/def-reader",
        },
    },
    {
        "id": "/subscriptions/sub-1/providers/Microsoft.Authorization/roleAssignments/ra-3",
        "properties": {
            "principalId": "device-1",
            "scope": "/subscriptions/sub-1",
            "roleDefinitionId": "/subscriptions/sub-1/providers/Microsoft.Authorization/roleDefinitions/def-reader",
        },
    },
]

DIRECTORY_OBJECTS = {
    "user-1": {"@odata.type": "#microsoft.graph.user", "id": "user-1", "displayName": "Alice"},
    "device-1": {"@odata.type": "#microsoft.graph.device", "id": "device-1", "displayName": "Laptop"},
}


def _arm_client():
    client = AsyncMock()

    async def list_all(path, params=None):
        if path.endswith("/roleDefinitions"):
            return ROLE_DEFINITIONS
        if path.endswith("/roleAssignments"):
            return ROLE_ASSIGNMENTS
        raise AssertionError(f"unexpected path {path}")

    client.list_all.side_effect = list_all
    return client


def _graph_client(objects=None):
    objects = DIRECTORY_OBJECTS if objects is None else objects
    client = AsyncMock()

    async def post(path, json):
        assert path == "/v1.0/directoryObjects/getByIds"
        return {"value": [objects[object_id] for object_id in json["ids"] if object_id in objects]}

    client.post.side_effect = post
    return client


async def _collect(collector):
    order = []
    emitted = {}

    def emit(metric_set, publisher):
        order.append(publisher.name)
        emitted[publisher.name] = metric_set

    await collector.collect(SCOPE, emit)
    return order, emitted


@pytest.mark.asyncio
async def test_collect_emits_definitions_principals_and_assignments(registry):
    collector = IamCollector(_arm_client(), _graph_client())
    collector.setup(registry)

    order, emitted = await _collect(collector)

    assert order == ["azurerm_iam_roledefinition_info", "azurerm_iam_principal_info", "azurerm_iam_roleassignment_info"]

    (definition,) = emitted["azurerm_iam_roledefinition_info"]
    assert definition.labels == {
        "subscriptionID": "sub-1",
        "roleDefinitionID": "def-reader",
        "name": "def-reader",
        "roleName": "Reader",
        "roleType": "BuiltInRole",
    }

    assignments = [sample.labels for sample in emitted["azurerm_iam_roleassignment_info"]]
    assert len(assignments) == 3
    assert assignments[0]["resourceGroup"] == "rg-data"
    assert assignments[0]["roleDefinitionID"] == "def-reader"
    assert assignments[1]["resourceGroup"] == ""

    principals = [sample.labels for sample in emitted["azurerm_iam_principal_info"]]
    assert principals == [
        {"subscriptionID": "sub-1", "principalID": "user-1", "principalName": "Alice", "principalType": "User"}
    ]


@pytest.mark.asyncio
async def test_principal_lookups_are_batched(registry):
    ids = [f"principal-{i}" for i in range(2500)]
    objects = {
        object_id: {"@odata.type": "#microsoft.graph.servicePrincipal", "id": object_id, "displayName": object_id}
        for object_id in ids
    }
    graph = _graph_client(objects)
    collector = IamCollector(AsyncMock(), graph)
    collector.setup(registry)

    info = await collector.collect_principals(SCOPE, ids + ids[:10])

    batch_sizes = [len(call.kwargs["json"]["ids"]) for call in graph.post.await_args_list]
    assert batch_sizes == [999, 999, 502]
    assert len(info) == 2500
    assert {sample.labels["principalType"] for sample in info} == {"ServicePrincipal"}
    assert len({sample.labels["principalID"] for sample in info}) == 2500


@pytest.mark.asyncio
async def test_no_principals_means_no_graph_call(registry):
    graph = _graph_client()
    collector = IamCollector(AsyncMock(), graph)
    collector.setup(registry)

    info = await collector.collect_principals(SCOPE, [])

    assert len(info) == 0
    graph.post.assert_not_awaited()


@pytest.mark.asyncio
async def test_principal_lookup_failure_propagates(registry):
    graph = AsyncMock()
    graph.post.side_effect = ProviderError("throttled", transient=True, status_code=429)
    collector = IamCollector(_arm_client(), graph)
    collector.setup(registry)

    emitted = []
    with pytest.raises(ProviderError):
        await collector.collect(SCOPE, lambda metric_set, publisher: emitted.append(publisher.name))

    assert "azurerm_iam_roleassignment_info" not in emitted


@pytest.mark.asyncio
async def test_close_closes_both_clients(registry):
    arm, graph = AsyncMock(), AsyncMock()
    collector = IamCollector(arm, graph)

    await collector.close()

    arm.close.assert_awaited_once()
    graph.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_principal_batch_follows_next_link(registry):
    graph = AsyncMock()
    graph.post.return_value = {
        "value": [DIRECTORY_OBJECTS["user-1"]],
        "@odata.nextLink": "https://graph.example.com/v1.0/directoryObjects/getByIds?$skiptoken=abc",
    }
    graph.list_all.return_value = [{"@odata.type": "#microsoft.graph.group", "id": "group-1", "displayName": "Ops"}]
    collector = IamCollector(AsyncMock(), graph)
    collector.setup(registry)

    info = await collector.collect_principals(SCOPE, ["user-1", "group-1"])

    assert sorted(sample.labels["principalID"] for sample in info) == ["group-1", "user-1"]
    graph.list_all.assert_awaited_once_with(
        "https://graph.example.com/v1.0/directoryObjects/getByIds?$skiptoken=abc"
    )


@pytest.mark.asyncio
async def test_principal_next_link_failure_propagates(registry):
    graph = AsyncMock()
    graph.post.return_value = {"value": [], "@odata.nextLink": "https://graph.example.com/next"}
    graph.list_all.side_effect = ProviderError("throttled", transient=True, status_code=429)
    collector = IamCollector(AsyncMock(), graph)
    collector.setup(registry)

    with pytest.raises(ProviderError):
        await collector.collect_principals(SCOPE, ["user-1"])
