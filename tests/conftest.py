# tests/conftest.py

import pytest

from azexporter.collectors.base_collector import BaseCollector
from azexporter.metrics.metric_set import MetricSet
from azexporter.metrics.publisher import Registry
from azexporter.models.azure import Scope


@pytest.fixture(autouse=True)
def mock_settings_env_vars(monkeypatch):
    """
    Pytest fixture to mock environment variables for the config module.

    Runs for every test so that properties resolved at access time
    (subscription allow-list, tag labels, enabled collectors) are
    predictable and isolated from the actual environment.
    """
    monkeypatch.setenv("AZURE_TENANT_ID", "tenant-1")
    monkeypatch.setenv("AZURE_CLIENT_ID", "client-1")
    monkeypatch.setenv("AZURE_CLIENT_SECRET", "secret-1")
    monkeypatch.delenv("AZURE_SUBSCRIPTIONS", raising=False)
    monkeypatch.setenv("AZURE_RESOURCE_TAGS", "owner")
    monkeypatch.setenv("AZURE_RESOURCEGROUP_TAGS", "owner")
    monkeypatch.delenv("COLLECTORS", raising=False)


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def scopes():
    return [Scope(subscription_id=f"sub-{i}", display_name=f"Subscription {i}") for i in (1, 2, 3)]


class ScriptedCollector(BaseCollector):
    """
    Collector emitting one info row per scope, as configured by `rows`
    (scope id -> label value). Scopes listed in `failures` raise instead.
    """

    name = "scripted"

    def __init__(self, rows=None, failures=None, metric="test_info"):
        super().__init__()
        self.rows = rows or {}
        self.failures = failures or {}
        self.metric = metric
        self.calls = []
        self.publisher = None

    def setup(self, registry):
        self.publisher = self.register(registry, self.metric, "Scripted info", ["id"])

    async def collect(self, scope, emit):
        self.calls.append(scope.subscription_id)
        if scope.subscription_id in self.failures:
            raise self.failures[scope.subscription_id]
        metric_set = MetricSet()
        for value in self.rows.get(scope.subscription_id, []):
            metric_set.add_info({"id": value})
        emit(metric_set, self.publisher)


@pytest.fixture
def scripted_collector_cls():
    return ScriptedCollector
