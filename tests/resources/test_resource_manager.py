# tests/resources/test_resource_manager.py
"""Tests for resource registration and inventory scheduling."""

import pytest

from siteagent.contracts.errors import DuplicateActivityError
from siteagent.contracts.identity import TransactionID
from siteagent.resources.catalog import CATALOG
from siteagent.resources.manager import inventory_workflow_name


class TestRegistration:
    def test_every_activity_and_workflow_registered(self, harness) -> None:
        substrate = harness.substrate
        for kind in CATALOG:
            for activity in kind.activities:
                assert kind.invoke_activity_name(activity) in substrate.activities
                assert kind.publish_activity_name(activity) in substrate.activities
                assert kind.workflow_name(activity) in substrate.workflows

    def test_shared_publish_activity_registered_once(self, harness) -> None:
        names = harness.substrate.activities.names()
        assert names.count("PublishUpdateMachineInfo") == 1

    def test_second_registration_rejected(self, harness) -> None:
        with pytest.raises(DuplicateActivityError):
            harness.resources.register()

    def test_unknown_resource_type(self, harness) -> None:
        with pytest.raises(KeyError):
            harness.resources.run("widget", "Create", TransactionID.now("w-1"))


class TestInventory:
    def test_schedules_listable_kinds(self, harness) -> None:
        scheduled = harness.resources.schedule_inventory("0 * * * *", "site")

        listable = [kind for kind in CATALOG if "GetList" in kind.activities]
        assert scheduled == [inventory_workflow_name(kind) for kind in listable]
        assert "CollectSkuInventory" in scheduled
        assert len(harness.substrate.scheduled) == len(listable)

    def test_collect_inventory_publishes_site_scoped_list(self, harness) -> None:
        harness.client.default = [{"id": "sku-1"}]

        outcome = harness.resources.collect_inventory("sku")

        assert outcome.succeeded
        workflow, tid, payload = harness.publisher.published[0]
        assert workflow == "UpdateSkuInventory"
        assert tid.resource_id == "site-0001"
        assert payload["items"] == [{"id": "sku-1"}]
