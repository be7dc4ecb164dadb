"""
Tests for the run-recording entry points.
"""

import pytest

from ravel import orchestrator
from ravel.errors import NotFound, UnsupportedOperation
from ravel.events import EventTypes, read_events
from ravel.handlers.base import PowerControl, ResourceHandler
from ravel.handlers.registry import HandlerRegistry
from ravel.inventory import DependencyTable
from ravel.model import Volume
from ravel.power import ACTION_TARGETS, PowerAction
from ravel.state import read_report_json, read_run_json


class TestReconcileCluster:
    def test_success_records_the_run(self, cloud, ravel_home):
        desired = [Volume(name="data", zone="eu-west-3a", size_gb=10)]

        result = orchestrator.reconcile_cluster("c1", desired, cloud.registry, settings={"region": "eu-west-3"})

        run_id = result["run_id"]
        assert result["status"] == "succeeded"
        assert result["results"][0]["action"] == "created"
        assert "volume/data" in result["outputs"]
        assert (ravel_home / run_id).is_dir()
        assert read_run_json(run_id)["settings"] == {"region": "eu-west-3"}
        assert read_report_json(run_id)["status"] == "succeeded"
        types = [e["type"] for e in read_events(run_id)]
        assert types == [EventTypes.RECONCILE_START, EventTypes.TASK_DONE, EventTypes.DONE]

    def test_failure_is_reported(self, cloud, ravel_home):
        result = orchestrator.reconcile_cluster("c1", [Volume(name="data")], cloud.registry)

        assert result["status"] == "failed"
        assert result["error_type"] == "RequiredFieldMissing"
        types = [e["type"] for e in read_events(result["run_id"])]
        assert types[-1] == EventTypes.ERROR
        assert EventTypes.DONE not in types


class TestDeleteClusterResources:
    def test_success(self, cloud, ravel_home):
        cloud["instance"].add("nodes")
        cloud["volume"].add("data")

        result = orchestrator.delete_cluster_resources("c1", cloud.registry)

        assert result["status"] == "succeeded"
        assert result["plan"] == [["instance:instance-001"], ["volume:volume-001"]]
        assert result["report"]["deleted"] == ["instance:instance-001", "volume:volume-001"]
        assert orchestrator.status(result["run_id"])["status"] == "succeeded"

    def test_dry_run_deletes_nothing(self, cloud, ravel_home):
        cloud["volume"].add("data")

        result = orchestrator.delete_cluster_resources("c1", cloud.registry, dry_run=True)

        assert result["status"] == "planned"
        assert cloud.deleted == []
        assert orchestrator.status(result["run_id"])["status"] == "planned"

    def test_stuck(self, make_cloud, ravel_home):
        cloud = make_cloud(kinds=("a", "b"), dependencies=DependencyTable({"a": ["b"], "b": ["a"]}))
        cloud["a"].add("a")
        cloud["b"].add("b")

        result = orchestrator.delete_cluster_resources("c1", cloud.registry, dependencies=cloud.dependencies)

        assert result["status"] == "stuck"
        assert result["stuck"] == {"a:a-001": ["b"], "b:b-001": ["a"]}
        assert orchestrator.status(result["run_id"])["status"] == "stuck"

    def test_failure(self, cloud, ravel_home):
        volume_id = cloud["volume"].add("data")
        cloud["volume"].delete_errors[volume_id] = RuntimeError("access denied")

        result = orchestrator.delete_cluster_resources("c1", cloud.registry)

        assert result["status"] == "failed"
        assert result["error"] == "access denied"
        assert read_report_json(result["run_id"])["status"] == "failed"


class TestStatusAndLogs:
    def test_unknown_run(self, ravel_home):
        assert orchestrator.status("r-20260101-000000-abcd") == {
            "run_id": "r-20260101-000000-abcd", "status": "not_found",
        }
        assert orchestrator.logs("r-20260101-000000-abcd") == []

    def test_invalid_run_id(self, ravel_home):
        assert orchestrator.status("../etc")["status"] == "not_found"
        assert orchestrator.logs("../etc") == []

    def test_status_includes_the_report(self, cloud, ravel_home):
        result = orchestrator.delete_cluster_resources("c1", cloud.registry, run_id="r-20260101-000000-abcd")

        status = orchestrator.status("r-20260101-000000-abcd")

        assert status["operation"] == "teardown"
        assert status["cluster"] == "c1"
        assert status["report"]["run_id"] == result["run_id"]
        assert [e["type"] for e in orchestrator.logs(result["run_id"])][-1] == EventTypes.DONE


class PoweredInstances(ResourceHandler, PowerControl):
    """An instance handler that only knows about power."""

    kind = "instance"
    capabilities = (PowerControl,)

    def __init__(self, state):
        self.state = state
        self.actions = []

    def list(self, cluster_name):
        return []

    def get(self, resource_id):
        raise NotFound(self.kind, resource_id)

    def create(self, desired):
        raise UnsupportedOperation(self.kind, "create")

    def delete(self, handle):
        raise NotFound(self.kind, handle.id)

    def find(self, desired):
        return None

    def power_state(self, server_id):
        return self.state

    def power_action(self, server_id, action):
        self.actions.append(action)
        self.state = ACTION_TARGETS[action].value

    def attached_volumes(self, server_id):
        return []

    def volume_state(self, volume_id):
        return "available"


class TestSetPowerState:
    def test_through_the_registry(self):
        instances = PoweredInstances("running")

        state = orchestrator.set_power_state(HandlerRegistry([instances]), "i-1", "stopped", interval=0.01)

        assert state == "stopped"
        assert instances.actions == [PowerAction.POWER_OFF]

    def test_missing_capability(self, cloud):
        with pytest.raises(UnsupportedOperation) as exc_info:
            orchestrator.set_power_state(cloud.registry, "i-1", "stopped")

        assert exc_info.value.operation == "PowerControl"
