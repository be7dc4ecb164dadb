"""
Tests for the reconciler against in-memory fake handlers.
"""

import pytest

from ravel.errors import Cancelled, ImmutableFieldChanged, RequiredFieldMissing
from ravel.model import DNSRecord, Gateway, Instance, LoadBalancer, PrivateNetwork, Volume
from ravel.reconcile import CREATE_ORDER, Action, ReconcileContext, Reconciler, reconcile_all, sort_for_create
from ravel.wait import Deadline

CLUSTER_TAGS = {"KubernetesCluster": "c1"}


def nodes(count=1, **kwargs):
    values = dict(name="nodes", zone="eu-west-3a", commercial_type="t3.small", image="ami-1",
                  count=count, tags=dict(CLUSTER_TAGS))
    values.update(kwargs)
    return Instance(**values)


class TestCreate:
    """Test the absent -> present path."""

    def test_creates_absent_resource(self, cloud):
        desired = Volume(name="data", zone="eu-west-3a", size_gb=10, tags=dict(CLUSTER_TAGS))
        context = ReconcileContext(cluster_name="c1")

        result = Reconciler(cloud["volume"], context).run(desired)

        assert result.action == Action.CREATED
        assert cloud["volume"].mutating_calls() == [("create", "data")]
        assert context.outputs[("volume", "data")]["ids"] == result.outputs["ids"]
        assert len(result.outputs["ids"]) == 1

    def test_creates_every_member_of_a_group(self, cloud):
        result = Reconciler(cloud["instance"]).run(nodes(count=3))

        assert result.action == Action.CREATED
        assert cloud["instance"].mutating_calls() == [("create", "nodes")] * 3
        assert len(result.outputs["ids"]) == 3
        assert list(result.outputs["ids"]) == sorted(result.outputs["ids"])

    def test_desired_state_is_not_mutated(self, cloud):
        desired = nodes(count=2)
        Reconciler(cloud["instance"]).run(desired)

        assert desired.ids == ()

    def test_required_field_missing(self, cloud):
        desired = Volume(name="data", zone="eu-west-3a", size_gb=None)

        with pytest.raises(RequiredFieldMissing) as exc_info:
            Reconciler(cloud["volume"]).run(desired)

        assert exc_info.value.field == "size_gb"
        assert cloud["volume"].mutating_calls() == []

    def test_missing_field_is_fine_once_the_resource_exists(self, cloud):
        cloud["volume"].add("data", state=Volume(name="data", zone="eu-west-3a", size_gb=10))

        result = Reconciler(cloud["volume"]).run(Volume(name="data", zone="eu-west-3a"))

        assert result.action == Action.UNCHANGED


class TestIdempotence:
    """A second run with the same desired state changes nothing."""

    @pytest.mark.parametrize("desired", [
        nodes(count=3),
        Volume(name="data", zone="eu-west-3a", size_gb=10, tags=dict(CLUSTER_TAGS)),
        PrivateNetwork(name="vpc-c1", zone="eu-west-3a", ip_range="10.0.0.0/16", tags=dict(CLUSTER_TAGS)),
        Gateway(name="gw-c1", network="vpc-c1", tags=dict(CLUSTER_TAGS)),
        LoadBalancer(name="api-c1", network="vpc-c1", tags=dict(CLUSTER_TAGS)),
        DNSRecord(name="api.c1", values=("1.2.3.4",)),
    ])
    def test_second_run_is_a_no_op(self, cloud, desired):
        handler = cloud[desired.kind]
        Reconciler(handler).run(desired)
        calls_after_first = len(handler.mutating_calls())

        result = Reconciler(handler).run(desired)

        assert result.action == Action.UNCHANGED
        assert result.changed_fields == []
        assert len(handler.mutating_calls()) == calls_after_first


class TestUpdate:
    """Test the present -> updating path."""

    def test_scale_down_deletes_exactly_the_excess(self, cloud):
        """Desired count 3 against 5 live members deletes 2, highest IDs first."""
        handler = cloud["instance"]
        ids = [handler.add("nodes", state=nodes(count=5)) for _ in range(5)]

        result = Reconciler(handler).run(nodes(count=3))

        deletes = [c for c in handler.mutating_calls() if c[0] == "delete"]
        assert deletes == [("delete", ids[4]), ("delete", ids[3])]
        assert sorted(handler.resources) == ids[:3]
        assert result.action == Action.UPDATED
        assert result.changed_fields == ["count"]
        assert result.outputs["ids"] == tuple(ids[:3])

    def test_scale_up_creates_the_missing(self, cloud):
        handler = cloud["instance"]
        handler.add("nodes", state=nodes(count=1))

        result = Reconciler(handler).run(nodes(count=3))

        assert handler.mutating_calls() == [("create", "nodes"), ("create", "nodes")]
        assert len(handler.resources) == 3
        assert len(result.outputs["ids"]) == 3

    def test_tag_change_goes_through_update(self, cloud):
        handler = cloud["volume"]
        handler.add("data", state=Volume(name="data", zone="eu-west-3a", size_gb=10, tags={"team": "a"}))

        result = Reconciler(handler).run(Volume(name="data", zone="eu-west-3a", size_gb=10, tags={"team": "b"}))

        assert handler.mutating_calls() == [("update", "data", ("tags",))]
        assert result.action == Action.UPDATED
        assert result.changed_fields == ["tags"]

    def test_count_is_not_passed_to_update(self, cloud):
        handler = cloud["instance"]
        handler.add("nodes", state=nodes(count=1, tags={"team": "a"}))

        Reconciler(handler).run(nodes(count=2, tags={"team": "b"}))

        assert ("update", "nodes", ("tags",)) in handler.mutating_calls()
        assert handler.mutating_calls().count(("create", "nodes")) == 1

    def test_immutable_change_stops_before_any_mutation(self, cloud):
        handler = cloud["instance"]
        handler.add("nodes", state=nodes(zone="eu-west-3a"))

        with pytest.raises(ImmutableFieldChanged):
            Reconciler(handler).run(nodes(zone="eu-west-3b", count=4))

        assert handler.mutating_calls() == []


class TestReconcileAll:
    """Test reconciling a whole set of desired states."""

    def test_dependency_order(self, cloud):
        desired = [
            DNSRecord(name="api.c1", values=("1.2.3.4",)),
            nodes(count=1, network="vpc-c1"),
            LoadBalancer(name="api-c1", network="vpc-c1"),
            Volume(name="data", zone="eu-west-3a", size_gb=10),
            Gateway(name="gw-c1", network="vpc-c1"),
            PrivateNetwork(name="vpc-c1", zone="eu-west-3a", ip_range="10.0.0.0/16"),
        ]
        context = ReconcileContext(cluster_name="c1", registry=cloud.registry)

        results = reconcile_all(desired, context)

        assert [r.kind for r in results] == list(CREATE_ORDER)
        assert [kind for kind, _ in context.outputs] == list(CREATE_ORDER)

    def test_sort_is_stable_within_a_kind(self):
        desired = [Volume(name="b"), PrivateNetwork(name="n"), Volume(name="a")]
        assert [d.name for d in sort_for_create(desired)] == ["n", "b", "a"]

    def test_rerun_completes_a_partial_run(self, cloud):
        """A run that failed half way leaves work a second run finishes without redoing."""
        network = PrivateNetwork(name="vpc-c1", zone="eu-west-3a", ip_range="10.0.0.0/16")
        context = ReconcileContext(cluster_name="c1", registry=cloud.registry)

        with pytest.raises(RequiredFieldMissing):
            reconcile_all([network, Gateway(name="gw-c1")], context)
        assert len(cloud["private-network"].resources) == 1

        results = reconcile_all([network, Gateway(name="gw-c1", network="vpc-c1")], context)

        assert [r.action for r in results] == [Action.UNCHANGED, Action.CREATED]
        assert cloud["private-network"].mutating_calls() == [("create", "vpc-c1")]

    def test_on_result_callback(self, cloud):
        seen = []
        context = ReconcileContext(cluster_name="c1", registry=cloud.registry)

        reconcile_all([Volume(name="data", zone="eu-west-3a", size_gb=1)], context, on_result=seen.append)

        assert [r.name for r in seen] == ["data"]

    def test_cancelled_deadline(self, cloud):
        deadline = Deadline()
        deadline.cancel()
        context = ReconcileContext(cluster_name="c1", registry=cloud.registry, deadline=deadline)

        with pytest.raises(Cancelled):
            reconcile_all([Volume(name="data", zone="eu-west-3a", size_gb=1)], context)

        assert cloud["volume"].calls == []

    def test_requires_registry(self):
        with pytest.raises(ValueError):
            reconcile_all([], ReconcileContext(cluster_name="c1"))
