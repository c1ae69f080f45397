import pytest

from hubreg.client import ApiClient, Lister
from hubreg.controller import AggregateError, Queue, Recorder, SyncContext
from hubreg.healthcheck import AddOnHealthCheckController
from hubreg.model import (
    CONDITION_AVAILABLE,
    Condition,
    ConditionStatus,
    ManagedCluster,
    ManagedClusterAddOn,
    ObjectMeta,
    find_condition,
)

CLUSTER = "testmanagedcluster"


def new_cluster(status=None):
    conditions = [] if status is None else [Condition(CONDITION_AVAILABLE, status, "reason", "msg")]
    return ManagedCluster(meta=ObjectMeta(name=CLUSTER), conditions=conditions)


def run(clusters, addons, client_addons=None):
    client = ApiClient(*(addons if client_addons is None else client_addons))
    ctrl = AddOnHealthCheckController(client, Lister(*clusters, *addons))
    recorder = Recorder()
    ctrl.sync(SyncContext(CLUSTER, Queue(), recorder))
    return client, recorder


def test_cluster_deleted():
    client, _ = run([], [])
    assert client.actions == []


def test_cluster_not_accepted():
    client, _ = run([new_cluster()], [])
    assert client.actions == []


def test_cluster_available():
    client, _ = run([new_cluster(ConditionStatus.TRUE)], [])
    assert client.actions == []


def test_cluster_unavailable_leaves_addons():
    addon = ManagedClusterAddOn(meta=ObjectMeta(namespace=CLUSTER, name="test"))
    client, _ = run([new_cluster(ConditionStatus.FALSE)], [addon])
    assert client.actions == []


def test_cluster_unknown():
    addon = ManagedClusterAddOn(meta=ObjectMeta(namespace=CLUSTER, name="test"))
    client, recorder = run([new_cluster(ConditionStatus.UNKNOWN)], [addon])
    assert [a.verb for a in client.actions] == ["get", "update"]
    updated = client.actions[1].obj
    cond = find_condition(updated.conditions, "Available")
    assert cond is not None
    assert cond.status == ConditionStatus.UNKNOWN
    assert (cond.reason, cond.message) == ("reason", "msg")
    assert [reason for reason, _ in recorder.events] == ["ManagedClusterAddOnStatusUpdated"]


def test_cluster_unknown_already_marked_does_not_update():
    addon = ManagedClusterAddOn(
        meta=ObjectMeta(namespace=CLUSTER, name="test"),
        conditions=[Condition("Available", ConditionStatus.UNKNOWN, "reason", "msg")],
    )
    client, recorder = run([new_cluster(ConditionStatus.UNKNOWN)], [addon])
    assert [a.verb for a in client.actions] == ["get"]
    assert recorder.events == []


def test_update_failures_are_aggregated():
    addons = [
        ManagedClusterAddOn(meta=ObjectMeta(namespace=CLUSTER, name="a")),
        ManagedClusterAddOn(meta=ObjectMeta(namespace=CLUSTER, name="b")),
    ]
    with pytest.raises(AggregateError) as info:
        run([new_cluster(ConditionStatus.UNKNOWN)], addons, client_addons=[addons[1]])
    assert len(info.value.errors) == 1
    assert '"a" not found' in str(info.value)


def test_cluster_event_queues_name():
    ctrl = AddOnHealthCheckController(ApiClient(), Lister())
    ctrl.controller.handle(new_cluster())
    ctrl.controller.handle(ManagedClusterAddOn(meta=ObjectMeta(namespace=CLUSTER, name="x")))
    assert len(ctrl.controller.queue) == 1
    assert ctrl.controller.queue.get() == CLUSTER