from datetime import datetime, timezone

import pytest

from hubreg.client import ApiClient, Lister
from hubreg.controller import Queue, Recorder, SyncContext
from hubreg.discovery import (
    ADDON_FEATURE_PREFIX,
    ADDON_STATUS_AVAILABLE,
    ADDON_STATUS_UNREACHABLE,
    AddOnFeatureDiscoveryController,
    get_addon_label_value,
)
from hubreg.model import (
    ADDON_CONDITION_AVAILABLE,
    Condition,
    ConditionStatus,
    ManagedCluster,
    ManagedClusterAddOn,
    ObjectMeta,
)

CLUSTER = "cluster1"
DELETE_TIME = datetime(2021, 1, 1, tzinfo=timezone.utc)


def make_controller(cluster=None, addons=()):
    objs = [cluster] if cluster is not None else []
    client = ApiClient(*objs)
    lister = Lister(*objs, *addons)
    return AddOnFeatureDiscoveryController(client, lister), client


def updated_cluster(client):
    assert [a.verb for a in client.actions] == ["update"]
    return client.actions[0].obj


def label(cluster, addon_name):
    return cluster.meta.labels.get(f"{ADDON_FEATURE_PREFIX}{addon_name}")


@pytest.mark.parametrize(
    "conditions, expected",
    [
        ([], "unreachable"),
        ([Condition(ADDON_CONDITION_AVAILABLE, ConditionStatus.TRUE)], "available"),
        ([Condition(ADDON_CONDITION_AVAILABLE, ConditionStatus.FALSE)], "unhealthy"),
        ([Condition(ADDON_CONDITION_AVAILABLE, ConditionStatus.UNKNOWN)], "unreachable"),
    ],
)
def test_get_addon_label_value(conditions, expected):
    assert get_addon_label_value(ManagedClusterAddOn(conditions=conditions)) == expected


def test_sync_addon_deleted():
    cluster = ManagedCluster(
        meta=ObjectMeta(name=CLUSTER, labels={ADDON_FEATURE_PREFIX + "addon1": ADDON_STATUS_AVAILABLE})
    )
    ctrl, client = make_controller(cluster)
    ctrl.sync_addon(CLUSTER, "addon1")
    assert label(updated_cluster(client), "addon1") is None


def test_sync_addon_deleting():
    cluster = ManagedCluster(meta=ObjectMeta(name=CLUSTER))
    addon = ManagedClusterAddOn(meta=ObjectMeta(name="addon1", deletion_timestamp=DELETE_TIME))
    ctrl, client = make_controller(cluster, [addon])
    ctrl.sync_addon(CLUSTER, "addon1")
    assert client.actions == []


def test_sync_addon_new_addon_added():
    cluster = ManagedCluster(meta=ObjectMeta(name=CLUSTER))
    addon = ManagedClusterAddOn(meta=ObjectMeta(name="addon1", namespace=CLUSTER))
    ctrl, client = make_controller(cluster, [addon])
    ctrl.sync_addon(CLUSTER, "addon1")
    labels = updated_cluster(client).meta.labels
    assert labels == {"feature.open-cluster-management.io/addon-addon1": "unreachable"}


def test_sync_addon_status_updated():
    cluster = ManagedCluster(
        meta=ObjectMeta(name=CLUSTER, labels={ADDON_FEATURE_PREFIX + "addon1": ADDON_STATUS_AVAILABLE})
    )
    addon = ManagedClusterAddOn(meta=ObjectMeta(name="addon1", namespace=CLUSTER))
    ctrl, client = make_controller(cluster, [addon])
    ctrl.sync_addon(CLUSTER, "addon1")
    assert label(updated_cluster(client), "addon1") == ADDON_STATUS_UNREACHABLE


def test_sync_addon_cluster_deleting():
    cluster = ManagedCluster(meta=ObjectMeta(name=CLUSTER, deletion_timestamp=DELETE_TIME))
    addon = ManagedClusterAddOn(meta=ObjectMeta(name="addon1", namespace=CLUSTER))
    ctrl, client = make_controller(cluster, [addon])
    ctrl.sync_addon(CLUSTER, "addon1")
    assert client.actions == []


def test_sync_addon_missing_cluster_raises():
    addon = ManagedClusterAddOn(meta=ObjectMeta(name="addon1", namespace=CLUSTER))
    ctrl, client = make_controller(None, [addon])
    with pytest.raises(LookupError, match="unable to find cluster"):
        ctrl.sync_addon(CLUSTER, "addon1")
    assert client.actions == []


def ctx(key):
    return SyncContext(key, Queue(), Recorder())


def test_sync_addon_key():
    cluster = ManagedCluster(meta=ObjectMeta(name=CLUSTER))
    addon = ManagedClusterAddOn(meta=ObjectMeta(name="addon1", namespace=CLUSTER))
    ctrl, client = make_controller(cluster, [addon])
    ctrl.sync(ctx("cluster1/addon1"))
    assert label(updated_cluster(client), "addon1") == ADDON_STATUS_UNREACHABLE


def test_sync_cluster_not_found():
    ctrl, client = make_controller()
    ctrl.sync(ctx(CLUSTER))
    assert client.actions == []


def test_sync_cluster_deleting():
    cluster = ManagedCluster(meta=ObjectMeta(name=CLUSTER, deletion_timestamp=DELETE_TIME))
    ctrl, client = make_controller(cluster)
    ctrl.sync(ctx(CLUSTER))
    assert client.actions == []


def test_sync_cluster_no_change():
    ctrl, client = make_controller(ManagedCluster(meta=ObjectMeta(name=CLUSTER)))
    ctrl.sync(ctx(CLUSTER))
    assert client.actions == []


def test_sync_cluster_synced():
    cluster = ManagedCluster(
        meta=ObjectMeta(name=CLUSTER, labels={ADDON_FEATURE_PREFIX + "addon4": "available"})
    )
    addons = [
        ManagedClusterAddOn(meta=ObjectMeta(name="addon1", namespace=CLUSTER)),
        ManagedClusterAddOn(
            meta=ObjectMeta(name="addon2", namespace=CLUSTER, deletion_timestamp=DELETE_TIME)
        ),
        ManagedClusterAddOn(
            meta=ObjectMeta(name="addon3", namespace=CLUSTER),
            conditions=[Condition(ADDON_CONDITION_AVAILABLE, ConditionStatus.TRUE)],
        ),
    ]
    ctrl, client = make_controller(cluster, addons)
    ctrl.sync(ctx(CLUSTER))
    actual = updated_cluster(client)
    assert label(actual, "addon1") == ADDON_STATUS_UNREACHABLE
    assert label(actual, "addon3") == ADDON_STATUS_AVAILABLE
    assert label(actual, "addon2") is None
    assert label(actual, "addon4") is None


def test_sync_cluster_keeps_other_labels():
    cluster = ManagedCluster(
        meta=ObjectMeta(name=CLUSTER, labels={"vendor": "x", ADDON_FEATURE_PREFIX + "old": "available"})
    )
    ctrl, client = make_controller(cluster)
    ctrl.sync(ctx(CLUSTER))
    assert updated_cluster(client).meta.labels == {"vendor": "x"}


def test_resync_queues_every_cluster():
    clusters = [ManagedCluster(meta=ObjectMeta(name=n)) for n in ("c1", "c2")]
    client = ApiClient(*clusters)
    ctrl = AddOnFeatureDiscoveryController(client, Lister(*clusters))
    sync_ctx = ctx("key")
    ctrl.sync(sync_ctx)
    assert [sync_ctx.queue.get(), sync_ctx.queue.get(), sync_ctx.queue.get()] == ["c1", "c2", None]
    assert client.actions == []


def test_invalid_key_is_ignored():
    ctrl, client = make_controller(ManagedCluster(meta=ObjectMeta(name=CLUSTER)))
    ctrl.sync(ctx("a/b/c"))
    assert client.actions == []


def test_watched_objects_produce_keys():
    ctrl, _ = make_controller()
    ctrl.controller.handle(ManagedClusterAddOn(meta=ObjectMeta(name="addon1", namespace=CLUSTER)))
    ctrl.controller.handle(ManagedCluster(meta=ObjectMeta(name=CLUSTER)))
    assert ctrl.controller.queue.get() == "cluster1/addon1"
    assert ctrl.controller.queue.get() == CLUSTER