"""Keeps add-on feature labels on managed clusters in step with their add-ons."""

from __future__ import annotations

import copy
import logging
from typing import Optional

from .client import ApiClient, Lister, NotFoundError
from .controller import (
    DEFAULT_QUEUE_KEY,
    Controller,
    Recorder,
    SyncContext,
    meta_namespace_key,
    split_meta_namespace_key,
)
from .model import (
    ADDON_CONDITION_AVAILABLE,
    ConditionStatus,
    ManagedCluster,
    ManagedClusterAddOn,
    find_condition,
)

log = logging.getLogger(__name__)

ADDON_FEATURE_PREFIX = "feature.open-cluster-management.io/addon-"
ADDON_STATUS_AVAILABLE = "available"
ADDON_STATUS_UNHEALTHY = "unhealthy"
ADDON_STATUS_UNREACHABLE = "unreachable"

RESYNC_INTERVAL = 10 * 60.0


def get_addon_label_value(addon: ManagedClusterAddOn) -> str:
    """Map an add-on's Available condition to a cluster label value."""
    available = find_condition(addon.conditions, ADDON_CONDITION_AVAILABLE)
    if available is None:
        return ADDON_STATUS_UNREACHABLE
    if available.status == ConditionStatus.TRUE:
        return ADDON_STATUS_AVAILABLE
    if available.status == ConditionStatus.FALSE:
        return ADDON_STATUS_UNHEALTHY
    return ADDON_STATUS_UNREACHABLE


def _merge_labels(existing: dict[str, str], required: dict[str, str]) -> bool:
    """Apply required labels; a key ending in '-' removes the label. Return whether anything changed."""
    modified = False
    for key, value in required.items():
        if key.endswith("-"):
            actual = key.rstrip("-")
            if actual in existing:
                del existing[actual]
                modified = True
        elif existing.get(key) != value or key not in existing:
            existing[key] = value
            modified = True
    return modified


class AddOnFeatureDiscoveryController:
    """Reflects the status of each add-on as a label on its managed cluster."""

    def __init__(self, cluster_client: ApiClient, lister: Lister, recorder: Optional[Recorder] = None):
        self.cluster_client = cluster_client
        self.lister = lister
        self.controller = Controller(
            "AddOnFeatureDiscoveryController",
            self.sync,
            recorder,
            key_funcs={
                ManagedCluster: [lambda obj: obj.meta.name],
                ManagedClusterAddOn: [meta_namespace_key],
            },
            resync_interval=RESYNC_INTERVAL,
        )

    def sync(self, sync_ctx: SyncContext) -> None:
        """Dispatch a queue key: resync, one add-on ('ns/name') or one cluster ('name')."""
        queue_key = sync_ctx.queue_key
        try:
            namespace, name = split_meta_namespace_key(queue_key)
        except ValueError as err:
            log.error("%s", err)
            return

        if queue_key == DEFAULT_QUEUE_KEY:
            for cluster in self.lister.list(ManagedCluster):
                sync_ctx.queue.add(cluster.meta.name)
        elif namespace:
            self.sync_addon(namespace, name)
        else:
            self.sync_cluster(name)

    def sync_addon(self, cluster_name: str, addon_name: str) -> None:
        """Update the label of one add-on on its cluster."""
        log.debug("Reconciling addOn %r", addon_name)

        labels: dict[str, str] = {}
        try:
            addon = self.lister.get(ManagedClusterAddOn, cluster_name, addon_name)
        except NotFoundError:
            labels[f"{ADDON_FEATURE_PREFIX}{addon_name}-"] = ""
        else:
            if addon.meta.deleting:
                labels[f"{ADDON_FEATURE_PREFIX}{addon_name}-"] = ""
            else:
                labels[f"{ADDON_FEATURE_PREFIX}{addon.meta.name}"] = get_addon_label_value(addon)

        try:
            cluster = self.lister.get(ManagedCluster, "", cluster_name)
        except NotFoundError as err:
            raise LookupError(f"unable to find cluster with name {cluster_name!r}: {err}") from err
        if cluster.meta.deleting:
            return

        cluster = copy.deepcopy(cluster)
        if not _merge_labels(cluster.meta.labels, labels):
            return
        self.cluster_client.update(cluster)

    def sync_cluster(self, cluster_name: str) -> None:
        """Rebuild every add-on label on one cluster."""
        try:
            cluster = self.lister.get(ManagedCluster, "", cluster_name)
        except NotFoundError:
            return
        if cluster.meta.deleting:
            return

        addon_labels = {
            f"{ADDON_FEATURE_PREFIX}{addon.meta.name}": get_addon_label_value(addon)
            for addon in self.lister.list(ManagedClusterAddOn, cluster_name)
            if not addon.meta.deleting
        }

        stale = [
            key
            for key in cluster.meta.labels
            if key.startswith(ADDON_FEATURE_PREFIX) and key not in addon_labels
        ]
        for key in stale:
            addon_labels[f"{key}-"] = ""

        cluster = copy.deepcopy(cluster)
        if not _merge_labels(cluster.meta.labels, addon_labels):
            return
        self.cluster_client.update(cluster)