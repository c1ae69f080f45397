"""Keeps the Empty condition of each managed cluster set in step with its members."""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Iterable, Optional

from .client import ApiClient, Lister, NotFoundError
from .controller import Controller, Recorder, SyncContext
from .model import (
    CLUSTER_SET_CONDITION_EMPTY,
    Condition,
    ConditionStatus,
    ManagedCluster,
    ManagedClusterSet,
    set_condition,
)

log = logging.getLogger(__name__)

CLUSTER_SET_LABEL = "cluster.open-cluster-management.io/clusterset"


class ManagedClusterSetController:
    """Reconciles managed cluster sets on the hub."""

    def __init__(self, cluster_client: ApiClient, lister: Lister, recorder: Optional[Recorder] = None):
        self.cluster_client = cluster_client
        self.lister = lister
        self.recorder = recorder if recorder is not None else Recorder("managed-cluster-set-controller")
        # cluster name -> name of the cluster set it was last seen in
        self.cluster_sets_map: dict[str, str] = {}
        self._map_lock = threading.RLock()
        # The original-set key function must run before the current-set one,
        # otherwise the mapping may be updated before the old set is queued.
        self.controller = Controller(
            "ManagedClusterSetController",
            self.sync,
            self.recorder,
            key_funcs={
                ManagedClusterSet: [lambda obj: obj.meta.name],
                ManagedCluster: [self.original_cluster_set_queue_key, self.current_cluster_set_queue_key],
            },
        )

    def original_cluster_set_queue_key(self, obj: Any) -> str:
        """Return the set a cluster used to belong to, if its set has changed; else ''."""
        with self._map_lock:
            original = self.cluster_sets_map.get(obj.meta.name, "")
            current = obj.meta.labels.get(CLUSTER_SET_LABEL, "")
            return original if original != current else ""

    def current_cluster_set_queue_key(self, obj: Any) -> str:
        """Return the set a cluster currently belongs to, or ''."""
        return obj.meta.labels.get(CLUSTER_SET_LABEL, "")

    def sync(self, sync_ctx: SyncContext) -> None:
        """Reconcile the cluster set named by the queue key."""
        name = sync_ctx.queue_key
        if not name:
            return
        log.info("Reconciling ManagedClusterSet %s", name)

        try:
            cluster_set = self.lister.get(ManagedClusterSet, "", name)
        except NotFoundError:
            return
        if cluster_set.meta.deleting:
            return

        try:
            self.sync_cluster_set(cluster_set)
        except Exception as err:
            raise RuntimeError(f'failed to sync ManagedClusterSet "{name}": {err}') from err

    def sync_cluster_set(self, cluster_set: ManagedClusterSet) -> None:
        """Update the member mapping and the Empty condition of one cluster set."""
        updated = copy.deepcopy(cluster_set)
        name = updated.meta.name

        try:
            clusters = self.lister.list(ManagedCluster, None, {CLUSTER_SET_LABEL: name})
        except Exception as err:
            raise RuntimeError(f"failed to list ManagedClusters: {err}") from err

        self.update_cluster_sets_map(name, clusters)

        count = len(clusters)
        if count == 0:
            condition = Condition(
                type=CLUSTER_SET_CONDITION_EMPTY,
                status=ConditionStatus.TRUE,
                reason="NoClusterMatched",
                message="No ManagedCluster selected",
            )
        else:
            condition = Condition(
                type=CLUSTER_SET_CONDITION_EMPTY,
                status=ConditionStatus.FALSE,
                reason="ClustersSelected",
                message=f"{count} ManagedClusters selected",
            )
        set_condition(updated.conditions, condition)

        if updated.conditions == cluster_set.conditions:
            return

        try:
            self.cluster_client.update(updated, "status")
        except Exception as err:
            raise RuntimeError(f'failed to update status of ManagedClusterSet "{name}": {err}') from err

    def update_cluster_sets_map(self, cluster_set_name: str, clusters: Iterable[ManagedCluster]) -> None:
        """Record the given clusters as the members of a cluster set."""
        with self._map_lock:
            new_members = {cluster.meta.name for cluster in clusters}
            original_members = {
                cluster for cluster, cs in self.cluster_sets_map.items() if cs == cluster_set_name
            }
            for cluster in new_members - original_members:
                self.cluster_sets_map[cluster] = cluster_set_name
            for cluster in original_members - new_members:
                del self.cluster_sets_map[cluster]