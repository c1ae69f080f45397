"""Marks managed clusters unknown when their agent stops renewing its lease."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from .client import ApiClient, Lister, NotFoundError
from .controller import Controller, Recorder, SyncContext, update_managed_cluster_condition
from .model import (
    CLUSTER_NAME_LABEL,
    CONDITION_AVAILABLE,
    CONDITION_HUB_ACCEPTED,
    Condition,
    ConditionStatus,
    Lease,
    ManagedCluster,
    ObjectMeta,
    is_condition_true,
)

log = logging.getLogger(__name__)

LEASE_NAME = "managed-cluster-lease"
LEASE_DURATION_TIMES = 5
DEFAULT_RESYNC_INTERVAL = 5 * 60.0


class ClusterLeaseController:
    """Checks each accepted cluster's lease to decide whether the cluster is available."""

    def __init__(
        self,
        kube_client: ApiClient,
        cluster_client: ApiClient,
        lister: Lister,
        resync_interval: float = DEFAULT_RESYNC_INTERVAL,
        recorder: Optional[Recorder] = None,
    ):
        self.kube_client = kube_client
        self.cluster_client = cluster_client
        self.lister = lister
        self.controller = Controller(
            "ManagedClusterLeaseController",
            self.sync,
            recorder,
            key_funcs={ManagedCluster: [], Lease: []},
            resync_interval=resync_interval,
        )

    def sync(self, sync_ctx: SyncContext) -> None:
        """Create missing leases and set stale clusters' Available condition to Unknown."""
        for cluster in self.lister.list(ManagedCluster):
            if not is_condition_true(cluster.conditions, CONDITION_HUB_ACCEPTED):
                continue

            name = cluster.meta.name
            try:
                observed = self.lister.get(Lease, name, LEASE_NAME)
            except NotFoundError:
                if not cluster.meta.deleting:
                    self.kube_client.create(
                        Lease(
                            meta=ObjectMeta(
                                name=LEASE_NAME,
                                namespace=name,
                                labels={CLUSTER_NAME_LABEL: name},
                            ),
                            holder_identity=LEASE_NAME,
                            renew_time=datetime.now(timezone.utc),
                        )
                    )
                    continue
                # a deleting cluster without a lease is treated as stale
            else:
                grace = timedelta(seconds=LEASE_DURATION_TIMES * cluster.lease_duration_seconds)
                renewed = observed.renew_time
                if renewed is not None and datetime.now(timezone.utc) < renewed + grace:
                    continue

            _, updated = update_managed_cluster_condition(
                self.cluster_client,
                name,
                Condition(
                    type=CONDITION_AVAILABLE,
                    status=ConditionStatus.UNKNOWN,
                    reason="ManagedClusterLeaseUpdateStopped",
                    message="Registration agent stopped updating its lease.",
                ),
            )
            if updated:
                sync_ctx.recorder.event(
                    "ManagedClusterAvailableConditionUpdated",
                    f"update managed cluster {name!r} available condition to unknown, "
                    "due to its lease is not updated constantly",
                )