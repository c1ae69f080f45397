"""Marks add-ons unknown when their managed cluster stops reporting."""

from __future__ import annotations

import logging
from typing import Optional

from .client import ApiClient, Lister, NotFoundError
from .controller import Controller, Recorder, SyncContext, aggregate_errors, update_addon_condition
from .model import (
    ADDON_CONDITION_AVAILABLE,
    CONDITION_AVAILABLE,
    Condition,
    ConditionStatus,
    ManagedCluster,
    ManagedClusterAddOn,
    find_condition,
)

log = logging.getLogger(__name__)


class AddOnHealthCheckController:
    """Copies an Unknown cluster availability onto every add-on of that cluster."""

    def __init__(self, addon_client: ApiClient, lister: Lister, recorder: Optional[Recorder] = None):
        self.addon_client = addon_client
        self.lister = lister
        self.controller = Controller(
            "ManagedClusterAddonHealthCheckController",
            self.sync,
            recorder,
            key_funcs={ManagedCluster: [lambda obj: obj.meta.name]},
        )

    def sync(self, sync_ctx: SyncContext) -> None:
        """Set all add-ons of an Unknown cluster to Unknown; raise AggregateError on failures."""
        cluster_name = sync_ctx.queue_key
        try:
            cluster = self.lister.get(ManagedCluster, "", cluster_name)
        except NotFoundError:
            return

        available = find_condition(cluster.conditions, CONDITION_AVAILABLE)
        # Only an Unknown cluster means the agent that reports add-on status has stopped.
        if available is None or available.status != ConditionStatus.UNKNOWN:
            return

        errors = []
        for addon in self.lister.list(ManagedClusterAddOn, cluster_name):
            condition = Condition(
                type=ADDON_CONDITION_AVAILABLE,
                status=available.status,
                reason=available.reason,
                message=available.message,
            )
            try:
                _, updated = update_addon_condition(
                    self.addon_client, addon.meta.namespace, addon.meta.name, condition
                )
            except Exception as err:  # noqa: BLE001 - collected and reported together
                errors.append(err)
                continue
            if updated:
                sync_ctx.recorder.event(
                    "ManagedClusterAddOnStatusUpdated",
                    f"update addon {addon.meta.name!r} status to unknown on managed cluster {cluster_name!r}",
                )

        error = aggregate_errors(errors)
        if error is not None:
            raise error