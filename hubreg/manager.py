"""Starts the hub controllers that manage spoke cluster registration."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from .client import ApiClient, Lister
from .clusterset import ManagedClusterSetController
from .controller import Controller, Recorder
from .csr import CSRApprovingController
from .discovery import AddOnFeatureDiscoveryController
from .healthcheck import AddOnHealthCheckController
from .lease import DEFAULT_RESYNC_INTERVAL, ClusterLeaseController
from .rbacfinalizer import FinalizeController

log = logging.getLogger(__name__)


class HubManager:
    """Wires the hub controllers to one API client and feeds them its changes."""

    def __init__(
        self,
        client: ApiClient,
        cache: Optional[Lister] = None,
        recorder: Optional[Recorder] = None,
        *,
        lease_resync_interval: float = DEFAULT_RESYNC_INTERVAL,
    ):
        self.client = client
        self.cache = cache if cache is not None else Lister(source=client)
        self.recorder = recorder if recorder is not None else Recorder("hub")

        self.csr = CSRApprovingController(client, self.cache, self.recorder)
        self.lease = ClusterLeaseController(
            client, client, self.cache, lease_resync_interval, self.recorder
        )
        self.rbac_finalizer = FinalizeController(client, self.cache, self.recorder)
        self.cluster_set = ManagedClusterSetController(client, self.cache, self.recorder)
        self.addon_health_check = AddOnHealthCheckController(client, self.cache, self.recorder)
        self.addon_feature_discovery = AddOnFeatureDiscoveryController(
            client, self.cache, self.recorder
        )

        self.controllers: list[Controller] = [
            self.csr.controller,
            self.lease.controller,
            self.rbac_finalizer.controller,
            self.cluster_set.controller,
            self.addon_health_check.controller,
            self.addon_feature_discovery.controller,
        ]

    def _dispatch(self, verb: str, obj: Any) -> None:
        for controller in self.controllers:
            controller.handle(obj)

    def _watched_kinds(self) -> list[type]:
        kinds = {kind for controller in self.controllers for kind in controller.key_funcs}
        return sorted(kinds, key=lambda kind: kind.kind)

    def run(self, stop_event: threading.Event) -> None:
        """Run every controller until the stop event is set."""
        self.client.watchers.append(self._dispatch)
        try:
            # initial listing, as an informer does on start
            for kind in self._watched_kinds():
                for obj in self.cache.list(kind):
                    self._dispatch("sync", obj)

            threads = [
                threading.Thread(
                    target=controller.run, args=(stop_event,), name=controller.name, daemon=True
                )
                for controller in self.controllers
            ]
            for thread in threads:
                thread.start()
            log.info("hub controllers started")

            stop_event.wait()
            for thread in threads:
                thread.join()
        finally:
            self.client.watchers.remove(self._dispatch)
        log.info("hub controllers stopped")


def run_controller_manager(
    client: ApiClient,
    cache: Optional[Lister],
    recorder: Optional[Recorder],
    stop_event: threading.Event,
) -> None:
    """Start the hub controllers and block until the stop event is set."""
    HubManager(client, cache, recorder).run(stop_event)