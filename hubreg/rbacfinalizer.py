"""Removes the manifest-work finalizer from work-agent roles once their works are gone."""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional

from .client import ApiClient, Lister, NotFoundError
from .controller import Controller, Recorder, SyncContext, meta_namespace_key, split_meta_namespace_key
from .model import ManagedCluster, ManifestWork, Namespace, Role, RoleBinding

log = logging.getLogger(__name__)

MANIFEST_WORK_FINALIZER = "cluster.open-cluster-management.io/manifest-work-cleanup"


def has_finalizer(obj: Any, finalizer: str) -> bool:
    """True if the object exists and carries the finalizer."""
    return obj is not None and finalizer in obj.meta.finalizers


def remove_finalizer(obj: Any, finalizer: str) -> bool:
    """Remove the finalizer from the object in place; return whether it was there."""
    if obj is None:
        return False
    remaining = [f for f in obj.meta.finalizers if f != finalizer]
    found = len(remaining) != len(obj.meta.finalizers)
    if found:
        obj.meta.finalizers = remaining
    return found


def pending_finalization(obj: Any) -> bool:
    """True if the object exists and has a deletion timestamp."""
    return obj is not None and obj.meta.deleting


class FinalizeController:
    """Ensures works are deleted before the work agent's role and binding in a cluster namespace."""

    def __init__(self, rbac_client: ApiClient, lister: Lister, recorder: Optional[Recorder] = None):
        self.rbac_client = rbac_client
        self.lister = lister
        self.recorder = recorder if recorder is not None else Recorder("FinalizeController")
        self.controller = Controller(
            "FinalizeController",
            self.sync,
            self.recorder,
            key_funcs={Role: [meta_namespace_key], RoleBinding: [meta_namespace_key]},
        )

    def sync(self, sync_ctx: SyncContext) -> None:
        """Reconcile the role and role binding named by a 'namespace/name' key."""
        key = sync_ctx.queue_key
        try:
            namespace, name = split_meta_namespace_key(key)
        except ValueError:
            return

        try:
            cluster = self.lister.get(ManagedCluster, "", namespace)
        except NotFoundError:
            cluster = None
        ns = self.lister.get(Namespace, "", namespace)

        role, role_binding = self.get_role_and_role_binding(namespace, name)
        try:
            self.sync_role_and_role_binding(sync_ctx, role, role_binding, ns, cluster)
        except Exception as err:
            log.error("Reconcile role/rolebinding %s fails with err: %s", key, err)
            raise

    def sync_role_and_role_binding(
        self,
        sync_ctx: SyncContext,
        role: Optional[Role],
        role_binding: Optional[RoleBinding],
        namespace: Namespace,
        cluster: Optional[ManagedCluster],
    ) -> None:
        """Drop the finalizer from deleting role/binding once no works remain where needed."""
        if not has_finalizer(role, MANIFEST_WORK_FINALIZER) and not has_finalizer(
            role_binding, MANIFEST_WORK_FINALIZER
        ):
            return

        # Works must be gone when the namespace is finalizing, or when the cluster is
        # finalizing but its namespace failed to be deleted.
        if namespace.meta.deleting or (cluster is not None and cluster.meta.deleting):
            works = self.lister.list(ManifestWork, namespace.meta.name)
            if works:
                raise RuntimeError(
                    f"Still having {len(works)} works in the cluster namespace {namespace.meta.name}"
                )

        if pending_finalization(role):
            self._remove_finalizer_and_update(role)
        if pending_finalization(role_binding):
            self._remove_finalizer_and_update(role_binding)

    def get_role_and_role_binding(self, namespace: str, name: str):
        """Return (role, role binding), each None when it does not exist."""
        try:
            role = self.lister.get(Role, namespace, name)
        except NotFoundError:
            role = None
        try:
            role_binding = self.lister.get(RoleBinding, namespace, name)
        except NotFoundError:
            role_binding = None
        return role, role_binding

    def _remove_finalizer_and_update(self, obj: Any) -> None:
        if obj is None:
            return
        obj = copy.deepcopy(obj)
        if not remove_finalizer(obj, MANIFEST_WORK_FINALIZER):
            return
        self.rbac_client.update(obj)