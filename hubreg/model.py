"""Resource types handled by the hub controllers, plus condition helpers."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional

SUBJECT_PREFIX = "system:open-cluster-management:"
"""Prefix marking open-cluster-management users."""

MANAGED_CLUSTERS_GROUP = SUBJECT_PREFIX + "managed-clusters"
"""Common group shared by all spoke clusters."""

CLUSTER_NAME_LABEL = "open-cluster-management.io/cluster-name"

CONDITION_HUB_ACCEPTED = "HubAcceptedManagedCluster"
CONDITION_JOINED = "ManagedClusterJoined"
CONDITION_AVAILABLE = "ManagedClusterConditionAvailable"
ADDON_CONDITION_AVAILABLE = "Available"
CLUSTER_SET_CONDITION_EMPTY = "ClusterSetEmpty"

CSR_APPROVED = "Approved"
CSR_DENIED = "Denied"
CSR_FAILED = "Failed"
KUBE_APISERVER_CLIENT_SIGNER = "kubernetes.io/kube-apiserver-client"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConditionStatus(str, Enum):
    """Tri-state status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass
class Condition:
    """One entry of a resource's status conditions."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = None


@dataclass
class ObjectMeta:
    """Identity and lifecycle metadata shared by every resource."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: Optional[datetime] = None

    @property
    def deleting(self) -> bool:
        """True once a deletion timestamp has been set."""
        return self.deletion_timestamp is not None


@dataclass
class ManagedCluster:
    kind: ClassVar[str] = "managedcluster"

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    hub_accepts_client: bool = False
    lease_duration_seconds: int = 60
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class ManagedClusterAddOn:
    kind: ClassVar[str] = "managedclusteraddon"

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    install_namespace: str = ""
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class ManagedClusterSet:
    kind: ClassVar[str] = "managedclusterset"

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class Lease:
    kind: ClassVar[str] = "lease"

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    holder_identity: Optional[str] = None
    renew_time: Optional[datetime] = None


@dataclass
class CertificateSigningRequest:
    kind: ClassVar[str] = "certificatesigningrequest"

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    request: bytes = b""
    signer_name: str = ""
    username: str = ""
    uid: str = ""
    groups: list[str] = field(default_factory=list)
    extra: dict[str, list[str]] = field(default_factory=dict)
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class Role:
    kind: ClassVar[str] = "role"

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    rules: list[dict] = field(default_factory=list)


@dataclass
class RoleBinding:
    kind: ClassVar[str] = "rolebinding"

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    role_ref: str = ""
    subjects: list[dict] = field(default_factory=list)


@dataclass
class Namespace:
    kind: ClassVar[str] = "namespace"

    meta: ObjectMeta = field(default_factory=ObjectMeta)


@dataclass
class ManifestWork:
    kind: ClassVar[str] = "manifestwork"

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    manifests: list[dict] = field(default_factory=list)


def find_condition(conditions: list[Condition], condition_type: str) -> Optional[Condition]:
    """Return the condition of the given type, or None."""
    return next((c for c in conditions if c.type == condition_type), None)


def set_condition(conditions: list[Condition], condition: Condition) -> None:
    """Add or update a condition in place.

    The transition time only moves when the status changes.
    """
    existing = find_condition(conditions, condition.type)
    if existing is None:
        added = dataclasses.replace(condition)
        if added.last_transition_time is None:
            added.last_transition_time = _now()
        conditions.append(added)
        return

    if existing.status != condition.status:
        existing.status = condition.status
        existing.last_transition_time = condition.last_transition_time or _now()
    existing.reason = condition.reason
    existing.message = condition.message


def is_condition_true(conditions: list[Condition], condition_type: str) -> bool:
    """True when the condition exists and its status is True."""
    found = find_condition(conditions, condition_type)
    return found is not None and found.status == ConditionStatus.TRUE