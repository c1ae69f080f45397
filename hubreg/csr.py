"""Auto-approves renewal certificate requests from accepted managed clusters."""

from __future__ import annotations

import base64
import binascii
import copy
import logging
import re
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from .client import ApiClient, Lister, NotFoundError
from .controller import Controller, Recorder, SyncContext
from .model import (
    CLUSTER_NAME_LABEL,
    CSR_APPROVED,
    CSR_DENIED,
    KUBE_APISERVER_CLIENT_SIGNER,
    MANAGED_CLUSTERS_GROUP,
    SUBJECT_PREFIX,
    CertificateSigningRequest,
    Condition,
    ConditionStatus,
    ObjectMeta,
)

log = logging.getLogger(__name__)

SPOKE_CLUSTER_NAME_LABEL = CLUSTER_NAME_LABEL
APPROVED_REASON = "AutoApprovedByHubCSRApprovingController"
APPROVED_MESSAGE = "Auto approving Managed cluster agent certificate after SubjectAccessReview."

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([^\r\n-]+)-----\r?\n(.*?)-----END \1-----", re.DOTALL
)


@dataclass
class ResourceAttributes:
    """The resource an access review asks about."""

    group: str = ""
    resource: str = ""
    verb: str = ""
    subresource: str = ""


@dataclass
class SubjectAccessReview:
    """Asks whether a user may perform an action; the answer lands in ``allowed``."""

    kind: ClassVar[str] = "subjectaccessreview"

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    user: str = ""
    uid: str = ""
    groups: list[str] = field(default_factory=list)
    extra: dict[str, list[str]] = field(default_factory=dict)
    resource_attributes: Optional[ResourceAttributes] = None
    allowed: bool = False


def _decode_pem(data: bytes) -> Optional[tuple[str, bytes]]:
    """Return (block type, DER bytes) of the first PEM block, or None."""
    match = _PEM_BLOCK.search(data or b"")
    if match is None:
        return None
    body = b"".join(match.group(2).split())
    try:
        der = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError):
        return None
    return match.group(1).decode("ascii", "replace"), der


def _is_terminal(csr: CertificateSigningRequest) -> bool:
    return any(c.type in (CSR_APPROVED, CSR_DENIED) for c in csr.conditions)


def is_spoke_cluster_client_cert_renewal(csr: CertificateSigningRequest) -> bool:
    """True when the request is a managed cluster agent renewing its client certificate."""
    cluster_name = csr.meta.labels.get(SPOKE_CLUSTER_NAME_LABEL)
    if cluster_name is None:
        return False

    if csr.signer_name != KUBE_APISERVER_CLIENT_SIGNER:
        return False

    block = _decode_pem(csr.request)
    if block is None or block[0] != "CERTIFICATE REQUEST":
        log.debug("csr %r was not recognized: PEM block type is not CERTIFICATE REQUEST", csr.meta.name)
        return False

    try:
        request = x509.load_der_x509_csr(block[1])
    except ValueError as err:
        log.debug("csr %r was not recognized: %s", csr.meta.name, err)
        return False

    subject = request.subject
    orgs = {str(attr.value) for attr in subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)}
    # the common group is optional, kept for backward compatibility
    orgs.discard(MANAGED_CLUSTERS_GROUP)
    if len(orgs) != 1:
        return False

    expected_org = f"{SUBJECT_PREFIX}{cluster_name}"
    if expected_org not in orgs:
        return False

    common_names = subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    common_name = str(common_names[0].value) if common_names else ""
    if not common_name.startswith(expected_org):
        return False

    return csr.username == common_name


class CSRApprovingController:
    """Approves renewal CSRs once an access review confirms the agent may renew."""

    def __init__(self, kube_client: ApiClient, lister: Lister, recorder: Optional[Recorder] = None):
        self.kube_client = kube_client
        self.lister = lister
        self.recorder = recorder if recorder is not None else Recorder("csr-approving-controller")
        self.controller = Controller(
            "CSRApprovingController",
            self.sync,
            self.recorder,
            key_funcs={CertificateSigningRequest: [lambda obj: obj.meta.name]},
        )

    def sync(self, sync_ctx: SyncContext) -> None:
        """Approve the queued CSR if it is an authorized renewal request."""
        csr_name = sync_ctx.queue_key
        log.debug("Reconciling CertificateSigningRequests %r", csr_name)
        try:
            csr = self.lister.get(CertificateSigningRequest, "", csr_name)
        except NotFoundError:
            return

        csr = copy.deepcopy(csr)
        if _is_terminal(csr):
            return

        if not is_spoke_cluster_client_cert_renewal(csr):
            log.debug("CSR %r was not recognized", csr.meta.name)
            return

        if not self.authorize(csr):
            log.debug(
                "Managed cluster csr %r cannot be auto approved due to subject access review was not approved",
                csr.meta.name,
            )
            return

        csr.conditions.append(
            Condition(
                type=CSR_APPROVED,
                status=ConditionStatus.TRUE,
                reason=APPROVED_REASON,
                message=APPROVED_MESSAGE,
            )
        )
        self.kube_client.update(csr, "approval")
        self.recorder.event(
            "ManagedClusterCSRAutoApproved",
            f"spoke cluster csr {csr.meta.name!r} is auto approved by hub csr controller",
        )

    def authorize(self, csr: CertificateSigningRequest) -> bool:
        """Ask the API server whether the requester may renew its client certificate."""
        review = SubjectAccessReview(
            user=csr.username,
            uid=csr.uid,
            groups=list(csr.groups),
            extra={key: list(values) for key, values in csr.extra.items()},
            resource_attributes=ResourceAttributes(
                group="register.open-cluster-management.io",
                resource="managedclusters",
                verb="renew",
                subresource="clientcertificates",
            ),
        )
        result = self.kube_client.create(review)
        return bool(result.allowed)