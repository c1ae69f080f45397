# hubreg

`hubreg` is a set of hub-side reconcilers for the registration of spoke
clusters. The controllers read from a `Lister` cache and write through an
in-memory `ApiClient`, so they can run as a control loop or be driven one
reconcile at a time.

## Controllers

| Controller | Module | Job |
|---|---|---|
| `AddOnFeatureDiscoveryController` | `hubreg.discovery` | Keeps `feature.open-cluster-management.io/addon-<name>` labels on each `ManagedCluster` in step with its add-ons: `available`, `unhealthy` or `unreachable`, taken from the add-on's `Available` condition by `get_addon_label_value`. Labels of add-ons that are gone or deleting are removed. |
| `AddOnHealthCheckController` | `hubreg.healthcheck` | When a cluster's `ManagedClusterConditionAvailable` condition is `Unknown`, sets `Available=Unknown` (with the cluster's reason and message) on every add-on in that cluster's namespace. |
| `CSRApprovingController` | `hubreg.csr` | Approves a pending `CertificateSigningRequest` when `is_spoke_cluster_client_cert_renewal` recognises it as an agent renewing its client certificate and a subject access review created through the client comes back allowed. |
| `ClusterLeaseController` | `hubreg.lease` | For each accepted cluster, creates the `managed-cluster-lease` in the cluster's namespace if it is missing, and sets the cluster's `ManagedClusterConditionAvailable` to `Unknown` when the lease has not been renewed within five lease durations. |
| `ManagedClusterSetController` | `hubreg.clusterset` | Sets the `ClusterSetEmpty` condition of each `ManagedClusterSet` from the clusters labelled `cluster.open-cluster-management.io/clusterset=<set>`, and keeps a cluster-to-set map so that moving a cluster also queues the set it left. |
| `FinalizeController` | `hubreg.rbacfinalizer` | Removes the `cluster.open-cluster-management.io/manifest-work-cleanup` finalizer from deleting roles and role bindings, but refuses while manifest works remain in a namespace (or cluster) that is being deleted. |

`hubreg.manager.HubManager` builds all six controllers on one client and cache,
and `hubreg.manager.run_controller_manager(client, cache, recorder, stop_event)`
runs them until the event is set.

## Building blocks

- `hubreg.model` holds the resource dataclasses (`ManagedCluster`,
  `ManagedClusterAddOn`, `ManagedClusterSet`, `Lease`,
  `CertificateSigningRequest`, `Role`, `RoleBinding`, `Namespace`,
  `ManifestWork`), each with an `ObjectMeta`; `Condition` with
  `ConditionStatus`; and the helpers `find_condition`, `set_condition` (which
  only moves the transition time when the status changes) and
  `is_condition_true`.
- `hubreg.client.ApiClient` stores objects by kind, namespace and name, records
  every call as an `Action` in `actions`, raises `NotFoundError` for missing
  objects, lets `prepend_reactor` intercept requests, and tells its `watchers`
  about every create, update and delete.
- `hubreg.client.Lister` is the read cache. Objects can be added with `add`;
  built with `source=client`, it also shows everything stored in that client.
- `hubreg.controller` provides `Controller` (queue keys from watched objects
  through `handle`, sync them with `process_next` or `run`, requeue a key whose
  sync raised, and queue a resync key on an interval), `Queue`, `SyncContext`,
  the event `Recorder`, `split_meta_namespace_key`, `meta_namespace_key`,
  `aggregate_errors` (returns an `AggregateError` or `None`), and
  `update_managed_cluster_condition` / `update_addon_condition`, which write a
  status update only when the condition actually changes.

## Running the hub

```python
import threading

from hubreg.client import ApiClient
from hubreg.controller import Recorder
from hubreg.manager import run_controller_manager

client = ApiClient()
recorder = Recorder("hub")
stop = threading.Event()

# With no cache given, the controllers read through a Lister over the client.
worker = threading.Thread(
    target=run_controller_manager,
    args=(client, None, recorder, stop),
)
worker.start()

# ... create ManagedCluster, ManagedClusterSet and other objects through
# `client`; each change is handed to the controllers that watch its kind ...

stop.set()
worker.join()
```

Events emitted by the controllers collect in `recorder.events` as
`(reason, message)` pairs.

A subject access review created by `CSRApprovingController.authorize` is stored
as-is by `ApiClient`, so it is not allowed unless a reactor answers it, for
example `client.prepend_reactor("create", "subjectaccessreview", ...)`
returning a review with `allowed=True`.

## Driving one reconcile

Each controller's `sync` takes a `SyncContext` for one queue key. Build the
controller on an `ApiClient` and a `Lister`, call `sync`, then inspect
`client.actions` and the stored objects. Failures are raised as exceptions;
where several objects fail in one reconcile they come back together as an
`AggregateError`.

## What it does not do

- It does not talk to a real API server; `ApiClient` is an in-memory store.
- It does not accept or deny clusters, add or remove the cluster cleanup
  finalizer, or create the namespaces, cluster roles and role bindings an
  accepted cluster needs. Conditions such as `HubAcceptedManagedCluster` must be
  set on clusters by whoever creates them.
- It has no command-line entry point; it is used as a library.