"""Work queue, sync loop and shared reconcile helpers."""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from .client import ApiClient
from .model import Condition, ManagedCluster, ManagedClusterAddOn, set_condition

log = logging.getLogger(__name__)

DEFAULT_QUEUE_KEY = "key"
"""Key queued on resync and for watches without a key function."""


@dataclass
class Recorder:
    """Collects events emitted by controllers."""

    component: str = ""
    events: list[tuple[str, str]] = field(default_factory=list)

    def event(self, reason: str, message: str) -> None:
        self.events.append((reason, message))
        log.info("event %s [%s]: %s", reason, self.component, message)


class Queue:
    """A thread-safe FIFO queue that holds each key at most once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: dict[str, None] = {}

    def add(self, key: str) -> None:
        with self._lock:
            self._keys.setdefault(key, None)

    def get(self) -> Optional[str]:
        """Remove and return the oldest key, or None when empty."""
        with self._lock:
            if not self._keys:
                return None
            key = next(iter(self._keys))
            del self._keys[key]
            return key

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


@dataclass
class SyncContext:
    """What a sync function receives for one queue key."""

    queue_key: str
    queue: Queue
    recorder: Recorder


class AggregateError(Exception):
    """Several errors reported together."""

    def __init__(self, errors: Sequence[BaseException]):
        self.errors = list(errors)
        if len(self.errors) == 1:
            message = str(self.errors[0])
        else:
            message = "[" + ",\n".join(str(e) for e in self.errors) + "]"
        super().__init__(message)


def aggregate_errors(errors: Iterable[BaseException]) -> Optional[AggregateError]:
    """Combine errors into one, or return None when there are none."""
    collected = [e for e in errors if e is not None]
    return AggregateError(collected) if collected else None


def split_meta_namespace_key(key: str) -> tuple[str, str]:
    """Split 'namespace/name' or 'name' into (namespace, name)."""
    parts = key.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected key format: {key!r}")


def meta_namespace_key(obj: Any) -> str:
    """Return 'namespace/name' for namespaced objects, else 'name'."""
    if obj.meta.namespace:
        return f"{obj.meta.namespace}/{obj.meta.name}"
    return obj.meta.name


KeyFunc = Callable[[Any], Optional[str]]


class Controller:
    """Runs a sync function for keys produced by watched objects."""

    def __init__(
        self,
        name: str,
        sync: Callable[[SyncContext], None],
        recorder: Optional[Recorder] = None,
        *,
        key_funcs: Optional[Mapping[type, Sequence[KeyFunc]]] = None,
        resync_interval: Optional[float] = None,
        poll_interval: float = 0.05,
    ):
        self.name = name
        self._sync = sync
        self.recorder = recorder if recorder is not None else Recorder(name)
        self.key_funcs = dict(key_funcs or {})
        self.resync_interval = resync_interval
        self.poll_interval = poll_interval
        self.queue = Queue()
        self.last_error: Optional[BaseException] = None

    def handle(self, obj: Any) -> None:
        """Queue the keys for a changed object of a watched kind."""
        if type(obj) not in self.key_funcs:
            return
        funcs = self.key_funcs[type(obj)]
        if not funcs:
            self.queue.add(DEFAULT_QUEUE_KEY)
            return
        for func in funcs:
            key = func(obj)
            if key:
                self.queue.add(key)

    def process_next(self) -> bool:
        """Sync one queued key; return False if the queue was empty.

        A failing sync is logged and its key queued again.
        """
        key = self.queue.get()
        if key is None:
            return False
        try:
            self._sync(SyncContext(key, self.queue, self.recorder))
        except Exception as err:  # noqa: BLE001 - any sync failure requeues
            log.error("%s failed with: %s", self.name, err)
            self.last_error = err
            self.queue.add(key)
        else:
            self.last_error = None
        return True

    def run(self, stop_event: threading.Event) -> None:
        """Process keys until the stop event is set."""
        next_resync = time.monotonic() if self.resync_interval else None
        while not stop_event.is_set():
            if next_resync is not None and time.monotonic() >= next_resync:
                self.queue.add(DEFAULT_QUEUE_KEY)
                next_resync = time.monotonic() + self.resync_interval
            processed = self.process_next()
            if not processed or self.last_error is not None:
                stop_event.wait(self.poll_interval)


def _update_condition(client: ApiClient, kind: type, namespace: str, name: str, condition: Condition):
    obj = client.get(kind, namespace, name)
    before = copy.deepcopy(obj.conditions)
    set_condition(obj.conditions, condition)
    if obj.conditions == before:
        return obj, False
    return client.update(obj, "status"), True


def update_managed_cluster_condition(client: ApiClient, name: str, condition: Condition):
    """Set a condition on a cluster's status; return (cluster, updated)."""
    return _update_condition(client, ManagedCluster, "", name, condition)


def update_addon_condition(client: ApiClient, namespace: str, name: str, condition: Condition):
    """Set a condition on an add-on's status; return (addon, updated)."""
    return _update_condition(client, ManagedClusterAddOn, namespace, name, condition)