"""An in-memory API server client and a read-only object cache."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

Kind = Union[type, str]
Reactor = Callable[["Action"], Any]


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""

    def __init__(self, kind: str, name: str):
        super().__init__(f'{kind} "{name}" not found')
        self.kind = kind
        self.name = name


@dataclass
class Action:
    """A request recorded by the client."""

    verb: str
    kind: str
    namespace: str = ""
    name: str = ""
    subresource: str = ""
    obj: Any = None


def _kind_name(kind: Kind) -> str:
    return kind if isinstance(kind, str) else kind.kind


def _key(obj: Any) -> tuple[str, str, str]:
    return type(obj).kind, obj.meta.namespace, obj.meta.name


def _matches(obj: Any, kind: str, namespace: Optional[str], selector: Optional[dict]) -> bool:
    if type(obj).kind != kind:
        return False
    if namespace is not None and obj.meta.namespace != namespace:
        return False
    if selector:
        return all(obj.meta.labels.get(k) == v for k, v in selector.items())
    return True


class ApiClient:
    """Stores objects in memory and records every request made to it."""

    def __init__(self, *objects: Any):
        self._lock = threading.RLock()
        self._objects: dict[tuple[str, str, str], Any] = {
            _key(obj): copy.deepcopy(obj) for obj in objects
        }
        self._reactors: list[tuple[str, str, Reactor]] = []
        self.actions: list[Action] = []
        self.watchers: list[Callable[[str, Any], None]] = []

    def prepend_reactor(self, verb: str, kind: Kind, reactor: Reactor) -> None:
        """Intercept matching requests; a reactor returning non-None handles it."""
        with self._lock:
            self._reactors.insert(0, (verb, _kind_name(kind), reactor))

    def _invoke(self, action: Action, default: Callable[[], Any]) -> Any:
        with self._lock:
            self.actions.append(action)
            for verb, kind, reactor in list(self._reactors):
                if verb in ("*", action.verb) and kind in ("*", action.kind):
                    result = reactor(action)
                    if result is not None:
                        return result
            return default()

    def _notify(self, verb: str, obj: Any) -> None:
        for watcher in list(self.watchers):
            watcher(verb, copy.deepcopy(obj))

    def create(self, obj: Any) -> Any:
        action = Action("create", type(obj).kind, obj.meta.namespace, obj.meta.name, obj=copy.deepcopy(obj))

        def default():
            key = _key(obj)
            if key in self._objects:
                raise ValueError(f'{key[0]} "{key[2]}" already exists')
            self._objects[key] = copy.deepcopy(obj)
            self._notify("create", obj)
            return copy.deepcopy(obj)

        return self._invoke(action, default)

    def get(self, kind: Kind, namespace: str, name: str) -> Any:
        kind_name = _kind_name(kind)
        action = Action("get", kind_name, namespace, name)

        def default():
            try:
                return copy.deepcopy(self._objects[(kind_name, namespace, name)])
            except KeyError:
                raise NotFoundError(kind_name, name) from None

        return self._invoke(action, default)

    def update(self, obj: Any, subresource: str = "") -> Any:
        action = Action(
            "update", type(obj).kind, obj.meta.namespace, obj.meta.name, subresource, copy.deepcopy(obj)
        )

        def default():
            key = _key(obj)
            if key not in self._objects:
                raise NotFoundError(key[0], key[2])
            self._objects[key] = copy.deepcopy(obj)
            self._notify("update", obj)
            return copy.deepcopy(obj)

        return self._invoke(action, default)

    def delete(self, kind: Kind, namespace: str, name: str) -> None:
        kind_name = _kind_name(kind)
        action = Action("delete", kind_name, namespace, name)

        def default():
            try:
                removed = self._objects.pop((kind_name, namespace, name))
            except KeyError:
                raise NotFoundError(kind_name, name) from None
            self._notify("delete", removed)

        self._invoke(action, default)

    def list(self, kind: Kind, namespace: Optional[str] = None, selector: Optional[dict] = None) -> list:
        kind_name = _kind_name(kind)
        action = Action("list", kind_name, namespace or "")

        def default():
            return [
                copy.deepcopy(obj)
                for key, obj in sorted(self._objects.items())
                if _matches(obj, kind_name, namespace, selector)
            ]

        return self._invoke(action, default)


class Lister:
    """A read cache of objects; optionally a live view over an ApiClient."""

    def __init__(self, *objects: Any, source: Optional[ApiClient] = None):
        self._source = source
        self._objects: dict[tuple[str, str, str], Any] = {_key(obj): obj for obj in objects}

    def _view(self) -> dict:
        if self._source is None:
            return self._objects
        with self._source._lock:
            return {**self._source._objects, **self._objects}

    def add(self, obj: Any) -> None:
        self._objects[_key(obj)] = obj

    def get(self, kind: Kind, namespace: str, name: str) -> Any:
        kind_name = _kind_name(kind)
        try:
            return self._view()[(kind_name, namespace, name)]
        except KeyError:
            raise NotFoundError(kind_name, name) from None

    def list(self, kind: Kind, namespace: Optional[str] = None, selector: Optional[dict] = None) -> list:
        kind_name = _kind_name(kind)
        return [
            obj
            for _, obj in sorted(self._view().items())
            if _matches(obj, kind_name, namespace, selector)
        ]