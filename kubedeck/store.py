"""Local cache of the resources in each namespace.

The store is the only state the presentation layer reads. It is mutated from
exactly two places:

  * the reconciliation loop replaces the entire list of a namespace whenever
    the backend reports something different,
  * lifecycle operations optimistically add (create) or remove (delete) a
    single entry right after the backend accepted the request.

There is no diffing. A reconciliation that raced with an optimistic update
may therefore resurrect or hide a resource until the next tick.

All mutations happen on the event loop, which is why there are no locks.
"""

import logging
from typing import Callable, Dict, List, Tuple

from kubedeck.models import ResourceKind, ResourceSummary

# Listeners receive the kind and namespace that changed.
Listener = Callable[[ResourceKind, str], None]


class ResourceStore:
    def __init__(self, logger: logging.Logger = logging.getLogger("kubedeck")):
        self.logit = logger

        # {(kind, namespace): [ResourceSummary, ...]}
        self.resources: Dict[Tuple[ResourceKind, str], List[ResourceSummary]] = {}
        self.listeners: List[Listener] = []

    def subscribe(self, callback: Listener) -> None:
        self.listeners.append(callback)

    def unsubscribe(self, callback: Listener) -> None:
        if callback in self.listeners:
            self.listeners.remove(callback)

    def notify(self, kind: ResourceKind, namespace: str) -> None:
        """Tell all listeners that the list of `kind` in `namespace` changed."""
        for callback in list(self.listeners):
            try:
                callback(kind, namespace)
            except Exception:
                meta_log = self.meta(kind, namespace)
                self.logit.exception("Store listener failed", meta_log)

    def meta(self, kind: ResourceKind, namespace: str) -> dict:
        return {"component": "store", "kind": kind.value, "namespace": namespace}

    def list(self, kind: ResourceKind, namespace: str) -> List[ResourceSummary]:
        """Return a copy of the cached resources."""
        items = self.resources.get((kind, namespace), [])
        return [_.model_copy() for _ in items]

    def replace(
        self, kind: ResourceKind, namespace: str, items: List[ResourceSummary]
    ) -> bool:
        """Replace the cached list with `items` and return `True` if it changed.

        Nothing happens, and no listener fires, if the new list is equal to
        the cached one.

        """
        key = (kind, namespace)
        if self.resources.get(key, []) == items:
            return False

        self.resources[key] = [_.model_copy() for _ in items]
        self.notify(kind, namespace)
        return True

    def insert(
        self, kind: ResourceKind, namespace: str, summary: ResourceSummary
    ) -> bool:
        """Append `summary` unless a resource with that name already exists."""
        items = self.resources.setdefault((kind, namespace), [])
        if summary.name in {_.name for _ in items}:
            meta_log = self.meta(kind, namespace)
            self.logit.warning(f"Resource <{summary.name}> already exists", meta_log)
            return False

        items.append(summary.model_copy())
        self.notify(kind, namespace)
        return True

    def remove(self, kind: ResourceKind, namespace: str, name: str) -> bool:
        """Remove all entries called `name`."""
        items = self.resources.get((kind, namespace), [])
        remaining = [_ for _ in items if _.name != name]
        if len(remaining) == len(items):
            meta_log = self.meta(kind, namespace)
            self.logit.warning(f"Remove non-existing resource <{name}>", meta_log)
            return False

        self.resources[(kind, namespace)] = remaining
        self.notify(kind, namespace)
        return True
