"""Keep the resource store in sync with the backend.

A background task fetches the resource list of the selected namespace at a
fixed interval and hands it to the store. The store ignores lists that are
equal to what it already has, which means listeners only fire if something
actually changed.

The task only runs while a namespace is selected. Selecting a different
namespace cancels the task and starts a new one. Failed fetches are logged
and retried on the next tick; they never clear the store.
"""

import asyncio
import logging
from typing import List

import kubedeck.backend
from kubedeck.models import ClientConfig, ResourceKind
from kubedeck.store import ResourceStore


class ReconcileLoop:
    """Periodically refresh the `kind` resources of one namespace.

    Usage:

    store = ResourceStore()
    loop = ReconcileLoop(cfg, store, ResourceKind.pod)
    async with loop:
        loop.set_namespace("default")
        ...

    """

    def __init__(
        self,
        cfg: ClientConfig,
        store: ResourceStore,
        kind: ResourceKind,
        interval: float | None = None,
        logger: logging.Logger = logging.getLogger("kubedeck"),
    ):
        self.logit = logger
        self.cfg = cfg
        self.store = store
        self.kind = kind
        self.interval = cfg.interval if interval is None else interval

        # Namespace to reconcile. The loop is idle if it is empty.
        self.namespace: str = ""
        self.tasks: List[asyncio.Task] = []

    def start_tasks(self) -> List[asyncio.Task]:
        return [asyncio.create_task(self.background_runner())]

    def stop_tasks(self) -> None:
        for task in self.tasks:
            task.cancel()
        self.tasks = []

    def set_namespace(self, namespace: str) -> None:
        """Restart the background task for `namespace`.

        An empty `namespace` only stops the current task.

        """
        self.stop_tasks()
        self.namespace = namespace
        if namespace:
            self.tasks = self.start_tasks()

    async def stop(self) -> None:
        """Cancel the background task and wait until it has finished."""
        tasks = self.tasks
        self.stop_tasks()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.stop()

    def get_logging_metadata(self) -> dict:
        return {
            "component": "reconcile",
            "kind": self.kind.value,
            "namespace": self.namespace,
        }

    async def tick(self) -> bool:
        """Fetch the resource list once and return `True` if the store changed."""
        namespace = self.namespace
        if not namespace:
            return False

        items, err = await kubedeck.backend.list_resources(
            self.cfg, self.kind, namespace
        )
        if err:
            meta_log = self.get_logging_metadata()
            self.logit.warning("Cannot reconcile", meta_log)
            return False

        return self.store.replace(self.kind, namespace, items)

    async def background_runner(self) -> None:
        """Reconcile the store indefinitely.

        This method does not return unless it receives a `CancelledError` or
        encounters an unhandled exception (ie bug).

        """
        meta_log = self.get_logging_metadata()
        try:
            self.logit.info("Reconciliation started", meta_log)
            while True:
                if await self.tick():
                    self.logit.debug("Store updated", meta_log)
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            self.logit.info("Background task was cancelled", meta_log)
        except Exception as err:
            self.logit.exception("Unhandled exception", meta_log)
            raise err
