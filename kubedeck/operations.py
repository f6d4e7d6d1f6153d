"""Lifecycle operations: create, update, delete, fetch logs and fetch manifests.

Every operation runs through the same sequence, ie validate the manifest,
send the request, mutate the store and report the outcome. Failures return
an `Outcome` with the error category and never touch the store.
"""

import asyncio
import logging
from typing import Tuple

import kubedeck.backend
import kubedeck.generate
from kubedeck.defaults import STATUS_PENDING, resource_path, supported_operations
from kubedeck.manifest_utilities import validate
from kubedeck.models import (
    ClientConfig,
    OperationContext,
    OpState,
    Outcome,
    ResourceKind,
    ResourceSummary,
)
from kubedeck.store import ResourceStore


async def _mysleep(delay: float):
    """This trivial function exists to mock out the `sleep` call during tests."""
    await asyncio.sleep(delay)


def failed(error: str, message: str, detail: str = "") -> Outcome:
    return Outcome(
        state=OpState.failed,
        error=error,  # type: ignore
        message=message,
        detail=detail.strip(),
    )


def succeeded(message: str, detail: str = "") -> Outcome:
    return Outcome(state=OpState.succeeded, message=message, detail=detail)


class Controller:
    def __init__(
        self,
        cfg: ClientConfig,
        store: ResourceStore,
        logger: logging.Logger = logging.getLogger("kubedeck"),
    ):
        self.logit = logger
        self.cfg = cfg
        self.store = store

    def get_logging_metadata(
        self, op: str, kind: ResourceKind, namespace: str, name: str
    ) -> dict:
        return {
            "component": "lifecycle",
            "op": op,
            "kind": kind.value,
            "namespace": namespace,
            "name": name,
        }

    def transition(self, state: OpState, meta_log: dict) -> None:
        self.logit.debug(f"-> {state.value}", meta_log)

    def precheck(
        self, op: str, kind: ResourceKind, namespace: str, name: str
    ) -> Outcome | None:
        """Return a failed `Outcome` if the operation must not be dispatched."""
        if not namespace:
            return failed("context", "No namespace selected")
        if not name:
            return failed("context", f"No {kind.value} name specified")
        if op not in supported_operations()[kind]:
            return failed("context", f"Cannot {op} a {kind.value}")
        return None

    def close_context(self, ctx: OperationContext, mode: str, name: str) -> None:
        """Close `ctx` if it still belongs to the operation that just finished."""
        if ctx.mode == mode and ctx.name == name:
            ctx.close()

    async def create(
        self,
        ctx: OperationContext,
        kind: ResourceKind,
        namespace: str,
        name: str,
        manifest: str,
    ) -> Outcome:
        """Create the resource and optimistically add it to the store as `Pending`."""
        meta_log = self.get_logging_metadata("create", kind, namespace, name)

        if ctx.mode != "create":
            return failed("context", "No create operation is open")
        ret = self.precheck("create", kind, namespace, name)
        if ret:
            return ret

        self.transition(OpState.validating, meta_log)
        _, reason, err = validate(manifest)
        if err:
            self.logit.info("Invalid manifest", meta_log)
            self.transition(OpState.failed, meta_log)
            return failed(
                "validation",
                "Invalid YAML format. Please correct it and try again.",
                reason,
            )

        self.transition(OpState.inflight, meta_log)
        path = resource_path(kind, namespace, name)
        text, err = await kubedeck.backend.post(self.cfg, path, manifest)
        if err:
            self.transition(OpState.failed, meta_log)
            return failed("backend", f"Failed to create {kind.value} {name}", text)

        summary = ResourceSummary(name=name, status=STATUS_PENDING)
        self.store.insert(kind, namespace, summary)
        self.close_context(ctx, "create", name)

        self.transition(OpState.succeeded, meta_log)
        return succeeded(
            f"A new {kind.value} called {name} has successfully been "
            f"created in namespace {namespace}"
        )

    async def update(
        self,
        ctx: OperationContext,
        kind: ResourceKind,
        namespace: str,
        name: str,
        manifest: str,
    ) -> Outcome:
        """Replace the resource with `manifest` and re-fetch the resource list.

        The backend implements the update by deleting and re-creating the pod
        since most of its fields are immutable. The new pod is not guaranteed
        to exist when the PUT returns, which is why we wait a moment and then
        fetch the list once more before we close the edit session.

        """
        meta_log = self.get_logging_metadata("update", kind, namespace, name)

        if ctx.mode != "edit":
            return failed("context", "No edit operation is open")
        ret = self.precheck("update", kind, namespace, name)
        if ret:
            return ret

        self.transition(OpState.validating, meta_log)
        _, reason, err = validate(manifest)
        if err:
            self.logit.info("Invalid manifest", meta_log)
            self.transition(OpState.failed, meta_log)
            return failed(
                "validation",
                "Invalid YAML format. Please correct it and try again.",
                reason,
            )

        self.transition(OpState.inflight, meta_log)
        path = resource_path(kind, namespace, name)
        text, err = await kubedeck.backend.put(self.cfg, path, manifest)
        if err:
            self.transition(OpState.failed, meta_log)
            return failed("backend", f"Failed to update {kind.value} {name}", text)

        # Give the backend time to re-create the resource, then fetch the list.
        await _mysleep(self.cfg.settle)
        items, err = await kubedeck.backend.list_resources(self.cfg, kind, namespace)
        if err:
            self.logit.warning("Cannot re-fetch resources after update", meta_log)
        else:
            self.store.replace(kind, namespace, items)
        self.close_context(ctx, "edit", name)

        self.transition(OpState.succeeded, meta_log)
        title = kind.value.capitalize()
        return succeeded(f"{title} {name} has been updated successfully")

    async def delete(self, kind: ResourceKind, namespace: str, name: str) -> Outcome:
        """Delete the resource and optimistically remove it from the store."""
        meta_log = self.get_logging_metadata("delete", kind, namespace, name)

        ret = self.precheck("delete", kind, namespace, name)
        if ret:
            return ret

        self.transition(OpState.inflight, meta_log)
        path = resource_path(kind, namespace, name)
        text, err = await kubedeck.backend.delete(self.cfg, path)
        if err:
            self.transition(OpState.failed, meta_log)
            return failed("backend", f"Failed to delete {kind.value} {name}", text)

        self.store.remove(kind, namespace, name)

        self.transition(OpState.succeeded, meta_log)
        return succeeded(
            f"{kind.value.capitalize()} {name} has successfully been "
            f"deleted in namespace {namespace}"
        )

    async def fetch_logs(self, namespace: str, name: str) -> Tuple[str, Outcome]:
        """Return the logs of the pod. The store is not involved."""
        kind = ResourceKind.pod
        meta_log = self.get_logging_metadata("logs", kind, namespace, name)

        ret = self.precheck("logs", kind, namespace, name)
        if ret:
            return "", ret

        self.transition(OpState.inflight, meta_log)
        text, err = await kubedeck.backend.get_logs(self.cfg, namespace, name)
        if err:
            self.transition(OpState.failed, meta_log)
            return "", failed("backend", f"Failed to fetch logs for pod {name}", text)

        self.transition(OpState.succeeded, meta_log)
        return text, succeeded(f"Fetched logs for pod {name}")

    async def fetch_manifest(
        self, kind: ResourceKind, namespace: str, name: str, image: str
    ) -> Tuple[str, Outcome]:
        """Return the current manifest of the resource.

        Fall back to the default template if the backend cannot provide a
        usable manifest. This operation therefore always succeeds unless the
        precondition checks fail.

        """
        meta_log = self.get_logging_metadata("manifest", kind, namespace, name)
        template = kubedeck.generate.manifest(kind, name, image)

        if not namespace:
            return "", failed("context", "No namespace selected")
        if not name:
            return "", failed("context", f"No {kind.value} name specified")
        if "manifest" not in supported_operations()[kind]:
            self.logit.info("Backend cannot serve manifest, use template", meta_log)
            return template, succeeded(f"Using default manifest for {name}")

        self.transition(OpState.inflight, meta_log)
        text, err = await kubedeck.backend.get_manifest(self.cfg, namespace, name)
        if not err:
            _, reason, err = validate(text)
            if err:
                text = reason

        if err:
            self.logit.warning("No usable manifest, use template", meta_log)
            self.transition(OpState.succeeded, meta_log)
            return template, succeeded(f"Using default manifest for {name}", text)

        self.transition(OpState.succeeded, meta_log)
        return text, succeeded(f"Fetched manifest for {kind.value} {name}")
