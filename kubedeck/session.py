"""Explicit UI state that the presentation layer drives.

The session owns the selected namespace, the currently open operation
(`OperationContext`), the manifest draft and the logs view. It forwards
namespace changes to the reconciliation loops and cancels them on teardown.
Nothing here is global; the web shell creates exactly one `Session`.
"""

import logging
from typing import Dict, List

import kubedeck.assistant
import kubedeck.generate
from kubedeck.models import (
    ClientConfig,
    OperationContext,
    Outcome,
    ResourceKind,
    ResourceSummary,
    SessionInfo,
)
from kubedeck.operations import Controller, failed, succeeded
from kubedeck.store import ResourceStore
from kubedeck.watch import ReconcileLoop


class Session:
    def __init__(
        self,
        cfg: ClientConfig,
        store: ResourceStore | None = None,
        logger: logging.Logger = logging.getLogger("kubedeck"),
    ):
        self.logit = logger
        self.cfg = cfg
        self.store = store if store is not None else ResourceStore(logger)
        self.controller = Controller(cfg, self.store, logger)

        # One reconciliation loop per resource kind.
        self.loops: Dict[ResourceKind, ReconcileLoop] = {
            kind: ReconcileLoop(cfg, self.store, kind, logger=logger)
            for kind in ResourceKind
        }

        self.namespace: str = ""
        self.context = OperationContext(image=cfg.image)

        # Output of the last `open_logs` call.
        self.logs: str = ""

        # Bumped by the store listener on every change.
        self.revision: int = 0
        self.store.subscribe(self.on_store_change)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.teardown()

    async def teardown(self) -> None:
        self.store.unsubscribe(self.on_store_change)
        for loop in self.loops.values():
            await loop.stop()

    def on_store_change(self, kind: ResourceKind, namespace: str) -> None:
        if namespace == self.namespace:
            self.revision += 1

    def info(self) -> SessionInfo:
        return SessionInfo(
            namespace=self.namespace,
            context=self.context.model_copy(),
            logs=self.logs,
            revision=self.revision,
        )

    def select_namespace(self, namespace: str) -> None:
        """Switch to `namespace` and restart the reconciliation loops."""
        self.logit.info("Select namespace", {"namespace": namespace})
        self.namespace = namespace
        self.logs = ""
        self.revision += 1
        for loop in self.loops.values():
            loop.set_namespace(namespace)

    def list_resources(self, kind: ResourceKind) -> List[ResourceSummary]:
        return self.store.list(kind, self.namespace)

    # ----------------------------------------------------------------------
    # Manifest draft.
    # ----------------------------------------------------------------------
    def regenerate(self) -> None:
        """Replace the draft with the default template unless it is frozen.

        This deliberately discards manual edits.

        """
        ctx = self.context
        if ctx.frozen:
            return
        ctx.manifest = kubedeck.generate.manifest(ctx.kind, ctx.name, ctx.image)

    def set_inputs(
        self,
        name: str | None = None,
        kind: ResourceKind | None = None,
        image: str | None = None,
    ) -> Outcome:
        """Update the template inputs and regenerate the draft.

        The target of an edit or logs view is fixed: a frozen manifest must
        never be submitted under another name or kind.

        """
        ctx = self.context
        renamed = name is not None and name != ctx.name
        rekinded = kind is not None and kind != ctx.kind
        if (ctx.frozen or ctx.mode in ("edit", "logs")) and (renamed or rekinded):
            return failed("context", f"Cannot retarget the open {ctx.kind.value}")

        ctx.name = ctx.name if name is None else name
        ctx.kind = ctx.kind if kind is None else kind
        ctx.image = ctx.image if image is None else (image or self.cfg.image)
        self.regenerate()
        return succeeded("Updated the manifest inputs")

    def edit_manifest(self, manifest: str) -> None:
        self.context.manifest = manifest

    # ----------------------------------------------------------------------
    # Modals.
    # ----------------------------------------------------------------------
    def open_create(self, kind: ResourceKind, name: str, image: str = "") -> None:
        self.context = OperationContext(
            mode="create", kind=kind, name=name, image=image or self.cfg.image
        )
        self.regenerate()

    async def open_edit(self, kind: ResourceKind, name: str) -> Outcome:
        """Fetch the manifest of an existing resource and freeze it for editing."""
        text, ret = await self.controller.fetch_manifest(
            kind, self.namespace, name, self.cfg.image
        )
        if not ret.ok:
            return ret

        self.context = OperationContext(
            mode="edit",
            kind=kind,
            name=name,
            image=self.cfg.image,
            manifest=text,
            frozen=True,
        )
        return ret

    async def open_logs(self, name: str) -> Outcome:
        text, ret = await self.controller.fetch_logs(self.namespace, name)
        if not ret.ok:
            return ret

        self.context = OperationContext(
            mode="logs", kind=ResourceKind.pod, name=name, image=self.cfg.image
        )
        self.logs = text
        return ret

    def close(self) -> None:
        self.context.close()
        self.logs = ""

    # ----------------------------------------------------------------------
    # Lifecycle operations.
    # ----------------------------------------------------------------------
    async def submit(self) -> Outcome:
        """Create or update the resource of the open modal."""
        ctx = self.context
        if ctx.mode == "create":
            return await self.controller.create(
                ctx, ctx.kind, self.namespace, ctx.name, ctx.manifest
            )
        if ctx.mode == "edit":
            return await self.controller.update(
                ctx, ctx.kind, self.namespace, ctx.name, ctx.manifest
            )
        return failed("context", "Nothing to submit")

    async def delete(self, kind: ResourceKind, name: str) -> Outcome:
        return await self.controller.delete(kind, self.namespace, name)

    async def draft(self, query: str) -> Outcome:
        """Replace the draft with a manifest from the assistant."""
        ctx = self.context
        if ctx.mode not in ("create", "edit"):
            return failed("context", "No manifest is open")

        text, err = await kubedeck.assistant.draft_manifest(self.cfg, ctx.kind, query)
        if err:
            return failed("backend", "Failed to generate YAML using the assistant")

        self.edit_manifest(text)
        return succeeded("Request sent to the assistant successfully")
