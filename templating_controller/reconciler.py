"""The reconciler converges the children of a single parent resource.

Every call to `Reconciler.reconcile` fetches the parent, renders its children
with the templating engine, runs the patch chain and then either applies the
children (parent is active) or tears them down in priority order (parent is
being deleted). The outcome is recorded as the `Synced` condition of the parent
and the returned `Result` tells the caller when to reconcile again.

This example reconciles a parent once:
```python
from templating_controller.reconciler import Reconciler

reconciler = Reconciler(store, parent_gvk, engine=engine)
result = await reconciler.reconcile(parent_key)
```
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
import logging

from . import conditions
from .apply import apply
from .conditions import Condition
from .config import ReconcilerConfig
from .context import trace_context
from .deleter import ChildResourceDeleter, OrderedDeleter
from .engine import NopEngine, TemplatingEngine
from .exceptions import (
    GetParentError,
    ObjectNotFoundError,
    StatusUpdateError,
)
from .finalizer import APIFinalizer, Finalizer
from .manifest import GroupVersionKind, NamedResource, Unstructured
from .patcher import ChildResourcePatcher, ChildResourcePatcherChain, default_patchers
from .store import Store

__all__ = [
    "Reconciler",
    "Result",
]

_LOGGER = logging.getLogger(__name__)

MSG_WAITING_FOR_DELETION = "waiting for deletion of child resources"


@dataclass(frozen=True)
class Result:
    """Tells the caller whether and when to reconcile the parent again."""

    requeue: bool = False
    requeue_after: timedelta | None = None


class Reconciler:
    """Reconciles parent resources of a single type."""

    def __init__(
        self,
        store: Store,
        parent_gvk: GroupVersionKind,
        engine: TemplatingEngine | None = None,
        patchers: list[ChildResourcePatcher] | None = None,
        deleter: ChildResourceDeleter | None = None,
        finalizer: Finalizer | None = None,
        config: ReconcilerConfig | None = None,
    ) -> None:
        """Initialize Reconciler.

        Collaborators that are not given fall back to the defaults: an engine
        that renders nothing, the default patch chain, the ordered deleter and
        a finalizer updated through the store.
        """
        self._store = store
        self._parent_gvk = parent_gvk
        self._config = config or ReconcilerConfig()
        self._engine = engine or NopEngine()
        self._patcher = ChildResourcePatcherChain(
            patchers if patchers is not None else default_patchers()
        )
        self._deleter = deleter or OrderedDeleter(store)
        self._finalizer = finalizer or APIFinalizer(store, self._config.finalizer)

    @property
    def parent_gvk(self) -> GroupVersionKind:
        """The type of the parent resources reconciled."""
        return self._parent_gvk

    async def reconcile(self, resource_id: NamedResource) -> Result:
        """Reconcile the parent resource with the given identity.

        Failures of the individual stages are recorded on the parent and
        requeued. Only a failure to read the parent or to write its status
        is raised.
        """
        with trace_context(f"Reconcile {resource_id}"):
            async with asyncio.timeout(self._config.timeout.total_seconds()):
                return await self._reconcile(resource_id)

    async def _reconcile(self, resource_id: NamedResource) -> Result:
        try:
            parent = await self._store.get(resource_id)
        except ObjectNotFoundError:
            _LOGGER.info("Parent resource %s no longer exists", resource_id)
            return Result(requeue=False)
        except Exception as err:
            raise GetParentError(f"could not get the parent resource: {err}") from err

        try:
            with trace_context("Templating"):
                children = await self._engine.run(parent)
        except Exception as err:
            _LOGGER.info("Cannot run templating operation for %s: %s", resource_id, err)
            return await self._error(
                parent, f"templating operation failed: {err}", self._config.short_wait
            )

        try:
            children = self._patcher.patch(parent, children)
        except Exception as err:
            _LOGGER.info("Cannot run patchers on children of %s: %s", resource_id, err)
            return await self._error(
                parent, f"child resource patchers failed: {err}", self._config.short_wait
            )

        if parent.was_deleted:
            return await self._teardown(parent, children)

        try:
            await self._finalizer.add_finalizer(parent)
        except Exception as err:
            _LOGGER.info("Cannot add finalizer to %s: %s", resource_id, err)
            return await self._error(
                parent,
                f"cannot add finalizer to parent resource: {err}",
                self._config.short_wait,
            )

        for child in children:
            try:
                await apply(self._store, child)
            except Exception as err:
                _LOGGER.info("Cannot apply %s of %s: %s", child.key, resource_id, err)
                return await self._error(
                    parent,
                    f"apply failed: {child.name}/{child.namespace} of type "
                    f"{child.group_version_kind}: {err}",
                    self._config.short_wait,
                )

        _LOGGER.debug("Reconciliation of %s finished with success", resource_id)
        return await self._finish(
            parent, conditions.reconcile_success(), self._config.long_wait
        )

    async def _teardown(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> Result:
        """Delete the children of a deleted parent, then release the parent."""
        try:
            deleting = await self._deleter.delete(parent, children)
        except Exception as err:
            _LOGGER.info("Cannot run deleter for %s: %s", parent.key, err)
            return await self._error(
                parent, f"cannot run deleter: {err}", self._config.short_wait
            )

        if deleting:
            return await self._finish(
                parent,
                conditions.reconcile_success().with_message(MSG_WAITING_FOR_DELETION),
                self._config.tiny_wait,
            )

        try:
            await self._finalizer.remove_finalizer(parent)
        except ObjectNotFoundError:
            pass
        except Exception as err:
            _LOGGER.info("Cannot remove finalizer from %s: %s", parent.key, err)
            return await self._error(
                parent,
                f"cannot remove finalizer from parent resource: {err}",
                self._config.short_wait,
            )
        return Result(requeue=False)

    async def _error(
        self, parent: Unstructured, message: str, requeue_after: timedelta
    ) -> Result:
        return await self._finish(
            parent, conditions.reconcile_error(message), requeue_after
        )

    async def _finish(
        self, parent: Unstructured, condition: Condition, requeue_after: timedelta
    ) -> Result:
        """Record the condition on the parent and requeue it."""
        conditions.set_conditions(parent, condition)
        try:
            await self._store.update_status(parent)
        except Exception as err:
            raise StatusUpdateError(
                f"could not update status of the parent resource: {err}"
            ) from err
        return Result(requeue_after=requeue_after)
