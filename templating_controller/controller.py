"""
Templating Controller implementation.

The controller drives the `Reconciler` for every parent resource of a single
type in the store. It watches the store for parent objects, runs at most one
reconcile per parent at a time and schedules the next reconcile as requested
by the `Result` of the previous one.

Key Concepts:
    - Parent resource: An object of the reconciled type, rendered into children.
    - Reconciler: Converges the children of one parent per call.
    - Requeue: A timer that enqueues the parent again after a fixed interval.

Dependencies:
    - templating_controller.store.Store: For watching parent resources.
    - templating_controller.reconciler.Reconciler: For reconciling a parent.
    - templating_controller.task: For tracking the reconcile tasks.
"""

import asyncio
import copy
from datetime import timedelta
import logging
from typing import Any

from .config import ControllerConfig
from .manifest import NamedResource, Unstructured
from .reconciler import Reconciler, Result
from .store import Store, StoreEvent
from .task import get_task_service

__all__ = [
    "TemplatingController",
]

_LOGGER = logging.getLogger(__name__)


def _desired_state(obj: Unstructured) -> dict[str, Any]:
    """Return the object without the fields that change on status writes."""
    doc = copy.deepcopy(obj.to_dict())
    doc.pop("status", None)
    doc.get("metadata", {}).pop("resourceVersion", None)
    return doc


class TemplatingController:
    """
    Controller for reconciling parent resources of a single type.

    Writes that only change the status of a parent (including the ones made by
    the reconciler itself) do not trigger a reconcile.
    """

    def __init__(
        self,
        store: Store,
        reconciler: Reconciler,
        config: ControllerConfig | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            store: The store holding the parent and child resources
            reconciler: Reconciles a single parent resource
            config: The configuration for the controller
        """
        self._store = store
        self._reconciler = reconciler
        self._config = config or ControllerConfig()
        self._task_service = get_task_service()
        self._tasks: set[asyncio.Task[None]] = set()
        self._running: set[NamedResource] = set()
        self._dirty: set[NamedResource] = set()
        self._timers: dict[NamedResource, asyncio.TimerHandle] = {}
        self._seen: dict[NamedResource, dict[str, Any]] = {}
        self._remove_listeners: list[Any] = []

    async def start(self) -> None:
        """Watch the store and enqueue all existing parent resources."""
        gvk = self._reconciler.parent_gvk
        _LOGGER.info("Starting controller for %s", gvk)
        self._remove_listeners = [
            self._store.add_listener(StoreEvent.OBJECT_ADDED, self._on_changed),
            self._store.add_listener(StoreEvent.OBJECT_UPDATED, self._on_changed),
            self._store.add_listener(StoreEvent.OBJECT_DELETED, self._on_deleted),
        ]
        for obj in await self._store.list_objects(kind=gvk.kind, group=gvk.group):
            self._seen[obj.key] = _desired_state(obj)
            self.enqueue(obj.key)

    async def close(self) -> None:
        """Stop watching the store and cancel pending and running reconciles."""
        _LOGGER.info("Closing TemplatingController, cancelling tasks")
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners.clear()
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def block_till_done(self) -> None:
        """Wait for the in-flight reconciles, ignoring scheduled requeues."""
        await self._task_service.block_till_done()

    def _is_parent(self, obj: Unstructured) -> bool:
        return obj.group_version_kind == self._reconciler.parent_gvk

    def _on_changed(self, resource_id: NamedResource, obj: Unstructured) -> None:
        if not self._is_parent(obj):
            return
        state = _desired_state(obj)
        if self._seen.get(resource_id) == state:
            return
        self._seen[resource_id] = state
        self.enqueue(resource_id)

    def _on_deleted(self, resource_id: NamedResource, obj: Unstructured) -> None:
        if not self._is_parent(obj):
            return
        self._seen.pop(resource_id, None)
        if (timer := self._timers.pop(resource_id, None)) is not None:
            timer.cancel()

    def enqueue(self, resource_id: NamedResource) -> None:
        """Reconcile the parent, or again after the reconcile in progress."""
        if resource_id in self._running:
            self._dirty.add(resource_id)
            return
        self._running.add(resource_id)
        task = self._task_service.create_task(
            self._run(resource_id), name=f"reconcile {resource_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, resource_id: NamedResource) -> None:
        """Reconcile until no change arrived during the last pass."""
        try:
            while True:
                self._dirty.discard(resource_id)
                requeue_after = await self._reconcile(resource_id)
                if resource_id not in self._dirty:
                    break
        finally:
            self._running.discard(resource_id)
            self._dirty.discard(resource_id)
        if requeue_after is not None:
            self._schedule(resource_id, requeue_after)

    async def _reconcile(self, resource_id: NamedResource) -> timedelta | None:
        try:
            result: Result = await self._reconciler.reconcile(resource_id)
        except Exception:
            _LOGGER.exception("Reconciling %s failed", resource_id)
            return self._config.error_wait
        if result.requeue_after is not None:
            return result.requeue_after
        if result.requeue:
            return timedelta()
        return None

    def _schedule(self, resource_id: NamedResource, delay: timedelta) -> None:
        if (timer := self._timers.pop(resource_id, None)) is not None:
            timer.cancel()
        _LOGGER.debug("Requeue %s in %s", resource_id, delay)
        loop = asyncio.get_running_loop()
        self._timers[resource_id] = loop.call_later(
            delay.total_seconds(), self._fire, resource_id
        )

    def _fire(self, resource_id: NamedResource) -> None:
        self._timers.pop(resource_id, None)
        self.enqueue(resource_id)
