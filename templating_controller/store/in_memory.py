"""Module for in memory object store."""

import copy
from collections import defaultdict
from collections.abc import Callable
import itertools
import logging
from typing import Any, DefaultDict
import uuid

from templating_controller.manifest import NamedResource, Unstructured, now
from templating_controller.exceptions import (
    AlreadyExistsError,
    ConflictError,
    InputException,
    ObjectNotFoundError,
)

from .store import Store, StoreEvent


_LOGGER = logging.getLogger(__name__)

# Fields owned by the store that writes can not change.
_SERVER_FIELDS = ("uid", "creationTimestamp", "deletionTimestamp")


def json_merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7386 JSON merge patch, returning a new document."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = json_merge_patch(result.get(key), value)
    return result


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Follows the kubernetes API server semantics that the reconciler relies
    on: uids and resource versions are assigned on write, objects with
    finalizers are only marked for deletion, and removing an object garbage
    collects the objects it owns.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[NamedResource, dict[str, Any]] = {}
        self._versions = itertools.count(1)
        self._listeners: DefaultDict[StoreEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _get_stored(self, resource_id: NamedResource) -> dict[str, Any]:
        if (stored := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        return stored

    def _check_version(
        self, resource_id: NamedResource, stored: dict[str, Any], version: str | None
    ) -> None:
        if version and version != stored["metadata"]["resourceVersion"]:
            raise ConflictError(
                f"Object {resource_id} has been modified: resource version "
                f"{version} does not match {stored['metadata']['resourceVersion']}"
            )

    def _store(self, resource_id: NamedResource, doc: dict[str, Any]) -> None:
        doc["metadata"]["resourceVersion"] = self._next_version()
        self._objects[resource_id] = doc
        self._fire_event(StoreEvent.OBJECT_UPDATED, resource_id, doc)

    async def get(self, resource_id: NamedResource) -> Unstructured:
        """Retrieve a copy of the object with the given identity."""
        return Unstructured(copy.deepcopy(self._get_stored(resource_id)))

    async def list_objects(
        self, kind: str | None = None, group: str | None = None
    ) -> list[Unstructured]:
        """List copies of all objects, optionally filtered by kind and group."""
        return [
            Unstructured(copy.deepcopy(doc))
            for resource_id, doc in self._objects.items()
            if (kind is None or resource_id.kind == kind)
            and (group is None or resource_id.group == group)
        ]

    async def create(self, obj: Unstructured) -> None:
        """Create the object, assigning its uid and resource version."""
        if not obj.name:
            raise InputException(f"Invalid object missing metadata.name: {obj.to_dict()}")
        resource_id = obj.key
        if resource_id in self._objects:
            raise AlreadyExistsError(f"Object {resource_id} already exists")
        doc = copy.deepcopy(obj.to_dict())
        metadata = doc.setdefault("metadata", {})
        metadata.pop("deletionTimestamp", None)
        metadata["uid"] = str(uuid.uuid4())
        metadata["creationTimestamp"] = now()
        metadata["resourceVersion"] = self._next_version()
        _LOGGER.debug("Creating object %s in store", resource_id)
        self._objects[resource_id] = doc
        obj.object = copy.deepcopy(doc)
        self._fire_event(StoreEvent.OBJECT_ADDED, resource_id, doc)

    async def update(self, obj: Unstructured) -> None:
        """Replace the metadata and spec of an existing object."""
        resource_id = obj.key
        stored = self._get_stored(resource_id)
        self._check_version(resource_id, stored, obj.resource_version)
        doc = copy.deepcopy(obj.to_dict())
        doc.pop("status", None)
        if "status" in stored:
            doc["status"] = copy.deepcopy(stored["status"])
        metadata = doc.setdefault("metadata", {})
        for key in _SERVER_FIELDS:
            metadata.pop(key, None)
            if key in stored["metadata"]:
                metadata[key] = stored["metadata"][key]
        if metadata.get("deletionTimestamp") and not metadata.get("finalizers"):
            _LOGGER.debug("Last finalizer removed from %s", resource_id)
            self._remove(resource_id)
            obj.object = doc
            return
        _LOGGER.debug("Updating object %s in store", resource_id)
        self._store(resource_id, doc)
        obj.object = copy.deepcopy(doc)

    async def update_status(self, obj: Unstructured) -> None:
        """Replace the status of an existing object."""
        resource_id = obj.key
        stored = self._get_stored(resource_id)
        self._check_version(resource_id, stored, obj.resource_version)
        doc = copy.deepcopy(stored)
        if (status := obj.to_dict().get("status")) is not None:
            doc["status"] = copy.deepcopy(status)
        else:
            doc.pop("status", None)
        _LOGGER.debug("Updating status of %s in store", resource_id)
        self._store(resource_id, doc)
        obj.object = copy.deepcopy(doc)

    async def patch(
        self, resource_id: NamedResource, patch: dict[str, Any]
    ) -> Unstructured:
        """Apply a JSON merge patch to an existing object and return the result."""
        stored = self._get_stored(resource_id)
        patch = copy.deepcopy(patch)
        patch_metadata = patch.get("metadata") or {}
        self._check_version(
            resource_id, stored, patch_metadata.pop("resourceVersion", None)
        )
        for key in _SERVER_FIELDS:
            patch_metadata.pop(key, None)
        doc = json_merge_patch(stored, patch)
        if doc == stored:
            _LOGGER.debug("Patch of %s is a no-op", resource_id)
            return Unstructured(copy.deepcopy(stored))
        _LOGGER.debug("Patching object %s in store", resource_id)
        self._store(resource_id, doc)
        return Unstructured(copy.deepcopy(doc))

    async def delete(self, resource_id: NamedResource) -> None:
        """Request deletion of the object."""
        stored = self._get_stored(resource_id)
        self._delete(resource_id, stored)

    def _delete(self, resource_id: NamedResource, stored: dict[str, Any]) -> None:
        metadata = stored["metadata"]
        if metadata.get("finalizers"):
            if not metadata.get("deletionTimestamp"):
                _LOGGER.debug("Marking %s for deletion", resource_id)
                doc = copy.deepcopy(stored)
                doc["metadata"]["deletionTimestamp"] = now()
                self._store(resource_id, doc)
            return
        self._remove(resource_id)

    def _remove(self, resource_id: NamedResource) -> None:
        doc = self._objects.pop(resource_id)
        _LOGGER.debug("Removed object %s from store", resource_id)
        self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, doc)
        self._collect_garbage()

    def _collect_garbage(self) -> None:
        """Delete objects whose owners are all gone."""
        uids = {doc["metadata"]["uid"] for doc in self._objects.values()}
        for resource_id in list(self._objects):
            if (doc := self._objects.get(resource_id)) is None:
                continue
            refs = doc["metadata"].get("ownerReferences") or []
            if refs and not any(ref.get("uid") in uids for ref in refs):
                _LOGGER.debug("Garbage collecting orphaned object %s", resource_id)
                self._delete(resource_id, doc)

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, Unstructured], None],
    ) -> Callable[[], None]:
        """Register a callback for a specific event (object added, updated, deleted)."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)
        return remove

    def _fire_event(
        self, event: StoreEvent, resource_id: NamedResource, doc: dict[str, Any]
    ) -> None:
        for cb in list(self._listeners[event]):  # Iterate over a copy for safe removal
            try:
                cb(resource_id, Unstructured(copy.deepcopy(doc)))
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)
