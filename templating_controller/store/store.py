"""Store module for reading and writing the declarative state of resources."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any
from enum import Enum

from templating_controller.manifest import NamedResource, Unstructured


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    OBJECT_UPDATED = "object_updated"
    OBJECT_DELETED = "object_deleted"


class Store(ABC):
    """Abstract base class for the object store holding parent and child resources.

    All calls are coroutines so that implementations may talk to a remote API
    server. A missing object is always reported with `ObjectNotFoundError`.
    Like the kubernetes client, writes that take an object refresh it in place
    with the stored state (e.g. the new resource version).
    """

    @abstractmethod
    async def get(self, resource_id: NamedResource) -> Unstructured:
        """Retrieve a copy of the object with the given identity.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    async def list_objects(
        self, kind: str | None = None, group: str | None = None
    ) -> list[Unstructured]:
        """List copies of all objects, optionally filtered by kind and group."""

    @abstractmethod
    async def create(self, obj: Unstructured) -> None:
        """Create the object.

        Raises:
            AlreadyExistsError: If an object with the same identity exists.
        """

    @abstractmethod
    async def update(self, obj: Unstructured) -> None:
        """Replace the metadata and spec of an existing object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ConflictError: If the object carries a stale resource version.
        """

    @abstractmethod
    async def update_status(self, obj: Unstructured) -> None:
        """Replace the status of an existing object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ConflictError: If the object carries a stale resource version.
        """

    @abstractmethod
    async def patch(
        self, resource_id: NamedResource, patch: dict[str, Any]
    ) -> Unstructured:
        """Apply a JSON merge patch to an existing object and return the result.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ConflictError: If the patch carries a stale resource version.
        """

    @abstractmethod
    async def delete(self, resource_id: NamedResource) -> None:
        """Request deletion of the object.

        Objects with finalizers are only marked with a deletion timestamp.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, Unstructured], None],
    ) -> Callable[[], None]:
        """Register a callback for a specific event (object added, updated, deleted).

        Returns a callable that can be called to remove the listener.
        """
