"""Tear down of the children of a parent resource that is being deleted.

Children are deleted in batches ordered by the deletion priority annotation:
every pass deletes the children with the highest priority that still exist,
and the reconciler keeps calling the deleter until nothing is left. Children
with the same priority are deleted together. A negative priority may be used
to delete a child after the ones without the annotation.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
import logging

from .annotations import DELETION_PRIORITY, IntAnnotation
from .exceptions import (
    DeleteChildResourceError,
    GetChildResourceError,
    NotControllerError,
    ObjectNotFoundError,
    PriorityParseError,
)
from .manifest import Unstructured
from .store import Store

__all__ = [
    "ChildResourceDeleter",
    "DeleterFunc",
    "OrderedDeleter",
]

_LOGGER = logging.getLogger(__name__)


class ChildResourceDeleter(ABC):
    """Deletes the children of a parent resource."""

    @abstractmethod
    async def delete(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        """Start deletion of the children.

        Returns the children whose deletion is still in progress, an empty
        list once all of them are gone.
        """


class DeleterFunc(ChildResourceDeleter):
    """Adapts a coroutine function to the ChildResourceDeleter interface."""

    def __init__(
        self,
        func: Callable[[Unstructured, list[Unstructured]], Awaitable[list[Unstructured]]],
    ) -> None:
        self._func = func

    async def delete(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        return await self._func(parent, children)


class OrderedDeleter(ChildResourceDeleter):
    """Deletes the children with the highest deletion priority first."""

    def __init__(self, store: Store, priority: IntAnnotation = DELETION_PRIORITY) -> None:
        self._store = store
        self._priority = priority

    async def delete(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        highest: int | None = None
        batch: list[Unstructured] = []
        for child in children:
            try:
                priority = self._priority.get(child)
            except ValueError as err:
                raise PriorityParseError(
                    f"cannot convert deletion priority into integer: {err}"
                ) from err
            try:
                existing = await self._store.get(child.key)
            except ObjectNotFoundError:
                continue
            except Exception as err:
                raise GetChildResourceError(
                    f"could not get child resource: {err}"
                ) from err
            if highest is None or priority > highest:
                highest = priority
                batch = [existing]
            elif priority == highest:
                batch.append(existing)

        if batch:
            _LOGGER.debug(
                "Deleting %d children of %s with priority %s",
                len(batch),
                parent.key,
                highest,
            )
        for child in batch:
            await self._delete_if_controlled(parent, child)
        return batch

    async def _delete_if_controlled(
        self, parent: Unstructured, child: Unstructured
    ) -> None:
        if child.controller_of() is not None and not child.is_controlled_by(parent):
            raise NotControllerError(
                f"child resource is not controlled by given parent: {child.key}"
            )
        try:
            await self._store.delete(child.key)
        except ObjectNotFoundError:
            pass
        except Exception as err:
            raise DeleteChildResourceError(
                f"cannot delete child resource: {err}"
            ) from err
