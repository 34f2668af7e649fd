"""Finalizers keep the parent resource around until its children are gone."""

from abc import ABC, abstractmethod
import logging

from .exceptions import FinalizerException, ObjectNotFoundError
from .manifest import Unstructured
from .store import Store

__all__ = [
    "Finalizer",
    "APIFinalizer",
]

_LOGGER = logging.getLogger(__name__)


class Finalizer(ABC):
    """Adds and removes a finalizer on an object."""

    @abstractmethod
    async def add_finalizer(self, obj: Unstructured) -> None:
        """Add the finalizer to the object if missing."""

    @abstractmethod
    async def remove_finalizer(self, obj: Unstructured) -> None:
        """Remove the finalizer from the object if present.

        Raises ObjectNotFoundError when the object no longer exists.
        """


class APIFinalizer(Finalizer):
    """Manages a named finalizer by updating the object in the store."""

    def __init__(self, store: Store, name: str) -> None:
        self._store = store
        self._name = name

    async def add_finalizer(self, obj: Unstructured) -> None:
        finalizers = obj.finalizers
        if self._name in finalizers:
            return
        obj.finalizers = [*finalizers, self._name]
        _LOGGER.debug("Adding finalizer %s to %s", self._name, obj.key)
        await self._update(obj)

    async def remove_finalizer(self, obj: Unstructured) -> None:
        finalizers = obj.finalizers
        if self._name not in finalizers:
            return
        obj.finalizers = [f for f in finalizers if f != self._name]
        _LOGGER.debug("Removing finalizer %s from %s", self._name, obj.key)
        await self._update(obj)

    async def _update(self, obj: Unstructured) -> None:
        try:
            await self._store.update(obj)
        except ObjectNotFoundError:
            raise
        except Exception as err:
            raise FinalizerException(
                f"cannot update finalizers of {obj.key}: {err}"
            ) from err
