"""Converge a rendered child resource into the store."""

import logging

from .exceptions import (
    CreateChildResourceError,
    GetChildResourceError,
    ObjectNotFoundError,
    PatchChildResourceError,
)
from .manifest import Unstructured
from .store import Store

__all__ = ["apply"]

_LOGGER = logging.getLogger(__name__)


async def apply(store: Store, child: Unstructured) -> None:
    """Create the child if it does not exist, otherwise merge patch it.

    The patch carries the resource version of the stored object, so a
    concurrent write makes the apply fail instead of being overwritten.
    Applying the same content twice leaves the stored object unchanged.
    """
    try:
        existing = await store.get(child.key)
    except ObjectNotFoundError:
        _LOGGER.debug("Creating child resource %s", child.key)
        try:
            await store.create(child)
        except Exception as err:
            raise CreateChildResourceError(
                f"could not create child resource: {err}"
            ) from err
        return
    except Exception as err:
        raise GetChildResourceError(f"could not get child resource: {err}") from err

    patch = child.deep_copy()
    patch.resource_version = existing.resource_version
    _LOGGER.debug("Patching child resource %s", child.key)
    try:
        await store.patch(child.key, patch.to_dict())
    except Exception as err:
        raise PatchChildResourceError(f"could not patch child resource: {err}") from err
