"""
The store module provides the declarative object store that parent and child
resources are read from and converged into.

- Uses NamedResource as the key for all objects.
- Stores values as plain documents, handed out as Unstructured copies.
- Provides get/create/update/patch/delete and status updates for the reconciler.

This abstract interface allows for various implementations (in-memory, API server, etc.).
"""

from .store import Store, StoreEvent
from .in_memory import InMemoryStore

__all__ = [
    "Store",
    "StoreEvent",
    "InMemoryStore",
]
