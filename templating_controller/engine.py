"""Templating engines render the child resources of a parent resource.

An engine is a black box to the reconciler: given the parent it either
returns the rendered children or raises. Engines must be deterministic for the
same parent and configuration and must not keep state between runs, since a
single engine instance is shared by concurrent reconciles.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from .exceptions import InputException, TemplatingException
from .manifest import Unstructured, parse_documents

__all__ = [
    "TemplatingEngine",
    "NopEngine",
    "EngineFunc",
]


class TemplatingEngine(ABC):
    """Renders child resources from a parent resource."""

    @abstractmethod
    async def run(self, parent: Unstructured) -> list[Unstructured]:
        """Render the children of the parent resource."""


class NopEngine(TemplatingEngine):
    """A templating engine that renders nothing."""

    async def run(self, parent: Unstructured) -> list[Unstructured]:
        return []


class EngineFunc(TemplatingEngine):
    """Adapts a coroutine function to the TemplatingEngine interface."""

    def __init__(
        self, func: Callable[[Unstructured], Awaitable[list[Unstructured]]]
    ) -> None:
        self._func = func

    async def run(self, parent: Unstructured) -> list[Unstructured]:
        return await self._func(parent)


def parse_rendered(content: str, source: str) -> list[Unstructured]:
    """Parse the YAML output of a templating binary into child resources."""
    try:
        return parse_documents(content)
    except InputException as err:
        raise TemplatingException(f"invalid output rendered by {source}: {err}") from err
