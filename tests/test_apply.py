"""Tests for applying child resources to the store."""

import pytest

from templating_controller.apply import apply
from templating_controller.exceptions import (
    AlreadyExistsError,
    CreateChildResourceError,
    GetChildResourceError,
    PatchChildResourceError,
)
from templating_controller.manifest import NamedResource, Unstructured
from templating_controller.store import InMemoryStore

from helpers import new_child


class FailingStore(InMemoryStore):
    """Store failing the selected calls."""

    def __init__(self, fail: str) -> None:
        super().__init__()
        self._fail = fail

    async def get(self, resource_id: NamedResource) -> Unstructured:
        if self._fail == "get":
            raise RuntimeError("get failed")
        return await super().get(resource_id)

    async def create(self, obj: Unstructured) -> None:
        if self._fail == "create":
            raise AlreadyExistsError("create failed")
        await super().create(obj)

    async def patch(self, resource_id: NamedResource, patch: dict) -> Unstructured:
        if self._fail == "patch":
            raise RuntimeError("patch failed")
        return await super().patch(resource_id, patch)


async def test_create(store: InMemoryStore) -> None:
    """Test that a missing child is created."""
    child = new_child("a")
    await apply(store, child.deep_copy())
    stored = await store.get(child.key)
    assert stored.object["data"] == {"key": "a"}
    assert stored.uid


async def test_idempotent(store: InMemoryStore) -> None:
    """Test that applying the same content twice changes nothing."""
    await apply(store, new_child("a"))
    first = await store.get(new_child("a").key)

    await apply(store, new_child("a"))
    second = await store.get(new_child("a").key)
    assert second == first
    assert second.resource_version == first.resource_version


async def test_patch_existing(store: InMemoryStore) -> None:
    """Test that an existing child is merge patched with the rendered content."""
    existing = new_child("a")
    existing.object["data"]["extra"] = "kept"
    existing.add_labels({"existing": "true"})
    await store.create(existing)

    rendered = new_child("a")
    rendered.object["data"]["key"] = "changed"
    await apply(store, rendered)

    stored = await store.get(rendered.key)
    assert stored.object["data"] == {"key": "changed", "extra": "kept"}
    assert stored.labels == {"existing": "true"}
    assert stored.uid == existing.uid
    assert stored.resource_version != existing.resource_version


@pytest.mark.parametrize(
    ("fail", "error", "match"),
    [
        ("get", GetChildResourceError, "could not get child resource: get failed"),
        ("create", CreateChildResourceError, "could not create child resource"),
    ],
)
async def test_errors(fail: str, error: type[Exception], match: str) -> None:
    """Test that store failures are wrapped."""
    with pytest.raises(error, match=match):
        await apply(FailingStore(fail), new_child("a"))


async def test_patch_error() -> None:
    """Test that a failed patch is wrapped."""
    store = FailingStore("patch")
    await store.create(new_child("a"))
    with pytest.raises(PatchChildResourceError, match="could not patch child resource"):
        await apply(store, new_child("a"))
