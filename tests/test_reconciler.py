"""Tests for the reconciler state machine."""

import asyncio
from datetime import timedelta

import pytest

from templating_controller import conditions
from templating_controller.config import ReconcilerConfig
from templating_controller.engine import EngineFunc, NopEngine
from templating_controller.exceptions import (
    FinalizerException,
    GetParentError,
    ObjectNotFoundError,
    PatchException,
    StatusUpdateError,
)
from templating_controller.finalizer import Finalizer
from templating_controller.manifest import NamedResource, Unstructured
from templating_controller.patcher import ChildResourcePatcherFunc
from templating_controller.reconciler import Reconciler, Result
from templating_controller.store import InMemoryStore

from helpers import CONFIGMAP_GVK, PARENT_GVK, new_child, new_parent

FINALIZER = "templating-controller.crossplane.io"
CONFIG = ReconcilerConfig(
    short_wait=timedelta(seconds=30),
    long_wait=timedelta(minutes=1),
    tiny_wait=timedelta(seconds=1),
)


def render(*children: Unstructured) -> EngineFunc:
    """Return an engine rendering copies of the children."""

    async def run(parent: Unstructured) -> list[Unstructured]:
        return [child.deep_copy() for child in children]

    return EngineFunc(run)


class FakeFinalizer(Finalizer):
    """Finalizer failing with the given errors."""

    def __init__(
        self,
        add_error: Exception | None = None,
        remove_error: Exception | None = None,
    ) -> None:
        self.add_error = add_error
        self.remove_error = remove_error

    async def add_finalizer(self, obj: Unstructured) -> None:
        if self.add_error:
            raise self.add_error

    async def remove_finalizer(self, obj: Unstructured) -> None:
        if self.remove_error:
            raise self.remove_error


async def synced(store: InMemoryStore, parent: Unstructured) -> conditions.Condition:
    return conditions.get_condition(await store.get(parent.key), "Synced")


async def test_success(store: InMemoryStore, parent: Unstructured) -> None:
    """Test that all children are applied and owned by the parent."""
    reconciler = Reconciler(
        store, PARENT_GVK, engine=render(new_child("a"), new_child("b")), config=CONFIG
    )
    result = await reconciler.reconcile(parent.key)
    assert result == Result(requeue_after=timedelta(minutes=1))

    stored = await store.get(parent.key)
    assert stored.finalizers == [FINALIZER]
    cond = await synced(store, parent)
    assert cond.status == "True"
    assert cond.reason == "ReconcileSuccess"

    children = await store.list_objects(kind=CONFIGMAP_GVK.kind)
    assert [child.name for child in children] == ["a", "b"]
    for child in children:
        assert child.is_controlled_by(stored)
        assert child.labels["core.crossplane.io/parent-name"] == "wp"


async def test_success_is_idempotent(
    store: InMemoryStore, parent: Unstructured
) -> None:
    """Test that a second reconcile changes nothing but the status version."""
    reconciler = Reconciler(store, PARENT_GVK, engine=render(new_child("a")), config=CONFIG)
    await reconciler.reconcile(parent.key)
    child_key = new_child("a").key
    first_child = await store.get(child_key)
    first_cond = await synced(store, parent)

    await reconciler.reconcile(parent.key)
    assert await store.get(child_key) == first_child
    assert await synced(store, parent) == first_cond


async def test_parent_not_found(store: InMemoryStore) -> None:
    """Test that a missing parent is not requeued."""
    reconciler = Reconciler(store, PARENT_GVK, config=CONFIG)
    result = await reconciler.reconcile(new_parent().key)
    assert result == Result(requeue=False)


async def test_get_parent_error() -> None:
    """Test that a failure to read the parent is raised."""

    class BrokenStore(InMemoryStore):
        async def get(self, resource_id: NamedResource) -> Unstructured:
            raise RuntimeError("connection refused")

    reconciler = Reconciler(BrokenStore(), PARENT_GVK, config=CONFIG)
    with pytest.raises(GetParentError, match="could not get the parent resource"):
        await reconciler.reconcile(new_parent().key)


async def test_templating_failure(store: InMemoryStore, parent: Unstructured) -> None:
    """Test that a failing engine is recorded on the parent."""

    async def fail(parent: Unstructured) -> list[Unstructured]:
        raise ValueError("boom")

    reconciler = Reconciler(store, PARENT_GVK, engine=EngineFunc(fail), config=CONFIG)
    result = await reconciler.reconcile(parent.key)
    assert result == Result(requeue_after=timedelta(seconds=30))

    cond = await synced(store, parent)
    assert cond.status == "False"
    assert cond.reason == "ReconcileError"
    assert cond.message == "templating operation failed: boom"
    assert (await store.get(parent.key)).finalizers == []


async def test_patcher_failure(store: InMemoryStore, parent: Unstructured) -> None:
    """Test that a failing patcher is recorded on the parent."""

    def fail(parent: Unstructured, children: list[Unstructured]) -> list[Unstructured]:
        raise PatchException("bad child")

    reconciler = Reconciler(
        store,
        PARENT_GVK,
        engine=render(new_child("a")),
        patchers=[ChildResourcePatcherFunc(fail)],
        config=CONFIG,
    )
    result = await reconciler.reconcile(parent.key)
    assert result.requeue_after == timedelta(seconds=30)
    cond = await synced(store, parent)
    assert cond.message == "child resource patchers failed: bad child"
    assert await store.list_objects(kind="ConfigMap") == []


async def test_add_finalizer_failure(
    store: InMemoryStore, parent: Unstructured
) -> None:
    """Test that children are not applied without the finalizer."""
    reconciler = Reconciler(
        store,
        PARENT_GVK,
        engine=render(new_child("a")),
        finalizer=FakeFinalizer(add_error=FinalizerException("denied")),
        config=CONFIG,
    )
    result = await reconciler.reconcile(parent.key)
    assert result.requeue_after == timedelta(seconds=30)
    cond = await synced(store, parent)
    assert cond.message == "cannot add finalizer to parent resource: denied"
    assert await store.list_objects(kind="ConfigMap") == []


async def test_apply_failure(store: InMemoryStore, parent: Unstructured) -> None:
    """Test that applying stops at the first failing child."""

    class FailingStore(InMemoryStore):
        async def create(self, obj: Unstructured) -> None:
            if obj.name == "b":
                raise RuntimeError("quota exceeded")
            await super().create(obj)

    store = FailingStore()
    await store.create(parent)
    reconciler = Reconciler(
        store,
        PARENT_GVK,
        engine=render(new_child("a"), new_child("b"), new_child("c")),
        config=CONFIG,
    )
    result = await reconciler.reconcile(parent.key)
    assert result.requeue_after == timedelta(seconds=30)
    cond = await synced(store, parent)
    assert cond.message == (
        "apply failed: b/default of type v1, Kind=ConfigMap: "
        "could not create child resource: quota exceeded"
    )
    children = await store.list_objects(kind="ConfigMap")
    assert [child.name for child in children] == ["a"]


async def test_status_update_failure(parent: Unstructured) -> None:
    """Test that a failure to record the outcome is raised."""

    class FailingStore(InMemoryStore):
        async def update_status(self, obj: Unstructured) -> None:
            raise RuntimeError("conflict")

    store = FailingStore()
    await store.create(parent)
    reconciler = Reconciler(store, PARENT_GVK, engine=NopEngine(), config=CONFIG)
    with pytest.raises(
        StatusUpdateError, match="could not update status of the parent resource"
    ):
        await reconciler.reconcile(parent.key)


async def test_teardown(store: InMemoryStore, parent: Unstructured) -> None:
    """Test deleting the children in priority order before the parent."""
    reconciler = Reconciler(
        store,
        PARENT_GVK,
        engine=render(
            new_child("database", priority="10"),
            new_child("app"),
            new_child("namespace", priority="-1"),
        ),
        config=CONFIG,
    )
    await reconciler.reconcile(parent.key)
    await store.delete(parent.key)
    assert (await store.get(parent.key)).was_deleted

    remaining = []
    for _ in range(3):
        result = await reconciler.reconcile(parent.key)
        assert result == Result(requeue_after=timedelta(seconds=1))
        cond = await synced(store, parent)
        assert cond.status == "True"
        assert cond.message == "waiting for deletion of child resources"
        remaining.append(
            sorted(child.name for child in await store.list_objects(kind="ConfigMap"))
        )
    assert remaining == [["app", "namespace"], ["namespace"], []]

    result = await reconciler.reconcile(parent.key)
    assert result == Result(requeue=False)
    with pytest.raises(ObjectNotFoundError):
        await store.get(parent.key)


async def test_teardown_deleter_failure(
    store: InMemoryStore, parent: Unstructured
) -> None:
    """Test that a failing deleter keeps the finalizer."""
    reconciler = Reconciler(
        store, PARENT_GVK, engine=render(new_child("a", priority="first")), config=CONFIG
    )
    await reconciler.reconcile(parent.key)
    await store.delete(parent.key)

    result = await reconciler.reconcile(parent.key)
    assert result.requeue_after == timedelta(seconds=30)
    cond = await synced(store, parent)
    assert cond.message.startswith(
        "cannot run deleter: cannot convert deletion priority into integer"
    )
    assert (await store.get(parent.key)).finalizers == [FINALIZER]


async def test_teardown_remove_finalizer_failure(
    store: InMemoryStore, parent: Unstructured
) -> None:
    """Test that a failure to remove the finalizer is recorded."""
    parent.finalizers = [FINALIZER]
    await store.update(parent)
    await store.delete(parent.key)
    reconciler = Reconciler(
        store,
        PARENT_GVK,
        finalizer=FakeFinalizer(remove_error=FinalizerException("denied")),
        config=CONFIG,
    )
    result = await reconciler.reconcile(parent.key)
    assert result.requeue_after == timedelta(seconds=30)
    cond = await synced(store, parent)
    assert cond.message == "cannot remove finalizer from parent resource: denied"


async def test_teardown_remove_finalizer_not_found(
    store: InMemoryStore, parent: Unstructured
) -> None:
    """Test that a parent removed during the teardown is not an error."""
    parent.finalizers = [FINALIZER]
    await store.update(parent)
    await store.delete(parent.key)
    reconciler = Reconciler(
        store,
        PARENT_GVK,
        finalizer=FakeFinalizer(remove_error=ObjectNotFoundError("gone")),
        config=CONFIG,
    )
    result = await reconciler.reconcile(parent.key)
    assert result == Result(requeue=False)


async def test_timeout(store: InMemoryStore, parent: Unstructured) -> None:
    """Test that a reconcile is bounded by the timeout."""

    async def hang(parent: Unstructured) -> list[Unstructured]:
        await asyncio.sleep(10)
        return []

    reconciler = Reconciler(
        store,
        PARENT_GVK,
        engine=EngineFunc(hang),
        config=ReconcilerConfig(timeout=timedelta(milliseconds=50)),
    )
    with pytest.raises(TimeoutError):
        await reconciler.reconcile(parent.key)


async def test_invalid_stored_conditions(store: InMemoryStore) -> None:
    """Test that the outcome is recorded over conditions that can not be read."""
    parent = new_parent()
    parent.object["status"] = {"conditions": [{"foo": "bar"}]}
    await store.create(parent)

    reconciler = Reconciler(store, PARENT_GVK, engine=NopEngine(), config=CONFIG)
    result = await reconciler.reconcile(parent.key)
    assert result == Result(requeue_after=timedelta(minutes=1))

    stored = await store.get(parent.key)
    [cond] = stored.object["status"]["conditions"]
    assert cond["type"] == "Synced"
    assert cond["status"] == "True"
