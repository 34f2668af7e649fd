"""Shared fixtures for templating-controller tests."""

from collections.abc import Generator

import pytest

from templating_controller.manifest import Unstructured
from templating_controller.store import InMemoryStore
from templating_controller.task import TaskService, task_service_context

from helpers import new_parent


@pytest.fixture
def store() -> InMemoryStore:
    """An empty in memory store."""
    return InMemoryStore()


@pytest.fixture
async def parent(store: InMemoryStore) -> Unstructured:
    """A parent resource persisted in the store."""
    obj = new_parent()
    await store.create(obj)
    return obj


@pytest.fixture
def task_service() -> Generator[TaskService, None, None]:
    """A task service scoped to the test."""
    with task_service_context() as service:
        yield service
