"""Objects and markers shared by the templating-controller tests."""

import shutil

import pytest

from templating_controller.manifest import GroupVersionKind, Unstructured

PARENT_GVK = GroupVersionKind("stacks.example.org", "v1alpha1", "WordpressInstance")
CONFIGMAP_GVK = GroupVersionKind("", "v1", "ConfigMap")
PRIORITY_KEY = "templatestacks.crossplane.io/deletion-priority"

requires_kustomize = pytest.mark.skipif(
    shutil.which("kustomize") is None, reason="kustomize binary is not installed"
)
requires_helm = pytest.mark.skipif(
    shutil.which("helm") is None, reason="helm binary is not installed"
)


def new_parent(
    name: str = "wp", namespace: str = "default", **spec: str
) -> Unstructured:
    """Return a parent resource that has not been stored yet."""
    parent = Unstructured.new(PARENT_GVK, name, namespace)
    parent.object["spec"] = dict(spec)
    return parent


def new_child(
    name: str, namespace: str = "default", priority: str | None = None
) -> Unstructured:
    """Return a ConfigMap child, optionally with a deletion priority."""
    child = Unstructured.new(CONFIGMAP_GVK, name, namespace)
    child.object["data"] = {"key": name}
    if priority is not None:
        child.add_annotations({PRIORITY_KEY: priority})
    return child
