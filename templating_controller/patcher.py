"""Patchers applied to the rendered children before they are applied.

A patcher receives the parent resource and the list of rendered children and
returns the children to pass to the next patcher. Patchers are run in order by
a `ChildResourcePatcherChain` which stops at the first error.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
import logging

from .annotations import (
    DEFAULT_CLASS_ANNOTATION_KEY,
    REMOVE_DEFAULTING_ANNOTATIONS,
    BoolAnnotation,
)
from .manifest import OwnerReference, Unstructured

__all__ = [
    "ChildResourcePatcher",
    "ChildResourcePatcherFunc",
    "ChildResourcePatcherChain",
    "OwnerReferenceAdder",
    "DefaultingAnnotationRemover",
    "NamespacePatcher",
    "LabelPropagator",
    "ParentLabelSetAdder",
    "kind_matcher",
    "group_suffix_matcher",
    "default_patchers",
]

_LOGGER = logging.getLogger(__name__)

PROVIDER_KIND = "provider"

LABEL_PARENT_GROUP = "core.crossplane.io/parent-group"
LABEL_PARENT_VERSION = "core.crossplane.io/parent-version"
LABEL_PARENT_KIND = "core.crossplane.io/parent-kind"
LABEL_PARENT_NAMESPACE = "core.crossplane.io/parent-namespace"
LABEL_PARENT_NAME = "core.crossplane.io/parent-name"

Matcher = Callable[[Unstructured], bool]


class ChildResourcePatcher(ABC):
    """Mutates the rendered children of a parent resource."""

    @abstractmethod
    def patch(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        """Return the patched children, raising on error."""


class ChildResourcePatcherFunc(ChildResourcePatcher):
    """Adapts a plain function to the ChildResourcePatcher interface."""

    def __init__(
        self, func: Callable[[Unstructured, list[Unstructured]], list[Unstructured]]
    ) -> None:
        self._func = func

    def patch(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        return self._func(parent, children)


class ChildResourcePatcherChain(ChildResourcePatcher):
    """Runs the patchers in order, each receiving the output of the previous."""

    def __init__(self, patchers: list[ChildResourcePatcher]) -> None:
        self._patchers = list(patchers)

    def patch(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        for patcher in self._patchers:
            children = patcher.patch(parent, children)
        return children


def kind_matcher(kind: str) -> Matcher:
    """Match objects of the given kind, ignoring case."""
    kind = kind.lower()

    def match(obj: Unstructured) -> bool:
        return obj.kind.lower() == kind

    return match


def group_suffix_matcher(suffix: str, kind: str) -> Matcher:
    """Match objects of the given kind whose API group ends with the suffix."""

    def match(obj: Unstructured) -> bool:
        gvk = obj.group_version_kind
        return gvk.kind == kind and gvk.group.endswith(suffix)

    return match


class OwnerReferenceAdder(ChildResourcePatcher):
    """Makes the parent the controller owner of every child.

    Children matching the shared dependency predicate (by default the
    providers) are left without an owner so that garbage collection of the
    parent does not remove them before the resources that use them.
    A parent without a uid has not been stored yet and owns nothing.
    """

    def __init__(self, shared_dependency: Matcher | None = None) -> None:
        self._shared_dependency = shared_dependency or kind_matcher(PROVIDER_KIND)

    def patch(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        if not parent.uid:
            _LOGGER.debug(
                "Parent %s has no uid, not adding owner references", parent.key
            )
            return children
        ref = OwnerReference(
            api_version=parent.api_version,
            kind=parent.kind,
            name=parent.name,
            uid=parent.uid,
            controller=True,
            block_owner_deletion=True,
        )
        for child in children:
            if self._shared_dependency(child):
                _LOGGER.debug("Not adding owner reference to shared %s", child.key)
                continue
            child.add_owner_reference(ref)
        return children


class DefaultingAnnotationRemover(ChildResourcePatcher):
    """Strips the default class annotation when the parent asks for it."""

    def __init__(
        self,
        trigger: BoolAnnotation = REMOVE_DEFAULTING_ANNOTATIONS,
        annotation_key: str = DEFAULT_CLASS_ANNOTATION_KEY,
    ) -> None:
        self._trigger = trigger
        self._annotation_key = annotation_key

    def patch(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        if not self._trigger.get(parent):
            return children
        for child in children:
            child.remove_annotations(self._annotation_key)
        return children


class NamespacePatcher(ChildResourcePatcher):
    """Puts children without a namespace into the namespace of the parent.

    Cluster scoped children are patched too, the store ignores the namespace
    of cluster scoped objects.
    """

    def patch(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        if not parent.namespace:
            return children
        for child in children:
            if not child.namespace:
                child.namespace = parent.namespace
        return children


class LabelPropagator(ChildResourcePatcher):
    """Copies the labels of the parent onto every child."""

    def patch(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        labels = parent.labels
        for child in children:
            child.add_labels(labels)
        return children


def parent_labels(parent: Unstructured) -> dict[str, str]:
    """Return the labels that link a child to its parent."""
    gvk = parent.group_version_kind
    return {
        LABEL_PARENT_GROUP: gvk.group,
        LABEL_PARENT_VERSION: gvk.version,
        LABEL_PARENT_KIND: gvk.kind,
        LABEL_PARENT_NAMESPACE: parent.namespace,
        LABEL_PARENT_NAME: parent.name,
    }


class ParentLabelSetAdder(ChildResourcePatcher):
    """Adds the parent linkage labels to every child."""

    def patch(
        self, parent: Unstructured, children: list[Unstructured]
    ) -> list[Unstructured]:
        labels = parent_labels(parent)
        for child in children:
            child.add_labels(labels)
        return children


def default_patchers(shared_dependency: Matcher | None = None) -> list[ChildResourcePatcher]:
    """Return the patchers run on every reconcile, in order."""
    return [
        OwnerReferenceAdder(shared_dependency),
        DefaultingAnnotationRemover(),
        NamespacePatcher(),
        LabelPropagator(),
        ParentLabelSetAdder(),
    ]
