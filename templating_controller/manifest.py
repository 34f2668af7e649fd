"""Representation of the parent and child resources handled by the controller.

Parent and child resources are arbitrary kubernetes objects, so they are held
as plain documents wrapped by `Unstructured` which offers typed accessors for
the well known metadata fields. The structured configuration objects (owner
references, the StackDefinition that selects a templating engine) are
dataclasses that can be parsed from and serialized back to YAML.

This example loads a parent resource and renders its identity:
```python
from templating_controller import manifest

docs = await manifest.read_documents(Path("parent.yaml"))
parent = docs[0]
print(f"Found parent {parent.key} owned by {parent.controller_of()}")
```
"""

import copy
from dataclasses import dataclass, field
import datetime
import logging
from pathlib import Path
from typing import Any, cast

import aiofiles
import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.codecs.yaml import yaml_decode, yaml_encode
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .exceptions import EngineConfigurationException, InputException

__all__ = [
    "GroupVersionKind",
    "NamedResource",
    "OwnerReference",
    "Unstructured",
    "StackDefinition",
    "parse_documents",
    "read_documents",
]

_LOGGER = logging.getLogger(__name__)


STACK_DEFINITION_KIND = "StackDefinition"
KUSTOMIZE_ENGINE = "kustomize"
HELM3_ENGINE = "helm3"
ENGINE_TYPES = (KUSTOMIZE_ENGINE, HELM3_ENGINE)


def now() -> str:
    """Return the current time in the RFC 3339 form used by kubernetes."""
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    def compact_dict(self) -> dict[str, Any]:
        """Return a compact dictionary representation of the object."""
        return self.to_dict()

    @classmethod
    def parse_yaml(cls, content: str) -> "BaseManifest":
        """Parse a serialized manifest."""
        return yaml_decode(content, cls)

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class GroupVersionKind:
    """Type identity of a kubernetes object."""

    group: str
    version: str
    kind: str

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> "GroupVersionKind":
        """Split an apiVersion such as `apps/v1` into group and version."""
        if "/" in api_version:
            group, version = api_version.split("/", 1)
            return cls(group=group, version=version, kind=kind)
        return cls(group="", version=api_version, kind=kind)

    @property
    def api_version(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    def __str__(self) -> str:
        return f"{self.api_version}, Kind={self.kind}"


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource in the store."""

    group: str
    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        if self.group:
            return f"{self.kind}.{self.group}/{self.namespaced_name}"
        return f"{self.kind}/{self.namespaced_name}"


@dataclass
class OwnerReference(BaseManifest):
    """A back-link from a child resource to the object that owns it."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    """The apiVersion of the owner."""

    kind: str
    """The kind of the owner."""

    name: str
    """The name of the owner."""

    uid: str
    """The uid of the owner, used to match references."""

    controller: bool | None = None
    """Set when the owner is the managing controller of the object."""

    block_owner_deletion: bool | None = field(
        default=None, metadata=field_options(alias="blockOwnerDeletion")
    )
    """Block foreground deletion of the owner until this object is gone."""


class Unstructured:
    """A kubernetes object held as a plain document.

    All accessors read and write the underlying `object` mapping in place, so
    callers that must not touch a shared object should work on `deep_copy()`.
    """

    def __init__(self, obj: dict[str, Any] | None = None) -> None:
        """Initialize Unstructured."""
        self.object: dict[str, Any] = obj if obj is not None else {}

    @classmethod
    def new(
        cls, gvk: GroupVersionKind, name: str, namespace: str | None = None
    ) -> "Unstructured":
        """Create an empty object of the given type and identity."""
        obj = cls({"apiVersion": gvk.api_version, "kind": gvk.kind, "metadata": {}})
        obj.name = name
        if namespace:
            obj.namespace = namespace
        return obj

    def _metadata(self) -> dict[str, Any]:
        return cast(dict[str, Any], self.object.setdefault("metadata", {}))

    def deep_copy(self) -> "Unstructured":
        """Return a structural copy that shares no state with this object."""
        return Unstructured(copy.deepcopy(self.object))

    def to_dict(self) -> dict[str, Any]:
        return self.object

    @property
    def api_version(self) -> str:
        return cast(str, self.object.get("apiVersion", ""))

    @property
    def kind(self) -> str:
        return cast(str, self.object.get("kind", ""))

    @property
    def group_version_kind(self) -> GroupVersionKind:
        return GroupVersionKind.from_api_version(self.api_version, self.kind)

    @property
    def name(self) -> str:
        return cast(str, self.object.get("metadata", {}).get("name", ""))

    @name.setter
    def name(self, value: str) -> None:
        self._metadata()["name"] = value

    @property
    def namespace(self) -> str:
        return cast(str, self.object.get("metadata", {}).get("namespace") or "")

    @namespace.setter
    def namespace(self, value: str) -> None:
        self._metadata()["namespace"] = value

    @property
    def uid(self) -> str:
        return cast(str, self.object.get("metadata", {}).get("uid", ""))

    @property
    def resource_version(self) -> str:
        return cast(str, self.object.get("metadata", {}).get("resourceVersion", ""))

    @resource_version.setter
    def resource_version(self, value: str) -> None:
        if value:
            self._metadata()["resourceVersion"] = value
        else:
            self._metadata().pop("resourceVersion", None)

    @property
    def key(self) -> NamedResource:
        """The identity of the object in the store."""
        return NamedResource(
            group=self.group_version_kind.group,
            kind=self.kind,
            namespace=self.namespace or None,
            name=self.name,
        )

    @property
    def labels(self) -> dict[str, str]:
        return dict(self.object.get("metadata", {}).get("labels") or {})

    def add_labels(self, labels: dict[str, str]) -> None:
        """Add the labels to the object, overwriting existing keys."""
        if not labels:
            return
        self._metadata().setdefault("labels", {}).update(labels)

    @property
    def annotations(self) -> dict[str, str]:
        return dict(self.object.get("metadata", {}).get("annotations") or {})

    def add_annotations(self, annotations: dict[str, str]) -> None:
        """Add the annotations to the object, overwriting existing keys."""
        if not annotations:
            return
        self._metadata().setdefault("annotations", {}).update(annotations)

    def remove_annotations(self, *keys: str) -> None:
        """Remove the annotations with the given keys if present."""
        if not (annotations := self.object.get("metadata", {}).get("annotations")):
            return
        for key in keys:
            annotations.pop(key, None)
        if not annotations:
            del self._metadata()["annotations"]

    @property
    def owner_references(self) -> list[OwnerReference]:
        refs = self.object.get("metadata", {}).get("ownerReferences") or []
        return [OwnerReference.from_dict(ref) for ref in refs]

    def add_owner_reference(self, ref: OwnerReference) -> None:
        """Add the owner reference, replacing any reference with the same uid."""
        refs = self.owner_references
        for i, existing in enumerate(refs):
            if existing.uid == ref.uid:
                refs[i] = ref
                break
        else:
            refs.append(ref)
        self._metadata()["ownerReferences"] = [r.to_dict() for r in refs]

    def controller_of(self) -> OwnerReference | None:
        """Return the owner reference of the managing controller, if any."""
        for ref in self.owner_references:
            if ref.controller:
                return ref
        return None

    def is_controlled_by(self, owner: "Unstructured") -> bool:
        if (ref := self.controller_of()) is None:
            return False
        return ref.uid == owner.uid

    @property
    def deletion_timestamp(self) -> str | None:
        return cast(
            str | None, self.object.get("metadata", {}).get("deletionTimestamp")
        )

    @deletion_timestamp.setter
    def deletion_timestamp(self, value: str | None) -> None:
        if value is None:
            self._metadata().pop("deletionTimestamp", None)
        else:
            self._metadata()["deletionTimestamp"] = value

    @property
    def was_deleted(self) -> bool:
        """Whether deletion of the object was requested."""
        return self.deletion_timestamp is not None

    @property
    def finalizers(self) -> list[str]:
        return list(self.object.get("metadata", {}).get("finalizers") or [])

    @finalizers.setter
    def finalizers(self, value: list[str]) -> None:
        if value:
            self._metadata()["finalizers"] = list(value)
        else:
            self._metadata().pop("finalizers", None)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Unstructured):
            return NotImplemented
        return self.object == other.object

    def __repr__(self) -> str:
        return f"Unstructured({self.key})"


def nested_field(obj: dict[str, Any], path: str) -> tuple[Any, bool]:
    """Return the value at the dotted path and whether it was present."""
    value: Any = obj
    for part in path.split("."):
        if not isinstance(value, dict):
            raise InputException(f"Field path '{path}' does not refer to a map at '{part}'")
        if part not in value:
            return None, False
        value = value[part]
    return copy.deepcopy(value), True


def set_nested_field(obj: dict[str, Any], path: str, value: Any) -> None:
    """Set the value at the dotted path, creating intermediate maps."""
    parts = path.split(".")
    current = obj
    for part in parts[:-1]:
        child = current.setdefault(part, {})
        if not isinstance(child, dict):
            raise InputException(f"Field path '{path}' does not refer to a map at '{part}'")
        current = child
    current[parts[-1]] = value


@dataclass
class FieldBinding(BaseManifest):
    """Copies the value of a parent field into a generated overlay object."""

    source: str = field(metadata=field_options(alias="from"))
    """Dotted field path on the parent resource."""

    target: str = field(metadata=field_options(alias="to"))
    """Dotted field path on the generated overlay object."""


@dataclass
class Overlay(BaseManifest):
    """An object generated from the parent and merged over the rendered base."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str
    name: str
    bindings: list[FieldBinding] = field(default_factory=list)


@dataclass
class KustomizeConfiguration(BaseManifest):
    """Kustomize engine specific configuration."""

    overlays: list[Overlay] = field(default_factory=list)
    """Overlay objects generated from the parent for every render."""

    kustomization: dict[str, Any] | None = None
    """The content of the top level kustomization.yaml used as a template."""


@dataclass
class EngineConfiguration(BaseManifest):
    """Selects and configures the templating engine."""

    type: str
    kustomize: KustomizeConfiguration | None = None


@dataclass
class CRDReference(BaseManifest):
    """Points at the parent resource type reconciled by the controller."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str

    @property
    def group_version_kind(self) -> GroupVersionKind:
        return GroupVersionKind.from_api_version(self.api_version, self.kind)


@dataclass
class Source(BaseManifest):
    """Location of the templates in the filesystem."""

    image: str | None = None
    path: str | None = None


@dataclass
class Behavior(BaseManifest):
    """How the parent resources are turned into child resources."""

    crd: CRDReference
    engine: EngineConfiguration
    source: Source | None = None


@dataclass
class StackDefinition(BaseManifest):
    """Configuration for a controller of a single parent resource type."""

    name: str
    namespace: str | None
    behavior: Behavior

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "StackDefinition":
        """Parse a StackDefinition from a raw kubernetes object."""
        if doc.get("kind") != STACK_DEFINITION_KIND:
            raise InputException(f"Invalid object expected {STACK_DEFINITION_KIND}: {doc}")
        if not (metadata := doc.get("metadata")) or not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        if not (behavior := (doc.get("spec") or {}).get("behavior")):
            raise InputException(f"Invalid {cls.__name__} missing spec.behavior: {doc}")
        try:
            parsed = Behavior.from_dict(behavior)
        except (MissingField, InvalidFieldValue) as err:
            raise EngineConfigurationException(
                f"Invalid {cls.__name__} {name} behavior: {err}"
            ) from err
        if parsed.engine.type not in ENGINE_TYPES:
            raise EngineConfigurationException(
                f"the engine type {parsed.engine.type} is not supported"
            )
        return cls(name=name, namespace=metadata.get("namespace"), behavior=parsed)


def parse_documents(content: str) -> list[Unstructured]:
    """Parse a multi-document YAML string into objects."""
    try:
        docs = list(yaml.safe_load_all(content))
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse YAML documents: {err}") from err
    result = []
    for doc in docs:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise InputException(f"Invalid object is not a map: {doc}")
        if not doc.get("kind"):
            raise InputException(f"Invalid object missing kind: {doc}")
        if not doc.get("apiVersion"):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        result.append(Unstructured(doc))
    return result


async def read_documents(path: Path) -> list[Unstructured]:
    """Return the objects contained in a YAML file."""
    async with aiofiles.open(str(path)) as docs_file:
        content = await docs_file.read()
    _LOGGER.debug("Read %d bytes from %s", len(content), path)
    return parse_documents(content)


async def read_stack_definition(path: Path) -> StackDefinition:
    """Return the StackDefinition contained in a YAML file."""
    docs = await read_documents(path)
    if len(docs) != 1:
        raise InputException(
            f"Expected exactly one {STACK_DEFINITION_KIND} in {path}, found {len(docs)}"
        )
    return StackDefinition.parse_doc(docs[0].to_dict())


def dump_documents(objs: list[Unstructured]) -> str:
    """Serialize objects as a multi-document YAML string."""
    return yaml.dump_all(
        [obj.to_dict() for obj in objs], sort_keys=False, explicit_start=True
    )
