"""Annotations used as a configuration channel on parent and child resources.

Each annotation is read through a small policy object holding the key, the
default used when the annotation is absent, and the parsing rule, so the
patchers and the deleter can be constructed with different keys.
"""

from dataclasses import dataclass
import re

from .manifest import Unstructured

__all__ = [
    "BoolAnnotation",
    "IntAnnotation",
    "REMOVE_DEFAULTING_ANNOTATIONS",
    "DELETION_PRIORITY",
    "DEFAULT_CLASS_ANNOTATION_KEY",
]


REMOVE_DEFAULT_ANNOTATIONS_KEY = (
    "templatestacks.crossplane.io/remove-defaulting-annotations"
)
DELETION_PRIORITY_ANNOTATION_KEY = "templatestacks.crossplane.io/deletion-priority"

# Marks a resource class as the default one for its kind.
DEFAULT_CLASS_ANNOTATION_KEY = "resourceclass.crossplane.io/is-default-class"

# Signed base 10 integer with ASCII digits only.
_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class BoolAnnotation:
    """An annotation that is on only when set to the exact true value."""

    key: str
    true_value: str = "true"

    def get(self, obj: Unstructured) -> bool:
        return obj.annotations.get(self.key) == self.true_value


@dataclass(frozen=True)
class IntAnnotation:
    """An annotation holding a base 10 integer."""

    key: str
    default: str = "0"

    def get(self, obj: Unstructured) -> int:
        """Return the parsed value.

        Raises ValueError when the value is not an integer.
        """
        value = obj.annotations.get(self.key, self.default)
        if not isinstance(value, str) or not _INTEGER.fullmatch(value):
            raise ValueError(f"invalid integer {value!r} in annotation {self.key}")
        return int(value)


REMOVE_DEFAULTING_ANNOTATIONS = BoolAnnotation(REMOVE_DEFAULT_ANNOTATIONS_KEY)
DELETION_PRIORITY = IntAnnotation(DELETION_PRIORITY_ANNOTATION_KEY)
