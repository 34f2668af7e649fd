"""
templating-controller renders parent resources into child resources with a
templating engine (kustomize or helm) and converges the children into an
object store, tearing them down in priority order when the parent is deleted.
"""

__all__ = [
    "manifest",
    "conditions",
    "kustomize",
    "helm",
    "reconciler",
    "controller",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
