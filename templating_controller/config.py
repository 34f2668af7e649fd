"""Configuration objects for templating-controller."""

from dataclasses import dataclass
from datetime import timedelta

DEFAULT_FINALIZER = "templating-controller.crossplane.io"


@dataclass(frozen=True)
class ReconcilerConfig:
    """Configuration for the Reconciler."""

    short_wait: timedelta = timedelta(seconds=30)
    """Requeue interval after a failed pass."""

    long_wait: timedelta = timedelta(minutes=1)
    """Requeue interval after a successful pass."""

    tiny_wait: timedelta = timedelta(seconds=1)
    """Requeue interval while children are being deleted."""

    timeout: timedelta = timedelta(minutes=1)
    """Upper bound for a single reconcile."""

    finalizer: str = DEFAULT_FINALIZER
    """Finalizer added to the parent to block its deletion."""


@dataclass(frozen=True)
class ControllerConfig:
    """Configuration for the TemplatingController."""

    error_wait: timedelta = timedelta(seconds=30)
    """Requeue interval when a reconcile raises."""

