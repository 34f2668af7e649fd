"""Exceptions related to templating-controller."""

__all__ = [
    "TemplatingControllerException",
    "InputException",
    "CommandException",
    "ObjectNotFoundError",
]


class TemplatingControllerException(Exception):
    """Generic base exception used for this library."""


class InputException(TemplatingControllerException):
    """Raised when the input files or values are not formatted as expected."""


class EngineConfigurationException(InputException):
    """Raised when a StackDefinition does not describe a usable engine."""


class CommandException(TemplatingControllerException):
    """Raised when there is a failure running a subcommand."""


class KustomizeException(CommandException):
    """Raised when there is a failure running a kustomize command."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class TemplatingException(TemplatingControllerException):
    """Raised when a templating engine fails to render child resources."""


class PatchException(TemplatingControllerException):
    """Raised when a child resource patcher cannot patch the rendered objects."""


class ObjectNotFoundError(TemplatingControllerException):
    """Raised when an object is not found in the store."""


class AlreadyExistsError(TemplatingControllerException):
    """Raised when creating an object that already exists in the store."""


class ConflictError(TemplatingControllerException):
    """Raised when a write carries a stale resource version."""


class GetParentError(TemplatingControllerException):
    """Raised when the parent resource cannot be fetched from the store."""


class StatusUpdateError(TemplatingControllerException):
    """Raised when the status of the parent resource cannot be written."""


class FinalizerException(TemplatingControllerException):
    """Raised when a finalizer cannot be added to or removed from the parent."""


class DeleteException(TemplatingControllerException):
    """Raised when the ordered deletion of child resources fails."""


class PriorityParseError(DeleteException):
    """Raised when a deletion priority annotation is not an integer."""


class NotControllerError(DeleteException):
    """Raised when deleting a child resource controlled by another parent."""


class DeleteChildResourceError(DeleteException):
    """Raised when the store rejects the delete call for a child resource."""


class ApplyException(TemplatingControllerException):
    """Raised when a child resource cannot be created or patched."""


class CreateChildResourceError(ApplyException):
    """Raised when a missing child resource cannot be created."""


class PatchChildResourceError(ApplyException):
    """Raised when an existing child resource cannot be patched."""


class GetChildResourceError(ApplyException, DeleteException):
    """Raised when a child resource cannot be read back from the store."""
