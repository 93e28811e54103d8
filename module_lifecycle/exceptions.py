"""Exceptions related to module-lifecycle."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .manifest import ResourceDescriptor

__all__ = [
    "LifecycleException",
    "InputException",
    "StoreException",
    "ObjectNotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "TransientError",
    "CompanionError",
    "ManifestError",
    "LabelRemovalError",
]


class LifecycleException(Exception):
    """Generic base exception used for this library."""


class InputException(LifecycleException):
    """Raised when the input documents are not formatted as expected."""


class StoreException(LifecycleException):
    """Raised when a round trip to a resource store fails."""


class ObjectNotFoundError(StoreException):
    """Raised when an object is not found in the store."""


class AlreadyExistsError(StoreException):
    """Raised when creating an object that is already present in the store."""


class ConflictError(StoreException):
    """Raised when an object changed since it was read (optimistic lock violation)."""


class TransientError(StoreException):
    """Raised for timeouts and other failures that may succeed on a later attempt."""


class CompanionError(LifecycleException):
    """Raised when an operation on the companion instance fails."""


class ManifestError(LifecycleException):
    """Raised when a Manifest could not be read or persisted."""


class LabelRemovalError(LifecycleException):
    """Raised when the ownership label could not be removed from one or more resources."""

    def __init__(
        self,
        label: str,
        failures: list[tuple["ResourceDescriptor", Exception]],
    ) -> None:
        details = "; ".join(f"{resource}: {err}" for resource, err in failures)
        super().__init__(
            f"failed to remove {label} label from one or more resources: {details}"
        )
        self.label = label
        self.failures = failures
