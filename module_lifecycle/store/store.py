"""Store interface for reading and writing objects."""

from abc import ABC, abstractmethod
from enum import Enum, StrEnum
from typing import TypeVar

from module_lifecycle.manifest import KubeObject, ObjectKey

T = TypeVar("T", bound=KubeObject)

STATUS_SUBRESOURCE = "status"


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_CREATED = "object_created"
    OBJECT_UPDATED = "object_updated"
    OBJECT_PATCHED = "object_patched"
    OBJECT_DELETED = "object_deleted"
    OBJECT_REMOVED = "object_removed"


class Propagation(StrEnum):
    """How deletion of an object propagates to its dependents."""

    BACKGROUND = "Background"
    FOREGROUND = "Foreground"
    ORPHAN = "Orphan"


class ResourceStore(ABC):
    """Abstract base class for a store of kubernetes style objects.

    Every method performs a single round trip. Objects passed in are never
    modified; the stored state is returned as a new object.
    """

    @abstractmethod
    async def get(self, key: ObjectKey, cls: type[T]) -> T:
        """Retrieve an object by key.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    async def create(self, obj: T, field_owner: str | None = None) -> T:
        """Create a new object.

        Raises:
            AlreadyExistsError: If an object with the same key exists.
        """

    @abstractmethod
    async def update(self, obj: T, field_owner: str | None = None) -> T:
        """Replace an existing object.

        If the object carries a resource version it must match the stored one.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ConflictError: If the object changed since it was read.
        """

    @abstractmethod
    async def delete(
        self, obj: KubeObject, propagation: Propagation = Propagation.BACKGROUND
    ) -> None:
        """Request deletion of an object.

        An object with finalizers is only marked for deletion, and is removed
        once its finalizer list is emptied.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    async def patch_apply(
        self, obj: T, field_owner: str, subresource: str | None = None
    ) -> T:
        """Apply the fields set on the object, taking ownership of them.

        Fields set by the patch are forcibly taken over from other owners,
        fields the patch does not set are left untouched. With the status
        subresource only the status is applied.

        Raises:
            ConflictError: If the object carries a stale resource version.
        """
