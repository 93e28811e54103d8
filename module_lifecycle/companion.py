"""Client for the companion instance in the target-environment store.

Each operation collapses "already done" into success: creating an instance
that already exists and deleting one that is already gone are both reported
the same way as a first success, so any operation may be re-run after a crash.
"""

import copy
import logging

from .config import LifecycleConfig
from .exceptions import (
    AlreadyExistsError,
    CompanionError,
    ObjectNotFoundError,
    StoreException,
)
from .manifest import Unstructured
from .store import ResourceStore, Propagation

_LOGGER = logging.getLogger(__name__)


class CompanionInstanceClient:
    """Creates, deletes and checks for the companion instance."""

    def __init__(self, store: ResourceStore, config: LifecycleConfig) -> None:
        """Initialize the client.

        Args:
            store: The target-environment store
            config: Reserved tokens for ownership labels and field owner
        """
        self._store = store
        self._config = config

    async def create(self, resource: Unstructured) -> None:
        """Create the companion instance tagged with the ownership label."""
        obj = copy.deepcopy(resource)
        obj.metadata.labels = {
            **(obj.metadata.labels or {}),
            **self._config.managed_by_labels,
        }
        try:
            await self._store.create(obj, field_owner=self._config.companion_finalizer)
        except AlreadyExistsError:
            _LOGGER.debug("Companion instance %s already exists", obj.key)
            return
        except StoreException as err:
            raise CompanionError(
                f"failed to create companion instance {obj.key}: {err}"
            ) from err
        _LOGGER.info("Created companion instance %s", obj.key)

    async def delete(self, resource: Unstructured) -> bool:
        """Request deletion of the companion instance.

        Returns:
            bool: True only once the instance is gone, False while it is
                still being deleted.
        """
        try:
            await self._store.delete(resource, propagation=Propagation.BACKGROUND)
        except ObjectNotFoundError:
            _LOGGER.debug("Companion instance %s is gone", resource.key)
            return True
        except StoreException as err:
            raise CompanionError(
                f"failed to delete companion instance {resource.key}: {err}"
            ) from err
        _LOGGER.info("Requested deletion of companion instance %s", resource.key)
        return False

    async def exists(self, resource: Unstructured) -> bool:
        """Return True if the companion instance is present."""
        return await self.get(resource) is not None

    async def get(self, resource: Unstructured) -> Unstructured | None:
        """Fetch the live companion instance, or None if it does not exist."""
        try:
            return await self._store.get(resource.key, Unstructured)
        except ObjectNotFoundError:
            return None
        except StoreException as err:
            raise CompanionError(
                f"failed to fetch companion instance {resource.key}: {err}"
            ) from err
