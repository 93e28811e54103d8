"""Client for Manifests in the control-plane store."""

import logging

from .config import LifecycleConfig
from .exceptions import ManifestError, ObjectNotFoundError, StoreException
from .finalizers import (
    add_finalizers,
    has_finalizer,
    remove_all_finalizers,
    remove_finalizers,
)
from .manifest import Manifest, ManifestStatus, ObjectKey, State
from .store import ResourceStore, STATUS_SUBRESOURCE

__all__ = [
    "ManifestClient",
    "has_status_diff",
    "set_error_state",
]

_LOGGER = logging.getLogger(__name__)


def has_status_diff(first: ManifestStatus, second: ManifestStatus) -> bool:
    """Return True if the state or the last operation text differ."""
    return (
        first.state != second.state
        or first.last_operation.operation != second.last_operation.operation
    )


def set_error_state(manifest: Manifest, err: Exception) -> None:
    """Record the error in the in-memory status of the Manifest."""
    manifest.set_status(manifest.get_status().with_state(State.ERROR).with_err(err))


class ManifestClient:
    """Reads and writes Manifests, including their finalizers and status."""

    def __init__(self, store: ResourceStore, config: LifecycleConfig) -> None:
        """Initialize the client.

        Args:
            store: The control-plane store
            config: Reserved finalizer tokens and field owner
        """
        self._store = store
        self._config = config

    async def get(self, key: ObjectKey) -> Manifest | None:
        """Fetch the current Manifest, or None if it no longer exists."""
        try:
            return await self._store.get(key, Manifest)
        except ObjectNotFoundError:
            return None
        except StoreException as err:
            raise ManifestError(f"failed to get current Manifest {key}: {err}") from err

    async def update(self, manifest: Manifest, field_owner: str | None = None) -> None:
        """Replace the Manifest, failing on a conflicting concurrent change."""
        try:
            await self._store.update(manifest, field_owner=field_owner)
        except StoreException as err:
            raise ManifestError(
                f"failed to update Manifest {manifest.key}: {err}"
            ) from err

    async def patch(
        self,
        manifest: Manifest,
        field_owner: str,
        subresource: str | None = None,
    ) -> None:
        """Apply the fields set on the Manifest as the given field owner.

        Identity and version fields are dropped from the Manifest first, they
        cannot be part of an apply patch.
        """
        manifest.clear_non_patchable()
        try:
            await self._store.patch_apply(manifest, field_owner, subresource=subresource)
        except StoreException as err:
            raise ManifestError(f"failed to patch Manifest {manifest.key}: {err}") from err

    async def update_status(
        self, manifest: Manifest, previous_status: ManifestStatus
    ) -> bool:
        """Patch the status of the Manifest if it differs from the previous status.

        Returns:
            bool: True if a patch was written.
        """
        if not has_status_diff(manifest.get_status(), previous_status):
            _LOGGER.debug("Status of %s unchanged, skipping patch", manifest.key)
            return False
        manifest.clear_non_patchable()
        try:
            await self._store.patch_apply(
                manifest, self._config.field_owner, subresource=STATUS_SUBRESOURCE
            )
        except StoreException as err:
            raise ManifestError(
                f"failed to update Manifest {manifest.key} status: {err}"
            ) from err
        _LOGGER.info(
            "Patched status of %s to %s", manifest.key, manifest.get_status().state
        )
        return True

    async def add_finalizer(self, manifest: Manifest, finalizer: str) -> bool:
        """Add a finalizer owned by the finalizer token itself.

        Only the finalizer is applied, so the patch claims nothing else.

        Returns:
            bool: True if the finalizer was added.
        """
        if has_finalizer(manifest, finalizer):
            return False
        patch = manifest.metadata_only()
        patch.metadata.finalizers = [finalizer]
        await self.patch(patch, finalizer)
        add_finalizers(manifest, [finalizer])
        _LOGGER.info("Added finalizer %s to %s", finalizer, manifest.key)
        return True

    async def remove_finalizer(self, key: ObjectKey, finalizer: str) -> bool:
        """Remove a finalizer from the current Manifest in the store.

        The Manifest is fetched again so the removal never acts on a stale copy.

        Returns:
            bool: True if the finalizer was present and has been removed.
        """
        if (current := await self.get(key)) is None:
            _LOGGER.debug("Manifest %s is gone, no finalizer to remove", key)
            return False
        if not remove_finalizers(current, [finalizer]):
            return False
        await self.update(current, field_owner=finalizer)
        _LOGGER.info("Removed finalizer %s from %s", finalizer, key)
        return True

    async def add_mandatory_finalizers(self, manifest: Manifest) -> bool:
        """Add the finalizers every Manifest carries.

        Returns:
            bool: True if any finalizer was added.
        """
        mandatory = self._config.mandatory_finalizers
        if all(has_finalizer(manifest, finalizer) for finalizer in mandatory):
            return False
        patch = manifest.metadata_only()
        patch.metadata.finalizers = list(mandatory)
        try:
            await self.patch(patch, self._config.default_finalizer)
        except ManifestError as err:
            wrapped = ManifestError(
                f"failed to add mandatory finalizers to Manifest {manifest.key}: {err}"
            )
            set_error_state(manifest, wrapped)
            raise wrapped from err
        add_finalizers(manifest, mandatory)
        _LOGGER.info("Added mandatory finalizers to %s", manifest.key)
        return True

    async def remove_mandatory_finalizers(self, manifest: Manifest) -> bool:
        """Remove the finalizers added by `add_mandatory_finalizers`.

        Returns:
            bool: True if any finalizer was removed.
        """
        if not remove_finalizers(manifest, self._config.mandatory_finalizers):
            return False
        try:
            await self.update(manifest)
        except ManifestError as err:
            wrapped = ManifestError(
                f"failed to remove mandatory finalizers from Manifest {manifest.key}: {err}"
            )
            set_error_state(manifest, wrapped)
            raise wrapped from err
        _LOGGER.info("Removed mandatory finalizers from %s", manifest.key)
        return True

    async def remove_all_finalizers(self, manifest: Manifest) -> bool:
        """Remove every finalizer, releasing the Manifest for deletion.

        Returns:
            bool: True if any finalizer was removed.
        """
        if not remove_all_finalizers(manifest):
            return False
        try:
            await self.update(manifest)
        except ManifestError as err:
            wrapped = ManifestError(
                f"failed to remove all finalizers from Manifest {manifest.key}: {err}"
            )
            set_error_state(manifest, wrapped)
            raise wrapped from err
        _LOGGER.warning("Removed all finalizers from %s", manifest.key)
        return True
