"""Lifecycle of the companion instance owned by a Manifest.

The operations are invoked repeatedly by an external driver, each time with a
fresh snapshot of the Manifest, and must tolerate being re-run after a crash at
any point. Finalizers on the Manifest are the only state carried between runs:

    - The companion finalizer is added only after the companion instance is
      confirmed to exist, and removed only after it is confirmed gone.
    - The label-removal finalizer is removed only after the ownership label has
      been stripped from every resource.

Any failure that is not an idempotent "already done" outcome is recorded in the
in-memory status of the Manifest as an error and raised; the driver persists
the status with `update_status` and retries later.
"""

import logging
from enum import StrEnum

from .companion import CompanionInstanceClient
from .config import LifecycleConfig
from .exceptions import CompanionError, LabelRemovalError, ManifestError
from .finalizers import has_finalizer, remove_finalizers
from .labels_removal import LabelRemovalService
from .manifest import Manifest, ManifestStatus
from .manifest_client import ManifestClient, set_error_state
from .store import ResourceStore, TimeoutStore

__all__ = [
    "ManifestLifecycleUseCase",
    "Progress",
    "CompanionPhase",
    "create_use_case",
]

_LOGGER = logging.getLogger(__name__)


class Progress(StrEnum):
    """Completion signal of a resumable step."""

    PENDING = "Pending"
    """Another invocation is needed."""

    DONE = "Done"
    """Nothing left to do."""


class CompanionPhase(StrEnum):
    """Observed phase of the companion lifecycle of a Manifest."""

    NO_COMPANION = "NoCompanion"
    COMPANION_PENDING = "CompanionPending"
    COMPANION_READY = "CompanionReady"
    DELETION_REQUESTED = "DeletionRequested"
    COMPANION_DELETING = "CompanionDeleting"
    DONE = "Done"


class ManifestLifecycleUseCase:
    """Creates and deletes the companion instance together with the Manifest finalizers."""

    def __init__(
        self,
        control_plane: ResourceStore,
        target: ResourceStore,
        config: LifecycleConfig | None = None,
    ) -> None:
        """Initialize the use case.

        Args:
            control_plane: The store holding Manifests
            target: The store holding the companion instance and synced resources
            config: Reserved finalizer and label tokens
        """
        self._config = config or LifecycleConfig()
        self._target = target
        self._manifests = ManifestClient(control_plane, self._config)
        self._companion = CompanionInstanceClient(target, self._config)
        self._label_removal = LabelRemovalService(self._manifests, self._config)

    @property
    def manifests(self) -> ManifestClient:
        """The client for Manifests in the control-plane store."""
        return self._manifests

    @property
    def companion(self) -> CompanionInstanceClient:
        """The client for the companion instance in the target store."""
        return self._companion

    async def add_mandatory_finalizers(self, manifest: Manifest) -> bool:
        """Attach the finalizers every Manifest carries, returning True if added."""
        return await self._manifests.add_mandatory_finalizers(manifest)

    async def create_companion(self, manifest: Manifest) -> None:
        """Create the companion instance, then add the companion finalizer.

        The finalizer is only added once creation is confirmed, so a crash in
        between leaves nothing to clean up that the next run cannot see. A
        Manifest whose deletion was requested is left alone.
        """
        if (resource := manifest.resource) is None:
            _LOGGER.debug("Manifest %s defines no companion instance", manifest.key)
            return
        if manifest.deletion_requested:
            _LOGGER.debug(
                "Manifest %s is being deleted, not creating companion instance",
                manifest.key,
            )
            return

        try:
            await self._companion.create(resource)
        except CompanionError as err:
            _LOGGER.error("Manifest %s: %s", manifest.key, err)
            set_error_state(manifest, err)
            raise

        try:
            await self._manifests.add_finalizer(
                manifest, self._config.companion_finalizer
            )
        except ManifestError as err:
            _LOGGER.error("Manifest %s: %s", manifest.key, err)
            set_error_state(manifest, err)
            raise

    async def delete_companion(self, manifest: Manifest) -> Progress:
        """Delete the companion instance, then remove the companion finalizer.

        Returns:
            Progress: PENDING while the instance is terminating and right after
                the finalizer was removed, DONE once there is nothing left to do.
        """
        if (resource := manifest.resource) is None:
            return Progress.DONE

        try:
            deleted = await self._companion.delete(resource)
        except CompanionError as err:
            _LOGGER.error("Manifest %s: %s", manifest.key, err)
            set_error_state(manifest, err)
            raise

        if not deleted:
            _LOGGER.info("Waiting for companion instance %s to be deleted", resource.key)
            set_error_state(
                manifest,
                CompanionError(
                    f"waiting for companion instance {resource.key} to be deleted"
                ),
            )
            return Progress.PENDING

        finalizer = self._config.companion_finalizer
        try:
            removed = await self._manifests.remove_finalizer(manifest.key, finalizer)
        except ManifestError as err:
            _LOGGER.error("Manifest %s: %s", manifest.key, err)
            set_error_state(manifest, err)
            raise

        if removed:
            remove_finalizers(manifest, [finalizer])
            # One more pass observes the Manifest without the finalizer
            return Progress.PENDING
        return Progress.DONE

    async def remove_managed_label(self, manifest: Manifest) -> None:
        """Strip the ownership label everywhere, then remove the label-removal finalizer."""
        try:
            await self._label_removal.remove_managed_label(manifest, self._target)
        except (LabelRemovalError, ManifestError) as err:
            _LOGGER.error("Manifest %s: %s", manifest.key, err)
            set_error_state(manifest, err)
            raise

    async def update_status(
        self, manifest: Manifest, previous_status: ManifestStatus
    ) -> bool:
        """Persist the status if the state or last operation changed.

        Returns:
            bool: True if a patch was written.
        """
        return await self._manifests.update_status(manifest, previous_status)

    async def observe_phase(self, manifest: Manifest) -> CompanionPhase:
        """Derive the lifecycle phase from the Manifest and the live companion instance."""
        if (resource := manifest.resource) is None:
            return CompanionPhase.NO_COMPANION
        holds_finalizer = has_finalizer(manifest, self._config.companion_finalizer)
        live = await self._companion.get(resource)
        if not manifest.deletion_requested:
            if live is not None and holds_finalizer:
                return CompanionPhase.COMPANION_READY
            return CompanionPhase.COMPANION_PENDING
        if live is None:
            if holds_finalizer:
                return CompanionPhase.COMPANION_DELETING
            return CompanionPhase.DONE
        if live.deletion_requested:
            return CompanionPhase.COMPANION_DELETING
        return CompanionPhase.DELETION_REQUESTED


def create_use_case(
    control_plane: ResourceStore,
    target: ResourceStore,
    config: LifecycleConfig | None = None,
) -> ManifestLifecycleUseCase:
    """Build a use case whose store calls are bounded by the configured deadline."""
    config = config or LifecycleConfig()
    if config.store_timeout is not None:
        control_plane = TimeoutStore(control_plane, config.store_timeout)
        target = TimeoutStore(target, config.store_timeout)
    return ManifestLifecycleUseCase(control_plane, target, config)
