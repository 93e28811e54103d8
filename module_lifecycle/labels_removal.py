"""Removal of the ownership label from the resources of a Manifest.

The sweep visits every resource previously synced for the Manifest plus its
companion instance. A failure on one resource does not stop the sweep; all
failures are reported together and the label-removal finalizer stays in place
until a later sweep succeeds everywhere.
"""

import logging

from .config import LifecycleConfig
from .exceptions import (
    LabelRemovalError,
    ManifestError,
    ObjectNotFoundError,
    StoreException,
)
from .finalizers import remove_finalizers
from .manifest import Manifest, ResourceDescriptor, Unstructured
from .manifest_client import ManifestClient
from .store import ResourceStore

__all__ = [
    "LabelRemovalService",
    "remove_label",
    "strip_managed_labels",
]

_LOGGER = logging.getLogger(__name__)


def remove_label(obj: Unstructured, label: str) -> bool:
    """Remove the label from the object, returning True if it was present."""
    labels = obj.metadata.labels or {}
    if label not in labels:
        return False
    del labels[label]
    obj.metadata.labels = labels
    return True


def _sweep_targets(manifest: Manifest) -> list[ResourceDescriptor]:
    targets = list(manifest.get_status().synced)
    if (resource := manifest.resource) is not None:
        targets.append(resource.descriptor)
    return targets


async def strip_managed_labels(
    manifest: Manifest, target: ResourceStore, config: LifecycleConfig
) -> None:
    """Remove the ownership label from the synced resources and the companion instance.

    Resources that no longer exist need no cleanup.

    Raises:
        LabelRemovalError: Naming every resource that could not be cleaned up.
    """
    label = config.managed_by_label
    failures: list[tuple[ResourceDescriptor, Exception]] = []
    for descriptor in _sweep_targets(manifest):
        try:
            obj = await target.get(descriptor.key, Unstructured)
        except ObjectNotFoundError:
            _LOGGER.debug("Resource %s is gone, skipping label removal", descriptor)
            continue
        except StoreException as err:
            _LOGGER.warning("Failed to get resource %s: %s", descriptor, err)
            failures.append((descriptor, err))
            continue
        if not remove_label(obj, label):
            continue
        try:
            await target.update(obj)
        except StoreException as err:
            _LOGGER.warning("Failed to update resource %s: %s", descriptor, err)
            failures.append((descriptor, err))
            continue
        _LOGGER.debug("Removed label %s from %s", label, descriptor)

    if failures:
        raise LabelRemovalError(label, failures)


class LabelRemovalService:
    """Strips the ownership label and releases the label-removal finalizer."""

    def __init__(self, manifest_client: ManifestClient, config: LifecycleConfig) -> None:
        """Initialize the service.

        Args:
            manifest_client: Client used to persist the Manifest
            config: Reserved label and finalizer tokens
        """
        self._manifest_client = manifest_client
        self._config = config

    async def remove_managed_label(
        self, manifest: Manifest, target: ResourceStore
    ) -> None:
        """Remove the ownership label, then the label-removal finalizer.

        Raises:
            LabelRemovalError: If the label could not be removed everywhere.
            ManifestError: If the finalizer removal could not be persisted.
        """
        await strip_managed_labels(manifest, target, self._config)

        finalizer = self._config.label_removal_finalizer
        if not remove_finalizers(manifest, [finalizer]):
            return
        try:
            await self._manifest_client.update(manifest)
        except ManifestError as err:
            raise ManifestError(
                f"failed to remove {finalizer} finalizer from Manifest {manifest.key}: {err}"
            ) from err
        _LOGGER.info("Removed finalizer %s from %s", finalizer, manifest.key)
