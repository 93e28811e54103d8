"""Configuration objects for module-lifecycle."""

from dataclasses import dataclass

DEFAULT_FINALIZER = "declarative.kyma-project.io/finalizer"
COMPANION_FINALIZER = "resource.kyma-project.io/finalizer"
LABEL_REMOVAL_FINALIZER = "label-removal-finalizer"
MANAGED_BY_LABEL = "operator.kyma-project.io/managed-by"
MANAGED_BY_LABEL_VALUE = "kyma"
DEFAULT_FIELD_OWNER = "declarative.kyma-project.io/applier"
STORE_TIMEOUT = 30.0


@dataclass(frozen=True)
class LifecycleConfig:
    """Reserved tokens and limits used by the lifecycle operations."""

    default_finalizer: str = DEFAULT_FINALIZER
    """Primary lifecycle finalizer held for the whole life of the Manifest."""

    companion_finalizer: str = COMPANION_FINALIZER
    """Finalizer held while the companion instance may still exist."""

    label_removal_finalizer: str = LABEL_REMOVAL_FINALIZER
    """Finalizer held until the ownership label sweep has succeeded."""

    managed_by_label: str = MANAGED_BY_LABEL
    """Label key marking objects as managed by this controller."""

    managed_by_value: str = MANAGED_BY_LABEL_VALUE
    """Label value paired with `managed_by_label`."""

    field_owner: str = DEFAULT_FIELD_OWNER
    """Field manager used when patching the Manifest status."""

    store_timeout: float | None = STORE_TIMEOUT
    """Deadline in seconds for a single store call, or None to disable."""

    @property
    def mandatory_finalizers(self) -> tuple[str, ...]:
        """Finalizers attached to every Manifest on first sight."""
        return (self.default_finalizer, self.label_removal_finalizer)

    @property
    def managed_by_labels(self) -> dict[str, str]:
        """The ownership label as a mapping, ready to merge into labels."""
        return {self.managed_by_label: self.managed_by_value}
