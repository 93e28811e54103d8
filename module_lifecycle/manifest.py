"""Representation of the objects held by the resource stores.

A Manifest lives in the control-plane store and may describe a companion
instance that is created in the target-environment store. The companion
instance has no schema known ahead of time, so it is held as an `Unstructured`
object: an api version and kind, the common object metadata and an opaque
mapping of everything else.
"""

import copy
import datetime
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, cast

import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "Manifest",
    "ManifestSpec",
    "ManifestStatus",
    "LastOperation",
    "State",
    "ObjectMeta",
    "ManagedFieldsEntry",
    "ObjectKey",
    "ResourceDescriptor",
    "Unstructured",
]

MANIFEST_GROUP = "operator.kyma-project.io"
MANIFEST_VERSION = "v1beta2"
MANIFEST_API_VERSION = f"{MANIFEST_GROUP}/{MANIFEST_VERSION}"
MANIFEST_KIND = "Manifest"


def split_api_version(api_version: str) -> tuple[str, str]:
    """Split an apiVersion into its group and version.

    The core group has no prefix, e.g. `v1` is returned as `("", "v1")`.
    """
    if "/" not in api_version:
        return "", api_version
    group, version = api_version.split("/", 1)
    return group, version


def _check_metadata(doc: dict[str, Any]) -> dict[str, Any]:
    """Return the metadata of a raw object, asserting it carries a name."""
    if not (metadata := doc.get("metadata")):
        raise InputException(f"Invalid object missing metadata: {doc}")
    if not metadata.get("name"):
        raise InputException(f"Invalid object missing metadata.name: {doc}")
    return cast(dict[str, Any], metadata)


@dataclass
class BaseObject(DataClassDictMixin):
    """Base class for all serializable objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True)
class ObjectKey:
    """Identifier of an object within a resource store.

    The key does not carry a version so that the same object is found
    regardless of the api version used to address it.
    """

    group: str
    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        if self.group:
            return f"{self.kind}.{self.group}/{self.namespaced_name}"
        return f"{self.kind}/{self.namespaced_name}"


@dataclass(frozen=True)
class ResourceDescriptor(DataClassDictMixin):
    """Identity of an object whose schema is not known ahead of time.

    Descriptors are frozen and hashable, unlike the other serializable objects.
    """

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True

    group: str
    """The API group, empty for the core group."""

    version: str
    """The API version within the group."""

    kind: str
    """The kind of the object."""

    name: str
    """The name of the object."""

    namespace: str | None = None
    """The namespace of the object, if namespaced."""

    @property
    def api_version(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.group, self.kind, self.namespace, self.name)

    @property
    def namespaced_name(self) -> str:
        return self.key.namespaced_name

    def __str__(self) -> str:
        return str(self.key)


@dataclass
class ManagedFieldsEntry(BaseObject):
    """The set of fields owned by a single field manager."""

    manager: str
    """Name of the field manager."""

    operation: str = "Apply"
    """The operation that last claimed the fields."""

    fields: list[str] = field(default_factory=list)
    """Paths of the owned fields e.g. `metadata.finalizers[name]` or `spec`."""

    subresource: str | None = None
    """The subresource the fields were written through, if any."""


@dataclass
class ObjectMeta(BaseObject):
    """Metadata common to every object in a resource store."""

    name: str
    """The name of the object."""

    namespace: str | None = None
    """The namespace of the object."""

    uid: str | None = None
    """Unique identity assigned by the store on creation."""

    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )
    """Opaque version token used for optimistic concurrency."""

    labels: dict[str, str] | None = None
    """Labels on the object."""

    annotations: dict[str, str] | None = None
    """Annotations on the object."""

    finalizers: list[str] | None = None
    """Markers that block physical deletion while present."""

    deletion_timestamp: datetime.datetime | None = field(
        metadata=field_options(alias="deletionTimestamp"), default=None
    )
    """Set by the store once deletion has been requested."""

    managed_fields: list[ManagedFieldsEntry] | None = field(
        metadata=field_options(alias="managedFields"), default=None
    )
    """Field ownership bookkeeping maintained by the store."""


@dataclass
class KubeObject(BaseObject):
    """Base class for objects held by a resource store.

    Subclasses provide `api_version`, `kind` and `metadata`.
    """

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    """The apiVersion of the object."""

    kind: str
    """The kind of the object."""

    metadata: ObjectMeta
    """The object metadata."""

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def key(self) -> ObjectKey:
        group, _ = split_api_version(self.api_version)
        return ObjectKey(group, self.kind, self.metadata.namespace, self.metadata.name)

    @property
    def descriptor(self) -> ResourceDescriptor:
        group, version = split_api_version(self.api_version)
        return ResourceDescriptor(
            group=group,
            version=version,
            kind=self.kind,
            name=self.metadata.name,
            namespace=self.metadata.namespace,
        )

    @property
    def deletion_requested(self) -> bool:
        """Return True once the store has marked the object for deletion."""
        return self.metadata.deletion_timestamp is not None

    def clear_non_patchable(self) -> None:
        """Drop the fields that a patch must not carry."""
        self.metadata.uid = None
        self.metadata.managed_fields = None
        self.metadata.resource_version = None

    def to_doc(self) -> dict[str, Any]:
        """Return the object as a raw kubernetes document."""
        doc = self.to_dict()
        return {"apiVersion": doc.pop("apiVersion"), "kind": doc.pop("kind"), **doc}

    def yaml(self) -> str:
        """Return a YAML string representation of the document."""
        return yaml.dump(self.to_doc(), sort_keys=False, explicit_start=True)


@dataclass
class Unstructured(KubeObject):
    """An object of a kind whose schema is unknown, e.g. the companion instance.

    Everything except `apiVersion`, `kind` and `metadata` is held as is in
    `content`.
    """

    content: dict[str, Any] = field(default_factory=dict)
    """The remaining top level fields of the object e.g. spec."""

    @classmethod
    def from_descriptor(cls, descriptor: ResourceDescriptor) -> "Unstructured":
        """Build an empty object carrying only the identity of the descriptor."""
        return cls(
            api_version=descriptor.api_version,
            kind=descriptor.kind,
            metadata=ObjectMeta(name=descriptor.name, namespace=descriptor.namespace),
        )

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Unstructured":
        """Parse an Unstructured object from a raw kubernetes object."""
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if not (kind := doc.get("kind")):
            raise InputException(f"Invalid object missing kind: {doc}")
        metadata = _check_metadata(doc)
        return cls(
            api_version=api_version,
            kind=kind,
            metadata=ObjectMeta.from_dict(metadata),
            content={
                key: copy.deepcopy(value)
                for key, value in doc.items()
                if key not in ("apiVersion", "kind", "metadata")
            },
        )

    @classmethod
    def parse_yaml(cls, content: str) -> "Unstructured":
        """Parse a serialized object."""
        return cls.parse_doc(yaml.safe_load(content))

    def to_doc(self) -> dict[str, Any]:
        """Return the object as a raw kubernetes document."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            **copy.deepcopy(self.content),
        }


def _encode_resource(resource: Unstructured | None) -> dict[str, Any] | None:
    if resource is None:
        return None
    return resource.to_doc()


def _decode_resource(doc: dict[str, Any] | None) -> Unstructured | None:
    if doc is None:
        return None
    return Unstructured.parse_doc(doc)


class State(StrEnum):
    """Processing state reported in the Manifest status."""

    READY = "Ready"
    PROCESSING = "Processing"
    ERROR = "Error"
    DELETING = "Deleting"
    WARNING = "Warning"
    UNMANAGED = "Unmanaged"


@dataclass
class LastOperation(BaseObject):
    """Description of the most recent operation performed on the Manifest."""

    operation: str = ""
    """Human readable description, or the error message on failure."""

    last_update_time: datetime.datetime | None = field(
        metadata=field_options(alias="lastUpdateTime"), default=None
    )
    """When the operation was recorded."""


@dataclass
class ManifestStatus(BaseObject):
    """Observed status of a Manifest."""

    state: State | None = None
    """The processing state."""

    last_operation: LastOperation = field(
        metadata=field_options(alias="lastOperation"), default_factory=LastOperation
    )
    """The most recent operation."""

    synced: list[ResourceDescriptor] = field(default_factory=list)
    """Resources previously synced into the target environment."""

    def with_state(self, state: State) -> "ManifestStatus":
        """Return a copy with the state replaced."""
        return replace(copy.deepcopy(self), state=state)

    def with_operation(self, operation: str) -> "ManifestStatus":
        """Return a copy recording a new last operation at the current time."""
        return replace(
            copy.deepcopy(self),
            last_operation=LastOperation(
                operation=operation,
                last_update_time=datetime.datetime.now(datetime.timezone.utc),
            ),
        )

    def with_err(self, err: Exception) -> "ManifestStatus":
        """Return a copy recording the error as the last operation."""
        return self.with_operation(str(err))


@dataclass
class ManifestSpec(BaseObject):
    """Desired state of a Manifest."""

    resource: Unstructured | None = field(
        metadata=field_options(
            serialize=_encode_resource, deserialize=_decode_resource
        ),
        default=None,
    )
    """The default companion instance, if the module defines one."""

    version: str | None = None
    """The version of the module."""

    install: dict[str, Any] | None = None
    """Where the module's rendered resources are installed from."""


@dataclass
class Manifest(KubeObject):
    """A module descriptor in the control-plane store.

    When used as an apply patch, `spec` and `status` left as None are not part
    of the patch.
    """

    api_version: str = field(
        metadata=field_options(alias="apiVersion"), default=MANIFEST_API_VERSION
    )
    """The apiVersion of the Manifest."""

    kind: str = MANIFEST_KIND
    """The kind of the Manifest."""

    metadata: ObjectMeta = field(default_factory=lambda: ObjectMeta(name=""))
    """The object metadata."""

    spec: ManifestSpec | None = None
    """The desired state."""

    status: ManifestStatus | None = None
    """The observed state."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Manifest":
        """Parse a Manifest from a raw kubernetes object."""
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if doc.get("kind") != MANIFEST_KIND:
            raise InputException(f"Invalid object expected kind '{MANIFEST_KIND}': {doc}")
        if split_api_version(api_version)[0] != MANIFEST_GROUP:
            raise InputException(f"Invalid object expected '{MANIFEST_GROUP}': {doc}")
        _check_metadata(doc)
        return cls.from_dict(doc)

    @classmethod
    def parse_yaml(cls, content: str) -> "Manifest":
        """Parse a serialized Manifest."""
        return cls.parse_doc(yaml.safe_load(content))

    @property
    def resource(self) -> Unstructured | None:
        """The companion instance described by the Manifest, if any."""
        if self.spec is None:
            return None
        return self.spec.resource

    def get_status(self) -> ManifestStatus:
        """Return a copy of the status, or an empty status if unset."""
        if self.status is None:
            return ManifestStatus()
        return copy.deepcopy(self.status)

    def set_status(self, status: ManifestStatus) -> None:
        self.status = status

    def metadata_only(self) -> "Manifest":
        """Return a copy carrying only the identity and finalizers.

        Used to build apply patches that claim nothing but finalizers.
        """
        return Manifest(
            api_version=self.api_version,
            metadata=ObjectMeta(
                name=self.metadata.name,
                namespace=self.metadata.namespace,
                finalizers=list(self.metadata.finalizers or []),
            ),
        )
