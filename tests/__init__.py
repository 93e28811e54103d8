"""Test helpers for module-lifecycle."""

from typing import Any, TypeVar

from module_lifecycle.manifest import (
    KubeObject,
    Manifest,
    ManifestSpec,
    ManifestStatus,
    ObjectKey,
    ObjectMeta,
    ResourceDescriptor,
    State,
    Unstructured,
)
from module_lifecycle.store import InMemoryStore, Propagation

T = TypeVar("T", bound=KubeObject)

COMPANION_DESCRIPTOR = ResourceDescriptor(
    group="g", version="v1", kind="K", name="n", namespace="ns"
)


def companion_resource(labels: dict[str, str] | None = None) -> Unstructured:
    """Return the default companion instance used by the tests."""
    return Unstructured(
        api_version=COMPANION_DESCRIPTOR.api_version,
        kind=COMPANION_DESCRIPTOR.kind,
        metadata=ObjectMeta(
            name=COMPANION_DESCRIPTOR.name,
            namespace=COMPANION_DESCRIPTOR.namespace,
            labels=labels,
        ),
        content={"spec": {"replicas": 1}},
    )


def make_manifest(
    *,
    resource: Unstructured | None = None,
    finalizers: list[str] | None = None,
    synced: list[ResourceDescriptor] | None = None,
    state: State | None = None,
) -> Manifest:
    """Return a Manifest in namespace kcp-system."""
    return Manifest(
        metadata=ObjectMeta(
            name="module-manifest", namespace="kcp-system", finalizers=finalizers
        ),
        spec=ManifestSpec(resource=resource, version="1.0.0"),
        status=ManifestStatus(state=state, synced=list(synced or [])),
    )


def synced_resource(name: str, labels: dict[str, str] | None = None) -> Unstructured:
    """Return a synced Deployment with the given labels."""
    return Unstructured(
        api_version="apps/v1",
        kind="Deployment",
        metadata=ObjectMeta(name=name, namespace="kyma-system", labels=labels),
        content={"spec": {"replicas": 1}},
    )


class FaultyStore(InMemoryStore):
    """InMemoryStore that records calls and raises injected errors."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, ObjectKey]] = []
        self._failures: dict[tuple[str, ObjectKey], Exception] = {}

    def fail(self, operation: str, key: ObjectKey, err: Exception) -> None:
        """Raise the error on every call of the operation for the key."""
        self._failures[(operation, key)] = err

    def clear_failures(self) -> None:
        self._failures.clear()

    def calls_of(self, operation: str) -> list[ObjectKey]:
        return [key for op, key in self.calls if op == operation]

    def _record(self, operation: str, key: ObjectKey) -> None:
        self.calls.append((operation, key))
        if (err := self._failures.get((operation, key))) is not None:
            raise err

    async def get(self, key: ObjectKey, cls: type[T]) -> T:
        self._record("get", key)
        return await super().get(key, cls)

    async def create(self, obj: T, field_owner: str | None = None) -> T:
        self._record("create", obj.key)
        return await super().create(obj, field_owner)

    async def update(self, obj: T, field_owner: str | None = None) -> T:
        self._record("update", obj.key)
        return await super().update(obj, field_owner)

    async def delete(
        self, obj: KubeObject, propagation: Propagation = Propagation.BACKGROUND
    ) -> None:
        self._record("delete", obj.key)
        await super().delete(obj, propagation)

    async def patch_apply(
        self, obj: T, field_owner: str, subresource: str | None = None
    ) -> T:
        self._record("patch", obj.key)
        return await super().patch_apply(obj, field_owner, subresource)


def labels_of(store: InMemoryStore, key: ObjectKey) -> dict[str, Any]:
    """Return the labels of a stored object."""
    for obj in store.list_objects():
        if obj.key == key:
            return dict(obj.metadata.labels or {})
    raise KeyError(key)
