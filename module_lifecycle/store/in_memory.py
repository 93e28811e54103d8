"""Module for in memory object store."""

import copy
import datetime
import logging
import re
import uuid
from collections import defaultdict
from collections.abc import Callable
from typing import Any, DefaultDict, TypeVar

from module_lifecycle.exceptions import (
    AlreadyExistsError,
    ConflictError,
    ObjectNotFoundError,
)
from module_lifecycle.manifest import (
    KubeObject,
    ManagedFieldsEntry,
    Manifest,
    ObjectKey,
    Unstructured,
)

from .store import ResourceStore, StoreEvent, Propagation, STATUS_SUBRESOURCE

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=KubeObject)

# Fields claimed per item, so that several managers can share the list or map
_ITEM_FIELD = re.compile(r"^metadata\.(labels|annotations|finalizers)\[(.*)\]$")


def _field_paths(obj: KubeObject, subresource: str | None = None) -> set[str]:
    """Return the paths of the fields set on the object."""
    if subresource == STATUS_SUBRESOURCE:
        if getattr(obj, "status", None) is not None:
            return {"status"}
        return set()
    meta = obj.metadata
    paths = {f"metadata.labels[{key}]" for key in meta.labels or {}}
    paths.update(f"metadata.annotations[{key}]" for key in meta.annotations or {})
    paths.update(f"metadata.finalizers[{item}]" for item in meta.finalizers or [])
    if isinstance(obj, Manifest) and obj.spec is not None:
        paths.add("spec")
    elif isinstance(obj, Unstructured):
        paths.update(obj.content)
    return paths


def _release_field(obj: KubeObject, path: str) -> None:
    """Remove a list or map item no longer claimed by any manager."""
    if not (match := _ITEM_FIELD.match(path)):
        return
    attr, item = match.groups()
    meta = obj.metadata
    if attr == "finalizers":
        if meta.finalizers and item in meta.finalizers:
            meta.finalizers = [f for f in meta.finalizers if f != item]
        return
    values = getattr(meta, attr)
    if values and item in values:
        del values[item]


class InMemoryStore(ResourceStore):
    """In-memory implementation of the ResourceStore interface.

    Objects are copied on the way in and out, so callers never share state with
    the store. Supports event listeners for every write.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[ObjectKey, KubeObject] = {}
        self._listeners: DefaultDict[StoreEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )
        self._version = 0

    def add_object(self, obj: KubeObject) -> None:
        """Seed an object into the store, replacing any existing one.

        Identity and version are assigned as on create, no events are fired.
        """
        stored = copy.deepcopy(obj)
        stored.metadata.uid = stored.metadata.uid or str(uuid.uuid4())
        stored.metadata.resource_version = self._next_version()
        self._objects[stored.key] = stored

    def list_objects(self, kind: str | None = None) -> list[KubeObject]:
        """List all objects in the store, optionally filtered by kind."""
        return [
            copy.deepcopy(obj)
            for obj in self._objects.values()
            if kind is None or obj.kind == kind
        ]

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[ObjectKey, KubeObject], None],
    ) -> Callable[[], None]:
        """Register a callback for a store event.

        Returns a callable that can be called to remove the listener.
        """

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)
        return remove

    def _fire_event(self, event: StoreEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _existing(self, key: ObjectKey) -> KubeObject:
        if (obj := self._objects.get(key)) is None:
            raise ObjectNotFoundError(f"{key} not found")
        return obj

    @staticmethod
    def _check_version(existing: KubeObject, obj: KubeObject) -> None:
        version = obj.metadata.resource_version
        if version and version != existing.metadata.resource_version:
            raise ConflictError(
                f"{obj.key} has been modified (version {version} is stale, "
                f"current {existing.metadata.resource_version})"
            )

    @staticmethod
    def _typed_copy(obj: KubeObject, cls: type[T]) -> T:
        if isinstance(obj, cls):
            return copy.deepcopy(obj)
        if cls is Unstructured:
            return Unstructured.parse_doc(obj.to_doc())  # type: ignore[return-value]
        raise ValueError(
            f"Object {obj.key} is not of type {cls.__name__} (was {obj.__class__.__name__})"
        )

    def _save(self, stored: T, event: StoreEvent) -> T:
        """Persist a new revision, removing it if deletion is no longer blocked."""
        key = stored.key
        stored.metadata.resource_version = self._next_version()
        if stored.deletion_requested and not stored.metadata.finalizers:
            self._objects.pop(key, None)
            _LOGGER.debug("Finalizers of %s cleared, object removed", key)
            self._fire_event(event, key, stored)
            self._fire_event(StoreEvent.OBJECT_REMOVED, key, stored)
        else:
            self._objects[key] = stored
            self._fire_event(event, key, stored)
        return copy.deepcopy(stored)

    async def get(self, key: ObjectKey, cls: type[T]) -> T:
        """Retrieve an object by key."""
        return self._typed_copy(self._existing(key), cls)

    async def create(self, obj: T, field_owner: str | None = None) -> T:
        """Create a new object."""
        key = obj.key
        if key in self._objects:
            raise AlreadyExistsError(f"{key} already exists")
        stored = copy.deepcopy(obj)
        stored.metadata.uid = str(uuid.uuid4())
        stored.metadata.deletion_timestamp = None
        stored.metadata.managed_fields = None
        if field_owner:
            stored.metadata.managed_fields = [
                ManagedFieldsEntry(
                    manager=field_owner,
                    operation="Update",
                    fields=sorted(_field_paths(stored)),
                )
            ]
        _LOGGER.debug("Creating %s", key)
        return self._save(stored, StoreEvent.OBJECT_CREATED)

    async def update(self, obj: T, field_owner: str | None = None) -> T:
        """Replace an existing object."""
        existing = self._existing(obj.key)
        self._check_version(existing, obj)
        stored = copy.deepcopy(obj)
        stored.metadata.uid = existing.metadata.uid
        stored.metadata.deletion_timestamp = existing.metadata.deletion_timestamp
        stored.metadata.managed_fields = copy.deepcopy(existing.metadata.managed_fields)
        if isinstance(stored, Manifest) and isinstance(existing, Manifest):
            # Status is only written through the status subresource
            stored.status = copy.deepcopy(existing.status)
        _LOGGER.debug("Updating %s", obj.key)
        return self._save(stored, StoreEvent.OBJECT_UPDATED)

    async def delete(
        self, obj: KubeObject, propagation: Propagation = Propagation.BACKGROUND
    ) -> None:
        """Request deletion of an object."""
        key = obj.key
        existing = self._existing(key)
        _LOGGER.debug("Deleting %s (propagation %s)", key, propagation)
        if existing.metadata.finalizers:
            if not existing.deletion_requested:
                existing.metadata.deletion_timestamp = datetime.datetime.now(
                    datetime.timezone.utc
                )
                existing.metadata.resource_version = self._next_version()
            self._fire_event(StoreEvent.OBJECT_DELETED, key, copy.deepcopy(existing))
            return
        del self._objects[key]
        self._fire_event(StoreEvent.OBJECT_DELETED, key, existing)
        self._fire_event(StoreEvent.OBJECT_REMOVED, key, existing)

    async def patch_apply(
        self, obj: T, field_owner: str, subresource: str | None = None
    ) -> T:
        """Apply the fields set on the object, taking ownership of them."""
        if subresource not in (None, STATUS_SUBRESOURCE):
            raise ValueError(f"Unsupported subresource {subresource}")
        key = obj.key
        paths = _field_paths(obj, subresource)
        if (existing := self._objects.get(key)) is None:
            if subresource is not None:
                raise ObjectNotFoundError(f"{key} not found")
            stored = copy.deepcopy(obj)
            if isinstance(stored, Manifest):
                stored.status = None
            stored.metadata.uid = str(uuid.uuid4())
            stored.metadata.deletion_timestamp = None
            stored.metadata.managed_fields = [
                ManagedFieldsEntry(manager=field_owner, fields=sorted(paths))
            ]
            _LOGGER.debug("Apply created %s", key)
            return self._save(stored, StoreEvent.OBJECT_CREATED)

        self._check_version(existing, obj)
        stored = copy.deepcopy(existing)
        entries = stored.metadata.managed_fields or []
        mine = next(
            (
                entry
                for entry in entries
                if entry.manager == field_owner
                and entry.operation == "Apply"
                and entry.subresource == subresource
            ),
            None,
        )

        if subresource == STATUS_SUBRESOURCE:
            stored.status = copy.deepcopy(getattr(obj, "status"))  # type: ignore[attr-defined]
        else:
            meta = stored.metadata
            if obj.metadata.labels:
                meta.labels = {**(meta.labels or {}), **obj.metadata.labels}
            if obj.metadata.annotations:
                meta.annotations = {
                    **(meta.annotations or {}),
                    **obj.metadata.annotations,
                }
            for finalizer in obj.metadata.finalizers or []:
                if finalizer not in (meta.finalizers or []):
                    meta.finalizers = [*(meta.finalizers or []), finalizer]
            if isinstance(obj, Manifest) and isinstance(stored, Manifest):
                if obj.spec is not None:
                    stored.spec = copy.deepcopy(obj.spec)
            elif isinstance(obj, Unstructured) and isinstance(stored, Unstructured):
                stored.content.update(copy.deepcopy(obj.content))

        # Force ownership of the applied fields
        for entry in entries:
            if entry is not mine:
                entry.fields = [path for path in entry.fields if path not in paths]

        # Items this manager stopped applying are dropped unless owned elsewhere
        if mine is not None:
            still_owned = {
                path for entry in entries if entry is not mine for path in entry.fields
            }
            for path in set(mine.fields) - paths - still_owned:
                _release_field(stored, path)
            mine.fields = sorted(paths)
        else:
            entries.append(
                ManagedFieldsEntry(
                    manager=field_owner, fields=sorted(paths), subresource=subresource
                )
            )
        stored.metadata.managed_fields = [entry for entry in entries if entry.fields]
        _LOGGER.debug("Applied %s to %s as %s", sorted(paths), key, field_owner)
        return self._save(stored, StoreEvent.OBJECT_PATCHED)
