"""Helpers for the finalizer list of an object.

All helpers mutate the object in memory only and report whether the list
changed, so callers persist only when there is something to write.
"""

from collections.abc import Iterable

from .manifest import KubeObject

__all__ = [
    "add_finalizers",
    "remove_finalizers",
    "remove_all_finalizers",
    "has_finalizer",
]


def has_finalizer(obj: KubeObject, finalizer: str) -> bool:
    """Return True if the object carries the finalizer."""
    return finalizer in (obj.metadata.finalizers or [])


def add_finalizers(obj: KubeObject, finalizers: Iterable[str]) -> bool:
    """Append the finalizers missing from the object.

    Returns:
        bool: False if all finalizers were already present.
    """
    current = list(obj.metadata.finalizers or [])
    changed = False
    for finalizer in finalizers:
        if finalizer not in current:
            current.append(finalizer)
            changed = True
    if changed:
        obj.metadata.finalizers = current
    return changed


def remove_finalizers(obj: KubeObject, finalizers: Iterable[str]) -> bool:
    """Remove the given finalizers from the object.

    Returns:
        bool: False if none of the finalizers were present.
    """
    current = obj.metadata.finalizers or []
    remove = set(finalizers)
    remaining = [finalizer for finalizer in current if finalizer not in remove]
    if len(remaining) == len(current):
        return False
    obj.metadata.finalizers = remaining
    return True


def remove_all_finalizers(obj: KubeObject) -> bool:
    """Clear the finalizer list of the object.

    Returns:
        bool: False if the list was already empty.
    """
    if not obj.metadata.finalizers:
        return False
    obj.metadata.finalizers = []
    return True
