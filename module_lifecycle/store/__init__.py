"""
The store module provides the resource stores read and written by the lifecycle
operations: the control-plane store holding Manifests and the target-environment
store holding the companion instance and synced resources.

- Uses ObjectKey as the key for all objects.
- Not found and already exists outcomes are distinct exceptions so callers can
  treat them as success where idempotence requires it.
- Provides an in-memory implementation and a wrapper enforcing a per-call deadline.
"""

from .store import ResourceStore, StoreEvent, Propagation, STATUS_SUBRESOURCE
from .in_memory import InMemoryStore
from .timeout import TimeoutStore

__all__ = [
    "ResourceStore",
    "StoreEvent",
    "Propagation",
    "STATUS_SUBRESOURCE",
    "InMemoryStore",
    "TimeoutStore",
]
