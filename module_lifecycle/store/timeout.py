"""Store wrapper enforcing a deadline on every call."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from typing import TypeVar

from module_lifecycle.exceptions import TransientError
from module_lifecycle.manifest import KubeObject, ObjectKey

from .store import ResourceStore, Propagation

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=KubeObject)


class TimeoutStore(ResourceStore):
    """Delegates to another store, failing any call that exceeds the deadline.

    An expired deadline surfaces as a TransientError so the caller retries the
    whole operation later.
    """

    def __init__(self, store: ResourceStore, timeout: float | None) -> None:
        """Initialize the TimeoutStore.

        Args:
            store: The store to delegate to
            timeout: Deadline in seconds for each call, None to disable
        """
        self._store = store
        self._timeout = timeout

    @contextlib.asynccontextmanager
    async def _deadline(
        self, operation: str, key: ObjectKey
    ) -> AsyncGenerator[None, None]:
        try:
            async with asyncio.timeout(self._timeout):
                yield
        except TimeoutError as err:
            _LOGGER.warning(
                "Store %s of %s exceeded deadline of %ss", operation, key, self._timeout
            )
            raise TransientError(
                f"{operation} {key} exceeded deadline of {self._timeout}s"
            ) from err

    async def get(self, key: ObjectKey, cls: type[T]) -> T:
        async with self._deadline("get", key):
            return await self._store.get(key, cls)

    async def create(self, obj: T, field_owner: str | None = None) -> T:
        async with self._deadline("create", obj.key):
            return await self._store.create(obj, field_owner)

    async def update(self, obj: T, field_owner: str | None = None) -> T:
        async with self._deadline("update", obj.key):
            return await self._store.update(obj, field_owner)

    async def delete(
        self, obj: KubeObject, propagation: Propagation = Propagation.BACKGROUND
    ) -> None:
        async with self._deadline("delete", obj.key):
            await self._store.delete(obj, propagation)

    async def patch_apply(
        self, obj: T, field_owner: str, subresource: str | None = None
    ) -> T:
        async with self._deadline("patch", obj.key):
            return await self._store.patch_apply(obj, field_owner, subresource)
