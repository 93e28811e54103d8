"""Test fixtures for module-lifecycle."""

import pytest

from module_lifecycle.config import LifecycleConfig
from module_lifecycle.use_case import ManifestLifecycleUseCase

from . import FaultyStore


@pytest.fixture
def config() -> LifecycleConfig:
    """Configuration without store deadlines."""
    return LifecycleConfig(store_timeout=None)


@pytest.fixture
def control_plane() -> FaultyStore:
    """The store holding Manifests."""
    return FaultyStore()


@pytest.fixture
def target() -> FaultyStore:
    """The store holding the companion instance and synced resources."""
    return FaultyStore()


@pytest.fixture
def use_case(
    control_plane: FaultyStore, target: FaultyStore, config: LifecycleConfig
) -> ManifestLifecycleUseCase:
    """The use case under test, wired to both stores."""
    return ManifestLifecycleUseCase(control_plane, target, config)
