"""Tests for manifest library."""

import dataclasses
from typing import Any

import pytest

from module_lifecycle.exceptions import InputException
from module_lifecycle.manifest import (
    Manifest,
    ManifestStatus,
    ObjectKey,
    ObjectMeta,
    ResourceDescriptor,
    State,
    Unstructured,
    split_api_version,
)

from . import COMPANION_DESCRIPTOR, make_manifest

MANIFEST_DOC: dict[str, Any] = {
    "apiVersion": "operator.kyma-project.io/v1beta2",
    "kind": "Manifest",
    "metadata": {
        "name": "module-manifest",
        "namespace": "kcp-system",
        "resourceVersion": "42",
        "finalizers": ["declarative.kyma-project.io/finalizer"],
        "labels": {"operator.kyma-project.io/kyma-name": "default"},
    },
    "spec": {
        "version": "1.0.0",
        "resource": {
            "apiVersion": "g/v1",
            "kind": "K",
            "metadata": {"name": "n", "namespace": "ns"},
            "spec": {"replicas": 1},
        },
    },
    "status": {
        "state": "Ready",
        "lastOperation": {"operation": "installation is ready"},
        "synced": [
            {
                "group": "apps",
                "version": "v1",
                "kind": "Deployment",
                "name": "module-controller",
                "namespace": "kyma-system",
            }
        ],
    },
}


def test_parse_manifest() -> None:
    """Test parsing a Manifest doc."""
    manifest = Manifest.parse_doc(MANIFEST_DOC)
    assert manifest.name == "module-manifest"
    assert manifest.namespace == "kcp-system"
    assert manifest.metadata.resource_version == "42"
    assert manifest.metadata.finalizers == ["declarative.kyma-project.io/finalizer"]
    assert not manifest.deletion_requested
    assert manifest.key == ObjectKey(
        "operator.kyma-project.io", "Manifest", "kcp-system", "module-manifest"
    )

    resource = manifest.resource
    assert resource is not None
    assert resource.descriptor == COMPANION_DESCRIPTOR
    assert resource.content == {"spec": {"replicas": 1}}

    status = manifest.get_status()
    assert status.state == State.READY
    assert status.last_operation.operation == "installation is ready"
    assert [str(synced) for synced in status.synced] == [
        "Deployment.apps/kyma-system/module-controller"
    ]


def test_manifest_to_doc() -> None:
    """Test that a Manifest serializes back to a kubernetes document."""
    doc = Manifest.parse_doc(MANIFEST_DOC).to_doc()
    assert list(doc)[:2] == ["apiVersion", "kind"]
    assert doc["metadata"]["resourceVersion"] == "42"
    assert doc["spec"]["resource"] == MANIFEST_DOC["spec"]["resource"]
    assert doc["status"]["synced"] == MANIFEST_DOC["status"]["synced"]


def test_manifest_yaml() -> None:
    """Test that the YAML form parses back to the same Manifest."""
    manifest = Manifest.parse_doc(MANIFEST_DOC)
    content = manifest.yaml()
    assert content.startswith("---\napiVersion: operator.kyma-project.io/v1beta2\n")
    assert Manifest.parse_yaml(content) == manifest


def test_manifest_without_resource() -> None:
    """Test a Manifest that defines no companion instance."""
    manifest = Manifest.parse_doc(
        {
            "apiVersion": "operator.kyma-project.io/v1beta2",
            "kind": "Manifest",
            "metadata": {"name": "module-manifest"},
            "spec": {"version": "1.0.0"},
        }
    )
    assert manifest.resource is None
    assert manifest.status is None
    assert manifest.get_status() == ManifestStatus()


@pytest.mark.parametrize(
    ("doc", "message"),
    [
        ({"kind": "Manifest"}, "missing apiVersion"),
        (
            {"apiVersion": "operator.kyma-project.io/v1beta2", "kind": "Other"},
            "expected kind 'Manifest'",
        ),
        (
            {"apiVersion": "example.com/v1", "kind": "Manifest"},
            "expected 'operator.kyma-project.io'",
        ),
        (
            {"apiVersion": "operator.kyma-project.io/v1beta2", "kind": "Manifest"},
            "missing metadata",
        ),
        (
            {
                "apiVersion": "operator.kyma-project.io/v1beta2",
                "kind": "Manifest",
                "metadata": {"namespace": "kcp-system"},
            },
            "missing metadata.name",
        ),
    ],
)
def test_invalid_manifest(doc: dict[str, Any], message: str) -> None:
    """Test parsing invalid Manifest docs."""
    with pytest.raises(InputException, match=message):
        Manifest.parse_doc(doc)


def test_parse_unstructured() -> None:
    """Test parsing an object of unknown schema."""
    obj = Unstructured.parse_yaml(
        """
apiVersion: v1
kind: ConfigMap
metadata:
  name: settings
  labels:
    app: example
data:
  key: value
"""
    )
    assert obj.key == ObjectKey("", "ConfigMap", None, "settings")
    assert obj.metadata.labels == {"app": "example"}
    assert obj.content == {"data": {"key": "value"}}
    assert obj.to_doc() == {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "settings", "labels": {"app": "example"}},
        "data": {"key": "value"},
    }


def test_invalid_unstructured() -> None:
    with pytest.raises(InputException, match="missing kind"):
        Unstructured.parse_doc({"apiVersion": "v1", "metadata": {"name": "x"}})


def test_from_descriptor() -> None:
    """Test building an identity-only object from a descriptor."""
    obj = Unstructured.from_descriptor(COMPANION_DESCRIPTOR)
    assert obj.api_version == "g/v1"
    assert obj.key == COMPANION_DESCRIPTOR.key
    assert obj.content == {}


def test_resource_descriptor() -> None:
    """Test the identity helpers of a descriptor."""
    core = ResourceDescriptor(group="", version="v1", kind="Secret", name="s")
    assert core.api_version == "v1"
    assert core.namespaced_name == "s"
    assert str(core) == "Secret/s"
    assert COMPANION_DESCRIPTOR.namespaced_name == "ns/n"
    assert str(COMPANION_DESCRIPTOR) == "K.g/ns/n"


def test_resource_descriptor_frozen() -> None:
    """Test that descriptors are hashable values that serialize by field."""
    parsed = ResourceDescriptor.from_dict(COMPANION_DESCRIPTOR.to_dict())
    assert parsed == COMPANION_DESCRIPTOR
    assert {parsed, COMPANION_DESCRIPTOR} == {COMPANION_DESCRIPTOR}
    assert "namespace" not in ResourceDescriptor(
        group="", version="v1", kind="Secret", name="s"
    ).to_dict()
    with pytest.raises(dataclasses.FrozenInstanceError):
        parsed.name = "other"  # type: ignore[misc]


@pytest.mark.parametrize(
    ("api_version", "expected"),
    [("v1", ("", "v1")), ("apps/v1", ("apps", "v1"))],
)
def test_split_api_version(api_version: str, expected: tuple[str, str]) -> None:
    assert split_api_version(api_version) == expected


def test_status_with_err() -> None:
    """Test recording an error in the status."""
    status = ManifestStatus(state=State.READY)
    updated = status.with_state(State.ERROR).with_err(ValueError("boom"))
    assert updated.state == State.ERROR
    assert updated.last_operation.operation == "boom"
    assert updated.last_operation.last_update_time is not None
    assert status.state == State.READY
    assert status.last_operation.operation == ""


def test_metadata_only() -> None:
    """Test building an apply patch that carries only finalizers."""
    manifest = make_manifest(finalizers=["a"])
    manifest.metadata.uid = "uid"
    patch = manifest.metadata_only()
    assert patch.metadata == ObjectMeta(
        name="module-manifest", namespace="kcp-system", finalizers=["a"]
    )
    assert patch.spec is None
    assert patch.status is None

    patch.metadata.finalizers.append("b")  # type: ignore[union-attr]
    assert manifest.metadata.finalizers == ["a"]


def test_clear_non_patchable() -> None:
    manifest = Manifest.parse_doc(MANIFEST_DOC)
    manifest.metadata.uid = "uid"
    manifest.clear_non_patchable()
    assert manifest.metadata.uid is None
    assert manifest.metadata.resource_version is None
    assert manifest.metadata.managed_fields is None
