"""
Lifecycle management for the companion instance owned by a Manifest.

The package keeps a dynamically typed companion resource in sync between a
control-plane store and a target-environment store, using finalizers on the
Manifest to make every multi-step transition resumable.
"""

__all__ = [
    "companion",
    "config",
    "exceptions",
    "finalizers",
    "labels_removal",
    "manifest",
    "manifest_client",
    "store",
    "use_case",
]
