"""Tests for the resource stores."""
