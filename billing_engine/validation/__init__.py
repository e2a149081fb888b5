"""Snapshot validation package."""

from billing_engine.validation.validator import SnapshotValidator

__all__ = ["SnapshotValidator"]
