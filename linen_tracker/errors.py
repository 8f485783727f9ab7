"""
Exception types shared by the tracker, export and CLI layers.
"""

from __future__ import annotations


class ValidationError(ValueError):
    """Input rejected before anything was written to the store."""


class StoreError(RuntimeError):
    """A database operation failed and its transaction was rolled back."""
