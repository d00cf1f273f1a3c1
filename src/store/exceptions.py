"""Exception hierarchy for the persistent store."""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for all store errors."""


class AlertNotFoundError(StoreError):
    """No alert with the requested id exists."""
