"""Error taxonomy for the reconciliation core."""

from __future__ import annotations


class FinanceCoreError(Exception):
    """Base class for errors raised by :mod:`dailyowo_core`."""


class InvalidInputError(FinanceCoreError, ValueError):
    """A precondition of the core was violated (bad amount, missing period, ...)."""


class DuplicateDetectionError(FinanceCoreError):
    """The comparison pool for duplicate detection could not be fetched."""
