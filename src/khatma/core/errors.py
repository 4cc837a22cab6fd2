# src/khatma/core/errors.py

"""
Error taxonomy raised by the core and the store.

Front-ends catch KhatmaError and show str(exc) to the user.
"""

from __future__ import annotations


class KhatmaError(Exception):
    """Base class for every failure reported to the immediate caller."""


class NotFound(KhatmaError):
    """Unit, project, user or invitation code does not exist."""


class Forbidden(KhatmaError):
    """Caller is not the claimant / not the admin / not a participant."""


class Conflict(KhatmaError):
    """Duplicate name, unit already claimed or done, claim race lost."""


class InvalidArgument(KhatmaError):
    """Unrecognized admin action or malformed input."""


class StoreUnavailable(KhatmaError):
    """Storage failed after internal retries; fatal to the current request."""
