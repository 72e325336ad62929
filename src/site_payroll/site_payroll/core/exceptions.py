from __future__ import annotations

from typing import Sequence


class DomainError(Exception):
    """Base exception for business rule violations."""

    status_code = 400


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class NotFoundError(DomainError):
    """Raised when a referenced employee month record does not exist."""

    status_code = 404


class ConflictError(DomainError):
    """Raised when a create/import targets an occupied (empid, month, year) slot."""

    status_code = 409

    def __init__(self, message: str, *, conflicting_ids: Sequence[str] = ()):
        super().__init__(message)
        self.conflicting_ids = list(conflicting_ids)


class ConcurrentModificationError(DomainError):
    """Raised when an optimistic version check fails on save."""

    status_code = 409


class RecalculationDepthExceeded(DomainError):
    """Raised when a recalculation sweep hits its iteration cap."""

    status_code = 500

    def __init__(self, *, site_id: str, empid: str, max_depth: int):
        super().__init__(
            f"Maximum recalculation depth reached ({max_depth}) for {empid} at site {site_id}"
        )
        self.site_id = site_id
        self.empid = empid
        self.max_depth = max_depth


class TrackingFailure(DomainError):
    """The payroll write succeeded but the change ledger could not be written.

    Never raised out of the orchestrator; it is reported on the result so the
    caller can retry audit logging out of band.
    """

    status_code = 500
