"""Domain exceptions shared by the dashboard services."""

from datetime import date
from typing import Any


class DashboardError(Exception):
    """Base exception for dashboard domain errors."""

    code = "error"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(DashboardError):
    """Referenced entity is missing or soft-deleted."""

    code = "not_found"


class AlreadyReconciledError(DashboardError):
    """Statement line already linked to a transaction."""

    code = "already_reconciled"


class AlreadyPaidError(DashboardError):
    """Fixed cost already paid for its period."""

    code = "already_paid"


class ValidationError(DashboardError):
    """Required input missing or malformed."""

    code = "validation_error"


class StoreError(DashboardError):
    """Failure reported by (or while talking to) the hosted store."""

    code = "store_error"

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message, details)
        self.status_code = status_code


class BusinessDayNotFoundError(DashboardError):
    """Business-day search exhausted its iteration bound."""

    code = "business_day_not_found"

    def __init__(self, message: str, last_candidate: date):
        super().__init__(message, {"last_candidate": last_candidate.isoformat()})
        self.last_candidate = last_candidate
