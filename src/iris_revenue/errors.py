"""Error taxonomy for the revenue reporting core.

- ValidationError: bad operator input, raised before any network call.
- ProviderError: fetching entities or KPIs failed.
- MutationError: the mutation service rejected an edit.
"""

from typing import Any


class IrisRevenueError(Exception):
    """Base exception for revenue reporting errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class ValidationError(IrisRevenueError):
    """Operator input could not be parsed."""

    pass


class ProviderError(IrisRevenueError):
    """The data provider failed to deliver entities or KPIs."""

    pass


class MutationError(IrisRevenueError):
    """The mutation service did not persist an edit."""

    pass
