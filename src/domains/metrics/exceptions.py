# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions raised by the dashboard metrics engine.

Errors are recovered as close to their source as possible: calculators
turn EventStoreError into their empty result, the cache turns read
failures into misses. MetricCacheError is the one error that reaches the
orchestrator and tier runner, which log it and carry on.
"""

from typing import Optional


class MetricsError(Exception):
    """Base exception for the metrics engine.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class EventStoreError(MetricsError):
    """Raised when the event store cannot be read."""


class MetricCacheError(MetricsError):
    """Raised when a cache write or delete fails."""


class UnknownMetricKindError(MetricsError, ValueError):
    """Raised for an unknown metric kind or tier name."""
