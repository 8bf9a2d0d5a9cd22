"""
Exception hierarchy for pysurvstat.

All exceptions inherit from PySurvStatError to allow catching any
library-specific error. Domain-specific exceptions should inherit from
the appropriate base class here.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""

from __future__ import annotations

from typing import Any


class PySurvStatError(Exception):
    """Base exception for all pysurvstat errors."""
    pass


class ValidationError(PySurvStatError, ValueError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks: missing
    columns, unrecognized event coding, negative durations.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple arrays have inconsistent shapes.
    """
    pass


class InsufficientDataError(ValidationError):
    """
    The data cannot support the requested estimate.

    Raised before any computation when, e.g., a Cox model is requested
    on a sample with zero events.

    Attributes:
        n_observations: Number of usable observations
        n_events: Number of observed events
    """

    def __init__(
        self,
        message: str,
        n_observations: int | None = None,
        n_events: int | None = None,
    ):
        super().__init__(message)
        self.n_observations = n_observations
        self.n_events = n_events


class NumericalError(PySurvStatError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class SingularMatrixError(NumericalError):
    """
    Matrix is singular or nearly singular.

    Raised when a matrix operation requires invertibility but the matrix
    is singular or numerically rank-deficient.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        condition_number: Estimated condition number, if available
        rank: Numerical rank, if computed
        expected_rank: Expected rank (typically the number of columns)
        dependent_columns: Names of columns that are linear combinations
            of the others, if identified
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        condition_number: float | None = None,
        rank: int | None = None,
        expected_rank: int | None = None,
        dependent_columns: tuple[str, ...] | None = None,
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.condition_number = condition_number
        self.rank = rank
        self.expected_rank = expected_rank
        self.dependent_columns = dependent_columns


class ConvergenceError(NumericalError):
    """
    Iterative algorithm failed to converge.

    Raised when Newton-Raphson fails to meet the convergence criterion
    within the maximum number of iterations, or when the likelihood
    converges while a coefficient runs off to infinity.

    Attributes:
        iterations: Number of iterations completed
        final_change: Final relative change in the objective
        reason: 'max_iterations' or 'diverging'
        threshold: The convergence threshold that was not met
        last_iterate: Parameter vector at the last iteration
        diverging: Names of the coefficients that are diverging
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None,
        last_iterate: Any = None,
        diverging: tuple[str, ...] = (),
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold
        self.last_iterate = last_iterate
        self.diverging = diverging
