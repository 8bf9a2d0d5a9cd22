"""
Core infrastructure for pysurvstat.

This module provides shared abstractions and utilities used by the
survival estimators.

Key components:
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    datasource: Tabular input container
    timing: Solver timing
    tolerances: Numerical defaults
"""

from pysurvstat.core.datasource import DataSource
from pysurvstat.core.result import Result
from pysurvstat.core.exceptions import (
    PySurvStatError,
    ValidationError,
    DimensionError,
    InsufficientDataError,
    NumericalError,
    SingularMatrixError,
    ConvergenceError,
)

__all__ = [
    "DataSource",
    "Result",
    # Exceptions
    "PySurvStatError",
    "ValidationError",
    "DimensionError",
    "InsufficientDataError",
    "NumericalError",
    "SingularMatrixError",
    "ConvergenceError",
]
