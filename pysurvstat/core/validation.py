"""
Input validation utilities for pysurvstat.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - No silent type coercion (except np.asarray on array-likes)
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import linalg

from pysurvstat.core.exceptions import (
    SingularMatrixError,
    ValidationError,
)


def check_array(
    array: ArrayLike,
    name: str,
) -> NDArray[np.floating[Any]]:
    """
    Validate and convert input to a float64 numpy array.

    Accepts any array-like and converts to numpy array. Rejects inputs
    that result in object dtype (indicating mixed types or non-numeric data).
    Booleans are accepted and become 0.0 / 1.0.

    Args:
        array: Input to validate
        name: Parameter name for error messages

    Returns:
        numpy.ndarray with float64 dtype

    Raises:
        ValidationError: If input cannot be converted to numeric array
    """
    try:
        result = np.asarray(array)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{name}: cannot convert to array: {e}") from e

    if result.dtype == object:
        try:
            result = result.astype(np.float64)
        except (ValueError, TypeError) as e:
            raise ValidationError(
                f"{name}: converted to object dtype, indicating mixed types "
                f"or non-numeric data"
            ) from e

    if result.dtype != np.bool_ and not np.issubdtype(result.dtype, np.number):
        raise ValidationError(
            f"{name}: non-numeric dtype {result.dtype}, expected numeric data"
        )

    return result.astype(np.float64)


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array contains no NaN or Inf values.

    Raises:
        ValidationError: If array contains non-finite values
    """
    if not np.all(np.isfinite(array)):
        n_nan = int(np.sum(np.isnan(array)))
        n_inf = int(np.sum(np.isinf(array)))
        raise ValidationError(
            f"{name}: contains non-finite values ({n_nan} NaN, {n_inf} Inf)"
        )


def check_non_negative(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify all values are >= 0.

    Raises:
        ValidationError: If any value is negative
    """
    negative = np.flatnonzero(array < 0)
    if len(negative) > 0:
        raise ValidationError(
            f"{name} must be non-negative: {len(negative)} negative values, "
            f"first at index {int(negative[0])} ({array[negative[0]]})"
        )


def check_conf_level(conf_level: float) -> None:
    """
    Verify a confidence level lies strictly between 0 and 1.

    Raises:
        ValidationError: If conf_level is outside (0, 1)
    """
    if not 0.0 < conf_level < 1.0:
        raise ValidationError(
            f"conf_level must be in (0, 1), got {conf_level}"
        )


def check_choice(value: str, choices: Sequence[str], name: str) -> None:
    """
    Verify a string option is one of the allowed values.

    Raises:
        ValidationError: If value is not in choices
    """
    if value not in choices:
        allowed = ", ".join(f"'{c}'" for c in choices)
        raise ValidationError(
            f"{name} must be one of {allowed}, got '{value}'"
        )


def check_column_rank(
    X: NDArray[np.floating[Any]],
    names: Sequence[str],
    name: str = "X",
) -> None:
    """
    Verify matrix has full column rank.

    Uses a column-pivoted QR decomposition so that, when the matrix is
    rank-deficient, the columns that are linear combinations of the
    earlier ones can be named in the error.

    Args:
        X: 2D array to check
        names: Column names, used in the error message
        name: Parameter name for error messages

    Raises:
        SingularMatrixError: If matrix is rank-deficient
    """
    n, p = X.shape
    if p == 0:
        return

    _, R, pivot = linalg.qr(X, mode='economic', pivoting=True)
    diag_R = np.abs(np.diag(R))
    if len(diag_R) == 0 or diag_R[0] == 0:
        rank = 0
    else:
        tol = max(n, p) * np.finfo(np.float64).eps * diag_R[0]
        rank = int(np.sum(diag_R > tol))

    if rank < p:
        dependent = tuple(names[j] for j in sorted(pivot[rank:]))
        raise SingularMatrixError(
            f"{name}: rank-deficient (rank={rank}, expected={p}). "
            f"Columns {list(dependent)} are linear combinations of the others.",
            matrix_name=name,
            rank=rank,
            expected_rank=p,
            dependent_columns=dependent,
        )
