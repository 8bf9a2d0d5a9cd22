"""
DataFrame ingestion for survival designs.

Pulls the duration, event, covariate and strata columns out of a table
and turns categorical covariates into treatment-coded indicator columns
the way R's model.matrix() does: the first level is the reference and
each remaining level becomes a column named "<column><level>".
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from pysurvstat.core.datasource import DataSource
from pysurvstat.core.exceptions import ValidationError


def _is_categorical(series: pd.Series) -> bool:
    return (
        isinstance(series.dtype, pd.CategoricalDtype)
        or pd.api.types.is_object_dtype(series)
        or pd.api.types.is_string_dtype(series)
    )


def encode_covariate(series: pd.Series, name: str) -> tuple[NDArray, list[str]]:
    """Encode one column as a float block plus its column names.

    Missing entries become NaN in every output column so that the row is
    dropped downstream rather than silently assigned to the reference level.
    """
    missing = series.isna().to_numpy()

    if pd.api.types.is_bool_dtype(series):
        values = series.astype(float).to_numpy(dtype=np.float64)
        return values.reshape(-1, 1), [name]

    if _is_categorical(series):
        if isinstance(series.dtype, pd.CategoricalDtype):
            levels = list(series.cat.categories)
        else:
            levels = sorted(series.dropna().unique().tolist(), key=str)

        if len(levels) < 2:
            raise ValidationError(
                f"Covariate '{name}' has fewer than 2 levels ({levels}); "
                f"a constant column cannot be estimated"
            )

        block = np.empty((len(series), len(levels) - 1), dtype=np.float64)
        for k, level in enumerate(levels[1:]):
            block[:, k] = (series == level).to_numpy(dtype=np.float64)
        block[missing] = np.nan
        return block, [f"{name}{level}" for level in levels[1:]]

    if not pd.api.types.is_numeric_dtype(series):
        raise ValidationError(
            f"Covariate '{name}' has unsupported dtype {series.dtype}"
        )
    values = series.to_numpy(dtype=np.float64, na_value=np.nan)
    return values.reshape(-1, 1), [name]


def encode_frame(frame: pd.DataFrame) -> tuple[NDArray, list[str]]:
    """Encode every column of a covariate table into one float matrix."""
    if frame.shape[1] == 0:
        raise ValidationError("covariate table has no columns")
    blocks = []
    names: list[str] = []
    for col in frame.columns:
        block, block_names = encode_covariate(frame[col], str(col))
        blocks.append(block)
        names.extend(block_names)
    return np.hstack(blocks), names


def columns_from_frame(
    data: Any,
    duration: str,
    event: str,
    covariates: Sequence[str] | None = None,
    strata: str | None = None,
) -> dict[str, Any]:
    """Extract survival inputs from a DataFrame or DataSource.

    Returns
    -------
    dict with keys 'time', 'event', 'X', 'names', 'strata' ready to be
    passed to SurvivalDesign.for_survival().

    Raises
    ------
    ValidationError
        If any requested column is missing.
    """
    source = DataSource.build(data)
    covariates = list(covariates) if covariates is not None else []

    required = [duration, event, *covariates]
    if strata is not None:
        required.append(strata)
    source.require(required)

    frame = source.to_dataframe()

    X = None
    names: list[str] | None = None
    if covariates:
        X, names = encode_frame(frame[covariates])

    try:
        time = frame[duration].to_numpy(dtype=np.float64, na_value=np.nan)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Duration column '{duration}' is not numeric: {e}"
        ) from e

    return {
        'time': time,
        'event': frame[event].to_numpy(),
        'X': X,
        'names': names,
        'strata': frame[strata].to_numpy() if strata is not None else None,
    }
