"""
SurvivalDesign: immutable container for time-to-event data.

Wraps duration, event indicator, optional covariates, and optional strata.
Validates inputs at construction time; all downstream code trusts clean data.

The event indicator is normalized here, once, to a boolean array. Three
codings are accepted:

    "boolean"   True = event, False = censored
    "binary"    1 = event, 0 = censored
    "one_two"   2 = event, 1 = censored

"auto" picks the coding the same way R's Surv() does: a boolean dtype is
"boolean"; otherwise, if every value is 1 or 2 and at least one 2 is
present, "one_two"; otherwise the values must be 0/1. Anything else is
rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from pysurvstat.core.exceptions import DimensionError, ValidationError
from pysurvstat.core.validation import (
    check_array,
    check_choice,
    check_finite,
    check_non_negative,
)
from pysurvstat.survival._frame import columns_from_frame, encode_frame

EventEncoding = Literal["auto", "boolean", "binary", "one_two"]

_ENCODINGS = ("auto", "boolean", "binary", "one_two")


def _as_bool_array(values: NDArray) -> NDArray | None:
    """Return values as a bool array if every entry is a boolean, else None."""
    if values.dtype == np.bool_:
        return values
    if values.dtype == object and all(
        isinstance(v, (bool, np.bool_)) for v in values
    ):
        return values.astype(np.bool_)
    return None


def normalize_event(event, encoding: EventEncoding = "auto") -> NDArray:
    """Map an event indicator onto the canonical boolean convention.

    Parameters
    ----------
    event : array-like
        Event indicator without missing values.
    encoding : str
        "auto", "boolean", "binary" or "one_two".

    Returns
    -------
    NDArray[bool]
        True where the event was observed, False where censored.

    Raises
    ------
    ValidationError
        If the values do not match the requested (or any) coding.
    """
    check_choice(encoding, _ENCODINGS, "encoding")
    values = np.asarray(event).ravel()

    as_bool = _as_bool_array(values)
    if as_bool is not None:
        if encoding in ("auto", "boolean"):
            return as_bool.copy()
        # explicit numeric coding with bool input: treat True as 1
        values = as_bool.astype(np.float64)
    elif encoding == "boolean":
        raise ValidationError(
            f"event: encoding='boolean' requires True/False values, "
            f"got dtype {values.dtype}"
        )

    numeric = check_array(values, "event")
    observed = set(np.unique(numeric).tolist())

    if encoding == "auto":
        if observed <= {0.0, 1.0}:
            encoding = "binary"
        elif observed <= {1.0, 2.0}:
            encoding = "one_two"
        else:
            raise ValidationError(
                f"event must be coded as True/False, 0/1 (1=event) or "
                f"1/2 (2=event); got unique values: {sorted(observed)}"
            )

    if encoding == "binary":
        unexpected = observed - {0.0, 1.0}
        if unexpected:
            raise ValidationError(
                f"event must contain only 0 and 1 for encoding='binary', "
                f"got unexpected values: {sorted(unexpected)}"
            )
        return numeric == 1.0

    unexpected = observed - {1.0, 2.0}
    if unexpected:
        raise ValidationError(
            f"event must contain only 1 and 2 for encoding='one_two', "
            f"got unexpected values: {sorted(unexpected)}"
        )
    return numeric == 2.0


@dataclass(frozen=True)
class SurvivalDesign:
    """Immutable survival data container.

    Parameters
    ----------
    time : NDArray
        Time to event or censoring. Non-negative and finite.
    event : NDArray[bool]
        True = event observed, False = right-censored.
    X : NDArray or None
        Covariate matrix (n, p). None for KM / log-rank.
    strata : NDArray or None
        Strata (or group) labels.
    covariate_names : tuple of str or None
        One name per column of X.
    n_dropped : int
        Rows removed because time, event, a covariate or the stratum
        was missing.
    """

    time: NDArray
    event: NDArray
    X: NDArray | None
    strata: NDArray | None
    covariate_names: tuple[str, ...] | None = None
    n_dropped: int = 0

    @classmethod
    def for_survival(
        cls,
        time,
        event,
        X=None,
        *,
        strata=None,
        names: Sequence[str] | None = None,
        encoding: EventEncoding = "auto",
        drop_missing: bool = True,
    ) -> SurvivalDesign:
        """Create and validate survival data.

        Parameters
        ----------
        time : array-like
            Time to event or censoring.
        event : array-like
            Event indicator in any accepted coding.
        X : array-like or None
            Optional covariate matrix. A DataFrame contributes its column
            names unless ``names`` is given.
        strata : array-like or None
            Optional strata labels.
        names : sequence of str or None
            Covariate names; defaults to x0, x1, ...
        encoding : str
            Event coding, see normalize_event().
        drop_missing : bool
            Drop rows with any missing value (default). When False, a
            missing value is an error.

        Returns
        -------
        SurvivalDesign

        Raises
        ------
        ValidationError
            If inputs are invalid.
        """
        time = check_array(time, "time").ravel()
        event_raw = np.asarray(event).ravel()

        n = len(time)

        if n == 0:
            raise ValidationError("time must have at least one observation")

        if len(event_raw) != n:
            raise DimensionError(
                f"time and event must have the same length: "
                f"got {n} and {len(event_raw)}"
            )

        missing = np.isnan(time) | np.asarray(pd.isna(event_raw), dtype=bool)

        X_arr = None
        if X is not None:
            if isinstance(X, pd.DataFrame):
                X, frame_names = encode_frame(X)
                if names is None:
                    names = frame_names
            X_arr = check_array(X, "X")
            if X_arr.ndim == 1:
                X_arr = X_arr.reshape(-1, 1)
            if X_arr.ndim != 2:
                raise DimensionError(
                    f"X must be 1D or 2D, got {X_arr.ndim}D"
                )
            if X_arr.shape[0] != n:
                raise DimensionError(
                    f"X must have {n} rows to match time, "
                    f"got {X_arr.shape[0]}"
                )
            missing |= np.isnan(X_arr).any(axis=1)

            if names is None:
                names = [f"x{j}" for j in range(X_arr.shape[1])]
            names = tuple(str(nm) for nm in names)
            if len(names) != X_arr.shape[1]:
                raise DimensionError(
                    f"names must have {X_arr.shape[1]} entries to match X, "
                    f"got {len(names)}"
                )
            if len(set(names)) != len(names):
                raise ValidationError(f"covariate names must be unique: {names}")
        elif names is not None:
            raise ValidationError("names given without covariates X")

        strata_arr = None
        if strata is not None:
            strata_arr = np.asarray(strata).ravel()
            if len(strata_arr) != n:
                raise DimensionError(
                    f"strata must have {n} elements to match time, "
                    f"got {len(strata_arr)}"
                )
            missing |= np.asarray(pd.isna(strata_arr), dtype=bool)

        n_dropped = int(np.sum(missing))
        if n_dropped > 0:
            if not drop_missing:
                raise ValidationError(
                    f"{n_dropped} rows contain missing values and "
                    f"drop_missing=False"
                )
            if n_dropped == n:
                raise ValidationError(
                    "No complete observations (every row has a missing value)"
                )
            keep = ~missing
            time = time[keep]
            event_raw = event_raw[keep]
            if X_arr is not None:
                X_arr = X_arr[keep]
            if strata_arr is not None:
                strata_arr = strata_arr[keep]

        if strata_arr is not None:
            try:
                np.unique(strata_arr)
            except TypeError as e:
                raise ValidationError(
                    f"strata labels must share one comparable type "
                    f"(e.g. all strings or all numbers): {e}"
                ) from e

        check_finite(time, "time")
        check_non_negative(time, "time")
        event_bool = normalize_event(event_raw, encoding)

        return cls(
            time=time,
            event=event_bool,
            X=X_arr,
            strata=strata_arr,
            covariate_names=names if X_arr is not None else None,
            n_dropped=n_dropped,
        )

    @classmethod
    def from_dataframe(
        cls,
        data: Any,
        duration: str,
        event: str,
        covariates: Sequence[str] | None = None,
        *,
        strata: str | None = None,
        encoding: EventEncoding = "auto",
        drop_missing: bool = True,
    ) -> SurvivalDesign:
        """Create a design from named columns of a table.

        Parameters
        ----------
        data : DataFrame, DataSource, or path to CSV
            Subject records, one row per subject.
        duration, event : str
            Names of the duration and event-indicator columns.
        covariates : sequence of str or None
            Covariate columns. Categorical columns are expanded into
            indicator columns with the first level as reference.
        strata : str or None
            Column holding strata / group labels.

        Raises
        ------
        ValidationError
            If a named column is missing or cannot be encoded.
        """
        cols = columns_from_frame(data, duration, event, covariates, strata)
        return cls.for_survival(
            cols['time'],
            cols['event'],
            cols['X'],
            strata=cols['strata'],
            names=cols['names'],
            encoding=encoding,
            drop_missing=drop_missing,
        )

    @property
    def n(self) -> int:
        """Number of observations."""
        return len(self.time)

    @property
    def p(self) -> int | None:
        """Number of covariates (None if no covariates)."""
        return self.X.shape[1] if self.X is not None else None

    @property
    def n_events(self) -> int:
        """Number of observed events."""
        return int(np.sum(self.event))

    @property
    def n_censored(self) -> int:
        return self.n - self.n_events

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            'n': self.n,
            'n_events': self.n_events,
            'n_censored': self.n_censored,
            'n_dropped': self.n_dropped,
            'p': self.p,
        }

    def pairs(self) -> list[tuple[float, bool]]:
        """(duration, event) pairs in input order, missing rows excluded."""
        return [(float(t), bool(e)) for t, e in zip(self.time, self.event)]

