"""
Universal DataSource for pysurvstat.

DataSource is the "I have a table of subjects" abstraction. It doesn't
know which estimator consumes it; it provides named columns and a row
count, and reports missing columns as schema errors.

Usage:
    from pysurvstat import DataSource

    ds = DataSource.from_arrays(time=t, status=s, age=age)
    ds = DataSource.from_file("lung.csv")
    ds = DataSource.from_dataframe(df)

    ds.keys()            # frozenset({'time', 'status', 'age'})
    t = ds['time']
    ds.require(['time', 'status'])
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from pysurvstat.core.exceptions import DimensionError, ValidationError


@dataclass(frozen=True)
class DataSource:
    """
    Column container for subject records. Domain-agnostic.

    Construct via factory classmethods, not directly. Columns keep their
    original dtype so categorical covariates survive until the survival
    design decides how to encode them.
    """
    _frame: pd.DataFrame
    _metadata: dict[str, Any] = field(default_factory=dict)

    # === Column Access ===

    def keys(self) -> frozenset[str]:
        """
        Return the names of all available columns.

        Example:
            >>> ds = DataSource.from_arrays(time=t, status=s)
            >>> ds.keys()
            frozenset({'time', 'status'})
        """
        return frozenset(str(c) for c in self._frame.columns)

    def __getitem__(self, key: str) -> NDArray:
        """
        Access a named column as a numpy array.

        Raises:
            KeyError: If key not found, with a message listing available keys
        """
        if key not in self._frame.columns:
            raise KeyError(
                f"DataSource has no column '{key}'. Available: {sorted(self.keys())}"
            )
        return self._frame[key].to_numpy()

    def __contains__(self, key: str) -> bool:
        return key in self._frame.columns

    def require(self, columns: Iterable[str]) -> None:
        """
        Verify that every named column is present.

        Raises:
            ValidationError: Listing all missing columns at once
        """
        missing = [c for c in columns if c not in self._frame.columns]
        if missing:
            raise ValidationError(
                f"Missing required columns: {missing}. "
                f"Available: {sorted(self.keys())}"
            )

    # === Properties ===

    @property
    def n_observations(self) -> int:
        """Number of subjects (rows)."""
        return len(self._frame)

    @property
    def metadata(self) -> dict[str, Any]:
        return self._metadata.copy()

    def to_dataframe(self) -> pd.DataFrame:
        """Return a copy of the underlying table."""
        return self._frame.copy()

    # === Factory Methods ===

    @classmethod
    def from_arrays(cls, **columns: Any) -> DataSource:
        """Construct from named 1D arrays of equal length."""
        if not columns:
            raise ValidationError("from_arrays() requires at least one column")

        arrays = {}
        for name, values in columns.items():
            arr = np.asarray(values)
            if arr.ndim != 1:
                raise DimensionError(
                    f"{name}: expected 1D array, got {arr.ndim}D with shape {arr.shape}"
                )
            arrays[name] = arr

        lengths = {name: len(arr) for name, arr in arrays.items()}
        if len(set(lengths.values())) > 1:
            details = ", ".join(f"{k}={v}" for k, v in lengths.items())
            raise DimensionError(f"Inconsistent lengths: {details}")

        return cls(
            _frame=pd.DataFrame(arrays),
            _metadata={'source': 'arrays', 'columns': list(arrays)},
        )

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        *,
        source_path: str | None = None,
    ) -> DataSource:
        """Construct from a pandas DataFrame (copied, index reset)."""
        if not isinstance(df, pd.DataFrame):
            raise ValidationError(
                f"from_dataframe() expects a pandas DataFrame, got {type(df).__name__}"
            )
        metadata: dict[str, Any] = {
            'source': 'dataframe',
            'columns': [str(c) for c in df.columns],
        }
        if source_path:
            metadata['source_path'] = source_path
        return cls(_frame=df.reset_index(drop=True).copy(), _metadata=metadata)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        *,
        columns: list[str] | None = None,
    ) -> DataSource:
        """Construct from a CSV or TSV file."""
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix == '.csv':
            df = pd.read_csv(path, usecols=columns)
        elif suffix == '.tsv':
            df = pd.read_csv(path, sep='\t', usecols=columns)
        else:
            raise ValidationError(f"Unknown file format: {suffix}")
        return cls.from_dataframe(df, source_path=str(path))

    @classmethod
    def build(cls, source: Any = None, **columns: Any) -> DataSource:
        """
        Convenience factory that dispatches to the appropriate from_* method.

        Examples:
            DataSource.build(df)                     # from_dataframe
            DataSource.build("lung.csv")             # from_file
            DataSource.build(time=t, status=s)       # from_arrays
        """
        if isinstance(source, DataSource):
            return source
        if isinstance(source, pd.DataFrame):
            return cls.from_dataframe(source)
        if isinstance(source, (str, Path)):
            return cls.from_file(source)
        if source is not None:
            raise ValidationError(
                f"Cannot build a DataSource from {type(source).__name__}"
            )
        return cls.from_arrays(**columns)
