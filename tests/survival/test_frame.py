"""
Tests for covariate encoding of tabular input.

R reference code:
    model.matrix(~ age + stage, data)[, -1]   # treatment contrasts
"""

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose

from pysurvstat.core.exceptions import ValidationError
from pysurvstat.survival._frame import encode_covariate, encode_frame


class TestEncodeCovariate:

    def test_numeric(self):
        block, names = encode_covariate(pd.Series([1, 2, 3]), "age")
        assert names == ["age"]
        assert block.shape == (3, 1)
        assert block.dtype == np.float64

    def test_bool(self):
        block, names = encode_covariate(pd.Series([True, False]), "male")
        assert names == ["male"]
        assert_allclose(block.ravel(), [1.0, 0.0])

    def test_strings_use_sorted_levels(self):
        block, names = encode_covariate(pd.Series(["b", "a", "c", "a"]), "grp")
        assert names == ["grpb", "grpc"]
        assert_allclose(block, [[1, 0], [0, 0], [0, 1], [0, 0]])

    def test_categorical_keeps_level_order(self):
        series = pd.Series(pd.Categorical(["lo", "hi"], categories=["lo", "mid", "hi"]))
        block, names = encode_covariate(series, "dose")
        assert names == ["dosemid", "dosehi"]
        assert_allclose(block, [[0, 0], [0, 1]])

    def test_missing_level_propagates_nan(self):
        block, _ = encode_covariate(pd.Series(["a", None, "b"]), "grp")
        assert np.isnan(block[1, 0])
        assert block[0, 0] == 0.0

    def test_single_level_rejected(self):
        with pytest.raises(ValidationError, match="fewer than 2 levels"):
            encode_covariate(pd.Series(["a", "a"]), "grp")

    def test_unsupported_dtype(self):
        series = pd.Series(pd.to_datetime(["2020-01-01", "2021-01-01"]))
        with pytest.raises(ValidationError, match="unsupported dtype"):
            encode_covariate(series, "when")


class TestEncodeFrame:

    def test_blocks_concatenated(self):
        frame = pd.DataFrame({"age": [1.0, 2.0], "grp": ["a", "b"]})
        X, names = encode_frame(frame)
        assert names == ["age", "grpb"]
        assert_allclose(X, [[1, 0], [2, 1]])

    def test_empty_frame(self):
        with pytest.raises(ValidationError, match="no columns"):
            encode_frame(pd.DataFrame(index=range(3)))
