"""
pytest configuration and shared fixtures.
"""

import pytest
import numpy as np


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def two_group_data(rng):
    """Two groups with hazard ratio 2 and 30% administrative censoring."""
    n = 200
    group = np.repeat([0, 1], n // 2)
    event_time = rng.exponential(1.0 / np.where(group == 1, 2.0, 1.0))
    censor_time = rng.exponential(2.0, size=n)
    time = np.minimum(event_time, censor_time)
    event = (event_time <= censor_time).astype(int)
    return time, event, group


@pytest.fixture
def cox_data(rng):
    """Simulated Cox data with known coefficients (log 2, -0.5)."""
    n = 2000
    X = np.column_stack([rng.integers(0, 2, size=n), rng.standard_normal(n)])
    beta = np.array([np.log(2.0), -0.5])
    event_time = rng.exponential(1.0 / np.exp(X @ beta))
    censor_time = rng.exponential(3.0, size=n)
    time = np.minimum(event_time, censor_time)
    event = (event_time <= censor_time).astype(int)
    return time, event, X, beta
