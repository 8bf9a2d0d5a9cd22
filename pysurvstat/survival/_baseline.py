"""
Breslow estimate of the baseline cumulative hazard for a Cox fit.

    H0(t) = Σ_{t_i <= t} d_i / Σ_{j ∈ R(t_i)} exp(η_j)

With the covariates centered at their means (η = (x - x̄) β) this is the
hazard of a subject at the mean covariate vector, which is what R's
basehaz(fit, centered=TRUE) reports. Predicted survival for covariates x:

    S(t | x) = exp(-H0(t) exp(η(x)))
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


def breslow_baseline(
    time: NDArray,
    event: NDArray,
    risk_score: NDArray,
) -> tuple[NDArray, NDArray]:
    """Cumulative baseline hazard at each distinct event time.

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) boolean event indicator.
    risk_score : NDArray
        (n,) linear predictor η for each subject.

    Returns
    -------
    (event_times, cumulative_hazard)
    """
    order = np.argsort(time, kind='stable')
    t_sorted = time[order]
    exp_eta = np.exp(risk_score[order])

    event_times, d = np.unique(time[event], return_counts=True)
    if len(event_times) == 0:
        empty = np.array([], dtype=np.float64)
        return empty, empty

    # Σ exp(η) over subjects with time >= t
    suffix = np.cumsum(exp_eta[::-1])[::-1]
    start = np.searchsorted(t_sorted, event_times, side='left')
    hazard = d / suffix[start]
    return event_times.astype(np.float64), np.cumsum(hazard)


def step_hazard(
    event_times: NDArray,
    cumulative_hazard: NDArray,
    times: NDArray,
    max_time: float,
) -> NDArray:
    """H0 at arbitrary times; 0 before the first event, NaN past max_time."""
    idx = np.searchsorted(event_times, times, side='right')
    padded = np.concatenate(([0.0], cumulative_hazard))
    values = padded[idx]
    return np.where(times > max_time, np.nan, values)
