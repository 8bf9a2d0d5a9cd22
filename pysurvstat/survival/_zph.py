"""
Test of the proportional-hazards assumption for a Cox fit.

Matches R's survival::cox.zph() in its survival < 3.0 form (Grambsch &
Therneau score test built on scaled Schoenfeld residuals).

Algorithm:
    1. Schoenfeld residual for each event i and covariate j:
           r_ij = x_ij - x̄_j(t_i)
       where x̄_j(t_i) is the risk-set mean weighted by exp(x @ β)
       (Efron-averaged over tied events when the fit used Efron).
    2. Scaled residual: s_i = d * r_i @ V + β, d = number of events,
       V = covariance matrix of β̂.
    3. With g_i = g(t_i) the transformed event time and g̃ = g - mean(g):
           T_j    = (g̃ @ (d r V))_j^2 / (d V_jj Σ g̃^2)      ~ χ²(1)
           T_glob = (g̃ @ r) V (g̃ @ r)ᵀ · d / Σ g̃^2        ~ χ²(p)
       A slope of the scaled residuals in g(t) means β_j drifts with time.

References:
    Grambsch, P. M. & Therneau, T. M. (1994). Proportional hazards tests
        and diagnostics based on weighted residuals. Biometrika, 81(3).
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pysurvstat.core.exceptions import InsufficientDataError
from pysurvstat.survival._common import ChiSquareTest, CoxParams, CoxZphParams
from pysurvstat.survival._cox import SortedSample, event_means
from pysurvstat.survival._km import kaplan_meier_fit

TRANSFORMS = ("km", "rank", "identity", "log")


def schoenfeld_residuals(
    time: NDArray,
    event: NDArray,
    X: NDArray,
    beta: NDArray,
    ties: str,
) -> tuple[NDArray, NDArray]:
    """Unscaled Schoenfeld residuals, one row per event in time order.

    Returns
    -------
    (event_times, residuals)
        event_times : (d,) event time of each row
        residuals : (d, p)
    """
    X_c = X - X.mean(axis=0)
    sample = SortedSample.build(time, event, X_c)
    means = event_means(beta, sample, ties)

    if not sample.event_groups:
        return np.array([], dtype=np.float64), np.zeros((0, X.shape[1]))

    idx = np.concatenate(sample.event_groups)
    residuals = sample.X[idx] - np.vstack(means)
    return sample.time[idx], residuals


def transform_time(
    event_times: NDArray,
    time: NDArray,
    event: NDArray,
    transform: str,
) -> NDArray:
    """g(t) evaluated at each event time.

    "km" is 1 - S(t-) from the Kaplan-Meier curve of the fitted sample,
    so it is 0 at the first event and rises with the event distribution.
    """
    if transform == "identity":
        return event_times.astype(np.float64)
    if transform == "log":
        with np.errstate(divide='ignore'):
            return np.log(event_times)
    if transform == "rank":
        return stats.rankdata(event_times)
    if transform == "km":
        km = kaplan_meier_fit(time, event, conf_level=0.95, conf_type="log")
        k = np.searchsorted(km.time, event_times, side='left')
        s_before = np.concatenate(([1.0], km.survival))[k]
        return 1.0 - s_before
    raise ValueError(
        f"Unknown transform '{transform}'. Choose from {', '.join(TRANSFORMS)}."
    )


def zph_test(
    time: NDArray,
    event: NDArray,
    X: NDArray,
    params: CoxParams,
    transform: str = "km",
    global_test: bool = True,
) -> CoxZphParams:
    """Per-covariate and global tests of proportional hazards.

    Parameters
    ----------
    time, event, X : NDArray
        The data the Cox model was fitted to.
    params : CoxParams
        The fitted model.
    transform : str
        Time scale g(t): "km" (default), "rank", "identity" or "log".
    global_test : bool
        Also compute the joint test over all covariates.

    Returns
    -------
    CoxZphParams

    Raises
    ------
    InsufficientDataError
        If the transformed event times do not vary (fewer than two
        distinct event times).
    """
    beta = params.coefficients
    V = params.variance_matrix
    p = len(beta)

    event_times, resid = schoenfeld_residuals(time, event, X, beta, params.ties)
    d = len(event_times)

    g = transform_time(event_times, time, event, transform)
    if not np.all(np.isfinite(g)):
        raise InsufficientDataError(
            f"transform='{transform}' is undefined at some event times "
            f"(log of a zero duration); use another transform",
            n_observations=len(time),
            n_events=d,
        )

    g_c = g - g.mean()
    ss_g = float(g_c @ g_c)
    if d < 2 or ss_g <= 0.0:
        raise InsufficientDataError(
            "Proportional-hazards test needs at least two distinct event times",
            n_observations=len(time),
            n_events=d,
        )

    r_scaled = d * resid @ V
    scaled = r_scaled + beta

    slope = g_c @ r_scaled
    chisq = slope ** 2 / (d * np.diag(V) * ss_g)
    p_values = stats.chi2.sf(chisq, 1)

    rho = np.empty(p, dtype=np.float64)
    for j in range(p):
        col = r_scaled[:, j] - r_scaled[:, j].mean()
        denom = np.sqrt(ss_g * float(col @ col))
        rho[j] = float(g_c @ col) / denom if denom > 0 else np.nan

    glob = None
    if global_test:
        u = g_c @ resid
        stat = float(u @ V @ u) * d / ss_g
        glob = ChiSquareTest(stat, p, float(stats.chi2.sf(stat, p)))

    return CoxZphParams(
        names=params.names,
        rho=rho,
        chisq=chisq,
        p_values=p_values,
        global_test=glob,
        transform=transform,
        event_times=event_times,
        transformed_time=g,
        residuals=resid,
        scaled_residuals=scaled,
    )
