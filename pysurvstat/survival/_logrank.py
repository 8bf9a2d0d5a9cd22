"""
Log-rank test (G-rho family) for comparing survival curves across groups.

Matches R's survival::survdiff(Surv(time, event) ~ group, rho=0):
- Standard log-rank test (rho=0): Mantel-Haenszel / Cochran-Mantel
- G-rho family (rho>0): Fleming-Harrington weighted variant
  When rho=1, gives the Peto & Peto modification of the Gehan-Wilcoxon test.

Algorithm:
    1. At each distinct pooled event time t_j:
       - n_kj = number at risk in group k at t_j
       - d_kj = observed events in group k at t_j
       - N_j = total at risk, D_j = total events
       - Expected events in group k: E_kj = n_kj * D_j / N_j
       - Weight w_j = S_hat(t_j-)^rho (pooled KM just before t_j)
    2. Hypergeometric covariance of O - E summed over event times
    3. Chi-squared statistic on the first k-1 groups

References:
    Mantel, N. (1966). Evaluation of survival data and two new rank order
        statistics arising in its consideration. Cancer Chemother. Rep., 50.
    Harrington, D. P. & Fleming, T. R. (1982). A class of rank test
        procedures for censored survival data. Biometrika, 69(3), 553-566.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import linalg, stats

from pysurvstat.core.exceptions import ValidationError
from pysurvstat.survival._common import LogRankParams


def logrank_test(
    time: NDArray,
    event: NDArray,
    group: NDArray,
    rho: float = 0.0,
) -> LogRankParams:
    """Compute log-rank test (G-rho family).

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) boolean event indicator.
    group : NDArray
        (n,) group labels.
    rho : float
        G-rho weight parameter: rho=0 is standard log-rank,
        rho=1 is Peto & Peto / Gehan-Wilcoxon.

    Returns
    -------
    LogRankParams

    Raises
    ------
    ValidationError
        If fewer than two groups are present.
    """
    unique_groups, group_idx = np.unique(group, return_inverse=True)
    n_groups = len(unique_groups)

    if n_groups < 2:
        raise ValidationError(
            f"Need at least 2 groups for log-rank test, got {n_groups}"
        )

    n_per_group = np.bincount(group_idx, minlength=n_groups).astype(np.float64)
    df = n_groups - 1

    unique_event_times = np.unique(time[event])
    m = len(unique_event_times)

    if m == 0:
        # No events: the statistic is 0 and the solver adds a warning
        return LogRankParams(
            statistic=0.0,
            df=df,
            p_value=1.0,
            n_groups=n_groups,
            observed=np.zeros(n_groups, dtype=np.float64),
            expected=np.zeros(n_groups, dtype=np.float64),
            variance=np.zeros((n_groups, n_groups), dtype=np.float64),
            n_per_group=n_per_group,
            rho=rho,
            group_labels=unique_groups,
        )

    # Events and risk sets per (event time, group)
    d_kg = np.zeros((m, n_groups), dtype=np.float64)
    n_kg = np.zeros((m, n_groups), dtype=np.float64)
    for k in range(n_groups):
        in_k = group_idx == k
        t_k = np.sort(time[in_k])
        n_kg[:, k] = len(t_k) - np.searchsorted(t_k, unique_event_times, side='left')
        ev_times = time[in_k & event]
        pos = np.searchsorted(unique_event_times, ev_times)
        np.add.at(d_kg[:, k], pos, 1.0)

    D_j = d_kg.sum(axis=1)
    N_j = n_kg.sum(axis=1)

    if rho == 0.0:
        weights = np.ones(m, dtype=np.float64)
    else:
        # S_hat(t_j-) from the pooled Kaplan-Meier estimate
        cum_surv = np.cumprod(1.0 - D_j / N_j)
        s_before = np.ones(m, dtype=np.float64)
        s_before[1:] = cum_surv[:-1]
        weights = s_before ** rho

    observed = weights @ d_kg
    expected = weights @ (n_kg * (D_j / N_j)[:, np.newaxis])

    # V_kl = Σ_j w_j^2 D_j (N_j - D_j) / (N_j^2 (N_j - 1)) * n_kj (δ_kl N_j - n_lj)
    multi = N_j > 1
    factor = np.zeros(m, dtype=np.float64)
    factor[multi] = (
        weights[multi] ** 2 * D_j[multi] * (N_j[multi] - D_j[multi])
        / (N_j[multi] ** 2 * (N_j[multi] - 1))
    )
    V = np.zeros((n_groups, n_groups), dtype=np.float64)
    for j in np.flatnonzero(multi):
        nk = n_kg[j]
        V += factor[j] * (np.diag(nk * N_j[j]) - np.outer(nk, nk))

    # Drop the last group: Σ(O_k - E_k) = 0 makes V singular
    oe_diff = (observed - expected)[:df]
    V_sub = V[:df, :df]
    try:
        statistic = float(oe_diff @ linalg.solve(V_sub, oe_diff, assume_a='sym'))
    except (linalg.LinAlgError, ValueError):
        statistic = 0.0
    if not np.isfinite(statistic):
        statistic = 0.0

    p_value = float(stats.chi2.sf(statistic, df))

    return LogRankParams(
        statistic=statistic,
        df=df,
        p_value=p_value,
        n_groups=n_groups,
        observed=observed,
        expected=expected,
        variance=V,
        n_per_group=n_per_group,
        rho=rho,
        group_labels=unique_groups,
    )
