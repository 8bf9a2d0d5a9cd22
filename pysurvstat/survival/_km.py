"""
Kaplan-Meier product-limit estimator.

Matches R's survival::survfit(Surv(time, event) ~ 1):
- Product-limit survival estimate: S(t) = ∏(1 - d_j / n_j)
- Greenwood variance: Var(S(t)) = S(t)^2 * Σ(d_j / (n_j * (n_j - d_j)))
- Confidence intervals on the log or log-log scale, back-transformed so
  they stay inside [0, 1]
- Quantiles (median etc.) with confidence limits read off the
  confidence curves, as in R's quantile.survfit()

References:
    Kaplan, E. L., & Meier, P. (1958). Nonparametric estimation from
        incomplete observations. JASA, 53(282), 457-481.
    Brookmeyer, R. & Crowley, J. (1982). A confidence interval for the
        median survival time. Biometrics, 38(1), 29-41.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pysurvstat.core.exceptions import ValidationError
from pysurvstat.survival._common import KMParams, KMQuantile

# Same tolerance R uses when comparing S(t) with 1 - p
QUANTILE_TOL = np.sqrt(np.finfo(np.float64).eps)


def kaplan_meier_fit(
    time: NDArray,
    event: NDArray,
    conf_level: float,
    conf_type: str,
) -> KMParams:
    """Compute Kaplan-Meier survival curve.

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) boolean event indicator.
    conf_level : float
        Confidence level for CI (e.g. 0.95).
    conf_type : str
        CI type: "log" (default, matches R) or "log-log".

    Returns
    -------
    KMParams
    """
    n_total = len(time)
    n_events_total = int(np.sum(event))
    max_time = float(np.max(time))

    # Distinct event times and the number of events at each
    unique_event_times, out_n_events = np.unique(time[event], return_counts=True)

    if len(unique_event_times) == 0:
        # No events: survival is 1 everywhere up to max_time
        empty = np.array([], dtype=np.float64)
        return KMParams(
            time=empty,
            survival=empty,
            n_risk=empty,
            n_events=empty,
            n_censored=empty,
            se=empty,
            ci_lower=empty,
            ci_upper=empty,
            conf_level=conf_level,
            conf_type=conf_type,
            n_observations=n_total,
            n_events_total=0,
            max_time=max_time,
        )

    out_n_events = out_n_events.astype(np.float64)

    # n_risk: number with time >= t_j. Censored observations tied with
    # an event time are still at risk at that time.
    t_sorted = np.sort(time)
    out_n_risk = (
        n_total - np.searchsorted(t_sorted, unique_event_times, side='left')
    ).astype(np.float64)

    # n_censored: censored in [t_j, t_{j+1})
    cens_sorted = np.sort(time[~event])
    upper_edges = np.append(unique_event_times[1:], np.inf)
    out_n_censored = (
        np.searchsorted(cens_sorted, upper_edges, side='left')
        - np.searchsorted(cens_sorted, unique_event_times, side='left')
    ).astype(np.float64)

    # Product-limit estimate: S(t) = ∏_{j: t_j <= t} (1 - d_j / n_j)
    survival = np.cumprod(1.0 - out_n_events / out_n_risk)

    # Greenwood: the n_j == d_j term is taken as 0; S is exactly 0 from
    # there on so the variance is 0, not NaN
    denom = out_n_risk * (out_n_risk - out_n_events)
    terms = np.divide(
        out_n_events, denom,
        out=np.zeros_like(out_n_events), where=denom > 0,
    )
    greenwood_sum = np.cumsum(terms)
    se = survival * np.sqrt(greenwood_sum)

    z = stats.norm.ppf((1.0 + conf_level) / 2.0)
    ci_lower, ci_upper = _compute_ci(survival, greenwood_sum, z, conf_type)

    return KMParams(
        time=unique_event_times.astype(np.float64),
        survival=survival,
        n_risk=out_n_risk,
        n_events=out_n_events,
        n_censored=out_n_censored,
        se=se,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        conf_level=conf_level,
        conf_type=conf_type,
        n_observations=n_total,
        n_events_total=n_events_total,
        max_time=max_time,
    )


def _compute_ci(
    survival: NDArray,
    greenwood_sum: NDArray,
    z: float,
    conf_type: str,
) -> tuple[NDArray, NDArray]:
    """Compute CI for survival function.

    Parameters
    ----------
    survival : S(t) values
    greenwood_sum : cumulative Σ d_j / (n_j (n_j - d_j)); its square root
        is the standard error of log S(t)
    z : normal quantile (e.g. 1.96 for 95%)
    conf_type : "log" or "log-log"

    Returns
    -------
    (ci_lower, ci_upper) inside [0, 1]; NaN where S(t) = 0
    """
    se_log = np.sqrt(greenwood_sum)
    positive = survival > 0
    ci_lower = np.full_like(survival, np.nan)
    ci_upper = np.full_like(survival, np.nan)

    s = survival[positive]
    g = se_log[positive]

    if conf_type == "log":
        # exp(log(S) ± z * se(log S))
        lower = s * np.exp(-z * g)
        upper = s * np.exp(z * g)

    elif conf_type == "log-log":
        # exp(-exp(log(-log S) ± z * se(log S) / |log S|)); at S = 1 the
        # interval degenerates to [1, 1]
        with np.errstate(divide='ignore', invalid='ignore'):
            log_s = np.log(s)
            log_neg_log_s = np.log(-log_s)
            half_width = z * g / np.abs(log_s)
            lower = np.exp(-np.exp(log_neg_log_s + half_width))
            upper = np.exp(-np.exp(log_neg_log_s - half_width))
        at_one = s >= 1.0
        lower = np.where(at_one, 1.0, lower)
        upper = np.where(at_one, 1.0, upper)
    else:
        raise ValueError(
            f"Unknown conf_type '{conf_type}'. Choose from 'log', 'log-log'."
        )

    ci_lower[positive] = np.clip(lower, 0.0, 1.0)
    ci_upper[positive] = np.clip(upper, 0.0, 1.0)
    return ci_lower, ci_upper


def step_value(params: KMParams, t: float) -> float | None:
    """S(t) from the right-continuous step function.

    Returns None beyond the largest observed duration.
    """
    if t > params.max_time:
        return None
    idx = int(np.searchsorted(params.time, t, side='right'))
    if idx == 0:
        return 1.0
    return float(params.survival[idx - 1])


def _first_crossing(times: NDArray, curve: NDArray, target: float) -> float | None:
    """Smallest knot where the curve has dropped to or below target."""
    hit = np.flatnonzero(curve <= target + QUANTILE_TOL)
    if len(hit) == 0:
        return None
    return float(times[hit[0]])


def km_quantile(params: KMParams, p: float) -> KMQuantile:
    """Survival-time quantile: smallest event time with S(t) <= 1 - p.

    The confidence limits are the first times the lower and upper
    confidence curves reach 1 - p. Knots where the confidence curve is
    undefined (S = 0) never count as a crossing. Not reached → None.
    """
    if not 0.0 < p < 1.0:
        raise ValidationError(f"p must be in (0, 1), got {p}")

    target = 1.0 - p
    # NaN compares False, so undefined CI knots never count as crossings
    with np.errstate(invalid='ignore'):
        time_q = _first_crossing(params.time, params.survival, target)
        lower_q = _first_crossing(params.time, params.ci_lower, target)
        upper_q = _first_crossing(params.time, params.ci_upper, target)

    return KMQuantile(p=p, time=time_q, lower=lower_q, upper=upper_q)
