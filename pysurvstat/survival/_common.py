"""
Parameter payloads for survival analysis results.

Each dataclass is a frozen payload carried inside a Result[P] envelope.
"""

from __future__ import annotations

from dataclasses import dataclass

from numpy.typing import NDArray


@dataclass(frozen=True)
class ChiSquareTest:
    """A chi-square distributed test statistic."""

    statistic: float
    df: int
    p_value: float


@dataclass(frozen=True)
class KMParams:
    """Kaplan-Meier survival curve parameters.

    Matches the output of R's survival::survfit().
    """

    time: NDArray                # (m,) unique event times
    survival: NDArray            # (m,) S(t) at each event time
    n_risk: NDArray              # (m,) number at risk just before each time
    n_events: NDArray            # (m,) events at each time
    n_censored: NDArray          # (m,) censored in [t_i, t_{i+1})
    se: NDArray                  # (m,) Greenwood standard error
    ci_lower: NDArray            # (m,) lower CI for S(t)
    ci_upper: NDArray            # (m,) upper CI for S(t)
    conf_level: float            # confidence level (e.g. 0.95)
    conf_type: str               # "log" (default) or "log-log"
    n_observations: int          # total n
    n_events_total: int          # total events
    max_time: float              # largest observed duration; S undefined beyond


@dataclass(frozen=True)
class KMQuantile:
    """A survival-time quantile with its confidence limits.

    None means the curve (or confidence curve) never reaches 1 - p.
    """

    p: float
    time: float | None
    lower: float | None
    upper: float | None


@dataclass(frozen=True)
class LogRankParams:
    """Log-rank test parameters.

    Matches the output of R's survival::survdiff().
    """

    statistic: float             # chi-squared statistic
    df: int                      # degrees of freedom (n_groups - 1)
    p_value: float
    n_groups: int
    observed: NDArray            # (n_groups,) observed events per group
    expected: NDArray            # (n_groups,) expected events per group
    variance: NDArray            # (n_groups, n_groups) covariance of O - E
    n_per_group: NDArray         # (n_groups,) subjects per group
    rho: float                   # weight parameter (0=log-rank, 1=Peto-Peto)
    group_labels: NDArray        # unique group labels


@dataclass(frozen=True)
class ConcordanceParams:
    """Harrell's concordance and its pair counts."""

    concordance: float
    concordant: int
    discordant: int
    tied_risk: int
    comparable: int


@dataclass(frozen=True)
class CoxParams:
    """Cox proportional hazards model parameters.

    Matches the output of R's survival::coxph().
    """

    names: tuple[str, ...]       # covariate names
    coefficients: NDArray        # (p,) log hazard ratios
    hazard_ratios: NDArray       # (p,) exp(coef)
    standard_errors: NDArray     # (p,) from observed information matrix
    z_statistics: NDArray        # (p,) coef / se
    p_values: NDArray            # (p,) two-sided Wald test
    ci_lower: NDArray            # (p,) lower CI for the hazard ratio
    ci_upper: NDArray            # (p,) upper CI for the hazard ratio
    conf_level: float
    variance_matrix: NDArray     # (p, p) inverse information at convergence
    loglik: tuple[float, float]  # (null log-lik, model log-lik)
    likelihood_ratio: ChiSquareTest
    wald: ChiSquareTest
    score: ChiSquareTest         # equals the logrank test for one binary covariate
    concordance: ConcordanceParams
    means: NDArray               # (p,) covariate means
    n_events: int
    n_observations: int          # rows used in the fit
    n_dropped: int               # rows removed for missing values
    n_iter: int                  # Newton-Raphson iterations
    converged: bool
    ties: str                    # "efron" or "breslow"


@dataclass(frozen=True)
class CoxZphParams:
    """Proportional-hazards test based on scaled Schoenfeld residuals.

    Matches the output of R's survival::cox.zph() (survival < 3.0 form).
    """

    names: tuple[str, ...]       # covariate names
    rho: NDArray                 # (p,) correlation of scaled residual with g(t)
    chisq: NDArray               # (p,) per-covariate statistic
    p_values: NDArray            # (p,)
    global_test: ChiSquareTest | None
    transform: str               # "km", "rank", "identity", or "log"
    event_times: NDArray         # (d,) one entry per event, ascending
    transformed_time: NDArray    # (d,) g(event_times)
    residuals: NDArray           # (d, p) unscaled Schoenfeld residuals
    scaled_residuals: NDArray    # (d, p) d * r @ V + beta
