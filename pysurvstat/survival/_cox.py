"""
Cox Proportional Hazards model via Newton-Raphson.

Implements Efron's and Breslow's methods for tied event times,
matching R's survival::coxph().

Algorithm:
    Initialize β = 0
    For iteration 1..max_iter:
        Compute: partial log-likelihood L(β), score U(β), information I(β)
        β_new = β + I(β)^{-1} @ U(β), halving the step while L decreases
        Converged when |L(β_new) - L(β)| / (|L(β)| + 0.1) < tol

Efron's partial likelihood (R default):
    L(β) = Σ_{j: event times} [ Σ_{i ∈ D_j} x_i @ β
            - Σ_{s=0}^{d_j-1} log(Σ_{l ∈ R_j} exp(x_l @ β)
                - (s/d_j) * Σ_{i ∈ D_j} exp(x_i @ β)) ]

    where D_j = set of events at time t_j, d_j = |D_j|,
          R_j = risk set at time t_j (alive just before t_j).

Risk-set sums are suffix sums over the time-sorted sample, so each
evaluation is O(n p^2) plus one pass over the event times.

References:
    Cox, D. R. (1972). Regression models and life-tables. JRSS-B, 34(2), 187-220.
    Efron, B. (1977). The efficiency of Cox's likelihood function for
        censored data. JASA, 72(359), 557-565.
    Therneau, T. M. & Grambsch, P. M. (2000). Modeling Survival Data.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy import linalg, stats

from pysurvstat.core.exceptions import (
    ConvergenceError,
    InsufficientDataError,
    SingularMatrixError,
)
from pysurvstat.core.tolerances import COX_MAX_HALVING, COX_MAX_STEP
from pysurvstat.core.validation import check_column_rank
from pysurvstat.survival._common import ChiSquareTest, CoxParams
from pysurvstat.survival._concordance import concordance_index


@dataclass(frozen=True)
class SortedSample:
    """Sample sorted by time with the event-time bookkeeping precomputed."""

    time: NDArray                # (n,) ascending
    event: NDArray               # (n,) bool
    X: NDArray                   # (n, p)
    event_times: NDArray         # (m,) distinct event times
    risk_start: NDArray          # (m,) first index with time >= t_j
    event_groups: list[NDArray]  # m arrays of row indices failing at t_j

    @classmethod
    def build(cls, time: NDArray, event: NDArray, X: NDArray) -> SortedSample:
        order = np.lexsort((event, time))
        t_sorted = time[order]
        e_sorted = event[order]
        X_sorted = X[order]

        ev_pos = np.flatnonzero(e_sorted)
        if len(ev_pos) == 0:
            groups: list[NDArray] = []
        else:
            breaks = np.flatnonzero(np.diff(t_sorted[ev_pos])) + 1
            groups = np.split(ev_pos, breaks)
        event_times = np.array([t_sorted[g[0]] for g in groups], dtype=np.float64)
        risk_start = np.searchsorted(t_sorted, event_times, side='left')

        return cls(
            time=t_sorted,
            event=e_sorted,
            X=X_sorted,
            event_times=event_times,
            risk_start=risk_start,
            event_groups=groups,
        )


def _suffix_sum(a: NDArray) -> NDArray:
    """Σ_{k >= i} a[k] along axis 0."""
    return np.cumsum(a[::-1], axis=0)[::-1]


def event_means(
    beta: NDArray,
    sample: SortedSample,
    ties: str,
) -> list[NDArray]:
    """Risk-set weighted covariate mean for every event, grouped by time.

    With Efron ties the s-th of d tied events sees the risk set with a
    fraction s/d of the tied subjects removed; each tied event gets the
    average of those d means.
    """
    eta = sample.X @ beta
    r = np.exp(eta - np.max(eta))
    S0_all = _suffix_sum(r)
    S1_all = _suffix_sum(r[:, np.newaxis] * sample.X)

    means = []
    for start, idx in zip(sample.risk_start, sample.event_groups):
        S0 = S0_all[start]
        S1 = S1_all[start]
        d = len(idx)
        if ties == "breslow" or d == 1:
            mean = S1 / S0
        else:
            dS0 = np.sum(r[idx])
            dS1 = sample.X[idx].T @ r[idx]
            fracs = np.arange(d) / d
            denom = S0 - fracs * dS0
            mean = np.mean(
                (S1[np.newaxis, :] - fracs[:, np.newaxis] * dS1) / denom[:, np.newaxis],
                axis=0,
            )
        means.append(np.tile(mean, (d, 1)))
    return means


def partial_likelihood(
    beta: NDArray,
    sample: SortedSample,
    ties: str,
) -> tuple[float, NDArray, NDArray]:
    """Compute log-likelihood, score vector, and observed information matrix.

    Returns
    -------
    (loglik, score, info_matrix)
        loglik : float
        score : (p,) gradient of log-likelihood
        info_matrix : (p, p) negative Hessian (observed information)
    """
    X = sample.X
    p = X.shape[1]
    eta = X @ beta

    # Center eta for numerical stability (cancels in the partial likelihood)
    eta_c = eta - np.max(eta)
    r = np.exp(eta_c)

    S0_all = _suffix_sum(r)
    S1_all = _suffix_sum(r[:, np.newaxis] * X)
    S2_all = _suffix_sum(r[:, np.newaxis, np.newaxis] * X[:, :, np.newaxis] * X[:, np.newaxis, :])

    loglik = 0.0
    score = np.zeros(p, dtype=np.float64)
    info = np.zeros((p, p), dtype=np.float64)

    for start, idx in zip(sample.risk_start, sample.event_groups):
        S0 = S0_all[start]
        S1 = S1_all[start]
        S2 = S2_all[start]
        d = len(idx)

        loglik += float(np.sum(eta_c[idx]))
        score += np.sum(X[idx], axis=0)

        if ties == "breslow" or d == 1:
            mean = S1 / S0
            loglik -= d * np.log(S0)
            score -= d * mean
            info += d * (S2 / S0 - np.outer(mean, mean))
        else:
            event_X = X[idx]
            event_r = r[idx]
            dS0 = np.sum(event_r)
            dS1 = event_X.T @ event_r
            dS2 = (event_X * event_r[:, np.newaxis]).T @ event_X

            for s in range(d):
                frac = s / d
                denom = S0 - frac * dS0
                mean = (S1 - frac * dS1) / denom
                loglik -= np.log(denom)
                score -= mean
                info += (S2 - frac * dS2) / denom - np.outer(mean, mean)

    return loglik, score, info


def _solve_information(
    info: NDArray,
    rhs: NDArray,
    names: tuple[str, ...],
) -> NDArray:
    """Solve I x = rhs, naming the dependent columns if I is singular."""
    try:
        with np.errstate(all='raise'):
            if np.linalg.cond(info) > 1.0 / np.finfo(np.float64).eps:
                raise linalg.LinAlgError("information matrix is singular")
            return linalg.solve(info, rhs, assume_a='sym')
    except (linalg.LinAlgError, FloatingPointError) as e:
        check_column_rank(info, names, name="information matrix")
        raise SingularMatrixError(
            f"information matrix is singular: {e}",
            matrix_name="information matrix",
            condition_number=float(np.linalg.cond(info)),
        ) from e


def cox_fit(
    time: NDArray,
    event: NDArray,
    X: NDArray,
    names: tuple[str, ...],
    ties: str = "efron",
    tol: float = 1e-9,
    max_iter: int = 20,
    conf_level: float = 0.95,
    n_dropped: int = 0,
) -> CoxParams:
    """Fit Cox proportional hazards model.

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) boolean event indicator.
    X : NDArray
        (n, p) covariate matrix (NO intercept).
    names : tuple of str
        Covariate names, used in diagnostics.
    ties : str
        Method for handling tied event times: "efron" (default) or "breslow".
    tol : float
        Convergence tolerance on the relative change in log-likelihood.
    max_iter : int
        Maximum Newton-Raphson iterations.
    conf_level : float
        Confidence level for the hazard-ratio intervals.
    n_dropped : int
        Rows removed upstream for missing values (reported, not used).

    Returns
    -------
    CoxParams

    Raises
    ------
    InsufficientDataError
        If there are no events.
    SingularMatrixError
        If X (after centering) or the information matrix is singular.
    ConvergenceError
        If Newton-Raphson does not converge in max_iter iterations, or a
        coefficient diverges while the likelihood converges.
    """
    n, p = X.shape
    n_events_total = int(np.sum(event))

    if n_events_total == 0:
        raise InsufficientDataError(
            "Cox model requires at least one event; all observations are censored",
            n_observations=n,
            n_events=0,
        )

    # Centering leaves β unchanged and exposes constant columns as zero
    means = X.mean(axis=0)
    X_c = X - means
    check_column_rank(X_c, names, name="X")

    sample = SortedSample.build(time, event, X_c)

    # --- Newton-Raphson ---
    beta = np.zeros(p, dtype=np.float64)
    null_loglik, score0, info0 = partial_likelihood(beta, sample, ties)
    score_stat = float(score0 @ _solve_information(info0, score0, names))

    loglik, score, info = null_loglik, score0, info0
    converged = False
    n_iter = 0
    change = np.inf
    step = np.zeros(p, dtype=np.float64)

    for iteration in range(1, max_iter + 1):
        n_iter = iteration
        step = _solve_information(info, score, names)

        # Limit step size so exp(X @ beta) doesn't overflow
        max_step = np.max(np.abs(step))
        if max_step > COX_MAX_STEP:
            step = step * (COX_MAX_STEP / max_step)

        beta_new = beta + step
        loglik_new, score_new, info_new = partial_likelihood(beta_new, sample, ties)

        # Step-halving while the likelihood gets worse
        halvings = 0
        while (not np.isfinite(loglik_new) or loglik_new < loglik) and halvings < COX_MAX_HALVING:
            step = step / 2.0
            beta_new = beta + step
            loglik_new, score_new, info_new = partial_likelihood(beta_new, sample, ties)
            halvings += 1

        change = abs(loglik_new - loglik) / (abs(loglik) + 0.1)
        beta, loglik, score, info = beta_new, loglik_new, score_new, info_new

        if change < tol:
            converged = True
            break

    tol_inf = np.sqrt(tol)

    if not converged:
        moving = np.abs(step) > tol_inf * np.maximum(np.abs(beta), 1.0)
        diverging = tuple(names[j] for j in np.flatnonzero(moving))
        raise ConvergenceError(
            f"Newton-Raphson did not converge in {max_iter} iterations "
            f"(relative log-likelihood change {change:.3g} > {tol:g}); "
            f"coefficients still moving: {list(diverging)}",
            iterations=n_iter,
            final_change=float(change),
            reason="max_iterations",
            threshold=tol,
            last_iterate=beta.copy(),
            diverging=diverging,
        )

    var_matrix = _solve_information(info, np.eye(p), names)
    var_matrix = (var_matrix + var_matrix.T) / 2.0

    # R's check for infinite coefficients: the next Newton step is still
    # large relative to β although the likelihood has stopped changing
    next_step = np.abs(score @ var_matrix)
    infinite = (next_step > tol) & (next_step > tol_inf * np.abs(beta))
    if np.any(infinite):
        diverging = tuple(names[j] for j in np.flatnonzero(infinite))
        raise ConvergenceError(
            f"Log-likelihood converged before {list(diverging)}; "
            f"coefficient may be infinite (monotone likelihood / separation)",
            iterations=n_iter,
            final_change=float(change),
            reason="diverging",
            threshold=tol,
            last_iterate=beta.copy(),
            diverging=diverging,
        )

    se = np.sqrt(np.maximum(np.diag(var_matrix), 0.0))

    # Wald z-statistics and p-values
    z = np.where(se > 0, beta / np.where(se > 0, se, 1.0), 0.0)
    p_values = 2.0 * stats.norm.sf(np.abs(z))

    zq = stats.norm.ppf((1.0 + conf_level) / 2.0)
    ci_lower = np.exp(beta - zq * se)
    ci_upper = np.exp(beta + zq * se)

    lr_stat = max(2.0 * (loglik - null_loglik), 0.0)
    wald_stat = float(beta @ info @ beta)

    concordance = concordance_index(time, event, X @ beta)

    return CoxParams(
        names=tuple(names),
        coefficients=beta,
        hazard_ratios=np.exp(beta),
        standard_errors=se,
        z_statistics=z,
        p_values=p_values,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        conf_level=conf_level,
        variance_matrix=var_matrix,
        loglik=(float(null_loglik), float(loglik)),
        likelihood_ratio=ChiSquareTest(lr_stat, p, float(stats.chi2.sf(lr_stat, p))),
        wald=ChiSquareTest(wald_stat, p, float(stats.chi2.sf(wald_stat, p))),
        score=ChiSquareTest(score_stat, p, float(stats.chi2.sf(score_stat, p))),
        concordance=concordance,
        means=means,
        n_events=n_events_total,
        n_observations=n,
        n_dropped=n_dropped,
        n_iter=n_iter,
        converged=converged,
        ties=ties,
    )
