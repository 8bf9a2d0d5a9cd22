"""
Public API for survival analysis.

    kaplan_meier(time, event) → KMSolution (StratifiedKMSolution with strata)
    survdiff(time, event, group) → LogRankSolution
    coxph(time, event, X) → CoxSolution
    cox_zph(fit) → CoxZphSolution

Each function validates inputs, creates a SurvivalDesign, runs the
estimator, and wraps the Result in a Solution. Every function also takes
``data=``: a DataFrame, DataSource or CSV path, in which case time, event,
group and the covariates are column names.
"""

from __future__ import annotations

import warnings
from typing import Literal, Sequence

import numpy as np

from pysurvstat.core.exceptions import ValidationError
from pysurvstat.core.result import Result
from pysurvstat.core.timing import Timer
from pysurvstat.core.tolerances import (
    COX_MAX_ITER,
    COX_TOL,
    DEFAULT_CONF_LEVEL,
    LOGRANK_MIN_EXPECTED,
)
from pysurvstat.core.validation import check_choice, check_conf_level
from pysurvstat.survival.design import EventEncoding, SurvivalDesign
from pysurvstat.survival._km import kaplan_meier_fit
from pysurvstat.survival._logrank import logrank_test
from pysurvstat.survival._cox import cox_fit
from pysurvstat.survival._zph import TRANSFORMS, zph_test
from pysurvstat.survival.solution import (
    GLOBAL_ROW,
    CoxSolution,
    CoxZphSolution,
    KMSolution,
    LogRankSolution,
    StratifiedKMSolution,
)


def _warn(messages: list[str], message: str) -> None:
    messages.append(message)
    warnings.warn(message, RuntimeWarning, stacklevel=3)


def _build_design(
    data,
    time,
    event,
    X=None,
    *,
    strata=None,
    names=None,
    encoding: EventEncoding = "auto",
) -> SurvivalDesign:
    if data is None:
        return SurvivalDesign.for_survival(
            time, event, X, strata=strata, names=names, encoding=encoding,
        )

    if not isinstance(time, str) or not isinstance(event, str):
        raise ValidationError(
            "With data=, time and event must be column names"
        )
    if isinstance(X, str):
        X = [X]
    if strata is not None and not isinstance(strata, str):
        raise ValidationError("With data=, strata/group must be a column name")
    return SurvivalDesign.from_dataframe(
        data, time, event, X, strata=strata, encoding=encoding,
    )


def _km_result(design_time, design_event, conf_level, conf_type, n_dropped):
    timer = Timer()
    timer.start()

    params = kaplan_meier_fit(
        design_time, design_event,
        conf_level=conf_level,
        conf_type=conf_type,
    )

    timer.stop()

    messages: list[str] = []
    if params.n_events_total == 0:
        _warn(messages, "No events observed; the survival curve stays at 1")

    return Result(
        params=params,
        info={"method": "Kaplan-Meier", "n_dropped": n_dropped},
        timing=timer.result(),
        backend_name="cpu_km",
        warnings=tuple(messages),
    )


def kaplan_meier(
    time,
    event,
    *,
    strata=None,
    conf_level: float = DEFAULT_CONF_LEVEL,
    conf_type: Literal["log", "log-log"] = "log",
    encoding: EventEncoding = "auto",
    data=None,
) -> KMSolution | StratifiedKMSolution:
    """Kaplan-Meier survival curve estimation.

    Matches R's survival::survfit(Surv(time, event) ~ 1).

    Parameters
    ----------
    time : array-like or str
        Time to event or censoring.
    event : array-like or str
        Event indicator: True/False, 1/0 (1=event) or 2/1 (2=event).
    strata : array-like, str or None
        Strata labels; one curve is estimated per stratum.
    conf_level : float
        Confidence level for CI (default 0.95).
    conf_type : str
        CI transformation: "log" (R default) or "log-log".
    encoding : str
        Event coding: "auto" (default), "boolean", "binary", "one_two".
    data : DataFrame, DataSource, path or None
        Table holding the columns named by time, event and strata.

    Returns
    -------
    KMSolution, or StratifiedKMSolution when strata is given
    """
    check_conf_level(conf_level)
    check_choice(conf_type, ("log", "log-log"), "conf_type")

    design = _build_design(data, time, event, strata=strata, encoding=encoding)

    if design.strata is None:
        result = _km_result(
            design.time, design.event, conf_level, conf_type, design.n_dropped,
        )
        return KMSolution(_result=result)

    curves = {}
    messages = []
    for label in np.unique(design.strata):
        in_stratum = design.strata == label
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            result = _km_result(
                design.time[in_stratum], design.event[in_stratum],
                conf_level, conf_type, 0,
            )
        messages.extend(f"strata={label}: {w}" for w in result.warnings)
        curves[label.item() if hasattr(label, 'item') else label] = KMSolution(_result=result)

    for message in messages:
        warnings.warn(message, RuntimeWarning, stacklevel=2)

    return StratifiedKMSolution(curves, warnings=tuple(messages))


def survdiff(
    time,
    event,
    group,
    *,
    rho: float = 0.0,
    encoding: EventEncoding = "auto",
    data=None,
) -> LogRankSolution:
    """Log-rank test (and G-rho family).

    Matches R's survival::survdiff().

    Parameters
    ----------
    time : array-like or str
        Time to event or censoring.
    event : array-like or str
        Event indicator in any accepted coding.
    group : array-like or str
        Group labels (e.g. treatment vs control).
    rho : float
        G-rho weight parameter. rho=0 (default) gives the standard
        log-rank test. rho=1 gives Peto & Peto / Gehan-Wilcoxon.
    encoding : str
        Event coding, see normalize_event().
    data : DataFrame, DataSource, path or None
        Table holding the named columns.

    Returns
    -------
    LogRankSolution

    Notes
    -----
    The chi-square approximation is flagged with a RuntimeWarning when
    any group expects fewer than 5 events, and when no events occurred.
    """
    if not np.isfinite(rho):
        raise ValidationError(f"rho must be finite, got {rho}")

    design = _build_design(data, time, event, strata=group, encoding=encoding)

    timer = Timer()
    timer.start()

    params = logrank_test(
        design.time, design.event, design.strata,
        rho=float(rho),
    )

    timer.stop()

    messages: list[str] = []
    if design.n_events == 0:
        _warn(messages, "No events observed; log-rank test is not informative (chisq=0, p=1)")
    else:
        small = [
            str(label) for label, e in zip(params.group_labels, params.expected)
            if e < LOGRANK_MIN_EXPECTED
        ]
        if small:
            _warn(
                messages,
                f"Expected events below {LOGRANK_MIN_EXPECTED:g} in group(s) "
                f"{small}; chi-square approximation may be unreliable",
            )
        if params.statistic == 0.0 and not np.allclose(params.observed, params.expected):
            _warn(messages, "Variance of O - E is singular; statistic set to 0")

    result = Result(
        params=params,
        info={"method": "Log-rank test", "rho": rho, "n_dropped": design.n_dropped},
        timing=timer.result(),
        backend_name="cpu_logrank",
        warnings=tuple(messages),
    )

    return LogRankSolution(_result=result)


def coxph(
    time,
    event,
    X,
    *,
    names: Sequence[str] | None = None,
    ties: Literal["efron", "breslow"] = "efron",
    tol: float = COX_TOL,
    max_iter: int = COX_MAX_ITER,
    conf_level: float = DEFAULT_CONF_LEVEL,
    encoding: EventEncoding = "auto",
    data=None,
) -> CoxSolution:
    """Cox proportional hazards model.

    Matches R's survival::coxph().

    Parameters
    ----------
    time : array-like or str
        Time to event or censoring.
    event : array-like or str
        Event indicator in any accepted coding.
    X : array-like, DataFrame, or sequence of column names
        Covariate matrix (n, p). No intercept column; the Cox model has none.
    names : sequence of str or None
        Covariate names (default: DataFrame columns, else x0, x1, ...).
    ties : str
        Method for handling tied event times: "efron" (default) or "breslow".
    tol : float
        Convergence tolerance for Newton-Raphson.
    max_iter : int
        Maximum Newton-Raphson iterations.
    conf_level : float
        Confidence level for the hazard-ratio intervals.
    encoding : str
        Event coding, see normalize_event().
    data : DataFrame, DataSource, path or None
        Table holding the named columns.

    Returns
    -------
    CoxSolution

    Raises
    ------
    InsufficientDataError
        If no events were observed.
    SingularMatrixError
        If the covariates are linearly dependent (the message names them).
    ConvergenceError
        If Newton-Raphson fails or a coefficient diverges.
    """
    check_choice(ties, ("efron", "breslow"), "ties")
    check_conf_level(conf_level)
    if not tol > 0:
        raise ValidationError(f"tol must be positive, got {tol}")
    if int(max_iter) < 1:
        raise ValidationError(f"max_iter must be at least 1, got {max_iter}")

    design = _build_design(data, time, event, X, names=names, encoding=encoding)

    if design.X is None or design.X.shape[1] == 0:
        raise ValidationError("X (covariates) is required for coxph()")

    timer = Timer()
    timer.start()

    with timer.section('newton_raphson'):
        params = cox_fit(
            design.time, design.event, design.X,
            names=design.covariate_names,
            ties=ties,
            tol=tol,
            max_iter=int(max_iter),
            conf_level=conf_level,
            n_dropped=design.n_dropped,
        )

    timer.stop()

    result = Result(
        params=params,
        info={
            "method": "Cox PH",
            "ties": ties,
            "n_iter": params.n_iter,
            "converged": params.converged,
            "n_dropped": design.n_dropped,
        },
        timing=timer.result(),
        backend_name="cpu_cox",
        warnings=(),
    )

    return CoxSolution(_result=result, _design=design)


def cox_zph(
    fit: CoxSolution,
    transform: Literal["km", "rank", "identity", "log"] = "km",
    global_test: bool = True,
) -> CoxZphSolution:
    """Test the proportional-hazards assumption of a Cox fit.

    Matches R's survival::cox.zph() (Grambsch-Therneau test on scaled
    Schoenfeld residuals).

    Parameters
    ----------
    fit : CoxSolution
        Result of coxph().
    transform : str
        Time scale the residuals are regressed on: "km" (default),
        "rank", "identity" or "log".
    global_test : bool
        Also report the joint test over all covariates.

    Returns
    -------
    CoxZphSolution

    Raises
    ------
    ValidationError
        If a covariate is named GLOBAL while the joint test is requested,
        since that label is reserved for the joint row.
    """
    if not isinstance(fit, CoxSolution):
        raise ValidationError(
            f"cox_zph() needs a CoxSolution, got {type(fit).__name__}"
        )
    check_choice(transform, TRANSFORMS, "transform")
    if global_test and GLOBAL_ROW in fit.names:
        raise ValidationError(
            f"Covariate name '{GLOBAL_ROW}' is reserved for the joint test; "
            f"rename it or pass global_test=False"
        )

    design = fit.design

    timer = Timer()
    timer.start()

    params = zph_test(
        design.time, design.event, design.X,
        fit._result.params,
        transform=transform,
        global_test=global_test,
    )

    timer.stop()

    result = Result(
        params=params,
        info={"method": "cox.zph", "transform": transform},
        timing=timer.result(),
        backend_name="cpu_zph",
        warnings=(),
    )

    return CoxZphSolution(_result=result)
