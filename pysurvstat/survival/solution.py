"""
Solution wrappers for survival analysis results.

Each Solution wraps a Result[Params] and exposes user-friendly properties
with R-style summary() methods.
"""

from __future__ import annotations

from typing import Iterator

import numpy as np
import pandas as pd

from pysurvstat.core.result import Result
from pysurvstat.core.validation import check_array
from pysurvstat.core.exceptions import DimensionError
from pysurvstat.survival._baseline import breslow_baseline, step_hazard
from pysurvstat.survival._common import (
    CoxParams,
    CoxZphParams,
    KMParams,
    KMQuantile,
    LogRankParams,
)
from pysurvstat.survival._km import km_quantile, step_value
from pysurvstat.survival.design import SurvivalDesign

# Index label of the joint test row in cox_zph output
GLOBAL_ROW = "GLOBAL"


def _fmt(value: float | None) -> str:
    return "NA" if value is None or not np.isfinite(value) else f"{value:.4g}"


class KMSolution:
    """Kaplan-Meier survival curve solution.

    Properties mirror R's survfit() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[KMParams]) -> None:
        self._result = _result

    # -- Properties delegating to KMParams --

    @property
    def time(self):
        """Unique event times."""
        return self._result.params.time

    @property
    def survival(self):
        """S(t) at each event time."""
        return self._result.params.survival

    @property
    def n_risk(self):
        """Number at risk just before each event time."""
        return self._result.params.n_risk

    @property
    def n_events(self):
        """Number of events at each event time."""
        return self._result.params.n_events

    @property
    def n_censored(self):
        """Number censored in each interval."""
        return self._result.params.n_censored

    @property
    def se(self):
        """Greenwood standard error of S(t)."""
        return self._result.params.se

    @property
    def ci_lower(self):
        """Lower confidence bound for S(t)."""
        return self._result.params.ci_lower

    @property
    def ci_upper(self):
        """Upper confidence bound for S(t)."""
        return self._result.params.ci_upper

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def conf_type(self) -> str:
        return self._result.params.conf_type

    @property
    def n_observations(self) -> int:
        return self._result.params.n_observations

    @property
    def n_events_total(self) -> int:
        return self._result.params.n_events_total

    @property
    def max_time(self) -> float:
        """Largest observed duration; the curve is undefined beyond it."""
        return self._result.params.max_time

    @property
    def n_dropped(self) -> int:
        return self._result.info.get('n_dropped', 0)

    def survival_at(self, t: float) -> float | None:
        """S(t) from the step function; None beyond the last observed time."""
        return step_value(self._result.params, float(t))

    def quantile(self, p: float) -> KMQuantile:
        """Time by which a fraction p has failed, with confidence limits."""
        return km_quantile(self._result.params, p)

    @property
    def median_survival(self) -> float | None:
        """Median survival time (smallest t where S(t) <= 0.5)."""
        return self.quantile(0.5).time

    @property
    def median_ci(self) -> tuple[float | None, float | None]:
        """Confidence limits for the median survival time."""
        q = self.quantile(0.5)
        return q.lower, q.upper

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def to_dataframe(self) -> pd.DataFrame:
        """One row per event time, columns named as in summary(survfit)."""
        return pd.DataFrame({
            'time': self.time,
            'n_risk': self.n_risk,
            'n_event': self.n_events,
            'n_censor': self.n_censored,
            'survival': self.survival,
            'std_err': self.se,
            'lower': self.ci_lower,
            'upper': self.ci_upper,
        })

    def _table_rows(self, times) -> list[tuple]:
        if times is None:
            return [
                (self.time[i], self.n_risk[i], self.n_events[i],
                 self.survival[i], self.se[i],
                 self.ci_lower[i], self.ci_upper[i])
                for i in range(len(self.time))
            ]

        rows = []
        for t in np.atleast_1d(np.asarray(times, dtype=np.float64)):
            if t > self.max_time:
                continue
            idx = int(np.searchsorted(self.time, t, side='right'))
            if idx == 0:
                rows.append((t, float(self.n_observations), 0.0,
                             1.0, 0.0, 1.0, 1.0))
            else:
                i = idx - 1
                rows.append((t, self.n_risk[i], self.n_events[i],
                             self.survival[i], self.se[i],
                             self.ci_lower[i], self.ci_upper[i]))
        return rows

    def summary(self, times=None) -> str:
        """R-style summary of Kaplan-Meier fit.

        Parameters
        ----------
        times : array-like or None
            Report the curve at these times instead of at every event
            time. Times beyond the last observation are omitted.
        """
        lines = []
        lines.append("Call: kaplan_meier()")
        lines.append("")
        lines.append(
            f"  n={self.n_observations}, "
            f"events={self.n_events_total}"
        )
        if self.n_dropped:
            lines.append(f"  ({self.n_dropped} observations deleted due to missingness)")
        lines.append("")

        lower, upper = self.median_ci
        ci_pct = int(round(self.conf_level * 100))
        lines.append(
            f"  median survival = {_fmt(self.median_survival)}  "
            f"{ci_pct}% CI ({_fmt(lower)}, {_fmt(upper)})"
        )
        lines.append("")

        # Table header
        lines.append(
            f"  {'time':>8s}  {'n.risk':>8s}  {'n.event':>8s}  "
            f"{'survival':>10s}  {'std.err':>10s}  "
            f"{f'lower {ci_pct}%':>10s}  {f'upper {ci_pct}%':>10s}"
        )

        rows = self._table_rows(times)
        limit = len(rows) if times is not None else 20
        for row in rows[:limit]:
            t, n_risk, n_event, surv, se, lo, hi = row
            lines.append(
                f"  {t:8.4g}  {n_risk:8.0f}  {n_event:8.0f}  "
                f"{surv:10.6f}  {se:10.6f}  "
                f"{lo:10.6f}  {hi:10.6f}"
            )
        if len(rows) > limit:
            lines.append(f"  ... ({len(rows) - limit} more rows)")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"KMSolution(n={self.n_observations}, "
            f"events={self.n_events_total}, "
            f"median={self.median_survival})"
        )


class StratifiedKMSolution:
    """One Kaplan-Meier curve per stratum, as survfit(Surv(...) ~ strata)."""

    __slots__ = ('_curves', '_warnings')

    def __init__(
        self,
        curves: dict[object, KMSolution],
        warnings: tuple[str, ...] = (),
    ) -> None:
        self._curves = dict(curves)
        self._warnings = warnings

    @property
    def strata(self) -> list:
        """Stratum labels in sorted order."""
        return list(self._curves)

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._warnings

    def __getitem__(self, label) -> KMSolution:
        try:
            return self._curves[label]
        except KeyError:
            raise KeyError(
                f"Unknown stratum {label!r}; available: {self.strata}"
            ) from None

    def __iter__(self) -> Iterator:
        return iter(self._curves)

    def __len__(self) -> int:
        return len(self._curves)

    def items(self):
        return self._curves.items()

    def median_survival(self) -> dict[object, float | None]:
        return {label: km.median_survival for label, km in self._curves.items()}

    def to_dataframe(self) -> pd.DataFrame:
        """All curves stacked, with a leading 'strata' column."""
        frames = []
        for label, km in self._curves.items():
            df = km.to_dataframe()
            df.insert(0, 'strata', label)
            frames.append(df)
        return pd.concat(frames, ignore_index=True)

    def summary(self, times=None) -> str:
        blocks = []
        for label, km in self._curves.items():
            blocks.append(f"strata={label}")
            blocks.append(km.summary(times))
            blocks.append("")
        return "\n".join(blocks).rstrip()

    def __repr__(self) -> str:
        medians = ", ".join(
            f"{label}: {_fmt(m)}" for label, m in self.median_survival().items()
        )
        return f"StratifiedKMSolution(strata={len(self)}, medians={{{medians}}})"


class LogRankSolution:
    """Log-rank test solution.

    Properties mirror R's survdiff() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[LogRankParams]) -> None:
        self._result = _result

    @property
    def statistic(self) -> float:
        return self._result.params.statistic

    @property
    def df(self) -> int:
        return self._result.params.df

    @property
    def p_value(self) -> float:
        return self._result.params.p_value

    @property
    def n_groups(self) -> int:
        return self._result.params.n_groups

    @property
    def observed(self):
        return self._result.params.observed

    @property
    def expected(self):
        return self._result.params.expected

    @property
    def variance(self):
        """Covariance matrix of O - E."""
        return self._result.params.variance

    @property
    def n_per_group(self):
        return self._result.params.n_per_group

    @property
    def rho(self) -> float:
        return self._result.params.rho

    @property
    def group_labels(self):
        return self._result.params.group_labels

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def to_dataframe(self) -> pd.DataFrame:
        """Per-group N, observed and expected events."""
        return pd.DataFrame(
            {
                'N': self.n_per_group,
                'observed': self.observed,
                'expected': self.expected,
            },
            index=pd.Index([str(g) for g in self.group_labels], name='group'),
        )

    def summary(self) -> str:
        """R-style summary of log-rank test."""
        lines = []
        lines.append("Call: survdiff()")
        lines.append("")

        # Group table
        lines.append(
            f"  {'':>12s}  {'N':>6s}  {'Observed':>10s}  {'Expected':>10s}  "
            f"{'(O-E)^2/E':>10s}  {'(O-E)^2/V':>10s}"
        )
        for i in range(self.n_groups):
            diff2 = (self.observed[i] - self.expected[i]) ** 2
            oe = diff2 / self.expected[i] if self.expected[i] > 0 else 0.0
            ov = diff2 / self.variance[i, i] if self.variance[i, i] > 0 else 0.0
            label = str(self.group_labels[i])
            lines.append(
                f"  {label:>12s}  {self.n_per_group[i]:6.0f}  "
                f"{self.observed[i]:10.1f}  {self.expected[i]:10.1f}  "
                f"{oe:10.3f}  {ov:10.3f}"
            )

        lines.append("")
        lines.append(
            f"  Chisq= {self.statistic:.4f} on {self.df} degrees of freedom, "
            f"p= {self.p_value:.4g}"
        )
        for w in self.warnings:
            lines.append(f"  Warning: {w}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"LogRankSolution(chisq={self.statistic:.4f}, "
            f"df={self.df}, p={self.p_value:.4g})"
        )


class CoxSolution:
    """Cox proportional hazards solution.

    Properties mirror R's coxph() output. The fitted data is kept so the
    model can be checked with cox_zph() and used for prediction.
    """

    __slots__ = ('_result', '_design')

    def __init__(
        self,
        _result: Result[CoxParams],
        _design: SurvivalDesign,
    ) -> None:
        self._result = _result
        self._design = _design

    @property
    def names(self) -> tuple[str, ...]:
        return self._result.params.names

    @property
    def coefficients(self):
        return self._result.params.coefficients

    @property
    def hazard_ratios(self):
        return self._result.params.hazard_ratios

    @property
    def standard_errors(self):
        return self._result.params.standard_errors

    @property
    def z_statistics(self):
        return self._result.params.z_statistics

    @property
    def p_values(self):
        return self._result.params.p_values

    @property
    def ci_lower(self):
        """Lower confidence bound for the hazard ratios."""
        return self._result.params.ci_lower

    @property
    def ci_upper(self):
        """Upper confidence bound for the hazard ratios."""
        return self._result.params.ci_upper

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def variance_matrix(self):
        return self._result.params.variance_matrix

    @property
    def loglik(self) -> tuple[float, float]:
        """(null, fitted) partial log-likelihood."""
        return self._result.params.loglik

    @property
    def likelihood_ratio(self):
        return self._result.params.likelihood_ratio

    @property
    def wald(self):
        return self._result.params.wald

    @property
    def score(self):
        return self._result.params.score

    @property
    def concordance(self) -> float:
        return self._result.params.concordance.concordance

    @property
    def concordance_detail(self):
        return self._result.params.concordance

    @property
    def means(self):
        return self._result.params.means

    @property
    def n_events(self) -> int:
        return self._result.params.n_events

    @property
    def n_observations(self) -> int:
        return self._result.params.n_observations

    @property
    def n_dropped(self) -> int:
        return self._result.params.n_dropped

    @property
    def n_iter(self) -> int:
        return self._result.params.n_iter

    @property
    def converged(self) -> bool:
        return self._result.params.converged

    @property
    def ties(self) -> str:
        return self._result.params.ties

    @property
    def design(self) -> SurvivalDesign:
        return self._design

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def coef_table(self) -> pd.DataFrame:
        """Coefficient table indexed by covariate name."""
        pct = f"{self.conf_level:.2f}".lstrip('0')
        return pd.DataFrame(
            {
                'coef': self.coefficients,
                'exp(coef)': self.hazard_ratios,
                'se(coef)': self.standard_errors,
                'z': self.z_statistics,
                'p': self.p_values,
                f'lower {pct}': self.ci_lower,
                f'upper {pct}': self.ci_upper,
            },
            index=pd.Index(self.names, name='covariate'),
        )

    def _new_covariates(self, X) -> np.ndarray:
        if isinstance(X, pd.DataFrame) and set(self.names) <= set(X.columns):
            X = X[list(self.names)]
        X = check_array(X, "X")
        if X.ndim == 1:
            X = X.reshape(1, -1) if len(self.names) > 1 else X.reshape(-1, 1)
        if X.shape[1] != len(self.names):
            raise DimensionError(
                f"X must have {len(self.names)} columns ({list(self.names)}), "
                f"got {X.shape[1]}"
            )
        return X

    def predict(self, X=None):
        """Linear predictor x @ β (relative to x = 0).

        With X=None, the linear predictor of the fitted observations.
        """
        X = self._design.X if X is None else self._new_covariates(X)
        return X @ self.coefficients

    def baseline_hazard(self, centered: bool = False) -> pd.DataFrame:
        """Breslow cumulative baseline hazard at each event time.

        Parameters
        ----------
        centered : bool
            If True, the hazard of a subject at the covariate means (R's
            basehaz default); otherwise at x = 0.
        """
        beta = self.coefficients
        eta = (self._design.X - self.means) @ beta
        times, hazard = breslow_baseline(self._design.time, self._design.event, eta)
        if not centered:
            hazard = hazard * np.exp(-float(self.means @ beta))
        return pd.DataFrame({'time': times, 'hazard': hazard})

    def predict_survival(self, X, times) -> pd.DataFrame:
        """S(t | x) = exp(-H0(t) exp(x @ β)).

        Returns a frame with one row per requested time and one column per
        row of X. Times beyond the last observed duration give NaN.
        """
        X = self._new_covariates(X)
        times = np.atleast_1d(np.asarray(times, dtype=np.float64))
        base = self.baseline_hazard(centered=False)
        H0 = step_hazard(
            base['time'].to_numpy(),
            base['hazard'].to_numpy(),
            times,
            float(np.max(self._design.time)),
        )
        surv = np.exp(-np.outer(H0, np.exp(X @ self.coefficients)))
        return pd.DataFrame(surv, index=pd.Index(times, name='time'))

    def summary(self) -> str:
        """R-style summary of Cox PH fit."""
        lines = []
        lines.append("Call: coxph()")
        lines.append("")
        lines.append(
            f"  n= {self.n_observations}, "
            f"number of events= {self.n_events}"
        )
        if self.n_dropped:
            lines.append(f"  ({self.n_dropped} observations deleted due to missingness)")
        lines.append("")

        # Coefficient table
        width = max(10, *(len(nm) for nm in self.names))
        lines.append(
            f"  {'':>{width}s}  {'coef':>10s}  {'exp(coef)':>10s}  "
            f"{'se(coef)':>10s}  {'z':>10s}  {'Pr(>|z|)':>12s}"
        )
        for i, name in enumerate(self.names):
            lines.append(
                f"  {name:>{width}s}  {self.coefficients[i]:10.6f}  "
                f"{self.hazard_ratios[i]:10.6f}  "
                f"{self.standard_errors[i]:10.6f}  "
                f"{self.z_statistics[i]:10.4f}  "
                f"{self.p_values[i]:12.4g}"
            )

        lines.append("")
        pct = int(round(self.conf_level * 100))
        lines.append(
            f"  {'':>{width}s}  {'exp(coef)':>10s}  {'exp(-coef)':>10s}  "
            f"{f'lower .{pct}':>10s}  {f'upper .{pct}':>10s}"
        )
        for i, name in enumerate(self.names):
            lines.append(
                f"  {name:>{width}s}  {self.hazard_ratios[i]:10.4f}  "
                f"{1.0 / self.hazard_ratios[i]:10.4f}  "
                f"{self.ci_lower[i]:10.4f}  {self.ci_upper[i]:10.4f}"
            )

        lines.append("")
        c = self.concordance_detail
        lines.append(f"  Concordance= {c.concordance:.4f}")
        for label, test in (
            ("Likelihood ratio test", self.likelihood_ratio),
            ("Wald test            ", self.wald),
            ("Score (logrank) test ", self.score),
        ):
            lines.append(
                f"  {label}= {test.statistic:.4f}  on {test.df} df,   "
                f"p={test.p_value:.4g}"
            )

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"CoxSolution(n={self.n_observations}, "
            f"events={self.n_events}, "
            f"concordance={self.concordance:.4f})"
        )


class CoxZphSolution:
    """Proportional-hazards diagnostic for a Cox fit.

    Properties mirror R's cox.zph() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[CoxZphParams]) -> None:
        self._result = _result

    @property
    def names(self) -> tuple[str, ...]:
        return self._result.params.names

    @property
    def rho(self):
        return self._result.params.rho

    @property
    def chisq(self):
        return self._result.params.chisq

    @property
    def p_values(self):
        return self._result.params.p_values

    @property
    def global_test(self):
        return self._result.params.global_test

    @property
    def transform(self) -> str:
        return self._result.params.transform

    @property
    def event_times(self):
        return self._result.params.event_times

    @property
    def transformed_time(self):
        """g(t) at each event, the x-axis of the residual plot."""
        return self._result.params.transformed_time

    @property
    def residuals(self):
        """Unscaled Schoenfeld residuals, one row per event."""
        return self._result.params.residuals

    @property
    def scaled_residuals(self):
        """Scaled Schoenfeld residuals; their mean is close to β."""
        return self._result.params.scaled_residuals

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def to_dataframe(self) -> pd.DataFrame:
        """Rows per covariate plus GLOBAL; columns rho, chisq, df, p."""
        df = pd.DataFrame(
            {
                'rho': self.rho,
                'chisq': self.chisq,
                'df': np.ones(len(self.names), dtype=int),
                'p': self.p_values,
            },
            index=pd.Index(self.names, name='term'),
        )
        glob = self.global_test
        if glob is not None:
            joint = pd.DataFrame(
                {
                    'rho': [np.nan],
                    'chisq': [glob.statistic],
                    'df': [int(glob.df)],
                    'p': [glob.p_value],
                },
                index=pd.Index([GLOBAL_ROW], name='term'),
            )
            df = pd.concat([df, joint])
        return df

    def summary(self) -> str:
        """R-style table of cox.zph()."""
        lines = []
        lines.append(f"Call: cox_zph(transform='{self.transform}')")
        lines.append("")
        lines.append(
            f"  {'':>10s}  {'rho':>10s}  {'chisq':>10s}  {'df':>4s}  {'p':>10s}"
        )
        for name, row in self.to_dataframe().iterrows():
            rho = "" if np.isnan(row['rho']) else f"{row['rho']:.4f}"
            lines.append(
                f"  {str(name):>10s}  {rho:>10s}  {row['chisq']:10.4f}  "
                f"{int(row['df']):4d}  {row['p']:10.4g}"
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        glob = self.global_test
        glob_str = f", global_p={glob.p_value:.4g}" if glob is not None else ""
        return f"CoxZphSolution(terms={len(self.names)}{glob_str})"
