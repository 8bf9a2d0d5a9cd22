"""
Tests for kaplan_meier() matching R survival::survfit(Surv(time, event) ~ 1).

R reference code:
    library(survival)
    fit <- survfit(Surv(time, event) ~ 1, data=...)
    summary(fit)
    quantile(fit, 0.5)
"""

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose
from scipy import stats

from pysurvstat.core.exceptions import ValidationError
from pysurvstat.survival import (
    KMSolution,
    StratifiedKMSolution,
    kaplan_meier,
)


# ── Fixtures ─────────────────────────────────────────────────────────

# Classic textbook: 6 subjects, 2 censored
# R:
#   time <- c(1, 2, 3, 4, 5, 6)
#   event <- c(1, 0, 1, 0, 1, 1)
#   survfit(Surv(time, event) ~ 1)
BASIC_TIME = np.array([1, 2, 3, 4, 5, 6], dtype=np.float64)
BASIC_EVENT = np.array([1, 0, 1, 0, 1, 1], dtype=np.float64)

# 15 subjects, 11 events, 4 censored (274, 549, 601, 1900)
# R:
#   fit <- survfit(Surv(time, event) ~ 1)
#   quantile(fit, 0.5)   # 1736, lower 1185, upper NA
MEDIAN_TIME = np.array([
    274, 549, 601, 702, 853, 990, 1185, 1300,
    1736, 1900, 2100, 2300, 2500, 2700, 2900,
], dtype=np.float64)
MEDIAN_EVENT = np.array([0, 0, 0, 1, 1, 1, 1, 1, 1, 0, 1, 1, 1, 1, 1])

# Events at 1..5, censored at 6..10: S(5) = 0.5 exactly
HALF_TIME = np.arange(1, 11, dtype=np.float64)
HALF_EVENT = np.array([1, 1, 1, 1, 1, 0, 0, 0, 0, 0])

Z95 = stats.norm.ppf(0.975)


class TestKaplanMeierBasic:
    """Basic Kaplan-Meier survival curve estimation."""

    def test_basic_survival_curve(self):
        """Simple 6-subject example with censoring.

        R:
            summary(survfit(Surv(time, event) ~ 1))
            # time n.risk n.event survival
            #    1      6       1    0.833
            #    3      4       1    0.625
            #    5      2       1    0.312
            #    6      1       1    0.000
        """
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)

        assert isinstance(result, KMSolution)
        assert result.n_observations == 6
        assert result.n_events_total == 4

        assert_allclose(result.time, [1, 3, 5, 6])
        assert_allclose(result.n_events, [1, 1, 1, 1])
        assert_allclose(result.n_risk, [6, 4, 2, 1])
        assert_allclose(result.n_censored, [1, 1, 0, 0])
        assert_allclose(result.survival, [5/6, 5/8, 5/16, 0.0], rtol=1e-10)

    def test_fifteen_subject_curve(self):
        """Risk sets shrink past censored subjects between knots."""
        result = kaplan_meier(MEDIAN_TIME, MEDIAN_EVENT)

        assert result.n_events_total == 11
        assert_allclose(
            result.time,
            [702, 853, 990, 1185, 1300, 1736, 2100, 2300, 2500, 2700, 2900],
        )
        assert_allclose(result.n_risk, [12, 11, 10, 9, 8, 7, 5, 4, 3, 2, 1])

        expected = np.cumprod(1.0 - 1.0 / result.n_risk)
        assert_allclose(result.survival, expected, rtol=1e-12)
        assert result.survival[5] == pytest.approx(0.5)
        assert result.survival[-1] == 0.0

    def test_all_events_no_censoring(self):
        """S(t_i) = (n - i) / n without censoring."""
        time = np.array([1, 2, 3, 4, 5], dtype=np.float64)
        event = np.ones(5, dtype=np.float64)
        result = kaplan_meier(time, event)

        assert_allclose(result.survival, [4/5, 3/5, 2/5, 1/5, 0.0], rtol=1e-10)

    def test_all_censored(self):
        """No events: empty curve, S = 1 wherever defined, with a warning."""
        time = np.array([1, 2, 3, 4, 5], dtype=np.float64)
        event = np.zeros(5, dtype=np.float64)
        with pytest.warns(RuntimeWarning, match="No events"):
            result = kaplan_meier(time, event)

        assert result.n_events_total == 0
        assert len(result.time) == 0
        assert result.survival_at(3.0) == 1.0
        assert result.median_survival is None
        assert result.warnings

    def test_single_event(self):
        """Single event at time=3 with 4 censored observations."""
        time = np.array([1, 2, 3, 4, 5], dtype=np.float64)
        event = np.array([0, 0, 1, 0, 0], dtype=np.float64)
        result = kaplan_meier(time, event)

        assert_allclose(result.time, [3.0])
        assert_allclose(result.survival, [2/3], rtol=1e-10)

    def test_single_observation_event(self):
        result = kaplan_meier([5.0], [1.0])
        assert_allclose(result.time, [5.0])
        assert_allclose(result.survival, [0.0])

    @pytest.mark.filterwarnings("ignore:No events")
    def test_curve_properties_random_tied_samples(self, rng):
        """S starts at 1 and never increases; SE and CI stay in range."""
        for _ in range(200):
            n = int(rng.integers(1, 40))
            time = rng.integers(0, 8, size=n).astype(np.float64)
            event = rng.random(n) < rng.uniform(0.2, 1.0)
            conf_type = "log" if rng.random() < 0.5 else "log-log"

            result = kaplan_meier(time, event, conf_type=conf_type)

            S = result.survival
            assert np.all(np.diff(np.r_[1.0, S]) <= 0)
            assert np.all((S >= 0) & (S <= 1))
            assert np.all(result.se >= 0)
            for bound in (result.ci_lower, result.ci_upper):
                defined = bound[~np.isnan(bound)]
                assert np.all((defined >= 0) & (defined <= 1))
            assert result.survival_at(-1.0) == 1.0


class TestKaplanMeierTiedTimes:
    """Tied event times (multiple events at same time)."""

    def test_tied_events(self):
        """R:
            time <- c(1, 1, 2, 2, 3)
            event <- c(1, 1, 1, 1, 1)
            # time n.risk n.event survival
            #    1      5       2      0.6
            #    2      3       2      0.2
            #    3      1       1      0.0
        """
        time = np.array([1, 1, 2, 2, 3], dtype=np.float64)
        result = kaplan_meier(time, np.ones(5))

        assert_allclose(result.time, [1, 2, 3])
        assert_allclose(result.n_events, [2, 2, 1])
        assert_allclose(result.n_risk, [5, 3, 1])
        assert_allclose(result.survival, [3/5, 1/5, 0.0], rtol=1e-10)

    def test_censoring_tied_with_event_is_at_risk(self):
        """A subject censored at an event time is at risk there but is
        not an event.

        R:
            time <- c(1, 1, 2, 2, 3)
            event <- c(1, 0, 1, 0, 1)
        """
        time = np.array([1, 1, 2, 2, 3], dtype=np.float64)
        event = np.array([1, 0, 1, 0, 1], dtype=np.float64)
        result = kaplan_meier(time, event)

        assert_allclose(result.time, [1, 2, 3])
        assert_allclose(result.n_events, [1, 1, 1])
        assert_allclose(result.n_risk, [5, 3, 1])
        assert_allclose(result.n_censored, [1, 1, 0])
        assert_allclose(result.survival, [4/5, 4/5 * 2/3, 0.0], rtol=1e-10)

    def test_censoring_only_times_are_not_knots(self):
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)
        assert 2.0 not in result.time
        assert 4.0 not in result.time


class TestKaplanMeierGreenwood:
    """Greenwood standard error computation."""

    def test_se_basic_example(self):
        """Var(S(t)) = S(t)^2 * Σ d_j / (n_j (n_j - d_j))

        At time 1: S=5/6, Var = (5/6)^2 / 30
        """
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)
        assert result.se[0] == pytest.approx(np.sqrt((5/6)**2 / 30), rel=1e-10)
        assert result.se[1] == pytest.approx(
            5/8 * np.sqrt(1/30 + 1/12), rel=1e-10
        )

    def test_se_at_half(self):
        """Σ 1/(n(n-1)) for n = 10..6 telescopes to 1/5 - 1/10."""
        result = kaplan_meier(HALF_TIME, HALF_EVENT)
        assert result.se[4] == pytest.approx(0.5 * np.sqrt(0.1), rel=1e-10)

    def test_se_zero_when_survival_reaches_zero(self):
        """The n = d term is taken as 0, so the SE is 0, never NaN."""
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)
        assert result.survival[-1] == 0.0
        assert result.se[-1] == 0.0
        assert np.all(np.isfinite(result.se))


class TestKaplanMeierConfidenceIntervals:
    """Confidence interval computation (log and log-log)."""

    def test_log_ci_matches_formula(self):
        """R default conf.type="log": S exp(±z se(log S))."""
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)
        assert result.conf_type == "log"
        assert result.conf_level == 0.95

        gw = np.sqrt(1/30)
        assert result.ci_lower[0] == pytest.approx(5/6 * np.exp(-Z95 * gw), rel=1e-10)
        # upper is clipped at 1
        assert result.ci_upper[0] == pytest.approx(min(1.0, 5/6 * np.exp(Z95 * gw)))

    def test_loglog_ci_matches_formula(self):
        """R: survfit(..., conf.type="log-log")"""
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT, conf_type="log-log")
        assert result.conf_type == "log-log"

        s = 5/6
        half = Z95 * np.sqrt(1/30) / abs(np.log(s))
        lower = np.exp(-np.exp(np.log(-np.log(s)) + half))
        upper = np.exp(-np.exp(np.log(-np.log(s)) - half))
        assert_allclose([result.ci_lower[0], result.ci_upper[0]], [lower, upper], rtol=1e-10)

    @pytest.mark.parametrize("conf_type", ["log", "log-log"])
    def test_ci_brackets_estimate(self, conf_type):
        result = kaplan_meier(MEDIAN_TIME, MEDIAN_EVENT, conf_type=conf_type)
        defined = result.survival > 0
        lower = result.ci_lower[defined]
        upper = result.ci_upper[defined]
        assert np.all(lower >= 0)
        assert np.all(upper <= 1)
        assert np.all(lower <= result.survival[defined] + 1e-12)
        assert np.all(upper >= result.survival[defined] - 1e-12)
        assert np.isnan(result.ci_lower[~defined]).all()

    def test_ci_undefined_where_survival_zero(self):
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)
        assert np.isnan(result.ci_lower[-1])
        assert np.isnan(result.ci_upper[-1])

    def test_conf_level_90_narrower(self):
        result_95 = kaplan_meier(BASIC_TIME, BASIC_EVENT, conf_level=0.95)
        result_90 = kaplan_meier(BASIC_TIME, BASIC_EVENT, conf_level=0.90)

        mask = (result_95.survival > 0) & (result_95.survival < 1)
        width_95 = result_95.ci_upper[mask] - result_95.ci_lower[mask]
        width_90 = result_90.ci_upper[mask] - result_90.ci_lower[mask]
        assert np.all(width_90 <= width_95 + 1e-10)


class TestKaplanMeierQueries:
    """Point and quantile queries on the fitted curve."""

    def test_survival_at_step_function(self):
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)
        assert result.survival_at(0.5) == 1.0
        assert result.survival_at(1.0) == pytest.approx(5/6)
        assert result.survival_at(2.0) == pytest.approx(5/6)
        assert result.survival_at(3.0) == pytest.approx(5/8)
        assert result.survival_at(6.0) == 0.0

    def test_survival_at_negative_time(self):
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)
        assert result.survival_at(-1.0) == 1.0

    def test_survival_beyond_last_observation_is_undefined(self):
        result = kaplan_meier(MEDIAN_TIME, MEDIAN_EVENT)
        assert result.survival_at(2900.0) == pytest.approx(result.survival[-1])
        assert result.survival_at(2901.0) is None

    def test_median_fifteen_subjects(self):
        """R: quantile(fit, 0.5) gives 1736 with CI (1185, NA)."""
        result = kaplan_meier(MEDIAN_TIME, MEDIAN_EVENT)
        assert result.median_survival == 1736.0
        assert result.median_ci == (1185.0, None)

    def test_median_exact_half(self):
        """S(5) = 0.5 to within rounding still counts as reaching 0.5."""
        result = kaplan_meier(HALF_TIME, HALF_EVENT)
        q = result.quantile(0.5)
        assert q.time == 5.0
        assert q.lower == 3.0
        assert q.upper is None

    def test_other_quantiles(self):
        result = kaplan_meier(MEDIAN_TIME, MEDIAN_EVENT)
        assert result.quantile(0.25).time == 990.0
        # the last subject fails, so every quantile is reached
        assert result.quantile(0.95).time == 2900.0
        assert result.quantile(0.99).time == 2900.0

    def test_median_none_all_censored(self):
        with pytest.warns(RuntimeWarning):
            result = kaplan_meier([1, 2, 3], [0, 0, 0])
        assert result.median_survival is None
        assert result.median_ci == (None, None)

    def test_median_with_tied_crossing(self):
        """R: time <- c(1, 2, 2, 2, 3); median = 2"""
        result = kaplan_meier([1, 2, 2, 2, 3], np.ones(5))
        assert result.median_survival == pytest.approx(2.0)

    @pytest.mark.parametrize("p", [0.0, 1.0, -0.1, 1.5])
    def test_quantile_outside_unit_interval(self, p):
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)
        with pytest.raises(ValidationError, match="p must be in"):
            result.quantile(p)


class TestKaplanMeierEncodings:
    """The three event codings give the same curve."""

    def test_boolean_binary_one_two_agree(self):
        as_bool = kaplan_meier(MEDIAN_TIME, MEDIAN_EVENT.astype(bool))
        as_binary = kaplan_meier(MEDIAN_TIME, MEDIAN_EVENT)
        as_one_two = kaplan_meier(MEDIAN_TIME, MEDIAN_EVENT + 1)

        assert_allclose(as_bool.survival, as_binary.survival)
        assert_allclose(as_one_two.survival, as_binary.survival)
        assert as_one_two.median_ci == as_binary.median_ci

    def test_mixed_coding_rejected(self):
        with pytest.raises(ValueError, match="0/1"):
            kaplan_meier([1, 2, 3], [0, 1, 2])


class TestKaplanMeierStrata:
    """survfit(Surv(time, event) ~ group)"""

    def test_one_curve_per_stratum(self):
        time = np.concatenate([BASIC_TIME, HALF_TIME])
        event = np.concatenate([BASIC_EVENT, HALF_EVENT])
        strata = np.array(["a"] * 6 + ["b"] * 10)

        result = kaplan_meier(time, event, strata=strata)

        assert isinstance(result, StratifiedKMSolution)
        assert result.strata == ["a", "b"]
        assert_allclose(result["a"].survival, [5/6, 5/8, 5/16, 0.0])
        assert result["b"].median_survival == 5.0
        assert result.median_survival() == {"a": 5.0, "b": 5.0}

        df = result.to_dataframe()
        assert list(df["strata"].unique()) == ["a", "b"]
        assert len(df) == 4 + 5

    def test_mixed_type_strata_rejected(self):
        strata = np.array(["a", 1, "a", 1, "a", 1], dtype=object)
        with pytest.raises(ValidationError, match="comparable type"):
            kaplan_meier(BASIC_TIME, BASIC_EVENT, strata=strata)

    def test_unknown_stratum(self):
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT, strata=[0, 0, 0, 1, 1, 1])
        with pytest.raises(KeyError, match="Unknown stratum"):
            result[2]


class TestKaplanMeierMissing:
    """Rows with missing values are dropped and counted."""

    def test_nan_duration_dropped(self):
        time = np.append(BASIC_TIME, np.nan)
        event = np.append(BASIC_EVENT, 1)
        result = kaplan_meier(time, event)

        assert result.n_observations == 6
        assert result.n_dropped == 1
        assert_allclose(result.survival, [5/6, 5/8, 5/16, 0.0])
        assert "deleted due to missingness" in result.summary()

    def test_from_dataframe(self):
        df = pd.DataFrame({"days": BASIC_TIME, "status": BASIC_EVENT.astype(int) + 1})
        result = kaplan_meier("days", "status", data=df)
        assert_allclose(result.survival, [5/6, 5/8, 5/16, 0.0])


class TestKaplanMeierSolution:
    """KMSolution properties and methods."""

    def test_repr(self):
        r = repr(kaplan_meier(BASIC_TIME, BASIC_EVENT))
        assert "KMSolution" in r
        assert "n=6" in r
        assert "events=4" in r

    def test_to_dataframe_columns(self):
        df = kaplan_meier(BASIC_TIME, BASIC_EVENT).to_dataframe()
        assert list(df.columns) == [
            "time", "n_risk", "n_event", "n_censor",
            "survival", "std_err", "lower", "upper",
        ]
        assert len(df) == 4

    def test_summary(self):
        s = kaplan_meier(MEDIAN_TIME, MEDIAN_EVENT).summary()
        assert "kaplan_meier()" in s
        assert "n=15" in s
        assert "events=11" in s
        assert "median survival = 1736" in s
        assert "(1185, NA)" in s
        assert "n.risk" in s

    def test_summary_at_times(self):
        s = kaplan_meier(BASIC_TIME, BASIC_EVENT).summary(times=[0.5, 2, 100])
        table = s.splitlines()[-2:]
        assert "1.000000" in table[0]
        assert "0.833333" in table[1]

    def test_summary_truncates_long_output(self):
        n = 50
        result = kaplan_meier(np.arange(1, n + 1, dtype=np.float64), np.ones(n))
        assert "more rows" in result.summary()

    def test_backend_and_timing(self):
        result = kaplan_meier(BASIC_TIME, BASIC_EVENT)
        assert result.backend_name == "cpu_km"
        assert "total_seconds" in result.timing


class TestKaplanMeierValidation:
    """Input validation tests."""

    @pytest.mark.parametrize("conf_level", [0.0, 1.0, -0.5])
    def test_invalid_conf_level(self, conf_level):
        with pytest.raises(ValueError, match="conf_level"):
            kaplan_meier(BASIC_TIME, BASIC_EVENT, conf_level=conf_level)

    def test_plain_conf_type_not_offered(self):
        with pytest.raises(ValueError, match="conf_type"):
            kaplan_meier(BASIC_TIME, BASIC_EVENT, conf_type="plain")

    def test_negative_time_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            kaplan_meier([-1, 2, 3], [1, 1, 1])

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError, match="same length"):
            kaplan_meier([1, 2, 3], [1, 0])

    def test_empty_input(self):
        with pytest.raises(ValueError, match="at least one"):
            kaplan_meier([], [])
