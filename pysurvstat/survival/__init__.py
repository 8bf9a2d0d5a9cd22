"""
Survival analysis.

Public API:
    kaplan_meier(time, event, ...) -> KMSolution | StratifiedKMSolution
    survdiff(time, event, group, ...) -> LogRankSolution
    coxph(time, event, X, ...) -> CoxSolution
    cox_zph(fit, ...) -> CoxZphSolution
"""

from pysurvstat.survival.design import SurvivalDesign, normalize_event
from pysurvstat.survival.solvers import coxph, cox_zph, kaplan_meier, survdiff
from pysurvstat.survival.solution import (
    CoxSolution,
    CoxZphSolution,
    KMSolution,
    LogRankSolution,
    StratifiedKMSolution,
)
from pysurvstat.survival._common import ChiSquareTest, KMQuantile

__all__ = [
    "kaplan_meier",
    "survdiff",
    "coxph",
    "cox_zph",
    "SurvivalDesign",
    "normalize_event",
    "KMSolution",
    "StratifiedKMSolution",
    "LogRankSolution",
    "CoxSolution",
    "CoxZphSolution",
    "ChiSquareTest",
    "KMQuantile",
]
