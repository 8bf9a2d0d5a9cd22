"""
pysurvstat: survival analysis for Python with R-matching results.

Submodules:
    survival: Kaplan-Meier, log-rank, Cox proportional hazards, cox.zph
    core: Result envelope, exceptions, validation, data sources
"""

__version__ = "0.1.0"

from pysurvstat.core import (
    DataSource,
    PySurvStatError,
    ValidationError,
    DimensionError,
    InsufficientDataError,
    NumericalError,
    SingularMatrixError,
    ConvergenceError,
)
from pysurvstat.survival import (
    kaplan_meier,
    survdiff,
    coxph,
    cox_zph,
    SurvivalDesign,
)

__all__ = [
    "__version__",
    "kaplan_meier",
    "survdiff",
    "coxph",
    "cox_zph",
    "SurvivalDesign",
    "DataSource",
    "PySurvStatError",
    "ValidationError",
    "DimensionError",
    "InsufficientDataError",
    "NumericalError",
    "SingularMatrixError",
    "ConvergenceError",
]
