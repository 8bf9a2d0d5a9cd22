"""
Numerical defaults and tolerance tiers.

Solver defaults (Newton-Raphson tolerance, iteration cap, confidence
level) live here so every public function shares one source of truth.
Tolerance tiers define precision expectations used by the test suite.
"""

from dataclasses import dataclass


# Cox Newton-Raphson: relative change in partial log-likelihood
COX_TOL = 1e-9
COX_MAX_ITER = 20

# Largest allowed |step| per coordinate, keeps exp(X @ beta) finite
COX_MAX_STEP = 5.0

# Step-halving attempts when the log-likelihood decreases
COX_MAX_HALVING = 10

DEFAULT_CONF_LEVEL = 0.95

# Chi-square approximation for the logrank test is flagged below this
LOGRANK_MIN_EXPECTED = 5.0


@dataclass(frozen=True)
class ToleranceTier:
    """Tolerance specification for numerical comparison."""
    rtol: float
    atol: float
    name: str
    description: str


# Closed-form and hand-computed reference values
CPU_FP64 = ToleranceTier(
    rtol=1e-10,
    atol=1e-12,
    name='cpu_fp64',
    description='CPU double precision, exact reference values',
)

# Values that come out of Newton-Raphson at COX_TOL
ITERATIVE = ToleranceTier(
    rtol=1e-6,
    atol=1e-8,
    name='iterative',
    description='Converged iterative estimates',
)

# Recovering known parameters from simulated data
SIMULATION = ToleranceTier(
    rtol=0.15,
    atol=0.05,
    name='simulation',
    description='Parameter recovery within sampling noise',
)
