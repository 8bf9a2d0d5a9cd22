"""
Harrell's concordance statistic (C-statistic).

A pair of subjects (i, j) is comparable when the shorter observed time
ends in an event: time_i < time_j and event_i. The pair is concordant
when the subject that failed first has the higher risk score, discordant
when it has the lower one; tied risk scores count one half. Pairs with
equal times, or whose shorter time is censored, cannot be ordered and
are left out.

    C = (concordant + 0.5 * tied_risk) / comparable

References:
    Harrell, F. E., Califf, R. M., Pryor, D. B., Lee, K. L. & Rosati, R. A.
        (1982). Evaluating the yield of medical tests. JAMA, 247(18).
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from pysurvstat.survival._common import ConcordanceParams


def concordance_index(
    time: NDArray,
    event: NDArray,
    risk: NDArray,
) -> ConcordanceParams:
    """Compute Harrell's C for a risk score (higher = earlier failure).

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) boolean event indicator.
    risk : NDArray
        (n,) risk score, e.g. the Cox linear predictor.

    Returns
    -------
    ConcordanceParams
    """
    order = np.argsort(time, kind='stable')
    t_sorted = time[order]
    e_sorted = event[order]
    r_sorted = risk[order]

    # For each subject, later subjects start at the first strictly larger time
    later_start = np.searchsorted(t_sorted, t_sorted, side='right')

    concordant = 0
    discordant = 0
    tied_risk = 0

    for i in np.flatnonzero(e_sorted):
        others = r_sorted[later_start[i]:]
        if len(others) == 0:
            continue
        concordant += int(np.sum(r_sorted[i] > others))
        discordant += int(np.sum(r_sorted[i] < others))
        tied_risk += int(np.sum(r_sorted[i] == others))

    comparable = concordant + discordant + tied_risk
    if comparable == 0:
        concordance = 0.5
    else:
        concordance = (concordant + 0.5 * tied_risk) / comparable

    return ConcordanceParams(
        concordance=float(concordance),
        concordant=concordant,
        discordant=discordant,
        tied_risk=tied_risk,
        comparable=comparable,
    )
