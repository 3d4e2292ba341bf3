"""
Profiled deviance computation for LMM.

The profiled deviance is the objective function that the outer optimizer
minimizes over θ. β and σ² are analytically profiled out, leaving a
function of θ only.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), Sections 2-3.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from lmmkit.core.exceptions import SingularCovarianceError
from lmmkit.mixed._random_effects import GroupingFactor, build_lambda
from lmmkit.mixed._pls import PLSResult, solve_pls

# Returned in place of the deviance where the PLS step breaks down.
# Finite so that simplex methods can still order the vertices.
SINGULAR_PENALTY = 1e15


def deviance_from_pls(pls: PLSResult, n: int, p: int, reml: bool) -> float:
    """Profiled ML deviance or REML criterion from a PLS solve.

    ML:   d(θ) = log|L_θ|² + n × [1 + log(2π × pwrss/n)]

    REML: d(θ) = log|L_θ|² + log|RX|² + (n-p) × [1 + log(2π × pwrss/(n-p))]

    where:
        L_θ = cholesky(Λ'Z'ZΛ + I)        from PLS
        pwrss = penalized residual SS       from PLS
        RX = Cholesky of the Schur complement for β, from PLS
    """
    if reml:
        df = n - p
        return float(pls.log_det_L
                     + pls.log_det_RX
                     + df * (1.0 + np.log(2.0 * np.pi * pls.pwrss / df)))
    return float(pls.log_det_L
                 + n * (1.0 + np.log(2.0 * np.pi * pls.pwrss / n)))


def profiled_deviance_lmm(
    theta: NDArray,
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    factors: list[GroupingFactor],
    reml: bool = True,
) -> float:
    """Compute the profiled REML (or ML) deviance for given θ.

    A breakdown of the PLS factorization (SingularCovarianceError), a
    zero penalized RSS, or a non-finite result returns SINGULAR_PENALTY
    rather than raising, so the optimizer can back away.

    Args:
        theta: Parameter vector for Λ_θ.
        X: Fixed effects design matrix (n, p).
        Z: Random effects design matrix (n, q).
        y: Response vector (n,).
        factors: Grouping factors (templates define the θ layout).
        reml: If True, compute REML criterion; if False, ML deviance.

    Returns:
        Profiled deviance value (scalar to minimize).
    """
    n, p = X.shape
    if not np.all(np.isfinite(theta)):
        return SINGULAR_PENALTY

    try:
        pls = solve_pls(X, Z, y, build_lambda(theta, factors), reml=reml)
    except SingularCovarianceError:
        return SINGULAR_PENALTY

    if pls.pwrss <= 0.0:
        return SINGULAR_PENALTY

    dev = deviance_from_pls(pls, n, p, reml)
    if not np.isfinite(dev):
        return SINGULAR_PENALTY
    return dev
