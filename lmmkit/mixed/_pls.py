"""
Penalized Least Squares (PLS) solver for Linear Mixed Models.

For fixed θ (and hence fixed Λ_θ), this solves the penalized least squares
problem to obtain conditional modes of the random effects and profiled
fixed effects:

    minimize ‖y - Xβ - ZΛu‖² + ‖u‖²

where u = Λ⁻¹b are the "spherical" random effects.

The solution proceeds by block elimination of u through the Cholesky
factor L of Λ'Z'ZΛ + I. σ² is profiled out (computed in closed form from
the penalized RSS).

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48. Section 2.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray

from lmmkit.core.exceptions import NotPositiveDefiniteError, SingularCovarianceError
from lmmkit.core.compute.linalg import cholesky_cpu, solve_lower, solve_upper

# Relative pivot size below which RX is treated as singular. Rounding in
# X'X - CX'CX alone leaves pivots near sqrt(eps) × scale.
_RX_PIVOT_RTOL = 1e-6


@dataclass(frozen=True)
class PLSResult:
    """Result from penalized least squares solve.

    Attributes:
        beta: Fixed effects estimates (p,).
        u: Spherical random effects (q,).
        b: Conditional modes b = Λu (q,).
        sigma_sq: Profiled residual variance pwrss / df.
        pwrss: Penalized residual sum of squares
               = ‖y - Xβ - Zb‖² + ‖u‖².
        L: Cholesky factor of (Λ'Z'ZΛ + I), shape (q, q).
        RX: Cholesky factor of the Schur complement for β, shape (p, p).
        log_det_L: log|L|² = log|Λ'Z'ZΛ + I|.
        log_det_RX: log|RX|².
        df: Residual degrees of freedom, n - p (REML) or n (ML).
        fitted: Xβ + Zb (n,).
        residuals: y - fitted (n,).
    """
    beta: NDArray
    u: NDArray
    b: NDArray
    sigma_sq: float
    pwrss: float
    L: NDArray
    RX: NDArray
    log_det_L: float
    log_det_RX: float
    df: int
    fitted: NDArray
    residuals: NDArray


def solve_pls(
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    Lambda: NDArray,
    reml: bool = True,
) -> PLSResult:
    """Solve the penalized least squares problem.

    For the LMM: y = Xβ + Zb + ε, where b ~ N(0, σ²ΛΛ'), ε ~ N(0, σ²I).

    Setting u = Λ⁻¹b (spherical random effects), we minimize:
        ‖y - Xβ - ZΛu‖² + ‖u‖²

    The normal equations for this penalized system are:
        [Λ'Z'ZΛ + I   Λ'Z'X ] [u]   [Λ'Z'y]
        [X'ZΛ         X'X   ] [β] = [X'y  ]

    1. L = cholesky(Λ'Z'ZΛ + I)
    2. Eliminate u: RX RX' = X'X - CX'CX with CX = L⁻¹Λ'Z'X
    3. Solve for β, then back-substitute for u

    Args:
        X: Fixed effects design matrix (n, p).
        Z: Random effects design matrix (n, q).
        y: Response vector (n,).
        Lambda: Relative covariance factor (q, q), block-diagonal.
        reml: If True, divide pwrss by (n-p) for σ²; if False, divide by n.

    Returns:
        PLSResult with all estimates.

    Raises:
        SingularCovarianceError: If either Cholesky factorization breaks
            down (non-finite Λ, or a Schur complement that has lost rank).
    """
    n, p = X.shape
    q = Z.shape[1]

    if not np.all(np.isfinite(Lambda)):
        raise SingularCovarianceError(
            "Lambda contains non-finite values", matrix_name='Lambda'
        )

    ZLam = Z @ Lambda  # (n, q)

    try:
        chol_L = cholesky_cpu(ZLam.T @ ZLam + np.eye(q), matrix_name="Lambda'Z'ZLambda + I")
    except NotPositiveDefiniteError as e:
        raise SingularCovarianceError(
            str(e), matrix_name=e.matrix_name, min_eigenvalue=e.min_eigenvalue
        ) from e
    L = chol_L.L

    # Cross-products
    ZLam_t_y = ZLam.T @ y         # (q,)
    ZLam_t_X = ZLam.T @ X         # (q, p)
    Xt_y = X.T @ y                # (p,)
    Xt_X = X.T @ X                # (p, p)

    cu = solve_lower(L, ZLam_t_y)   # L⁻¹ Λ'Z'y
    CX = solve_lower(L, ZLam_t_X)   # L⁻¹ Λ'Z'X

    # Schur complement: RX RX' = X'X - CX'CX
    RtR = Xt_X - CX.T @ CX
    pivot_tol = _RX_PIVOT_RTOL * np.sqrt(max(float(np.max(np.diag(Xt_X))), 0.0))
    try:
        chol_RX = cholesky_cpu(RtR, matrix_name='RX', pivot_tol=pivot_tol)
    except NotPositiveDefiniteError as e:
        raise SingularCovarianceError(
            str(e), matrix_name=e.matrix_name, min_eigenvalue=e.min_eigenvalue
        ) from e
    RX = chol_RX.L

    # RX RX' β = X'y - CX'cu
    beta = solve_upper(RX, solve_lower(RX, Xt_y - CX.T @ cu))

    # L L' u = Λ'Z'(y - Xβ)
    u = solve_upper(L, cu - CX @ beta)

    b = Lambda @ u

    # Fitted values and residuals
    fitted = X @ beta + Z @ b
    residuals = y - fitted

    pwrss = float(residuals @ residuals) + float(u @ u)

    df = n - p if reml else n
    sigma_sq = pwrss / df

    return PLSResult(
        beta=beta,
        u=u,
        b=b,
        sigma_sq=sigma_sq,
        pwrss=pwrss,
        L=L,
        RX=RX,
        log_det_L=chol_L.log_det,
        log_det_RX=chol_RX.log_det,
        df=df,
        fitted=fitted,
        residuals=residuals,
    )
