"""
Satterthwaite degrees of freedom for fixed effects in LMM.

Computes approximate denominator degrees of freedom for t-tests on
fixed effects, following the algorithm in lmerTest (Kuznetsova et al., 2017).

The key idea: for each fixed effect β_k, the Satterthwaite df is:

    df_k = 2 × Var(β̂_k)² / [g' × A × g]

where:
    g_j = ∂Var(β̂_k)/∂φ_j   (gradient of the variance w.r.t. variance params)
    A = Var(φ̂)               (asymptotic variance of φ̂, from the Hessian)
    φ = (θ, σ)               (ALL variance parameters: RE theta + residual sd)

Both g and A are computed via numerical differentiation.

The parameter vector φ must include σ, not just θ. When σ is profiled
out, differentiating only w.r.t. θ misses the contribution of σ to
Var(β̂), which gives far too large df for fixed effects that are not
strongly affected by the random effects structure.

References:
    Kuznetsova, A., Brockhoff, P. B., & Christensen, R. H. B. (2017).
    lmerTest Package: Tests in Linear Mixed Effects Models.
    Journal of Statistical Software, 82(13), 1-26.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from lmmkit.core.compute.linalg import cho_solve_cpu
from lmmkit.mixed._random_effects import (
    GroupingFactor, build_lambda, theta_lower_bounds,
)
from lmmkit.mixed._pls import solve_pls


def satterthwaite_df(
    theta: NDArray,
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    factors: list[GroupingFactor],
    reml: bool = True,
    eps: float = 1e-4,
) -> NDArray:
    """Compute Satterthwaite denominator df for each fixed effect.

    Algorithm:
    1. At converged (θ̂, σ̂), decompose Var(β̂) = σ² × C(θ)
       where C(θ) = (RX RX')⁻¹ = (X'V*(θ)⁻¹X)⁻¹ and V*(θ) = ZΛΛ'Z' + I
    2. Compute gradients of Var(β̂_k) w.r.t. both θ and σ
    3. Compute the Hessian of the deviance w.r.t. (θ, σ)
    4. For each β_k: df_k = 2 Var(β̂_k)² / [g' A g]

    Args:
        theta: Converged θ̂ parameter vector.
        X, Z, y: Model matrices.
        factors: Grouping factors.
        reml: REML or ML.
        eps: Step size for numerical differentiation.

    Returns:
        Array of Satterthwaite df, one per fixed effect (p,).

    Raises:
        SingularCovarianceError: If a perturbed θ breaks the PLS solve.
    """
    n, p = X.shape
    n_theta = len(theta)
    lower = theta_lower_bounds(factors)

    pls = solve_pls(X, Z, y, build_lambda(theta, factors), reml=reml)
    sigma = np.sqrt(pls.sigma_sq)
    sigma_sq = pls.sigma_sq
    C = cho_solve_cpu(pls.RX, np.eye(p))

    # dVar/dθ_j = σ² × dC_kk/dθ_j ;  dVar/dσ = 2σ × C_kk
    dC_dtheta = np.zeros((p, n_theta), dtype=np.float64)

    for j in range(n_theta):
        h = eps * max(abs(theta[j]), 1.0)
        theta_plus = theta.copy()
        theta_minus = theta.copy()
        theta_plus[j] += h
        theta_minus[j] -= h

        C_plus = _compute_C(theta_plus, X, Z, y, factors, reml)
        if theta_minus[j] < lower[j]:
            # Forward difference at the boundary
            dC_dtheta[:, j] = (np.diag(C_plus) - np.diag(C)) / h
        else:
            C_minus = _compute_C(theta_minus, X, Z, y, factors, reml)
            dC_dtheta[:, j] = (np.diag(C_plus) - np.diag(C_minus)) / (2 * h)

    hessian = _full_deviance_hessian(
        theta, sigma, X, Z, y, factors, lower, reml, eps
    )

    # A = 2 × H⁻¹
    try:
        H_inv = np.linalg.inv(hessian)
    except np.linalg.LinAlgError:
        H_inv = np.linalg.pinv(hessian)
    A = 2.0 * H_inv

    # Row k: gradient of Var(β̂_k) w.r.t. φ = (θ, σ)
    diag_C = np.diag(C)
    G = np.column_stack([sigma_sq * dC_dtheta, 2.0 * sigma * diag_C])
    denom = np.einsum('ki,ij,kj->k', G, A, G)
    var = sigma_sq * diag_C

    df = np.full(p, float(n - p))
    ok = (denom > 0) & (var > 0)
    df[ok] = 2.0 * var[ok] ** 2 / denom[ok]
    return np.maximum(df, 1.0)


def _compute_C(
    theta: NDArray,
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    factors: list[GroupingFactor],
    reml: bool,
) -> NDArray:
    """C(θ) = (RX RX')⁻¹, the unscaled covariance of β̂."""
    pls = solve_pls(X, Z, y, build_lambda(theta, factors), reml=reml)
    return cho_solve_cpu(pls.RX, np.eye(X.shape[1]))


def _full_deviance_hessian(
    theta: NDArray,
    sigma: float,
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    factors: list[GroupingFactor],
    lower: NDArray,
    reml: bool,
    eps: float,
) -> NDArray:
    """Hessian of the deviance w.r.t. φ = (θ, σ) by central differences.

    REML: d(θ, σ) = log|L_θ|² + log|RX|² + (n-p)log(σ²) + pwrss(θ)/σ²
    ML:   d(θ, σ) = log|L_θ|² + n·log(σ²) + pwrss(θ)/σ²

    A θ component sitting on its lower bound is stepped one-sided for
    the diagonal term.
    """
    n, p = X.shape
    n_theta = len(theta)
    dof = n - p if reml else n

    def deviance(phi: NDArray) -> float:
        pls = solve_pls(X, Z, y, build_lambda(phi[:n_theta], factors), reml=reml)
        sig_sq = phi[n_theta] ** 2
        d = pls.log_det_L + dof * np.log(sig_sq) + pls.pwrss / sig_sq
        if reml:
            d += pls.log_det_RX
        return float(d)

    phi0 = np.append(theta, sigma)
    h = eps * np.maximum(np.abs(phi0), 1.0)
    floor = np.append(lower, -np.inf)
    m = len(phi0)
    step = np.eye(m) * h

    d0 = deviance(phi0)
    H = np.zeros((m, m), dtype=np.float64)

    for j in range(m):
        d_plus = deviance(phi0 + step[j])
        d_minus = deviance(np.maximum(phi0 - step[j], floor))
        H[j, j] = (d_plus - 2.0 * d0 + d_minus) / h[j] ** 2

        for l in range(j + 1, m):
            d_pp = deviance(phi0 + step[j] + step[l])
            d_pm = deviance(phi0 + step[j] - step[l])
            d_mp = deviance(phi0 - step[j] + step[l])
            d_mm = deviance(phi0 - step[j] - step[l])
            H[j, l] = H[l, j] = (d_pp - d_pm - d_mp + d_mm) / (4.0 * h[j] * h[l])

    return H
