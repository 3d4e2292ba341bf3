"""
Grouping factors, Z matrix construction, and Λ_θ parameterization.

This module handles:
1. Covariance templates (correlated / uncorrelated) per grouping factor
2. Building the random effects design matrix Z
3. Constructing the relative covariance factor Λ_θ from the θ parameter vector
4. Computing θ bounds and starting values for the optimizer

The θ parameterization follows Bates et al. (2015): θ contains the free
elements of the lower-triangular Cholesky factor of the *relative*
covariance matrix (i.e., the covariance divided by σ²). For an
uncorrelated template only the diagonal is free; the off-diagonal
entries are fixed at zero and have no θ component.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from lmmkit.core.exceptions import ValidationError

CORRELATED = 'correlated'
UNCORRELATED = 'uncorrelated'
COVARIANCE_KINDS = (CORRELATED, UNCORRELATED)


@dataclass(frozen=True)
class CovarianceTemplate:
    """Fixed topology of one grouping factor's relative covariance factor.

    Attributes:
        kind: 'correlated' (unstructured, k(k+1)/2 free entries) or
            'uncorrelated' (diagonal, k free entries).
        n_terms: Number of random effect terms k.
    """
    kind: str
    n_terms: int

    def __post_init__(self):
        if self.kind not in COVARIANCE_KINDS:
            raise ValidationError(
                f"Unknown covariance template '{self.kind}'. "
                f"Valid options: {', '.join(COVARIANCE_KINDS)}"
            )
        if self.n_terms < 1:
            raise ValidationError(
                f"Covariance template needs at least 1 term, got {self.n_terms}"
            )

    @property
    def positions(self) -> tuple[tuple[int, int], ...]:
        """Free (row, col) entries of Λ_k in θ order (row by row)."""
        k = self.n_terms
        if self.kind == UNCORRELATED:
            return tuple((i, i) for i in range(k))
        return tuple((row, col) for row in range(k) for col in range(row + 1))

    @property
    def theta_size(self) -> int:
        return len(self.positions)


@dataclass(frozen=True)
class GroupingFactor:
    """One grouping factor with its random effects block.

    Attributes:
        group_name: Name of the grouping factor (e.g. 'subject').
        levels: Sorted unique level labels, shape (J,).
        group_ids: Integer level index for each observation, shape (n,).
            Values are 0-indexed consecutive integers into `levels`.
        terms: Names of the random effect terms (e.g. ('1',) or ('1', 'days')).
        Z_block: Design matrix block for this grouping factor, shape (n, J*k)
            where J = n_groups and k = n_terms.
        n_groups: Number of levels (J).
        n_terms: Number of random effect terms per level (k).
        template: Covariance template for Λ_k.
    """
    group_name: str
    levels: NDArray
    group_ids: NDArray
    terms: tuple[str, ...]
    Z_block: NDArray
    n_groups: int
    n_terms: int
    template: CovarianceTemplate

    @property
    def theta_size(self) -> int:
        return self.template.theta_size

    @property
    def correlated(self) -> bool:
        return self.template.kind == CORRELATED


def build_z_block(
    group_ids: NDArray,
    n_groups: int,
    covariates: NDArray,
) -> NDArray:
    """Build the Z matrix block for one grouping factor.

    For each level j and each term t, there's a column in Z.
    Layout: columns are ordered as [term0_level0, term0_level1, ...,
    term1_level0, term1_level1, ...], i.e. term-major ordering.

    Z[i, t*J + j] = covariates[i, t] if observation i belongs to level j.

    Args:
        group_ids: (n,) integer level indices.
        n_groups: Number of levels (J).
        covariates: (n, k) per-observation covariate values; a column of
            ones is a random intercept.

    Returns:
        Z block of shape (n, J * k).
    """
    n, k = covariates.shape
    Z = np.zeros((n, n_groups * k), dtype=np.float64)
    rows = np.arange(n)
    for t in range(k):
        Z[rows, t * n_groups + group_ids] = covariates[:, t]
    return Z


def build_z_matrix(factors: list[GroupingFactor]) -> NDArray:
    """Concatenate Z blocks from all grouping factors.

    Z = [Z_1 | Z_2 | ...], shape (n, total_q) where
    total_q = sum(J_k * q_k) across all grouping factors.
    """
    if not factors:
        raise ValidationError("At least one grouping factor required")
    return np.hstack([f.Z_block for f in factors])


def split_theta(theta: NDArray, factors: list[GroupingFactor]) -> list[NDArray]:
    """Split a flat θ into per-factor slices, in declaration order."""
    expected = sum(f.theta_size for f in factors)
    if len(theta) != expected:
        raise ValidationError(
            f"theta has {len(theta)} elements, expected {expected}"
        )
    out = []
    offset = 0
    for f in factors:
        out.append(theta[offset:offset + f.theta_size])
        offset += f.theta_size
    return out


def relative_factor(theta_k: NDArray, template: CovarianceTemplate) -> NDArray:
    """Lower-triangular k×k Λ_k for one grouping factor.

    The random effects covariance for the factor is σ² Λ_k Λ_k'.
    Entries not in template.positions are zero.
    """
    k = template.n_terms
    T = np.zeros((k, k), dtype=np.float64)
    for value, (row, col) in zip(theta_k, template.positions):
        T[row, col] = value
    return T


def build_lambda(theta: NDArray, factors: list[GroupingFactor]) -> NDArray:
    """Build block-diagonal Λ_θ from the theta parameter vector.

    Λ is block-diagonal, with one block per grouping factor.
    For grouping factor g with k terms and J levels the block is
    T_g ⊗ I_J, where T_g = relative_factor(θ_g). The Kronecker order
    matches the term-major column layout of Z (and hence of b).

    Args:
        theta: Parameter vector, length Σ theta_size.
        factors: Grouping factors.

    Returns:
        Block-diagonal Λ matrix of shape (total_q, total_q).
    """
    blocks = []
    for theta_k, f in zip(split_theta(theta, factors), factors):
        T = relative_factor(theta_k, f.template)
        blocks.append(np.kron(T, np.eye(f.n_groups)))
    return sla.block_diag(*blocks)


def theta_lower_bounds(factors: list[GroupingFactor]) -> NDArray:
    """Lower bounds for θ.

    Diagonal elements of the Cholesky factor must be ≥ 0 (variance is non-negative).
    Off-diagonal elements are unbounded (correlations can be negative).
    """
    bounds = []
    for f in factors:
        for row, col in f.template.positions:
            bounds.append(0.0 if row == col else -np.inf)
    return np.array(bounds, dtype=np.float64)


def theta_bounds(factors: list[GroupingFactor]) -> list[tuple[float | None, None]]:
    """θ box in scipy.optimize form: (lower, upper) per component."""
    return [
        (float(lb) if np.isfinite(lb) else None, None)
        for lb in theta_lower_bounds(factors)
    ]


def theta_start(factors: list[GroupingFactor]) -> NDArray:
    """Starting values for θ.

    Diagonal elements start at 1.0 (σ_b/σ = 1, equal variance partition).
    Off-diagonal elements start at 0.0 (no initial correlation).
    """
    theta0 = []
    for f in factors:
        for row, col in f.template.positions:
            theta0.append(1.0 if row == col else 0.0)
    return np.array(theta0, dtype=np.float64)


def slope_diagonal_indices(factors: list[GroupingFactor]) -> list[int]:
    """θ indices of diagonal entries beyond the first term of each factor."""
    indices = []
    idx = 0
    for f in factors:
        for row, col in f.template.positions:
            if row == col and row > 0:
                indices.append(idx)
            idx += 1
    return indices
