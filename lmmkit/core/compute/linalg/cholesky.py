"""
Cholesky decomposition and triangular solves.

Thin wrappers over LAPACK (via NumPy/SciPy) that turn factorization
breakdown into NotPositiveDefiniteError with diagnostic attributes, and
expose the log-determinant needed by profiled likelihoods.
"""

from dataclasses import dataclass
from typing import Any
import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from lmmkit.core.exceptions import NotPositiveDefiniteError


@dataclass(frozen=True)
class CholeskyResult:
    """
    Result of a Cholesky decomposition A = LL'.

    Attributes:
        L: Lower triangular factor
        log_det: log|A| = 2 * sum(log(diag(L)))
    """
    L: NDArray[np.floating[Any]]
    log_det: float


def cholesky_cpu(
    A: NDArray[np.floating[Any]],
    matrix_name: str = 'A',
    pivot_tol: float = 0.0,
) -> CholeskyResult:
    """
    Lower Cholesky factor of a symmetric positive definite matrix.

    Args:
        A: Symmetric matrix (k x k)
        matrix_name: Name used in error messages
        pivot_tol: Pivots of L at or below this value are treated as a
            breakdown (0.0 accepts any strictly positive pivot)

    Returns:
        CholeskyResult with L and log|A|

    Raises:
        NotPositiveDefiniteError: If LAPACK reports a non-positive pivot,
            or a pivot is non-finite or below pivot_tol
    """
    try:
        L = np.linalg.cholesky(A)
    except np.linalg.LinAlgError as e:
        raise NotPositiveDefiniteError(
            f"{matrix_name}: Cholesky factorization failed ({e})",
            matrix_name=matrix_name,
            min_eigenvalue=_min_eigenvalue(A),
        ) from e

    d = np.diag(L)
    if not np.all(np.isfinite(d)) or np.any(d <= pivot_tol):
        raise NotPositiveDefiniteError(
            f"{matrix_name}: Cholesky pivot {float(np.min(d)):.3e} "
            f"at or below tolerance {pivot_tol:.3e}",
            matrix_name=matrix_name,
            min_eigenvalue=_min_eigenvalue(A),
        )

    return CholeskyResult(L=L, log_det=float(2.0 * np.sum(np.log(d))))


def solve_lower(
    L: NDArray[np.floating[Any]],
    b: NDArray[np.floating[Any]],
) -> NDArray[np.floating[Any]]:
    """Solve L x = b for lower triangular L."""
    return sla.solve_triangular(L, b, lower=True)


def solve_upper(
    L: NDArray[np.floating[Any]],
    b: NDArray[np.floating[Any]],
) -> NDArray[np.floating[Any]]:
    """Solve L' x = b for lower triangular L."""
    return sla.solve_triangular(L, b, lower=True, trans='T')


def cho_solve_cpu(
    L: NDArray[np.floating[Any]],
    b: NDArray[np.floating[Any]],
) -> NDArray[np.floating[Any]]:
    """Solve (LL') x = b given the lower Cholesky factor L."""
    return solve_upper(L, solve_lower(L, b))


def _min_eigenvalue(A: NDArray[np.floating[Any]]) -> float | None:
    if not np.all(np.isfinite(A)):
        return None
    return float(np.linalg.eigvalsh(A)[0])
