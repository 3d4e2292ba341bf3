"""
QR decomposition and numerical rank.

Used to check fixed-effects designs for nesting when comparing models.
"""

from dataclasses import dataclass
from typing import Literal, Any
import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True)
class QRResult:
    """
    Result of QR decomposition.

    Attributes:
        Q: Orthogonal matrix (n x k where k = min(n, p) for reduced mode)
        R: Upper triangular matrix (k x p)
        rank: Numerical rank determined from R diagonal
    """
    Q: NDArray[np.floating[Any]]
    R: NDArray[np.floating[Any]]
    rank: int


def qr_cpu(
    X: NDArray[np.floating[Any]],
    mode: Literal['reduced', 'complete'] = 'reduced'
) -> QRResult:
    """
    QR decomposition using LAPACK (via NumPy).

    Computes X = QR where Q is orthogonal and R is upper triangular.

    Args:
        X: Matrix to decompose (n x p)
        mode: 'reduced' for economy QR (Q is n x k, R is k x p where k = min(n,p))
              'complete' for full QR (Q is n x n, R is n x p)

    Returns:
        QRResult with Q, R, and numerical rank
    """
    Q, R = np.linalg.qr(X, mode=mode)

    # Determine numerical rank from R diagonal
    diag_R = np.abs(np.diag(R))
    if len(diag_R) > 0 and diag_R.max() > 0:
        # Tolerance based on matrix size and machine epsilon
        tol = max(X.shape) * np.finfo(X.dtype).eps * diag_R.max()
        rank = int(np.sum(diag_R > tol))
    else:
        rank = 0

    return QRResult(Q=Q, R=R, rank=rank)


def column_space_contains(
    X: NDArray[np.floating[Any]],
    W: NDArray[np.floating[Any]],
    rtol: float = 1e-8,
) -> bool:
    """
    Check whether every column of W lies in the column space of X.

    Projects W onto span(X) with the reduced QR factor of X and compares
    the residual norm to the norm of W.

    Args:
        X: Reference matrix (n x p), full column rank
        W: Candidate matrix (n x m)
        rtol: Relative tolerance on the projection residual

    Returns:
        True if ‖W - QQ'W‖ <= rtol * max(‖W‖, 1) column by column.
    """
    if X.shape[0] != W.shape[0]:
        return False
    Q = qr_cpu(X).Q
    resid = W - Q @ (Q.T @ W)
    resid_norm = np.linalg.norm(resid, axis=0)
    scale = np.maximum(np.linalg.norm(W, axis=0), 1.0)
    return bool(np.all(resid_norm <= rtol * scale))
